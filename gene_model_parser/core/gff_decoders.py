#!/usr/bin/env python3

"""
Record decoders for the 9-column GFF family: GFF3, GTF and generic GFF.

Decoders are pure: one line in, one GffRecord out, or MalformedRecord
raised. Identifier counters, parent synthesis and linkage belong to the
assembler, which sees records in arrival order.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote_plus

from .data_structures import Feature, gff3_escape
from .exceptions import MalformedRecord

GFF_COLUMNS = 9

# Attribute tags kept in simplify mode
ESSENTIAL_TAGS = ('ID', 'Name', 'Parent')

GTF_IDENTIFIERS = ('gene_id', 'transcript_id', 'gene_name', 'transcript_name', 'exon_id')
_GTF_FAST = {tag: re.compile(tag + r'\s+"?([^";]+)"?') for tag in GTF_IDENTIFIERS}
_GTF_PAIR = re.compile(r'^(\S+)\s+(.*)$')


@dataclass
class GffRecord:
    """One decoded GFF-family row plus its linkage information."""
    feature: Feature
    line_number: int = 0
    declared_id: Optional[str] = None
    parent_ids: List[str] = field(default_factory=list)
    gene_id: Optional[str] = None
    transcript_id: Optional[str] = None
    gene_name: Optional[str] = None
    transcript_name: Optional[str] = None
    exon_id: Optional[str] = None
    gene_biotype: Optional[str] = None
    transcript_biotype: Optional[str] = None


def unescape(value: str) -> str:
    """Reverse GFF3 escaping: '+' becomes a space, %XX becomes its character."""
    return unquote_plus(value)


def escape(value: str) -> str:
    return gff3_escape(value)


def row_kind(feature_type: str) -> str:
    """
    Classify a row type for the subfeature toggles.

    Returns one of cds, exon, utr, codon, gene, transcript, sequence, other.
    """
    lowered = feature_type.lower()
    if lowered == 'cds':
        return 'cds'
    if lowered == 'exon':
        return 'exon'
    if 'utr' in lowered or 'untranslated' in lowered:
        return 'utr'
    if 'codon' in lowered:
        return 'codon'
    if lowered.endswith('gene'):
        return 'gene'
    if 'transcript' in lowered or 'rna' in lowered:
        return 'transcript'
    if lowered in ('chromosome', 'contig', 'scaffold'):
        return 'sequence'
    return 'other'


def parse_gff3_attributes(text: str) -> Dict[str, List[str]]:
    """Split a GFF3 attribute column into an ordered tag -> values mapping."""
    attributes: Dict[str, List[str]] = {}
    for piece in text.strip().split(';'):
        piece = piece.strip()
        if not piece:
            continue
        if '=' in piece:
            tag, raw = piece.split('=', 1)
        else:
            tag, raw = piece, ''
        values = [unescape(v) for v in raw.split(',')] if raw else []
        attributes.setdefault(unescape(tag), []).extend(values)
    return attributes


def parse_gtf_attributes(text: str, fast: bool = False) -> Dict[str, List[str]]:
    """
    Split a GTF attribute column of ``key "value";`` pairs.

    The fast path extracts only gene_id, transcript_id, gene_name,
    transcript_name and exon_id.
    """
    attributes: Dict[str, List[str]] = {}
    if fast:
        for tag, pattern in _GTF_FAST.items():
            match = pattern.search(text)
            if match:
                attributes[tag] = [match.group(1).strip()]
        return attributes

    for piece in text.strip().split(';'):
        piece = piece.strip()
        if not piece:
            continue
        match = _GTF_PAIR.match(piece)
        if match is None:
            attributes.setdefault(piece, [])
            continue
        tag, value = match.group(1), match.group(2).strip()
        if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
            value = value[1:-1]
        attributes.setdefault(tag, []).append(value)
    return attributes


def _split_columns(line: str, line_number: int, dialect: str) -> List[str]:
    fields = line.rstrip('\r\n').split('\t')
    if len(fields) != GFF_COLUMNS:
        raise MalformedRecord(f"expected {GFF_COLUMNS} columns, found {len(fields)}",
                              line_number, dialect)
    return fields


def _base_feature(fields: List[str], line_number: int, dialect: str) -> Feature:
    seq_id, source, feature_type, start, end, score, strand, phase = fields[:8]
    if not (start.isdigit() and end.isdigit()):
        raise MalformedRecord(f"non-numeric coordinates {start}-{end}", line_number, dialect)
    if int(start) > int(end):
        raise MalformedRecord(f"start {start} is after end {end}", line_number, dialect)

    score_value = None
    if score not in ('.', ''):
        try:
            score_value = float(score)
        except ValueError:
            raise MalformedRecord(f"invalid score {score}", line_number, dialect)

    phase_value = None
    if phase not in ('.', ''):
        if phase not in ('0', '1', '2'):
            raise MalformedRecord(f"invalid phase {phase}", line_number, dialect)
        phase_value = int(phase)

    return Feature(seq_id=seq_id, start=int(start), end=int(end), strand=strand,
                   feature_type=feature_type, source=source, score=score_value,
                   phase=phase_value)


def decode_gff3_line(line: str, line_number: int = 0, simplify: bool = False) -> GffRecord:
    """Decode one GFF3 row."""
    fields = _split_columns(line, line_number, 'gff3')
    feature = _base_feature(fields, line_number, 'gff3')
    attributes = parse_gff3_attributes(fields[8])

    record = GffRecord(feature=feature, line_number=line_number)
    ids = attributes.pop('ID', [])
    if ids:
        record.declared_id = ids[0]
    names = attributes.pop('Name', [])
    if names:
        feature.display_name = names[0]
    record.parent_ids = [p for p in attributes.pop('Parent', []) if p]

    exon_ids = attributes.get('exon_id')
    if record.declared_id is None and feature.feature_type.lower() == 'exon' and exon_ids:
        record.declared_id = exon_ids[0]

    if not simplify:
        for tag, values in attributes.items():
            feature.attributes[tag] = values
    return record


def decode_gtf_line(line: str, line_number: int = 0, fast: bool = False,
                    simplify: bool = False) -> GffRecord:
    """Decode one GTF row; linkage comes from gene_id and transcript_id."""
    fields = _split_columns(line, line_number, 'gtf')
    feature = _base_feature(fields, line_number, 'gtf')
    attributes = parse_gtf_attributes(fields[8], fast)

    def first(tag: str) -> Optional[str]:
        values = attributes.get(tag)
        return values[0] if values else None

    record = GffRecord(
        feature=feature,
        line_number=line_number,
        gene_id=first('gene_id'),
        transcript_id=first('transcript_id'),
        gene_name=first('gene_name'),
        transcript_name=first('transcript_name'),
        exon_id=first('exon_id'),
        gene_biotype=first('gene_biotype') or first('gene_type'),
        transcript_biotype=first('transcript_biotype') or first('transcript_type'),
    )
    if not simplify and not fast:
        for tag, values in attributes.items():
            feature.attributes[tag] = values
    return record


def decode_gff_line(line: str, line_number: int = 0, simplify: bool = False) -> GffRecord:
    """
    Decode one generic GFF (version 1 or 2) row.

    The group column is read as tag/value pairs; a lone value names the
    feature. Generic GFF carries no hierarchy, so every row is top-level.
    """
    fields = _split_columns(line, line_number, 'gff')
    feature = _base_feature(fields, line_number, 'gff')
    attributes = parse_gtf_attributes(fields[8])

    record = GffRecord(feature=feature, line_number=line_number)
    for tag, values in list(attributes.items()):
        if not values:
            # GFF1 group: a bare name
            feature.display_name = feature.display_name or tag
            del attributes[tag]
    ids = attributes.get('ID')
    if ids:
        record.declared_id = ids[0]
    names = attributes.get('Name')
    if names and not feature.display_name:
        feature.display_name = names[0]
    if not simplify:
        for tag, values in attributes.items():
            if tag not in ESSENTIAL_TAGS:
                feature.attributes[tag] = values
    return record


def parse_sequence_region(line: str, line_number: int = 0) -> Tuple[str, int, int]:
    """Parse a ``##sequence-region <seq> <start> <end>`` pragma."""
    parts = line.split()
    if len(parts) != 4 or not (parts[2].isdigit() and parts[3].isdigit()):
        raise MalformedRecord(f"bad sequence-region pragma: {line.strip()}",
                              line_number, 'gff3')
    return parts[1], int(parts[2]), int(parts[3])
