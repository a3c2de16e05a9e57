#!/usr/bin/env python3

"""
Record decoder for the UCSC genePred family of gene tables.

The table layout is chosen purely by column count:

    16  genePredExt with a leading bin column (refGene, ensGene, ...)
    15  genePredExt
    12  knownGene (enriched through kgXref)
    11  refFlat
    10  genePred

Coordinates arrive half-open 0-based and leave as closed 1-based.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .dialects import open_annotation_lines
from .exceptions import FatalOpenError, MalformedRecord

_NUMBER = re.compile(r'^\d+$')
_NUMBER_LIST = re.compile(r'^[\d,]+$')
_REFSEQ = re.compile(r'^N[MR]_\d+')

# Reference table kinds, matched against the requested kind name
_TABLE_KINDS = [
    (re.compile(r'ensembltogene|ensname', re.I), 'ensembltogene'),
    (re.compile(r'ensemblsource|enssrc', re.I), 'ensemblsource'),
    (re.compile(r'refseqstat|status', re.I), 'refseqstat'),
    (re.compile(r'refseqsum|summary', re.I), 'refseqsum'),
    (re.compile(r'kgxref', re.I), 'kgxref'),
]


@dataclass
class ReferenceTables:
    """
    Identifier-keyed side tables used to enrich UCSC rows.

    refseq_summary: accession -> [completeness, summary]
    refseq_status:  accession -> [status, molecule type]
    kgxref:         kgID -> [mRNA, spID, spDisplayID, geneSymbol, refseq, protAcc, description]
    ensembl_gene_name: transcript id -> gene name
    ensembl_source:    transcript id -> biotype
    """
    refseq_summary: Dict[str, List[str]] = field(default_factory=dict)
    refseq_status: Dict[str, List[str]] = field(default_factory=dict)
    kgxref: Dict[str, List[str]] = field(default_factory=dict)
    ensembl_gene_name: Dict[str, str] = field(default_factory=dict)
    ensembl_source: Dict[str, str] = field(default_factory=dict)

    @staticmethod
    def _field(table: Dict[str, List[str]], key: Optional[str], index: int) -> Optional[str]:
        if not key:
            return None
        values = table.get(key)
        if values and len(values) > index and values[index]:
            return values[index]
        return None

    def summary(self, key, index):
        return self._field(self.refseq_summary, key, index)

    def status(self, key):
        return self._field(self.refseq_status, key, 0)

    def kg(self, key, index):
        return self._field(self.kgxref, key, index)


def load_reference_table(path: str, kind: str,
                         tables: Optional[ReferenceTables] = None) -> ReferenceTables:
    """
    Load one auxiliary table into a ReferenceTables.

    Args:
        path: table file, optionally gzip-compressed
        kind: ensemblToGeneName, ensemblSource, refSeqStatus, refSeqSummary or kgXref
        tables: existing tables to extend

    Returns:
        The extended (or a new) ReferenceTables
    """
    if tables is None:
        tables = ReferenceTables()
    normalized = None
    for pattern, name in _TABLE_KINDS:
        if pattern.search(kind):
            normalized = name
            break
    if normalized is None:
        raise FatalOpenError(f"unknown reference table type '{kind}'", path)

    count = 0
    for line in open_annotation_lines(path):
        line = line.rstrip('\r\n')
        if not line or line.startswith('#'):
            continue
        fields = line.split('\t')

        if normalized.startswith('ensembl'):
            if len(fields) != 2:
                raise FatalOpenError(f"expected 2 columns, line has {len(fields)}", path)
            target = (tables.ensembl_gene_name if normalized == 'ensembltogene'
                      else tables.ensembl_source)
            target[fields[0]] = fields[1]
            count += 1
            continue

        target = {
            'refseqstat': tables.refseq_status,
            'refseqsum': tables.refseq_summary,
            'kgxref': tables.kgxref,
        }[normalized]
        key = fields[0]
        if key in target:
            logging.warning(f"{kind} line for identifier {key} exists twice")
            continue
        target[key] = fields[1:]
        count += 1

    logging.info(f"Loaded {count} {kind} entries from {path}")
    return tables


@dataclass
class UcscRecord:
    """One gene-table row, normalized to closed 1-based coordinates."""
    name: str
    chrom: str
    strand: str
    tx_start: int
    tx_end: int
    cds_start: int
    cds_end: int
    exon_starts: List[int]
    exon_ends: List[int]
    name2: Optional[str] = None
    gene_name: Optional[str] = None
    layout: str = 'genePred'
    line_number: int = 0
    biotype: Optional[str] = None
    note: Optional[str] = None
    status: Optional[str] = None
    completeness: Optional[str] = None
    refseq: Optional[str] = None
    spid: Optional[str] = None
    spdid: Optional[str] = None
    protacc: Optional[str] = None
    # BED-derived rows
    score: Optional[float] = None
    feature_id: Optional[str] = None
    transcript_type: Optional[str] = None
    block_type: str = 'exon'
    # strand reported on the built features when it differs from the build strand
    feature_strand: Optional[str] = None
    extra_attributes: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def exon_count(self) -> int:
        return len(self.exon_starts)

    @property
    def noncoding(self) -> bool:
        """No coding region when cdsStart - 1 == cdsEnd (cdsStart is 1-based)."""
        return self.cds_start - 1 == self.cds_end

    @property
    def groups_into_gene(self) -> bool:
        return self.layout != 'genePred' and self.feature_id is None


def _layout_fields(fields: List[str], tables: ReferenceTables) -> Dict[str, Optional[str]]:
    count = len(fields)
    values: Dict[str, Optional[str]] = {}

    if count in (16, 15, 11):
        offset = 1 if count in (16, 11) else 0
        core = fields[offset:offset + 10]
        values['name'] = core[0]
        if count == 11:
            values['name2'] = fields[0] or None
        else:
            values['name2'] = fields[offset + 11] or None
        values['gene_name'] = tables.ensembl_gene_name.get(core[0]) or values['name2']
        values['note'] = tables.summary(core[0], 1)
        values['status'] = tables.status(core[0])
        values['completeness'] = tables.summary(core[0], 0)
        if _REFSEQ.match(core[0]):
            values['refseq'] = core[0]
    elif count == 12:
        kg_id = fields[0]
        core = fields[0:10]
        values['name'] = tables.kg(kg_id, 0) or kg_id
        values['name2'] = kg_id
        values['gene_name'] = (tables.kg(kg_id, 3) or tables.kg(kg_id, 0)
                               or tables.kg(kg_id, 4) or kg_id)
        values['note'] = tables.kg(kg_id, 6)
        values['refseq'] = tables.kg(kg_id, 4)
        values['status'] = tables.status(values['refseq'])
        values['completeness'] = tables.summary(values['refseq'], 0)
        values['spid'] = tables.kg(kg_id, 1)
        values['spdid'] = tables.kg(kg_id, 2)
        values['protacc'] = tables.kg(kg_id, 5)
    elif count == 10:
        core = fields[0:10]
        values['name'] = core[0]
        values['name2'] = core[0]
        values['gene_name'] = core[0]
        values['note'] = tables.summary(core[0], 1)
        values['status'] = tables.status(core[0])
        values['completeness'] = tables.summary(core[0], 0)
        if _REFSEQ.match(core[0]):
            values['refseq'] = core[0]
    else:
        raise ValueError(count)

    (_, values['chrom'], values['strand'], values['tx_start'], values['tx_end'],
     values['cds_start'], values['cds_end'], values['exon_count'],
     values['exon_starts'], values['exon_ends']) = core
    return values


_LAYOUT_NAMES = {16: 'genePredExtBin', 15: 'genePredExt', 12: 'knownGene',
                 11: 'refFlat', 10: 'genePred'}


def decode_ucsc_fields(fields: List[str], tables: Optional[ReferenceTables] = None,
                       line_number: int = 0) -> UcscRecord:
    """
    Decode the split columns of one gene-table row.

    Raises:
        MalformedRecord: on an unknown column count or invalid field shape
    """
    if tables is None:
        tables = ReferenceTables()
    if len(fields) not in _LAYOUT_NAMES:
        raise MalformedRecord(f"no gene table layout has {len(fields)} columns",
                              line_number, 'ucsc')
    values = _layout_fields(fields, tables)

    errors = []
    if values['strand'] not in ('+', '-'):
        errors.append('strand')
    for key in ('tx_start', 'tx_end', 'cds_start', 'cds_end', 'exon_count'):
        if not _NUMBER.match(values[key] or ''):
            errors.append(key)
    for key in ('exon_starts', 'exon_ends'):
        if not _NUMBER_LIST.match(values[key] or ''):
            errors.append(key)
    if errors:
        raise MalformedRecord(f"invalid field(s): {', '.join(errors)}", line_number, 'ucsc')

    exon_starts = [int(v) + 1 for v in values['exon_starts'].split(',') if v]
    exon_ends = [int(v) for v in values['exon_ends'].split(',') if v]
    exon_count = int(values['exon_count'])
    if len(exon_starts) != exon_count or len(exon_ends) != exon_count:
        raise MalformedRecord(f"exonCount {exon_count} does not match the exon lists",
                              line_number, 'ucsc')

    record = UcscRecord(
        name=values['name'],
        chrom=values['chrom'],
        strand=values['strand'],
        tx_start=int(values['tx_start']) + 1,
        tx_end=int(values['tx_end']),
        cds_start=int(values['cds_start']) + 1,
        cds_end=int(values['cds_end']),
        exon_starts=exon_starts,
        exon_ends=exon_ends,
        name2=values.get('name2'),
        gene_name=values.get('gene_name'),
        layout=_LAYOUT_NAMES[len(fields)],
        line_number=line_number,
        biotype=tables.ensembl_source.get(values['name']) or None,
        note=values.get('note'),
        status=values.get('status'),
        completeness=values.get('completeness'),
        refseq=values.get('refseq'),
        spid=values.get('spid'),
        spdid=values.get('spdid'),
        protacc=values.get('protacc'),
    )
    _check_geometry(record)
    return record


def _check_geometry(record: UcscRecord) -> None:
    if record.tx_start > record.tx_end:
        raise MalformedRecord(f"txStart after txEnd for {record.name}",
                              record.line_number, 'ucsc')
    for start, end in zip(record.exon_starts, record.exon_ends):
        if start > end:
            raise MalformedRecord(f"exon {start - 1}-{end} is inverted for {record.name}",
                                  record.line_number, 'ucsc')


def decode_ucsc_line(line: str, tables: Optional[ReferenceTables] = None,
                     line_number: int = 0) -> UcscRecord:
    """Decode one raw gene-table line."""
    return decode_ucsc_fields(line.rstrip('\r\n').split('\t'), tables, line_number)
