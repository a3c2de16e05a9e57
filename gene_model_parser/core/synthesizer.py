#!/usr/bin/env python3

"""
Subfeature synthesis for whole-transcript rows.

A gene-table (or BED12) row describes a transcript by its span, coding
region and exon lists. From those the synthesizer derives the child
features: exons, five/three prime UTRs, start/stop codons and phased CDS
segments, in that child order.
"""

import logging
import re
from enum import Enum
from typing import List, Optional

from .data_structures import Feature, STRAND_FORWARD, STRAND_REVERSE, normalize_strand
from .exceptions import MalformedCoordinateGeometry
from .session import ParseSession
from .sharing import SharingCache
from .ucsc_decoders import UcscRecord


class ExonClass(Enum):
    """Position of one exon relative to the coding region."""
    STRADDLE = 'straddle'        # CDS fully inside the exon, UTR on both sides
    UPSTREAM = 'upstream'        # entirely before cdsStart
    SPLIT_START = 'split_start'  # crosses cdsStart
    INSIDE = 'inside'            # entirely coding
    SPLIT_END = 'split_end'      # crosses cdsEnd
    DOWNSTREAM = 'downstream'    # entirely after cdsEnd


def classify_exon(start: int, end: int, cds_start: int, cds_end: int) -> Optional[ExonClass]:
    """
    Classify an exon against [cds_start, cds_end], all closed 1-based.

    Returns:
        The matching ExonClass, or None for geometry fitting no case
    """
    if start > end:
        return None
    if start < cds_start and end > cds_end:
        return ExonClass.STRADDLE
    if start < cds_start and end < cds_start:
        return ExonClass.UPSTREAM
    if start < cds_start and end >= cds_start:
        return ExonClass.SPLIT_START
    if start >= cds_start and end <= cds_end:
        return ExonClass.INSIDE
    if start <= cds_end and end > cds_end:
        return ExonClass.SPLIT_END
    if start > cds_end and end > cds_end:
        return ExonClass.DOWNSTREAM
    return None


def next_phase(phase: int, length: int) -> int:
    """Phase of the following CDS segment."""
    phase = phase + (3 - length % 3)
    if phase > 2:
        phase -= 3
    return phase


class ClassificationRule:
    """One ranked rule of transcript type inference."""

    # None applies to both coding and noncoding transcripts
    coding: Optional[bool] = None

    def applies(self, record: UcscRecord) -> bool:
        return self.coding is None or self.coding != record.noncoding

    def classify(self, record: UcscRecord) -> Optional[str]:
        raise NotImplementedError


class BiotypeHintRule(ClassificationRule):
    """Use an externally supplied biotype, mapped onto a feature type."""

    _PROTEIN_CODING = re.compile(r'protein.coding', re.I)
    _RNA = re.compile(r'rna|transcript', re.I)

    def classify(self, record: UcscRecord) -> Optional[str]:
        if not record.biotype:
            return None
        if self._PROTEIN_CODING.search(record.biotype):
            return 'mRNA'
        if self._RNA.search(record.biotype):
            return record.biotype
        return 'transcript'


class NamePrefixRule(ClassificationRule):
    """Infer a noncoding subtype from the gene name prefix."""
    coding = False

    def __init__(self, prefix: str, feature_type: str):
        self.prefix = prefix.lower()
        self.feature_type = feature_type

    def classify(self, record: UcscRecord) -> Optional[str]:
        name = (record.name2 or record.name or '').lower()
        return self.feature_type if name.startswith(self.prefix) else None


class DefaultTypeRule(ClassificationRule):

    def __init__(self, feature_type: str, coding: bool):
        self.feature_type = feature_type
        self.coding = coding

    def classify(self, record: UcscRecord) -> Optional[str]:
        return self.feature_type


DEFAULT_RULES = [
    BiotypeHintRule(),
    NamePrefixRule('mir', 'miRNA'),
    NamePrefixRule('snr', 'snRNA'),
    NamePrefixRule('sno', 'snoRNA'),
    DefaultTypeRule('ncRNA', coding=False),
    DefaultTypeRule('mRNA', coding=True),
]


class TranscriptClassifier:
    """Ranked rule list; the first rule returning a type wins."""

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def classify(self, record: UcscRecord) -> str:
        for rule in self.rules:
            if not rule.applies(record):
                continue
            feature_type = rule.classify(record)
            if feature_type:
                return feature_type
        return 'transcript'


class SubfeatureSynthesizer:
    """Builds a transcript Feature and its children from one UcscRecord."""

    def __init__(self, session: ParseSession, sharing: SharingCache,
                 classifier: Optional[TranscriptClassifier] = None):
        self.session = session
        self.config = session.config
        self.sharing = sharing
        self.classifier = classifier or TranscriptClassifier()

    def build_transcript(self, record: UcscRecord, gene: Optional[Feature] = None,
                         source: str = '.') -> Feature:
        """
        Build and register a transcript with its subfeatures.

        Args:
            record: decoded gene-table or BED12 row
            gene: parent gene whose earlier transcripts may share subfeatures
            source: provenance label

        Returns:
            The registered transcript (not yet attached to the gene)
        """
        feature_type = record.transcript_type or self.classifier.classify(record)
        transcript = Feature(seq_id=record.chrom, start=record.tx_start, end=record.tx_end,
                             strand=record.strand, feature_type=feature_type, source=source,
                             display_name=record.name, score=record.score)
        self.session.register(transcript, record.feature_id or record.name)

        if record.gene_name and record.gene_name != record.name2:
            transcript.add_attribute('Alias', record.gene_name)
        update_attributes(transcript, record)
        if record.completeness:
            transcript.add_attribute('completeness', record.completeness)
        if record.status:
            transcript.add_attribute('status', record.status)
        if record.biotype:
            transcript.add_attribute('biotype', record.biotype)
        for tag, values in record.extra_attributes.items():
            transcript.add_attribute(tag, values)

        if record.block_type != 'exon':
            self._add_blocks(transcript, record)
        else:
            if self.config.do_exon:
                self._add_exons(transcript, record, gene)
            if not record.noncoding and self._coding_region_valid(transcript, record):
                classes = self._classify_exons(transcript, record)
                if self.config.do_utr:
                    self._add_utrs(transcript, record, gene, classes)
                if self.config.do_codon:
                    self._add_codons(transcript, record, gene)
                if self.config.do_cds:
                    self._add_cds(transcript, record, classes)

        if record.feature_strand is not None:
            self._restrand(transcript, record.feature_strand)
        return transcript

    def _number(self, index: int, record: UcscRecord) -> int:
        # 5'->3' numbering on either strand
        if record.strand == STRAND_REVERSE:
            return abs(index - record.exon_count + 1)
        return index

    def _subfeature(self, transcript: Feature, gene: Optional[Feature], feature_type: str,
                    start: int, end: int, suffix: str, phase: Optional[int] = None) -> Feature:
        existing = self.sharing.find(gene, feature_type, transcript.seq_id, start, end)
        if existing is not None:
            return existing
        feature = Feature(seq_id=transcript.seq_id, start=start, end=end,
                          strand=transcript.strand, feature_type=feature_type,
                          source=transcript.source, phase=phase)
        self.session.register(feature, f"{transcript.primary_id}.{suffix}")
        if self.config.do_name or feature_type == 'CDS':
            feature.display_name = f"{transcript.display_name}.{suffix}"
        return feature

    def _attach_all(self, transcript: Feature, children: List[Feature]) -> None:
        for child in children:
            self.session.arena.attach(transcript, child)

    def _add_blocks(self, transcript: Feature, record: UcscRecord) -> None:
        children = []
        for i, (start, end) in enumerate(zip(record.exon_starts, record.exon_ends)):
            children.append(self._subfeature(transcript, None, record.block_type, start, end,
                                             f"{record.block_type}{self._number(i, record)}"))
        self._attach_all(transcript, children)

    def _add_exons(self, transcript: Feature, record: UcscRecord, gene: Optional[Feature]) -> None:
        children = []
        for i, (start, end) in enumerate(zip(record.exon_starts, record.exon_ends)):
            children.append(self._subfeature(transcript, gene, 'exon', start, end,
                                             f"exon{self._number(i, record)}"))
        self._attach_all(transcript, children)

    def _coding_region_valid(self, transcript: Feature, record: UcscRecord) -> bool:
        if record.cds_start <= record.cds_end:
            return True
        self.session.record(MalformedCoordinateGeometry(
            "coding region is inverted", transcript.primary_id,
            cds_start=record.cds_start, cds_end=record.cds_end))
        return False

    def _classify_exons(self, transcript: Feature, record: UcscRecord) -> List[Optional[ExonClass]]:
        classes = []
        for start, end in zip(record.exon_starts, record.exon_ends):
            exon_class = classify_exon(start, end, record.cds_start, record.cds_end)
            if exon_class is None:
                self.session.record(MalformedCoordinateGeometry(
                    "exon fits no UTR/CDS case", transcript.primary_id,
                    start, end, record.cds_start, record.cds_end))
            classes.append(exon_class)
        return classes

    def _add_utrs(self, transcript: Feature, record: UcscRecord, gene: Optional[Feature],
                  classes: List[Optional[ExonClass]]) -> None:
        forward = record.strand == STRAND_FORWARD
        left_tag = 'five_prime_UTR' if forward else 'three_prime_UTR'
        right_tag = 'three_prime_UTR' if forward else 'five_prime_UTR'

        children = []
        for i, exon_class in enumerate(classes):
            start, end = record.exon_starts[i], record.exon_ends[i]
            number = self._number(i, record)
            pieces = []
            if exon_class is ExonClass.STRADDLE:
                pieces.append((left_tag, start, record.cds_start - 1, f"utr{number}"))
                pieces.append((right_tag, record.cds_end + 1, end, f"utr{number}a"))
            elif exon_class is ExonClass.UPSTREAM:
                pieces.append((left_tag, start, end, f"utr{number}"))
            elif exon_class is ExonClass.SPLIT_START:
                pieces.append((left_tag, start, record.cds_start - 1, f"utr{number}"))
            elif exon_class is ExonClass.SPLIT_END:
                pieces.append((right_tag, record.cds_end + 1, end, f"utr{number}"))
            elif exon_class is ExonClass.DOWNSTREAM:
                pieces.append((right_tag, start, end, f"utr{number}"))

            for tag, piece_start, piece_end, suffix in pieces:
                children.append(self._subfeature(transcript, gene, tag, piece_start,
                                                 piece_end, suffix))
        self._attach_all(transcript, children)

    def _add_codons(self, transcript: Feature, record: UcscRecord, gene: Optional[Feature]) -> None:
        left = (record.cds_start, record.cds_start + 2)
        right = (record.cds_end - 2, record.cds_end)
        if record.strand == STRAND_FORWARD:
            start_span, stop_span = left, right
        else:
            start_span, stop_span = right, left
        if start_span[0] > start_span[1] or stop_span[0] > stop_span[1]:
            return
        start_codon = self._subfeature(transcript, gene, 'start_codon', *start_span,
                                       'start_codon', phase=0)
        stop_codon = self._subfeature(transcript, gene, 'stop_codon', *stop_span,
                                      'stop_codon', phase=0)
        self._attach_all(transcript, [start_codon, stop_codon])

    def _add_cds(self, transcript: Feature, record: UcscRecord,
                 classes: List[Optional[ExonClass]]) -> None:
        children = []
        phase = 0
        count = record.exon_count
        for i in range(count):
            # walk 5'->3' so the phase follows the reading frame
            j = i if record.strand == STRAND_FORWARD else count - 1 - i
            start, end = record.exon_starts[j], record.exon_ends[j]
            exon_class = classes[j]
            if exon_class is ExonClass.STRADDLE:
                span = (record.cds_start, record.cds_end)
            elif exon_class is ExonClass.SPLIT_START:
                span = (record.cds_start, end)
            elif exon_class is ExonClass.INSIDE:
                span = (start, end)
            elif exon_class is ExonClass.SPLIT_END:
                span = (start, record.cds_end)
            else:
                continue
            cds = self._subfeature(transcript, None, 'CDS', span[0], span[1], f"cds{i}", phase=phase)
            children.append(cds)
            phase = next_phase(phase, cds.length)
        self._attach_all(transcript, children)

    def _restrand(self, transcript: Feature, strand: str) -> None:
        strand = normalize_strand(strand)
        logging.debug(f"Reporting {transcript.primary_id} on strand {strand}")
        transcript.set_strand(strand)
        for child in transcript.get_children():
            if child.frozen:
                # shared children keep their strand
                logging.debug(f"Leaving shared {child.primary_id} on strand {child.strand}")
                continue
            child.set_strand(strand)


def update_attributes(feature: Feature, record: UcscRecord) -> None:
    """Add the enrichment attributes of a record without duplicating values."""
    if record.note:
        feature.add_unique_attribute('Note', record.note)
    if record.refseq:
        feature.add_unique_attribute('Dbxref', f"RefSeq:{record.refseq}")
    if record.spid:
        feature.add_unique_attribute('Dbxref', f"Swiss-Prot:{record.spid}")
    if record.spdid:
        feature.add_unique_attribute('swiss-prot_display_id', record.spdid)
    if record.protacc:
        feature.add_unique_attribute('Dbxref', f"RefSeq:{record.protacc}")
