#!/usr/bin/env python3

"""
Hierarchy assembly for decoded annotation records.

The assembler receives decoded records in line order and builds the
feature graph inside a ParseSession: identifier uniqueness, parent/child
linkage, GTF parent inference, UCSC gene grouping and orphan
reconciliation. Decoding itself is pure and may run on worker threads;
assembly is strictly sequential.
"""

import logging
from collections import deque
from operator import attrgetter
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .bed_decoders import (
    bed12_to_ucsc_record, decode_bed_line, decode_bedgraph_line,
    decode_broadpeak_line, decode_narrowpeak_line, gapped_peak_to_ucsc_record,
)
from .data_structures import Feature, Orphan
from .dialects import Dialect, has_undecodable_bytes, is_header_line
from .exceptions import DuplicateIdentifier, MalformedRecord, UnresolvedParent
from .gff_decoders import (
    GffRecord, decode_gff3_line, decode_gff_line, decode_gtf_line,
    parse_sequence_region, row_kind,
)
from .session import ParseSession, SessionState
from .sharing import SharingCache
from .synthesizer import SubfeatureSynthesizer, TranscriptClassifier, update_attributes
from .ucsc_decoders import ReferenceTables, UcscRecord, decode_ucsc_line

Decoded = Union[None, MalformedRecord, GffRecord, UcscRecord, Feature]

SUBFEATURE_KINDS = ('cds', 'exon', 'utr', 'codon')
SHAREABLE_KINDS = ('exon', 'utr', 'codon')


class HierarchyAssembler:
    """Builds the feature graph of one parse session."""

    def __init__(self, session: ParseSession,
                 references: Optional[ReferenceTables] = None,
                 classifier: Optional[TranscriptClassifier] = None):
        if session.dialect_info is None:
            raise ValueError("ParseSession has no dialect")
        self.session = session
        self.config = session.config
        self.info = session.dialect_info
        self.references = references or ReferenceTables()
        self.sharing = SharingCache(self.config.share)
        self.synthesizer = SubfeatureSynthesizer(session, self.sharing, classifier)
        self.source = self.config.source or self.info.source_label or '.'
        self.stopped = False

        self._gene_names: Dict[str, List[Feature]] = {}
        self._pending_top: List[Feature] = []
        self.ready: deque = deque()
        self.assembled: deque = deque()

    # ------------------------------------------------------------------
    # Decoding (pure, thread-safe)
    # ------------------------------------------------------------------

    def decode_line(self, numbered: Tuple[int, str]) -> Decoded:
        """
        Decode one numbered line without touching the session.

        Returns:
            None for header, comment and terminator lines, the decoded
            record, or the MalformedRecord describing why it failed
        """
        line_number, line = numbered
        if has_undecodable_bytes(line):
            return MalformedRecord("line is not valid UTF-8 text", line_number,
                                   self.info.dialect.value, self.session.filename)
        if is_header_line(line) or line.startswith('>'):
            return None
        try:
            return self._decode(line, line_number)
        except MalformedRecord as e:
            e.filename = self.session.filename
            return e

    def _decode(self, line: str, line_number: int):
        dialect = self.info.dialect
        config = self.config
        if dialect is Dialect.GFF3:
            return decode_gff3_line(line, line_number, config.simplify)
        if dialect is Dialect.GTF:
            return decode_gtf_line(line, line_number, config.fast_gtf_attributes, config.simplify)
        if dialect is Dialect.GFF:
            return decode_gff_line(line, line_number, config.simplify)
        if dialect is Dialect.UCSC:
            return decode_ucsc_line(line, self.references, line_number)
        if dialect is Dialect.BEDGRAPH:
            return decode_bedgraph_line(line, line_number, self.source)
        if dialect is Dialect.NARROWPEAK:
            return decode_narrowpeak_line(line, line_number, self.source)
        if dialect is Dialect.BROADPEAK:
            return decode_broadpeak_line(line, line_number, self.source)
        if dialect is Dialect.GAPPEDPEAK:
            return gapped_peak_to_ucsc_record(line, line_number)
        if self.info.column_count > 6:
            return bed12_to_ucsc_record(line, self.info.column_count, line_number)
        return decode_bed_line(line, self.info.column_count, line_number, self.source)

    # ------------------------------------------------------------------
    # Assembly (sequential)
    # ------------------------------------------------------------------

    def feed(self, line_number: int, line: str, decoded: Decoded) -> None:
        """Assemble one decoded line in arrival order."""
        if self.stopped:
            return
        self.session.advance(SessionState.STREAMING)
        self.session.line_number = line_number

        if decoded is None:
            self._handle_header(line, line_number)
        elif isinstance(decoded, MalformedRecord):
            self.session.record(decoded)
        elif isinstance(decoded, GffRecord):
            if self.info.dialect is Dialect.GTF:
                self._add_gtf(decoded)
            elif self.info.dialect is Dialect.GFF3:
                self._add_gff3(decoded)
            else:
                self._add_gff(decoded)
        elif isinstance(decoded, UcscRecord):
            self._add_ucsc(decoded)
        else:
            self._add_region(decoded)

    def feed_lines(self, numbered_lines: Iterable[Tuple[int, str]]) -> None:
        for line_number, line in numbered_lines:
            self.feed(line_number, line, self.decode_line((line_number, line)))

    def _handle_header(self, line: str, line_number: int) -> None:
        stripped = line.strip()
        if not stripped:
            return
        if self.info.family == 'gff':
            if stripped == '###':
                resolved = self.reconcile()
                logging.debug(f"Section close at line {line_number}, resolved {resolved} orphan(s)")
                self.release()
                return
            if stripped.startswith('##FASTA') or stripped.startswith('>'):
                logging.info(f"Sequence section reached at line {line_number}, stopping")
                self.stopped = True
                return
            if stripped.startswith('##sequence-region'):
                try:
                    seq_id, _, end = parse_sequence_region(stripped, line_number)
                    self.session.note_seq_length(seq_id, end)
                except MalformedRecord as e:
                    e.filename = self.session.filename
                    self.session.record(e)
        self.session.comments.append(stripped)

    def _keep(self, kind: str) -> bool:
        config = self.config
        return {
            'cds': config.do_cds,
            'exon': config.do_exon,
            'utr': config.do_utr,
            'codon': config.do_codon,
            'gene': config.do_gene,
            'transcript': True,
            'sequence': False,
        }.get(kind, not config.simplify)

    def _filtered(self, feature: Feature) -> Optional[str]:
        """Row kind when the row is kept, else None."""
        kind = row_kind(feature.feature_type)
        if kind == 'sequence':
            self.session.note_seq_length(feature.seq_id, feature.end)
        if not self._keep(kind):
            return None
        return kind

    # ------------------------------------------------------------------
    # Linkage
    # ------------------------------------------------------------------

    def _add_top(self, feature: Feature) -> None:
        self.session.add_top_feature(feature)
        self._pending_top.append(feature)

    def release(self) -> None:
        """Hand pending top-level features to lazy iteration."""
        self.ready.extend(self._pending_top)
        self._pending_top = []

    def _gene_of(self, transcript: Optional[Feature]) -> Optional[Feature]:
        if transcript is None:
            return None
        parents = self.session.arena.parents_of(transcript)
        return parents[0] if parents else None

    @staticmethod
    def _same_record(existing: Feature, feature: Feature) -> bool:
        return (existing.feature_type == feature.feature_type
                and existing.seq_id == feature.seq_id
                and existing.start == feature.start
                and existing.end == feature.end)

    def _widen(self, parent: Feature, child: Feature) -> None:
        """Grow an inferred parent and its ancestors over a child."""
        if not parent.inferred:
            return
        stack = [parent]
        while stack:
            node = stack.pop()
            if not node.frozen:
                node.extend_span(child.start, child.end)
            stack.extend(self.session.arena.parents_of(node))

    def _link(self, feature: Feature, parent_ids: List[str], line_number: int,
              widen: bool = False) -> None:
        if not parent_ids:
            self._add_top(feature)
            return
        declared = feature.attributes.setdefault('Parent', [])
        for pid in parent_ids:
            if pid not in declared:
                declared.append(pid)

        missing = []
        for pid in parent_ids:
            parent = self.session.lookup(pid)
            if parent is None:
                missing.append(pid)
                continue
            self.session.arena.attach(parent, feature)
            if widen:
                self._widen(parent, feature)
        if missing:
            logging.debug(f"Parking {feature.primary_id}: parent(s) {','.join(missing)} not seen yet")
            self.session.park(Orphan(feature, missing, 'unresolved_parent', line_number))

    def _merge_parents(self, existing: Feature, parent_ids: List[str], line_number: int,
                       widen: bool) -> None:
        known = {p.primary_id for p in self.session.arena.parents_of(existing)}
        new_parents = [pid for pid in parent_ids if pid not in known]
        if not new_parents:
            logging.debug(f"Repeated record for {existing.primary_id} at line {line_number}")
            return
        missing = []
        for pid in new_parents:
            parent = self.session.lookup(pid)
            if parent is None:
                missing.append(pid)
                continue
            self.session.arena.attach(parent, existing)
            if widen:
                self._widen(parent, existing)
        if missing:
            self.session.park(Orphan(existing, missing, 'unresolved_parent', line_number))

    def _place(self, feature: Feature, declared_id: Optional[str], parent_ids: List[str],
               line_number: int, shareable: bool = False, widen: bool = False) -> Feature:
        """
        Register a decoded feature and link it under its parents.

        A repeated identifier on an identical record merges the new parent
        references into the existing feature. A repeated identifier with
        the same type and parents is another segment of one discontinuous
        feature and is linked under a suffixed identifier. Any other
        repeat is a duplicate: renamed, recorded and parked as an orphan.
        """
        session = self.session
        if declared_id is not None:
            existing = session.lookup(declared_id)
            if existing is not None:
                if self._same_record(existing, feature):
                    self._merge_parents(existing, parent_ids, line_number, widen)
                    return existing
                if (parent_ids and existing.feature_type == feature.feature_type
                        and sorted(parent_ids) == sorted(existing.parent_ids)):
                    assigned = session.register(feature, declared_id)
                    logging.debug(f"Segment {assigned} of {declared_id} at line {line_number}")
                    self._link(feature, parent_ids, line_number, widen)
                    self.assembled.append(feature)
                    return feature
                assigned = session.register(feature, declared_id)
                session.record(DuplicateIdentifier(
                    f"record at line {line_number} conflicts with an earlier "
                    f"{existing.feature_type} {existing.seq_id}:{existing.start}-{existing.end}",
                    declared_id, assigned, line_number))
                if parent_ids:
                    feature.attributes['Parent'] = list(parent_ids)
                session.park(Orphan(feature, list(parent_ids), 'duplicate', line_number))
                return feature

        if shareable and declared_id is None and len(parent_ids) == 1:
            parent = session.lookup(parent_ids[0])
            gene = self._gene_of(parent)
            existing = self.sharing.find(gene, feature.feature_type, feature.seq_id,
                                         feature.start, feature.end)
            if existing is not None:
                session.arena.attach(parent, existing)
                if widen:
                    self._widen(parent, existing)
                return existing
            session.register(feature)
            self._link(feature, parent_ids, line_number, widen)
            if parent is not None:
                self.sharing.remember(gene, feature)
            self.assembled.append(feature)
            return feature

        session.register(feature, declared_id)
        self._link(feature, parent_ids, line_number, widen)
        self.assembled.append(feature)
        return feature

    # ------------------------------------------------------------------
    # GFF family
    # ------------------------------------------------------------------

    def _add_gff3(self, record: GffRecord) -> None:
        feature = record.feature
        kind = self._filtered(feature)
        if kind is None:
            return
        parent_ids = record.parent_ids
        if kind == 'transcript' and not self.config.do_gene:
            parent_ids = []
        self._place(feature, record.declared_id, parent_ids, record.line_number,
                    shareable=kind in SHAREABLE_KINDS)

    def _add_gff(self, record: GffRecord) -> None:
        feature = record.feature
        if self._filtered(feature) is None:
            return
        self._place(feature, record.declared_id, [], record.line_number)

    def _add_gtf(self, record: GffRecord) -> None:
        feature = record.feature
        kind = self._filtered(feature)
        if kind is None:
            return
        if kind == 'gene':
            self._add_gtf_gene(record)
        elif kind == 'transcript' and record.transcript_id:
            self._add_gtf_transcript(record)
        elif record.transcript_id:
            transcript = self.session.lookup(record.transcript_id)
            if transcript is None:
                transcript = self._infer_transcript(record)
            declared = record.exon_id if kind == 'exon' else None
            self._place(feature, declared, [transcript.primary_id], record.line_number,
                        shareable=kind in SHAREABLE_KINDS, widen=True)
        elif kind in SUBFEATURE_KINDS:
            self.session.record(MalformedRecord("GTF row has no transcript_id",
                                                record.line_number, 'gtf', self.session.filename))
        else:
            self._place(feature, None, [], record.line_number)

    def _add_gtf_gene(self, record: GffRecord) -> None:
        feature = record.feature
        feature.display_name = record.gene_name or ''
        existing = self.session.lookup(record.gene_id) if record.gene_id else None
        if existing is not None and existing.inferred:
            self._upgrade(existing, feature)
            return
        self._place(feature, record.gene_id, [], record.line_number)

    def _add_gtf_transcript(self, record: GffRecord) -> None:
        feature = record.feature
        feature.display_name = record.transcript_name or ''
        existing = self.session.lookup(record.transcript_id)
        if existing is not None and existing.inferred:
            self._upgrade(existing, feature)
            return
        parent_ids = []
        if self.config.do_gene and record.gene_id:
            gene = self.session.lookup(record.gene_id)
            if gene is None:
                gene = self._infer_gene(record)
            parent_ids = [gene.primary_id]
        self._place(feature, record.transcript_id, parent_ids, record.line_number, widen=True)

    def _infer_gene(self, record: GffRecord) -> Feature:
        row = record.feature
        gene = Feature(seq_id=row.seq_id, start=row.start, end=row.end, strand=row.strand,
                       feature_type='gene', source=row.source,
                       display_name=record.gene_name or '', inferred=True)
        if record.gene_biotype:
            gene.add_attribute('gene_biotype', record.gene_biotype)
        self.session.register(gene, record.gene_id)
        self._add_top(gene)
        logging.debug(f"Inferred gene {gene.primary_id} from line {record.line_number}")
        return gene

    def _infer_transcript(self, record: GffRecord) -> Feature:
        row = record.feature
        transcript = Feature(seq_id=row.seq_id, start=row.start, end=row.end, strand=row.strand,
                             feature_type='transcript', source=row.source,
                             display_name=record.transcript_name or '', inferred=True)
        if record.transcript_biotype:
            transcript.add_attribute('transcript_biotype', record.transcript_biotype)
        if record.gene_name:
            transcript.add_attribute('gene_name', record.gene_name)
        self.session.register(transcript, record.transcript_id)
        if self.config.do_gene and record.gene_id:
            gene = self.session.lookup(record.gene_id)
            if gene is None:
                gene = self._infer_gene(record)
            self._link(transcript, [gene.primary_id], record.line_number, widen=True)
        else:
            self._add_top(transcript)
        logging.debug(f"Inferred transcript {transcript.primary_id} from line {record.line_number}")
        return transcript

    def _upgrade(self, inferred: Feature, row: Feature) -> None:
        """Replace an inferred parent's guesses with the values of its real row."""
        inferred.start = row.start
        inferred.end = row.end
        inferred.source = row.source
        inferred.score = row.score
        if row.display_name:
            inferred.display_name = row.display_name
        for tag, values in row.attributes.items():
            for value in values:
                inferred.add_unique_attribute(tag, value)
        for child in inferred.iter_descendants():
            inferred.extend_span(child.start, child.end)
        inferred.inferred = False
        for parent in self.session.arena.parents_of(inferred):
            if parent.inferred:
                self._widen(parent, inferred)
        self.assembled.append(inferred)
        logging.debug(f"Upgraded inferred {inferred.feature_type} {inferred.primary_id}")

    # ------------------------------------------------------------------
    # Columnar families
    # ------------------------------------------------------------------

    def _add_region(self, feature: Feature) -> None:
        self.session.register(feature, feature.primary_id)
        self._add_top(feature)
        self.assembled.append(feature)
        self.release()

    def _find_gene(self, record: UcscRecord) -> Optional[Feature]:
        name = (record.gene_name or record.name2 or record.name).lower()
        for gene in self._gene_names.get(name, []):
            if (gene.seq_id == record.chrom and gene.strand == record.strand
                    and gene.overlaps(record.tx_start, record.tx_end)):
                return gene
        return None

    def _add_ucsc(self, record: UcscRecord) -> None:
        if not (self.config.do_gene and record.groups_into_gene):
            transcript = self.synthesizer.build_transcript(record, None, self.source)
            self._add_top(transcript)
            self.assembled.append(transcript)
            self.release()
            return

        gene = self._find_gene(record)
        if gene is not None:
            gene.extend_span(record.tx_start, record.tx_end)
        else:
            gene_name = record.gene_name or record.name2 or record.name
            gene = Feature(seq_id=record.chrom, start=record.tx_start, end=record.tx_end,
                           strand=record.strand, feature_type='gene', source=self.source,
                           display_name=gene_name)
            self.session.register(gene, record.name2 or record.name)
            if record.name2 and record.name2 != gene_name:
                gene.add_attribute('Alias', record.name2)
            self._gene_names.setdefault(gene_name.lower(), []).append(gene)
            self._add_top(gene)

        transcript = self.synthesizer.build_transcript(record, gene, self.source)
        self.session.arena.attach(gene, transcript)
        update_attributes(gene, record)
        self.sharing.remember_transcript(gene, transcript)
        self.assembled.append(transcript)

    # ------------------------------------------------------------------
    # Reconciliation and finalization
    # ------------------------------------------------------------------

    def reconcile(self) -> int:
        """
        Retry parked orphans whose parents have since been registered.

        Returns:
            Number of orphans fully resolved
        """
        resolved = 0
        remaining = []
        for orphan in self.session.orphans:
            if not orphan.retryable:
                remaining.append(orphan)
                continue
            still_missing = []
            for pid in orphan.missing_parents:
                parent = self.session.lookup(pid)
                if parent is None:
                    still_missing.append(pid)
                    continue
                self.session.arena.attach(parent, orphan.feature)
                self._widen(parent, orphan.feature)
            if still_missing:
                orphan.missing_parents = still_missing
                remaining.append(orphan)
            else:
                resolved += 1
        self.session.orphans = remaining
        return resolved

    def finalize(self) -> None:
        """Final reconciliation, orphan reporting and ordering."""
        session = self.session
        session.advance(SessionState.FINALIZING)

        resolved = self.reconcile()
        if self.config.reconcile_to_convergence:
            while resolved:
                resolved = self.reconcile()

        for orphan in session.retryable_orphans():
            session.record(UnresolvedParent("parent never declared", orphan.feature.primary_id,
                                            orphan.missing_parents))

        for feature in session.top_features:
            session.note_seq_length(feature.seq_id, feature.end)

        if self.config.sort_features:
            key = attrgetter('seq_id', 'start')
            session.top_features.sort(key=key)
            self._pending_top.sort(key=key)
        self.release()
        session.advance(SessionState.DONE)
