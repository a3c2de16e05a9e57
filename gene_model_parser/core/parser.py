#!/usr/bin/env python3

"""
Public parsing interface.

AnnotationParser opens an annotation file (or any iterable of lines),
fixes its dialect, and pulls lines through the decoder and assembler in
batches. Callers may stream assembled records, stream finished top-level
features, or force a full parse and use the lookup accessors.
"""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Type, Union

from .assembler import HierarchyAssembler
from .config import ParserConfig
from .data_structures import Feature, Orphan
from .dialects import Dialect, DialectInfo, open_annotation_lines, sniff_stream
from .exceptions import AnnotationError, DuplicateIdentifier, FatalOpenError
from .index import FeatureIndex
from .session import ParseSession
from .synthesizer import TranscriptClassifier
from .ucsc_decoders import ReferenceTables
from ..utils.performance_monitor import BatchProcessor, PerformanceMonitor


class AnnotationParser:
    """Parser for GFF3, GTF, GFF, BED-family and UCSC gene-table files."""

    def __init__(self, filename: Optional[str] = None,
                 config: Optional[ParserConfig] = None,
                 dialect: Optional[Union[Dialect, str]] = None,
                 references: Optional[ReferenceTables] = None,
                 lines: Optional[Iterable[str]] = None,
                 classifier: Optional[TranscriptClassifier] = None,
                 monitor: Optional[PerformanceMonitor] = None):
        self.config = config or ParserConfig()
        self.references = references or ReferenceTables()
        self.classifier = classifier
        self.monitor = monitor or PerformanceMonitor(self.config.memory_limit_mb)
        self.batch_processor = BatchProcessor(
            self.monitor, self.config.batch_size, self.config.decode_workers,
            self.config.enable_memory_monitoring)

        self.session: Optional[ParseSession] = None
        self.assembler: Optional[HierarchyAssembler] = None
        self._batches: Optional[Iterator] = None
        self._index: Optional[FeatureIndex] = None

        if filename is not None or lines is not None:
            self.open(filename, dialect, lines)

    def open(self, filename: Optional[str] = None,
             dialect: Optional[Union[Dialect, str]] = None,
             lines: Optional[Iterable[str]] = None) -> DialectInfo:
        """
        Open a file or line iterable and detect its dialect.

        Raises:
            FatalOpenError: unreadable stream or undetectable dialect
        """
        if self.session is not None:
            raise FatalOpenError("parser already has an open stream", filename or '')
        if isinstance(dialect, str):
            try:
                dialect = Dialect.from_name(dialect)
            except ValueError as e:
                raise FatalOpenError(str(e), filename or '')
        if lines is None:
            if filename is None:
                raise FatalOpenError("no file name or lines given")
            lines = open_annotation_lines(filename)

        info, stream = sniff_stream(iter(lines), filename or '', dialect)
        self.session = ParseSession(self.config, info, filename or '')
        self.assembler = HierarchyAssembler(self.session, self.references, self.classifier)
        self._batches = self.batch_processor.batches(enumerate(stream, 1))
        self.monitor.start_phase('parse')
        return info

    def _require_open(self) -> None:
        if self.session is None:
            raise FatalOpenError("no annotation stream opened")

    @property
    def dialect(self) -> Optional[Dialect]:
        return self.session.dialect_info.dialect if self.session else None

    @property
    def done(self) -> bool:
        return self.session is not None and self.session.done

    def _pump(self) -> bool:
        """Process one batch of lines; False once the session is finished."""
        self._require_open()
        if self.session.done:
            return False
        batch = [] if self.assembler.stopped else next(self._batches, [])
        if not batch:
            self._finish()
            return False

        decoded = self.batch_processor.map_ordered(self.assembler.decode_line, batch)
        for (line_number, line), result in zip(batch, decoded):
            self.assembler.feed(line_number, line, result)
        return True

    def _finish(self) -> None:
        self.assembler.finalize()
        self.batch_processor.shutdown()
        self.monitor.end_phase()
        session = self.session
        logging.info(f"Parsed {session.dialect_info.dialect.value} file "
                     f"{session.filename or '<stream>'}: {len(session.top_features)} top-level "
                     f"features, {len(session.orphans)} orphans, "
                     f"{sum(session.duplicate_counts.values())} duplicate identifiers")

    def parse(self) -> bool:
        """Parse the remainder of the stream."""
        while self._pump():
            pass
        return True

    def top_features(self) -> List[Feature]:
        """All top-level features, after a full parse."""
        self.parse()
        return list(self.session.top_features)

    def iter_top_features(self) -> Iterator[Feature]:
        """Yield top-level features lazily, as soon as each is complete."""
        self._require_open()
        while True:
            while self.assembler.ready:
                yield self.assembler.ready.popleft()
            if not self._pump() and not self.assembler.ready:
                return

    def next_top_feature(self) -> Optional[Feature]:
        return next(self.iter_top_features(), None)

    def next_feature(self) -> Optional[Feature]:
        """The next assembled record in arrival order, or None at the end."""
        self._require_open()
        while not self.assembler.assembled:
            if not self._pump():
                break
        if self.assembler.assembled:
            return self.assembler.assembled.popleft()
        return None

    def iter_features(self) -> Iterator[Feature]:
        while True:
            feature = self.next_feature()
            if feature is None:
                return
            yield feature

    @property
    def orphans(self) -> List[Orphan]:
        self.parse()
        return list(self.session.orphans)

    def comments(self) -> List[str]:
        self.parse()
        return list(self.session.comments)

    def seq_id_lengths(self) -> Dict[str, int]:
        self.parse()
        return dict(self.session.seq_lengths)

    @property
    def diagnostics(self) -> List[AnnotationError]:
        self._require_open()
        return list(self.session.diagnostics)

    def diagnostics_of(self, kind: Type[AnnotationError]) -> List[AnnotationError]:
        self._require_open()
        return self.session.diagnostics_of(kind)

    @property
    def duplicate_ids(self) -> Dict[str, int]:
        self.parse()
        return dict(self.session.duplicate_counts)

    def duplicate_diagnostics(self) -> List[AnnotationError]:
        return self.diagnostics_of(DuplicateIdentifier)

    def counts(self) -> Dict[str, int]:
        """Feature type counts of everything assembled."""
        self.parse()
        return dict(self.session.type_counts)

    def _feature_index(self) -> FeatureIndex:
        self.parse()
        if self._index is None:
            self._index = FeatureIndex(self.session.top_features)
        return self._index

    def find_feature(self, name: Optional[str] = None, primary_id: Optional[str] = None,
                     seq_id: Optional[str] = None, start: Optional[int] = None,
                     end: Optional[int] = None, strand: Optional[str] = None) -> Optional[Feature]:
        return self._feature_index().find(name, primary_id, seq_id, start, end, strand)

    def get_feature_by_id(self, primary_id: str) -> Optional[Feature]:
        self.parse()
        return self.session.lookup(primary_id)

    def features_in_region(self, seq_id: str, start: int, end: int) -> List[Feature]:
        return self._feature_index().overlapping(seq_id, start, end)


def parse_annotation(filename: Optional[str] = None, config: Optional[ParserConfig] = None,
                     dialect: Optional[Union[Dialect, str]] = None,
                     references: Optional[ReferenceTables] = None,
                     lines: Optional[Iterable[str]] = None) -> AnnotationParser:
    """Open and fully parse an annotation source."""
    parser = AnnotationParser(filename, config, dialect, references, lines)
    parser.parse()
    return parser
