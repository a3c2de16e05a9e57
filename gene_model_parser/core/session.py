#!/usr/bin/env python3

"""
Per-parse session state.

One ParseSession owns everything a single parse accumulates: the feature
arena, the identifier table, orphans, comments, sequence lengths and the
collected diagnostics. Nothing here is module-level, so several files can
be parsed side by side in one process.
"""

import logging
from collections import Counter
from enum import Enum
from typing import Dict, List, Optional, Type

from .config import ParserConfig
from .data_structures import Feature, FeatureArena, Orphan
from .dialects import DialectInfo
from .exceptions import AnnotationError, DuplicateIdentifier


class SessionState(Enum):
    OPEN = 'open'
    STREAMING = 'streaming'
    FINALIZING = 'finalizing'
    DONE = 'done'


_TRANSITIONS = {
    SessionState.OPEN: (SessionState.STREAMING, SessionState.FINALIZING),
    SessionState.STREAMING: (SessionState.FINALIZING,),
    SessionState.FINALIZING: (SessionState.DONE,),
    SessionState.DONE: (),
}


class ParseSession:
    """Mutable state of one parse, passed by reference to the assembler."""

    def __init__(self, config: Optional[ParserConfig] = None,
                 dialect_info: Optional[DialectInfo] = None, filename: str = ''):
        self.config = config or ParserConfig()
        self.dialect_info = dialect_info
        self.filename = filename
        self.state = SessionState.OPEN

        self.arena = FeatureArena()
        self.identifiers: Dict[str, Feature] = {}
        self.orphans: List[Orphan] = []
        self.top_features: List[Feature] = []
        self.comments: List[str] = []
        self.seq_lengths: Dict[str, int] = {}
        self.diagnostics: List[AnnotationError] = []
        self.duplicate_counts: Dict[str, int] = {}
        self.type_counts: Counter = Counter()
        self.line_number = 0

        self._id_counters: Dict[str, int] = {}

    def advance(self, state: SessionState) -> None:
        """Move the session to a new state."""
        if state is self.state:
            return
        if state not in _TRANSITIONS[self.state]:
            raise AnnotationError(f"Cannot move parse session from {self.state.value} to {state.value}")
        logging.debug(f"Parse session {self.state.value} -> {state.value}")
        self.state = state

    @property
    def done(self) -> bool:
        return self.state is SessionState.DONE

    def record(self, error: AnnotationError) -> None:
        """Collect a non-fatal diagnostic."""
        if isinstance(error, DuplicateIdentifier):
            self.duplicate_counts[error.identifier] = self.duplicate_counts.get(error.identifier, 0) + 1
        self.diagnostics.append(error)
        logging.warning(str(error))

    def diagnostics_of(self, kind: Type[AnnotationError]) -> List[AnnotationError]:
        return [d for d in self.diagnostics if isinstance(d, kind)]

    def unique_id(self, candidate: str) -> str:
        """Return candidate, or candidate.N with the lowest free N."""
        if candidate not in self.identifiers:
            return candidate
        n = 1
        while f"{candidate}.{n}" in self.identifiers:
            n += 1
        return f"{candidate}.{n}"

    def next_type_id(self, feature_type: str) -> str:
        """Synthesize an identifier of the form <type>.<n>."""
        count = self._id_counters.get(feature_type, 0) + 1
        self._id_counters[feature_type] = count
        return f"{feature_type}.{count}"

    def register(self, feature: Feature, requested_id: Optional[str] = None) -> str:
        """
        Add a feature to the arena and the identifier table.

        Returns:
            The identifier actually assigned, disambiguated if taken
        """
        candidate = requested_id or feature.primary_id or self.next_type_id(feature.feature_type)
        assigned = self.unique_id(candidate)
        feature.primary_id = assigned
        self.identifiers[assigned] = feature
        self.arena.add(feature)
        self.type_counts[feature.feature_type] += 1
        return assigned

    def lookup(self, identifier: str) -> Optional[Feature]:
        return self.identifiers.get(identifier)

    def add_top_feature(self, feature: Feature) -> None:
        self.top_features.append(feature)
        self.note_seq_length(feature.seq_id, feature.end)

    def note_seq_length(self, seq_id: str, end: int) -> None:
        if end > self.seq_lengths.get(seq_id, 0):
            self.seq_lengths[seq_id] = end

    def park(self, orphan: Orphan) -> None:
        self.orphans.append(orphan)

    def retryable_orphans(self) -> List[Orphan]:
        return [o for o in self.orphans if o.retryable]
