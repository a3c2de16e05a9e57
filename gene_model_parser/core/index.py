#!/usr/bin/env python3

"""
Lookup over the top-level features of a finished parse.

Names are matched case-insensitively; overlap queries run against one
IntervalTree per sequence.
"""

import logging
from typing import Dict, Iterable, List, Optional

from intervaltree import IntervalTree

from .data_structures import Feature, normalize_strand


class FeatureIndex:
    """Name and interval index of top-level features."""

    def __init__(self, features: Iterable[Feature] = ()):
        self._trees: Dict[str, IntervalTree] = {}
        self._by_name: Dict[str, List[Feature]] = {}
        self._features: List[Feature] = []
        for feature in features:
            self.add(feature)

    def add(self, feature: Feature) -> None:
        # IntervalTree intervals are half-open
        self._trees.setdefault(feature.seq_id, IntervalTree()).addi(
            feature.start, feature.end + 1, feature)
        name = (feature.display_name or feature.primary_id).lower()
        self._by_name.setdefault(name, []).append(feature)
        self._features.append(feature)

    def overlapping(self, seq_id: str, start: int, end: int) -> List[Feature]:
        """Features overlapping the closed interval start..end, by position."""
        tree = self._trees.get(seq_id)
        if tree is None or start > end:
            return []
        hits = [interval.data for interval in tree.overlap(start, end + 1)]
        return sorted(hits, key=lambda f: (f.start, f.end, f.primary_id))

    def find(self, name: Optional[str] = None, primary_id: Optional[str] = None,
             seq_id: Optional[str] = None,
             start: Optional[int] = None, end: Optional[int] = None,
             strand: Optional[str] = None) -> Optional[Feature]:
        """
        Find a top-level feature by display name.

        Several features may share a name. An identifier narrows the
        choice exactly; coordinates narrow it to a feature on the same
        sequence and strand that overlaps them. Otherwise the first
        feature is returned, with a warning when the name is ambiguous.
        """
        if name is None:
            candidates = self._features
        else:
            candidates = self._by_name.get(name.lower(), [])
        if not candidates:
            return None

        if primary_id:
            for feature in candidates:
                if feature.primary_id == primary_id:
                    return feature
            return None

        if seq_id and start is not None and end is not None:
            wanted = normalize_strand(strand) if strand is not None else None
            for feature in candidates:
                if feature.seq_id != seq_id:
                    continue
                if wanted is not None and feature.strand != wanted:
                    continue
                if feature.overlaps(start, end):
                    return feature
            return None

        if len(candidates) > 1:
            logging.warning(f"More than one feature named {name} found, using the first")
        return candidates[0]
