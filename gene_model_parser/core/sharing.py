#!/usr/bin/env python3

"""
Sharing cache for structurally identical subfeatures.

Sibling transcripts of one gene frequently repeat the same exon, UTR or
codon. When sharing is on, the second transcript is handed the Feature
already built for the first instead of a copy. CDS segments are never
shared because their phase depends on the transcript's reading frame.
"""

from typing import Dict, Optional, Tuple

from .data_structures import Feature

UNSHARED_TYPES = ('CDS',)

CacheKey = Tuple[int, str, str, int, int]


class SharingCache:
    """Index of reusable subfeatures keyed by gene, type and span."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._entries: Dict[CacheKey, Feature] = {}
        self.hits = 0

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _key(gene: Feature, feature_type: str, seq_id: str, start: int, end: int) -> CacheKey:
        return (gene.handle, feature_type, seq_id, start, end)

    def find(self, gene: Optional[Feature], feature_type: str, seq_id: str,
             start: int, end: int) -> Optional[Feature]:
        """Return an existing subfeature of the gene with this type and span."""
        if not self.enabled or gene is None or feature_type in UNSHARED_TYPES:
            return None
        feature = self._entries.get(self._key(gene, feature_type, seq_id, start, end))
        if feature is not None:
            self.hits += 1
        return feature

    def remember(self, gene: Optional[Feature], feature: Feature) -> None:
        """Offer one subfeature for reuse by later siblings."""
        if not self.enabled or gene is None or feature.feature_type in UNSHARED_TYPES:
            return
        key = self._key(gene, feature.feature_type, feature.seq_id, feature.start, feature.end)
        self._entries.setdefault(key, feature)

    def remember_transcript(self, gene: Optional[Feature], transcript: Feature) -> None:
        """Offer every child of a completed transcript."""
        for child in transcript.get_children():
            self.remember(gene, child)
