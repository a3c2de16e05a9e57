#!/usr/bin/env python3

"""
Core data structures for the gene model parser.

Every annotation record and every synthesized subfeature is a Feature.
Features live in a FeatureArena that hands out stable integer handles;
parent->child edges are handle lists, so one subfeature may legally sit
under several transcripts when the sharing cache reuses it.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Union

STRAND_FORWARD = '+'
STRAND_REVERSE = '-'
STRAND_NONE = '.'

# Characters that must be percent-encoded in GFF3 column 9.
_GFF3_RESERVED = set('\t\n\r%&=;, ')


def normalize_strand(value) -> str:
    """Map the strand spellings used by the supported dialects onto +, - or '.'."""
    if value in ('+', 1, '1', '+1'):
        return STRAND_FORWARD
    if value in ('-', -1, '-1'):
        return STRAND_REVERSE
    return STRAND_NONE


def gff3_escape(value: str) -> str:
    """Percent-encode reserved GFF3 attribute characters."""
    return ''.join(f"%{ord(ch):02X}" if ch in _GFF3_RESERVED else ch for ch in str(value))


@dataclass(eq=False)
class Feature:
    """A located, typed annotation record with attributes and children."""
    seq_id: str
    start: int
    end: int
    strand: str = STRAND_NONE
    feature_type: str = 'region'
    source: str = '.'
    primary_id: str = ''
    display_name: str = ''
    score: Optional[float] = None
    phase: Optional[int] = None
    attributes: Dict[str, List[str]] = field(default_factory=dict)
    # Set on GTF gene/transcript parents synthesized from child rows.
    inferred: bool = False
    handle: Optional[int] = field(default=None, repr=False)
    children: List[int] = field(default_factory=list, repr=False)
    arena: Optional['FeatureArena'] = field(default=None, repr=False)
    frozen: bool = field(default=False, repr=False)

    def __post_init__(self):
        """Validate feature data after initialization."""
        self.start = int(self.start)
        self.end = int(self.end)
        if self.start > self.end:
            raise ValueError(f"Invalid feature coordinates: {self.start}-{self.end}")
        self.strand = normalize_strand(self.strand)
        if self.phase is not None and self.phase not in (0, 1, 2):
            raise ValueError(f"Invalid phase: {self.phase}")

    def _check_mutable(self) -> None:
        if self.frozen:
            raise ValueError(f"Feature {self.primary_id} is shared and cannot be modified")

    @property
    def length(self) -> int:
        """Get feature length."""
        return self.end - self.start + 1

    @property
    def is_shared(self) -> bool:
        """True when two or more parents reference this feature."""
        if self.arena is None or self.handle is None:
            return False
        return self.arena.reference_count(self) > 1

    @property
    def parent_ids(self) -> List[str]:
        return list(self.attributes.get('Parent', []))

    def overlaps(self, start: int, end: int) -> bool:
        """Check if this feature overlaps a closed interval."""
        return not (self.end < start or self.start > end)

    def contains_position(self, position: int) -> bool:
        return self.start <= position <= self.end

    def has_attribute(self, tag: str) -> bool:
        return tag in self.attributes

    def get_attribute(self, tag: str) -> Optional[str]:
        """Get the first value of an attribute."""
        values = self.attributes.get(tag)
        return values[0] if values else None

    def get_attribute_values(self, tag: str) -> List[str]:
        return list(self.attributes.get(tag, []))

    def add_attribute(self, tag: str, value: Union[str, List[str]]) -> None:
        """Append one or more values to an attribute."""
        self._check_mutable()
        values = value if isinstance(value, (list, tuple)) else [value]
        self.attributes.setdefault(tag, []).extend(str(v) for v in values)

    def add_unique_attribute(self, tag: str, value: str) -> None:
        """Append a value unless the attribute already holds it."""
        if str(value) not in self.attributes.get(tag, []):
            self.add_attribute(tag, value)

    def remove_attribute(self, tag: str) -> None:
        self._check_mutable()
        self.attributes.pop(tag, None)

    def set_strand(self, strand: str) -> None:
        self._check_mutable()
        self.strand = normalize_strand(strand)

    def extend_span(self, start: int, end: int) -> None:
        """Widen the span to cover start..end."""
        self._check_mutable()
        if start < self.start:
            self.start = start
        if end > self.end:
            self.end = end

    def get_children(self) -> List['Feature']:
        """Get direct children in insertion order."""
        if self.arena is None:
            return []
        return [self.arena.get(h) for h in self.children]

    def get_children_by_type(self, feature_type: str) -> List['Feature']:
        return [c for c in self.get_children() if c.feature_type == feature_type]

    def iter_descendants(self) -> Iterator['Feature']:
        """Depth-first walk over all descendants, each shared feature once."""
        seen: Set[int] = set()
        stack = list(reversed(self.get_children()))
        while stack:
            child = stack.pop()
            if id(child) in seen:
                continue
            seen.add(id(child))
            yield child
            stack.extend(reversed(child.get_children()))

    def get_sorted_children(self, feature_type: str) -> List['Feature']:
        """Get children of one type sorted 5' to 3' (strand-aware)."""
        children = sorted(self.get_children_by_type(feature_type), key=lambda x: x.start)
        if self.strand == STRAND_REVERSE:
            children.reverse()
        return children

    def gff3_string(self, recurse: bool = True, _written: Optional[Set[int]] = None) -> str:
        """Render this feature (and optionally its descendants) as GFF3 lines."""
        if _written is None:
            _written = set()
        if id(self) in _written:
            return ''
        _written.add(id(self))

        score = '.' if self.score is None else f"{self.score:g}"
        phase = '.' if self.phase is None else str(self.phase)
        attributes = [f"ID={gff3_escape(self.primary_id)}"]
        if self.display_name:
            attributes.append(f"Name={gff3_escape(self.display_name)}")
        parents = self.parent_ids
        if self.arena is not None and self.handle is not None:
            parents = [p.primary_id for p in self.arena.parents_of(self)] or parents
        if parents:
            attributes.append("Parent=" + ','.join(gff3_escape(p) for p in parents))
        for tag, values in self.attributes.items():
            if tag in ('ID', 'Name', 'Parent'):
                continue
            attributes.append(f"{gff3_escape(tag)}=" + ','.join(gff3_escape(v) for v in values))

        line = '\t'.join([
            self.seq_id or '.', self.source or '.', self.feature_type,
            str(self.start), str(self.end), score, self.strand, phase,
            ';'.join(attributes),
        ]) + '\n'

        if recurse:
            for child in self.get_children():
                line += child.gff3_string(True, _written)
        return line


class FeatureArena:
    """Owns every Feature of a parse session, indexed by handle."""

    def __init__(self):
        self.features: List[Feature] = []
        self._parents: Dict[int, List[int]] = {}

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def add(self, feature: Feature) -> Feature:
        """Register a feature and assign its handle."""
        if feature.arena is self:
            return feature
        if feature.arena is not None:
            raise ValueError(f"Feature {feature.primary_id} already belongs to another arena")
        feature.handle = len(self.features)
        feature.arena = self
        self.features.append(feature)
        self._parents[feature.handle] = []
        return feature

    def get(self, handle: int) -> Feature:
        return self.features[handle]

    def attach(self, parent: Feature, child: Feature) -> bool:
        """
        Link child under parent.

        Records the parent id in the child's Parent attribute. A child
        that gains a second parent becomes shared and is frozen.

        Returns:
            False if the edge already existed
        """
        self.add(parent)
        self.add(child)
        if child.handle in parent.children:
            return False
        parent.children.append(child.handle)
        self._parents[child.handle].append(parent.handle)
        parent_values = child.attributes.setdefault('Parent', [])
        if parent.primary_id and parent.primary_id not in parent_values:
            parent_values.append(parent.primary_id)
        if len(self._parents[child.handle]) > 1:
            child.frozen = True
        return True

    def parents_of(self, feature: Feature) -> List[Feature]:
        if feature.handle is None or feature.arena is not self:
            return []
        return [self.features[h] for h in self._parents[feature.handle]]

    def reference_count(self, feature: Feature) -> int:
        return len(self.parents_of(feature))


@dataclass
class Orphan:
    """A feature held back from the tree because of its parents or its ID."""
    feature: Feature
    missing_parents: List[str] = field(default_factory=list)
    reason: str = 'unresolved_parent'  # or 'duplicate'
    line_number: int = 0

    @property
    def retryable(self) -> bool:
        return self.reason == 'unresolved_parent'
