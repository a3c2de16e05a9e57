#!/usr/bin/env python3

"""
Core module for the gene model parser.

Contains the feature data model, exception types, configuration, dialect
detection, record decoders, subfeature synthesis and hierarchy assembly.
"""

from .data_structures import Feature, FeatureArena, Orphan
from .exceptions import (
    AnnotationError, FatalOpenError, UnrecognizedDialect, MalformedRecord,
    DuplicateIdentifier, UnresolvedParent, MalformedCoordinateGeometry,
    ConfigurationError, MemoryError
)
from .config import ParserConfig, load_config
from .dialects import Dialect, DialectInfo, detect_dialect
from .session import ParseSession, SessionState
from .assembler import HierarchyAssembler

__all__ = [
    'Feature', 'FeatureArena', 'Orphan',
    'AnnotationError', 'FatalOpenError', 'UnrecognizedDialect', 'MalformedRecord',
    'DuplicateIdentifier', 'UnresolvedParent', 'MalformedCoordinateGeometry',
    'ConfigurationError', 'MemoryError',
    'ParserConfig', 'load_config',
    'Dialect', 'DialectInfo', 'detect_dialect',
    'ParseSession', 'SessionState', 'HierarchyAssembler',
]
