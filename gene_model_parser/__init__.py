#!/usr/bin/env python3

"""
Gene Model Parser

Reads genomic annotation files in GFF3, GTF, generic GFF, BED (BED3-12,
bedGraph, narrowPeak, broadPeak, gappedPeak) and the UCSC gene-table
family (genePred, genePredExt, refFlat, knownGene), and rebuilds them into
gene -> transcript -> exon/CDS/UTR/codon feature hierarchies.

Modules:
- core: data structures, dialect detection, decoders, synthesis and assembly
- utils: performance monitoring and ordered batch decoding
- tests: unit test suite
"""

__version__ = "1.0.0"
__author__ = "Gene Model Parser Team"

# Import main components for easy access
from .core.data_structures import Feature, FeatureArena, Orphan
from .core.exceptions import (
    AnnotationError, FatalOpenError, UnrecognizedDialect, MalformedRecord,
    DuplicateIdentifier, UnresolvedParent, MalformedCoordinateGeometry,
    ConfigurationError, MemoryError
)
from .core.config import ParserConfig, load_config
from .core.dialects import Dialect, DialectInfo, detect_dialect
from .core.ucsc_decoders import ReferenceTables, load_reference_table
from .core.parser import AnnotationParser, parse_annotation

__all__ = [
    # Parsing
    'AnnotationParser', 'parse_annotation',
    'Dialect', 'DialectInfo', 'detect_dialect',
    'ReferenceTables', 'load_reference_table',
    # Data structures
    'Feature', 'FeatureArena', 'Orphan',
    # Exceptions
    'AnnotationError', 'FatalOpenError', 'UnrecognizedDialect', 'MalformedRecord',
    'DuplicateIdentifier', 'UnresolvedParent', 'MalformedCoordinateGeometry',
    'ConfigurationError', 'MemoryError',
    # Configuration
    'ParserConfig', 'load_config'
]
