#!/usr/bin/env python3

"""
Test suite for the gene model parser.

Unit tests covering:
- Feature data model, arena ownership and GFF3 rendering
- Configuration management and validation
- Dialect detection and every record decoder
- Subfeature synthesis, phase progression and sharing
- Hierarchy assembly, orphan reconciliation and duplicate identifiers
- The public parser interface and performance monitoring
"""
