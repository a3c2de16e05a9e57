#!/usr/bin/env python3

"""
Custom exceptions for the gene model parser.

Fatal errors (stream unusable, dialect undetectable, bad configuration)
are raised. Row-level and reconciliation-level errors are instantiated
and collected by the parse session instead of being raised, so callers
can inspect them after a parse.
"""

from typing import Iterable, Optional


class AnnotationError(Exception):
    """Base exception for all parser-related errors."""
    pass


class FatalOpenError(AnnotationError):
    """The annotation stream could not be opened or understood."""

    def __init__(self, message: str, filename: str = ""):
        super().__init__(message)
        self.filename = filename

    def __str__(self):
        if self.filename:
            return f"Cannot open {self.filename}: {super().__str__()}"
        return super().__str__()


class UnrecognizedDialect(FatalOpenError):
    """No known dialect matches the sniffed column count or header."""

    def __init__(self, message: str, filename: str = "", column_count: int = 0):
        super().__init__(message, filename)
        self.column_count = column_count


class MalformedRecord(AnnotationError):
    """A single line has the wrong column count or an invalid field."""

    def __init__(self, message: str, line_number: int = 0, dialect: str = "",
                 filename: str = ""):
        super().__init__(message)
        self.line_number = line_number
        self.dialect = dialect
        self.filename = filename

    def __str__(self):
        where = []
        if self.filename:
            where.append(self.filename)
        if self.line_number:
            where.append(f"line {self.line_number}")
        prefix = f"Malformed {self.dialect} record" if self.dialect else "Malformed record"
        if where:
            return f"{prefix} at {', '.join(where)}: {super().__str__()}"
        return f"{prefix}: {super().__str__()}"


class DuplicateIdentifier(AnnotationError):
    """An identifier was declared twice by records that cannot be merged."""

    def __init__(self, message: str, identifier: str = "", assigned_id: str = "",
                 line_number: int = 0):
        super().__init__(message)
        self.identifier = identifier
        self.assigned_id = assigned_id
        self.line_number = line_number

    def __str__(self):
        if self.identifier and self.assigned_id:
            return (f"Duplicate identifier {self.identifier} "
                    f"(renamed to {self.assigned_id}): {super().__str__()}")
        return super().__str__()


class UnresolvedParent(AnnotationError):
    """A feature references parents that never appeared."""

    def __init__(self, message: str, feature_id: str = "",
                 parent_ids: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.feature_id = feature_id
        self.parent_ids = list(parent_ids or [])

    def __str__(self):
        if self.feature_id:
            parents = ",".join(self.parent_ids)
            return f"Unresolved parent(s) {parents} for {self.feature_id}: {super().__str__()}"
        return super().__str__()


class MalformedCoordinateGeometry(AnnotationError):
    """An exon does not fit any of the UTR/CDS classification cases."""

    def __init__(self, message: str, transcript_id: str = "", exon_start: int = 0,
                 exon_end: int = 0, cds_start: int = 0, cds_end: int = 0):
        super().__init__(message)
        self.transcript_id = transcript_id
        self.exon_start = exon_start
        self.exon_end = exon_end
        self.cds_start = cds_start
        self.cds_end = cds_end

    def __str__(self):
        return (f"Malformed geometry for {self.transcript_id or 'transcript'}: "
                f"cdsStart {self.cds_start}, cdsEnd {self.cds_end}, "
                f"exonStart {self.exon_start}, exonEnd {self.exon_end}: {super().__str__()}")


class ConfigurationError(AnnotationError):
    """Error in parser configuration."""
    pass


class MemoryError(AnnotationError):
    """Memory usage exceeded limits."""

    def __init__(self, message: str, current_usage: float, limit: float):
        super().__init__(message)
        self.current_usage = current_usage
        self.limit = limit

    def __str__(self):
        return f"Memory error: {super().__str__()} (current: {self.current_usage:.1f}MB, limit: {self.limit:.1f}MB)"


# Diagnostics that are collected rather than raised.
NON_FATAL_ERRORS = (MalformedRecord, DuplicateIdentifier, UnresolvedParent,
                    MalformedCoordinateGeometry)
