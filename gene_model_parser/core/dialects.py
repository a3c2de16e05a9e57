#!/usr/bin/env python3

"""
Dialect detection for annotation files.

The dialect of a stream is fixed once, at open time, from the file
extension, any ``##gff-version`` pragma or ``track type=`` line, and the
column count of the first data line.
"""

import gzip
import itertools
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from .exceptions import FatalOpenError, UnrecognizedDialect


class Dialect(Enum):
    """Supported annotation dialects."""
    GFF3 = 'gff3'
    GTF = 'gtf'
    GFF = 'gff'
    BED = 'bed'
    BEDGRAPH = 'bedGraph'
    NARROWPEAK = 'narrowPeak'
    BROADPEAK = 'broadPeak'
    GAPPEDPEAK = 'gappedPeak'
    UCSC = 'ucsc'

    @classmethod
    def from_name(cls, name: str) -> 'Dialect':
        """Look a dialect up by value or member name, ignoring case."""
        lowered = name.lower()
        for member in cls:
            if lowered in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"unknown dialect '{name}'")

    @property
    def family(self) -> str:
        if self in (Dialect.GFF3, Dialect.GTF, Dialect.GFF):
            return 'gff'
        if self is Dialect.UCSC:
            return 'ucsc'
        return 'bed'


# UCSC table layouts keyed by column count
UCSC_LAYOUTS = {
    16: 'genePredExtBin',
    15: 'genePredExt',
    12: 'knownGene',
    11: 'refFlat',
    10: 'genePred',
}

# Fixed column counts of the peak variants
PEAK_COLUMNS = {
    Dialect.BEDGRAPH: 4,
    Dialect.NARROWPEAK: 10,
    Dialect.BROADPEAK: 9,
    Dialect.GAPPEDPEAK: 15,
}

BED_MIN_COLUMNS = 3
BED_MAX_COLUMNS = 17

_EXTENSIONS = {
    'gff3': Dialect.GFF3,
    'gtf': Dialect.GTF,
    'gff': Dialect.GFF,
    'bed': Dialect.BED,
    'bdg': Dialect.BEDGRAPH,
    'bedgraph': Dialect.BEDGRAPH,
    'narrowpeak': Dialect.NARROWPEAK,
    'broadpeak': Dialect.BROADPEAK,
    'gappedpeak': Dialect.GAPPEDPEAK,
    'refflat': Dialect.UCSC,
    'genepred': Dialect.UCSC,
    'ucsc': Dialect.UCSC,
    'knowngene': Dialect.UCSC,
}

_TRACK_TYPES = {
    'bedgraph': Dialect.BEDGRAPH,
    'narrowpeak': Dialect.NARROWPEAK,
    'broadpeak': Dialect.BROADPEAK,
    'gappedpeak': Dialect.GAPPEDPEAK,
}

_UCSC_SOURCES = [
    ('xenorefgene', 'xenoRefGene'),
    ('ensgene', 'EnsGene'),
    ('refgene', 'refGene'),
    ('refseq', 'refSeq'),
    ('knowngene', 'knownGene'),
]

_GFF_VERSION = re.compile(r'^##gff-version\s+(\S+)')
_TRACK_TYPE = re.compile(r'\btype=(\w+)')


@dataclass
class DialectInfo:
    """Result of dialect detection for one stream."""
    dialect: Dialect
    column_count: int
    filename: str = ''
    gff_version: Optional[str] = None
    ucsc_layout: Optional[str] = None
    source_label: Optional[str] = None
    header_lines: List[str] = field(default_factory=list)

    @property
    def family(self) -> str:
        return self.dialect.family


_UNDECODABLE = re.compile('[\udc80-\udcff]')


def has_undecodable_bytes(line: str) -> bool:
    """True when a line read with surrogateescape held bytes that are not UTF-8."""
    return _UNDECODABLE.search(line) is not None


def is_header_line(line: str) -> bool:
    """True for blank, comment, pragma and track/browser definition lines."""
    stripped = line.strip()
    return (not stripped or stripped.startswith('#')
            or stripped.startswith('track') or stripped.startswith('browser'))


def _extension_dialect(filename: str) -> Optional[Dialect]:
    name = os.path.basename(filename).lower()
    if name.endswith('.gz'):
        name = name[:-3]
    if '.' not in name:
        return None
    return _EXTENSIONS.get(name.rsplit('.', 1)[1])


def source_label_for(filename: str, dialect: Dialect) -> Optional[str]:
    """Provenance label derived from the file name for BED and UCSC input."""
    if dialect.family == 'gff' or not filename:
        return None
    name = os.path.basename(filename)
    if dialect is Dialect.UCSC:
        lowered = name.lower()
        for key, label in _UCSC_SOURCES:
            if key in lowered:
                return label
        return 'UCSC'
    if name.lower().endswith('.gz'):
        name = name[:-3]
    return name.split('.', 1)[0] or None


def detect_dialect(sniff_lines: List[str], filename: str = '',
                   hint: Optional[Dialect] = None) -> DialectInfo:
    """
    Determine the dialect from the leading lines of a stream.

    Args:
        sniff_lines: header lines followed by at most one data line
        filename: file name used for extension and source detection
        hint: explicit dialect overriding extension and sniffing

    Returns:
        DialectInfo describing the stream

    Raises:
        UnrecognizedDialect: when the column count fits no known dialect
        FatalOpenError: when the stream holds no data and no pragma
    """
    headers = [line for line in sniff_lines if is_header_line(line)]
    data_lines = [line for line in sniff_lines if not is_header_line(line)]
    fields = data_lines[0].rstrip('\r\n').split('\t') if data_lines else []
    column_count = len(fields)

    gff_version = None
    track_dialect = None
    for line in headers:
        match = _GFF_VERSION.match(line)
        if match:
            gff_version = match.group(1)
        elif line.startswith('track'):
            type_match = _TRACK_TYPE.search(line)
            if type_match:
                track_dialect = _TRACK_TYPES.get(type_match.group(1).lower())

    dialect = hint or _extension_dialect(filename)

    # A version pragma decides within the GFF family
    if gff_version and (dialect is None or dialect.family == 'gff'):
        if gff_version.startswith('3'):
            dialect = Dialect.GFF3
        elif gff_version in ('2.5', '2.2') or dialect is Dialect.GTF:
            dialect = Dialect.GTF
        elif hint is None:
            dialect = Dialect.GFF

    if track_dialect is not None and (dialect is None or dialect is Dialect.BED):
        dialect = track_dialect

    if not data_lines:
        if dialect is not None and dialect.family == 'gff':
            return DialectInfo(dialect, 9, filename, gff_version, None, None, headers)
        raise FatalOpenError("no data lines found", filename)

    if dialect is None:
        dialect = _sniff_columns(fields)
        logging.debug(f"Sniffed {dialect.value} from {column_count} columns")

    info = DialectInfo(dialect, column_count, filename, gff_version, None,
                       source_label_for(filename, dialect), headers)
    _check_cardinality(info)
    return info


def _sniff_columns(fields: List[str]) -> Dialect:
    column_count = len(fields)
    if column_count == 9 and fields[3].isdigit() and fields[4].isdigit():
        attributes = fields[8]
        if 'gene_id "' in attributes or 'transcript_id "' in attributes:
            return Dialect.GTF
        if '=' in attributes:
            return Dialect.GFF3
        return Dialect.GFF
    if column_count >= 2 and fields[1].isdigit():
        return Dialect.BED
    return Dialect.UCSC


def _check_cardinality(info: DialectInfo) -> None:
    count = info.column_count
    if info.family == 'gff':
        if count != 9:
            raise UnrecognizedDialect(f"{info.dialect.value} needs 9 columns, found {count}",
                                      info.filename, count)
    elif info.dialect is Dialect.UCSC:
        if count not in UCSC_LAYOUTS:
            raise UnrecognizedDialect(f"no UCSC table layout has {count} columns",
                                      info.filename, count)
        info.ucsc_layout = UCSC_LAYOUTS[count]
    elif info.dialect in PEAK_COLUMNS:
        expected = PEAK_COLUMNS[info.dialect]
        if count != expected:
            raise UnrecognizedDialect(f"{info.dialect.value} needs {expected} columns, found {count}",
                                      info.filename, count)
    elif not BED_MIN_COLUMNS <= count <= BED_MAX_COLUMNS:
        raise UnrecognizedDialect(f"BED needs {BED_MIN_COLUMNS}-{BED_MAX_COLUMNS} columns, found {count}",
                                  info.filename, count)


def open_annotation_lines(path: str) -> Iterator[str]:
    """
    Yield text lines from a plain or gzip-compressed file.

    Bytes that are not valid UTF-8 are kept as surrogate escapes so one bad
    row can be reported on its own instead of ending the read.
    """
    if not os.path.exists(path):
        raise FatalOpenError("file does not exist", path)
    try:
        if path.lower().endswith('.gz'):
            handle = gzip.open(path, 'rt', errors='surrogateescape')
        else:
            handle = open(path, 'r', errors='surrogateescape')
    except OSError as e:
        raise FatalOpenError(str(e), path)
    return _read_lines(handle, path)


def _read_lines(handle, path: str) -> Iterator[str]:
    with handle:
        try:
            for line in handle:
                yield line
        except (OSError, EOFError) as e:
            raise FatalOpenError(f"stream unreadable: {e}", path)


def sniff_stream(lines: Iterator[str], filename: str = '',
                 hint: Optional[Dialect] = None) -> Tuple[DialectInfo, Iterator[str]]:
    """
    Detect the dialect of a line stream without consuming it.

    Returns:
        The DialectInfo and an iterator replaying every line from the start
    """
    buffered = []
    try:
        for line in lines:
            buffered.append(line)
            if not is_header_line(line):
                break
    except (OSError, EOFError) as e:
        raise FatalOpenError(f"stream unreadable: {e}", filename)

    if buffered and has_undecodable_bytes(buffered[-1]) and not is_header_line(buffered[-1]):
        raise FatalOpenError("first data line is not text", filename)

    info = detect_dialect(buffered, filename, hint)
    logging.info(f"Detected {info.dialect.value} dialect ({info.column_count} columns)"
                 + (f" for {filename}" if filename else ""))
    return info, itertools.chain(buffered, lines)
