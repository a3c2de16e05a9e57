#!/usr/bin/env python3

"""
Record decoders for BED, bedGraph and the ENCODE peak formats.

BED3-6 rows and the narrow/broad peak variants become single region
features. BED7-12 rows (and the first twelve columns of BED12+N rows) are
re-expressed as a gene-table record so the transcript synthesizer can
build exons, UTRs, CDS and codons from them; gappedPeak rows take the
same route with their blocks typed as sub-peaks.
"""

from typing import List, Optional

from .data_structures import Feature
from .exceptions import MalformedRecord
from .ucsc_decoders import UcscRecord


def _split(line: str, expected: int, line_number: int, dialect: str) -> List[str]:
    fields = line.rstrip('\r\n').split('\t')
    if len(fields) != expected:
        raise MalformedRecord(f"expected {expected} columns, found {len(fields)}",
                              line_number, dialect)
    return fields


def _interval(fields: List[str], line_number: int, dialect: str):
    chrom, start, end = fields[0], fields[1], fields[2]
    if not (start.isdigit() and end.isdigit()):
        raise MalformedRecord(f"non-numeric coordinates {start}-{end}", line_number, dialect)
    start, end = int(start), int(end)
    if start >= end:
        raise MalformedRecord(f"empty or inverted interval {start}-{end}", line_number, dialect)
    return chrom, start, end


def _score(value: Optional[str], line_number: int, dialect: str) -> Optional[float]:
    if value is None or value in ('', '.'):
        return None
    try:
        return float(value)
    except ValueError:
        raise MalformedRecord(f"invalid score {value}", line_number, dialect)


def region_id(chrom: str, start0: int, end: int) -> str:
    """Identifier used for BED-derived features: chrom:start0-end."""
    return f"{chrom}:{start0}-{end}"


def decode_bed_line(line: str, column_count: int, line_number: int = 0,
                    source: str = '.') -> Feature:
    """Decode a BED3-6 row into a region feature."""
    fields = _split(line, column_count, line_number, 'bed')
    chrom, start, end = _interval(fields, line_number, 'bed')
    name = fields[3] if column_count > 3 else ''
    score = _score(fields[4] if column_count > 4 else None, line_number, 'bed')
    strand = fields[5] if column_count > 5 else '.'
    return Feature(seq_id=chrom, start=start + 1, end=end, strand=strand,
                   feature_type='region', source=source,
                   primary_id=region_id(chrom, start, end), display_name=name,
                   score=score)


def decode_bedgraph_line(line: str, line_number: int = 0, source: str = '.') -> Feature:
    """Decode a bedGraph row; column 4 is the score."""
    fields = _split(line, 4, line_number, 'bedGraph')
    chrom, start, end = _interval(fields, line_number, 'bedGraph')
    return Feature(seq_id=chrom, start=start + 1, end=end, feature_type='region',
                   source=source, primary_id=region_id(chrom, start, end),
                   score=_score(fields[3], line_number, 'bedGraph'))


def _peak(fields: List[str], line_number: int, dialect: str, source: str) -> Feature:
    chrom, start, end = _interval(fields, line_number, dialect)
    feature = Feature(seq_id=chrom, start=start + 1, end=end, strand=fields[5],
                      feature_type='region', source=source,
                      primary_id=region_id(chrom, start, end),
                      display_name=fields[3] if fields[3] != '.' else '',
                      score=_score(fields[4], line_number, dialect))
    feature.add_attribute('signalValue', fields[6])
    feature.add_attribute('pValue', fields[7])
    feature.add_attribute('qValue', fields[8])
    return feature


def decode_narrowpeak_line(line: str, line_number: int = 0, source: str = '.') -> Feature:
    """Decode a narrowPeak (BED6+4) row."""
    fields = _split(line, 10, line_number, 'narrowPeak')
    feature = _peak(fields, line_number, 'narrowPeak', source)
    feature.add_attribute('peak', fields[9])
    return feature


def decode_broadpeak_line(line: str, line_number: int = 0, source: str = '.') -> Feature:
    """Decode a broadPeak (BED6+3) row."""
    fields = _split(line, 9, line_number, 'broadPeak')
    return _peak(fields, line_number, 'broadPeak', source)


def _blocks(chrom_start: int, chrom_end: int, count: str, sizes: str, starts: str,
            line_number: int, dialect: str):
    if not count.isdigit():
        raise MalformedRecord(f"invalid blockCount {count}", line_number, dialect)
    try:
        size_values = [int(v) for v in sizes.split(',') if v]
        start_values = [int(v) for v in starts.split(',') if v]
    except ValueError:
        raise MalformedRecord("invalid block list", line_number, dialect)
    block_count = int(count)
    if len(size_values) < block_count or len(start_values) < block_count:
        raise MalformedRecord(f"blockCount {block_count} does not match the block lists",
                              line_number, dialect)
    for size, offset in zip(size_values[:block_count], start_values[:block_count]):
        if size <= 0:
            raise MalformedRecord(f"block size {size} is not positive", line_number, dialect)
        if offset < 0 or chrom_start + offset + size > chrom_end:
            raise MalformedRecord(f"block at offset {offset} lies outside {chrom_start}-{chrom_end}",
                                  line_number, dialect)
    exon_starts =[chrom_start + start_values[i] + 1 for i in range(block_count)]
    exon_ends = [chrom_start + start_values[i] + size_values[i] for i in range(block_count)]
    return exon_starts, exon_ends


def bed12_to_ucsc_record(line: str, column_count: int, line_number: int = 0) -> UcscRecord:
    """
    Re-express a BED7-12 row as a gene-table record.

    Missing columns take the defaults thickStart = thickEnd = chromEnd,
    one block spanning the row, which leaves the transcript noncoding.
    """
    fields = _split(line, column_count, line_number, 'bed')[:12]
    chrom, start, end = _interval(fields, line_number, 'bed')

    def column(index: int, default: str) -> str:
        return fields[index] if len(fields) > index and fields[index] != '' else default

    name = column(3, region_id(chrom, start, end))
    strand = column(5, '.')
    thick_start, thick_end = column(6, str(end)), column(7, str(end))
    if not (thick_start.isdigit() and thick_end.isdigit()):
        raise MalformedRecord(f"invalid thickStart/thickEnd {thick_start}-{thick_end}",
                              line_number, 'bed')
    exon_starts, exon_ends = _blocks(start, end, column(9, '1'), column(10, str(end - start)),
                                     column(11, '0'), line_number, 'bed')

    record = UcscRecord(
        name=name,
        chrom=chrom,
        # unstranded rows are built as forward and reported as '.'
        strand=strand if strand in ('+', '-') else '+',
        tx_start=start + 1,
        tx_end=end,
        cds_start=int(thick_start) + 1,
        cds_end=int(thick_end),
        exon_starts=exon_starts,
        exon_ends=exon_ends,
        name2=name,
        gene_name=name,
        layout='bed12',
        line_number=line_number,
        score=_score(column(4, '.'), line_number, 'bed'),
        feature_id=region_id(chrom, start, end),
    )
    record.extra_attributes['itemRGB'] = [column(8, '0')]
    if strand not in ('+', '-'):
        record.feature_strand = '.'
    return record


def gapped_peak_to_ucsc_record(line: str, line_number: int = 0) -> UcscRecord:
    """Re-express a gappedPeak (BED12+3) row; blocks become sub-peaks."""
    fields = _split(line, 15, line_number, 'gappedPeak')
    chrom, start, end = _interval(fields, line_number, 'gappedPeak')
    exon_starts, exon_ends = _blocks(start, end, fields[9], fields[10], fields[11],
                                     line_number, 'gappedPeak')
    name = fields[3] if fields[3] not in ('', '.') else region_id(chrom, start, end)

    record = UcscRecord(
        name=name,
        chrom=chrom,
        strand='+',
        tx_start=start + 1,
        tx_end=end,
        cds_start=start + 1,
        cds_end=end,
        exon_starts=exon_starts,
        exon_ends=exon_ends,
        name2=name,
        gene_name=name,
        layout='gappedPeak',
        line_number=line_number,
        score=_score(fields[4], line_number, 'gappedPeak'),
        feature_id=region_id(chrom, start, end),
        transcript_type='region',
        block_type='peak',
        feature_strand=fields[5],
    )
    record.extra_attributes['itemRGB'] = [fields[8]]
    record.extra_attributes['signalValue'] = [fields[12]]
    record.extra_attributes['pValue'] = [fields[13]]
    record.extra_attributes['qValue'] = [fields[14]]
    return record
