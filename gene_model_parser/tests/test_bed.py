#!/usr/bin/env python3

"""
Unit tests for BED, bedGraph and the ENCODE peak formats.

Tests single-region decoding, coordinate normalization, BED12 transcript
synthesis and gappedPeak sub-peaks.
"""

import os
import sys
import unittest

# Add the parent directory to the path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from gene_model_parser.core.bed_decoders import (
    bed12_to_ucsc_record, decode_bed_line, decode_bedgraph_line,
    decode_broadpeak_line, decode_narrowpeak_line, region_id
)
from gene_model_parser.core.data_structures import Feature
from gene_model_parser.core.dialects import Dialect
from gene_model_parser.core.exceptions import MalformedRecord
from gene_model_parser.core.parser import AnnotationParser
from gene_model_parser.core.session import ParseSession
from gene_model_parser.core.sharing import SharingCache
from gene_model_parser.core.synthesizer import SubfeatureSynthesizer

BED12_ROW = "chr1\t99\t400\ttx1\t0\t+\t149\t350\t255,0,0\t2\t101,100,\t0,201,\n"


class TestRegionDecoders(unittest.TestCase):
    """Test BED3-6 and peak rows decoded as single regions."""

    def test_coordinate_normalization(self):
        """A half-open 0-based [s, e) interval becomes start s+1, end e."""
        for start0, end in ((0, 1), (99, 400), (12345, 12346), (0, 248956422)):
            feature = decode_bed_line(f"chr1\t{start0}\t{end}\n", 3)
            self.assertEqual(feature.start, start0 + 1)
            self.assertEqual(feature.end, end)
            self.assertLessEqual(feature.start, feature.end)
            self.assertEqual(feature.primary_id, region_id('chr1', start0, end))

    def test_bed6(self):
        feature = decode_bed_line("chr2\t99\t400\tpeak_a\t17\t-\n", 6, source='regions')
        self.assertEqual(feature.primary_id, 'chr2:99-400')
        self.assertEqual(feature.display_name, 'peak_a')
        self.assertEqual(feature.score, 17.0)
        self.assertEqual(feature.strand, '-')
        self.assertEqual(feature.source, 'regions')
        self.assertEqual(feature.feature_type, 'region')

    def test_invalid_intervals(self):
        """Test rows rejected by the BED decoders."""
        with self.assertRaises(MalformedRecord):
            decode_bed_line("chr1\tabc\t400\n", 3)
        with self.assertRaises(MalformedRecord):
            decode_bed_line("chr1\t400\t400\n", 3)
        with self.assertRaises(MalformedRecord):
            decode_bed_line("chr1\t99\t400\tname\n", 3)
        with self.assertRaises(MalformedRecord):
            decode_bed_line("chr1\t99\t400\tname\tnot_a_score\n", 5)

    def test_bedgraph(self):
        feature = decode_bedgraph_line("chr1\t0\t50\t0.75\n")
        self.assertEqual((feature.start, feature.end), (1, 50))
        self.assertEqual(feature.score, 0.75)

    def test_narrowpeak(self):
        feature = decode_narrowpeak_line("chr1\t99\t400\t.\t10\t.\t1.5\t2.5\t3.5\t50\n")
        self.assertEqual(feature.display_name, '')
        self.assertEqual(feature.get_attribute('signalValue'), '1.5')
        self.assertEqual(feature.get_attribute('qValue'), '3.5')
        self.assertEqual(feature.get_attribute('peak'), '50')

    def test_broadpeak(self):
        feature = decode_broadpeak_line("chr1\t99\t400\tbp\t10\t+\t1.5\t2.5\t3.5\n")
        self.assertEqual(feature.display_name, 'bp')
        self.assertEqual(feature.get_attribute('pValue'), '2.5')
        self.assertFalse(feature.has_attribute('peak'))


class TestBed12Records(unittest.TestCase):
    """Test BED7-12 rows re-expressed as gene-table records."""

    def test_bed12_record(self):
        record = bed12_to_ucsc_record(BED12_ROW, 12)
        self.assertEqual(record.feature_id, 'chr1:99-400')
        self.assertEqual((record.tx_start, record.tx_end), (100, 400))
        self.assertEqual((record.cds_start, record.cds_end), (150, 350))
        self.assertEqual(record.exon_starts, [100, 301])
        self.assertEqual(record.exon_ends, [200, 400])
        self.assertEqual(record.extra_attributes['itemRGB'], ['255,0,0'])
        self.assertIsNone(record.feature_strand)

    def test_short_rows_take_defaults(self):
        """Missing thick and block columns default to a noncoding single block."""
        record = bed12_to_ucsc_record("chr1\t99\t400\tn\t0\t+\t400\n", 7)
        self.assertTrue(record.noncoding)
        self.assertEqual(record.exon_starts, [100])
        self.assertEqual(record.exon_ends, [400])
        self.assertEqual(record.extra_attributes['itemRGB'], ['0'])

    def test_extra_columns_ignored(self):
        record = bed12_to_ucsc_record(BED12_ROW.rstrip('\n') + "\textra\tmore\n", 14)
        self.assertEqual(record.exon_count, 2)

    def test_block_count_mismatch(self):
        row = "chr1\t99\t400\ttx1\t0\t+\t149\t350\t0\t3\t101,100,\t0,201,\n"
        with self.assertRaises(MalformedRecord):
            bed12_to_ucsc_record(row, 12)

    def test_invalid_block_geometry(self):
        """Zero-size blocks and blocks past chromEnd are malformed rows."""
        zero_size = "chr1\t99\t400\ttx1\t0\t+\t149\t350\t0\t2\t0,100,\t0,201,\n"
        past_end = "chr1\t99\t400\ttx1\t0\t+\t149\t350\t0\t2\t101,150,\t0,201,\n"
        for row in (zero_size, past_end):
            with self.assertRaises(MalformedRecord) as ctx:
                bed12_to_ucsc_record(row, 12, line_number=3)
            self.assertEqual(ctx.exception.line_number, 3)


class TestBedParsing(unittest.TestCase):
    """Test whole BED-family streams through the parser."""

    def test_bed12_transcript(self):
        """Test subfeatures synthesized from a BED12 row."""
        parser = AnnotationParser('models.bed', lines=["track name=models\n", BED12_ROW])
        features = parser.top_features()
        self.assertEqual(len(features), 1)
        transcript = features[0]
        self.assertEqual(transcript.primary_id, 'chr1:99-400')
        self.assertEqual(transcript.display_name, 'tx1')
        self.assertEqual(transcript.feature_type, 'mRNA')
        self.assertEqual(transcript.source, 'models')
        self.assertEqual(transcript.get_attribute('itemRGB'), '255,0,0')
        self.assertEqual(transcript.score, 0.0)

        exons = transcript.get_children_by_type('exon')
        self.assertEqual([e.primary_id for e in exons],
                         ['chr1:99-400.exon0', 'chr1:99-400.exon1'])
        utrs = (transcript.get_children_by_type('five_prime_UTR')
                + transcript.get_children_by_type('three_prime_UTR'))
        self.assertEqual(sorted((u.start, u.end) for u in utrs), [(100, 149), (351, 400)])
        cds = transcript.get_children_by_type('CDS')
        self.assertEqual([(c.start, c.end, c.phase) for c in cds], [(150, 200, 0), (301, 350, 0)])
        self.assertEqual(parser.comments(), ['track name=models'])

    def test_unstranded_bed12(self):
        """Unstranded rows are built forward and reported unstranded."""
        row = BED12_ROW.replace('\t+\t', '\t.\t')
        transcript = AnnotationParser('models.bed', lines=[row]).top_features()[0]
        self.assertEqual(transcript.strand, '.')
        self.assertTrue(all(child.strand == '.' for child in transcript.get_children()))
        self.assertEqual(len(transcript.get_children_by_type('CDS')), 2)

    def test_noncoding_bed9(self):
        row = "chr1\t99\t400\tmir-7\t0\t+\t99\t99\t0,0,255\n"
        transcript = AnnotationParser(lines=[row]).top_features()[0]
        self.assertEqual(transcript.feature_type, 'miRNA')
        self.assertEqual([c.feature_type for c in transcript.get_children()], ['exon'])

    def test_gapped_peak(self):
        """gappedPeak blocks become sub-peaks with no UTR, CDS or codons."""
        row = "chr1\t99\t400\tgp1\t5\t.\t99\t400\t0\t2\t50,50,\t0,251,\t3.2\t4.1\t2.0\n"
        parser = AnnotationParser('calls.gappedPeak', lines=[row])
        self.assertIs(parser.dialect, Dialect.GAPPEDPEAK)
        region = parser.top_features()[0]
        self.assertEqual(region.feature_type, 'region')
        self.assertEqual(region.strand, '.')
        self.assertEqual(region.get_attribute('signalValue'), '3.2')
        peaks = region.get_children()
        self.assertEqual([p.feature_type for p in peaks], ['peak', 'peak'])
        self.assertEqual([(p.start, p.end) for p in peaks], [(100, 149), (351, 400)])
        self.assertEqual(peaks[1].primary_id, 'chr1:99-400.peak1')

    def test_narrowpeak_track(self):
        lines = [
            "track type=narrowPeak\n",
            "chr1\t99\t400\tp1\t10\t.\t1.5\t2.5\t3.5\t50\n",
            "chr1\t9\t40\tp2\t10\t.\t1.5\t2.5\t3.5\t5\n",
        ]
        parser = AnnotationParser('calls.bed', lines=lines)
        self.assertIs(parser.dialect, Dialect.NARROWPEAK)
        self.assertEqual([f.display_name for f in parser.top_features()], ['p2', 'p1'])

    def test_malformed_row_is_skipped(self):
        """A bad row is recorded and parsing continues."""
        lines = ["chr1\t0\t10\n", "chr1\tten\t20\n", "chr1\t20\t30\n"]
        parser = AnnotationParser(lines=lines)
        self.assertEqual(len(parser.top_features()), 2)
        errors = parser.diagnostics_of(MalformedRecord)
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].line_number, 2)

    def test_zero_size_block_is_skipped(self):
        """A BED12 row with an empty block is recorded and the next row still parses."""
        bad = "chr1\t99\t400\ttx1\t0\t+\t149\t350\t0\t2\t0,100,\t0,201,\n"
        good = "chr1\t999\t1300\ttx2\t0\t+\t1049\t1250\t0\t2\t101,100,\t0,201,\n"
        parser = AnnotationParser(lines=[bad, good], dialect='bed')
        features = parser.top_features()
        self.assertEqual(len(features), 1)
        self.assertEqual(features[0].display_name, 'tx2')
        errors = parser.diagnostics_of(MalformedRecord)
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].line_number, 1)


class TestRestrand(unittest.TestCase):
    """Test unstranded BED12 transcripts reported as '.'."""

    def test_shared_children_keep_their_strand(self):
        session = ParseSession()
        sharing = SharingCache()
        synthesizer = SubfeatureSynthesizer(session, sharing)
        gene = Feature(seq_id='chr1', start=100, end=400, strand='+', feature_type='gene')
        session.register(gene, 'G1')

        stranded = synthesizer.build_transcript(bed12_to_ucsc_record(BED12_ROW, 12), gene)
        session.arena.attach(gene, stranded)
        sharing.remember_transcript(gene, stranded)

        row = BED12_ROW.replace('\ttx1\t', '\ttx2\t').replace('\t+\t', '\t.\t')
        unstranded = synthesizer.build_transcript(bed12_to_ucsc_record(row, 12), gene)
        self.assertEqual(unstranded.strand, '.')

        exons = unstranded.get_children_by_type('exon')
        for exon, original in zip(exons, stranded.get_children_by_type('exon')):
            self.assertIs(exon, original)
        self.assertTrue(all(e.frozen and e.strand == '+' for e in exons))
        cds = unstranded.get_children_by_type('CDS')
        self.assertEqual(len(cds), 2)
        self.assertTrue(all(c.strand == '.' for c in cds))
        self.assertTrue(all(c.strand == '+' for c in stranded.get_children_by_type('CDS')))


if __name__ == '__main__':
    unittest.main()
