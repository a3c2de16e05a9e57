#!/usr/bin/env python3

"""
Unit tests for the GFF3, GTF and generic GFF record decoders.
"""

import os
import sys
import unittest

# Add the parent directory to the path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from gene_model_parser.core.exceptions import MalformedRecord
from gene_model_parser.core.gff_decoders import (
    decode_gff3_line, decode_gff_line, decode_gtf_line, escape,
    parse_gff3_attributes, parse_gtf_attributes, parse_sequence_region,
    row_kind, unescape
)


class TestAttributeParsing(unittest.TestCase):
    """Test column 9 parsing for both attribute syntaxes."""

    def test_gff3_attributes(self):
        attributes = parse_gff3_attributes("ID=T1;Parent=G1,G2;Note=a%3Bb;flag")
        self.assertEqual(attributes['ID'], ['T1'])
        self.assertEqual(attributes['Parent'], ['G1', 'G2'])
        self.assertEqual(attributes['Note'], ['a;b'])
        self.assertEqual(attributes['flag'], [])

    def test_gtf_attributes(self):
        text = 'gene_id "G1"; transcript_id "T1"; tag "basic"; tag "CCDS"; level 2;'
        attributes = parse_gtf_attributes(text)
        self.assertEqual(attributes['gene_id'], ['G1'])
        self.assertEqual(attributes['tag'], ['basic', 'CCDS'])
        self.assertEqual(attributes['level'], ['2'])

    def test_gtf_fast_path(self):
        """The fast path keeps only the five identifier tags."""
        text = 'gene_id "G1"; transcript_id "T1"; exon_id "E1"; tag "basic";'
        attributes = parse_gtf_attributes(text, fast=True)
        self.assertEqual(attributes, {'gene_id': ['G1'], 'transcript_id': ['T1'],
                                      'exon_id': ['E1']})

    def test_escape_roundtrip(self):
        self.assertEqual(unescape('a%3Bb+c'), 'a;b c')
        self.assertEqual(escape('a;b'), 'a%3Bb')

    def test_row_kind(self):
        """Test the row type classes driving the subfeature toggles."""
        self.assertEqual(row_kind('CDS'), 'cds')
        self.assertEqual(row_kind('exon'), 'exon')
        self.assertEqual(row_kind('five_prime_UTR'), 'utr')
        self.assertEqual(row_kind('start_codon'), 'codon')
        self.assertEqual(row_kind('pseudogene'), 'gene')
        self.assertEqual(row_kind('mRNA'), 'transcript')
        self.assertEqual(row_kind('lnc_RNA'), 'transcript')
        self.assertEqual(row_kind('chromosome'), 'sequence')
        self.assertEqual(row_kind('repeat_region'), 'other')


class TestGff3Decoder(unittest.TestCase):

    def test_decode_row(self):
        line = "chr1\tsrc\tmRNA\t100\t400\t12.5\t-\t.\tID=T1;Name=tx%20one;Parent=G1;Note=x\n"
        record = decode_gff3_line(line, 7)
        feature = record.feature
        self.assertEqual(record.declared_id, 'T1')
        self.assertEqual(record.parent_ids, ['G1'])
        self.assertEqual(record.line_number, 7)
        self.assertEqual(feature.display_name, 'tx one')
        self.assertEqual((feature.start, feature.end, feature.strand), (100, 400, '-'))
        self.assertEqual(feature.score, 12.5)
        self.assertIsNone(feature.phase)
        self.assertEqual(feature.get_attribute('Note'), 'x')
        self.assertFalse(feature.has_attribute('ID'))

    def test_exon_id_as_identifier(self):
        line = "chr1\tsrc\texon\t100\t200\t.\t+\t.\tParent=T1;exon_id=ENSE1\n"
        self.assertEqual(decode_gff3_line(line).declared_id, 'ENSE1')

    def test_simplify_drops_attributes(self):
        line = "chr1\tsrc\tCDS\t100\t200\t.\t+\t2\tID=C1;Parent=T1;Note=x\n"
        record = decode_gff3_line(line, simplify=True)
        self.assertEqual(record.feature.phase, 2)
        self.assertEqual(record.feature.attributes, {})

    def test_malformed_rows(self):
        """Test rows rejected by the decoder."""
        with self.assertRaises(MalformedRecord) as context:
            decode_gff3_line("chr1\tsrc\tgene\t100\t400\n", 3)
        self.assertEqual(context.exception.line_number, 3)
        self.assertIn('line 3', str(context.exception))

        with self.assertRaises(MalformedRecord):
            decode_gff3_line("chr1\tsrc\tgene\tabc\t400\t.\t+\t.\tID=G1\n")
        with self.assertRaises(MalformedRecord):
            decode_gff3_line("chr1\tsrc\tgene\t400\t100\t.\t+\t.\tID=G1\n")
        with self.assertRaises(MalformedRecord):
            decode_gff3_line("chr1\tsrc\tCDS\t100\t400\t.\t+\t5\tID=C1\n")
        with self.assertRaises(MalformedRecord):
            decode_gff3_line("chr1\tsrc\tgene\t100\t400\thigh\t+\t.\tID=G1\n")


class TestGtfDecoder(unittest.TestCase):

    def test_decode_row(self):
        line = ('chr1\tsrc\texon\t100\t200\t.\t+\t.\tgene_id "G1"; transcript_id "T1"; '
                'gene_name "ABC"; exon_id "E1"; gene_type "protein_coding";\n')
        record = decode_gtf_line(line, 2)
        self.assertEqual(record.gene_id, 'G1')
        self.assertEqual(record.transcript_id, 'T1')
        self.assertEqual(record.gene_name, 'ABC')
        self.assertEqual(record.exon_id, 'E1')
        self.assertEqual(record.gene_biotype, 'protein_coding')
        self.assertEqual(record.feature.get_attribute('gene_id'), 'G1')

    def test_fast_path_keeps_no_attributes(self):
        line = 'chr1\tsrc\texon\t100\t200\t.\t+\t.\tgene_id "G1"; transcript_id "T1";\n'
        record = decode_gtf_line(line, fast=True)
        self.assertEqual(record.transcript_id, 'T1')
        self.assertEqual(record.feature.attributes, {})


class TestGenericGffDecoder(unittest.TestCase):

    def test_group_name(self):
        """A bare group value names the feature."""
        record = decode_gff_line("chr1\tsrc\tgene\t100\t400\t.\t+\t.\tabc\n")
        self.assertEqual(record.feature.display_name, 'abc')
        self.assertIsNone(record.declared_id)

    def test_tag_values(self):
        record = decode_gff_line('chr1\tsrc\tgene\t100\t400\t.\t+\t.\tID "g7"; note "x"\n')
        self.assertEqual(record.declared_id, 'g7')
        self.assertEqual(record.feature.get_attribute('note'), 'x')
        self.assertFalse(record.feature.has_attribute('ID'))


class TestSequenceRegion(unittest.TestCase):

    def test_parse(self):
        self.assertEqual(parse_sequence_region("##sequence-region chr1 1 5000"),
                         ('chr1', 1, 5000))

    def test_malformed(self):
        with self.assertRaises(MalformedRecord):
            parse_sequence_region("##sequence-region chr1 1")


if __name__ == '__main__':
    unittest.main()
