#!/usr/bin/env python3

"""
Unit tests for core data structures.

Tests the Feature record, the arena that owns features and their
parent/child edges, and GFF3 rendering.
"""

import unittest
import sys
import os

# Add the parent directory to the path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from gene_model_parser.core.data_structures import (
    Feature, FeatureArena, Orphan, gff3_escape, normalize_strand
)


class TestFeature(unittest.TestCase):
    """Test the Feature data structure."""

    def test_valid_feature_creation(self):
        """Test creating a valid feature."""
        feature = Feature(seq_id='chr1', start=100, end=200, strand='+',
                          feature_type='exon', primary_id='E1')
        self.assertEqual(feature.start, 100)
        self.assertEqual(feature.end, 200)
        self.assertEqual(feature.strand, '+')
        self.assertEqual(feature.length, 101)
        self.assertEqual(feature.source, '.')

    def test_invalid_coordinates(self):
        """Reversed coordinates raise ValueError; single-base features are valid."""
        with self.assertRaises(ValueError):
            Feature(seq_id='chr1', start=200, end=199)

        feature = Feature(seq_id='chr1', start=200, end=200)
        self.assertEqual(feature.length, 1)

    def test_invalid_phase(self):
        with self.assertRaises(ValueError):
            Feature(seq_id='chr1', start=1, end=10, feature_type='CDS', phase=3)

    def test_strand_normalization(self):
        """Strand spellings collapse onto +, - and '.'."""
        self.assertEqual(Feature(seq_id='c', start=1, end=2, strand=1).strand, '+')
        self.assertEqual(Feature(seq_id='c', start=1, end=2, strand='-1').strand, '-')
        self.assertEqual(Feature(seq_id='c', start=1, end=2, strand='?').strand, '.')
        self.assertEqual(normalize_strand(-1), '-')
        self.assertEqual(normalize_strand(None), '.')

    def test_overlaps(self):
        """Test closed-interval overlap detection."""
        feature = Feature(seq_id='chr1', start=100, end=200)
        self.assertTrue(feature.overlaps(200, 300))  # Touches the last base
        self.assertTrue(feature.overlaps(50, 100))
        self.assertFalse(feature.overlaps(201, 300))
        self.assertTrue(feature.contains_position(150))
        self.assertFalse(feature.contains_position(99))

    def test_attributes(self):
        """Test attribute helpers."""
        feature = Feature(seq_id='chr1', start=1, end=10)
        feature.add_attribute('Note', 'first')
        feature.add_attribute('Note', ['second', 'third'])
        feature.add_unique_attribute('Note', 'first')

        self.assertTrue(feature.has_attribute('Note'))
        self.assertEqual(feature.get_attribute('Note'), 'first')
        self.assertEqual(feature.get_attribute_values('Note'), ['first', 'second', 'third'])
        self.assertIsNone(feature.get_attribute('Dbxref'))

        feature.remove_attribute('Note')
        self.assertFalse(feature.has_attribute('Note'))

    def test_extend_span(self):
        feature = Feature(seq_id='chr1', start=100, end=200)
        feature.extend_span(50, 150)
        feature.extend_span(120, 400)
        self.assertEqual((feature.start, feature.end), (50, 400))


class TestFeatureArena(unittest.TestCase):
    """Test handle assignment and parent/child edges."""

    def setUp(self):
        """Set up a gene with two transcripts sharing one exon."""
        self.arena = FeatureArena()
        self.gene = Feature(seq_id='chr1', start=100, end=400, strand='+',
                            feature_type='gene', source='src', primary_id='G1')
        self.t1 = Feature(seq_id='chr1', start=100, end=400, strand='+',
                          feature_type='mRNA', source='src', primary_id='T1')
        self.t2 = Feature(seq_id='chr1', start=100, end=300, strand='+',
                          feature_type='mRNA', source='src', primary_id='T2')
        self.exon = Feature(seq_id='chr1', start=100, end=200, strand='+',
                            feature_type='exon', source='src', primary_id='E1')
        self.arena.attach(self.gene, self.t1)
        self.arena.attach(self.gene, self.t2)
        self.arena.attach(self.t1, self.exon)
        self.arena.attach(self.t2, self.exon)

    def test_handles_are_sequential(self):
        self.assertEqual(len(self.arena), 4)
        self.assertEqual(self.gene.handle, 0)
        self.assertIs(self.arena.get(self.exon.handle), self.exon)

    def test_add_is_idempotent(self):
        """Adding a feature twice keeps its handle."""
        handle = self.exon.handle
        self.arena.add(self.exon)
        self.assertEqual(self.exon.handle, handle)
        self.assertEqual(len(self.arena), 4)

    def test_feature_of_another_arena_rejected(self):
        with self.assertRaises(ValueError):
            FeatureArena().add(self.exon)

    def test_attach_twice_returns_false(self):
        self.assertFalse(self.arena.attach(self.t1, self.exon))
        self.assertEqual(len(self.t1.children), 1)

    def test_shared_child_is_frozen(self):
        """A child with two parents is shared and may not be modified."""
        self.assertTrue(self.exon.is_shared)
        self.assertTrue(self.exon.frozen)
        self.assertFalse(self.t1.is_shared)
        self.assertEqual(self.exon.parent_ids, ['T1', 'T2'])
        self.assertEqual(self.arena.reference_count(self.exon), 2)

        with self.assertRaises(ValueError):
            self.exon.add_attribute('Note', 'changed')
        with self.assertRaises(ValueError):
            self.exon.extend_span(1, 500)
        with self.assertRaises(ValueError):
            self.exon.set_strand('.')
        self.t1.set_strand('-')
        self.assertEqual(self.t1.strand, '-')

    def test_parents_of(self):
        self.assertEqual(self.arena.parents_of(self.exon), [self.t1, self.t2])
        self.assertEqual(self.arena.parents_of(self.gene), [])

    def test_children_and_descendants(self):
        """Shared descendants are visited once."""
        self.assertEqual(self.gene.get_children(), [self.t1, self.t2])
        self.assertEqual(self.t1.get_children_by_type('exon'), [self.exon])
        descendants = list(self.gene.iter_descendants())
        self.assertEqual(descendants, [self.t1, self.exon, self.t2])

    def test_sorted_children_on_reverse_strand(self):
        """Test 5' to 3' ordering of children on the minus strand."""
        arena = FeatureArena()
        transcript = Feature(seq_id='chr1', start=100, end=900, strand='-',
                             feature_type='mRNA', primary_id='T')
        for start in (100, 500, 300):
            arena.attach(transcript, Feature(seq_id='chr1', start=start, end=start + 50,
                                             strand='-', feature_type='exon',
                                             primary_id=f"T.e{start}"))
        starts = [e.start for e in transcript.get_sorted_children('exon')]
        self.assertEqual(starts, [500, 300, 100])


class TestGff3Rendering(unittest.TestCase):
    """Test GFF3 output of features and trees."""

    def test_escape_reserved_characters(self):
        self.assertEqual(gff3_escape('a;b=c'), 'a%3Bb%3Dc')
        self.assertEqual(gff3_escape('x,y z'), 'x%2Cy%20z')
        self.assertEqual(gff3_escape('50%'), '50%25')
        self.assertEqual(gff3_escape('plain'), 'plain')

    def test_single_line(self):
        """Test rendering of one feature without children."""
        feature = Feature(seq_id='chr1', start=150, end=200, strand='+', feature_type='CDS',
                          source='src', primary_id='T1.cds0', display_name='T1.cds0',
                          score=5.0, phase=0)
        feature.add_attribute('Note', 'a;b')
        expected = ('chr1\tsrc\tCDS\t150\t200\t5\t+\t0\t'
                    'ID=T1.cds0;Name=T1.cds0;Note=a%3Bb\n')
        self.assertEqual(feature.gff3_string(recurse=False), expected)

    def test_shared_child_written_once(self):
        """A shared exon is written once with every parent listed."""
        arena = FeatureArena()
        gene = Feature(seq_id='chr1', start=100, end=400, strand='+',
                       feature_type='gene', source='src', primary_id='G1')
        t1 = Feature(seq_id='chr1', start=100, end=400, strand='+',
                     feature_type='mRNA', source='src', primary_id='T1')
        t2 = Feature(seq_id='chr1', start=100, end=300, strand='+',
                     feature_type='mRNA', source='src', primary_id='T2')
        exon = Feature(seq_id='chr1', start=100, end=200, strand='+',
                       feature_type='exon', source='src', primary_id='E1')
        arena.attach(gene, t1)
        arena.attach(gene, t2)
        arena.attach(t1, exon)
        arena.attach(t2, exon)

        lines = gene.gff3_string().splitlines()
        self.assertEqual(len(lines), 4)
        self.assertEqual(lines[0], 'chr1\tsrc\tgene\t100\t400\t.\t+\t.\tID=G1')
        self.assertEqual(lines[1], 'chr1\tsrc\tmRNA\t100\t400\t.\t+\t.\tID=T1;Parent=G1')
        self.assertEqual(lines[2], 'chr1\tsrc\texon\t100\t200\t.\t+\t.\tID=E1;Parent=T1,T2')
        self.assertEqual(lines[3], 'chr1\tsrc\tmRNA\t100\t300\t.\t+\t.\tID=T2;Parent=G1')


class TestOrphan(unittest.TestCase):

    def test_retryable(self):
        feature = Feature(seq_id='chr1', start=1, end=10, primary_id='X')
        self.assertTrue(Orphan(feature, ['P']).retryable)
        self.assertFalse(Orphan(feature, [], 'duplicate').retryable)


if __name__ == '__main__':
    unittest.main()
