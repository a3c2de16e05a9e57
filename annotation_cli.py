#!/usr/bin/env python3

"""
Command-line interface for the gene model parser.

Parses one annotation file (GFF3, GTF, GFF, BED family or UCSC gene
table), reports what was assembled, and optionally writes the rebuilt
feature hierarchy as GFF3.
"""

import argparse
import sys
import logging
from pathlib import Path
from typing import List, Optional

from gene_model_parser.core.config import load_config
from gene_model_parser.core.exceptions import AnnotationError
from gene_model_parser.core.parser import AnnotationParser
from gene_model_parser.core.ucsc_decoders import load_reference_table


def setup_logging(log_level: str = "INFO") -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Rebuild gene/transcript/exon hierarchies from annotation files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Summarise a GTF file
  python annotation_cli.py gencode.gtf.gz

  # Convert a UCSC refGene table to GFF3 with RefSeq enrichment
  python annotation_cli.py hg38.refGene.txt.gz --refseq-summary refSeqSummary.txt.gz --output refGene.gff3
        """
    )

    parser.add_argument(
        'input',
        help='Annotation file (optionally gzip-compressed)'
    )
    parser.add_argument(
        '--dialect',
        help='Force the input dialect (gff3, gtf, gff, bed, bedGraph, narrowPeak, '
             'broadPeak, gappedPeak, ucsc)'
    )
    parser.add_argument(
        '--output',
        help='Write the assembled features as GFF3 to this file'
    )
    parser.add_argument(
        '--config',
        help='Configuration file (JSON or YAML)'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )

    # Subfeature toggles
    parser.add_argument('--no-genes', action='store_true', help='Do not build gene features')
    parser.add_argument('--no-exons', action='store_true', help='Do not build exon features')
    parser.add_argument('--no-cds', action='store_true', help='Do not build CDS features')
    parser.add_argument('--no-utrs', action='store_true', help='Do not build UTR features')
    parser.add_argument('--no-codons', action='store_true', help='Do not build start/stop codons')
    parser.add_argument('--names', action='store_true', help='Name synthesized subfeatures')
    parser.add_argument('--no-share', action='store_true',
                        help='Give every transcript its own copy of repeated subfeatures')
    parser.add_argument('--simplify', action='store_true',
                        help='Drop non-essential attributes and non-gene-model rows')
    parser.add_argument('--source', help='Source label for BED and UCSC features')

    # Reference tables
    parser.add_argument('--refseq-summary', help='refSeqSummary table')
    parser.add_argument('--refseq-status', help='refSeqStatus table')
    parser.add_argument('--kgxref', help='kgXref table')
    parser.add_argument('--ensembl-gene-names', help='ensemblToGeneName table')
    parser.add_argument('--ensembl-source', help='ensemblSource table')

    # Advanced options
    parser.add_argument(
        '--decode-workers',
        type=int,
        help='Worker threads for line decoding (default: 1)'
    )
    parser.add_argument(
        '--batch-size',
        type=int,
        help='Lines per decode batch (default: 1000)'
    )
    parser.add_argument(
        '--memory-limit',
        type=int,
        help='Memory limit in MB; enables memory monitoring'
    )

    return parser


REFERENCE_OPTIONS = [
    ('refseq_summary', 'refSeqSummary'),
    ('refseq_status', 'refSeqStatus'),
    ('kgxref', 'kgXref'),
    ('ensembl_gene_names', 'ensemblToGeneName'),
    ('ensembl_source', 'ensemblSource'),
]


def apply_overrides(config, args) -> None:
    """Override config with command line arguments."""
    if args.no_genes:
        config.do_gene = False
    if args.no_exons:
        config.do_exon = False
    if args.no_cds:
        config.do_cds = False
    if args.no_utrs:
        config.do_utr = False
    if args.no_codons:
        config.do_codon = False
    if args.names:
        config.do_name = True
    if args.no_share:
        config.share = False
    if args.simplify:
        config.simplify = True
    if args.source is not None:
        config.source = args.source
    if args.decode_workers is not None:
        config.decode_workers = args.decode_workers
    if args.batch_size is not None:
        config.batch_size = args.batch_size
    if args.memory_limit is not None:
        config.memory_limit_mb = args.memory_limit
        config.enable_memory_monitoring = True


def write_gff3(parser: AnnotationParser, output_path: str) -> None:
    """Write every top-level feature tree as GFF3."""
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, 'w') as f:
        f.write("##gff-version 3\n")
        for seq_id, length in sorted(parser.seq_id_lengths().items()):
            f.write(f"##sequence-region {seq_id} 1 {length}\n")
        for feature in parser.top_features():
            f.write(feature.gff3_string())
            f.write("###\n")


def log_summary(parser: AnnotationParser) -> None:
    logging.info(f"Dialect: {parser.dialect.value}")
    for feature_type, count in sorted(parser.counts().items()):
        logging.info(f"  {feature_type}: {count}")
    logging.info(f"Top-level features: {len(parser.top_features())}")
    logging.info(f"Orphans: {len(parser.orphans)}")
    duplicates = parser.duplicate_ids
    if duplicates:
        logging.info(f"Duplicate identifiers: {sum(duplicates.values())} "
                     f"({len(duplicates)} distinct)")
    logging.info(f"Diagnostics: {len(parser.diagnostics)}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    arg_parser = create_argument_parser()
    args = arg_parser.parse_args(argv)

    # Load configuration
    try:
        config = load_config(config_path=args.config, use_env=True)
    except AnnotationError as e:
        setup_logging(args.log_level)
        logging.error(f"Configuration error: {e}")
        return 1

    setup_logging('DEBUG' if config.debug_mode else args.log_level)
    logger = logging.getLogger(__name__)

    try:
        apply_overrides(config, args)

        # Re-validate after CLI overrides.
        config.validate()

        references = None
        for option, kind in REFERENCE_OPTIONS:
            path = getattr(args, option)
            if path:
                references = load_reference_table(path, kind, references)

        logger.info(f"Parsing {args.input}")
        parser = AnnotationParser(args.input, config, args.dialect, references)
        parser.parse()
        log_summary(parser)

        if args.output:
            with parser.monitor.phase_context('write'):
                write_gff3(parser, args.output)
            logger.info(f"Wrote GFF3 to {args.output}")

        parser.monitor.log_performance_report()
        return 0

    except AnnotationError as e:
        logger.error(f"Annotation error: {e}")
        return 1
    except OSError as e:
        logger.error(f"File error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        logger.debug("Full traceback:", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
