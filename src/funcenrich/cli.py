#!/usr/bin/env python3
"""
Command line interface for the functional enrichment pipeline.
"""

import argparse
import logging
import sys
import tempfile
from pathlib import Path

import tomli
from tomli_w import dump

from .pipeline import EnrichmentPipeline
from .utils import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run functional enrichment analysis"
    )

    parser.add_argument(
        "config_file",
        type=str,
        help="Path to TOML configuration file"
    )

    output_group = parser.add_argument_group("Output configuration overrides")
    output_group.add_argument(
        "--output-dir",
        type=str,
        help="Override output directory"
    )

    analysis_group = parser.add_argument_group("Analysis parameter overrides")
    analysis_group.add_argument(
        "--num-threads",
        type=int,
        help="Override number of workers for parallel processing"
    )

    ora_group = parser.add_argument_group("Over-representation parameter overrides")
    ora_group.add_argument(
        "--no-overrepresentation",
        action="store_true",
        help="Disable over-representation analysis"
    )
    ora_group.add_argument(
        "--min-count",
        type=int,
        help="Override minimum number of selected members per term"
    )
    ora_group.add_argument(
        "--sig-limit",
        type=float,
        help="Override significance limit on the adjusted p-value"
    )

    bootstrap_group = parser.add_argument_group("Bootstrap parameter overrides")
    bootstrap_group.add_argument(
        "--no-bootstrap",
        action="store_true",
        help="Disable bootstrap set-enrichment analysis"
    )
    bootstrap_group.add_argument(
        "--minn",
        type=int,
        help="Override minimum number of scored members per term"
    )
    bootstrap_group.add_argument(
        "--nboot",
        type=int,
        help="Override number of bootstrap replicates"
    )
    bootstrap_group.add_argument(
        "--seed",
        type=int,
        help="Random seed for the bootstrap and GSEA permutations"
    )

    preranked_group = parser.add_argument_group("Preranked GSEA parameter overrides")
    preranked_group.add_argument(
        "--preranked",
        action="store_true",
        help="Enable preranked GSEA on the scores"
    )
    preranked_group.add_argument(
        "--nperm",
        type=int,
        help="Override number of GSEA permutations"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show progress bars and debug logging"
    )

    return parser.parse_args(argv)


def update_config(config: dict, args: argparse.Namespace):
    """Update configuration with command line overrides."""
    config.setdefault('output', {})
    config.setdefault('analysis', {})
    config.setdefault('overrepresentation', {})
    config.setdefault('bootstrap', {})
    config.setdefault('preranked', {})

    if args.output_dir:
        config['output']['directory'] = args.output_dir

    if args.num_threads is not None:
        config['analysis']['num_threads'] = args.num_threads

    if args.no_overrepresentation:
        config['overrepresentation']['run'] = False
    if args.min_count is not None:
        config['overrepresentation']['min_count'] = args.min_count
    if args.sig_limit is not None:
        config['overrepresentation']['sig_limit'] = args.sig_limit

    if args.no_bootstrap:
        config['bootstrap']['run'] = False
    if args.minn is not None:
        config['bootstrap']['minn'] = args.minn
    if args.nboot is not None:
        config['bootstrap']['nboot'] = args.nboot
    if args.seed is not None:
        config['bootstrap']['seed'] = args.seed

    if args.preranked:
        config['preranked']['run'] = True
    if args.nperm is not None:
        config['preranked']['nperm'] = args.nperm
    if args.seed is not None:
        config['preranked']['seed'] = args.seed

    return config


def main(argv=None):
    """Main entry point for the CLI."""
    args = parse_args(argv)

    try:
        with open(args.config_file, 'rb') as f:
            config = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        print(f"Error loading configuration file: {str(e)}", file=sys.stderr)
        sys.exit(1)

    config = update_config(config, args)

    # Set up logging first, before any pipeline operations
    output_dir = Path(config['output'].get('directory', 'results'))
    setup_logging(output_dir / 'logs', level=logging.DEBUG if args.verbose else logging.INFO)

    logger.info("Starting functional enrichment pipeline")
    logger.info(f"Using configuration file: {args.config_file}")

    # Save updated config to a temporary file
    with tempfile.NamedTemporaryFile(
        'wb', suffix='.toml', dir=Path(args.config_file).parent, delete=False
    ) as f:
        dump(config, f)
        temp_config_path = Path(f.name)

    try:
        pipeline = EnrichmentPipeline(temp_config_path)
        pipeline.run(verbose=args.verbose)
        logger.info("Pipeline execution completed successfully")
    except Exception as e:
        logger.error(f"Pipeline execution failed: {str(e)}")
        sys.exit(1)
    finally:
        temp_config_path.unlink()


if __name__ == "__main__":
    main()
