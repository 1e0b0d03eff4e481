#!/usr/bin/env python3
"""Synchronize the upstream corpus and build the test catalog.

Pulls the upstream fixtures into the local mirror, normalizes every changed
fixture and writes the catalog consumed by run_tests.py. Fixtures whose
content and normalizer settings match the previous catalog are carried over.

Usage:
    # Sync from the upstream git repository and rebuild the catalog
    python scripts/parse_tests.py

    # Re-parse the existing mirror after a normalization change (no network)
    python scripts/parse_tests.py --no-fetch

    # Use a local fixture tree as the upstream
    python scripts/parse_tests.py --source-dir ../tests/BlockchainTests/GeneralStateTests

    # Ignore the previous catalog and re-parse everything
    python scripts/parse_tests.py --force
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv(override=True)

from evm_conformance.catalog import load_catalog, save_catalog
from evm_conformance.config import CorpusConfig
from evm_conformance.corpus import CorpusSynchronizer, GitCorpusSource, LocalDirectorySource
from evm_conformance.errors import ConformanceError
from evm_conformance.parser import CatalogBuilder, FixtureNormalizer


def setup_logging(verbose: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: If True, set DEBUG level
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="Synchronize the upstream corpus and build the test catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--mirror",
        type=str,
        default=None,
        help="Local mirror directory (default: eth_tests_mirror)",
    )

    parser.add_argument(
        "--catalog",
        type=str,
        default=None,
        help="Catalog output path (default: generation_inputs/catalog.json)",
    )

    parser.add_argument(
        "--source-dir",
        type=str,
        default=None,
        help="Use a local fixture tree as the upstream instead of git",
    )

    parser.add_argument(
        "--repo-url",
        type=str,
        default=None,
        help="Upstream git repository",
    )

    parser.add_argument(
        "--checkout-dir",
        type=str,
        default=None,
        help="Working copy of the upstream repository (default: eth_tests)",
    )

    parser.add_argument(
        "--network",
        type=str,
        default="Cancun",
        help="Fork whose fixture entries are kept (default: Cancun)",
    )

    parser.add_argument(
        "--no-fetch",
        action="store_true",
        help="Skip the network step and re-parse the existing mirror",
    )

    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-parse every fixture instead of reusing the previous catalog",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output",
    )

    return parser


def parse_tests(args) -> int:
    """Sync, normalize and save the catalog.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    logger = logging.getLogger(__name__)

    config = CorpusConfig.from_env(
        mirror_dir=args.mirror,
        catalog_path=args.catalog,
        repo_url=args.repo_url,
        repo_checkout_dir=args.checkout_dir,
        no_fetch=args.no_fetch or None,
    )
    logger.debug(f"Corpus config {config.content_hash()}: {config.to_dict()}")

    if args.source_dir:
        source = LocalDirectorySource(args.source_dir)
    else:
        source = GitCorpusSource(
            config.repo_url, config.repo_checkout_dir, config.corpus_subdir
        )

    synchronizer = CorpusSynchronizer(config.mirror_dir, source)
    diff = synchronizer.sync(no_fetch=config.no_fetch)

    catalog_path = Path(config.catalog_path)
    previous = None
    # A no-fetch run exists to re-apply normalization, so nothing is reused.
    if catalog_path.exists() and not (args.force or config.no_fetch):
        previous = load_catalog(catalog_path)
        logger.info(f"Reusing unchanged fixtures from {catalog_path}")

    builder = CatalogBuilder(config.mirror_dir, FixtureNormalizer(network=args.network))
    catalog = builder.build(synchronizer.mirror_fixtures(), previous=previous)
    save_catalog(catalog, catalog_path)

    print(f"\n{'='*60}")
    print("Catalog built")
    print(f"{'='*60}")
    if not config.no_fetch:
        print(f"Revision: {diff.revision or 'n/a'}")
        print(f"Added: {len(diff.added)}  Modified: {len(diff.modified)}  Removed: {len(diff.removed)}")
    print(f"Fixtures: {len(catalog.fixtures)}")
    print(f"Tests: {len(catalog)}")
    print(f"Excluded (not provable / no valid block): {len(catalog.excluded)}")
    if catalog.decode_errors:
        print(f"\nFixtures that failed to decode ({len(catalog.decode_errors)}):")
        for path, message in catalog.decode_errors.items():
            print(f"  {path}: {message}")
    print(f"\nCatalog: {catalog_path}")
    return 0


def main() -> int:
    parser = create_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)

    try:
        return parse_tests(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except (ConformanceError, OSError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
