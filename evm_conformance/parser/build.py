"""Build the test catalog from the local mirror.

Each parser run produces a brand new catalog. The catalog records the
sha256 of every fixture it parsed and a hash of the normalizer settings.
A fixture is carried over from the previous catalog only when both still
match; every other fixture is re-read from the mirror and normalized. A
fixture that fails to decode is logged and recorded in the catalog's
decode-error ledger, and the build moves on to the next fixture.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from evm_conformance.catalog.models import TestCatalog
from evm_conformance.corpus.sync import split_fixture_path
from evm_conformance.errors import FixtureDecodeError
from evm_conformance.parser.normalizer import FixtureNormalizer

logger = logging.getLogger(__name__)


class CatalogBuilder:
    """Normalizes a mirror into a TestCatalog.

    Usage:
        builder = CatalogBuilder("eth_tests_mirror", FixtureNormalizer())
        catalog = builder.build(fixture_paths)
        catalog = builder.build(fixture_paths, previous=load_catalog(path))
    """

    def __init__(self, mirror_dir: str | Path, normalizer: FixtureNormalizer | None = None):
        self.mirror_dir = Path(mirror_dir)
        self.normalizer = normalizer or FixtureNormalizer()

    def build(
        self,
        fixture_paths: list[str],
        previous: TestCatalog | None = None,
    ) -> TestCatalog:
        """Build a catalog from the given mirror-relative fixture paths.

        Args:
            fixture_paths: Fixtures to include, in any order
            previous: Catalog of an earlier build, reused for fixtures whose
                content and normalizer settings are unchanged
        """
        catalog = TestCatalog()
        catalog.normalizer_hash = self.normalizer.settings_hash()
        if previous is not None and previous.normalizer_hash != catalog.normalizer_hash:
            logger.info("Normalizer settings changed; re-parsing every fixture")
            previous = None

        parsed = reused = failed = 0
        for path in sorted(fixture_paths):
            group, name = split_fixture_path(path)

            try:
                content = (self.mirror_dir / path).read_bytes()
            except OSError as e:
                logger.warning("Skipping fixture %s: %s", path, e)
                catalog.add_fixture(path)
                catalog.add_decode_error(path, f"unreadable: {e}")
                failed += 1
                continue

            digest = hashlib.sha256(content).hexdigest()
            catalog.add_fixture(path, digest)

            if previous is not None and previous.fixtures.get(path) == digest:
                self._carry_over(previous, catalog, path, group, name)
                reused += 1
                continue

            try:
                result = self.normalizer.normalize_bytes(path, content)
            except FixtureDecodeError as e:
                logger.warning("Skipping fixture %s: %s", path, e.message)
                catalog.add_decode_error(path, e.message)
                failed += 1
                continue

            for test in result.tests:
                catalog.add_test(test)
            for excluded in result.excluded:
                catalog.add_excluded(excluded)
            parsed += 1

        logger.info(
            "Built catalog: %d fixtures parsed, %d reused, %d failed; %d tests, %d excluded",
            parsed,
            reused,
            failed,
            len(catalog),
            len(catalog.excluded),
        )
        return catalog

    @staticmethod
    def _carry_over(
        previous: TestCatalog, catalog: TestCatalog, path: str, group: str, name: str
    ) -> None:
        for test in previous.sub_group_tests(group, name):
            catalog.add_test(test)
        for excluded in previous.excluded_for(group, name):
            catalog.add_excluded(excluded)
        if path in previous.decode_errors:
            catalog.add_decode_error(path, previous.decode_errors[path])
