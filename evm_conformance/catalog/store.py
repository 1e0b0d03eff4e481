"""Reading and writing the catalog file.

The catalog is written as canonical JSON (sorted object keys, hierarchy in
catalog order) so that re-parsing an unchanged mirror yields the same bytes.
"""

import json
import logging
import os
from pathlib import Path

from evm_conformance.catalog.models import TestCatalog

logger = logging.getLogger(__name__)


def dumps_catalog(catalog: TestCatalog) -> str:
    return json.dumps(catalog.to_dict(), sort_keys=True, indent=1) + "\n"


def save_catalog(catalog: TestCatalog, path: str | Path) -> Path:
    """Atomically replace the catalog file at `path`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(dumps_catalog(catalog))
    os.replace(tmp, path)
    logger.info(
        "Wrote catalog with %d tests (%d excluded, %d decode errors) to %s",
        len(catalog),
        len(catalog.excluded),
        len(catalog.decode_errors),
        path,
    )
    return path


def load_catalog(path: str | Path) -> TestCatalog:
    """Load a catalog written by save_catalog."""
    with open(path, encoding="utf-8") as f:
        return TestCatalog.from_dict(json.load(f))
