"""Mirror the upstream corpus locally and report what changed.

The mirror directory holds the fixture files plus a manifest recording the
upstream revision and a sha256 per fixture from the last *complete*
synchronization. A sync first stages every changed fixture in a scratch
directory; only once all fetches succeeded are the staged files moved into
place and the manifest rewritten. A failed sync therefore leaves the
previous mirror and manifest exactly as they were.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from evm_conformance.corpus.source import CorpusSource
from evm_conformance.errors import CorpusFetchError

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = ".manifest.json"
ROOT_GROUP = "_root"


def split_fixture_path(path: str) -> tuple[str, str]:
    """Split a relative fixture path into (group, fixture name).

    The group is the fixture's parent folder (posix, possibly nested) and the
    fixture name is the file stem.
    """
    parent, _, file_name = path.rpartition("/")
    stem = file_name[:-5] if file_name.endswith(".json") else file_name
    return (parent or ROOT_GROUP), stem


@dataclass
class SyncDiff:
    """Outcome of one synchronization."""

    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    revision: str | None = None
    no_fetch: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.added or self.modified or self.removed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "modified": self.modified,
            "removed": self.removed,
            "revision": self.revision,
            "no_fetch": self.no_fetch,
        }


class CorpusSynchronizer:
    """Keeps a local mirror in step with a CorpusSource.

    Usage:
        sync = CorpusSynchronizer("eth_tests_mirror", GitCorpusSource(...))
        diff = sync.sync()
        diff = sync.sync(no_fetch=True)  # reparse the mirror as-is
    """

    def __init__(self, mirror_dir: str | Path, source: CorpusSource | None = None):
        self.mirror_dir = Path(mirror_dir)
        self.source = source

    @property
    def manifest_path(self) -> Path:
        return self.mirror_dir / MANIFEST_FILE_NAME

    def load_manifest(self) -> dict[str, Any]:
        """Read the manifest of the last complete sync (empty if none)."""
        if not self.manifest_path.exists():
            return {"revision": None, "files": {}}
        try:
            return json.loads(self.manifest_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise CorpusFetchError(f"Reading manifest {self.manifest_path}: {e}") from e

    def mirror_fixtures(self) -> list[str]:
        """Relative paths of every fixture file currently in the mirror."""
        if not self.mirror_dir.is_dir():
            return []
        paths = []
        for p in self.mirror_dir.rglob("*.json"):
            rel = p.relative_to(self.mirror_dir)
            if p.is_file() and not any(part.startswith(".") for part in rel.parts):
                paths.append(rel.as_posix())
        return sorted(paths)

    def sync(self, no_fetch: bool = False) -> SyncDiff:
        """Bring the mirror up to date and return the diff.

        Args:
            no_fetch: Skip the source and treat the mirror as authoritative

        Raises:
            CorpusFetchError: If listing, fetching or writing fails. The
                previous mirror is left untouched.
        """
        manifest = self.load_manifest()

        if no_fetch:
            logger.info("No-fetch mode: using the existing mirror at %s", self.mirror_dir)
            return SyncDiff(revision=manifest.get("revision"), no_fetch=True)

        if self.source is None:
            raise CorpusFetchError("No corpus source configured")

        old_files: dict[str, str] = manifest.get("files", {})
        revision = self.source.revision()
        listing = self.source.list_fixtures()

        self.mirror_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=self.mirror_dir))
        try:
            new_files, diff = self._stage(listing, old_files, staging)
            diff.revision = revision
            self._apply(staging, diff)
            self._write_manifest({"revision": revision, "files": new_files})
        except OSError as e:
            raise CorpusFetchError(f"Updating mirror {self.mirror_dir}: {e}") from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info(
            "Synchronized corpus (revision %s): %d added, %d modified, %d removed",
            revision,
            len(diff.added),
            len(diff.modified),
            len(diff.removed),
        )
        return diff

    def _stage(
        self, listing: list[str], old_files: dict[str, str], staging: Path
    ) -> tuple[dict[str, str], SyncDiff]:
        new_files: dict[str, str] = {}
        diff = SyncDiff()

        for path in listing:
            content = self.source.fetch(path)
            digest = hashlib.sha256(content).hexdigest()
            new_files[path] = digest

            mirrored = (self.mirror_dir / path).exists()
            if path in old_files and old_files[path] == digest and mirrored:
                continue

            staged = staging / path
            staged.parent.mkdir(parents=True, exist_ok=True)
            staged.write_bytes(content)

            if path in old_files and mirrored:
                diff.modified.append(path)
            else:
                diff.added.append(path)

        diff.removed = sorted(set(old_files) - set(new_files))
        return new_files, diff

    def _apply(self, staging: Path, diff: SyncDiff) -> None:
        for path in diff.added + diff.modified:
            target = self.mirror_dir / path
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(staging / path, target)

        for path in diff.removed:
            target = self.mirror_dir / path
            if target.exists():
                target.unlink()

    def _write_manifest(self, manifest: dict[str, Any]) -> None:
        tmp = self.manifest_path.with_suffix(".tmp")
        tmp.write_text(json.dumps(manifest, indent=2, sort_keys=True))
        os.replace(tmp, self.manifest_path)
