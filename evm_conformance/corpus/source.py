"""Upstream corpus sources.

The synchronizer only needs three things from the upstream corpus: a
revision identifier, the current fixture listing, and the bytes of one
fixture. Transport lives entirely behind this seam.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from evm_conformance.errors import CorpusFetchError

logger = logging.getLogger(__name__)


class CorpusSource(Protocol):
    """Protocol for anything that can serve the upstream fixture tree."""

    def revision(self) -> str | None:
        """Identifier of the current upstream state, if the source has one."""
        ...

    def list_fixtures(self) -> list[str]:
        """Relative posix paths of every fixture file, sorted."""
        ...

    def fetch(self, path: str) -> bytes:
        """Raw bytes of one fixture."""
        ...


class LocalDirectorySource:
    """Serves fixtures from a directory tree on disk."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def revision(self) -> str | None:
        return None

    def list_fixtures(self) -> list[str]:
        if not self.root.is_dir():
            raise CorpusFetchError(f"Corpus directory {self.root} does not exist")
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob("*.json")
            if p.is_file()
        )

    def fetch(self, path: str) -> bytes:
        try:
            return (self.root / path).read_bytes()
        except OSError as e:
            raise CorpusFetchError(f"Reading fixture {path}: {e}") from e


class GitCorpusSource(LocalDirectorySource):
    """Serves fixtures from a shallow, sparse checkout of a git repository.

    The checkout is cloned on first use and pulled afterwards. Only
    `subdir` is checked out, which keeps the download small.
    """

    def __init__(self, repo_url: str, checkout_dir: str | Path, subdir: str):
        self.repo_url = repo_url
        self.checkout_dir = Path(checkout_dir)
        self.subdir = subdir
        super().__init__(self.checkout_dir / subdir)
        self._updated = False

    def update(self) -> None:
        """Clone or pull the upstream repository."""
        if (self.checkout_dir / ".git").exists():
            logger.info("Pulling the most recent changes for %s...", self.repo_url)
            self._git("-C", str(self.checkout_dir), "pull", "--ff-only")
        else:
            logger.info("Cloning %s into %s...", self.repo_url, self.checkout_dir)
            self._git(
                "clone",
                "--depth=1",
                "--sparse",
                "--filter=blob:none",
                self.repo_url,
                str(self.checkout_dir),
            )
            logger.info("Setting sparse checkout for %s", self.subdir)
            self._git("-C", str(self.checkout_dir), "sparse-checkout", "set", self.subdir)
        self._updated = True

    def revision(self) -> str | None:
        self._ensure_updated()
        return self._git("-C", str(self.checkout_dir), "rev-parse", "HEAD").strip()

    def list_fixtures(self) -> list[str]:
        self._ensure_updated()
        return super().list_fixtures()

    def fetch(self, path: str) -> bytes:
        self._ensure_updated()
        return super().fetch(path)

    def _ensure_updated(self) -> None:
        if not self._updated:
            self.update()

    @staticmethod
    def _git(*args: str) -> str:
        cmd = ["git", *args]
        try:
            completed = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            raise CorpusFetchError(f"Executing {' '.join(cmd)}: {e}") from e
        if completed.returncode != 0:
            raise CorpusFetchError(
                f"{' '.join(cmd)} exited with {completed.returncode}: "
                f"{completed.stderr.strip()}"
            )
        return completed.stdout
