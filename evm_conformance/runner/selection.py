"""Test selection policy.

Every filter is an independent predicate over (test, ordinal); the policy
selects a test only if all of its predicates hold. Skip-passed is decided
separately because it needs the run history and the execution mode.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from evm_conformance.catalog.models import NormalizedTest
from evm_conformance.db.models import OutcomeKind, RunRecord
from evm_conformance.errors import SelectionError
from evm_conformance.runner.engine import ExecutionMode

logger = logging.getLogger(__name__)

Predicate = Callable[[NormalizedTest, int], bool]

_RANGE_RE = re.compile(r"^\s*(\d+)\s*(?:(?:-|\.\.=?|:)\s*(\d+)\s*)?$")


@dataclass(frozen=True)
class VariantRange:
    """Inclusive range of variant ordinals."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise SelectionError(f"Invalid variant range {self.start}..{self.end}")

    def __contains__(self, ordinal: object) -> bool:
        return isinstance(ordinal, int) and self.start <= ordinal <= self.end

    @classmethod
    def single(cls, ordinal: int) -> "VariantRange":
        return cls(ordinal, ordinal)

    @classmethod
    def parse(cls, text: str) -> "VariantRange":
        """Parse `N`, `A-B`, `A..B`, `A..=B` or `A:B`."""
        match = _RANGE_RE.match(text)
        if match is None:
            raise SelectionError(f"Cannot parse variant range {text!r}")
        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) is not None else start
        return cls(start, end)


def path_predicate(path_filter: str) -> Predicate:
    """Match tests whose `group/sub_group/variant` path starts with the filter.

    Plain string prefix, so `stExample/ad` selects `stExample/add`; end the
    filter with `/` to stop at a segment boundary.
    """
    prefix = path_filter.lstrip("/")

    def matches(test: NormalizedTest, ordinal: int) -> bool:
        return test.path.startswith(prefix)

    return matches


def range_predicate(variant_range: VariantRange) -> Predicate:
    def matches(test: NormalizedTest, ordinal: int) -> bool:
        return ordinal in variant_range

    return matches


def blacklist_predicate(blacklist: frozenset[str]) -> Predicate:
    """Reject tests whose variant id (or full path) is blacklisted."""

    def matches(test: NormalizedTest, ordinal: int) -> bool:
        return test.variant_id not in blacklist and test.path not in blacklist

    return matches


def load_blacklist(path: str | Path) -> frozenset[str]:
    """Read one variant id per line; blank lines and `#` comments are ignored."""
    try:
        lines = Path(path).read_text().splitlines()
    except OSError as e:
        raise SelectionError(f"Reading blacklist {path}: {e}") from e

    entries = set()
    for line in lines:
        entry = line.split("#", 1)[0].strip()
        if entry:
            entries.add(entry)
    logger.info("Loaded %d blacklisted variants from %s", len(entries), path)
    return frozenset(entries)


def satisfies_mode(record: RunRecord | None, mode: ExecutionMode) -> bool:
    """Whether a prior record lets skip-passed reuse it under `mode`.

    Witness runs accept any passing record; full runs only a proof.
    """
    if record is None:
        return False
    if mode is ExecutionMode.FULL:
        return record.outcome is OutcomeKind.PROOF_PASSED
    return record.outcome.passed


@dataclass(frozen=True)
class SelectionPolicy:
    """Parsed and validated selection inputs.

    Attributes:
        path_filter: `group`, `group/sub_group` or a full variant path
        variant_range: Ordinals (position within the fixture) to keep
        blacklist: Variant ids that are never executed
        skip_passed: Reuse prior passing records instead of re-executing
    """

    path_filter: str | None = None
    variant_range: VariantRange | None = None
    blacklist: frozenset[str] = field(default_factory=frozenset)
    skip_passed: bool = False

    def predicates(self) -> list[Predicate]:
        predicates = []
        if self.path_filter:
            predicates.append(path_predicate(self.path_filter))
        if self.variant_range is not None:
            predicates.append(range_predicate(self.variant_range))
        if self.blacklist:
            predicates.append(blacklist_predicate(self.blacklist))
        return predicates

    def selects(self, test: NormalizedTest, ordinal: int) -> bool:
        return all(p(test, ordinal) for p in self.predicates())

    def should_skip(self, record: RunRecord | None, mode: ExecutionMode) -> bool:
        return self.skip_passed and satisfies_mode(record, mode)
