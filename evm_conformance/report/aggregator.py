"""Fold a run's outcomes into per-sub-group and per-group statistics.

Only outcomes produced in, or carried forward into, the given run are
counted. `total` is every attempted variant, Ignored ones included;
`ignored` is reported alongside it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from evm_conformance.catalog.models import TestCatalog
from evm_conformance.db.models import OutcomeKind
from evm_conformance.runner.orchestrator import RunResult, VariantOutcome


def percent(passed: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(100.0 * passed / total, 2)


@dataclass
class SubGroupStats:
    """Stats for one fixture's variants within a run."""

    name: str
    outcomes: list[VariantOutcome] = field(default_factory=list)

    def _count(self, kind: OutcomeKind) -> int:
        return sum(1 for o in self.outcomes if o.outcome is kind)

    @property
    def passed(self) -> int:
        return sum(1 for o in self.outcomes if o.outcome.passed)

    @property
    def failed(self) -> int:
        return self._count(OutcomeKind.FAILED)

    @property
    def ignored(self) -> int:
        return self._count(OutcomeKind.IGNORED)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def percent(self) -> float:
        return percent(self.passed, self.total)


@dataclass
class GroupStats:
    """Sum over a group's sub-groups."""

    name: str
    sub_groups: list[SubGroupStats] = field(default_factory=list)

    @property
    def passed(self) -> int:
        return sum(s.passed for s in self.sub_groups)

    @property
    def failed(self) -> int:
        return sum(s.failed for s in self.sub_groups)

    @property
    def ignored(self) -> int:
        return sum(s.ignored for s in self.sub_groups)

    @property
    def total(self) -> int:
        return sum(s.total for s in self.sub_groups)

    @property
    def percent(self) -> float:
        return percent(self.passed, self.total)


def aggregate(result: RunResult, catalog: TestCatalog) -> list[GroupStats]:
    """Group a run's outcomes following the catalog's group/sub-group order.

    Sub-groups (and groups) with no outcome in this run are omitted.
    """
    by_path = {o.test.path: o for o in result.outcomes}
    groups = []
    for group_name, sub_groups in catalog.groups():
        group = GroupStats(name=group_name)
        for sub_name, tests in sub_groups:
            outcomes = [by_path[t.path] for t in tests if t.path in by_path]
            if outcomes:
                group.sub_groups.append(SubGroupStats(name=sub_name, outcomes=outcomes))
        if group.sub_groups:
            groups.append(group)
    return groups


def summary_contract(groups: list[GroupStats]) -> dict[str, Any]:
    """Report data contract: {group: {passed, total, percent, sub_groups: {...}}}."""
    return {
        g.name: {
            "passed": g.passed,
            "total": g.total,
            "percent": g.percent,
            "sub_groups": {
                s.name: {"passed": s.passed, "total": s.total, "percent": s.percent}
                for s in g.sub_groups
            },
        }
        for g in groups
    }


def detailed_contract(groups: list[GroupStats]) -> dict[str, Any]:
    """Every selected test with its individual outcome, plus overall counts."""
    tests = []
    for g in groups:
        for s in g.sub_groups:
            for o in s.outcomes:
                tests.append(
                    {
                        "path": o.test.path,
                        "group": g.name,
                        "sub_group": s.name,
                        "variant_id": o.test.variant_id,
                        "outcome": o.outcome.value,
                        "passed": o.outcome.passed,
                        "policy_altered": o.test.policy_altered,
                        "carried_forward": o.carried_forward,
                        "diagnostic": o.record.diagnostic,
                    }
                )
    passed = sum(g.passed for g in groups)
    total = sum(g.total for g in groups)
    return {
        "passed": passed,
        "total": total,
        "ignored": sum(g.ignored for g in groups),
        "percent": percent(passed, total),
        "tests": tests,
    }
