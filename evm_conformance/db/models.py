"""Database models for run history."""

from dataclasses import dataclass
from enum import Enum


class OutcomeKind(str, Enum):
    """Latest known outcome of a variant."""

    NOT_RUN = "not_run"
    WITNESS_PASSED = "witness_passed"
    PROOF_PASSED = "proof_passed"
    FAILED = "failed"
    IGNORED = "ignored"

    @property
    def passed(self) -> bool:
        return self in (OutcomeKind.WITNESS_PASSED, OutcomeKind.PROOF_PASSED)


@dataclass
class RunRecord:
    """Latest execution outcome of one variant.

    Keyed by the variant's `group/sub_group/variant` path. Updated in place
    on every execution of the same variant.
    """

    variant_path: str
    outcome: OutcomeKind
    timestamp: str
    mode: str | None = None  # 'witness', 'full'
    diagnostic: str | None = None
    runtime_ms: int | None = None
    run_id: str | None = None

    @property
    def variant_id(self) -> str:
        return self.variant_path.rsplit("/", 1)[-1]

    def to_dict(self) -> dict:
        return {
            "variant_path": self.variant_path,
            "outcome": self.outcome.value,
            "timestamp": self.timestamp,
            "mode": self.mode,
            "diagnostic": self.diagnostic,
            "runtime_ms": self.runtime_ms,
            "run_id": self.run_id,
        }


@dataclass
class TestRunRecord:
    """Bookkeeping for one orchestrator run."""

    __test__ = False  # not a pytest test class

    run_id: str
    mode: str
    status: str  # 'running', 'completed', 'interrupted', 'aborted'
    config_json: str | None = None
    selected: int = 0
    executed: int = 0
    carried_forward: int = 0
    passed: int = 0
    failed: int = 0
    ignored: int = 0
    started_at: str | None = None
    completed_at: str | None = None
