from evm_conformance.runner.engine import (
    ComputeEngine,
    EngineResult,
    EngineResultKind,
    ExecutionMode,
    MockEngine,
    SubprocessEngine,
)
from evm_conformance.runner.orchestrator import Orchestrator, RunResult, VariantOutcome, classify
from evm_conformance.runner.selection import (
    SelectionPolicy,
    VariantRange,
    load_blacklist,
    satisfies_mode,
)

__all__ = [
    "ComputeEngine",
    "EngineResult",
    "EngineResultKind",
    "ExecutionMode",
    "MockEngine",
    "Orchestrator",
    "RunResult",
    "SelectionPolicy",
    "SubprocessEngine",
    "VariantOutcome",
    "VariantRange",
    "classify",
    "load_blacklist",
    "satisfies_mode",
]
