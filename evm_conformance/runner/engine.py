"""Compute engine call contract and adapters.

The engine takes one NormalizedTest and an execution mode and either
succeeds (with a witness, or with a proof in full mode), fails with a
diagnostic, or terminates abnormally. Abnormal termination is any
exception escaping `execute`.
"""

from __future__ import annotations

import json
import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from evm_conformance.catalog.models import NormalizedTest
from evm_conformance.errors import EngineError

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000


class ExecutionMode(str, Enum):
    """How much work the engine does per variant."""

    WITNESS = "witness"  # generate the execution witness only
    FULL = "full"  # generate a complete proof


class EngineResultKind(str, Enum):
    WITNESS = "witness"
    PROOF = "proof"
    FAILURE = "failure"


@dataclass(frozen=True)
class EngineResult:
    """Result of one engine invocation."""

    kind: EngineResultKind
    diagnostic: str | None = None
    proof: bytes | None = None

    @classmethod
    def witness(cls) -> "EngineResult":
        return cls(kind=EngineResultKind.WITNESS)

    @classmethod
    def with_proof(cls, proof: bytes) -> "EngineResult":
        return cls(kind=EngineResultKind.PROOF, proof=proof)

    @classmethod
    def failure(cls, diagnostic: str) -> "EngineResult":
        return cls(kind=EngineResultKind.FAILURE, diagnostic=diagnostic)


class ComputeEngine(Protocol):
    """Protocol for compute engine adapters. Calls may block for minutes."""

    def execute(self, test: NormalizedTest, mode: ExecutionMode) -> EngineResult:
        ...


class SubprocessEngine:
    """Runs an external engine binary once per variant.

    The normalized test is written to the process's stdin as JSON and
    `--mode witness|full` is appended to the command. Exit status 0 is
    success; in full mode stdout must carry the proof. A non-zero exit is a
    failure with the tail of stderr as diagnostic. Death by signal or
    exceeding `timeout_s` is abnormal termination.
    """

    def __init__(self, command: list[str], timeout_s: float | None = None):
        if not command:
            raise ValueError("SubprocessEngine needs a command")
        self.command = list(command)
        self.timeout_s = timeout_s

    def execute(self, test: NormalizedTest, mode: ExecutionMode) -> EngineResult:
        cmd = [*self.command, "--mode", mode.value]
        payload = json.dumps(test.to_dict(), sort_keys=True).encode()
        logger.debug("Running %s for %s", " ".join(cmd), test.path)

        try:
            completed = subprocess.run(
                cmd,
                input=payload,
                capture_output=True,
                timeout=self.timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise EngineError(f"engine exceeded {self.timeout_s}s timeout") from e
        except OSError as e:
            raise EngineError(f"could not start engine {cmd[0]}: {e}") from e

        if completed.returncode < 0:
            raise EngineError(f"engine terminated by signal {-completed.returncode}")

        if completed.returncode != 0:
            stderr = completed.stderr.decode(errors="replace").strip()
            return EngineResult.failure(
                f"exit status {completed.returncode}: {stderr[-STDERR_TAIL_CHARS:]}"
            )

        if mode is ExecutionMode.FULL:
            proof = completed.stdout.strip()
            if not proof:
                return EngineResult.failure("engine exited cleanly but produced no proof")
            return EngineResult.with_proof(proof)
        return EngineResult.witness()


class MockEngine:
    """Scripted engine for tests and dry runs.

    Args:
        outcomes: Map of variant path or variant id to the EngineResult to
            return, or to an exception to raise
        on_execute: Hook called with each test before it "runs"
        delay_s: Simulated execution time
    """

    def __init__(
        self,
        outcomes: dict[str, EngineResult | Exception] | None = None,
        on_execute: Callable[[NormalizedTest], None] | None = None,
        delay_s: float = 0.0,
    ):
        self.outcomes = outcomes or {}
        self.on_execute = on_execute
        self.delay_s = delay_s
        self.calls: list[tuple[str, ExecutionMode]] = []
        self._lock = threading.Lock()

    @property
    def executed_paths(self) -> list[str]:
        with self._lock:
            return [path for path, _ in self.calls]

    def execute(self, test: NormalizedTest, mode: ExecutionMode) -> EngineResult:
        with self._lock:
            self.calls.append((test.path, mode))
        if self.on_execute is not None:
            self.on_execute(test)
        if self.delay_s:
            time.sleep(self.delay_s)

        outcome = self.outcomes.get(test.path, self.outcomes.get(test.variant_id))
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            if mode is ExecutionMode.FULL:
                return EngineResult.with_proof(b"mock-proof")
            return EngineResult.witness()
        return outcome
