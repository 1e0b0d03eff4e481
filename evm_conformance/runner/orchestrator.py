"""Execution orchestrator.

Selects variants from the catalog, dispatches them to the compute engine
over a bounded worker pool, classifies each outcome and writes its
RunRecord to the history store as soon as the variant completes.

Usage:
    orchestrator = Orchestrator(catalog, engine, history, RunnerConfig(num_workers=4))
    result = orchestrator.run(SelectionPolicy(path_filter="stExample"), ExecutionMode.WITNESS)
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone

from evm_conformance.catalog.models import NormalizedTest, TestCatalog
from evm_conformance.config import RunnerConfig
from evm_conformance.db.history import RunHistoryStore
from evm_conformance.db.models import OutcomeKind, RunRecord, TestRunRecord
from evm_conformance.errors import PersistenceError
from evm_conformance.runner.engine import (
    ComputeEngine,
    EngineResult,
    EngineResultKind,
    ExecutionMode,
)
from evm_conformance.runner.selection import SelectionPolicy

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def classify(
    test: NormalizedTest,
    mode: ExecutionMode,
    result: EngineResult | None,
    error: BaseException | None = None,
) -> tuple[OutcomeKind, str | None]:
    """Classify one engine invocation.

    Args:
        test: The variant that was executed
        mode: Execution mode of the run
        result: What the engine returned, None if it terminated abnormally
        error: The exception raised by an abnormal termination

    Returns:
        (outcome, diagnostic). A failure on a policy-altered variant is
        Ignored rather than Failed.
    """
    if error is not None:
        diagnostic = f"abnormal termination: {type(error).__name__}: {error}"
    elif result is None:
        diagnostic = "engine returned no result"
    elif result.kind is EngineResultKind.PROOF:
        return OutcomeKind.PROOF_PASSED, None
    elif result.kind is EngineResultKind.WITNESS and mode is ExecutionMode.WITNESS:
        return OutcomeKind.WITNESS_PASSED, None
    elif result.kind is EngineResultKind.WITNESS:
        diagnostic = "no proof produced in full mode"
    else:
        diagnostic = result.diagnostic or "engine reported failure"

    if test.policy_altered:
        return OutcomeKind.IGNORED, diagnostic
    return OutcomeKind.FAILED, diagnostic


@dataclass
class VariantOutcome:
    """Outcome of one selected variant in a run."""

    test: NormalizedTest
    record: RunRecord
    carried_forward: bool = False

    @property
    def outcome(self) -> OutcomeKind:
        return self.record.outcome


@dataclass
class RunResult:
    """Everything one orchestrator run produced or carried forward.

    `outcomes` follows catalog order regardless of completion order.
    """

    run_id: str
    mode: ExecutionMode
    outcomes: list[VariantOutcome] = field(default_factory=list)
    interrupted: bool = False
    not_started: int = 0

    @property
    def records(self) -> list[RunRecord]:
        return [o.record for o in self.outcomes]

    @property
    def executed(self) -> int:
        return sum(1 for o in self.outcomes if not o.carried_forward)

    @property
    def carried_forward(self) -> int:
        return sum(1 for o in self.outcomes if o.carried_forward)

    def count(self, outcome: OutcomeKind) -> int:
        return sum(1 for o in self.outcomes if o.outcome is outcome)

    @property
    def passed(self) -> int:
        return sum(1 for o in self.outcomes if o.outcome.passed)

    @property
    def failed(self) -> int:
        return self.count(OutcomeKind.FAILED)

    @property
    def ignored(self) -> int:
        return self.count(OutcomeKind.IGNORED)

    def outcome_for(self, path: str) -> VariantOutcome | None:
        for o in self.outcomes:
            if o.test.path == path:
                return o
        return None


@dataclass
class _Execution:
    result: EngineResult | None
    error: BaseException | None
    runtime_ms: int


class Orchestrator:
    """Runs a selection of the catalog against a compute engine.

    The history store is only touched from the thread calling `run`;
    workers hand their results back through futures.
    """

    def __init__(
        self,
        catalog: TestCatalog,
        engine: ComputeEngine,
        history: RunHistoryStore,
        config: RunnerConfig | None = None,
    ):
        self.catalog = catalog
        self.engine = engine
        self.history = history
        self.config = config or RunnerConfig()
        self._stop = threading.Event()

    def request_stop(self) -> None:
        """Stop submitting variants. In-flight ones finish and are recorded."""
        if not self._stop.is_set():
            logger.warning("Stop requested; waiting for in-flight variants to finish")
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def select(self, policy: SelectionPolicy) -> list[NormalizedTest]:
        """Catalog tests matching every filter of the policy, in catalog order."""
        return [
            test
            for test in self.catalog.iter_tests()
            if policy.selects(test, self.catalog.ordinal(test))
        ]

    def run(self, policy: SelectionPolicy, mode: ExecutionMode) -> RunResult:
        """Execute the selected variants and record their outcomes.

        Raises:
            PersistenceError: A run record could not be written; the run is
                aborted after in-flight variants finish.
        """
        self._stop.clear()
        run_id = f"run_{uuid.uuid4().hex[:12]}"
        selected = self.select(policy)

        outcomes: dict[str, VariantOutcome] = {}
        to_execute: list[NormalizedTest] = []
        for test in selected:
            prior = self.history.get(test.path)
            if policy.should_skip(prior, mode):
                outcomes[test.path] = VariantOutcome(test, prior, carried_forward=True)
            else:
                to_execute.append(test)

        logger.info(
            f"Run {run_id} ({mode.value}): {len(selected)} selected, "
            f"{len(to_execute)} to execute, {len(outcomes)} carried forward, "
            f"{self.config.num_workers} worker(s)"
        )

        run = TestRunRecord(
            run_id=run_id,
            mode=mode.value,
            status="running",
            config_json=json.dumps(
                {
                    "runner": self.config.to_dict(),
                    "engine_hash": self.config.content_hash(),
                    "path_filter": policy.path_filter,
                    "variant_range": (
                        [policy.variant_range.start, policy.variant_range.end]
                        if policy.variant_range
                        else None
                    ),
                    "blacklist_size": len(policy.blacklist),
                    "skip_passed": policy.skip_passed,
                },
                sort_keys=True,
            ),
            selected=len(selected),
            carried_forward=len(outcomes),
            started_at=_now(),
        )
        self.history.begin_run(run)

        try:
            not_started = self._dispatch(run_id, to_execute, mode, outcomes)
        except PersistenceError:
            run.status = "aborted"
            self._finish(run, outcomes)
            raise

        result = RunResult(
            run_id=run_id,
            mode=mode,
            outcomes=[outcomes[t.path] for t in selected if t.path in outcomes],
            interrupted=not_started > 0,
            not_started=not_started,
        )
        run.status = "interrupted" if result.interrupted else "completed"
        self._finish(run, outcomes)

        logger.info(
            f"Run {run_id} {run.status}: {result.passed} passed, {result.failed} failed, "
            f"{result.ignored} ignored, {not_started} not started"
        )
        return result

    def _dispatch(
        self,
        run_id: str,
        to_execute: list[NormalizedTest],
        mode: ExecutionMode,
        outcomes: dict[str, VariantOutcome],
    ) -> int:
        """Feed the worker pool. Returns how many variants were never started."""
        pending = iter(to_execute)
        remaining = len(to_execute)
        in_flight: dict[Future, NormalizedTest] = {}
        num_workers = self.config.num_workers
        done_count = 0

        with ThreadPoolExecutor(max_workers=num_workers) as executor:
            while True:
                while not self._stop.is_set() and len(in_flight) < num_workers:
                    test = next(pending, None)
                    if test is None:
                        break
                    remaining -= 1
                    in_flight[executor.submit(self._execute, test, mode)] = test

                if not in_flight:
                    break

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    test = in_flight.pop(future)
                    execution = future.result()
                    outcome, diagnostic = classify(
                        test, mode, execution.result, execution.error
                    )
                    record = RunRecord(
                        variant_path=test.path,
                        outcome=outcome,
                        timestamp=_now(),
                        mode=mode.value,
                        diagnostic=diagnostic,
                        runtime_ms=execution.runtime_ms,
                        run_id=run_id,
                    )
                    try:
                        self.history.put(record)
                    except PersistenceError:
                        self._stop.set()
                        logger.error(f"Could not persist {test.path}; aborting run")
                        raise
                    outcomes[test.path] = VariantOutcome(test, record)

                    done_count += 1
                    level = logging.INFO if outcome.passed else logging.WARNING
                    logger.log(
                        level,
                        f"[{done_count}/{len(to_execute)}] {test.path}: {outcome.value}"
                        + (f" ({diagnostic})" if diagnostic else ""),
                    )

        return remaining

    def _execute(self, test: NormalizedTest, mode: ExecutionMode) -> _Execution:
        """Worker body. Any exception from the engine is an abnormal termination."""
        start = time.monotonic()
        try:
            result = self.engine.execute(test, mode)
            error = None
        except Exception as e:
            logger.debug(f"Engine terminated abnormally on {test.path}", exc_info=True)
            result, error = None, e
        runtime_ms = int((time.monotonic() - start) * 1000)
        return _Execution(result=result, error=error, runtime_ms=runtime_ms)

    def _finish(self, run: TestRunRecord, outcomes: dict[str, VariantOutcome]) -> None:
        values = list(outcomes.values())
        run.executed = sum(1 for o in values if not o.carried_forward)
        run.passed = sum(1 for o in values if o.outcome.passed)
        run.failed = sum(1 for o in values if o.outcome is OutcomeKind.FAILED)
        run.ignored = sum(1 for o in values if o.outcome is OutcomeKind.IGNORED)
        run.completed_at = _now()
        try:
            self.history.finish_run(run)
        except PersistenceError as e:
            if run.status != "aborted":
                raise
            logger.error(f"Could not record aborted run {run.run_id}: {e}")
