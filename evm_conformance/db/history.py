"""Run history stores.

The orchestrator reads prior records when a run starts and writes each new
record as soon as its variant finishes. Both stores implement the same
protocol so tests can swap in the in-memory one.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Protocol

from evm_conformance.db.models import RunRecord, TestRunRecord
from evm_conformance.db.repo import Repository


class RunHistoryStore(Protocol):
    """Durable mapping from variant path to its latest RunRecord."""

    def get(self, variant_path: str) -> RunRecord | None:
        ...

    def put(self, record: RunRecord) -> None:
        """Upsert one record. Raises PersistenceError on failure."""
        ...

    def all(self) -> list[RunRecord]:
        ...

    def begin_run(self, run: TestRunRecord) -> None:
        ...

    def finish_run(self, run: TestRunRecord) -> None:
        ...


class InMemoryRunHistory:
    """Dict-backed history, for tests and dry runs."""

    def __init__(self, records: list[RunRecord] | None = None):
        self._records: dict[str, RunRecord] = {r.variant_path: r for r in records or []}
        self.runs: dict[str, TestRunRecord] = {}
        self._lock = threading.Lock()

    def get(self, variant_path: str) -> RunRecord | None:
        with self._lock:
            return self._records.get(variant_path)

    def put(self, record: RunRecord) -> None:
        with self._lock:
            self._records[record.variant_path] = record

    def all(self) -> list[RunRecord]:
        with self._lock:
            return [self._records[k] for k in sorted(self._records)]

    def begin_run(self, run: TestRunRecord) -> None:
        self.runs[run.run_id] = run

    def finish_run(self, run: TestRunRecord) -> None:
        self.runs[run.run_id] = run


class SqliteRunHistory:
    """History persisted in the SQLite repository.

    Usage:
        with SqliteRunHistory("run_history.db") as history:
            orchestrator = Orchestrator(catalog, engine, history)
            ...
    """

    def __init__(self, db_path: str | Path | Repository = "run_history.db"):
        if isinstance(db_path, Repository):
            self.repo = db_path
            self._owns_repo = False
        else:
            self.repo = Repository(db_path)
            self._owns_repo = True

    def connect(self) -> None:
        if not self.repo.connected:
            self.repo.connect()

    def close(self) -> None:
        if self._owns_repo:
            self.repo.close()

    def __enter__(self) -> "SqliteRunHistory":
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def get(self, variant_path: str) -> RunRecord | None:
        return self.repo.get_run_record(variant_path)

    def put(self, record: RunRecord) -> None:
        self.repo.upsert_run_record(record)

    def all(self) -> list[RunRecord]:
        return self.repo.list_run_records()

    def begin_run(self, run: TestRunRecord) -> None:
        self.repo.insert_test_run(run)

    def finish_run(self, run: TestRunRecord) -> None:
        self.repo.update_test_run(run)
