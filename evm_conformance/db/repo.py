"""Repository pattern for run-history persistence."""

import sqlite3
from pathlib import Path
from typing import Any

from evm_conformance.db.models import OutcomeKind, RunRecord, TestRunRecord
from evm_conformance.errors import PersistenceError

SCHEMA_VERSION = 1


class Repository:
    """SQLite repository for run records and run bookkeeping."""

    def __init__(self, db_path: str | Path = "run_history.db"):
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self, enable_wal: bool = True) -> None:
        """Open database connection and ensure schema exists.

        Args:
            enable_wal: Enable WAL mode so readers never block the runner
        """
        try:
            if self.db_path.parent != Path("."):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, timeout=30.0)
            self._conn.row_factory = sqlite3.Row
            if enable_wal:
                self._conn.execute("PRAGMA journal_mode=WAL")
                self._conn.execute("PRAGMA busy_timeout=30000")
            self._ensure_schema()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Opening run history {self.db_path}: {e}") from e

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "Repository":
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    def _ensure_schema(self) -> None:
        """Create schema if it doesn't exist."""
        schema_path = Path(__file__).parent / "schema.sql"
        schema_sql = schema_path.read_text()

        cursor = self.conn.cursor()
        cursor.executescript(schema_sql)

        cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
        row = cursor.fetchone()
        if row is None:
            cursor.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

        self.conn.commit()

    # --- Run record operations ---

    def upsert_run_record(self, record: RunRecord) -> None:
        """Insert or replace the latest record for a variant."""
        try:
            self.conn.execute(
                """
                INSERT INTO run_records (
                    variant_path, outcome, timestamp, mode, diagnostic, runtime_ms, run_id
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(variant_path) DO UPDATE SET
                    outcome = excluded.outcome,
                    timestamp = excluded.timestamp,
                    mode = excluded.mode,
                    diagnostic = excluded.diagnostic,
                    runtime_ms = excluded.runtime_ms,
                    run_id = excluded.run_id
                """,
                (
                    record.variant_path,
                    record.outcome.value,
                    record.timestamp,
                    record.mode,
                    record.diagnostic,
                    record.runtime_ms,
                    record.run_id,
                ),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Writing run record for {record.variant_path}: {e}") from e

    def get_run_record(self, variant_path: str) -> RunRecord | None:
        """Get the latest record for a variant."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM run_records WHERE variant_path = ?", (variant_path,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_run_record(row)

    def list_run_records(self, outcome: OutcomeKind | None = None) -> list[RunRecord]:
        """List records, optionally filtered by outcome."""
        cursor = self.conn.cursor()
        if outcome:
            cursor.execute(
                "SELECT * FROM run_records WHERE outcome = ? ORDER BY variant_path",
                (outcome.value,),
            )
        else:
            cursor.execute("SELECT * FROM run_records ORDER BY variant_path")
        return [self._row_to_run_record(row) for row in cursor.fetchall()]

    def count_run_records_by_outcome(self) -> dict[str, int]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT outcome, COUNT(*) AS n FROM run_records GROUP BY outcome")
        return {row["outcome"]: row["n"] for row in cursor.fetchall()}

    def _row_to_run_record(self, row: sqlite3.Row) -> RunRecord:
        return RunRecord(
            variant_path=row["variant_path"],
            outcome=OutcomeKind(row["outcome"]),
            timestamp=row["timestamp"],
            mode=row["mode"],
            diagnostic=row["diagnostic"],
            runtime_ms=row["runtime_ms"],
            run_id=row["run_id"],
        )

    # --- Test run operations ---

    def insert_test_run(self, run: TestRunRecord) -> int:
        """Insert a new run. Returns the new ID."""
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                INSERT INTO test_runs (run_id, mode, status, config_json, selected, started_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (run.run_id, run.mode, run.status, run.config_json, run.selected, run.started_at),
            )
            self.conn.commit()
            return cursor.lastrowid  # type: ignore
        except sqlite3.Error as e:
            raise PersistenceError(f"Recording run {run.run_id}: {e}") from e

    def update_test_run(self, run: TestRunRecord) -> None:
        """Update a run's status and counters."""
        try:
            self.conn.execute(
                """
                UPDATE test_runs
                SET status = ?, selected = ?, executed = ?, carried_forward = ?,
                    passed = ?, failed = ?, ignored = ?, completed_at = ?
                WHERE run_id = ?
                """,
                (
                    run.status,
                    run.selected,
                    run.executed,
                    run.carried_forward,
                    run.passed,
                    run.failed,
                    run.ignored,
                    run.completed_at,
                    run.run_id,
                ),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Updating run {run.run_id}: {e}") from e

    def get_test_run(self, run_id: str) -> TestRunRecord | None:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM test_runs WHERE run_id = ?", (run_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_test_run(row)

    def list_test_runs(self, limit: int = 20) -> list[TestRunRecord]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM test_runs ORDER BY id DESC LIMIT ?", (limit,))
        return [self._row_to_test_run(row) for row in cursor.fetchall()]

    def _row_to_test_run(self, row: sqlite3.Row) -> TestRunRecord:
        return TestRunRecord(
            run_id=row["run_id"],
            mode=row["mode"],
            status=row["status"],
            config_json=row["config_json"],
            selected=row["selected"],
            executed=row["executed"],
            carried_forward=row["carried_forward"],
            passed=row["passed"],
            failed=row["failed"],
            ignored=row["ignored"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )
