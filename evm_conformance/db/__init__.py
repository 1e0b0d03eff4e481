from evm_conformance.db.history import InMemoryRunHistory, RunHistoryStore, SqliteRunHistory
from evm_conformance.db.models import OutcomeKind, RunRecord, TestRunRecord
from evm_conformance.db.repo import Repository

__all__ = [
    "InMemoryRunHistory",
    "OutcomeKind",
    "Repository",
    "RunHistoryStore",
    "RunRecord",
    "SqliteRunHistory",
    "TestRunRecord",
]
