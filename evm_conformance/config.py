"""Configuration for corpus synchronization and test runs."""

import os
from dataclasses import dataclass, field

ETH_TESTS_REPO_URL = "https://github.com/ethereum/tests.git"

# Maximum value representable by the engine's 32-bit gas registers.
U32_MAX = 0xFFFFFFFF

ETHEREUM_CHAIN_ID = 1


@dataclass
class CorpusConfig:
    """Configuration for mirroring and parsing the upstream corpus.

    Attributes:
        mirror_dir: Local cache of the upstream fixture tree
        catalog_path: Where the normalized catalog is written
        repo_url: Upstream git repository
        repo_checkout_dir: Working copy of the upstream repository
        corpus_subdir: Directory inside the checkout holding the fixtures
        no_fetch: Treat the existing mirror as authoritative
    """

    mirror_dir: str = "eth_tests_mirror"
    catalog_path: str = "generation_inputs/catalog.json"
    repo_url: str = ETH_TESTS_REPO_URL
    repo_checkout_dir: str = "eth_tests"
    corpus_subdir: str = "BlockchainTests/GeneralStateTests"
    no_fetch: bool = False

    @classmethod
    def from_env(cls, **overrides) -> "CorpusConfig":
        """Build a config from EVM_CONFORMANCE_* environment variables."""
        config = cls()
        if os.environ.get("EVM_CONFORMANCE_MIRROR"):
            config.mirror_dir = os.environ["EVM_CONFORMANCE_MIRROR"]
        if os.environ.get("EVM_CONFORMANCE_CATALOG"):
            config.catalog_path = os.environ["EVM_CONFORMANCE_CATALOG"]
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        return config

    def to_dict(self) -> dict:
        return {
            "mirror_dir": self.mirror_dir,
            "catalog_path": self.catalog_path,
            "repo_url": self.repo_url,
            "repo_checkout_dir": self.repo_checkout_dir,
            "corpus_subdir": self.corpus_subdir,
            "no_fetch": self.no_fetch,
        }

    def content_hash(self) -> str:
        """Compute a hash of the settings that decide which corpus is mirrored."""
        import hashlib
        import json

        content = {
            "repo_url": self.repo_url,
            "corpus_subdir": self.corpus_subdir,
        }
        content_str = json.dumps(content, sort_keys=True)
        return hashlib.sha256(content_str.encode()).hexdigest()[:16]


@dataclass
class RunnerConfig:
    """Configuration for executing the catalog against the compute engine.

    Attributes:
        db_path: SQLite database holding run history
        num_workers: Bound on concurrent engine invocations
        engine_command: Command line of the external engine binary
        engine_timeout_s: Optional wall-clock bound per engine call
        report_dir: Where rendered reports are written
    """

    db_path: str = "run_history.db"
    num_workers: int = 1
    engine_command: list[str] = field(default_factory=list)
    engine_timeout_s: float | None = None
    report_dir: str = "reports"

    def __post_init__(self) -> None:
        if self.num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {self.num_workers}")

    @classmethod
    def from_env(cls, **overrides) -> "RunnerConfig":
        """Build a config from EVM_CONFORMANCE_* environment variables."""
        config = cls()
        if os.environ.get("EVM_CONFORMANCE_DB"):
            config.db_path = os.environ["EVM_CONFORMANCE_DB"]
        if os.environ.get("EVM_CONFORMANCE_ENGINE_CMD"):
            config.engine_command = os.environ["EVM_CONFORMANCE_ENGINE_CMD"].split()
        if os.environ.get("EVM_CONFORMANCE_WORKERS"):
            config.num_workers = int(os.environ["EVM_CONFORMANCE_WORKERS"])
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        config.__post_init__()
        return config

    def to_dict(self) -> dict:
        return {
            "db_path": self.db_path,
            "num_workers": self.num_workers,
            "engine_command": list(self.engine_command),
            "engine_timeout_s": self.engine_timeout_s,
            "report_dir": self.report_dir,
        }

    def content_hash(self) -> str:
        """Compute a hash of the execution-relevant settings."""
        import hashlib
        import json

        content = {
            "engine_command": self.engine_command,
            "engine_timeout_s": self.engine_timeout_s,
        }
        content_str = json.dumps(content, sort_keys=True)
        return hashlib.sha256(content_str.encode()).hexdigest()[:16]
