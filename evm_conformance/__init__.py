"""EVM conformance harness.

Mirrors the upstream Ethereum test corpus, normalizes its blockchain
fixtures into engine-ready tests, runs them against a compute engine and
reports per-group pass rates.
"""

__version__ = "0.1.0"
