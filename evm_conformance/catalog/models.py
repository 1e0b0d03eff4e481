"""Normalized test records and the test catalog.

A NormalizedTest is the engine-ready form of one variant. The catalog
indexes them as group -> sub-group (one fixture file) -> variant, in
insertion order, and carries the ledgers of variants that were excluded
and fixtures that failed to decode.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from evm_conformance.catalog.variant import VariantId


class ExclusionReason(str, Enum):
    """Why a variant never entered the catalog."""

    NOT_PROVABLE = "not_provable"  # a transaction's gas_used overflows u32
    NO_VALID_BLOCK = "no_valid_block"  # every block expects an exception


@dataclass(frozen=True)
class NormalizedTransaction:
    """One transaction of a variant's block, recovered from its RLP."""

    index: int
    tx_type: int
    nonce: int
    gas_limit: int
    gas_used: int
    to: str | None
    value: int
    raw: str  # hex of the signed transaction bytes

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "tx_type": self.tx_type,
            "nonce": self.nonce,
            "gas_limit": self.gas_limit,
            "gas_used": self.gas_used,
            "to": self.to,
            "value": self.value,
            "raw": self.raw,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NormalizedTransaction":
        return cls(
            index=data["index"],
            tx_type=data["tx_type"],
            nonce=data["nonce"],
            gas_limit=data["gas_limit"],
            gas_used=data["gas_used"],
            to=data.get("to"),
            value=data["value"],
            raw=data["raw"],
        )


@dataclass(frozen=True)
class NormalizedTest:
    """Canonical, engine-ready representation of one variant.

    Attributes:
        variant: Structured variant identifier
        group: Folder of the fixture inside the corpus
        sub_group: Fixture name (file stem)
        header: Canonical block header; `gas_limit` fits in 32 bits
        transactions: Ordered transactions; each `gas_used` fits in 32 bits
        pre_state: Accounts before the block, keyed by lower-case address
        generation_inputs: Auxiliary inputs the engine needs (chain id,
            genesis state root, expected roots, withdrawals, block RLP)
        policy_altered: True when `gas_limit` was clamped to 0xFFFFFFFF
        original_gas_limit: The header gas limit before clamping
    """

    variant: VariantId
    group: str
    sub_group: str
    header: dict[str, Any]
    transactions: tuple[NormalizedTransaction, ...]
    pre_state: dict[str, Any]
    generation_inputs: dict[str, Any] = field(default_factory=dict)
    policy_altered: bool = False
    original_gas_limit: int | None = None

    @property
    def variant_id(self) -> str:
        return str(self.variant)

    @property
    def path(self) -> str:
        return f"{self.group}/{self.sub_group}/{self.variant_id}"

    @property
    def gas_limit(self) -> int:
        return self.header["gas_limit"]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "variant_id": self.variant_id,
            "fixture": self.variant.fixture,
            "indexes": list(self.variant.triple),
            "group": self.group,
            "sub_group": self.sub_group,
            "header": self.header,
            "transactions": [t.to_dict() for t in self.transactions],
            "pre_state": self.pre_state,
            "generation_inputs": self.generation_inputs,
            "policy_altered": self.policy_altered,
            "original_gas_limit": self.original_gas_limit,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NormalizedTest":
        """Create from dictionary."""
        data_idx, gas_idx, value_idx = data["indexes"]
        return cls(
            variant=VariantId(data["fixture"], data_idx, gas_idx, value_idx),
            group=data["group"],
            sub_group=data["sub_group"],
            header=data["header"],
            transactions=tuple(
                NormalizedTransaction.from_dict(t) for t in data["transactions"]
            ),
            pre_state=data["pre_state"],
            generation_inputs=data.get("generation_inputs", {}),
            policy_altered=data.get("policy_altered", False),
            original_gas_limit=data.get("original_gas_limit"),
        )


@dataclass(frozen=True)
class ExcludedVariant:
    """A variant permanently kept out of the catalog."""

    variant_id: str
    group: str
    sub_group: str
    reason: ExclusionReason
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "group": self.group,
            "sub_group": self.sub_group,
            "reason": self.reason.value,
            "detail": self.detail,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExcludedVariant":
        return cls(
            variant_id=data["variant_id"],
            group=data["group"],
            sub_group=data["sub_group"],
            reason=ExclusionReason(data["reason"]),
            detail=data.get("detail", ""),
        )


class TestCatalog:
    """Hierarchical index of normalized tests: group -> sub-group -> variant.

    Built once per parser run; the add_* methods are only used while
    building. Iteration always follows insertion order.
    """

    __test__ = False  # not a pytest test class

    def __init__(self) -> None:
        self._groups: dict[str, dict[str, list[NormalizedTest]]] = {}
        self._by_id: dict[str, NormalizedTest] = {}
        self._ordinals: dict[str, int] = {}
        self.fixtures: dict[str, str | None] = {}
        self.normalizer_hash: str | None = None
        self.excluded: list[ExcludedVariant] = []
        self.decode_errors: dict[str, str] = {}

    # --- building ---

    def add_fixture(self, path: str, content_hash: str | None = None) -> None:
        """Record that a fixture file took part in this build, and its sha256."""
        self.fixtures[path] = content_hash

    def add_test(self, test: NormalizedTest) -> None:
        if test.path in self._by_id:
            raise ValueError(f"Duplicate variant {test.path} in catalog")
        sub_group = self._groups.setdefault(test.group, {}).setdefault(test.sub_group, [])
        self._ordinals[test.path] = len(sub_group)
        sub_group.append(test)
        self._by_id[test.path] = test

    def add_excluded(self, excluded: ExcludedVariant) -> None:
        self.excluded.append(excluded)

    def add_decode_error(self, fixture_path: str, message: str) -> None:
        self.decode_errors[fixture_path] = message

    # --- queries ---

    def groups(self) -> Iterator[tuple[str, list[tuple[str, list[NormalizedTest]]]]]:
        """Yield (group, [(sub_group, tests), ...]) in catalog order."""
        for group, sub_groups in self._groups.items():
            yield group, list(sub_groups.items())

    def iter_tests(self) -> Iterator[NormalizedTest]:
        for sub_groups in self._groups.values():
            for tests in sub_groups.values():
                yield from tests

    def sub_group_tests(self, group: str, sub_group: str) -> list[NormalizedTest]:
        return list(self._groups.get(group, {}).get(sub_group, []))

    def get(self, path: str) -> NormalizedTest | None:
        """Look up a test by its `group/sub_group/variant` path."""
        return self._by_id.get(path)

    def find(self, variant_id: str) -> list[NormalizedTest]:
        """All tests whose variant id matches (ids may repeat across groups)."""
        return [t for t in self.iter_tests() if t.variant_id == variant_id]

    def ordinal(self, test: NormalizedTest) -> int:
        """Position of the variant inside its fixture, ordered by (x, y, z)."""
        return self._ordinals[test.path]

    def excluded_for(self, group: str, sub_group: str) -> list[ExcludedVariant]:
        return [e for e in self.excluded if e.group == group and e.sub_group == sub_group]

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, path: object) -> bool:
        return path in self._by_id

    # --- serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": 2,
            "normalizer_hash": self.normalizer_hash,
            "fixtures": dict(self.fixtures),
            "groups": [
                {
                    "name": group,
                    "sub_groups": [
                        {"name": name, "tests": [t.to_dict() for t in tests]}
                        for name, tests in sub_groups
                    ],
                }
                for group, sub_groups in self.groups()
            ],
            "excluded": [e.to_dict() for e in self.excluded],
            "decode_errors": dict(self.decode_errors),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TestCatalog":
        catalog = cls()
        catalog.normalizer_hash = data.get("normalizer_hash")
        fixtures = data.get("fixtures", {})
        if isinstance(fixtures, list):
            # version 1 catalogs carry no hashes, so nothing in them is reusable
            fixtures = dict.fromkeys(fixtures)
        for path, content_hash in fixtures.items():
            catalog.add_fixture(path, content_hash)
        for group in data.get("groups", []):
            for sub_group in group["sub_groups"]:
                for test in sub_group["tests"]:
                    catalog.add_test(NormalizedTest.from_dict(test))
        for excluded in data.get("excluded", []):
            catalog.add_excluded(ExcludedVariant.from_dict(excluded))
        for path, message in data.get("decode_errors", {}).items():
            catalog.add_decode_error(path, message)
        return catalog
