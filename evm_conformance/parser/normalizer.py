"""Turn raw fixtures into normalized tests.

For every variant entry of a fixture:
1. Decode the block RLP and reconcile it with the JSON (rlp_block).
2. If any transaction's gas used does not fit in 32 bits, the variant is
   not provable and is excluded from the catalog.
3. If the header gas limit does not fit in 32 bits, clamp it to
   0xFFFFFFFF and mark the variant policy-altered.
4. Emit one NormalizedTest per surviving variant.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from evm_conformance.catalog.models import (
    ExcludedVariant,
    ExclusionReason,
    NormalizedTest,
    NormalizedTransaction,
)
from evm_conformance.catalog.variant import VariantId
from evm_conformance.config import ETHEREUM_CHAIN_ID, U32_MAX
from evm_conformance.errors import FixtureDecodeError
from evm_conformance.parser.rlp_block import BlockDecodeError, reconcile
from evm_conformance.parser.schema import FixtureBlock, FixtureEntry, RawFixture

logger = logging.getLogger(__name__)


def fits_u32(value: int) -> bool:
    return 0 <= value <= U32_MAX


@dataclass
class NormalizationResult:
    """Output of normalizing one fixture."""

    tests: list[NormalizedTest] = field(default_factory=list)
    excluded: list[ExcludedVariant] = field(default_factory=list)
    skipped_other_network: int = 0


class FixtureNormalizer:
    """Converts RawFixtures into NormalizedTests.

    Args:
        network: Only entries for this fork are kept (None keeps all).
            Entries without a `network` field are always kept.
        chain_id: Chain id handed to the engine
    """

    def __init__(self, network: str | None = "Cancun", chain_id: int = ETHEREUM_CHAIN_ID):
        self.network = network
        self.chain_id = chain_id

    def settings_hash(self) -> str:
        """Hash of the settings that shape the output; a change invalidates reuse."""
        content = {"network": self.network, "chain_id": self.chain_id}
        content_str = json.dumps(content, sort_keys=True)
        return hashlib.sha256(content_str.encode()).hexdigest()[:16]

    def normalize_bytes(self, path: str, content: bytes) -> NormalizationResult:
        return self.normalize(RawFixture.from_bytes(path, content))

    def normalize(self, fixture: RawFixture) -> NormalizationResult:
        """Normalize every variant of a fixture.

        Raises:
            FixtureDecodeError: On malformed RLP, duplicate variant indexes
                or any other structural problem. Nothing from the fixture
                should be kept in that case.
        """
        result = NormalizationResult()
        seen: dict[tuple[int, int, int], str] = {}

        for key, entry in fixture.entries.items():
            if self.network and entry.network and entry.network != self.network:
                result.skipped_other_network += 1
                continue

            variant = VariantId.parse(key, fixture=fixture.name)
            if variant.triple in seen:
                raise FixtureDecodeError(
                    fixture.path,
                    f"variants {seen[variant.triple]!r} and {key!r} share indexes {variant.triple}",
                )
            seen[variant.triple] = key

            outcome = self._normalize_entry(fixture, variant, entry)
            if isinstance(outcome, ExcludedVariant):
                result.excluded.append(outcome)
            else:
                result.tests.append(outcome)

        result.tests.sort(key=lambda t: t.variant.triple)
        result.excluded.sort(key=lambda e: VariantId.parse(e.variant_id).triple)
        return result

    def _normalize_entry(
        self, fixture: RawFixture, variant: VariantId, entry: FixtureEntry
    ) -> NormalizedTest | ExcludedVariant:
        block_json = self._select_block(entry)
        if block_json is None:
            logger.debug("Excluding %s: every block expects an exception", variant)
            return ExcludedVariant(
                variant_id=str(variant),
                group=fixture.group,
                sub_group=fixture.name,
                reason=ExclusionReason.NO_VALID_BLOCK,
            )

        try:
            reconciled = reconcile(block_json)
        except BlockDecodeError as e:
            raise FixtureDecodeError(fixture.path, f"{variant}: {e}") from e

        block = reconciled.block
        for i, gas_used in enumerate(reconciled.tx_gas_used):
            if not fits_u32(gas_used):
                logger.info(
                    "Excluding %s as not provable: tx %d gas_used %d exceeds u32", variant, i, gas_used
                )
                return ExcludedVariant(
                    variant_id=str(variant),
                    group=fixture.group,
                    sub_group=fixture.name,
                    reason=ExclusionReason.NOT_PROVABLE,
                    detail=f"tx {i} gas_used {gas_used} exceeds {U32_MAX}",
                )

        header = dict(block.header)
        policy_altered = False
        original_gas_limit = None
        if not fits_u32(header["gas_limit"]):
            original_gas_limit = header["gas_limit"]
            header["gas_limit"] = U32_MAX
            policy_altered = True
            logger.info(
                "Clamped gas_limit of %s from %d to %d", variant, original_gas_limit, U32_MAX
            )

        transactions = tuple(
            NormalizedTransaction(
                index=i,
                tx_type=tx.tx_type,
                nonce=tx.nonce,
                gas_limit=tx.gas_limit,
                gas_used=gas_used,
                to=tx.to,
                value=tx.value,
                raw="0x" + tx.raw.hex(),
            )
            for i, (tx, gas_used) in enumerate(zip(block.transactions, reconciled.tx_gas_used))
        )

        return NormalizedTest(
            variant=variant,
            group=fixture.group,
            sub_group=fixture.name,
            header=header,
            transactions=transactions,
            pre_state=self._pre_state(entry),
            generation_inputs=self._generation_inputs(entry, block),
            policy_altered=policy_altered,
            original_gas_limit=original_gas_limit,
        )

    @staticmethod
    def _select_block(entry: FixtureEntry) -> FixtureBlock | None:
        """First block that carries RLP and is expected to be valid."""
        for block in entry.blocks:
            if block.rlp and block.expect_exception is None:
                return block
        return None

    @staticmethod
    def _pre_state(entry: FixtureEntry) -> dict[str, Any]:
        return {
            address.lower(): {
                "balance": hex(account.balance),
                "nonce": account.nonce,
                "code": account.code.lower(),
                "storage": {k.lower(): v.lower() for k, v in sorted(account.storage.items())},
            }
            for address, account in sorted(entry.pre.items(), key=lambda kv: kv[0].lower())
        }

    def _generation_inputs(self, entry: FixtureEntry, block) -> dict[str, Any]:
        genesis = entry.genesis_block_header or {}
        return {
            "chain_id": self.chain_id,
            "network": entry.network,
            "genesis_state_root": genesis.get("stateRoot"),
            "expected_final_roots": {
                "state_root": block.header["state_root"],
                "transactions_root": block.header["transactions_root"],
                "receipts_root": block.header["receipts_root"],
            },
            "withdrawals": [dict(w) for w in block.withdrawals],
            "block_rlp": block.rlp_hex,
        }
