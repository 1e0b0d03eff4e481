"""Tests for block RLP decoding and JSON reconciliation."""

import logging

import pytest
import rlp

from evm_conformance.parser.rlp_block import (
    BlockDecodeError,
    decode_block,
    decode_header,
    reconcile,
)
from evm_conformance.parser.schema import FixtureBlock


class TestDecodeBlock:
    def test_decodes_header_fields(self, fixture_factory):
        header = fixture_factory.header(gas_limit=2**40, gas_used=42_000, number=5)
        block = decode_block(fixture_factory.block(header, []))

        assert block.header["gas_limit"] == 2**40
        assert block.header["gas_used"] == 42_000
        assert block.header["number"] == 5
        assert block.header["base_fee_per_gas"] == 7
        assert block.header["state_root"] == "0x" + "33" * 32
        assert "withdrawals_root" not in block.header
        assert block.transactions == ()

    def test_decodes_legacy_transaction(self, fixture_factory):
        tx = fixture_factory.legacy_tx(gas=50_000, nonce=3, value=9)
        block = decode_block(fixture_factory.block(fixture_factory.header(), [tx]))

        (decoded,) = block.transactions
        assert decoded.tx_type == 0
        assert decoded.nonce == 3
        assert decoded.gas_limit == 50_000
        assert decoded.value == 9
        assert decoded.to == "0x1000000000000000000000000000000000000000"
        assert decoded.raw == rlp.encode(tx)

    @pytest.mark.parametrize("tx_type", [2, 3, 4])
    def test_decodes_typed_transaction(self, fixture_factory, tx_type):
        tx = fixture_factory.typed_tx(gas=70_000, nonce=1, value=5, tx_type=tx_type)
        block = decode_block(fixture_factory.block(fixture_factory.header(), [tx]))

        (decoded,) = block.transactions
        assert decoded.tx_type == tx_type
        assert decoded.nonce == 1
        assert decoded.gas_limit == 70_000
        assert decoded.value == 5
        assert decoded.raw == tx

    def test_decodes_withdrawals(self, fixture_factory):
        withdrawals = [[0, 1, b"\x22" * 20, 1_000]]
        block = decode_block(fixture_factory.block(fixture_factory.header(), [], withdrawals))

        assert block.withdrawals == (
            {"index": 0, "validator_index": 1, "address": "0x" + "22" * 20, "amount": 1_000},
        )

    def test_rlp_hex_is_prefixed(self, fixture_factory):
        encoded = fixture_factory.block(fixture_factory.header(), [])
        assert decode_block(encoded[2:]).rlp_hex == encoded

    def test_malformed_rlp_raises(self):
        with pytest.raises(BlockDecodeError):
            decode_block("0xf9ffff00")

    def test_not_hex_raises(self):
        with pytest.raises(BlockDecodeError):
            decode_block("0xzz")

    def test_short_header_raises(self):
        with pytest.raises(BlockDecodeError):
            decode_header([b"\x01"] * 10)

    def test_unsupported_tx_type_raises(self, fixture_factory):
        tx = b"\x7f" + rlp.encode([1, 2, 3])
        with pytest.raises(BlockDecodeError):
            decode_block(fixture_factory.block(fixture_factory.header(), [tx]))

    def test_truncated_legacy_tx_raises(self, fixture_factory):
        with pytest.raises(BlockDecodeError):
            decode_block(fixture_factory.block(fixture_factory.header(), [[1, 2]]))


class TestReconcile:
    def _block(self, entry):
        return FixtureBlock.model_validate(entry["blocks"][0])

    def test_json_gas_used_wins_when_present(self, fixture_factory):
        entry = fixture_factory.entry(tx_gas_used=(21_000, 30_000))
        result = reconcile(self._block(entry))

        assert result.tx_gas_used == [21_000, 30_000]
        assert result.mismatches == []

    def test_single_tx_uses_header_gas_used(self, fixture_factory):
        entry = fixture_factory.entry(tx_gas_used=(25_000,), json_gas_used=False)
        result = reconcile(self._block(entry))

        assert result.tx_gas_used == [25_000]

    def test_multi_tx_uses_gas_limit_below_header_total(self, fixture_factory):
        entry = fixture_factory.entry(tx_gas_used=(21_000, 40_000), json_gas_used=False)
        result = reconcile(self._block(entry))

        assert result.tx_gas_used == [21_000, 40_000]

    def test_multi_tx_bounded_by_header_gas_used(self, fixture_factory):
        txs = [fixture_factory.legacy_tx(gas=2**40, nonce=i) for i in range(2)]
        encoded = fixture_factory.block(fixture_factory.header(gas_used=42_000), txs)

        result = reconcile(FixtureBlock.model_validate({"rlp": encoded}))

        assert result.tx_gas_used == [42_000, 42_000]

    def test_rlp_wins_over_json_header(self, fixture_factory, caplog):
        entry = fixture_factory.entry()
        entry["blocks"][0]["blockHeader"]["gasLimit"] = "0x01"

        with caplog.at_level(logging.WARNING):
            result = reconcile(self._block(entry))

        assert result.block.header["gas_limit"] == 30_000_000
        assert any("gasLimit" in m for m in result.mismatches)
        assert "using RLP value" in caplog.text

    def test_transaction_count_mismatch_ignores_json_txs(self, fixture_factory):
        entry = fixture_factory.entry(tx_gas_used=(21_000, 30_000))
        entry["blocks"][0]["transactions"] = entry["blocks"][0]["transactions"][:1]

        result = reconcile(self._block(entry))

        assert any("transaction count" in m for m in result.mismatches)
        assert result.tx_gas_used == [21_000, 30_000]

    def test_missing_rlp_raises(self):
        with pytest.raises(BlockDecodeError):
            reconcile(FixtureBlock())
