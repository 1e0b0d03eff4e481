"""Shared fixtures: builders for upstream-style blockchain test fixtures."""

import json
import tempfile
from pathlib import Path

import pytest
import rlp

from evm_conformance.catalog.models import NormalizedTest, NormalizedTransaction, TestCatalog
from evm_conformance.catalog.variant import VariantId

SENDER = "0xa94f5374fce5edbc8e2a8697c15331677e6ebf0b"
RECIPIENT = bytes.fromhex("1000000000000000000000000000000000000000")
STATE_ROOT = b"\x33" * 32


class FixtureFactory:
    """Builds fixture JSON with real RLP blocks.

    Every transaction is a legacy transaction whose gas limit is at least
    its gas used, and the JSON mirrors the RLP unless told otherwise.
    """

    def header(self, gas_limit: int = 30_000_000, gas_used: int = 21_000, number: int = 1) -> list:
        return [
            b"\x11" * 32,  # parent_hash
            b"\x1d" * 32,  # uncles_hash
            b"\x22" * 20,  # coinbase
            STATE_ROOT,
            b"\x44" * 32,  # transactions_root
            b"\x55" * 32,  # receipts_root
            b"\x00" * 256,  # bloom
            0,  # difficulty
            number,
            gas_limit,
            gas_used,
            1_000,  # timestamp
            b"",  # extra_data
            b"\x66" * 32,  # mix_hash
            b"\x00" * 8,  # nonce
            7,  # base_fee_per_gas
        ]

    def legacy_tx(self, gas: int = 100_000, nonce: int = 0, value: int = 1) -> list:
        return [nonce, 10, gas, RECIPIENT, value, b"", 27, 1, 1]

    def typed_tx(self, gas: int = 100_000, nonce: int = 0, value: int = 1, tx_type: int = 2) -> bytes:
        payload = [1, nonce, 1, 10, gas, RECIPIENT, value, b"", [], 0, 1, 1]
        return bytes([tx_type]) + rlp.encode(payload)

    def block(self, header: list, txs: list, withdrawals: list | None = None) -> str:
        items = [header, txs, []]
        if withdrawals is not None:
            items.append(withdrawals)
        return "0x" + rlp.encode(items).hex()

    def entry(
        self,
        tx_gas_used=(21_000,),
        gas_limit: int = 30_000_000,
        network: str | None = "Cancun",
        expect_exception: str | None = None,
        json_gas_used: bool = True,
    ) -> dict:
        txs = [self.legacy_tx(gas=max(g, 21_000), nonce=i) for i, g in enumerate(tx_gas_used)]
        header = self.header(gas_limit=gas_limit, gas_used=sum(tx_gas_used))
        json_txs = []
        for i, g in enumerate(tx_gas_used):
            tx = {"gasLimit": hex(max(g, 21_000)), "nonce": hex(i), "sender": SENDER}
            if json_gas_used:
                tx["gasUsed"] = hex(g)
            json_txs.append(tx)

        block = {
            "rlp": self.block(header, txs),
            "blockHeader": {
                "gasLimit": hex(gas_limit),
                "gasUsed": hex(sum(tx_gas_used)),
                "number": "0x01",
                "stateRoot": "0x" + STATE_ROOT.hex(),
            },
            "transactions": json_txs,
        }
        if expect_exception:
            block["expectException"] = expect_exception

        entry = {
            "blocks": [block],
            "pre": {
                "0xA94F5374FCE5EDBC8E2A8697C15331677E6EBF0B": {
                    "balance": "0x0de0b6b3a7640000",
                    "nonce": "0x00",
                    "code": "0x",
                    "storage": {"0x01": "0x02"},
                }
            },
            "genesisBlockHeader": {"stateRoot": "0x" + "77" * 32},
        }
        if network:
            entry["network"] = network
        return entry

    def foo(self) -> dict:
        """Three variants: plain, gas limit over u32, second tx gas used over u32."""
        return {
            "foo_d0g0v0_Cancun": self.entry(tx_gas_used=(21_000, 30_000)),
            "foo_d0g1v0_Cancun": self.entry(tx_gas_used=(21_000, 30_000), gas_limit=2**40),
            "foo_d1g0v0_Cancun": self.entry(tx_gas_used=(21_000, 2**40)),
        }

    def dumps(self, entries: dict) -> bytes:
        return json.dumps(entries, indent=2).encode()

    def write(self, root: Path, path: str, entries: dict) -> Path:
        target = Path(root) / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.dumps(entries))
        return target


@pytest.fixture
def fixture_factory():
    return FixtureFactory()


def make_test(
    name: str,
    group: str = "stExample",
    sub_group: str = "foo",
    policy_altered: bool = False,
) -> NormalizedTest:
    """A minimal NormalizedTest for selection and orchestration tests."""
    variant = VariantId.parse(name)
    return NormalizedTest(
        variant=variant,
        group=group,
        sub_group=sub_group,
        header={"gas_limit": 0xFFFFFFFF if policy_altered else 30_000_000, "gas_used": 21_000},
        transactions=(
            NormalizedTransaction(
                index=0,
                tx_type=0,
                nonce=0,
                gas_limit=21_000,
                gas_used=21_000,
                to="0x" + RECIPIENT.hex(),
                value=1,
                raw="0x00",
            ),
        ),
        pre_state={},
        policy_altered=policy_altered,
        original_gas_limit=2**40 if policy_altered else None,
    )


@pytest.fixture
def make_normalized():
    return make_test


@pytest.fixture
def small_catalog():
    """Two groups; stExample/foo has four variants, stOther/bar has one."""
    catalog = TestCatalog()
    for name in ("foo_d0_g0_v0", "foo_d0_g1_v0", "foo_d1_g0_v0", "foo_d2_g0_v0"):
        catalog.add_test(make_test(name, policy_altered=(name == "foo_d0_g1_v0")))
    catalog.add_test(make_test("bar_d0_g0_v0", group="stOther", sub_group="bar"))
    return catalog


@pytest.fixture
def db_path():
    """Path to a temporary SQLite database, removed afterwards."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / "run_history.db"
