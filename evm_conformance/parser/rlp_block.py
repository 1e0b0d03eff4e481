"""Decode an RLP-encoded block and reconcile it with the fixture JSON.

The JSON form of a blockchain test is written for full nodes and may carry
fields that are redundant or inconsistent with what the engine consumes.
The RLP block is the source of truth: this module decodes it into a single
canonical header and transaction list, then compares the JSON against it.
Disagreements are reported and the decoded values win.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import rlp
from eth_utils import big_endian_to_int, decode_hex, encode_hex

from evm_conformance.parser.schema import FixtureBlock

logger = logging.getLogger(__name__)

HEADER_FIELDS = (
    "parent_hash",
    "uncles_hash",
    "coinbase",
    "state_root",
    "transactions_root",
    "receipts_root",
    "bloom",
    "difficulty",
    "number",
    "gas_limit",
    "gas_used",
    "timestamp",
    "extra_data",
    "mix_hash",
    "nonce",
    # Optional, fork dependent
    "base_fee_per_gas",
    "withdrawals_root",
    "blob_gas_used",
    "excess_blob_gas",
    "parent_beacon_block_root",
    "requests_hash",
)
MIN_HEADER_FIELDS = 15

INT_HEADER_FIELDS = frozenset({
    "difficulty",
    "number",
    "gas_limit",
    "gas_used",
    "timestamp",
    "base_fee_per_gas",
    "blob_gas_used",
    "excess_blob_gas",
})

# Position of (nonce, gas_limit, to, value) inside each transaction payload.
LEGACY_TX_LAYOUT = (0, 2, 3, 4)
TYPED_TX_LAYOUTS = {
    1: (1, 3, 4, 5),  # EIP-2930
    2: (1, 4, 5, 6),  # EIP-1559
    3: (1, 4, 5, 6),  # EIP-4844
    4: (1, 4, 5, 6),  # EIP-7702
}


class BlockDecodeError(ValueError):
    """The block RLP is malformed or has an unexpected shape."""


@dataclass(frozen=True)
class DecodedTransaction:
    tx_type: int
    nonce: int
    gas_limit: int
    to: str | None
    value: int
    raw: bytes


@dataclass(frozen=True)
class DecodedBlock:
    header: dict[str, Any]
    transactions: tuple[DecodedTransaction, ...]
    withdrawals: tuple[dict[str, Any], ...] = ()
    rlp_hex: str = ""


@dataclass
class Reconciliation:
    """A decoded block plus what the JSON disagreed on."""

    block: DecodedBlock
    tx_gas_used: list[int]
    mismatches: list[str] = field(default_factory=list)


def _as_int(item: Any, what: str) -> int:
    if not isinstance(item, bytes):
        raise BlockDecodeError(f"{what}: expected a byte string, got a list")
    return big_endian_to_int(item)


def _as_address(item: Any, what: str) -> str | None:
    if not isinstance(item, bytes):
        raise BlockDecodeError(f"{what}: expected a byte string, got a list")
    if len(item) == 0:
        return None
    if len(item) != 20:
        raise BlockDecodeError(f"{what}: expected a 20 byte address, got {len(item)} bytes")
    return encode_hex(item)


def decode_header(items: Any) -> dict[str, Any]:
    """Turn a decoded header list into a canonical header dict."""
    if not isinstance(items, list) or len(items) < MIN_HEADER_FIELDS:
        raise BlockDecodeError("block header must be a list of at least 15 fields")
    if len(items) > len(HEADER_FIELDS):
        raise BlockDecodeError(f"block header has {len(items)} fields, expected at most {len(HEADER_FIELDS)}")

    header: dict[str, Any] = {}
    for name, item in zip(HEADER_FIELDS, items):
        if not isinstance(item, bytes):
            raise BlockDecodeError(f"header field {name} must be a byte string")
        header[name] = big_endian_to_int(item) if name in INT_HEADER_FIELDS else encode_hex(item)
    return header


def decode_transaction(item: Any, index: int) -> DecodedTransaction:
    """Decode a legacy (list) or typed (EIP-2718 envelope) transaction."""
    if isinstance(item, list):
        tx_type, payload, raw = 0, item, rlp.encode(item)
        layout = LEGACY_TX_LAYOUT
    else:
        if len(item) == 0:
            raise BlockDecodeError(f"transaction {index}: empty envelope")
        tx_type = item[0]
        layout = TYPED_TX_LAYOUTS.get(tx_type)
        if layout is None:
            raise BlockDecodeError(f"transaction {index}: unsupported type {tx_type}")
        try:
            payload = rlp.decode(item[1:])
        except rlp.DecodingError as e:
            raise BlockDecodeError(f"transaction {index}: {e}") from e
        raw = item

    if not isinstance(payload, list) or len(payload) <= max(layout):
        raise BlockDecodeError(f"transaction {index}: truncated payload")

    nonce_idx, gas_idx, to_idx, value_idx = layout
    return DecodedTransaction(
        tx_type=tx_type,
        nonce=_as_int(payload[nonce_idx], f"transaction {index} nonce"),
        gas_limit=_as_int(payload[gas_idx], f"transaction {index} gas limit"),
        to=_as_address(payload[to_idx], f"transaction {index} to"),
        value=_as_int(payload[value_idx], f"transaction {index} value"),
        raw=bytes(raw),
    )


def decode_block(rlp_hex: str) -> DecodedBlock:
    """Decode a hex-encoded RLP block into its header, txs and withdrawals."""
    try:
        items = rlp.decode(decode_hex(rlp_hex))
    except (rlp.DecodingError, ValueError) as e:
        raise BlockDecodeError(f"invalid block RLP: {e}") from e

    if not isinstance(items, list) or len(items) < 3:
        raise BlockDecodeError("block must be a list of [header, transactions, uncles, ...]")

    header = decode_header(items[0])

    if not isinstance(items[1], list):
        raise BlockDecodeError("block transactions must be a list")
    transactions = tuple(decode_transaction(tx, i) for i, tx in enumerate(items[1]))

    withdrawals: list[dict[str, Any]] = []
    if len(items) > 3:
        if not isinstance(items[3], list):
            raise BlockDecodeError("block withdrawals must be a list")
        for i, w in enumerate(items[3]):
            if not isinstance(w, list) or len(w) != 4:
                raise BlockDecodeError(f"withdrawal {i} must have 4 fields")
            withdrawals.append({
                "index": _as_int(w[0], f"withdrawal {i} index"),
                "validator_index": _as_int(w[1], f"withdrawal {i} validator"),
                "address": _as_address(w[2], f"withdrawal {i} address"),
                "amount": _as_int(w[3], f"withdrawal {i} amount"),
            })

    return DecodedBlock(
        header=header,
        transactions=transactions,
        withdrawals=tuple(withdrawals),
        rlp_hex=rlp_hex if rlp_hex.startswith("0x") else "0x" + rlp_hex,
    )


def reconcile(block_json: FixtureBlock) -> Reconciliation:
    """Decode the block's RLP and reconcile it with its JSON fields.

    Per-transaction gas used comes from the JSON transaction's `gasUsed`
    when the fixture provides it, and from the header's `gas_used` when the
    block holds exactly one transaction. Otherwise it is bounded by the
    smaller of the transaction's gas limit and the header's `gas_used`,
    since the header total covers every transaction in the block.
    """
    if not block_json.rlp:
        raise BlockDecodeError("block has no rlp payload")

    block = decode_block(block_json.rlp)
    mismatches: list[str] = []

    json_header = block_json.block_header
    if json_header is not None:
        if json_header.gas_limit != block.header["gas_limit"]:
            mismatches.append(
                f"gasLimit: json {json_header.gas_limit} != rlp {block.header['gas_limit']}"
            )
        if json_header.gas_used is not None and json_header.gas_used != block.header["gas_used"]:
            mismatches.append(
                f"gasUsed: json {json_header.gas_used} != rlp {block.header['gas_used']}"
            )
        if json_header.number is not None and json_header.number != block.header["number"]:
            mismatches.append(f"number: json {json_header.number} != rlp {block.header['number']}")

    json_txs = block_json.transactions
    if json_txs and len(json_txs) != len(block.transactions):
        mismatches.append(
            f"transaction count: json {len(json_txs)} != rlp {len(block.transactions)}"
        )
        json_txs = []

    tx_gas_used = []
    for i, tx in enumerate(block.transactions):
        json_tx = json_txs[i] if json_txs else None
        if json_tx is not None and json_tx.gas_limit is not None and json_tx.gas_limit != tx.gas_limit:
            mismatches.append(f"tx {i} gasLimit: json {json_tx.gas_limit} != rlp {tx.gas_limit}")

        if json_tx is not None and json_tx.gas_used is not None:
            tx_gas_used.append(json_tx.gas_used)
        elif len(block.transactions) == 1:
            tx_gas_used.append(block.header["gas_used"])
        else:
            tx_gas_used.append(min(tx.gas_limit, block.header["gas_used"]))

    for mismatch in mismatches:
        logger.warning("JSON disagrees with block RLP, using RLP value (%s)", mismatch)

    return Reconciliation(block=block, tx_gas_used=tx_gas_used, mismatches=mismatches)
