"""Schema definitions for upstream blockchain-test fixtures.

These Pydantic models pick out the parts of a full-node fixture the
normalizer needs. Everything else the format carries is ignored.
"""

from __future__ import annotations

import json
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from evm_conformance.corpus.sync import split_fixture_path
from evm_conformance.errors import FixtureDecodeError

BIG_INT_PREFIX = "0x:bigint "


def _to_int(value: Any) -> Any:
    """Accept hex strings (optionally `0x:bigint ` prefixed), decimal strings
    and plain integers."""
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(BIG_INT_PREFIX):
            text = "0x" + text[len(BIG_INT_PREFIX):].removeprefix("0x")
        if text in ("", "0x"):
            return 0
        return int(text, 16) if text.lower().startswith("0x") else int(text)
    return value


HexInt = Annotated[int, BeforeValidator(_to_int)]


class _FixtureModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class FixtureHeader(_FixtureModel):
    """JSON block header; cross-checked against the decoded RLP."""

    gas_limit: HexInt = Field(alias="gasLimit")
    gas_used: HexInt | None = Field(default=None, alias="gasUsed")
    number: HexInt | None = None
    state_root: str | None = Field(default=None, alias="stateRoot")
    hash: str | None = None


class FixtureTransaction(_FixtureModel):
    """JSON transaction; `gasUsed` is only present in some fixtures."""

    gas_limit: HexInt | None = Field(default=None, alias="gasLimit")
    gas_used: HexInt | None = Field(default=None, alias="gasUsed")
    nonce: HexInt | None = None
    sender: str | None = None


class FixtureBlock(_FixtureModel):
    rlp: str | None = None
    block_header: FixtureHeader | None = Field(default=None, alias="blockHeader")
    transactions: list[FixtureTransaction] = Field(default_factory=list)
    expect_exception: str | None = Field(default=None, alias="expectException")


class FixturePreAccount(_FixtureModel):
    balance: HexInt = 0
    nonce: HexInt = 0
    code: str = "0x"
    storage: dict[str, str] = Field(default_factory=dict)


class FixtureEntry(_FixtureModel):
    """One variant entry of a fixture file."""

    network: str | None = None
    blocks: list[FixtureBlock]
    pre: dict[str, FixturePreAccount] = Field(default_factory=dict)
    genesis_block_header: dict[str, Any] | None = Field(
        default=None, alias="genesisBlockHeader"
    )
    post_state: dict[str, Any] | None = Field(default=None, alias="postState")
    last_block_hash: str | None = Field(default=None, alias="lastblockhash")


class RawFixture(_FixtureModel):
    """A fixture file as fetched from the corpus."""

    path: str
    group: str
    name: str
    entries: dict[str, FixtureEntry]

    @classmethod
    def from_bytes(cls, path: str, content: bytes) -> "RawFixture":
        """Parse raw fixture bytes.

        Raises:
            FixtureDecodeError: If the content is not valid JSON or does
                not have the expected structure.
        """
        try:
            document = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FixtureDecodeError(path, f"invalid JSON: {e}") from e

        if not isinstance(document, dict) or not document:
            raise FixtureDecodeError(path, "expected a non-empty JSON object of variants")

        group, name = split_fixture_path(path)
        try:
            return cls(path=path, group=group, name=name, entries=document)
        except ValidationError as e:
            raise FixtureDecodeError(
                path, f"invalid fixture structure ({e.error_count()} errors): {e}"
            ) from e
