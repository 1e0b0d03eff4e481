"""Tests for variant identifier parsing."""

import pytest

from evm_conformance.catalog.variant import VariantId


class TestVariantIdParse:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("add_d0g0v0_Cancun", VariantId("add", 0, 0, 0)),
            ("add_d3g1v2_Cancun", VariantId("add", 3, 1, 2)),
            ("foo_d0_g1_v0", VariantId("foo", 0, 1, 0)),
            ("call_with_args_d12g0v7", VariantId("call_with_args", 12, 0, 7)),
            ("sstore_d1g0v0_Cancun_EIP1559", VariantId("sstore", 1, 0, 0)),
        ],
    )
    def test_parses_upstream_and_canonical_names(self, name, expected):
        assert VariantId.parse(name) == expected

    def test_name_without_indexes_uses_fixture(self):
        assert VariantId.parse("singleEntry_Cancun", fixture="singleEntry") == VariantId("singleEntry")

    def test_name_without_indexes_and_fixture(self):
        assert VariantId.parse("plain") == VariantId("plain", 0, 0, 0)


class TestVariantIdFormat:
    def test_canonical_string(self):
        assert str(VariantId("foo", 1, 0, 2)) == "foo_d1_g0_v2"

    def test_canonical_round_trip(self):
        variant = VariantId.parse("add_d4g2v1_Cancun")
        assert VariantId.parse(str(variant)) == variant

    def test_triple(self):
        assert VariantId("foo", 1, 2, 3).triple == (1, 2, 3)

    def test_negative_index_rejected(self):
        with pytest.raises(ValueError):
            VariantId("foo", -1, 0, 0)

    def test_ordering_follows_indexes(self):
        ids = [VariantId("foo", 1, 0, 0), VariantId("foo", 0, 1, 0), VariantId("foo", 0, 0, 1)]
        assert sorted(ids) == [
            VariantId("foo", 0, 0, 1),
            VariantId("foo", 0, 1, 0),
            VariantId("foo", 1, 0, 0),
        ]
