from evm_conformance.catalog.models import (
    ExcludedVariant,
    ExclusionReason,
    NormalizedTest,
    NormalizedTransaction,
    TestCatalog,
)
from evm_conformance.catalog.store import dumps_catalog, load_catalog, save_catalog
from evm_conformance.catalog.variant import VariantId

__all__ = [
    "ExcludedVariant",
    "ExclusionReason",
    "NormalizedTest",
    "NormalizedTransaction",
    "TestCatalog",
    "VariantId",
    "dumps_catalog",
    "load_catalog",
    "save_catalog",
]
