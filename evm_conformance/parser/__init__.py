from evm_conformance.parser.build import CatalogBuilder
from evm_conformance.parser.normalizer import FixtureNormalizer, NormalizationResult
from evm_conformance.parser.schema import RawFixture

__all__ = [
    "CatalogBuilder",
    "FixtureNormalizer",
    "NormalizationResult",
    "RawFixture",
]
