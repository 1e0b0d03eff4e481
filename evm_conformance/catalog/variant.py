"""Variant identifiers.

Upstream keys look like `add_d0g0v0_Cancun`; the harness names every variant
`<fixture>_d<x>_g<y>_v<z>` where x, y and z are the data, gas and value
indexes of the parameterization.
"""

import re
from dataclasses import dataclass

_VARIANT_RE = re.compile(
    r"^(?P<fixture>.+?)_d(?P<data>\d+)_?g(?P<gas>\d+)_?v(?P<value>\d+)(?:_[A-Za-z0-9+]+)*$"
)


@dataclass(frozen=True, order=True)
class VariantId:
    """Structured name of one variant of a fixture."""

    fixture: str
    data: int = 0
    gas: int = 0
    value: int = 0

    def __post_init__(self) -> None:
        if min(self.data, self.gas, self.value) < 0:
            raise ValueError(f"Variant indexes must be non-negative: {self.triple}")

    def __str__(self) -> str:
        return f"{self.fixture}_d{self.data}_g{self.gas}_v{self.value}"

    @property
    def triple(self) -> tuple[int, int, int]:
        return (self.data, self.gas, self.value)

    @classmethod
    def parse(cls, name: str, fixture: str | None = None) -> "VariantId":
        """Parse an upstream or canonical variant name.

        Names with no index triple are the single `d0_g0_v0` variant of
        `fixture` (or of the name itself when no fixture is given).
        """
        match = _VARIANT_RE.match(name)
        if match is None:
            return cls(fixture=fixture or name)
        return cls(
            fixture=match.group("fixture"),
            data=int(match.group("data")),
            gas=int(match.group("gas")),
            value=int(match.group("value")),
        )
