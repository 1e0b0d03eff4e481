"""Exception hierarchy for the conformance harness.

Hard exclusions and gas-limit clamping are policy outcomes, not errors, and
never raise.
"""


class ConformanceError(Exception):
    """Base exception for all harness errors."""


class CorpusFetchError(ConformanceError):
    """The upstream corpus could not be listed or fetched, or the mirror
    could not be written."""


class FixtureDecodeError(ConformanceError):
    """A fixture has malformed JSON/RLP or an invalid structure.

    Isolated to the offending fixture; the rest of the corpus keeps parsing.
    """

    def __init__(self, fixture_path: str, message: str):
        super().__init__(f"{fixture_path}: {message}")
        self.fixture_path = fixture_path
        self.message = message


class EngineError(ConformanceError):
    """The compute engine terminated abnormally (crash, signal, timeout)."""


class PersistenceError(ConformanceError):
    """Run history could not be written. Fatal for the run."""


class SelectionError(ConformanceError):
    """A path filter, variant range or blacklist could not be parsed."""
