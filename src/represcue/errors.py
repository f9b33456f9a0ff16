from __future__ import annotations


class RescueError(Exception):
    """Base class for all represcue failures."""


class ConfigurationError(RescueError):
    """Missing or invalid run parameter, input file, or a pre-existing output directory."""


class OracleInvocationError(RescueError):
    """The aligner failed for one round of a rescue chain; fatal to that chain only."""

    def __init__(self, chain, reference: str, round_index: int, cause: str):
        self.chain = chain
        self.reference = reference
        self.round_index = round_index
        self.cause = cause
        super().__init__(f"{chain}: alignment against '{reference}' failed in round {round_index}: {cause}")


class ConversionError(RescueError):
    """Interval conversion of a chain's rescued reads failed; the chain's records stay available."""

    def __init__(self, chain, round_index: int, cause: str):
        self.chain = chain
        self.round_index = round_index
        self.cause = cause
        super().__init__(f"{chain}: interval conversion failed for round {round_index}: {cause}")
