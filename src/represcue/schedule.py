from __future__ import annotations
from typing import Tuple

from .errors import ConfigurationError
from .represcueClasses import TrimSpec

# Bases always clipped from the 5' end before alignment
ANCHOR5 = 1
# 3' trim added per round
TRIM_STEP = 5
# Reads are never trimmed below this many bases
MIN_LENGTH = 20
ROUND_SPAN = 10


def n_trim_rounds(read_length: int) -> int:
    """Number of trimming rounds after the full-length round 0."""
    if read_length <= MIN_LENGTH:
        return 0
    return (read_length - MIN_LENGTH) // ROUND_SPAN


def trim_schedule(read_length: int) -> Tuple[TrimSpec, ...]:
    """
    Trim specs for every round, round 0 first.

    Round 0 only clips the 5' anchor base; round k (1..K) also removes 5*k
    bases from the 3' end, with K = (read_length - 20) // 10. Reads of 20
    bases or less get round 0 only.
    """
    if isinstance(read_length, bool) or not isinstance(read_length, int) or read_length < 1:
        raise ConfigurationError(f"Read length must be a positive integer, got {read_length!r}")
    return tuple(
        TrimSpec(round=k, anchor5=ANCHOR5, trim3=TRIM_STEP * k)
        for k in range(n_trim_rounds(read_length) + 1)
    )


def effective_length(read_length: int, spec: TrimSpec) -> int:
    return read_length - spec.anchor5 - spec.trim3


def label_length(read_length: int, spec: TrimSpec) -> int:
    # Length used in per-round file names (read length minus the 3' trim only)
    return read_length - spec.trim3


def format_schedule(read_length: int) -> str:
    lines = ["round\tanchor5\ttrim3\teffective_length\tlabel"]
    for s in trim_schedule(read_length):
        lines.append(
            f"{s.round}\t{s.anchor5}\t{s.trim3}\t"
            f"{effective_length(read_length, s)}\t{label_length(read_length, s)}"
        )
    return "\n".join(lines)
