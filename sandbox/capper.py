"""Bound captured output to an approximate character budget."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

TRUNCATION_MARKER = "\n…[output truncated]\n"
NO_OUTPUT = "(no output)"


@dataclass(frozen=True)
class CappedOutput:
    output: str
    truncated: bool


def cap_output(chunks: Iterable[str], cap_bytes: int) -> CappedOutput:
    """
    Join ``chunks`` in order until the budget is exhausted.

    The chunk that would overflow the budget is cut at the remaining budget,
    the truncation marker is appended, and any later chunks are dropped.
    Lengths are counted in characters, so ``cap_bytes`` is an approximate
    ceiling rather than an exact encoded size.
    """
    budget = max(0, cap_bytes)
    out = ""
    for chunk in chunks:
        if not chunk:
            continue
        if len(out) + len(chunk) > budget:
            remaining = max(0, budget - len(out))
            out += chunk[:remaining] + TRUNCATION_MARKER
            return CappedOutput(output=out, truncated=True)
        out += chunk
    return CappedOutput(output=out or NO_OUTPUT, truncated=False)
