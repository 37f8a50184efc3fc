"""Approximate token counting.

Sub-word accuracy is not a goal; the meter only needs counts that scale
with the generated text. Three heuristics are available:

- ``chars_div_4``: ceil(len(text) / 4), the general default
- ``chars_div_3``: ceil(len(text) / 3), denser, suits code
- ``words_div_0_75``: ceil(words / 0.75), suits English prose
"""

from __future__ import annotations

import math
from collections.abc import Callable

from tpsmeter.constants import (
    CHARS_DIV_3,
    CHARS_DIV_4,
    WORDS_DIV_0_75,
    TokenHeuristic,
)

__all__ = ["TokenCounter", "count_tokens"]


def _count_by_chars(text: str, divisor: float) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / divisor)


def _count_by_words(text: str, divisor: float) -> int:
    words = text.split()
    if not words:
        return 0
    return math.ceil(len(words) / divisor)


_STRATEGIES: dict[str, Callable[[str], int]] = {
    "chars_div_4": lambda text: _count_by_chars(text, CHARS_DIV_4),
    "chars_div_3": lambda text: _count_by_chars(text, CHARS_DIV_3),
    "words_div_0_75": lambda text: _count_by_words(text, WORDS_DIV_0_75),
}


class TokenCounter:
    """Counts tokens in text deltas with a fixed heuristic."""

    def __init__(self, heuristic: TokenHeuristic = "chars_div_4") -> None:
        if heuristic not in _STRATEGIES:
            raise ValueError(f"Unknown token heuristic: {heuristic!r}")
        self.heuristic = heuristic
        self._count = _STRATEGIES[heuristic]

    def count(self, text: str) -> int:
        return self._count(text)


def count_tokens(text: str, heuristic: TokenHeuristic = "chars_div_4") -> int:
    """Count tokens in ``text`` with the given heuristic."""
    return _STRATEGIES[heuristic](text)
