"""Rock-paper-scissors scoring rules.

Completely framework-agnostic: no I/O, no randomness. The connection handler
uses :func:`resolve` for logging round outcomes, and clients apply the same
relation to the ``yourChoice`` / ``opponentChoice`` pair they receive.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .constants import Choice

# Each key beats its value.
BEATS: Dict[Choice, Choice] = {
    Choice.ROCK: Choice.SCISSORS,
    Choice.SCISSORS: Choice.PAPER,
    Choice.PAPER: Choice.ROCK,
}


@dataclass(frozen=True)
class Outcome:
    choice_a: Choice
    choice_b: Choice
    winner: Optional[str]  # "a" | "b" | None for a tie

    @property
    def is_tie(self) -> bool:
        return self.winner is None


def beats(a: Choice, b: Choice) -> bool:
    """Return *True* if *a* wins against *b*."""
    return BEATS[Choice(a)] == Choice(b)


def resolve(a: Choice, b: Choice) -> Outcome:
    """Score one round between side *a* and side *b*.

    Swapping the arguments swaps the reported winner and nothing else.
    """
    a, b = Choice(a), Choice(b)
    if a == b:
        winner = None
    elif beats(a, b):
        winner = "a"
    else:
        winner = "b"
    return Outcome(choice_a=a, choice_b=b, winner=winner)


__all__ = ["BEATS", "Outcome", "beats", "resolve"]
