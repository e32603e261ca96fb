"""Unit tests for the rock-paper-scissors scoring rules."""

from itertools import product

import pytest

from rps_backend.constants import Choice
from rps_backend.game_logic import beats, resolve

EXPECTED_WINS = {
    (Choice.ROCK, Choice.SCISSORS),
    (Choice.SCISSORS, Choice.PAPER),
    (Choice.PAPER, Choice.ROCK),
}


@pytest.mark.parametrize("a,b", list(product(Choice, repeat=2)))
def test_resolve_matches_hand_coded_rule(a, b):
    outcome = resolve(a, b)
    assert outcome.choice_a == a
    assert outcome.choice_b == b
    if a == b:
        assert outcome.is_tie
        assert outcome.winner is None
    elif (a, b) in EXPECTED_WINS:
        assert outcome.winner == "a"
    else:
        assert outcome.winner == "b"


def test_swapping_sides_swaps_winner():
    for a, b in product(Choice, repeat=2):
        if a == b:
            continue
        forward = resolve(a, b).winner
        backward = resolve(b, a).winner
        assert {forward, backward} == {"a", "b"}


def test_resolve_accepts_plain_strings():
    assert resolve("paper", "rock").winner == "a"
    assert resolve("rock", "paper").winner == "b"
    assert resolve("scissors", "scissors").is_tie


def test_nothing_beats_itself():
    assert not any(beats(choice, choice) for choice in Choice)


def test_unknown_choice_rejected():
    with pytest.raises(ValueError):
        resolve("lizard", "rock")
