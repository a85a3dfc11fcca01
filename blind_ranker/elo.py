"""
Elo rating updates with an adaptive K-factor.

Ratings move quickly while an entity has few comparisons and settle as its
match count grows.
"""

from typing import Tuple

from .models import Initialized


def k_factor(matches: int) -> int:
    """K-factor for an entity that has played ``matches`` comparisons."""
    if matches < 10:
        return 64
    elif matches < 20:
        return 48
    elif matches < 30:
        return 32
    return 24


def expected_score(rating_a: float, rating_b: float) -> float:
    """Probability that A beats B under the Elo model."""
    return 1 / (1 + 10 ** ((rating_b - rating_a) / 400))


def update_ratings(winner: Initialized, loser: Initialized) -> Tuple[Initialized, Initialized]:
    """
    Compute the post-match state of a winner/loser pair.

    K is taken from each side's match count before the increment.

    Returns:
        (new_winner, new_loser)
    """
    expected_winner = expected_score(winner.rating, loser.rating)
    new_winner = Initialized(
        rating=winner.rating + k_factor(winner.matches) * (1 - expected_winner),
        matches=winner.matches + 1,
    )
    new_loser = Initialized(
        rating=loser.rating + k_factor(loser.matches) * (0 - (1 - expected_winner)),
        matches=loser.matches + 1,
    )
    return new_winner, new_loser


def record_result(winner, loser) -> None:
    """Apply a match result to two entities (images or group models) in place."""
    if not isinstance(winner.state, Initialized) or not isinstance(loser.state, Initialized):
        raise ValueError("Both entities must be seeded before a result is recorded")
    winner.state, loser.state = update_ratings(winner.state, loser.state)
