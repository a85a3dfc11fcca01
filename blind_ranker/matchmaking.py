"""
Pair selection for the next comparison.

Every pair of seeded images is scored; the best pair is the one whose
members are both under-compared and close in rating. Pairs from the same
group are slightly penalized so group rankings get cross-group evidence.
"""

import random
from typing import List, Optional, Tuple

from .errors import InsufficientCandidates
from .models import Image, has_group

SAME_GROUP_PENALTY = 0.9
MAX_RATING_GAP = 1000


def pair_score(a: Image, b: Image) -> float:
    """Priority of comparing ``a`` against ``b`` (higher is better)."""
    match_score = 1 / (min(a.matches, b.matches) + 1)
    elo_score = max(0, MAX_RATING_GAP - abs(a.rating - b.rating))
    score = match_score * elo_score
    if a.group == b.group and has_group(a.group):
        score *= SAME_GROUP_PENALTY
    return score


def select_pair(images: List[Image], rng: Optional[random.Random] = None) -> Tuple[Image, Image]:
    """
    Choose the highest scoring pair among seeded images.

    Ties keep the first pair encountered. When ``rng`` is given the two
    images are returned in shuffled order; scoring is unaffected.

    Raises:
        InsufficientCandidates: if fewer than two seeded images exist
    """
    candidates = [img for img in images if img.is_initialized]
    if len(candidates) < 2:
        raise InsufficientCandidates("Not enough initialized images to form a pair.")

    best_pair = (candidates[0], candidates[1])
    best_score = pair_score(*best_pair)
    for i, a in enumerate(candidates):
        for b in candidates[i + 1:]:
            score = pair_score(a, b)
            if score > best_score:
                best_pair, best_score = (a, b), score

    if rng is not None and rng.random() < 0.5:
        return best_pair[1], best_pair[0]
    return best_pair
