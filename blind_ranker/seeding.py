"""
Seeding: the one-time star rating that gives an image its first Elo rating.
"""

import logging
from typing import Dict

from .models import Initialized, Subset

logger = logging.getLogger(__name__)

MIN_STARS = 1
MAX_STARS = 10


def star_to_elo(stars: float) -> float:
    """Map a 1-10 star rating onto the Elo scale (5 stars == 1000)."""
    stars = max(MIN_STARS, min(MAX_STARS, stars))
    return float(1000 + (stars - 5) * 100)


def is_valid_star(value) -> bool:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return float(value).is_integer() and MIN_STARS <= value <= MAX_STARS


def requires_seeding(subset: Subset) -> dict:
    """Report which images of a subset still need a star rating."""
    uninitialized = subset.uninitialized_names()
    return {
        "needsSeeding": len(uninitialized) > 0,
        "uninitializedImages": uninitialized,
    }


def seed_subset(subset: Subset, ratings: Dict[str, int]) -> int:
    """
    Seed uninitialized images from star ratings.

    Unknown images, already seeded images and malformed stars are skipped.

    Returns:
        Number of images that were actually seeded.
    """
    seeded = 0
    for name, stars in ratings.items():
        image = subset.image(name)
        if image is None:
            logger.debug("Skipping seed for unknown image %s/%s", subset.name, name)
            continue
        if image.is_initialized:
            logger.debug("Skipping seed for already seeded image %s/%s", subset.name, name)
            continue
        if not is_valid_star(stars):
            logger.warning("Ignoring invalid star rating %r for %s/%s", stars, subset.name, name)
            continue
        image.state = Initialized(rating=star_to_elo(int(stars)), matches=0)
        seeded += 1
    return seeded
