"""
Binning strategies that turn Elo ratings into discrete aesthetic tags.

Each strategy validates its parameters against the number of rated images
and then assigns one tag per image. Validation failures raise
``ValidationError`` before any tag is produced.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .errors import ValidationError

DEFAULT_BIN_TAGS = ["terrible", "bad", "average", "good", "excellent"]
PONY_TAGS = ["score_3", "score_4", "score_5", "score_6", "score_7", "score_8", "score_9"]
CUSTOM_QUANTILES = [0.1, 0.3, 0.7, 0.9, 1.0]
DEFAULT_RANGE_THRESHOLDS = [0.15, 0.35, 0.65, 0.85]
DEFAULT_MAX_ITERATIONS = 100

# Multiples of the standard deviation that separate adjacent tags.
# Negative cut points are exclusive, positive ones inclusive.
STD_DEV_CUTS = {
    5: (-1.5, -0.5, 0.5, 1.5),
    7: (-1.75, -1.0, -0.25, 0.25, 1.0, 1.75),
}

QUANTILE_EPSILON = 1e-9

RatedImages = Sequence[Tuple[str, float]]


class KMeansResult(NamedTuple):
    assignments: List[int]
    centroids: List[float]


def kmeans_1d(data: Sequence[float], k: int, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> KMeansResult:
    """
    Cluster scalar values with Lloyd's algorithm.

    Centroids start evenly spaced between the minimum and maximum value.
    A cluster that loses all its points keeps its previous centroid.
    Iteration stops when assignments no longer change or after
    ``max_iterations`` rounds.
    """
    values = np.asarray(data, dtype=float)
    if values.size == 0:
        raise ValueError("kmeans_1d needs at least one value")
    if k < 1:
        raise ValueError(f"k must be at least 1, got {k}")

    lo, hi = float(values.min()), float(values.max())
    if k == 1:
        centroids = np.array([(lo + hi) / 2])
    else:
        centroids = np.linspace(lo, hi, k)

    assignments = np.full(values.size, -1)
    for _ in range(max(1, max_iterations)):
        distances = np.abs(values[:, None] - centroids[None, :])
        new_assignments = distances.argmin(axis=1)
        if np.array_equal(new_assignments, assignments):
            break
        assignments = new_assignments
        for cluster in range(k):
            members = values[assignments == cluster]
            if members.size:
                centroids[cluster] = members.mean()

    return KMeansResult(assignments.tolist(), centroids.tolist())


def tag_from_quantiles(percentile: float, tags: Sequence[str], quantiles: Sequence[float]) -> str:
    """First tag whose cumulative quantile boundary covers ``percentile``."""
    for tag, boundary in zip(tags, quantiles):
        if percentile <= boundary + QUANTILE_EPSILON:
            return tag
    return tags[-1]


def middle_tag(tags: Sequence[str]) -> str:
    return tags[len(tags) // 2]


class TaggingStrategy(ABC):
    """Base class for rating-to-tag strategies."""

    name: str = ""

    def __init__(self, tags: Optional[Sequence[str]] = None):
        self.tags = list(tags or [])

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def output_tags(self) -> List[str]:
        """Tags this strategy can emit, lowest rating first."""
        return self.tags

    @abstractmethod
    def validate(self, sample_size: int) -> None:
        """Raise ValidationError if the strategy cannot bin ``sample_size`` images."""

    @abstractmethod
    def assign(self, rated: RatedImages) -> Dict[str, str]:
        """Map image names to tags. Assumes ``validate`` passed."""

    def tag_images(self, rated: RatedImages) -> Dict[str, str]:
        self.validate(len(rated))
        return self.assign(rated)

    def _require_images(self, sample_size: int, minimum: int) -> None:
        if sample_size < minimum:
            raise ValidationError(
                f"Need at least {minimum} rated images for {self.display_name}, got {sample_size}."
            )


class QuantileStrategy(TaggingStrategy):
    """Assign tags by percentile rank against cumulative quantile cut points."""

    @property
    @abstractmethod
    def quantiles(self) -> List[float]:
        pass

    def assign(self, rated: RatedImages) -> Dict[str, str]:
        tags = self.output_tags
        scores = np.sort(np.array([rating for _, rating in rated], dtype=float))
        total = len(scores)
        result = {}
        for name, rating in rated:
            # Last index holding a score <= rating, so tied ratings share a rank.
            # Dividing by total - 1 puts the lowest image at 0 and the highest at 1.
            index = int(np.searchsorted(scores, rating, side="right")) - 1
            percentile = index / (total - 1) if total > 1 else 1.0
            result[name] = tag_from_quantiles(percentile, tags, self.quantiles)
        return result


class CustomQuantileStrategy(QuantileStrategy):
    """Five tags split 10% / 20% / 40% / 20% / 10%."""

    name = "customQuantile"

    @property
    def quantiles(self) -> List[float]:
        return CUSTOM_QUANTILES

    def validate(self, sample_size: int) -> None:
        if len(self.tags) != 5:
            raise ValidationError("Custom Quantile strategy requires exactly 5 tag names.")
        self._require_images(sample_size, 5)


class PonyQuantileStrategy(QuantileStrategy):
    """Seven equal bins with the fixed ``score_3`` .. ``score_9`` tags."""

    name = "ponyQuantile"

    @property
    def display_name(self) -> str:
        return "ponyQuantile (Equal 7 Bins)"

    @property
    def output_tags(self) -> List[str]:
        return PONY_TAGS

    @property
    def quantiles(self) -> List[float]:
        return [(i + 1) / 7 for i in range(7)]

    def validate(self, sample_size: int) -> None:
        self._require_images(sample_size, 7)


class EqualQuantileStrategy(QuantileStrategy):
    name = "equalQuantile"

    def __init__(self, tags: Optional[Sequence[str]] = None, num_bins: Optional[int] = None):
        super().__init__(tags)
        self.num_bins = num_bins

    @property
    def quantiles(self) -> List[float]:
        return [(i + 1) / self.num_bins for i in range(self.num_bins)]

    def validate(self, sample_size: int) -> None:
        if not isinstance(self.num_bins, int) or self.num_bins < 2:
            raise ValidationError("Number of bins must be at least 2.")
        if len(self.tags) != self.num_bins:
            raise ValidationError(
                f"Number of tag names ({len(self.tags)}) must match bins ({self.num_bins})."
            )
        self._require_images(sample_size, self.num_bins)


class StdDevStrategy(TaggingStrategy):
    """Tags by distance from the mean in units of the population std dev."""

    name = "stdDev"

    def validate(self, sample_size: int) -> None:
        if len(self.tags) not in STD_DEV_CUTS:
            raise ValidationError("Std Dev strategy requires 5 or 7 tags.")
        self._require_images(sample_size, 2)

    def assign(self, rated: RatedImages) -> Dict[str, str]:
        scores = np.array([rating for _, rating in rated], dtype=float)
        mean = float(scores.mean())
        std_dev = float(scores.std())
        if std_dev == 0 or scores.max() == scores.min():
            return {name: middle_tag(self.tags) for name, _ in rated}

        cuts = STD_DEV_CUTS[len(self.tags)]
        result = {}
        for name, rating in rated:
            result[name] = self.tags[-1]
            for i, multiple in enumerate(cuts):
                bound = mean + multiple * std_dev
                if (multiple < 0 and rating < bound) or (multiple > 0 and rating <= bound):
                    result[name] = self.tags[i]
                    break
        return result


class RangeNormalizationStrategy(TaggingStrategy):
    """Scale ratings onto [0, 1] and cut at fixed thresholds."""

    name = "rangeNormalization"

    def __init__(self, tags: Optional[Sequence[str]] = None,
                 thresholds: Optional[Sequence[float]] = None):
        super().__init__(tags)
        self.thresholds = list(DEFAULT_RANGE_THRESHOLDS if thresholds is None else thresholds)

    def validate(self, sample_size: int) -> None:
        if not self.thresholds:
            raise ValidationError("Range normalization needs at least one threshold.")
        if any(not 0 <= t <= 1 for t in self.thresholds):
            raise ValidationError("Range thresholds must lie between 0 and 1.")
        if any(a > b for a, b in zip(self.thresholds, self.thresholds[1:])):
            raise ValidationError("Range thresholds must be in ascending order.")
        if len(self.tags) != len(self.thresholds) + 1:
            raise ValidationError(
                f"Need {len(self.thresholds) + 1} tag names for {len(self.thresholds)} thresholds."
            )
        self._require_images(sample_size, 2)

    def assign(self, rated: RatedImages) -> Dict[str, str]:
        scores = np.array([rating for _, rating in rated], dtype=float)
        lo, hi = float(scores.min()), float(scores.max())
        if hi == lo:
            return {name: middle_tag(self.tags) for name, _ in rated}

        normalized = (scores - lo) / (hi - lo)
        # A value sitting exactly on a threshold falls into the lower bin
        bins = np.searchsorted(np.array(self.thresholds), normalized, side="left")
        return {name: self.tags[int(b)] for (name, _), b in zip(rated, bins)}


class KMeansStrategy(TaggingStrategy):
    """One tag per 1-D k-means cluster, ordered by centroid."""

    name = "kmeans"

    def __init__(self, tags: Optional[Sequence[str]] = None, num_clusters: Optional[int] = None,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS):
        super().__init__(tags)
        self.num_clusters = len(self.tags) if num_clusters is None else num_clusters
        self.max_iterations = max_iterations

    def validate(self, sample_size: int) -> None:
        if not isinstance(self.num_clusters, int) or self.num_clusters < 2:
            raise ValidationError("Number of clusters (K) must be at least 2.")
        if len(self.tags) != self.num_clusters:
            raise ValidationError(
                f"Number of tag names ({len(self.tags)}) must match K ({self.num_clusters})."
            )
        self._require_images(sample_size, self.num_clusters)

    def assign(self, rated: RatedImages) -> Dict[str, str]:
        ratings = [rating for _, rating in rated]
        if max(ratings) == min(ratings):
            return {name: middle_tag(self.tags) for name, _ in rated}

        result = kmeans_1d(ratings, self.num_clusters, self.max_iterations)
        order = np.argsort(np.array(result.centroids), kind="stable")
        rank = {int(cluster): position for position, cluster in enumerate(order)}
        return {
            name: self.tags[rank[cluster]]
            for (name, _), cluster in zip(rated, result.assignments)
        }


STRATEGY_NAMES = [
    "customQuantile",
    "ponyQuantile",
    "equalQuantile",
    "stdDev",
    "rangeNormalization",
    "kmeans",
]


def create_strategy(
    name: str,
    tags: Optional[Sequence[str]] = None,
    num_bins: Optional[int] = None,
    num_clusters: Optional[int] = None,
    thresholds: Optional[Sequence[float]] = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> TaggingStrategy:
    """
    Build a tagging strategy by name.

    Raises:
        ValidationError: if the strategy name is not recognized
    """
    if name == "customQuantile":
        return CustomQuantileStrategy(tags)
    elif name == "ponyQuantile":
        return PonyQuantileStrategy(tags)
    elif name == "equalQuantile":
        return EqualQuantileStrategy(tags, num_bins=num_bins)
    elif name == "stdDev":
        return StdDevStrategy(tags)
    elif name == "rangeNormalization":
        return RangeNormalizationStrategy(tags, thresholds=thresholds)
    elif name == "kmeans":
        return KMeansStrategy(tags, num_clusters=num_clusters, max_iterations=max_iterations)
    raise ValidationError(
        f"Unknown tagging strategy: {name}. Available: {', '.join(STRATEGY_NAMES)}"
    )
