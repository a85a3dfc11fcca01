"""
In-memory registry of loaded subsets.

Lookups return None for unknown names; the service layer decides how to
report that. Rating state is only changed by seeding and Elo updates.
"""

from typing import Dict, Iterable, List, Optional

from .models import GROUPED, SUBSET_KINDS, GroupModel, Image, Subset


class EntityStore:
    """Holds every subset of both kinds for the lifetime of the process."""

    def __init__(self, subsets: Iterable[Subset] = ()):
        self._subsets: Dict[str, Dict[str, Subset]] = {kind: {} for kind in SUBSET_KINDS}
        for subset in subsets:
            self.register(subset)

    def register(self, subset: Subset) -> None:
        self._subsets[subset.kind][subset.name] = subset

    def replace_all(self, subsets: Iterable[Subset]) -> None:
        """Swap the whole registry, e.g. after rescanning the disk."""
        fresh = {kind: {} for kind in SUBSET_KINDS}
        for subset in subsets:
            fresh[subset.kind][subset.name] = subset
        self._subsets = fresh

    def subset(self, kind: str, name: str) -> Optional[Subset]:
        return self._subsets.get(kind, {}).get(name)

    def subset_names(self, kind: str) -> List[str]:
        return sorted(self._subsets.get(kind, {}), key=lambda n: (n.lower(), n))

    def subsets(self, kind: str) -> List[Subset]:
        return [self._subsets[kind][name] for name in self.subset_names(kind)]

    def image(self, kind: str, subset: str, name: str) -> Optional[Image]:
        found = self.subset(kind, subset)
        return found.image(name) if found else None

    def group(self, subset: str, name: str) -> Optional[GroupModel]:
        found = self.subset(GROUPED, subset)
        return found.group(name) if found else None


def image_snapshot(subset: Subset) -> List[dict]:
    """Initialized images of a subset, highest rating first."""
    rows = []
    for image in subset.initialized_images():
        row = {"image": image.name, "rating": image.rating, "matches": image.matches}
        if subset.grouped:
            row["group"] = image.group
        rows.append(row)
    rows.sort(key=lambda r: r["rating"], reverse=True)
    return rows


def group_snapshot(subset: Subset) -> List[dict]:
    """Group models of a subset, highest rating first."""
    rows = [
        {"group": group.name, "rating": group.rating, "matches": group.matches}
        for group in subset.groups.values()
    ]
    rows.sort(key=lambda r: r["rating"], reverse=True)
    return rows
