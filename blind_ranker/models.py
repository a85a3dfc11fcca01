"""
In-memory data model for rated subsets.

An image is either Uninitialized (waiting for a star rating) or Initialized
with an Elo rating and a match count. Group models are always initialized.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

DEFAULT_RATING = 1000.0

# Group string meaning "known to carry no group"
NO_GROUP = "NONE"

GROUPED = "ai"
UNGROUPED = "normal"
SUBSET_KINDS = (GROUPED, UNGROUPED)


@dataclass(frozen=True)
class Uninitialized:
    """Image that has not been seeded yet."""


@dataclass(frozen=True)
class Initialized:
    """Seeded entity with an Elo rating."""
    rating: float
    matches: int = 0


UNINITIALIZED = Uninitialized()

RatingState = Union[Uninitialized, Initialized]


def has_group(group: Optional[str]) -> bool:
    """True when the group string names a real group model."""
    return bool(group) and group != NO_GROUP


@dataclass
class Image:
    """A rated image inside a subset."""
    name: str
    group: str = ""
    state: RatingState = UNINITIALIZED

    @property
    def is_initialized(self) -> bool:
        return isinstance(self.state, Initialized)

    @property
    def rating(self) -> Optional[float]:
        return self.state.rating if self.is_initialized else None

    @property
    def matches(self) -> Optional[int]:
        return self.state.matches if self.is_initialized else None


@dataclass
class GroupModel:
    """Elo state of a group (LoRA) shared by several images."""
    name: str
    state: Initialized = field(default_factory=lambda: Initialized(DEFAULT_RATING, 0))

    @property
    def rating(self) -> float:
        return self.state.rating

    @property
    def matches(self) -> int:
        return self.state.matches


@dataclass
class Subset:
    """A named, independently ranked collection of images."""
    name: str
    kind: str = UNGROUPED
    images: Dict[str, Image] = field(default_factory=dict)
    groups: Dict[str, GroupModel] = field(default_factory=dict)
    online: bool = True
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def grouped(self) -> bool:
        return self.kind == GROUPED

    def image(self, name: str) -> Optional[Image]:
        return self.images.get(name)

    def group(self, name: str) -> Optional[GroupModel]:
        return self.groups.get(name)

    def ensure_group(self, name: str) -> Optional[GroupModel]:
        """Get the group model for ``name``, creating it on first sight."""
        if not self.grouped or not has_group(name):
            return None
        if name not in self.groups:
            self.groups[name] = GroupModel(name)
        return self.groups[name]

    def initialized_images(self) -> list:
        return [img for img in self.images.values() if img.is_initialized]

    def uninitialized_names(self) -> list:
        return [img.name for img in self.images.values() if not img.is_initialized]
