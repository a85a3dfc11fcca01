"""
JSON persistence for subset ratings.

One file per subset in the data directory:

    ratings-<subset>.json          grouped (AI) subsets
    ratings-normal-<subset>.json   ungrouped subsets

Saves run on a background worker thread so a vote never waits on disk.
In-memory state is the source of truth; a failed save is logged and the
next successful save catches up.
"""

import json
import logging
import os
import queue
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import PersistenceFailure
from .models import DEFAULT_RATING, GROUPED, Subset

logger = logging.getLogger(__name__)

GROUPED_FILE = re.compile(r"^ratings-(?!normal-)(.+)\.json$")


@dataclass
class SavedRatings:
    """Persisted state of one subset."""
    ratings: Dict[str, float] = field(default_factory=dict)
    match_count: Dict[str, int] = field(default_factory=dict)
    group_model_ratings: Dict[str, dict] = field(default_factory=dict)
    images: Dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "ratings": self.ratings,
            "matchCount": self.match_count,
            "groupModelRatings": self.group_model_ratings,
            "images": self.images,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SavedRatings":
        if not isinstance(data, dict):
            raise ValueError("ratings file must contain a JSON object")
        groups = data.get("groupModelRatings")
        if groups is None:
            # Files written before groups were renamed
            groups = data.get("loraModelRatings")
        return cls(
            ratings=dict(data.get("ratings") or {}),
            match_count=dict(data.get("matchCount") or {}),
            group_model_ratings=dict(groups or {}),
            images=dict(data.get("images") or {}),
        )

    def group_state(self, name: str) -> Tuple[float, int]:
        saved = self.group_model_ratings.get(name) or {}
        rating = saved.get("rating")
        count = saved.get("count")
        return (
            DEFAULT_RATING if rating is None else float(rating),
            0 if count is None else int(count),
        )

    def saved_group(self, image_name: str) -> str:
        return (self.images.get(image_name) or {}).get("group") or ""


def snapshot_subset(subset: Subset) -> SavedRatings:
    """Capture the persistable state of a subset."""
    saved = SavedRatings()
    for name, image in subset.images.items():
        if image.is_initialized:
            saved.ratings[name] = image.rating
            saved.match_count[name] = image.matches
    if subset.grouped:
        for name, group in subset.groups.items():
            saved.group_model_ratings[name] = {"rating": group.rating, "count": group.matches}
        for name, image in subset.images.items():
            if image.group:
                saved.images[name] = {"group": image.group}
    return saved


class RatingsRepository:
    """Reads and writes ratings files in a data directory."""

    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)

    def path_for(self, kind: str, subset: str) -> Path:
        if kind == GROUPED:
            return self.data_dir / f"ratings-{subset}.json"
        return self.data_dir / f"ratings-normal-{subset}.json"

    def exists(self, kind: str, subset: str) -> bool:
        return self.path_for(kind, subset).exists()

    def load(self, kind: str, subset: str) -> SavedRatings:
        """Load a subset's ratings. Missing or corrupt files give empty state."""
        path = self.path_for(kind, subset)
        if not path.exists():
            return SavedRatings()
        try:
            with open(path, encoding="utf-8") as f:
                return SavedRatings.from_dict(json.load(f))
        except (OSError, ValueError) as e:
            logger.error("Error parsing %s, starting from empty state: %s", path, e)
            return SavedRatings()

    def save(self, kind: str, subset: str, saved: SavedRatings) -> None:
        """Write a subset's ratings atomically."""
        path = self.path_for(kind, subset)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(saved.to_dict(), f, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceFailure(f"Failed to save ratings for {subset}: {e}") from e

    def grouped_subset_names(self) -> List[str]:
        """Grouped subsets that have a ratings file."""
        if not self.data_dir.is_dir():
            return []
        names = []
        for entry in self.data_dir.iterdir():
            match = GROUPED_FILE.match(entry.name)
            if match:
                names.append(match.group(1))
        return names


class SaveWorker:
    """Background thread that writes queued subset snapshots."""

    def __init__(self, repository: RatingsRepository):
        self.repository = repository
        self._queue: "queue.Queue[Optional[tuple]]" = queue.Queue()
        self._thread = threading.Thread(target=self._run, name="ratings-saver", daemon=True)
        self._thread.start()
        self.failures = 0

    def submit(self, kind: str, subset: str, saved: SavedRatings) -> None:
        """Queue a snapshot for writing; returns immediately."""
        self._queue.put((kind, subset, saved))

    def flush(self) -> None:
        """Block until every queued snapshot has been handled."""
        self._queue.join()

    def close(self) -> None:
        if self._thread.is_alive():
            self._queue.put(None)
            self._thread.join()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                kind, subset, saved = item
                self.repository.save(kind, subset, saved)
                logger.debug("Saved ratings for %s subset %s", kind, subset)
            except PersistenceFailure as e:
                self.failures += 1
                logger.error("%s", e)
            finally:
                self._queue.task_done()


class SyncSaver:
    """Writes snapshots immediately on the calling thread (CLI use)."""

    def __init__(self, repository: RatingsRepository):
        self.repository = repository
        self.failures = 0

    def submit(self, kind: str, subset: str, saved: SavedRatings) -> None:
        try:
            self.repository.save(kind, subset, saved)
        except PersistenceFailure as e:
            self.failures += 1
            logger.error("%s", e)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass
