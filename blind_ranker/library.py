"""
Build subsets from image folders merged with persisted ratings.

Layout:

    <ai_images_dir>/<subset>/*.png        grouped subsets (LoRA from metadata)
    <normal_images_dir>/<subset>/*.jpg    ungrouped subsets

A grouped subset whose folder has disappeared is still loaded from its
ratings file ("offline") so its rankings stay available.
"""

import logging
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from .config import RankerConfig
from .errors import NotFound
from .metadata import extract_group
from .models import (GROUPED, UNGROUPED, UNINITIALIZED, GroupModel, Image,
                     Initialized, RatingState, Subset)
from .persistence import RatingsRepository, SavedRatings

logger = logging.getLogger(__name__)


def collect_images(root: Path, extensions: set) -> list:
    """Image files directly inside ``root``, sorted by name."""
    paths = [p for p in root.iterdir() if p.is_file() and p.suffix.lower() in extensions]
    return sorted(paths, key=lambda p: p.name)


def saved_state(saved: SavedRatings, name: str) -> RatingState:
    rating = saved.ratings.get(name)
    if rating is None:
        return UNINITIALIZED
    try:
        return Initialized(float(rating), int(saved.match_count.get(name) or 0))
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed saved rating %r for %s", rating, name)
        return UNINITIALIZED


class ImageLibrary:
    """Discovers subsets on disk and loads them into Subset objects."""

    def __init__(self, config: RankerConfig, repository: Optional[RatingsRepository] = None):
        self.config = config
        self.repository = repository or RatingsRepository(config.data_dir)

    def subset_dir(self, kind: str, subset: str) -> Path:
        return self.config.images_dir(kind) / subset

    def _subdirectories(self, kind: str) -> List[str]:
        root = self.config.images_dir(kind)
        if not root.is_dir():
            return []
        return [p.name for p in root.iterdir() if p.is_dir()]

    def discover(self, kind: str) -> List[str]:
        names = set(self._subdirectories(kind))
        if kind == GROUPED:
            names.update(self.repository.grouped_subset_names())
        return sorted(names)

    def load_all(self) -> List[Subset]:
        subsets = []
        for kind in (GROUPED, UNGROUPED):
            names = self.discover(kind)
            if not names:
                logger.info("No %s subsets found", kind)
                continue
            logger.info("Loading %s subsets: %s", kind, ", ".join(names))
            for name in names:
                subset = self.load(kind, name)
                if subset is not None:
                    subsets.append(subset)
        return subsets

    def load(self, kind: str, name: str) -> Optional[Subset]:
        if kind == GROUPED:
            return self.load_grouped(name)
        return self.load_ungrouped(name)

    def load_grouped(self, name: str) -> Subset:
        """Load an AI subset; images need LoRA metadata or a saved rating."""
        saved = self.repository.load(GROUPED, name)
        subset = Subset(name=name, kind=GROUPED)

        for group_name in saved.group_model_ratings:
            rating, matches = saved.group_state(group_name)
            subset.groups[group_name] = GroupModel(group_name, Initialized(rating, matches))

        folder = self.subset_dir(GROUPED, name)
        files = []
        try:
            if folder.is_dir():
                files = collect_images(folder, self.config.extensions(GROUPED))
            else:
                subset.online = False
        except OSError as e:
            logger.warning("Error accessing %s: %s. Loading offline.", folder, e)
            subset.online = False

        for path in tqdm(files, desc=f"Reading {name}", disable=not self.config.show_progress):
            group = extract_group(path)
            state = saved_state(saved, path.name)
            if group or isinstance(state, Initialized):
                image = Image(path.name, group or saved.saved_group(path.name), state)
                subset.images[path.name] = image
                subset.ensure_group(image.group)

        # Rated images whose files are gone
        for image_name in saved.ratings:
            if image_name in subset.images:
                continue
            state = saved_state(saved, image_name)
            if isinstance(state, Initialized):
                image = Image(image_name, saved.saved_group(image_name), state)
                subset.images[image_name] = image
                subset.ensure_group(image.group)

        logger.info(
            "Loaded AI subset %s. Images: %d, groups: %d. Mode: %s",
            name, len(subset.images), len(subset.groups), "online" if subset.online else "offline",
        )
        return subset

    def load_ungrouped(self, name: str) -> Optional[Subset]:
        folder = self.subset_dir(UNGROUPED, name)
        try:
            files = collect_images(folder, self.config.extensions(UNGROUPED))
        except OSError as e:
            logger.error("Error reading normal subset directory %s: %s", folder, e)
            return None

        saved = self.repository.load(UNGROUPED, name)
        subset = Subset(name=name, kind=UNGROUPED)
        for path in files:
            subset.images[path.name] = Image(path.name, "", saved_state(saved, path.name))

        logger.info("Loaded normal subset %s. Images: %d", name, len(subset.images))
        return subset

    def image_path(self, kind: str, subset: str, image: str) -> Path:
        """Path of an image file, refusing names that leave the subset folder."""
        folder = self.subset_dir(kind, subset).resolve()
        path = (folder / image).resolve()
        if path.parent != folder:
            raise NotFound(f"Image not found: {image}")
        return path

    def delete_file(self, kind: str, subset: str, image: str) -> bool:
        """
        Remove an image file from disk.

        Returns:
            True if the file is gone (deleted or already missing).
        """
        path = self.image_path(kind, subset, image)
        try:
            path.unlink()
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.error("Error deleting file %s: %s", path, e)
            return False
        return True
