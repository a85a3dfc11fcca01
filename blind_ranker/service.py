"""
Ranking operations over the entity store.

Every mutating operation changes memory first, under the subset lock, and
then queues a snapshot for the save worker.
"""

import logging
import random
from typing import Dict, List, Optional, Sequence

from . import elo
from .binning import create_strategy
from .config import DEFAULT_CONFIG, RankerConfig
from .errors import NotFound, ValidationError
from .library import ImageLibrary
from .matchmaking import select_pair
from .models import GROUPED, SUBSET_KINDS, Subset, has_group
from .persistence import SaveWorker, SyncSaver, snapshot_subset
from .seeding import requires_seeding, seed_subset
from .store import EntityStore, group_snapshot, image_snapshot
from .tagfiles import apply_tags as write_tag_files

logger = logging.getLogger(__name__)


def _averages(entities: list) -> dict:
    count = len(entities)
    if count == 0:
        return {"count": 0, "averageRating": 0, "averageMatches": 0}
    return {
        "count": count,
        "averageRating": sum(e.rating for e in entities) / count,
        "averageMatches": sum(e.matches for e in entities) / count,
    }


class RankingService:
    """Seeding, matchmaking, voting and tagging for all loaded subsets."""

    def __init__(self, store: EntityStore, library: ImageLibrary,
                 config: RankerConfig = DEFAULT_CONFIG, saver=None,
                 rng: Optional[random.Random] = None):
        self.store = store
        self.library = library
        self.config = config
        self.saver = saver if saver is not None else SaveWorker(library.repository)
        self.rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _check_kind(self, kind: str) -> None:
        if kind not in SUBSET_KINDS:
            raise NotFound(f"Unknown subset kind: {kind}")

    def _subset(self, kind: str, name: str) -> Subset:
        self._check_kind(kind)
        subset = self.store.subset(kind, name)
        if subset is None:
            label = "AI" if kind == GROUPED else "Normal"
            raise NotFound(f"{label} subset '{name}' not found.")
        return subset

    def _save(self, subset: Subset) -> None:
        self.saver.submit(subset.kind, subset.name, snapshot_subset(subset))

    def list_subsets(self, kind: str) -> List[str]:
        self._check_kind(kind)
        return self.store.subset_names(kind)

    # ------------------------------------------------------------------
    # Seeding and matchmaking
    # ------------------------------------------------------------------

    def seeding_status(self, kind: str, name: str) -> dict:
        subset = self._subset(kind, name)
        with subset.lock:
            return requires_seeding(subset)

    def next_match(self, kind: str, name: str) -> dict:
        """
        Next pair to compare, or a seeding request.

        A seeding request is returned while unseeded images remain and fewer
        than two images are seeded (or always, when the deployment blocks
        matches until seeding is complete).
        """
        subset = self._subset(kind, name)
        with subset.lock:
            status = requires_seeding(subset)
            seeded = subset.initialized_images()
            pending = status["uninitializedImages"]
            if pending and (self.config.block_matches_until_seeded or len(seeded) < 2):
                pending = list(pending)
                self.rng.shuffle(pending)
                return {"requiresSeeding": True, "uninitializedImages": pending}

            rng = self.rng if self.config.shuffle_pairs else None
            first, second = select_pair(seeded, rng)
            return {
                "requiresSeeding": False,
                "image1": first.name,
                "image2": second.name,
                "pendingSeeding": len(pending),
            }

    def seed(self, kind: str, name: str, ratings: Dict[str, object]) -> int:
        subset = self._subset(kind, name)
        with subset.lock:
            seeded = seed_subset(subset, ratings or {})
            if seeded == 0:
                raise ValidationError("No valid uninitialized images with ratings provided.")
            self._save(subset)
        logger.info("Seeded %d images in %s subset %s", seeded, kind, name)
        return seeded

    # ------------------------------------------------------------------
    # Voting and deletion
    # ------------------------------------------------------------------

    def vote(self, kind: str, name: str, winner: str, loser: str) -> dict:
        """Record that ``winner`` beat ``loser``."""
        subset = self._subset(kind, name)
        with subset.lock:
            if winner == loser:
                raise ValidationError("Winner and loser must be different images.")
            winner_image = subset.image(winner)
            loser_image = subset.image(loser)
            if winner_image is None or loser_image is None:
                missing = winner if winner_image is None else loser
                raise NotFound(f"Image '{missing}' not found in subset '{name}'.")
            if not winner_image.is_initialized or not loser_image.is_initialized:
                raise ValidationError("Cannot vote on unseeded images.")

            elo.record_result(winner_image, loser_image)

            groups_updated = False
            if (subset.grouped and has_group(winner_image.group) and has_group(loser_image.group)
                    and winner_image.group != loser_image.group):
                elo.record_result(subset.ensure_group(winner_image.group),
                                  subset.ensure_group(loser_image.group))
                groups_updated = True

            self._save(subset)
            return {
                "winner": {"rating": winner_image.rating, "matches": winner_image.matches},
                "loser": {"rating": loser_image.rating, "matches": loser_image.matches},
                "groupsUpdated": groups_updated,
            }

    def delete_image(self, kind: str, name: str, image: str) -> dict:
        subset = self._subset(kind, name)
        with subset.lock:
            if subset.image(image) is None:
                raise NotFound(f"Image '{image}' not found in subset '{name}'.")
            del subset.images[image]
            self._save(subset)

        deleted_file = False
        if self.config.delete_image_files:
            deleted_file = self.library.delete_file(kind, name, image)
        logger.info("Deleted %s from %s subset %s", image, kind, name)
        return {"deletedFile": deleted_file}

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    def image_rankings(self, kind: str, name: str) -> List[dict]:
        subset = self._subset(kind, name)
        with subset.lock:
            return image_snapshot(subset)

    def group_rankings(self, name: str) -> List[dict]:
        subset = self._subset(GROUPED, name)
        with subset.lock:
            return group_snapshot(subset)

    def progress(self, kind: str, name: str) -> dict:
        subset = self._subset(kind, name)
        with subset.lock:
            seeded = subset.initialized_images()
            total = len(subset.images)
        minimal = min((img.matches for img in seeded), default=0)
        return {
            "minimalMatches": minimal,
            "totalImages": total,
            "initializedImagesCount": len(seeded),
        }

    def image_summary(self, kind: str, name: str) -> dict:
        subset = self._subset(kind, name)
        with subset.lock:
            return _averages(subset.initialized_images())

    def group_summary(self, name: str) -> dict:
        subset = self._subset(GROUPED, name)
        with subset.lock:
            return _averages(list(subset.groups.values()))

    def image_path(self, kind: str, name: str, image: str):
        subset = self._subset(kind, name)
        if subset.image(image) is None:
            raise NotFound(f"Image '{image}' not found in subset '{name}'.")
        path = self.library.image_path(kind, name, image)
        if not path.is_file():
            raise NotFound(f"Image file not found: {image}")
        return path

    # ------------------------------------------------------------------
    # Tagging
    # ------------------------------------------------------------------

    def apply_tags(self, kind: str, name: str, strategy: str = "customQuantile",
                   tags: Optional[Sequence[str]] = None, prefix: Optional[str] = None,
                   num_bins: Optional[int] = None, num_clusters: Optional[int] = None,
                   thresholds: Optional[Sequence[float]] = None, dry_run: bool = False) -> dict:
        """
        Bin the subset's ratings and write the resulting tags to sidecars.

        With ``dry_run`` the assignments are returned without touching files.
        """
        subset = self._subset(kind, name)
        prefix = self.config.default_tag_prefix if prefix is None else prefix
        if not prefix:
            raise ValidationError("Tag prefix must not be empty.")
        if tags is None:
            tags = self.config.default_bin_tags
        if thresholds is None:
            thresholds = self.config.default_range_thresholds

        with subset.lock:
            rated = [(img.name, img.rating) for img in subset.initialized_images()]
        if not rated:
            raise ValidationError(f'No rated images found in subset "{name}".')

        tagger = create_strategy(
            strategy,
            tags=tags,
            num_bins=num_bins,
            num_clusters=num_clusters,
            thresholds=thresholds,
            max_iterations=self.config.kmeans_max_iterations,
        )
        assignments = tagger.tag_images(rated)

        if dry_run:
            counts: Dict[str, int] = {}
            for tag in assignments.values():
                counts[tag] = counts.get(tag, 0) + 1
            return {
                "message": f'Preview for subset "{name}" using strategy "{tagger.display_name}".',
                "processed": 0,
                "errors": 0,
                "tagCounts": counts,
                "assignments": assignments,
            }

        report = write_tag_files(self.library.subset_dir(kind, name), assignments, prefix)
        message = (
            f'Tagging complete for subset "{name}" using strategy "{tagger.display_name}". '
            f"Processed: {report.processed}, Errors: {report.errors}."
        )
        logger.info("%s Tag counts: %s", message, report.tag_counts)
        return {
            "message": message,
            "processed": report.processed,
            "errors": report.errors,
            "tagCounts": report.tag_counts,
            "assignments": assignments,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        """Reload every subset from disk, after pending saves are written."""
        self.saver.flush()
        self.store.replace_all(self.library.load_all())
        logger.info("Reload complete")

    def close(self) -> None:
        self.saver.flush()
        self.saver.close()


def build_service(config: RankerConfig = DEFAULT_CONFIG, background: bool = True,
                  rng: Optional[random.Random] = None) -> RankingService:
    """Load every subset from disk and wire up a service."""
    library = ImageLibrary(config)
    store = EntityStore(library.load_all())
    saver = SaveWorker(library.repository) if background else SyncSaver(library.repository)
    return RankingService(store, library, config=config, saver=saver, rng=rng)
