"""
Configuration system for Blind Ranker.

Allows customizing image folders, data location, matchmaking behaviour and
tagging defaults per deployment.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import json
import yaml

from .binning import DEFAULT_BIN_TAGS, DEFAULT_MAX_ITERATIONS, DEFAULT_RANGE_THRESHOLDS
from .models import GROUPED


@dataclass
class RankerConfig:
    """Configuration for a ranking deployment."""

    # Deployment identity
    name: str = "Blind Image Ranker"

    # Folders: one subdirectory per subset inside each image folder
    ai_images_dir: str = "AI_images"
    normal_images_dir: str = "normal_images"
    data_dir: str = "data"

    # File extensions picked up per subset kind
    grouped_extensions: list = field(default_factory=lambda: [".png"])
    normal_extensions: list = field(
        default_factory=lambda: [".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif"]
    )

    # Matchmaking: refuse pairs while any image is unseeded
    block_matches_until_seeded: bool = False
    # Randomize left/right presentation of the selected pair
    shuffle_pairs: bool = True

    # Tagging defaults (used when a request omits them)
    default_tag_prefix: str = "aesthetic_rating_"
    default_bin_tags: list = field(default_factory=lambda: list(DEFAULT_BIN_TAGS))
    default_range_thresholds: list = field(default_factory=lambda: list(DEFAULT_RANGE_THRESHOLDS))
    kmeans_max_iterations: int = DEFAULT_MAX_ITERATIONS

    # Remove the image file from disk when an image is deleted
    delete_image_files: bool = True

    # Show a progress bar while reading PNG metadata at load time
    show_progress: bool = False

    log_level: str = "INFO"

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000

    @classmethod
    def from_file(cls, path: str) -> "RankerConfig":
        """Load config from YAML or JSON file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            if path.suffix in ('.yaml', '.yml'):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        return cls(**data)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "RankerConfig":
        """Load from ``path`` when given, otherwise return defaults."""
        if path:
            return cls.from_file(path)
        return cls()

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "name": self.name,
            "block_matches_until_seeded": self.block_matches_until_seeded,
            "default_tag_prefix": self.default_tag_prefix,
            "default_bin_tags": self.default_bin_tags,
            "default_range_thresholds": self.default_range_thresholds,
            "kmeans_max_iterations": self.kmeans_max_iterations,
        }

    def images_dir(self, kind: str) -> Path:
        """Root folder holding the subsets of ``kind``."""
        return Path(self.ai_images_dir if kind == GROUPED else self.normal_images_dir)

    def extensions(self, kind: str) -> set:
        exts = self.grouped_extensions if kind == GROUPED else self.normal_extensions
        return {e.lower() if e.startswith(".") else f".{e.lower()}" for e in exts}


DEFAULT_CONFIG = RankerConfig()
