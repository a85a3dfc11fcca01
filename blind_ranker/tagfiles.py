"""
Write aesthetic tags into per-image caption sidecars.

Each image ``foo.png`` has an optional ``foo.txt`` holding comma separated
tags. Applying a tag replaces any earlier tag with the same prefix and keeps
everything else.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)


@dataclass
class TaggingReport:
    processed: int = 0
    errors: int = 0
    tag_counts: Dict[str, int] = field(default_factory=dict)


def sidecar_path(subset_dir: Path, image_name: str) -> Path:
    return Path(subset_dir) / f"{Path(image_name).stem}.txt"


def merge_tag(content: str, prefix: str, tag: str) -> str:
    """Replace prefixed tags in ``content`` with ``prefix + tag``."""
    tags = [t.strip() for t in content.split(",")]
    tags = [t for t in tags if t and not t.startswith(prefix)]
    tags.append(prefix + tag)
    return ", ".join(tags)


def write_tag(path: Path, prefix: str, tag: str) -> None:
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        content = ""
    path.write_text(merge_tag(content, prefix, tag), encoding="utf-8")


def apply_tags(subset_dir: Path, assignments: Dict[str, str], prefix: str) -> TaggingReport:
    """Write every assigned tag to its sidecar, counting failures."""
    counts = Counter()
    report = TaggingReport()
    for image_name, tag in assignments.items():
        counts[tag] += 1
        path = sidecar_path(subset_dir, image_name)
        try:
            write_tag(path, prefix, tag)
            report.processed += 1
        except OSError as e:
            logger.error("Error processing tag file for %s (%s): %s", image_name, path, e)
            report.errors += 1
    report.tag_counts = dict(counts)
    return report
