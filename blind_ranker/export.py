#!/usr/bin/env python3
"""
Export utilities for blind_ranker.

Convert ranking snapshots to CSV for spreadsheets and training pipelines.
"""

import csv
import io
from pathlib import Path


def _to_csv(headers: list, rows: list) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def images_csv(rankings: list, grouped: bool) -> str:
    """
    CSV of ranked images.

    Columns are ``image,group,rating,matches`` for AI subsets and
    ``image,rating,matches`` for normal subsets.
    """
    if grouped:
        headers = ["image", "group", "rating", "matches"]
        rows = [[r["image"], r.get("group", ""), r["rating"], r["matches"]] for r in rankings]
    else:
        headers = ["image", "rating", "matches"]
        rows = [[r["image"], r["rating"], r["matches"]] for r in rankings]
    return _to_csv(headers, rows)


def groups_csv(rankings: list) -> str:
    """CSV of ranked group models."""
    rows = [[r["group"], r["rating"], r["matches"]] for r in rankings]
    return _to_csv(["group", "rating", "matches"], rows)


def write_csv(output_path: str, text: str) -> None:
    """Write CSV text to ``output_path``."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        f.write(text)
