#!/usr/bin/env python3
"""
CLI entry point for blind_ranker package.

Usage:
    python -m blind_ranker serve --config ...
    python -m blind_ranker rankings --subset ...
    python -m blind_ranker tag --subset ... --strategy ...
    python -m blind_ranker export --subset ... --output ...
    python -m blind_ranker stats --subset ...
"""

import argparse
import logging
import sys

from .binning import STRATEGY_NAMES
from .config import RankerConfig
from .errors import RankerError
from .models import GROUPED, SUBSET_KINDS, UNGROUPED


def parse_list(value: str) -> list:
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_floats(value: str) -> list:
    try:
        return [float(item) for item in parse_list(value)]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected comma-separated numbers, got: {value}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Blind Ranker - Pairwise Elo ranking of images',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  serve      Start the ranking web server
  rankings   Print image (or LoRA group) rankings
  tag        Write aesthetic tags for a subset
  export     Export rankings to CSV
  stats      Show progress and summary statistics

Examples:
  # Start server
  python -m blind_ranker serve --config ranker.yaml

  # Tag a normal subset with 7 k-means clusters
  python -m blind_ranker tag --subset portraits --strategy kmeans \\
      --tags awful,bad,meh,ok,good,great,best --num-clusters 7

  # Export LoRA rankings
  python -m blind_ranker export --kind ai --subset styles --groups --output loras.csv
"""
    )
    parser.add_argument('--config', default=None, help='Path to config YAML/JSON (optional)')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Serve command
    serve = subparsers.add_parser('serve', help='Start ranking server')
    serve.add_argument('--port', type=int, default=None, help='Server port')
    serve.add_argument('--host', default=None, help='Server host')

    # Rankings command
    rankings = subparsers.add_parser('rankings', help='Print rankings')
    rankings.add_argument('--kind', choices=SUBSET_KINDS, default=UNGROUPED)
    rankings.add_argument('--subset', required=True, help='Subset name')
    rankings.add_argument('--groups', action='store_true', help='Rank LoRA groups instead of images')
    rankings.add_argument('--limit', type=int, default=None, help='Show only the top N')

    # Tag command
    tag = subparsers.add_parser('tag', help='Apply aesthetic tags')
    tag.add_argument('--kind', choices=SUBSET_KINDS, default=UNGROUPED)
    tag.add_argument('--subset', required=True, help='Subset name')
    tag.add_argument('--strategy', choices=STRATEGY_NAMES, default='customQuantile')
    tag.add_argument('--tags', type=parse_list, default=None, help='Comma-separated tag names, worst first')
    tag.add_argument('--prefix', default=None, help='Tag prefix')
    tag.add_argument('--num-bins', type=int, default=None, help='Bins for equalQuantile')
    tag.add_argument('--num-clusters', type=int, default=None, help='K for kmeans')
    tag.add_argument('--thresholds', type=parse_floats, default=None,
                     help='Comma-separated thresholds for rangeNormalization')
    tag.add_argument('--dry-run', action='store_true', help='Show assignments without writing files')

    # Export command
    export = subparsers.add_parser('export', help='Export rankings to CSV')
    export.add_argument('--kind', choices=SUBSET_KINDS, default=UNGROUPED)
    export.add_argument('--subset', required=True, help='Subset name')
    export.add_argument('--groups', action='store_true', help='Export LoRA groups (AI subsets)')
    export.add_argument('--output', required=True, help='Output CSV file')

    # Stats command
    stats = subparsers.add_parser('stats', help='Show progress statistics')
    stats.add_argument('--kind', choices=SUBSET_KINDS, default=UNGROUPED)
    stats.add_argument('--subset', required=True, help='Subset name')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    config = RankerConfig.load(args.config)
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")

    if args.command == 'serve':
        from .server import run
        run(config, host=args.host, port=args.port)
        return 0

    from .service import build_service
    service = build_service(config, background=False)
    try:
        if args.command == 'rankings':
            show_rankings(service, args.kind, args.subset, args.groups, args.limit)
        elif args.command == 'tag':
            tag_subset(service, args)
        elif args.command == 'export':
            export_rankings(service, args.kind, args.subset, args.groups, args.output)
        elif args.command == 'stats':
            show_stats(service, args.kind, args.subset)
    except RankerError as e:
        print(f"Error: {e}")
        return 1
    finally:
        service.close()
    return 0


def show_rankings(service, kind: str, subset: str, groups: bool = False, limit: int = None):
    """Print a ranked table."""
    if groups:
        rows = service.group_rankings(subset)
        key = "group"
    else:
        rows = service.image_rankings(kind, subset)
        key = "image"

    if limit:
        rows = rows[:limit]

    if not rows:
        print("Nothing ranked yet.")
        return

    for position, row in enumerate(rows, start=1):
        print(f"{position:4d}. {row['rating']:8.1f}  ({row['matches']:3d} matches)  {row[key]}")


def tag_subset(service, args):
    """Apply tags and report the distribution."""
    result = service.apply_tags(
        args.kind,
        args.subset,
        strategy=args.strategy,
        tags=args.tags,
        prefix=args.prefix,
        num_bins=args.num_bins,
        num_clusters=args.num_clusters,
        thresholds=args.thresholds,
        dry_run=args.dry_run,
    )
    print(result["message"])
    if args.dry_run:
        for image, assigned in sorted(result["assignments"].items()):
            print(f"  {image}: {assigned}")

    print("\nTag distribution:")
    for assigned, count in sorted(result["tagCounts"].items()):
        print(f"  {assigned}: {count}")


def export_rankings(service, kind: str, subset: str, groups: bool, output_path: str):
    """Export rankings to a CSV file."""
    from .export import groups_csv, images_csv, write_csv

    if groups:
        rows = service.group_rankings(subset)
        text = groups_csv(rows)
    else:
        rows = service.image_rankings(kind, subset)
        text = images_csv(rows, grouped=kind == GROUPED)

    write_csv(output_path, text)
    print(f"Exported {len(rows)} rows to {output_path}")


def show_stats(service, kind: str, subset: str):
    """Show ranking statistics."""
    progress = service.progress(kind, subset)
    summary = service.image_summary(kind, subset)
    seeding = service.seeding_status(kind, subset)

    print(f"Seeded: {progress['initializedImagesCount']} / {progress['totalImages']}")
    print(f"Fewest matches: {progress['minimalMatches']}")
    print(f"Average rating: {summary['averageRating']:.1f}")
    print(f"Average matches: {summary['averageMatches']:.1f}")
    if seeding["needsSeeding"]:
        print(f"Awaiting seeding: {len(seeding['uninitializedImages'])}")

    if kind == GROUPED:
        groups = service.group_summary(subset)
        print()
        print(f"LoRA groups: {groups['count']}")
        print(f"Average group rating: {groups['averageRating']:.1f}")


if __name__ == '__main__':
    sys.exit(main())
