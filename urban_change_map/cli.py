"""Command line interface for the urban change data pipeline."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional

from . import config
from .heatmap import export_heatmap, run_aggregation
from .ingest import run_ingestion
from .normalize import parse_date
from .sources import ADAPTERS
from .storage import ChangeDatabase
from .transform import run_compute


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NYC urban change heatmap data pipeline")
    parser.add_argument("command", choices=["ingest", "compute", "aggregate", "export"], help="Pipeline stage to execute")
    parser.add_argument("--db", dest="db_path", default=str(config.DEFAULT_DATABASE_PATH), help="SQLite database path")
    parser.add_argument(
        "--app-token",
        dest="app_token",
        default=os.environ.get(config.APP_TOKEN_ENV),
        help=f"NYC Open Data app token (defaults to ${config.APP_TOKEN_ENV})",
    )
    parser.add_argument(
        "--source",
        dest="sources",
        action="append",
        choices=sorted(ADAPTERS),
        default=None,
        help="Source to ingest; repeat for several (default: all)",
    )
    parser.add_argument("--since", dest="since_date", default=None, help="Fetch records on or after this date (YYYY-MM-DD)")
    parser.add_argument("--force", dest="force", action="store_true", help="Ignore the minimum sync interval")
    parser.add_argument("--page-size", dest="page_size", type=int, default=None, help="Override the per-source page size")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Fetch data without writing to the database")
    parser.add_argument("--snapshot", dest="snapshot_path", default=None, help="Optional path to write newline-delimited JSON snapshot")
    parser.add_argument("--batch-size", dest="batch_size", type=int, default=config.STATE_BATCH_SIZE, help="Places per state computation batch")
    parser.add_argument("--resolution", dest="resolution", type=int, default=config.H3_RESOLUTION, help="H3 resolution for heatmap cells")
    parser.add_argument("--output", dest="output_path", default=None, help="Output path for the exported heatmap dataset")
    parser.add_argument("--verbose", dest="verbose", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "ingest":
        since_date = parse_date(args.since_date) if args.since_date else None
        if args.since_date and since_date is None:
            raise ValueError(f"Unparseable --since date: {args.since_date}")
        results = run_ingestion(
            db_path=args.db_path,
            sources=args.sources,
            app_token=args.app_token,
            force=args.force,
            since_date=since_date,
            page_size=args.page_size,
            dry_run=args.dry_run,
            snapshot_path=args.snapshot_path,
        )
        return 0 if all(stats.complete for stats in results) else 1

    if args.command == "compute":
        stats = run_compute(
            db_path=args.db_path,
            batch_size=args.batch_size,
            resolution=args.resolution,
            output_path=args.output_path,
        )
        return 1 if stats.failures else 0

    db = ChangeDatabase(args.db_path)
    db.initialize()

    if args.command == "aggregate":
        run_aggregation(db, resolution=args.resolution)
        return 0

    if args.command == "export":
        export_heatmap(db, args.output_path)
        return 0

    raise ValueError(f"Unsupported command: {args.command}")


if __name__ == "__main__":
    sys.exit(main())
