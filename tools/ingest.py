# tools/ingest.py
from __future__ import annotations
import argparse
import json
import logging
import sys

# Project imports
sys.path.append(".")
from ffnews.config import DEFAULT_ITEM_LIMIT, INGEST_WORKERS, setup_logging
from ffnews.dispatch import EXPLICIT_METHODS
from ffnews.errors import ConfigurationError
from ffnews.ingest import IngestContext, ingest_all, ingest_source, recheck_images
from ffnews.sources import seed_sources


def main():
    p = argparse.ArgumentParser(description="Fetch configured sources and upsert articles into SQLite.")
    target = p.add_mutually_exclusive_group()
    target.add_argument("--source", type=int, help="Ingest a single source id")
    target.add_argument("--all", action="store_true", help="Ingest every allowed source (default)")
    p.add_argument("--limit", type=int, default=DEFAULT_ITEM_LIMIT, help=f"Max items per source (default: {DEFAULT_ITEM_LIMIT})")
    p.add_argument("--workers", type=int, default=INGEST_WORKERS, help=f"Sources in parallel, 1-8 (default: {INGEST_WORKERS})")
    p.add_argument("--method", choices=EXPLICIT_METHODS, help="Force one method (only with --source)")
    p.add_argument("--seed", metavar="FILE", help="Seed/refresh the sources table from a YAML file first")
    p.add_argument("--recheck-images", type=int, metavar="DAYS", help="Forget image checks older than DAYS first")
    p.add_argument("--db", help="SQLite path (default: FFNEWS_DB_PATH)")
    p.add_argument("--debug", action="store_true", help="Verbose per-item decisions")
    args = p.parse_args()

    if args.method and args.source is None:
        p.error("--method requires --source")

    setup_logging(logging.DEBUG if args.debug else logging.INFO)

    if args.seed:
        seed_sources(args.seed, db_path=args.db)
    with IngestContext(db_path=args.db) as ctx:
        if args.recheck_images is not None:
            recheck_images(args.recheck_images, db_path=args.db)
        try:
            if args.source is not None:
                summary = ingest_source(ctx, args.source, limit=args.limit, method=args.method)
            else:
                summary = ingest_all(ctx, workers=args.workers, limit=args.limit)
        except ConfigurationError as e:
            print(f"[error] {e}", file=sys.stderr)
            raise SystemExit(2)

    print(json.dumps(summary.model_dump(), indent=2))


if __name__ == "__main__":
    main()
