"""Refresh the local FIPE cache from the command line.

Meant for a daily cron entry, e.g.::

    0 6 * * * /path/to/venv/bin/fipe-update

Without --force the refresh only runs when the cache is due.
"""
import argparse
import sys
import time
from datetime import datetime, timezone

from fipecache.db import Base, engine
from fipecache.scheduler import refresh_if_stale


def main(argv=None):
    parser = argparse.ArgumentParser(description="Refresh the local FIPE cache")
    parser.add_argument("--force", action="store_true", help="refresh even if the cache is fresh")
    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    started = time.monotonic()
    print(f"[{datetime.now(timezone.utc).isoformat()}] Starting FIPE refresh...")
    try:
        stats = refresh_if_stale(force=args.force)
    except Exception as e:
        print(f"[{datetime.now(timezone.utc).isoformat()}] FIPE refresh failed: {e}", file=sys.stderr)
        return 1

    if stats is None:
        print("Cache is up to date (or another refresh is running). Nothing to do.")
        return 0

    print(f"[{datetime.now(timezone.utc).isoformat()}] FIPE refresh completed")
    print(f"   - Brands: {stats['brands']}")
    print(f"   - Models: {stats['models']}")
    print(f"   - Years:  {stats['years']}")
    print(f"   - Values: {stats['values']}")
    print(f"Duration: {time.monotonic() - started:.2f} seconds")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
