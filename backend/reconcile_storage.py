#!/usr/bin/env python3
"""Script to clean up what interrupted datastore deletions left behind.

Finds and deletes:
1. Object storage folders under datastores/ whose datastore row no longer exists
2. Datastores stuck in the deleting state for longer than
   RECONCILE_STALE_DELETING_SECONDS

Run this script from a backend pod, or periodically from a scheduler.

Usage:
    python reconcile_storage.py
    python reconcile_storage.py --dry-run
"""

import argparse
import asyncio
import sys
from uuid import UUID

from quarry import crud
from quarry.core.deletion_coordinator import deletion_coordinator
from quarry.core.redis_client import redis_client
from quarry.db.session import get_db_context
from quarry.platform.storage import StoragePaths, object_store


async def dry_run() -> None:
    """List orphaned folders without deleting anything."""
    prefixes = await object_store.list_datastore_prefixes()
    print(f"✓ Found {len(prefixes)} datastore folders in object storage\n", flush=True)

    ids = {}
    for prefix in prefixes:
        try:
            ids[UUID(StoragePaths.datastore_id_from_prefix(prefix))] = prefix
        except (TypeError, ValueError):
            print(f"  Skipping folder with unexpected name: {prefix}", flush=True)

    async with get_db_context() as db:
        existing = await crud.datastore.get_existing_ids(db, ids.keys())

    orphaned = [prefix for datastore_id, prefix in ids.items() if datastore_id not in existing]
    print(f"Orphaned folders: {len(orphaned)}", flush=True)
    for prefix in orphaned:
        print(f"  {prefix}", flush=True)


async def main(args: argparse.Namespace) -> int:
    """Run the sweep and print a summary. Returns the process exit code."""
    print("=" * 80, flush=True)
    print("Datastore Storage Reconciliation", flush=True)
    print("=" * 80, flush=True)
    print(flush=True)

    try:
        if args.dry_run:
            await dry_run()
            return 0

        report = await deletion_coordinator.reconcile_storage()
    finally:
        await redis_client.close()

    print("=" * 80, flush=True)
    print("SUMMARY", flush=True)
    print("=" * 80, flush=True)
    print(f"Orphaned folders deleted: {len(report.orphaned_prefixes)}", flush=True)
    print(f"Objects deleted: {report.objects_deleted}", flush=True)
    print(f"Stale datastores deleted: {len(report.stale_datastores_deleted)}", flush=True)
    print(f"Failures: {len(report.failures)}", flush=True)
    for failure in report.failures:
        print(f"  {failure}", flush=True)
    print(flush=True)

    return 1 if report.failures else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--dry-run", action="store_true", help="Only list orphaned folders, delete nothing"
    )
    try:
        sys.exit(asyncio.run(main(parser.parse_args())))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)
