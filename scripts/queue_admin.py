#!/usr/bin/env python
"""Inspect and maintain the sync queue.

Usage:
    python scripts/queue_admin.py stats
    python scripts/queue_admin.py pending crm [--entity-type contact]
    python scripts/queue_admin.py retry-failed
    python scripts/queue_admin.py recover-stale --timeout 600
    python scripts/queue_admin.py cleanup --days 7
    python scripts/queue_admin.py cancel 42
    python scripts/queue_admin.py mappings woocommerce --entity-type product
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import load_settings
from entity_map.db import EntityMapRepository
from sync_queue.db import SyncQueueRepository


def show_stats(queue: SyncQueueRepository) -> None:
    stats = queue.get_stats()
    print(f"pending={stats.pending} processing={stats.processing} "
          f"completed={stats.completed} failed={stats.failed} total={stats.total}")


def show_pending(queue: SyncQueueRepository, module: str, entity_type: str = None) -> None:
    jobs = queue.get_pending(module, entity_type)
    print(f"{len(jobs)} pending job(s) for {module}:")
    for job in jobs:
        scheduled = job.scheduled_at.isoformat() if job.scheduled_at else "now"
        print(f"  #{job.id} {job.direction.value} {job.entity_type} {job.action} "
              f"local={job.local_id} remote={job.remote_id} attempts={job.attempts} at={scheduled}")
        if job.error_message:
            print(f"      last error: {job.error_message[:120]}")


def show_mappings(entity_map: EntityMapRepository, module: str, entity_type: str = None) -> None:
    entries = entity_map.list_for_module(module, entity_type, limit=100)
    print(f"{entity_map.count(module)} mapping(s) for {module} (showing {len(entries)}):")
    for entry in entries:
        print(f"  {entry.entity_type} {entry.local_id} -> {entry.remote_model}#{entry.remote_id} "
              f"({entry.last_synced_at})")


def main():
    parser = argparse.ArgumentParser(description="Sync queue maintenance")
    parser.add_argument("--db", default=None, help="SQLite database (default: SYNC_DB_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("stats")
    pending = sub.add_parser("pending")
    pending.add_argument("module")
    pending.add_argument("--entity-type", default=None)
    sub.add_parser("retry-failed")
    recover = sub.add_parser("recover-stale")
    recover.add_argument("--timeout", type=int, default=600, help="Seconds a job may stay in processing")
    cleanup = sub.add_parser("cleanup")
    cleanup.add_argument("--days", type=int, default=7)
    cancel = sub.add_parser("cancel")
    cancel.add_argument("job_id", type=int)
    mappings = sub.add_parser("mappings")
    mappings.add_argument("module")
    mappings.add_argument("--entity-type", default=None)

    args = parser.parse_args()
    db_path = args.db or load_settings().db_path

    if args.command == "mappings":
        show_mappings(EntityMapRepository(db_path), args.module, args.entity_type)
        return 0

    queue = SyncQueueRepository(db_path)
    if args.command == "stats":
        show_stats(queue)
    elif args.command == "pending":
        show_pending(queue, args.module, args.entity_type)
    elif args.command == "retry-failed":
        print(f"{queue.retry_failed()} failed job(s) reset to pending")
    elif args.command == "recover-stale":
        print(f"{queue.recover_stale_processing(args.timeout)} stale job(s) reset to pending")
    elif args.command == "cleanup":
        print(f"{queue.cleanup(days_old=args.days)} finished job(s) deleted")
    elif args.command == "cancel":
        if not queue.cancel(args.job_id):
            print(f"Job {args.job_id} is not pending", file=sys.stderr)
            return 1
        print(f"Job {args.job_id} cancelled")
    return 0


if __name__ == "__main__":
    sys.exit(main())
