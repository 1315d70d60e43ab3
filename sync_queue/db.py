"""Sync Queue Database Operations.

This module handles all database operations for the sync queue:
- Schema initialization
- Enqueue with deduplication of pending jobs
- Fetch / claim / status updates used by the engine
- Maintenance (stats, stale recovery, retry, cleanup, cancel)
"""

import json
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.observability.logging import get_logger
from sync_queue.models import JobDirection, JobStatus, QueueStats, SyncJob

logger = get_logger(__name__)


DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "erp_sync.db"

# Columns update_status may touch besides status
_UPDATABLE_COLUMNS = {
    "attempts",
    "error_message",
    "scheduled_at",
    "processed_at",
    "remote_id",
    "local_id",
}


def _ts(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def init_sync_queue_db(db_path: Union[str, Path] = DEFAULT_DB_PATH) -> None:
    """Initialize the sync_queue table and its indexes.

    Args:
        db_path: Path to SQLite database file
    """
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sync_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                module TEXT NOT NULL,
                direction TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                action TEXT NOT NULL,
                local_id INTEGER NOT NULL DEFAULT 0,
                remote_id INTEGER NOT NULL DEFAULT 0,
                payload TEXT DEFAULT '{}',
                priority INTEGER NOT NULL DEFAULT 5,
                status TEXT NOT NULL DEFAULT 'pending',
                attempts INTEGER NOT NULL DEFAULT 0,
                max_attempts INTEGER NOT NULL DEFAULT 3,
                error_message TEXT,
                scheduled_at TEXT,
                claimed_at TEXT,
                created_at TEXT NOT NULL,
                processed_at TEXT
            )
        """)

        columns = {row[1] for row in cursor.execute("PRAGMA table_info(sync_queue)")}
        if "claimed_at" not in columns:
            cursor.execute("ALTER TABLE sync_queue ADD COLUMN claimed_at TEXT")

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_sync_queue_status
            ON sync_queue(status, priority, created_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_sync_queue_dedup
            ON sync_queue(module, entity_type, direction, status)
        """)

        conn.commit()
    finally:
        conn.close()


class SyncQueueRepository:
    """Persistent queue of push/pull jobs.

    Usage:
        queue = SyncQueueRepository("erp_sync.db")
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=12)
        for job in queue.fetch_pending(50):
            if queue.claim_job(job.id):
                ...
    """

    def __init__(self, db_path: Union[str, Path] = DEFAULT_DB_PATH, default_max_attempts: int = 3):
        self.db_path = db_path
        self.default_max_attempts = default_max_attempts
        init_sync_queue_db(db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    # =========================================================================
    # Enqueue
    # =========================================================================

    def enqueue(
        self,
        module: str,
        direction: Union[str, JobDirection],
        entity_type: str,
        action: str,
        local_id: int = 0,
        remote_id: int = 0,
        payload: Optional[Dict[str, Any]] = None,
        priority: int = 5,
        max_attempts: Optional[int] = None,
    ) -> int:
        """Add a job, or refresh the pending job for the same record.

        A pending job with the same module, entity type, direction and
        record id (local id for pushes, remote id for pulls) is updated in
        place with the new action, payload and priority.

        Returns:
            Job id

        Raises:
            ValueError: invalid direction or no record id
        """
        direction = JobDirection(direction)
        local_id = int(local_id or 0)
        remote_id = int(remote_id or 0)
        if not local_id and not remote_id:
            raise ValueError("A sync job needs a local_id or a remote_id.")

        payload_json = json.dumps(payload or {}, default=str)
        now = _ts(datetime.utcnow())

        conn = self._connect()
        try:
            query = """
                SELECT id FROM sync_queue
                WHERE module = ? AND entity_type = ? AND direction = ? AND status = 'pending'
            """
            params: List[Any] = [module, entity_type, direction.value]
            if direction == JobDirection.LOCAL_TO_REMOTE and local_id:
                query += " AND local_id = ?"
                params.append(local_id)
            elif remote_id:
                query += " AND remote_id = ?"
                params.append(remote_id)
            else:
                query += " AND local_id = ?"
                params.append(local_id)
            existing = conn.execute(query + " ORDER BY id LIMIT 1", params).fetchone()

            if existing:
                job_id = int(existing["id"])
                conn.execute("""
                    UPDATE sync_queue
                    SET action = ?, payload = ?, priority = ?,
                        local_id = CASE WHEN ? > 0 THEN ? ELSE local_id END,
                        remote_id = CASE WHEN ? > 0 THEN ? ELSE remote_id END
                    WHERE id = ?
                """, (action, payload_json, priority, local_id, local_id, remote_id, remote_id, job_id))
                conn.commit()
                logger.debug(
                    f"Deduplicated sync job {job_id}",
                    extra_fields={"module_id": module, "entity_type": entity_type, "action": action},
                )
                return job_id

            cursor = conn.execute("""
                INSERT INTO sync_queue
                (module, direction, entity_type, action, local_id, remote_id, payload,
                 priority, status, attempts, max_attempts, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'pending', 0, ?, ?)
            """, (
                module,
                direction.value,
                entity_type,
                action,
                local_id,
                remote_id,
                payload_json,
                priority,
                max_attempts or self.default_max_attempts,
                now,
            ))
            conn.commit()
            return int(cursor.lastrowid)
        finally:
            conn.close()

    # =========================================================================
    # Engine operations
    # =========================================================================

    def fetch_pending(
        self,
        batch_size: int,
        now: Optional[datetime] = None,
        module: Optional[str] = None,
    ) -> List[SyncJob]:
        """Due pending jobs, by priority then age."""
        query = """
            SELECT * FROM sync_queue
            WHERE status = 'pending'
              AND (scheduled_at IS NULL OR scheduled_at <= ?)
        """
        params: List[Any] = [_ts(now or datetime.utcnow())]
        if module:
            query += " AND module = ?"
            params.append(module)
        query += " ORDER BY priority ASC, created_at ASC, id ASC LIMIT ?"
        params.append(int(batch_size))

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_job(row) for row in rows]

    def claim_job(self, job_id: int, now: Optional[datetime] = None) -> bool:
        """Atomically move a job from pending to processing."""
        conn = self._connect()
        try:
            cursor = conn.execute("""
                UPDATE sync_queue SET status = 'processing', claimed_at = ?
                WHERE id = ? AND status = 'pending'
            """, (_ts(now or datetime.utcnow()), int(job_id)))
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()

    def update_status(self, job_id: int, status: Union[str, JobStatus], **extra: Any) -> None:
        """Set a job's status and optional extra columns.

        Raises:
            ValueError: unknown column in ``extra``
        """
        status = JobStatus(status)
        unknown = set(extra) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update sync_queue columns: {', '.join(sorted(unknown))}")

        assignments = ["status = ?"]
        params: List[Any] = [status.value]
        for column, value in extra.items():
            assignments.append(f"{column} = ?")
            params.append(_ts(value) if isinstance(value, datetime) else value)
        params.append(int(job_id))

        conn = self._connect()
        try:
            conn.execute(f"UPDATE sync_queue SET {', '.join(assignments)} WHERE id = ?", params)
            conn.commit()
        finally:
            conn.close()

    def get_job(self, job_id: int) -> Optional[SyncJob]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM sync_queue WHERE id = ?", (int(job_id),)).fetchone()
        finally:
            conn.close()
        return _row_to_job(row) if row else None

    def get_pending(self, module: str, entity_type: Optional[str] = None) -> List[SyncJob]:
        query = "SELECT * FROM sync_queue WHERE module = ? AND status = 'pending'"
        params: List[Any] = [module]
        if entity_type:
            query += " AND entity_type = ?"
            params.append(entity_type)
        query += " ORDER BY priority ASC, created_at ASC, id ASC"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_job(row) for row in rows]

    # =========================================================================
    # Maintenance
    # =========================================================================

    def get_stats(self) -> QueueStats:
        conn = self._connect()
        try:
            rows = conn.execute("""
                SELECT status, COUNT(*) AS count FROM sync_queue GROUP BY status
            """).fetchall()
        finally:
            conn.close()

        counts = {row["status"]: int(row["count"]) for row in rows}
        return QueueStats(
            pending=counts.get(JobStatus.PENDING.value, 0),
            processing=counts.get(JobStatus.PROCESSING.value, 0),
            completed=counts.get(JobStatus.COMPLETED.value, 0),
            failed=counts.get(JobStatus.FAILED.value, 0),
            total=sum(counts.values()),
        )

    def recover_stale_processing(self, timeout_seconds: int, now: Optional[datetime] = None) -> int:
        """Requeue jobs left in processing for longer than ``timeout_seconds``.

        A worker that crashed or was cancelled mid-batch never finishes the
        jobs it claimed. The attempt counter is left as is.
        """
        cutoff = _ts((now or datetime.utcnow()) - timedelta(seconds=timeout_seconds))
        conn = self._connect()
        try:
            cursor = conn.execute("""
                UPDATE sync_queue
                SET status = 'pending', claimed_at = NULL, scheduled_at = NULL
                WHERE status = 'processing'
                  AND (claimed_at IS NULL OR claimed_at <= ?)
            """, (cutoff,))
            conn.commit()
            recovered = cursor.rowcount
        finally:
            conn.close()

        if recovered:
            logger.warning(
                f"Recovered {recovered} stale processing job(s)",
                extra_fields={"timeout_seconds": timeout_seconds},
            )
        return recovered

    def retry_failed(self) -> int:
        """Reset failed jobs to pending with a fresh attempt budget."""
        conn = self._connect()
        try:
            cursor = conn.execute("""
                UPDATE sync_queue
                SET status = 'pending', attempts = 0, error_message = NULL, scheduled_at = NULL
                WHERE status = 'failed'
            """)
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def cleanup(self, days_old: int = 7) -> int:
        """Delete finished jobs older than ``days_old`` days."""
        cutoff = _ts(datetime.utcnow() - timedelta(days=days_old))
        conn = self._connect()
        try:
            cursor = conn.execute("""
                DELETE FROM sync_queue
                WHERE status IN ('completed', 'failed') AND created_at < ?
            """, (cutoff,))
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def cancel(self, job_id: int) -> bool:
        """Delete a job that has not started yet."""
        conn = self._connect()
        try:
            cursor = conn.execute("""
                DELETE FROM sync_queue WHERE id = ? AND status = 'pending'
            """, (int(job_id),))
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()


def _row_to_job(row: sqlite3.Row) -> SyncJob:
    """Convert a database row to SyncJob."""
    return SyncJob(
        id=row["id"],
        module=row["module"],
        direction=JobDirection(row["direction"]),
        entity_type=row["entity_type"],
        action=row["action"],
        local_id=row["local_id"],
        remote_id=row["remote_id"],
        payload=json.loads(row["payload"]) if row["payload"] else {},
        priority=row["priority"],
        status=JobStatus(row["status"]),
        attempts=row["attempts"],
        max_attempts=row["max_attempts"],
        error_message=row["error_message"],
        scheduled_at=datetime.fromisoformat(row["scheduled_at"]) if row["scheduled_at"] else None,
        created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
        processed_at=datetime.fromisoformat(row["processed_at"]) if row["processed_at"] else None,
        claimed_at=datetime.fromisoformat(row["claimed_at"]) if row["claimed_at"] else None,
    )
