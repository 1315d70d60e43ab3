"""Entity Map Database Operations.

This module persists the pairing between local records and remote records:
- Schema initialization
- Forward (local -> remote) and inverse (remote -> local) lookups
- Upsert that keeps the inverse index one-to-one

Lookups go through a bounded per-instance cache (LRU) that is kept in sync
by ``store`` and ``delete``.
"""

import sqlite3
from collections import OrderedDict
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from core.observability.logging import get_logger
from entity_map.models import EntityMapEntry

logger = get_logger(__name__)


DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "erp_sync.db"

# SQLite default SQLITE_MAX_VARIABLE_NUMBER is 999 on older builds
BATCH_CHUNK_SIZE = 500

MAX_CACHE_ENTRIES = 5000

_MISSING = object()


def init_entity_map_db(db_path: Union[str, Path] = DEFAULT_DB_PATH) -> None:
    """Initialize the entity_map table and its indexes.

    Args:
        db_path: Path to SQLite database file
    """
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS entity_map (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                module_id TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                local_id INTEGER NOT NULL,
                remote_id INTEGER NOT NULL,
                remote_model TEXT NOT NULL DEFAULT '',
                sync_hash TEXT NOT NULL DEFAULT '',
                last_synced_at TEXT NOT NULL,
                UNIQUE(module_id, entity_type, local_id)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_entity_map_remote
            ON entity_map(module_id, entity_type, remote_id)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_entity_map_remote_model
            ON entity_map(remote_model, remote_id)
        """)

        conn.commit()
    finally:
        conn.close()


class EntityMapRepository:
    """Local id <-> remote id mapping keyed by (module_id, entity_type).

    Invariant: within a (module_id, entity_type), a local id maps to at
    most one remote id and a remote id to at most one local id.

    Usage:
        repo = EntityMapRepository("erp_sync.db")
        repo.store("crm", "contact", 12, 345, "res.partner")
        repo.get_remote_id("crm", "contact", 12)  # 345
    """

    def __init__(self, db_path: Union[str, Path] = DEFAULT_DB_PATH, max_cache_entries: int = MAX_CACHE_ENTRIES):
        self.db_path = db_path
        self.max_cache_entries = max_cache_entries
        self._cache: "OrderedDict[Tuple[str, str, str, int], Optional[int]]" = OrderedDict()
        init_entity_map_db(db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    # =========================================================================
    # Cache
    # =========================================================================

    def _cache_get(self, key: Tuple[str, str, str, int]):
        if key not in self._cache:
            return _MISSING
        self._cache.move_to_end(key)
        return self._cache[key]

    def _cache_put(self, key: Tuple[str, str, str, int], value: Optional[int]) -> None:
        self._cache[key] = value
        self._cache.move_to_end(key)
        while len(self._cache) > self.max_cache_entries:
            self._cache.popitem(last=False)

    def invalidate_key(self, module_id: str, entity_type: str, local_id: int = None, remote_id: int = None) -> None:
        """Drop cached lookups for a local id and/or a remote id."""
        if local_id is not None:
            self._cache.pop((module_id, entity_type, "local", int(local_id)), None)
        if remote_id is not None:
            self._cache.pop((module_id, entity_type, "remote", int(remote_id)), None)

    def flush_cache(self) -> None:
        self._cache.clear()

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_remote_id(self, module_id: str, entity_type: str, local_id: int) -> Optional[int]:
        key = (module_id, entity_type, "local", int(local_id))
        cached = self._cache_get(key)
        if cached is not _MISSING:
            return cached

        conn = self._connect()
        try:
            row = conn.execute("""
                SELECT remote_id FROM entity_map
                WHERE module_id = ? AND entity_type = ? AND local_id = ?
            """, (module_id, entity_type, int(local_id))).fetchone()
        finally:
            conn.close()

        result = int(row["remote_id"]) if row else None
        self._cache_put(key, result)
        if result is not None:
            self._cache_put((module_id, entity_type, "remote", result), int(local_id))
        return result

    def get_local_id(self, module_id: str, entity_type: str, remote_id: int) -> Optional[int]:
        key = (module_id, entity_type, "remote", int(remote_id))
        cached = self._cache_get(key)
        if cached is not _MISSING:
            return cached

        conn = self._connect()
        try:
            row = conn.execute("""
                SELECT local_id FROM entity_map
                WHERE module_id = ? AND entity_type = ? AND remote_id = ?
                ORDER BY last_synced_at DESC, id DESC
                LIMIT 1
            """, (module_id, entity_type, int(remote_id))).fetchone()
        finally:
            conn.close()

        result = int(row["local_id"]) if row else None
        self._cache_put(key, result)
        if result is not None:
            self._cache_put((module_id, entity_type, "local", result), int(remote_id))
        return result

    def get_remote_ids_batch(self, module_id: str, entity_type: str, local_ids: Iterable[int]) -> Dict[int, int]:
        """Map many local ids at once; unmapped ids are absent from the result."""
        return self._batch_lookup(module_id, entity_type, local_ids, "local")

    def get_local_ids_batch(self, module_id: str, entity_type: str, remote_ids: Iterable[int]) -> Dict[int, int]:
        """Map many remote ids at once; unmapped ids are absent from the result."""
        return self._batch_lookup(module_id, entity_type, remote_ids, "remote")

    def _batch_lookup(self, module_id: str, entity_type: str, ids: Iterable[int], side: str) -> Dict[int, int]:
        other = "remote" if side == "local" else "local"
        result: Dict[int, int] = {}
        uncached: List[int] = []

        for record_id in {int(i) for i in ids}:
            cached = self._cache_get((module_id, entity_type, side, record_id))
            if cached is _MISSING:
                uncached.append(record_id)
            elif cached is not None:
                result[record_id] = cached

        if not uncached:
            return result

        conn = self._connect()
        try:
            for start in range(0, len(uncached), BATCH_CHUNK_SIZE):
                chunk = uncached[start:start + BATCH_CHUNK_SIZE]
                placeholders = ",".join("?" * len(chunk))
                rows = conn.execute(f"""
                    SELECT local_id, remote_id FROM entity_map
                    WHERE module_id = ? AND entity_type = ? AND {side}_id IN ({placeholders})
                """, [module_id, entity_type, *chunk]).fetchall()
                for row in rows:
                    key_id = int(row[f"{side}_id"])
                    value_id = int(row[f"{other}_id"])
                    result[key_id] = value_id
                    self._cache_put((module_id, entity_type, side, key_id), value_id)
                    self._cache_put((module_id, entity_type, other, value_id), key_id)
        finally:
            conn.close()

        return result

    def get_entry(self, module_id: str, entity_type: str, local_id: int) -> Optional[EntityMapEntry]:
        conn = self._connect()
        try:
            row = conn.execute("""
                SELECT * FROM entity_map
                WHERE module_id = ? AND entity_type = ? AND local_id = ?
            """, (module_id, entity_type, int(local_id))).fetchone()
        finally:
            conn.close()
        return _row_to_entry(row) if row else None

    def list_for_module(self, module_id: str, entity_type: Optional[str] = None, limit: int = 0) -> List[EntityMapEntry]:
        query = "SELECT * FROM entity_map WHERE module_id = ?"
        params: List = [module_id]
        if entity_type:
            query += " AND entity_type = ?"
            params.append(entity_type)
        query += " ORDER BY id"
        if limit:
            query += " LIMIT ?"
            params.append(int(limit))

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_entry(row) for row in rows]

    def count(self, module_id: Optional[str] = None) -> int:
        conn = self._connect()
        try:
            if module_id:
                row = conn.execute("SELECT COUNT(*) FROM entity_map WHERE module_id = ?", (module_id,)).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM entity_map").fetchone()
        finally:
            conn.close()
        return int(row[0])

    # =========================================================================
    # Writes
    # =========================================================================

    def store(
        self,
        module_id: str,
        entity_type: str,
        local_id: int,
        remote_id: int,
        remote_model: str = "",
        sync_hash: str = "",
    ) -> None:
        """Upsert a mapping (last write wins).

        Any other local id of the same (module_id, entity_type) pointing at
        ``remote_id`` is unmapped so the inverse lookup stays one-to-one.
        """
        local_id = int(local_id)
        remote_id = int(remote_id)
        now = datetime.utcnow().isoformat()

        conn = self._connect()
        try:
            previous = conn.execute("""
                SELECT remote_id FROM entity_map
                WHERE module_id = ? AND entity_type = ? AND local_id = ?
            """, (module_id, entity_type, local_id)).fetchone()
            stale = conn.execute("""
                SELECT local_id FROM entity_map
                WHERE module_id = ? AND entity_type = ? AND remote_id = ? AND local_id != ?
            """, (module_id, entity_type, remote_id, local_id)).fetchall()

            conn.execute("""
                DELETE FROM entity_map
                WHERE module_id = ? AND entity_type = ? AND remote_id = ? AND local_id != ?
            """, (module_id, entity_type, remote_id, local_id))
            conn.execute("""
                INSERT INTO entity_map
                (module_id, entity_type, local_id, remote_id, remote_model, sync_hash, last_synced_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(module_id, entity_type, local_id) DO UPDATE SET
                    remote_id = excluded.remote_id,
                    remote_model = excluded.remote_model,
                    sync_hash = excluded.sync_hash,
                    last_synced_at = excluded.last_synced_at
            """, (module_id, entity_type, local_id, remote_id, remote_model, sync_hash, now))
            conn.commit()
        finally:
            conn.close()

        if previous and int(previous["remote_id"]) != remote_id:
            self.invalidate_key(module_id, entity_type, remote_id=int(previous["remote_id"]))
        for row in stale:
            logger.warning(
                f"Remote id {remote_id} re-mapped from local {row['local_id']} to {local_id}",
                extra_fields={"module_id": module_id, "entity_type": entity_type},
            )
            self.invalidate_key(module_id, entity_type, local_id=int(row["local_id"]))

        self._cache_put((module_id, entity_type, "local", local_id), remote_id)
        self._cache_put((module_id, entity_type, "remote", remote_id), local_id)

    def delete(self, module_id: str, entity_type: str, local_id: int) -> bool:
        """Remove a mapping; the remote record is not touched.

        Returns:
            True if a mapping existed
        """
        local_id = int(local_id)
        conn = self._connect()
        try:
            row = conn.execute("""
                SELECT remote_id FROM entity_map
                WHERE module_id = ? AND entity_type = ? AND local_id = ?
            """, (module_id, entity_type, local_id)).fetchone()
            conn.execute("""
                DELETE FROM entity_map
                WHERE module_id = ? AND entity_type = ? AND local_id = ?
            """, (module_id, entity_type, local_id))
            conn.commit()
        finally:
            conn.close()

        self.invalidate_key(
            module_id,
            entity_type,
            local_id=local_id,
            remote_id=int(row["remote_id"]) if row else None,
        )
        return row is not None


def _row_to_entry(row: sqlite3.Row) -> EntityMapEntry:
    """Convert a database row to EntityMapEntry."""
    return EntityMapEntry(
        id=row["id"],
        module_id=row["module_id"],
        entity_type=row["entity_type"],
        local_id=row["local_id"],
        remote_id=row["remote_id"],
        remote_model=row["remote_model"],
        sync_hash=row["sync_hash"],
        last_synced_at=datetime.fromisoformat(row["last_synced_at"]) if row["last_synced_at"] else None,
    )
