"""
Shared test fixtures.

- FakeOdooTransport: in-memory Odoo models with injectable failures and
  session invalidation
- InMemoryStore: LocalStore implementation backed by dicts
- Temp-file SQLite databases for the entity map and the sync queue
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from connectors.odoo.odoo_client import OdooClient
from connectors.rpc_base import RemoteCallError, RemoteSession, RemoteTransport
from core.config import ModuleSettings, SyncSettings
from entity_map.db import EntityMapRepository
from sync_queue.db import SyncQueueRepository


class FakeOdooTransport(RemoteTransport):
    """Odoo stand-in keeping records in memory.

    Sessions are tokens; ``expire_sessions()`` invalidates the current token
    so the next call fails the way Odoo does ("Odoo Session Expired").
    """

    def __init__(self):
        self.records: Dict[str, Dict[int, Dict[str, Any]]] = {}
        # (model, record_id, lang) -> translated field values
        self.translations: Dict[Tuple[str, int, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str, List[Any], Dict[str, Any]]] = []
        self.failures: List[Tuple[str, BaseException]] = []
        self.auth_count = 0
        self.closed = False
        self._next_id = 100
        self._valid_token: Optional[str] = None

    # -- test helpers -------------------------------------------------------

    def add_record(self, model: str, values: Dict[str, Any]) -> int:
        self._next_id += 1
        self.records.setdefault(model, {})[self._next_id] = dict(values)
        return self._next_id

    def fail_next(self, method: str, error: BaseException) -> None:
        """Raise ``error`` on the next call of ``method`` ("*" = any)."""
        self.failures.append((method, error))

    def expire_sessions(self) -> None:
        self._valid_token = None

    def methods_called(self) -> List[str]:
        return [method for _, method, _, _ in self.calls]

    # -- RemoteTransport ----------------------------------------------------

    async def authenticate(self) -> RemoteSession:
        await asyncio.sleep(0)
        self.auth_count += 1
        self._valid_token = f"token-{self.auth_count}"
        return RemoteSession(uid=2, token=self._valid_token)

    async def execute_kw(self, session, model, method, args, kwargs=None):
        await asyncio.sleep(0)
        kwargs = kwargs or {}

        if session.token != self._valid_token:
            raise RemoteCallError("Odoo Session Expired", status_code=200)

        for index, (failing_method, error) in enumerate(self.failures):
            if failing_method in (method, "*"):
                del self.failures[index]
                raise error

        self.calls.append((model, method, args, kwargs))
        table = self.records.setdefault(model, {})

        if method == "search":
            ids = [rid for rid, values in sorted(table.items()) if _matches(values, args[0])]
            limit = kwargs.get("limit")
            return ids[:limit] if limit else ids
        if method == "search_count":
            return len([1 for values in table.values() if _matches(values, args[0])])
        if method == "read":
            return self._read(model, args[0], kwargs.get("fields"), kwargs.get("context") or {})
        if method == "search_read":
            ids = [rid for rid, values in sorted(table.items()) if _matches(values, args[0])]
            return self._read(model, ids, kwargs.get("fields"), {})
        if method == "create":
            return self.add_record(model, args[0])
        if method == "write":
            for rid in args[0]:
                table[rid].update(args[1])
            return True
        if method == "unlink":
            for rid in args[0]:
                table.pop(rid, None)
            return True
        if method == "fields_get":
            return {}
        raise RemoteCallError(f"Unknown method {method}", status_code=400)

    def _read(self, model, ids, fields, context):
        table = self.records.get(model, {})
        lang = context.get("lang")
        result = []
        for rid in ids:
            if rid not in table:
                continue
            values = dict(table[rid])
            if lang:
                values.update(self.translations.get((model, rid, lang), {}))
            if fields:
                values = {f: values[f] for f in fields if f in values}
            values["id"] = rid
            result.append(values)
        return result

    async def close(self) -> None:
        self.closed = True


def _matches(values: Dict[str, Any], domain: List[Any]) -> bool:
    for field, operator, expected in domain:
        actual = values.get(field)
        if operator == "=" and actual != expected:
            return False
        if operator == "in" and actual not in expected:
            return False
    return True


class InMemoryStore:
    """LocalStore backed by dicts."""

    def __init__(self):
        self.records: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self.translations: Dict[Tuple[str, int, str], Dict[str, Any]] = {}
        self._next_id = 0

    def add(self, entity_type: str, data: Dict[str, Any]) -> int:
        return self.save(entity_type, data)

    def load(self, entity_type, local_id):
        return dict(self.records.get(entity_type, {}).get(local_id, {}))

    def save(self, entity_type, data, local_id=0):
        if not local_id:
            self._next_id += 1
            local_id = self._next_id
        self.records.setdefault(entity_type, {}).setdefault(local_id, {}).update(data)
        return local_id

    def delete(self, entity_type, local_id):
        return self.records.get(entity_type, {}).pop(local_id, None) is not None

    def apply_translation(self, entity_type, local_id, data, lang):
        self.translations[(entity_type, local_id, lang)] = dict(data)


def make_settings(db_path: str, enabled=(), **overrides) -> SyncSettings:
    """SyncSettings with the given module ids enabled."""
    modules = {module_id: ModuleSettings(enabled=True) for module_id in enabled}
    return SyncSettings(db_path=db_path, modules=modules, **overrides)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "erp_sync_test.db")


@pytest.fixture
def transport():
    return FakeOdooTransport()


@pytest.fixture
def client(transport):
    return OdooClient(transport)


@pytest.fixture
def entity_map(db_path):
    return EntityMapRepository(db_path)


@pytest.fixture
def queue(db_path):
    return SyncQueueRepository(db_path)


@pytest.fixture
def store():
    return InMemoryStore()
