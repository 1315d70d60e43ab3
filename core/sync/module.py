"""Sync Module: the push/pull contract shared by every integration module.

A SyncModule is built from a ModuleDefinition (static data) plus its
collaborators:

- ``store``: the LocalStore that loads / saves / deletes local records
- ``client``: the OdooClient (the only component that retries)
- ``entity_map``: the EntityMapRepository
- ``settings``: the module's ModuleSettings snapshot
- ``queue``: optional SyncQueueRepository used by event handlers

push and pull never raise for remote failures: they return a SyncResult.
"""

import asyncio
import hashlib
import json
import sqlite3
import weakref
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union

from connectors.rpc_base import ConfigurationError, RemoteCallError
from core.config import ModuleSettings
from core.mapping.field_mapper import map_fields, map_fields_reverse, to_bool
from core.observability.logging import get_logger, with_correlation
from core.sync.entities import DomainTerm, EntitySpec, ModuleDefinition, SyncAction
from core.sync.events import LocalEventBus
from core.sync.results import ErrorType, SyncResult
from core.sync.translation import TranslationAccumulator

logger = get_logger(__name__)


EntityTypeRef = Union[str, Enum]


class LocalStore(Protocol):
    """Local data access supplied by the host platform."""

    def load(self, entity_type: str, local_id: int) -> Dict[str, Any]:
        """Local field values; empty dict when not found or not applicable."""
        ...

    def save(self, entity_type: str, data: Dict[str, Any], local_id: int = 0) -> int:
        """Create (local_id 0) or update a record; returns its id, 0 on failure."""
        ...

    def delete(self, entity_type: str, local_id: int) -> bool:
        ...

    def apply_translation(self, entity_type: str, local_id: int, data: Dict[str, Any], lang: str) -> None:
        ...


def compute_sync_hash(values: Dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``values``."""
    canonical = json.dumps(values, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class SyncModule:
    """Push/pull orchestration for one module.

    Usage:
        module = SyncModule(CRM_MODULE, store, client, entity_map, settings.module("crm"))
        result = await module.push("contact", "create", 12)
        if result.succeeded:
            print(result.entity_id)  # remote id
    """

    def __init__(
        self,
        definition: ModuleDefinition,
        store: LocalStore,
        client,
        entity_map,
        settings: Optional[ModuleSettings] = None,
        queue=None,
        languages: Sequence[str] = (),
    ):
        self.definition = definition
        self.store = store
        self.client = client
        self.entity_map = entity_map
        self.queue = queue
        self.languages = list(languages)
        self._settings = settings or ModuleSettings()
        self._field_maps: Dict[str, Dict[str, str]] = {}
        self._push_locks: "weakref.WeakValueDictionary[Tuple[str, int], asyncio.Lock]" = weakref.WeakValueDictionary()
        self._importing = 0
        self.booted = False
        self.translations = TranslationAccumulator(self._write_translations)

    # =========================================================================
    # Identity and settings
    # =========================================================================

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def direction(self):
        return self.definition.direction

    @property
    def exclusive_group(self) -> str:
        return self.definition.exclusive_group

    @property
    def exclusive_priority(self) -> int:
        return self.definition.exclusive_priority

    @property
    def required_modules(self) -> Tuple[str, ...]:
        return self.definition.required_modules

    @property
    def is_importing(self) -> bool:
        """True while a pull is writing local data (event handlers must not push back)."""
        return self._importing > 0

    def get_settings(self) -> Dict[str, Any]:
        """Module defaults merged with the configured options."""
        merged = dict(self.definition.default_settings)
        merged.update(self._settings.options)
        return merged

    def is_enabled(self) -> bool:
        return self._settings.enabled

    def is_entity_enabled(self, entity_type: EntityTypeRef) -> bool:
        spec = self.definition.entity(entity_type)
        if not spec.setting_key:
            return True
        return to_bool(self.get_settings().get(spec.setting_key, True))

    def reload_settings(self, settings: ModuleSettings) -> None:
        self._settings = settings
        self._field_maps.clear()
        logger.info(f"Settings reloaded for module {self.id}")

    # =========================================================================
    # Mapping
    # =========================================================================

    def get_field_map(self, entity_type: EntityTypeRef) -> Dict[str, str]:
        key = _entity_key(entity_type)
        if key not in self._field_maps:
            spec = self.definition.entity(key)
            override = self._settings.mappings.get(key)
            self._field_maps[key] = dict(override) if override else dict(spec.field_map)
        return self._field_maps[key]

    def map_to_remote(self, entity_type: EntityTypeRef, data: Dict[str, Any]) -> Dict[str, Any]:
        spec = self.definition.entity(entity_type)
        values = map_fields(data, self.get_field_map(entity_type))
        if spec.transform_out is not None and values:
            values = spec.transform_out(values)
        return values

    def map_from_remote(self, entity_type: EntityTypeRef, record: Dict[str, Any]) -> Dict[str, Any]:
        spec = self.definition.entity(entity_type)
        data = map_fields_reverse(record, self.get_field_map(entity_type))
        if spec.transform_in is not None and data:
            data = spec.transform_in(data)
        return data

    def get_dedup_domain(self, entity_type: EntityTypeRef, values: Dict[str, Any]) -> List[DomainTerm]:
        return self.definition.entity(entity_type).build_dedup_domain(values)

    # =========================================================================
    # Push
    # =========================================================================

    async def push(
        self,
        entity_type: EntityTypeRef,
        action: Union[str, SyncAction],
        local_id: int,
        known_remote_id: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> SyncResult:
        """Send a local record to the remote model.

        Creates, updates or deletes the remote record and keeps the entity
        map current. A dedup search runs before any create so that pushing
        the same record twice updates instead of duplicating.
        """
        if not self.direction.allows_push:
            return SyncResult.success()

        try:
            key = _entity_key(entity_type)
            spec = self.definition.entity(key)
            action = SyncAction(action)
        except (ConfigurationError, ValueError) as e:
            logger.error(f"Rejected push for module {self.id}: {e}")
            return SyncResult.failure(str(e), ErrorType.PERMANENT)

        if not self.is_entity_enabled(key):
            logger.debug(f"Push skipped, {key} sync disabled for module {self.id}")
            return SyncResult.success()

        with with_correlation(module_id=self.id, entity_type=key):
            if action == SyncAction.DELETE:
                return await self._push_delete(key, spec, local_id, known_remote_id)
            return await self._push_upsert(key, spec, local_id, known_remote_id, payload)

    async def _push_delete(
        self,
        entity_type: str,
        spec: EntitySpec,
        local_id: int,
        known_remote_id: Optional[int],
    ) -> SyncResult:
        remote_id = known_remote_id or self.entity_map.get_remote_id(self.id, entity_type, local_id)
        if not remote_id:
            return SyncResult.success()

        try:
            await self.client.unlink(spec.remote_model, [remote_id])
        except (RemoteCallError, ConfigurationError) as e:
            logger.error(
                "Remote delete failed",
                extra_fields={"local_id": local_id, "remote_id": remote_id, "error": e.detail},
            )
            return SyncResult.from_exception(e, entity_id=remote_id)

        self.entity_map.delete(self.id, entity_type, local_id)
        logger.info(
            "Deleted remote record",
            extra_fields={"local_id": local_id, "remote_id": remote_id},
        )
        return SyncResult.success(remote_id)

    async def _push_upsert(
        self,
        entity_type: str,
        spec: EntitySpec,
        local_id: int,
        known_remote_id: Optional[int],
        payload: Optional[Dict[str, Any]],
    ) -> SyncResult:
        data = payload if payload else self.store.load(entity_type, local_id)
        values = self.map_to_remote(entity_type, data or {})
        if not values:
            logger.debug("Nothing to push", extra_fields={"local_id": local_id})
            return SyncResult.success()

        sync_hash = compute_sync_hash(values)
        remote_id = known_remote_id

        # Search-then-create must not interleave for the same local record
        async with self._lock_for(entity_type, local_id):
            try:
                if not remote_id:
                    remote_id = self.entity_map.get_remote_id(self.id, entity_type, local_id)

                if not remote_id:
                    domain = self.get_dedup_domain(entity_type, values)
                    if domain:
                        found = await self.client.search(spec.remote_model, domain, limit=1)
                        if found:
                            remote_id = found[0]
                            logger.info(
                                "Dedup matched existing remote record, updating",
                                extra_fields={"local_id": local_id, "remote_id": remote_id},
                            )

                if remote_id:
                    await self.client.write(spec.remote_model, [remote_id], values)
                    operation = "Updated"
                else:
                    remote_id = await self.client.create(spec.remote_model, values)
                    operation = "Created"
            except (RemoteCallError, ConfigurationError) as e:
                logger.error(
                    "Push failed",
                    extra_fields={"local_id": local_id, "remote_id": remote_id, "error": e.detail},
                )
                return SyncResult.from_exception(e, entity_id=remote_id)

            try:
                self.entity_map.store(
                    self.id, entity_type, local_id, remote_id, spec.remote_model, sync_hash,
                )
            except sqlite3.Error as e:
                logger.error(
                    f"Mapping save failed after remote write: {e}",
                    extra_fields={"local_id": local_id, "remote_id": remote_id},
                )
                return SyncResult.failure(
                    f"Mapping save failed after remote write: {e}",
                    ErrorType.TRANSIENT,
                    entity_id=remote_id,
                )

        logger.info(
            f"{operation} remote record",
            extra_fields={"local_id": local_id, "remote_id": remote_id, "model": spec.remote_model},
        )
        return SyncResult.success(remote_id)

    def _lock_for(self, entity_type: str, local_id: int) -> asyncio.Lock:
        key = (entity_type, int(local_id))
        lock = self._push_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._push_locks[key] = lock
        return lock

    # =========================================================================
    # Pull
    # =========================================================================

    @contextmanager
    def importing(self):
        """Mark the module as writing remote data locally."""
        self._importing += 1
        try:
            yield
        finally:
            self._importing -= 1

    async def pull(
        self,
        entity_type: EntityTypeRef,
        action: Union[str, SyncAction],
        remote_id: int,
        local_id: Optional[int] = None,
    ) -> SyncResult:
        """Bring a remote record into the local store.

        Returns a SyncResult whose entity_id is the local id.
        """
        if not self.direction.allows_pull:
            return SyncResult.success()

        try:
            key = _entity_key(entity_type)
            spec = self.definition.entity(key)
            action = SyncAction(action)
        except (ConfigurationError, ValueError) as e:
            logger.error(f"Rejected pull for module {self.id}: {e}")
            return SyncResult.failure(str(e), ErrorType.PERMANENT)

        if not self.is_entity_enabled(key):
            logger.debug(f"Pull skipped, {key} sync disabled for module {self.id}")
            return SyncResult.success()

        with with_correlation(module_id=self.id, entity_type=key), self.importing():
            if action == SyncAction.DELETE:
                local_id = local_id or self.entity_map.get_local_id(self.id, key, remote_id)
                if not local_id:
                    return SyncResult.success()
                self.store.delete(key, local_id)
                self.entity_map.delete(self.id, key, local_id)
                logger.info(
                    "Deleted local record after remote delete",
                    extra_fields={"local_id": local_id, "remote_id": remote_id},
                )
                return SyncResult.success(local_id)

            fields = sorted(set(self.get_field_map(key).values()))
            try:
                records = await self.client.read(spec.remote_model, [remote_id], fields)
            except (RemoteCallError, ConfigurationError) as e:
                logger.error(
                    "Pull failed",
                    extra_fields={"remote_id": remote_id, "error": e.detail},
                )
                return SyncResult.from_exception(e)

            if not records:
                logger.warning("Remote record not found during pull", extra_fields={"remote_id": remote_id})
                return SyncResult.failure(
                    f"read {spec.remote_model}: record {remote_id} not found",
                    ErrorType.PERMANENT,
                )

            record = records[0]
            data = self.map_from_remote(key, record)
            if not local_id:
                local_id = self.entity_map.get_local_id(self.id, key, remote_id)

            saved_id = self.store.save(key, data, local_id or 0)
            if not saved_id:
                logger.error("Local save failed during pull", extra_fields={"remote_id": remote_id})
                return SyncResult.failure(
                    f"save {key}: local store rejected remote record {remote_id}",
                    ErrorType.PERMANENT,
                )

            self.entity_map.store(
                self.id, key, saved_id, remote_id, spec.remote_model, compute_sync_hash(record),
            )
            if spec.translatable_fields:
                self.accumulate_pull_translation(spec.remote_model, remote_id, saved_id)

            logger.info(
                "Pulled remote record",
                extra_fields={"local_id": saved_id, "remote_id": remote_id},
            )
            return SyncResult.success(saved_id)

    # =========================================================================
    # Translations
    # =========================================================================

    def accumulate_pull_translation(self, remote_model: str, remote_id: int, local_id: int) -> None:
        self.translations.accumulate(remote_model, remote_id, local_id)

    async def flush_pull_translations(self) -> int:
        return await self.translations.flush()

    async def _write_translations(self, remote_model: str, pairs: Dict[int, int]) -> None:
        if not self.languages:
            return

        for entity_type, spec in self.definition.entities.items():
            if spec.remote_model != remote_model or not spec.translatable_fields:
                continue

            remote_fields = sorted(spec.translatable_fields)
            for lang in self.languages:
                try:
                    records = await self.client.read(
                        remote_model, sorted(pairs), remote_fields, context={"lang": lang},
                    )
                except (RemoteCallError, ConfigurationError) as e:
                    logger.error(
                        f"Translation read failed for {remote_model} ({lang})",
                        extra_fields={"error": e.detail, "records": len(pairs)},
                    )
                    continue

                for record in records:
                    local_id = pairs.get(record.get("id"))
                    if not local_id:
                        continue
                    data = {
                        local_field: record[remote_field]
                        for remote_field, local_field in spec.translatable_fields.items()
                        if remote_field in record
                    }
                    self.store.apply_translation(entity_type, local_id, data, lang)

                logger.info(
                    f"Applied {lang} translations",
                    extra_fields={"entity_type": entity_type, "count": len(records)},
                )

    # =========================================================================
    # Boot
    # =========================================================================

    def boot(self, bus: Optional[LocalEventBus] = None) -> None:
        """Subscribe to local change events of every entity type."""
        if bus is not None:
            for entity_type in self.definition.entities:
                bus.subscribe(f"{self.id}.{entity_type}.saved", self._make_handler(entity_type, deleted=False))
                bus.subscribe(f"{self.id}.{entity_type}.deleted", self._make_handler(entity_type, deleted=True))
        self.booted = True
        logger.info(f"Module {self.id} booted")

    def _make_handler(self, entity_type: str, deleted: bool):
        async def handler(local_id: int, payload: Optional[Dict[str, Any]] = None, **_: Any):
            await self.on_local_change(entity_type, local_id, deleted=deleted, payload=payload)
        handler.__name__ = f"on_{entity_type}_{'deleted' if deleted else 'saved'}"
        return handler

    async def on_local_change(
        self,
        entity_type: str,
        local_id: int,
        deleted: bool = False,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[int]:
        """React to a local save/delete by queueing (or running) a push.

        Returns:
            Queue job id, or None when nothing was queued
        """
        if self.is_importing or not self.direction.allows_push or not self.is_entity_enabled(entity_type):
            return None

        remote_id = self.entity_map.get_remote_id(self.id, entity_type, local_id)
        if deleted:
            action = SyncAction.DELETE
        else:
            action = SyncAction.UPDATE if remote_id else SyncAction.CREATE

        if self.queue is None:
            await self.push(entity_type, action, local_id, remote_id, payload)
            return None

        return self.queue.enqueue(
            module=self.id,
            direction="local_to_remote",
            entity_type=entity_type,
            action=action.value,
            local_id=local_id,
            remote_id=remote_id or 0,
            payload=payload,
        )


def _entity_key(entity_type: EntityTypeRef) -> str:
    return entity_type.value if isinstance(entity_type, Enum) else str(entity_type)
