"""Sync engine core: push/pull contract, registry and translation batching."""

from core.sync.entities import (
    SyncDirection,
    SyncAction,
    EntitySpec,
    ModuleDefinition,
)
from core.sync.events import LocalEventBus
from core.sync.module import LocalStore, SyncModule, compute_sync_hash
from core.sync.registry import ModuleRegistry
from core.sync.results import ErrorType, SyncResult, classify_error
from core.sync.translation import TranslationAccumulator

__all__ = [
    "SyncDirection",
    "SyncAction",
    "EntitySpec",
    "ModuleDefinition",
    "LocalEventBus",
    "LocalStore",
    "SyncModule",
    "compute_sync_hash",
    "ModuleRegistry",
    "ErrorType",
    "SyncResult",
    "classify_error",
    "TranslationAccumulator",
]
