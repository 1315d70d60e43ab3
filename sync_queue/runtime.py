"""Sync runtime wiring.

Builds the shared collaborators (Odoo client, entity map, queue, registry,
engine) from one SyncSettings snapshot. Used by the Temporal activity and
the API server so both see the same set of booted modules.
"""

import importlib
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from connectors.odoo.odoo_client import OdooClient
from connectors.odoo.odoo_jsonrpc import OdooJsonRpcTransport
from connectors.rpc_base import ConfigurationError, RemoteTransport
from core.config import SyncSettings
from core.observability.logging import get_logger
from core.sync.events import LocalEventBus
from core.sync.module import LocalStore
from core.sync.registry import ModuleRegistry
from entity_map.db import EntityMapRepository
from modules import register_all
from sync_queue.db import SyncQueueRepository
from sync_queue.engine import SyncEngine

logger = get_logger(__name__)


StoreFactory = Callable[[SyncSettings], Dict[str, LocalStore]]


@dataclass
class SyncRuntime:
    """Everything needed to process the queue and accept webhooks."""
    settings: SyncSettings
    client: OdooClient
    entity_map: EntityMapRepository
    queue: SyncQueueRepository
    registry: ModuleRegistry
    engine: SyncEngine

    async def close(self) -> None:
        await self.client.close()


def load_store_factory(path: str) -> StoreFactory:
    """Resolve a ``"package.module:callable"`` reference.

    Raises:
        ConfigurationError: malformed path or missing attribute
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"Store factory must look like 'package.module:callable', got '{path}'.")
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load store factory '{path}': {e}") from e
    if not callable(factory):
        raise ConfigurationError(f"Store factory '{path}' is not callable.")
    return factory


def build_runtime(
    settings: SyncSettings,
    stores: Optional[Dict[str, LocalStore]] = None,
    transport: Optional[RemoteTransport] = None,
    bus: Optional[LocalEventBus] = None,
) -> SyncRuntime:
    """Construct and boot the sync runtime.

    Args:
        settings: Engine settings
        stores: module_id -> LocalStore; when omitted the factory named by
            ``settings.store_factory`` is called
        transport: Remote transport (defaults to JSON-RPC from settings.odoo)
        bus: Local event bus the modules subscribe to

    Returns:
        SyncRuntime with every available module registered
    """
    if stores is None:
        stores = load_store_factory(settings.store_factory)(settings) if settings.store_factory else {}
    if not stores:
        logger.warning("No local stores configured; no module can boot")

    client = OdooClient(transport or OdooJsonRpcTransport(settings.odoo.to_auth_config()))
    entity_map = EntityMapRepository(settings.db_path)
    queue = SyncQueueRepository(settings.db_path, default_max_attempts=settings.max_attempts)
    registry = ModuleRegistry(bus)

    register_all(registry, settings, client, entity_map, stores, queue)

    for module_id, items in registry.get_warnings().items():
        for item in items:
            logger.warning(item["message"], extra_fields={"module_id": module_id})

    engine = SyncEngine(registry, queue, settings)
    return SyncRuntime(
        settings=settings,
        client=client,
        entity_map=entity_map,
        queue=queue,
        registry=registry,
        engine=engine,
    )
