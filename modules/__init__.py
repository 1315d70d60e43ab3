"""Built-in integration modules.

Each module is a ModuleDefinition (entity types, remote models, field maps,
dedup rules). ``register_all`` wraps them in SyncModule instances and hands
them to the registry in the fixed order below: within an exclusive group
the higher-priority module is registered first so that it wins when both
are enabled.
"""

from typing import Dict, List, Optional

from core.config import SyncSettings
from core.observability.logging import get_logger
from core.sync.entities import ModuleDefinition
from core.sync.module import LocalStore, SyncModule
from core.sync.registry import ModuleRegistry
from modules.crm import CRM_MODULE
from modules.edd import EDD_MODULE
from modules.givewp import GIVEWP_MODULE
from modules.helpdesk import HELPDESK_MODULE
from modules.memberpress import MEMBERPRESS_MODULE
from modules.memberships import MEMBERSHIPS_MODULE
from modules.sales import SALES_MODULE
from modules.woocommerce import WOOCOMMERCE_MODULE

logger = get_logger(__name__)


# Registration order (commerce: woocommerce > edd > sales; memberships > memberpress)
BUILTIN_MODULES: List[ModuleDefinition] = [
    CRM_MODULE,
    WOOCOMMERCE_MODULE,
    EDD_MODULE,
    SALES_MODULE,
    MEMBERSHIPS_MODULE,
    MEMBERPRESS_MODULE,
    GIVEWP_MODULE,
    HELPDESK_MODULE,
]


def get_definition(module_id: str) -> Optional[ModuleDefinition]:
    for definition in BUILTIN_MODULES:
        if definition.id == module_id:
            return definition
    return None


def build_module(
    definition: ModuleDefinition,
    settings: SyncSettings,
    client,
    entity_map,
    store: LocalStore,
    queue=None,
) -> SyncModule:
    return SyncModule(
        definition,
        store,
        client,
        entity_map,
        settings.module(definition.id),
        queue=queue,
        languages=settings.translation_languages,
    )


def register_all(
    registry: ModuleRegistry,
    settings: SyncSettings,
    client,
    entity_map,
    stores: Dict[str, LocalStore],
    queue=None,
) -> List[str]:
    """Register every built-in module that has a local store.

    Args:
        registry: Target registry
        settings: Engine settings (per-module enablement, languages)
        client: Shared OdooClient
        entity_map: Shared EntityMapRepository
        stores: module_id -> LocalStore; modules without a store are
            not available on this host and are skipped
        queue: SyncQueueRepository for event-driven pushes

    Returns:
        Ids of the modules that booted
    """
    booted = []
    for definition in BUILTIN_MODULES:
        store = stores.get(definition.id)
        if store is None:
            logger.debug(f"No local store for module {definition.id}, skipped")
            continue
        module = build_module(definition, settings, client, entity_map, store, queue)
        if registry.register(definition.id, module):
            booted.append(definition.id)

    logger.info(
        f"Registered {len(registry.all())} module(s), {len(booted)} active",
        extra_fields={"active": ",".join(booted)},
    )
    return booted
