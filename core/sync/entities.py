"""Module and entity configuration objects.

A sync module is described by data, not by subclassing:

- ``EntitySpec`` carries the remote model, default field map, dedup rule,
  settings gate, translatable fields and optional value transforms of one
  entity type
- ``ModuleDefinition`` groups the entity specs of a module with its
  direction and exclusive-group arbitration data

``ModuleDefinition`` checks that its ``entity_types`` enum and its
``entities`` mapping describe exactly the same set of entity types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from connectors.rpc_base import ConfigurationError


class SyncDirection(str, Enum):
    LOCAL_TO_REMOTE = "local_to_remote"
    REMOTE_TO_LOCAL = "remote_to_local"
    BIDIRECTIONAL = "bidirectional"

    @property
    def allows_push(self) -> bool:
        return self in (SyncDirection.LOCAL_TO_REMOTE, SyncDirection.BIDIRECTIONAL)

    @property
    def allows_pull(self) -> bool:
        return self in (SyncDirection.REMOTE_TO_LOCAL, SyncDirection.BIDIRECTIONAL)


class SyncAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# Domain triple: (field, operator, value)
DomainTerm = Tuple[str, str, Any]
ValueTransform = Callable[[Dict[str, Any]], Dict[str, Any]]
DedupRule = Callable[[Dict[str, Any]], List[DomainTerm]]


@dataclass(frozen=True)
class EntitySpec:
    """How one entity type maps onto a remote model.

    Attributes:
        remote_model: Odoo model name (e.g. "res.partner")
        field_map: Default {local_field: remote_field} map
        dedup_fields: Remote fields forming the natural key; each non-empty
            mapped value becomes an ``=`` term
        dedup_domain: Custom rule (mapped values -> domain); takes precedence
            over ``dedup_fields``
        setting_key: Module option that enables this entity type
            (e.g. "sync_products"); empty means always enabled
        translatable_fields: {remote_field: local_field} pulled per language
        transform_out: Applied to mapped remote values before push
        transform_in: Applied to mapped local values after pull
    """
    remote_model: str
    field_map: Dict[str, str]
    dedup_fields: Tuple[str, ...] = ()
    dedup_domain: Optional[DedupRule] = None
    setting_key: str = ""
    translatable_fields: Dict[str, str] = field(default_factory=dict)
    transform_out: Optional[ValueTransform] = None
    transform_in: Optional[ValueTransform] = None

    def __post_init__(self):
        if not self.remote_model:
            raise ConfigurationError("EntitySpec.remote_model must not be empty.")

    def build_dedup_domain(self, values: Dict[str, Any]) -> List[DomainTerm]:
        if self.dedup_domain is not None:
            return list(self.dedup_domain(values))
        domain: List[DomainTerm] = []
        for remote_field in self.dedup_fields:
            value = values.get(remote_field)
            if value not in (None, "", False):
                domain.append((remote_field, "=", value))
        return domain


@dataclass(frozen=True)
class ModuleDefinition:
    """Static description of a sync module.

    Attributes:
        id: Module identifier used in settings, queue jobs and the entity map
        name: Human-readable name
        direction: Which of push / pull the module performs
        entity_types: str Enum listing the module's entity types
        entities: entity_type value -> EntitySpec
        exclusive_group: Modules sharing a non-empty group never run together
        exclusive_priority: Higher wins; modules are registered in
            priority order within a group
        required_modules: Module ids that must be booted first
        default_settings: Options used when not overridden by settings
    """
    id: str
    name: str
    direction: SyncDirection
    entity_types: Type[Enum]
    entities: Dict[str, EntitySpec]
    exclusive_group: str = ""
    exclusive_priority: int = 0
    required_modules: Tuple[str, ...] = ()
    default_settings: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        declared = {member.value for member in self.entity_types}
        configured = set(self.entities)
        missing = declared - configured
        unknown = configured - declared
        if missing:
            raise ConfigurationError(
                f"Module '{self.id}' has no entity spec for: {', '.join(sorted(missing))}"
            )
        if unknown:
            raise ConfigurationError(
                f"Module '{self.id}' configures undeclared entity types: {', '.join(sorted(unknown))}"
            )

    def entity(self, entity_type: Any) -> EntitySpec:
        """Spec for an entity type (enum member or its value).

        Raises:
            ConfigurationError: entity type is not declared by the module
        """
        key = entity_type.value if isinstance(entity_type, Enum) else str(entity_type)
        spec = self.entities.get(key)
        if spec is None:
            raise ConfigurationError(f"Unknown entity type '{key}' for module '{self.id}'.")
        return spec

    @property
    def remote_models(self) -> List[str]:
        return sorted({spec.remote_model for spec in self.entities.values()})
