"""Module Registry - arbitration and boot gating.

Rules applied at ``register`` time:
- a disabled module is stored but never booted
- a module whose required modules are not booted is stored with a warning
- within a non-empty exclusive group, the first module to boot wins;
  later enabled peers are blocked (with a warning), whatever their priority

Registration order therefore matters: ``modules.register_all`` registers
group members in descending ``exclusive_priority``.
"""

from typing import Dict, List, Optional

from core.observability.logging import get_logger
from core.sync.events import LocalEventBus
from core.sync.module import SyncModule

logger = get_logger(__name__)


class ModuleRegistry:
    """Owns the constructed modules and decides which of them run.

    Usage:
        registry = ModuleRegistry(bus)
        registry.register("woocommerce", wc_module)
        registry.register("sales", sales_module)
        registry.get_active_in_group("commerce")  # "woocommerce"
    """

    def __init__(self, bus: Optional[LocalEventBus] = None):
        self.bus = bus or LocalEventBus()
        self._modules: Dict[str, SyncModule] = {}
        self._booted: List[str] = []
        self._warnings: Dict[str, List[Dict[str, str]]] = {}

    def register(self, module_id: str, module: SyncModule) -> bool:
        """Store a module and boot it when allowed.

        Returns:
            True if the module booted
        """
        self._modules[module_id] = module

        if not module.is_enabled():
            logger.debug(f"Module {module_id} registered (disabled)")
            return False

        missing = [req for req in module.required_modules if req not in self._booted]
        if missing:
            self._warn(
                module_id,
                f"Module '{module_id}' requires {', '.join(missing)} to be active; it was not started.",
            )
            return False

        group = module.exclusive_group
        if group:
            active = self.get_active_in_group(group)
            if active is not None and active != module_id:
                self._warn(
                    module_id,
                    f"Module '{module_id}' was not started: '{active}' is already active "
                    f"in exclusive group '{group}'.",
                )
                return False

        if module_id not in self._booted:
            module.boot(self.bus)
            self._booted.append(module_id)
        return True

    def _warn(self, module_id: str, message: str) -> None:
        logger.warning(message)
        self._warnings.setdefault(module_id, []).append({"type": "warning", "message": message})

    # =========================================================================
    # Accessors
    # =========================================================================

    def get(self, module_id: str) -> Optional[SyncModule]:
        return self._modules.get(module_id)

    def all(self) -> Dict[str, SyncModule]:
        return dict(self._modules)

    def is_booted(self, module_id: str) -> bool:
        return module_id in self._booted

    def booted(self) -> List[SyncModule]:
        return [self._modules[module_id] for module_id in self._booted]

    def get_booted_count(self) -> int:
        return len(self._booted)

    def get_warnings(self) -> Dict[str, List[Dict[str, str]]]:
        return {module_id: list(items) for module_id, items in self._warnings.items()}

    def get_active_in_group(self, group: str) -> Optional[str]:
        """Booted module of an exclusive group, or None."""
        if not group:
            return None
        for module_id in self._booted:
            if self._modules[module_id].exclusive_group == group:
                return module_id
        return None

    def get_conflicts(self, module_id: str) -> List[str]:
        """Other enabled modules sharing ``module_id``'s exclusive group."""
        module = self._modules.get(module_id)
        if module is None or not module.exclusive_group:
            return []
        return [
            other_id
            for other_id, other in self._modules.items()
            if other_id != module_id
            and other.exclusive_group == module.exclusive_group
            and other.is_enabled()
        ]

    def find_by_remote_model(self, remote_model: str) -> List[SyncModule]:
        """Booted modules with at least one entity type on ``remote_model``."""
        return [
            module
            for module in self.booted()
            if remote_model in module.definition.remote_models
        ]
