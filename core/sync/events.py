"""In-process event bus.

Local data-change notifications (``"crm.contact.saved"``,
``"woocommerce.product.deleted"``) are routed to the handlers that booted
modules subscribe. Handlers may be plain functions or coroutines.
"""

import inspect
from collections import defaultdict
from typing import Any, Callable, Dict, List

from core.observability.logging import get_logger

logger = get_logger(__name__)


class LocalEventBus:
    """Minimal pub/sub used by modules to react to local changes."""

    def __init__(self):
        self._handlers: Dict[str, List[Callable[..., Any]]] = defaultdict(list)

    def subscribe(self, event: str, handler: Callable[..., Any]) -> None:
        if handler not in self._handlers[event]:
            self._handlers[event].append(handler)

    def unsubscribe(self, event: str, handler: Callable[..., Any]) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers(self, event: str) -> List[Callable[..., Any]]:
        return list(self._handlers.get(event, []))

    async def emit(self, event: str, **payload: Any) -> int:
        """Call every handler for ``event``.

        A failing handler is logged and does not stop the others.

        Returns:
            Number of handlers that completed
        """
        completed = 0
        for handler in self.handlers(event):
            try:
                result = handler(**payload)
                if inspect.isawaitable(result):
                    await result
                completed += 1
            except Exception as e:
                logger.error(
                    f"Event handler failed for {event}: {type(e).__name__}: {e}",
                    exc_info=True,
                )
        return completed
