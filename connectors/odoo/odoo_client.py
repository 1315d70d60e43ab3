"""Odoo RPC Client.

High-level client used by every sync module. It owns the session and is the
only layer in the engine that retries:

- a session error triggers one re-authentication and exactly one retry
- parallel failures share a single refresh (asyncio.Lock + generation)
- every other failure surfaces as RemoteCallError
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from connectors.rpc_base import (
    ConfigurationError,
    RemoteCallError,
    RemoteSession,
    RemoteTransport,
    is_session_error,
)
from core.observability.logging import get_logger
from core.observability.metrics import (
    record_processing_time,
    record_rpc_call,
    record_session_refresh,
    record_session_retry,
)

logger = get_logger(__name__)


class OdooClient:
    """Session-aware client for Odoo models.

    Usage:
        client = OdooClient(OdooJsonRpcTransport(auth_config))
        partner_id = await client.create("res.partner", {"name": "Ada"})
        await client.write("res.partner", [partner_id], {"email": "ada@example.com"})
    """

    def __init__(self, transport: RemoteTransport):
        self.transport = transport
        self._session: Optional[RemoteSession] = None
        self._generation = 0
        self._refresh_lock = asyncio.Lock()

    # =========================================================================
    # Session
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    @property
    def session_generation(self) -> int:
        """Number of sessions obtained so far (0 before the first login)."""
        return self._generation

    async def _ensure_session(self) -> RemoteSession:
        if self._session is not None:
            return self._session
        async with self._refresh_lock:
            if self._session is None:
                await self._authenticate()
        return self._session

    async def _authenticate(self) -> None:
        # Caller holds _refresh_lock
        session = await self.transport.authenticate()
        self._generation += 1
        session.generation = self._generation
        self._session = session

    async def _refresh_session(self, failed_generation: int) -> None:
        """Re-authenticate unless another caller already did since the failure."""
        async with self._refresh_lock:
            if self._generation > failed_generation and self._session is not None:
                logger.debug(
                    "Session already refreshed by a concurrent call",
                    extra_fields={"generation": self._generation},
                )
                return
            self._session = None
            await self._authenticate()
            record_session_refresh()
            logger.info(
                "Re-authenticated after session error",
                extra_fields={"generation": self._generation},
            )

    async def close(self) -> None:
        self._session = None
        await self.transport.close()

    # =========================================================================
    # Core call
    # =========================================================================

    async def call(
        self,
        operation: str,
        model: str,
        args: Optional[List[Any]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Execute ``operation`` on ``model``.

        Raises:
            ConfigurationError: ``model`` or ``operation`` is empty
            RemoteCallError: the call failed and could not be recovered
        """
        if not model:
            raise ConfigurationError("Remote model name must not be empty.")
        if not operation:
            raise ConfigurationError("Remote operation must not be empty.")

        args = args if args is not None else []
        start = time.monotonic()

        try:
            session = await self._ensure_session()
            try:
                result = await self._execute(session, operation, model, args, kwargs)
            except RemoteCallError as e:
                if not is_session_error(e):
                    raise
                logger.warning(
                    f"Session error on {operation} {model}, retrying once",
                    extra_fields={"error": str(e)},
                )
                await self._refresh_session(session.generation)
                record_session_retry()
                result = await self._execute(self._session, operation, model, args, kwargs)
        except RemoteCallError as e:
            record_rpc_call(operation, failed=True)
            logger.error(
                f"Remote call failed: {operation} {model}",
                extra_fields={"error": str(e), "status_code": e.status_code},
            )
            if not e.operation:
                e.operation = operation
            if not e.model:
                e.model = model
            raise

        record_rpc_call(operation)
        record_processing_time(f"rpc:{operation}", (time.monotonic() - start) * 1000)
        return result

    async def _execute(
        self,
        session: RemoteSession,
        operation: str,
        model: str,
        args: List[Any],
        kwargs: Optional[Dict[str, Any]],
    ) -> Any:
        try:
            return await self.transport.execute_kw(session, model, operation, args, kwargs)
        except RemoteCallError:
            raise
        except ConfigurationError:
            raise
        except Exception as e:
            status = getattr(e, "status", 0)
            raise RemoteCallError(
                f"{type(e).__name__}: {e}",
                status_code=status if isinstance(status, int) else 0,
                operation=operation,
                model=model,
            ) from e

    # =========================================================================
    # Convenience wrappers
    # =========================================================================

    async def search(
        self,
        model: str,
        domain: Optional[List[Any]] = None,
        offset: int = 0,
        limit: int = 0,
        order: str = "",
    ) -> List[int]:
        kwargs: Dict[str, Any] = {}
        if offset:
            kwargs["offset"] = offset
        if limit:
            kwargs["limit"] = limit
        if order:
            kwargs["order"] = order
        result = await self.call("search", model, [_domain(domain)], kwargs)
        return [int(i) for i in result or []]

    async def search_read(
        self,
        model: str,
        domain: Optional[List[Any]] = None,
        fields: Optional[List[str]] = None,
        offset: int = 0,
        limit: int = 0,
        order: str = "",
    ) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {}
        if fields:
            kwargs["fields"] = fields
        if offset:
            kwargs["offset"] = offset
        if limit:
            kwargs["limit"] = limit
        if order:
            kwargs["order"] = order
        return await self.call("search_read", model, [_domain(domain)], kwargs) or []

    async def read(
        self,
        model: str,
        ids: List[int],
        fields: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {}
        if fields:
            kwargs["fields"] = fields
        if context:
            kwargs["context"] = context
        return await self.call("read", model, [list(ids)], kwargs) or []

    async def create(self, model: str, values: Dict[str, Any]) -> int:
        result = await self.call("create", model, [values])
        # create() with a list of dicts returns a list of ids on Odoo 17+
        if isinstance(result, list):
            result = result[0] if result else 0
        if not isinstance(result, int) or isinstance(result, bool) or result <= 0:
            raise RemoteCallError(
                f"Unexpected create() result: {result!r}",
                operation="create",
                model=model,
            )
        return result

    async def write(self, model: str, ids: List[int], values: Dict[str, Any]) -> bool:
        return bool(await self.call("write", model, [list(ids), values]))

    async def unlink(self, model: str, ids: List[int]) -> bool:
        return bool(await self.call("unlink", model, [list(ids)]))

    async def search_count(self, model: str, domain: Optional[List[Any]] = None) -> int:
        return int(await self.call("search_count", model, [_domain(domain)]) or 0)

    async def fields_get(
        self,
        model: str,
        attributes: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        kwargs = {"attributes": attributes} if attributes else {}
        return await self.call("fields_get", model, [], kwargs) or {}

    async def execute(
        self,
        model: str,
        method: str,
        args: Optional[List[Any]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Call an arbitrary model method (e.g. ``action_confirm``)."""
        return await self.call(method, model, args, kwargs)


def _domain(domain: Optional[List[Any]]) -> List[Any]:
    """Odoo expects domain triples as lists."""
    return [list(term) if isinstance(term, tuple) else term for term in (domain or [])]
