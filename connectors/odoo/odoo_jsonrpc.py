"""Odoo JSON-RPC Transport.

All calls go through POST with the JSON-RPC 2.0 envelope:
- /web/session/authenticate to obtain the uid and session cookie
- /jsonrpc with service "object" / method "execute_kw" for model calls
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from connectors.odoo.odoo_auth import OdooAuthConfig
from connectors.rpc_base import RemoteCallError, RemoteSession, RemoteTransport

logger = logging.getLogger(__name__)


def parse_rpc_response(status: int, response_text: str, endpoint: str = "") -> Any:
    """Turn an HTTP status and JSON-RPC body into a result or an error.

    Raises:
        RemoteCallError: HTTP error, invalid JSON or JSON-RPC error object
    """
    if status >= 400:
        raise RemoteCallError(
            f"HTTP {status} from Odoo: {response_text[:200]}",
            status_code=status,
        )

    try:
        body = json.loads(response_text) if response_text else None
    except ValueError:
        body = None

    if not isinstance(body, dict):
        raise RemoteCallError(
            f"Invalid JSON response from Odoo (HTTP {status}).",
            status_code=status,
        )

    if body.get("error"):
        error = body["error"]
        data = error.get("data") or {}
        message = data.get("message") or error.get("message") or "Unknown RPC error"
        logger.error(f"Odoo RPC error on {endpoint or 'request'}: {message}")
        # Odoo reports an expired session as code 100 "Odoo Session Expired"
        code = error.get("code", 0)
        raise RemoteCallError(
            f"Odoo RPC error: {message}",
            status_code=code if isinstance(code, int) and code >= 400 else 0,
        )

    return body.get("result")


class OdooJsonRpcTransport(RemoteTransport):
    """JSON-RPC 2.0 transport for Odoo 17+.

    Usage:
        transport = OdooJsonRpcTransport(OdooAuthConfig(...))
        session = await transport.authenticate()
        ids = await transport.execute_kw(session, "res.partner", "search", [[]])
    """

    def __init__(self, config: OdooAuthConfig):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0
        self._last_cookies: Dict[str, str] = {}

    async def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
            )
        return self._session

    async def _rpc_call(
        self,
        url: str,
        params: Dict[str, Any],
        cookies: Optional[Dict[str, str]] = None,
    ) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": "call",
            "params": params,
            "id": self._request_id,
        }

        http = await self._http()
        try:
            async with http.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
                cookies=cookies,
            ) as response:
                response_text = await response.text()
                result = parse_rpc_response(response.status, response_text, url)
                self._last_cookies = {k: v.value for k, v in response.cookies.items()}
                return result
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"HTTP error calling {url}: {type(e).__name__}: {e}")
            raise RemoteCallError(f"HTTP error: {e}") from e

    async def authenticate(self) -> RemoteSession:
        """Authenticate against Odoo and return a new session."""
        self.config.validate()
        self._last_cookies = {}

        result = await self._rpc_call(
            self.config.authenticate_endpoint,
            {
                "db": self.config.database,
                "login": self.config.username,
                "password": self.config.api_key,
            },
        )

        uid = result.get("uid") if isinstance(result, dict) else None
        if not uid:
            raise RemoteCallError(
                "Authentication failed: invalid credentials.",
                operation="authenticate",
            )

        session = RemoteSession(
            uid=int(uid),
            token=self._last_cookies.get("session_id", ""),
        )
        logger.debug(f"Authenticated on {self.config.url} as uid {session.uid}")
        return session

    async def execute_kw(
        self,
        session: RemoteSession,
        model: str,
        method: str,
        args: List[Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        params = {
            "service": "object",
            "method": "execute_kw",
            "args": [
                self.config.database,
                session.uid,
                self.config.api_key,
                model,
                method,
                args,
                kwargs or {},
            ],
        }
        cookies = {"session_id": session.token} if session.token else None
        return await self._rpc_call(self.config.jsonrpc_endpoint, params, cookies)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
