"""Remote ERP Connectors.

This package contains the transport contract, the shared error taxonomy and
the Odoo implementation used by the sync engine.

Key Design Principle:
- Sync modules depend ONLY on OdooClient (call + wrappers)
- Transports raise RemoteCallError; the client decides about retries
"""

from connectors.rpc_base import (
    # Errors
    SyncError,
    ConfigurationError,
    RemoteCallError,
    SessionError,
    is_session_error,

    # Transport
    RemoteSession,
    RemoteTransport,
)
from connectors.odoo import OdooAuthConfig, OdooClient, OdooJsonRpcTransport

__all__ = [
    "SyncError",
    "ConfigurationError",
    "RemoteCallError",
    "SessionError",
    "is_session_error",
    "RemoteSession",
    "RemoteTransport",
    "OdooAuthConfig",
    "OdooClient",
    "OdooJsonRpcTransport",
]
