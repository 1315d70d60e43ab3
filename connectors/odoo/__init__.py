"""Odoo connector: auth config, JSON-RPC transport and session-aware client."""

from connectors.odoo.odoo_auth import OdooAuthConfig
from connectors.odoo.odoo_client import OdooClient
from connectors.odoo.odoo_jsonrpc import OdooJsonRpcTransport, parse_rpc_response

__all__ = [
    "OdooAuthConfig",
    "OdooClient",
    "OdooJsonRpcTransport",
    "parse_rpc_response",
]
