"""Odoo Authentication Configuration.

Holds the credentials used by the transports to open a session.
"""

from dataclasses import dataclass

from connectors.rpc_base import ConfigurationError


@dataclass
class OdooAuthConfig:
    """Configuration for Odoo authentication.

    Attributes:
        url: Odoo server URL (no trailing slash needed)
        database: Odoo database name
        username: Odoo login
        api_key: API key or password
        timeout_seconds: Request timeout
    """
    url: str
    database: str
    username: str
    api_key: str
    timeout_seconds: int = 30

    def __post_init__(self):
        self.url = self.url.rstrip("/")

    @property
    def authenticate_endpoint(self) -> str:
        return f"{self.url}/web/session/authenticate"

    @property
    def jsonrpc_endpoint(self) -> str:
        return f"{self.url}/jsonrpc"

    def validate(self) -> None:
        """Raise ConfigurationError when connection settings are incomplete."""
        if not self.url or not self.database:
            raise ConfigurationError("Odoo connection not configured.")
        if not self.username or not self.api_key:
            raise ConfigurationError("Odoo credentials not configured.")
