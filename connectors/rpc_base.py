"""Abstract Remote RPC Interface.

This module defines the transport contract the RPC client talks to, plus the
error taxonomy shared by every layer of the sync engine.

Key Design Principles:
- The client is the ONLY layer allowed to retry (once, on session loss)
- Everything above the client sees RemoteCallError or a SyncResult
- Session errors are recognised by status code or by message keywords
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


# =============================================================================
# Errors
# =============================================================================

class SyncError(Exception):
    """Base exception for the sync engine."""

    @property
    def detail(self) -> str:
        return str(self)


class ConfigurationError(SyncError):
    """Unknown module/entity type, or missing connection settings."""
    pass


class RemoteCallError(SyncError):
    """A remote call failed (validation, not found, network, ...)."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        operation: str = "",
        model: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation
        self.model = model

    @property
    def detail(self) -> str:
        """Operator-facing description: operation, model and message."""
        parts = [p for p in (self.operation, self.model) if p]
        prefix = f"{' '.join(parts)}: " if parts else ""
        return f"{prefix}{self}"


class SessionError(RemoteCallError):
    """The remote session is expired or invalid (recoverable by re-login)."""
    pass


# =============================================================================
# Session error classification
# =============================================================================

SESSION_ERROR_STATUS = 403

SESSION_ERROR_KEYWORDS = (
    "session expired",
    "session_expired",
    "odoo session",
    "access denied",
    "http 403",
    "http403",
)

# \b keeps "1403" / "14031" / "HTTP 4031" from matching
_SESSION_ERROR_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(k) for k in SESSION_ERROR_KEYWORDS) + r")\b",
    re.IGNORECASE,
)


def is_session_error(error: BaseException) -> bool:
    """Check whether a failure is attributable to an expired/invalid session.

    True iff the error carries status code 403 (``status_code`` or ``code``
    attribute), or its message contains one of SESSION_ERROR_KEYWORDS at
    word boundaries, case-insensitively.
    """
    if isinstance(error, SessionError):
        return True

    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and value == SESSION_ERROR_STATUS:
            return True

    message = str(error)
    if not message:
        return False
    return _SESSION_ERROR_PATTERN.search(message) is not None


# =============================================================================
# Transport
# =============================================================================

@dataclass
class RemoteSession:
    """Authenticated session against the remote ERP."""
    uid: int
    token: str = ""
    generation: int = 0
    obtained_at: datetime = field(default_factory=datetime.utcnow)


class RemoteTransport(ABC):
    """Wire-level access to the remote ERP.

    Implementations raise RemoteCallError (with status_code when an HTTP
    status is known) for every failure.
    """

    @abstractmethod
    async def authenticate(self) -> RemoteSession:
        """Log in and return a fresh session."""
        pass

    @abstractmethod
    async def execute_kw(
        self,
        session: RemoteSession,
        model: str,
        method: str,
        args: List[Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Execute ``method`` on ``model`` and return the raw result."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
