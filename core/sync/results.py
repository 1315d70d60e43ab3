"""Sync outcomes and error classification."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import aiohttp

from connectors.rpc_base import ConfigurationError, RemoteCallError, is_session_error


class ErrorType(str, Enum):
    """Whether a failed job is worth retrying later."""
    TRANSIENT = "transient"  # Network, timeout, 5xx, 429, session
    PERMANENT = "permanent"  # Validation, access, not found, configuration


_TRANSIENT_STATUS_CODES = {408, 429}

_TRANSIENT_EXCEPTIONS = (asyncio.TimeoutError, TimeoutError, ConnectionError, aiohttp.ClientError)


def classify_error(error: BaseException) -> ErrorType:
    if isinstance(error, ConfigurationError):
        return ErrorType.PERMANENT
    if isinstance(error, _TRANSIENT_EXCEPTIONS):
        return ErrorType.TRANSIENT
    if isinstance(error, RemoteCallError):
        if is_session_error(error):
            return ErrorType.TRANSIENT
        if error.status_code in _TRANSIENT_STATUS_CODES or error.status_code >= 500:
            return ErrorType.TRANSIENT
        if isinstance(error.__cause__, _TRANSIENT_EXCEPTIONS):
            return ErrorType.TRANSIENT
    return ErrorType.PERMANENT


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a push or pull.

    Attributes:
        succeeded: Whether the operation completed
        entity_id: Remote id (push) or local id (pull), None for no-ops
        error: Operator-facing detail (operation, model, message)
        error_type: Retry classification of a failure
    """
    succeeded: bool
    entity_id: Optional[int] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None

    @classmethod
    def success(cls, entity_id: Optional[int] = None) -> "SyncResult":
        return cls(succeeded=True, entity_id=entity_id)

    @classmethod
    def failure(
        cls,
        error: str,
        error_type: ErrorType = ErrorType.PERMANENT,
        entity_id: Optional[int] = None,
    ) -> "SyncResult":
        return cls(succeeded=False, entity_id=entity_id, error=error, error_type=error_type)

    @classmethod
    def from_exception(cls, error: BaseException, entity_id: Optional[int] = None) -> "SyncResult":
        """Failed result carrying operation, model and message of ``error``."""
        detail = error.detail if isinstance(error, RemoteCallError) else str(error)
        return cls.failure(detail or type(error).__name__, classify_error(error), entity_id)
