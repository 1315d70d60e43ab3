"""Sync Engine Configuration.

Settings are plain pydantic models built once (usually by ``load_settings``)
and passed explicitly to the client, modules, registry, queue engine and API.

Environment variables:
- ODOO_URL, ODOO_DATABASE, ODOO_USERNAME, ODOO_API_KEY, ODOO_TIMEOUT
- SYNC_DB_PATH, SYNC_BATCH_SIZE, SYNC_MAX_ATTEMPTS, SYNC_DRY_RUN
- SYNC_STALE_TIMEOUT: seconds before a job stuck in processing is requeued
- SYNC_BREAKER_THRESHOLD, SYNC_BREAKER_RECOVERY: consecutive transient
  failures that pause queue processing, and the pause length in seconds
- SYNC_LANGUAGES (comma separated, e.g. "fr_FR,es_ES")
- SYNC_WEBHOOK_TOKEN
- SYNC_MODULES_FILE: JSON file of per-module settings
- SYNC_STORE_FACTORY: "package.module:callable" returning {module_id: LocalStore}
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from connectors.odoo.odoo_auth import OdooAuthConfig
from connectors.rpc_base import ConfigurationError


DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "erp_sync.db"
DEFAULT_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"


class OdooConnectionSettings(BaseModel):
    """Connection settings for the remote Odoo instance."""
    url: str = ""
    database: str = ""
    username: str = ""
    api_key: str = ""
    timeout_seconds: int = Field(default=30, ge=1)
    protocol: str = Field(default="jsonrpc", description="Only 'jsonrpc' is supported")

    def to_auth_config(self) -> OdooAuthConfig:
        return OdooAuthConfig(
            url=self.url,
            database=self.database,
            username=self.username,
            api_key=self.api_key,
            timeout_seconds=self.timeout_seconds,
        )


class ModuleSettings(BaseModel):
    """Per-module settings snapshot.

    Attributes:
        enabled: Whether the module may boot
        options: Free-form options merged over the module defaults
            (e.g. ``{"sync_products": False}``)
        mappings: entity_type -> {local_field: remote_field} overriding
            the module's default field map
    """
    enabled: bool = False
    options: Dict[str, Any] = Field(default_factory=dict)
    mappings: Dict[str, Dict[str, str]] = Field(default_factory=dict)


class SyncSettings(BaseModel):
    """Top-level configuration of the sync engine."""
    odoo: OdooConnectionSettings = Field(default_factory=OdooConnectionSettings)
    modules: Dict[str, ModuleSettings] = Field(default_factory=dict)
    db_path: str = str(DEFAULT_DB_PATH)
    batch_size: int = Field(default=50, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    translation_languages: List[str] = Field(default_factory=list)
    webhook_token: str = ""
    dry_run: bool = False
    store_factory: str = ""
    stale_timeout_seconds: int = Field(default=600, ge=60, le=3600)
    breaker_failure_threshold: int = Field(default=3, ge=1)
    breaker_recovery_seconds: int = Field(default=300, ge=1)

    class Config:
        validate_assignment = True

    def module(self, module_id: str) -> ModuleSettings:
        """Settings for a module; unknown modules are disabled."""
        return self.modules.get(module_id) or ModuleSettings()

    def is_module_enabled(self, module_id: str) -> bool:
        return self.module(module_id).enabled


def _env_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def load_settings(
    env_file: Optional[Path] = None,
    modules_file: Optional[Path] = None,
) -> SyncSettings:
    """Build SyncSettings from the environment (and an optional .env file).

    Args:
        env_file: .env file to load first (defaults to the repo-root .env)
        modules_file: JSON file ``{module_id: {enabled, options, mappings}}``;
            defaults to $SYNC_MODULES_FILE

    Raises:
        ConfigurationError: malformed value or modules file
    """
    env_path = Path(env_file) if env_file else DEFAULT_ENV_PATH
    if env_path.exists():
        load_dotenv(env_path)

    try:
        return _build_settings(modules_file)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid sync settings: {e}") from e


def _build_settings(modules_file: Optional[Path]) -> SyncSettings:
    odoo = OdooConnectionSettings(
        url=os.getenv("ODOO_URL", ""),
        database=os.getenv("ODOO_DATABASE", ""),
        username=os.getenv("ODOO_USERNAME", ""),
        api_key=os.getenv("ODOO_API_KEY", ""),
        timeout_seconds=_env_int("ODOO_TIMEOUT", 30),
    )

    modules: Dict[str, ModuleSettings] = {}
    modules_path = modules_file or os.getenv("SYNC_MODULES_FILE")
    if modules_path:
        try:
            raw = json.loads(Path(modules_path).read_text())
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Module settings file is not valid JSON: {modules_path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Module settings file must contain a JSON object: {modules_path}")
        modules = {module_id: ModuleSettings(**data) for module_id, data in raw.items()}

    languages = [
        lang.strip()
        for lang in os.getenv("SYNC_LANGUAGES", "").split(",")
        if lang.strip()
    ]

    return SyncSettings(
        odoo=odoo,
        modules=modules,
        db_path=os.getenv("SYNC_DB_PATH", str(DEFAULT_DB_PATH)),
        batch_size=_env_int("SYNC_BATCH_SIZE", 50),
        max_attempts=_env_int("SYNC_MAX_ATTEMPTS", 3),
        translation_languages=languages,
        webhook_token=os.getenv("SYNC_WEBHOOK_TOKEN", ""),
        dry_run=_env_bool(os.getenv("SYNC_DRY_RUN")),
        store_factory=os.getenv("SYNC_STORE_FACTORY", ""),
        stale_timeout_seconds=_env_int("SYNC_STALE_TIMEOUT", 600),
        breaker_failure_threshold=_env_int("SYNC_BREAKER_THRESHOLD", 3),
        breaker_recovery_seconds=_env_int("SYNC_BREAKER_RECOVERY", 300),
    )
