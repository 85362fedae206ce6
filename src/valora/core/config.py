"""
Valora Configuration System
===========================
Centralized configuration with YAML file support and environment variable overrides.
"""

import os
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field

import yaml

from valora.core.exceptions import ConfigurationError


DEFAULT_DATA_FILE = str(Path.home() / ".valora" / "db.json")


@dataclass(frozen=True)
class SecurityConfig:
    api_key: Optional[str] = None
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


@dataclass(frozen=True)
class StorageConfig:
    backend: str = "memory"  # "memory" or "file"
    data_file: str = DEFAULT_DATA_FILE


@dataclass(frozen=True)
class WebhookDefaultsConfig:
    max_retries: int = 3
    backoff_ms: int = 1000
    timeout_ms: int = 10000
    max_history_size: int = 1000
    user_agent: str = "Valora-Webhook/1.0"


@dataclass(frozen=True)
class ValidrConfig:
    enabled: bool = True
    api_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class ObservabilityConfig:
    log_level: str = "INFO"
    structured_logging: bool = False


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3000


@dataclass(frozen=True)
class ValoraConfig:
    """Root configuration for Valora."""

    version: str = "1.0"
    security: SecurityConfig = field(default_factory=SecurityConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    webhooks: WebhookDefaultsConfig = field(default_factory=WebhookDefaultsConfig)
    validr: ValidrConfig = field(default_factory=ValidrConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _env_override(key: str, default):
    """Check for VALORA_<KEY> environment variable override."""
    env_key = f"VALORA_{key.upper()}"
    val = os.environ.get(env_key)
    if val is None:
        return default
    # Type coercion based on the default's type
    if isinstance(default, bool):
        return val.lower() in ("true", "1", "yes")
    if isinstance(default, int):
        return int(val)
    if isinstance(default, float):
        return float(val)
    return val


def load_config(path: Optional[Path] = None) -> ValoraConfig:
    """
    Load configuration from YAML file with environment variable overrides.

    Priority: ENV > YAML > defaults.

    Args:
        path: Path to config.yaml. If None, searches ./config.yaml.

    Returns:
        ValoraConfig instance.

    Raises:
        ConfigurationError: If the storage backend or webhook defaults are invalid.
    """
    if path is None:
        candidate = Path("config.yaml")
        if candidate.exists():
            path = candidate

    raw = {}
    if path is not None and path.exists():
        with open(path) as f:
            loaded = yaml.safe_load(f) or {}
            raw = loaded.get("valora") or {}

    # Build security config
    sec_raw = raw.get("security") or {}

    # Parse CORS origins from env (comma-separated) or config
    cors_env = os.environ.get("VALORA_CORS_ORIGINS")
    if cors_env:
        cors_origins = [o.strip() for o in cors_env.split(",")]
    else:
        cors_origins = sec_raw.get("cors_origins", ["*"])

    security = SecurityConfig(
        api_key=_env_override("API_KEY", sec_raw.get("api_key")),
        cors_origins=cors_origins,
    )

    # Build storage config
    storage_raw = raw.get("storage") or {}
    storage = StorageConfig(
        backend=_env_override("STORAGE_BACKEND", storage_raw.get("backend", "memory")),
        data_file=_env_override("DATA_FILE", storage_raw.get("data_file", DEFAULT_DATA_FILE)),
    )
    if storage.backend not in ("memory", "file"):
        raise ConfigurationError(
            config_key="storage.backend",
            reason=f"Must be 'memory' or 'file', got {storage.backend!r}",
        )

    # Build webhook defaults
    wh_raw = raw.get("webhooks") or {}
    webhooks = WebhookDefaultsConfig(
        max_retries=_env_override("WEBHOOK_MAX_RETRIES", wh_raw.get("max_retries", 3)),
        backoff_ms=_env_override("WEBHOOK_BACKOFF_MS", wh_raw.get("backoff_ms", 1000)),
        timeout_ms=_env_override("WEBHOOK_TIMEOUT_MS", wh_raw.get("timeout_ms", 10000)),
        max_history_size=wh_raw.get("max_history_size", 1000),
        user_agent=wh_raw.get("user_agent", "Valora-Webhook/1.0"),
    )
    if webhooks.max_retries < 0 or webhooks.backoff_ms < 0 or webhooks.timeout_ms <= 0:
        raise ConfigurationError(
            config_key="webhooks",
            reason="max_retries and backoff_ms must be >= 0, timeout_ms must be > 0",
        )

    # Build Validr config; the unprefixed VALIDR_* variables are honoured too
    validr_raw = raw.get("validr") or {}
    validr = ValidrConfig(
        enabled=_env_override("VALIDR_ENABLED", validr_raw.get("enabled", True)),
        api_url=_env_override(
            "VALIDR_API_URL", os.environ.get("VALIDR_API_URL", validr_raw.get("api_url"))
        ),
        api_key=_env_override(
            "VALIDR_API_KEY", os.environ.get("VALIDR_API_KEY", validr_raw.get("api_key"))
        ),
        timeout_seconds=validr_raw.get("timeout_seconds", 10.0),
    )

    # Build observability config
    obs_raw = raw.get("observability") or {}
    observability = ObservabilityConfig(
        log_level=_env_override("LOG_LEVEL", obs_raw.get("log_level", "INFO")),
        structured_logging=_env_override(
            "STRUCTURED_LOGGING", obs_raw.get("structured_logging", False)
        ),
    )

    # Build server config
    server_raw = raw.get("server") or {}
    server = ServerConfig(
        host=_env_override("HOST", server_raw.get("host", "127.0.0.1")),
        port=_env_override("PORT", server_raw.get("port", 3000)),
    )

    return ValoraConfig(
        version=raw.get("version", "1.0"),
        security=security,
        storage=storage,
        webhooks=webhooks,
        validr=validr,
        observability=observability,
        server=server,
    )


# Module-level singleton (lazy-loaded)
_CONFIG: Optional[ValoraConfig] = None


def get_config() -> ValoraConfig:
    """Get or initialize the global config singleton."""
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def reset_config():
    """Reset the global config singleton (useful for testing)."""
    global _CONFIG
    _CONFIG = None
