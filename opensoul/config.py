"""
Configuration management for OpenSoul.

Two layers:
- server config: YAML with environment variable expansion (registry server)
- client config: ~/.soulrc.yaml, typed, defaults filled in and persisted back
"""

import os
import re
import logging
from pathlib import Path
from dataclasses import dataclass, field, fields, asdict
from typing import Optional, Dict, Any

import yaml

from .errors import ConfigurationError

logger = logging.getLogger("opensoul.config")


# =============================================================================
# Server Config
# =============================================================================

@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 4000
    workers: int = 1
    reload: bool = False


@dataclass
class RegistryConfig:
    """Registry database configuration."""
    db_path: str = "./data/souls.db"


@dataclass
class StorageConfig:
    """Object storage for soul documents and images."""
    backend: str = "local"  # local | s3
    local_path: str = "./data/registry"

    # S3-compatible endpoint (R2, MinIO, AWS)
    endpoint: Optional[str] = None
    bucket: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: str = "auto"
    timeout: float = 30.0


@dataclass
class OpenSoulConfig:
    """Root configuration for the registry server."""
    server: ServerConfig = field(default_factory=ServerConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in config values."""
    if isinstance(value, str):
        # Match ${VAR} or $VAR patterns
        pattern = r'\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)'

        def replace(match):
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(v) for v in value]
    return value


def load_config(path: str | Path) -> OpenSoulConfig:
    """Load server configuration from YAML file."""
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    data = expand_env_vars(raw)

    server_data = data.get("server", {})
    server = ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 4000)),
        workers=int(server_data.get("workers", 1)),
        reload=bool(server_data.get("reload", False)),
    )

    registry_data = data.get("registry", {})
    registry = RegistryConfig(
        db_path=registry_data.get("db_path", "./data/souls.db"),
    )

    storage_data = data.get("storage", {})
    backend = storage_data.get("backend", "local")
    if backend not in ("local", "s3"):
        raise ConfigurationError(f"Unknown storage backend: {backend}")

    storage = StorageConfig(
        backend=backend,
        local_path=storage_data.get("local_path", "./data/registry"),
        endpoint=storage_data.get("endpoint"),
        bucket=storage_data.get("bucket"),
        access_key_id=storage_data.get("access_key_id"),
        secret_access_key=storage_data.get("secret_access_key"),
        region=storage_data.get("region", "auto"),
        timeout=float(storage_data.get("timeout", 30.0)),
    )

    return OpenSoulConfig(server=server, registry=registry, storage=storage)


def create_default_config() -> str:
    """Generate default server configuration YAML."""
    return """# OpenSoul Registry Configuration

server:
  host: 0.0.0.0
  port: 4000
  workers: 1

registry:
  db_path: ./data/souls.db

# Where soul documents and images are stored
storage:
  backend: local
  local_path: ./data/registry
  # S3-compatible object storage (Cloudflare R2, MinIO, AWS S3)
  # backend: s3
  # endpoint: ${R2_ENDPOINT}
  # bucket: ${R2_BUCKET}
  # access_key_id: ${R2_ACCESS_KEY_ID}
  # secret_access_key: ${R2_SECRET_ACCESS_KEY}
  # region: auto
  # timeout: 30
"""


# =============================================================================
# Client Config
# =============================================================================

SWAP_MODES = ("immediate", "confirm")


@dataclass
class ClientConfig:
    """CLI configuration. Every field has an explicit default."""
    soul_path: str
    backup_dir: str
    cache_dir: str
    skills_path: str
    registry_url: str = "http://localhost:4000"
    auth_token: str = ""
    swap_mode: str = "immediate"  # immediate | confirm
    timeout: float = 30.0

    @classmethod
    def defaults(cls, home: Optional[Path] = None) -> "ClientConfig":
        """Default config rooted at the given home directory."""
        home = Path(home) if home else Path.home()
        return cls(
            soul_path=str(home / ".openclaw" / "workspace" / "SOUL.md"),
            backup_dir=str(home / ".soul" / "backup"),
            cache_dir=str(home / ".soul" / "cache"),
            skills_path=str(home / ".openclaw" / "skills"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


CLIENT_CONFIG_KEYS = tuple(f.name for f in fields(ClientConfig))


def default_client_config_path(home: Optional[Path] = None) -> Path:
    home = Path(home) if home else Path.home()
    return home / ".soulrc.yaml"


def coerce_config_value(key: str, value: Any) -> Any:
    """Validate and convert a raw value for a client config key."""
    if key not in CLIENT_CONFIG_KEYS:
        raise ConfigurationError(
            f"Unknown config key: {key} (known keys: {', '.join(CLIENT_CONFIG_KEYS)})"
        )

    if key == "timeout":
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"timeout must be a number, got {value!r}")
        if timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        return timeout

    if key == "swap_mode":
        if value not in SWAP_MODES:
            raise ConfigurationError(
                f"swap_mode must be one of: {', '.join(SWAP_MODES)}"
            )
        return value

    if value is None:
        raise ConfigurationError(f"{key} cannot be empty")
    return str(value)


def save_client_config(config: ClientConfig, path: Optional[Path] = None) -> Path:
    """Write client config as YAML."""
    path = Path(path) if path else default_client_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(config.to_dict(), sort_keys=False), encoding="utf-8")
    return path


def load_client_config(
    path: Optional[Path] = None,
    home: Optional[Path] = None,
) -> ClientConfig:
    """
    Load the client config, merging it over the defaults.

    A missing file is created from defaults. Missing fields are filled in
    and unknown fields are dropped; either way the result is written back.
    """
    path = Path(path) if path else default_client_config_path(home)
    config = ClientConfig.defaults(home)

    if not path.exists():
        save_client_config(config, path)
        return config

    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    changed = False
    for key in raw:
        if key not in CLIENT_CONFIG_KEYS:
            logger.warning(f"Ignoring unknown config key '{key}' in {path}")
            changed = True

    for key in CLIENT_CONFIG_KEYS:
        if key in raw:
            setattr(config, key, coerce_config_value(key, raw[key]))
        else:
            changed = True

    if changed:
        save_client_config(config, path)

    return config


def get_config_value(config: ClientConfig, key: str) -> Any:
    """Read a single client config value."""
    if key not in CLIENT_CONFIG_KEYS:
        raise ConfigurationError(f"Unknown config key: {key}")
    return getattr(config, key)


def set_config_value(
    key: str,
    value: Any,
    path: Optional[Path] = None,
    home: Optional[Path] = None,
) -> ClientConfig:
    """Set and persist a single client config value."""
    path = Path(path) if path else default_client_config_path(home)
    config = load_client_config(path, home)
    setattr(config, key, coerce_config_value(key, value))
    save_client_config(config, path)
    return config
