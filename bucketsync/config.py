"""Configuration loading for bucketsync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_PORT = 5600
DEFAULT_TESTING_PORT = 5666


@dataclass
class ServerConfig:
    """Connection settings for the live store server."""

    host: str = "localhost"
    port: int | None = None  # None picks the default for the mode
    testing: bool = False
    timeout_seconds: float = 30.0

    @property
    def effective_port(self) -> int:
        if self.port:
            return self.port
        return DEFAULT_TESTING_PORT if self.testing else DEFAULT_PORT

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.effective_port}"


@dataclass
class SyncConfig:
    """Configuration for the sync folder and merge behaviour."""

    sync_dir: str = "~/ActivityWatchSync"
    store_extension: str = ".db"
    store_filename: str = "events.db"  # must end with store_extension
    buckets: list[str] = field(default_factory=list)  # empty: every known bucket
    resume_dedup: bool = False
    isolate_remote_failures: bool = False

    @property
    def sync_path(self) -> Path:
        return Path(self.sync_dir).expanduser()


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with BUCKETSYNC_ prefix."""
    return os.environ.get(f"BUCKETSYNC_{key}", default)


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _parse_bucket_list(value: str | list[str] | None) -> list[str]:
    """Accept either a YAML list or a comma separated string."""
    if not value:
        return []
    if isinstance(value, str):
        return [b.strip() for b in value.split(",") if b.strip()]
    return [str(b) for b in value]


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Server overrides
    if host := _get_env("SERVER_HOST"):
        config.server.host = host
    if port := _get_env("SERVER_PORT"):
        config.server.port = int(port)
    if testing := _get_env("TESTING"):
        config.server.testing = _parse_bool(testing)

    # Sync overrides
    if sync_dir := _get_env("SYNC_DIR"):
        config.sync.sync_dir = sync_dir
    if buckets := _get_env("BUCKETS"):
        config.sync.buckets = _parse_bucket_list(buckets)
    if resume_dedup := _get_env("RESUME_DEDUP"):
        config.sync.resume_dedup = _parse_bool(resume_dedup)
    if isolate := _get_env("ISOLATE_REMOTE_FAILURES"):
        config.sync.isolate_remote_failures = _parse_bool(isolate)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.

    Raises:
        ValueError: If the store filename does not carry the store extension.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse server config
            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=server_data.get("port", config.server.port),
                    testing=server_data.get("testing", config.server.testing),
                    timeout_seconds=server_data.get(
                        "timeout_seconds", config.server.timeout_seconds
                    ),
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    sync_dir=sync_data.get("sync_dir", config.sync.sync_dir),
                    store_extension=sync_data.get(
                        "store_extension", config.sync.store_extension
                    ),
                    store_filename=sync_data.get(
                        "store_filename", config.sync.store_filename
                    ),
                    buckets=_parse_bucket_list(sync_data.get("buckets")),
                    resume_dedup=sync_data.get(
                        "resume_dedup", config.sync.resume_dedup
                    ),
                    isolate_remote_failures=sync_data.get(
                        "isolate_remote_failures", config.sync.isolate_remote_failures
                    ),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    # The staging store must be discoverable by the other devices
    if not config.sync.store_filename.endswith(config.sync.store_extension):
        raise ValueError(
            f"store_filename {config.sync.store_filename!r} must end with "
            f"{config.sync.store_extension!r}"
        )

    return config
