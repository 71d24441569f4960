"""Configuration loading for treesync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .replica import ReloadStrategy


@dataclass
class RemoteConfig:
    database_url: str = ""
    auth_token: str | None = None
    timeout: float = 30.0


@dataclass
class MirrorConfig:
    """Configuration for local replicas."""

    backend: str = "sqlite"  # "sqlite" or "memory"
    db_path: str = "~/.treesync/mirror.db"
    reload_strategy: ReloadStrategy = ReloadStrategy.COMPARE_KEY
    await_writes: bool = False


@dataclass
class StreamConfig:
    """Configuration for event streams."""

    auto_renew: bool = True
    renew_delay_seconds: float = 1.0


@dataclass
class Config:
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    mirror: MirrorConfig = field(default_factory=MirrorConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with TREESYNC_ prefix."""
    return os.environ.get(f"TREESYNC_{key}", default)


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _parse_strategy(value: str) -> ReloadStrategy:
    try:
        return ReloadStrategy(value.lower())
    except ValueError as e:
        choices = ", ".join(s.value for s in ReloadStrategy)
        raise ValueError(f"Unknown reload strategy '{value}' (expected one of: {choices})") from e


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Remote overrides
    if database_url := _get_env("DATABASE_URL"):
        config.remote.database_url = database_url
    if auth_token := _get_env("AUTH_TOKEN"):
        config.remote.auth_token = auth_token
    if timeout := _get_env("TIMEOUT"):
        config.remote.timeout = float(timeout)

    # Mirror overrides
    if backend := _get_env("MIRROR_BACKEND"):
        config.mirror.backend = backend
    if db_path := _get_env("MIRROR_DB_PATH"):
        config.mirror.db_path = db_path
    if strategy := _get_env("RELOAD_STRATEGY"):
        config.mirror.reload_strategy = _parse_strategy(strategy)
    if await_writes := _get_env("AWAIT_MIRROR_WRITES"):
        config.mirror.await_writes = _parse_bool(await_writes)

    # Stream overrides
    if auto_renew := _get_env("AUTO_RENEW"):
        config.stream.auto_renew = _parse_bool(auto_renew)
    if renew_delay := _get_env("RENEW_DELAY"):
        config.stream.renew_delay_seconds = float(renew_delay)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse remote config
            if "remote" in data:
                remote_data = data["remote"]
                config.remote = RemoteConfig(
                    database_url=remote_data.get("database_url", config.remote.database_url),
                    auth_token=remote_data.get("auth_token"),
                    timeout=float(remote_data.get("timeout", config.remote.timeout)),
                )

            # Parse mirror config
            if "mirror" in data:
                mirror_data = data["mirror"]
                strategy = mirror_data.get("reload_strategy")
                config.mirror = MirrorConfig(
                    backend=mirror_data.get("backend", config.mirror.backend),
                    db_path=mirror_data.get("db_path", config.mirror.db_path),
                    reload_strategy=(
                        _parse_strategy(strategy)
                        if strategy
                        else config.mirror.reload_strategy
                    ),
                    await_writes=mirror_data.get("await_writes", config.mirror.await_writes),
                )

            # Parse stream config
            if "stream" in data:
                stream_data = data["stream"]
                config.stream = StreamConfig(
                    auto_renew=stream_data.get("auto_renew", config.stream.auto_renew),
                    renew_delay_seconds=stream_data.get(
                        "renew_delay_seconds", config.stream.renew_delay_seconds
                    ),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    if config.mirror.backend not in ("sqlite", "memory"):
        raise ValueError(f"Unknown mirror backend '{config.mirror.backend}'")

    return config
