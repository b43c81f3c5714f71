"""Global configuration: XDG paths, YAML config file, env vars, defaults."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from rustlink.session.models import ReconnectPolicy

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "rustlink"
    return Path.home() / ".local" / "share" / "rustlink"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "rustlink"
    return Path.home() / ".config" / "rustlink"


@dataclass
class RustLinkConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    db_path: Path | None = None
    transport: str = ""  # "package.module:factory"
    poll_interval: float = 10.0
    storage_threshold: float = 0.9
    request_timeout: float = 10.0
    connect_timeout: float = 30.0
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    verbose: bool = False

    @property
    def database(self) -> Path:
        return self.db_path or self.data_dir / "rustlink.db"

    @classmethod
    def load(cls, path: str | Path | None = None) -> RustLinkConfig:
        """Defaults, then the YAML file (if any), then environment variables."""
        config = cls()

        config_path = Path(path) if path else config.config_dir / CONFIG_FILENAME
        if path or config_path.is_file():
            config = config.merge_file(config_path)

        env_db = os.environ.get("RUSTLINK_DB")
        if env_db:
            config.db_path = Path(env_db)

        env_transport = os.environ.get("RUSTLINK_TRANSPORT")
        if env_transport:
            config.transport = env_transport

        env_interval = os.environ.get("RUSTLINK_POLL_INTERVAL")
        if env_interval:
            config.poll_interval = float(env_interval)

        env_retries = os.environ.get("RUSTLINK_MAX_RETRIES")
        if env_retries:
            config.reconnect = replace(config.reconnect, max_retries=int(env_retries))

        return config

    def merge_file(self, path: str | Path) -> RustLinkConfig:
        """Return a copy with the settings from a YAML file applied."""
        text = Path(path).read_text(encoding="utf-8")
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must be a mapping")
        logger.debug("Loaded config file %s", path)
        return self.merge(data)

    def merge(self, data: dict[str, Any]) -> RustLinkConfig:
        updates: dict[str, Any] = {}
        for key in ("poll_interval", "storage_threshold", "request_timeout", "connect_timeout"):
            if key in data:
                updates[key] = float(data[key])
        for key in ("data_dir", "db_path"):
            if data.get(key):
                updates[key] = Path(data[key]).expanduser()
        if "transport" in data:
            updates["transport"] = str(data["transport"] or "")

        reconnect = data.get("reconnect")
        if reconnect is not None:
            if not isinstance(reconnect, dict):
                raise ValueError("'reconnect' must be a mapping")
            known = {f.name for f in fields(ReconnectPolicy)}
            unknown = set(reconnect) - known
            if unknown:
                raise ValueError(f"Unknown reconnect settings: {sorted(unknown)}")
            updates["reconnect"] = replace(self.reconnect, **reconnect)

        if not 0 < updates.get("storage_threshold", self.storage_threshold) <= 1:
            raise ValueError("storage_threshold must be in (0, 1]")
        return replace(self, **updates)
