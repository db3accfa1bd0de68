"""Configuration loading helpers."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping

import tomllib
from pydantic import BaseModel, Field, ValidationError

from .models import DEFAULT_SERVER, ServerProfile

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "psqlkit" / "config.toml"

_PROFILE_KEYS = ("host", "port", "database", "username", "password", "charset")
_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


class ServerProfileConfig(BaseModel):
    """Connection settings for one server, as stored in config.toml."""

    host: str = "localhost"
    port: int | None = None
    database: str = "postgres"
    username: str = "postgres"
    password: str = ""
    charset: str = "UTF8"
    options: dict[str, Any] = Field(default_factory=dict)

    def to_profile(self, name: str) -> ServerProfile:
        return ServerProfile(
            name=name,
            host=self.host,
            port=self.port,
            database=self.database,
            username=self.username,
            password=self.password,
            charset=self.charset,
            options=dict(self.options),
        )


class ConnectorConfig(BaseModel):
    """Shape of the connector configuration file."""

    servers: dict[str, ServerProfileConfig] = Field(
        default_factory=lambda: {DEFAULT_SERVER: ServerProfileConfig()}
    )
    active_server: str | None = None
    log_queries: bool = False
    options: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ConnectorConfig:
        """Build a config from parsed TOML.

        Top-level connection keys describe the implicit ``default`` server;
        named servers live under ``[servers.<name>]``.
        """

        servers: dict[str, ServerProfileConfig] = {}
        servers_data = data.get("servers")
        if isinstance(servers_data, Mapping):
            for name, entry in servers_data.items():
                if isinstance(entry, Mapping):
                    servers[str(name)] = ServerProfileConfig(**entry)
        top_level = {key: data[key] for key in _PROFILE_KEYS if key in data}
        if top_level and DEFAULT_SERVER not in servers:
            servers[DEFAULT_SERVER] = ServerProfileConfig(**top_level)
        active = data.get("active_server")
        options = data.get("options")
        return cls(
            servers=servers or {DEFAULT_SERVER: ServerProfileConfig()},
            active_server=active if isinstance(active, str) else None,
            log_queries=bool(data.get("log_queries", False)),
            options=dict(options) if isinstance(options, Mapping) else {},
        )

    def profiles(self) -> dict[str, ServerProfile]:
        """Runtime profiles keyed by server name."""

        return {name: entry.to_profile(name) for name, entry in self.servers.items()}

    def with_server(self, name: str, server: ServerProfileConfig) -> ConnectorConfig:
        """Return a copy with ``name`` added or replaced."""

        servers = dict(self.servers)
        servers[name] = server
        return self.model_copy(update={"servers": servers})

    def with_active_server(self, name: str) -> ConnectorConfig:
        return self.model_copy(update={"active_server": name})


def load_config(path: Path | None = None) -> ConnectorConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    target = path or CONFIG_FILE
    try:
        with target.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        return ConnectorConfig()
    except (tomllib.TOMLDecodeError, OSError):
        LOG.warning("Unreadable config file, using defaults", extra={"path": str(target)})
        return ConnectorConfig()
    try:
        return ConnectorConfig.from_mapping(raw)
    except ValidationError:
        LOG.warning("Invalid config file, using defaults", extra={"path": str(target)})
        return ConnectorConfig()


def save_config(config: ConnectorConfig, path: Path | None = None) -> None:
    """Persist configuration to disk."""

    target = path or CONFIG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [f"log_queries = {_toml_value(config.log_queries)}"]
    if config.active_server:
        lines.append(f"active_server = {_toml_value(config.active_server)}")
    if config.options:
        lines.append(f"options = {_toml_value(config.options)}")
    for name in sorted(config.servers):
        server = config.servers[name]
        lines.append("")
        lines.append(f"[servers.{_toml_key(name)}]")
        for key in _PROFILE_KEYS:
            value = getattr(server, key)
            if value is not None:
                lines.append(f"{key} = {_toml_value(value)}")
        if server.options:
            lines.append(f"options = {_toml_value(server.options)}")
    target.write_text("\n".join(lines) + "\n")


def _toml_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else json.dumps(key)


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, Mapping):
        items = ", ".join(f"{_toml_key(str(k))} = {_toml_value(v)}" for k, v in value.items())
        return "{ " + items + " }" if items else "{}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value))


__all__ = [
    "CONFIG_FILE",
    "ConnectorConfig",
    "ServerProfileConfig",
    "load_config",
    "save_config",
]
