"""Configuration for the FileJack server."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import load_dotenv

from . import __version__
from .errors import InvalidParameters, ProtocolError, from_os_error
from .policy import AccessPolicy
from .rate_limit import PRESETS

load_dotenv()

DEFAULT_RATE_LIMIT = "moderate"
TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class ServerConfig:
    """Identity reported to MCP clients during initialization."""

    name: str = "FileJack"
    version: str = __version__


@dataclass
class Config:
    """Runtime configuration: access policy plus server and admission settings."""

    access_policy: AccessPolicy = field(default_factory=AccessPolicy)
    server: ServerConfig = field(default_factory=ServerConfig)
    rate_limit: str = DEFAULT_RATE_LIMIT
    create_dirs: bool = True

    def __post_init__(self) -> None:
        if self.rate_limit not in PRESETS:
            raise InvalidParameters(
                f"Unknown rate limit preset '{self.rate_limit}'. Expected one of: {', '.join(PRESETS)}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        if "access_policy" not in data:
            raise InvalidParameters("Configuration is missing 'access_policy'.")
        server = data.get("server") or {}
        if not isinstance(server, dict):
            raise InvalidParameters("'server' must be an object.")
        return cls(
            access_policy=AccessPolicy.from_dict(data["access_policy"]),
            server=ServerConfig(
                name=server.get("name", ServerConfig.name),
                version=server.get("version", ServerConfig.version),
            ),
            rate_limit=str(data.get("rate_limit", DEFAULT_RATE_LIMIT)).lower(),
            create_dirs=bool(data.get("create_dirs", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_policy": self.access_policy.to_dict(),
            "server": {"name": self.server.name, "version": self.server.version},
            "rate_limit": self.rate_limit,
            "create_dirs": self.create_dirs,
        }

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Config":
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise from_os_error(exc, path) from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"Invalid JSON in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ProtocolError(f"{path} must contain a JSON object.")
        return cls.from_dict(data)

    def to_file(self, path: Union[str, Path]) -> None:
        try:
            Path(path).write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            raise from_os_error(exc, path) from exc

    @classmethod
    def default_restricted(cls, allowed_path: Union[str, Path]) -> "Config":
        return cls(access_policy=AccessPolicy.restricted(allowed_path))

    @classmethod
    def permissive(cls) -> "Config":
        return cls(access_policy=AccessPolicy.permissive())

    @classmethod
    def read_only(cls, allowed_path: Union[str, Path]) -> "Config":
        return cls(access_policy=AccessPolicy.read_only_at(allowed_path))


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in TRUE_VALUES


def load_config(path: Optional[Union[str, Path]] = None) -> Config:
    """
    Build the configuration from an explicit file, ``FILEJACK_CONFIG``, or
    a restricted policy on ``FILEJACK_BASE_PATH`` (current directory if unset).

    ``FILEJACK_RATE_LIMIT`` and ``FILEJACK_READ_ONLY`` override the result.
    """
    source = path or os.getenv("FILEJACK_CONFIG")
    if source:
        config = Config.from_file(source)
    else:
        base = os.getenv("FILEJACK_BASE_PATH") or os.getcwd()
        config = Config.default_restricted(base)

    preset = os.getenv("FILEJACK_RATE_LIMIT")
    if preset:
        config = replace(config, rate_limit=preset.strip().lower())
    if _env_flag("FILEJACK_READ_ONLY"):
        config = replace(config, access_policy=replace(config.access_policy, read_only=True))
    return config
