from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Union

from .errors import InvalidParameters

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

PathLike = Union[str, Path]


def _paths(values: Iterable[PathLike]) -> FrozenSet[Path]:
    return frozenset(Path(value).expanduser() for value in values)


def _extensions(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(value.strip().lstrip(".").lower() for value in values if value.strip())


@dataclass(frozen=True)
class AccessPolicy:
    """
    Declarative access rules for every filesystem operation.

    Denied paths and extensions always win over the allow lists. An empty
    allow list means "everything not denied". ``max_file_size`` of 0 disables
    the size cap.
    """

    allowed_paths: FrozenSet[Path] = field(default_factory=frozenset)
    denied_paths: FrozenSet[Path] = field(default_factory=frozenset)
    allowed_extensions: FrozenSet[str] = field(default_factory=frozenset)
    denied_extensions: FrozenSet[str] = field(default_factory=frozenset)
    max_file_size: int = 0
    allow_symlinks: bool = False
    allow_hidden_files: bool = False
    read_only: bool = False

    def __post_init__(self) -> None:
        # Normalize caller-supplied iterables.
        object.__setattr__(self, "allowed_paths", _paths(self.allowed_paths))
        object.__setattr__(self, "denied_paths", _paths(self.denied_paths))
        object.__setattr__(self, "allowed_extensions", _extensions(self.allowed_extensions))
        object.__setattr__(self, "denied_extensions", _extensions(self.denied_extensions))
        if self.max_file_size < 0:
            raise InvalidParameters("max_file_size must be non-negative.")

    @classmethod
    def permissive(cls) -> "AccessPolicy":
        """Allow everything, including symlinks and hidden files."""
        return cls(allow_symlinks=True, allow_hidden_files=True)

    @classmethod
    def restricted(cls, allowed_path: PathLike) -> "AccessPolicy":
        """Confine access to a single directory with a 10 MiB size cap."""
        return cls(allowed_paths=frozenset([Path(allowed_path)]), max_file_size=DEFAULT_MAX_FILE_SIZE)

    @classmethod
    def read_only_at(cls, allowed_path: PathLike) -> "AccessPolicy":
        return replace(cls.restricted(allowed_path), read_only=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AccessPolicy":
        if not isinstance(data, Mapping):
            raise InvalidParameters("access policy must be an object.")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidParameters(f"Unknown access policy keys: {', '.join(sorted(unknown))}")
        kwargs: Dict[str, Any] = dict(data)
        for key in ("allowed_paths", "denied_paths", "allowed_extensions", "denied_extensions"):
            value = kwargs.get(key)
            if value is None:
                kwargs.pop(key, None)
            elif isinstance(value, str) or not isinstance(value, Iterable):
                raise InvalidParameters(f"{key} must be a list.")
        if "max_file_size" in kwargs:
            try:
                kwargs["max_file_size"] = int(kwargs["max_file_size"])
            except (TypeError, ValueError) as exc:
                raise InvalidParameters("max_file_size must be an integer.") from exc
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed_paths": sorted(str(p) for p in self.allowed_paths),
            "denied_paths": sorted(str(p) for p in self.denied_paths),
            "allowed_extensions": sorted(self.allowed_extensions),
            "denied_extensions": sorted(self.denied_extensions),
            "max_file_size": self.max_file_size,
            "allow_symlinks": self.allow_symlinks,
            "allow_hidden_files": self.allow_hidden_files,
            "read_only": self.read_only,
        }
