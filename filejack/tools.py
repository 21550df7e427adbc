from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Type

from pydantic import ValidationError

from .accessor import SecureAccessor
from .config import Config
from .errors import FileJackError, InvalidParameters, RateLimitExceeded, ToolNotFound
from .models import (
    AppendFileArguments,
    CopyFileArguments,
    CreateDirectoryArguments,
    DeleteFileArguments,
    FileExistsArguments,
    GetMetadataArguments,
    GrepFileArguments,
    ListDirectoryArguments,
    MoveFileArguments,
    ReadFileArguments,
    ReadLinesArguments,
    RemoveDirectoryArguments,
    SearchFilesArguments,
    ToolArguments,
    WriteFileArguments,
)
from .policy import AccessPolicy
from .rate_limit import RateLimiter

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    arguments: Type[ToolArguments]

    def input_schema(self) -> Dict[str, Any]:
        return self.arguments.model_json_schema(by_alias=True)


TOOLS: Dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec("read_file", "Read a UTF-8 text file.", ReadFileArguments),
        ToolSpec("write_file", "Create or overwrite a file with UTF-8 content.", WriteFileArguments),
        ToolSpec("append_file", "Append UTF-8 content to a file, creating it if needed.", AppendFileArguments),
        ToolSpec("delete_file", "Delete a file.", DeleteFileArguments),
        ToolSpec("move_file", "Move or rename a file.", MoveFileArguments),
        ToolSpec("copy_file", "Copy a file.", CopyFileArguments),
        ToolSpec("get_metadata", "Return size, type, timestamps and permissions of a path.", GetMetadataArguments),
        ToolSpec("file_exists", "Check whether a path exists and is accessible.", FileExistsArguments),
        ToolSpec("list_directory", "List directory entries, optionally recursively.", ListDirectoryArguments),
        ToolSpec("create_directory", "Create a directory.", CreateDirectoryArguments),
        ToolSpec("remove_directory", "Remove a directory.", RemoveDirectoryArguments),
        ToolSpec("read_lines", "Read a range of lines, or the last N lines, of a text file.", ReadLinesArguments),
        ToolSpec("search_files", "Find files whose name matches a shell-style pattern.", SearchFilesArguments),
        ToolSpec("grep_file", "Search a text file line by line with a regular expression.", GrepFileArguments),
    )
}


def tool_definitions() -> List[Dict[str, Any]]:
    return [
        {"name": spec.name, "description": spec.description, "input_schema": spec.input_schema()}
        for spec in TOOLS.values()
    ]


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


class ToolDispatcher:
    """
    Entry point for ``(tool_name, arguments)`` calls.

    The rate limiter is consulted before anything else; arguments are then
    validated against the tool's model and the call is handed to the
    accessor. Every failure surfaces as a ``FileJackError``.
    """

    def __init__(
        self,
        policy: AccessPolicy,
        rate_limiter: Optional[RateLimiter] = None,
        create_dirs: bool = True,
    ) -> None:
        self.policy = policy
        self.accessor = SecureAccessor(policy, create_dirs=create_dirs)
        self.rate_limiter = rate_limiter or RateLimiter.moderate()
        self._handlers: Dict[str, Callable[[Any], Dict[str, Any]]] = {
            "read_file": self._read_file,
            "write_file": self._write_file,
            "append_file": self._append_file,
            "delete_file": self._delete_file,
            "move_file": self._move_file,
            "copy_file": self._copy_file,
            "get_metadata": self._get_metadata,
            "file_exists": self._file_exists,
            "list_directory": self._list_directory,
            "create_directory": self._create_directory,
            "remove_directory": self._remove_directory,
            "read_lines": self._read_lines,
            "search_files": self._search_files,
            "grep_file": self._grep_file,
        }

    @classmethod
    def from_config(cls, config: Config) -> "ToolDispatcher":
        return cls(
            config.access_policy,
            rate_limiter=RateLimiter.from_preset(config.rate_limit),
            create_dirs=config.create_dirs,
        )

    def call(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        if not self.rate_limiter.check():
            LOGGER.warning("Rate limit exceeded (tool=%s)", name)
            raise RateLimitExceeded()

        spec = TOOLS.get(name)
        if spec is None:
            LOGGER.warning("Tool not found: %s", name)
            raise ToolNotFound(name)

        params = self._parse(spec, arguments)
        LOGGER.info("Tool call: %s", name)
        try:
            return self._handlers[name](params)
        except FileJackError as exc:
            LOGGER.warning("Tool %s failed: %s", name, exc)
            raise

    @staticmethod
    def _parse(spec: ToolSpec, arguments: Optional[Mapping[str, Any]]) -> ToolArguments:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise InvalidParameters(f"Arguments for {spec.name} must be an object.")
        try:
            return spec.arguments.model_validate(dict(arguments))
        except ValidationError as exc:
            raise InvalidParameters(
                f"Invalid parameters for {spec.name}: {_format_validation_error(exc)}"
            ) from exc

    # ---------- handlers ----------
    def _read_file(self, params: ReadFileArguments) -> Dict[str, Any]:
        content = self.accessor.read_to_string(params.path)
        return {"path": params.path, "content": content}

    def _write_file(self, params: WriteFileArguments) -> Dict[str, Any]:
        written = self.accessor.write_string(params.path, params.content)
        return {"path": params.path, "bytes_written": written}

    def _append_file(self, params: AppendFileArguments) -> Dict[str, Any]:
        appended = self.accessor.append_string(params.path, params.content)
        return {"path": params.path, "bytes_appended": appended}

    def _delete_file(self, params: DeleteFileArguments) -> Dict[str, Any]:
        self.accessor.delete_file(params.path)
        return {"path": params.path, "deleted": True}

    def _move_file(self, params: MoveFileArguments) -> Dict[str, Any]:
        self.accessor.move_file(params.source, params.destination)
        return {"from": params.source, "to": params.destination}

    def _copy_file(self, params: CopyFileArguments) -> Dict[str, Any]:
        copied = self.accessor.copy_file(params.source, params.destination)
        return {"from": params.source, "to": params.destination, "bytes_copied": copied}

    def _get_metadata(self, params: GetMetadataArguments) -> Dict[str, Any]:
        metadata = self.accessor.get_metadata(params.path)
        return {"path": params.path, **metadata.model_dump()}

    def _file_exists(self, params: FileExistsArguments) -> Dict[str, Any]:
        return {"path": params.path, "exists": self.accessor.exists(params.path)}

    def _list_directory(self, params: ListDirectoryArguments) -> Dict[str, Any]:
        entries = self.accessor.list_directory(params.path, recursive=params.recursive)
        return {"path": params.path, "entries": [entry.model_dump() for entry in entries]}

    def _create_directory(self, params: CreateDirectoryArguments) -> Dict[str, Any]:
        self.accessor.create_directory(params.path, recursive=params.recursive)
        return {"path": params.path, "created": True}

    def _remove_directory(self, params: RemoveDirectoryArguments) -> Dict[str, Any]:
        self.accessor.remove_directory(params.path, recursive=params.recursive)
        return {"path": params.path, "removed": True}

    def _read_lines(self, params: ReadLinesArguments) -> Dict[str, Any]:
        lines = self.accessor.read_lines(
            params.path,
            start_line=params.start_line,
            end_line=params.end_line,
            tail=params.tail,
        )
        return {"path": params.path, "lines": lines}

    def _search_files(self, params: SearchFilesArguments) -> Dict[str, Any]:
        matches = self.accessor.search_files(
            params.path,
            params.pattern,
            recursive=params.recursive,
            max_results=params.max_results,
        )
        return {"path": params.path, "matches": matches}

    def _grep_file(self, params: GrepFileArguments) -> Dict[str, Any]:
        matches = self.accessor.grep_file(
            params.path,
            params.pattern,
            max_matches=params.max_matches,
            context_lines=params.context_lines,
        )
        return {"path": params.path, "matches": [match.model_dump() for match in matches]}
