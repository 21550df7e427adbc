from __future__ import annotations

import errno
from pathlib import Path
from typing import Optional, Union


class FileJackError(Exception):
    """Base class for every error the filesystem core reports to a caller."""

    code = "error"
    prefix = "Error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"{self.prefix}: {detail}")


class FileNotFound(FileJackError, FileNotFoundError):
    code = "file_not_found"
    prefix = "File not found"


class PermissionDenied(FileJackError, PermissionError):
    code = "permission_denied"
    prefix = "Permission denied"


class InvalidPath(FileJackError):
    code = "invalid_path"
    prefix = "Invalid path"


class InvalidParameters(FileJackError):
    code = "invalid_parameters"
    prefix = "Invalid parameters"


class IoError(FileJackError):
    code = "io_error"
    prefix = "IO error"


class ProtocolError(FileJackError):
    code = "protocol_error"
    prefix = "Protocol error"


class ToolNotFound(FileJackError):
    code = "tool_not_found"
    prefix = "Tool not found"


class RateLimitExceeded(FileJackError):
    code = "rate_limit_exceeded"
    prefix = "Rate limit exceeded"

    def __init__(self, detail: str = "Please slow down requests.") -> None:
        super().__init__(detail)


def from_os_error(exc: OSError, path: Optional[Union[str, Path]] = None) -> FileJackError:
    """Map an ``OSError`` onto the closed error hierarchy by errno."""
    where = str(path) if path is not None else (exc.filename or "")
    if exc.errno == errno.ENOENT:
        return FileNotFound(where)
    if exc.errno in (errno.EACCES, errno.EPERM):
        return PermissionDenied(where)
    return IoError(f"{where}: {exc.strerror or exc}" if where else str(exc))
