from __future__ import annotations

import errno
import logging
import os
import re
import shutil
import stat
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Tuple, Union

from .errors import (
    FileJackError,
    FileNotFound,
    InvalidParameters,
    InvalidPath,
    IoError,
    PermissionDenied,
    from_os_error,
)
from .models import DirectoryEntry, FileMetadata, GrepMatch
from .policy import AccessPolicy
from .security import coerce_path, validate_for_read, validate_for_write, validate_size
from .walker import DirectoryWalker

LOGGER = logging.getLogger(__name__)

PathArg = Union[str, Path]

_CLOEXEC = getattr(os, "O_CLOEXEC", 0)
_NONBLOCK = getattr(os, "O_NONBLOCK", 0)
_NOFOLLOW = getattr(os, "O_NOFOLLOW", 0)
_BINARY = getattr(os, "O_BINARY", 0)
# O_PATH lets fstat work on directories and unreadable files without opening them for I/O.
_METADATA_FLAGS = getattr(os, "O_PATH", os.O_RDONLY)


def split_lines(text: str) -> List[str]:
    """Split on ``\\n`` only, dropping a trailing ``\\r`` per line and the final empty line."""
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def grep_lines(
    lines: List[str],
    regex: re.Pattern[str],
    max_matches: Optional[int] = None,
    context_lines: int = 0,
) -> List[GrepMatch]:
    matches: List[GrepMatch] = []
    for idx, line in enumerate(lines):
        if not regex.search(line):
            continue
        if max_matches is not None and len(matches) >= max_matches:
            break
        matches.append(
            GrepMatch(
                line_number=idx + 1,
                line_content=line,
                context_before=lines[max(idx - context_lines, 0):idx],
                context_after=lines[idx + 1:idx + 1 + context_lines],
            )
        )
    return matches


def _decode(data: bytes, path: PathArg) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise IoError(f"{path} is not valid UTF-8 text") from exc


class SecureAccessor:
    """
    Performs file I/O on paths that passed the access policy.

    Every read opens a descriptor first and takes size and file type from
    that descriptor, so a path swapped after validation cannot change what
    gets read. Writes create and truncate in one open call and are synced
    before returning. No state is kept between calls.
    """

    def __init__(self, policy: AccessPolicy, create_dirs: bool = True) -> None:
        self.policy = policy
        self.create_dirs = create_dirs
        self.walker = DirectoryWalker(policy)

    def _open(self, path: Path, flags: int, *, writing: bool = False, nofollow: bool = False) -> int:
        """
        Open ``path`` as a raw descriptor.

        ``nofollow`` is for canonical paths: they contain no links, so a link
        found at open time means the path was swapped after validation.
        """
        nofollow = nofollow or not self.policy.allow_symlinks
        flags |= _CLOEXEC | _BINARY
        if nofollow:
            flags |= _NOFOLLOW
        try:
            return os.open(path, flags, 0o666)
        except OSError as exc:
            raise self._open_error(exc, path, writing, nofollow) from exc

    def _open_error(self, exc: OSError, path: Path, writing: bool, nofollow: bool) -> FileJackError:
        if exc.errno == errno.ELOOP and nofollow:
            return PermissionDenied("Symbolic links are not allowed")
        if writing and exc.errno == errno.ENOENT:
            return FileNotFound(f"Parent directory does not exist: {path}")
        # ENXIO: a FIFO with no reader, refused by the non-blocking open.
        if writing and exc.errno in (errno.EISDIR, errno.ENXIO):
            return InvalidPath("Cannot write to non-regular file")
        return from_os_error(exc, path)

    def _fstat(self, fd: int, path: Path) -> os.stat_result:
        try:
            return os.fstat(fd)
        except OSError as exc:
            os.close(fd)
            raise from_os_error(exc, path) from exc

    @contextmanager
    def _reading(self, path: PathArg) -> Iterator[Tuple[BinaryIO, os.stat_result]]:
        validated = validate_for_read(self.policy, path)
        fd = self._open(validated, os.O_RDONLY | _NONBLOCK, nofollow=True)
        # Type and size come from the raw descriptor, before it is wrapped.
        info = self._fstat(fd, validated)
        try:
            validate_size(self.policy, info.st_size)
            if not stat.S_ISREG(info.st_mode):
                raise InvalidPath("Path is not a regular file")
        except FileJackError:
            os.close(fd)
            raise
        with os.fdopen(fd, "rb") as handle:
            try:
                yield handle, info
            except FileJackError:
                raise
            except OSError as exc:
                raise from_os_error(exc, validated) from exc

    def _read_all(self, handle: BinaryIO) -> bytes:
        limit = self.policy.max_file_size
        if not limit:
            return handle.read()
        # The file may have grown since fstat; never hand back more than the cap.
        data = handle.read(limit + 1)
        validate_size(self.policy, len(data))
        return data

    def _make_parents(self, target: Path) -> None:
        parent = target.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except FileExistsError as exc:
            raise InvalidPath(f"{parent} is not a directory") from exc
        except OSError as exc:
            raise from_os_error(exc, parent) from exc

    @contextmanager
    def _writing(
        self,
        path: PathArg,
        size: int,
        *,
        append: bool = False,
        source: Optional[os.stat_result] = None,
    ) -> Iterator[BinaryIO]:
        target = validate_for_write(self.policy, path)
        validate_size(self.policy, size)
        if source is not None and _same_file(target, source):
            raise InvalidParameters("Source and destination are the same file")
        if self.create_dirs:
            self._make_parents(target)

        flags = os.O_WRONLY | os.O_CREAT | _NONBLOCK | (os.O_APPEND if append else os.O_TRUNC)
        fd = self._open(target, flags, writing=True)
        info = self._fstat(fd, target)
        try:
            if not stat.S_ISREG(info.st_mode):
                raise InvalidPath("Cannot write to non-regular file")
            if append:
                validate_size(self.policy, info.st_size + size)
        except FileJackError:
            os.close(fd)
            raise
        with os.fdopen(fd, "ab" if append else "wb") as handle:
            try:
                yield handle
                handle.flush()
                os.fsync(handle.fileno())
            except FileJackError:
                raise
            except OSError as exc:
                raise from_os_error(exc, target) from exc

    def read_to_bytes(self, path: PathArg) -> bytes:
        with self._reading(path) as (handle, _):
            return self._read_all(handle)

    def read_to_string(self, path: PathArg) -> str:
        with self._reading(path) as (handle, _):
            return _decode(self._read_all(handle), path)

    def read_lines(
        self,
        path: PathArg,
        start_line: Optional[int] = None,
        end_line: Optional[int] = None,
        tail: Optional[int] = None,
    ) -> List[str]:
        """
        Return a slice of the file's lines.

        ``start_line``/``end_line`` are 1-based and inclusive. ``tail`` takes
        precedence over the range and returns the last N lines.
        """
        if tail is None and start_line is not None and end_line is not None and start_line > end_line:
            raise InvalidParameters("start_line must not be greater than end_line")
        lines = split_lines(self.read_to_string(path))
        if tail is not None:
            return lines[max(len(lines) - tail, 0):]
        start = max((start_line or 1) - 1, 0)
        end = len(lines) if end_line is None else min(end_line, len(lines))
        return lines[start:end]

    def grep_file(
        self,
        path: PathArg,
        pattern: str,
        max_matches: Optional[int] = None,
        context_lines: int = 0,
    ) -> List[GrepMatch]:
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise InvalidParameters(f"Invalid regex pattern: {exc}") from exc
        lines = split_lines(self.read_to_string(path))
        return grep_lines(lines, regex, max_matches, context_lines)

    def get_metadata(self, path: PathArg) -> FileMetadata:
        validated = validate_for_read(self.policy, path)
        fd = self._open(validated, _METADATA_FLAGS | _NONBLOCK, nofollow=True)
        try:
            info = os.fstat(fd)
        except OSError as exc:
            raise from_os_error(exc, validated) from exc
        finally:
            os.close(fd)
        # O_PATH with O_NOFOLLOW opens a link itself instead of failing.
        if stat.S_ISLNK(info.st_mode):
            raise PermissionDenied("Symbolic links are not allowed")

        created = getattr(info, "st_birthtime", None)
        return FileMetadata(
            size=info.st_size,
            is_file=stat.S_ISREG(info.st_mode),
            is_dir=stat.S_ISDIR(info.st_mode),
            is_symlink=coerce_path(path).is_symlink(),
            modified=int(info.st_mtime),
            created=int(created) if created is not None else None,
            readonly=not info.st_mode & 0o222,
        )

    def exists(self, path: PathArg) -> bool:
        """True if the path exists and the policy lets the caller see it."""
        try:
            validate_for_read(self.policy, path)
        except FileNotFound:
            return False
        return True

    def list_directory(self, path: PathArg, recursive: bool = False) -> List[DirectoryEntry]:
        return self.walker.list_directory(path, recursive=recursive)

    def search_files(
        self,
        path: PathArg,
        pattern: str,
        recursive: bool = True,
        max_results: Optional[int] = None,
    ) -> List[str]:
        return self.walker.search_files(path, pattern, recursive=recursive, max_results=max_results)

    def write_bytes(self, path: PathArg, content: bytes) -> int:
        with self._writing(path, len(content)) as handle:
            handle.write(content)
        LOGGER.debug("Wrote %d bytes to %s", len(content), path)
        return len(content)

    def write_string(self, path: PathArg, content: str) -> int:
        return self.write_bytes(path, content.encode("utf-8"))

    def append_string(self, path: PathArg, content: str) -> int:
        data = content.encode("utf-8")
        with self._writing(path, len(data), append=True) as handle:
            handle.write(data)
        LOGGER.debug("Appended %d bytes to %s", len(data), path)
        return len(data)

    def delete_file(self, path: PathArg) -> None:
        target = validate_for_write(self.policy, path)
        try:
            info = os.lstat(target)
        except OSError as exc:
            raise from_os_error(exc, target) from exc
        if stat.S_ISDIR(info.st_mode):
            raise InvalidPath("Path is not a file")
        try:
            os.remove(target)
        except OSError as exc:
            raise from_os_error(exc, target) from exc

    def move_file(self, source: PathArg, destination: PathArg) -> None:
        directory = os.path.isdir(coerce_path(source))
        src = validate_for_write(self.policy, source, directory=directory)
        dst = validate_for_write(self.policy, destination, directory=directory)
        if not os.path.lexists(src):
            raise FileNotFound(str(src))
        if self.create_dirs:
            self._make_parents(dst)
        try:
            os.replace(src, dst)
        except OSError as exc:
            raise from_os_error(exc, dst) from exc

    def copy_file(self, source: PathArg, destination: PathArg) -> int:
        with self._reading(source) as (reader, info):
            # With a cap the source is read before the destination is touched.
            data = self._read_all(reader) if self.policy.max_file_size else None
            size = info.st_size if data is None else len(data)
            with self._writing(destination, size, source=info) as writer:
                if data is None:
                    shutil.copyfileobj(reader, writer)
                else:
                    writer.write(data)
                copied = writer.tell()
        return copied

    def create_directory(self, path: PathArg, recursive: bool = False) -> None:
        target = validate_for_write(self.policy, path, directory=True)
        if os.path.lexists(target):
            raise InvalidPath("Directory already exists")
        try:
            target.mkdir(parents=recursive)
        except FileNotFoundError as exc:
            raise FileNotFound(f"Parent directory does not exist: {target}") from exc
        except OSError as exc:
            raise from_os_error(exc, target) from exc

    def remove_directory(self, path: PathArg, recursive: bool = False) -> None:
        target = validate_for_write(self.policy, path, directory=True)
        if target.is_symlink() or not target.is_dir():
            raise InvalidPath("Path is not a directory or does not exist")
        try:
            if recursive:
                shutil.rmtree(target)
            else:
                target.rmdir()
        except OSError as exc:
            raise from_os_error(exc, target) from exc


def _same_file(target: Path, source: os.stat_result) -> bool:
    try:
        info = os.stat(target)
    except OSError:
        return False
    return (info.st_dev, info.st_ino) == (source.st_dev, source.st_ino)
