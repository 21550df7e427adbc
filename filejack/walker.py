from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple, Union

from .errors import FileJackError, InvalidParameters, InvalidPath, from_os_error
from .models import DirectoryEntry
from .policy import AccessPolicy
from .security import validate_for_read

LOGGER = logging.getLogger(__name__)


def _identity(entry: os.DirEntry, follow: bool) -> Optional[Tuple[int, int]]:
    try:
        info = entry.stat(follow_symlinks=follow)
    except OSError:
        return None
    return info.st_dev, info.st_ino


def _is_dir(entry: os.DirEntry, follow: bool) -> bool:
    try:
        return entry.is_dir(follow_symlinks=follow)
    except OSError:
        return False


class DirectoryWalker:
    """
    Enumerates a validated directory, re-checking every entry against the policy.

    Entries the policy rejects are left out of the results instead of failing
    the whole call, and rejected directories are not descended into.
    """

    def __init__(self, policy: AccessPolicy) -> None:
        self.policy = policy

    def _permitted(self, path: str) -> bool:
        try:
            validate_for_read(self.policy, path)
        except FileJackError as exc:
            LOGGER.debug("Omitting %s: %s", path, exc)
            return False
        return True

    def iter_entries(self, path: Union[str, Path], recursive: bool = False) -> Iterator[os.DirEntry]:
        root = validate_for_read(self.policy, path)
        if not root.is_dir():
            raise InvalidPath(f"{root} is not a directory")

        follow = self.policy.allow_symlinks
        seen: Set[Tuple[int, int]] = set()
        try:
            info = root.stat()
        except OSError as exc:
            raise from_os_error(exc, root) from exc
        seen.add((info.st_dev, info.st_ino))

        pending: List[Path] = [root]
        while pending:
            current = pending.pop()
            try:
                with os.scandir(current) as it:
                    children = sorted(it, key=lambda e: e.name)
            except OSError as exc:
                if current == root:
                    raise from_os_error(exc, root) from exc
                LOGGER.debug("Skipping unreadable directory %s: %s", current, exc)
                continue

            subdirs: List[Path] = []
            for entry in children:
                if not self._permitted(entry.path):
                    continue
                yield entry
                if recursive and _is_dir(entry, follow):
                    key = _identity(entry, follow)
                    # Already-visited directories close symlink cycles.
                    if key is not None and key not in seen:
                        seen.add(key)
                        subdirs.append(Path(entry.path))
            pending.extend(reversed(subdirs))

    def list_directory(self, path: Union[str, Path], recursive: bool = False) -> List[DirectoryEntry]:
        follow = self.policy.allow_symlinks
        entries: List[DirectoryEntry] = []
        for entry in self.iter_entries(path, recursive=recursive):
            try:
                size: Optional[int] = entry.stat(follow_symlinks=follow).st_size
            except OSError:
                size = None
            entries.append(
                DirectoryEntry(
                    path=entry.path,
                    name=entry.name,
                    is_file=entry.is_file(follow_symlinks=follow),
                    is_dir=_is_dir(entry, follow),
                    size=size,
                )
            )
        return entries

    def search_files(
        self,
        path: Union[str, Path],
        pattern: str,
        recursive: bool = True,
        max_results: Optional[int] = None,
    ) -> List[str]:
        """Return paths of entries whose name matches a shell-style pattern."""
        if not pattern:
            raise InvalidParameters("pattern must not be empty")
        matches: List[str] = []
        if max_results == 0:
            return matches
        for entry in self.iter_entries(path, recursive=recursive):
            if not fnmatch.fnmatchcase(entry.name, pattern):
                continue
            matches.append(entry.path)
            if max_results is not None and len(matches) >= max_results:
                break
        return matches
