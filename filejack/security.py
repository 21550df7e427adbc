from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional, Union

from .errors import FileNotFound, InvalidPath, IoError, PermissionDenied
from .policy import AccessPolicy


def coerce_path(user_path: Union[str, Path]) -> Path:
    """
    Turn an incoming user path into a ``Path`` without touching the filesystem.

    Expands ``~``. Empty paths and paths carrying NUL bytes are rejected up
    front since the OS layer would otherwise fail with an untyped ValueError.
    """
    raw = os.fspath(user_path)
    if not raw:
        raise InvalidPath("path must not be empty.")
    if "\x00" in raw:
        raise InvalidPath("path must not contain NUL bytes.")
    return Path(raw).expanduser()


def canonicalize(path: Path) -> Path:
    """Resolve ``.``, ``..`` and symlinks; the target must exist."""
    try:
        return path.resolve(strict=True)
    except (FileNotFoundError, NotADirectoryError) as exc:
        # NotADirectoryError: a component such as "a.txt/b.txt" is a regular file.
        raise FileNotFound(str(path)) from exc
    except (OSError, RuntimeError) as exc:
        # RuntimeError: symlink loop on interpreters older than 3.13.
        raise IoError(f"cannot resolve {path}: {exc}") from exc


def _canonical_roots(roots: Iterable[Path]) -> Iterable[Path]:
    for root in roots:
        try:
            yield root.resolve(strict=True)
        except (OSError, RuntimeError):
            continue


def is_within(path: Path, root: Path) -> bool:
    return path == root or path.is_relative_to(root)


def check_denied_paths(policy: AccessPolicy, canonical: Path) -> None:
    for denied in _canonical_roots(policy.denied_paths):
        if is_within(canonical, denied):
            raise PermissionDenied(f"Access to {canonical} is explicitly denied")


def check_allowed_paths(policy: AccessPolicy, canonical: Path) -> None:
    if not policy.allowed_paths:
        return
    for allowed in _canonical_roots(policy.allowed_paths):
        if is_within(canonical, allowed):
            return
    raise PermissionDenied(f"Path {canonical} is not in any allowed directory")


def file_extension(path: Path) -> Optional[str]:
    """Return the lower-cased extension, or None for names like ``README`` or ``.env``."""
    suffix = path.suffix
    if not suffix or suffix == ".":
        return None
    return suffix[1:].lower()


def check_extension(policy: AccessPolicy, path: Path) -> None:
    ext = file_extension(path)
    if ext is None:
        if policy.allowed_extensions:
            raise PermissionDenied("Files without extensions are not allowed")
        return
    if ext in policy.denied_extensions:
        raise PermissionDenied(f"File extension .{ext} is not allowed")
    if policy.allowed_extensions and ext not in policy.allowed_extensions:
        raise PermissionDenied(f"File extension .{ext} is not in allowed extensions")


def check_hidden(policy: AccessPolicy, path: Path) -> None:
    if not policy.allow_hidden_files and path.name.startswith("."):
        raise PermissionDenied("Access to hidden files is not allowed")


def check_symlink(policy: AccessPolicy, original: Path, canonical: Path) -> None:
    if not policy.allow_symlinks and original != canonical and original.is_symlink():
        raise PermissionDenied("Symbolic links are not allowed")


def validate_for_read(policy: AccessPolicy, user_path: Union[str, Path]) -> Path:
    """
    Validate an existing path for a read-type operation.

    Returns the canonical path, which is what the caller must open. Deny
    rules run before allow rules and containment is only ever decided on
    canonical forms.
    """
    original = coerce_path(user_path)
    canonical = canonicalize(original)

    check_denied_paths(policy, canonical)
    check_allowed_paths(policy, canonical)
    if not canonical.is_dir():
        check_extension(policy, canonical)
    check_hidden(policy, canonical)
    check_symlink(policy, original, canonical)
    return canonical


def nearest_existing_ancestor(path: Path) -> Path:
    candidate = path
    while not os.path.lexists(candidate):
        parent = candidate.parent
        if parent == candidate:
            raise InvalidPath("Cannot find existing ancestor directory")
        candidate = parent
    return candidate


def validate_for_write(
    policy: AccessPolicy,
    user_path: Union[str, Path],
    *,
    directory: bool = False,
) -> Path:
    """
    Validate a path that may not exist yet for a write-type operation.

    Containment is proven on the canonical form of the nearest existing
    ancestor. Extension and hidden-file rules are applied to the literal
    target name. The returned path is absolute with ``..`` collapsed
    lexically but symlinks left unresolved.
    """
    if policy.read_only:
        raise PermissionDenied("Write operations are disabled in read-only mode")

    # Collapse ".." before the ancestor walk: "/root/missing/../../x" must not
    # anchor on "/root" and then escape once parents get created.
    original = Path(os.path.normpath(os.path.abspath(coerce_path(user_path))))
    anchor = canonicalize(nearest_existing_ancestor(original))

    check_denied_paths(policy, anchor)
    check_allowed_paths(policy, anchor)
    if not directory:
        check_extension(policy, original)
    check_hidden(policy, original)
    return original


def validate_size(policy: AccessPolicy, size: int) -> None:
    if policy.max_file_size and size > policy.max_file_size:
        raise PermissionDenied(
            f"File size {size} exceeds maximum allowed size {policy.max_file_size}"
        )
