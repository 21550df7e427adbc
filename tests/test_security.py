from __future__ import annotations

import os
from pathlib import Path

import pytest

from filejack.errors import FileNotFound, InvalidPath, PermissionDenied
from filejack.policy import AccessPolicy
from filejack.security import (
    file_extension,
    validate_for_read,
    validate_for_write,
    validate_size,
)

needs_symlinks = pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    root.mkdir()
    return root


def test_traversal_outside_denied(tmp_path: Path, workspace: Path) -> None:
    (tmp_path / "elsewhere").mkdir()
    (tmp_path / "elsewhere" / "file.txt").write_text("secret", encoding="utf-8")
    policy = AccessPolicy.restricted(workspace)

    with pytest.raises(PermissionDenied):
        validate_for_read(policy, f"{workspace}/../elsewhere/file.txt")


def test_traversal_back_inside_allowed(workspace: Path) -> None:
    (workspace / "sub").mkdir()
    (workspace / "a.txt").write_text("hi", encoding="utf-8")
    policy = AccessPolicy.restricted(workspace)

    assert validate_for_read(policy, f"{workspace}/sub/../a.txt") == (workspace / "a.txt").resolve()


def test_prefix_sibling_is_not_inside(tmp_path: Path, workspace: Path) -> None:
    sibling = tmp_path / "ws-evil"
    sibling.mkdir()
    (sibling / "note.txt").write_text("x", encoding="utf-8")
    policy = AccessPolicy.restricted(workspace)

    with pytest.raises(PermissionDenied):
        validate_for_read(policy, sibling / "note.txt")


@needs_symlinks
def test_symlink_escape_denied(tmp_path: Path, workspace: Path) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "data.txt").write_text("secret", encoding="utf-8")
    (workspace / "link_out").symlink_to(outside / "data.txt")

    policy = AccessPolicy.restricted(workspace)
    with pytest.raises(PermissionDenied):
        validate_for_read(policy, workspace / "link_out")

    permissive_links = AccessPolicy(allowed_paths=[workspace], allow_symlinks=True)
    with pytest.raises(PermissionDenied):
        validate_for_read(permissive_links, workspace / "link_out")


@needs_symlinks
def test_symlink_inside_root_depends_on_flag(workspace: Path) -> None:
    (workspace / "real.txt").write_text("data", encoding="utf-8")
    (workspace / "alias.txt").symlink_to(workspace / "real.txt")

    with pytest.raises(PermissionDenied):
        validate_for_read(AccessPolicy.restricted(workspace), workspace / "alias.txt")

    policy = AccessPolicy(allowed_paths=[workspace], allow_symlinks=True)
    assert validate_for_read(policy, workspace / "alias.txt") == (workspace / "real.txt").resolve()


def test_denied_paths_take_precedence(workspace: Path) -> None:
    secret_dir = workspace / "secret"
    secret_dir.mkdir()
    (secret_dir / "key.txt").write_text("k", encoding="utf-8")
    policy = AccessPolicy(allowed_paths=[workspace], denied_paths=[secret_dir])

    with pytest.raises(PermissionDenied):
        validate_for_read(policy, secret_dir / "key.txt")
    with pytest.raises(PermissionDenied):
        validate_for_read(policy, secret_dir)


def test_empty_allow_list_allows_everything_not_denied(tmp_path: Path) -> None:
    target = tmp_path / "free.txt"
    target.write_text("x", encoding="utf-8")
    assert validate_for_read(AccessPolicy(), target) == target.resolve()


def test_missing_file_is_not_found(workspace: Path) -> None:
    with pytest.raises(FileNotFound):
        validate_for_read(AccessPolicy.restricted(workspace), workspace / "missing.txt")


@pytest.mark.parametrize("raw", ["", "a\x00b.txt"])
def test_malformed_paths_are_invalid(raw: str) -> None:
    with pytest.raises(InvalidPath):
        validate_for_read(AccessPolicy.permissive(), raw)


def test_extension_rules_are_case_insensitive(workspace: Path) -> None:
    (workspace / "tool.EXE").write_text("x", encoding="utf-8")
    (workspace / "notes.txt").write_text("x", encoding="utf-8")
    policy = AccessPolicy(allowed_paths=[workspace], denied_extensions=["exe"])

    with pytest.raises(PermissionDenied):
        validate_for_read(policy, workspace / "tool.EXE")
    validate_for_read(policy, workspace / "notes.txt")


def test_allow_list_rejects_missing_extension(workspace: Path) -> None:
    (workspace / "README").write_text("x", encoding="utf-8")
    (workspace / "doc.MD").write_text("x", encoding="utf-8")
    (workspace / "run.sh").write_text("x", encoding="utf-8")
    policy = AccessPolicy(allowed_paths=[workspace], allowed_extensions=[".md", "txt"])

    validate_for_read(policy, workspace / "doc.MD")
    with pytest.raises(PermissionDenied):
        validate_for_read(policy, workspace / "README")
    with pytest.raises(PermissionDenied):
        validate_for_read(policy, workspace / "run.sh")


def test_allow_list_does_not_apply_to_directories(workspace: Path) -> None:
    (workspace / "docs").mkdir()
    policy = AccessPolicy(allowed_paths=[workspace], allowed_extensions=["txt"])
    assert validate_for_read(policy, workspace / "docs") == (workspace / "docs").resolve()


def test_deny_list_wins_over_allow_list(workspace: Path) -> None:
    (workspace / "a.txt").write_text("x", encoding="utf-8")
    policy = AccessPolicy(allowed_paths=[workspace], allowed_extensions=["txt"], denied_extensions=["TXT"])
    with pytest.raises(PermissionDenied):
        validate_for_read(policy, workspace / "a.txt")


def test_hidden_files(workspace: Path) -> None:
    (workspace / ".env").write_text("TOKEN=1", encoding="utf-8")
    with pytest.raises(PermissionDenied):
        validate_for_read(AccessPolicy.restricted(workspace), workspace / ".env")

    policy = AccessPolicy(allowed_paths=[workspace], allow_hidden_files=True)
    validate_for_read(policy, workspace / ".env")


def test_validation_is_repeatable(workspace: Path) -> None:
    (workspace / "a.txt").write_text("x", encoding="utf-8")
    policy = AccessPolicy.restricted(workspace)
    first = validate_for_read(policy, workspace / "a.txt")
    assert validate_for_read(policy, workspace / "a.txt") == first

    for _ in range(2):
        with pytest.raises(PermissionDenied):
            validate_for_read(policy, workspace.parent)


def test_write_read_only_fails_fast(tmp_path: Path) -> None:
    policy = AccessPolicy.read_only_at(tmp_path)
    with pytest.raises(PermissionDenied):
        validate_for_write(policy, tmp_path / "new.txt")
    # Even paths that would otherwise be invalid are refused for read-only mode first.
    with pytest.raises(PermissionDenied):
        validate_for_write(policy, "")


def test_write_returns_uncanonicalized_target(workspace: Path) -> None:
    target = workspace / "nested" / "deeper" / "out.txt"
    policy = AccessPolicy.restricted(workspace)
    assert validate_for_write(policy, target) == target


def test_write_outside_allowed_denied(tmp_path: Path, workspace: Path) -> None:
    policy = AccessPolicy.restricted(workspace)
    with pytest.raises(PermissionDenied):
        validate_for_write(policy, tmp_path / "outside.txt")


def test_write_traversal_through_missing_directory_denied(tmp_path: Path, workspace: Path) -> None:
    policy = AccessPolicy.restricted(workspace)
    sneaky = f"{workspace}/missing/../../escaped.txt"
    with pytest.raises(PermissionDenied):
        validate_for_write(policy, sneaky)
    assert not (tmp_path / "escaped.txt").exists()


def test_write_checks_extension_and_hidden_on_target(workspace: Path) -> None:
    policy = AccessPolicy(allowed_paths=[workspace], denied_extensions=["exe"])
    with pytest.raises(PermissionDenied):
        validate_for_write(policy, workspace / "new" / "payload.exe")
    with pytest.raises(PermissionDenied):
        validate_for_write(policy, workspace / ".bashrc")


def test_write_directory_skips_extension_rules(workspace: Path) -> None:
    policy = AccessPolicy(allowed_paths=[workspace], allowed_extensions=["txt"])
    with pytest.raises(PermissionDenied):
        validate_for_write(policy, workspace / "newdir")
    assert validate_for_write(policy, workspace / "newdir", directory=True) == workspace / "newdir"


def test_validate_size() -> None:
    policy = AccessPolicy(max_file_size=1024)
    validate_size(policy, 500)
    validate_size(policy, 1024)
    with pytest.raises(PermissionDenied):
        validate_size(policy, 2048)
    validate_size(AccessPolicy(), 10**12)


@pytest.mark.parametrize(
    "name, expected",
    [("a.txt", "txt"), ("archive.tar.GZ", "gz"), ("README", None), (".env", None)],
)
def test_file_extension(name: str, expected) -> None:
    assert file_extension(Path(name)) == expected


def test_path_through_regular_file_is_not_found(workspace: Path) -> None:
    (workspace / "a.txt").write_text("x", encoding="utf-8")
    with pytest.raises(FileNotFound):
        validate_for_read(AccessPolicy.restricted(workspace), workspace / "a.txt" / "b.txt")
