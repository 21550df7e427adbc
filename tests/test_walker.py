from __future__ import annotations

import os
from pathlib import Path

import pytest

from filejack.errors import InvalidParameters, InvalidPath, PermissionDenied
from filejack.policy import AccessPolicy
from filejack.walker import DirectoryWalker

needs_symlinks = pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "a.txt").write_text("a", encoding="utf-8")
    (root / "b.exe").write_text("b", encoding="utf-8")
    (root / ".hidden").write_text("h", encoding="utf-8")
    (root / "src" / "main.py").write_text("print()", encoding="utf-8")
    (root / "src" / "pkg" / "util.py").write_text("", encoding="utf-8")
    (root / "docs" / "guide.md").write_text("# guide", encoding="utf-8")
    return root


def test_listing_omits_rejected_entries(tree: Path) -> None:
    walker = DirectoryWalker(AccessPolicy(allowed_paths=[tree], denied_extensions=["exe"]))
    entries = walker.list_directory(tree)

    assert [e.name for e in entries] == ["a.txt", "docs", "src"]
    by_name = {e.name: e for e in entries}
    assert by_name["a.txt"].is_file and by_name["a.txt"].size == 1
    assert by_name["docs"].is_dir and not by_name["docs"].is_file


def test_recursive_listing(tree: Path) -> None:
    walker = DirectoryWalker(AccessPolicy.restricted(tree))
    names = {Path(e.path).relative_to(tree.resolve()).as_posix() for e in walker.list_directory(tree, recursive=True)}
    assert names == {
        "a.txt",
        "b.exe",
        "docs",
        "docs/guide.md",
        "src",
        "src/main.py",
        "src/pkg",
        "src/pkg/util.py",
    }


def test_denied_directory_is_not_descended(tree: Path) -> None:
    walker = DirectoryWalker(AccessPolicy(allowed_paths=[tree], denied_paths=[tree / "src"]))
    names = {e.name for e in walker.list_directory(tree, recursive=True)}
    assert "src" not in names
    assert "main.py" not in names
    assert "guide.md" in names


def test_listing_a_file_is_invalid(tree: Path) -> None:
    walker = DirectoryWalker(AccessPolicy.restricted(tree))
    with pytest.raises(InvalidPath):
        walker.list_directory(tree / "a.txt")


def test_listing_outside_root_denied(tmp_path: Path, tree: Path) -> None:
    walker = DirectoryWalker(AccessPolicy.restricted(tree))
    with pytest.raises(PermissionDenied):
        walker.list_directory(tmp_path)


@needs_symlinks
def test_symlink_cycle_terminates(tree: Path) -> None:
    (tree / "src" / "pkg" / "loop").symlink_to(tree / "src", target_is_directory=True)

    walker = DirectoryWalker(AccessPolicy(allowed_paths=[tree], allow_symlinks=True))
    entries = walker.list_directory(tree, recursive=True)
    assert sum(1 for e in entries if e.name == "loop") == 1
    assert sum(1 for e in entries if e.name == "main.py") == 1


@needs_symlinks
def test_symlinks_omitted_when_disallowed(tree: Path) -> None:
    (tree / "link.txt").symlink_to(tree / "a.txt")
    walker = DirectoryWalker(AccessPolicy.restricted(tree))
    names = {e.name for e in walker.list_directory(tree)}
    assert "link.txt" not in names
    assert "a.txt" in names


def test_search_files(tree: Path) -> None:
    walker = DirectoryWalker(AccessPolicy.restricted(tree))

    found = sorted(Path(p).name for p in walker.search_files(tree, "*.py"))
    assert found == ["main.py", "util.py"]
    assert walker.search_files(tree, "*.py", recursive=False) == []
    assert walker.search_files(tree, "*.md") == [str(tree.resolve() / "docs" / "guide.md")]


def test_search_files_skips_hidden(tree: Path) -> None:
    walker = DirectoryWalker(AccessPolicy.restricted(tree))
    assert walker.search_files(tree, ".*") == []


def test_search_files_max_results(tree: Path) -> None:
    walker = DirectoryWalker(AccessPolicy.restricted(tree))
    assert len(walker.search_files(tree, "*", max_results=3)) == 3
    assert walker.search_files(tree, "*", max_results=0) == []


def test_search_files_requires_pattern(tree: Path) -> None:
    walker = DirectoryWalker(AccessPolicy.restricted(tree))
    with pytest.raises(InvalidParameters):
        walker.search_files(tree, "")
