from __future__ import annotations

import os
from pathlib import Path

import pytest

from secure_filesystem_server.config import ConfigError
from secure_filesystem_server.security import (
    AllowedRoots,
    DenialReason,
    InvalidPathError,
    PathSandbox,
    SandboxViolation,
    normalize_path,
)

needs_symlinks = pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")


def make_sandbox(*dirs: Path) -> PathSandbox:
    return PathSandbox(AllowedRoots.from_dirs([str(d) for d in dirs]))


@pytest.fixture
def root(tmp_path: Path) -> Path:
    allowed = tmp_path.resolve() / "root"
    allowed.mkdir()
    return allowed


def test_traversal_outside_denied(root: Path) -> None:
    sandbox = make_sandbox(root)
    with pytest.raises(SandboxViolation) as info:
        sandbox.resolve(str(root / ".." / "elsewhere" / "file.txt"))
    assert info.value.reason is DenialReason.OUTSIDE
    assert "access denied - path outside allowed directories" in str(info.value)


def test_existing_file_inside_root(root: Path) -> None:
    target = root / "notes.txt"
    target.write_text("hello", encoding="utf-8")
    assert make_sandbox(root).resolve(str(target)) == target


def test_root_itself_allowed(root: Path) -> None:
    assert make_sandbox(root).resolve(str(root)) == root


def test_nested_missing_path_allowed(root: Path) -> None:
    nested = root / "nested" / "child" / "file.txt"
    assert make_sandbox(root).resolve(str(nested)) == nested


def test_relative_path_resolved_against_cwd(root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (root / "a.txt").write_text("x", encoding="utf-8")
    monkeypatch.chdir(root)
    assert make_sandbox(root).resolve("a.txt") == root / "a.txt"


def test_sibling_prefix_collision_denied(tmp_path: Path) -> None:
    base = tmp_path.resolve()
    foo = base / "foo"
    foobar = base / "foobar"
    foo.mkdir()
    foobar.mkdir()
    (foobar / "x").write_text("secret", encoding="utf-8")

    sandbox = make_sandbox(foo)
    with pytest.raises(SandboxViolation):
        sandbox.resolve(str(foobar / "x"))
    with pytest.raises(SandboxViolation):
        sandbox.resolve(str(foobar))


@needs_symlinks
def test_symlink_escape_denied(tmp_path: Path, root: Path) -> None:
    outside = tmp_path.resolve() / "outside"
    outside.mkdir()
    (outside / "data.txt").write_text("secret", encoding="utf-8")

    sneaky = root / "link_out"
    sneaky.symlink_to(outside)

    sandbox = make_sandbox(root)
    with pytest.raises(SandboxViolation) as info:
        sandbox.resolve(str(sneaky / "data.txt"))
    assert info.value.reason is DenialReason.SYMLINK_OUTSIDE
    assert str(info.value) == "access denied - symlink target outside allowed directories"


@needs_symlinks
def test_new_file_under_escaping_symlink_denied(tmp_path: Path, root: Path) -> None:
    outside = tmp_path.resolve() / "outside"
    outside.mkdir()
    (root / "link_out").symlink_to(outside)

    with pytest.raises(SandboxViolation) as info:
        make_sandbox(root).resolve(str(root / "link_out" / "new.txt"))
    assert info.value.reason is DenialReason.PARENT_OUTSIDE


@needs_symlinks
def test_dangling_symlink_pointing_outside_denied(tmp_path: Path, root: Path) -> None:
    (root / "dangling").symlink_to(tmp_path.resolve() / "nowhere" / "file.txt")

    with pytest.raises(SandboxViolation) as info:
        make_sandbox(root).resolve(str(root / "dangling"))
    assert info.value.reason is DenialReason.SYMLINK_OUTSIDE


@needs_symlinks
def test_symlink_within_root_resolves_to_target(root: Path) -> None:
    target = root / "real.txt"
    target.write_text("data", encoding="utf-8")
    (root / "alias.txt").symlink_to(target)

    assert make_sandbox(root).resolve(str(root / "alias.txt")) == target


@needs_symlinks
def test_root_declared_through_symlink(tmp_path: Path, root: Path) -> None:
    alias = tmp_path.resolve() / "alias"
    alias.symlink_to(root)
    (root / "f.txt").write_text("data", encoding="utf-8")

    sandbox = make_sandbox(alias)
    assert sandbox.resolve(str(alias / "f.txt")) == root / "f.txt"
    assert sandbox.resolve(str(root / "f.txt")) == root / "f.txt"


def test_empty_path_rejected(root: Path) -> None:
    with pytest.raises(InvalidPathError):
        make_sandbox(root).resolve("")


def test_nul_byte_rejected(root: Path) -> None:
    with pytest.raises(InvalidPathError):
        make_sandbox(root).resolve(str(root / "bad\x00name"))


def test_normalize_path_collapses_dot_segments(root: Path) -> None:
    assert normalize_path(str(root / "a" / ".." / "b" / "." / "c")) == root / "b" / "c"


def test_registry_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        AllowedRoots.from_dirs([str(tmp_path / "missing")])


def test_registry_rejects_file(tmp_path: Path) -> None:
    file_path = tmp_path / "plain.txt"
    file_path.write_text("x", encoding="utf-8")
    with pytest.raises(ConfigError):
        AllowedRoots.from_dirs([str(file_path)])


def test_registry_fails_as_a_whole(tmp_path: Path, root: Path) -> None:
    with pytest.raises(ConfigError):
        AllowedRoots.from_dirs([str(root), str(tmp_path / "missing")])


def test_registry_requires_a_directory() -> None:
    with pytest.raises(ConfigError):
        AllowedRoots.from_dirs([])


def test_registry_prefix_and_display(root: Path) -> None:
    roots = AllowedRoots.from_dirs([str(root), str(root / ".")])
    assert len(roots) == 2
    assert all(r.prefix == str(root) + os.sep for r in roots)
    assert roots.display() == [str(root), str(root)]
