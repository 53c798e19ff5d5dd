from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

from .config import ConfigError

LOGGER = logging.getLogger(__name__)


class SandboxError(Exception):
    """Base class for requested paths the sandbox refuses to hand out."""


class InvalidPathError(SandboxError, ValueError):
    """Raised when a requested path cannot be made absolute."""


class DenialReason(str, Enum):
    OUTSIDE = "path outside allowed directories"
    PARENT_OUTSIDE = "parent directory outside allowed directories"
    SYMLINK_OUTSIDE = "symlink target outside allowed directories"


class SandboxViolation(SandboxError, PermissionError):
    """Raised when a requested path is outside the configured sandbox."""

    def __init__(self, reason: DenialReason, path: Path | str) -> None:
        self.reason = reason
        self.path = str(path)
        message = f"access denied - {reason.value}"
        if reason is DenialReason.OUTSIDE:
            message = f"{message}: {self.path}"
        super().__init__(message)


def normalize_path(user_path: str | os.PathLike) -> Path:
    """
    Convert an incoming user path to an absolute, lexically clean Path.

    Expands ~ and collapses `.`/`..` segments without touching the
    filesystem, so symlinks are left for the resolver to deal with.
    """
    raw = os.fspath(user_path)
    if not raw:
        raise InvalidPathError("invalid path: path must not be empty")
    if "\x00" in raw:
        raise InvalidPathError("invalid path: path contains a NUL byte")
    try:
        return Path(os.path.abspath(os.path.expanduser(raw)))
    except (OSError, ValueError) as exc:  # pragma: no cover - unlikely on supported OSes
        raise InvalidPathError(f"invalid path: {exc}") from exc


def directory_form(path: Path) -> Path:
    """Return the directory a path is judged by: its parent for existing non-directories."""
    try:
        st = os.stat(path)
    except (OSError, ValueError):
        return path
    if stat.S_ISDIR(st.st_mode):
        return path
    return path.parent


@dataclass(frozen=True)
class AllowedRoot:
    """A directory the server may touch, as configured and as found on disk."""

    declared: Path
    real: Path

    @property
    def prefix(self) -> str:
        """Real path with exactly one trailing separator."""
        return os.path.join(str(self.real), "")

    def contains(self, path: Path, real_only: bool = False) -> bool:
        # PurePath.is_relative_to compares whole components: /tmp/foo never holds /tmp/foobar.
        if path.is_relative_to(self.real):
            return True
        return not real_only and path.is_relative_to(self.declared)


class AllowedRoots:
    """Immutable set of allowed directories, built once at startup."""

    def __init__(self, roots: Sequence[AllowedRoot]) -> None:
        self._roots = tuple(roots)

    @classmethod
    def from_dirs(cls, raw_dirs: Iterable[str]) -> "AllowedRoots":
        """Normalize and validate directories; any bad entry fails the whole set."""
        roots: List[AllowedRoot] = []
        for raw in raw_dirs:
            try:
                declared = normalize_path(raw)
            except InvalidPathError as exc:
                raise ConfigError(f"failed to resolve path {raw!r}: {exc}") from exc
            try:
                st = os.stat(declared)
            except OSError as exc:
                raise ConfigError(f"failed to access directory {declared}: {exc}") from exc
            if not stat.S_ISDIR(st.st_mode):
                raise ConfigError(f"path is not a directory: {declared}")
            root = AllowedRoot(declared=declared, real=Path(os.path.realpath(declared)))
            LOGGER.info("Allowed directory: %s", root.real)
            roots.append(root)

        if not roots:
            raise ConfigError("At least one allowed directory is required.")
        return cls(roots)

    def __iter__(self) -> Iterator[AllowedRoot]:
        return iter(self._roots)

    def __len__(self) -> int:
        return len(self._roots)

    def contains(self, path: Path, real_only: bool = False) -> bool:
        form = directory_form(path)
        return any(root.contains(form, real_only=real_only) for root in self._roots)

    def display(self) -> List[str]:
        """Root paths without the trailing separator."""
        return [str(root.real) for root in self._roots]


class PathSandbox:
    """Turns caller-supplied paths into resolved paths inside the allowed roots."""

    def __init__(self, roots: AllowedRoots) -> None:
        self.roots = roots

    def resolve(self, requested_path: str) -> Path:
        """
        Return the real path for `requested_path` or raise.

        The lexical path must be inside a root, and so must whatever it
        points at once symlinks are followed. Paths that do not exist yet
        are vouched for by their nearest existing ancestor.
        """
        path = normalize_path(requested_path)
        if not self.roots.contains(path):
            raise self._deny(DenialReason.OUTSIDE, path)

        try:
            real = Path(os.path.realpath(path, strict=True))
        except FileNotFoundError:
            return self._resolve_missing(path)

        if not self.roots.contains(real, real_only=True):
            raise self._deny(DenialReason.SYMLINK_OUTSIDE, path)
        return real

    def _resolve_missing(self, path: Path) -> Path:
        anchor = path
        while not os.path.lexists(anchor) and anchor.parent != anchor:
            anchor = anchor.parent

        # Non-strict so a dangling link still yields the place it points to.
        real_anchor = Path(os.path.realpath(anchor))
        if not self.roots.contains(real_anchor, real_only=True):
            if anchor == path:
                raise self._deny(DenialReason.SYMLINK_OUTSIDE, path)
            raise self._deny(DenialReason.PARENT_OUTSIDE, path)
        return path

    @staticmethod
    def _deny(reason: DenialReason, path: Path) -> SandboxViolation:
        LOGGER.debug("Rejected %s: %s", path, reason.value)
        return SandboxViolation(reason, path)
