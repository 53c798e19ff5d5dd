from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from .config import ServerConfig
from .content import DIRECTORY_MIME, DeliveryMode, classify, detect_mime_type
from .models import DirectoryEntry, FileStat, ReadOutcome, SearchMatch
from .security import AllowedRoots, PathSandbox, SandboxError

LOGGER = logging.getLogger(__name__)


class OperationError(Exception):
    """A valid request the filesystem refused (not a directory, exists, ...)."""


class OperationCancelled(OperationError):
    """Raised when a walk or batch is stopped between steps."""


class MovePathError(OperationError):
    """Rejection of one side of a move, remembering which side."""

    def __init__(self, role: str, cause: Exception) -> None:
        self.role = role
        self.cause = cause
        super().__init__(f"{role} path: {cause}")


def _check_cancel(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("operation cancelled")


class SandboxedFilesystem:
    """Filesystem operations that only ever touch resolved, in-sandbox paths."""

    def __init__(self, roots: AllowedRoots, config: Optional[ServerConfig] = None) -> None:
        self.roots = roots
        self.sandbox = PathSandbox(roots)
        self.config = config or ServerConfig()

    def resolve(self, path: str) -> Path:
        return self.sandbox.resolve(path)

    def allowed_directories(self) -> List[str]:
        return self.roots.display()

    def read(self, path: str) -> ReadOutcome:
        target = self.resolve(path)
        file_stat = FileStat.of(target)
        if file_stat.is_directory:
            return ReadOutcome(path=target, stat=file_stat)

        decision = classify(target, file_stat, self.config.inline_limit, self.config.base64_limit)
        if decision.delivery_mode is DeliveryMode.REFERENCE_ONLY:
            return ReadOutcome(path=target, stat=file_stat, decision=decision)

        with open(target, "rb") as fh:
            data = fh.read()
        return ReadOutcome(path=target, stat=file_stat, decision=decision, data=data)

    def read_many(
        self,
        paths: Sequence[str],
        cancel: Optional[threading.Event] = None,
    ) -> List[Tuple[str, Union[ReadOutcome, Exception]]]:
        """Read each path independently; one failure never stops the rest."""
        results: List[Tuple[str, Union[ReadOutcome, Exception]]] = []
        for path in paths:
            _check_cancel(cancel)
            try:
                results.append((path, self.read(path)))
            except (SandboxError, OSError) as exc:
                results.append((path, exc))
        return results

    def write(self, path: str, content: str) -> Tuple[Path, int]:
        target = self.resolve(path)
        if target.is_dir():
            raise OperationError("Cannot write to a directory")

        target.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode("utf-8")
        with open(target, "wb") as fh:
            fh.write(data)
        LOGGER.info("Wrote %s bytes to %s", len(data), target)
        return target, len(data)

    def list_directory(self, path: str) -> Tuple[Path, List[DirectoryEntry]]:
        target = self.resolve(path)
        if not FileStat.of(target).is_directory:
            raise OperationError("Path is not a directory")

        entries: List[DirectoryEntry] = []
        with os.scandir(target) as it:
            for entry in it:
                is_dir = entry.is_dir()
                size: Optional[int] = None
                if not is_dir:
                    try:
                        size = entry.stat().st_size
                    except OSError:
                        size = None
                entries.append(DirectoryEntry(name=entry.name, path=target / entry.name, is_directory=is_dir, size=size))
        return target, entries

    def create_directory(self, path: str) -> Tuple[Path, bool]:
        """mkdir -p; returns False when the directory was already there."""
        target = self.resolve(path)
        if os.path.exists(target):
            if target.is_dir():
                return target, False
            raise OperationError(f"Path exists but is not a directory: {path}")
        target.mkdir(parents=True, exist_ok=True)
        LOGGER.info("Created directory %s", target)
        return target, True

    def move(self, source: str, destination: str) -> Tuple[Path, Path]:
        """
        Rename source to destination within one filesystem.

        Cross-device moves fail with the OS error rather than falling
        back to copy-and-delete.
        """
        try:
            src = self.resolve(source)
        except (SandboxError, OSError) as exc:
            raise MovePathError("source", exc) from exc
        if not os.path.lexists(src):
            raise FileNotFoundError(f"Source does not exist: {source}")
        try:
            dst = self.resolve(destination)
        except (SandboxError, OSError) as exc:
            raise MovePathError("destination", exc) from exc
        dst.parent.mkdir(parents=True, exist_ok=True)
        os.rename(src, dst)
        LOGGER.info("Moved %s to %s", src, dst)
        return src, dst

    def _walk(self, top: Path, cancel: Optional[threading.Event]) -> Iterator[Path]:
        """Depth-first, pre-order. Unreadable directories are skipped; links are not followed."""
        # Explicit stack of (path, is_dir); children are pushed reversed to keep scandir order.
        stack: List[Tuple[Path, bool]] = [(top, True)]
        while stack:
            current, is_dir = stack.pop()
            if current != top:
                _check_cancel(cancel)
            yield current
            if not is_dir:
                continue
            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as exc:
                LOGGER.debug("Skipping %s: %s", current, exc)
                continue
            children = []
            for entry in entries:
                try:
                    descend = entry.is_dir(follow_symlinks=False)
                except OSError:
                    descend = False
                children.append((Path(entry.path), descend))
            stack.extend(reversed(children))

    def search(
        self,
        path: str,
        pattern: str,
        cancel: Optional[threading.Event] = None,
    ) -> Tuple[Path, List[SearchMatch]]:
        """Case-insensitive substring match on entry names below `path`."""
        root = self.resolve(path)
        if not FileStat.of(root).is_directory:
            raise OperationError("Search path must be a directory")

        needle = pattern.lower()
        matches: List[SearchMatch] = []
        for candidate in self._walk(root, cancel):
            if needle not in candidate.name.lower():
                continue
            try:
                # Resolution only gates the match; the walked name is what gets reported.
                resolved = self.resolve(str(candidate))
                matches.append(SearchMatch(path=candidate, stat=FileStat.of(resolved)))
            except (SandboxError, OSError) as exc:
                LOGGER.debug("Search skipped %s: %s", candidate, exc)
        return root, matches

    def get_info(self, path: str) -> Tuple[Path, FileStat, str]:
        target = self.resolve(path)
        file_stat = FileStat.of(target)
        mime_type = DIRECTORY_MIME if file_stat.is_directory else detect_mime_type(target)
        return target, file_stat, mime_type
