from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import replace
from typing import Any, Callable, List, Optional, TypeVar
from urllib.parse import unquote

from mcp.server.fastmcp.exceptions import ResourceError
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.types import CallToolResult

from . import responses
from .config import ServerConfig
from .operations import MovePathError, OperationCancelled, OperationError, SandboxedFilesystem
from .security import AllowedRoots, SandboxError, SandboxViolation

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

FailureTypes = (SandboxError, OperationError, OSError)


async def _run_cancellable(func: Callable[..., T], *args: Any) -> T:
    """Run a blocking loop in a worker thread, stopping it if we are cancelled."""
    cancel = threading.Event()
    try:
        return await asyncio.to_thread(func, *args, cancel)
    except asyncio.CancelledError:
        cancel.set()
        raise


def _failure(exc: BaseException, prefix: str = "Error") -> CallToolResult:
    if isinstance(exc, SandboxViolation):
        LOGGER.warning("Access denied for %s: %s", exc.path, exc.reason.value)
    else:
        LOGGER.info("Request failed: %s", exc)
    return responses.failure(f"{prefix}: {exc}")


class FilesystemHandler:
    """
    One coroutine per tool.

    Filesystem work runs off the event loop. Anything the filesystem (or
    the sandbox) says no to comes back as an error result; only malformed
    arguments raise.
    """

    def __init__(self, fs: SandboxedFilesystem) -> None:
        self.fs = fs

    @classmethod
    def from_config(cls, config: ServerConfig) -> "FilesystemHandler":
        roots = AllowedRoots.from_dirs(config.allowed_dirs)
        return cls(SandboxedFilesystem(roots, config))

    @property
    def config(self) -> ServerConfig:
        return self.fs.config

    async def read_file(self, path: str) -> CallToolResult:
        """Read the complete contents of a file from the file system."""
        try:
            outcome = await asyncio.to_thread(self.fs.read, path)
        except FailureTypes as exc:
            return _failure(exc)
        return responses.success(*responses.read_items(outcome))

    async def read_multiple_files(self, paths: List[str]) -> CallToolResult:
        """Read several files at once; a failing path does not stop the others."""
        if paths is None:
            raise ValueError("paths parameter is required")
        if not isinstance(paths, (list, tuple)):
            raise ValueError("paths must be an array of strings")
        if not all(isinstance(path, str) for path in paths):
            raise ValueError("each path must be a string")

        try:
            results = await _run_cancellable(self.fs.read_many, list(paths))
        except OperationCancelled as exc:
            return _failure(exc)
        return responses.success(*responses.read_many_items(results))

    async def write_file(self, path: str, content: str) -> CallToolResult:
        """Create a new file or overwrite an existing file with new content."""
        try:
            target, written = await asyncio.to_thread(self.fs.write, path, content)
        except FailureTypes as exc:
            return _failure(exc)
        return responses.success(
            responses.text_item(f"Successfully wrote {written} bytes to {path}"),
            responses.text_resource(target, f"File: {target} ({written} bytes)"),
        )

    async def list_directory(self, path: str) -> CallToolResult:
        """Get a detailed listing of all files and directories in a specified path."""
        try:
            target, entries = await asyncio.to_thread(self.fs.list_directory, path)
        except FailureTypes as exc:
            return _failure(exc)
        return responses.success(
            responses.text_item(responses.format_listing(target, entries)),
            responses.directory_resource(target),
        )

    async def create_directory(self, path: str) -> CallToolResult:
        """Create a new directory or ensure a directory exists."""
        try:
            target, created = await asyncio.to_thread(self.fs.create_directory, path)
        except FailureTypes as exc:
            return _failure(exc)
        message = f"Successfully created directory {path}" if created else f"Directory already exists: {path}"
        return responses.success(responses.text_item(message), responses.directory_resource(target))

    async def move_file(self, source: str, destination: str) -> CallToolResult:
        """Move or rename files and directories."""
        try:
            _, target = await asyncio.to_thread(self.fs.move, source, destination)
        except MovePathError as exc:
            return _failure(exc.cause, prefix=f"Error with {exc.role} path")
        except FailureTypes as exc:
            return _failure(exc)
        return responses.success(
            responses.text_item(f"Successfully moved {source} to {destination}"),
            responses.text_resource(target, f"Moved file: {target}"),
        )

    async def search_files(self, path: str, pattern: str) -> CallToolResult:
        """Recursively search for files and directories matching a pattern."""
        timeout = self.config.search_timeout
        try:
            _, matches = await asyncio.wait_for(_run_cancellable(self.fs.search, path, pattern), timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Search under %s timed out after %ss", path, timeout)
            return responses.failure(f"Error: search timed out after {timeout} seconds")
        except FailureTypes as exc:
            return _failure(exc)

        if not matches:
            return responses.success(responses.text_item(f"No files found matching pattern '{pattern}' in {path}"))
        return responses.success(responses.text_item(responses.format_search(matches)))

    async def get_file_info(self, path: str) -> CallToolResult:
        """Retrieve detailed metadata about a file or directory."""
        try:
            target, file_stat, mime_type = await asyncio.to_thread(self.fs.get_info, path)
        except FailureTypes as exc:
            return _failure(exc)
        return responses.success(*responses.info_items(target, file_stat, mime_type))

    async def list_allowed_directories(self) -> CallToolResult:
        """Returns the list of directories that this server is allowed to access."""
        return responses.success(responses.text_item(responses.format_allowed(self.fs.allowed_directories())))

    def _read_resource_sync(self, path: str) -> List[ReadResourceContents]:
        outcome = self.fs.read(path)
        if outcome.is_directory:
            _, entries = self.fs.list_directory(str(outcome.path))
            return responses.resource_contents(outcome, entries)
        return responses.resource_contents(outcome)

    async def read_resource(self, uri: str) -> List[ReadResourceContents]:
        """Contents behind a file:// URI: a listing for directories, shaped content for files."""
        if not uri.startswith(responses.FILE_SCHEME):
            raise ResourceError(f"unsupported URI scheme: {uri}")
        path = unquote(uri[len(responses.FILE_SCHEME):])
        try:
            return await asyncio.to_thread(self._read_resource_sync, path)
        except FailureTypes as exc:
            LOGGER.info("Resource read failed for %s: %s", uri, exc)
            raise ResourceError(str(exc)) from exc

    def resource_uris(self) -> List[str]:
        return [responses.resource_uri(directory) for directory in self.fs.allowed_directories()]


def build_handler(allowed_dirs: Optional[List[str]] = None, config: Optional[ServerConfig] = None) -> FilesystemHandler:
    """Handler over `allowed_dirs` (or the configured ones)."""
    config = config or ServerConfig()
    if allowed_dirs is not None:
        config = replace(config, allowed_dirs=list(allowed_dirs))
    return FilesystemHandler.from_config(config)
