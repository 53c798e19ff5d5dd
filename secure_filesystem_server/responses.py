"""
Turns operation results into MCP content items.
"""

from __future__ import annotations

import base64
from pathlib import Path
from typing import List, Sequence, Tuple, Union

from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.types import (
    BlobResourceContents,
    CallToolResult,
    ContentBlock,
    EmbeddedResource,
    TextContent,
    TextResourceContents,
)

from .content import DeliveryMode
from .models import DirectoryEntry, FileStat, ReadOutcome, SearchMatch

FILE_SCHEME = "file://"


def resource_uri(path: Union[Path, str]) -> str:
    return FILE_SCHEME + str(path)


def text_item(text: str) -> TextContent:
    return TextContent(type="text", text=text)


def text_resource(path: Union[Path, str], text: str, mime_type: str = "text/plain") -> EmbeddedResource:
    return EmbeddedResource(
        type="resource",
        resource=TextResourceContents(uri=resource_uri(path), mimeType=mime_type, text=text),
    )


def blob_resource(path: Union[Path, str], data: bytes, mime_type: str) -> EmbeddedResource:
    return EmbeddedResource(
        type="resource",
        resource=BlobResourceContents(
            uri=resource_uri(path),
            mimeType=mime_type,
            blob=base64.b64encode(data).decode("ascii"),
        ),
    )


def directory_resource(path: Path) -> EmbeddedResource:
    return text_resource(path, f"Directory: {path}")


def success(*items: ContentBlock) -> CallToolResult:
    return CallToolResult(content=list(items), isError=False)


def failure(message: str) -> CallToolResult:
    return CallToolResult(content=[text_item(message)], isError=True)


def read_items(outcome: ReadOutcome) -> List[ContentBlock]:
    """Content items for one read, following the outcome's delivery decision."""
    path, size = outcome.path, outcome.stat.size
    uri = resource_uri(path)
    if outcome.is_directory:
        return [
            text_item(f"This is a directory. Use the resource URI to browse its contents: {uri}"),
            directory_resource(path),
        ]

    decision = outcome.decision
    assert decision is not None
    mime = decision.mime_type
    if decision.exceeds_inline_limit:
        return [
            text_item(f"File is too large to display inline ({size} bytes). Access it via resource URI: {uri}"),
            text_resource(path, f"Large file: {path} ({mime}, {size} bytes)"),
        ]
    if decision.delivery_mode is DeliveryMode.INLINE_TEXT:
        return [text_item((outcome.data or b"").decode("utf-8", errors="replace"))]
    if decision.delivery_mode is DeliveryMode.INLINE_BASE64:
        return [
            text_item(f"Binary file: {path} ({mime}, {size} bytes)"),
            blob_resource(path, outcome.data or b"", mime),
        ]
    return [
        text_item(f"Binary file: {path} ({mime}, {size} bytes). Access it via resource URI: {uri}"),
        text_resource(path, f"Binary file: {path} ({mime}, {size} bytes)"),
    ]


def read_many_items(results: Sequence[Tuple[str, Union[ReadOutcome, Exception]]]) -> List[ContentBlock]:
    items: List[ContentBlock] = []
    for path, outcome in results:
        items.append(text_item(f"--- File: {path} ---"))
        if isinstance(outcome, Exception):
            items.append(text_item(f"Error: {outcome}"))
        else:
            items.extend(read_items(outcome))
    return items


def entry_line(entry: DirectoryEntry) -> str:
    uri = resource_uri(entry.path)
    if entry.is_directory:
        return f"[DIR]  {entry.name} ({uri})"
    if entry.size is None:
        return f"[FILE] {entry.name} ({uri})"
    return f"[FILE] {entry.name} ({uri}) - {entry.size} bytes"


def format_listing(path: Path, entries: Sequence[DirectoryEntry]) -> str:
    lines = [f"Directory listing for: {path}", ""]
    lines.extend(entry_line(entry) for entry in entries)
    return "\n".join(lines) + "\n"


def format_search(matches: Sequence[SearchMatch]) -> str:
    lines = [f"Found {len(matches)} results:", ""]
    for match in matches:
        uri = resource_uri(match.path)
        if match.stat.is_directory:
            lines.append(f"[DIR]  {match.path} ({uri})")
        else:
            lines.append(f"[FILE] {match.path} ({uri}) - {match.stat.size} bytes")
    return "\n".join(lines) + "\n"


def _flag(value: bool) -> str:
    return "true" if value else "false"


def format_info(path: Path, file_stat: FileStat, mime_type: str) -> str:
    return (
        f"File information for: {path}\n\n"
        f"Size: {file_stat.size} bytes\n"
        f"Created: {file_stat.created.isoformat(timespec='seconds')}\n"
        f"Modified: {file_stat.modified.isoformat(timespec='seconds')}\n"
        f"Accessed: {file_stat.accessed.isoformat(timespec='seconds')}\n"
        f"IsDirectory: {_flag(file_stat.is_directory)}\n"
        f"IsFile: {_flag(file_stat.is_file)}\n"
        f"Permissions: {file_stat.permissions}\n"
        f"MIME Type: {mime_type}\n"
        f"Resource URI: {resource_uri(path)}"
    )


def info_items(path: Path, file_stat: FileStat, mime_type: str) -> List[ContentBlock]:
    kind = "Directory" if file_stat.is_directory else "File"
    return [
        text_item(format_info(path, file_stat, mime_type)),
        text_resource(path, f"{kind}: {path} ({mime_type}, {file_stat.size} bytes)"),
    ]


def format_allowed(directories: Sequence[str]) -> str:
    lines = ["Allowed directories:", ""]
    lines.extend(f"{directory} ({resource_uri(directory)})" for directory in directories)
    return "\n".join(lines) + "\n"


def resource_contents(outcome: ReadOutcome, entries: Sequence[DirectoryEntry] = ()) -> List[ReadResourceContents]:
    """Body of a `file://` resource read; the transport base64-encodes bytes."""
    if outcome.is_directory:
        return [ReadResourceContents(content=format_listing(outcome.path, entries), mime_type="text/plain")]

    decision = outcome.decision
    assert decision is not None
    size = outcome.stat.size
    if decision.exceeds_inline_limit:
        text = f"File is too large to display inline ({size} bytes). Use the read_file tool to access specific portions."
        return [ReadResourceContents(content=text, mime_type="text/plain")]
    if decision.delivery_mode is DeliveryMode.INLINE_TEXT:
        text = (outcome.data or b"").decode("utf-8", errors="replace")
        return [ReadResourceContents(content=text, mime_type=decision.mime_type)]
    if decision.delivery_mode is DeliveryMode.INLINE_BASE64:
        return [ReadResourceContents(content=outcome.data or b"", mime_type=decision.mime_type)]
    text = f"Binary file ({decision.mime_type}, {size} bytes). Use the read_file tool to access specific portions."
    return [ReadResourceContents(content=text, mime_type="text/plain")]
