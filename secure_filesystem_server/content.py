"""
Content classification: MIME detection and the inline/base64/reference decision.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Tuple

from .config import BASE64_LIMIT, INLINE_LIMIT

if TYPE_CHECKING:
    from .models import FileStat

LOGGER = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
DIRECTORY_MIME = "directory"
SNIFF_LEN = 512

TEXT_MIME_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-javascript",
}

# (prefix, mime) pairs checked against the first bytes of a file.
_SIGNATURES: List[Tuple[bytes, str]] = [
    (b"%PDF-", "application/pdf"),
    (b"%!PS-Adobe-", "application/postscript"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"BM", "image/bmp"),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"\x00\x00\x02\x00", "image/x-icon"),
    (b"OggS\x00", "application/ogg"),
    (b"ID3", "audio/mpeg"),
    (b"MThd\x00\x00\x00\x06", "audio/midi"),
    (b"\x1a\x45\xdf\xa3", "video/webm"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    (b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    (b"\x00asm", "application/wasm"),
    (b"wOFF", "font/woff"),
    (b"wOF2", "font/woff2"),
    (b"\x00\x01\x00\x00", "font/ttf"),
    (b"OTTO", "font/otf"),
]

_BOMS: List[Tuple[bytes, str]] = [
    (b"\xef\xbb\xbf", "text/plain; charset=utf-8"),
    (b"\xfe\xff", "text/plain; charset=utf-16be"),
    (b"\xff\xfe", "text/plain; charset=utf-16le"),
]

_HTML_TAGS = (
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1", b"<DIV",
    b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B", b"<BODY", b"<BR", b"<P",
    b"<!--",
)

# Control bytes that never show up in text (tab, LF, FF, CR and ESC are allowed).
_BINARY_BYTES = frozenset(list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20)))

_WHITESPACE = b"\t\n\x0c\r "


class DeliveryMode(str, Enum):
    INLINE_TEXT = "inline_text"
    INLINE_BASE64 = "inline_base64"
    REFERENCE_ONLY = "reference_only"


@dataclass(frozen=True)
class ContentDecision:
    mime_type: str
    is_text: bool
    delivery_mode: DeliveryMode
    exceeds_inline_limit: bool = False


def _html_tag_at(data: bytes, tag: bytes) -> bool:
    if len(data) < len(tag) + 1 or data[: len(tag)].upper() != tag:
        return False
    # The tag must be terminated by a space or '>' (comments are exempt).
    return tag == b"<!--" or data[len(tag)] in b" >"


def _is_mp4(data: bytes) -> bool:
    if len(data) < 12:
        return False
    box_size = int.from_bytes(data[:4], "big")
    if box_size % 4 != 0 or len(data) < box_size or data[4:8] != b"ftyp":
        return False
    for start in range(8, box_size, 4):
        if start == 12:
            continue  # minor version
        if data[start : start + 3] == b"mp4":
            return True
    return False


def sniff_content_type(data: bytes) -> str:
    """Guess a MIME type from leading bytes, WHATWG-sniffing style."""
    data = data[:SNIFF_LEN]

    for bom, mime in _BOMS:
        if data.startswith(bom):
            return mime

    stripped = data.lstrip(_WHITESPACE)
    for tag in _HTML_TAGS:
        if _html_tag_at(stripped, tag):
            return "text/html; charset=utf-8"
    if stripped.startswith(b"<?xml"):
        return "text/xml; charset=utf-8"

    for signature, mime in _SIGNATURES:
        if data.startswith(signature):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "audio/wave"
    if data[:4] == b"RIFF" and data[8:12] == b"AVI ":
        return "video/avi"
    if _is_mp4(data):
        return "video/mp4"

    if any(byte in _BINARY_BYTES for byte in data):
        return OCTET_STREAM
    return "text/plain; charset=utf-8"


def detect_mime_type(path: Path) -> str:
    """
    MIME type by extension, falling back to sniffing the first bytes.

    Unreadable files (and files with nothing to sniff) are octet-stream.
    """
    guessed, _ = mimetypes.guess_type(path.name)
    if guessed:
        return guessed

    try:
        with open(path, "rb") as fh:
            head = fh.read(SNIFF_LEN)
    except OSError as exc:
        LOGGER.debug("Cannot sniff %s: %s", path, exc)
        return OCTET_STREAM
    if not head:
        return OCTET_STREAM
    return sniff_content_type(head)


def is_text_mime(mime_type: str) -> bool:
    base = mime_type.split(";", 1)[0].strip().lower()
    return (
        base.startswith("text/")
        or base in TEXT_MIME_TYPES
        or "+xml" in base
        or "+json" in base
    )


def decide_delivery(
    size: int,
    is_text: bool,
    inline_limit: int = INLINE_LIMIT,
    base64_limit: int = BASE64_LIMIT,
) -> DeliveryMode:
    if size > inline_limit:
        return DeliveryMode.REFERENCE_ONLY
    if is_text:
        return DeliveryMode.INLINE_TEXT
    if size <= base64_limit:
        return DeliveryMode.INLINE_BASE64
    return DeliveryMode.REFERENCE_ONLY


def classify(
    path: Path,
    file_stat: "FileStat",
    inline_limit: int = INLINE_LIMIT,
    base64_limit: int = BASE64_LIMIT,
) -> ContentDecision:
    """Decide the MIME type and how a file's content should be delivered."""
    mime_type = detect_mime_type(path)
    is_text = is_text_mime(mime_type)
    return ContentDecision(
        mime_type=mime_type,
        is_text=is_text,
        delivery_mode=decide_delivery(file_stat.size, is_text, inline_limit, base64_limit),
        exceeds_inline_limit=file_stat.size > inline_limit,
    )
