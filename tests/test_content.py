from __future__ import annotations

from pathlib import Path

import pytest

from secure_filesystem_server.config import BASE64_LIMIT, INLINE_LIMIT
from secure_filesystem_server.content import (
    OCTET_STREAM,
    DeliveryMode,
    classify,
    decide_delivery,
    detect_mime_type,
    is_text_mime,
    sniff_content_type,
)
from secure_filesystem_server.models import FileStat

MIB = 1024 * 1024


def test_policy_constants() -> None:
    assert INLINE_LIMIT == 5_242_880
    assert BASE64_LIMIT == 1_048_576


@pytest.mark.parametrize(
    "mime, expected",
    [
        ("text/plain", True),
        ("text/html; charset=utf-8", True),
        ("application/json", True),
        ("application/xml", True),
        ("application/javascript", True),
        ("application/x-javascript", True),
        ("image/svg+xml", True),
        ("application/ld+json", True),
        ("application/octet-stream", False),
        ("image/png", False),
        ("application/pdf", False),
    ],
)
def test_is_text_mime(mime: str, expected: bool) -> None:
    assert is_text_mime(mime) is expected


@pytest.mark.parametrize(
    "size, is_text, expected",
    [
        (10, True, DeliveryMode.INLINE_TEXT),
        (10, False, DeliveryMode.INLINE_BASE64),
        (1 * MIB, False, DeliveryMode.INLINE_BASE64),
        (2 * MIB, False, DeliveryMode.REFERENCE_ONLY),
        (2 * MIB, True, DeliveryMode.INLINE_TEXT),
        (5 * MIB, True, DeliveryMode.INLINE_TEXT),
        (6 * MIB, True, DeliveryMode.REFERENCE_ONLY),
        (6 * MIB, False, DeliveryMode.REFERENCE_ONLY),
    ],
)
def test_decide_delivery_thresholds(size: int, is_text: bool, expected: DeliveryMode) -> None:
    assert decide_delivery(size, is_text) is expected


def test_sniff_signatures() -> None:
    assert sniff_content_type(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16) == "image/png"
    assert sniff_content_type(b"%PDF-1.7\n") == "application/pdf"
    assert sniff_content_type(b"GIF89a....") == "image/gif"
    assert sniff_content_type(b"PK\x03\x04rest") == "application/zip"
    assert sniff_content_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"


def test_sniff_markup_and_text() -> None:
    assert sniff_content_type(b"  <!DOCTYPE html><html>") == "text/html; charset=utf-8"
    assert sniff_content_type(b"<?xml version='1.0'?><a/>") == "text/xml; charset=utf-8"
    assert sniff_content_type(b"plain words\n") == "text/plain; charset=utf-8"
    assert sniff_content_type(b"\xef\xbb\xbfbom text") == "text/plain; charset=utf-8"


def test_sniff_binary_bytes() -> None:
    assert sniff_content_type(b"abc\x00\x01\x02") == OCTET_STREAM


def test_detect_by_extension(tmp_path: Path) -> None:
    path = tmp_path / "notes.txt"
    path.write_text("hello", encoding="utf-8")
    assert detect_mime_type(path) == "text/plain"


def test_detect_by_sniffing(tmp_path: Path) -> None:
    text = tmp_path / "README"
    text.write_text("hello there", encoding="utf-8")
    binary = tmp_path / "blob"
    binary.write_bytes(b"\x00\x01\x02\x03")
    assert detect_mime_type(text) == "text/plain; charset=utf-8"
    assert detect_mime_type(binary) == OCTET_STREAM


def test_empty_extensionless_file_is_octet_stream(tmp_path: Path) -> None:
    empty = tmp_path / "empty"
    empty.write_bytes(b"")
    assert detect_mime_type(empty) == OCTET_STREAM


def test_unreadable_file_is_octet_stream(tmp_path: Path) -> None:
    assert detect_mime_type(tmp_path / "missing") == OCTET_STREAM


def test_classify_large_binary_is_reference(tmp_path: Path) -> None:
    path = tmp_path / "big.bin"
    with open(path, "wb") as fh:
        fh.write(b"\x00" * (2 * MIB))
    decision = classify(path, FileStat.of(path))
    assert decision.is_text is False
    assert decision.delivery_mode is DeliveryMode.REFERENCE_ONLY
    assert decision.exceeds_inline_limit is False


def test_classify_huge_text_is_reference(tmp_path: Path) -> None:
    path = tmp_path / "huge.txt"
    with open(path, "wb") as fh:
        fh.write(b"a" * (6 * MIB))
    decision = classify(path, FileStat.of(path))
    assert decision.is_text is True
    assert decision.delivery_mode is DeliveryMode.REFERENCE_ONLY
    assert decision.exceeds_inline_limit is True


def test_classify_honours_custom_limits(tmp_path: Path) -> None:
    path = tmp_path / "small.bin"
    path.write_bytes(b"\x00" * 100)
    decision = classify(path, FileStat.of(path), inline_limit=1000, base64_limit=50)
    assert decision.delivery_mode is DeliveryMode.REFERENCE_ONLY
