"""Configuration for the secure filesystem server."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from dotenv import load_dotenv

load_dotenv()

# Files above this size are never inlined, text or not.
INLINE_LIMIT: int = 5 * 1024 * 1024
# Binary files up to this size are inlined as base64 blobs.
BASE64_LIMIT: int = 1 * 1024 * 1024

DEFAULT_LOG_LEVEL: str = "INFO"
SERVER_NAME: str = "secure-filesystem-server"
SERVER_VERSION: str = "0.3.0"


class ConfigError(ValueError):
    """Raised when the server cannot be configured from the given input."""


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{name} must be non-negative, got {value}")
    return value


def _timeout_from_env(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number of seconds, got {raw!r}") from exc
    return value if value > 0 else None


def _dirs_from_env(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [part for part in raw.split(os.pathsep) if part.strip()]


@dataclass
class ServerConfig:
    """Runtime configuration for the filesystem server."""

    allowed_dirs: List[str] = field(default_factory=list)
    inline_limit: int = INLINE_LIMIT
    base64_limit: int = BASE64_LIMIT
    search_timeout: Optional[float] = None
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        if self.base64_limit > self.inline_limit:
            raise ConfigError(
                f"base64 limit ({self.base64_limit}) must not exceed inline limit ({self.inline_limit})"
            )

    @classmethod
    def from_env(cls, allowed_dirs: Optional[Sequence[str]] = None, log_level: Optional[str] = None) -> "ServerConfig":
        """
        Build a config from FS_* environment variables (and .env).

        Directories given explicitly (from the command line) win over
        FS_ALLOWED_DIRS.
        """
        dirs = list(allowed_dirs or []) or _dirs_from_env("FS_ALLOWED_DIRS")
        return cls(
            allowed_dirs=dirs,
            inline_limit=_int_from_env("FS_INLINE_LIMIT", INLINE_LIMIT),
            base64_limit=_int_from_env("FS_BASE64_LIMIT", BASE64_LIMIT),
            search_timeout=_timeout_from_env("FS_SEARCH_TIMEOUT"),
            log_level=(log_level or os.getenv("FS_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )
