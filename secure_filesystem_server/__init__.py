"""
Secure filesystem MCP server: sandboxed file tools over stdio.
"""

from .config import BASE64_LIMIT, INLINE_LIMIT, SERVER_VERSION, ConfigError, ServerConfig
from .content import ContentDecision, DeliveryMode, classify
from .security import (
    AllowedRoots,
    DenialReason,
    InvalidPathError,
    PathSandbox,
    SandboxError,
    SandboxViolation,
    normalize_path,
)

__version__ = SERVER_VERSION

__all__ = [
    "AllowedRoots",
    "BASE64_LIMIT",
    "ConfigError",
    "ContentDecision",
    "DeliveryMode",
    "DenialReason",
    "INLINE_LIMIT",
    "InvalidPathError",
    "PathSandbox",
    "SandboxError",
    "SandboxViolation",
    "ServerConfig",
    "classify",
    "normalize_path",
]
