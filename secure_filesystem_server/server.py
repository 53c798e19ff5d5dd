from __future__ import annotations

import argparse
import logging
import sys
from typing import Iterable, List, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.types import Resource

from .config import SERVER_NAME, SERVER_VERSION, ConfigError, ServerConfig
from .handler import FilesystemHandler

LOGGER = logging.getLogger(__name__)

TOOL_NAMES = (
    "read_file",
    "read_multiple_files",
    "write_file",
    "list_directory",
    "create_directory",
    "move_file",
    "search_files",
    "get_file_info",
    "list_allowed_directories",
)


class FilesystemServer(FastMCP):
    """FastMCP server whose resources are the files under the allowed roots."""

    def __init__(self, handler: FilesystemHandler, **settings) -> None:
        self.handler = handler
        super().__init__(SERVER_NAME, **settings)
        # FastMCP has no version argument; serverInfo.version comes from the low-level server.
        self._mcp_server.version = SERVER_VERSION
        for name in TOOL_NAMES:
            method = getattr(handler, name)
            self.add_tool(method, name=name, description=method.__doc__, structured_output=False)

    async def list_resources(self) -> List[Resource]:
        return [
            Resource(uri=uri, name=uri[len("file://"):], description="Allowed directory", mimeType="text/plain")
            for uri in self.handler.resource_uris()
        ]

    async def read_resource(self, uri) -> Iterable[ReadResourceContents]:
        return await self.handler.read_resource(str(uri))


def create_server(config: ServerConfig) -> FilesystemServer:
    return FilesystemServer(FilesystemHandler.from_config(config))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Secure filesystem MCP server (stdio).")
    parser.add_argument(
        "directories",
        nargs="*",
        help="Directories the server may access.",
    )
    parser.add_argument(
        "--allow",
        action="append",
        dest="allowed",
        default=[],
        help="Directory to allow (repeatable). Combined with positional directories.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: FS_LOG_LEVEL or INFO).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """Entrypoint for the MCP server."""
    args = parse_args(argv)
    try:
        config = ServerConfig.from_env(allowed_dirs=[*args.directories, *args.allowed], log_level=args.log_level)
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        sys.exit(2)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not config.allowed_dirs:
        print(f"Usage: {sys.argv[0]} <allowed-directory> [additional-directories...]", file=sys.stderr)
        sys.exit(1)

    try:
        server = create_server(config)
    except ConfigError as exc:
        LOGGER.error("Failed to create server: %s", exc)
        sys.exit(1)

    LOGGER.info("Serving %d allowed directories over stdio", len(config.allowed_dirs))
    server.run("stdio")


if __name__ == "__main__":
    main()
