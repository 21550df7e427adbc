from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from . import __version__
from .config import Config, load_config
from .errors import FileJackError
from .rate_limit import PRESETS
from .tools import ToolDispatcher, tool_definitions

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_server(dispatcher: ToolDispatcher, name: str = "FileJack", version: str = __version__) -> Server:
    """Wire the dispatcher into an MCP server instance."""
    server = Server(name, version=version)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [
            types.Tool(
                name=definition["name"],
                description=definition["description"],
                inputSchema=definition["input_schema"],
            )
            for definition in tool_definitions()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> List[types.TextContent]:
        # Blocking file I/O runs off the event loop; errors propagate to the SDK as tool errors.
        result = await asyncio.to_thread(dispatcher.call, name, arguments)
        return [types.TextContent(type="text", text=json.dumps(result, indent=2, ensure_ascii=False))]

    return server


async def serve(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    policy = config.access_policy
    if args.allow:
        policy = replace(policy, allowed_paths=frozenset(Path(p) for p in args.allow))
    if args.read_only:
        policy = replace(policy, read_only=True)
    config = replace(config, access_policy=policy)
    if args.rate_limit:
        config = replace(config, rate_limit=args.rate_limit)
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FileJack: policy-enforced filesystem MCP server (stdio).")
    parser.add_argument("--config", help="Path to a JSON configuration file.")
    parser.add_argument(
        "--allow",
        action="append",
        help="Directory to allow (repeatable). Replaces allowed paths from the configuration.",
    )
    parser.add_argument("--read-only", action="store_true", help="Reject every write operation.")
    parser.add_argument("--rate-limit", choices=sorted(PRESETS), help="Admission preset (default: moderate).")
    parser.add_argument(
        "--log-level",
        default=os.getenv("FILEJACK_LOG_LEVEL", "INFO"),
        help="Logging level for stderr output (default: INFO).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entrypoint for the MCP server."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        config = apply_overrides(load_config(args.config), args)
        dispatcher = ToolDispatcher.from_config(config)
    except FileJackError as exc:
        parser.error(str(exc))

    LOGGER.info(
        "Starting %s %s (allowed: %s, read-only: %s, rate limit: %s)",
        config.server.name,
        config.server.version,
        ", ".join(sorted(str(p) for p in config.access_policy.allowed_paths)) or "unrestricted",
        config.access_policy.read_only,
        config.rate_limit,
    )
    asyncio.run(serve(build_server(dispatcher, config.server.name, config.server.version)))


if __name__ == "__main__":
    main()
