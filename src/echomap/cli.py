"""
CLI entry point.

Commands:
- init: Initialize data directory and database schema
- adduser <username> <email>: Register a user and print a bearer token
- map: Print the global emotion map snapshot as JSON
- recent [limit]: Print the most recent public memories as JSON

Flags:
- --debug: Enable debug logging to file
"""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from uuid import uuid4

from echomap.auth.identity import issue_token
from echomap.core.config import Settings, get_settings
from echomap.core.logging import get_logger, setup_logging
from echomap.core.types import ActionResult
from echomap.memory.base import User
from echomap.memory.store import SQLiteStore
from echomap.service import EchoService

USAGE = """Usage: echomap [--debug] <command>
Commands: init, adduser <username> <email>, map, recent [limit]
Flags: --debug (enable debug logging to data/echomap.log)"""


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = list(sys.argv[1:] if argv is None else argv)
    settings = get_settings()

    # Parse --debug flag (enables verbose DEBUG traces)
    debug_mode = "--debug" in args
    if debug_mode:
        args.remove("--debug")

    log_level = logging.DEBUG if debug_mode else logging.INFO
    log_file = settings.data_dir / "echomap.log"
    setup_logging(level=log_level, log_file=log_file)
    logger = get_logger("cli")

    if not args:
        print(USAGE)
        return 1

    command, rest = args[0], args[1:]

    if command == "init":
        return asyncio.run(_init(settings))

    if command == "adduser":
        if len(rest) != 2:
            print("Usage: echomap adduser <username> <email>")
            return 1
        return asyncio.run(_add_user(settings, rest[0], rest[1]))

    if command == "map":
        return asyncio.run(_with_service(settings, lambda s: s.global_map_snapshot()))

    if command == "recent":
        try:
            limit = int(rest[0]) if rest else None
        except ValueError:
            print(f"Invalid limit: {rest[0]}")
            return 1
        return asyncio.run(_with_service(settings, lambda s: s.discover_recent(limit)))

    logger.debug(f"Unknown command: {command}")
    print(f"Unknown command: {command}")
    return 1


async def _init(settings: Settings) -> int:
    """Create data directory and schema."""
    async with SQLiteStore(settings.db_path):
        pass
    print(f"Initialized: {settings.db_path}")
    return 0


async def _add_user(settings: Settings, username: str, email: str) -> int:
    """Register a user and print a token for it."""
    logger = get_logger("cli.adduser")
    async with SQLiteStore(settings.db_path) as store:
        try:
            user = await store.add_user(User(id=str(uuid4()), username=username, email=email))
        except Exception as e:
            logger.error(f"Failed to add user {username}: {e}")
            print(f"Error: {e}")
            return 1
    print(f"User: {user.id}")
    print(f"Token: {issue_token(user.id, settings.token_secret, settings.token_algorithm)}")
    return 0


async def _with_service(
    settings: Settings, call: Callable[[EchoService], Awaitable[ActionResult]]
) -> int:
    """Open the store, run one service call and print its result."""
    async with SQLiteStore(settings.db_path) as store:
        service = EchoService.from_stores(store, store, store, settings)
        result = await call(service)

    if not result.success:
        print(f"Error ({result.code}): {result.error}")
        return 1
    print(json.dumps(result.data, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
