"""Command-line tail utility for the Drone SDK.

Prints the server event feed or a build log stream as JSON lines, using the
credentials found in the environment (and a ``.env`` file, if present).
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional, TextIO

from ._stream import CloseReason
from .client import DroneClient
from .config import DroneConfig, load_dotenv_for_sdk
from .exceptions import DroneError

logger = logging.getLogger(__name__)


def _printer(out: TextIO):
    def receive(data: Any) -> None:
        out.write(json.dumps(data) + "\n")
        out.flush()

    return receive


def _report(error: Exception) -> None:
    logger.warning("%s", error)


async def tail_events(client: DroneClient, out: TextIO) -> int:
    """Follow the server event feed until interrupted."""
    subscription = client.on(_printer(out), on_error=_report)
    await subscription.wait()
    return 0


async def tail_logs(
    client: DroneClient, owner: str, repo: str, build: int, proc: int, out: TextIO
) -> int:
    """Print the log stream of one build process until it ends."""
    subscription = client.stream(owner, repo, build, proc, _printer(out), on_error=_report)
    await subscription.wait()
    if subscription.close_reason is CloseReason.ERROR:
        logger.error("Log stream failed: %s", subscription.error)
        return 1
    return 0


async def whoami(client: DroneClient, out: TextIO) -> int:
    """Print the authenticated user."""
    user = await client.get_self()
    out.write(json.dumps(user) + "\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="drone-tail", description=__doc__.splitlines()[0])
    parser.add_argument("--server", help="Drone server URL (default: $DRONE_SERVER)")
    parser.add_argument("--token", help="API token (default: $DRONE_TOKEN)")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("events", help="follow the server event feed")
    logs = commands.add_parser("logs", help="follow the log stream of a build process")
    logs.add_argument("owner")
    logs.add_argument("repo")
    logs.add_argument("build", type=int)
    logs.add_argument("proc", type=int)
    commands.add_parser("whoami", help="show the authenticated user")
    return parser


async def main(argv: Optional[list[str]] = None, out: TextIO = sys.stdout) -> int:
    """Main entry point for the drone-tail command.

    Exit Codes
    ----------
    0 : Success
    1 : Request or stream failure
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    load_dotenv_for_sdk()
    env = DroneConfig.from_environment()
    config = DroneConfig(
        server=args.server or env.server,
        token=args.token or env.token,
        csrf=env.csrf,
    )
    if config.login:
        logger.info("Authenticated as %s", config.login)

    client = DroneClient.from_config(config)
    try:
        if args.command == "events":
            return await tail_events(client, out)
        if args.command == "logs":
            return await tail_logs(client, args.owner, args.repo, args.build, args.proc, out)
        return await whoami(client, out)
    except DroneError as e:
        logger.error("%s", e)
        return 1
    finally:
        await client.aclose()


def cli_main() -> None:
    """Entry point for the drone-tail command."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    cli_main()
