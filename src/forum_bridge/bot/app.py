"""Discord gateway client and command-line entry point.

Runs either as a long-lived bot (live events, slash commands, health
probes) or, with ``--sweep``, as a one-shot reconciliation pass that
prints its report and exits.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Any

import discord
from discord import app_commands
from pydantic import ValidationError

from .. import __version__
from ..config import Config
from ..core.client import KnowledgeBaseClient
from ..logger import setup_logging
from ..sync.models import SweepOptions, SyncResult
from ..sync.orchestrator import SyncOrchestrator
from ..sync.reporter import format_sync_result, result_to_json
from ..sync.sweep import ReconciliationSweep
from ..transport.discord import DiscordTransport
from .commands import CommandService, register_commands
from .handlers import EventHandlers
from .health import HealthServer
from .lifespan import bridge_lifespan

logger = logging.getLogger(__name__)

PRESENCE = discord.Activity(type=discord.ActivityType.watching, name="forum posts")


class BridgeClient(discord.Client):
    """Gateway client wiring events and commands to the sync engine.

    Args:
        config: Loaded configuration.
        kb_client: Knowledge-base client shared by all tasks.
        live: Handle gateway events and publish slash commands.  One-shot
            sweeps connect with ``live=False``.
    """

    def __init__(
        self, config: Config, kb_client: KnowledgeBaseClient, live: bool = True
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents)

        self.config = config
        self.live = live
        self.tree = app_commands.CommandTree(self)
        self.transport = DiscordTransport(self)

        channels = config.tracked_channels()
        self.orchestrator = SyncOrchestrator(
            self.transport, kb_client, channels, config.sync_settings()
        )
        self.sweep = ReconciliationSweep(self.transport, self.orchestrator, channels)
        self.handlers = EventHandlers(self.orchestrator)
        self.handlers.accepting = live
        self.connected = asyncio.Event()
        register_commands(
            self.tree,
            CommandService(self.orchestrator, self.sweep, self.transport, channels),
        )

    async def setup_hook(self) -> None:
        if not self.live:
            return
        synced = await self.tree.sync()
        logger.info("Registered %d slash command(s)", len(synced))

    async def on_ready(self) -> None:
        self.connected.set()
        logger.info("Logged in as %s (%s)", self.user, self.user.id if self.user else "?")
        if self.live:
            await self.change_presence(activity=PRESENCE)
            logger.info(
                "Watching %d forum channel(s): %s",
                len(self.config.forum_mappings),
                ", ".join(self.config.forum_mappings),
            )

    async def on_thread_create(self, thread: discord.Thread) -> None:
        await self.handlers.on_thread_create(thread)

    async def on_thread_update(
        self, before: discord.Thread, after: discord.Thread
    ) -> None:
        await self.handlers.on_thread_update(before, after)

    async def on_message(self, message: discord.Message) -> None:
        await self.handlers.on_message(message)


# ---------------------------------------------------------------------------
# Run modes
# ---------------------------------------------------------------------------


async def _start_and_wait_ready(client: BridgeClient) -> asyncio.Task:
    """Start the gateway connection and return once the cache is ready.

    Raises whatever ``client.start`` raised if it ends before ready.
    """
    start_task = asyncio.create_task(client.start(client.config.discord_token))
    ready_task = asyncio.create_task(client.connected.wait())
    await asyncio.wait({start_task, ready_task}, return_when=asyncio.FIRST_COMPLETED)
    if start_task.done():
        ready_task.cancel()
        start_task.result()
        raise RuntimeError("Discord connection closed before it became ready")
    return start_task


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops: KeyboardInterrupt still stops the process
            logger.debug("Signal handler for %s not supported", sig.name)


async def serve(client: BridgeClient) -> None:
    """Run the bot until the gateway closes or a stop signal arrives."""
    stop = asyncio.Event()
    _install_signal_handlers(stop)

    health = None
    if client.config.health_port:
        health = HealthServer(client.config.health_port, client.is_ready)
        await health.start()

    client_task = asyncio.create_task(client.start(client.config.discord_token))
    stop_task = asyncio.create_task(stop.wait())
    try:
        await asyncio.wait(
            {client_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if stop_task.done():
            logger.info("Stop signal received")
    finally:
        stop_task.cancel()
        await client.handlers.drain()
        await client.close()
        if health is not None:
            await health.stop()

    if client_task.done() and not client_task.cancelled():
        client_task.result()
    else:
        await client_task


async def sweep_once(
    client: BridgeClient, options: SweepOptions, channel_id: str | None = None
) -> SyncResult:
    """Connect, run one reconciliation sweep, disconnect."""
    start_task = await _start_and_wait_ready(client)
    try:
        return await client.sweep.sweep_all(options, channel_id=channel_id)
    finally:
        await client.close()
        await start_task


async def main(
    config_overrides: dict[str, Any] | None = None,
    sweep: dict[str, Any] | None = None,
) -> int:
    """Run the bridge; returns the process exit status."""
    async with bridge_lifespan(config_overrides=config_overrides) as ctx:
        config: Config = ctx["config"]
        client = BridgeClient(config, ctx["client"], live=sweep is None)
        try:
            if sweep is None:
                await serve(client)
                return 0

            result = await sweep_once(client, sweep["options"], sweep.get("channel_id"))
        except discord.LoginFailure as e:
            logger.error("Discord login failed: %s", e)
            raise RuntimeError(f"Discord login failed: {e}") from e

    if sweep.get("json"):
        print(json.dumps(result_to_json(result), indent=2))
    else:
        channel_id = sweep.get("channel_id")
        scope = f"Forum `{channel_id}`" if channel_id else "All configured forums"
        print(format_sync_result(result, scope))
    return 1 if result.failed_threads else 0


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Forum bridge - mirror Discord forum threads into a knowledge base",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the bot with settings from .env / environment / config.yml
  forum-bridge

  # Preview which recent threads were never mirrored
  forum-bridge --sweep --dry-run --max-age-hours 72

  # Mirror missed threads of one forum and print JSON
  forum-bridge --sweep --channel 123456789012345678 --json
        """,
    )
    parser.add_argument("--api-url", help="Override knowledge-base API URL (USABLE_API_URL)")
    parser.add_argument("--workspace-id", help="Override workspace id (USABLE_WORKSPACE_ID)")
    parser.add_argument(
        "--health-port",
        type=int,
        help="Health probe port, 0 disables (HEALTH_PORT, default 3000)",
    )
    parser.add_argument("--log-file", help="Also write logs to this file (LOG_FILE)")
    parser.add_argument(
        "--log-format", choices=["text", "json"], help="Log line format (LOG_FORMAT)"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sweep_group = parser.add_argument_group("one-shot sweep")
    sweep_group.add_argument(
        "--sweep",
        action="store_true",
        help="Run one reconciliation sweep and exit instead of serving",
    )
    sweep_group.add_argument("--channel", help="Only sweep this tracked forum channel")
    sweep_group.add_argument(
        "--max-age-hours", type=int, default=24, help="Thread age window (1-720, default 24)"
    )
    sweep_group.add_argument(
        "--limit", type=int, default=50, help="Archived threads per channel (1-200, default 50)"
    )
    sweep_group.add_argument(
        "--dry-run", action="store_true", help="Report without creating fragments"
    )
    sweep_group.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument(
        "--version",
        action="version",
        version=f"forum-bridge version {__version__}",
    )

    args = parser.parse_args()

    setup_logging(
        mode="cli" if args.sweep else "bot",
        debug=args.debug,
        log_file=args.log_file,
        debug_format=args.log_format,
    )

    config_overrides: dict[str, Any] = {}
    if args.api_url:
        config_overrides["api_url"] = args.api_url
    if args.workspace_id:
        config_overrides["workspace_id"] = args.workspace_id
    if args.health_port is not None:
        config_overrides["health_port"] = args.health_port
    if args.debug:
        config_overrides["debug"] = True

    sweep = None
    if args.sweep:
        try:
            options = SweepOptions(
                max_age_hours=args.max_age_hours,
                limit=args.limit,
                dry_run=args.dry_run,
            )
        except ValidationError as e:
            parser.error(f"invalid sweep options: {e.errors()[0]['msg']}")
        sweep = {"options": options, "channel_id": args.channel, "json": args.json}
    elif args.channel or args.dry_run or args.json:
        parser.error("--channel, --dry-run and --json require --sweep")

    try:
        status = asyncio.run(main(config_overrides or None, sweep))
    except RuntimeError:
        # Already reported by the lifespan manager or main()
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)
    except Exception:
        logger.critical("Unexpected fatal error", exc_info=True)
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    run()
