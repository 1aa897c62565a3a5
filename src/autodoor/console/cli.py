# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Operator console for the automatic door system.

Runs an AutoDoorSystem and lets an operator drive it interactively, or
runs it headless with ``--daemon``.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from prompt_toolkit.patch_stdout import patch_stdout

from ..broadcast import BroadcastEvent
from ..config import KernelConfig
from ..const import (
    EVENT_ALERT_ACKNOWLEDGED,
    EVENT_ALERT_NEW,
    EVENT_DOOR_STATUS,
    EVENT_SENSOR_DISTANCE,
)
from ..errors import AutoDoorError
from ..kernel import AutoDoorSystem
from .commands import CommandHandler
from .prompt import HISTORY_FILE, InteractiveSession

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def _describe_event(event: BroadcastEvent) -> str:
    payload = event.payload
    if event.name == EVENT_DOOR_STATUS:
        return f"Door {payload['status']} ({payload['trigger']})"
    if event.name == EVENT_SENSOR_DISTANCE:
        return f"Distance {payload['distance']}cm (threshold {payload['threshold']:g}cm)"
    if event.name == EVENT_ALERT_NEW:
        return f"Alert #{payload['id']} [{payload['priority']}] {payload['message']}"
    if event.name == EVENT_ALERT_ACKNOWLEDGED:
        return f"Alert #{payload['alertId']} acknowledged"
    return f"{event.name} {payload}"


async def run_console(
    config: KernelConfig,
    daemon: bool = False,
    run_for: Optional[float] = None,
    show_sensor: bool = False,
    history_file: Optional[str] = None,
):
    """Run the door system with an operator console.

    Args:
        config: Kernel configuration
        daemon: If True, run without interactive input
        run_for: Maximum run time in seconds
        show_sensor: Echo every distance reading
        history_file: History file path, or "none" to disable
    """
    system = AutoDoorSystem(config)
    await system.start()

    stop_event = asyncio.Event()
    cmd_handler = CommandHandler(system=system, stop_callback=stop_event.set)
    session: Optional[InteractiveSession] = None

    events = [EVENT_DOOR_STATUS, EVENT_ALERT_NEW, EVENT_ALERT_ACKNOWLEDGED]
    if show_sensor:
        events.append(EVENT_SENSOR_DISTANCE)
    subscription = system.hub.subscribe(events)

    async def echo_events():
        """Log published events while the console runs."""
        async for event in subscription:
            logger.info(f"[event] {_describe_event(event)}")
            if session and event.name == EVENT_DOOR_STATUS:
                session.invalidate()

    echo_task = asyncio.create_task(echo_events())

    interactive = not daemon
    stdin_available = False
    if interactive:
        try:
            if sys.stdin and sys.stdin.fileno() >= 0:
                os.fstat(sys.stdin.fileno())
                stdin_available = True
        except (OSError, ValueError, AttributeError):
            pass
        if not stdin_available:
            logger.warning("stdin not available, running in daemon mode")

    print(f"Automatic door system started (door {system.status()['status']})")
    if interactive and stdin_available:
        print("=" * 65)
        print(cmd_handler.get_help())
        print("=" * 65)
    print()

    input_task: Optional[asyncio.Task] = None
    timeout_task: Optional[asyncio.Task] = None
    stdout_ctx = None

    if interactive and stdin_available:
        session = InteractiveSession(
            history_file=history_file,
            is_open=lambda: system.door.status().is_open,
        )

        async def interactive_input_loop():
            """Async input loop using prompt_toolkit."""
            try:
                async for line in session.input_loop(stop_check=stop_event.is_set):
                    result = await cmd_handler.execute(line)
                    if result.message:
                        print(f">>> {result.message}")
                    if stop_event.is_set():
                        break
            except asyncio.CancelledError:
                pass
            finally:
                # Signal stop on EOF
                stop_event.set()

        # Keep log output above the prompt for the rest of the run
        stdout_ctx = patch_stdout()
        stdout_ctx.__enter__()

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            if isinstance(handler, logging.StreamHandler):
                root_logger.removeHandler(handler)
        new_handler = logging.StreamHandler(sys.stderr)
        new_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(new_handler)

        input_task = asyncio.create_task(interactive_input_loop())

    if run_for:

        async def timeout_shutdown():
            await asyncio.sleep(run_for)
            logger.info(f"Run time ({run_for}s) elapsed, shutting down")
            stop_event.set()

        timeout_task = asyncio.create_task(timeout_shutdown())

    try:
        await stop_event.wait()
    except asyncio.CancelledError:
        pass
    finally:
        if timeout_task:
            timeout_task.cancel()
        if input_task:
            input_task.cancel()
            try:
                await input_task
            except asyncio.CancelledError:
                pass
        if stdout_ctx:
            stdout_ctx.__exit__(None, None, None)
        subscription.close()
        await system.stop()
        echo_task.cancel()
        try:
            await echo_task
        except asyncio.CancelledError:
            pass


def build_config(args: argparse.Namespace) -> KernelConfig:
    """Load the configuration file and apply command-line overrides."""
    config = KernelConfig.load(args.config) if args.config else KernelConfig()
    if args.database:
        config.database = args.database
    if args.no_sensor:
        config.sensor_enabled = False
    config.validate()
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Automatic door console - sensor-driven door with alerts"
    )
    parser.add_argument(
        "--config", "-c",
        metavar="FILE",
        help="YAML configuration file"
    )
    parser.add_argument(
        "--database", "-b",
        metavar="URL",
        help="SQLAlchemy database URL (default: in-memory store)"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--daemon", "-D",
        action="store_true",
        help="Run without interactive input"
    )
    parser.add_argument(
        "--run-for", "-r",
        type=float,
        metavar="SECONDS",
        help="Maximum run time in seconds"
    )
    parser.add_argument(
        "--no-sensor",
        action="store_true",
        help="Do not start the distance sensor simulation"
    )
    parser.add_argument(
        "--show-sensor",
        action="store_true",
        help="Echo every distance reading"
    )
    parser.add_argument(
        "--history",
        metavar="FILE",
        default=str(HISTORY_FILE),
        help=f"History file path, or 'none' to disable (default: {HISTORY_FILE})"
    )
    return parser


def main(argv: Optional[list[str]] = None):
    """CLI entry point for the console."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format=LOG_FORMAT,
    )

    try:
        config = build_config(args)
    except AutoDoorError as e:
        parser.error(str(e))

    try:
        asyncio.run(run_console(
            config,
            daemon=args.daemon,
            run_for=args.run_for,
            show_sensor=args.show_sensor,
            history_file=args.history,
        ))
    except AutoDoorError as e:
        logger.error(f"Console stopped: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nConsole stopped.")


if __name__ == "__main__":
    main()
