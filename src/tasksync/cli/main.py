# src/tasksync/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts the background refresher and
runs the console REPL until /exit, EOF or Ctrl+C.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime

from ..config import get_settings
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..sync.notifications import Notification, NotificationLevel
from ..sync.refresher import run_background_refresh
from .bootstrap import create_initial_state
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _print_notification(n: Notification) -> None:
    tag = {NotificationLevel.SUCCESS: "OK", NotificationLevel.ERROR: "ERROR"}.get(n.level, "INFO")
    detail = f": {n.detail}" if n.detail else ""
    _print_ts(f"[{tag}] {n.title}{detail}")


async def run_console_loop(state: AppState) -> None:
    logger.info("Console started (user=%s).", state.client.user_id)
    _print_ts("[CONSOLE] Type /help for commands. Use /exit to quit.\n")

    while True:
        try:
            line = (await asyncio.to_thread(input, ">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not line.startswith("/"):
            _print_ts("Commands start with '/'. Use /help to list them.")
            continue

        try:
            reply = await command_registry.handle(state, line, emit=_print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply:
            _print_ts(reply)

    logger.info("Console finished.")


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    if state.refresher is not None:
        state.refresher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await state.refresher
    try:
        await state.client.aclose()
    except Exception:
        logger.exception("Failed to close the sync client.")


async def run(state: AppState) -> None:
    remove_listener = state.notifications.add_listener(_print_notification)
    state.refresher = asyncio.create_task(
        run_background_refresh(
            state.client, interval_seconds=state.settings.refresh_interval_seconds
        )
    )
    try:
        await run_console_loop(state)
    finally:
        remove_listener()
        await _shutdown(state)


def main() -> None:
    settings = get_settings()
    setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(run(state))
    except KeyboardInterrupt:
        print()
        logger.info("Console KeyboardInterrupt, exiting.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
