# src/taskhive/cli/console.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..core.state import AppState
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def run_console_loop(state: AppState) -> None:
    """
    Operator REPL.

    Slash commands go to the registry; any other line is treated as a planning
    request for the current group (same as /plan <line>).
    """
    logger.info("Console started (offline=%s).", state.offline)
    _print_ts("[CONSOLE] Use /help for commands, /group new ... to start. Use /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (AI calls with retries).
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            prompt = f"{state.group_id or '-'}> "
            user_input = input(prompt).strip()
            _rewrite_prev_line(f"[{_ts_local()}] {prompt}{user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        line = user_input if user_input.startswith("/") else f"/plan {user_input}"

        try:
            reply = command_registry.handle(
                state, line, actor_id=state.actor_id, group_id=state.group_id, emit=emit
            )
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is not None:
            _print_ts(reply)

    logger.info("Console finished.")
