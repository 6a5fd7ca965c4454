# src/taskhive/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the reconciliation sweep in a background thread (optional),
- the console REPL in the main thread.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..logging_setup import setup_logging
from .background import start_reconcile_in_background
from .bootstrap import create_initial_state
from .console import run_console_loop

logger = logging.getLogger(__name__)


def _shutdown(state) -> None:
    """Best-effort shutdown: a failing close must not hide the real exit reason."""
    store = getattr(state, "store", None)
    if store is not None and hasattr(store, "close"):
        try:
            store.close()
        except Exception:
            logger.debug("Store close failed.", exc_info=True)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    runner = start_reconcile_in_background(state)

    try:
        run_console_loop(state)
    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=10.0)

        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
