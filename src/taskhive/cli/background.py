# src/taskhive/cli/background.py

"""
Run the reconciliation sweep in a background thread with its own event loop,
so the blocking console REPL can run in parallel.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState
from ..tasks.reconcile_scheduler import run_reconcile_scheduler

logger = logging.getLogger(__name__)


@dataclass
class ReconcileBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            # Loop already closed.
            logger.debug("Failed to signal reconcile stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


async def _run_until_stopped(state: AppState, stop_event: asyncio.Event, interval_seconds: float) -> None:
    sweep = asyncio.create_task(
        run_reconcile_scheduler(state.coordinator, interval_seconds=interval_seconds)
    )
    try:
        await stop_event.wait()
    finally:
        sweep.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep


def start_reconcile_in_background(state: AppState) -> ReconcileBackgroundRunner | None:
    interval = float(getattr(state.settings, "reconcile_interval_seconds", 0) or 0)
    if interval <= 0:
        logger.info("Scheduled reconciliation disabled (TASKHIVE_RECONCILE_INTERVAL_SECONDS=0).")
        return None

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_until_stopped(state, stop_event, interval))
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="reconcile-sweep", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Reconcile thread did not initialize properly.")
        return None

    logger.info("Reconcile sweep started (every %.0fs).", interval)
    return ReconcileBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
