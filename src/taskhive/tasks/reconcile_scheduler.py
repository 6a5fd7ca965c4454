# src/taskhive/tasks/reconcile_scheduler.py

from __future__ import annotations

"""
Reconciliation sweep scheduler.

A small polling loop that periodically recounts every member's outstanding
tasks from the task records and overwrites drifted counters. Counter drift
comes from crashes between a task write and its ledger update, concurrent
mutations of the same task, or members flagged by a floor clamp.

To stop the scheduler, cancel the coroutine/task.
"""

import asyncio
import logging

from .coordinator import ReconcileReport, TaskCoordinator

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 0.01


def run_reconcile_once(coordinator: TaskCoordinator, *, group_id: str | None = None) -> ReconcileReport:
    flagged = coordinator.ledger.flagged_members()
    report = coordinator.reconcile_counters(group_id)

    if report.members_fixed:
        logger.warning(
            "Reconcile sweep fixed %d counter(s) (flagged before sweep: %d)",
            report.members_fixed,
            len(flagged),
        )
    else:
        logger.debug("Reconcile sweep: %d member(s) consistent", report.members_scanned)
    return report


async def run_reconcile_scheduler(
        coordinator: TaskCoordinator,
        *,
        interval_seconds: float = 300.0,
        group_id: str | None = None,
) -> None:
    """
    Every interval_seconds:
    - run reconcile_counters(group_id) as a trusted internal caller,
    - log drift at WARNING, a clean pass at DEBUG.

    A failing sweep is logged and retried on the next tick; the loop only ends
    when cancelled.
    """
    sleep_s = max(MIN_INTERVAL_SECONDS, float(interval_seconds))

    while True:
        try:
            # SQLite calls are blocking; keep the event loop responsive.
            await asyncio.to_thread(run_reconcile_once, coordinator, group_id=group_id)
        except Exception:
            logger.exception("Reconcile sweep failed")

        await asyncio.sleep(sleep_s)
