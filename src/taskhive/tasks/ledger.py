# src/taskhive/tasks/ledger.py

"""
Workload counter ledger.

Translates task lifecycle transitions into per-member counter updates:

    Created(a)              a += 1
    Reassigned(old, new)    old -= 1, new += 1   (no-op when old == new)
    EnteredTerminal(a)      a -= 1
    LeftTerminal(a)         a += 1
    Deleted(a, terminal)    a -= 1 unless the task was already terminal

Each member is updated on its own; there is no cross-member atomicity and no
rollback. Callers commit the task mutation first and only then apply the
transition, so a crash in between leaves a counter understated, which the
reconciliation sweep repairs.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from ..core.errors import ConsistencyViolation
from ..core.ports import WorkloadRepo

logger = logging.getLogger(__name__)

MAX_RECORDED_VIOLATIONS = 500


@dataclass(frozen=True, slots=True)
class Created:
    assignee: str | None


@dataclass(frozen=True, slots=True)
class Reassigned:
    old: str | None
    new: str | None


@dataclass(frozen=True, slots=True)
class EnteredTerminal:
    assignee: str | None


@dataclass(frozen=True, slots=True)
class LeftTerminal:
    assignee: str | None


@dataclass(frozen=True, slots=True)
class Deleted:
    assignee: str | None
    was_terminal: bool


TaskTransition = Created | Reassigned | EnteredTerminal | LeftTerminal | Deleted


class WorkloadLedger:
    def __init__(self, repo: WorkloadRepo) -> None:
        self._repo = repo
        self._violations: deque[ConsistencyViolation] = deque(maxlen=MAX_RECORDED_VIOLATIONS)
        self._flagged: set[str] = set()

    @property
    def violations(self) -> list[ConsistencyViolation]:
        return list(self._violations)

    def flagged_members(self) -> set[str]:
        """Members whose counter hit the floor since the last reconciliation."""
        return set(self._flagged)

    def clear_flags(self, member_ids: set[str] | None = None) -> None:
        if member_ids is None:
            self._flagged.clear()
        else:
            self._flagged -= member_ids

    def apply(self, transition: TaskTransition) -> None:
        if isinstance(transition, Created):
            self._adjust(transition.assignee, +1, "created")
        elif isinstance(transition, Reassigned):
            if transition.old == transition.new:
                return
            self._adjust(transition.old, -1, "reassigned_from")
            self._adjust(transition.new, +1, "reassigned_to")
        elif isinstance(transition, EnteredTerminal):
            self._adjust(transition.assignee, -1, "entered_terminal")
        elif isinstance(transition, LeftTerminal):
            self._adjust(transition.assignee, +1, "left_terminal")
        elif isinstance(transition, Deleted):
            if not transition.was_terminal:
                self._adjust(transition.assignee, -1, "deleted")
        else:
            raise TypeError(f"Unknown task transition: {transition!r}")

    def _adjust(self, member_id: str | None, delta: int, reason: str) -> None:
        if not member_id:
            return

        update = self._repo.increment_member_counter(member_id, delta)
        if update is None:
            # Member removed from the group; its tasks no longer count anywhere.
            logger.info("Ledger: member=%s not found for %s (%+d); skipped", member_id, reason, delta)
            return

        if update.clamped:
            violation = ConsistencyViolation(
                member_id=member_id,
                transition=reason,
                counter_before=update.previous,
                attempted_delta=delta,
            )
            self._violations.append(violation)
            self._flagged.add(member_id)
            logger.warning(
                "Consistency violation: member=%s counter=%d delta=%+d on %s; clamped to 0, needs reconciliation",
                member_id,
                update.previous,
                delta,
                reason,
            )
            return

        logger.debug(
            "Ledger: member=%s %d -> %d (%s)", member_id, update.previous, update.current, reason
        )
