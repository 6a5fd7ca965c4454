# src/taskhive/tasks/coordinator.py

"""
Task lifecycle coordinator.

Every mutation follows the same order:
  1. validate input, resolve the group / task / members, check the actor's role,
  2. (create only) pick an assignee through the recommender when none was given,
  3. persist the task mutation,
  4. only after the write is confirmed, apply at most one ledger transition.

Delete is the one exception to (3)-(4): the counter is released before the
record is removed, so a crash in between leaves the counter understated
(fixable by reconcile_counters) rather than overstated.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from ..core.errors import NotFoundError, RolePermissionError, ValidationError
from ..core.ports import WorkloadRepo
from ..planning.recommender import AssignmentRecommender
from .ledger import (
    Created,
    Deleted,
    EnteredTerminal,
    LeftTerminal,
    Reassigned,
    TaskTransition,
    WorkloadLedger,
)
from .task_models import (
    Group,
    Member,
    MemberRole,
    Priority,
    Task,
    TaskFilter,
    TaskInput,
    TaskStatus,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()

TimeEstimator = Callable[[str, str], str]


@dataclass(slots=True)
class TaskChanges:
    """Partial update; fields left as _UNSET are not touched. assignee_id=None unassigns."""

    title: Any = _UNSET
    description: Any = _UNSET
    priority: Any = _UNSET
    status: Any = _UNSET
    assignee_id: Any = _UNSET
    start_time: Any = _UNSET
    end_time: Any = _UNSET
    estimated_time: Any = _UNSET
    location: Any = _UNSET
    tags: Any = _UNSET

    def provided(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in self.__dataclass_fields__
            if getattr(self, name) is not _UNSET
        }


@dataclass(frozen=True, slots=True)
class CounterChange:
    member_id: str
    before: int
    after: int


@dataclass(slots=True)
class ReconcileReport:
    members_scanned: int = 0
    changes: list[CounterChange] = field(default_factory=list)

    @property
    def members_fixed(self) -> int:
        return len(self.changes)


def ledger_transition_for(
        old_assignee: str | None,
        old_status: TaskStatus,
        new_assignee: str | None,
        new_status: TaskStatus,
) -> TaskTransition | None:
    """
    Map a task's before/after (assignee, status) onto zero or one ledger transition.

    Only non-terminal tasks count, so a change that never crosses the terminal
    boundary and keeps the assignee produces nothing.
    """
    if not old_status.is_terminal and not new_status.is_terminal:
        if old_assignee == new_assignee:
            return None
        return Reassigned(old=old_assignee, new=new_assignee)

    if not old_status.is_terminal and new_status.is_terminal:
        # The old assignee held the count; whoever owns the finished task now does not.
        return EnteredTerminal(assignee=old_assignee)

    if old_status.is_terminal and not new_status.is_terminal:
        return LeftTerminal(assignee=new_assignee)

    return None


def _check_time_window(start: float | None, end: float | None) -> None:
    if start is not None and end is not None and end <= start:
        raise ValidationError("End time must be after start time")


class TaskCoordinator:
    def __init__(
        self,
        repo: WorkloadRepo,
        ledger: WorkloadLedger,
        recommender: AssignmentRecommender,
        *,
        time_estimator: TimeEstimator | None = None,
    ) -> None:
        self._repo = repo
        self._ledger = ledger
        self._recommender = recommender
        self._time_estimator = time_estimator

    @property
    def ledger(self) -> WorkloadLedger:
        return self._ledger

    # ---- lookups / permission checks ----

    def _require_group(self, group_id: str) -> Group:
        group = self._repo.get_group(group_id)
        if group is None:
            raise NotFoundError("Group", group_id)
        return group

    def _require_task(self, task_id: str) -> Task:
        task = self._repo.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    def _require_member_in_group(self, member_id: str, group_id: str) -> Member:
        member = self._repo.get_member(member_id)
        if member is None or member.group_id != group_id:
            raise NotFoundError("Member", member_id)
        return member

    def _check_actor(self, group_id: str, actor_id: str | None, *, admin: bool = False, action: str = "") -> None:
        """actor_id=None means a trusted internal caller (sweeps, scripts)."""
        if actor_id is None:
            return
        actor = self._repo.get_member(actor_id)
        if actor is None or actor.group_id != group_id:
            raise RolePermissionError("You are not a member of this group")
        if admin and not actor.is_admin:
            raise RolePermissionError(f"Only group admins can {action or 'do this'}")

    # ---- groups / members ----

    def create_group(
        self,
        name: str,
        *,
        admin_name: str,
        admin_email: str,
        description: str = "",
    ) -> tuple[Group, Member]:
        """Create a group together with its first (admin) member."""
        if not name or not name.strip():
            raise ValidationError("Group name is required")
        group_id = self._repo.add_group(name=name, description=description)
        admin_id = self._repo.add_member(
            group_id=group_id, name=admin_name, email=admin_email, role=MemberRole.ADMIN
        )
        logger.info("Group created id=%s admin=%s", group_id, admin_id)
        return self._require_group(group_id), self._require_member_in_group(admin_id, group_id)

    def add_member(
        self,
        group_id: str,
        *,
        name: str,
        email: str,
        role: MemberRole = MemberRole.MEMBER,
        availability: int = 100,
        actor_id: str | None = None,
    ) -> Member:
        self._require_group(group_id)
        self._check_actor(group_id, actor_id, admin=True, action="add members")
        if not name or not name.strip() or not email or not email.strip():
            raise ValidationError("Member name and email are required")
        if self._repo.find_member_by_email(group_id, email) is not None:
            raise ValidationError("Member already exists in this group")

        member_id = self._repo.add_member(
            group_id=group_id, name=name, email=email, role=role, availability=availability
        )
        logger.info("Member added id=%s group=%s", member_id, group_id)
        return self._require_member_in_group(member_id, group_id)

    def remove_member(self, member_id: str, *, actor_id: str | None = None) -> None:
        """
        Remove a member. Admins remove others; a regular member may remove
        themselves (leave). Admins cannot leave their own group.
        Tasks still assigned to the member keep the reference but no longer count.
        """
        member = self._repo.get_member(member_id)
        if member is None:
            raise NotFoundError("Member", member_id)

        if actor_id == member_id:
            if member.is_admin:
                raise RolePermissionError(
                    "Admins cannot leave their own group. Another admin can remove you instead."
                )
        else:
            self._check_actor(member.group_id, actor_id, admin=True, action="remove members")

        self._repo.remove_member(member_id)
        self._ledger.clear_flags({member_id})
        logger.info("Member removed id=%s group=%s", member_id, member.group_id)

    def list_members(self, group_id: str) -> list[Member]:
        self._require_group(group_id)
        return self._repo.list_members(group_id)

    def list_tasks(
        self,
        *,
        group_id: str | None = None,
        assignee_id: str | None = None,
        include_done: bool = True,
    ) -> list[Task]:
        return self._repo.list_tasks(
            TaskFilter(group_id=group_id, assignee_id=assignee_id, exclude_terminal=not include_done)
        )

    # ---- assignment ----

    def recommend(self, task_description: str, group_id: str) -> Member:
        self._require_group(group_id)
        roster = self._repo.list_members(group_id)
        if not roster:
            raise ValidationError("No members found in this group. Please add members first.")
        return self._recommender.recommend(task_description, roster)

    # ---- task lifecycle ----

    def create_task(self, task_input: TaskInput, *, actor_id: str | None = None) -> Task:
        self._require_group(task_input.group_id)
        self._check_actor(task_input.group_id, actor_id)

        if not task_input.title or not task_input.title.strip():
            raise ValidationError("Task title is required")
        _check_time_window(task_input.start_time, task_input.end_time)

        if task_input.assignee_id:
            assignee = self._require_member_in_group(task_input.assignee_id, task_input.group_id)
        else:
            assignee = self.recommend(task_input.description or task_input.title, task_input.group_id)

        if task_input.estimated_time is None and self._time_estimator is not None:
            task_input = replace(
                task_input, estimated_time=self._time_estimator(task_input.title, task_input.description)
            )

        task_id = self._repo.add_task(task_input, assignee_id=assignee.member_id, created_by=actor_id)

        if not task_input.status.is_terminal:
            self._ledger.apply(Created(assignee=assignee.member_id))

        logger.info("Task created id=%s assignee=%s", task_id, assignee.member_id)
        return self._require_task(task_id)

    def reassign_task(self, task_id: str, new_assignee_id: str | None, *, actor_id: str | None = None) -> Task:
        return self.update_task(task_id, TaskChanges(assignee_id=new_assignee_id), actor_id=actor_id)

    def set_status(self, task_id: str, new_status: TaskStatus | str, *, actor_id: str | None = None) -> Task:
        return self.update_task(task_id, TaskChanges(status=new_status), actor_id=actor_id)

    def update_task(self, task_id: str, changes: TaskChanges, *, actor_id: str | None = None) -> Task:
        task = self._require_task(task_id)
        self._check_actor(task.group_id, actor_id)

        fields = changes.provided()

        if "status" in fields:
            try:
                fields["status"] = TaskStatus.parse(fields["status"])
            except ValueError as e:
                raise ValidationError(str(e)) from e

        if "priority" in fields:
            try:
                fields["priority"] = Priority.parse(fields["priority"])
            except ValueError as e:
                raise ValidationError(str(e)) from e

        if "title" in fields:
            if not fields["title"] or not str(fields["title"]).strip():
                raise ValidationError("Task title is required")
            fields["title"] = str(fields["title"]).strip()

        if "start_time" in fields or "end_time" in fields:
            _check_time_window(
                fields.get("start_time", task.start_time),
                fields.get("end_time", task.end_time),
            )

        if "assignee_id" in fields and not fields["assignee_id"]:
            fields["assignee_id"] = None
        if fields.get("assignee_id"):
            self._require_member_in_group(fields["assignee_id"], task.group_id)

        new_status: TaskStatus = fields.get("status", task.status)
        new_assignee: str | None = fields.get("assignee_id", task.assignee_id)

        if not self._repo.update_task_fields(task_id, **fields):
            raise NotFoundError("Task", task_id)

        transition = ledger_transition_for(task.assignee_id, task.status, new_assignee, new_status)
        if transition is not None:
            self._ledger.apply(transition)

        logger.info(
            "Task updated id=%s fields=%s transition=%s",
            task_id,
            sorted(fields),
            type(transition).__name__ if transition else None,
        )
        return self._require_task(task_id)

    def delete_task(self, task_id: str, *, actor_id: str | None = None) -> Task:
        task = self._require_task(task_id)
        self._check_actor(task.group_id, actor_id)

        self._ledger.apply(Deleted(assignee=task.assignee_id, was_terminal=task.is_terminal))
        self._repo.delete_task(task_id)

        logger.info("Task deleted id=%s", task_id)
        return task

    # ---- reconciliation ----

    def reconcile_counters(self, group_id: str | None = None, *, actor_id: str | None = None) -> ReconcileReport:
        """
        Recompute every member's counter from the non-terminal tasks assigned to it
        and overwrite the stored value. Idempotent: a second run changes nothing.
        """
        if group_id is not None:
            self._require_group(group_id)
            self._check_actor(group_id, actor_id, admin=True, action="reconcile task counts")
        elif actor_id is not None:
            raise RolePermissionError("Only internal callers can reconcile all groups")

        members = self._repo.list_members(group_id)
        open_tasks = self._repo.list_tasks(TaskFilter(group_id=group_id, exclude_terminal=True))

        actual: Counter[tuple[str, str]] = Counter(
            (t.group_id, t.assignee_id) for t in open_tasks if t.assignee_id
        )

        report = ReconcileReport(members_scanned=len(members))
        for m in members:
            expected = actual[(m.group_id, m.member_id)]
            if m.outstanding_tasks != expected:
                self._repo.set_member_counter(m.member_id, expected)
                report.changes.append(CounterChange(m.member_id, m.outstanding_tasks, expected))
                logger.info(
                    "Reconcile: member=%s counter %d -> %d", m.member_id, m.outstanding_tasks, expected
                )

        self._ledger.clear_flags({m.member_id for m in members})
        logger.info(
            "Reconcile done group=%s scanned=%d fixed=%d",
            group_id or "*",
            report.members_scanned,
            report.members_fixed,
        )
        return report
