# src/taskhive/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Open -> (Ready | In Progress) -> Review -> Done, and Done -> anything (reopen).
    Only DONE is terminal: it is the one status that stops counting towards the
    assignee's outstanding tasks.
    """

    OPEN = "Open"
    READY = "Ready"
    IN_PROGRESS = "In Progress"
    REVIEW = "Review"
    DONE = "Done"

    @property
    def is_terminal(self) -> bool:
        return self is TaskStatus.DONE

    @classmethod
    def parse(cls, raw: str) -> TaskStatus:
        """Strict parse for caller input; accepts the personal-calendar vocabulary too."""
        key = " ".join(str(raw or "").replace("_", " ").split()).lower()
        if key in _STATUS_ALIASES:
            return _STATUS_ALIASES[key]
        raise ValueError(f"Unknown task status: {raw!r}")

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.OPEN
        try:
            return cls.parse(raw)
        except ValueError:
            return cls.OPEN


_STATUS_ALIASES: dict[str, TaskStatus] = {
    "open": TaskStatus.OPEN,
    "scheduled": TaskStatus.OPEN,
    "ready": TaskStatus.READY,
    "in progress": TaskStatus.IN_PROGRESS,
    "review": TaskStatus.REVIEW,
    "done": TaskStatus.DONE,
    "completed": TaskStatus.DONE,
}


class Priority(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @classmethod
    def parse(cls, raw: str | None) -> Priority:
        if raw is None or str(raw).strip() == "":
            return cls.MEDIUM
        key = str(raw).strip().lower()
        for p in cls:
            if p.value.lower() == key:
                return p
        # personal-calendar vocabulary
        if key == "urgent":
            return cls.CRITICAL
        raise ValueError(f"Unknown priority: {raw!r}")


class MemberRole(StrEnum):
    ADMIN = "admin"
    MEMBER = "member"


@dataclass(slots=True)
class Member:
    member_id: str
    group_id: str
    name: str
    email: str
    role: MemberRole = MemberRole.MEMBER
    availability: int = 100  # percent of capacity
    outstanding_tasks: int = 0
    added_at: float = 0.0

    @property
    def is_admin(self) -> bool:
        return self.role is MemberRole.ADMIN


@dataclass(slots=True)
class Group:
    group_id: str
    name: str
    description: str
    created_by: str | None
    created_at: float
    updated_at: float


@dataclass(slots=True)
class Task:
    id: str
    group_id: str
    title: str
    description: str
    assignee_id: str | None
    status: TaskStatus
    priority: Priority
    created_at: float
    updated_at: float

    start_time: float | None = None
    end_time: float | None = None
    estimated_time: str = ""
    location: str = ""
    tags: list[str] = field(default_factory=list)
    created_by: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(slots=True)
class TaskInput:
    """What a caller supplies to create a task. assignee_id=None asks for a recommendation."""

    group_id: str
    title: str
    description: str = ""
    assignee_id: str | None = None
    status: TaskStatus = TaskStatus.OPEN
    priority: Priority = Priority.MEDIUM
    start_time: float | None = None
    end_time: float | None = None
    estimated_time: str | None = None
    location: str = ""
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TaskFilter:
    group_id: str | None = None
    assignee_id: str | None = None
    statuses: tuple[TaskStatus, ...] | None = None
    exclude_terminal: bool = False
    limit: int | None = None


@dataclass(frozen=True, slots=True)
class CounterUpdate:
    """Result of an increment on a member's outstanding_tasks counter."""

    member_id: str
    previous: int
    current: int
    clamped: bool = False


def task_to_dict(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "group_id": task.group_id,
        "title": task.title,
        "description": task.description,
        "assignee_id": task.assignee_id,
        "status": task.status.value,
        "priority": task.priority.value,
        "start_time": task.start_time,
        "end_time": task.end_time,
        "estimated_time": task.estimated_time,
        "location": task.location,
        "tags": list(task.tags),
        "created_by": task.created_by,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }
