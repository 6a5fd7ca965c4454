# src/taskhive/planning/assistant.py

"""
AI planning assistant.

Wraps the provider for the request/response features around task distribution:
- group planning chat (tasks + suggested assignees from the team's workload),
- personal planning chat,
- task title suggestions (cached),
- task time prediction.

Each request is self-contained: no conversation memory is kept between calls.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..core.errors import NotFoundError, ProviderNotConfiguredError, TaskHiveError, ValidationError
from ..core.ports import AIProvider, WorkloadRepo
from ..llm.cache import TTLCache
from ..tasks.task_models import Member, Task, TaskFilter, TaskInput
from .normalizer import SuggestedTask, TaskBatch, normalize

if TYPE_CHECKING:
    from ..tasks.coordinator import TaskCoordinator

logger = logging.getLogger(__name__)

DEFAULT_TIME_ESTIMATE = "2-3 hours"
MIN_SUGGESTION_INPUT = 3
MAX_SUGGESTIONS = 5
PLAN_CONTEXT_TASKS = 20

_NUMBERING_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")

_PLAN_JSON_FORMAT_GROUP = """{
  "explanation": "Brief analysis (max 2 sentences)",
  "tasks": [
    {
      "title": "Short task title",
      "description": "Brief description (1-2 sentences)",
      "suggestedAssignee": "member@email.com",
      "priority": "High|Medium|Low",
      "estimatedDays": 3
    }
  ]
}"""

_PLAN_JSON_FORMAT_PERSONAL = """{
  "explanation": "Brief analysis (max 2 sentences)",
  "tasks": [
    {
      "title": "Short task title",
      "description": "Brief description (1-2 sentences)",
      "priority": "High|Medium|Low",
      "estimatedDays": 3
    }
  ]
}"""


@dataclass(frozen=True, slots=True)
class MemberSnapshot:
    member_id: str
    name: str
    email: str
    role: str
    outstanding_tasks: int
    availability: int

    @classmethod
    def of(cls, m: Member) -> MemberSnapshot:
        return cls(
            member_id=m.member_id,
            name=m.name,
            email=m.email,
            role=m.role.value,
            outstanding_tasks=m.outstanding_tasks,
            availability=m.availability,
        )


@dataclass(slots=True)
class TaskPlan:
    explanation: str
    tasks: list[SuggestedTask] = field(default_factory=list)
    members: list[MemberSnapshot] = field(default_factory=list)
    repaired: bool = False

    @classmethod
    def from_batch(cls, batch: TaskBatch, members: Sequence[Member] = ()) -> TaskPlan:
        return cls(
            explanation=batch.explanation,
            tasks=list(batch.tasks),
            members=[MemberSnapshot.of(m) for m in members],
            repaired=batch.repaired,
        )


def parse_suggestion_list(text: str) -> list[str]:
    """'1. Foo\\n2. Bar' -> ['Foo', 'Bar'] (numbering and bullets removed, blanks dropped)."""
    out: list[str] = []
    for line in (text or "").splitlines():
        item = _NUMBERING_RE.sub("", line).strip().strip('"').strip()
        if item:
            out.append(item)
    return out[:MAX_SUGGESTIONS]


def build_group_plan_prompt(message: str, members: Sequence[Member], tasks: Sequence[Task]) -> str:
    by_id = {m.member_id: m for m in members}
    member_list = "\n".join(
        f"- {m.name} ({m.email}): {m.outstanding_tasks} current tasks, "
        f"{m.availability}% availability, Role: {m.role.value}"
        for m in members
    )
    task_summary = "\n".join(
        f"- {t.title} (Assigned to: {by_id[t.assignee_id].name if t.assignee_id in by_id else 'Unassigned'}, "
        f"Status: {t.status.value}, Priority: {t.priority.value})"
        for t in tasks
    )
    return (
        "You are an AI assistant helping a team manage their schedule and distribute tasks efficiently.\n\n"
        f"**Team Members:**\n{member_list}\n\n"
        f"**Current Tasks ({len(tasks)}):**\n{task_summary or 'No tasks yet'}\n\n"
        f'**User Message:**\n"{message}"\n\n'
        "**Instructions:**\n"
        "Analyze the user's message and the team's current workload. Generate 3-4 actionable tasks "
        "that would help the team. Keep descriptions concise (1-2 sentences max). For each task, "
        "recommend the best team member to assign it to based on their current workload and availability.\n\n"
        "IMPORTANT: Return ONLY valid JSON, no extra text before or after. Keep task descriptions brief.\n\n"
        f"Respond in this EXACT JSON format:\n{_PLAN_JSON_FORMAT_GROUP}"
    )


def build_personal_plan_prompt(message: str, tasks: Sequence[Task]) -> str:
    task_summary = "\n".join(
        f"- {t.title} (Status: {t.status.value}, Priority: {t.priority.value})" for t in tasks
    )
    return (
        "You are an AI assistant helping a user manage their personal schedule and tasks.\n\n"
        f"**User's Current Tasks ({len(tasks)}):**\n{task_summary or 'No tasks yet'}\n\n"
        f'**User Message:**\n"{message}"\n\n'
        "**Instructions:**\n"
        "Analyze the user's message and current workload. Generate 3-4 actionable personal tasks. "
        "Keep descriptions concise (1-2 sentences max).\n\n"
        "IMPORTANT: Return ONLY valid JSON, no extra text.\n\n"
        f"Respond in this EXACT JSON format:\n{_PLAN_JSON_FORMAT_PERSONAL}"
    )


class PlanningAssistant:
    def __init__(
        self,
        ai: AIProvider | None,
        repo: WorkloadRepo,
        *,
        suggestion_cache: TTLCache[list[str]],
        chat_timeout: float = 20.0,
        quick_timeout: float = 10.0,
    ) -> None:
        self._ai = ai
        self._repo = repo
        self._cache = suggestion_cache
        self._chat_timeout = chat_timeout
        self._quick_timeout = quick_timeout

    def _require_ai(self) -> AIProvider:
        if self._ai is None:
            raise ProviderNotConfiguredError()
        return self._ai

    # ---- planning chat ----

    def plan_group_tasks(self, group_id: str, message: str) -> TaskPlan:
        """
        Ask the provider for 3-4 tasks with suggested assignees.

        Raises ValidationError / NotFoundError for bad input, ProviderCallError
        subclasses when the provider fails, MalformedResponseError when the reply
        cannot be normalized.
        """
        if not group_id or not (message or "").strip():
            raise ValidationError("Group ID and message are required")
        ai = self._require_ai()

        if self._repo.get_group(group_id) is None:
            raise NotFoundError("Group", group_id)

        members = self._repo.list_members(group_id)
        existing = self._repo.list_tasks(TaskFilter(group_id=group_id, limit=PLAN_CONTEXT_TASKS))

        prompt = build_group_plan_prompt(message.strip(), members, existing)
        raw = ai.complete(prompt, timeout=self._chat_timeout, json_output=True)
        logger.debug("Plan raw reply: %.200s", raw)

        batch = normalize(raw)
        logger.info(
            "Group plan group=%s tasks=%d repaired=%s", group_id, len(batch.tasks), batch.repaired
        )
        return TaskPlan.from_batch(batch, members)

    def plan_personal_tasks(self, message: str, existing_tasks: Sequence[Task] = ()) -> TaskPlan:
        if not (message or "").strip():
            raise ValidationError("Message is required")
        ai = self._require_ai()

        prompt = build_personal_plan_prompt(message.strip(), list(existing_tasks)[:PLAN_CONTEXT_TASKS])
        raw = ai.complete(prompt, timeout=self._chat_timeout, json_output=True)

        batch = normalize(raw)
        logger.info("Personal plan tasks=%d repaired=%s", len(batch.tasks), batch.repaired)
        return TaskPlan.from_batch(batch)

    def apply_plan(
        self,
        plan: TaskPlan,
        *,
        group_id: str,
        coordinator: TaskCoordinator,
        actor_id: str | None = None,
        now: float | None = None,
    ) -> list[Task]:
        """
        Create the planned tasks. A suggestedAssignee that is not on the roster is
        ignored and the recommender picks instead.
        """
        start = time.time() if now is None else now
        created: list[Task] = []
        for st in plan.tasks:
            assignee_id = None
            if st.suggested_assignee:
                member = self._repo.find_member_by_email(group_id, st.suggested_assignee)
                if member is not None:
                    assignee_id = member.member_id
                else:
                    logger.info("Plan assignee %s is not in group=%s; recommending", st.suggested_assignee, group_id)

            days = st.estimated_days
            task_input = TaskInput(
                group_id=group_id,
                title=st.title,
                description=st.description,
                assignee_id=assignee_id,
                priority=st.priority,
                start_time=start,
                end_time=start + days * 86400.0,
                estimated_time=f"{days} day{'s' if days != 1 else ''}",
            )
            created.append(coordinator.create_task(task_input, actor_id=actor_id))
        return created

    # ---- quick helpers ----

    def suggest_task_titles(self, text: str) -> list[str]:
        """Up to 5 related task titles. Short input, no provider or any failure -> []."""
        key = (text or "").strip().lower()
        if len(key) < MIN_SUGGESTION_INPUT or self._ai is None:
            return []

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Suggestions cache hit for %r", key)
            return list(cached)

        prompt = f'Suggest 5 related task names for: "{text.strip()}". Format as a numbered list.'
        try:
            reply = self._ai.complete(prompt, timeout=self._quick_timeout)
        except TaskHiveError as e:
            logger.info("Suggestions unavailable: %s", e)
            return []

        suggestions = parse_suggestion_list(reply)
        if suggestions:
            self._cache.set(key, suggestions)
        return list(suggestions)

    def predict_task_time(self, title: str, description: str = "") -> str:
        """One-line duration estimate; DEFAULT_TIME_ESTIMATE whenever the provider can't answer."""
        if self._ai is None:
            return DEFAULT_TIME_ESTIMATE

        prompt = (
            "Estimate the time required to complete this task in hours and minutes "
            "(answer in one line only):\n"
            f"Title: {title}\n"
            f"Description: {description}"
        )
        try:
            reply = self._ai.complete(prompt, timeout=self._quick_timeout)
        except TaskHiveError as e:
            logger.info("Time prediction unavailable: %s", e)
            return DEFAULT_TIME_ESTIMATE

        line = next((ln.strip() for ln in (reply or "").splitlines() if ln.strip()), "")
        return line or DEFAULT_TIME_ESTIMATE
