# src/taskhive/planning/recommender.py

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..core.errors import TaskHiveError
from ..core.ports import AIProvider
from ..tasks.task_models import Member

logger = logging.getLogger(__name__)

RECOMMEND_TIMEOUT_SECONDS = 10.0


def least_loaded(roster: Sequence[Member]) -> Member:
    """Lowest outstanding_tasks; ties go to the earlier roster entry."""
    if not roster:
        raise ValueError("roster must not be empty")
    # min() keeps the first of equal keys, which is the stable tie-break we want.
    return min(roster, key=lambda m: m.outstanding_tasks)


def build_recommendation_prompt(task_description: str, roster: Sequence[Member]) -> str:
    member_list = "\n".join(
        f"{m.name} (Email: {m.email}, Current Tasks: {m.outstanding_tasks})" for m in roster
    )
    return (
        "Based on the following task and team member information, recommend the BEST "
        "member to assign this task to. Return ONLY the member name, nothing else.\n\n"
        f"Task: {task_description}\n\n"
        f"Members:\n{member_list}"
    )


def match_member(reply: str, roster: Sequence[Member]) -> Member | None:
    """First roster member whose name appears (case-insensitively) in the reply."""
    text = (reply or "").strip().lower()
    if not text:
        return None
    for m in roster:
        name = (m.name or "").strip().lower()
        if name and name in text:
            return m
    return None


class AssignmentRecommender:
    """
    Picks an assignee for a task.

    Asks the AI provider first; when the provider is unavailable, misconfigured,
    errors out, or names nobody on the roster, falls back to the least-loaded
    member. recommend() never raises for a non-empty roster.
    """

    def __init__(self, ai: AIProvider | None, *, timeout: float = RECOMMEND_TIMEOUT_SECONDS) -> None:
        self._ai = ai
        self._timeout = timeout

    def recommend(self, task_description: str, roster: Sequence[Member]) -> Member:
        if not roster:
            raise ValueError("roster must not be empty")

        if self._ai is None:
            return least_loaded(roster)

        prompt = build_recommendation_prompt(task_description, roster)
        try:
            reply = self._ai.complete(prompt, timeout=self._timeout)
        except TaskHiveError as e:
            logger.info("Recommender: provider unavailable (%s); using least-loaded fallback", e)
            return least_loaded(roster)
        except Exception:
            logger.exception("Recommender: unexpected provider failure; using least-loaded fallback")
            return least_loaded(roster)

        matched = match_member(reply, roster)
        if matched is None:
            logger.info("Recommender: reply %.80r matched no member; using least-loaded fallback", reply)
            return least_loaded(roster)

        logger.debug("Recommender: provider picked member=%s", matched.member_id)
        return matched
