# src/taskhive/planning/normalizer.py

"""
Structured response normalizer.

Turns the AI's text reply into a TaskBatch:
- strict JSON parse first,
- on failure: strip markdown fences, cut a truncated reply back to the last
  complete task of the "tasks" array and close whatever is still open,
- validate every task; anything that does not fit raises MalformedResponseError.

Nothing else escapes normalize(): a caller either gets a batch it can trust or a
MalformedResponseError it can turn into "please rephrase / ask for fewer tasks".
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from ..core.errors import MalformedResponseError
from ..tasks.task_models import Priority

logger = logging.getLogger(__name__)

DEFAULT_EXPLANATION = "Tasks generated successfully"
MAX_ESTIMATED_DAYS = 365

_LEADING_FENCE_RE = re.compile(r"\A\s*```[a-zA-Z]*")
_TRAILING_FENCE_RE = re.compile(r"```\s*\Z")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_OPENERS = {"{": "}", "[": "]"}

# Stack shape while scanning the elements of the top-level "tasks" array.
_TASKS_ARRAY_DEPTH = ["{", "["]


@dataclass(frozen=True, slots=True)
class SuggestedTask:
    title: str
    description: str
    priority: Priority
    estimated_days: int
    suggested_assignee: str | None = None


@dataclass(slots=True)
class TaskBatch:
    explanation: str
    tasks: list[SuggestedTask] = field(default_factory=list)
    repaired: bool = False


def _strip_fences(text: str) -> str:
    text = _LEADING_FENCE_RE.sub("", text, count=1)
    return _TRAILING_FENCE_RE.sub("", text, count=1).strip()


def repair_truncated_json(text: str) -> str | None:
    """
    Best-effort repair of a cut-off JSON object.

    The scan tracks nesting outside of string literals. If the text ends while
    still inside the top-level array, everything after its last complete element
    is discarded (the partial task is dropped) and the open containers are closed
    in nesting order. Returns None when the text cannot be repaired this way.
    """
    s = _strip_fences(text)
    start = s.find("{")
    if start == -1:
        return None
    s = s[start:]

    stack: list[str] = []
    in_string = False
    escape = False
    safe_cut: int | None = None

    for i, ch in enumerate(s):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            stack.append(ch)
            if stack == _TASKS_ARRAY_DEPTH:
                safe_cut = i + 1
        elif ch in "}]":
            if not stack or _OPENERS[stack[-1]] != ch:
                return None
            stack.pop()
            if stack == _TASKS_ARRAY_DEPTH:
                safe_cut = i + 1
            if not stack:
                # Complete top-level object; drop anything trailing it.
                return s[: i + 1]

    if stack[:2] == _TASKS_ARRAY_DEPTH and safe_cut is not None:
        head = s[:safe_cut].rstrip().rstrip(",")
        return head + "]}"

    if stack == ["{"] and not in_string:
        return s.rstrip().rstrip(",") + "}"

    return None


def _parse_estimated_days(raw: Any, idx: int) -> int:
    invalid = MalformedResponseError(
        f"Task {idx}: estimatedDays must be an integer between 1 and {MAX_ESTIMATED_DAYS}"
    )
    if isinstance(raw, bool):
        raise invalid
    if isinstance(raw, int):
        days = raw
    elif isinstance(raw, float) and raw.is_integer():
        days = int(raw)
    elif isinstance(raw, str) and raw.strip().isdecimal():
        try:
            days = int(raw.strip())
        except ValueError as e:
            # int() refuses digit strings past the interpreter's conversion limit.
            raise invalid from e
    else:
        raise invalid
    if not 1 <= days <= MAX_ESTIMATED_DAYS:
        raise invalid
    return days


def _build_task(raw: Any, idx: int) -> SuggestedTask:
    if not isinstance(raw, dict):
        raise MalformedResponseError(f"Task {idx} is not an object")

    title = raw.get("title")
    if not isinstance(title, str) or not title.strip():
        raise MalformedResponseError(f"Task {idx} has no title")

    description = raw.get("description", "")
    if description is None:
        description = ""
    if not isinstance(description, str):
        raise MalformedResponseError(f"Task {idx}: description must be a string")

    try:
        priority = Priority.parse(raw.get("priority"))
    except ValueError as e:
        raise MalformedResponseError(f"Task {idx}: {e}") from e

    estimated_days = _parse_estimated_days(raw.get("estimatedDays"), idx)

    assignee = raw.get("suggestedAssignee")
    if assignee is not None:
        if not isinstance(assignee, str):
            raise MalformedResponseError(f"Task {idx}: suggestedAssignee must be an email")
        assignee = assignee.strip() or None
        if assignee is not None and not _EMAIL_RE.match(assignee):
            raise MalformedResponseError(f"Task {idx}: suggestedAssignee must be an email")

    return SuggestedTask(
        title=title.strip(),
        description=description.strip(),
        priority=priority,
        estimated_days=estimated_days,
        suggested_assignee=assignee,
    )


def _build_batch(data: Any, *, repaired: bool, raw_text: str) -> TaskBatch:
    if not isinstance(data, dict):
        raise MalformedResponseError("AI response is not a JSON object", raw_text=raw_text)

    explanation = data.get("explanation")
    if not isinstance(explanation, str) or not explanation.strip():
        explanation = DEFAULT_EXPLANATION

    raw_tasks = data.get("tasks")
    if raw_tasks is None:
        raw_tasks = []
    if not isinstance(raw_tasks, list):
        raise MalformedResponseError("AI response field 'tasks' is not a list", raw_text=raw_text)

    try:
        tasks = [_build_task(t, i) for i, t in enumerate(raw_tasks, start=1)]
    except MalformedResponseError as e:
        raise MalformedResponseError(str(e), raw_text=raw_text) from e

    return TaskBatch(explanation=explanation.strip(), tasks=tasks, repaired=repaired)


def normalize(raw_text: str | None) -> TaskBatch:
    text = (raw_text or "").strip()
    if not text:
        raise MalformedResponseError("AI response was empty", raw_text="")

    try:
        data = json.loads(text)
    except RecursionError as e:
        logger.warning("AI response nested too deeply to parse: %.200s", text)
        raise MalformedResponseError("AI response was incomplete or invalid", raw_text=text) from e
    except json.JSONDecodeError as e:
        logger.info("AI response is not valid JSON (%s); attempting repair", e.msg)
        fixed = repair_truncated_json(text)
        if fixed is None:
            logger.warning("AI response could not be repaired: %.200s", text)
            raise MalformedResponseError("AI response was incomplete or invalid", raw_text=text) from e
        try:
            data = json.loads(fixed)
        except (json.JSONDecodeError, RecursionError) as e2:
            logger.warning("Repaired AI response still invalid (%s): %.200s", e2, fixed)
            raise MalformedResponseError("AI response was incomplete or invalid", raw_text=text) from e2
        logger.info("AI response repaired (%d -> %d chars)", len(text), len(fixed))
        return _build_batch(data, repaired=True, raw_text=text)

    return _build_batch(data, repaired=False, raw_text=text)
