# tests/test_normalizer.py

from __future__ import annotations

import json

import pytest

from taskhive.core.errors import MalformedResponseError
from taskhive.planning.normalizer import (
    DEFAULT_EXPLANATION,
    MAX_ESTIMATED_DAYS,
    normalize,
    repair_truncated_json,
)
from taskhive.tasks.task_models import Priority

_VALID = {
    "explanation": "Bob is least loaded.",
    "tasks": [
        {
            "title": "Set up CI",
            "description": "Add a pipeline.",
            "suggestedAssignee": "bob@example.com",
            "priority": "High",
            "estimatedDays": 2,
        },
        {
            "title": "Write docs",
            "description": "Usage guide {with braces}.",
            "priority": "low",
            "estimatedDays": 1,
        },
    ],
}


def test_valid_json_is_parsed_without_repair() -> None:
    batch = normalize(json.dumps(_VALID))

    assert batch.repaired is False
    assert batch.explanation == "Bob is least loaded."
    assert [t.title for t in batch.tasks] == ["Set up CI", "Write docs"]
    assert batch.tasks[0].priority is Priority.HIGH
    assert batch.tasks[0].suggested_assignee == "bob@example.com"
    assert batch.tasks[1].priority is Priority.LOW
    assert batch.tasks[1].suggested_assignee is None


def test_markdown_fenced_reply_is_unwrapped() -> None:
    raw = "```json\n" + json.dumps(_VALID) + "\n```"
    batch = normalize(raw)

    assert batch.repaired is True
    assert len(batch.tasks) == 2


def test_truncated_inside_last_task_drops_partial_task() -> None:
    full = json.dumps(_VALID)
    cut = full[: full.index('"Usage guide') + 8]  # ends inside the second task's description

    batch = normalize(cut)

    assert batch.repaired is True
    assert [t.title for t in batch.tasks] == ["Set up CI"]


def test_truncated_inside_first_task_gives_empty_batch() -> None:
    raw = '{"explanation": "ok", "tasks": [{"title": "Half'
    batch = normalize(raw)

    assert batch.repaired is True
    assert batch.explanation == "ok"
    assert batch.tasks == []


def test_braces_inside_strings_do_not_confuse_repair() -> None:
    raw = '{"explanation": "use {x} and [y]", "tasks": [{"title": "A }]", "estimatedDays": 1}, {"title": "B'
    fixed = repair_truncated_json(raw)

    assert fixed is not None
    data = json.loads(fixed)
    assert [t["title"] for t in data["tasks"]] == ["A }]"]


def test_missing_tasks_field_gives_empty_batch() -> None:
    batch = normalize('{"explanation": ""}')

    assert batch.tasks == []
    assert batch.explanation == DEFAULT_EXPLANATION


def test_missing_priority_defaults_to_medium() -> None:
    batch = normalize('{"tasks": [{"title": "T", "estimatedDays": "3"}]}')

    assert batch.tasks[0].priority is Priority.MEDIUM
    assert batch.tasks[0].estimated_days == 3
    assert batch.tasks[0].description == ""


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "Sorry, I cannot help with that.",
        '{"tasks": [{"title": "T", "priority": "Whenever", "estimatedDays": 1}]}',
        '{"tasks": [{"title": "", "estimatedDays": 1}]}',
        '{"tasks": [{"title": "T", "estimatedDays": 0}]}',
        '{"tasks": [{"title": "T", "estimatedDays": true}]}',
        '{"tasks": [{"title": "T", "estimatedDays": "²"}]}',
        '{"tasks": [{"title": "T", "estimatedDays": 366}]}',
        '{"tasks": [{"title": "T", "estimatedDays": "1' + "0" * 400 + '"}]}',
        '{"tasks": [{"title": "T", "estimatedDays": 1e300}]}',
        '{"tasks": [{"title": "T", "estimatedDays": 1, "suggestedAssignee": "Bob"}]}',
        '{"tasks": {"title": "T"}}',
        "[1, 2, 3]",
        '{"tasks": [}',
    ],
)
def test_invalid_replies_raise_malformed(raw: str) -> None:
    with pytest.raises(MalformedResponseError):
        normalize(raw)


def test_malformed_error_keeps_raw_text() -> None:
    with pytest.raises(MalformedResponseError) as ei:
        normalize("not json at all")
    assert ei.value.raw_text == "not json at all"


def test_estimated_days_upper_bound_is_accepted() -> None:
    batch = normalize(json.dumps({"tasks": [{"title": "T", "estimatedDays": str(MAX_ESTIMATED_DAYS)}]}))

    assert batch.tasks[0].estimated_days == MAX_ESTIMATED_DAYS


@pytest.mark.parametrize(
    "raw",
    [
        '{"explanation": "x", "tasks": [' + "[" * 5000,
        '{"tasks": [' + "[" * 5000 + "]" * 5000 + "]}",
    ],
)
def test_deeply_nested_reply_raises_malformed(raw: str) -> None:
    with pytest.raises(MalformedResponseError) as ei:
        normalize(raw)
    assert ei.value.raw_text == raw


def test_fence_inside_a_string_value_is_kept() -> None:
    payload = {
        "explanation": "ok",
        "tasks": [{"title": "Build", "description": "Run ```bash make``` twice", "estimatedDays": 1}],
    }
    batch = normalize("```json\n" + json.dumps(payload) + "\n```")

    assert batch.repaired is True
    assert batch.tasks[0].description == "Run ```bash make``` twice"
