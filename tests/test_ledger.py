# tests/test_ledger.py

from __future__ import annotations

import logging

import pytest

from taskhive.tasks.ledger import (
    Created,
    Deleted,
    EnteredTerminal,
    LeftTerminal,
    Reassigned,
    WorkloadLedger,
)
from taskhive.tasks.task_store import TaskStore


def _counter(store: TaskStore, member_id: str) -> int:
    m = store.get_member(member_id)
    assert m is not None
    return m.outstanding_tasks


@pytest.fixture()
def members(store: TaskStore) -> tuple[str, str]:
    gid = store.add_group(name="G")
    a = store.add_member(group_id=gid, name="A", email="a@example.com")
    b = store.add_member(group_id=gid, name="B", email="b@example.com")
    return a, b


def test_transitions_move_counters(store: TaskStore, members: tuple[str, str]) -> None:
    a, b = members
    ledger = WorkloadLedger(store)

    ledger.apply(Created(a))
    ledger.apply(Created(a))
    assert _counter(store, a) == 2

    ledger.apply(Reassigned(a, b))
    assert (_counter(store, a), _counter(store, b)) == (1, 1)

    ledger.apply(Reassigned(b, b))
    assert _counter(store, b) == 1

    ledger.apply(EnteredTerminal(b))
    assert _counter(store, b) == 0
    ledger.apply(LeftTerminal(b))
    assert _counter(store, b) == 1

    ledger.apply(Deleted(b, was_terminal=True))
    assert _counter(store, b) == 1
    ledger.apply(Deleted(b, was_terminal=False))
    assert _counter(store, b) == 0
    assert ledger.violations == []


def test_floor_clamp_logs_violation_and_does_not_raise(
    store: TaskStore, members: tuple[str, str], caplog: pytest.LogCaptureFixture
) -> None:
    a, _ = members
    ledger = WorkloadLedger(store)

    with caplog.at_level(logging.WARNING, logger="taskhive.tasks.ledger"):
        ledger.apply(EnteredTerminal(a))

    assert _counter(store, a) == 0
    assert "Consistency violation" in caplog.text
    [v] = ledger.violations
    assert v.member_id == a
    assert v.counter_before == 0
    assert v.attempted_delta == -1
    assert ledger.flagged_members() == {a}

    ledger.clear_flags()
    assert ledger.flagged_members() == set()


def test_unassigned_and_removed_members_are_skipped(store: TaskStore, members: tuple[str, str]) -> None:
    a, _ = members
    ledger = WorkloadLedger(store)

    ledger.apply(Created(None))
    store.remove_member(a)
    ledger.apply(Deleted(a, was_terminal=False))

    assert ledger.violations == []


def test_unknown_transition_is_a_type_error(store: TaskStore) -> None:
    with pytest.raises(TypeError):
        WorkloadLedger(store).apply("created")  # type: ignore[arg-type]
