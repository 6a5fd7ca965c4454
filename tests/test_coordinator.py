# tests/test_coordinator.py

from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from taskhive.core.errors import NotFoundError, RolePermissionError, ValidationError
from taskhive.planning.recommender import AssignmentRecommender
from taskhive.tasks.coordinator import TaskChanges, TaskCoordinator, ledger_transition_for
from taskhive.tasks.ledger import EnteredTerminal, LeftTerminal, Reassigned, WorkloadLedger
from taskhive.tasks.task_models import MemberRole, TaskInput, TaskStatus
from taskhive.tasks.task_store import TaskStore

from .fakes import FakeAIProvider


def _counts(store: TaskStore, team: SimpleNamespace) -> dict[str, int]:
    out = {}
    for key in ("alice", "bob", "carol"):
        m = store.get_member(getattr(team, key).member_id)
        out[key] = m.outstanding_tasks if m else -1
    return out


def _new(team: SimpleNamespace, title: str = "Task", assignee=None, **kw) -> TaskInput:
    return TaskInput(group_id=team.group.group_id, title=title, assignee_id=assignee, **kw)


def test_full_lifecycle_returns_every_counter_to_zero(coordinator, store, team) -> None:
    t = coordinator.create_task(_new(team, assignee=team.bob.member_id))
    assert _counts(store, team) == {"alice": 0, "bob": 1, "carol": 0}

    coordinator.reassign_task(t.id, team.carol.member_id)
    assert _counts(store, team) == {"alice": 0, "bob": 0, "carol": 1}

    coordinator.set_status(t.id, TaskStatus.IN_PROGRESS)
    coordinator.set_status(t.id, "Review")
    assert _counts(store, team)["carol"] == 1

    coordinator.set_status(t.id, TaskStatus.DONE)
    assert _counts(store, team)["carol"] == 0

    coordinator.set_status(t.id, TaskStatus.OPEN)
    assert _counts(store, team)["carol"] == 1

    coordinator.delete_task(t.id)
    assert _counts(store, team) == {"alice": 0, "bob": 0, "carol": 0}
    assert store.get_task(t.id) is None

    report = coordinator.reconcile_counters(team.group.group_id)
    assert report.members_scanned == 3
    assert report.members_fixed == 0
    assert coordinator.ledger.violations == []


def test_marking_done_twice_decrements_once(coordinator, store, team) -> None:
    t = coordinator.create_task(_new(team, assignee=team.bob.member_id))
    coordinator.create_task(_new(team, "Other", assignee=team.bob.member_id))

    coordinator.set_status(t.id, TaskStatus.DONE)
    coordinator.set_status(t.id, "completed")

    assert _counts(store, team)["bob"] == 1
    assert coordinator.ledger.violations == []


def test_reassign_to_same_member_is_noop(coordinator, store, team) -> None:
    t = coordinator.create_task(_new(team, assignee=team.bob.member_id))
    coordinator.reassign_task(t.id, team.bob.member_id)
    assert _counts(store, team)["bob"] == 1


def test_reassigning_a_done_task_moves_no_counters(coordinator, store, team) -> None:
    t = coordinator.create_task(_new(team, assignee=team.bob.member_id))
    coordinator.set_status(t.id, TaskStatus.DONE)

    coordinator.reassign_task(t.id, team.carol.member_id)

    assert _counts(store, team) == {"alice": 0, "bob": 0, "carol": 0}
    assert store.get_task(t.id).assignee_id == team.carol.member_id
    assert coordinator.ledger.violations == []


def test_deleting_done_tasks_never_goes_negative(coordinator, store, team) -> None:
    ids = [coordinator.create_task(_new(team, f"T{i}", assignee=team.bob.member_id)).id for i in range(2)]
    for task_id in ids:
        coordinator.set_status(task_id, TaskStatus.DONE)
    for task_id in ids:
        coordinator.delete_task(task_id)

    assert _counts(store, team)["bob"] == 0
    assert coordinator.ledger.violations == []


def test_creating_a_done_task_does_not_count(coordinator, store, team) -> None:
    coordinator.create_task(_new(team, assignee=team.bob.member_id, status=TaskStatus.DONE))
    assert _counts(store, team)["bob"] == 0


def test_drifted_counter_is_clamped_flagged_and_reconciled(coordinator, store, team, caplog) -> None:
    t = coordinator.create_task(_new(team, assignee=team.bob.member_id))
    coordinator.create_task(_new(team, "Second", assignee=team.bob.member_id))
    store.set_member_counter(team.bob.member_id, 0)  # simulate a lost increment

    with caplog.at_level(logging.WARNING, logger="taskhive.tasks.ledger"):
        coordinator.set_status(t.id, TaskStatus.DONE)

    assert _counts(store, team)["bob"] == 0
    assert "Consistency violation" in caplog.text
    assert coordinator.ledger.flagged_members() == {team.bob.member_id}

    report = coordinator.reconcile_counters(team.group.group_id, actor_id=team.alice.member_id)

    assert report.members_fixed == 1
    [change] = report.changes
    assert (change.member_id, change.before, change.after) == (team.bob.member_id, 0, 1)
    assert _counts(store, team)["bob"] == 1
    assert coordinator.ledger.flagged_members() == set()

    again = coordinator.reconcile_counters(team.group.group_id)
    assert again.members_fixed == 0


def test_overstated_counter_is_reconciled_down(coordinator, store, team) -> None:
    coordinator.create_task(_new(team, assignee=team.carol.member_id))
    store.set_member_counter(team.carol.member_id, 5)

    report = coordinator.reconcile_counters()

    assert [(c.before, c.after) for c in report.changes] == [(5, 1)]


def test_recommender_fallback_spreads_load_in_roster_order(coordinator, store, team) -> None:
    picked = [coordinator.create_task(_new(team, f"T{i}")).assignee_id for i in range(4)]

    assert picked == [
        team.alice.member_id,
        team.bob.member_id,
        team.carol.member_id,
        team.alice.member_id,
    ]
    assert _counts(store, team) == {"alice": 2, "bob": 1, "carol": 1}


def test_recommender_uses_provider_choice(coordinator, ai: FakeAIProvider, team) -> None:
    ai.replies.append("Carol")
    t = coordinator.create_task(_new(team, "Design review", description="Review the API design"))

    assert t.assignee_id == team.carol.member_id
    assert "Review the API design" in ai.calls[0].prompt


def test_create_task_fills_estimate(store, ledger, team) -> None:
    coordinator = TaskCoordinator(
        store,
        ledger,
        AssignmentRecommender(None),
        time_estimator=lambda title, description: f"1 hour for {title}",
    )
    t = coordinator.create_task(_new(team, "Deploy", assignee=team.bob.member_id))
    assert t.estimated_time == "1 hour for Deploy"

    t2 = coordinator.create_task(_new(team, "Fixed", assignee=team.bob.member_id, estimated_time="3 days"))
    assert t2.estimated_time == "3 days"


def test_combined_update_reassign_and_complete(coordinator, store, team) -> None:
    t = coordinator.create_task(_new(team, assignee=team.bob.member_id))

    updated = coordinator.update_task(
        t.id,
        TaskChanges(title="Renamed", assignee_id=team.carol.member_id, status="Done", tags=["x"]),
    )

    assert updated.title == "Renamed"
    assert updated.tags == ["x"]
    assert updated.status is TaskStatus.DONE
    assert _counts(store, team) == {"alice": 0, "bob": 0, "carol": 0}

    coordinator.update_task(t.id, TaskChanges(status="Open", assignee_id=team.alice.member_id))
    assert _counts(store, team) == {"alice": 1, "bob": 0, "carol": 0}
    assert coordinator.reconcile_counters().members_fixed == 0


def test_unassign_releases_counter(coordinator, store, team) -> None:
    t = coordinator.create_task(_new(team, assignee=team.bob.member_id))
    updated = coordinator.update_task(t.id, TaskChanges(assignee_id=""))

    assert updated.assignee_id is None
    assert _counts(store, team)["bob"] == 0


def test_member_removed_with_open_task_is_skipped(coordinator, store, team) -> None:
    t = coordinator.create_task(_new(team, assignee=team.bob.member_id))
    coordinator.remove_member(team.bob.member_id, actor_id=team.alice.member_id)

    coordinator.set_status(t.id, TaskStatus.DONE)

    assert coordinator.ledger.violations == []
    assert store.get_task(t.id).assignee_id == team.bob.member_id


@pytest.mark.parametrize(
    ("old_status", "new_status", "old", "new", "expected"),
    [
        (TaskStatus.OPEN, TaskStatus.REVIEW, "a", "a", None),
        (TaskStatus.OPEN, TaskStatus.OPEN, "a", "b", Reassigned("a", "b")),
        (TaskStatus.REVIEW, TaskStatus.DONE, "a", "b", EnteredTerminal("a")),
        (TaskStatus.DONE, TaskStatus.READY, "a", "b", LeftTerminal("b")),
        (TaskStatus.DONE, TaskStatus.DONE, "a", "b", None),
    ],
)
def test_ledger_transition_for(old_status, new_status, old, new, expected) -> None:
    assert ledger_transition_for(old, old_status, new, new_status) == expected


# ---- validation / permissions ----


def test_validation_errors(coordinator, team) -> None:
    with pytest.raises(ValidationError):
        coordinator.create_task(_new(team, "   "))
    with pytest.raises(ValidationError):
        coordinator.create_task(_new(team, "Window", start_time=200.0, end_time=100.0))

    t = coordinator.create_task(_new(team, assignee=team.bob.member_id, start_time=100.0, end_time=200.0))
    with pytest.raises(ValidationError):
        coordinator.update_task(t.id, TaskChanges(end_time=50.0))
    with pytest.raises(ValidationError):
        coordinator.set_status(t.id, "Blocked")
    with pytest.raises(ValidationError):
        coordinator.update_task(t.id, TaskChanges(priority="Whenever"))
    with pytest.raises(ValidationError):
        coordinator.add_member(team.group.group_id, name="Bob 2", email="BOB@example.com")


def test_not_found_errors(coordinator, team) -> None:
    with pytest.raises(NotFoundError):
        coordinator.set_status("TASK-missing", TaskStatus.DONE)
    with pytest.raises(NotFoundError):
        coordinator.delete_task("TASK-missing")

    _, outsider = coordinator.create_group("Other", admin_name="Olga", admin_email="olga@example.com")
    t = coordinator.create_task(_new(team, assignee=team.bob.member_id))
    with pytest.raises(NotFoundError):
        coordinator.reassign_task(t.id, outsider.member_id)


def test_empty_group_cannot_auto_assign(coordinator, store, team) -> None:
    for m in (team.alice, team.bob, team.carol):
        store.remove_member(m.member_id)

    with pytest.raises(ValidationError, match="No members found"):
        coordinator.create_task(_new(team, "Orphan"))


def test_role_checks(coordinator, team) -> None:
    gid = team.group.group_id

    with pytest.raises(RolePermissionError):
        coordinator.add_member(gid, name="Dan", email="dan@example.com", actor_id=team.bob.member_id)
    with pytest.raises(RolePermissionError):
        coordinator.remove_member(team.carol.member_id, actor_id=team.bob.member_id)
    with pytest.raises(RolePermissionError):
        coordinator.remove_member(team.alice.member_id, actor_id=team.alice.member_id)
    with pytest.raises(RolePermissionError):
        coordinator.reconcile_counters(gid, actor_id=team.bob.member_id)
    with pytest.raises(RolePermissionError):
        coordinator.reconcile_counters(None, actor_id=team.alice.member_id)

    _, outsider = coordinator.create_group("Other", admin_name="Olga", admin_email="olga@example.com")
    with pytest.raises(RolePermissionError):
        coordinator.create_task(_new(team, "Sneaky"), actor_id=outsider.member_id)

    # Members may work on tasks and leave the group themselves.
    t = coordinator.create_task(_new(team, assignee=team.bob.member_id), actor_id=team.bob.member_id)
    coordinator.set_status(t.id, TaskStatus.DONE, actor_id=team.bob.member_id)
    coordinator.remove_member(team.carol.member_id, actor_id=team.carol.member_id)
    assert [m.name for m in coordinator.list_members(gid)] == ["Alice", "Bob"]


def test_admin_leaving_is_refused_but_another_admin_can_remove_them(coordinator, team) -> None:
    gid = team.group.group_id
    dana = coordinator.add_member(
        gid, name="Dana", email="dana@example.com", role=MemberRole.ADMIN, actor_id=team.alice.member_id
    )

    with pytest.raises(RolePermissionError, match="Another admin can remove you"):
        coordinator.remove_member(team.alice.member_id, actor_id=team.alice.member_id)

    coordinator.remove_member(team.alice.member_id, actor_id=dana.member_id)
    assert "Alice" not in [m.name for m in coordinator.list_members(gid)]


def test_renamed_title_is_stripped(coordinator, store, team) -> None:
    t = coordinator.create_task(_new(team, "Draft", assignee=team.bob.member_id))

    coordinator.update_task(t.id, TaskChanges(title="  Final copy \n"))

    assert store.get_task(t.id).title == "Final copy"
