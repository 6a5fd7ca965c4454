# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskhive.llm.cache import TTLCache
from taskhive.planning.assistant import PlanningAssistant
from taskhive.planning.recommender import AssignmentRecommender
from taskhive.tasks.coordinator import TaskCoordinator
from taskhive.tasks.ledger import WorkloadLedger
from taskhive.tasks.task_store import TaskStore

from .fakes import FakeAIProvider, FakeClock


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the developer's .env.
    """
    return SimpleNamespace(
        app_name="taskhive-test",
        log_level="DEBUG",
        ai_api_key=None,
        ai_base_url="http://ai.invalid/v1/",
        ai_model="test-model",
        ai_max_attempts=3,
        ai_base_delay_seconds=2.0,
        ai_chat_timeout_seconds=20.0,
        ai_quick_timeout_seconds=10.0,
        suggestion_cache_ttl_seconds=300.0,
        suggestion_cache_max_entries=16,
        reconcile_interval_seconds=0.0,
        data_dir=tmp_path / "data",
        db_path=tmp_path / "data" / "taskhive.sqlite3",
    )


@pytest.fixture()
def store(tmp_path: Path) -> TaskStore:
    """Real SQLite store: its counter semantics are part of what we test."""
    return TaskStore(tmp_path / "taskhive.sqlite3")


@pytest.fixture()
def ai() -> FakeAIProvider:
    return FakeAIProvider()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ledger(store: TaskStore) -> WorkloadLedger:
    return WorkloadLedger(store)


@pytest.fixture()
def coordinator(store: TaskStore, ledger: WorkloadLedger, ai: FakeAIProvider) -> TaskCoordinator:
    # No time estimator: keeps the fake AI script limited to recommendations.
    return TaskCoordinator(store, ledger, AssignmentRecommender(ai, timeout=10.0))


@pytest.fixture()
def assistant(store: TaskStore, ai: FakeAIProvider, clock: FakeClock) -> PlanningAssistant:
    return PlanningAssistant(
        ai,
        store,
        suggestion_cache=TTLCache(ttl_seconds=300.0, max_entries=16, clock=clock),
        chat_timeout=20.0,
        quick_timeout=10.0,
    )


@pytest.fixture()
def team(coordinator: TaskCoordinator) -> SimpleNamespace:
    """Group with an admin (Alice) and two members (Bob, Carol), all at zero."""
    group, alice = coordinator.create_group("Core", admin_name="Alice", admin_email="alice@example.com")
    bob = coordinator.add_member(group.group_id, name="Bob", email="bob@example.com", actor_id=alice.member_id)
    carol = coordinator.add_member(
        group.group_id, name="Carol", email="carol@example.com", actor_id=alice.member_id
    )
    return SimpleNamespace(group=group, alice=alice, bob=bob, carol=carol)
