# src/taskhive/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (AI provider/store/ledger/coordinator/assistant).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.errors import ProviderNotConfiguredError
from ..core.ports import AIProvider
from ..core.state import AppState
from ..llm.cache import TTLCache
from ..llm.client import OpenAICompatibleProvider
from ..llm.offline import OfflineAIProvider
from ..planning.assistant import PlanningAssistant
from ..planning.recommender import AssignmentRecommender
from ..tasks.coordinator import TaskCoordinator
from ..tasks.ledger import WorkloadLedger
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, ai: AIProvider | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Settings and the AI provider are injectable for tests. If settings is None,
    falls back to get_settings(); if ai is None, the OpenAI-compatible provider is
    used, or the offline provider when no API key is configured.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    offline = False
    if ai is None:
        try:
            ai = OpenAICompatibleProvider(settings)
        except ProviderNotConfiguredError as e:
            logger.warning("%s Running in offline mode.", e)
            ai = OfflineAIProvider()
            offline = True

    store = TaskStore(settings.db_path)
    ledger = WorkloadLedger(store)
    recommender = AssignmentRecommender(ai, timeout=settings.ai_quick_timeout_seconds)
    assistant = PlanningAssistant(
        ai,
        store,
        suggestion_cache=TTLCache(
            ttl_seconds=settings.suggestion_cache_ttl_seconds,
            max_entries=settings.suggestion_cache_max_entries,
        ),
        chat_timeout=settings.ai_chat_timeout_seconds,
        quick_timeout=settings.ai_quick_timeout_seconds,
    )
    coordinator = TaskCoordinator(
        store,
        ledger,
        recommender,
        time_estimator=assistant.predict_task_time,
    )

    return AppState(
        settings=settings,
        ai=ai,
        store=store,
        ledger=ledger,
        recommender=recommender,
        coordinator=coordinator,
        assistant=assistant,
        offline=offline,
    )
