# src/taskhive/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..planning.assistant import PlanningAssistant, TaskPlan
from ..planning.recommender import AssignmentRecommender
from ..tasks.coordinator import TaskCoordinator
from ..tasks.ledger import WorkloadLedger
from .ports import AIProvider, WorkloadRepo


@dataclass
class AppState:
    """
    Runtime container shared by the console and the background sweep.

    Wiring lives in cli/bootstrap.py; everything here is already constructed.
    """

    settings: object

    ai: AIProvider
    store: WorkloadRepo
    ledger: WorkloadLedger
    recommender: AssignmentRecommender
    coordinator: TaskCoordinator
    assistant: PlanningAssistant

    # Console session context: which group is being operated on and as whom.
    # actor_id=None acts as a trusted operator.
    group_id: str | None = None
    actor_id: str | None = None

    offline: bool = False

    # Last /plan proposal, kept until applied.
    last_plan: TaskPlan | None = None
