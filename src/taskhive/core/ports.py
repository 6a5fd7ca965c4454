# src/taskhive/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the engine.

The engine depends on Protocols instead of concrete implementations.
This keeps the AI provider and the document store swappable and makes testing easier.
"""

from collections.abc import Callable
from typing import Any, Protocol

Clock = Callable[[], float]
Sleeper = Callable[[float], None]


class AIProvider(Protocol):
    """
    One prompt in, one text reply out.

    json_output asks the provider to constrain the reply to a JSON object; callers
    must still treat the reply as untrusted text.
    Failures are raised as ProviderCallError subclasses.
    """

    def complete(self, prompt: str, *, timeout: float, json_output: bool = False) -> str: ...


class WorkloadRepo(Protocol):
    """
    Document-store boundary.

    No transactions are assumed: every call is independent, and a member's
    counter is only changed through increment_member_counter / set_member_counter.
    """

    # Groups / members
    def add_group(self, *, name: str, description: str = "", created_by: str | None = None) -> str: ...
    def get_group(self, group_id: str) -> Any | None: ...
    def add_member(
            self,
            *,
            group_id: str,
            name: str,
            email: str,
            role: Any = None,
            availability: int = 100,
    ) -> str: ...
    def remove_member(self, member_id: str) -> None: ...
    def get_member(self, member_id: str) -> Any | None: ...
    def find_member_by_email(self, group_id: str, email: str) -> Any | None: ...
    def list_members(self, group_id: str | None = None) -> list[Any]: ...

    # Counters
    def increment_member_counter(self, member_id: str, delta: int) -> Any | None: ...
    def set_member_counter(self, member_id: str, value: int) -> None: ...

    # Tasks
    def add_task(self, task_input: Any, *, assignee_id: str | None, created_by: str | None = None) -> str: ...
    def get_task(self, task_id: str) -> Any | None: ...
    def list_tasks(self, task_filter: Any = None) -> list[Any]: ...
    def update_task_fields(self, task_id: str, **fields: Any) -> bool: ...
    def delete_task(self, task_id: str) -> None: ...
