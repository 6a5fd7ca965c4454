# src/taskhive/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Any

from .task_models import (
    CounterUpdate,
    Group,
    Member,
    MemberRole,
    Priority,
    Task,
    TaskFilter,
    TaskInput,
    TaskStatus,
)

logger = logging.getLogger(__name__)

_TASK_COLUMNS = {
    "title",
    "description",
    "assignee_id",
    "status",
    "priority",
    "start_time",
    "end_time",
    "estimated_time",
    "location",
    "tags",
}


class TaskStore:
    """
    SQLite document store for groups, members and tasks.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    No multi-document transactions are offered to callers. The only
    read-modify-write done here is the single-row counter increment.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "taskhive.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("TaskStore ready db=%s tasks=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS groups (
                    group_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    created_by TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS members (
                    member_id TEXT PRIMARY KEY,
                    group_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'member',
                    availability INTEGER NOT NULL DEFAULT 100,
                    outstanding_tasks INTEGER NOT NULL DEFAULT 0,
                    added_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    group_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    assignee_id TEXT,
                    status TEXT NOT NULL DEFAULT 'Open',
                    priority TEXT NOT NULL DEFAULT 'Medium',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing task columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("start_time", "REAL")
            add_col("end_time", "REAL")
            add_col("estimated_time", "TEXT NOT NULL DEFAULT ''")
            add_col("location", "TEXT NOT NULL DEFAULT ''")
            add_col("tags", "TEXT NOT NULL DEFAULT '[]'")
            add_col("created_by", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_members_group ON members(group_id)")
            cur.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_members_group_email "
                "ON members(group_id, email COLLATE NOCASE)"
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_group_status ON tasks(group_id, status)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_assignee_status ON tasks(assignee_id, status)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _tags_to_str(tags: list[str] | None) -> str:
        if not tags:
            return "[]"
        return json.dumps([str(t) for t in tags], ensure_ascii=False)

    @staticmethod
    def _str_to_tags(s: str | None) -> list[str]:
        if not s:
            return []
        try:
            val = json.loads(s)
        except json.JSONDecodeError:
            return []
        return [str(t) for t in val] if isinstance(val, list) else []

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        try:
            priority = Priority.parse(row["priority"])
        except ValueError:
            priority = Priority.MEDIUM
        return Task(
            id=str(row["id"]),
            group_id=str(row["group_id"]),
            title=str(row["title"] or ""),
            description=str(row["description"] or ""),
            assignee_id=row["assignee_id"],
            status=TaskStatus.from_db(row["status"]),
            priority=priority,
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            start_time=float(row["start_time"]) if row["start_time"] is not None else None,
            end_time=float(row["end_time"]) if row["end_time"] is not None else None,
            estimated_time=str(row["estimated_time"] or ""),
            location=str(row["location"] or ""),
            tags=self._str_to_tags(row["tags"]),
            created_by=row["created_by"],
        )

    @staticmethod
    def _row_to_member(row: sqlite3.Row) -> Member:
        try:
            role = MemberRole(row["role"])
        except ValueError:
            role = MemberRole.MEMBER
        return Member(
            member_id=str(row["member_id"]),
            group_id=str(row["group_id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            role=role,
            availability=int(row["availability"]),
            outstanding_tasks=int(row["outstanding_tasks"]),
            added_at=float(row["added_at"] or 0.0),
        )

    # ---- groups ----

    def add_group(self, *, name: str, description: str = "", created_by: str | None = None) -> str:
        if not name or not name.strip():
            raise ValueError("name is required")

        group_id = uuid.uuid4().hex
        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO groups(group_id, name, description, created_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (group_id, name.strip(), description or "", created_by, now, now),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Group added id=%s name=%s", group_id, name)
        return group_id

    def get_group(self, group_id: str) -> Group | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM groups WHERE group_id = ?", (group_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return Group(
            group_id=str(row["group_id"]),
            name=str(row["name"]),
            description=str(row["description"] or ""),
            created_by=row["created_by"],
            created_at=float(row["created_at"]),
            updated_at=float(row["updated_at"]),
        )

    # ---- members ----

    def add_member(
        self,
        *,
        group_id: str,
        name: str,
        email: str,
        role: MemberRole | None = None,
        availability: int = 100,
    ) -> str:
        if not name or not name.strip():
            raise ValueError("name is required")
        if not email or not email.strip():
            raise ValueError("email is required")

        member_id = uuid.uuid4().hex
        role = role or MemberRole.MEMBER
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO members(
                    member_id, group_id, name, email, role, availability, outstanding_tasks, added_at
                )
                VALUES (?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    member_id,
                    group_id,
                    name.strip(),
                    email.strip(),
                    role.value,
                    int(max(0, min(100, availability))),
                    time.time(),
                ),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Member added id=%s group=%s role=%s", member_id, group_id, role.value)
        return member_id

    def remove_member(self, member_id: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM members WHERE member_id = ?", (member_id,))
            conn.commit()
        finally:
            conn.close()

    def get_member(self, member_id: str) -> Member | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM members WHERE member_id = ?", (member_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_member(row) if row else None

    def find_member_by_email(self, group_id: str, email: str) -> Member | None:
        if not email:
            return None
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM members WHERE group_id = ? AND email = ? COLLATE NOCASE",
                (group_id, email.strip()),
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_member(row) if row else None

    def list_members(self, group_id: str | None = None) -> list[Member]:
        """Roster order is insertion order (added_at), which the recommender relies on for ties."""
        conn = self._get_conn()
        try:
            if group_id is None:
                rows = conn.execute("SELECT * FROM members ORDER BY added_at ASC, rowid ASC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM members WHERE group_id = ? ORDER BY added_at ASC, rowid ASC",
                    (group_id,),
                ).fetchall()
        finally:
            conn.close()
        return [self._row_to_member(r) for r in rows]

    # ---- counters ----

    def increment_member_counter(self, member_id: str, delta: int) -> CounterUpdate | None:
        """
        Add delta to outstanding_tasks, floor-clamped at 0.

        Returns None when the member does not exist (e.g. removed from the group).
        `clamped` tells the caller the raw result would have been negative.
        """
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT outstanding_tasks FROM members WHERE member_id = ?", (member_id,)
            ).fetchone()
            if row is None:
                conn.rollback()
                return None
            previous = int(row["outstanding_tasks"])
            raw = previous + int(delta)
            current = max(0, raw)
            conn.execute(
                "UPDATE members SET outstanding_tasks = ? WHERE member_id = ?",
                (current, member_id),
            )
            conn.commit()
        finally:
            conn.close()
        return CounterUpdate(member_id=member_id, previous=previous, current=current, clamped=raw < 0)

    def set_member_counter(self, member_id: str, value: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE members SET outstanding_tasks = ? WHERE member_id = ?",
                (max(0, int(value)), member_id),
            )
            conn.commit()
        finally:
            conn.close()

    # ---- tasks ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(
        self,
        task_input: TaskInput,
        *,
        assignee_id: str | None,
        created_by: str | None = None,
    ) -> str:
        if not task_input.title or not task_input.title.strip():
            raise ValueError("title is required")

        task_id = f"TASK-{uuid.uuid4().hex[:12]}"
        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tasks(
                    id, group_id, title, description, assignee_id, status, priority,
                    created_at, updated_at, start_time, end_time, estimated_time,
                    location, tags, created_by
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    task_input.group_id,
                    task_input.title.strip(),
                    (task_input.description or "").strip(),
                    assignee_id,
                    task_input.status.value,
                    task_input.priority.value,
                    now,
                    now,
                    task_input.start_time,
                    task_input.end_time,
                    task_input.estimated_time or "",
                    task_input.location or "",
                    self._tags_to_str(task_input.tags),
                    created_by,
                ),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug(
            "Task added id=%s group=%s assignee=%s status=%s",
            task_id,
            task_input.group_id,
            assignee_id,
            task_input.status.value,
        )
        return task_id

    def get_task(self, task_id: str) -> Task | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_task(row) if row else None

    def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        f = task_filter or TaskFilter()
        clauses: list[str] = []
        params: list[Any] = []

        if f.group_id is not None:
            clauses.append("group_id = ?")
            params.append(f.group_id)

        if f.assignee_id is not None:
            clauses.append("assignee_id = ?")
            params.append(f.assignee_id)

        if f.statuses:
            placeholders = ",".join("?" for _ in f.statuses)
            clauses.append(f"status IN ({placeholders})")
            params.extend(s.value for s in f.statuses)

        if f.exclude_terminal:
            clauses.append("status != ?")
            params.append(TaskStatus.DONE.value)

        sql = "SELECT * FROM tasks"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY COALESCE(start_time, created_at) ASC, created_at ASC"
        if f.limit is not None:
            sql += " LIMIT ?"
            params.append(int(f.limit))

        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [self._row_to_task(r) for r in rows]

    def update_task_fields(self, task_id: str, **fields: Any) -> bool:
        """Returns False when no such task exists (nothing was written)."""
        unknown = set(fields) - _TASK_COLUMNS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")
        if not fields:
            return self.get_task(task_id) is not None

        sets: list[str] = []
        params: list[Any] = []
        for name, value in fields.items():
            if name in ("status", "priority") and value is not None:
                value = value.value
            elif name == "tags":
                value = self._tags_to_str(value)
            elif name in ("description", "estimated_time", "location") and value is None:
                value = ""
            sets.append(f"{name} = ?")
            params.append(value)

        sets.append("updated_at = ?")
        params.append(time.time())
        params.append(task_id)

        conn = self._get_conn()
        try:
            cur = conn.execute(f"UPDATE tasks SET {', '.join(sets)} WHERE id = ?", params)
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def delete_task(self, task_id: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            conn.commit()
        finally:
            conn.close()
