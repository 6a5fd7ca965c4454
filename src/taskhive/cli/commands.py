# src/taskhive/cli/commands.py

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import cast

from ..core.errors import TaskHiveError, ValidationError, friendly_error_message
from ..core.state import AppState
from ..tasks.coordinator import TaskChanges
from ..tasks.task_models import Member, MemberRole, Task, TaskInput, TaskStatus, task_to_dict

CommandEmitter = Callable[[str], None]
CommandHandler4 = Callable[[AppState, list[str], str | None, str | None], str]
CommandHandler5 = Callable[
    [AppState, list[str], str | None, str | None, CommandEmitter | None], str
]
CommandHandler = CommandHandler4 | CommandHandler5

logger = logging.getLogger(__name__)


class CommandRegistry:
    """
    Simple slash-command registry used by the console (/help, /tasks, ...).

    Handlers receive (state, args, actor_id, group_id[, emit]). Engine errors are
    turned into user-facing text here; anything else propagates to the caller.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        actor_id: str | None = None,
        group_id: str | None = None,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 5

        try:
            if nparams >= 5:
                h5 = cast(CommandHandler5, handler)
                return h5(state, args, actor_id, group_id, emit)

            h4 = cast(CommandHandler4, handler)
            return h4(state, args, actor_id, group_id)
        except TaskHiveError as e:
            logger.info("/%s failed: %s", name, e)
            return friendly_error_message(e)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def _require_group_id(group_id: str | None) -> str:
    if not group_id:
        raise ValidationError("No group selected. Use /group new <name> or /group use <group_id>.")
    return group_id


def _resolve_member(state: AppState, group_id: str, ref: str) -> Member:
    """Member by id, or by email within the group."""
    member = state.store.get_member(ref)
    if member is not None and member.group_id == group_id:
        return member
    member = state.store.find_member_by_email(group_id, ref)
    if member is None:
        raise ValidationError(f"No member '{ref}' in this group")
    return member


def _member_names(state: AppState, group_id: str) -> dict[str, str]:
    return {m.member_id: m.name for m in state.store.list_members(group_id)}


def _format_task(t: Task, names: dict[str, str]) -> str:
    who = names.get(t.assignee_id or "", t.assignee_id or "unassigned")
    est = f", est {t.estimated_time}" if t.estimated_time else ""
    return f"{t.id} [{t.status.value}] ({t.priority.value}) {t.title} -> {who}{est}"


def cmd_help(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    settings = state.settings
    ai_mode = "OFFLINE" if state.offline else f"{getattr(settings, 'ai_model', '?')}"
    flagged = state.ledger.flagged_members()
    return (
        "Status:\n"
        f"  AI: {ai_mode}\n"
        f"  Group: {group_id or '-'}\n"
        f"  Acting as: {actor_id or 'operator'}\n"
        f"  Consistency violations: {len(state.ledger.violations)} "
        f"(members awaiting reconcile: {len(flagged)})"
    )


def cmd_group(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    """
    /group                                   -> show current group
    /group new <name> <admin_name> <email>   -> create a group with its admin
    /group use <group_id>                    -> switch group
    """
    if not args:
        if not group_id:
            return "No group selected. Usage: /group new <name> <admin_name> <admin_email> | /group use <group_id>"
        group = state.store.get_group(group_id)
        return f"Group {group_id}: {group.name if group else '(missing)'}"

    sub = args[0].lower()

    if sub == "new":
        if len(args) < 4:
            return "Usage: /group new <name> <admin_name> <admin_email>"
        group, admin = state.coordinator.create_group(args[1], admin_name=args[2], admin_email=args[3])
        state.group_id = group.group_id
        state.actor_id = admin.member_id
        return f"Group created: {group.group_id} ({group.name}). Acting as admin {admin.name} ({admin.member_id})."

    if sub == "use":
        if len(args) < 2:
            return "Usage: /group use <group_id>"
        group = state.store.get_group(args[1])
        if group is None:
            return f"Group not found: {args[1]}"
        state.group_id = group.group_id
        state.actor_id = None
        return f"Using group {group.group_id} ({group.name}) as operator."

    return "Usage: /group | /group new <name> <admin_name> <admin_email> | /group use <group_id>"


def cmd_member(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    """
    /member add <name> <email> [admin]
    /member remove <member_id|email>
    """
    gid = _require_group_id(group_id)
    if not args:
        return "Usage: /member add <name> <email> [admin] | /member remove <member_id|email>"

    sub = args[0].lower()
    if sub == "add" and len(args) >= 3:
        role = MemberRole.ADMIN if len(args) > 3 and args[3].lower() == "admin" else MemberRole.MEMBER
        m = state.coordinator.add_member(gid, name=args[1], email=args[2], role=role, actor_id=actor_id)
        return f"Member added: {m.name} <{m.email}> ({m.member_id}, {m.role.value})"

    if sub == "remove" and len(args) >= 2:
        m = _resolve_member(state, gid, args[1])
        state.coordinator.remove_member(m.member_id, actor_id=actor_id)
        if state.actor_id == m.member_id:
            state.actor_id = None
        return f"Member removed: {m.name}"

    return "Usage: /member add <name> <email> [admin] | /member remove <member_id|email>"


def cmd_as(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    """/as <member_id|email> -> act as that member; /as operator -> trusted operator."""
    gid = _require_group_id(group_id)
    if not args:
        return f"Acting as: {actor_id or 'operator'}"
    if args[0].lower() == "operator":
        state.actor_id = None
        return "Acting as operator."
    m = _resolve_member(state, gid, args[0])
    state.actor_id = m.member_id
    return f"Acting as {m.name} ({m.role.value})."


def cmd_members(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    gid = _require_group_id(group_id)
    members = state.coordinator.list_members(gid)
    if not members:
        return "No members in this group."
    flagged = state.ledger.flagged_members()
    lines = [f"Members of {gid}:"]
    for m in members:
        mark = " [needs reconcile]" if m.member_id in flagged else ""
        lines.append(
            f"  {m.member_id} {m.name} <{m.email}> {m.role.value}: "
            f"{m.outstanding_tasks} open task(s), {m.availability}% available{mark}"
        )
    return "\n".join(lines)


def cmd_tasks(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    """
    /tasks        -> all tasks of the group
    /tasks open   -> only non-Done tasks
    /tasks mine   -> tasks assigned to the current actor
    """
    gid = _require_group_id(group_id)
    sub = args[0].lower() if args else "all"

    if sub == "mine":
        if not actor_id:
            return "The operator has no tasks. Use /as <member> first."
        tasks = state.coordinator.list_tasks(group_id=gid, assignee_id=actor_id)
    else:
        tasks = state.coordinator.list_tasks(group_id=gid, include_done=(sub != "open"))

    if not tasks:
        return "No tasks."
    names = _member_names(state, gid)
    return "\n".join(["Tasks:"] + [f"  {_format_task(t, names)}" for t in tasks])


def cmd_show(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    if not args:
        return "Usage: /show <task_id>"
    task = state.store.get_task(args[0])
    if task is None:
        return f"Task not found: {args[0]}"
    return json.dumps(task_to_dict(task), ensure_ascii=False, indent=2)


def cmd_new(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    """/new <title> [| description] -> create a task; the assignee is recommended."""
    gid = _require_group_id(group_id)
    text = " ".join(args).strip()
    if not text:
        return "Usage: /new <title> [| description]"
    title, _, description = text.partition("|")
    task = state.coordinator.create_task(
        TaskInput(group_id=gid, title=title.strip(), description=description.strip()),
        actor_id=actor_id,
    )
    return f"Created: {_format_task(task, _member_names(state, gid))}"


def cmd_done(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    if not args:
        return "Usage: /done <task_id>"
    task = state.coordinator.set_status(args[0], TaskStatus.DONE, actor_id=actor_id)
    return f"Done: {task.title}"


def cmd_reopen(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    """/reopen <task_id> [status] -> move a task back to Open (or the given non-terminal status)."""
    if not args:
        return "Usage: /reopen <task_id> [status]"
    status = " ".join(args[1:]) if len(args) > 1 else TaskStatus.OPEN
    task = state.coordinator.set_status(args[0], status, actor_id=actor_id)
    return f"Reopened: {task.title} [{task.status.value}]"


def cmd_move(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    """/move <task_id> <status> -> any status change (Open, Ready, In Progress, Review, Done)."""
    if len(args) < 2:
        return "Usage: /move <task_id> <status>"
    task = state.coordinator.update_task(args[0], TaskChanges(status=" ".join(args[1:])), actor_id=actor_id)
    return f"{task.title}: {task.status.value}"


def cmd_assign(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    """/assign <task_id> <member_id|email>"""
    gid = _require_group_id(group_id)
    if len(args) < 2:
        return "Usage: /assign <task_id> <member_id|email>"
    member = _resolve_member(state, gid, args[1])
    task = state.coordinator.reassign_task(args[0], member.member_id, actor_id=actor_id)
    return f"Assigned: {task.title} -> {member.name}"


def cmd_delete(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    if not args:
        return "Usage: /delete <task_id>"
    task = state.coordinator.delete_task(args[0], actor_id=actor_id)
    return f"Deleted: {task.title}"


def cmd_recommend(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    gid = _require_group_id(group_id)
    text = " ".join(args).strip()
    if not text:
        return "Usage: /recommend <task description>"
    m = state.coordinator.recommend(text, gid)
    return f"Recommended: {m.name} <{m.email}> ({m.outstanding_tasks} open task(s))"


def cmd_reconcile(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    """/reconcile -> recount this group's counters; /reconcile all -> every group (operator only)."""
    target = None if args and args[0].lower() == "all" else _require_group_id(group_id)
    report = state.coordinator.reconcile_counters(target, actor_id=actor_id)
    lines = [f"Reconciled: {report.members_scanned} member(s) scanned, {report.members_fixed} fixed."]
    for c in report.changes:
        lines.append(f"  {c.member_id}: {c.before} -> {c.after}")
    return "\n".join(lines)


def cmd_plan(
    state: AppState,
    args: list[str],
    actor_id: str | None,
    group_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    """
    /plan <message>  -> ask the AI to propose tasks for the team
    /plan apply      -> create the tasks of the last proposal
    """
    gid = _require_group_id(group_id)

    if args and args[0].lower() == "apply":
        plan = state.last_plan
        if plan is None or not plan.tasks:
            return "No plan to apply. Use /plan <message> first."
        created = state.assistant.apply_plan(
            plan, group_id=gid, coordinator=state.coordinator, actor_id=actor_id
        )
        state.last_plan = None
        names = _member_names(state, gid)
        return "\n".join(["Created:"] + [f"  {_format_task(t, names)}" for t in created])

    message = " ".join(args).strip()
    if not message:
        return "Usage: /plan <message> | /plan apply"

    if emit:
        emit("[AI] Thinking...")

    plan = state.assistant.plan_group_tasks(gid, message)
    state.last_plan = plan

    lines = [plan.explanation]
    if plan.repaired:
        lines.append("(the AI reply was cut off; showing the complete tasks only)")
    for i, t in enumerate(plan.tasks, start=1):
        who = f" -> {t.suggested_assignee}" if t.suggested_assignee else ""
        lines.append(f"  {i}. [{t.priority.value}] {t.title} ({t.estimated_days}d){who}")
        if t.description:
            lines.append(f"     {t.description}")
    if plan.tasks:
        lines.append("Use /plan apply to create these tasks.")
    return "\n".join(lines)


def cmd_suggest(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    text = " ".join(args).strip()
    if not text:
        return "Usage: /suggest <partial task title>"
    suggestions = state.assistant.suggest_task_titles(text)
    if not suggestions:
        return "No suggestions."
    return "\n".join(f"  {i}. {s}" for i, s in enumerate(suggestions, start=1))


def cmd_estimate(state: AppState, args: list[str], actor_id: str | None, group_id: str | None) -> str:
    """/estimate <title> [| description]"""
    text = " ".join(args).strip()
    if not text:
        return "Usage: /estimate <title> [| description]"
    title, _, description = text.partition("|")
    return f"Estimated time: {state.assistant.predict_task_time(title.strip(), description.strip())}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show AI mode, current group/actor and consistency state.")
registry.register("group", cmd_group, help_text="Group context: /group new <name> <admin> <email> | /group use <id>.")
registry.register("member", cmd_member, help_text="Roster: /member add <name> <email> [admin] | /member remove <id|email>.")
registry.register("as", cmd_as, help_text="Act as a member: /as <id|email> | /as operator.")
registry.register("members", cmd_members, help_text="List members with their open task counts.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [all|open|mine].")
registry.register("show", cmd_show, help_text="Show one task as JSON: /show <task_id>.")
registry.register("new", cmd_new, help_text="Create a task: /new <title> [| description].")
registry.register("done", cmd_done, help_text="Mark a task Done: /done <task_id>.")
registry.register("reopen", cmd_reopen, help_text="Reopen a task: /reopen <task_id> [status].")
registry.register("move", cmd_move, help_text="Change status: /move <task_id> <status>.")
registry.register("assign", cmd_assign, help_text="Reassign: /assign <task_id> <member_id|email>.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <task_id>.", aliases=["rm"])
registry.register("recommend", cmd_recommend, help_text="Recommend an assignee: /recommend <description>.")
registry.register("reconcile", cmd_reconcile, help_text="Recount open task counters: /reconcile [all].")
registry.register("plan", cmd_plan, help_text="AI task planning: /plan <message> | /plan apply.")
registry.register("suggest", cmd_suggest, help_text="AI task title suggestions: /suggest <text>.")
registry.register("estimate", cmd_estimate, help_text="AI time estimate: /estimate <title> [| description].")
