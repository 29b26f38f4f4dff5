# src/collab_tracker/cli/commands.py

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import cast

from ..core.clock import format_ms
from ..core.errors import TrackerError, ValidationError
from ..core.identity import Identity
from ..core.state import AppState
from ..projects.project_models import ProjectFields
from ..tasks.task_models import TaskFields

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

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
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        TrackerError messages are user-facing and returned verbatim.
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
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except TrackerError as e:
            logger.debug("Command /%s failed: %r", name, e)
            return e.message

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _int_arg(args: list[str], index: int, usage: str) -> int:
    try:
        return int(args[index])
    except (IndexError, ValueError):
        raise ValidationError(f"Usage: {usage}") from None


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_login(state: AppState, args: list[str]) -> str:
    """
    /login <user_id> [email] [name...]
    """
    if not args:
        return "Usage: /login <user_id> [email] [name]"
    email = args[1] if len(args) > 1 else None
    name = " ".join(args[2:]) or None
    state.identity = Identity(subject=args[0], email=email, name=name)
    return f"Logged in as {state.identity.display_name} ({state.identity.subject})."


def cmd_whoami(state: AppState, args: list[str]) -> str:
    ident = state.identity
    if ident is None:
        return "Not logged in. Use /login <user_id> [email] [name]."
    return f"{ident.subject} email={ident.email or '-'} name={ident.name or '-'}"


def cmd_projects(state: AppState, args: list[str]) -> str:
    views = state.projects.list_projects(state.identity)
    if not views:
        return "No projects."
    lines = ["Projects:"]
    for v in views:
        p = v.project
        lines.append(f"  #{p.id} {p.name} [{p.status}] role={v.user_role}")
    return "\n".join(lines)


def cmd_project_new(state: AppState, args: list[str]) -> str:
    name = " ".join(args).strip()
    if not name:
        return "Usage: /project-new <name>"
    project_id = state.projects.create_project(state.identity, ProjectFields(name=name))
    return f"Project created: #{project_id}"


def cmd_invite(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    project_id = _int_arg(args, 0, "/invite <project_id> <email>")
    if len(args) < 2:
        return "Usage: /invite <project_id> <email>"
    if emit:
        emit(f"Inviting {args[1]}...")
    result = asyncio.run(state.projects.invite_project_collaborator(state.identity, project_id, args[1]))
    return result.message


def cmd_invitations(state: AppState, args: list[str]) -> str:
    pending = state.projects.get_pending_invitations(state.identity)
    if not pending:
        return "No pending invitations."
    lines = ["Pending invitations:"]
    for p in pending:
        lines.append(f"  {p.project_name} from {p.inviter_name} expires={format_ms(p.expires_at)} token={p.token}")
    return "\n".join(lines)


def cmd_accept(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /accept <token>"
    project_id = state.projects.accept_project_invitation(state.identity, args[0])
    return f"Joined project #{project_id}."


def cmd_decline(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /decline <token>"
    state.projects.decline_project_invitation(state.identity, args[0])
    return "Invitation declined."


def cmd_tasks(state: AppState, args: list[str]) -> str:
    rows = state.tasks.list_tasks(state.identity)
    if not rows:
        return "No tasks."
    now = state.clock.now_ms()
    lines = ["Tasks:"]
    for row in rows:
        t = row.task
        project = f" project={row.project.name}" if row.project else ""
        tracked_min = t.elapsed_ms(now) // 60000
        lines.append(f"  #{t.id} [{t.status}] ({t.priority}) {t.text} tracked={tracked_min}m{project}")
    return "\n".join(lines)


def cmd_task_new(state: AppState, args: list[str]) -> str:
    """
    /task-new [@<project_id>] <text...>
    """
    project_id = None
    if args and args[0].startswith("@"):
        try:
            project_id = int(args[0][1:])
        except ValueError:
            return "Usage: /task-new [@<project_id>] <text>"
        args = args[1:]
    text = " ".join(args).strip()
    if not text:
        return "Usage: /task-new [@<project_id>] <text>"
    task_id = state.tasks.create_task(state.identity, TaskFields(text=text, project_id=project_id))
    return f"Task created: #{task_id}"


def cmd_select(state: AppState, args: list[str]) -> str:
    task_id = _int_arg(args, 0, "/select <task_id> [off]")
    selected = not (len(args) > 1 and args[1].lower() in ("off", "0", "no"))
    state.tasks.toggle_task_selection(state.identity, task_id, selected)
    return f"Task #{task_id} {'selected for today' if selected else 'deselected'}."


def cmd_start(state: AppState, args: list[str]) -> str:
    task_id = _int_arg(args, 0, "/start <task_id>")
    state.tasks.start_task(state.identity, task_id)
    return f"Task #{task_id} started."


def cmd_stop(state: AppState, args: list[str]) -> str:
    task_id = _int_arg(args, 0, "/stop <task_id>")
    state.tasks.stop_task(state.identity, task_id)
    return f"Task #{task_id} stopped."


def cmd_done(state: AppState, args: list[str]) -> str:
    task_id = _int_arg(args, 0, "/done <task_id>")
    state.tasks.complete_task(state.identity, task_id)
    return f"Task #{task_id} completed."


def cmd_share(state: AppState, args: list[str]) -> str:
    task_id = _int_arg(args, 0, "/share <task_id>")
    return state.tasks.share_task_with_collaborators(state.identity, task_id).message


def cmd_refine(state: AppState, args: list[str]) -> str:
    """
    /refine <task_id>                       -> show the thread
    /refine <task_id> note|question <text>  -> post
    """
    task_id = _int_arg(args, 0, "/refine <task_id> [note|question <text>]")
    if len(args) < 3:
        items = state.refinements.get_task_refinements(state.identity, task_id)
        if not items:
            return f"No refinements on task #{task_id}."
        lines = [f"Refinements on task #{task_id}:"]
        for r in items:
            parent = f" re #{r.parent_id}" if r.parent_id else ""
            lines.append(f"  #{r.id} {r.type}{parent} by {r.author_name or r.author_email} ({r.role}): {r.content}")
        return "\n".join(lines)

    refinement_id = state.refinements.add_task_refinement(state.identity, task_id, args[1], " ".join(args[2:]))
    return f"Refinement added: #{refinement_id}"


def cmd_answer(state: AppState, args: list[str]) -> str:
    question_id = _int_arg(args, 0, "/answer <question_id> <text>")
    state.refinements.answer_question(state.identity, question_id, " ".join(args[1:]))
    return f"Question #{question_id} answered."


def cmd_sync(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    project_id = _int_arg(args, 0, "/sync <project_id>")
    if emit:
        emit("Fetching GitHub/npm metrics...")
    snap = asyncio.run(state.projects.sync_github_metrics(state.identity, project_id))
    npm = f" npm={snap.npm_downloads}" if snap.npm_package else ""
    return f"{snap.github_repo}: stars={snap.github_stars} forks={snap.github_forks}{npm}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("login", cmd_login, help_text="Act as a user: /login <user_id> [email] [name].")
registry.register("whoami", cmd_whoami, help_text="Show the current identity.")
registry.register("projects", cmd_projects, help_text="List your projects.")
registry.register("project-new", cmd_project_new, help_text="Create a project: /project-new <name>.")
registry.register("invite", cmd_invite, help_text="Invite a collaborator: /invite <project_id> <email>.")
registry.register("invitations", cmd_invitations, help_text="List invitations waiting for you.")
registry.register("accept", cmd_accept, help_text="Accept an invitation: /accept <token>.")
registry.register("decline", cmd_decline, help_text="Decline an invitation: /decline <token>.")
registry.register("tasks", cmd_tasks, help_text="List your tasks and tasks shared with you.")
registry.register("task-new", cmd_task_new, help_text="Create a task: /task-new [@<project_id>] <text>.")
registry.register("select", cmd_select, help_text="Select a task for today: /select <task_id> [off].")
registry.register("start", cmd_start, help_text="Start the timer: /start <task_id>.")
registry.register("stop", cmd_stop, help_text="Stop the timer: /stop <task_id>.")
registry.register("done", cmd_done, help_text="Complete a task: /done <task_id>.")
registry.register("share", cmd_share, help_text="Share a task with its project's collaborators.")
registry.register("refine", cmd_refine, help_text="Show or post refinements: /refine <task_id> [note|question <text>].")
registry.register("answer", cmd_answer, help_text="Answer a question: /answer <question_id> <text>.")
registry.register("sync", cmd_sync, help_text="Refresh GitHub/npm metrics: /sync <project_id>.")
