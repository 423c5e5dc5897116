from fncli import UsageError, cli

from .core.models import Priority
from .core.types import UNSET
from .lib.dates import parse_due_date
from .lib.errors import echo
from .lib.format import format_status
from .lib.render import render_task_detail
from .lib.resolve import parse_priority, resolve_project, resolve_task, task_id
from .workspace import open_workspace

__all__ = ["edit_task", "new_task", "remove_task", "show_task", "toggle"]

_TASK_FLAGS = {
    "description": ["-d", "--description"],
    "due": ["-D", "--due"],
    "priority": ["-r", "--priority"],
    "parent": ["-t", "--parent"],
    "project": ["-p", "--project"],
}


@cli("clido new", name="task", flags=_TASK_FLAGS)
def new_task(
    name: list[str],
    project: str | None = None,
    parent: str | None = None,
    description: str | None = None,
    due: str | None = None,
    priority: str | None = None,
):
    """Create a task in a project (-t nests it under another task)"""
    if project is None and parent is None:
        raise UsageError("-p/--project is required")
    due_date = parse_due_date(due) if due else None
    prio = parse_priority(priority) if priority else Priority.NONE
    with open_workspace() as ws:
        parent_task = resolve_task(ws, parent) if parent else None
        if project is not None:
            owner = resolve_project(ws, project)
        elif parent_task is not None:
            owner = ws.project(parent_task.project_id)
        else:
            raise UsageError("-p/--project is required")
        task = ws.create_task(
            " ".join(name).strip(),
            owner.id,
            description=description,
            parent_id=parent_task.id if parent_task else None,
            due_date=due_date,
            priority=prio,
        )
    echo(format_status("+", f"task '{task.name}'", task.id))


@cli("clido edit", name="task", flags={"name": ["-n", "--name"], "top": ["--top"], **_TASK_FLAGS})
def edit_task(
    ref: str,
    name: str | None = None,
    description: str | None = None,
    due: str | None = None,
    priority: str | None = None,
    parent: str | None = None,
    project: str | None = None,
    top: bool = False,
):
    """Edit a task's fields, or move it (-t parent task, -p project, --top)"""
    fields = (name, description, due, priority)
    if all(f is None for f in fields) and parent is None and project is None and not top:
        raise UsageError("nothing to change: pass -n, -d, -D, -r, -t, -p or --top")
    if parent and top:
        raise UsageError("-t and --top are mutually exclusive")
    with open_workspace() as ws:
        task = resolve_task(ws, ref)
        if any(f is not None for f in fields):
            ws.update_task(
                task.id,
                name=name,
                description=(description or None) if description is not None else UNSET,
                due_date=(parse_due_date(due) if due else None) if due is not None else UNSET,
                priority=parse_priority(priority) if priority is not None else None,
            )
        if parent or project or top:
            ws.move_task(
                task.id,
                parent_id=task_id(parent) if parent else None,
                project_id=resolve_project(ws, project).id if project else None,
            )
    echo(format_status("~", f"task '{task.name}'", task.id))


@cli("clido remove", name="task")
def remove_task(ref: str):
    """Delete a task with all of its sub-tasks"""
    with open_workspace() as ws:
        task = resolve_task(ws, ref)
        ws.delete_task(task.id)
    echo(format_status("x", f"task '{task.name}'", task.id))


@cli("clido", flags={"recursive": ["-r", "--recursive"]})
def toggle(ref: str, recursive: bool = False):
    """Toggle a task between open and completed (-r applies it to every sub-task)"""
    with open_workspace() as ws:
        task = ws.toggle_task(task_id(ref), recursive=recursive)
    state = "completed" if task.completed else "reopened"
    if recursive:
        state += " with its sub-tasks"
    echo(format_status("✓" if task.completed else "□", f"task '{task.name}' {state}", task.id))


@cli("clido show", name="task")
def show_task(ref: str):
    """Show a task's details"""
    with open_workspace() as ws:
        task = resolve_task(ws, ref)
        echo(render_task_detail(task, ws.project(task.project_id)))
