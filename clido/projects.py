from fncli import UsageError, cli

from .core.types import UNSET
from .lib.errors import echo
from .lib.format import format_status
from .lib.render import render_project_detail
from .lib.resolve import resolve_project
from .workspace import open_workspace

__all__ = ["edit_project", "new_project", "remove_project", "show_project"]


def _join(words: list[str]) -> str:
    return " ".join(words).strip()


@cli(
    "clido new",
    name="project",
    flags={"description": ["-d", "--description"], "parent": ["-p", "--parent"]},
)
def new_project(name: list[str], description: str | None = None, parent: str | None = None):
    """Create a project, optionally under a parent project"""
    with open_workspace() as ws:
        parent_id = resolve_project(ws, parent).id if parent else None
        project = ws.create_project(_join(name), description, parent_id)
    echo(format_status("+", f"project '{project.name}'", project.id))


@cli(
    "clido edit",
    name="project",
    flags={
        "name": ["-n", "--name"],
        "description": ["-d", "--description"],
        "parent": ["-p", "--parent"],
        "top": ["--top"],
    },
)
def edit_project(
    ref: str,
    name: str | None = None,
    description: str | None = None,
    parent: str | None = None,
    top: bool = False,
):
    """Rename, describe or re-parent a project (--top makes it top-level)"""
    if name is None and description is None and parent is None and not top:
        raise UsageError("nothing to change: pass -n, -d, -p or --top")
    if parent and top:
        raise UsageError("-p and --top are mutually exclusive")
    with open_workspace() as ws:
        project = resolve_project(ws, ref)
        if name is not None or description is not None:
            ws.update_project(
                project.id,
                name=name,
                description=(description or None) if description is not None else UNSET,
            )
        if parent:
            ws.move_project(project.id, resolve_project(ws, parent).id)
        elif top:
            ws.move_project(project.id, None)
    echo(format_status("~", f"project '{project.name}'", project.id))


@cli("clido remove", name="project")
def remove_project(ref: str):
    """Delete a project with its sub-projects and tasks"""
    with open_workspace() as ws:
        project = resolve_project(ws, ref, exact=True)
        removed = project.task_count
        ws.delete_project(project.id)
    echo(format_status("x", f"project '{project.name}' ({removed} tasks)", project.id))


@cli("clido show", name="project")
def show_project(ref: str):
    """Show a project's details"""
    with open_workspace() as ws:
        echo(render_project_detail(resolve_project(ws, ref)))
