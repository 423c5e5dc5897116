from fncli import cli

from . import tree
from .lib.errors import echo
from .lib.render import (
    render_forest,
    render_json,
    render_project_list,
    render_task_list,
)
from .lib.resolve import resolve_project
from .workspace import open_workspace

__all__ = ["list_projects", "list_tasks"]


@cli("clido list", name="projects", flags={"as_json": ["--json"], "as_tree": ["--tree"]})
def list_projects(as_json: bool = False, as_tree: bool = False):
    """List projects (--tree nests sub-projects, --json for scripts)"""
    with open_workspace() as ws:
        if as_json:
            echo(render_json(ws.projects))
        elif as_tree:
            echo(render_forest(ws.projects) or "no projects")
        else:
            echo(render_project_list(ws.all_projects()))


@cli(
    "clido list",
    name="tasks",
    flags={"project": ["-p", "--project"], "as_json": ["--json"], "as_tree": ["--tree"]},
)
def list_tasks(project: str | None = None, as_json: bool = False, as_tree: bool = False):
    """List tasks, optionally for one project and its sub-projects"""
    with open_workspace() as ws:
        scope = resolve_project(ws, project) if project else None
        if as_json:
            pool = list(tree.walk(scope)) if scope else ws.all_projects()
            echo(render_json([t for p in pool for t in p.tasks]))
        elif as_tree:
            echo(render_forest([scope] if scope else ws.projects) or "no tasks")
        else:
            echo(render_task_list(ws.all_tasks(scope.id if scope else None)))
