import json
from collections.abc import Sequence

from clido import tree
from clido.core.models import Priority, Project, Task

from . import ansi
from .converters import project_to_dict, task_to_dict
from .format import format_date, format_past_due, format_priority, wrap

__all__ = [
    "render_forest",
    "render_json",
    "render_project_detail",
    "render_project_list",
    "render_task_detail",
    "render_task_list",
]


def _check(task: Task) -> str:
    return ansi.green("✓") if task.completed else "□"


def _parent_name(node: Project | Task) -> str:
    owner = node.owner
    if owner is None or type(owner) is not type(node):
        return ""
    return ansi.muted(f"← {owner.name}")


def _project_row(project: Project) -> str:
    done = sum(1 for t in tree.walk_tasks(project) if t.completed)
    parts = [
        ansi.muted(f"[{project.id}]"),
        ansi.bold(project.name),
        ansi.muted(f"{done}/{project.task_count}"),
    ]
    if project.description:
        parts.append(ansi.dim(project.description))
    if parent := _parent_name(project):
        parts.append(parent)
    return "  " + " ".join(parts)


def _task_row(task: Task) -> str:
    parts = [_check(task), ansi.muted(f"[{task.id}]"), task.name]
    if task.due_date is not None:
        due = format_date(task.due_date)
        parts.append(ansi.red(due) if task.is_past_due else ansi.muted(due))
    if task.priority is not Priority.NONE:
        parts.append(format_priority(task.priority))
    if parent := _parent_name(task):
        parts.append(parent)
    return "  " + " ".join(parts)


def render_project_list(projects: Sequence[Project]) -> str:
    if not projects:
        return "no projects"
    return "\n".join(_project_row(p) for p in projects)


def render_task_list(tasks: Sequence[Task]) -> str:
    if not tasks:
        return "no tasks"
    return "\n".join(_task_row(t) for t in tasks)


def render_forest(roots: Sequence[Project | Task]) -> str:
    return "\n".join(tree.render_tree(root) for root in roots)


def render_project_detail(project: Project) -> str:
    done = sum(1 for t in tree.walk_tasks(project) if t.completed)
    lines = [
        f"{ansi.bold(project.name)} {ansi.muted(f'[{project.id}]')}",
        f"  description: {wrap(project.description, 60) or '-'}",
        f"  created:     {format_date(project.creation_date)}",
        f"  modified:    {format_date(project.last_modified)}",
        f"  parent:      {project.owner.name if project.owner else 'None'}",
        f"  sub-projects: {tree.count_subprojects(project)}",
        f"  tasks:       {done}/{project.task_count} done",
        f"  complete:    {'yes' if tree.check_project_completion(project) else 'no'}",
    ]
    return "\n".join(lines)


def render_task_detail(task: Task, project: Project | None = None) -> str:
    parent = task.owner.name if isinstance(task.owner, Task) else "None"
    lines = [
        f"{_check(task)} {ansi.bold(task.name)} {ansi.muted(f'[{task.id}]')}",
        f"  description: {wrap(task.description, 60) or '-'}",
        f"  project:     {project.name if project else task.project_id}",
        f"  parent:      {parent}",
        f"  due:         {format_date(task.due_date)}",
        f"  past due:    {format_past_due(task)}",
        f"  priority:    {format_priority(task.priority)}",
        f"  created:     {format_date(task.creation_date)}",
        f"  completed:   {format_date(task.completion_date)}",
        f"  modified:    {format_date(task.last_modified)}",
        f"  sub-tasks:   {tree.count_subtasks(task)}",
    ]
    return "\n".join(lines)


def render_json(nodes: Sequence[Project | Task]) -> str:
    payload = [project_to_dict(n) if isinstance(n, Project) else task_to_dict(n) for n in nodes]
    return json.dumps(payload, indent=2, ensure_ascii=False)
