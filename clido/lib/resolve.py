from clido.core.errors import NotFoundError, ValidationError
from clido.core.models import Priority, Project, Task
from clido.workspace import Workspace

from .fuzzy import find_in_pool, find_in_pool_exact

__all__ = ["parse_priority", "resolve_project", "resolve_task", "task_id"]

_PRIORITY_NAMES = {p.name.lower(): p for p in Priority}


def resolve_project(workspace: Workspace, ref: str, exact: bool = False) -> Project:
    """Project by numeric id, else by name (exact, substring, then close match)."""
    if ref.isdigit() and (project := workspace.find_project(int(ref))) is not None:
        return project
    pool = workspace.all_projects()
    found = find_in_pool_exact(ref, pool) if exact else find_in_pool(ref, pool)
    if found is None:
        raise NotFoundError("project", ref)
    return found


def task_id(ref: str) -> int:
    if not ref.strip().isdigit():
        raise ValidationError("task id", f"'{ref}' is not a number")
    return int(ref)


def resolve_task(workspace: Workspace, ref: str) -> Task:
    return workspace.task(task_id(ref))


def parse_priority(value: str) -> Priority:
    """'high'/'medium'/'low'/'none' or 1-4."""
    text = value.strip().lower()
    if text in _PRIORITY_NAMES:
        return _PRIORITY_NAMES[text]
    if text.isdigit() and int(text) in {p.value for p in Priority}:
        return Priority(int(text))
    raise ValidationError("priority", f"'{value}' is not one of high, medium, low, none (or 1-4)")
