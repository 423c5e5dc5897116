"""In-memory operations over project and task trees.

Nothing here touches the store. Nodes own their children exclusively: a node
sits in exactly one sequence at a time (a parent's `children`, a project's
`tasks`, or the caller's top-level forest list) and `owner` points back at the
container holding it.
"""

import dataclasses
import logging
from collections.abc import Callable, Iterator, Sequence
from datetime import datetime
from typing import Protocol, TypeVar

from .core.errors import AlreadyOwnedError, CycleError, NotFoundError, StateError
from .core.models import Level, Project, Task, validate_name
from .lib import clock

N = TypeVar("N", Project, Task)

__all__ = [
    "Placement",
    "Visitor",
    "add_subproject",
    "add_subtask",
    "add_task_to_project",
    "ancestors",
    "check_project_completion",
    "complete",
    "count_subprojects",
    "count_subtasks",
    "detach",
    "find_by_id",
    "find_task",
    "is_ancestor",
    "link",
    "placement",
    "remove",
    "render_tree",
    "reopen",
    "restore",
    "traverse",
    "update",
    "walk",
    "walk_tasks",
]

logger = logging.getLogger(__name__)


class Visitor(Protocol):
    def visit(self, node: Project | Task) -> None: ...


@dataclasses.dataclass(frozen=True)
class Placement:
    """Where a node sat before it was detached, enough to put it back exactly."""

    owner: Project | Task | None
    index: int
    parent_id: int | None
    level: Level
    project_id: int | None = None


# ── traversal ────────────────────────────────────────────────────────────────


def walk(root: N) -> Iterator[N]:
    """Yield `root` and every same-kind descendant in pre-order."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def walk_tasks(project: Project) -> Iterator[Task]:
    """Yield every task in the project's subtree, sub-projects included, in pre-order."""
    for node in walk(project):
        for task in node.tasks:
            yield from walk(task)


def traverse(root: Project | Task, visitor: Visitor | Callable[[Project | Task], object]) -> None:
    visit = visitor.visit if hasattr(visitor, "visit") else visitor
    for node in walk(root):
        visit(node)


def ancestors(node: N) -> Iterator[N]:
    owner = node.owner
    while owner is not None and type(owner) is type(node):
        yield owner
        owner = owner.owner


def is_ancestor(candidate: Project | Task, node: Project | Task) -> bool:
    return any(a is candidate for a in ancestors(node))


def find_by_id(root: N, node_id: int) -> N | None:
    return next((n for n in walk(root) if n.id == node_id), None)


def find_task(project: Project, task_id: int) -> Task | None:
    return next((t for t in walk_tasks(project) if t.id == task_id), None)


def count_subprojects(project: Project) -> int:
    return sum(1 for _ in walk(project)) - 1


def count_subtasks(task: Task) -> int:
    return sum(1 for _ in walk(task)) - 1


def check_project_completion(project: Project) -> bool:
    return all(t.completed for t in walk_tasks(project))


# ── structure ────────────────────────────────────────────────────────────────


def _check_attachable(parent: Project | Task, child: Project | Task) -> None:
    if child is parent or is_ancestor(child, parent):
        raise CycleError(f"'{child.name}' is an ancestor of '{parent.name}'")
    if child.owner is not None:
        raise AlreadyOwnedError(f"'{child.name}' already belongs to '{child.owner.name}'")


def _assign_project(task: Task, project_id: int | None) -> None:
    for node in walk(task):
        node.project_id = project_id


def add_subproject(parent: Project, child: Project) -> None:
    _check_attachable(parent, child)
    parent.children.append(child)
    child.owner = parent
    child.parent_id = parent.id
    child.level = Level.SUB


def add_subtask(parent: Task, child: Task) -> None:
    _check_attachable(parent, child)
    parent.children.append(child)
    child.owner = parent
    child.parent_id = parent.id
    child.level = Level.SUB
    _assign_project(child, parent.project_id)


def add_task_to_project(project: Project, task: Task) -> None:
    if project.id is None:
        raise NotFoundError("project", project.name)
    if task.owner is not None:
        raise AlreadyOwnedError(f"'{task.name}' already belongs to '{task.owner.name}'")
    project.tasks.append(task)
    task.owner = project
    task.parent_id = None
    task.level = Level.TOP
    _assign_project(task, project.id)


def _container(node: Project | Task) -> list:
    owner = node.owner
    if isinstance(node, Task) and isinstance(owner, Project):
        return owner.tasks
    return owner.children


def placement(node: Project | Task, forest: Sequence[Project | Task] = ()) -> Placement:
    """Record the node's current position without changing anything."""
    if node.owner is not None:
        siblings = _container(node)
    else:
        siblings = forest
    index = next((i for i, n in enumerate(siblings) if n is node), len(siblings))
    project_id = node.project_id if isinstance(node, Task) else None
    return Placement(node.owner, index, node.parent_id, node.level, project_id)


def detach(node: Project | Task) -> Placement:
    """Take the node (and its subtree) out of its owner's sequence."""
    where = placement(node)
    if node.owner is not None:
        del _container(node)[where.index]
    node.owner = None
    node.parent_id = None
    node.level = Level.TOP
    return where


def restore(node: Project | Task, where: Placement, forest: list | None = None) -> None:
    """Undo a detach or a move: put the node back exactly where `where` says."""
    if node.owner is not None:
        detach(node)
    elif forest is not None and any(n is node for n in forest):
        forest.remove(node)
    if where.owner is not None:
        node.owner = where.owner
        _container(node).insert(where.index, node)
    elif forest is not None:
        forest.insert(where.index, node)
    node.parent_id = where.parent_id
    node.level = where.level
    if isinstance(node, Task):
        _assign_project(node, where.project_id)


def remove(forest: list[N], node_id: int) -> bool:
    """Remove the node with `node_id` and its whole subtree from `forest`.

    `forest` is the list of top-level nodes the caller holds (for tasks this is
    usually `project.tasks`). Returns whether anything was removed.
    """
    for root in forest:
        node = find_by_id(root, node_id)
        if node is None:
            continue
        if node.owner is None:
            forest.remove(node)
        else:
            detach(node)
        return True
    return False


# ── state ────────────────────────────────────────────────────────────────────


def update(node: Project | Task, new_name: str, new_desc: str | None) -> None:
    validate_name(new_name)
    node.name = new_name
    node.description = new_desc


def complete(task: Task, when: datetime | None = None) -> None:
    if task.completed:
        raise StateError(f"'{task.name}' is already completed")
    task.completed = True
    task.completion_date = when or clock.now()


def reopen(task: Task) -> None:
    if not task.completed:
        raise StateError(f"'{task.name}' is not completed")
    task.completed = False
    task.completion_date = None


# ── linking ──────────────────────────────────────────────────────────────────


def link(projects: Sequence[Project], tasks: Sequence[Task]) -> list[Project]:
    """Rebuild the project forest from flat rows using their parent/project ids."""
    projects_by_id = {p.id: p for p in projects}
    roots: list[Project] = []
    for project in projects:
        parent = projects_by_id.get(project.parent_id) if project.parent_id is not None else None
        if project.parent_id is not None and parent is None:
            logger.warning("project %s has missing parent %s", project.id, project.parent_id)
        if parent is None:
            project.parent_id = None
            project.level = Level.TOP
            roots.append(project)
            continue
        try:
            add_subproject(parent, project)
        except CycleError:
            logger.warning("project %s is part of a parent cycle, promoted", project.id)
            project.parent_id = None
            project.level = Level.TOP
            roots.append(project)

    tasks_by_id = {t.id: t for t in tasks}
    for task in tasks:
        project = projects_by_id.get(task.project_id)
        if project is None:
            logger.warning("task %s has missing project %s, skipped", task.id, task.project_id)
            continue
        parent = tasks_by_id.get(task.parent_id) if task.parent_id is not None else None
        if parent is not None and parent.project_id not in projects_by_id:
            parent = None
        if parent is not None:
            try:
                add_subtask(parent, task)
                continue
            except CycleError:
                logger.warning("task %s is part of a parent cycle, promoted", task.id)
        elif task.parent_id is not None:
            logger.warning("task %s has missing parent %s", task.id, task.parent_id)
        add_task_to_project(project, task)
    return roots


# ── rendering ────────────────────────────────────────────────────────────────


def _label(node: Project | Task) -> str:
    ref = node.id if node.id is not None else "-"
    if isinstance(node, Task):
        mark = "✓" if node.completed else "□"
        return f"{mark} {node.name} (ID: {ref})"
    done = sum(1 for t in walk_tasks(node) if t.completed)
    return f"{node.name} (ID: {ref}) [{done}/{node.task_count}]"


def _branches(node: Project | Task) -> list[Project | Task]:
    if isinstance(node, Project):
        return [*node.tasks, *node.children]
    return list(node.children)


def render_tree(root: Project | Task, level: int = 0) -> str:
    indent = "    " * level
    lines = [f"{indent}{_label(root)}"]

    def emit(node: Project | Task, prefix: str) -> None:
        branches = _branches(node)
        for i, child in enumerate(branches):
            last = i == len(branches) - 1
            lines.append(f"{indent}{prefix}{'└── ' if last else '├── '}{_label(child)}")
            emit(child, prefix + ("    " if last else "│   "))

    emit(root, "")
    return "\n".join(lines)
