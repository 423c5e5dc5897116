"""Keeps the in-memory forest and the store in step.

Every mutation validates, applies the change in memory, then makes exactly one
store call. If the store raises `PersistenceError` the in-memory change is
undone before the error propagates, so memory never runs ahead of the store.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from . import db, tree
from .core.errors import CycleError, NotFoundError, PersistenceError, ValidationError
from .core.models import Level, Priority, Project, Task, create_project, create_task
from .core.types import UNSET, Unset
from .lib import clock
from .store import SqliteStore, Store

__all__ = ["Workspace", "open_workspace"]

logger = logging.getLogger(__name__)


@contextmanager
def _reverting(undo: Callable[[], object]) -> Iterator[None]:
    try:
        yield
    except PersistenceError as e:
        logger.warning("store rejected write, reverting: %s", e)
        undo()
        raise


class Workspace:
    def __init__(self, store: Store):
        self.store = store
        self.projects: list[Project] = []

    def load(self) -> None:
        """Rebuild the forest from the store, discarding what is in memory."""
        projects = self.store.load_all(Project)
        tasks = self.store.load_all(Task)
        self.projects = tree.link(projects, tasks)
        logger.debug("loaded %d projects, %d tasks", len(projects), len(tasks))

    # ── queries ──────────────────────────────────────────────────────────────

    def all_projects(self) -> list[Project]:
        return [p for root in self.projects for p in tree.walk(root)]

    def all_tasks(self, project_id: int | None = None) -> list[Task]:
        roots = [self.project(project_id)] if project_id is not None else self.projects
        return [t for root in roots for t in tree.walk_tasks(root)]

    def find_project(self, project_id: int) -> Project | None:
        for root in self.projects:
            if (found := tree.find_by_id(root, project_id)) is not None:
                return found
        return None

    def find_task(self, task_id: int) -> Task | None:
        for root in self.projects:
            if (found := tree.find_task(root, task_id)) is not None:
                return found
        return None

    def project(self, project_id: int) -> Project:
        project = self.find_project(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    def task(self, task_id: int) -> Task:
        task = self.find_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    # ── projects ─────────────────────────────────────────────────────────────

    def create_project(
        self, name: str, description: str | None = None, parent_id: int | None = None
    ) -> Project:
        parent = None
        if parent_id is not None:
            parent = self.find_project(parent_id)
            if parent is None:
                raise ValidationError("parent_id", f"no project with id {parent_id}")
        project = create_project(name, description, Level.TOP if parent is None else Level.SUB)

        if parent is None:
            self.projects.append(project)
        else:
            tree.add_subproject(parent, project)

        with _reverting(lambda: self._drop_project(project)):
            project.id = self.store.save(project)
        logger.info("created project %s '%s'", project.id, project.name)
        return project

    def update_project(
        self, project_id: int, name: str | None = None, description: str | None | Unset = UNSET
    ) -> Project:
        project = self.project(project_id)
        old = (project.name, project.description, project.last_modified)
        new_desc = project.description if description is UNSET else description
        tree.update(project, name if name is not None else project.name, new_desc)
        project.last_modified = clock.now()

        def undo() -> None:
            project.name, project.description, project.last_modified = old

        with _reverting(undo):
            self.store.save(project)
        logger.info("updated project %s", project.id)
        return project

    def move_project(self, project_id: int, parent_id: int | None) -> Project:
        """Re-parent a project; `parent_id=None` makes it top-level."""
        project = self.project(project_id)
        parent = self.project(parent_id) if parent_id is not None else None
        if parent is not None and (parent is project or tree.is_ancestor(project, parent)):
            raise CycleError(f"'{project.name}' is an ancestor of '{parent.name}'")
        if parent is project.owner:
            return project

        where = self._take_project(project)
        touched = project.last_modified
        if parent is None:
            self.projects.append(project)
        else:
            tree.add_subproject(parent, project)
        project.last_modified = clock.now()

        def undo() -> None:
            tree.restore(project, where, self.projects)
            project.last_modified = touched

        with _reverting(undo):
            self.store.save(project)
        logger.info("moved project %s under %s", project.id, parent_id)
        return project

    def delete_project(self, project_id: int) -> None:
        """Delete the project with its sub-projects and every task beneath them."""
        project = self.project(project_id)
        where = self._take_project(project)

        with _reverting(lambda: tree.restore(project, where, self.projects)):
            self.store.delete(Project, project_id)
        logger.info("deleted project %s", project_id)

    def _take_project(self, project: Project) -> tree.Placement:
        where = tree.placement(project, self.projects)
        if project.owner is None:
            tree.remove(self.projects, project.id)
        else:
            tree.detach(project)
        return where

    def _drop_project(self, project: Project) -> None:
        if project.owner is not None:
            tree.detach(project)
        elif any(p is project for p in self.projects):
            self.projects.remove(project)

    # ── tasks ────────────────────────────────────────────────────────────────

    def create_task(
        self,
        name: str,
        project_id: int,
        description: str | None = None,
        parent_id: int | None = None,
        due_date: datetime | None = None,
        priority: Priority = Priority.NONE,
    ) -> Task:
        project = self.find_project(project_id)
        if project is None:
            raise ValidationError("project_id", f"no project with id {project_id}")
        parent = None
        if parent_id is not None:
            parent = self.find_task(parent_id)
            if parent is None:
                raise ValidationError("parent_id", f"no task with id {parent_id}")
            if parent.project_id != project.id:
                raise ValidationError("parent_id", f"task {parent_id} belongs to another project")

        task = create_task(name, description, project.id, Level.TOP if parent is None else Level.SUB)
        task.due_date = due_date
        task.priority = priority
        if parent is None:
            tree.add_task_to_project(project, task)
        else:
            tree.add_subtask(parent, task)

        with _reverting(lambda: tree.detach(task)):
            task.id = self.store.save(task)
        logger.info("created task %s '%s' in project %s", task.id, task.name, project.id)
        return task

    def update_task(
        self,
        task_id: int,
        name: str | None = None,
        description: str | None | Unset = UNSET,
        due_date: datetime | None | Unset = UNSET,
        priority: Priority | None = None,
    ) -> Task:
        task = self.task(task_id)
        old = (task.name, task.description, task.due_date, task.priority, task.last_modified)
        tree.update(
            task,
            name if name is not None else task.name,
            task.description if description is UNSET else description,
        )
        if due_date is not UNSET:
            task.due_date = due_date
        if priority is not None:
            task.priority = priority
        task.last_modified = clock.now()

        def undo() -> None:
            task.name, task.description, task.due_date, task.priority, task.last_modified = old

        with _reverting(undo):
            self.store.save(task)
        logger.info("updated task %s", task.id)
        return task

    def complete_task(self, task_id: int) -> Task:
        task = self.task(task_id)
        touched = task.last_modified
        tree.complete(task)
        task.last_modified = task.completion_date or task.last_modified

        def undo() -> None:
            tree.reopen(task)
            task.last_modified = touched

        with _reverting(undo):
            self.store.mark_completed(task_id, task.completion_date)
        logger.info("completed task %s", task_id)
        return task

    def reopen_task(self, task_id: int) -> Task:
        task = self.task(task_id)
        completed_at, touched = task.completion_date, task.last_modified
        tree.reopen(task)
        task.last_modified = clock.now()

        def undo() -> None:
            tree.complete(task, completed_at)
            task.last_modified = touched

        with _reverting(undo):
            self.store.save(task)
        logger.info("reopened task %s", task_id)
        return task

    def toggle_task(self, task_id: int, recursive: bool = False) -> Task:
        """Flip a task between open and completed.

        With `recursive` the task's new state is applied to every sub-task
        beneath it, and the whole subtree is written in one store call.
        """
        task = self.task(task_id)
        if not recursive:
            if task.completed:
                return self.reopen_task(task_id)
            return self.complete_task(task_id)

        done = not task.completed
        when = clock.now()
        changed = [t for t in tree.walk(task) if t.completed != done]
        before = [(t, t.completion_date, t.last_modified) for t in changed]
        for t in changed:
            if done:
                tree.complete(t, when)
            else:
                tree.reopen(t)
            t.last_modified = when

        def undo() -> None:
            for t, completed_at, touched in before:
                if completed_at is None:
                    tree.reopen(t)
                else:
                    tree.complete(t, completed_at)
                t.last_modified = touched

        with _reverting(undo):
            self.store.save_many(changed)
        state = "completed" if done else "reopened"
        logger.info("%s task %s and %d sub-tasks", state, task_id, len(changed) - 1)
        return task

    def move_task(
        self, task_id: int, parent_id: int | None = None, project_id: int | None = None
    ) -> Task:
        """Re-parent a task under another task, or to the top of a project.

        With neither argument the task becomes top-level in its current project.
        """
        task = self.task(task_id)
        parent = self.task(parent_id) if parent_id is not None else None
        if parent is not None:
            if parent is task or tree.is_ancestor(task, parent):
                raise CycleError(f"'{task.name}' is an ancestor of '{parent.name}'")
            if project_id is not None and project_id != parent.project_id:
                raise ValidationError("parent_id", f"task {parent_id} belongs to another project")
            project = None
        else:
            project = self.project(project_id if project_id is not None else task.project_id)

        where = tree.detach(task)
        touched = task.last_modified
        if parent is not None:
            tree.add_subtask(parent, task)
        else:
            tree.add_task_to_project(project, task)
        task.last_modified = clock.now()

        def undo() -> None:
            tree.restore(task, where)
            task.last_modified = touched

        with _reverting(undo):
            self.store.save(task)
        logger.info("moved task %s", task_id)
        return task

    def delete_task(self, task_id: int) -> None:
        """Delete the task and all of its sub-tasks."""
        task = self.task(task_id)
        project = self.project(task.project_id)
        where = tree.placement(task)
        tree.remove(project.tasks, task_id)

        with _reverting(lambda: tree.restore(task, where)):
            self.store.delete(Task, task_id)
        logger.info("deleted task %s", task_id)


@contextmanager
def open_workspace(db_path: Path | None = None) -> Iterator[Workspace]:
    """One session: open the store, load the forest, close on every exit path."""
    db.init(db_path)
    with db.get_db(db_path) as conn:
        workspace = Workspace(SqliteStore(conn))
        workspace.load()
        yield workspace
