"""Persistence adapter: flat rows in, flat rows out.

The store holds no tree structure, only `parent_id`/`project_id` references.
Re-linking rows into a forest is `tree.link`'s job.
"""

import logging
import sqlite3
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Protocol

from .core.errors import PersistenceError, ValidationError
from .core.models import Project, Task
from .lib import clock
from .lib.converters import (
    PROJECT_COLS,
    TASK_COLS,
    format_timestamp,
    row_to_project,
    row_to_task,
)

__all__ = ["SqliteStore", "Store"]

logger = logging.getLogger(__name__)

Kind = type[Project] | type[Task]


class Store(Protocol):
    def save(self, entity: Project | Task) -> int: ...

    def save_many(self, entities: Sequence[Project | Task]) -> None: ...

    def delete(self, kind: Kind, entity_id: int) -> None: ...

    def load_all(self, kind: Kind) -> list: ...

    def mark_completed(self, task_id: int, when: datetime | None = None) -> None: ...


_TABLES: dict[type, tuple[str, str, Callable]] = {
    Project: ("projects", PROJECT_COLS, row_to_project),
    Task: ("tasks", TASK_COLS, row_to_task),
}

_REFRESH_TASK_COUNTS = """
WITH RECURSIVE subtree(root, id) AS (
    SELECT id, id FROM projects
    UNION
    SELECT subtree.root, p.id FROM projects p JOIN subtree ON p.parent_id = subtree.id
)
UPDATE projects SET task_count = (
    SELECT COUNT(*) FROM tasks
    WHERE tasks.project_id IN (SELECT id FROM subtree WHERE subtree.root = projects.id)
)
"""

_MOVE_SUBTASKS = """
WITH RECURSIVE subtree(id) AS (
    SELECT id FROM tasks WHERE parent_id = ?
    UNION
    SELECT t.id FROM tasks t JOIN subtree ON t.parent_id = subtree.id
)
UPDATE tasks SET project_id = ? WHERE id IN (SELECT id FROM subtree)
"""


def _table(kind: Kind) -> tuple[str, str, Callable]:
    try:
        return _TABLES[kind]
    except KeyError:
        raise ValidationError("kind", f"{kind!r} is not a stored entity") from None


class SqliteStore:
    """Store over a caller-owned sqlite3 connection; one transaction per call."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @contextmanager
    def _transaction(self, op: str) -> Iterator[sqlite3.Connection]:
        try:
            with self.conn:
                yield self.conn
                self.conn.execute(_REFRESH_TASK_COUNTS)
        except sqlite3.Error as e:
            raise PersistenceError(f"{op} failed: {e}") from e

    # ── writes ───────────────────────────────────────────────────────────────

    def save(self, entity: Project | Task) -> int:
        kind = type(entity).__name__.lower()
        with self._transaction(f"save {kind}") as conn:
            return self._write(conn, entity)

    def save_many(self, entities: Sequence[Project | Task]) -> None:
        """Update existing rows together; all of them land or none do."""
        with self._transaction(f"save {len(entities)} rows") as conn:
            for entity in entities:
                if entity.id is None:
                    raise PersistenceError("save failed: save_many only updates stored rows")
                self._write(conn, entity)

    def _write(self, conn: sqlite3.Connection, entity: Project | Task) -> int:
        if isinstance(entity, Project):
            return self._write_project(conn, entity)
        if isinstance(entity, Task):
            return self._write_task(conn, entity)
        raise ValidationError("kind", f"cannot save {type(entity).__name__}")

    def _write_project(self, conn: sqlite3.Connection, project: Project) -> int:
        if project.id is None:
            cursor = conn.execute(
                "INSERT INTO projects (name, description, creation_date, parent_id, last_modified) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    project.name,
                    project.description,
                    format_timestamp(project.creation_date),
                    project.parent_id,
                    format_timestamp(project.last_modified),
                ),
            )
            new_id = cursor.lastrowid
            if new_id is None:
                raise PersistenceError("save project failed: no row id assigned")
            logger.debug("inserted project %s", new_id)
            return new_id
        cursor = conn.execute(
            "UPDATE projects SET name = ?, description = ?, parent_id = ?, last_modified = ? WHERE id = ?",
            (
                project.name,
                project.description,
                project.parent_id,
                format_timestamp(project.last_modified),
                project.id,
            ),
        )
        if cursor.rowcount == 0:
            raise PersistenceError(f"save project failed: no project with id {project.id}")
        logger.debug("updated project %s", project.id)
        return project.id

    def _write_task(self, conn: sqlite3.Connection, task: Task) -> int:
        values = (
            task.name,
            task.description,
            format_timestamp(task.due_date),
            int(task.completed),
            format_timestamp(task.completion_date),
            task.project_id,
            task.parent_id,
            int(task.priority),
            format_timestamp(task.last_modified),
        )
        if task.id is None:
            cursor = conn.execute(
                "INSERT INTO tasks (name, description, due_date, completed, completion_date, "
                "project_id, parent_id, priority, last_modified, creation_date) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (*values, format_timestamp(task.creation_date)),
            )
            new_id = cursor.lastrowid
            if new_id is None:
                raise PersistenceError("save task failed: no row id assigned")
            logger.debug("inserted task %s", new_id)
            return new_id
        row = conn.execute("SELECT project_id FROM tasks WHERE id = ?", (task.id,)).fetchone()
        if row is None:
            raise PersistenceError(f"save task failed: no task with id {task.id}")
        conn.execute(
            "UPDATE tasks SET name = ?, description = ?, due_date = ?, completed = ?, "
            "completion_date = ?, project_id = ?, parent_id = ?, priority = ?, last_modified = ? "
            "WHERE id = ?",
            (*values, task.id),
        )
        if row[0] != task.project_id:
            conn.execute(_MOVE_SUBTASKS, (task.id, task.project_id))
            logger.debug("moved task %s subtree to project %s", task.id, task.project_id)
        logger.debug("updated task %s", task.id)
        return task.id

    def delete(self, kind: Kind, entity_id: int) -> None:
        table, _, _ = _table(kind)
        with self._transaction(f"delete {kind.__name__.lower()}") as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (entity_id,))  # noqa: S608
            if cursor.rowcount == 0:
                logger.debug("%s %s already gone", kind.__name__.lower(), entity_id)
                return
            logger.debug("deleted %s %s", kind.__name__.lower(), entity_id)

    def mark_completed(self, task_id: int, when: datetime | None = None) -> None:
        when = when or clock.now()
        with self._transaction("complete task") as conn:
            cursor = conn.execute(
                "UPDATE tasks SET completed = 1, completion_date = ?, last_modified = ? WHERE id = ?",
                (format_timestamp(when), format_timestamp(when), task_id),
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f"complete task failed: no task with id {task_id}")
            logger.debug("completed task %s", task_id)

    # ── reads ────────────────────────────────────────────────────────────────

    def load_all(self, kind: Kind) -> list:
        table, cols, convert = _table(kind)
        try:
            rows = self.conn.execute(f"SELECT {cols} FROM {table} ORDER BY id").fetchall()  # noqa: S608
        except sqlite3.Error as e:
            raise PersistenceError(f"load {table} failed: {e}") from e
        return [convert(row) for row in rows]
