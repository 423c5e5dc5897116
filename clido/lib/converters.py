from datetime import date, datetime
from typing import cast

from clido.core.models import Priority, Project, Task

ProjectRow = tuple[object, ...]
TaskRow = tuple[object, ...]

PROJECT_COLS = "id, name, description, creation_date, parent_id, last_modified"
TASK_COLS = (
    "id, name, description, due_date, completed, creation_date, completion_date, "
    "project_id, parent_id, priority, last_modified"
)


def _parse_datetime(val) -> datetime:
    """Parse a stored timestamp that may be str or numeric."""
    if isinstance(val, (int, float)):
        return datetime.fromtimestamp(val)
    if isinstance(val, str) and val:
        try:
            return datetime.fromisoformat(val)
        except ValueError:
            return datetime.combine(date.fromisoformat(val), datetime.min.time())
    return datetime.min


def _parse_datetime_optional(val) -> datetime | None:
    if val is None or val == "":
        return None
    return _parse_datetime(val)


def format_timestamp(dt: datetime | None) -> str | None:
    """Store timestamps the way sqlite's CURRENT_TIMESTAMP writes them."""
    return dt.isoformat(sep=" ", timespec="seconds") if dt is not None else None


def _priority(val) -> Priority:
    try:
        return Priority(int(cast(int, val)))
    except (TypeError, ValueError):
        return Priority.NONE


def row_to_project(row: ProjectRow) -> Project:
    """
    Converts a raw database row from the projects table into a Project.
    Expected row format: (id, name, description, creation_date, parent_id, last_modified)
    """
    creation_date = _parse_datetime(row[3])
    return Project(
        id=cast(int, row[0]),
        name=cast(str, row[1]),
        description=cast(str, row[2]) if row[2] is not None else None,
        creation_date=creation_date,
        parent_id=cast(int, row[4]) if len(row) > 4 and row[4] is not None else None,
        last_modified=(_parse_datetime_optional(row[5]) if len(row) > 5 else None) or creation_date,
    )


def row_to_task(row: TaskRow) -> Task:
    """
    Converts a raw database row from the tasks table into a Task.
    Expected row format: (id, name, description, due_date, completed, creation_date,
    completion_date, project_id, parent_id, priority, last_modified)
    """
    completed = bool(row[4])
    creation_date = _parse_datetime(row[5])
    completion_date = _parse_datetime_optional(row[6])
    if completed and completion_date is None:
        completion_date = datetime.min
    return Task(
        id=cast(int, row[0]),
        name=cast(str, row[1]),
        description=cast(str, row[2]) if row[2] is not None else None,
        due_date=_parse_datetime_optional(row[3]),
        completed=completed,
        creation_date=creation_date,
        completion_date=completion_date if completed else None,
        project_id=cast(int, row[7]),
        parent_id=cast(int, row[8]) if len(row) > 8 and row[8] is not None else None,
        priority=_priority(row[9]) if len(row) > 9 else Priority.NONE,
        last_modified=(_parse_datetime_optional(row[10]) if len(row) > 10 else None) or creation_date,
    )


def project_to_dict(project: Project) -> dict[str, object]:
    return {
        "id": project.id,
        "parent_id": project.parent_id,
        "name": project.name,
        "description": project.description,
        "creation_date": format_timestamp(project.creation_date),
        "last_modified": format_timestamp(project.last_modified),
        "level": project.level.value,
        "task_count": project.task_count,
        "complete": project.is_complete,
        "children": [project_to_dict(c) for c in project.children],
        "tasks": [task_to_dict(t) for t in project.tasks],
    }


def task_to_dict(task: Task) -> dict[str, object]:
    return {
        "id": task.id,
        "parent_id": task.parent_id,
        "project_id": task.project_id,
        "name": task.name,
        "description": task.description,
        "due_date": format_timestamp(task.due_date),
        "priority": task.priority.label,
        "completed": task.completed,
        "creation_date": format_timestamp(task.creation_date),
        "completion_date": format_timestamp(task.completion_date),
        "last_modified": format_timestamp(task.last_modified),
        "level": task.level.value,
        "children": [task_to_dict(c) for c in task.children],
    }
