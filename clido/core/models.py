import dataclasses
from datetime import datetime
from enum import Enum, IntEnum

from clido.lib import clock

from .errors import ValidationError

__all__ = [
    "Level",
    "Priority",
    "Project",
    "Task",
    "create_project",
    "create_task",
    "validate_name",
]


class Level(Enum):
    TOP = "top"
    SUB = "sub"


class Priority(IntEnum):
    HIGH = 1
    MEDIUM = 2
    LOW = 3
    NONE = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclasses.dataclass(eq=False)
class Project:
    name: str
    description: str | None = None
    id: int | None = None
    parent_id: int | None = None
    creation_date: datetime = dataclasses.field(default_factory=clock.now)
    last_modified: datetime = dataclasses.field(default_factory=clock.now)
    level: Level = Level.TOP
    children: list["Project"] = dataclasses.field(default_factory=list, repr=False)
    tasks: list["Task"] = dataclasses.field(default_factory=list, repr=False)
    owner: "Project | None" = dataclasses.field(default=None, repr=False)

    @property
    def task_count(self) -> int:
        return sum(1 + t.subtask_count for t in self.tasks) + sum(
            c.task_count for c in self.children
        )

    @property
    def is_complete(self) -> bool:
        return all(t.completed and t.subtree_complete for t in self.tasks) and all(
            c.is_complete for c in self.children
        )


@dataclasses.dataclass(eq=False)
class Task:
    name: str
    project_id: int | None
    description: str | None = None
    id: int | None = None
    parent_id: int | None = None
    due_date: datetime | None = None
    priority: Priority = Priority.NONE
    completed: bool = False
    creation_date: datetime = dataclasses.field(default_factory=clock.now)
    completion_date: datetime | None = None
    last_modified: datetime = dataclasses.field(default_factory=clock.now)
    level: Level = Level.TOP
    children: list["Task"] = dataclasses.field(default_factory=list, repr=False)
    owner: "Project | Task | None" = dataclasses.field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.completed != (self.completion_date is not None):
            raise ValidationError(
                "completion_date", "must be set exactly when the task is completed"
            )

    @property
    def subtask_count(self) -> int:
        return sum(1 + c.subtask_count for c in self.children)

    @property
    def subtree_complete(self) -> bool:
        return all(c.completed and c.subtree_complete for c in self.children)

    @property
    def is_past_due(self) -> bool:
        return self.due_date is not None and not self.completed and self.due_date < clock.now()


def validate_name(name: str | None, field: str = "name") -> None:
    if not name or not name.strip():
        raise ValidationError(field, "cannot be empty or whitespace-only")


def create_project(name: str, description: str | None = None, level: Level = Level.TOP) -> Project:
    validate_name(name)
    project = Project(name=name, description=description, level=level)
    project.last_modified = project.creation_date
    return project


def create_task(
    name: str,
    description: str | None,
    project_id: int | None,
    level: Level = Level.TOP,
) -> Task:
    validate_name(name)
    if project_id is None:
        raise ValidationError("project_id", "a task must belong to a project")
    task = Task(name=name, description=description, project_id=project_id, level=level)
    task.last_modified = task.creation_date
    return task
