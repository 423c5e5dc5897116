import textwrap
from datetime import datetime

from clido.core.models import Priority, Task

from . import ansi, clock

__all__ = [
    "format_date",
    "format_past_due",
    "format_priority",
    "format_status",
    "wrap",
]

_PRIORITY_COLORS = {
    Priority.HIGH: "red",
    Priority.MEDIUM: "gold",
    Priority.LOW: "blue",
}


def format_date(dt: datetime | None) -> str:
    """'YYYY-MM-DD HH:MM', or 'None' when unset."""
    if dt is None:
        return "None"
    return dt.strftime("%Y-%m-%d %H:%M")


def format_past_due(task: Task, now: datetime | None = None) -> str:
    """'yes' once the due date has passed: red while open, green once done."""
    now = now or clock.now()
    if task.due_date is None or task.due_date >= now:
        return ansi.green("no")
    return ansi.green("yes") if task.completed else ansi.red("yes")


def format_priority(priority: Priority) -> str:
    color = _PRIORITY_COLORS.get(priority)
    if color is None:
        return priority.label
    return getattr(ansi, color)(priority.label)


def format_status(symbol: str, content: str, item_id: int | None = None) -> str:
    """Format status message for action confirmations."""
    if item_id is not None:
        return f"{symbol} {content} {ansi.muted(f'[{item_id}]')}"
    return f"{symbol} {content}"


def wrap(text: str | None, width: int) -> str:
    if not text:
        return ""
    return "\n".join(textwrap.wrap(text, width)) or text
