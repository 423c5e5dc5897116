from datetime import datetime, time, timedelta

from dateutil import parser as dateutil_parser
from dateutil.parser import ParserError

from clido.core.errors import ValidationError

from . import clock

__all__ = ["parse_due_date"]

_DAY_ALIASES = {
    "monday": "mon",
    "tuesday": "tue",
    "wednesday": "wed",
    "thursday": "thu",
    "friday": "fri",
    "saturday": "sat",
    "sunday": "sun",
}
_DAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

# Relative dates land at the end of the day.
_END_OF_DAY = time(23, 59)


def parse_due_date(due_str: str) -> datetime:
    """Parse a due date ('YYYY-MM-DD HH:MM', 'today', 'tomorrow', 'fri', anything dateutil reads).

    Raises ValidationError naming the `due_date` field when nothing matches.
    """
    text = due_str.strip().lower()
    today = clock.today()

    if text == "today":
        return datetime.combine(today, _END_OF_DAY)
    if text == "tomorrow":
        return datetime.combine(today + timedelta(days=1), _END_OF_DAY)
    text = _DAY_ALIASES.get(text, text)
    if text in _DAYS:
        days_ahead = (_DAYS.index(text) - today.weekday() + 7) % 7 or 7
        return datetime.combine(today + timedelta(days=days_ahead), _END_OF_DAY)

    try:
        return datetime.strptime(due_str.strip(), "%Y-%m-%d %H:%M")
    except ValueError:
        pass
    try:
        return dateutil_parser.parse(
            due_str, default=datetime.combine(today, _END_OF_DAY)
        ).replace(microsecond=0, tzinfo=None)
    except (ParserError, ValueError, OverflowError):
        raise ValidationError(
            "due_date", f"'{due_str}' is not a date (try YYYY-MM-DD HH:MM, today, tomorrow, mon)"
        ) from None
