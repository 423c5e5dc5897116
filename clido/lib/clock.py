from datetime import date, datetime

__all__ = ["now", "today"]


def now() -> datetime:
    """Current local time, truncated to whole seconds so it survives a store round-trip."""
    return datetime.now().replace(microsecond=0)


def today() -> date:
    return now().date()
