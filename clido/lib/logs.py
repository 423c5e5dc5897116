import logging
import sys

from clido import config

__all__ = ["configure"]

_FORMAT = "%(levelname)s %(name)s: %(message)s"


def configure(level: str | None = None) -> None:
    """Send clido's log records to stderr at the configured level."""
    name = (level or config.get_log_level()).upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        numeric = logging.WARNING
    root = logging.getLogger("clido")
    root.setLevel(numeric)
    if not any(getattr(h, "_clido", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._clido = True  # type: ignore[attr-defined]
        root.addHandler(handler)
