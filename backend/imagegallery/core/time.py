from __future__ import annotations

from datetime import datetime


def local_now() -> datetime:
    """Wall-clock time of the host process, naive, as stored on new images."""
    return datetime.now()


def format_display(dt: datetime | None) -> str:
    if dt is None:
        return ""
    return dt.strftime("%Y-%m-%d %H:%M")
