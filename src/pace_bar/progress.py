"""How far into a fixed-length usage window the wall clock is."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

SESSION_WINDOW = timedelta(hours=5)
WEEKLY_WINDOW = timedelta(days=7)


def period_progress(
    resets_at: datetime | None,
    window: timedelta,
    now: datetime | None = None,
) -> int | None:
    """Return the elapsed share of the window ending at *resets_at*, 0-100.

    ``None`` means the reset time is unknown, which is not the same as a
    window that just started.
    """
    if resets_at is None:
        return None
    if now is None:
        now = datetime.now(timezone.utc)
    period_start = resets_at - window
    progress = (now - period_start) / window * 100
    return int(min(max(progress, 0), 100))
