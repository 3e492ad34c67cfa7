"""Status classification, pacing, progress bars, and menu bar text.

Pure stdlib — no rumps or PyObjC imports.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pace_bar.config import MODE_EMOJI, MODE_HIGHEST, MODE_PACE, MODE_SESSION
from pace_bar.models import UsageSnapshot

STATUS_OK = "ok"
STATUS_WARNING = "warning"
STATUS_CRITICAL = "critical"
STATUS_UNKNOWN = "unknown"

WARNING_THRESHOLD = 70
CRITICAL_THRESHOLD = 90

STATUS_EMOJI = {
    STATUS_OK: "\U0001F7E2",        # green circle
    STATUS_WARNING: "\U0001F7E1",   # yellow circle
    STATUS_CRITICAL: "\U0001F534",  # red circle
    STATUS_UNKNOWN: "\u2753",       # question mark
}

STATUS_COLORS = {
    STATUS_OK: "#788c5d",
    STATUS_WARNING: "#d97757",
    STATUS_CRITICAL: "#FF4444",
    STATUS_UNKNOWN: "#888888",
}
COLOR_EMPTY = "#AAAAAA"
COLOR_MUTED = "#444444"

FILLED_CHAR = "\u2588"   # █
EMPTY_CHAR = "\u2591"    # ░
THIN_MARKER = "\u2502"   # │
THICK_MARKER = "\u2503"  # ┃

BAR_WIDTH = 10
MENU_BAR_WIDTH = 8


def status_for_pct(pct: float) -> str:
    if pct >= CRITICAL_THRESHOLD:
        return STATUS_CRITICAL
    if pct >= WARNING_THRESHOLD:
        return STATUS_WARNING
    return STATUS_OK


def usage_status(snapshot: UsageSnapshot | None) -> str:
    """Coarse status from the higher of session and weekly utilization."""
    if snapshot is None:
        return STATUS_UNKNOWN
    return status_for_pct(snapshot.highest_utilization)


def pace_delta(utilization: float, progress: int | None) -> int | None:
    """Usage percentage minus elapsed-time percentage.

    Positive means quota is being used faster than the window elapses.
    """
    if progress is None:
        return None
    return int(utilization) - progress


def is_ahead_of_pace(utilization: float, progress: int | None) -> bool:
    delta = pace_delta(utilization, progress)
    return delta is not None and delta > 0


def _bar_fill(pct: float, width: int) -> int:
    return max(0, min(width, round(pct / 100 * width)))


def _format_duration(total_seconds: int) -> str:
    days = total_seconds // 86400
    hours = (total_seconds % 86400) // 3600
    minutes = (total_seconds % 3600) // 60
    parts: list[str] = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes and not days:
        parts.append(f"{minutes}m")
    return " ".join(parts) if parts else "<1m"


def time_until(moment: datetime | None, now: datetime | None = None) -> str:
    """Return a human-readable string like '2h 13m' until *moment*."""
    if moment is None:
        return "?"
    now = now or datetime.now(timezone.utc)
    total_seconds = int((moment - now).total_seconds())
    if total_seconds <= 0:
        return "now"
    return _format_duration(total_seconds)


def time_since(moment: datetime | None, now: datetime | None = None) -> str:
    """Return 'just now' or a string like '5m ago' since *moment*."""
    if moment is None:
        return "never"
    now = now or datetime.now(timezone.utc)
    total_seconds = int((now - moment).total_seconds())
    if total_seconds < 60:
        return "just now"
    return f"{_format_duration(total_seconds)} ago"


def progress_bar(pct: float, width: int = BAR_WIDTH) -> str:
    """Build a Unicode progress bar string."""
    filled = _bar_fill(pct, width)
    return FILLED_CHAR * filled + EMPTY_CHAR * (width - filled)


def pace_bar(usage_pct: float, progress: int | None, width: int = BAR_WIDTH) -> str:
    """Usage fill with a marker at the elapsed-time position.

    A marker left of the fill edge means usage is ahead of pace.  The
    thick marker is used inside the filled zone so no block is lost.
    """
    filled = _bar_fill(usage_pct, width)
    if progress is None:
        return progress_bar(usage_pct, width)
    marker = max(0, min(width - 1, round(progress / 100 * (width - 1))))

    chars: list[str] = []
    for i in range(width):
        if i == marker:
            chars.append(THICK_MARKER if i < filled else THIN_MARKER)
        elif i < filled:
            chars.append(FILLED_CHAR)
        else:
            chars.append(EMPTY_CHAR)
    return "".join(chars)


def bar_segments(bar: str, color: str) -> list[tuple[str, str]]:
    """Split a bar into ``(text, color_hex)`` runs; empty blocks are gray."""
    segments: list[tuple[str, str]] = []
    for ch in bar:
        ch_color = COLOR_EMPTY if ch == EMPTY_CHAR else color
        if segments and segments[-1][1] == ch_color:
            segments[-1] = (segments[-1][0] + ch, ch_color)
        else:
            segments.append((ch, ch_color))
    return segments


def menu_bar_text(
    snapshot: UsageSnapshot | None,
    mode: str,
    now: datetime | None = None,
) -> str:
    """Return the status item title for *snapshot* in display *mode*."""
    if snapshot is None:
        return "C: ..."
    if mode == MODE_SESSION:
        pct = snapshot.session_percentage
        return f"C: {progress_bar(pct, MENU_BAR_WIDTH)} {pct}%"
    if mode == MODE_HIGHEST:
        pct = int(snapshot.highest_utilization)
        return f"C: {progress_bar(pct, MENU_BAR_WIDTH)} {pct}%"
    if mode == MODE_PACE:
        pct = snapshot.session_percentage
        bar = pace_bar(pct, snapshot.session_period_progress(now), MENU_BAR_WIDTH)
        return f"C: {bar} {pct}%"
    if mode == MODE_EMOJI:
        emoji = STATUS_EMOJI[usage_status(snapshot)]
        return f"{emoji} {snapshot.session_percentage}%"
    raise ValueError(f"Unknown display mode: {mode!r}")
