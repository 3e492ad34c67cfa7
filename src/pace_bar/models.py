"""Usage snapshot, published refresh state, and the state container.

Pure stdlib — no rumps or PyObjC imports.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable

from pace_bar.errors import ErrorDescriptor
from pace_bar.progress import SESSION_WINDOW, WEEKLY_WINDOW, period_progress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    """One complete result of a successful refresh.

    Utilization values are percentages as reported upstream and may go
    past 100 on overage.
    """

    session_utilization: float
    session_resets_at: datetime | None
    weekly_utilization: float
    weekly_resets_at: datetime | None
    sonnet_utilization: float | None = None
    sonnet_resets_at: datetime | None = None

    @property
    def session_percentage(self) -> int:
        return math.floor(self.session_utilization)

    @property
    def weekly_percentage(self) -> int:
        return math.floor(self.weekly_utilization)

    @property
    def sonnet_percentage(self) -> int | None:
        if self.sonnet_utilization is None:
            return None
        return math.floor(self.sonnet_utilization)

    @property
    def highest_utilization(self) -> float:
        return max(self.session_utilization, self.weekly_utilization)

    def session_period_progress(self, now: datetime | None = None) -> int | None:
        return period_progress(self.session_resets_at, SESSION_WINDOW, now)

    def weekly_period_progress(self, now: datetime | None = None) -> int | None:
        return period_progress(self.weekly_resets_at, WEEKLY_WINDOW, now)


@dataclass(frozen=True)
class RefreshState:
    snapshot: UsageSnapshot | None = None
    last_error: ErrorDescriptor | None = None
    is_refreshing: bool = False
    last_updated_at: datetime | None = None


Subscriber = Callable[[RefreshState], None]


class StateStore:
    """Holds the current :class:`RefreshState` and notifies subscribers.

    Not thread-safe: every ``update`` must come from the same event loop.
    """

    def __init__(self, initial: RefreshState | None = None) -> None:
        self._state = initial if initial is not None else RefreshState()
        self._subscribers: list[Subscriber] = []

    @property
    def state(self) -> RefreshState:
        return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def update(self, **changes) -> RefreshState:
        self._state = replace(self._state, **changes)
        for callback in list(self._subscribers):
            try:
                callback(self._state)
            except Exception:
                logger.exception("State subscriber %r failed", callback)
        return self._state
