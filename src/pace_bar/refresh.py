"""Refresh orchestration: credential → fetch → publish, with retry.

Pure stdlib — no rumps or PyObjC imports.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from pace_bar.client import UsageClient
from pace_bar.credentials import CredentialProvider
from pace_bar.errors import PaceBarError, describe, is_retryable, retry_delay
from pace_bar.models import StateStore

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshOrchestrator:
    """Drives one refresh at a time and publishes the outcome to a store.

    Must only be used from a single event loop.  A ``refresh()`` issued
    while another is in flight returns immediately, so two retry
    sequences never write the store concurrently.
    """

    def __init__(
        self,
        store: StateStore,
        credentials: CredentialProvider,
        client: UsageClient,
        *,
        max_retries: int = MAX_RETRIES,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self._credentials = credentials
        self._client = client
        self._max_retries = max_retries
        self._sleep = sleep
        self._clock = clock
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def refresh(self) -> None:
        """Fetch fresh usage and publish it.  Never raises."""
        if self._in_flight:
            logger.debug("Refresh already in flight, skipping")
            return
        self._in_flight = True
        self.store.update(is_refreshing=True, last_error=None)
        try:
            await self._refresh_with_retry()
        finally:
            self._in_flight = False
            self.store.update(is_refreshing=False)

    async def _refresh_with_retry(self) -> None:
        retries_remaining = self._max_retries
        while True:
            try:
                token = await self._credentials.get_token()
                snapshot = await self._client.fetch(token)
            except PaceBarError as e:
                if retries_remaining > 0 and is_retryable(e):
                    delay = retry_delay(e)
                    logger.info("Refresh failed (%s); retrying in %gs, %d retries left",
                                e, delay, retries_remaining)
                    retries_remaining -= 1
                    await self._sleep(delay)
                    continue
                descriptor = describe(e)
                logger.warning("Refresh failed: %s", descriptor.message)
                self.store.update(last_error=descriptor)
                return
            except Exception as e:
                logger.exception("Unexpected error during refresh")
                self.store.update(last_error=describe(e))
                return

            logger.debug("Usage refreshed: session %.1f%%, week %.1f%%",
                         snapshot.session_utilization, snapshot.weekly_utilization)
            self.store.update(
                snapshot=snapshot,
                last_updated_at=self._clock(),
                last_error=None,
            )
            return
