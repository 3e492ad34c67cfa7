"""Tests for refresh orchestration, retry policy, and the state store."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from pace_bar.errors import (
    ApiError,
    CredentialError,
    CredentialErrorKind,
    TransportError,
    TransportErrorKind,
)
from pace_bar.models import RefreshState, StateStore, UsageSnapshot
from pace_bar.refresh import RefreshOrchestrator

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

SNAPSHOT_A = UsageSnapshot(45.2, T0 + timedelta(hours=2), 30.0, T0 + timedelta(days=3))
SNAPSHOT_B = UsageSnapshot(50.0, T0 + timedelta(hours=2), 31.0, T0 + timedelta(days=3))


# ── Fakes ────────────────────────────────────────────────────────────────────

class FakeCredentials:
    """Raises each queued outcome that is an exception, else returns it."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def get_token(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeClient:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.tokens = []

    async def fetch(self, token):
        self.tokens.append(token)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class Clock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now


def _not_logged_in():
    return CredentialError(CredentialErrorKind.NOT_LOGGED_IN)


def _orchestrator(credentials, client, store=None, clock=None):
    sleep = RecordingSleep()
    orch = RefreshOrchestrator(
        store or StateStore(), credentials, client,
        sleep=sleep, clock=clock or Clock(),
    )
    return orch, sleep


# ── Successful refresh ───────────────────────────────────────────────────────

class TestRefreshSuccess:
    def test_commits_snapshot(self):
        orch, sleep = _orchestrator(FakeCredentials("tok"), FakeClient(SNAPSHOT_A))
        asyncio.run(orch.refresh())

        state = orch.store.state
        assert state.snapshot == SNAPSHOT_A
        assert state.last_updated_at == T0
        assert state.last_error is None
        assert state.is_refreshing is False
        assert sleep.delays == []

    def test_token_is_passed_to_client(self):
        client = FakeClient(SNAPSHOT_A)
        orch, _ = _orchestrator(FakeCredentials("tok-123"), client)
        asyncio.run(orch.refresh())
        assert client.tokens == ["tok-123"]

    def test_second_refresh_supersedes_first(self):
        clock = Clock()
        orch, _ = _orchestrator(
            FakeCredentials("tok"), FakeClient(SNAPSHOT_A, SNAPSHOT_B), clock=clock,
        )
        asyncio.run(orch.refresh())
        clock.now = T0 + timedelta(minutes=2)
        asyncio.run(orch.refresh())

        assert orch.store.state.snapshot == SNAPSHOT_B
        assert orch.store.state.last_updated_at == T0 + timedelta(minutes=2)

    def test_success_clears_previous_error(self):
        store = StateStore(RefreshState(last_error=object()))
        orch, _ = _orchestrator(FakeCredentials("tok"), FakeClient(SNAPSHOT_A), store)
        asyncio.run(orch.refresh())
        assert store.state.last_error is None

    def test_is_refreshing_transitions(self):
        store = StateStore()
        seen = []
        store.subscribe(lambda state: seen.append(state.is_refreshing))
        orch, _ = _orchestrator(FakeCredentials("tok"), FakeClient(SNAPSHOT_A), store)
        asyncio.run(orch.refresh())
        assert seen[0] is True
        assert seen[-1] is False


# ── Retry policy ─────────────────────────────────────────────────────────────

class TestRetry:
    def test_credential_retry_recovers(self):
        creds = FakeCredentials(_not_logged_in(), _not_logged_in(), "tok")
        orch, sleep = _orchestrator(creds, FakeClient(SNAPSHOT_A))
        asyncio.run(orch.refresh())

        assert orch.store.state.snapshot == SNAPSHOT_A
        assert orch.store.state.last_error is None
        assert creds.calls == 3
        assert sleep.delays == [2.0, 2.0]

    def test_credential_retries_exhausted_keeps_snapshot(self):
        store = StateStore(RefreshState(snapshot=SNAPSHOT_A, last_updated_at=T0))
        creds = FakeCredentials(_not_logged_in())
        orch, sleep = _orchestrator(creds, FakeClient(SNAPSHOT_B), store)
        asyncio.run(orch.refresh())

        state = store.state
        assert creds.calls == 4
        assert len(sleep.delays) == 3
        assert state.snapshot == SNAPSHOT_A
        assert state.last_updated_at == T0
        assert state.last_error.category == "credential"
        assert state.last_error.needs_login
        assert state.is_refreshing is False

    def test_access_denied_not_retried(self):
        creds = FakeCredentials(CredentialError(CredentialErrorKind.ACCESS_DENIED))
        orch, sleep = _orchestrator(creds, FakeClient(SNAPSHOT_A))
        asyncio.run(orch.refresh())

        assert creds.calls == 1
        assert sleep.delays == []
        assert "denied" in orch.store.state.last_error.message

    def test_network_retry_refetches_token(self):
        creds = FakeCredentials("tok-1", "tok-2")
        client = FakeClient(TransportError(TransportErrorKind.CONNECTION_LOST), SNAPSHOT_A)
        orch, sleep = _orchestrator(creds, client)
        asyncio.run(orch.refresh())

        assert orch.store.state.snapshot == SNAPSHOT_A
        assert client.tokens == ["tok-1", "tok-2"]
        assert sleep.delays == [3.0]

    def test_invalid_response_not_retried(self):
        client = FakeClient(TransportError(TransportErrorKind.INVALID_RESPONSE))
        orch, sleep = _orchestrator(FakeCredentials("tok"), client)
        asyncio.run(orch.refresh())

        assert sleep.delays == []
        assert orch.store.state.last_error.category == "transport"

    @pytest.mark.parametrize("status", [401, 429, 500])
    def test_api_errors_not_retried(self, status):
        client = FakeClient(ApiError(status))
        orch, sleep = _orchestrator(FakeCredentials("tok"), client)
        asyncio.run(orch.refresh())

        error = orch.store.state.last_error
        assert len(client.tokens) == 1
        assert sleep.delays == []
        assert error.status_code == status
        assert error.needs_login == (status == 401)

    def test_mixed_failures_share_budget(self):
        creds = FakeCredentials(_not_logged_in(), "tok")
        client = FakeClient(
            TransportError(TransportErrorKind.TIMEOUT),
            TransportError(TransportErrorKind.DNS_FAILURE),
            TransportError(TransportErrorKind.TIMEOUT),
        )
        orch, sleep = _orchestrator(creds, client)
        asyncio.run(orch.refresh())

        assert sleep.delays == [2.0, 3.0, 3.0]
        assert orch.store.state.last_error.kind == "timeout"

    def test_unexpected_exception_is_captured(self):
        client = FakeClient(KeyError("boom"))
        orch, _ = _orchestrator(FakeCredentials("tok"), client)
        asyncio.run(orch.refresh())

        error = orch.store.state.last_error
        assert error.category == "unexpected"
        assert "KeyError" in error.message
        assert orch.store.state.is_refreshing is False


# ── Single flight ────────────────────────────────────────────────────────────

class TestSingleFlight:
    def test_concurrent_refresh_is_skipped(self):
        gate = asyncio.Event()

        class GatedClient(FakeClient):
            async def fetch(self, token):
                await gate.wait()
                return await super().fetch(token)

        client = GatedClient(SNAPSHOT_A)
        orch, _ = _orchestrator(FakeCredentials("tok"), client)

        async def scenario():
            first = asyncio.ensure_future(orch.refresh())
            await asyncio.sleep(0)
            assert orch.in_flight
            await orch.refresh()  # returns immediately
            gate.set()
            await first

        asyncio.run(scenario())
        assert client.tokens == ["tok"]
        assert orch.store.state.snapshot == SNAPSHOT_A
        assert not orch.in_flight


# ── StateStore ───────────────────────────────────────────────────────────────

class TestStateStore:
    def test_starts_empty(self):
        state = StateStore().state
        assert state == RefreshState()
        assert state.snapshot is None and state.last_error is None

    def test_update_replaces_state(self):
        store = StateStore()
        before = store.state
        after = store.update(is_refreshing=True)
        assert before.is_refreshing is False
        assert after.is_refreshing is True
        assert store.state is after

    def test_unsubscribe(self):
        store = StateStore()
        seen = []
        unsubscribe = store.subscribe(seen.append)
        store.update(is_refreshing=True)
        unsubscribe()
        store.update(is_refreshing=False)
        assert len(seen) == 1

    def test_failing_subscriber_does_not_block_others(self):
        store = StateStore()
        seen = []

        def broken(_state):
            raise RuntimeError("render failed")

        store.subscribe(broken)
        store.subscribe(seen.append)
        store.update(is_refreshing=True)
        assert len(seen) == 1
