"""Unit tests for polling and watch waits."""

from __future__ import annotations

from contextlib import contextmanager

import pytest

from tenant_harness import wait
from tenant_harness.errors import ApiError, WaitTimeoutError, WatchError
from tenant_harness.wait import WatchEvent, poll_until, watch_until_exists


class FakeClock:
    """Replaces the time module inside tenant_harness.wait."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(wait, "time", fake)
    return fake


class CountingPredicate:
    def __init__(self, results):
        self.results = list(results)
        self.calls = 0

    def __call__(self) -> bool:
        self.calls += 1
        result = self.results.pop(0) if self.results else False
        if isinstance(result, Exception):
            raise result
        return result


class FakeListWatch:
    """ListWatch serving canned items and event streams."""

    def __init__(self, clock: FakeClock, items=None, streams=None, stream_duration: float = 1.0):
        self.clock = clock
        self.items = items or []
        self.streams = list(streams or [])
        self.stream_duration = stream_duration
        self.watch_calls: list[tuple[str, float]] = []
        self.closed = 0

    def list(self):
        return list(self.items), "42"

    @contextmanager
    def watch(self, resource_version, timeout_seconds):
        self.watch_calls.append((resource_version, timeout_seconds))
        events = self.streams.pop(0) if self.streams else []
        if not events:
            # server closes an idle stream after a while
            self.clock.now += self.stream_duration
        try:
            yield iter(events)
        finally:
            self.closed += 1


class TestPollUntil:
    """Tests for poll_until."""

    def test_immediate_success_calls_once(self, clock):
        predicate = CountingPredicate([True])

        poll_until(1, 10, predicate)

        assert predicate.calls == 1
        assert clock.sleeps == []

    def test_success_after_retries(self, clock):
        predicate = CountingPredicate([False, False, True])

        poll_until(1, 10, predicate)

        assert predicate.calls == 3
        assert clock.sleeps == [1, 1]

    def test_timeout_bounds_attempts(self, clock):
        predicate = CountingPredicate([])

        with pytest.raises(WaitTimeoutError) as exc_info:
            poll_until(1, 5, predicate)

        assert 5 <= predicate.calls <= 6
        assert "timed out waiting for the condition" in str(exc_info.value)

    def test_predicate_error_is_not_retried(self, clock):
        predicate = CountingPredicate([False, ApiError("boom", status_code=500)])

        with pytest.raises(ApiError):
            poll_until(1, 10, predicate)

        assert predicate.calls == 2


class TestWatchUntilExists:
    """Tests for watch_until_exists."""

    def test_existing_object_needs_no_watch(self, clock):
        source = FakeListWatch(clock, items=[{"metadata": {"name": "rb"}}])

        watch_until_exists(source, 180)

        assert source.watch_calls == []

    @pytest.mark.parametrize("event_type", [wait.ADDED, wait.MODIFIED])
    def test_add_or_modify_succeeds(self, clock, event_type):
        source = FakeListWatch(clock, streams=[[WatchEvent(event_type, {"metadata": {}})]])

        watch_until_exists(source, 180)

        assert source.watch_calls == [("42", 180)]
        assert source.closed == 1

    def test_delete_fails(self, clock):
        source = FakeListWatch(clock, streams=[[WatchEvent(wait.DELETED)]])

        with pytest.raises(WatchError, match="deleted"):
            watch_until_exists(source, 180)

        assert source.closed == 1

    @pytest.mark.parametrize("event_type", [wait.ERROR, wait.BOOKMARK, "SURPRISE"])
    def test_other_event_is_internal_error(self, clock, event_type):
        source = FakeListWatch(clock, streams=[[WatchEvent(event_type)]])

        with pytest.raises(WatchError, match="internal error"):
            watch_until_exists(source, 180)

    def test_first_event_decides(self, clock):
        source = FakeListWatch(
            clock, streams=[[WatchEvent(wait.ADDED), WatchEvent(wait.DELETED)]]
        )

        watch_until_exists(source, 180)

    def test_closed_stream_is_reestablished(self, clock):
        source = FakeListWatch(clock, streams=[[], [WatchEvent(wait.ADDED)]])

        watch_until_exists(source, 180)

        assert len(source.watch_calls) == 2
        assert source.closed == 2

    def test_deadline_expires(self, clock):
        source = FakeListWatch(clock, stream_duration=60)

        with pytest.raises(WaitTimeoutError):
            watch_until_exists(source, 180)

        assert len(source.watch_calls) == 3
        assert source.closed == 3
