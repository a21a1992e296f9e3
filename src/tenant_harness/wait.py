"""Bounded polling and watch-based waits.

Readiness of a freshly provisioned environment is eventually consistent:
annotations, service accounts and role bindings appear asynchronously after
the namespace is created. The helpers here block the caller until such a
side effect is observed or a hard deadline passes.

Predicate errors are not retried. A predicate that has to tolerate a
transient state (for example "not found yet") must return False for it.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Protocol

from .errors import WaitTimeoutError, WatchError
from .shared.logging import get_logger

logger = get_logger(__name__)

# Watch event types
ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"
BOOKMARK = "BOOKMARK"
ERROR = "ERROR"


@dataclass
class WatchEvent:
    """A single event from a watch stream."""

    type: str
    object: dict[str, Any] = field(default_factory=dict)


class ListWatch(Protocol):
    """List and watch a set of objects narrowed to a single name."""

    def list(self) -> tuple[list[dict[str, Any]], str]:
        """Return the current items and the list resource version."""
        ...

    def watch(
        self, resource_version: str, timeout_seconds: float
    ) -> AbstractContextManager[Iterator[WatchEvent]]:
        """Open a watch stream starting after ``resource_version``."""
        ...


def poll_until(
    interval: float,
    timeout: float,
    predicate: Callable[[], bool],
) -> None:
    """Call ``predicate`` every ``interval`` seconds until it returns True.

    The first call happens immediately. No attempt is started after the
    ``timeout`` window, so the predicate runs at most
    ``timeout / interval + 1`` times.

    Args:
        interval: Seconds between attempts
        timeout: Length of the polling window in seconds
        predicate: Condition check; exceptions propagate immediately

    Raises:
        WaitTimeoutError: If the condition was not met in time
    """
    deadline = time.monotonic() + timeout
    attempts = 0
    while True:
        attempts += 1
        if predicate():
            return
        if time.monotonic() + interval > deadline:
            logger.debug("poll timed out", attempts=attempts, timeout=timeout)
            raise WaitTimeoutError()
        time.sleep(interval)


def check_exists_event(event: WatchEvent) -> None:
    """Interpret a watch event for an object that must exist.

    Raises:
        WatchError: If the object was deleted or the event is unexpected
    """
    if event.type in (ADDED, MODIFIED):
        return
    if event.type == DELETED:
        raise WatchError("object has been deleted")
    raise WatchError(f"internal error: unexpected event {event.type!r}: {event.object!r}")


def watch_until_exists(source: ListWatch, timeout: float) -> None:
    """Block until the object selected by ``source`` exists.

    The current state is listed first; an existing object counts as an add
    event. Otherwise a watch is opened and the first event decides the
    outcome. A stream that closes before any event is reopened until the
    deadline passes. The stream is closed on every return path.

    Args:
        source: List/watch pair filtered to one object
        timeout: Deadline in seconds for the whole wait

    Raises:
        WatchError: On a delete or unexpected event
        WaitTimeoutError: If no event arrived before the deadline
    """
    deadline = time.monotonic() + timeout
    while True:
        items, resource_version = source.list()
        if items:
            check_exists_event(WatchEvent(ADDED, items[0]))
            return

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise WaitTimeoutError()

        with source.watch(resource_version, remaining) as events:
            for event in events:
                check_exists_event(event)
                return

        if time.monotonic() >= deadline:
            raise WaitTimeoutError()
        logger.debug("watch closed before any event, re-establishing")
