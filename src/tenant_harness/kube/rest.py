"""HTTP client for the control plane REST API.

Thin synchronous wrapper around httpx that speaks JSON, maps ``Status``
responses to ApiError, applies optional client-side throttling and opens
watch streams.
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import httpx

from ..errors import map_api_error, map_connection_error
from ..wait import WatchEvent
from .config import ClientConfig

# Connect timeout used for watches, whose read timeout is the watch deadline
WATCH_CONNECT_TIMEOUT = 30.0


class RateLimiter:
    """Token bucket limiting requests to ``qps`` with ``burst`` headroom."""

    def __init__(self, qps: float, burst: int | None = None):
        self.qps = qps
        self.capacity = float(max(burst or 1, 1))
        self._tokens = self.capacity
        self._updated = time.monotonic()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Block until a request may be sent."""
        with self._lock:
            now = time.monotonic()
            self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.qps)
            self._updated = now
            if self._tokens >= 1:
                self._tokens -= 1
                return
            delay = (1 - self._tokens) / self.qps
            self._tokens = 0
            self._updated = now + delay
        time.sleep(delay)


class RESTClient:
    """JSON client bound to one ClientConfig."""

    def __init__(self, config: ClientConfig, transport: httpx.BaseTransport | None = None):
        """Initialize client.

        Args:
            config: Connection and identity settings
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.config = config
        headers = {"Accept": "application/json"}
        if config.bearer_token:
            headers["Authorization"] = f"Bearer {config.bearer_token}"

        kwargs: dict[str, Any] = {}
        if transport is not None:
            kwargs["transport"] = transport
        else:
            kwargs["verify"] = config.ssl_context()

        self._client = httpx.Client(
            base_url=config.host.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(config.timeout),
            **kwargs,
        )
        self._limiter = RateLimiter(config.qps, config.burst) if config.qps else None

    def __enter__(self) -> RESTClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _throttle(self) -> None:
        if self._limiter:
            self._limiter.acquire()

    def request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: API path (e.g., /api/v1/namespaces)
            json: JSON body for POST/PUT
            params: Query parameters

        Returns:
            Response JSON as dict (empty for bodiless responses)

        Raises:
            ApiError: On connection or HTTP errors
        """
        self._throttle()
        try:
            response = self._client.request(method, path, json=json, params=params)
        except httpx.TransportError as e:
            raise map_connection_error(e, f"{self.config.host}{path}") from e
        if response.is_error:
            raise map_api_error(response)
        if not response.content:
            return {}
        return response.json()

    def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.request("GET", path, params=params)

    def create(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        return self.request("POST", path, json=body)

    def delete(self, path: str) -> dict[str, Any]:
        return self.request("DELETE", path)

    @contextmanager
    def watch(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        timeout_seconds: float = 60.0,
    ) -> Iterator[Iterator[WatchEvent]]:
        """Open a watch stream on a collection path.

        The stream is closed when the context exits. A read timeout or a
        connection dropped mid-stream ends the event iterator quietly; the
        caller decides whether to re-watch.

        Args:
            path: Collection path
            params: Extra query parameters (field selector, resourceVersion)
            timeout_seconds: Server-side and read deadline for the stream

        Yields:
            Iterator of WatchEvent
        """
        query = dict(params or {})
        query["watch"] = "true"
        query["timeoutSeconds"] = max(int(timeout_seconds), 1)
        timeout = httpx.Timeout(timeout_seconds, connect=WATCH_CONNECT_TIMEOUT)

        self._throttle()
        try:
            with self._client.stream("GET", path, params=query, timeout=timeout) as response:
                if response.is_error:
                    response.read()
                    raise map_api_error(response)
                yield self._events(response)
        except httpx.TransportError as e:
            raise map_connection_error(e, f"{self.config.host}{path}") from e

    @staticmethod
    def _events(response: httpx.Response) -> Iterator[WatchEvent]:
        try:
            for line in response.iter_lines():
                if not line.strip():
                    continue
                data = json.loads(line)
                yield WatchEvent(type=data.get("type", ""), object=data.get("object") or {})
        except (httpx.ReadTimeout, httpx.ReadError, httpx.RemoteProtocolError):
            return
