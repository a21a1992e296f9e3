"""Error types for tenant-harness.

Two families of errors exist:

- Fatal errors (``HarnessFatalError`` and subclasses) abort the running test.
  Setup failures and CLI binaries that cannot be started fall here.
- Ordinary errors (``ApiError``, ``WaitTimeoutError``, ``WatchError``,
  ``ExitError``) are returned to the caller for inspection.
"""

from __future__ import annotations

from typing import Any

import httpx

# Kubernetes Status reasons
REASON_NOT_FOUND = "NotFound"
REASON_ALREADY_EXISTS = "AlreadyExists"
REASON_FORBIDDEN = "Forbidden"
REASON_UNAUTHORIZED = "Unauthorized"

_REASON_BY_STATUS = {
    401: REASON_UNAUTHORIZED,
    403: REASON_FORBIDDEN,
    404: REASON_NOT_FOUND,
    409: REASON_ALREADY_EXISTS,
}


class HarnessError(Exception):
    """Base class for all tenant-harness errors."""


class HarnessFatalError(HarnessError):
    """The test cannot continue."""


class SetupError(HarnessFatalError):
    """Provisioning of a test environment failed."""


class ApiError(HarnessError):
    """Error returned by the control plane API."""

    def __init__(self, message: str, status_code: int | None = None, reason: str | None = None):
        self.message = message
        self.status_code = status_code
        self.reason = reason or _REASON_BY_STATUS.get(status_code or 0, "")
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.reason == REASON_NOT_FOUND

    @property
    def is_already_exists(self) -> bool:
        return self.reason == REASON_ALREADY_EXISTS

    @property
    def is_forbidden(self) -> bool:
        return self.reason == REASON_FORBIDDEN


class WaitTimeoutError(HarnessError):
    """A readiness condition was never reached within its window."""

    def __init__(self, message: str = "timed out waiting for the condition"):
        self.message = message
        super().__init__(message)


class WatchError(HarnessError):
    """A watched object was deleted or the watch produced an unexpected event."""


class ExitError(HarnessError):
    """The CLI ran but exited with a non-zero status."""

    def __init__(self, cmd: str, returncode: int, stdout: str = "", stderr: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"command {cmd!r} exited with status {returncode}: {stderr}")


class ExecError(HarnessFatalError):
    """The CLI binary could not be started at all."""


def map_api_error(response: httpx.Response) -> ApiError:
    """Map an unsuccessful HTTP response to an ApiError.

    The control plane answers errors with a ``Status`` object; its ``reason``
    and ``message`` are preferred over the HTTP status line.

    Args:
        response: Response with a non-2xx status code

    Returns:
        ApiError describing the failure
    """
    reason: str | None = None
    message = f"HTTP {response.status_code}"
    try:
        body: Any = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and body.get("kind") == "Status":
        reason = body.get("reason") or None
        message = body.get("message") or message
    elif response.text:
        message = f"{message}: {response.text.strip()}"

    return ApiError(message, status_code=response.status_code, reason=reason)


def map_connection_error(error: Exception, url: str) -> ApiError:
    """Map a transport failure to an ApiError without a status code.

    Args:
        error: Exception raised by httpx
        url: URL that was being accessed

    Returns:
        ApiError describing the failure
    """
    if isinstance(error, httpx.TimeoutException):
        return ApiError(f"Request timeout connecting to {url}")
    return ApiError(f"Cannot reach control plane at {url}: {error}")
