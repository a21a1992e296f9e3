"""tenant-harness - ephemeral tenant environments for control plane e2e tests."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tenant-harness")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for source checkouts without metadata

from .credentials import CredentialMinter, CredentialPair, generate_token_pair
from .errors import (
    ApiError,
    ExecError,
    ExitError,
    HarnessError,
    HarnessFatalError,
    SetupError,
    WaitTimeoutError,
    WatchError,
)
from .harness import Harness
from .ledger import ResourceLedger, ResourceRef
from .project import Environment, ProjectProvisioner, WaitSettings
from .session import BackgroundProcess, CommandSession
from .wait import poll_until, watch_until_exists

__all__ = [
    "__version__",
    # Orchestration
    "Harness",
    "Environment",
    "ProjectProvisioner",
    "WaitSettings",
    # Credentials
    "CredentialMinter",
    "CredentialPair",
    "generate_token_pair",
    # Ledger
    "ResourceLedger",
    "ResourceRef",
    # CLI sessions
    "CommandSession",
    "BackgroundProcess",
    # Waits
    "poll_until",
    "watch_until_exists",
    # Errors
    "HarnessError",
    "HarnessFatalError",
    "SetupError",
    "ApiError",
    "WaitTimeoutError",
    "WatchError",
    "ExitError",
    "ExecError",
]
