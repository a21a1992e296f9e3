"""Control plane client layer.

Configuration (kubeconfig in, kubeconfig out), a JSON REST client over
httpx, and typed per-group clients built by ``new_client``.
"""

from .clients import (
    AuthorizationV1Client,
    ClientKind,
    CoreV1Client,
    DynamicClient,
    FieldListWatch,
    OAuthV1Client,
    ProjectV1Client,
    RbacV1Client,
    UserV1Client,
    new_client,
)
from .config import (
    ClientConfig,
    KubeconfigError,
    load_kubeconfig,
    turn_off_rate_limiting,
    write_kubeconfig,
)
from .resources import GroupVersionResource
from .rest import RateLimiter, RESTClient

__all__ = [
    # Config
    "ClientConfig",
    "KubeconfigError",
    "load_kubeconfig",
    "turn_off_rate_limiting",
    "write_kubeconfig",
    # REST
    "RESTClient",
    "RateLimiter",
    "GroupVersionResource",
    # Typed clients
    "ClientKind",
    "new_client",
    "CoreV1Client",
    "RbacV1Client",
    "AuthorizationV1Client",
    "UserV1Client",
    "OAuthV1Client",
    "ProjectV1Client",
    "DynamicClient",
    "FieldListWatch",
]
