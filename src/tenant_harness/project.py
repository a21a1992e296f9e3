"""Provisioning of isolated tenant namespaces.

A project is requested as a freshly minted low-privilege user and then
awaited until the admission side effects the tests rely on have landed:
the security-policy annotations on the namespace, the default service
accounts and their role bindings. Every wait is bounded; any failure is a
fatal SetupError.
"""

from __future__ import annotations

import secrets
from collections.abc import Iterator
from contextlib import closing, contextmanager
from dataclasses import dataclass
from pathlib import Path

from .credentials import ClientFactory, CredentialMinter, self_access_review, wait_for_access
from .errors import ApiError, SetupError, WaitTimeoutError, WatchError
from .kube import ClientConfig, ClientKind, new_client
from .kube import resources
from .ledger import ResourceLedger
from .shared.logging import get_logger
from .wait import poll_until, watch_until_exists

logger = get_logger(__name__)

NAME_PREFIX = "e2e-test"
MAX_GENERATED_NAME_LENGTH = 58
RANDOM_LENGTH = 5
_ALPHANUMS = "bcdfghjklmnpqrstvwxz2456789"

SCC_ANNOTATIONS = (
    "openshift.io/sa.scc.mcs",
    "openshift.io/sa.scc.supplemental-groups",
    "openshift.io/sa.scc.uid-range",
)
DEFAULT_SERVICE_ACCOUNTS = ("default", "deployer", "builder")
DEFAULT_ROLE_BINDINGS = ("system:image-pullers", "system:image-builders", "system:deployers")

SELF_PROVISIONER_BINDING = "e2e-self-provisioners"
SELF_PROVISIONER_ROLE = "self-provisioner"
SELF_PROVISIONER_GROUP = "system:authenticated:oauth"


@dataclass(frozen=True)
class WaitSettings:
    """Intervals and deadlines (seconds) of the readiness waits."""

    poll_interval: float = 1.0
    access_timeout: float = 60.0
    annotation_timeout: float = 180.0
    service_account_interval: float = 0.1
    service_account_timeout: float = 180.0
    role_binding_timeout: float = 180.0


@dataclass(frozen=True)
class Environment:
    """A provisioned namespace and the identity that acts within it."""

    namespace: str
    username: str
    client_config: ClientConfig
    config_path: Path | None = None


def generate_name(base: str) -> str:
    """Generate a collision-resistant namespace name for ``base``.

    Returns:
        ``e2e-test-<base>-`` followed by five random characters; the prefix
        is truncated so the result is a valid 63 character DNS label
    """
    prefix = f"{NAME_PREFIX}-{base}-"[:MAX_GENERATED_NAME_LENGTH]
    suffix = "".join(secrets.choice(_ALPHANUMS) for _ in range(RANDOM_LENGTH))
    return prefix + suffix


@contextmanager
def _setup_step(description: str) -> Iterator[None]:
    """Turn ordinary API and wait errors into a fatal SetupError."""
    try:
        yield
    except (ApiError, WaitTimeoutError, WatchError) as e:
        raise SetupError(f"{description}: {e}") from e


class ProjectProvisioner:
    """Create tenant namespaces and wait until they are usable."""

    def __init__(
        self,
        admin_config: ClientConfig,
        ledger: ResourceLedger,
        minter: CredentialMinter,
        base_name: str,
        client_factory: ClientFactory = new_client,
        waits: WaitSettings | None = None,
    ):
        """Initialize provisioner.

        Args:
            admin_config: Privileged identity
            ledger: Ledger receiving the created namespaces
            minter: Mints the per-project user
            base_name: Test base name embedded in generated namespace names
            client_factory: Builds typed clients (``new_client`` by default)
            waits: Readiness wait settings
        """
        self.admin_config = admin_config
        self.ledger = ledger
        self.minter = minter
        self.base_name = base_name
        self.client_factory = client_factory
        self.waits = waits or WaitSettings()

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def _grant_self_provisioner(self) -> None:
        logger.info("creating role binding to allow self provisioning of projects")
        body = {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRoleBinding",
            "metadata": {"name": SELF_PROVISIONER_BINDING},
            "roleRef": {
                "apiGroup": "rbac.authorization.k8s.io",
                "kind": "ClusterRole",
                "name": SELF_PROVISIONER_ROLE,
            },
            "subjects": [
                {
                    "apiGroup": "rbac.authorization.k8s.io",
                    "kind": "Group",
                    "name": SELF_PROVISIONER_GROUP,
                }
            ],
        }
        with closing(self.client_factory(ClientKind.RBAC, self.admin_config)) as rbac:
            try:
                rbac.create_cluster_role_binding(body)
            except ApiError as e:
                if not e.is_already_exists:
                    raise

    def _request_project(self, config: ClientConfig, namespace: str) -> None:
        """Request a project; on Forbidden grant self-provisioning and retry."""
        logger.info("creating project", namespace=namespace)
        with closing(self.client_factory(ClientKind.PROJECT, config)) as projects:
            try:
                projects.create_project_request(namespace)
                return
            except ApiError as e:
                if not e.is_forbidden:
                    raise

            self._grant_self_provisioner()

            def _created() -> bool:
                try:
                    projects.create_project_request(namespace)
                except ApiError as e:
                    if e.is_forbidden:
                        return False
                    if e.is_already_exists:
                        return True
                    raise
                return True

            poll_until(self.waits.poll_interval, self.waits.access_timeout, _created)

    def _register_namespace(self, namespace: str) -> None:
        self.ledger.add(resources.NAMESPACES, "", namespace)

    # -------------------------------------------------------------------------
    # Readiness waits
    # -------------------------------------------------------------------------

    def _wait_for_access(self, config: ClientConfig, namespace: str) -> None:
        logger.info("waiting on permissions in project", namespace=namespace)
        with closing(self.client_factory(ClientKind.AUTHORIZATION, config)) as authz:
            wait_for_access(
                authz,
                True,
                self_access_review(namespace, "create", "pods"),
                interval=self.waits.poll_interval,
                timeout=self.waits.access_timeout,
            )

    def wait_for_scc_annotations(self, namespace: str) -> None:
        """Wait until the namespace carries its computed security-policy annotations."""
        logger.info("waiting for SCC annotations", namespace=namespace)
        with closing(self.client_factory(ClientKind.CORE, self.admin_config)) as core:

            def _annotated() -> bool:
                try:
                    ns = core.get_namespace(namespace)
                except ApiError as e:
                    if e.is_not_found:
                        return False
                    raise
                annotations = ns.get("metadata", {}).get("annotations") or {}
                return all(annotations.get(key) for key in SCC_ANNOTATIONS)

            poll_until(self.waits.poll_interval, self.waits.annotation_timeout, _annotated)

    def wait_for_service_account(self, config: ClientConfig, namespace: str, name: str) -> None:
        """Poll until the service account exists."""
        logger.info("waiting for service account to be provisioned", namespace=namespace, name=name)
        with closing(self.client_factory(ClientKind.CORE, config)) as core:

            def _exists() -> bool:
                try:
                    core.get_service_account(namespace, name)
                except ApiError as e:
                    if e.is_not_found:
                        return False
                    raise
                return True

            poll_until(
                self.waits.service_account_interval,
                self.waits.service_account_timeout,
                _exists,
            )

    def wait_for_role_binding(self, config: ClientConfig, namespace: str, name: str) -> None:
        """Watch until the role binding exists."""
        logger.info("waiting for role binding to be provisioned", namespace=namespace, name=name)
        with closing(self.client_factory(ClientKind.RBAC, config)) as rbac:
            watch_until_exists(
                rbac.role_binding_list_watch(namespace, name),
                self.waits.role_binding_timeout,
            )

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def setup_project(self) -> Environment:
        """Create a project owned by a fresh user and wait until it is usable.

        Returns:
            Environment with the namespace and the user's credentials

        Raises:
            SetupError: If creation or any readiness wait fails
        """
        namespace = generate_name(self.base_name)
        username = f"{namespace}-user"
        user_config = self.minter.mint(username, namespace)
        logger.info("the user is now", user=username)

        with _setup_step(f"creating project {namespace!r}"):
            self._request_project(user_config, namespace)
        self._register_namespace(namespace)

        with _setup_step(f"waiting on permissions in project {namespace!r}"):
            self._wait_for_access(user_config, namespace)
        with _setup_step(f"waiting for SCC annotations on {namespace!r}"):
            self.wait_for_scc_annotations(namespace)
        for sa in DEFAULT_SERVICE_ACCOUNTS:
            with _setup_step(f"waiting for service account {sa!r} in {namespace!r}"):
                self.wait_for_service_account(user_config, namespace, sa)
        for name in DEFAULT_ROLE_BINDINGS:
            with _setup_step(f"waiting for role binding {name!r} in {namespace!r}"):
                self.wait_for_role_binding(user_config, namespace, name)

        logger.info("project has been fully provisioned", namespace=namespace)
        return Environment(namespace=namespace, username=username, client_config=user_config)

    def create_project(self, config: ClientConfig | None = None, username: str = "admin") -> Environment:
        """Create a project without the per-identity readiness waits.

        Only a single access-propagation check is made.

        Args:
            config: Identity creating the project (admin by default)
            username: Name of that identity

        Raises:
            SetupError: If creation or the access check fails
        """
        config = config or self.admin_config
        namespace = generate_name(self.base_name)
        with _setup_step(f"creating project {namespace!r}"):
            self._request_project(config, namespace)
        self._register_namespace(namespace)
        with _setup_step(f"waiting on permissions in project {namespace!r}"):
            self._wait_for_access(config, namespace)
        return Environment(namespace=namespace, username=username, client_config=config)

    def setup_namespace(self) -> Environment:
        """Create a plain namespace as admin.

        Waits only for the SCC annotations and the ``default`` service account.

        Raises:
            SetupError: If creation or a wait fails
        """
        namespace = generate_name(self.base_name)
        logger.info("creating namespace", namespace=namespace)
        with _setup_step(f"creating namespace {namespace!r}"):
            with closing(self.client_factory(ClientKind.CORE, self.admin_config)) as core:
                core.create_namespace(namespace)
        self._register_namespace(namespace)

        with _setup_step(f"waiting for SCC annotations on {namespace!r}"):
            self.wait_for_scc_annotations(namespace)
        with _setup_step(f"waiting for service account 'default' in {namespace!r}"):
            self.wait_for_service_account(self.admin_config, namespace, "default")
        return Environment(namespace=namespace, username="admin", client_config=self.admin_config)
