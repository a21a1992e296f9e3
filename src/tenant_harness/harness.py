"""Per-test orchestration of provisioning, CLI sessions and teardown.

The surrounding test runner calls ``setup_project()`` (or one of the lighter
variants) before a test and ``teardown()`` after it. Nothing is registered
with the runner implicitly.

Usage:
    harness = Harness("builds")
    try:
        namespace = harness.setup_project()
        out = harness.cli.run("get", "pods").output()
    finally:
        harness.teardown()
"""

from __future__ import annotations

import os
from contextlib import closing
from dataclasses import replace
from pathlib import Path
from typing import Any

from . import cluster
from .config import HarnessConfig, load_config
from .credentials import ClientFactory, CredentialMinter
from .errors import SetupError
from .kube import ClientConfig, ClientKind, KubeconfigError, load_kubeconfig, new_client
from .kube import write_kubeconfig
from .ledger import ResourceLedger, ResourceRef
from .project import Environment, ProjectProvisioner, WaitSettings
from .session import CommandSession
from .shared.logging import bind_environment, clear_environment, get_logger

logger = get_logger(__name__)


class Harness:
    """Owns one test's environment, CLI template and resource ledger."""

    def __init__(
        self,
        base_name: str,
        config: HarnessConfig | None = None,
        client_factory: ClientFactory = new_client,
        waits: WaitSettings | None = None,
    ):
        """Initialize harness.

        Args:
            base_name: Short test name embedded in generated namespaces
            config: Harness configuration (loaded from file/env by default)
            client_factory: Builds typed clients (``new_client`` by default)
            waits: Readiness wait settings
        """
        self.config = config or load_config()
        self.base_name = base_name
        self.client_factory = client_factory
        self.ledger = ResourceLedger()
        self.admin_config_path = self.config.kubeconfig.split(os.pathsep)[0]
        self.cli = CommandSession(
            exec_path=self.config.cli_path,
            admin_config_path=self.admin_config_path,
        )
        self.environment: Environment | None = None
        self._waits = waits
        self._admin_config: ClientConfig | None = None
        self._config_files: list[Path] = []

    # -------------------------------------------------------------------------
    # Identities and clients
    # -------------------------------------------------------------------------

    @property
    def admin_config(self) -> ClientConfig:
        if self._admin_config is None:
            try:
                self._admin_config = load_kubeconfig(
                    self.admin_config_path, qps=self.config.qps, burst=self.config.burst
                )
            except KubeconfigError as e:
                raise SetupError(str(e)) from e
        return self._admin_config

    @property
    def namespace(self) -> str:
        return self.cli.namespace

    @property
    def username(self) -> str:
        return self.cli.username

    def minter(self) -> CredentialMinter:
        return CredentialMinter(self.admin_config, self.ledger, client_factory=self.client_factory)

    def provisioner(self) -> ProjectProvisioner:
        return ProjectProvisioner(
            self.admin_config,
            self.ledger,
            self.minter(),
            self.base_name,
            client_factory=self.client_factory,
            waits=self._waits,
        )

    def admin_client(self, kind: ClientKind) -> Any:
        """Typed client acting as the cluster admin. Caller closes it."""
        return self.client_factory(kind, self.admin_config)

    def user_client(self, kind: ClientKind) -> Any:
        """Typed client acting as the current test user. Caller closes it."""
        if self.environment is None:
            raise SetupError("no test user has been set up")
        return self.client_factory(kind, self.environment.client_config)

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def _adopt(self, env: Environment) -> Environment:
        """Write a kubeconfig for the environment and point the CLI at it."""
        path = write_kubeconfig(env.client_config, env.namespace, env.username)
        self._config_files.append(path)
        logger.info("config path is now", path=str(path), user=env.username)
        env = replace(env, config_path=path)
        self.environment = env
        self.cli = self.cli.with_namespace(env.namespace).with_config_path(path, env.username)
        bind_environment(env.namespace, env.username)
        return env

    def setup_project(self) -> str:
        """Provision a project owned by a fresh user and switch the CLI to it.

        Returns:
            Namespace name
        """
        env = self.provisioner().setup_project()
        return self._adopt(env).namespace

    def create_project(self) -> str:
        """Provision a project with only an access check; the CLI identity is unchanged."""
        env = self.provisioner().create_project()
        self.cli = self.cli.with_namespace(env.namespace)
        bind_environment(env.namespace, env.username)
        return env.namespace

    def setup_namespace(self) -> str:
        """Provision a plain admin-created namespace."""
        env = self.provisioner().setup_namespace()
        self.cli = self.cli.with_namespace(env.namespace)
        bind_environment(env.namespace, env.username)
        return env.namespace

    def change_user(self, username: str) -> CommandSession:
        """Mint credentials for ``username`` and run further commands as that user."""
        user_config = self.minter().mint(username, self.namespace)
        self._adopt(
            Environment(namespace=self.namespace, username=username, client_config=user_config)
        )
        return self.cli

    def wait_for_access_allowed(self, review: dict[str, Any], user: str) -> None:
        self.minter().wait_for_access_allowed(review, user, self.namespace)

    def wait_for_access_denied(self, review: dict[str, Any], user: str) -> None:
        self.minter().wait_for_access_denied(review, user, self.namespace)

    def is_fips(self) -> bool:
        with closing(self.admin_client(ClientKind.CORE)) as core:
            return cluster.is_fips(core)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def teardown(self) -> list[tuple[ResourceRef, Exception]]:
        """Delete every recorded resource and the generated kubeconfig files.

        Credential files written out from the admin kubeconfig are removed
        last, once the admin client is no longer needed. Failures are logged
        and returned; teardown always runs to completion.
        """
        failures: list[tuple[ResourceRef, Exception]] = []
        try:
            if len(self.ledger):
                with closing(self.admin_client(ClientKind.DYNAMIC)) as dynamic:
                    failures = self.ledger.teardown(dynamic)
        finally:
            self._remove_config_files()
            clear_environment()
        if failures:
            logger.warning("teardown finished with failures", failures=len(failures))
        return failures

    def _remove_config_files(self) -> None:
        paths = list(self._config_files)
        if self._admin_config is not None:
            paths.extend(Path(p) for p in self._admin_config.temp_files)
            # Reloaded on next use
            self._admin_config = None
        if not self.config.keep_config_files:
            for path in paths:
                path.unlink(missing_ok=True)
        self._config_files.clear()

    def __enter__(self) -> Harness:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.teardown()
