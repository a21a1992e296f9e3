"""Shared test fixtures for tenant-harness tests.

- FakeClients: stands in for ``new_client`` and hands out one MagicMock per
  ClientKind, recording which identity asked for it
- admin_kubeconfig: a minimal kubeconfig file on disk
- fast_waits: readiness wait settings short enough for unit tests
"""

from dataclasses import dataclass, field
from typing import Any
from unittest.mock import MagicMock

import pytest
import yaml

from tenant_harness.kube import ClientConfig, ClientKind
from tenant_harness.project import WaitSettings

ADMIN_HOST = "https://api.test.example:6443"


@dataclass
class FakeClients:
    """Client factory returning a shared MagicMock per client kind."""

    clients: dict[ClientKind, MagicMock] = field(
        default_factory=lambda: {kind: MagicMock(name=kind.value) for kind in ClientKind}
    )
    requests: list[tuple[ClientKind, ClientConfig]] = field(default_factory=list)

    def __call__(self, kind: ClientKind, config: ClientConfig) -> MagicMock:
        self.requests.append((kind, config))
        return self.clients[kind]

    def __getitem__(self, kind: ClientKind) -> MagicMock:
        return self.clients[kind]

    def configs_for(self, kind: ClientKind) -> list[ClientConfig]:
        return [config for k, config in self.requests if k == kind]


@pytest.fixture
def fake_clients() -> FakeClients:
    """Fixture providing a fake client factory."""
    return FakeClients()


@pytest.fixture
def admin_config() -> ClientConfig:
    """Admin client config with throttling enabled."""
    return ClientConfig(host=ADMIN_HOST, bearer_token="admin-token", qps=20.0, burst=50, timeout=30.0)


@pytest.fixture
def fast_waits() -> WaitSettings:
    """Wait settings for unit tests."""
    return WaitSettings(
        poll_interval=0.01,
        access_timeout=0.05,
        annotation_timeout=0.05,
        service_account_interval=0.01,
        service_account_timeout=0.05,
        role_binding_timeout=0.05,
    )


@pytest.fixture
def admin_kubeconfig(tmp_path) -> Any:
    """Write a kubeconfig for the admin identity and return its path."""
    path = tmp_path / "admin.kubeconfig"
    path.write_text(
        yaml.safe_dump(
            {
                "apiVersion": "v1",
                "kind": "Config",
                "clusters": [
                    {
                        "name": "test",
                        "cluster": {"server": ADMIN_HOST, "insecure-skip-tls-verify": True},
                    }
                ],
                "users": [{"name": "admin", "user": {"token": "admin-token"}}],
                "contexts": [{"name": "admin", "context": {"cluster": "test", "user": "admin"}}],
                "current-context": "admin",
            }
        )
    )
    return path


def ready_environment(clients: FakeClients) -> None:
    """Configure fake clients so every readiness wait succeeds at once."""
    clients[ClientKind.USER].get_user.return_value = {
        "metadata": {"name": "existing", "uid": "uid-1"}
    }
    clients[ClientKind.OAUTH].create_access_token.side_effect = lambda **kw: {
        "metadata": {"name": kw["name"]}
    }
    clients[ClientKind.AUTHORIZATION].create_self_subject_access_review.return_value = {
        "status": {"allowed": True}
    }
    clients[ClientKind.CORE].get_namespace.return_value = {
        "metadata": {
            "annotations": {
                "openshift.io/sa.scc.mcs": "s0:c1,c0",
                "openshift.io/sa.scc.supplemental-groups": "1000/10000",
                "openshift.io/sa.scc.uid-range": "1000/10000",
            }
        }
    }
    clients[ClientKind.CORE].get_service_account.return_value = {"metadata": {"name": "sa"}}
    list_watch = MagicMock()
    list_watch.list.return_value = ([{"metadata": {"name": "rb"}}], "1")
    clients[ClientKind.RBAC].role_binding_list_watch.return_value = list_watch


@pytest.fixture
def ready_clients(fake_clients: FakeClients) -> FakeClients:
    """Fake clients for which every provisioning step succeeds immediately."""
    ready_environment(fake_clients)
    return fake_clients
