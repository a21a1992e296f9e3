"""Typed control plane clients and the client factory.

Each client covers one API group and exposes only the operations the
harness needs. ``new_client`` is the single construction point, keyed by
ClientKind. The dynamic client is kept to one kind-agnostic operation,
deletion, which is all teardown needs.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import AbstractContextManager
from enum import Enum
from typing import Any, Literal, overload

import httpx

from ..wait import WatchEvent
from . import resources
from .config import ClientConfig
from .resources import GroupVersionResource
from .rest import RESTClient


class ClientKind(Enum):
    """Closed set of client kinds the factory can build."""

    CORE = "core"
    RBAC = "rbac"
    AUTHORIZATION = "authorization"
    USER = "user"
    OAUTH = "oauth"
    PROJECT = "project"
    DYNAMIC = "dynamic"


class _TypedClient:
    def __init__(self, rest: RESTClient):
        self.rest = rest

    def close(self) -> None:
        self.rest.close()


class CoreV1Client(_TypedClient):
    """core/v1: namespaces, service accounts, config maps."""

    def get_namespace(self, name: str) -> dict[str, Any]:
        return self.rest.get(resources.NAMESPACES.path(name=name))

    def create_namespace(self, name: str) -> dict[str, Any]:
        body = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}
        return self.rest.create(resources.NAMESPACES.path(), body)

    def get_service_account(self, namespace: str, name: str) -> dict[str, Any]:
        return self.rest.get(resources.SERVICE_ACCOUNTS.path(namespace, name))

    def get_config_map(self, namespace: str, name: str) -> dict[str, Any]:
        return self.rest.get(resources.CONFIG_MAPS.path(namespace, name))


class FieldListWatch:
    """ListWatch over a namespaced collection narrowed to one object name."""

    def __init__(self, rest: RESTClient, resource: GroupVersionResource, namespace: str, name: str):
        self.rest = rest
        self.resource = resource
        self.namespace = namespace
        self.field_selector = f"metadata.name={name}"

    def list(self) -> tuple[list[dict[str, Any]], str]:
        result = self.rest.get(
            self.resource.path(self.namespace), params={"fieldSelector": self.field_selector}
        )
        return result.get("items") or [], result.get("metadata", {}).get("resourceVersion", "")

    def watch(
        self, resource_version: str, timeout_seconds: float
    ) -> AbstractContextManager[Iterator[WatchEvent]]:
        params = {"fieldSelector": self.field_selector}
        if resource_version:
            params["resourceVersion"] = resource_version
        return self.rest.watch(self.resource.path(self.namespace), params, timeout_seconds)


class RbacV1Client(_TypedClient):
    """rbac.authorization.k8s.io/v1: role bindings and cluster role bindings."""

    def role_binding_list_watch(self, namespace: str, name: str) -> FieldListWatch:
        return FieldListWatch(self.rest, resources.ROLE_BINDINGS, namespace, name)

    def create_cluster_role_binding(self, body: dict[str, Any]) -> dict[str, Any]:
        return self.rest.create(resources.CLUSTER_ROLE_BINDINGS.path(), body)


class AuthorizationV1Client(_TypedClient):
    """authorization.k8s.io/v1: self subject access reviews."""

    def create_self_subject_access_review(self, spec: dict[str, Any]) -> dict[str, Any]:
        body = {
            "apiVersion": "authorization.k8s.io/v1",
            "kind": "SelfSubjectAccessReview",
            "spec": spec,
        }
        return self.rest.create(resources.SELF_SUBJECT_ACCESS_REVIEWS.path(), body)


class UserV1Client(_TypedClient):
    """user.openshift.io/v1: users."""

    def get_user(self, name: str) -> dict[str, Any]:
        return self.rest.get(resources.USERS.path(name=name))

    def create_user(self, name: str = "", generate_name: str = "") -> dict[str, Any]:
        metadata = {"name": name} if name else {"generateName": generate_name}
        body = {"apiVersion": "user.openshift.io/v1", "kind": "User", "metadata": metadata}
        return self.rest.create(resources.USERS.path(), body)


class OAuthV1Client(_TypedClient):
    """oauth.openshift.io/v1: OAuth clients and access tokens."""

    def create_oauth_client(self, name: str, grant_method: str = "auto") -> dict[str, Any]:
        body = {
            "apiVersion": "oauth.openshift.io/v1",
            "kind": "OAuthClient",
            "metadata": {"name": name},
            "grantMethod": grant_method,
        }
        return self.rest.create(resources.OAUTH_CLIENTS.path(), body)

    def create_access_token(
        self,
        name: str,
        client_name: str,
        user_name: str,
        user_uid: str,
        scopes: list[str],
        redirect_uri: str,
    ) -> dict[str, Any]:
        body = {
            "apiVersion": "oauth.openshift.io/v1",
            "kind": "OAuthAccessToken",
            "metadata": {"name": name},
            "clientName": client_name,
            "userName": user_name,
            "userUID": user_uid,
            "scopes": scopes,
            "redirectURI": redirect_uri,
        }
        return self.rest.create(resources.OAUTH_ACCESS_TOKENS.path(), body)


class ProjectV1Client(_TypedClient):
    """project.openshift.io/v1: project requests."""

    def create_project_request(self, name: str) -> dict[str, Any]:
        body = {
            "apiVersion": "project.openshift.io/v1",
            "kind": "ProjectRequest",
            "metadata": {"name": name},
        }
        return self.rest.create(resources.PROJECT_REQUESTS.path(), body)


class DynamicClient(_TypedClient):
    """Kind-agnostic deletion, used by teardown."""

    def delete(self, resource: GroupVersionResource, namespace: str, name: str) -> None:
        self.rest.delete(resource.path(namespace, name))


_CLIENT_CLASSES: dict[ClientKind, type[_TypedClient]] = {
    ClientKind.CORE: CoreV1Client,
    ClientKind.RBAC: RbacV1Client,
    ClientKind.AUTHORIZATION: AuthorizationV1Client,
    ClientKind.USER: UserV1Client,
    ClientKind.OAUTH: OAuthV1Client,
    ClientKind.PROJECT: ProjectV1Client,
    ClientKind.DYNAMIC: DynamicClient,
}


@overload
def new_client(
    kind: Literal[ClientKind.CORE], config: ClientConfig, transport: httpx.BaseTransport | None = ...
) -> CoreV1Client: ...
@overload
def new_client(
    kind: Literal[ClientKind.RBAC], config: ClientConfig, transport: httpx.BaseTransport | None = ...
) -> RbacV1Client: ...
@overload
def new_client(
    kind: Literal[ClientKind.AUTHORIZATION],
    config: ClientConfig,
    transport: httpx.BaseTransport | None = ...,
) -> AuthorizationV1Client: ...
@overload
def new_client(
    kind: Literal[ClientKind.USER], config: ClientConfig, transport: httpx.BaseTransport | None = ...
) -> UserV1Client: ...
@overload
def new_client(
    kind: Literal[ClientKind.OAUTH], config: ClientConfig, transport: httpx.BaseTransport | None = ...
) -> OAuthV1Client: ...
@overload
def new_client(
    kind: Literal[ClientKind.PROJECT], config: ClientConfig, transport: httpx.BaseTransport | None = ...
) -> ProjectV1Client: ...
@overload
def new_client(
    kind: Literal[ClientKind.DYNAMIC], config: ClientConfig, transport: httpx.BaseTransport | None = ...
) -> DynamicClient: ...


def new_client(
    kind: ClientKind, config: ClientConfig, transport: httpx.BaseTransport | None = None
) -> _TypedClient:
    """Build the typed client for ``kind`` from a generic configuration.

    Args:
        kind: Which API group client to build
        config: Connection and identity settings
        transport: Optional httpx transport override

    Returns:
        Typed client owning its own HTTP connection pool
    """
    return _CLIENT_CLASSES[kind](RESTClient(config, transport=transport))
