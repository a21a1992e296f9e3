"""Resource coordinates for the control plane REST API."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GroupVersionResource:
    """API group, version and plural resource name of one object kind."""

    group: str
    version: str
    resource: str
    namespaced: bool = True

    def base_path(self) -> str:
        """Return the API root for this group/version."""
        if not self.group:
            return f"/api/{self.version}"
        return f"/apis/{self.group}/{self.version}"

    def path(self, namespace: str = "", name: str = "") -> str:
        """Build the collection or object path.

        Args:
            namespace: Namespace for namespaced kinds (ignored otherwise)
            name: Object name; omitted for the collection path

        Returns:
            Absolute URL path
        """
        parts = [self.base_path()]
        if self.namespaced and namespace:
            parts.append(f"namespaces/{namespace}")
        parts.append(self.resource)
        if name:
            parts.append(name)
        return "/".join(parts)

    def __str__(self) -> str:
        if self.group:
            return f"{self.resource}.{self.version}.{self.group}"
        return f"{self.resource}.{self.version}"


NAMESPACES = GroupVersionResource("", "v1", "namespaces", namespaced=False)
SERVICE_ACCOUNTS = GroupVersionResource("", "v1", "serviceaccounts")
CONFIG_MAPS = GroupVersionResource("", "v1", "configmaps")

ROLE_BINDINGS = GroupVersionResource("rbac.authorization.k8s.io", "v1", "rolebindings")
CLUSTER_ROLE_BINDINGS = GroupVersionResource(
    "rbac.authorization.k8s.io", "v1", "clusterrolebindings", namespaced=False
)

SELF_SUBJECT_ACCESS_REVIEWS = GroupVersionResource(
    "authorization.k8s.io", "v1", "selfsubjectaccessreviews", namespaced=False
)

USERS = GroupVersionResource("user.openshift.io", "v1", "users", namespaced=False)
OAUTH_CLIENTS = GroupVersionResource("oauth.openshift.io", "v1", "oauthclients", namespaced=False)
OAUTH_ACCESS_TOKENS = GroupVersionResource(
    "oauth.openshift.io", "v1", "oauthaccesstokens", namespaced=False
)

PROJECT_REQUESTS = GroupVersionResource(
    "project.openshift.io", "v1", "projectrequests", namespaced=False
)
