"""Record of side-effect resources created while provisioning.

Every object a test environment creates (namespaces, users, OAuth clients,
access tokens, ...) is appended here at creation time and deleted again at
teardown. Teardown is best-effort: a failed deletion is logged and the
remaining deletions still run.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Protocol

from .kube.resources import GroupVersionResource
from .shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResourceRef:
    """One object to delete at teardown. Cluster-scoped refs have no namespace."""

    resource: GroupVersionResource
    namespace: str
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.resource}/{self.namespace}/{self.name}"
        return f"{self.resource}/{self.name}"


class Deleter(Protocol):
    """Anything that can delete an object by kind, namespace and name."""

    def delete(self, resource: GroupVersionResource, namespace: str, name: str) -> None: ...


class ResourceLedger:
    """Append-only list of resources owned by one provisioning flow.

    Not safe for concurrent writers.
    """

    def __init__(self) -> None:
        self._refs: list[ResourceRef] = []

    def add(self, resource: GroupVersionResource, namespace: str, name: str) -> ResourceRef:
        """Register an object by explicit coordinates."""
        ref = ResourceRef(resource=resource, namespace=namespace, name=name)
        self._refs.append(ref)
        logger.debug("registered resource for teardown", resource=str(ref))
        return ref

    def add_object(self, resource: GroupVersionResource, obj: dict[str, Any]) -> ResourceRef:
        """Register an object returned by the API, reading its metadata."""
        metadata = obj.get("metadata", {})
        return self.add(resource, metadata.get("namespace", ""), metadata["name"])

    def __len__(self) -> int:
        return len(self._refs)

    def __iter__(self) -> Iterator[ResourceRef]:
        return iter(list(self._refs))

    def teardown(self, deleter: Deleter) -> list[tuple[ResourceRef, Exception]]:
        """Delete every registered resource in registration order.

        Args:
            deleter: Kind-agnostic delete capability (usually the admin
                dynamic client)

        Returns:
            List of (ref, error) pairs for deletions that failed
        """
        failures: list[tuple[ResourceRef, Exception]] = []
        refs, self._refs = self._refs, []
        for ref in refs:
            try:
                deleter.delete(ref.resource, ref.namespace, ref.name)
            except Exception as e:
                failures.append((ref, e))
                logger.warning("failed to delete resource", resource=str(ref), error=str(e))
            else:
                logger.info("deleted resource", resource=str(ref))
        return failures
