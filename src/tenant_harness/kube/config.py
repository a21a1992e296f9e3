"""Client configuration and kubeconfig handling.

A ClientConfig describes how to reach the control plane and which identity
to present. Admin configs are read from a kubeconfig file; per-user configs
are derived from the admin config and written back out as kubeconfig files
so the CLI can use them.
"""

from __future__ import annotations

import base64
import os
import ssl
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml


class KubeconfigError(Exception):
    """Kubeconfig file is missing or malformed."""


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for one control plane identity.

    ``qps=None`` disables client-side throttling and ``timeout=None``
    disables the request timeout. ``temp_files`` lists credential files
    written out from inline kubeconfig data; the owner removes them.
    """

    host: str
    bearer_token: str | None = None
    ca_file: str | None = None
    cert_file: str | None = None
    key_file: str | None = None
    insecure: bool = False
    qps: float | None = None
    burst: int | None = None
    timeout: float | None = None
    temp_files: tuple[str, ...] = field(default=(), compare=False)

    def anonymous(self) -> ClientConfig:
        """Copy of this config that carries no credentials."""
        return replace(self, bearer_token=None, cert_file=None, key_file=None)

    def with_token(self, token: str) -> ClientConfig:
        """Anonymous copy that authenticates with a bearer token."""
        return replace(self.anonymous(), bearer_token=token)

    def ssl_context(self) -> ssl.SSLContext:
        """Build the TLS context used to verify the server and present a client cert."""
        if self.insecure:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        else:
            context = ssl.create_default_context(cafile=self.ca_file)
        if self.cert_file:
            context.load_cert_chain(self.cert_file, self.key_file)
        return context


def turn_off_rate_limiting(config: ClientConfig) -> ClientConfig:
    """Remove client-side throttling and the request timeout.

    No timeout is set because that would sever long-lived watches.
    """
    return replace(config, qps=None, burst=None, timeout=None)


def _materialize(data: str, suffix: str) -> str:
    """Write base64 inline kubeconfig data to a private temp file."""
    fd, path = tempfile.mkstemp(prefix="tenant-harness-", suffix=suffix)
    with os.fdopen(fd, "wb") as f:
        f.write(base64.b64decode(data))
    os.chmod(path, 0o600)
    return path


def _named(entries: list[dict[str, Any]], name: str, key: str) -> dict[str, Any]:
    for entry in entries or []:
        if entry.get("name") == name:
            return entry.get(key) or {}
    raise KubeconfigError(f"{key} {name!r} not found in kubeconfig")


def load_kubeconfig(
    path: str | Path,
    context: str | None = None,
    qps: float | None = None,
    burst: int | None = None,
) -> ClientConfig:
    """Read a kubeconfig file into a ClientConfig.

    Args:
        path: Kubeconfig path
        context: Context name; defaults to ``current-context``
        qps: Client-side request rate limit
        burst: Burst allowance for the rate limit

    Returns:
        ClientConfig for the selected context

    Raises:
        KubeconfigError: If the file cannot be read or is incomplete
    """
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise KubeconfigError(f"cannot read kubeconfig {path}: {e}") from e

    context_name = context or raw.get("current-context")
    if not context_name:
        raise KubeconfigError(f"kubeconfig {path} has no current-context")

    ctx = _named(raw.get("contexts"), context_name, "context")
    cluster = _named(raw.get("clusters"), ctx.get("cluster", ""), "cluster")
    user = _named(raw.get("users"), ctx.get("user", ""), "user") if ctx.get("user") else {}

    server = cluster.get("server")
    if not server:
        raise KubeconfigError(f"cluster for context {context_name!r} has no server")

    temp_files: list[str] = []
    ca_file = cluster.get("certificate-authority")
    if cluster.get("certificate-authority-data"):
        ca_file = _materialize(cluster["certificate-authority-data"], ".crt")
        temp_files.append(ca_file)

    cert_file = user.get("client-certificate")
    if user.get("client-certificate-data"):
        cert_file = _materialize(user["client-certificate-data"], ".crt")
        temp_files.append(cert_file)
    key_file = user.get("client-key")
    if user.get("client-key-data"):
        key_file = _materialize(user["client-key-data"], ".key")
        temp_files.append(key_file)

    return ClientConfig(
        host=server,
        bearer_token=user.get("token"),
        ca_file=ca_file,
        cert_file=cert_file,
        key_file=key_file,
        insecure=bool(cluster.get("insecure-skip-tls-verify", False)),
        qps=qps,
        burst=burst,
        temp_files=tuple(temp_files),
    )


def build_kubeconfig(config: ClientConfig, namespace: str, username: str) -> dict[str, Any]:
    """Build a single-context kubeconfig document for a token identity."""
    cluster: dict[str, Any] = {"server": config.host}
    if config.insecure:
        cluster["insecure-skip-tls-verify"] = True
    elif config.ca_file:
        cluster["certificate-authority"] = config.ca_file

    user: dict[str, Any] = {}
    if config.bearer_token:
        user["token"] = config.bearer_token

    context: dict[str, Any] = {"cluster": "cluster", "user": username}
    if namespace:
        context["namespace"] = namespace

    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": "cluster", "cluster": cluster}],
        "users": [{"name": username, "user": user}],
        "contexts": [{"name": "test-context", "context": context}],
        "current-context": "test-context",
    }


def write_kubeconfig(
    config: ClientConfig,
    namespace: str,
    username: str,
    path: str | Path | None = None,
) -> Path:
    """Write a kubeconfig for ``config`` and return its path.

    A private temp file is created when no path is given.
    """
    if path is None:
        fd, name = tempfile.mkstemp(prefix="configfile", suffix=".yaml")
        os.close(fd)
        path = name
    path = Path(path)
    with open(path, "w") as f:
        yaml.safe_dump(build_kubeconfig(config, namespace, username), f, default_flow_style=False)
    path.chmod(0o600)
    return path
