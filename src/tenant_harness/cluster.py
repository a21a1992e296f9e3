"""Facts about the cluster under test."""

from __future__ import annotations

from typing import Any

import yaml

INSTALL_CONFIG_NAMESPACE = "kube-system"
INSTALL_CONFIG_NAME = "cluster-config-v1"
INSTALL_CONFIG_KEY = "install-config"


def install_config(core: Any) -> dict[str, Any]:
    """Read the installer's config from its config map.

    Args:
        core: CoreV1Client

    Raises:
        ApiError: If the config map cannot be read
        ValueError: If the config map has no install config
    """
    cm = core.get_config_map(INSTALL_CONFIG_NAMESPACE, INSTALL_CONFIG_NAME)
    data = (cm.get("data") or {}).get(INSTALL_CONFIG_KEY)
    if data is None:
        raise ValueError(
            f"no install-config found in {INSTALL_CONFIG_NAMESPACE}/{INSTALL_CONFIG_NAME}"
        )
    return yaml.safe_load(data) or {}


def is_fips(core: Any) -> bool:
    """Report whether the cluster was installed in FIPS mode."""
    return bool(install_config(core).get("fips", False))
