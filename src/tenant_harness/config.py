"""Harness configuration management.

Settings live in ``~/.tenant-harness/config.yaml`` (or the file named by
``HARNESS_CONFIG``) and can be overridden by environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .shared.logging import get_logger

logger = get_logger(__name__)

# Default values
DEFAULT_KUBECONFIG = str(Path.home() / ".kube" / "config")
DEFAULT_CLI_PATH = "oc"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_QPS = 20.0
DEFAULT_BURST = 50

CONFIG_FILE_ENV = "HARNESS_CONFIG"

# Environment variable mappings
ENV_VARS = {
    "kubeconfig": "KUBECONFIG",
    "cli_path": "HARNESS_CLI_PATH",
    "artifact_dir": "ARTIFACT_DIR",
    "log_level": "HARNESS_LOG_LEVEL",
    "qps": "HARNESS_QPS",
    "burst": "HARNESS_BURST",
}

_TRUE_VALUES = ("true", "yes", "on", "1")
_FALSE_VALUES = ("false", "no", "off", "0")


def _to_bool(value: Any) -> bool:
    """Parse a YAML or string boolean; quoted "false" is false."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {value!r}")


_CONVERTERS = {
    "kubeconfig": str,
    "cli_path": str,
    "artifact_dir": str,
    "log_level": str,
    "qps": float,
    "burst": int,
    "keep_config_files": _to_bool,
}


@dataclass
class HarnessConfig:
    """Harness configuration."""

    kubeconfig: str = DEFAULT_KUBECONFIG
    cli_path: str = DEFAULT_CLI_PATH
    artifact_dir: str = ""
    log_level: str = DEFAULT_LOG_LEVEL
    qps: float = DEFAULT_QPS
    burst: int = DEFAULT_BURST
    keep_config_files: bool = False

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def values(self) -> dict[str, Any]:
        return {key: getattr(self, key) for key in _CONVERTERS}


def get_config_path() -> Path:
    """Get the harness config file path.

    Returns:
        Path named by HARNESS_CONFIG, else ~/.tenant-harness/config.yaml
    """
    if os.environ.get(CONFIG_FILE_ENV):
        return Path(os.environ[CONFIG_FILE_ENV])
    return Path.home() / ".tenant-harness" / "config.yaml"


def _read_config_file(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("ignoring unreadable config file", path=str(config_path), error=str(e))
        return {}
    if not isinstance(data, dict):
        logger.warning("ignoring config file without a mapping", path=str(config_path))
        return {}
    return data


def load_config() -> HarnessConfig:
    """Load harness configuration.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file
    3. Defaults

    Returns:
        HarnessConfig with values and sources
    """
    config = HarnessConfig()
    sources: dict[str, str] = {key: "default" for key in _CONVERTERS}

    config_path = get_config_path()
    if config_path.exists():
        file_config = _read_config_file(config_path)
        for key, convert in _CONVERTERS.items():
            if key not in file_config:
                continue
            try:
                setattr(config, key, convert(file_config[key]))
            except (TypeError, ValueError):
                logger.warning("ignoring invalid config value", key=key, value=file_config[key])
                continue
            sources[key] = "config file"

    for key, env_var in ENV_VARS.items():
        raw = os.environ.get(env_var)
        if not raw:
            continue
        try:
            setattr(config, key, _CONVERTERS[key](raw))
        except ValueError:
            logger.warning("ignoring invalid environment value", env_var=env_var, value=raw)
            continue
        sources[key] = "environment"

    config._sources = sources
    return config
