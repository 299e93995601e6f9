"""Configuration loading for the install gate.

Precedence, lowest first: built-in defaults, YAML config file, environment
variables, CLI arguments.
"""

from __future__ import annotations

import logging
import os
from dataclasses import fields
from typing import Any, Dict, Optional

import yaml

from constants import Constants
from install_gate import GateConfig

logger = logging.getLogger(__name__)

_ENV_PREFIX = "INSTALLGATE_"
_BOOL_TRUE = ("1", "true", "yes", "on")


def _config_dir() -> str:
    return os.path.expanduser(os.environ.get(Constants.CONFIG_DIR_ENV) or Constants.DEFAULT_CONFIG_DIR)


def default_config_path() -> str:
    """Return the config file path, honoring INSTALLGATE_CONFIG_DIR."""
    return os.path.join(_config_dir(), Constants.CONFIG_FILE)


def default_event_log_path() -> str:
    """Return the audit event log path, next to the config file."""
    return os.path.join(_config_dir(), Constants.EVENT_LOG_FILE)


def load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Load the YAML config file; a missing file yields an empty mapping.

    Raises:
        ValueError: If the file is not valid YAML or not a mapping.
    """
    if not config_path or not os.path.isfile(config_path):
        return {}
    with open(config_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"invalid config file {config_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"config file {config_path} must contain a mapping")
    logger.debug("Loaded config from %s", config_path)
    return data


def _coerce(value: Any, default: Any) -> Any:
    """Convert ``value`` to the type of the field default."""
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in _BOOL_TRUE
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, list):
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return list(value)
    return value


def _apply(config: GateConfig, values: Dict[str, Any], source: str) -> None:
    defaults = GateConfig()
    known = {f.name for f in fields(GateConfig)}
    for key, value in values.items():
        if key not in known:
            logger.warning("Ignoring unknown config key %r from %s", key, source)
            continue
        if value is None:
            continue
        try:
            setattr(config, key, _coerce(value, getattr(defaults, key)))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"invalid value for {key} in {source}: {value!r}") from exc


def _env_values() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for f in fields(GateConfig):
        raw = os.environ.get(_ENV_PREFIX + f.name.upper())
        if raw is not None:
            values[f.name] = raw
    if os.environ.get(Constants.ENV_SAFEDEP_API_KEY):
        values.setdefault("api_key", os.environ[Constants.ENV_SAFEDEP_API_KEY])
    if os.environ.get(Constants.ENV_SAFEDEP_TENANT_ID):
        values.setdefault("tenant_id", os.environ[Constants.ENV_SAFEDEP_TENANT_ID])
    return values


def _arg_values(args: Any) -> Dict[str, Any]:
    values = {
        "scan_timeout": getattr(args, "SCAN_TIMEOUT", None),
        "workers": getattr(args, "WORKERS", None),
        "queue_capacity": getattr(args, "QUEUE_CAPACITY", None),
        "max_in_flight": getattr(args, "MAX_IN_FLIGHT", None),
        "registry_url": getattr(args, "REGISTRY_URL", None),
        "event_log": getattr(args, "EVENT_LOG", None),
    }
    if getattr(args, "DRY_RUN", False):
        values["dry_run"] = True
    if getattr(args, "INSECURE", False):
        values["insecure_installation"] = True
    if getattr(args, "NO_FAIL_FAST", False):
        values["fail_fast"] = False
    return values


def load_gate_config(args: Any = None) -> GateConfig:
    """Build the GateConfig for this invocation.

    Raises:
        ValueError: On an unreadable config file or an invalid value.
    """
    config = GateConfig()
    config_path = getattr(args, "CONFIG", None) or default_config_path()
    _apply(config, load_config_file(config_path), config_path)
    _apply(config, _env_values(), "environment")
    if args is not None:
        _apply(config, _arg_values(args), "command line")
    return config
