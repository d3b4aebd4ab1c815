from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = "configs/app.yaml"


def _resolve_env(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_key = value[2:-1]
        return os.getenv(env_key, "")
    if isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env(item) for item in value]
    return value


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Missing configuration file: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping.")
    return _resolve_env(data)


@lru_cache(maxsize=4)
def load_app_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load the primary application config."""

    path = Path(config_path or os.getenv("DASHGEN_CONFIG") or DEFAULT_CONFIG_PATH)
    return _load_yaml(path)


def section(config: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    """Walk nested config mappings, returning an empty dict for missing keys."""

    current: Any = config
    for key in keys:
        if not isinstance(current, dict):
            return {}
        current = current.get(key) or {}
    return current if isinstance(current, dict) else {}


def branch_timeout(config: Dict[str, Any]) -> float:
    return float(section(config, "limits").get("branch_timeout_seconds", 25))


def memory_feature_enabled(config: Dict[str, Any]) -> bool:
    memory_cfg = section(config, "memory")
    return bool(memory_cfg.get("enabled", False)) and bool(memory_cfg.get("endpoint"))
