# src/itemstore/config/loader.py
"""
Configuration loading for itemstore.

Sources, lowest to highest precedence:

1. ``default_config.toml`` packaged next to this module
2. the user file (``~/.config/itemstore/config.toml``) or an explicit path
3. environment variables ``ITEMSTORE_<SECTION>__<KEY>`` where double
   underscores separate nesting levels, e.g. ``ITEMSTORE_STORAGE__MONGO__URL``
4. explicit overrides passed by the caller (typically CLI flags)
"""

import copy
import logging
import os
import tomllib
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from ..exceptions import ConfigError
from .models import AppConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "ITEMSTORE_"
ENV_NESTING = "__"
USER_CONFIG_PATH = Path("~/.config/itemstore/config.toml")


def _deep_merge(base: Dict[str, Any], update: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge `update` into a copy of `base`."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _load_packaged_defaults() -> Dict[str, Any]:
    text = resources.files("itemstore.config").joinpath("default_config.toml").read_text(encoding="utf-8")
    return tomllib.loads(text)


def _load_toml_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in config file '{path}': {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file '{path}': {e}")


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Turn ``ITEMSTORE_A__B=value`` variables into ``{"a": {"b": "value"}}``."""
    result: Dict[str, Any] = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        parts = [p.lower() for p in name[len(ENV_PREFIX):].split(ENV_NESTING) if p]
        if not parts:
            continue
        node = result
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
    return result


def load_config(
    config_file_path: Optional[str | Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """
    Load and validate the application configuration.

    Args:
        config_file_path: Explicit TOML file. When given it must exist; when
                          omitted the user file is read if present.
        overrides: Nested dictionary applied last.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        The validated AppConfig.

    Raises:
        ConfigError: If a file cannot be read or the merged values are invalid.
    """
    data = _load_packaged_defaults()

    if config_file_path is not None:
        path = Path(config_file_path).expanduser()
        if not path.is_file():
            raise ConfigError(f"Config file not found: '{path}'")
        data = _deep_merge(data, _load_toml_file(path))
        logger.debug(f"Loaded configuration file {path}")
    else:
        user_path = USER_CONFIG_PATH.expanduser()
        if user_path.is_file():
            data = _deep_merge(data, _load_toml_file(user_path))
            logger.debug(f"Loaded user configuration file {user_path}")

    env_data = _env_overrides(os.environ if environ is None else environ)
    if env_data:
        data = _deep_merge(data, env_data)

    if overrides:
        data = _deep_merge(data, overrides)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}")
