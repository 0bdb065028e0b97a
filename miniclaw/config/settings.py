"""
Configuration loader.

Layers, lowest priority first:

1. ``default_config.yaml`` shipped with the package
2. the user file (``--config`` path, else ``~/.miniclaw/config.yaml``)
3. ``MINICLAW_*`` environment variables (see ``ENV_OVERRIDES``)
"""

from __future__ import annotations
import os
import yaml
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

from ..core.errors import ConfigError

DEFAULT_CONFIG_FILE = Path(__file__).with_name("default_config.yaml")
DEFAULT_USER_CONFIG = Path.home() / ".miniclaw" / "config.yaml"

# (environment variable, dotted config key, converter)
ENV_OVERRIDES: Tuple[Tuple[str, str, Callable[[str], Any]], ...] = (
    ("MINICLAW_PROVIDER", "llm.provider", str),
    ("MINICLAW_MODEL", "llm.model", str),
    ("MINICLAW_API_BASE", "llm.api_base", str),
    ("MINICLAW_MAX_ITERATIONS", "agent.max_iterations", int),
)

_MISSING = object()


class Config:
    """Nested dict addressed with dotted keys such as ``llm.model``."""

    def __init__(self, data: dict):
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        node: Any = self._data
        for part in key.split("."):
            node = node.get(part, _MISSING) if isinstance(node, dict) else _MISSING
            if node is _MISSING or node is None:
                return default
        return node

    def set(self, key: str, value: Any) -> None:
        *parents, leaf = key.split(".")
        node = self._data
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value

    def api_key(self) -> str:
        """``llm.api_key`` if set, else the variable named by ``llm.api_key_env``."""
        direct = self.get("llm.api_key")
        if direct:
            return direct

        env_name = self.get("llm.api_key_env", "LLM_API_KEY")
        from_env = os.getenv(env_name)
        if not from_env:
            raise ConfigError(
                f"API key not found. Set the {env_name} environment variable, "
                f"or add 'llm.api_key' to {DEFAULT_USER_CONFIG}"
            )
        return from_env

    @property
    def raw(self) -> dict:
        return self._data

    def __repr__(self) -> str:
        return f"Config(provider={self.get('llm.provider')!r}, model={self.get('llm.model')!r})"


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Build the merged Config.

    An explicit ``config_path`` must exist; the default user file is optional.
    Raises ConfigError for unreadable YAML, a non-mapping document, a
    non-integer ``MINICLAW_MAX_ITERATIONS`` or ``agent.max_iterations < 1``.
    """
    data = _read_yaml(DEFAULT_CONFIG_FILE)

    if config_path:
        user_file = Path(config_path)
        if not user_file.exists():
            raise ConfigError(f"Config file not found: {config_path}")
    else:
        user_file = DEFAULT_USER_CONFIG

    if user_file.exists():
        data = _deep_merge(data, _read_yaml(user_file))

    config = Config(data)
    _apply_env_overrides(config)

    if int(config.get("agent.max_iterations", 20)) < 1:
        raise ConfigError("agent.max_iterations must be at least 1")
    return config


def _read_yaml(path: Path) -> dict:
    try:
        with open(path) as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return loaded


def _apply_env_overrides(config: Config) -> None:
    for env_name, key, convert in ENV_OVERRIDES:
        raw_value = os.getenv(env_name)
        if raw_value is None:
            continue
        try:
            value = convert(raw_value)
        except ValueError as e:
            raise ConfigError(f"{env_name} must be an integer, got {raw_value!r}") from e
        config.set(key, value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Return ``base`` updated with ``overlay``; nested dicts merge, anything else replaces."""
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged
