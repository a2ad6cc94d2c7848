"""
Shared configuration helpers: config directory lookup, YAML loading with
defaults, and duration parsing.
"""

import copy
import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhdw]?)\s*$")
_DURATION_UNITS = {
    "": "seconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def get_config_dir() -> Path:
    """Return the certkeeper configuration directory.

    ``CERTKEEPER_CONFIG_DIR`` overrides the XDG default.
    """
    env_dir = os.environ.get("CERTKEEPER_CONFIG_DIR")
    if env_dir:
        return Path(env_dir).expanduser()

    xdg_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_home) if xdg_home else Path.home() / ".config"
    return base / "certkeeper"


def deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` recursively updated with ``updates`` (inputs untouched)."""
    result = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def load_yaml_config(
    config_path: Path, defaults: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Load a YAML mapping from ``config_path`` merged over ``defaults``.

    A missing file yields the defaults.

    Raises:
        ValueError: If the file is not valid YAML or not a mapping
    """
    defaults = defaults or {}
    if not config_path.exists():
        return copy.deepcopy(defaults)

    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    if loaded is None:
        return copy.deepcopy(defaults)
    if not isinstance(loaded, dict):
        raise ValueError(f"Configuration in {config_path} must be a mapping")

    return deep_merge(defaults, loaded)


def save_yaml_config(config_path: Path, data: dict[str, Any]) -> None:
    """Write ``data`` to ``config_path`` as YAML, creating parent dirs."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def parse_duration(value: str | int | float | timedelta) -> timedelta:
    """Parse a duration such as ``"30s"``, ``"12h"``, ``"1d"`` or ``"2w"``.

    Bare numbers are seconds.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, int | float):
        amount, unit = value, ""
    elif isinstance(value, str):
        match = _DURATION_RE.match(value)
        if not match:
            raise ValueError(
                f"Invalid duration: {value!r}. Use a number followed by s, m, h, d or w"
            )
        amount, unit = float(match.group(1)), match.group(2)
    else:
        raise ValueError(f"Invalid duration: {value!r}")

    try:
        return timedelta(**{_DURATION_UNITS[unit]: amount})
    except OverflowError as e:
        raise ValueError(f"Invalid duration: {value!r} is out of range") from e
