"""Configuration loading for popgate.

This module reads popgate.yaml from the project root, applies defaults and
turns the `popups` list into PopupConfig objects.

Key functions:
- load_config: Loads the project configuration with defaults applied.
- parse_popups: Validates raw popup mappings into PopupConfig objects.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "popgate.yaml"


class ConfigError(Exception):
    """Error in popgate.yaml with file context.

    Attributes:
        config_path: Path to the configuration file.
        message: Human-readable error message.
    """

    def __init__(self, config_path: Path, message: str):
        self.config_path = config_path
        self.message = message
        super().__init__(f"{config_path}: {message}")


@dataclass(frozen=True)
class PopupConfig:
    """One popup campaign.

    Only delay_ms, cooldown_days and the marker fields affect behavior; the
    rest is passed through to the overlay widget.
    """

    name: str = "promo"
    marker_key: str = "launchdarkly"
    campaign: str | None = None
    marker_value: str = "true"
    delay_ms: int = 30000
    cooldown_days: float = 7
    width: str = "600px"
    height: str = "300px"
    position: str = "left"
    variant: int = 10
    slide: int = 1
    icon_color: str = "#000000"
    header: str = ""
    content: str = ""
    link: str | None = None
    image: str | None = None
    alt: str = ""
    image_width: int | None = None

    @property
    def key(self) -> str:
        """Marker key actually written, versioned by campaign when one is set."""
        if self.campaign:
            return f"popup-seen-{self.campaign}"
        return self.marker_key

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_CONFIG: dict[str, Any] = {
    "site_dir": "public",
    "port": 4000,
    "popups": [{}],
}

_INT_FIELDS = {"delay_ms", "variant", "slide", "image_width"}
_FLOAT_FIELDS = {"cooldown_days"}

# Keeps marker expiry well inside datetime range.
MAX_COOLDOWN_DAYS = 36500


def to_int(value: Any) -> int:
    """Convert a config value to int, rejecting booleans and fractional numbers."""
    if isinstance(value, bool):
        raise ValueError(f"expected a whole number, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"expected a whole number, got {value!r}")
    return int(value)


def to_cooldown_days(value: Any) -> float:
    """Convert a config value to a cooldown in days.

    Raises:
        ValueError: For booleans, non-numbers, non-finite or out-of-range values.
    """
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    days = float(value)
    if not math.isfinite(days) or not 0 <= days <= MAX_COOLDOWN_DAYS:
        raise ValueError(f"must be between 0 and {MAX_COOLDOWN_DAYS} days")
    return days


def load_config(project_root: Path) -> dict[str, Any]:
    """Load configuration from popgate.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary of configuration values with defaults applied. The
        `popups` entry holds a list of PopupConfig objects and `ws_port`
        defaults to one above `port`.

    Raises:
        ConfigError: If the file is not valid YAML or holds invalid values.
    """
    config_path = project_root / CONFIG_FILENAME
    config = DEFAULT_CONFIG.copy()
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(config_path, f"Invalid YAML: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(config_path, "Top level must be a mapping")
        config.update(loaded)

    try:
        config["port"] = int(config["port"])
        config["ws_port"] = int(config.get("ws_port") or config["port"] + 1)
    except (TypeError, ValueError) as exc:
        raise ConfigError(config_path, f"Invalid port: {exc}") from exc
    raw_popups = config.get("popups")
    config["popups"] = parse_popups([] if raw_popups is None else raw_popups, config_path)
    return config


def parse_popups(raw: Any, config_path: Path) -> list[PopupConfig]:
    """Turn the raw `popups` value into PopupConfig objects.

    Args:
        raw: Value of the `popups` key (a list of mappings).
        config_path: Path used in error messages.

    Returns:
        Popups in chain order.

    Raises:
        ConfigError: On unknown keys, wrong types or negative timings.
    """
    if not isinstance(raw, list):
        raise ConfigError(config_path, "'popups' must be a list")
    known = {f.name for f in fields(PopupConfig)}
    popups: list[PopupConfig] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ConfigError(config_path, f"popups[{index}] must be a mapping")
        unknown = sorted(set(entry) - known)
        if unknown:
            raise ConfigError(
                config_path, f"popups[{index}] has unknown keys: {', '.join(unknown)}"
            )
        values = dict(entry)
        for name, value in entry.items():
            if value is None:
                continue
            try:
                if name in _INT_FIELDS:
                    values[name] = to_int(value)
                elif name in _FLOAT_FIELDS:
                    values[name] = to_cooldown_days(value)
                elif name != "campaign" or value:
                    values[name] = str(value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(config_path, f"popups[{index}].{name}: {exc}") from None
        popup = PopupConfig(**values)
        if popup.delay_ms < 0 or popup.cooldown_days < 0:
            raise ConfigError(
                config_path, f"popups[{index}] delay_ms and cooldown_days must be >= 0"
            )
        if not popup.key:
            raise ConfigError(config_path, f"popups[{index}] needs a marker_key")
        popups.append(popup)
    return popups
