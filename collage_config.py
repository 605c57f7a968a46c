"""
Settings for a collage run: page geometry, grid, layout validation and output.

Values come from an optional YAML file (keys are the field names of
``CollageSettings``) with command-line flags layered on top.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from collage_layout import LayoutConstraints


class ConfigError(ValueError):
    """Invalid collage configuration."""


_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)x(\d+(?:\.\d+)?)(in|mm|px)$", re.IGNORECASE)
_LENGTH_RE = re.compile(r"^(\d+(?:\.\d+)?)(in|mm|px)?$", re.IGNORECASE)


def _unit_scale(unit: str, dpi: int) -> float:
    unit = unit.lower()
    if unit == "px":
        return 1.0
    if unit == "in":
        return float(dpi)
    return dpi / 25.4


def parse_length(value: str | None, dpi: int) -> int:
    """Convert ``3mm`` / ``0.125in`` / ``12px`` to whole pixels; empty means 0."""
    if value is None or str(value).strip() == "":
        return 0
    m = _LENGTH_RE.match(str(value).strip())
    if not m:
        raise ConfigError(f"invalid length: {value!r}; use e.g. 3mm, 0.125in or 12px")
    return int(round(float(m.group(1)) * _unit_scale(m.group(2) or "px", dpi)))


def parse_page_size(size: str, dpi: int, bleed: int = 0) -> Tuple[int, int]:
    """Page pixel size including ``bleed`` on every side."""
    if not size:
        raise ConfigError("page size is required (e.g. 24x36in)")
    m = _SIZE_RE.match(size.strip().replace("×", "x"))
    if not m:
        raise ConfigError(
            f"invalid size format: {size}; use a format like 24x36in, 300x400mm or 1920x1080px"
        )
    mul = _unit_scale(m.group(3), dpi)
    w = int(round(float(m.group(1)) * mul)) + bleed * 2
    h = int(round(float(m.group(2)) * mul)) + bleed * 2
    return w, h


def parse_rgb(value: str) -> Tuple[int, int, int]:
    s = value.strip().lower()
    if s.startswith("#"):
        s = s[1:]
    if len(s) != 6 or any(c not in "0123456789abcdef" for c in s):
        raise ConfigError(f"colour must be RRGGBB or #RRGGBB, got {value!r}")
    return (int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))


def _check_type(name: str, value: Any, annotation: str) -> None:
    allowed = {t.strip() for t in annotation.split("|")}
    if value is None:
        ok = "None" in allowed
    elif isinstance(value, bool):
        ok = "bool" in allowed
    elif isinstance(value, int):
        ok = bool(allowed & {"int", "float"})
    elif isinstance(value, float):
        ok = "float" in allowed
    elif isinstance(value, str):
        ok = "str" in allowed
    else:
        ok = False
    if not ok:
        raise ConfigError(f"{name} must be {annotation}, got {type(value).__name__} {value!r}")


@dataclass
class CollageSettings:
    """All knobs of a collage run, with the command-line defaults."""

    size: str = "24x36in"
    dpi: int = 300
    bleed: str | float | None = None
    grid: int = 3
    padding: int = 4
    harmony: bool = False
    date_sort: str = "asc"
    background: str = "#ffffff"
    border_width: int = 0
    border_color: str = "#ffffff"
    output_format: str = "jpg"
    quality: int = 92
    min_block_variety: int = 3
    max_single_cell_percent: float = 0.4
    min_large_blocks: int = 1
    validation_mode: str = "strict"
    max_attempts: int = 100
    seed: int | None = None
    workers: int = 0

    @property
    def bleed_px(self) -> int:
        return parse_length(self.bleed, self.dpi)

    @property
    def page_size(self) -> Tuple[int, int]:
        return parse_page_size(self.size, self.dpi, self.bleed_px)

    def constraints(self) -> LayoutConstraints:
        return LayoutConstraints(
            min_block_variety=self.min_block_variety,
            max_single_cell_percent=self.max_single_cell_percent,
            min_large_blocks=self.min_large_blocks,
            mode=self.validation_mode,
        )

    def validate(self) -> "CollageSettings":
        """
        Check every value before the run starts.

        Raises:
            ConfigError: on the first invalid setting
        """
        for f in fields(self):
            _check_type(f.name, getattr(self, f.name), f.type)
        if self.dpi <= 0:
            raise ConfigError("dpi must be positive")
        if self.grid <= 0:
            raise ConfigError("grid must be positive")
        if self.padding < 0:
            raise ConfigError("padding must not be negative")
        if self.border_width < 0:
            raise ConfigError("border width must not be negative")
        if self.bleed_px < 0:
            raise ConfigError("bleed must not be negative")
        w, h = self.page_size
        if w <= 0 or h <= 0:
            raise ConfigError("page size must be positive")
        if self.date_sort not in {"asc", "desc"}:
            raise ConfigError("date sort must be 'asc' or 'desc'")
        if self.output_format not in {"jpg", "png"}:
            raise ConfigError("output format must be 'jpg' or 'png'")
        if not 1 <= self.quality <= 100:
            raise ConfigError("quality must be within 1..100")
        if self.min_block_variety <= 0:
            raise ConfigError("min block variety must be positive")
        if not 0 < self.max_single_cell_percent <= 1:
            raise ConfigError("max single-cell percent must be within (0, 1]")
        if self.min_large_blocks < 0:
            raise ConfigError("min large blocks must not be negative")
        if self.validation_mode not in {"strict", "legacy"}:
            raise ConfigError("validation mode must be 'strict' or 'legacy'")
        if self.max_attempts < 0:
            raise ConfigError("max attempts must not be negative")
        parse_rgb(self.background)
        parse_rgb(self.border_color)
        return self

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "CollageSettings":
        """Create settings from a mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config) - known)
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(unknown)}")
        return cls(**config)

    def merged(self, overrides: Dict[str, Any]) -> "CollageSettings":
        """Copy with every non-``None`` override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        config_path: Path to the YAML file

    Returns:
        Dictionary containing configuration (empty for an empty file)

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigError: If the file does not hold a mapping
        yaml.YAMLError: If config file is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigError(f"config file must contain a mapping: {config_path}")
    return config
