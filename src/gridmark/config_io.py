# src/gridmark/config_io.py
from __future__ import annotations
from dataclasses import asdict, fields, replace
from pathlib import Path
from typing import Any, Dict
import json

import yaml

from .scoring_defaults import DEFAULTS, DecodeSettings

_SECTIONS = ("sheet", "layout", "scoring")

# lower bounds for counts and divisors; anything below breaks the grid maths
_MINIMUM = {
    "questions_per_row": 1,
    "options": 2,
    "sample_step": 1,
    "search_step": 1,
}
_POSITIVE = {"option_divisor"}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_value(section: str, key: str, value: Any, default: Any) -> Any:
    """Coerce `value` to the type of `default`, raising ValueError on a mismatch."""
    where = f"{section}.{key}"
    if isinstance(default, tuple):
        if not isinstance(value, (list, tuple)) or not all(_is_number(v) for v in value):
            raise ValueError(f"{where} must be a list of numbers.")
        return tuple(float(v) for v in value)
    if isinstance(default, str):
        if not isinstance(value, str):
            raise ValueError(f"{where} must be a string.")
        return value
    if isinstance(default, int):
        if not _is_number(value) or int(value) != value:
            raise ValueError(f"{where} must be an integer, got {value!r}.")
        value = int(value)
    elif not _is_number(value):
        raise ValueError(f"{where} must be a number, got {value!r}.")
    else:
        value = float(value)

    if key in _MINIMUM and value < _MINIMUM[key]:
        raise ValueError(f"{where} must be >= {_MINIMUM[key]}, got {value}.")
    if key in _POSITIVE and value <= 0:
        raise ValueError(f"{where} must be > 0, got {value}.")
    return value


def load_config_any(path: str | Path) -> Dict[str, Any]:
    """
    Prefer YAML, but transparently accept JSON.
    - If extension is .yml/.yaml -> use YAML
    - If extension is .json -> use JSON
    - Otherwise: try YAML first, then JSON
    """
    p = Path(path)
    data = p.read_text(encoding="utf-8")
    ext = p.suffix.lower()

    if ext in {".yml", ".yaml"}:
        cfg = yaml.safe_load(data)
    elif ext == ".json":
        cfg = json.loads(data)
    else:
        try:
            cfg = yaml.safe_load(data)
        except yaml.YAMLError:
            cfg = json.loads(data)

    if cfg is None:
        cfg = {}
    if not isinstance(cfg, dict):
        raise ValueError("Config root must be a mapping/object.")

    return cfg


def settings_from_dict(cfg: Dict[str, Any], base: DecodeSettings = DEFAULTS) -> DecodeSettings:
    """Overlay the `sheet:`, `layout:` and `scoring:` sections onto `base`."""
    unknown = set(cfg) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

    updated = {}
    for name in _SECTIONS:
        section = cfg.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Config section '{name}' must be a mapping.")
        current = getattr(base, name)
        allowed = {f.name for f in fields(current)}
        bad = set(section) - allowed
        if bad:
            raise ValueError(f"Unknown key(s) in '{name}': {', '.join(sorted(bad))}")
        values = {k: _check_value(name, k, v, getattr(current, k)) for k, v in section.items()}
        updated[name] = replace(current, **values)

    settings = replace(base, **updated)
    if settings.sheet.missing_content not in ("reject", "fallback"):
        raise ValueError("sheet.missing_content must be 'reject' or 'fallback'.")
    return settings


def load_settings(path: str | Path | None) -> DecodeSettings:
    if path is None:
        return DEFAULTS
    return settings_from_dict(load_config_any(path))


def dump_settings(settings: DecodeSettings = DEFAULTS) -> str:
    data = asdict(settings)
    data["sheet"]["vertical_lines"] = list(data["sheet"]["vertical_lines"])
    return yaml.safe_dump(data, sort_keys=False)
