"""
Configuration Loader (``sales_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into the frozen ``sales_config.schema``
dataclasses.  Runtime code obtains configuration through
``sales_config.get_active_config()``, not from here.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; nothing is silently ignored.
* Values are type-checked: credit days and folio width are positive
  integers, prefixes are non-empty strings, the log level is a name
  known to ``logging``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad value or shape  -> ``ValueError``.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from sales_config.schema import (
    DatabaseConfig,
    FolioConfig,
    LoggingConfig,
    ReceivablesConfig,
    SalesConfig,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "logging": LoggingConfig,
    "receivables": ReceivablesConfig,
    "folios": FolioConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _require_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{section}.{key} must be a positive integer, got {value!r}")
    return value


def _require_str(section: str, key: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{section}.{key} must be a non-empty string, got {value!r}")
    return value


def _parse_section(name: str, data: Any) -> Any:
    cls = _SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"{name} must be a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{name}: unknown keys {', '.join(unknown)}")

    values: dict[str, Any] = {}
    for key, value in data.items():
        if name == "database" and key == "echo":
            if not isinstance(value, bool):
                raise ValueError(f"database.echo must be a boolean, got {value!r}")
            values[key] = value
        elif key in ("default_credit_days", "sequence_width"):
            values[key] = _require_int(name, key, value)
        else:
            values[key] = _require_str(name, key, value)

    if name == "logging" and "level" in values:
        level = values["level"].upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"logging.level {values['level']!r} is not a log level")
        values["level"] = level
    return cls(**values)


def parse_config(data: dict[str, Any], source: str | None = None) -> SalesConfig:
    """Parse a ``SalesConfig`` from a dict (as produced by ``load_yaml_file``)."""
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(unknown)}")
    return SalesConfig(
        **{name: _parse_section(name, data.get(name)) for name in _SECTIONS},
        source=source,
    )


def load_config(path: Path) -> SalesConfig:
    """Load and parse a configuration file."""
    return parse_config(load_yaml_file(path), source=str(path))
