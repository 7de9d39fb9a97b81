"""
Configuration Loader (``vitalcheck_config.loader``).

Responsibility
--------------
Loads the YAML settings file, applies environment overrides and parses the
result into typed ``vitalcheck_config.schema`` dataclass instances.  Also
validates operator-supplied schedule window sets before they reach the
store.

Resolution order
----------------
dataclass defaults -> YAML file (explicit path, else ``$VITALCHECK_CONFIG``)
-> environment overrides (``ENV_OVERRIDES``).

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown sections or keys and values of the wrong type raise
  ``ConfigurationError``; nothing is silently ignored.
* A schedule window set is validated in full before anything is returned:
  one bad item rejects the whole set with ``InvalidScheduleWindowError``.

Failure modes
-------------
* Missing YAML file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` chained to ``yaml.YAMLError``.
"""

from __future__ import annotations

import os
import re
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from vitalcheck_config.schema import (
    CensusSettings,
    CivilRegistrySettings,
    DatabaseSettings,
    LoggingSettings,
    PopulationSettings,
    RetrySettings,
    ScheduleWindowDef,
    SchedulerSettings,
    VitalCheckSettings,
)
from vitalcheck_kernel.exceptions import ConfigurationError, InvalidScheduleWindowError

CONFIG_PATH_ENV = "VITALCHECK_CONFIG"

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "DATABASE_URL": ("database", "url"),
    "CENSUS_DATABASE_URL": ("census", "url"),
    "CHECKPOP_URL": ("population", "url"),
    "LK_API_URL": ("civil_registry", "api_url"),
    "LK_JOB_ID": ("civil_registry", "job_id"),
    "LK_TOKEN_CHECK_URL": ("civil_registry", "token_check_url"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FORMAT": ("logging", "format"),
}

_SECTION_TYPES: dict[str, type] = {
    "database": DatabaseSettings,
    "census": CensusSettings,
    "population": PopulationSettings,
    "civil_registry": CivilRegistrySettings,
    "retry": RetrySettings,
    "scheduler": SchedulerSettings,
    "logging": LoggingSettings,
}

_LOG_FORMATS = ("console", "json")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


# ---------------------------------------------------------------------------
# YAML
# ---------------------------------------------------------------------------


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: if the file is missing, unreadable, malformed,
            or does not contain a mapping at the top level.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(str(path), "file not found") from None
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def _coerce(dotted_key: str, value: Any, type_name: str) -> Any:
    """Coerce a YAML or environment value to the annotated field type."""
    optional = type_name.endswith("| None")
    base = type_name.split("|")[0].strip()

    if value is None:
        if optional:
            return None
        raise ConfigurationError(dotted_key, "value must not be null")

    if base == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
            return value.strip().lower() in _TRUE
        raise ConfigurationError(dotted_key, f"expected a boolean, got {value!r}")

    if base == "int":
        if isinstance(value, bool):
            raise ConfigurationError(dotted_key, f"expected an integer, got {value!r}")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
            return int(value.strip())
        raise ConfigurationError(dotted_key, f"expected an integer, got {value!r}")

    if base == "float":
        if isinstance(value, bool):
            raise ConfigurationError(dotted_key, f"expected a number, got {value!r}")
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                pass
        raise ConfigurationError(dotted_key, f"expected a number, got {value!r}")

    if base == "str":
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return str(value)
        raise ConfigurationError(dotted_key, f"expected a string, got {value!r}")

    raise ConfigurationError(dotted_key, f"unsupported setting type {type_name}")


def parse_section(name: str, data: Mapping[str, Any]) -> Any:
    """Parse one settings section dict into its dataclass."""
    section_type = _SECTION_TYPES[name]
    if not isinstance(data, Mapping):
        raise ConfigurationError(name, "section must be a mapping")

    known = {f.name: f for f in fields(section_type)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigurationError(f"{name}.{unknown[0]}", "unknown setting")

    values = {
        key: _coerce(f"{name}.{key}", value, str(known[key].type))
        for key, value in data.items()
    }
    return section_type(**values)


def parse_settings(data: Mapping[str, Any]) -> VitalCheckSettings:
    """Parse a settings dict (as loaded from YAML) into VitalCheckSettings."""
    unknown = sorted(set(data) - set(_SECTION_TYPES))
    if unknown:
        raise ConfigurationError(unknown[0], "unknown settings section")

    sections = {
        name: parse_section(name, section or {})
        for name, section in data.items()
    }
    settings = VitalCheckSettings(**sections)
    _validate(settings)
    return settings


def apply_env_overrides(
    settings: VitalCheckSettings,
    environ: Mapping[str, str] | None = None,
) -> VitalCheckSettings:
    """Return a copy of ``settings`` with ``ENV_OVERRIDES`` applied."""
    env = os.environ if environ is None else environ
    updates: dict[str, dict[str, Any]] = {}

    for var, (section_name, key) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        section_type = _SECTION_TYPES[section_name]
        type_name = next(str(f.type) for f in fields(section_type) if f.name == key)
        updates.setdefault(section_name, {})[key] = _coerce(var, raw, type_name)

    for section_name, values in updates.items():
        settings = replace(
            settings,
            **{section_name: replace(getattr(settings, section_name), **values)},
        )
    _validate(settings)
    return settings


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> VitalCheckSettings:
    """Resolve settings: defaults, then YAML, then environment."""
    env = os.environ if environ is None else environ
    config_path = path or env.get(CONFIG_PATH_ENV)

    if config_path:
        settings = parse_settings(load_yaml_file(Path(config_path)))
    else:
        settings = VitalCheckSettings()
    return apply_env_overrides(settings, env)


def _validate(settings: VitalCheckSettings) -> None:
    if settings.logging.format not in _LOG_FORMATS:
        raise ConfigurationError(
            "logging.format",
            f"must be one of {', '.join(_LOG_FORMATS)}, got {settings.logging.format!r}",
        )
    if settings.retry.max_attempts < 1:
        raise ConfigurationError("retry.max_attempts", "must be at least 1")
    if settings.retry.max_rounds < 1:
        raise ConfigurationError("retry.max_rounds", "must be at least 1")
    if settings.census.cid_length < 1:
        raise ConfigurationError("census.cid_length", "must be at least 1")


# ---------------------------------------------------------------------------
# Schedule windows
# ---------------------------------------------------------------------------

_START_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and re.fullmatch(r"\s*-?\d+\s*", value):
        return int(value)
    return None


def parse_schedule_window(data: Mapping[str, Any], index: int | None = None) -> ScheduleWindowDef:
    """
    Validate one ``{month, day, startTime, durationHours}`` item.

    ``start_time``/``duration_hours`` and the legacy ``hours`` key are
    accepted as aliases.

    Raises:
        InvalidScheduleWindowError: naming the offending field and index.
    """
    if not isinstance(data, Mapping):
        raise InvalidScheduleWindowError("item", data, index)

    month = _as_int(data.get("month"))
    if month is None or not 1 <= month <= 12:
        raise InvalidScheduleWindowError("month", data.get("month"), index)

    day = _as_int(data.get("day"))
    if day is None or not 1 <= day <= 31:
        raise InvalidScheduleWindowError("day", data.get("day"), index)

    raw_hours = next(
        (data[k] for k in ("durationHours", "duration_hours", "hours") if k in data),
        None,
    )
    hours = _as_int(raw_hours)
    if hours is None or not 0 <= hours <= 24:
        raise InvalidScheduleWindowError("durationHours", raw_hours, index)

    raw_time = data.get("startTime", data.get("start_time"))
    match = _START_TIME_RE.match(raw_time) if isinstance(raw_time, str) else None
    if match is None:
        raise InvalidScheduleWindowError("startTime", raw_time, index)
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidScheduleWindowError("startTime", raw_time, index)

    return ScheduleWindowDef(
        month=month,
        day=day,
        start_time=f"{hour:02d}:{minute:02d}:00",
        duration_hours=hours,
    )


def parse_schedule_windows(items: Iterable[Mapping[str, Any]]) -> tuple[ScheduleWindowDef, ...]:
    """Validate a complete replace-all window set (all or nothing)."""
    if isinstance(items, (str, bytes, Mapping)):
        raise InvalidScheduleWindowError("windows", items)
    return tuple(parse_schedule_window(item, index) for index, item in enumerate(items))


def load_schedule_file(path: str | Path) -> tuple[ScheduleWindowDef, ...]:
    """Load a window set from a YAML/JSON file.

    The file holds either a list of items or a mapping with a ``windows`` list.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(str(path), "file not found") from None
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc

    if isinstance(data, Mapping):
        data = data.get("windows")
    if not isinstance(data, list):
        raise InvalidScheduleWindowError("windows", data)
    return parse_schedule_windows(data)
