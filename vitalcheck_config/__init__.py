"""
vitalcheck_config -- Typed settings and schedule-window input validation.

``load_settings()`` is the single entry point for runtime configuration.
"""

from vitalcheck_config.loader import (
    load_schedule_file,
    load_settings,
    parse_schedule_window,
    parse_schedule_windows,
    parse_settings,
)
from vitalcheck_config.schema import ScheduleWindowDef, VitalCheckSettings

__all__ = [
    "ScheduleWindowDef",
    "VitalCheckSettings",
    "load_schedule_file",
    "load_settings",
    "parse_schedule_window",
    "parse_schedule_windows",
    "parse_settings",
]
