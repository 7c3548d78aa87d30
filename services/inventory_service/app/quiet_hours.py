"""Quiet-hours window arithmetic.

A window is written ``"HH-HH"`` in local time, start inclusive and end
exclusive. A start later than the end wraps midnight (``"22-07"``), and equal
hours describe an empty window. Only the hour of a timestamp is considered.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta

_WINDOW_PATTERN = re.compile(r"^([01]\d|2[0-3])-([01]\d|2[0-3])$")


class InvalidQuietHours(ValueError):
    """Raised when a quiet-hours string is not ``HH-HH`` with hours 00-23."""


@dataclass(frozen=True, slots=True)
class QuietHoursWindow:
    start_hour: int
    end_hour: int

    @property
    def wraps_midnight(self) -> bool:
        return self.start_hour > self.end_hour

    @property
    def is_empty(self) -> bool:
        return self.start_hour == self.end_hour


def parse_quiet_hours(value: str) -> QuietHoursWindow:
    match = _WINDOW_PATTERN.match(value.strip())
    if match is None:
        raise InvalidQuietHours(f"Invalid quiet hours format: {value!r}")
    return QuietHoursWindow(start_hour=int(match.group(1)), end_hour=int(match.group(2)))


def is_within_quiet_hours(moment: datetime, window: QuietHoursWindow) -> bool:
    if window.is_empty:
        return False
    hour = moment.hour
    if window.wraps_midnight:
        return hour >= window.start_hour or hour < window.end_hour
    return window.start_hour <= hour < window.end_hour


def next_quiet_hours_exit(moment: datetime, window: QuietHoursWindow) -> datetime:
    """Return when the window containing ``moment`` ends.

    Outside the window the moment itself is returned unchanged.
    """

    if not is_within_quiet_hours(moment, window):
        return moment

    exit_at = moment.replace(hour=window.end_hour, minute=0, second=0, microsecond=0)
    if exit_at <= moment:
        exit_at += timedelta(days=1)
    return exit_at
