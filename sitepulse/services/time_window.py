"""
Time window selection for metrics queries.

Named periods are relative to "now"; explicit windows use epoch milliseconds.
"""

import time
from typing import Optional, Union

from sitepulse.domain.entities.time_window import TimeWindow
from sitepulse.domain.exceptions import InvalidTimeWindowError

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

PERIODS = {
    "24h": 24 * HOUR_MS,
    "7d": 7 * DAY_MS,
    "30d": 30 * DAY_MS,
    "90d": 90 * DAY_MS,
}
ALL_TIME = "all"


def now_ms() -> int:
    return int(time.time() * 1000)


def _parse_epoch_ms(name: str, value: Union[str, int, None]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise InvalidTimeWindowError(f"{name} must be an epoch timestamp in milliseconds, got {value!r}")
    if parsed < 0:
        raise InvalidTimeWindowError(f"{name} must not be negative")
    return parsed


def resolve_window(
    period: Optional[str] = None,
    start_time: Union[str, int, None] = None,
    end_time: Union[str, int, None] = None,
    now: Optional[int] = None,
    default_period: str = "24h",
) -> TimeWindow:
    """
    Build the window a metrics request asks for.

    An explicit startTime/endTime pair wins over a named period. Unknown
    period names fall back to default_period.
    """
    start = _parse_epoch_ms("startTime", start_time)
    end = _parse_epoch_ms("endTime", end_time)

    if start is not None or end is not None:
        start = start or 0
        if end is not None and end < start:
            raise InvalidTimeWindowError("endTime must not be before startTime")
        return TimeWindow(start_ms=start, end_ms=end, label=f"{start}:{'' if end is None else end}")

    if period == ALL_TIME:
        return TimeWindow(start_ms=0, end_ms=None, label=ALL_TIME)

    now = now_ms() if now is None else now
    if period not in PERIODS:
        period = default_period if default_period in PERIODS else "24h"
    return TimeWindow(start_ms=now - PERIODS[period], end_ms=now, label=period)
