from attr import dataclass


@dataclass(slots=True, frozen=True)
class TimeWindow:
    """Inclusive [start_ms, end_ms] range in epoch milliseconds; open ended when end_ms is None."""

    start_ms: int
    end_ms: int | None = None
    label: str | None = None
