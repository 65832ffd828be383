from typing import Any

from attr import dataclass


@dataclass(slots=True, frozen=True)
class CachedMetrics:
    key: str
    value: Any
