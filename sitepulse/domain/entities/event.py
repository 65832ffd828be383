from typing import Any

from attr import dataclass


@dataclass(slots=True, frozen=True)
class Event:
    session_id: str
    page_path: str
    event_type: str
    event_name: str
    timestamp: int
    id: int | None = None
    element: str | None = None
    href: str | None = None
    event_data: dict[str, Any] | None = None
