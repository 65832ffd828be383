from typing import Any

from attr import dataclass

from sitepulse.domain.entities.pageview import PERFORMANCE_FIELDS


@dataclass(slots=True, frozen=True)
class RequestMetadata:
    """Everything the tracking boundary knows about the caller."""

    user_agent: str | None = None
    ip_address: str | None = None
    referrer: str | None = None
    device: str = 'unknown'
    browser: str = 'Unknown'
    os: str = 'Unknown'
    country: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None


@dataclass(slots=True, frozen=True)
class TrackingData:
    event: str | None = None
    page: str | None = None
    scroll_depth: int | None = None
    element: str | None = None
    href: str | None = None
    section: str | None = None
    time_spent: int | None = None
    x: float | None = None
    y: float | None = None
    viewport_width: int | None = None
    viewport_height: int | None = None
    ttfb: float | None = None
    fcp: float | None = None
    lcp: float | None = None
    cls: float | None = None
    fid: float | None = None
    event_data: dict[str, Any] | None = None

    def performance(self) -> dict[str, float]:
        """Performance samples carried by this call, without the missing ones."""
        values = {name: getattr(self, name) for name in PERFORMANCE_FIELDS}
        return {name: value for name, value in values.items() if value is not None}


@dataclass(slots=True, frozen=True)
class ResolvedSession:
    session_id: str
    is_new_session: bool
