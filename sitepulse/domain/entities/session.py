from attr import dataclass


@dataclass(slots=True, frozen=True)
class Session:
    session_id: str
    start_time: int
    end_time: int | None = None
    total_time_ms: int = 0
    page_count: int = 1
    is_bounce: bool = True
    is_returning: bool = False
    device: str | None = None
    browser: str | None = None
    os: str | None = None
    country: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    referrer: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None
