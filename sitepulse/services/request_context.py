"""
Extraction of session tokens, device signals and geolocation from tracking requests.
"""

from typing import Mapping, Optional

from sitepulse.domain.entities.tracking import RequestMetadata
from sitepulse.services.models import TrackingPayload

SESSION_HEADER = "X-Session-Id"
NO_TRACK_HEADER = "X-No-Track"

# single-event GET form: field -> header
TRACKING_HEADERS = {
    "event": "X-Event",
    "page": "X-Page",
    "scroll_depth": "X-Scroll-Depth",
    "element": "X-Element",
    "href": "X-Href",
    "section": "X-Section",
    "time_spent": "X-Time-Spent",
    "ttfb": "X-Ttfb",
    "fcp": "X-Fcp",
    "lcp": "X-Lcp",
    "cls": "X-Cls",
    "fid": "X-Fid",
}


def detect_device_type(user_agent: Optional[str]) -> str:
    if not user_agent:
        return "unknown"
    ua = user_agent.lower()
    if "ipad" in ua or "tablet" in ua:
        return "tablet"
    if "mobile" in ua or "android" in ua or "iphone" in ua:
        return "mobile"
    return "desktop"


def detect_browser(user_agent: Optional[str]) -> str:
    if not user_agent:
        return "Unknown"
    # Edge and Opera also advertise Chrome, Chrome also advertises Safari
    if "Edg/" in user_agent or "Edge/" in user_agent:
        return "Edge"
    if "OPR/" in user_agent or "Opera" in user_agent:
        return "Opera"
    if "Firefox" in user_agent:
        return "Firefox"
    if "Chrome" in user_agent or "CriOS" in user_agent:
        return "Chrome"
    if "Safari" in user_agent:
        return "Safari"
    return "Unknown"


def detect_os(user_agent: Optional[str]) -> str:
    if not user_agent:
        return "Unknown"
    if "Windows" in user_agent:
        return "Windows"
    if "Android" in user_agent:
        return "Android"
    if "iPhone" in user_agent or "iPad" in user_agent or "iOS" in user_agent:
        return "iOS"
    if "Mac OS" in user_agent:
        return "macOS"
    if "Linux" in user_agent:
        return "Linux"
    return "Unknown"


def _parse_coordinate(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _client_ip(headers: Mapping[str, str], remote: Optional[str]) -> Optional[str]:
    forwarded_for = headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return headers.get("CF-Connecting-IP") or remote


def extract_request_metadata(
    headers: Mapping[str, str],
    query: Mapping[str, str],
    remote: Optional[str] = None,
) -> RequestMetadata:
    user_agent = headers.get("User-Agent")
    return RequestMetadata(
        user_agent=user_agent,
        ip_address=_client_ip(headers, remote),
        referrer=headers.get("Referer") or None,
        device=headers.get("X-Device-Type") or detect_device_type(user_agent),
        browser=detect_browser(user_agent),
        os=detect_os(user_agent),
        country=headers.get("CF-IPCountry") or None,
        city=headers.get("CF-IPCity") or None,
        latitude=_parse_coordinate(headers.get("CF-IPLatitude")),
        longitude=_parse_coordinate(headers.get("CF-IPLongitude")),
        utm_source=query.get("utm_source"),
        utm_medium=query.get("utm_medium"),
        utm_campaign=query.get("utm_campaign"),
    )


def extract_session_token(
    cookies: Mapping[str, str],
    headers: Mapping[str, str],
    query: Mapping[str, str],
    cookie_name: str = "session_id",
) -> Optional[str]:
    """Cookie first, then header, then query param."""
    return cookies.get(cookie_name) or headers.get(SESSION_HEADER) or query.get("session_id") or None


def is_no_track(headers: Mapping[str, str]) -> bool:
    return headers.get(NO_TRACK_HEADER) == "1"


def payload_from_headers(headers: Mapping[str, str], query: Mapping[str, str]) -> TrackingPayload:
    values = {}
    for field, header in TRACKING_HEADERS.items():
        value = headers.get(header)
        if value is None:
            value = query.get(field)
        if value is not None:
            values[field] = value
    return TrackingPayload.model_validate(values)
