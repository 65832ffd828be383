"""
Request and response models for the tracking and metrics endpoints
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from sitepulse.domain.entities.tracking import TrackingData


class TrackingPayload(BaseModel):
    """One tracking call, as sent in headers, query params or a JSON body"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event: Optional[str] = Field(default=None, validation_alias=AliasChoices("event", "event_name"))
    page: Optional[str] = Field(default=None, validation_alias=AliasChoices("page", "page_path"))
    scroll_depth: Optional[int] = Field(
        default=None, ge=0, le=100, validation_alias=AliasChoices("scroll_depth", "scrollDepth")
    )
    element: Optional[str] = None
    href: Optional[str] = None
    section: Optional[str] = Field(default=None, validation_alias=AliasChoices("section", "section_id"))
    time_spent: Optional[int] = Field(default=None, ge=0, validation_alias=AliasChoices("time_spent", "timeSpent"))
    x: Optional[float] = None
    y: Optional[float] = None
    viewport_width: Optional[int] = Field(default=None, ge=0)
    viewport_height: Optional[int] = Field(default=None, ge=0)
    ttfb: Optional[float] = None
    fcp: Optional[float] = None
    lcp: Optional[float] = None
    cls: Optional[float] = None
    fid: Optional[float] = None
    event_data: Optional[Dict[str, Any]] = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_tracking_data(self) -> TrackingData:
        return TrackingData(**self.model_dump(exclude_none=False))


class BatchPayload(BaseModel):
    events: List[TrackingPayload]


class MetricsWindow(BaseModel):
    label: Optional[str] = None
    start_time: int
    end_time: Optional[int] = None


class RetentionMetrics(BaseModel):
    total_sessions: int = 0
    bounced_sessions: int = 0
    returning_sessions: int = 0
    bounce_rate: float = 0.0
    avg_session_duration: float = 0.0
    avg_pages_per_session: float = 0.0
    returning_visitor_rate: float = 0.0
    conversion_rate: float = 0.0


class PageMetric(BaseModel):
    page_path: str
    views: int
    unique_sessions: int
    avg_time_on_page: float
    avg_scroll_depth: float
    max_scroll_depth: int
    entry_rate: float
    exit_rate: float


class NavigationPath(BaseModel):
    from_path: str
    to_path: str
    frequency: int


class DeviceMetric(BaseModel):
    device: str
    browser: str
    sessions: int
    returning_sessions: int
    engaged_sessions: int


class GeoMetric(BaseModel):
    country: str
    city: str
    lat: float
    lng: float
    sessions: int
    returning_visitors: int
    bounce_rate: float


class ClickThroughMetric(BaseModel):
    page_path: str
    element: str
    href: str
    clicks: int
    unique_clicks: int
    views: int
    ctr: float
    unique_ctr: float
    avg_x: float
    avg_y: float
    viewport_width: int
    viewport_height: int


class TrafficSource(BaseModel):
    source: str
    sessions: int
    bounce_rate: float
    avg_duration: float


class WebVitals(BaseModel):
    samples: int = 0
    ttfb: float = 0.0
    fcp: float = 0.0
    lcp: float = 0.0
    cls: float = 0.0
    fid: float = 0.0


class MetricsSnapshot(BaseModel):
    """Everything the dashboard shows for one window"""
    window: MetricsWindow
    retention: RetentionMetrics = Field(default_factory=RetentionMetrics)
    pages: List[PageMetric] = Field(default_factory=list)
    navigation_paths: List[NavigationPath] = Field(default_factory=list)
    devices: List[DeviceMetric] = Field(default_factory=list)
    geographic: List[GeoMetric] = Field(default_factory=list)
    ctr: List[ClickThroughMetric] = Field(default_factory=list)
    scroll_depth: Dict[str, float] = Field(default_factory=dict)
    traffic_sources: List[TrafficSource] = Field(default_factory=list)
    web_vitals: WebVitals = Field(default_factory=WebVitals)
