from attr import dataclass


PERFORMANCE_FIELDS = ('ttfb', 'fcp', 'lcp', 'cls', 'fid')


@dataclass(slots=True, frozen=True)
class PageView:
    session_id: str
    page_path: str
    timestamp: int
    id: int | None = None
    time_on_page_ms: int = 0
    max_scroll_percentage: int = 0
    entry_page: bool = False
    exit_page: bool = False
    viewport_width: int | None = None
    viewport_height: int | None = None
    ttfb: float | None = None
    fcp: float | None = None
    lcp: float | None = None
    cls: float | None = None
    fid: float | None = None
