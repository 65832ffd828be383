"""
Per-page tracking state.

The host feeds observations (scrolls, clicks, section visibility, performance
samples, clock ticks) into a PageTracker, which decides what to emit and
hands the calls to its own delivery queue.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Set, Tuple

from sitepulse.config import AnalyticsConfig

from .client import TrackingClient
from .delivery import TrackingQueue

logger = logging.getLogger(__name__)

SCROLL_MILESTONES = (25, 50, 75, 100)
INTERACTIONS = ('click', 'scroll', 'keypress', 'touch')


class PageTracker:
    def __init__(
        self,
        client: TrackingClient,
        page_path: str,
        config: Optional[AnalyticsConfig] = None,
        queue: Optional[TrackingQueue] = None,
        clock: Callable[[], float] = time.monotonic,
        viewport: Optional[Tuple[int, int]] = None,
    ):
        self.client = client
        self.page_path = page_path
        self.config = config or AnalyticsConfig()
        self.queue = queue or TrackingQueue(
            max_attempts=self.config.tracker_max_attempts,
            backoff_seconds=self.config.tracker_backoff_seconds,
        )
        self._clock = clock
        self.viewport = viewport

        self.started_at: Optional[float] = None
        self.engaged = False
        self.bounced = False
        self.closed = False
        self.max_scroll = 0
        self.scroll_milestones: Set[int] = set()
        self._visible_sections: Dict[str, Dict[str, float]] = {}
        self._pending_performance: Dict[str, float] = {}
        self._performance_due_at: Optional[float] = None

    @property
    def time_on_page_ms(self) -> int:
        if self.started_at is None:
            return 0
        return int((self._clock() - self.started_at) * 1000)

    def _emit(self, event: str, **fields: Any) -> None:
        if self.closed:
            return
        payload = {'event': event, 'page': self.page_path}
        payload.update({key: value for key, value in fields.items() if value is not None})

        async def job():
            return await self.client.send(payload)

        self.queue.enqueue(job, f'{event} on {self.page_path}')

    def start(self) -> None:
        """Page became active: open a session if needed and record the page-view."""
        self.started_at = self._clock()
        if self.client.token is None:
            self._emit('session_start')
        width, height = self.viewport or (None, None)
        self._emit('pageview', viewport_width=width, viewport_height=height)

    def on_scroll(self, percentage: float) -> None:
        self.max_scroll = max(self.max_scroll, int(percentage))
        for milestone in SCROLL_MILESTONES:
            if self.max_scroll >= milestone and milestone not in self.scroll_milestones:
                self.scroll_milestones.add(milestone)
                self._emit('scroll', scroll_depth=milestone)
        if self.max_scroll >= self.config.tracker_engagement_scroll:
            self._mark_engaged('scroll_depth')
        else:
            self.on_interaction('scroll')

    def on_interaction(self, kind: str) -> None:
        if kind not in INTERACTIONS:
            raise ValueError(f'Unknown interaction {kind!r}')
        self._mark_engaged(kind)

    def on_click(self, element: str, href: Optional[str], x: Optional[float] = None, y: Optional[float] = None) -> None:
        width, height = self.viewport or (None, None)
        self._emit('click', element=element, href=href, x=x, y=y, viewport_width=width, viewport_height=height)
        self.on_interaction('click')

    def on_section_visibility(self, section_id: str, visible_ratio: float) -> None:
        """Called whenever the visible share of a section changes."""
        now = self._clock()
        percentage = round(visible_ratio * 100)
        visible = visible_ratio >= self.config.tracker_visibility_threshold
        state = self._visible_sections.get(section_id)

        if visible and state is None:
            self._visible_sections[section_id] = {'entered_at': now, 'max_percentage': percentage}
            self._emit('section_enter', section=section_id, event_data={'visible_percentage': percentage})
        elif visible:
            state['max_percentage'] = max(state['max_percentage'], percentage)
        elif state is not None:
            self._close_section(section_id, now)

    def _close_section(self, section_id: str, now: float) -> None:
        state = self._visible_sections.pop(section_id)
        visible_time_ms = int((now - state['entered_at']) * 1000)
        details = {'visible_time_ms': visible_time_ms, 'visible_percentage': int(state['max_percentage'])}
        self._emit('section_exit', section=section_id, time_spent=visible_time_ms, event_data=details)
        self._emit('section_view', section=section_id, time_spent=visible_time_ms, event_data=details)

    def on_performance(self, **samples: Optional[float]) -> None:
        """Collect ttfb/fcp/lcp/cls/fid samples, sent together once they settle."""
        for name, value in samples.items():
            if value is not None:
                self._pending_performance[name] = value
        if self._pending_performance:
            self._performance_due_at = self._clock() + self.config.tracker_performance_debounce_seconds

    def _flush_performance(self) -> None:
        if not self._pending_performance:
            return
        samples = self._pending_performance
        self._pending_performance = {}
        self._performance_due_at = None
        self._emit('performance', **samples)

    def tick(self) -> None:
        """
        Advance timers: performance debounce, engagement time, bounce timeout.

        Whichever of the engagement and bounce thresholds is shorter settles the
        page. With the default 10 s engagement and 30 s bounce a page that is
        still open at 30 s has already engaged, so only unload bounces it.
        """
        now = self._clock()
        if self._performance_due_at is not None and now >= self._performance_due_at:
            self._flush_performance()

        if self.started_at is None or self.engaged or self.bounced:
            return
        elapsed = now - self.started_at
        engage_at = self.config.tracker_engagement_seconds
        bounce_at = self.config.tracker_bounce_seconds
        if elapsed >= min(engage_at, bounce_at):
            if engage_at <= bounce_at:
                self._mark_engaged('time_on_page')
            else:
                self._mark_bounced()

    def _mark_engaged(self, trigger: str) -> None:
        if self.engaged or self.bounced or self.started_at is None:
            return
        self.engaged = True
        self._emit('user_engaged', event_data={'trigger': trigger, 'time_on_page_ms': self.time_on_page_ms})

    def _mark_bounced(self) -> None:
        if self.engaged or self.bounced or self.started_at is None:
            return
        self.bounced = True
        self._emit('bounce', event_data={'time_on_page_ms': self.time_on_page_ms})

    async def unload(self, end_session: bool = False) -> None:
        """Page is going away: settle pending state and wait for delivery."""
        if not self.closed:
            now = self._clock()
            self._flush_performance()
            for section_id in list(self._visible_sections):
                self._close_section(section_id, now)
            self._mark_bounced()
            if end_session:
                self._emit('session_end', time_spent=self.time_on_page_ms)
            self.closed = True
        await self.flush()

    async def flush(self) -> None:
        await self.queue.join()
