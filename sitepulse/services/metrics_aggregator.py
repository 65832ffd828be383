"""
Metrics Aggregation Service.
Aggregates sessions, page-views and events of a time window into the
dashboard MetricsSnapshot. Read-only.
"""

import logging
from collections import Counter, defaultdict
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.config import AnalyticsConfig
from sitepulse.domain.entities.pageview import PERFORMANCE_FIELDS
from sitepulse.domain.entities.time_window import TimeWindow
from sitepulse.infrastructure.postgres.on_startup.init_tables import EventTable, PageViewTable, SessionTable
from sitepulse.services.models import (
    ClickThroughMetric, DeviceMetric, GeoMetric, MetricsSnapshot, MetricsWindow,
    NavigationPath, PageMetric, RetentionMetrics, TrafficSource, WebVitals
)
from sitepulse.services.rates import percentage, ratio, rounded

logger = logging.getLogger(__name__)

SCROLL_MILESTONES = (25, 50, 75, 100)
CONVERSION_EVENT = "conversion"
DIRECT_SOURCE = "direct"


class MetricsAggregator:
    """
    Service to aggregate the rows of a time window into dashboard metrics.
    """

    def __init__(self, session: AsyncSession, config: Optional[AnalyticsConfig] = None):
        self.session = session
        self.config = config or AnalyticsConfig()

    async def get_metrics(self, window: TimeWindow) -> MetricsSnapshot:
        """Every metrics block for one window, from one read of each table."""
        sessions = await self._fetch_sessions(window)
        pageviews = await self._fetch_pageviews(window)
        events = await self._fetch_events(window)

        if not sessions and not pageviews and not events:
            logger.info(f"No analytics data for window {window.label or window.start_ms}")

        return MetricsSnapshot(
            window=MetricsWindow(label=window.label, start_time=window.start_ms, end_time=window.end_ms),
            retention=self._calc_retention(sessions, pageviews, events),
            pages=self._calc_page_metrics(pageviews),
            navigation_paths=self._calc_navigation_paths(pageviews),
            devices=self._calc_device_metrics(sessions),
            geographic=self._calc_geographic_metrics(sessions, pageviews),
            ctr=self._calc_click_through(events, pageviews),
            scroll_depth=self._calc_scroll_distribution(pageviews),
            traffic_sources=self._calc_traffic_sources(sessions, pageviews),
            web_vitals=self._calc_web_vitals(pageviews),
        )

    async def retention_metrics(self, window: TimeWindow) -> RetentionMetrics:
        return self._calc_retention(
            await self._fetch_sessions(window),
            await self._fetch_pageviews(window),
            await self._fetch_events(window),
        )

    async def page_metrics(self, window: TimeWindow) -> List[PageMetric]:
        return self._calc_page_metrics(await self._fetch_pageviews(window))

    async def navigation_paths(self, window: TimeWindow) -> List[NavigationPath]:
        return self._calc_navigation_paths(await self._fetch_pageviews(window))

    async def device_metrics(self, window: TimeWindow) -> List[DeviceMetric]:
        return self._calc_device_metrics(await self._fetch_sessions(window))

    async def geographic_metrics(self, window: TimeWindow) -> List[GeoMetric]:
        return self._calc_geographic_metrics(await self._fetch_sessions(window), await self._fetch_pageviews(window))

    async def click_through_metrics(self, window: TimeWindow) -> List[ClickThroughMetric]:
        return self._calc_click_through(await self._fetch_events(window), await self._fetch_pageviews(window))

    async def scroll_depth_distribution(self, window: TimeWindow) -> Dict[str, float]:
        return self._calc_scroll_distribution(await self._fetch_pageviews(window))

    async def traffic_sources(self, window: TimeWindow) -> List[TrafficSource]:
        return self._calc_traffic_sources(await self._fetch_sessions(window), await self._fetch_pageviews(window))

    async def web_vitals(self, window: TimeWindow) -> WebVitals:
        return self._calc_web_vitals(await self._fetch_pageviews(window))

    @staticmethod
    def _in_window(column, window: TimeWindow):
        criteria = [column >= window.start_ms]
        if window.end_ms is not None:
            criteria.append(column <= window.end_ms)
        return criteria

    async def _fetch_sessions(self, window: TimeWindow) -> List[SessionTable]:
        stmt = (
            select(SessionTable)
            .where(*self._in_window(SessionTable.start_time, window))
            .order_by(SessionTable.start_time, SessionTable.session_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _fetch_pageviews(self, window: TimeWindow) -> List[PageViewTable]:
        stmt = (
            select(PageViewTable)
            .where(*self._in_window(PageViewTable.timestamp, window))
            .order_by(PageViewTable.session_id, PageViewTable.timestamp, PageViewTable.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _fetch_events(self, window: TimeWindow) -> List[EventTable]:
        stmt = (
            select(EventTable)
            .where(*self._in_window(EventTable.timestamp, window))
            .order_by(EventTable.timestamp, EventTable.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    def _is_bounced(self, visit: SessionTable, views_per_session: Counter) -> bool:
        return views_per_session[visit.session_id] <= 1 and bool(visit.is_bounce)

    def _calc_retention(
        self,
        sessions: List[SessionTable],
        pageviews: List[PageViewTable],
        events: List[EventTable]
    ) -> RetentionMetrics:
        """Calculate bounce, duration, depth, returning and conversion figures."""
        total = len(sessions)
        if not total:
            return RetentionMetrics()

        rate_precision = self.config.rate_precision
        display_precision = self.config.display_precision
        views_per_session = Counter(pv.session_id for pv in pageviews)

        bounced = sum(1 for s in sessions if self._is_bounced(s, views_per_session))
        returning = sum(1 for s in sessions if s.is_returning)
        durations = [s.total_time_ms for s in sessions if s.total_time_ms]
        session_ids = {s.session_id for s in sessions}
        converted = {e.session_id for e in events if e.event_name == CONVERSION_EVENT and e.session_id in session_ids}

        return RetentionMetrics(
            total_sessions=total,
            bounced_sessions=bounced,
            returning_sessions=returning,
            bounce_rate=percentage(bounced, total, rate_precision),
            avg_session_duration=ratio(sum(durations) / 1000, len(durations), display_precision),
            avg_pages_per_session=ratio(sum(s.page_count or 0 for s in sessions), total, display_precision),
            returning_visitor_rate=percentage(returning, total, rate_precision),
            conversion_rate=percentage(len(converted), total, rate_precision),
        )

    def _calc_page_metrics(self, pageviews: List[PageViewTable]) -> List[PageMetric]:
        """Calculate per-page metrics, top pages by views."""
        by_path: Dict[str, List[PageViewTable]] = defaultdict(list)
        for pv in pageviews:
            by_path[pv.page_path].append(pv)

        rate_precision = self.config.rate_precision
        display_precision = self.config.display_precision
        result = []
        for path, views in by_path.items():
            count = len(views)
            result.append(PageMetric(
                page_path=path,
                views=count,
                unique_sessions=len({pv.session_id for pv in views}),
                avg_time_on_page=ratio(sum(pv.time_on_page_ms or 0 for pv in views) / 1000, count, display_precision),
                avg_scroll_depth=ratio(sum(pv.max_scroll_percentage or 0 for pv in views), count, display_precision),
                max_scroll_depth=max(pv.max_scroll_percentage or 0 for pv in views),
                entry_rate=percentage(sum(1 for pv in views if pv.entry_page), count, rate_precision),
                exit_rate=percentage(sum(1 for pv in views if pv.exit_page), count, rate_precision),
            ))

        result.sort(key=lambda m: (-m.views, m.page_path))
        return result[:self.config.top_pages_limit]

    def _calc_navigation_paths(self, pageviews: List[PageViewTable]) -> List[NavigationPath]:
        """Most frequent page-to-page transitions within a session."""
        visit_paths: Dict[str, List[str]] = defaultdict(list)
        # rows arrive ordered by session and timestamp
        for pv in pageviews:
            visit_paths[pv.session_id].append(pv.page_path)

        transitions_counter: Counter = Counter()
        for paths in visit_paths.values():
            for i in range(len(paths) - 1):
                if paths[i] != paths[i + 1]:
                    transitions_counter[(paths[i], paths[i + 1])] += 1

        ordered = sorted(transitions_counter.items(), key=lambda item: (-item[1], item[0]))
        return [
            NavigationPath(from_path=from_path, to_path=to_path, frequency=count)
            for (from_path, to_path), count in ordered[:self.config.top_transitions_limit]
        ]

    def _calc_device_metrics(self, sessions: List[SessionTable]) -> List[DeviceMetric]:
        groups: Dict[Tuple[str, str], List[SessionTable]] = defaultdict(list)
        for s in sessions:
            groups[(s.device or "unknown", s.browser or "Unknown")].append(s)

        result = [
            DeviceMetric(
                device=device,
                browser=browser,
                sessions=len(subset),
                returning_sessions=sum(1 for s in subset if s.is_returning),
                engaged_sessions=sum(1 for s in subset if not s.is_bounce),
            )
            for (device, browser), subset in groups.items()
        ]
        result.sort(key=lambda m: (-m.sessions, m.device, m.browser))
        return result

    def _calc_geographic_metrics(
        self,
        sessions: List[SessionTable],
        pageviews: List[PageViewTable]
    ) -> List[GeoMetric]:
        """Calculate location rollups, sessions without coordinates are left out."""
        views_per_session = Counter(pv.session_id for pv in pageviews)
        groups: Dict[Tuple[str, str, float, float], List[SessionTable]] = defaultdict(list)
        for s in sessions:
            if s.latitude is None or s.longitude is None:
                continue
            groups[(s.country or "Unknown", s.city or "Unknown", s.latitude, s.longitude)].append(s)

        result = []
        for (country, city, lat, lng), subset in groups.items():
            bounced = sum(1 for s in subset if self._is_bounced(s, views_per_session))
            result.append(GeoMetric(
                country=country,
                city=city,
                lat=lat,
                lng=lng,
                sessions=len(subset),
                returning_visitors=sum(1 for s in subset if s.is_returning),
                bounce_rate=percentage(bounced, len(subset), self.config.rate_precision),
            ))

        result.sort(key=lambda m: (-m.sessions, m.country, m.city, m.lat, m.lng))
        return result[:self.config.top_locations_limit]

    def _calc_click_through(
        self,
        events: List[EventTable],
        pageviews: List[PageViewTable]
    ) -> List[ClickThroughMetric]:
        """Calculate clicks and CTR per (page, element, href)."""
        views_per_path = Counter(pv.page_path for pv in pageviews)
        clicks: Dict[Tuple[str, str, str], List[EventTable]] = defaultdict(list)
        for e in events:
            if e.event_type != "click":
                continue
            clicks[(e.page_path, e.element or "", e.href or "")].append(e)

        rate_precision = self.config.rate_precision
        display_precision = self.config.display_precision
        result = []
        for (path, element, href), subset in clicks.items():
            data = [e.event_data or {} for e in subset]
            xs = [d["x"] for d in data if d.get("x") is not None]
            ys = [d["y"] for d in data if d.get("y") is not None]
            widths = [d["viewport_width"] for d in data if d.get("viewport_width")]
            heights = [d["viewport_height"] for d in data if d.get("viewport_height")]
            unique = len({e.session_id for e in subset})
            views = views_per_path[path]

            result.append(ClickThroughMetric(
                page_path=path,
                element=element,
                href=href,
                clicks=len(subset),
                unique_clicks=unique,
                views=views,
                ctr=percentage(len(subset), views, rate_precision),
                unique_ctr=percentage(unique, views, rate_precision),
                avg_x=ratio(sum(xs), len(xs), display_precision),
                avg_y=ratio(sum(ys), len(ys), display_precision),
                viewport_width=max(widths) if widths else 0,
                viewport_height=max(heights) if heights else 0,
            ))

        result.sort(key=lambda m: (-m.clicks, m.page_path, m.element, m.href))
        return result[:self.config.top_clicks_limit]

    def _calc_scroll_distribution(self, pageviews: List[PageViewTable]) -> Dict[str, float]:
        """Share of page-views whose max scroll reached each milestone."""
        total = len(pageviews)
        return {
            str(milestone): percentage(
                sum(1 for pv in pageviews if (pv.max_scroll_percentage or 0) >= milestone),
                total,
                self.config.rate_precision,
            )
            for milestone in SCROLL_MILESTONES
        }

    def _calc_traffic_sources(
        self,
        sessions: List[SessionTable],
        pageviews: List[PageViewTable]
    ) -> List[TrafficSource]:
        views_per_session = Counter(pv.session_id for pv in pageviews)
        groups: Dict[str, List[SessionTable]] = defaultdict(list)
        for s in sessions:
            groups[s.referrer or DIRECT_SOURCE].append(s)

        result = []
        for source, subset in groups.items():
            count = len(subset)
            bounced = sum(1 for s in subset if self._is_bounced(s, views_per_session))
            result.append(TrafficSource(
                source=source,
                sessions=count,
                bounce_rate=percentage(bounced, count, self.config.rate_precision),
                avg_duration=ratio(sum(s.total_time_ms or 0 for s in subset) / 1000, count, self.config.display_precision),
            ))

        result.sort(key=lambda m: (-m.sessions, m.source))
        return result[:self.config.top_sources_limit]

    def _calc_web_vitals(self, pageviews: List[PageViewTable]) -> WebVitals:
        """Average each performance metric over the page-views that reported it."""
        reported = [pv for pv in pageviews if any(getattr(pv, name) is not None for name in PERFORMANCE_FIELDS)]
        averages = {}
        for name in PERFORMANCE_FIELDS:
            values = [getattr(pv, name) for pv in reported if getattr(pv, name) is not None]
            # cls is a unitless score well below 1
            precision = 3 if name == "cls" else self.config.display_precision
            averages[name] = rounded(sum(values) / len(values), precision) if values else 0.0
        return WebVitals(samples=len(reported), **averages)
