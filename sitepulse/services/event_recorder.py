"""
Event Recorder.
Writes page-views and events for a resolved session and keeps the session
and page-view aggregates (page count, bounce flag, exit page, time on page,
scroll depth, performance) in step with them.
"""

import logging
from typing import Any, Dict, List, Optional

from sitepulse.domain.base import IUnitOfWork
from sitepulse.domain.entities.event import Event
from sitepulse.domain.entities.pageview import PageView
from sitepulse.domain.entities.tracking import TrackingData
from sitepulse.domain.exceptions import InvalidSessionError, MissingParameterError
from sitepulse.services.time_window import now_ms

logger = logging.getLogger(__name__)

SESSION_START = "session_start"
SESSION_END = "session_end"
PAGEVIEW = "pageview"

# events that prove the visitor did more than land on a page
BOUNCE_CLEARING_EVENTS = {"user_engaged", "conversion"}


def classify_event(event_name: str) -> str:
    """Map an event name to the event_type column value."""
    if event_name == "click":
        return "click"
    if event_name.startswith("scroll"):
        return "scroll"
    if event_name.startswith("section_"):
        return "section"
    if event_name == "performance":
        return "performance"
    return "engagement"


def validate_tracking_data(data: TrackingData) -> None:
    """Raise MissingParameterError if the call can't be recorded as sent."""
    if not data.event:
        raise MissingParameterError("event")
    if data.event == PAGEVIEW and not data.page:
        raise MissingParameterError("page")
    if data.event.startswith("scroll") and data.scroll_depth is None:
        raise MissingParameterError("scroll_depth")
    if data.event == "click":
        missing = [name for name in ("element", "href") if not getattr(data, name)]
        if missing:
            raise MissingParameterError(*missing)


def build_event_data(data: TrackingData, event_type: str) -> Optional[Dict[str, Any]]:
    event_data: Dict[str, Any] = dict(data.event_data or {})

    if event_type == "click":
        candidates = {
            "x": data.x,
            "y": data.y,
            "viewport_width": data.viewport_width,
            "viewport_height": data.viewport_height,
        }
    elif event_type == "scroll":
        candidates = {"depth": data.scroll_depth}
    elif event_type == "section":
        candidates = {"section_id": data.section, "time_spent": data.time_spent}
    elif event_type == "performance":
        candidates = data.performance()
    else:
        candidates = {"section_id": data.section, "time_spent": data.time_spent}

    for key, value in candidates.items():
        if value is not None:
            event_data.setdefault(key, value)
    return event_data or None


class EventRecorder:
    def __init__(self, uow: IUnitOfWork):
        self.uow = uow

    async def track(self, session_id: str, data: TrackingData, timestamp: Optional[int] = None) -> None:
        """Validate and record one tracking call at the server clock. Does not commit."""
        validate_tracking_data(data)
        now = now_ms() if timestamp is None else timestamp

        if data.event == SESSION_START:
            # the session itself was created while resolving it
            return
        if data.event == PAGEVIEW:
            await self.record_page_view(
                session_id,
                data.page,
                now,
                viewport_width=data.viewport_width,
                viewport_height=data.viewport_height,
                performance=data.performance(),
            )
        elif data.event == SESSION_END:
            await self.end_session(session_id, now, data.time_spent)
        else:
            await self.record_event(session_id, data, now)

    async def track_batch(self, session_id: str, items: List[TrackingData], timestamp: Optional[int] = None) -> int:
        """Record items in order. Nothing is written unless every item is valid."""
        for data in items:
            validate_tracking_data(data)
        for data in items:
            await self.track(session_id, data, timestamp)
        return len(items)

    async def record_page_view(
        self,
        session_id: str,
        page_path: str,
        now: int,
        viewport_width: Optional[int] = None,
        viewport_height: Optional[int] = None,
        performance: Optional[Dict[str, float]] = None,
    ) -> int:
        await self._require_session(session_id)

        previous = await self.uow.pageviews.latest_for_session(session_id)
        # a page-view that arrives after a later one never becomes the exit page
        is_latest = previous is None or previous.timestamp <= now
        if previous is not None and is_latest:
            await self.uow.pageviews.close(previous.id, now - previous.timestamp)

        # entry page is the earliest page-view, not the first one written
        is_entry = previous is None
        if not is_latest:
            first = await self.uow.pageviews.earliest_for_session(session_id)
            if first is not None and now < first.timestamp:
                await self.uow.pageviews.clear_entry(first.id)
                is_entry = True

        performance = performance or {}
        pageview_id = await self.uow.pageviews.add(
            PageView(
                session_id=session_id,
                page_path=page_path,
                timestamp=now,
                entry_page=is_entry,
                exit_page=is_latest,
                viewport_width=viewport_width,
                viewport_height=viewport_height,
                ttfb=performance.get("ttfb"),
                fcp=performance.get("fcp"),
                lcp=performance.get("lcp"),
                cls=performance.get("cls"),
                fid=performance.get("fid"),
            )
        )

        if previous is None:
            await self.uow.sessions.touch(session_id, now)
        else:
            await self.uow.sessions.register_page_view(session_id, now)

        logger.debug("Recorded page-view %s for session %s on %s", pageview_id, session_id, page_path)
        return pageview_id

    async def record_event(self, session_id: str, data: TrackingData, now: int) -> int:
        await self._require_session(session_id)

        latest = await self.uow.pageviews.latest_for_session(session_id)
        page_path = data.page or (latest.page_path if latest is not None else "/")
        event_type = classify_event(data.event)

        event_id = await self.uow.events.add(
            Event(
                session_id=session_id,
                page_path=page_path,
                event_type=event_type,
                event_name=data.event,
                timestamp=now,
                element=data.element,
                href=data.href,
                event_data=build_event_data(data, event_type),
            )
        )

        if latest is not None:
            if event_type == "performance":
                await self.uow.pageviews.backfill_performance(latest.id, data.performance())
            elif event_type == "scroll":
                await self.uow.pageviews.raise_max_scroll(latest.id, data.scroll_depth)

        if data.event in BOUNCE_CLEARING_EVENTS:
            await self.uow.sessions.clear_bounce(session_id)
        await self.uow.sessions.touch(session_id, now)

        logger.debug("Recorded %s event %s for session %s", data.event, event_id, session_id)
        return event_id

    async def end_session(self, session_id: str, now: int, time_spent: Optional[int] = None) -> None:
        await self._require_session(session_id)
        await self.uow.sessions.touch(session_id, now)
        if time_spent is None:
            return
        latest = await self.uow.pageviews.latest_for_session(session_id)
        if latest is not None:
            await self.uow.pageviews.set_time_on_page(latest.id, time_spent)

    async def _require_session(self, session_id: Optional[str]) -> None:
        if not session_id or not await self.uow.sessions.exists(session_id):
            raise InvalidSessionError(session_id)
