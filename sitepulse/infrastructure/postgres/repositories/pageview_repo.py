from attr import asdict
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.domain.entities.pageview import PERFORMANCE_FIELDS, PageView
from sitepulse.domain.repositories.pageview_repo import IPageViewRepository
from sitepulse.infrastructure.postgres.on_startup.init_tables import PageViewTable

_pageviews = PageViewTable.__table__


class PageViewRepository(IPageViewRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, pageview: PageView) -> int:
        values = asdict(pageview)
        values.pop('id')
        row = PageViewTable(**values)
        self.session.add(row)
        await self.session.flush()
        return row.id

    async def latest_for_session(self, session_id: str) -> PageView | None:
        stmt = (
            select(PageViewTable)
            .where(PageViewTable.session_id == session_id)
            .order_by(PageViewTable.timestamp.desc(), PageViewTable.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return self._to_entity(row) if row is not None else None

    async def earliest_for_session(self, session_id: str) -> PageView | None:
        stmt = (
            select(PageViewTable)
            .where(PageViewTable.session_id == session_id)
            .order_by(PageViewTable.timestamp, PageViewTable.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return self._to_entity(row) if row is not None else None

    async def list_for_session(self, session_id: str) -> list[PageView]:
        stmt = (
            select(PageViewTable)
            .where(PageViewTable.session_id == session_id)
            .order_by(PageViewTable.timestamp, PageViewTable.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [self._to_entity(row) for row in result.scalars().all()]

    async def close(self, pageview_id: int, time_on_page_ms: int) -> None:
        stmt = (
            update(_pageviews)
            .where(_pageviews.c.id == pageview_id)
            .values(time_on_page_ms=max(time_on_page_ms, 0), exit_page=False)
        )
        await self.session.execute(stmt)

    async def clear_entry(self, pageview_id: int) -> None:
        stmt = update(_pageviews).where(_pageviews.c.id == pageview_id).values(entry_page=False)
        await self.session.execute(stmt)

    async def set_time_on_page(self, pageview_id: int, time_on_page_ms: int) -> None:
        stmt = update(_pageviews).where(_pageviews.c.id == pageview_id).values(time_on_page_ms=max(time_on_page_ms, 0))
        await self.session.execute(stmt)

    async def raise_max_scroll(self, pageview_id: int, percentage: int) -> None:
        column = _pageviews.c.max_scroll_percentage
        stmt = (
            update(_pageviews)
            .where(_pageviews.c.id == pageview_id)
            .values(max_scroll_percentage=case((column < percentage, percentage), else_=column))
        )
        await self.session.execute(stmt)

    async def backfill_performance(self, pageview_id: int, metrics: dict[str, float]) -> None:
        values = {
            name: func.coalesce(_pageviews.c[name], value)
            for name, value in metrics.items()
            if name in PERFORMANCE_FIELDS and value is not None
        }
        if not values:
            return
        stmt = update(_pageviews).where(_pageviews.c.id == pageview_id).values(**values)
        await self.session.execute(stmt)

    @staticmethod
    def _to_entity(row: PageViewTable) -> PageView:
        return PageView(
            id=row.id,
            session_id=row.session_id,
            page_path=row.page_path,
            timestamp=row.timestamp,
            time_on_page_ms=row.time_on_page_ms,
            max_scroll_percentage=row.max_scroll_percentage,
            entry_page=row.entry_page,
            exit_page=row.exit_page,
            viewport_width=row.viewport_width,
            viewport_height=row.viewport_height,
            ttfb=row.ttfb,
            fcp=row.fcp,
            lcp=row.lcp,
            cls=row.cls,
            fid=row.fid,
        )
