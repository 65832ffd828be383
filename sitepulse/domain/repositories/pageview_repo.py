from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.domain.entities.pageview import PageView


class IPageViewRepository(ABC):
    def __init__(self, session: AsyncSession):
        self.session = session

    @abstractmethod
    async def add(self, pageview: PageView) -> int: ...

    @abstractmethod
    async def latest_for_session(self, session_id: str) -> PageView | None: ...

    @abstractmethod
    async def earliest_for_session(self, session_id: str) -> PageView | None: ...

    @abstractmethod
    async def list_for_session(self, session_id: str) -> list[PageView]: ...

    @abstractmethod
    async def close(self, pageview_id: int, time_on_page_ms: int) -> None:
        """Stamp time on page and clear the exit flag of a page-view that was followed by another."""

    @abstractmethod
    async def set_time_on_page(self, pageview_id: int, time_on_page_ms: int) -> None: ...

    @abstractmethod
    async def raise_max_scroll(self, pageview_id: int, percentage: int) -> None: ...

    @abstractmethod
    async def backfill_performance(self, pageview_id: int, metrics: dict[str, float]) -> None:
        """Fill performance columns that are still null, never overwrite reported ones."""

    @abstractmethod
    async def clear_entry(self, pageview_id: int) -> None:
        """Drop the entry flag of a page-view that turned out not to be the first one."""
