from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.domain.entities.session import Session


class ISessionRepository(ABC):
    def __init__(self, session: AsyncSession):
        self.session = session

    @abstractmethod
    async def get(self, session_id: str) -> Session | None: ...

    @abstractmethod
    async def exists(self, session_id: str) -> bool: ...

    @abstractmethod
    async def touch_active(self, session_id: str, now: int, active_since: int) -> bool:
        """Refresh end_time/total_time_ms only if the session was last seen at or after active_since."""

    @abstractmethod
    async def touch(self, session_id: str, now: int) -> None: ...

    @abstractmethod
    async def insert_if_absent(self, new_session: Session) -> bool:
        """False when a row with the same session_id already exists."""

    @abstractmethod
    async def has_recent_match(
        self, token: str | None, browser: str | None, device: str | None, os: str | None, since: int
    ) -> bool: ...

    @abstractmethod
    async def register_page_view(self, session_id: str, now: int) -> None:
        """Atomic page_count increment that also clears the bounce flag."""

    @abstractmethod
    async def clear_bounce(self, session_id: str) -> None: ...
