from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.domain.entities.event import Event


class IEventRepository(ABC):
    def __init__(self, session: AsyncSession):
        self.session = session

    @abstractmethod
    async def add(self, event: Event) -> int: ...

    @abstractmethod
    async def list_for_session(self, session_id: str) -> list[Event]: ...
