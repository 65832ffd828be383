from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from sitepulse.domain.base import IUnitOfWork
from sitepulse.infrastructure.postgres.repositories.event_repo import EventRepository
from sitepulse.infrastructure.postgres.repositories.pageview_repo import PageViewRepository
from sitepulse.infrastructure.postgres.repositories.session_repo import SessionRepository


class UnitOfWork(IUnitOfWork):
    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session: AsyncSession = None
        self.sessions = None
        self.pageviews = None
        self.events = None

    async def __aenter__(self):
        async_session = async_sessionmaker(self.engine, expire_on_commit=False)
        self.session = async_session()
        self.sessions = SessionRepository(self.session)
        self.pageviews = PageViewRepository(self.session)
        self.events = EventRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            await self.rollback()
        await self.session.close()

    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        await self.session.rollback()
