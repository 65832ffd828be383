from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.domain.repositories.event_repo import IEventRepository
from sitepulse.domain.repositories.pageview_repo import IPageViewRepository
from sitepulse.domain.repositories.session_repo import ISessionRepository


class IUnitOfWork(ABC):
    session: AsyncSession
    sessions: 'ISessionRepository'
    pageviews: 'IPageViewRepository'
    events: 'IEventRepository'

    @abstractmethod
    async def __aenter__(self):
        raise NotImplementedError

    @abstractmethod
    async def __aexit__(self, *args):
        raise NotImplementedError

    @abstractmethod
    async def commit(self):
        raise NotImplementedError

    @abstractmethod
    async def rollback(self):
        raise NotImplementedError
