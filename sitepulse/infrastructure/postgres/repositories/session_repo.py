from attr import asdict
from sqlalchemy import BigInteger, and_, case, func, literal, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.domain.entities.session import Session
from sitepulse.domain.repositories.session_repo import ISessionRepository
from sitepulse.infrastructure.postgres.on_startup.init_tables import SessionTable

_sessions = SessionTable.__table__


def dialect_insert(session: AsyncSession, table):
    """INSERT construct with ON CONFLICT support for the engine behind the session."""
    dialect = session.get_bind().dialect.name
    if dialect == 'postgresql':
        return pg_insert(table)
    if dialect == 'sqlite':
        return sqlite_insert(table)
    raise NotImplementedError(f'Upsert is not supported for dialect {dialect!r}')


class SessionRepository(ISessionRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, session_id: str) -> Session | None:
        stmt = (
            select(SessionTable)
            .where(SessionTable.session_id == session_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return self._to_entity(row) if row is not None else None

    async def exists(self, session_id: str) -> bool:
        stmt = select(_sessions.c.session_id).where(_sessions.c.session_id == session_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def touch_active(self, session_id: str, now: int, active_since: int) -> bool:
        last_seen = func.coalesce(_sessions.c.end_time, _sessions.c.start_time)
        stmt = (
            update(_sessions)
            .where(_sessions.c.session_id == session_id, last_seen >= active_since)
            .values(**self._touch_values(now))
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def touch(self, session_id: str, now: int) -> None:
        stmt = update(_sessions).where(_sessions.c.session_id == session_id).values(**self._touch_values(now))
        await self.session.execute(stmt)

    async def insert_if_absent(self, new_session: Session) -> bool:
        stmt = (
            dialect_insert(self.session, _sessions)
            .values(**asdict(new_session))
            .on_conflict_do_nothing(index_elements=['session_id'])
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def has_recent_match(
        self, token: str | None, browser: str | None, device: str | None, os: str | None, since: int
    ) -> bool:
        criteria = [and_(_sessions.c.browser == browser, _sessions.c.device == device, _sessions.c.os == os)]
        if token:
            criteria.append(_sessions.c.session_id == token)

        stmt = select(func.count()).select_from(_sessions).where(_sessions.c.start_time >= since, or_(*criteria))
        result = await self.session.execute(stmt)
        return result.scalar_one() > 0

    async def register_page_view(self, session_id: str, now: int) -> None:
        stmt = (
            update(_sessions)
            .where(_sessions.c.session_id == session_id)
            .values(page_count=_sessions.c.page_count + 1, is_bounce=False, **self._touch_values(now))
        )
        await self.session.execute(stmt)

    async def clear_bounce(self, session_id: str) -> None:
        stmt = update(_sessions).where(_sessions.c.session_id == session_id).values(is_bounce=False)
        await self.session.execute(stmt)

    @staticmethod
    def _touch_values(now: int) -> dict:
        # end_time never moves backwards when calls arrive out of order
        last_seen = func.coalesce(_sessions.c.end_time, _sessions.c.start_time)
        end_time = case((last_seen > now, last_seen), else_=literal(now, BigInteger))
        return {'end_time': end_time, 'total_time_ms': end_time - _sessions.c.start_time}

    @staticmethod
    def _to_entity(row: SessionTable) -> Session:
        return Session(
            session_id=row.session_id,
            start_time=row.start_time,
            end_time=row.end_time,
            total_time_ms=row.total_time_ms,
            page_count=row.page_count,
            is_bounce=row.is_bounce,
            is_returning=row.is_returning,
            device=row.device,
            browser=row.browser,
            os=row.os,
            country=row.country,
            city=row.city,
            latitude=row.latitude,
            longitude=row.longitude,
            referrer=row.referrer,
            utm_source=row.utm_source,
            utm_medium=row.utm_medium,
            utm_campaign=row.utm_campaign,
            user_agent=row.user_agent,
            ip_address=row.ip_address,
        )
