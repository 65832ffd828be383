from attr import asdict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.domain.entities.event import Event
from sitepulse.domain.repositories.event_repo import IEventRepository
from sitepulse.infrastructure.postgres.on_startup.init_tables import EventTable


class EventRepository(IEventRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, event: Event) -> int:
        values = asdict(event)
        values.pop('id')
        row = EventTable(**values)
        self.session.add(row)
        await self.session.flush()
        return row.id

    async def list_for_session(self, session_id: str) -> list[Event]:
        stmt = (
            select(EventTable)
            .where(EventTable.session_id == session_id)
            .order_by(EventTable.timestamp, EventTable.id)
        )
        result = await self.session.execute(stmt)
        return [
            Event(
                id=row.id,
                session_id=row.session_id,
                page_path=row.page_path,
                event_type=row.event_type,
                event_name=row.event_name,
                timestamp=row.timestamp,
                element=row.element,
                href=row.href,
                event_data=row.event_data,
            )
            for row in result.scalars().all()
        ]
