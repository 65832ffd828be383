import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sitepulse.infrastructure.postgres.on_startup.init_tables import Base
from sitepulse.infrastructure.settings import DB_ECHO, DB_URL


logger = logging.getLogger(__name__)


def build_engine(db_url: str = DB_URL) -> AsyncEngine:
    return create_async_engine(db_url, echo=DB_ECHO)


async def init_db_and_tables(engine: AsyncEngine, max_attempts: int = 5, retry_delay: float = 2):
    """Create the analytics tables if they don't exist, waiting for the database to come up."""
    for attempt in range(max_attempts):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            return
        except Exception as e:
            if attempt < max_attempts - 1:
                logger.warning(f'Attempt {attempt + 1} to initialize the database failed: {e}')
                logger.warning(f'Retrying in {retry_delay} seconds...')
                await asyncio.sleep(retry_delay)
            else:
                raise e
