import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from sitepulse.config import AnalyticsConfig
from sitepulse.infrastructure.postgres.on_startup.run_db import init_db_and_tables
from sitepulse.infrastructure.postgres.uow import UnitOfWork

MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS
T0 = 1_700_000_000_000
HOUR_MS = 60 * MINUTE_MS
CLIENT_TOKEN = '0b8f9c2e-4d1a-4c7e-9a3b-5f6e7d8c9b0a'

FIREFOX_UA = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0'
IPHONE_UA = (
    'Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 '
    '(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1'
)


@pytest.fixture
def config():
    return AnalyticsConfig(_env_file=None, cookie_secure=False)


@pytest.fixture
async def engine(tmp_path):
    db_engine = create_async_engine(f'sqlite+aiosqlite:///{tmp_path / "analytics.db"}')
    await init_db_and_tables(db_engine, max_attempts=1)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
async def uow(engine):
    async with UnitOfWork(engine) as unit:
        yield unit
