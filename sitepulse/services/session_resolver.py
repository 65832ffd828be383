"""
Session resolution for tracking requests.

A presented token is reused while its session is active, otherwise a new
session is minted and classified as new or returning.
"""

import logging
import uuid
from typing import Optional

from sitepulse.config import AnalyticsConfig
from sitepulse.domain.base import IUnitOfWork
from sitepulse.domain.entities.session import Session
from sitepulse.domain.entities.tracking import RequestMetadata, ResolvedSession
from sitepulse.services.time_window import now_ms

logger = logging.getLogger(__name__)


def new_session_token() -> str:
    return str(uuid.uuid4())


def is_session_token(value: str) -> bool:
    """True for a canonical lowercase UUID, the only form a client may choose."""
    try:
        return str(uuid.UUID(value)) == value
    except ValueError:
        return False


class SessionResolver:
    def __init__(self, uow: IUnitOfWork, config: AnalyticsConfig):
        self.uow = uow
        self.config = config

    async def resolve(
        self,
        token: Optional[str],
        metadata: RequestMetadata,
        timestamp: Optional[int] = None,
        adopt_token: bool = False,
    ) -> ResolvedSession:
        """
        Reuse the session behind token when it is still active, else create one.

        With adopt_token an unknown presented token becomes the id of the new
        session, which keeps a client-generated id from a batch session_start.
        Only UUID tokens are adopted, anything else gets a server-made id.
        Does not commit, the caller owns the unit of work.
        """
        now = now_ms() if timestamp is None else timestamp

        if token and await self._reuse(token, now):
            return ResolvedSession(session_id=token, is_new_session=False)

        if adopt_token and token and is_session_token(token) and not await self.uow.sessions.exists(token):
            session_id = token
        else:
            session_id = new_session_token()
        is_returning = await self.uow.sessions.has_recent_match(
            token=token,
            browser=metadata.browser,
            device=metadata.device,
            os=metadata.os,
            since=now - self.config.returning_window_ms,
        )
        new_session = Session(
            session_id=session_id,
            start_time=now,
            end_time=now,
            total_time_ms=0,
            page_count=1,
            is_bounce=True,
            is_returning=is_returning,
            device=metadata.device,
            browser=metadata.browser,
            os=metadata.os,
            country=metadata.country,
            city=metadata.city,
            latitude=metadata.latitude,
            longitude=metadata.longitude,
            referrer=metadata.referrer,
            utm_source=metadata.utm_source,
            utm_medium=metadata.utm_medium,
            utm_campaign=metadata.utm_campaign,
            user_agent=metadata.user_agent,
            ip_address=metadata.ip_address,
        )

        if await self.uow.sessions.insert_if_absent(new_session):
            logger.info('Started session %s (returning=%s)', session_id, is_returning)
            return ResolvedSession(session_id=session_id, is_new_session=True)

        # a concurrent request created the same id first
        await self.uow.sessions.touch(session_id, now)
        return ResolvedSession(session_id=session_id, is_new_session=False)

    async def _reuse(self, token: str, now: int) -> bool:
        active_since = now - self.config.session_timeout_ms
        return await self.uow.sessions.touch_active(token, now, active_since)
