import uuid

import pytest

from sitepulse.domain.entities.tracking import RequestMetadata
from sitepulse.services.request_context import detect_browser, detect_device_type, detect_os
from sitepulse.services.session_resolver import SessionResolver, is_session_token

from .conftest import CLIENT_TOKEN, DAY_MS, FIREFOX_UA, IPHONE_UA, MINUTE_MS, T0


def metadata_for(user_agent: str, **extra) -> RequestMetadata:
    return RequestMetadata(
        user_agent=user_agent,
        device=detect_device_type(user_agent),
        browser=detect_browser(user_agent),
        os=detect_os(user_agent),
        **extra,
    )


@pytest.fixture
def desktop():
    return metadata_for(FIREFOX_UA, country='DE', city='Berlin', latitude=52.52, longitude=13.405)


@pytest.fixture
def resolver(uow, config):
    return SessionResolver(uow, config)


class TestSessionCreation:
    async def test_new_session_without_token(self, resolver, uow, desktop):
        resolved = await resolver.resolve(None, desktop, timestamp=T0)
        await uow.commit()

        assert resolved.is_new_session is True
        uuid.UUID(resolved.session_id)

        stored = await uow.sessions.get(resolved.session_id)
        assert stored.start_time == T0
        assert stored.page_count == 1
        assert stored.is_bounce is True
        assert stored.is_returning is False
        assert stored.browser == 'Firefox'
        assert stored.device == 'desktop'
        assert stored.os == 'Windows'
        assert stored.city == 'Berlin'

    async def test_unknown_token_is_replaced(self, resolver, desktop):
        resolved = await resolver.resolve('not-a-known-session', desktop, timestamp=T0)

        assert resolved.is_new_session is True
        assert resolved.session_id != 'not-a-known-session'

    async def test_unknown_token_adopted_when_asked(self, resolver, uow, desktop):
        resolved = await resolver.resolve(CLIENT_TOKEN, desktop, timestamp=T0, adopt_token=True)

        assert resolved.session_id == CLIENT_TOKEN
        assert resolved.is_new_session is True
        assert await uow.sessions.exists(CLIENT_TOKEN)

    async def test_non_uuid_token_is_never_adopted(self, resolver, uow, desktop):
        resolved = await resolver.resolve('x' * 64, desktop, timestamp=T0, adopt_token=True)

        assert resolved.session_id != 'x' * 64
        assert is_session_token(resolved.session_id)
        assert not await uow.sessions.exists('x' * 64)

    @pytest.mark.parametrize(
        'value, expected',
        [
            (CLIENT_TOKEN, True),
            (CLIENT_TOKEN.upper(), False),
            (CLIENT_TOKEN.replace('-', ''), False),
            ('client-made-id', False),
            ('', False),
        ],
    )
    def test_session_token_format(self, value, expected):
        assert is_session_token(value) is expected

    async def test_utm_parameters_captured(self, resolver, uow):
        metadata = metadata_for(FIREFOX_UA, utm_source='newsletter', utm_medium='email', utm_campaign='launch')
        resolved = await resolver.resolve(None, metadata, timestamp=T0)

        stored = await uow.sessions.get(resolved.session_id)
        assert (stored.utm_source, stored.utm_medium, stored.utm_campaign) == ('newsletter', 'email', 'launch')


class TestSessionReuse:
    async def test_token_reused_inside_inactivity_window(self, resolver, uow, desktop):
        first = await resolver.resolve(None, desktop, timestamp=T0)

        again = await resolver.resolve(first.session_id, desktop, timestamp=T0 + 29 * MINUTE_MS)

        assert again.session_id == first.session_id
        assert again.is_new_session is False
        stored = await uow.sessions.get(first.session_id)
        assert stored.end_time == T0 + 29 * MINUTE_MS
        assert stored.total_time_ms == 29 * MINUTE_MS
        assert stored.page_count == 1

    async def test_token_expired_after_inactivity_window(self, resolver, uow, desktop):
        first = await resolver.resolve(None, desktop, timestamp=T0)

        later = await resolver.resolve(first.session_id, desktop, timestamp=T0 + 31 * MINUTE_MS)

        assert later.session_id != first.session_id
        assert later.is_new_session is True
        # same token presented again inside 30 days
        assert (await uow.sessions.get(later.session_id)).is_returning is True

    async def test_inactivity_measured_from_last_activity(self, resolver, desktop):
        first = await resolver.resolve(None, desktop, timestamp=T0)
        await resolver.resolve(first.session_id, desktop, timestamp=T0 + 20 * MINUTE_MS)

        again = await resolver.resolve(first.session_id, desktop, timestamp=T0 + 45 * MINUTE_MS)

        assert again.session_id == first.session_id

    async def test_end_time_never_moves_backwards(self, resolver, uow, desktop):
        first = await resolver.resolve(None, desktop, timestamp=T0)
        await resolver.resolve(first.session_id, desktop, timestamp=T0 + 10 * MINUTE_MS)

        await resolver.resolve(first.session_id, desktop, timestamp=T0 + 5 * MINUTE_MS)

        stored = await uow.sessions.get(first.session_id)
        assert stored.end_time == T0 + 10 * MINUTE_MS
        assert stored.end_time >= stored.start_time


class TestReturningVisitor:
    async def test_same_fingerprint_within_window_is_returning(self, resolver, uow, desktop):
        await resolver.resolve(None, desktop, timestamp=T0)

        second = await resolver.resolve(None, desktop, timestamp=T0 + 2 * DAY_MS)

        assert (await uow.sessions.get(second.session_id)).is_returning is True

    async def test_different_fingerprint_is_new_visitor(self, resolver, uow, desktop):
        await resolver.resolve(None, desktop, timestamp=T0)

        phone = await resolver.resolve(None, metadata_for(IPHONE_UA), timestamp=T0 + DAY_MS)

        assert (await uow.sessions.get(phone.session_id)).is_returning is False

    async def test_fingerprint_older_than_window_is_new_visitor(self, resolver, uow, desktop):
        await resolver.resolve(None, desktop, timestamp=T0)

        much_later = await resolver.resolve(None, desktop, timestamp=T0 + 31 * DAY_MS)

        assert (await uow.sessions.get(much_later.session_id)).is_returning is False
