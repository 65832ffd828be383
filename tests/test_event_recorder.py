import pytest

from sitepulse.domain.entities.tracking import RequestMetadata, TrackingData
from sitepulse.domain.exceptions import InvalidSessionError, MissingParameterError
from sitepulse.services.event_recorder import EventRecorder, classify_event, validate_tracking_data
from sitepulse.services.session_resolver import SessionResolver

from .conftest import T0


@pytest.fixture
def recorder(uow):
    return EventRecorder(uow)


@pytest.fixture
async def session_id(uow, config):
    resolved = await SessionResolver(uow, config).resolve(None, RequestMetadata(), timestamp=T0)
    return resolved.session_id


async def pageview(recorder, session_id, page, at):
    await recorder.track(session_id, TrackingData(event='pageview', page=page), timestamp=at)


class TestPageViews:
    async def test_two_page_session(self, config, uow, recorder):
        """session_start, /home, then /about five seconds later"""
        resolver = SessionResolver(uow, config)
        resolved = await resolver.resolve(None, RequestMetadata(), timestamp=T0)
        await recorder.track(resolved.session_id, TrackingData(event='session_start'), timestamp=T0)
        await pageview(recorder, resolved.session_id, '/home', T0)
        await pageview(recorder, resolved.session_id, '/about', T0 + 5000)
        await uow.commit()

        home, about = await uow.pageviews.list_for_session(resolved.session_id)
        assert home.page_path == '/home'
        assert home.entry_page is True
        assert home.exit_page is False
        assert home.time_on_page_ms == 5000
        assert about.page_path == '/about'
        assert about.entry_page is False
        assert about.exit_page is True

        stored = await uow.sessions.get(resolved.session_id)
        assert stored.page_count == 2
        assert stored.is_bounce is False
        assert stored.end_time >= stored.start_time

    async def test_single_page_stays_bounced(self, uow, recorder, session_id):
        await pageview(recorder, session_id, '/', T0)

        stored = await uow.sessions.get(session_id)
        assert stored.page_count == 1
        assert stored.is_bounce is True

    async def test_only_latest_page_view_is_exit(self, uow, recorder, session_id):
        for offset, page in enumerate(['/', '/work', '/about', '/contact']):
            await pageview(recorder, session_id, page, T0 + offset * 1000)

        views = await uow.pageviews.list_for_session(session_id)
        assert [pv.exit_page for pv in views] == [False, False, False, True]
        assert [pv.entry_page for pv in views] == [True, False, False, False]
        assert (await uow.sessions.get(session_id)).page_count == 4

    async def test_late_page_view_does_not_become_exit(self, uow, recorder, session_id):
        await pageview(recorder, session_id, '/', T0)
        await pageview(recorder, session_id, '/later', T0 + 10_000)

        await pageview(recorder, session_id, '/earlier', T0 + 5_000)

        exits = [pv.page_path for pv in await uow.pageviews.list_for_session(session_id) if pv.exit_page]
        assert exits == ['/later']

    async def test_page_view_older_than_first_becomes_entry(self, uow, recorder, session_id):
        await pageview(recorder, session_id, '/second', T0 + 5_000)
        await pageview(recorder, session_id, '/third', T0 + 10_000)

        await pageview(recorder, session_id, '/first', T0 + 1_000)

        views = await uow.pageviews.list_for_session(session_id)
        assert [pv.page_path for pv in views] == ['/first', '/second', '/third']
        assert [pv.entry_page for pv in views] == [True, False, False]
        assert [pv.exit_page for pv in views] == [False, False, True]

    async def test_late_page_view_between_others_is_not_entry(self, uow, recorder, session_id):
        await pageview(recorder, session_id, '/', T0)
        await pageview(recorder, session_id, '/later', T0 + 10_000)

        await pageview(recorder, session_id, '/middle', T0 + 5_000)

        entries = [pv.page_path for pv in await uow.pageviews.list_for_session(session_id) if pv.entry_page]
        assert entries == ['/']

    async def test_page_view_for_unknown_session(self, recorder):
        with pytest.raises(InvalidSessionError):
            await pageview(recorder, 'missing', '/', T0)


class TestEvents:
    async def test_click_stores_coordinates(self, uow, recorder, session_id):
        await pageview(recorder, session_id, '/', T0)
        click = TrackingData(
            event='click', element='cta', href='/contact', x=10, y=20, viewport_width=1280, viewport_height=800
        )

        await recorder.track(session_id, click, timestamp=T0 + 100)

        [event] = await uow.events.list_for_session(session_id)
        assert event.event_type == 'click'
        assert event.page_path == '/'
        assert event.element == 'cta'
        assert event.href == '/contact'
        assert event.event_data == {'x': 10, 'y': 20, 'viewport_width': 1280, 'viewport_height': 800}

    async def test_click_without_href_writes_nothing(self, uow, recorder, session_id):
        with pytest.raises(MissingParameterError, match='Missing required parameter: href'):
            await recorder.track(session_id, TrackingData(event='click', element='cta'), timestamp=T0)

        assert await uow.events.list_for_session(session_id) == []

    async def test_performance_fills_only_missing_metrics(self, uow, recorder, session_id):
        await recorder.track(session_id, TrackingData(event='pageview', page='/', ttfb=120.0), timestamp=T0)

        await recorder.track(session_id, TrackingData(event='performance', ttfb=999.0, lcp=2400.0), timestamp=T0 + 1)
        await recorder.track(session_id, TrackingData(event='performance', lcp=1.0, cls=0.02), timestamp=T0 + 2)

        latest = await uow.pageviews.latest_for_session(session_id)
        assert latest.ttfb == 120.0
        assert latest.lcp == 2400.0
        assert latest.cls == 0.02
        assert latest.fcp is None

    async def test_scroll_only_raises_max_depth(self, uow, recorder, session_id):
        await pageview(recorder, session_id, '/', T0)

        for depth in (50, 25, 75):
            await recorder.track(session_id, TrackingData(event='scroll', scroll_depth=depth), timestamp=T0 + depth)

        assert (await uow.pageviews.latest_for_session(session_id)).max_scroll_percentage == 75

    async def test_engagement_clears_bounce(self, uow, recorder, session_id):
        await pageview(recorder, session_id, '/', T0)

        await recorder.track(session_id, TrackingData(event='user_engaged'), timestamp=T0 + 10_000)

        stored = await uow.sessions.get(session_id)
        assert stored.is_bounce is False
        assert stored.page_count == 1

    async def test_section_view_payload(self, uow, recorder, session_id):
        await pageview(recorder, session_id, '/', T0)
        data = TrackingData(
            event='section_view', section='projects', time_spent=3200, event_data={'visible_percentage': 80}
        )

        await recorder.track(session_id, data, timestamp=T0 + 4000)

        [event] = await uow.events.list_for_session(session_id)
        assert event.event_type == 'section'
        assert event.event_data == {'visible_percentage': 80, 'section_id': 'projects', 'time_spent': 3200}

    async def test_event_for_unknown_session(self, recorder):
        with pytest.raises(InvalidSessionError):
            await recorder.track('missing', TrackingData(event='user_engaged'), timestamp=T0)


class TestEndSession:
    async def test_end_session_stamps_time(self, uow, recorder, session_id):
        await pageview(recorder, session_id, '/', T0)

        await recorder.track(session_id, TrackingData(event='session_end', time_spent=42_000), timestamp=T0 + 42_000)

        stored = await uow.sessions.get(session_id)
        assert stored.end_time == T0 + 42_000
        assert stored.total_time_ms == 42_000
        assert (await uow.pageviews.latest_for_session(session_id)).time_on_page_ms == 42_000


class TestBatch:
    async def test_invalid_item_rejects_whole_batch(self, uow, recorder, session_id):
        items = [TrackingData(event='pageview', page='/'), TrackingData(event='scroll')]

        with pytest.raises(MissingParameterError):
            await recorder.track_batch(session_id, items, timestamp=T0)

        assert await uow.pageviews.list_for_session(session_id) == []


@pytest.mark.parametrize(
    'name, expected',
    [
        ('click', 'click'),
        ('scroll', 'scroll'),
        ('scroll_depth', 'scroll'),
        ('section_view', 'section'),
        ('section_enter', 'section'),
        ('performance', 'performance'),
        ('user_engaged', 'engagement'),
        ('conversion', 'engagement'),
    ],
)
def test_classify_event(name, expected):
    assert classify_event(name) == expected


def test_click_missing_both_parameters():
    with pytest.raises(MissingParameterError, match='Missing required parameters: element and href'):
        validate_tracking_data(TrackingData(event='click'))


def test_pageview_requires_page():
    with pytest.raises(MissingParameterError, match='page'):
        validate_tracking_data(TrackingData(event='pageview'))
