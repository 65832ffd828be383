import pytest
from pydantic import ValidationError

from sitepulse.services.request_context import (
    detect_browser,
    detect_device_type,
    detect_os,
    extract_request_metadata,
    extract_session_token,
    is_no_track,
    payload_from_headers,
)

from .conftest import FIREFOX_UA, IPHONE_UA

CHROME_MAC_UA = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)
EDGE_UA = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0'
)
ANDROID_TABLET_UA = (
    'Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Tablet'
)
IPAD_UA = (
    'Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 '
    '(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1'
)


@pytest.mark.parametrize(
    'user_agent, device, browser, os',
    [
        (FIREFOX_UA, 'desktop', 'Firefox', 'Windows'),
        (IPHONE_UA, 'mobile', 'Safari', 'iOS'),
        (CHROME_MAC_UA, 'desktop', 'Chrome', 'macOS'),
        (EDGE_UA, 'desktop', 'Edge', 'Windows'),
        (ANDROID_TABLET_UA, 'tablet', 'Chrome', 'Android'),
        (IPAD_UA, 'tablet', 'Safari', 'iOS'),
        (None, 'unknown', 'Unknown', 'Unknown'),
    ],
)
def test_user_agent_classification(user_agent, device, browser, os):
    assert detect_device_type(user_agent) == device
    assert detect_browser(user_agent) == browser
    assert detect_os(user_agent) == os


def test_metadata_from_headers():
    headers = {
        'User-Agent': IPHONE_UA,
        'X-Forwarded-For': '203.0.113.7, 10.0.0.1',
        'Referer': 'https://example.com/',
        'CF-IPCountry': 'NL',
        'CF-IPCity': 'Amsterdam',
        'CF-IPLatitude': '52.37',
        'CF-IPLongitude': '4.89',
    }
    query = {'utm_source': 'newsletter', 'utm_campaign': 'launch'}

    metadata = extract_request_metadata(headers, query, remote='127.0.0.1')

    assert metadata.ip_address == '203.0.113.7'
    assert metadata.device == 'mobile'
    assert (metadata.country, metadata.city) == ('NL', 'Amsterdam')
    assert (metadata.latitude, metadata.longitude) == (52.37, 4.89)
    assert metadata.referrer == 'https://example.com/'
    assert metadata.utm_source == 'newsletter'
    assert metadata.utm_medium is None
    assert metadata.utm_campaign == 'launch'


def test_metadata_tolerates_bad_coordinates():
    metadata = extract_request_metadata({'CF-IPLatitude': 'n/a'}, {}, remote='127.0.0.1')

    assert metadata.latitude is None
    assert metadata.ip_address == '127.0.0.1'


def test_device_type_header_overrides_user_agent():
    metadata = extract_request_metadata({'User-Agent': FIREFOX_UA, 'X-Device-Type': 'tablet'}, {})

    assert metadata.device == 'tablet'


def test_session_token_precedence():
    cookies = {'session_id': 'from-cookie'}
    headers = {'X-Session-Id': 'from-header'}
    query = {'session_id': 'from-query'}

    assert extract_session_token(cookies, headers, query) == 'from-cookie'
    assert extract_session_token({}, headers, query) == 'from-header'
    assert extract_session_token({}, {}, query) == 'from-query'
    assert extract_session_token({}, {}, {}) is None


def test_no_track_header():
    assert is_no_track({'X-No-Track': '1'}) is True
    assert is_no_track({'X-No-Track': '0'}) is False
    assert is_no_track({}) is False


def test_payload_from_headers_with_query_fallback():
    payload = payload_from_headers({'X-Event': 'scroll', 'X-Scroll-Depth': '75'}, {'page': '/work'})

    data = payload.to_tracking_data()
    assert (data.event, data.page, data.scroll_depth) == ('scroll', '/work', 75)


def test_payload_rejects_out_of_range_depth():
    with pytest.raises(ValidationError):
        payload_from_headers({'X-Event': 'scroll', 'X-Scroll-Depth': '150'}, {})
