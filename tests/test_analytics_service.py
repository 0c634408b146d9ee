import sqlite3

import pytest

from urlshortener.analytics_service import AnalyticsService, is_mobile, is_tablet
from urlshortener.geo import GeoService
from urlshortener.storage import run_migrations
from urlshortener.url_service import URLService

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 14_0 like Mac OS X)"
IPAD = "Mozilla/5.0 (iPad; CPU OS 14_0 like Mac OS X)"
WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"

_COUNTRIES = {
    "8.8.8.8": ("United States", "US"),
    "1.1.1.1": ("Australia", "AU"),
    "185.143.223.12": ("Russia", "RU"),
}


class _FakeReader:
    def lookup(self, addr):
        name, code = _COUNTRIES.get(str(addr), ("United States", "US"))
        return {
            "country": {"names": {"en": name}, "iso_code": code},
            "city": {"names": {"en": "Springfield"}},
            "location": {"latitude": 1.5, "longitude": -2.5, "time_zone": "Etc/UTC"},
        }

    def close(self):
        pass


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    run_migrations(connection)
    yield connection
    connection.close()


@pytest.fixture
def url_id(conn):
    return URLService(conn).create_short_url("https://example.com", None).id


def test_is_mobile_matches_prefix_only():
    assert is_mobile("Mobile Safari") is True
    assert is_mobile("iPhone app") is True
    assert is_mobile(IPHONE) is False


def test_is_tablet_matches_prefix_only():
    assert is_tablet("Tablet browser") is True
    assert is_tablet("iPad app") is True
    assert is_tablet(IPAD) is False


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        ("", "unknown"),
        ("Mobile Safari", "mobile"),
        ("Tablet browser", "tablet"),
        (IPHONE, "desktop"),
        (WINDOWS, "desktop"),
    ],
)
def test_record_click_device_type(conn, url_id, user_agent, expected):
    click = AnalyticsService(conn).record_click(url_id, user_agent, "8.8.8.8")
    assert click.device_type == expected


def test_record_click_stores_click(conn, url_id):
    service = AnalyticsService(conn)
    service.record_click(url_id, IPHONE, "8.8.8.8")
    analytics = service.get_analytics(url_id)
    assert analytics["total_clicks"] == 1
    click = analytics["recent_clicks"][0]
    assert click.ip_address == "8.8.8.8"
    assert click.user_agent == IPHONE
    assert click.country == ""
    assert click.url_id == url_id


def test_forwarded_for_overrides_remote_addr(conn, url_id):
    click = AnalyticsService(conn).record_click(url_id, WINDOWS, "10.0.0.1:5000", "1.1.1.1")
    assert click.ip_address == "1.1.1.1"


def test_record_click_with_location(conn, url_id):
    service = AnalyticsService(conn, GeoService(_FakeReader()))
    service.record_click(url_id, WINDOWS, "1.1.1.1")
    click = service.get_analytics(url_id)["recent_clicks"][0]
    assert click.country == "Australia"
    assert click.country_code == "AU"
    assert click.city == "Springfield"
    assert click.latitude == 1.5
    assert click.longitude == -2.5
    assert click.timezone == "Etc/UTC"


def test_record_click_survives_geo_failure(conn, url_id):
    service = AnalyticsService(conn, GeoService())
    click = service.record_click(url_id, WINDOWS, "not-an-ip")
    assert click.id is not None
    assert click.country == ""
    assert service.get_analytics(url_id)["total_clicks"] == 1


def test_get_analytics(conn, url_id):
    service = AnalyticsService(conn, GeoService(_FakeReader()))
    service.record_click(url_id, IPHONE, "8.8.8.8")
    service.record_click(url_id, IPAD, "1.1.1.1")
    service.record_click(url_id, WINDOWS, "185.143.223.12")
    service.record_click(url_id, "Mobile Safari", "8.8.8.8")

    analytics = service.get_analytics(url_id)
    assert analytics["total_clicks"] == 4
    devices = {row["device_type"]: row["count"] for row in analytics["device_stats"]}
    assert devices == {"desktop": 3, "mobile": 1}
    countries = analytics["country_stats"]
    assert countries[0] == {"country": "United States", "country_code": "US", "count": 2}
    assert {row["country_code"]: row["count"] for row in countries} == {"US": 2, "AU": 1, "RU": 1}


def test_get_analytics_recent_clicks_limited_and_ordered(conn, url_id):
    service = AnalyticsService(conn)
    for _ in range(12):
        service.record_click(url_id, WINDOWS, "8.8.8.8")
    recent = service.get_analytics(url_id)["recent_clicks"]
    assert len(recent) == 10
    stamps = [click.created_at for click in recent]
    assert stamps == sorted(stamps, reverse=True)


def test_get_analytics_separates_urls(conn, url_id):
    other = URLService(conn).create_short_url("https://example.com/other", None).id
    service = AnalyticsService(conn)
    service.record_click(url_id, WINDOWS, "8.8.8.8")
    analytics = service.get_analytics(other)
    assert analytics["total_clicks"] == 0
    assert analytics["device_stats"] == []
    assert analytics["recent_clicks"] == []


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        (IPHONE, "mobile"),
        (IPAD, "tablet"),
        (WINDOWS, "desktop"),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15)", "desktop"),
        ("curl/8.0", "other"),
    ],
)
def test_detect_device_type(conn, user_agent, expected):
    assert AnalyticsService(conn).detect_device_type(user_agent) == expected


@pytest.mark.parametrize(
    "remote_addr, country",
    [
        ("8.8.8.8", "US"),
        ("1.1.1.1", "AU"),
        ("185.143.223.12", "RU"),
        ("185.143.223.12:80", "US"),
    ],
)
def test_check_geo_fencing_always_allows(conn, remote_addr, country):
    assert AnalyticsService(conn).check_geo_fencing(remote_addr) == (country, True)