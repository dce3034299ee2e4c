"""
Tests for settings validation and time helpers.
"""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from livetv.config import Settings
from livetv.errors import ConfigurationError
from livetv.utils.timezone import parse_display_offset, parse_xmltv_time


class TestSettings:
    """Settings loading and recovery."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.timezone_offset == "+1:00"
        assert settings.cache_update_interval_seconds == 12 * 60 * 60
        assert settings.epg_refresh_cron == "0 3 * * *"
        assert settings.catalog_page_size == 100
        assert not settings.proxy_configured

    def test_invalid_timezone_falls_back(self):
        assert Settings(_env_file=None, timezone_offset="CET").timezone_offset == "+1:00"
        assert Settings(_env_file=None, timezone_offset="+1:75").timezone_offset == "+1:00"

    def test_valid_timezone_kept(self):
        assert Settings(_env_file=None, timezone_offset="-05:30").timezone_offset == "-05:30"

    def test_invalid_cron_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, epg_refresh_cron="every day")

    def test_blank_optional_urls(self):
        settings = Settings(_env_file=None, epg_url="  ", proxy_url="", proxy_password="")
        assert settings.epg_url is None
        assert settings.proxy_url is None

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, cache_update_interval_seconds=0)

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("LIVETV_PLAYLIST_URL", "http://env.test/list.m3u")
        monkeypatch.setenv("LIVETV_FORCE_PROXY", "true")
        settings = Settings(_env_file=None)
        assert settings.playlist_url == "http://env.test/list.m3u"
        assert settings.force_proxy is True

    def test_proxy_configured(self):
        settings = Settings(_env_file=None, proxy_url="http://proxy.test", proxy_password="pw")
        assert settings.proxy_configured


class TestDisplayOffset:

    @pytest.mark.parametrize("value,expected", [
        ("+1:00", timedelta(hours=1)),
        ("+01:00", timedelta(hours=1)),
        ("-05:30", -timedelta(hours=5, minutes=30)),
        ("+0:00", timedelta(0)),
    ])
    def test_valid_offsets(self, value, expected):
        assert parse_display_offset(value).utcoffset(None) == expected

    @pytest.mark.parametrize("value", ["1:00", "+1", "+1:60", "+24:00", "UTC", ""])
    def test_invalid_offsets(self, value):
        with pytest.raises(ConfigurationError):
            parse_display_offset(value)


class TestXmltvTime:

    def test_offset_applied(self):
        parsed = parse_xmltv_time("20240101180000 +0100")
        assert parsed == datetime(2024, 1, 1, 17, 0, tzinfo=timezone.utc)
        assert parsed.utcoffset() == timedelta(hours=1)

    def test_negative_offset(self):
        assert parse_xmltv_time("20240101120000 -0500") == datetime(2024, 1, 1, 17, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "20240101180000", "2024-01-01 18:00 +0100", "20241301180000 +0000"])
    def test_unparseable(self, value):
        assert parse_xmltv_time(value) is None
