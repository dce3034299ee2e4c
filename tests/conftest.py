"""
Pytest configuration and fixtures for the Live TV backend tests.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import pytest

from livetv.config import Settings
from livetv.services.fetcher import SourceFetcher
from livetv.services.m3u_parser import ParsedPlaylist, PlaylistTransformer

PLAYLIST_URL = "http://playlist.test/list.m3u"
GUIDE_URL = "http://epg.test/guide.xml"


def xmltv_time(value: datetime) -> str:
    """Format an aware datetime the way XMLTV documents carry it."""
    return value.astimezone(timezone.utc).strftime('%Y%m%d%H%M%S +0000')


def make_fetcher(routes: dict, calls: Optional[list] = None) -> SourceFetcher:
    """
    SourceFetcher backed by an in-memory URL map.

    Values may be bytes, str, an int status code or an exception to raise.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls.append(url)
        body = routes.get(url, 404)
        if isinstance(body, Exception):
            raise body
        if isinstance(body, int):
            return httpx.Response(body)
        if isinstance(body, str):
            body = body.encode('utf-8')
        return httpx.Response(200, content=body)

    return SourceFetcher(timeout=1.0, transport=httpx.MockTransport(handler))


class FakeTransformer:
    """Stands in for PlaylistTransformer.load_and_transform."""

    def __init__(self, playlist_text: str, epg_url: Optional[str] = None):
        self.parser = PlaylistTransformer()
        self.playlist_text = playlist_text
        self.epg_url = epg_url
        self.calls = 0
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def load_and_transform(self, source: str) -> ParsedPlaylist:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        result = self.parser.parse(self.playlist_text)
        return ParsedPlaylist(catalog=result.catalog, epg_url=self.epg_url or result.epg_url)


@pytest.fixture
def sample_m3u_content():
    """Sample M3U content with three channels in two genres."""
    return """#EXTM3U url-tvg="http://epg.test/guide.xml"
#EXTINF:-1 tvg-id="RaiUno.it" tvg-name="Rai 1" tvg-logo="http://img.test/rai1.png" tvg-chno="1" group-title="News",Rai 1 HD
#EXTVLCOPT:http-user-agent=VLC/3.0
http://stream.test/rai1.m3u8
#EXTINF:-1 tvg-id="Canale5.it" tvg-chno="5",Canale 5
http://stream.test/canale5.m3u8
#EXTINF:-1,Local Channel
http://stream.test/local.m3u8
"""


@pytest.fixture
def sample_epg_xml():
    """Sample XMLTV content; RaiUno.it programmes carry a +0100 offset."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<tv>
    <channel id="RaiUno.it">
        <display-name>Rai 1</display-name>
    </channel>
    <programme start="20240101180000 +0100" stop="20240101190000 +0100" channel="RaiUno.it">
        <title>TG1</title>
        <desc>Evening news</desc>
        <category>News</category>
    </programme>
    <programme start="20240101190000 +0100" stop="20240101200000 +0100" channel="RaiUno.it">
        <title>Quiz Show</title>
    </programme>
    <programme start="20240101200000 +0100" stop="20240101213000 +0100" channel="RaiUno.it">
        <title>Film</title>
    </programme>
    <programme start="20240101170000 +0000" stop="20240101180000 +0000" channel="Canale5.it">
        <title>Talk</title>
    </programme>
    <programme start="not a time" stop="20240101180000 +0000" channel="Canale5.it">
        <title>Broken</title>
    </programme>
</tv>
"""


@pytest.fixture
def live_epg_xml():
    """XMLTV content whose RaiUno.it programmes surround the current time."""
    now = datetime.now(timezone.utc).replace(microsecond=0)
    slots = [
        (now - timedelta(minutes=30), now + timedelta(minutes=30), "Morning News", "Daily news", "News"),
        (now + timedelta(minutes=30), now + timedelta(minutes=90), "Cooking", "Recipes", "Lifestyle"),
        (now + timedelta(minutes=90), now + timedelta(minutes=150), "Movie", None, None),
    ]
    programmes = []
    for start, stop, title, desc, category in slots:
        extra = ""
        if desc:
            extra += f"<desc>{desc}</desc>"
        if category:
            extra += f"<category>{category}</category>"
        programmes.append(
            f'<programme start="{xmltv_time(start)}" stop="{xmltv_time(stop)}" channel="RaiUno.it">'
            f'<title>{title}</title>{extra}</programme>'
        )
    return "<tv>" + "".join(programmes) + "</tv>"


@pytest.fixture
def settings():
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        playlist_url=PLAYLIST_URL,
        epg_url=None,
        timezone_offset="+1:00",
        proxy_url=None,
        proxy_password=None,
    )


@pytest.fixture
def fetcher_factory():
    """Build a SourceFetcher served from a URL map."""
    return make_fetcher


@pytest.fixture
def fake_transformer(sample_m3u_content):
    return FakeTransformer(sample_m3u_content)
