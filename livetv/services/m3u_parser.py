"""
M3U Parser Service.
Transforms remote M3U playlists into an immutable channel catalog.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from livetv.errors import FetchError, MalformedRecordError
from livetv.models.channel import DEFAULT_GENRE, Catalog, Channel, StreamDescriptor
from livetv.services.fetcher import SourceFetcher, decompress

logger = logging.getLogger(__name__)

# key="value" pairs inside an #EXTM3U or #EXTINF directive
ATTRIBUTE_PATTERN = re.compile(r'([A-Za-z0-9_-]+)="([^"]*)"')

EXTM3U = '#EXTM3U'
EXTINF = '#EXTINF:'
EXTVLCOPT = '#EXTVLCOPT:'
USER_AGENT_OPTION = 'http-user-agent='

EPG_URL_ATTRIBUTES = ('url-tvg', 'x-tvg-url')


def parse_attributes(text: str) -> dict[str, str]:
    """
    Tokenize key="value" pairs into a mapping.

    The first occurrence of a key wins; empty values count as missing.
    """
    attributes: dict[str, str] = {}
    for key, value in ATTRIBUTE_PATTERN.findall(text):
        key = key.lower()
        value = value.strip()
        if value and key not in attributes:
            attributes[key] = value
    return attributes


def split_directive(body: str) -> tuple[dict[str, str], str]:
    """
    Split the body of an #EXTINF directive into attributes and display name.

    The display name is whatever follows the last comma outside a quoted value.
    """
    in_quotes = False
    last_comma = -1
    for index, char in enumerate(body):
        if char == '"':
            in_quotes = not in_quotes
        elif char == ',' and not in_quotes:
            last_comma = index

    if last_comma < 0:
        return parse_attributes(body), ''
    return parse_attributes(body[:last_comma]), body[last_comma + 1:].strip()


def _parse_channel_number(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class ParsedPlaylist:
    """A transformed catalog plus the guide URL declared in the playlist header."""
    catalog: Catalog
    epg_url: Optional[str] = None


@dataclass
class _OpenRecord:
    attributes: dict[str, str]
    name: str
    headers: dict[str, str]
    accepts_options: bool = True


class PlaylistTransformer:
    """Parse M3U playlists into channel catalogs."""

    def __init__(self, fetcher: Optional[SourceFetcher] = None):
        self.fetcher = fetcher or SourceFetcher()

    def transform(self, raw_text: str) -> Catalog:
        """Parse playlist text into a catalog. Deterministic for identical input."""
        return self.parse(raw_text).catalog

    def parse(self, raw_text: str) -> ParsedPlaylist:
        """
        Parse playlist text.

        Args:
            raw_text: Full M3U playlist content

        Returns:
            The catalog and the default guide URL from the header, if any
        """
        channels: dict[str, Channel] = {}
        genres: dict[str, None] = {DEFAULT_GENRE: None}
        epg_url = None
        current: Optional[_OpenRecord] = None
        dropped = 0

        for line in raw_text.splitlines():
            line = line.strip()
            if not line:
                continue

            if line.startswith(EXTM3U):
                if epg_url is None:
                    header = parse_attributes(line)
                    epg_url = next((header[key] for key in EPG_URL_ATTRIBUTES if key in header), None)
                continue

            if line.startswith(EXTINF):
                if current is not None:
                    dropped += 1
                attributes, name = split_directive(line[len(EXTINF):])
                current = _OpenRecord(attributes=attributes, name=name, headers={})
                continue

            if line.startswith(EXTVLCOPT):
                if current is not None and current.accepts_options:
                    option = line[len(EXTVLCOPT):].strip()
                    if option.lower().startswith(USER_AGENT_OPTION):
                        current.headers['User-Agent'] = option[len(USER_AGENT_OPTION):].strip()
                continue

            if line.startswith('#'):
                if current is not None:
                    current.accepts_options = False
                continue

            # This is the URL line
            if current is None:
                dropped += 1
                continue

            try:
                channel = self._build_channel(current, line)
            except MalformedRecordError as e:
                logger.debug(f"Dropping playlist record: {e}")
                dropped += 1
            else:
                if channel.id not in channels:
                    channels[channel.id] = channel
                for genre in channel.genres:
                    genres.setdefault(genre, None)
            current = None

        if current is not None:
            dropped += 1

        logger.info(f"Parsed {len(channels)} channels, {len(genres)} genres ({dropped} records dropped)")

        catalog = Catalog(
            channels=tuple(channels.values()),
            genres=tuple(genres),
            built_at=datetime.now(timezone.utc),
        )
        return ParsedPlaylist(catalog=catalog, epg_url=epg_url)

    def _build_channel(self, record: _OpenRecord, url: str) -> Channel:
        attributes = record.attributes
        name = attributes.get('tvg-name') or record.name
        identity = attributes.get('tvg-id') or record.name or name

        if not identity:
            raise MalformedRecordError(f"record for {url} has no identity")
        if not name:
            name = identity

        tvg = {
            key[len('tvg-'):]: value
            for key, value in attributes.items()
            if key.startswith('tvg-')
        }
        tvg['id'] = identity
        tvg['name'] = name

        return Channel(
            id=identity,
            name=name,
            genres=[attributes.get('group-title') or DEFAULT_GENRE],
            logo=attributes.get('tvg-logo'),
            number=_parse_channel_number(attributes.get('tvg-chno')),
            tvg=tvg,
            stream=StreamDescriptor(url=url, headers=dict(record.headers)),
        )

    async def load_and_transform(self, source: str) -> ParsedPlaylist:
        """
        Load every playlist a source refers to and merge them.

        Channels are merged by identity (first parsed wins), genres are
        unioned and the first declared guide URL is kept. A playlist that
        fails to load is skipped.

        Raises:
            FetchError: If the source cannot be resolved or no playlist loads
        """
        logger.info(f"Loading playlist from: {source}")
        documents = await self.fetcher.resolve(source)
        if not documents:
            raise FetchError(source, "no playlist sources configured")

        channels: dict[str, Channel] = {}
        genres: dict[str, None] = {DEFAULT_GENRE: None}
        epg_url = None
        loaded = 0

        for document in documents:
            try:
                payload = await self.fetcher.load(document)
            except FetchError as e:
                logger.error(f"Skipping playlist: {e}")
                continue

            result = self.parse(decompress(payload).decode('utf-8', errors='ignore'))
            loaded += 1
            logger.info(f"Playlist downloaded successfully: {document.url}")

            for channel in result.catalog.channels:
                channels.setdefault(channel.id, channel)
            for genre in result.catalog.genres:
                genres.setdefault(genre, None)
            if epg_url is None and result.epg_url:
                epg_url = result.epg_url
                logger.info(f"EPG URL found in playlist: {epg_url}")

        if not loaded:
            raise FetchError(source, "no playlist could be loaded")

        catalog = Catalog(
            channels=tuple(channels.values()),
            genres=tuple(genres),
            built_at=datetime.now(timezone.utc),
        )
        logger.info(f"Channels processed: {len(catalog.channels)}, genres found: {len(catalog.genres)}")
        return ParsedPlaylist(catalog=catalog, epg_url=epg_url)
