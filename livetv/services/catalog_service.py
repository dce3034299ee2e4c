"""
Catalog, meta and stream lookups for addon clients.
Reads the cached catalog, enriches channels with guide data and never lets
a failure escape to the HTTP layer.
"""
import logging
from typing import Optional

from livetv.config import Settings
from livetv.models.channel import CHANNEL_ID_PREFIX, Channel
from livetv.services.cache import CacheManager
from livetv.services.epg_guide import ProgramGuide
from livetv.services.proxy_resolver import ProxyResolver

logger = logging.getLogger(__name__)

NO_NUMBER = float('inf')


def _strip_prefix(item_id: str) -> str:
    if item_id.startswith(CHANNEL_ID_PREFIX):
        return item_id[len(CHANNEL_ID_PREFIX):]
    return item_id


def _sort_key(channel: Channel) -> tuple:
    return (channel.number if channel.number is not None else NO_NUMBER, channel.name.lower())


class CatalogService:
    """Translate the cached catalog and guide into addon responses."""

    def __init__(
        self,
        settings: Settings,
        cache: CacheManager,
        guide: ProgramGuide,
        proxy: ProxyResolver,
    ):
        self.settings = settings
        self.cache = cache
        self.guide = guide
        self.proxy = proxy

    async def _refresh_if_stale(self) -> None:
        if not self.cache.is_stale():
            return
        try:
            await self.cache.refresh()
        except Exception as e:
            logger.error(f"Catalog refresh failed, serving previous snapshot: {e}")

    def _base_meta(self, channel: Channel) -> dict:
        return {
            'id': channel.catalog_id,
            'type': 'tv',
            'name': channel.display_name,
            'poster': channel.logo,
            'background': channel.logo,
            'logo': channel.logo,
            'description': f"Channel: {channel.name}",
            'genre': list(channel.genres),
            'posterShape': 'square',
            'releaseInfo': 'LIVE',
            'behaviorHints': {
                'isLive': True,
                'defaultVideoId': channel.catalog_id,
            },
        }

    def enrich_with_epg(self, meta: dict, channel: Channel) -> dict:
        """Add the current program and the next ones to a catalog preview."""
        if not self.settings.enable_epg:
            return meta

        current = self.guide.current_program(channel.id)
        if current is None:
            return meta

        lines = [f"ON AIR NOW:\n{current.title}"]
        if current.description:
            lines.append(current.description)
        lines.append(f"Time: {self.guide.format_time(current.start)} - {self.guide.format_time(current.stop)}")
        if current.category:
            lines.append(f"Category: {current.category}")

        upcoming = self.guide.upcoming(channel.id)
        if upcoming:
            lines.append('\nUPCOMING:')
            lines.extend(f"{self.guide.format_time(p.start)} - {p.title}" for p in upcoming)

        meta['description'] = '\n'.join(lines)
        meta['releaseInfo'] = f"On air: {current.title}"
        return meta

    def detailed_description(self, channel: Channel) -> tuple[str, Optional[str]]:
        """Full meta description and release info for a single channel."""
        lines = []
        if channel.number is not None:
            lines.append(f"Channel {channel.number}")

        if not self.settings.enable_epg:
            return '\n'.join(lines), None

        current = self.guide.current_program(channel.id)
        if current is None:
            return '\n'.join(lines), None

        start = self.guide.format_time(current.start)
        lines = ['ON AIR NOW:', current.title]
        if current.description:
            lines.extend(['', current.description])
        lines.extend(['', f"{start} - {self.guide.format_time(current.stop)}"])
        if current.category:
            lines.append(current.category)

        upcoming = self.guide.upcoming(channel.id)
        if upcoming:
            lines.extend(['', 'UPCOMING PROGRAMS:'])
            for program in upcoming:
                lines.extend(['', f"• {self.guide.format_time(program.start)} - {program.title}"])
                if program.description:
                    lines.append(f"  {program.description}")
                if program.category:
                    lines.append(f"  {program.category}")

        return '\n'.join(lines), f"{current.title} ({start})"

    async def catalog(self, genre: Optional[str] = None, search: Optional[str] = None, skip: int = 0) -> dict:
        """
        List channels for the catalog view.

        Genre filter takes precedence over search. Channels are sorted by
        channel number (unnumbered last), then name, and paginated.
        """
        try:
            await self._refresh_if_stale()

            if genre:
                channels = self.cache.channels_by_genre(genre)
            elif search:
                channels = self.cache.search(search)
            else:
                channels = list(self.cache.snapshot().channels)

            channels.sort(key=_sort_key)
            start = max(skip, 0)
            page = channels[start:start + self.settings.catalog_page_size]

            return {
                'metas': [self.enrich_with_epg(self._base_meta(channel), channel) for channel in page],
                'genres': list(self.cache.snapshot().genres),
            }
        except Exception as e:
            logger.error(f"Error in catalog handler: {e}", exc_info=True)
            return {'metas': [], 'genres': []}

    async def meta(self, item_id: str) -> dict:
        try:
            await self._refresh_if_stale()

            channel = self.cache.find_channel(_strip_prefix(item_id))
            if channel is None:
                return {'meta': None}

            meta = self._base_meta(channel)
            meta.update({'language': 'eng', 'isFree': True})
            description, release_info = self.detailed_description(channel)
            meta['description'] = description
            if release_info:
                meta['releaseInfo'] = release_info
            return {'meta': meta}
        except Exception as e:
            logger.error(f"Error in meta handler: {e}", exc_info=True)
            return {'meta': None}

    async def streams(self, item_id: str) -> dict:
        """
        Streams for a channel: the direct URL plus proxy alternatives.

        With force_proxy only proxy streams are listed. On failure a single
        placeholder entry describes the error.
        """
        try:
            channel = self.cache.find_channel(_strip_prefix(item_id))
            if channel is None:
                return {'streams': []}

            streams = []
            if not (self.settings.force_proxy and self.proxy.configured):
                hints = {'notWebReady': False, 'bingeGroup': 'tv'}
                if channel.stream.headers:
                    hints['proxyHeaders'] = {'request': dict(channel.stream.headers)}
                streams.append({
                    'name': channel.name,
                    'title': channel.name,
                    'url': channel.stream.url,
                    'behaviorHints': hints,
                })

            for proxy_stream in await self.proxy.resolve(channel):
                streams.append({
                    **proxy_stream.model_dump(),
                    'behaviorHints': {'notWebReady': False, 'bingeGroup': 'tv'},
                })

            meta = self.enrich_with_epg(self._base_meta(channel), channel)
            for stream in streams:
                stream['meta'] = meta

            return {'streams': streams}
        except Exception as e:
            logger.error(f"Error loading stream: {e}", exc_info=True)
            return {
                'streams': [{
                    'name': 'Error',
                    'title': 'Error loading stream',
                    'url': '',
                    'behaviorHints': {
                        'notWebReady': True,
                        'bingeGroup': 'tv',
                        'errorMessage': f"Error: {e}",
                    },
                }]
            }

    def manifest(self) -> dict:
        settings = self.settings
        return {
            'id': settings.manifest_id,
            'version': settings.app_version,
            'name': settings.manifest_name,
            'description': settings.manifest_description,
            'logo': settings.manifest_logo,
            'resources': ['stream', 'catalog', 'meta'],
            'types': ['tv'],
            'idPrefixes': ['tv'],
            'catalogs': [{
                'type': 'tv',
                'id': settings.catalog_id,
                'name': settings.manifest_name,
                'extra': [
                    {'name': 'genre', 'isRequired': False, 'options': list(self.cache.snapshot().genres)},
                    {'name': 'search', 'isRequired': False},
                    {'name': 'skip', 'isRequired': False},
                ],
            }],
        }
