"""
In-memory catalog cache.
Owns the current catalog snapshot and decides when it is rebuilt.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from livetv.models.channel import CHANNEL_ID_PREFIX, Catalog, Channel
from livetv.services.events import CATALOG_ERROR, CATALOG_UPDATED, EventBus
from livetv.services.m3u_parser import PlaylistTransformer
from livetv.utils.timezone import utc_now

logger = logging.getLogger(__name__)

EMPTY_CATALOG = Catalog()


class RefreshResult(str, enum.Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"  # another refresh is running
    FRESH = "fresh"  # not stale and not forced


@dataclass
class CacheState:
    catalog: Optional[Catalog] = None
    last_updated: Optional[datetime] = None
    refreshing: bool = False
    epg_url: Optional[str] = None


class CacheManager:
    """Catalog snapshot holder with single-flight, staleness-gated refresh."""

    def __init__(
        self,
        playlist_url: str,
        update_interval: timedelta,
        transformer: Optional[PlaylistTransformer] = None,
        events: Optional[EventBus] = None,
        epg_url: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.playlist_url = playlist_url
        self.update_interval = update_interval
        self.transformer = transformer or PlaylistTransformer()
        self.events = events or EventBus()
        self.configured_epg_url = epg_url
        self._clock = clock
        self._state = CacheState()
        self._version = 0

    @property
    def version(self) -> int:
        """Incremented on every successful swap; poll and compare to detect changes."""
        return self._version

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._state.last_updated

    @property
    def is_refreshing(self) -> bool:
        return self._state.refreshing

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        if self._state.last_updated is None:
            return True
        return ((now or self._clock()) - self._state.last_updated) > self.update_interval

    async def refresh(self, force: bool = False) -> RefreshResult:
        """
        Rebuild the catalog from the playlist source.

        The in-progress flag is checked and set before the first await, so
        concurrent callers are turned away without waiting.

        Raises:
            Whatever the transformer raised; the previous snapshot stays live
        """
        if self._state.refreshing:
            logger.warning("Cache update already in progress, skipping")
            return RefreshResult.SKIPPED

        if not force and not self.is_stale():
            logger.info("Cache still valid, skipping update")
            return RefreshResult.FRESH

        self._state.refreshing = True
        try:
            logger.info(f"Start cache update from: {self.playlist_url}")
            result = await self.transformer.load_and_transform(self.playlist_url)
        except Exception as e:
            logger.error(f"Error in cache update: {e}", exc_info=True)
            self.events.publish(CATALOG_ERROR, e)
            raise
        finally:
            self._state.refreshing = False

        self._version += 1
        catalog = result.catalog.model_copy(update={"version": self._version})
        self._state = CacheState(
            catalog=catalog,
            last_updated=self._clock(),
            refreshing=False,
            epg_url=result.epg_url or self._state.epg_url,
        )

        logger.info(
            f"Cache updated: {len(catalog.channels)} channels, "
            f"{len(catalog.genres)} genres (version {self._version})"
        )
        self.events.publish(CATALOG_UPDATED, catalog)
        return RefreshResult.COMPLETED

    def snapshot(self) -> Catalog:
        return self._state.catalog or EMPTY_CATALOG

    def epg_source(self) -> Optional[str]:
        """Configured guide URL, else the one declared in the playlist header."""
        return self.configured_epg_url or self._state.epg_url

    def find_channel(self, channel_id: str) -> Optional[Channel]:
        """Look up by namespace-qualified id first, then by exact display name."""
        if not channel_id:
            return None

        channels = self.snapshot().channels
        qualified = channel_id if channel_id.startswith(CHANNEL_ID_PREFIX) else f"{CHANNEL_ID_PREFIX}{channel_id}"
        for channel in channels:
            if channel.catalog_id == qualified:
                return channel

        logger.debug(f"No channel found for ID {channel_id}, trying by name")
        for channel in channels:
            if channel.name == channel_id:
                return channel
        return None

    def channels_by_genre(self, genre: Optional[str]) -> list[Channel]:
        channels = self.snapshot().channels
        if not genre:
            return list(channels)
        return [channel for channel in channels if genre in channel.genres]

    def search(self, query: Optional[str]) -> list[Channel]:
        channels = self.snapshot().channels
        if not query:
            return list(channels)
        needle = query.lower()
        return [channel for channel in channels if needle in channel.name.lower()]
