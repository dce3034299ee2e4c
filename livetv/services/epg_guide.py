"""
EPG Program Guide Service.
Parses XMLTV guides into per-channel program lists and answers
"now playing" / "up next" queries.

The guide is cleared and repopulated in place on every refresh, so a
reader running during a refresh may see a partial or empty guide. Only
the catalog snapshot is swapped atomically.
"""
import asyncio
import io
import logging
import time
from datetime import datetime, timedelta
from operator import attrgetter
from typing import Iterator, Optional

from lxml import etree  # type: ignore

from livetv.errors import ConfigurationError, DecodeError, FetchError
from livetv.models.epg import GuideStatus, Program
from livetv.services.events import GUIDE_SOURCE_ERROR, GUIDE_UPDATED, EventBus
from livetv.services.fetcher import SourceFetcher, decompress
from livetv.utils.timezone import DEFAULT_DISPLAY_OFFSET, parse_display_offset, parse_xmltv_time, utc_now

logger = logging.getLogger(__name__)

ProgramBatch = list[tuple[str, Program]]


def _get_text(element, tag: str) -> Optional[str]:
    """Safely extract text from a child element."""
    child = element.find(tag)
    if child is None or not child.text:
        return None
    return child.text.strip() or None


def parse_programme(element) -> Optional[tuple[str, Program]]:
    """Parse a single programme element; None if channel, start or stop is unusable."""
    channel_id = element.get('channel')
    start = parse_xmltv_time(element.get('start'))
    stop = parse_xmltv_time(element.get('stop'))

    if not channel_id or start is None or stop is None:
        return None

    return channel_id, Program(
        start=start,
        stop=stop,
        title=_get_text(element, 'title') or 'No title',
        description=_get_text(element, 'desc'),
        category=_get_text(element, 'category'),
    )


def iter_program_batches(payload: bytes, chunk_size: int = 10000) -> Iterator[ProgramBatch]:
    """
    Stream programme entries out of an XMLTV document in bounded batches.

    Elements are cleared as soon as they are read so the parsed tree never
    holds more than the current element.

    Raises:
        DecodeError: If the document is not well-formed XML
    """
    batch: ProgramBatch = []
    dropped = 0
    try:
        for _, elem in etree.iterparse(
            io.BytesIO(payload),
            events=("end",),
            tag=("channel", "programme"),
            huge_tree=True,
        ):
            if elem.tag == "programme":
                entry = parse_programme(elem)
                if entry is None:
                    dropped += 1
                else:
                    batch.append(entry)

            elem.clear()
            while elem.getprevious() is not None:
                del elem.getparent()[0]

            if len(batch) >= chunk_size:
                yield batch
                batch = []
    except etree.XMLSyntaxError as e:
        raise DecodeError(f"Invalid XMLTV document: {e}") from e

    if dropped:
        logger.warning(f"Dropped {dropped} programme entries with missing channel or unparseable times")
    if batch:
        yield batch


class ProgramGuide:
    """Per-channel program guide rebuilt wholesale on each refresh."""

    FRESHNESS = timedelta(hours=24)

    def __init__(
        self,
        fetcher: Optional[SourceFetcher] = None,
        events: Optional[EventBus] = None,
        timezone_offset: str = DEFAULT_DISPLAY_OFFSET,
        chunk_size: int = 10000,
    ):
        self.fetcher = fetcher or SourceFetcher()
        self.events = events or EventBus()
        self.chunk_size = chunk_size
        self._guide: dict[str, list[Program]] = {}
        self._updating = False
        self._last_update: Optional[datetime] = None
        self._set_timezone(timezone_offset)

    def _set_timezone(self, offset: str) -> None:
        try:
            self.display_tz = parse_display_offset(offset)
            self.timezone_offset = offset.strip()
        except ConfigurationError as e:
            logger.warning(f"{e}, using {DEFAULT_DISPLAY_OFFSET}")
            self.display_tz = parse_display_offset(DEFAULT_DISPLAY_OFFSET)
            self.timezone_offset = DEFAULT_DISPLAY_OFFSET

    @property
    def is_updating(self) -> bool:
        return self._updating

    @property
    def last_update(self) -> Optional[datetime]:
        return self._last_update

    async def initialize(self, source: Optional[str]) -> None:
        """Run the first refresh if the guide is still empty."""
        if not source:
            logger.warning("No EPG source configured, guide stays empty")
            return
        if not self._guide:
            await self.refresh(source)

    async def refresh(self, source: str) -> bool:
        """
        Rebuild the guide from every document the source refers to.

        Returns:
            False if a refresh was already running and this one was ignored
        """
        if self._updating:
            logger.info("EPG update already in progress, ignoring request")
            return False

        self._updating = True
        started = time.monotonic()
        logger.info("Start of EPG update")

        try:
            try:
                documents = await self.fetcher.resolve(source)
            except FetchError as e:
                logger.error(f"EPG sources could not be resolved: {e}")
                self.events.publish(GUIDE_SOURCE_ERROR, e)
                return True

            self._guide.clear()

            for document in documents:
                try:
                    payload = await self.fetcher.load(document)
                    loop = asyncio.get_running_loop()
                    parsed = await loop.run_in_executor(None, self._parse_document, payload)
                    count = self._merge(parsed)
                    logger.info(f"Ingested {count} programs from {document.url}")
                except (FetchError, DecodeError) as e:
                    logger.error(f"Error processing EPG from {document.url}: {e}")
                    self.events.publish(GUIDE_SOURCE_ERROR, e)

            for programs in self._guide.values():
                programs.sort(key=attrgetter('start'))

            logger.info(
                f"EPG update completed in {time.monotonic() - started:.1f} seconds: "
                f"{len(self._guide)} channels, {self.program_count} programs"
            )
            self.events.publish(GUIDE_UPDATED, {"channels": len(self._guide), "programs": self.program_count})
            return True
        finally:
            self._updating = False
            self._last_update = utc_now()

    def _parse_document(self, payload: bytes) -> dict[str, list[Program]]:
        """Parse one document into a standalone channel map. Runs in a worker thread."""
        parsed: dict[str, list[Program]] = {}
        for batch in iter_program_batches(decompress(payload), self.chunk_size):
            for channel_id, program in batch:
                parsed.setdefault(channel_id, []).append(program)
        return parsed

    def _merge(self, parsed: dict[str, list[Program]]) -> int:
        """Merge a fully parsed document into the guide on the event loop thread."""
        count = 0
        for channel_id, programs in parsed.items():
            self._guide.setdefault(channel_id, []).extend(programs)
            count += len(programs)
        return count

    def programs(self, channel_id: str) -> list[Program]:
        return list(self._guide.get(channel_id, ()))

    def current_program(self, channel_id: str, now: Optional[datetime] = None) -> Optional[Program]:
        """First program (in start order) whose [start, stop] contains now."""
        now = now or utc_now()
        for program in self._guide.get(channel_id, ()):
            if program.is_live(now):
                return program
        return None

    def upcoming(self, channel_id: str, limit: int = 2, now: Optional[datetime] = None) -> list[Program]:
        """Programs starting at or after now, ascending, at most `limit`."""
        if limit <= 0:
            return []
        now = now or utc_now()
        result = []
        for program in self._guide.get(channel_id, ()):
            if program.start >= now:
                result.append(program)
                if len(result) >= limit:
                    break
        return result

    def needs_update(self, now: Optional[datetime] = None) -> bool:
        if self._last_update is None:
            return True
        return ((now or utc_now()) - self._last_update) > self.FRESHNESS

    def is_available(self) -> bool:
        return bool(self._guide) and not self._updating

    @property
    def channel_count(self) -> int:
        return len(self._guide)

    @property
    def program_count(self) -> int:
        return sum(len(programs) for programs in self._guide.values())

    def format_time(self, value: Optional[datetime]) -> str:
        """Format an instant as HH:MM in the display offset."""
        if value is None:
            return ''
        return value.astimezone(self.display_tz).strftime('%H:%M')

    def get_status(self) -> GuideStatus:
        last_update = 'Never'
        if self._last_update is not None:
            last_update = self._last_update.astimezone(self.display_tz).strftime('%Y-%m-%d %H:%M')
        return GuideStatus(
            updating=self._updating,
            last_update=last_update,
            channel_count=self.channel_count,
            program_count=self.program_count,
            timezone=self.timezone_offset,
        )
