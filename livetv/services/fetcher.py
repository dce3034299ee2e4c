"""
Source fetching service.
Retrieves playlists and guides from a URL, a comma-separated URL list,
or a list-file whose content is itself a newline-delimited URL list.
"""
import gzip
import logging
import zlib
from dataclasses import dataclass
from typing import Optional

import httpx

from livetv.errors import FetchError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SourceDocument:
    """A resolved source URL, with its payload when it was already fetched."""
    url: str
    payload: Optional[bytes] = None


def decompress(payload: bytes) -> bytes:
    """
    Decompress a payload if needed.
    Tries gzip, then zlib, then returns the payload as literal content.
    """
    try:
        return gzip.decompress(payload)
    except (OSError, EOFError, zlib.error):
        pass
    try:
        return zlib.decompress(payload)
    except zlib.error:
        return payload


def split_source_list(source: str) -> list[str]:
    """Split a comma-separated source string into trimmed URLs."""
    return [url.strip() for url in source.split(",") if url.strip()]


def parse_url_list(payload: bytes) -> Optional[list[str]]:
    """
    Detect whether a payload is a newline-delimited URL list.

    Returns:
        The URLs if every non-empty line is an http(s) URL, otherwise None
    """
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        return None

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return None
    if all(line.lower().startswith(("http://", "https://")) for line in lines):
        return lines
    return None


class SourceFetcher:
    """Fetch raw source documents over HTTP."""

    USER_AGENT = "Mozilla/5.0"

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
            headers={
                "User-Agent": self.USER_AGENT,
                "Accept-Encoding": "gzip, deflate",
            },
        )

    async def fetch(self, url: str) -> bytes:
        """
        Fetch the raw bytes at a URL.

        Raises:
            FetchError: On network error, timeout or non-success status
        """
        logger.info(f"Fetching {url}")
        try:
            async with self._client() as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.TimeoutException as e:
            raise FetchError(url, f"timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise FetchError(url, f"status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchError(url, str(e) or e.__class__.__name__) from e

    async def resolve(self, source: str) -> list[SourceDocument]:
        """
        Expand a source setting into the documents it refers to.

        A comma-separated string is split. A single URL is fetched: when its
        content is a URL list each line becomes a document, otherwise the URL
        itself is the document and its payload is kept for reuse.

        Raises:
            FetchError: If a single source URL cannot be fetched
        """
        source = (source or "").strip()
        if not source:
            return []

        if "," in source:
            return [SourceDocument(url) for url in split_source_list(source)]

        payload = await self.fetch(source)
        urls = parse_url_list(payload)
        if urls is not None:
            logger.info(f"URL list detected at {source}: {len(urls)} sources")
            return [SourceDocument(url) for url in urls]

        return [SourceDocument(source, payload)]

    async def load(self, document: SourceDocument) -> bytes:
        """Return the document payload, fetching it if not already loaded."""
        if document.payload is not None:
            return document.payload
        return await self.fetch(document.url)
