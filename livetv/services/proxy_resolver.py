"""
HLS proxy resolver.
Builds alternate delivery URLs through an external HLS proxy and checks
that the proxy answers before offering them.
"""
import logging
import time
from typing import Optional
from urllib.parse import urlencode

import httpx

from livetv.models.channel import Channel, ProxyStream

logger = logging.getLogger(__name__)


class ProxyResolver:
    """Resolve proxy streams for a channel, caching healthy results briefly."""

    DEFAULT_USER_AGENT = "HbbTV/1.6.1"
    HEALTHY_STATUSES = (200, 302)

    def __init__(
        self,
        proxy_url: Optional[str],
        proxy_password: Optional[str],
        timeout: float = 5.0,
        cache_ttl: float = 300,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.proxy_url = proxy_url.rstrip('/') if proxy_url else None
        self.proxy_password = proxy_password
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self._transport = transport
        self._cache: dict[str, tuple[float, ProxyStream]] = {}

    @property
    def configured(self) -> bool:
        return bool(self.proxy_url and self.proxy_password)

    def build_proxy_url(self, stream_url: str, user_agent: Optional[str] = None) -> Optional[str]:
        if not self.configured:
            return None

        params = {
            'api_password': self.proxy_password,
            'd': stream_url,
        }
        if user_agent:
            params['h_User-Agent'] = user_agent

        return f"{self.proxy_url}/proxy/hls/manifest.m3u8?{urlencode(params)}"

    def _evict_expired(self) -> None:
        now = time.monotonic()
        expired = [key for key, (stored, _) in self._cache.items() if now - stored >= self.cache_ttl]
        for key in expired:
            del self._cache[key]

    async def check_proxy_health(self, proxy_url: str) -> bool:
        """Check if the proxy answers for this URL."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.head(proxy_url)
                return response.status_code in self.HEALTHY_STATUSES
        except httpx.HTTPError as e:
            logger.debug(f"Proxy health check failed: {e}")
            return False

    async def resolve(self, channel: Channel) -> list[ProxyStream]:
        """
        Get proxy streams for a channel.

        Returns:
            An empty list if the proxy is unconfigured or not responding
        """
        if not self.configured:
            return []

        user_agent = channel.stream.user_agent or self.DEFAULT_USER_AGENT
        proxy_url = self.build_proxy_url(channel.stream.url, user_agent)

        self._evict_expired()
        cache_key = f"{channel.id}_{proxy_url}"
        cached = self._cache.get(cache_key)
        if cached:
            return [cached[1]]

        if not await self.check_proxy_health(proxy_url):
            logger.info(f"Proxy not active for: {channel.name}")
            return []

        stream = ProxyStream(
            name=f"{channel.name} (Proxy)",
            title=f"{channel.name} (Proxy HLS)",
            url=proxy_url,
        )
        self._cache[cache_key] = (time.monotonic(), stream)
        return [stream]
