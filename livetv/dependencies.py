"""
Service wiring.
Builds the shared cache, guide, proxy resolver and catalog service once per process.
"""
from datetime import timedelta
from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address

from livetv.config import get_settings
from livetv.services.cache import CacheManager
from livetv.services.catalog_service import CatalogService
from livetv.services.epg_guide import ProgramGuide
from livetv.services.events import EventBus
from livetv.services.fetcher import SourceFetcher
from livetv.services.m3u_parser import PlaylistTransformer
from livetv.services.proxy_resolver import ProxyResolver
from livetv.services.scheduler_service import RefreshScheduler

# Rate limiter
limiter = Limiter(key_func=get_remote_address)


@lru_cache
def get_event_bus() -> EventBus:
    return EventBus()


@lru_cache
def get_fetcher() -> SourceFetcher:
    return SourceFetcher(timeout=get_settings().fetch_timeout_seconds)


@lru_cache
def get_cache_manager() -> CacheManager:
    settings = get_settings()
    return CacheManager(
        playlist_url=settings.playlist_url,
        update_interval=timedelta(seconds=settings.cache_update_interval_seconds),
        transformer=PlaylistTransformer(get_fetcher()),
        events=get_event_bus(),
        epg_url=settings.epg_url,
    )


@lru_cache
def get_program_guide() -> ProgramGuide:
    settings = get_settings()
    return ProgramGuide(
        fetcher=get_fetcher(),
        events=get_event_bus(),
        timezone_offset=settings.timezone_offset,
        chunk_size=settings.epg_chunk_size,
    )


@lru_cache
def get_proxy_resolver() -> ProxyResolver:
    settings = get_settings()
    return ProxyResolver(
        proxy_url=settings.proxy_url,
        proxy_password=settings.proxy_password,
        timeout=settings.proxy_check_timeout_seconds,
        cache_ttl=settings.proxy_cache_ttl_seconds,
    )


@lru_cache
def get_catalog_service() -> CatalogService:
    return CatalogService(
        settings=get_settings(),
        cache=get_cache_manager(),
        guide=get_program_guide(),
        proxy=get_proxy_resolver(),
    )


@lru_cache
def get_scheduler() -> RefreshScheduler:
    return RefreshScheduler(get_settings(), get_cache_manager(), get_program_guide())
