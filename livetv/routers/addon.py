"""
Addon endpoints: manifest, catalog, meta and stream.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from livetv.config import get_settings
from livetv.dependencies import get_catalog_service, limiter
from livetv.services.catalog_service import CatalogService

router = APIRouter(tags=["addon"])

CatalogDep = Annotated[CatalogService, Depends(get_catalog_service)]


@router.get("/manifest.json")
async def get_manifest(service: CatalogDep):
    """Addon manifest with the current genre options."""
    return service.manifest()


@router.get("/catalog/tv/{catalog_id}.json")
async def get_catalog(
    catalog_id: str,
    service: CatalogDep,
    genre: Optional[str] = Query(None, description="Only channels in this genre"),
    search: Optional[str] = Query(None, description="Case-insensitive name search"),
    skip: int = Query(0, ge=0, description="Pagination offset"),
):
    """
    List channels, sorted by channel number then name.

    - **genre**: takes precedence over search
    - **skip**: offset into the sorted list
    """
    return await service.catalog(genre=genre, search=search, skip=skip)


@router.get("/meta/tv/{item_id}.json")
async def get_meta(item_id: str, service: CatalogDep):
    """Channel details enriched with the program guide."""
    return await service.meta(item_id)


@router.get("/stream/tv/{item_id}.json")
@limiter.limit(lambda: f"{get_settings().stream_rate_limit_per_minute}/minute")
async def get_streams(request: Request, item_id: str, service: CatalogDep):
    """Direct and proxied streams for a channel."""
    return await service.streams(item_id)
