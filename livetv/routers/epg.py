"""
EPG (Electronic Program Guide) and maintenance API endpoints.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from livetv.config import Settings, get_settings
from livetv.dependencies import get_cache_manager, get_program_guide, get_scheduler
from livetv.services.cache import CacheManager
from livetv.services.epg_guide import ProgramGuide
from livetv.services.scheduler_service import RefreshScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["epg"])

GuideDep = Annotated[ProgramGuide, Depends(get_program_guide)]
CacheDep = Annotated[CacheManager, Depends(get_cache_manager)]


def _program_payload(guide: ProgramGuide, program) -> dict:
    return {
        "title": program.title,
        "description": program.description,
        "category": program.category,
        "start": program.start.isoformat(),
        "stop": program.stop.isoformat(),
        "time": f"{guide.format_time(program.start)} - {guide.format_time(program.stop)}",
    }


@router.get("/epg/status")
async def get_epg_status(
    guide: GuideDep,
    cache: CacheDep,
    scheduler: Annotated[RefreshScheduler, Depends(get_scheduler)],
):
    """
    Get program guide status and the next scheduled refresh.
    """
    status = guide.get_status().model_dump()
    next_run = scheduler.get_next_run_time()
    status["next_refresh"] = next_run.isoformat() if next_run else None
    status["source"] = cache.epg_source()
    return status


@router.get("/epg/{channel_id}")
async def get_channel_epg(
    channel_id: str,
    guide: GuideDep,
    limit: int = Query(2, ge=0, le=50, description="Upcoming programs to return"),
):
    """
    Current and upcoming programs for a channel.

    Not all channels have guide data; unknown channels return 404.
    """
    if not guide.programs(channel_id):
        raise HTTPException(status_code=404, detail="No EPG data for channel")

    current = guide.current_program(channel_id)
    return {
        "channel_id": channel_id,
        "current": _program_payload(guide, current) if current else None,
        "upcoming": [_program_payload(guide, p) for p in guide.upcoming(channel_id, limit=limit)],
    }


@router.post("/refresh")
async def trigger_refresh(
    background_tasks: BackgroundTasks,
    cache: CacheDep,
    guide: GuideDep,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """
    Force a catalog rebuild, then schedule a guide refresh in the background.
    """
    try:
        result = await cache.refresh(force=True)
    except Exception as e:
        logger.error(f"Manual refresh failed: {e}")
        raise HTTPException(status_code=502, detail=f"Catalog refresh failed: {e}")

    source = cache.epg_source()
    guide_scheduled = bool(settings.enable_epg and source and not guide.is_updating)
    if guide_scheduled:
        background_tasks.add_task(guide.refresh, source)

    return {
        "catalog": result.value,
        "channels": len(cache.snapshot()),
        "version": cache.version,
        "guide_refresh_scheduled": guide_scheduled,
    }
