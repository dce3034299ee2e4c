"""
Live TV Catalog - FastAPI Backend

Serves a live TV channel catalog built from M3U playlists, enriched with
an XMLTV program guide.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from livetv.config import get_settings
from livetv.dependencies import get_cache_manager, get_program_guide, get_scheduler, limiter
from livetv.routers import addon, epg
from livetv.services.cache import CacheManager
from livetv.services.epg_guide import ProgramGuide

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Starting Live TV backend...")
    settings = get_settings()
    cache = get_cache_manager()
    guide = get_program_guide()
    scheduler = get_scheduler()

    try:
        await cache.refresh(force=True)
        logger.info(f"Catalog loaded: {len(cache.snapshot())} channels")
    except Exception as e:
        logger.error(f"Initial catalog load failed: {e}")

    guide_task = None
    if settings.enable_epg:
        guide_task = asyncio.create_task(guide.initialize(cache.epg_source()))
    else:
        logger.info("EPG disabled")

    if settings.proxy_configured:
        logger.info(f"HLS proxy enabled: {settings.proxy_url} (force_proxy={settings.force_proxy})")

    scheduler.start()

    yield

    logger.info("Shutting down Live TV backend...")
    scheduler.shutdown()
    if guide_task is not None and not guide_task.done():
        guide_task.cancel()


# Create FastAPI app
settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Live TV channel catalog with program guide",
    lifespan=lifespan
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(addon.router)
app.include_router(epg.router)


@app.get("/api/health")
async def health_check(
    cache: CacheManager = Depends(get_cache_manager),
    guide: ProgramGuide = Depends(get_program_guide),
):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "channels": len(cache.snapshot()),
        "catalog_version": cache.version,
        "epg_available": guide.is_available(),
    }


# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "livetv.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
