"""
Filmshelf API — FastAPI application entry point.

Routers are registered here. Each service lives in app/api/.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import episodes, films, seasons, series, stats
from app.core.config import settings
from app.services.stats_cache import StatsCache

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Filmshelf API",
    description="Backend for the Filmshelf personal film and series library.",
    version="0.1.0",
    docs_url="/docs" if settings.ENABLE_DOCS else None,
    redoc_url="/redoc" if settings.ENABLE_DOCS else None,
)

# One cache per process; reached through app.deps.cache.get_stats_cache
app.state.stats_cache = StatsCache(ttl_seconds=settings.STATS_CACHE_TTL_SECONDS)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(films.router,    prefix="/films",    tags=["films"])
app.include_router(series.router,   prefix="/series",   tags=["series"])
app.include_router(seasons.router,  prefix="/seasons",  tags=["seasons"])
app.include_router(episodes.router, prefix="/episodes", tags=["episodes"])
app.include_router(stats.router,    prefix="/stats",    tags=["stats"])


# ── Health check ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
def health_check() -> dict:
    """Liveness probe. Returns 200 when the server is up."""
    return {"status": "ok", "version": app.version, "env": settings.APP_ENV}
