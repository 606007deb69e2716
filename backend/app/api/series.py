"""
Series API — /series
──────────────────────
Library routes (see app.api.library) plus:
  GET    /series/{series_id}/seasons  — Catalog seasons with the caller's watched flags
  POST   /series/{series_id}/seasons  — Add a season (201; returns existing one if present)
"""
from uuid import UUID

from fastapi import Depends, status
from sqlalchemy.orm import Session

from app.api.library import build_library_router, forbidden_as_not_found
from app.db.models import User
from app.db.session import get_db
from app.deps.auth import get_current_user, get_optional_user
from app.deps.cache import get_stats_cache
from app.schemas.seasons import SeasonCreateRequest, SeasonResponse
from app.services import season_service
from app.services.errors import ForbiddenError
from app.services.library_service import SERIES
from app.services.stats_cache import StatsCache

router = build_library_router(SERIES, "SERIES")


@router.get("/{series_id}/seasons", response_model=list[SeasonResponse])
def list_seasons_endpoint(
    series_id: UUID,
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> list[dict]:
    return season_service.list_seasons(db, series_id, current_user.id if current_user else None)


@router.post(
    "/{series_id}/seasons",
    response_model=SeasonResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_season_endpoint(
    series_id: UUID,
    payload: SeasonCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    stats_cache: StatsCache = Depends(get_stats_cache),
) -> dict:
    try:
        return season_service.create_season(
            db, series_id, payload.number, current_user.id, stats_cache=stats_cache
        )
    except ForbiddenError as exc:
        raise forbidden_as_not_found(exc, "SERIES_NOT_FOUND") from exc
