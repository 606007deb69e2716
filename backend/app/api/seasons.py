"""
Seasons API — /seasons
────────────────────────
  DELETE /seasons/{season_id}            — Remove a season and its episode overlays (204)
  PATCH  /seasons/{season_id}/watched    — Set watched; fans out to every episode
  GET    /seasons/{season_id}/episodes   — Catalog episodes with the caller's watched flags
  POST   /seasons/{season_id}/episodes   — Add an episode (201; returns existing one if present)
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.library import forbidden_as_not_found
from app.db.models import User
from app.db.session import get_db
from app.deps.auth import get_current_user, get_optional_user
from app.deps.cache import get_stats_cache
from app.schemas.seasons import (
    EpisodeCreateRequest,
    EpisodeResponse,
    SeasonWatchedResponse,
    WatchedRequest,
)
from app.services import episode_service, season_service
from app.services.errors import ForbiddenError
from app.services.stats_cache import StatsCache

router = APIRouter()


def _error(code: str, message: str) -> dict:
    """Standard error envelope."""
    return {"error": {"code": code, "message": message}}


@router.delete("/{season_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_season_endpoint(
    season_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    stats_cache: StatsCache = Depends(get_stats_cache),
) -> None:
    deleted = season_service.delete_season(db, season_id, current_user.id, stats_cache=stats_cache)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("SEASON_NOT_FOUND", f"Season {season_id} not found"),
        )


@router.patch("/{season_id}/watched", response_model=SeasonWatchedResponse)
def mark_season_watched_endpoint(
    season_id: UUID,
    payload: WatchedRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    stats_cache: StatsCache = Depends(get_stats_cache),
) -> dict:
    """
    Set the season's watched flag and apply the same value to all of its
    episodes, creating the caller's missing episode entries.
    """
    try:
        return season_service.mark_season_watched(
            db, season_id, payload.watched, current_user.id, stats_cache=stats_cache
        )
    except ForbiddenError as exc:
        raise forbidden_as_not_found(exc, "SEASON_NOT_FOUND") from exc


@router.get("/{season_id}/episodes", response_model=list[EpisodeResponse])
def list_episodes_endpoint(
    season_id: UUID,
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> list[dict]:
    return episode_service.list_episodes(db, season_id, current_user.id if current_user else None)


@router.post(
    "/{season_id}/episodes",
    response_model=EpisodeResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_episode_endpoint(
    season_id: UUID,
    payload: EpisodeCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    stats_cache: StatsCache = Depends(get_stats_cache),
) -> dict:
    try:
        return episode_service.create_episode(
            db, season_id, payload, current_user.id, stats_cache=stats_cache
        )
    except ForbiddenError as exc:
        raise forbidden_as_not_found(exc, "SEASON_NOT_FOUND") from exc
