"""
Episodes API — /episodes
──────────────────────────
  PATCH  /episodes/{episode_id}          — Refresh title / release date / duration
  DELETE /episodes/{episode_id}          — Remove the caller's episode entry (204)
  PATCH  /episodes/{episode_id}/watched  — Set watched (the season flag is not touched)
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.db.models import User
from app.db.session import get_db
from app.deps.auth import get_current_user
from app.deps.cache import get_stats_cache
from app.schemas.seasons import (
    EpisodeResponse,
    EpisodeUpdateRequest,
    EpisodeWatchedResponse,
    WatchedRequest,
)
from app.services import episode_service
from app.services.stats_cache import StatsCache

router = APIRouter()


def _error(code: str, message: str) -> dict:
    """Standard error envelope."""
    return {"error": {"code": code, "message": message}}


def _not_found(episode_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=_error("EPISODE_NOT_FOUND", f"Episode {episode_id} not found"),
    )


@router.patch("/{episode_id}", response_model=EpisodeResponse)
def update_episode_endpoint(
    episode_id: UUID,
    payload: EpisodeUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    """Null fields never erase values already known for the episode."""
    episode = episode_service.update_episode(db, episode_id, payload, current_user.id)
    if episode is None:
        raise _not_found(episode_id)
    return episode


@router.delete("/{episode_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_episode_endpoint(
    episode_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    stats_cache: StatsCache = Depends(get_stats_cache),
) -> None:
    if not episode_service.delete_episode(db, episode_id, current_user.id, stats_cache=stats_cache):
        raise _not_found(episode_id)


@router.patch("/{episode_id}/watched", response_model=EpisodeWatchedResponse)
def mark_episode_watched_endpoint(
    episode_id: UUID,
    payload: WatchedRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    stats_cache: StatsCache = Depends(get_stats_cache),
) -> dict:
    result = episode_service.mark_episode_watched(
        db, episode_id, payload.watched, current_user.id, stats_cache=stats_cache
    )
    if result is None:
        raise _not_found(episode_id)
    return result
