"""
Episode overlays within a user's season.
"""
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.db.models import CatalogEpisode, UserEpisode, UserSeason
from app.schemas.seasons import EpisodeCreateRequest, EpisodeUpdateRequest
from app.services import catalog_service, hierarchy_service
from app.services.errors import ForbiddenError
from app.services.season_service import get_owned_season
from app.services.stats_cache import StatsCache

logger = logging.getLogger(__name__)


def _serialize(
    catalog: CatalogEpisode,
    overlay: UserEpisode | None,
    season_id: UUID | None,
) -> dict[str, Any]:
    return {
        "id": overlay.id if overlay else None,
        "catalog_id": catalog.id,
        "season_id": season_id,
        "number": catalog.number,
        "title": catalog.title,
        "release_date": catalog.release_date,
        "duration": catalog.duration,
        "watched": bool(overlay.watched) if overlay else False,
        "created_at": overlay.created_at if overlay else None,
        "updated_at": overlay.updated_at if overlay else None,
    }


def _owned_episode(db: Session, episode_id: UUID, user_id: UUID | None) -> UserEpisode | None:
    if user_id is None:
        return None
    return (
        db.query(UserEpisode)
        .filter(UserEpisode.id == episode_id, UserEpisode.user_id == user_id)
        .first()
    )


def _episode_row(db: Session, episode_catalog_id: UUID, user_id: UUID) -> dict[str, Any]:
    """Catalog episode + the user's overlay + the user's season overlay id."""
    catalog, overlay, season_id = (
        db.query(CatalogEpisode, UserEpisode, UserSeason.id)
        .outerjoin(
            UserEpisode,
            and_(UserEpisode.episode_catalog_id == CatalogEpisode.id, UserEpisode.user_id == user_id),
        )
        .outerjoin(
            UserSeason,
            and_(
                UserSeason.season_catalog_id == CatalogEpisode.season_catalog_id,
                UserSeason.user_id == user_id,
            ),
        )
        .filter(CatalogEpisode.id == episode_catalog_id)
        .one()
    )
    return _serialize(catalog, overlay, season_id)


# ── Reads ────────────────────────────────────────────────────────────────────


def list_episodes(db: Session, season_id: UUID, user_id: UUID | None) -> list[dict[str, Any]]:
    """Catalog episodes of the season, each with the caller's watched flag."""
    season = get_owned_season(db, season_id, user_id)
    if season is None:
        return []

    rows = (
        db.query(CatalogEpisode, UserEpisode)
        .outerjoin(
            UserEpisode,
            and_(UserEpisode.episode_catalog_id == CatalogEpisode.id, UserEpisode.user_id == user_id),
        )
        .filter(CatalogEpisode.season_catalog_id == season.season_catalog_id)
        .order_by(CatalogEpisode.number.asc())
        .all()
    )
    return [_serialize(catalog, overlay, season_id) for catalog, overlay in rows]


# ── Writes ───────────────────────────────────────────────────────────────────


def create_episode(
    db: Session,
    season_id: UUID,
    payload: EpisodeCreateRequest,
    user_id: UUID | None,
    *,
    stats_cache: StatsCache,
) -> dict[str, Any]:
    """
    Add episode *payload.number* to the user's season.

    Idempotent on (season, number): the shared catalog episode is refreshed
    with any newly supplied fields and the existing overlay is returned.
    """
    season = get_owned_season(db, season_id, user_id)
    if season is None:
        raise ForbiddenError("Season not found in your library")

    episode_catalog_id = catalog_service.find_or_create_episode(
        db,
        season.season_catalog_id,
        payload.number,
        title=payload.title,
        release_date=payload.release_date,
        duration=payload.duration,
    )
    created = hierarchy_service.ensure_user_episode(db, user_id, episode_catalog_id)
    db.commit()

    if created:
        stats_cache.invalidate(user_id)
    return _episode_row(db, episode_catalog_id, user_id)


def update_episode(
    db: Session,
    episode_id: UUID,
    payload: EpisodeUpdateRequest,
    user_id: UUID | None,
) -> dict[str, Any] | None:
    """Refresh the shared catalog episode behind the user's overlay."""
    episode = _owned_episode(db, episode_id, user_id)
    if episode is None:
        return None

    catalog_service.refresh_episode(
        db,
        episode.episode_catalog_id,
        title=payload.title,
        release_date=payload.release_date,
        duration=payload.duration,
    )
    db.commit()
    return _episode_row(db, episode.episode_catalog_id, user_id)


def delete_episode(
    db: Session,
    episode_id: UUID,
    user_id: UUID | None,
    *,
    stats_cache: StatsCache,
) -> bool:
    episode = _owned_episode(db, episode_id, user_id)
    if episode is None:
        return False

    db.delete(episode)
    db.commit()

    stats_cache.invalidate(user_id)
    return True


def mark_episode_watched(
    db: Session,
    episode_id: UUID,
    watched: bool,
    user_id: UUID | None,
    *,
    stats_cache: StatsCache,
) -> dict[str, Any] | None:
    """
    Set one episode's watched flag.

    The parent season's flag is left alone, even when this makes every
    episode of the season watched.
    """
    if user_id is None:
        raise ForbiddenError("Authentication required")

    episode = _owned_episode(db, episode_id, user_id)
    if episode is None:
        return None

    episode.watched = watched
    db.commit()

    stats_cache.invalidate(user_id)
    return {"id": episode.id, "watched": episode.watched}
