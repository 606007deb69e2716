"""
Season overlays within a user's series.

Marking a season watched fans the flag out to every catalog episode of that
season for the caller, creating missing episode overlays on the way.
Marking a single episode never rolls back up to its season.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.db.models import CatalogEpisode, CatalogSeason, UserEpisode, UserSeason, UserSeries
from app.db.upsert import upsert_rows
from app.services import catalog_service, hierarchy_service
from app.services.errors import ForbiddenError
from app.services.stats_cache import StatsCache

logger = logging.getLogger(__name__)


def _serialize(series_id: UUID, catalog: CatalogSeason, overlay: UserSeason | None) -> dict[str, Any]:
    return {
        "id": overlay.id if overlay else None,
        "catalog_id": catalog.id,
        "series_id": series_id,
        "number": catalog.number,
        "watched": bool(overlay.watched) if overlay else False,
        "created_at": overlay.created_at if overlay else None,
        "updated_at": overlay.updated_at if overlay else None,
    }


def _owned_series(db: Session, series_id: UUID, user_id: UUID | None) -> UserSeries | None:
    if user_id is None:
        return None
    return (
        db.query(UserSeries)
        .filter(UserSeries.id == series_id, UserSeries.user_id == user_id)
        .first()
    )


def get_owned_season(db: Session, season_id: UUID, user_id: UUID | None) -> UserSeason | None:
    if user_id is None:
        return None
    return (
        db.query(UserSeason)
        .filter(UserSeason.id == season_id, UserSeason.user_id == user_id)
        .first()
    )


def _season_row(db: Session, series_id: UUID, season_catalog_id: UUID, user_id: UUID) -> dict[str, Any]:
    catalog, overlay = (
        db.query(CatalogSeason, UserSeason)
        .outerjoin(
            UserSeason,
            and_(UserSeason.season_catalog_id == CatalogSeason.id, UserSeason.user_id == user_id),
        )
        .filter(CatalogSeason.id == season_catalog_id)
        .one()
    )
    return _serialize(series_id, catalog, overlay)


# ── Reads ────────────────────────────────────────────────────────────────────


def list_seasons(db: Session, series_id: UUID, user_id: UUID | None) -> list[dict[str, Any]]:
    """Catalog seasons of the series, each with the caller's watched flag."""
    series = _owned_series(db, series_id, user_id)
    if series is None:
        return []

    rows = (
        db.query(CatalogSeason, UserSeason)
        .outerjoin(
            UserSeason,
            and_(UserSeason.season_catalog_id == CatalogSeason.id, UserSeason.user_id == user_id),
        )
        .filter(CatalogSeason.series_catalog_id == series.series_catalog_id)
        .order_by(CatalogSeason.number.asc())
        .all()
    )
    return [_serialize(series_id, catalog, overlay) for catalog, overlay in rows]


# ── Writes ───────────────────────────────────────────────────────────────────


def create_season(
    db: Session,
    series_id: UUID,
    number: int,
    user_id: UUID | None,
    *,
    stats_cache: StatsCache,
) -> dict[str, Any]:
    """
    Add season *number* to the user's series.

    Idempotent: an existing overlay for the same season is returned as is.
    """
    series = _owned_series(db, series_id, user_id)
    if series is None:
        raise ForbiddenError("Series not found in your library")

    season_catalog_id = catalog_service.find_or_create_season(db, series.series_catalog_id, number)
    created = hierarchy_service.ensure_user_season(db, user_id, season_catalog_id)
    db.commit()

    if created:
        stats_cache.invalidate(user_id)
    return _season_row(db, series_id, season_catalog_id, user_id)


def delete_season(
    db: Session,
    season_id: UUID,
    user_id: UUID | None,
    *,
    stats_cache: StatsCache,
) -> bool:
    """Remove a season overlay together with the user's episode overlays in it."""
    season = get_owned_season(db, season_id, user_id)
    if season is None:
        return False

    hierarchy_service.delete_user_episodes_in_season(db, user_id, season.season_catalog_id)
    db.delete(season)
    db.commit()

    stats_cache.invalidate(user_id)
    return True


def mark_season_watched(
    db: Session,
    season_id: UUID,
    watched: bool,
    user_id: UUID | None,
    *,
    stats_cache: StatsCache,
) -> dict[str, Any]:
    """
    Set the season's watched flag and fan it out to all of its episodes.

    The season flag commits first. The fan-out is a single multi-row upsert
    keyed on (user, catalog episode), so re-running it converges on the same
    state and creates each missing episode overlay exactly once.
    """
    season = get_owned_season(db, season_id, user_id)
    if season is None:
        raise ForbiddenError("Season not found in your library")

    season.watched = watched
    db.commit()

    episode_ids = [
        row.id
        for row in db.query(CatalogEpisode.id)
        .filter(CatalogEpisode.season_catalog_id == season.season_catalog_id)
        .all()
    ]
    now = datetime.now(timezone.utc)
    upsert_rows(
        db,
        UserEpisode,
        [
            {
                "id": uuid.uuid4(),
                "user_id": user_id,
                "episode_catalog_id": episode_id,
                "watched": watched,
                "created_at": now,
                "updated_at": now,
            }
            for episode_id in episode_ids
        ],
        conflict_columns=["user_id", "episode_catalog_id"],
        update_columns=["watched", "updated_at"],
    )
    db.commit()
    # Core upsert bypasses the identity map
    db.expire_all()

    logger.info(
        "User %s marked season %s watched=%s (%s episodes)",
        user_id,
        season_id,
        watched,
        len(episode_ids),
    )
    stats_cache.invalidate(user_id)
    return {"id": season.id, "watched": season.watched}
