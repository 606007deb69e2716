"""
Series → season → episode synchronization.

Adding a series eagerly materializes the provider's season/episode breakdown
into the shared catalog plus the caller's unwatched overlays. Removing a
series walks the same hierarchy and drops only the caller's overlays; the
catalog rows stay for other users.
"""
import logging
import uuid
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import CatalogEpisode, CatalogSeason, UserEpisode, UserSeason
from app.db.upsert import insert_or_ignore
from app.schemas.enrichment import EnrichedSeason
from app.services.catalog_service import find_or_create_episode, find_or_create_season
from app.services.kinopoisk_client import EnrichmentUnavailableError, KinopoiskService

logger = logging.getLogger(__name__)


def ensure_user_season(db: Session, user_id: UUID, season_catalog_id: UUID) -> bool:
    """Create an unwatched season overlay unless one exists. True if created."""
    return insert_or_ignore(
        db,
        UserSeason,
        {
            "id": uuid.uuid4(),
            "user_id": user_id,
            "season_catalog_id": season_catalog_id,
            "watched": False,
        },
        ["user_id", "season_catalog_id"],
    )


def ensure_user_episode(db: Session, user_id: UUID, episode_catalog_id: UUID) -> bool:
    """Create an unwatched episode overlay unless one exists. True if created."""
    return insert_or_ignore(
        db,
        UserEpisode,
        {
            "id": uuid.uuid4(),
            "user_id": user_id,
            "episode_catalog_id": episode_catalog_id,
            "watched": False,
        },
        ["user_id", "episode_catalog_id"],
    )


async def load_season_breakdown(
    enricher: KinopoiskService | None,
    kp_id: int | None,
) -> list[EnrichedSeason]:
    if enricher is None or not kp_id:
        return []
    try:
        return await enricher.fetch_season_breakdown(kp_id)
    except EnrichmentUnavailableError as exc:
        logger.warning("Season breakdown skipped for kp_id=%s: %s", kp_id, exc)
        return []


def materialize_seasons(
    db: Session,
    user_id: UUID,
    series_catalog_id: UUID,
    seasons: list[EnrichedSeason],
) -> int:
    """
    Write catalog seasons/episodes and the user's unwatched overlays.

    Each season commits on its own; a season that fails to write is rolled
    back and logged without affecting the others. Returns the number of
    seasons written.
    """
    written = 0
    for season in seasons:
        if season.number is None:
            continue
        try:
            season_catalog_id = find_or_create_season(db, series_catalog_id, season.number)
            ensure_user_season(db, user_id, season_catalog_id)
            for episode in season.episodes:
                if episode.number is None:
                    continue
                episode_catalog_id = find_or_create_episode(
                    db,
                    season_catalog_id,
                    episode.number,
                    title=episode.title,
                    release_date=episode.release_date,
                    duration=episode.duration,
                )
                ensure_user_episode(db, user_id, episode_catalog_id)
            db.commit()
            written += 1
        except SQLAlchemyError:
            db.rollback()
            logger.warning(
                "Failed to materialize season %s of series %s",
                season.number,
                series_catalog_id,
                exc_info=True,
            )
    return written


async def materialize_series(
    db: Session,
    user_id: UUID,
    series_catalog_id: UUID,
    kp_id: int | None,
    enricher: KinopoiskService | None,
) -> int:
    """Fetch the season breakdown for *kp_id* and materialize it for *user_id*."""
    seasons = await load_season_breakdown(enricher, kp_id)
    if not seasons:
        return 0
    written = materialize_seasons(db, user_id, series_catalog_id, seasons)
    logger.info(
        "Materialized %s/%s seasons of series %s for user %s",
        written,
        len(seasons),
        series_catalog_id,
        user_id,
    )
    return written


def delete_user_episodes_in_season(db: Session, user_id: UUID, season_catalog_id: UUID) -> int:
    episode_ids = select(CatalogEpisode.id).where(
        CatalogEpisode.season_catalog_id == season_catalog_id
    )
    return (
        db.query(UserEpisode)
        .filter(
            UserEpisode.user_id == user_id,
            UserEpisode.episode_catalog_id.in_(episode_ids),
        )
        .delete(synchronize_session=False)
    )


def delete_user_hierarchy(db: Session, user_id: UUID, series_catalog_id: UUID) -> None:
    """
    Drop the user's season and episode overlays under a catalog series.

    Does not commit; the caller deletes the series overlay in the same
    transaction.
    """
    season_ids = [
        row.id
        for row in db.query(CatalogSeason.id)
        .filter(CatalogSeason.series_catalog_id == series_catalog_id)
        .all()
    ]
    for season_catalog_id in season_ids:
        delete_user_episodes_in_season(db, user_id, season_catalog_id)
        db.query(UserSeason).filter(
            UserSeason.user_id == user_id,
            UserSeason.season_catalog_id == season_catalog_id,
        ).delete(synchronize_session=False)
