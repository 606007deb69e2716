"""
Catalog resolution: map an add-request onto one shared catalog row.

Resolution order for films and series:
  1. provider id (caller's, else enriched, else parsed from the poster URL)
  2. case-insensitive title + year (a NULL year matches "unknown")
  3. create a new catalog row

Catalog seasons and episodes are found or created by their natural keys.
Every create goes through INSERT ... ON CONFLICT DO NOTHING followed by a
re-select, so concurrent adds of the same title converge on one row.
"""
import logging
import re
import uuid
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.models import CatalogEpisode, CatalogSeason
from app.db.upsert import insert_or_ignore
from app.schemas.enrichment import EnrichedMetadata
from app.schemas.library import MediaCreateRequest
from app.services.kinopoisk_client import (
    EnrichmentUnavailableError,
    KinopoiskService,
    extract_kp_id_from_poster_url,
)

logger = logging.getLogger(__name__)


def normalize_title(title: str) -> str:
    """Trim and collapse whitespace to keep dedupe behavior stable."""
    return re.sub(r"\s+", " ", title.strip())


def parse_release_date(value: date | str | None) -> date | None:
    """Accept a date or an ISO "YYYY-MM-DD..." string; anything else is unknown."""
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


# ── Enrichment ───────────────────────────────────────────────────────────────


async def load_enrichment(
    enricher: KinopoiskService | None,
    payload: MediaCreateRequest,
) -> EnrichedMetadata:
    """
    Best-effort metadata for *payload*.

    A provider outage never blocks an add: the error is logged and an empty
    result is returned.
    """
    if enricher is None:
        return EnrichedMetadata()
    try:
        if payload.kp_id:
            return await enricher.fetch_details_by_id(payload.kp_id)
        return await enricher.search_best_by_title(payload.title)
    except EnrichmentUnavailableError as exc:
        logger.warning("Enrichment skipped for %r: %s", payload.title, exc)
        return EnrichedMetadata()


def resolve_kp_id(payload: MediaCreateRequest, enriched: EnrichedMetadata) -> int | None:
    return (
        payload.kp_id
        or enriched.kp_id
        or extract_kp_id_from_poster_url(payload.poster_url or enriched.poster_url)
    )


def resolve_year(payload: MediaCreateRequest, enriched: EnrichedMetadata) -> int | None:
    return payload.year if payload.year is not None else enriched.year


# ── Films / series ───────────────────────────────────────────────────────────


def find_catalog_id_by_kp_id(db: Session, catalog_model: Any, kp_id: int) -> UUID | None:
    return db.query(catalog_model.id).filter(catalog_model.kp_id == kp_id).scalar()


def find_catalog_id_by_title_year(
    db: Session,
    catalog_model: Any,
    title: str,
    year: int | None,
) -> UUID | None:
    return (
        db.query(catalog_model.id)
        .filter(
            func.lower(catalog_model.title) == normalize_title(title).lower(),
            func.coalesce(catalog_model.year, 0) == (year or 0),
        )
        .order_by(catalog_model.created_at.asc())
        .limit(1)
        .scalar()
    )


def build_catalog_values(
    payload: MediaCreateRequest,
    enriched: EnrichedMetadata,
    *,
    kp_id: int | None,
    year: int | None,
    is_series: bool,
) -> dict[str, Any]:
    """Merge caller input over enriched metadata into catalog column values."""
    return {
        "kp_id": kp_id,
        "title": normalize_title(payload.title),
        "year": year,
        "description": enriched.description,
        "poster_url": payload.poster_url or enriched.poster_url,
        "poster_url_preview": enriched.poster_url_preview or payload.poster_url or enriched.poster_url,
        "logo_url": enriched.logo_url,
        "web_url": enriched.web_url,
        "rating": payload.rating,
        "rating_kinopoisk": enriched.rating_kinopoisk,
        "genres": payload.genres or enriched.genres,
        "actors": payload.actors or enriched.actors,
        "director": payload.director or enriched.director,
        "budget": payload.budget if payload.budget is not None else enriched.budget,
        "budget_currency_code": enriched.budget_currency_code,
        "budget_currency_symbol": enriched.budget_currency_symbol,
        "revenue": payload.revenue if payload.revenue is not None else enriched.revenue,
        "film_length": enriched.film_length,
        "is_series": enriched.is_series if enriched.is_series is not None else is_series,
        "episodes_count": enriched.episodes_count,
        "seasons_count": enriched.seasons_count,
    }


def resolve_catalog_id(
    db: Session,
    catalog_model: Any,
    payload: MediaCreateRequest,
    enriched: EnrichedMetadata,
    *,
    is_series: bool,
) -> UUID:
    """Return the id of the catalog row for *payload*, creating it if needed."""
    kp_id = resolve_kp_id(payload, enriched)
    year = resolve_year(payload, enriched)

    if kp_id:
        existing = find_catalog_id_by_kp_id(db, catalog_model, kp_id)
        if existing is not None:
            return existing

    existing = find_catalog_id_by_title_year(db, catalog_model, payload.title, year)
    if existing is not None:
        return existing

    values = build_catalog_values(payload, enriched, kp_id=kp_id, year=year, is_series=is_series)
    new_id = uuid.uuid4()
    if insert_or_ignore(db, catalog_model, {"id": new_id, **values}, ["kp_id"]):
        logger.info("Created %s row %s for %r", catalog_model.__tablename__, new_id, values["title"])
        return new_id

    # Lost a race on kp_id: another request created the row first
    return find_catalog_id_by_kp_id(db, catalog_model, kp_id)


# ── Seasons / episodes ───────────────────────────────────────────────────────


def find_or_create_season(db: Session, series_catalog_id: UUID, number: int) -> UUID:
    """Catalog season id for (series, number)."""
    query = db.query(CatalogSeason.id).filter(
        CatalogSeason.series_catalog_id == series_catalog_id,
        CatalogSeason.number == number,
    )
    season_id = query.scalar()
    if season_id is not None:
        return season_id
    insert_or_ignore(
        db,
        CatalogSeason,
        {"id": uuid.uuid4(), "series_catalog_id": series_catalog_id, "number": number},
        ["series_catalog_id", "number"],
    )
    return query.scalar()


def find_or_create_episode(
    db: Session,
    season_catalog_id: UUID,
    number: int,
    *,
    title: str | None = None,
    release_date: date | str | None = None,
    duration: int | None = None,
) -> UUID:
    """
    Catalog episode id for (season, number).

    An existing row has title / release_date / duration refreshed with
    coalesce semantics: only non-null incoming values are written.
    """
    parsed_date = parse_release_date(release_date)
    query = db.query(CatalogEpisode.id).filter(
        CatalogEpisode.season_catalog_id == season_catalog_id,
        CatalogEpisode.number == number,
    )
    episode_id = query.scalar()
    if episode_id is None:
        created = insert_or_ignore(
            db,
            CatalogEpisode,
            {
                "id": uuid.uuid4(),
                "season_catalog_id": season_catalog_id,
                "number": number,
                "title": title,
                "release_date": parsed_date,
                "duration": duration,
            },
            ["season_catalog_id", "number"],
        )
        episode_id = query.scalar()
        if created:
            return episode_id

    refresh_episode(db, episode_id, title=title, release_date=parsed_date, duration=duration)
    return episode_id


def refresh_episode(
    db: Session,
    episode_catalog_id: UUID,
    *,
    title: str | None = None,
    release_date: date | str | None = None,
    duration: int | None = None,
) -> None:
    """Coalesce-update a catalog episode; nulls never overwrite known values."""
    changes = {
        CatalogEpisode.title: title,
        CatalogEpisode.release_date: parse_release_date(release_date),
        CatalogEpisode.duration: duration,
    }
    changes = {column: value for column, value in changes.items() if value is not None}
    if not changes:
        return
    db.query(CatalogEpisode).filter(CatalogEpisode.id == episode_catalog_id).update(changes)
