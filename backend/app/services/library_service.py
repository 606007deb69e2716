"""
Per-user film and series libraries.

Films and series share one shape: a user overlay (rating, opinion, status)
over a shared catalog row. LibraryKind carries the model pair so the list /
get / create / update / delete logic is written once.

Every mutation invalidates the caller's cached statistics.
"""
import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import CatalogFilm, CatalogSeries, UserFilm, UserSeries
from app.schemas.library import MediaCreateRequest
from app.services import catalog_service, hierarchy_service
from app.services.errors import DuplicateOverlayError, ForbiddenError
from app.services.kinopoisk_client import KinopoiskService
from app.services.stats_cache import StatsCache

logger = logging.getLogger(__name__)

CATALOG_FIELDS = (
    "title",
    "year",
    "kp_id",
    "description",
    "poster_url",
    "poster_url_preview",
    "logo_url",
    "web_url",
    "rating",
    "rating_kinopoisk",
    "is_series",
    "episodes_count",
    "seasons_count",
    "genres",
    "actors",
    "director",
    "budget",
    "budget_currency_code",
    "budget_currency_symbol",
    "revenue",
    "film_length",
)


@dataclass(frozen=True)
class LibraryKind:
    name: str
    overlay: Any
    catalog: Any
    catalog_fk: str
    unique_constraint: str
    is_series: bool

    @property
    def fk_column(self):
        return getattr(self.overlay, self.catalog_fk)


FILMS = LibraryKind(
    name="film",
    overlay=UserFilm,
    catalog=CatalogFilm,
    catalog_fk="film_catalog_id",
    unique_constraint="uq_user_films_user_catalog",
    is_series=False,
)
SERIES = LibraryKind(
    name="series",
    overlay=UserSeries,
    catalog=CatalogSeries,
    catalog_fk="series_catalog_id",
    unique_constraint="uq_user_series_user_catalog",
    is_series=True,
)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _hydrate(overlay: Any, catalog: Any, kind: LibraryKind) -> dict[str, Any]:
    """Flatten an (overlay, catalog) pair into the LibraryItemResponse shape."""
    item = {field: getattr(catalog, field) for field in CATALOG_FIELDS}
    item.update(
        id=overlay.id,
        catalog_id=getattr(overlay, kind.catalog_fk),
        user_id=overlay.user_id,
        my_rating=overlay.my_rating,
        opinion=overlay.opinion,
        status=overlay.status,
        created_at=overlay.created_at,
        updated_at=overlay.updated_at,
    )
    return item


def _joined_query(db: Session, kind: LibraryKind, user_id: UUID):
    return (
        db.query(kind.overlay, kind.catalog)
        .join(kind.catalog, kind.fk_column == kind.catalog.id)
        .filter(kind.overlay.user_id == user_id)
    )


def _get_owned_overlay(db: Session, kind: LibraryKind, item_id: UUID, user_id: UUID | None):
    if user_id is None:
        return None
    return (
        db.query(kind.overlay)
        .filter(kind.overlay.id == item_id, kind.overlay.user_id == user_id)
        .first()
    )


def _is_duplicate_violation(exc: IntegrityError, kind: LibraryKind) -> bool:
    error_text = str(exc.orig).lower()
    return (
        kind.unique_constraint in error_text
        or "duplicate key" in error_text
        or "unique constraint failed" in error_text
    )


def find_duplicate(
    db: Session,
    kind: LibraryKind,
    user_id: UUID,
    title: str,
    year: int | None,
) -> UUID | None:
    """
    Overlay id of an existing library entry with the same title and year.

    With no year known the match is on title alone, so an undated add never
    slips past a dated entry of the same title.
    """
    query = (
        db.query(kind.overlay.id)
        .join(kind.catalog, kind.fk_column == kind.catalog.id)
        .filter(
            kind.overlay.user_id == user_id,
            func.lower(kind.catalog.title) == catalog_service.normalize_title(title).lower(),
        )
    )
    if year is not None:
        query = query.filter(func.coalesce(kind.catalog.year, 0) == year)
    return query.limit(1).scalar()


# ── Reads ────────────────────────────────────────────────────────────────────


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_items(
    db: Session,
    kind: LibraryKind,
    user_id: UUID | None,
    *,
    query: str | None = None,
    status: str | None = None,
    min_rating: float | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """Newest-first page of the user's library; anonymous callers see nothing."""
    if user_id is None:
        return {"items": [], "total": 0, "limit": limit, "offset": offset, "has_more": False}

    base = _joined_query(db, kind, user_id)
    if query:
        base = base.filter(kind.catalog.title.ilike(f"%{_escape_like(query.strip())}%", escape="\\"))
    if status:
        base = base.filter(kind.overlay.status == status)
    if min_rating is not None:
        base = base.filter(kind.overlay.my_rating >= min_rating)

    total = base.count()
    rows = (
        base.order_by(kind.overlay.created_at.desc(), kind.overlay.id.asc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return {
        "items": [_hydrate(overlay, catalog, kind) for overlay, catalog in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(rows) < total,
    }


def get_item(
    db: Session,
    kind: LibraryKind,
    item_id: UUID,
    user_id: UUID | None,
) -> dict[str, Any] | None:
    if user_id is None:
        return None
    row = _joined_query(db, kind, user_id).filter(kind.overlay.id == item_id).first()
    if row is None:
        return None
    overlay, catalog = row
    return _hydrate(overlay, catalog, kind)


# ── Writes ───────────────────────────────────────────────────────────────────


async def create_item(
    db: Session,
    kind: LibraryKind,
    user_id: UUID | None,
    payload: MediaCreateRequest,
    *,
    enricher: KinopoiskService | None,
    stats_cache: StatsCache,
) -> dict[str, Any]:
    """
    Add a film or series to the user's library.

    Raises DuplicateOverlayError when the user already has this title.
    Series additionally get their season/episode hierarchy materialized
    after the overlay is committed.
    """
    if user_id is None:
        raise ForbiddenError("Authentication required")

    enriched = await catalog_service.load_enrichment(enricher, payload)
    year = catalog_service.resolve_year(payload, enriched)

    if find_duplicate(db, kind, user_id, payload.title, year) is not None:
        logger.info("User %s already has %s %r (%s)", user_id, kind.name, payload.title, year)
        raise DuplicateOverlayError(f"This {kind.name} is already in your library")

    try:
        catalog_id = catalog_service.resolve_catalog_id(
            db, kind.catalog, payload, enriched, is_series=kind.is_series
        )
        overlay = kind.overlay(
            user_id=user_id,
            my_rating=payload.my_rating,
            opinion=payload.opinion,
            status=payload.status,
            **{kind.catalog_fk: catalog_id},
        )
        db.add(overlay)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if _is_duplicate_violation(exc, kind):
            raise DuplicateOverlayError(f"This {kind.name} is already in your library") from exc
        raise

    logger.info("User %s added %s %s (catalog %s)", user_id, kind.name, overlay.id, catalog_id)
    stats_cache.invalidate(user_id)

    if kind.is_series:
        # The matched catalog row may predate enrichment and carry no kp_id
        kp_id = catalog_service.resolve_kp_id(payload, enriched)
        if kp_id is None:
            kp_id = db.query(kind.catalog.kp_id).filter(kind.catalog.id == catalog_id).scalar()
        try:
            await hierarchy_service.materialize_series(db, user_id, catalog_id, kp_id, enricher)
        finally:
            stats_cache.invalidate(user_id)

    return get_item(db, kind, overlay.id, user_id)


def update_item(
    db: Session,
    kind: LibraryKind,
    item_id: UUID,
    user_id: UUID | None,
    changes: dict[str, Any],
    *,
    stats_cache: StatsCache,
) -> dict[str, Any] | None:
    """Apply the provided overlay fields; omitted fields are left unchanged."""
    overlay = _get_owned_overlay(db, kind, item_id, user_id)
    if overlay is None:
        return None

    for field in ("my_rating", "opinion", "status"):
        if field in changes:
            setattr(overlay, field, changes[field])
    db.commit()

    stats_cache.invalidate(user_id)
    return get_item(db, kind, item_id, user_id)


def delete_item(
    db: Session,
    kind: LibraryKind,
    item_id: UUID,
    user_id: UUID | None,
    *,
    stats_cache: StatsCache,
) -> bool:
    """
    Remove an entry from the user's library.

    For series the user's season and episode overlays go with it. Catalog
    rows are never deleted.
    """
    overlay = _get_owned_overlay(db, kind, item_id, user_id)
    if overlay is None:
        return False

    if kind.is_series:
        hierarchy_service.delete_user_hierarchy(db, user_id, getattr(overlay, kind.catalog_fk))
    db.delete(overlay)
    db.commit()

    logger.info("User %s removed %s %s", user_id, kind.name, item_id)
    stats_cache.invalidate(user_id)
    return True
