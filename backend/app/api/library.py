"""
Shared film / series routes.

    GET    /{kind}              — Caller's library page (anonymous → empty page)
    POST   /{kind}              — Add by title or provider id (201, 409 duplicate)
    GET    /{kind}/{item_id}    — One entry (404 when not the caller's)
    PATCH  /{kind}/{item_id}    — Update rating / opinion / status
    DELETE /{kind}/{item_id}    — Remove (204); series take their seasons/episodes along
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.db.models import User
from app.db.session import get_db
from app.deps.auth import get_current_user, get_optional_user
from app.deps.cache import get_stats_cache
from app.schemas.library import LibraryItemResponse, LibraryPage, MediaCreateRequest, OverlayUpdateRequest
from app.services import library_service
from app.services.errors import DuplicateOverlayError, ForbiddenError
from app.services.kinopoisk_client import KinopoiskService, get_enricher
from app.services.library_service import LibraryKind
from app.services.stats_cache import StatsCache


def _error(code: str, message: str) -> dict:
    """Standard error envelope."""
    return {"error": {"code": code, "message": message}}


def build_library_router(kind: LibraryKind, code: str) -> APIRouter:
    """Router for one library kind; *code* prefixes error codes (FILM, SERIES)."""
    router = APIRouter()
    not_found_code = f"{code}_NOT_FOUND"

    def _not_found(item_id: UUID) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error(not_found_code, f"{kind.name.capitalize()} {item_id} not found"),
        )

    @router.get("", response_model=LibraryPage)
    def list_endpoint(
        q: str | None = Query(None, description="Case-insensitive title substring"),
        status_filter: str | None = Query(None, alias="status"),
        min_rating: float | None = Query(None, ge=0, le=10),
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        current_user: User | None = Depends(get_optional_user),
        db: Session = Depends(get_db),
    ) -> dict:
        return library_service.list_items(
            db,
            kind,
            current_user.id if current_user else None,
            query=q,
            status=status_filter,
            min_rating=min_rating,
            limit=limit,
            offset=offset,
        )

    @router.post("", response_model=LibraryItemResponse, status_code=status.HTTP_201_CREATED)
    async def create_endpoint(
        payload: MediaCreateRequest,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
        enricher: KinopoiskService | None = Depends(get_enricher),
        stats_cache: StatsCache = Depends(get_stats_cache),
    ) -> dict:
        """
        Add to the caller's library.

        Metadata enrichment is best-effort: with the provider down the entry
        is created from the request body alone.
        """
        try:
            return await library_service.create_item(
                db,
                kind,
                current_user.id,
                payload,
                enricher=enricher,
                stats_cache=stats_cache,
            )
        except DuplicateOverlayError as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=_error(f"DUPLICATE_{code}", str(exc)),
            ) from exc

    @router.get("/{item_id}", response_model=LibraryItemResponse)
    def get_endpoint(
        item_id: UUID,
        current_user: User | None = Depends(get_optional_user),
        db: Session = Depends(get_db),
    ) -> dict:
        item = library_service.get_item(db, kind, item_id, current_user.id if current_user else None)
        if item is None:
            raise _not_found(item_id)
        return item

    @router.patch("/{item_id}", response_model=LibraryItemResponse)
    def update_endpoint(
        item_id: UUID,
        payload: OverlayUpdateRequest,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
        stats_cache: StatsCache = Depends(get_stats_cache),
    ) -> dict:
        """Only fields present in the body are changed."""
        item = library_service.update_item(
            db,
            kind,
            item_id,
            current_user.id,
            payload.model_dump(exclude_unset=True),
            stats_cache=stats_cache,
        )
        if item is None:
            raise _not_found(item_id)
        return item

    @router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_endpoint(
        item_id: UUID,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
        stats_cache: StatsCache = Depends(get_stats_cache),
    ) -> None:
        deleted = library_service.delete_item(
            db, kind, item_id, current_user.id, stats_cache=stats_cache
        )
        if not deleted:
            raise _not_found(item_id)

    return router


def forbidden_as_not_found(exc: ForbiddenError, code: str) -> HTTPException:
    """Ownership failures are reported as 404 so ids of other users' rows stay opaque."""
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=_error(code, str(exc)),
    )
