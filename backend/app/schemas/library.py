"""
Film / series request and response schemas.

Films and series share one overlay shape: the user's rating, opinion and
status layered over the shared catalog row.
"""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MediaCreateRequest(BaseModel):
    """Payload for POST /films and POST /series."""

    title: str
    kp_id: int | None = Field(default=None, ge=1)
    year: int | None = Field(default=None, ge=1800, le=2200)
    poster_url: str | None = None
    rating: float | None = Field(default=None, ge=0, le=10)
    director: str | None = None
    budget: int | None = None
    revenue: int | None = None
    genres: list[str] | None = None
    actors: list[str] | None = None
    my_rating: float | None = Field(default=None, ge=0, le=10)
    opinion: str | None = Field(default=None, max_length=5000)
    status: str | None = Field(default=None, max_length=64)

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        title = " ".join(value.strip().split())
        if not title:
            raise ValueError("title cannot be empty")
        if len(title) > 500:
            raise ValueError("title cannot exceed 500 characters")
        return title


class OverlayUpdateRequest(BaseModel):
    """
    Payload for PATCH /films/{id} and PATCH /series/{id}.

    Omitted fields keep their stored value; an explicit null clears it.
    """

    my_rating: float | None = Field(default=None, ge=0, le=10)
    opinion: str | None = Field(default=None, max_length=5000)
    status: str | None = Field(default=None, max_length=64)


class LibraryItemResponse(BaseModel):
    """One overlay row joined with its catalog metadata."""

    id: UUID
    catalog_id: UUID
    user_id: UUID
    title: str
    year: int | None
    kp_id: int | None
    description: str | None
    poster_url: str | None
    poster_url_preview: str | None
    logo_url: str | None
    web_url: str | None
    rating: float | None
    rating_kinopoisk: float | None
    is_series: bool | None
    episodes_count: int | None
    seasons_count: int | None
    genres: list[str] | None
    actors: list[str] | None
    director: str | None
    budget: int | None
    budget_currency_code: str | None
    budget_currency_symbol: str | None
    revenue: int | None
    film_length: int | None
    my_rating: float | None
    opinion: str | None
    status: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LibraryPage(BaseModel):
    """Paginated list envelope."""

    items: list[LibraryItemResponse]
    total: int
    limit: int
    offset: int
    has_more: bool
