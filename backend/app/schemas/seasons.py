"""
Season / episode request and response schemas.
"""
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field


class WatchedRequest(BaseModel):
    """Payload for PATCH /seasons/{id}/watched and /episodes/{id}/watched."""

    watched: bool


class SeasonCreateRequest(BaseModel):
    """Payload for POST /series/{series_id}/seasons."""

    number: int = Field(..., ge=1)


class SeasonResponse(BaseModel):
    """
    A catalog season seen through the caller's overlay.

    id is None when the season exists in the shared catalog but the caller
    has no overlay for it yet.
    """

    id: UUID | None
    catalog_id: UUID
    series_id: UUID
    number: int
    watched: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SeasonWatchedResponse(BaseModel):
    id: UUID
    watched: bool


class EpisodeCreateRequest(BaseModel):
    """Payload for POST /seasons/{season_id}/episodes."""

    number: int = Field(..., ge=1)
    title: str | None = None
    release_date: date | None = None
    duration: int | None = Field(default=None, ge=0)


class EpisodeUpdateRequest(BaseModel):
    """
    Payload for PATCH /episodes/{id}.

    Fields refresh the shared catalog episode with coalesce semantics, so a
    null never erases a known value.
    """

    title: str | None = None
    release_date: date | None = None
    duration: int | None = Field(default=None, ge=0)


class EpisodeResponse(BaseModel):
    """A catalog episode seen through the caller's overlay."""

    id: UUID | None
    catalog_id: UUID
    season_id: UUID | None
    number: int
    title: str | None
    release_date: date | None
    duration: int | None
    watched: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EpisodeWatchedResponse(BaseModel):
    id: UUID
    watched: bool
