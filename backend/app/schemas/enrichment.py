"""
Normalized metadata returned by the enrichment provider.

Every field is optional: an unreachable provider or a search without hits
yields an empty EnrichedMetadata, which downstream code treats as valid input.
"""
from pydantic import BaseModel, Field


class EnrichedMetadata(BaseModel):
    """Best-effort film/series metadata."""

    kp_id: int | None = None
    title: str | None = None
    year: int | None = None
    description: str | None = None
    poster_url: str | None = None
    poster_url_preview: str | None = None
    logo_url: str | None = None
    web_url: str | None = None
    rating_kinopoisk: float | None = None
    is_series: bool | None = None
    episodes_count: int | None = None
    seasons_count: int | None = None
    genres: list[str] | None = None
    director: str | None = None
    actors: list[str] | None = None
    budget: int | None = None
    budget_currency_code: str | None = None
    budget_currency_symbol: str | None = None
    revenue: int | None = None
    film_length: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class EnrichedEpisode(BaseModel):
    number: int | None = None
    title: str | None = None
    release_date: str | None = None
    duration: int | None = None


class EnrichedSeason(BaseModel):
    number: int | None = None
    episodes: list[EnrichedEpisode] = Field(default_factory=list)
