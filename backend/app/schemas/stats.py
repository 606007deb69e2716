"""
Aggregate statistics schemas (summary + detailed dashboards).
"""
from pydantic import BaseModel


class SummaryStats(BaseModel):
    films: int
    series: int
    avg_rating: float | None
    watched_episodes: int
    total_seasons: int
    total_episodes: int
    films_with_rating: int
    series_with_rating: int
    films_with_opinion: int
    series_with_opinion: int
    films_duration_minutes: int
    series_duration_minutes: int


class GenreStat(BaseModel):
    genre: str
    count: int


class YearStat(BaseModel):
    year: int
    count: int


class RatingRangeStat(BaseModel):
    range: str
    count: int


class FilmsVsSeriesStat(BaseModel):
    films: int
    series: int


class MonthlyStat(BaseModel):
    month: str
    count: int


class AvgRatingByGenreStat(BaseModel):
    genre: str
    avg_rating: float
    count: int


class StatusStat(BaseModel):
    status: str
    count: int


class DirectorStat(BaseModel):
    director: str
    count: int


class DetailedStats(BaseModel):
    genres: list[GenreStat]
    years: list[YearStat]
    ratings: list[RatingRangeStat]
    films_vs_series: FilmsVsSeriesStat
    monthly: list[MonthlyStat]
    avg_rating_by_genre: list[AvgRatingByGenreStat]
    statuses: list[StatusStat]
    directors: list[DirectorStat]
