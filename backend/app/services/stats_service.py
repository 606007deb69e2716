"""
Per-user library statistics.

Counts and sums run in SQL; the detailed breakdowns (genres are JSON lists)
are folded in Python over the user's library rows, which stay small.

Series watch time is film_length * episodes_count from the catalog row, not
a sum of individual episode durations.
"""
from collections import Counter, defaultdict
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.models import (
    CatalogFilm,
    CatalogSeries,
    UserEpisode,
    UserFilm,
    UserSeason,
    UserSeries,
)
from app.schemas.stats import (
    AvgRatingByGenreStat,
    DetailedStats,
    DirectorStat,
    FilmsVsSeriesStat,
    GenreStat,
    MonthlyStat,
    RatingRangeStat,
    StatusStat,
    SummaryStats,
    YearStat,
)
from app.services.stats_cache import DETAILED, SUMMARY, StatsCache

TOP_N = 10
MIN_ITEMS_FOR_GENRE_AVG = 2


# ── Helpers ──────────────────────────────────────────────────────────────────


def _count(db: Session, model, user_id: UUID, *criteria) -> int:
    return db.query(func.count(model.id)).filter(model.user_id == user_id, *criteria).scalar() or 0


def _rating_range(rating: float) -> str:
    if rating < 2:
        return "0-2"
    if rating < 4:
        return "2-4"
    if rating < 6:
        return "4-6"
    if rating < 8:
        return "6-8"
    return "8-10"


def _library_rows(db: Session, user_id: UUID) -> list[tuple]:
    """(genres, year, director, my_rating, status, created_at) for every film and series."""
    films = (
        db.query(
            CatalogFilm.genres,
            CatalogFilm.year,
            CatalogFilm.director,
            UserFilm.my_rating,
            UserFilm.status,
            UserFilm.created_at,
        )
        .join(CatalogFilm, UserFilm.film_catalog_id == CatalogFilm.id)
        .filter(UserFilm.user_id == user_id)
        .all()
    )
    series = (
        db.query(
            CatalogSeries.genres,
            CatalogSeries.year,
            CatalogSeries.director,
            UserSeries.my_rating,
            UserSeries.status,
            UserSeries.created_at,
        )
        .join(CatalogSeries, UserSeries.series_catalog_id == CatalogSeries.id)
        .filter(UserSeries.user_id == user_id)
        .all()
    )
    return [tuple(row) for row in [*films, *series]]


# ── Aggregations ─────────────────────────────────────────────────────────────


def compute_summary(db: Session, user_id: UUID) -> SummaryStats:
    """Headline counters for the profile dashboard."""
    film_ratings = (
        db.query(func.count(UserFilm.my_rating), func.sum(UserFilm.my_rating))
        .filter(UserFilm.user_id == user_id, UserFilm.my_rating.isnot(None))
        .one()
    )
    series_ratings = (
        db.query(func.count(UserSeries.my_rating), func.sum(UserSeries.my_rating))
        .filter(UserSeries.user_id == user_id, UserSeries.my_rating.isnot(None))
        .one()
    )
    rated = (film_ratings[0] or 0) + (series_ratings[0] or 0)
    rating_sum = float(film_ratings[1] or 0) + float(series_ratings[1] or 0)
    avg_rating = round(rating_sum / rated, 2) if rated else None

    films_minutes = (
        db.query(func.coalesce(func.sum(func.coalesce(CatalogFilm.film_length, 0)), 0))
        .join(UserFilm, UserFilm.film_catalog_id == CatalogFilm.id)
        .filter(UserFilm.user_id == user_id)
        .scalar()
    )
    series_minutes = (
        db.query(
            func.coalesce(
                func.sum(
                    func.coalesce(CatalogSeries.film_length, 0)
                    * func.coalesce(CatalogSeries.episodes_count, 1)
                ),
                0,
            )
        )
        .join(UserSeries, UserSeries.series_catalog_id == CatalogSeries.id)
        .filter(UserSeries.user_id == user_id)
        .scalar()
    )

    return SummaryStats(
        films=_count(db, UserFilm, user_id),
        series=_count(db, UserSeries, user_id),
        avg_rating=avg_rating,
        watched_episodes=_count(db, UserEpisode, user_id, UserEpisode.watched.is_(True)),
        total_seasons=_count(db, UserSeason, user_id),
        total_episodes=_count(db, UserEpisode, user_id),
        films_with_rating=_count(db, UserFilm, user_id, UserFilm.my_rating.isnot(None)),
        series_with_rating=_count(db, UserSeries, user_id, UserSeries.my_rating.isnot(None)),
        films_with_opinion=_count(
            db, UserFilm, user_id, UserFilm.opinion.isnot(None), UserFilm.opinion != ""
        ),
        series_with_opinion=_count(
            db, UserSeries, user_id, UserSeries.opinion.isnot(None), UserSeries.opinion != ""
        ),
        films_duration_minutes=int(films_minutes or 0),
        series_duration_minutes=int(series_minutes or 0),
    )


def compute_detailed(db: Session, user_id: UUID) -> DetailedStats:
    """Breakdowns by genre, year, rating band, month, status and director."""
    rows = _library_rows(db, user_id)

    genres: Counter[str] = Counter()
    years: Counter[int] = Counter()
    ratings: Counter[str] = Counter()
    months: Counter[str] = Counter()
    statuses: Counter[str] = Counter()
    directors: Counter[str] = Counter()
    genre_ratings: dict[str, list[float]] = defaultdict(list)

    for item_genres, year, director, my_rating, status, created_at in rows:
        for genre in item_genres or []:
            genres[genre] += 1
            if my_rating is not None:
                genre_ratings[genre].append(float(my_rating))
        if year is not None:
            years[year] += 1
        if my_rating is not None:
            ratings[_rating_range(float(my_rating))] += 1
        if created_at is not None:
            months[created_at.strftime("%Y-%m")] += 1
        if status:
            statuses[status] += 1
        if director:
            directors[director] += 1

    avg_by_genre = [
        AvgRatingByGenreStat(
            genre=genre,
            avg_rating=round(sum(values) / len(values), 2),
            count=len(values),
        )
        for genre, values in genre_ratings.items()
        if len(values) >= MIN_ITEMS_FOR_GENRE_AVG
    ]
    avg_by_genre.sort(key=lambda stat: stat.avg_rating, reverse=True)

    return DetailedStats(
        genres=[GenreStat(genre=g, count=c) for g, c in genres.most_common(TOP_N)],
        years=[YearStat(year=y, count=years[y]) for y in sorted(years)],
        ratings=[RatingRangeStat(range=r, count=ratings[r]) for r in sorted(ratings)],
        films_vs_series=FilmsVsSeriesStat(
            films=_count(db, UserFilm, user_id),
            series=_count(db, UserSeries, user_id),
        ),
        monthly=[MonthlyStat(month=m, count=months[m]) for m in sorted(months)],
        avg_rating_by_genre=avg_by_genre[:TOP_N],
        statuses=[StatusStat(status=s, count=c) for s, c in statuses.most_common()],
        directors=[DirectorStat(director=d, count=c) for d, c in directors.most_common(TOP_N)],
    )


# ── Cached reads ─────────────────────────────────────────────────────────────


def get_summary(db: Session, user_id: UUID, cache: StatsCache) -> SummaryStats:
    return cache.get(user_id, SUMMARY, lambda: compute_summary(db, user_id))


def get_detailed(db: Session, user_id: UUID, cache: StatsCache) -> DetailedStats:
    return cache.get(user_id, DETAILED, lambda: compute_detailed(db, user_id))


def invalidate(user_id: UUID, cache: StatsCache) -> None:
    cache.invalidate(user_id)
