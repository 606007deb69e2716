"""
SQLAlchemy ORM models.

Two tables per media kind: a shared, deduplicated *catalog* table and a
per-user *overlay* table that references it. Overlays are joined to the
catalog at read time; catalog rows are never owned by a user.

Types are kept dialect-neutral (generic Uuid, JSON with a JSONB variant on
Postgres) so the same models back both Postgres and the SQLite test harness.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, declared_attr, relationship


# ── Base ──────────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# none_as_null: Python None is stored as SQL NULL, not the JSON literal null
JSONList = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


# ── Timestamp helper ──────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Models ────────────────────────────────────────────────────────────────────

class User(Base):
    """
    Library owner.

    Accounts are provisioned by the auth service; this table only anchors the
    overlay foreign keys and the bearer-token lookup.
    """
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(32), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


class CatalogMetadataMixin:
    """
    Metadata columns shared by films_catalog and series_catalog.

    kp_id is the external provider id. NULLs never collide, so the unique
    index only constrains rows whose provider id is known.
    """

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kp_id = Column(Integer, unique=True, nullable=True, index=True)
    title = Column(String(500), nullable=False, index=True)
    year = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    poster_url = Column(String(1000), nullable=True)
    poster_url_preview = Column(String(1000), nullable=True)
    logo_url = Column(String(1000), nullable=True)
    web_url = Column(String(1000), nullable=True)
    # Caller-supplied rating at first add; provider rating is kept separately
    rating = Column(Float, nullable=True)
    rating_kinopoisk = Column(Float, nullable=True)
    genres = Column(JSONList, nullable=True)
    actors = Column(JSONList, nullable=True)
    director = Column(String(255), nullable=True)
    budget = Column(BigInteger, nullable=True)
    budget_currency_code = Column(String(8), nullable=True)
    budget_currency_symbol = Column(String(8), nullable=True)
    revenue = Column(BigInteger, nullable=True)
    # Minutes; for series this is the length of one episode
    film_length = Column(Integer, nullable=True)
    is_series = Column(Boolean, nullable=True)
    episodes_count = Column(Integer, nullable=True)
    seasons_count = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class CatalogFilm(CatalogMetadataMixin, Base):
    __tablename__ = "films_catalog"

    __table_args__ = (
        Index("idx_films_catalog_title_year", "title", "year"),
    )

    def __repr__(self) -> str:
        return f"<CatalogFilm id={self.id} title={self.title!r} year={self.year}>"


class CatalogSeries(CatalogMetadataMixin, Base):
    __tablename__ = "series_catalog"

    __table_args__ = (
        Index("idx_series_catalog_title_year", "title", "year"),
    )

    seasons = relationship(
        "CatalogSeason",
        back_populates="series",
        order_by="CatalogSeason.number",
    )

    def __repr__(self) -> str:
        return f"<CatalogSeries id={self.id} title={self.title!r} year={self.year}>"


class CatalogSeason(Base):
    """One season of a catalog series. Unique per (series, number)."""
    __tablename__ = "seasons_catalog"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    series_catalog_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("series_catalog.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    number = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("series_catalog_id", "number", name="uq_seasons_catalog_series_number"),
    )

    series = relationship("CatalogSeries", back_populates="seasons")
    episodes = relationship(
        "CatalogEpisode",
        back_populates="season",
        order_by="CatalogEpisode.number",
    )

    def __repr__(self) -> str:
        return f"<CatalogSeason id={self.id} series={self.series_catalog_id} number={self.number}>"


class CatalogEpisode(Base):
    """
    One episode of a catalog season. Unique per (season, number).

    title / release_date / duration are refreshed with coalesce semantics:
    a later, poorer payload never overwrites a known value with NULL.
    """
    __tablename__ = "episodes_catalog"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    season_catalog_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("seasons_catalog.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    number = Column(Integer, nullable=False)
    title = Column(String(500), nullable=True)
    release_date = Column(Date, nullable=True)
    duration = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("season_catalog_id", "number", name="uq_episodes_catalog_season_number"),
    )

    season = relationship("CatalogSeason", back_populates="episodes")

    def __repr__(self) -> str:
        return f"<CatalogEpisode id={self.id} season={self.season_catalog_id} number={self.number}>"


# ── Overlays ──────────────────────────────────────────────────────────────────

class OverlayMixin:
    """Ownership + timestamp columns shared by every per-user overlay table."""

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    @declared_attr
    def user_id(cls):
        return Column(
            Uuid(as_uuid=True),
            ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )


class UserFilm(OverlayMixin, Base):
    """A user's rating / opinion / status on a shared catalog film."""
    __tablename__ = "user_films"

    film_catalog_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("films_catalog.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    my_rating = Column(Float, nullable=True)
    opinion = Column(Text, nullable=True)
    status = Column(String(64), nullable=True)

    __table_args__ = (
        # Backstop for the application-level duplicate check
        UniqueConstraint("user_id", "film_catalog_id", name="uq_user_films_user_catalog"),
        CheckConstraint(
            "my_rating IS NULL OR (my_rating >= 0 AND my_rating <= 10)",
            name="chk_user_films_my_rating_0_10",
        ),
    )

    catalog = relationship("CatalogFilm")

    def __repr__(self) -> str:
        return f"<UserFilm id={self.id} user={self.user_id} catalog={self.film_catalog_id}>"


class UserSeries(OverlayMixin, Base):
    """A user's rating / opinion / status on a shared catalog series."""
    __tablename__ = "user_series"

    series_catalog_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("series_catalog.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    my_rating = Column(Float, nullable=True)
    opinion = Column(Text, nullable=True)
    status = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "series_catalog_id", name="uq_user_series_user_catalog"),
        CheckConstraint(
            "my_rating IS NULL OR (my_rating >= 0 AND my_rating <= 10)",
            name="chk_user_series_my_rating_0_10",
        ),
    )

    catalog = relationship("CatalogSeries")

    def __repr__(self) -> str:
        return f"<UserSeries id={self.id} user={self.user_id} catalog={self.series_catalog_id}>"


class UserSeason(OverlayMixin, Base):
    """Watched flag for one catalog season, per user."""
    __tablename__ = "user_seasons"

    season_catalog_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("seasons_catalog.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    watched = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "season_catalog_id", name="uq_user_seasons_user_catalog"),
    )

    catalog = relationship("CatalogSeason")

    def __repr__(self) -> str:
        return f"<UserSeason id={self.id} user={self.user_id} watched={self.watched}>"


class UserEpisode(OverlayMixin, Base):
    """Watched flag for one catalog episode, per user."""
    __tablename__ = "user_episodes"

    episode_catalog_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("episodes_catalog.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    watched = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        # Conflict target of the season fan-out upsert
        UniqueConstraint("user_id", "episode_catalog_id", name="uq_user_episodes_user_catalog"),
    )

    catalog = relationship("CatalogEpisode")

    def __repr__(self) -> str:
        return f"<UserEpisode id={self.id} user={self.user_id} watched={self.watched}>"
