"""Initial schema — users, shared catalog tables, per-user overlays

Revision ID: 0001
Revises: —
Create Date: 2026-10-17 00:00:00
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OVERLAY_TABLES = ("user_films", "user_series", "user_seasons", "user_episodes")


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.text("now()")),
    ]
    if with_updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True),
                      nullable=False, server_default=sa.text("now()"))
        )
    return columns


def _catalog_columns() -> list[sa.Column]:
    return [
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("gen_random_uuid()")),
        # External provider id; NULLs never collide under the unique index
        sa.Column("kp_id", sa.Integer, nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("year", sa.Integer, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("poster_url", sa.String(1000), nullable=True),
        sa.Column("poster_url_preview", sa.String(1000), nullable=True),
        sa.Column("logo_url", sa.String(1000), nullable=True),
        sa.Column("web_url", sa.String(1000), nullable=True),
        sa.Column("rating", sa.Float, nullable=True),
        sa.Column("rating_kinopoisk", sa.Float, nullable=True),
        sa.Column("genres", JSONB, nullable=True),
        sa.Column("actors", JSONB, nullable=True),
        sa.Column("director", sa.String(255), nullable=True),
        sa.Column("budget", sa.BigInteger, nullable=True),
        sa.Column("budget_currency_code", sa.String(8), nullable=True),
        sa.Column("budget_currency_symbol", sa.String(8), nullable=True),
        sa.Column("revenue", sa.BigInteger, nullable=True),
        sa.Column("film_length", sa.Integer, nullable=True),
        sa.Column("is_series", sa.Boolean, nullable=True),
        sa.Column("episodes_count", sa.Integer, nullable=True),
        sa.Column("seasons_count", sa.Integer, nullable=True),
        *_timestamps(with_updated=False),
    ]


def _overlay_columns() -> list[sa.Column]:
    return [
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID(as_uuid=True),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        *_timestamps(),
    ]


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────────
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ── Trigger function (auto-update updated_at) ─────────────────────────────
    op.execute("""
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
          NEW.updated_at = now();
          RETURN NEW;
        END;
        $$
    """)

    # ── users ─────────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("username", sa.String(32), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # ── Catalog: films / series ───────────────────────────────────────────────
    for table in ("films_catalog", "series_catalog"):
        op.create_table(table, *_catalog_columns())
        op.create_index(f"ix_{table}_kp_id", table, ["kp_id"], unique=True)
        op.create_index(f"ix_{table}_title", table, ["title"])
        op.create_index(f"idx_{table}_title_year", table, ["title", "year"])

    # ── Catalog: seasons / episodes ───────────────────────────────────────────
    op.create_table(
        "seasons_catalog",
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("series_catalog_id", UUID(as_uuid=True),
                  sa.ForeignKey("series_catalog.id", ondelete="CASCADE"), nullable=False),
        sa.Column("number", sa.Integer, nullable=False),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("series_catalog_id", "number", name="uq_seasons_catalog_series_number"),
    )
    op.create_index("ix_seasons_catalog_series_catalog_id", "seasons_catalog", ["series_catalog_id"])

    op.create_table(
        "episodes_catalog",
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("season_catalog_id", UUID(as_uuid=True),
                  sa.ForeignKey("seasons_catalog.id", ondelete="CASCADE"), nullable=False),
        sa.Column("number", sa.Integer, nullable=False),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("release_date", sa.Date, nullable=True),
        sa.Column("duration", sa.Integer, nullable=True),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("season_catalog_id", "number", name="uq_episodes_catalog_season_number"),
    )
    op.create_index("ix_episodes_catalog_season_catalog_id", "episodes_catalog", ["season_catalog_id"])

    # ── Overlays ──────────────────────────────────────────────────────────────
    op.create_table(
        "user_films",
        *_overlay_columns(),
        sa.Column("film_catalog_id", UUID(as_uuid=True),
                  sa.ForeignKey("films_catalog.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("my_rating", sa.Float, nullable=True),
        sa.Column("opinion", sa.Text, nullable=True),
        sa.Column("status", sa.String(64), nullable=True),
        sa.UniqueConstraint("user_id", "film_catalog_id", name="uq_user_films_user_catalog"),
        sa.CheckConstraint(
            "my_rating IS NULL OR (my_rating >= 0 AND my_rating <= 10)",
            name="chk_user_films_my_rating_0_10",
        ),
    )
    op.create_table(
        "user_series",
        *_overlay_columns(),
        sa.Column("series_catalog_id", UUID(as_uuid=True),
                  sa.ForeignKey("series_catalog.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("my_rating", sa.Float, nullable=True),
        sa.Column("opinion", sa.Text, nullable=True),
        sa.Column("status", sa.String(64), nullable=True),
        sa.UniqueConstraint("user_id", "series_catalog_id", name="uq_user_series_user_catalog"),
        sa.CheckConstraint(
            "my_rating IS NULL OR (my_rating >= 0 AND my_rating <= 10)",
            name="chk_user_series_my_rating_0_10",
        ),
    )
    op.create_table(
        "user_seasons",
        *_overlay_columns(),
        sa.Column("season_catalog_id", UUID(as_uuid=True),
                  sa.ForeignKey("seasons_catalog.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("watched", sa.Boolean, nullable=False, server_default="false"),
        sa.UniqueConstraint("user_id", "season_catalog_id", name="uq_user_seasons_user_catalog"),
    )
    op.create_table(
        "user_episodes",
        *_overlay_columns(),
        sa.Column("episode_catalog_id", UUID(as_uuid=True),
                  sa.ForeignKey("episodes_catalog.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("watched", sa.Boolean, nullable=False, server_default="false"),
        # Conflict target of the season fan-out upsert
        sa.UniqueConstraint("user_id", "episode_catalog_id", name="uq_user_episodes_user_catalog"),
    )

    fk_by_table = {
        "user_films": "film_catalog_id",
        "user_series": "series_catalog_id",
        "user_seasons": "season_catalog_id",
        "user_episodes": "episode_catalog_id",
    }
    for table in OVERLAY_TABLES:
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])
        op.create_index(f"ix_{table}_{fk_by_table[table]}", table, [fk_by_table[table]])

    for table in ("users", *OVERLAY_TABLES):
        op.execute(f"""
            CREATE TRIGGER trg_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW EXECUTE FUNCTION set_updated_at()
        """)


def downgrade() -> None:
    # Drop in reverse dependency order
    for table in reversed(OVERLAY_TABLES):
        op.drop_table(table)
    op.drop_table("episodes_catalog")
    op.drop_table("seasons_catalog")
    op.drop_table("series_catalog")
    op.drop_table("films_catalog")
    op.drop_table("users")
    op.execute("DROP FUNCTION IF EXISTS set_updated_at()")
