import unittest
from unittest.mock import AsyncMock, patch

from sqlalchemy.exc import SQLAlchemyError
from harness import FakeEnricher, count_rows, dark_seasons, make_session_factory, make_user

from app.db.models import (
    CatalogEpisode,
    CatalogSeason,
    CatalogSeries,
    UserEpisode,
    UserSeason,
    UserSeries,
)
from app.schemas.enrichment import EnrichedEpisode, EnrichedMetadata, EnrichedSeason
from app.schemas.library import MediaCreateRequest
from app.schemas.seasons import EpisodeCreateRequest, EpisodeUpdateRequest
from app.services import episode_service, hierarchy_service, library_service, season_service
from app.services.errors import ForbiddenError
from app.services.library_service import SERIES
from app.services.stats_cache import SUMMARY, StatsCache

DARK_KP_ID = 1047883


class SeriesTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.user = make_user(self.db, "alice")
        self.other = make_user(self.db, "bob")
        self.cache = StatsCache(ttl_seconds=60)
        self.enricher = FakeEnricher(
            search={
                "dark": EnrichedMetadata(
                    kp_id=DARK_KP_ID,
                    title="Тьма",
                    year=2017,
                    is_series=True,
                    film_length=55,
                    episodes_count=26,
                    seasons_count=3,
                ),
            },
            seasons={DARK_KP_ID: dark_seasons()},
        )

    def tearDown(self) -> None:
        self.db.close()

    async def add_dark(self, user):
        return await library_service.create_item(
            self.db,
            SERIES,
            user.id,
            MediaCreateRequest(title="Dark", year=2017),
            enricher=self.enricher,
            stats_cache=self.cache,
        )

    def seasons(self, user, series):
        return season_service.list_seasons(self.db, series["id"], user.id)

    def episodes(self, user, season):
        return episode_service.list_episodes(self.db, season["id"], user.id)


class TestMaterialization(SeriesTestCase):
    async def test_dark_scenario(self) -> None:
        series = await self.add_dark(self.user)

        self.assertEqual(series["kp_id"], DARK_KP_ID)
        self.assertEqual(count_rows(self.db, CatalogSeries), 1)
        self.assertEqual(count_rows(self.db, CatalogSeason), 3)
        self.assertEqual(count_rows(self.db, UserSeason, UserSeason.user_id == self.user.id), 3)
        self.assertEqual(count_rows(self.db, UserEpisode, UserEpisode.user_id == self.user.id), 26)

        seasons = self.seasons(self.user, series)
        self.assertEqual([s["number"] for s in seasons], [1, 2, 3])
        self.assertTrue(all(s["id"] is not None and not s["watched"] for s in seasons))

        first_season = self.episodes(self.user, seasons[0])
        self.assertEqual([e["number"] for e in first_season], list(range(1, 11)))
        self.assertTrue(all(e["id"] is not None and not e["watched"] for e in first_season))
        self.assertEqual(first_season[0]["title"], "S1E1")
        self.assertEqual(str(first_season[0]["release_date"]), "2017-12-01")

        result = season_service.mark_season_watched(
            self.db, seasons[0]["id"], True, self.user.id, stats_cache=self.cache
        )
        self.assertTrue(result["watched"])
        self.assertTrue(all(e["watched"] for e in self.episodes(self.user, seasons[0])))
        self.assertFalse(any(e["watched"] for e in self.episodes(self.user, seasons[1])))

    async def test_second_user_reuses_catalog_hierarchy(self) -> None:
        await self.add_dark(self.user)
        series = await self.add_dark(self.other)

        self.assertEqual(count_rows(self.db, CatalogSeries), 1)
        self.assertEqual(count_rows(self.db, CatalogSeason), 3)
        self.assertEqual(count_rows(self.db, CatalogEpisode), 26)
        self.assertEqual(count_rows(self.db, UserEpisode, UserEpisode.user_id == self.other.id), 26)
        self.assertEqual(len(self.seasons(self.other, series)), 3)

    async def test_malformed_entries_are_skipped(self) -> None:
        seasons = [
            EnrichedSeason(number=None, episodes=[EnrichedEpisode(number=1)]),
            EnrichedSeason(number=1, episodes=[EnrichedEpisode(number=None), EnrichedEpisode(number=2)]),
        ]
        series = await library_service.create_item(
            self.db,
            SERIES,
            self.user.id,
            MediaCreateRequest(title="Patchy", kp_id=7),
            enricher=FakeEnricher(seasons={7: seasons}),
            stats_cache=self.cache,
        )

        listed = self.seasons(self.user, series)
        self.assertEqual([s["number"] for s in listed], [1])
        self.assertEqual([e["number"] for e in self.episodes(self.user, listed[0])], [2])

    async def test_materialization_failure_keeps_series(self) -> None:
        series = await library_service.create_item(
            self.db,
            SERIES,
            self.user.id,
            MediaCreateRequest(title="Offline", kp_id=8),
            enricher=FakeEnricher(unavailable=True),
            stats_cache=self.cache,
        )

        self.assertIsNotNone(library_service.get_item(self.db, SERIES, series["id"], self.user.id))
        self.assertEqual(self.seasons(self.user, series), [])

    async def test_enriched_id_used_when_matched_row_has_none(self) -> None:
        await library_service.create_item(
            self.db,
            SERIES,
            self.user.id,
            MediaCreateRequest(title="Dark", year=2017),
            enricher=FakeEnricher(unavailable=True),
            stats_cache=self.cache,
        )
        self.assertIsNone(self.db.query(CatalogSeries.kp_id).scalar())

        series = await self.add_dark(self.other)

        self.assertEqual(count_rows(self.db, CatalogSeries), 1)
        self.assertIn(("seasons", DARK_KP_ID), self.enricher.calls)
        self.assertEqual(count_rows(self.db, UserSeason, UserSeason.user_id == self.other.id), 3)
        self.assertEqual(count_rows(self.db, UserEpisode, UserEpisode.user_id == self.other.id), 26)
        self.assertEqual(len(self.seasons(self.other, series)), 3)

    async def test_failed_season_is_rolled_back_alone(self) -> None:
        real_find_or_create_episode = hierarchy_service.find_or_create_episode

        def fail_mid_season_two(db, season_catalog_id, number, **fields):
            if fields.get("title") == "S2E3":
                raise SQLAlchemyError("disk full")
            return real_find_or_create_episode(db, season_catalog_id, number, **fields)

        with patch(
            "app.services.hierarchy_service.find_or_create_episode",
            side_effect=fail_mid_season_two,
        ):
            series = await self.add_dark(self.user)

        self.assertIsNotNone(library_service.get_item(self.db, SERIES, series["id"], self.user.id))
        self.assertEqual([s["number"] for s in self.seasons(self.user, series)], [1, 3])
        self.assertEqual(count_rows(self.db, CatalogSeason), 2)
        self.assertEqual(count_rows(self.db, CatalogEpisode), 18)
        self.assertEqual(count_rows(self.db, UserSeason, UserSeason.user_id == self.user.id), 2)
        self.assertEqual(count_rows(self.db, UserEpisode, UserEpisode.user_id == self.user.id), 18)

    async def test_unexpected_breakdown_error_still_invalidates_stats(self) -> None:
        self.cache.get(self.user.id, SUMMARY, lambda: "before")
        self.enricher.fetch_season_breakdown = AsyncMock(side_effect=RuntimeError("boom"))

        with self.assertRaises(RuntimeError):
            await self.add_dark(self.user)

        self.assertEqual(count_rows(self.db, UserSeries, UserSeries.user_id == self.user.id), 1)
        self.assertEqual(self.cache.get(self.user.id, SUMMARY, lambda: "after"), "after")

    async def test_rematerializing_is_idempotent(self) -> None:
        series = await self.add_dark(self.user)

        hierarchy_service.materialize_seasons(
            self.db, self.user.id, series["catalog_id"], dark_seasons()
        )

        self.assertEqual(count_rows(self.db, UserSeason, UserSeason.user_id == self.user.id), 3)
        self.assertEqual(count_rows(self.db, UserEpisode, UserEpisode.user_id == self.user.id), 26)


class TestWatchedPropagation(SeriesTestCase):
    async def test_season_fan_out_is_idempotent(self) -> None:
        series = await self.add_dark(self.user)
        season = self.seasons(self.user, series)[0]

        for _ in range(2):
            season_service.mark_season_watched(
                self.db, season["id"], True, self.user.id, stats_cache=self.cache
            )

        self.assertEqual(count_rows(self.db, UserEpisode, UserEpisode.user_id == self.user.id), 26)
        self.assertEqual(
            count_rows(
                self.db, UserEpisode, UserEpisode.user_id == self.user.id, UserEpisode.watched.is_(True)
            ),
            10,
        )

    async def test_fan_out_creates_missing_episode_overlays(self) -> None:
        series = await self.add_dark(self.user)
        season = self.seasons(self.user, series)[0]
        first_episode = self.episodes(self.user, season)[0]
        episode_service.delete_episode(self.db, first_episode["id"], self.user.id, stats_cache=self.cache)

        self.assertIsNone(self.episodes(self.user, season)[0]["id"])

        season_service.mark_season_watched(
            self.db, season["id"], True, self.user.id, stats_cache=self.cache
        )
        restored = self.episodes(self.user, season)[0]
        self.assertIsNotNone(restored["id"])
        self.assertTrue(restored["watched"])

    async def test_unwatch_then_rewatch_season(self) -> None:
        series = await self.add_dark(self.user)
        season = self.seasons(self.user, series)[0]

        season_service.mark_season_watched(self.db, season["id"], True, self.user.id, stats_cache=self.cache)
        season_service.mark_season_watched(self.db, season["id"], False, self.user.id, stats_cache=self.cache)

        self.assertFalse(any(e["watched"] for e in self.episodes(self.user, season)))

        season_service.mark_season_watched(self.db, season["id"], True, self.user.id, stats_cache=self.cache)
        self.assertTrue(all(e["watched"] for e in self.episodes(self.user, season)))

    async def test_episode_changes_never_roll_up(self) -> None:
        series = await self.add_dark(self.user)
        watched_season, fresh_season = self.seasons(self.user, series)[:2]

        season_service.mark_season_watched(
            self.db, watched_season["id"], True, self.user.id, stats_cache=self.cache
        )
        episode = self.episodes(self.user, watched_season)[3]
        episode_service.mark_episode_watched(self.db, episode["id"], False, self.user.id, stats_cache=self.cache)

        self.assertTrue(self.seasons(self.user, series)[0]["watched"])

        for episode in self.episodes(self.user, fresh_season):
            episode_service.mark_episode_watched(
                self.db, episode["id"], True, self.user.id, stats_cache=self.cache
            )
        self.assertFalse(self.seasons(self.user, series)[1]["watched"])

    async def test_fan_out_is_scoped_to_the_caller(self) -> None:
        mine = await self.add_dark(self.user)
        theirs = await self.add_dark(self.other)

        season_service.mark_season_watched(
            self.db, self.seasons(self.user, mine)[0]["id"], True, self.user.id, stats_cache=self.cache
        )

        their_season = self.seasons(self.other, theirs)[0]
        self.assertFalse(their_season["watched"])
        self.assertFalse(any(e["watched"] for e in self.episodes(self.other, their_season)))

    async def test_foreign_season_is_forbidden(self) -> None:
        series = await self.add_dark(self.user)
        season = self.seasons(self.user, series)[0]

        with self.assertRaises(ForbiddenError):
            season_service.mark_season_watched(
                self.db, season["id"], True, self.other.id, stats_cache=self.cache
            )
        self.assertIsNone(
            episode_service.mark_episode_watched(
                self.db, self.episodes(self.user, season)[0]["id"], True, self.other.id, stats_cache=self.cache
            )
        )


class TestCascadeDelete(SeriesTestCase):
    async def test_series_delete_removes_only_callers_overlays(self) -> None:
        mine = await self.add_dark(self.user)
        await self.add_dark(self.other)

        deleted = library_service.delete_item(
            self.db, SERIES, mine["id"], self.user.id, stats_cache=self.cache
        )

        self.assertTrue(deleted)
        self.assertEqual(count_rows(self.db, UserSeries, UserSeries.user_id == self.user.id), 0)
        self.assertEqual(count_rows(self.db, UserSeason, UserSeason.user_id == self.user.id), 0)
        self.assertEqual(count_rows(self.db, UserEpisode, UserEpisode.user_id == self.user.id), 0)

        self.assertEqual(count_rows(self.db, UserSeason, UserSeason.user_id == self.other.id), 3)
        self.assertEqual(count_rows(self.db, UserEpisode, UserEpisode.user_id == self.other.id), 26)
        self.assertEqual(count_rows(self.db, CatalogSeason), 3)
        self.assertEqual(count_rows(self.db, CatalogEpisode), 26)

    async def test_season_delete_takes_its_episodes(self) -> None:
        series = await self.add_dark(self.user)
        season = self.seasons(self.user, series)[0]

        self.assertTrue(season_service.delete_season(self.db, season["id"], self.user.id, stats_cache=self.cache))

        self.assertEqual(count_rows(self.db, UserSeason, UserSeason.user_id == self.user.id), 2)
        self.assertEqual(count_rows(self.db, UserEpisode, UserEpisode.user_id == self.user.id), 16)
        self.assertIsNone(self.seasons(self.user, series)[0]["id"])


class TestManualSeasonsAndEpisodes(SeriesTestCase):
    async def _add_bare_series(self):
        return await library_service.create_item(
            self.db,
            SERIES,
            self.user.id,
            MediaCreateRequest(title="Twin Peaks", year=1990),
            enricher=None,
            stats_cache=self.cache,
        )

    async def test_create_season_is_idempotent(self) -> None:
        series = await self._add_bare_series()

        first = season_service.create_season(self.db, series["id"], 1, self.user.id, stats_cache=self.cache)
        again = season_service.create_season(self.db, series["id"], 1, self.user.id, stats_cache=self.cache)

        self.assertEqual(first["id"], again["id"])
        self.assertEqual(first["series_id"], series["id"])
        self.assertEqual(count_rows(self.db, CatalogSeason), 1)

    async def test_create_season_on_foreign_series_is_forbidden(self) -> None:
        series = await self._add_bare_series()
        with self.assertRaises(ForbiddenError):
            season_service.create_season(self.db, series["id"], 1, self.other.id, stats_cache=self.cache)

    async def test_episode_create_and_update_coalesce(self) -> None:
        series = await self._add_bare_series()
        season = season_service.create_season(self.db, series["id"], 1, self.user.id, stats_cache=self.cache)

        created = episode_service.create_episode(
            self.db,
            season["id"],
            EpisodeCreateRequest(number=1, title="Pilot", duration=94),
            self.user.id,
            stats_cache=self.cache,
        )
        self.assertEqual(created["season_id"], season["id"])

        again = episode_service.create_episode(
            self.db,
            season["id"],
            EpisodeCreateRequest(number=1, release_date="1990-04-08"),
            self.user.id,
            stats_cache=self.cache,
        )
        self.assertEqual(again["id"], created["id"])
        self.assertEqual(again["title"], "Pilot")
        self.assertEqual(str(again["release_date"]), "1990-04-08")

        updated = episode_service.update_episode(
            self.db, created["id"], EpisodeUpdateRequest(title=None, duration=93), self.user.id
        )
        self.assertEqual(updated["title"], "Pilot")
        self.assertEqual(updated["duration"], 93)

    async def test_update_foreign_episode_returns_none(self) -> None:
        series = await self._add_bare_series()
        season = season_service.create_season(self.db, series["id"], 1, self.user.id, stats_cache=self.cache)
        episode = episode_service.create_episode(
            self.db, season["id"], EpisodeCreateRequest(number=1), self.user.id, stats_cache=self.cache
        )

        self.assertIsNone(
            episode_service.update_episode(
                self.db, episode["id"], EpisodeUpdateRequest(title="Hijack"), self.other.id
            )
        )
        self.assertEqual(episode_service.list_episodes(self.db, season["id"], self.other.id), [])
