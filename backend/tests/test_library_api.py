import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from fastapi.testclient import TestClient
from harness import FakeEnricher, dark_seasons, make_session_factory, make_user

from app.core.security import create_access_token
from app.db.session import get_db
from app.deps.auth import get_current_user
from app.main import app
from app.schemas.enrichment import EnrichedMetadata
from app.services.errors import DuplicateOverlayError, ForbiddenError
from app.services.kinopoisk_client import get_enricher
from app.services.stats_cache import StatsCache


def _fake_item(**overrides) -> dict:
    now = datetime.now(timezone.utc)
    base = {
        "id": uuid4(),
        "catalog_id": uuid4(),
        "user_id": uuid4(),
        "title": "Stalker",
        "year": 1979,
        "kp_id": 43911,
        "description": None,
        "poster_url": None,
        "poster_url_preview": None,
        "logo_url": None,
        "web_url": None,
        "rating": None,
        "rating_kinopoisk": 8.1,
        "is_series": False,
        "episodes_count": None,
        "seasons_count": None,
        "genres": ["драма"],
        "actors": None,
        "director": "Андрей Тарковский",
        "budget": None,
        "budget_currency_code": None,
        "budget_currency_symbol": None,
        "revenue": None,
        "film_length": 161,
        "my_rating": 10.0,
        "opinion": None,
        "status": "watched",
        "created_at": now,
        "updated_at": now,
    }
    base.update(overrides)
    return base


class TestLibraryApiContracts(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)
        app.dependency_overrides[get_db] = lambda: iter([object()])
        app.dependency_overrides[get_enricher] = lambda: None

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _login(self) -> None:
        app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=uuid4())

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_create_requires_auth(self) -> None:
        response = self.client.post("/films", json={"title": "Stalker"})
        self.assertEqual(response.status_code, 401)

    def test_create_rejects_blank_title(self) -> None:
        self._login()
        response = self.client.post("/films", json={"title": "   "})
        self.assertEqual(response.status_code, 422)

    def test_create_success(self) -> None:
        self._login()
        with patch(
            "app.services.library_service.create_item",
            new=AsyncMock(return_value=_fake_item()),
        ) as create_mock:
            response = self.client.post("/films", json={"title": "Stalker", "my_rating": 10})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["director"], "Андрей Тарковский")
        self.assertEqual(create_mock.await_args.args[3].title, "Stalker")

    def test_duplicate_maps_to_409_envelope(self) -> None:
        self._login()
        with patch(
            "app.services.library_service.create_item",
            new=AsyncMock(side_effect=DuplicateOverlayError("This series is already in your library")),
        ):
            response = self.client.post("/series", json={"title": "Dark"})

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["detail"]["error"]["code"], "DUPLICATE_SERIES")

    def test_get_missing_returns_404(self) -> None:
        with patch("app.services.library_service.get_item", return_value=None):
            response = self.client.get(f"/films/{uuid4()}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"]["error"]["code"], "FILM_NOT_FOUND")

    def test_anonymous_list_is_allowed(self) -> None:
        with patch(
            "app.services.library_service.list_items",
            return_value={"items": [], "total": 0, "limit": 50, "offset": 0, "has_more": False},
        ) as list_mock:
            response = self.client.get("/films", params={"status": "watched"})

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(list_mock.call_args.args[2])
        self.assertEqual(list_mock.call_args.kwargs["status"], "watched")

    def test_patch_forwards_only_sent_fields(self) -> None:
        self._login()
        with patch(
            "app.services.library_service.update_item",
            return_value=_fake_item(opinion="Slow and perfect"),
        ) as update_mock:
            response = self.client.patch(f"/films/{uuid4()}", json={"opinion": "Slow and perfect"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(update_mock.call_args.args[4], {"opinion": "Slow and perfect"})

    def test_foreign_season_is_opaque_404(self) -> None:
        self._login()
        with patch(
            "app.services.season_service.mark_season_watched",
            side_effect=ForbiddenError("Season not found in your library"),
        ):
            response = self.client.patch(f"/seasons/{uuid4()}/watched", json={"watched": True})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"]["error"]["code"], "SEASON_NOT_FOUND")

    def test_invalid_token_is_rejected(self) -> None:
        response = self.client.get("/films", headers={"Authorization": "Bearer not-a-jwt"})
        self.assertEqual(response.status_code, 401)


class TestLibraryApiFlow(unittest.TestCase):
    """End-to-end through the real routers on an in-memory database."""

    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.user = make_user(self.db, "alice")
        self.headers = {"Authorization": f"Bearer {create_access_token(self.user.id)}"}
        self.enricher = FakeEnricher(
            details={
                1047883: EnrichedMetadata(
                    kp_id=1047883, year=2017, film_length=55, episodes_count=26, is_series=True
                ),
            },
            seasons={1047883: dark_seasons()},
        )
        app.dependency_overrides[get_db] = lambda: self.db
        app.dependency_overrides[get_enricher] = lambda: self.enricher
        self._saved_cache = app.state.stats_cache
        app.state.stats_cache = StatsCache(ttl_seconds=60)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        app.state.stats_cache = self._saved_cache
        self.db.close()

    def test_series_watch_flow(self) -> None:
        created = self.client.post(
            "/series", json={"title": "Dark", "kp_id": 1047883, "my_rating": 9}, headers=self.headers
        )
        self.assertEqual(created.status_code, 201)
        series_id = created.json()["id"]

        again = self.client.post("/series", json={"title": "Dark", "kp_id": 1047883}, headers=self.headers)
        self.assertEqual(again.status_code, 409)

        seasons = self.client.get(f"/series/{series_id}/seasons", headers=self.headers).json()
        self.assertEqual([s["number"] for s in seasons], [1, 2, 3])

        marked = self.client.patch(
            f"/seasons/{seasons[0]['id']}/watched", json={"watched": True}, headers=self.headers
        )
        self.assertEqual(marked.status_code, 200)
        self.assertTrue(marked.json()["watched"])

        episodes = self.client.get(f"/seasons/{seasons[0]['id']}/episodes", headers=self.headers).json()
        self.assertEqual(len(episodes), 10)
        self.assertTrue(all(e["watched"] for e in episodes))

        summary = self.client.get("/stats/me/summary", headers=self.headers).json()
        self.assertEqual(summary["series"], 1)
        self.assertEqual(summary["watched_episodes"], 10)
        self.assertEqual(summary["series_duration_minutes"], 55 * 26)

        deleted = self.client.delete(f"/series/{series_id}", headers=self.headers)
        self.assertEqual(deleted.status_code, 204)

        summary = self.client.get("/stats/me/summary", headers=self.headers).json()
        self.assertEqual(summary["series"], 0)
        self.assertEqual(summary["total_episodes"], 0)

    def test_anonymous_reads_see_nothing(self) -> None:
        self.client.post("/films", json={"title": "Mirror"}, headers=self.headers)

        page = self.client.get("/films")
        self.assertEqual(page.status_code, 200)
        self.assertEqual(page.json()["total"], 0)

        mine = self.client.get("/films", headers=self.headers).json()
        self.assertEqual(mine["total"], 1)
        self.assertEqual(self.client.get(f"/films/{mine['items'][0]['id']}").status_code, 404)
