"""
Kinopoisk Metadata Client
─────────────────────────
Wraps the Kinopoisk unofficial REST API (v1 / v2.1 / v2.2).

Used only while a film or series is added to a library:
  1. Caller supplies a kp_id  → fetch_details_by_id().
  2. Caller supplies a title  → search_best_by_title() (first hit, then details).
  3. Series added             → fetch_season_breakdown() for eager season/episode rows.

"Not found" is never an error: it yields an empty result. Transport failures,
timeouts after retries and a missing API key raise EnrichmentUnavailableError,
which the catalog resolver swallows.
"""
import asyncio
import logging
import re
from typing import Any

import httpx

from app.core.config import settings
from app.schemas.enrichment import EnrichedEpisode, EnrichedMetadata, EnrichedSeason

logger = logging.getLogger(__name__)

RETRY_DELAY_SECONDS = 1.0
MAX_ACTORS = 10
SERIES_TYPES = {"TV_SERIES", "MINI_SERIES", "TV_SHOW"}

# Poster URLs served by the provider embed the film id: .../kp/326.jpg
_POSTER_ID_RE = re.compile(r"/kp/(\d+)\.(?:jpg|jpeg|png|webp)", re.IGNORECASE)


class EnrichmentUnavailableError(Exception):
    """Raised when the metadata provider cannot be reached or is not configured."""


def extract_kp_id_from_poster_url(poster_url: str | None) -> int | None:
    """Return the provider id embedded in a poster URL, if any."""
    if not poster_url:
        return None
    match = _POSTER_ID_RE.search(poster_url)
    if match is None:
        return None
    kp_id = int(match.group(1))
    return kp_id if kp_id > 0 else None


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _as_text(value: Any) -> str | None:
    return value.strip() or None if isinstance(value, str) else None


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def _as_minutes(value: Any) -> int | None:
    """Film length comes as 107 from v2.2 and as "1:47" from v2.1 search."""
    if isinstance(value, str) and ":" in value:
        hours, _, minutes = value.partition(":")
        h, m = _as_int(hours), _as_int(minutes)
        if h is None or m is None:
            return None
        return h * 60 + m
    return _as_int(value)


def _genre_names(raw: dict) -> list[str] | None:
    names = [g.get("genre") for g in raw.get("genres") or [] if g.get("genre")]
    return names or None


def _is_series(raw: dict) -> bool:
    return raw.get("type") in SERIES_TYPES or raw.get("serial") is True


class KinopoiskService:
    """
    Thin async wrapper around the Kinopoisk unofficial API.
    Uses httpx for HTTP; every request is bounded by a timeout.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.KINOPOISK_API_KEY
        self.base_url = (base_url or settings.KINOPOISK_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.KINOPOISK_TIMEOUT_SECONDS
        self.retries = retries if retries is not None else settings.KINOPOISK_RETRIES
        self._transport = transport

    # ── HTTP ──────────────────────────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        return {
            "X-API-KEY": self.api_key,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _get_json(self, path: str, params: dict | None = None) -> Any | None:
        """
        GET *path* and decode JSON.

        Returns None for 404. Timeouts are retried up to self.retries times.
        """
        if not self.api_key:
            raise EnrichmentUnavailableError("KINOPOISK_API_KEY is not set")

        attempt = 0
        while True:
            try:
                async with httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    headers=self._headers(),
                    transport=self._transport,
                ) as client:
                    response = await client.get(path, params=params)
                break
            except httpx.TimeoutException as exc:
                if attempt >= self.retries:
                    raise EnrichmentUnavailableError(f"Kinopoisk request timed out: {path}") from exc
                attempt += 1
                logger.warning(
                    "Kinopoisk request timed out, retrying (%s/%s): %s",
                    attempt,
                    self.retries,
                    path,
                )
                await asyncio.sleep(RETRY_DELAY_SECONDS)
            except httpx.RequestError as exc:
                raise EnrichmentUnavailableError(f"Kinopoisk request failed: {path}") from exc

        if response.status_code == 404:
            return None
        if response.is_error:
            raise EnrichmentUnavailableError(
                f"Kinopoisk request {path} failed with status {response.status_code}"
            )
        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise EnrichmentUnavailableError(f"Kinopoisk returned invalid JSON for {path}") from exc

    # ── Sub-resources ─────────────────────────────────────────────────────────

    async def _fetch_staff(self, kp_id: int) -> tuple[str | None, list[str] | None]:
        """Return (director, actors) from the staff endpoint."""
        staff = await self._get_json("/api/v1/staff", params={"filmId": kp_id})
        if not isinstance(staff, list):
            return None, None

        def _name(person: dict) -> str | None:
            return person.get("nameRu") or person.get("nameEn") or None

        directors = [_name(p) for p in staff if p.get("professionKey") == "DIRECTOR"]
        actors = [_name(p) for p in staff if p.get("professionKey") == "ACTOR"]
        directors = [d for d in directors if d]
        actors = [a for a in actors if a][:MAX_ACTORS]
        return (directors[0] if directors else None), (actors or None)

    async def _fetch_budget(self, kp_id: int) -> tuple[int | None, str | None, str | None]:
        """Return (amount, currency code, currency symbol) from box office data."""
        data = await self._get_json(f"/api/v2.2/films/{kp_id}/box_office")
        items = data.get("items") if isinstance(data, dict) else None
        budget = next((i for i in items or [] if i.get("type") == "BUDGET"), None)
        if budget is None:
            return None, None, None
        return _as_int(budget.get("amount")), budget.get("currencyCode"), budget.get("symbol")

    # ── Public API ────────────────────────────────────────────────────────────

    async def fetch_details_by_id(self, kp_id: int) -> EnrichedMetadata:
        """Fetch full details for a film or series including staff and budget."""
        if not kp_id:
            return EnrichedMetadata()

        detail = await self._get_json(f"/api/v2.2/films/{kp_id}")
        if not isinstance(detail, dict):
            return EnrichedMetadata()

        staff, box_office = await asyncio.gather(
            self._fetch_staff(kp_id),
            self._fetch_budget(kp_id),
            return_exceptions=True,
        )
        if isinstance(staff, Exception):
            logger.warning("Kinopoisk staff lookup failed for %s: %s", kp_id, staff)
            staff = (None, None)
        if isinstance(box_office, Exception):
            logger.warning("Kinopoisk box office lookup failed for %s: %s", kp_id, box_office)
            box_office = (None, None, None)

        return self._map_details(detail, kp_id, staff, box_office)

    async def search_best_by_title(self, title: str) -> EnrichedMetadata:
        """
        Search by keyword and return metadata for the first hit.

        When the hit carries an id (directly or inside its poster URL) the
        full details are fetched; otherwise the search row itself is mapped.
        """
        cleaned = title.strip()
        if not cleaned:
            return EnrichedMetadata()

        data = await self._get_json(
            "/api/v2.1/films/search-by-keyword",
            params={"keyword": cleaned, "page": 1},
        )
        films = data.get("films") if isinstance(data, dict) else None
        if not films:
            return EnrichedMetadata()

        best = films[0]
        kp_id = (
            _as_int(best.get("kinopoiskId"))
            or _as_int(best.get("filmId"))
            or extract_kp_id_from_poster_url(best.get("posterUrl") or best.get("posterUrlPreview"))
        )
        if kp_id:
            details = await self.fetch_details_by_id(kp_id)
            if not details.is_empty:
                return details
        return self._map_search_item(best, kp_id)

    async def fetch_season_breakdown(self, kp_id: int) -> list[EnrichedSeason]:
        """Return seasons with their episodes; empty list when unknown."""
        if not kp_id:
            return []
        data = await self._get_json(f"/api/v2.2/films/{kp_id}/seasons")
        items = data.get("items") if isinstance(data, dict) else None
        if not items or not isinstance(items, list):
            return []

        seasons: list[EnrichedSeason] = []
        for raw_season in items:
            if not isinstance(raw_season, dict):
                continue
            raw_episodes = raw_season.get("episodes")
            episodes = [
                EnrichedEpisode(
                    number=_as_int(e.get("episodeNumber")),
                    title=_as_text(e.get("nameRu")) or _as_text(e.get("nameEn")),
                    release_date=_as_text(e.get("releaseDate")),
                    duration=_as_int(e.get("episodeLength") or e.get("duration")),
                )
                for e in (raw_episodes if isinstance(raw_episodes, list) else [])
                if isinstance(e, dict)
            ]
            seasons.append(EnrichedSeason(number=_as_int(raw_season.get("number")), episodes=episodes))
        return seasons

    # ── Mapping ───────────────────────────────────────────────────────────────

    def _map_details(
        self,
        raw: dict,
        kp_id: int,
        staff: tuple[str | None, list[str] | None],
        box_office: tuple[int | None, str | None, str | None],
    ) -> EnrichedMetadata:
        """Normalize a /api/v2.2/films/{id} payload."""
        director, actors = staff
        budget_amount, currency_code, currency_symbol = box_office

        episodes_count = next(
            (
                _as_int(raw.get(key))
                for key in ("episodesLength", "serialEpisodesNumber", "serialEpisodesCount", "totalEpisodes")
                if raw.get(key) is not None
            ),
            None,
        )
        seasons = raw.get("seasons")
        seasons_count = (
            len(seasons) if isinstance(seasons, list)
            else _as_int(raw.get("serialSeasonsNumber") or raw.get("totalSeasons"))
        )
        # For series, the per-episode length is what counts toward watch time
        length = raw.get("episodeLength") or raw.get("seriesLength") or raw.get("filmLength")

        return EnrichedMetadata(
            kp_id=_as_int(raw.get("kinopoiskId")) or kp_id,
            title=raw.get("nameRu") or raw.get("nameEn") or raw.get("nameOriginal"),
            year=_as_int(raw.get("year")) or _as_int(raw.get("startYear")),
            description=raw.get("description"),
            poster_url=raw.get("posterUrl") or raw.get("posterUrlPreview"),
            poster_url_preview=raw.get("posterUrlPreview") or raw.get("posterUrl"),
            logo_url=raw.get("logoUrl"),
            web_url=raw.get("webUrl"),
            rating_kinopoisk=_as_float(raw.get("ratingKinopoisk")),
            is_series=_is_series(raw),
            episodes_count=episodes_count,
            seasons_count=seasons_count,
            genres=_genre_names(raw),
            director=director,
            actors=actors,
            budget=_as_int(raw.get("budget")) or budget_amount,
            budget_currency_code=currency_code,
            budget_currency_symbol=currency_symbol,
            film_length=_as_minutes(length),
        )

    def _map_search_item(self, raw: dict, kp_id: int | None) -> EnrichedMetadata:
        """Normalize a /api/v2.1/films/search-by-keyword row."""
        return EnrichedMetadata(
            kp_id=kp_id,
            title=raw.get("nameRu") or raw.get("nameEn"),
            year=_as_int(raw.get("year")),
            description=raw.get("description"),
            poster_url=raw.get("posterUrl") or raw.get("posterUrlPreview"),
            poster_url_preview=raw.get("posterUrlPreview") or raw.get("posterUrl"),
            rating_kinopoisk=_as_float(raw.get("rating")),
            is_series=_is_series(raw),
            genres=_genre_names(raw),
            film_length=_as_minutes(raw.get("filmLength")),
        )


def get_enricher() -> KinopoiskService | None:
    """FastAPI dependency returning the metadata client, or None when no API key is configured."""
    if not settings.KINOPOISK_API_KEY:
        return None
    return KinopoiskService()
