# backend/services/tle_service.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import httpx

from config import Settings, get_settings
from errors import AuthError, NetworkError
from services.waterfall import Tier, WaterfallResult, run_waterfall
from tle_store import EMBEDDED_CATALOG_TEXT, TleRecord, contains_tle_line1, parse_catalog
from ttl_cache import TTLCache

logger = logging.getLogger(__name__)

SPACETRACK_BASE = "https://www.space-track.org"
SPACETRACK_LOGIN_URL = f"{SPACETRACK_BASE}/ajaxauth/login"
SPACETRACK_QUERY_URL = (
    SPACETRACK_BASE
    + "/basicspacedata/query/class/gp/orderby/NORAD_CAT_ID%20asc/limit/{limit}/format/3le"
)

# Tags de fuente (viajan en X-Source)
SOURCE_SERVER_CACHE = "HIT_SERVER"
SOURCE_SPACETRACK = "Space-Track-Full"
SOURCE_AMSAT = "AMSAT-Mirror"
SOURCE_CELESTRAK = "CelesTrak"
SOURCE_MIRROR = "Mirror"
SOURCE_EMBEDDED = "Embedded-Fallback"

CACHE_HIT = "HIT_SERVER"
CACHE_MISS = "MISS"

# Space-Track devuelve algo corto (o vacío) cuando la query no trae datos
SPACETRACK_MIN_CHARS = 1000

USER_AGENT = "orbital-data-hub/1.0 (FastAPI; server-cache)"

_CACHE_KEY = "catalog"


@dataclass(frozen=True)
class CachedCatalog:
    text: str
    source: str


@dataclass(frozen=True)
class CatalogResult:
    text: str
    source: str
    cache_status: str
    attempts: List[str] = field(default_factory=list)

    @property
    def cacheable(self) -> bool:
        return self.source != SOURCE_EMBEDDED

    def records(self) -> List[TleRecord]:
        return parse_catalog(self.text)


def mirror_tag(url: str) -> str:
    u = url.lower()
    if "amsat" in u:
        return SOURCE_AMSAT
    if "celestrak" in u:
        return SOURCE_CELESTRAK
    return SOURCE_MIRROR


def spacetrack_payload_ok(text: str) -> bool:
    return len(text) > SPACETRACK_MIN_CHARS


class TleSourceService:
    """
    Waterfall de TLE:
    cache del server -> Space-Track (si hay credenciales) -> espejos -> embebido.

    get_catalog() nunca levanta: el tier embebido siempre responde.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[TTLCache[CachedCatalog]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.cache: TTLCache[CachedCatalog] = cache or TTLCache(
            self.settings.tle_cache_ttl_seconds, clock=clock
        )
        self._transport = transport
        # single-flight: un solo refresh en vuelo; los concurrentes lo comparten
        self._inflight: Optional[asyncio.Future[CatalogResult]] = None
        self._last_attempts: List[str] = []
        self._last_source: Optional[str] = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.upstream_timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT, "Accept": "text/plain,*/*"},
            transport=self._transport,
        )

    async def _get_text(self, client: httpx.AsyncClient, url: str, source: str, **kwargs) -> str:
        try:
            resp = await client.get(url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise NetworkError(str(e), source=source) from e
        return resp.text

    async def _read_server_cache(self) -> Optional[CachedCatalog]:
        return self.cache.get(_CACHE_KEY)

    async def _fetch_spacetrack(self, client: httpx.AsyncClient) -> CachedCatalog:
        logger.info("[TLE] Space-Track: autenticando...")
        try:
            resp = await client.post(
                SPACETRACK_LOGIN_URL,
                data={
                    "identity": self.settings.spacetrack_user,
                    "password": self.settings.spacetrack_pass,
                },
                timeout=self.settings.spacetrack_timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise NetworkError(str(e), source="space-track") from e

        if resp.status_code in (401, 403):
            raise AuthError(f"login rechazado (status={resp.status_code})", source="space-track")
        if resp.is_error:
            raise NetworkError(f"login status={resp.status_code}", source="space-track")
        if "failed" in resp.text.lower():
            raise AuthError("credenciales rechazadas", source="space-track")
        if not client.cookies:
            raise AuthError("login sin cookie de sesión", source="space-track")

        url = SPACETRACK_QUERY_URL.format(limit=self.settings.spacetrack_row_limit)
        text = await self._get_text(
            client, url, source="space-track", timeout=self.settings.spacetrack_timeout_seconds
        )
        logger.info("[TLE] Space-Track respondió %d chars", len(text))
        return CachedCatalog(text=text, source=SOURCE_SPACETRACK)

    async def _fetch_mirror(self, client: httpx.AsyncClient, url: str) -> CachedCatalog:
        logger.info("[TLE] probando espejo %s", url)
        text = await self._get_text(client, url, source=url)
        return CachedCatalog(text=text, source=mirror_tag(url))

    async def _embedded(self) -> CachedCatalog:
        return CachedCatalog(text=EMBEDDED_CATALOG_TEXT, source=SOURCE_EMBEDDED)

    def build_tiers(self, client: httpx.AsyncClient) -> List[Tier[CachedCatalog]]:
        timeout = self.settings.upstream_timeout_seconds
        tiers: List[Tier[CachedCatalog]] = [
            Tier(name="server-cache", fetch=self._read_server_cache),
        ]

        if self.settings.has_spacetrack_credentials:
            tiers.append(Tier(
                name="space-track",
                fetch=lambda: self._fetch_spacetrack(client),
                validate=lambda c: spacetrack_payload_ok(c.text),
                timeout=self.settings.spacetrack_timeout_seconds,
            ))
        else:
            logger.debug("[TLE] sin credenciales de Space-Track; tier salteado")

        for url in self.settings.mirror_urls:
            tiers.append(Tier(
                name=f"mirror:{url}",
                fetch=lambda url=url: self._fetch_mirror(client, url),
                validate=lambda c: contains_tle_line1(c.text),
                timeout=timeout,
            ))

        tiers.append(Tier(name="embedded", fetch=self._embedded, terminal=True))
        return tiers

    async def get_catalog(self) -> CatalogResult:
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            logger.debug("[TLE] refresh en vuelo; esperando su resultado")
            return self._shared(await asyncio.shield(inflight))

        task = asyncio.ensure_future(self._refresh())
        self._inflight = task
        task.add_done_callback(self._clear_inflight)
        return await asyncio.shield(task)

    async def _refresh(self) -> CatalogResult:
        async with self._client() as client:
            result = await run_waterfall(self.build_tiers(client), label="TLE")
        return self._finish(result)

    def _clear_inflight(self, task: asyncio.Future) -> None:
        if self._inflight is task:
            self._inflight = None

    def _shared(self, result: CatalogResult) -> CatalogResult:
        # quien esperó al refresh lee lo que quedó en cache; el embebido se comparte tal cual
        if not result.cacheable:
            return result
        return CatalogResult(result.text, SOURCE_SERVER_CACHE, CACHE_HIT, list(result.attempts))

    def _finish(self, result: WaterfallResult[CachedCatalog]) -> CatalogResult:
        attempts = [o.describe() for o in result.attempts]
        self._last_attempts = attempts
        winner = result.winner

        if winner is None:
            # no debería pasar: el embebido es terminal; por las dudas
            logger.error("[TLE] waterfall sin ganador; usando catálogo embebido")
            return CatalogResult(EMBEDDED_CATALOG_TEXT, SOURCE_EMBEDDED, CACHE_MISS, attempts)

        payload = winner.payload
        if winner.tier == "server-cache":
            logger.info("[TLE] sirviendo desde cache del server (%s)", payload.source)
            return CatalogResult(payload.text, SOURCE_SERVER_CACHE, CACHE_HIT, attempts)

        self._last_source = payload.source
        if payload.source == SOURCE_EMBEDDED:
            logger.warning("[TLE] todas las fuentes en vivo fallaron; catálogo embebido")
        else:
            self.cache.put(_CACHE_KEY, payload)
            logger.info("[TLE] %s OK (%d chars); cache actualizado", payload.source, len(payload.text))

        return CatalogResult(payload.text, payload.source, CACHE_MISS, attempts)

    def status(self) -> Dict[str, object]:
        entry = self.cache.entry(_CACHE_KEY)
        age = self.cache.age_seconds(_CACHE_KEY)
        fetched_at = None
        if entry is not None:
            fetched_at = datetime.fromtimestamp(entry.captured_at, tz=timezone.utc).isoformat()

        return {
            "ttl_seconds": int(self.cache.ttl_seconds),
            "has_cache": entry is not None,
            "cached_source": entry.payload.source if entry else None,
            "fetched_at_utc": fetched_at,
            "age_seconds": None if age is None else int(age),
            "stale": self.cache.is_stale(_CACHE_KEY),
            "last_source": self._last_source,
            "last_attempts": list(self._last_attempts),
            "spacetrack_configured": self.settings.has_spacetrack_credentials,
            "mirrors": list(self.settings.mirror_urls),
        }


_SERVICE: Optional[TleSourceService] = None


def get_tle_source_service() -> TleSourceService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = TleSourceService()
    return _SERVICE


def set_tle_source_service(service: Optional[TleSourceService]) -> None:
    global _SERVICE
    _SERVICE = service
