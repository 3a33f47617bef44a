"""
Clima espacial (NOAA SWPC).

Dos sub-fetches concurrentes, cada uno con su propio TTL y su default:
- F10.7 (flujo solar a 10.7 cm): valor actual + promedio de las últimas 81 muestras.
- Kp planetario: último valor; Ap derivado por tabla.

Opcional (SOLAR_WIND_ENABLED=1): plasma del viento solar (velocidad/densidad).

Ningún error de upstream sale de este módulo: cada sub-fetch cae a su default.
"""
from __future__ import annotations

import asyncio
import bisect
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from config import Settings, get_settings
from errors import AcquisitionError, NetworkError, ParseError, ValidationError
from ttl_cache import TTLCache

logger = logging.getLogger(__name__)

NOAA_F107_URL = "https://services.swpc.noaa.gov/json/f107_cm_flux.json"
NOAA_KP_URL = "https://services.swpc.noaa.gov/products/noaa-planetary-k-index.json"
NOAA_SOLAR_WIND_URL = "https://services.swpc.noaa.gov/products/solar-wind/plasma-7-day.json"

DEFAULT_F107 = 150.0
DEFAULT_F107_AVERAGE = 150.0
DEFAULT_KP = 2.0
DEFAULT_AP = 7

F107_AVERAGE_WINDOW = 81

# Tabla estándar NOAA Kp -> Ap (Kp en tercios, redondeado a 2 decimales)
KP_TABLE = (
    0, 0.33, 0.67, 1, 1.33, 1.67, 2, 2.33, 2.67, 3, 3.33, 3.67, 4, 4.33,
    4.67, 5, 5.33, 5.67, 6, 6.33, 6.67, 7, 7.33, 7.67, 8, 8.33, 8.67, 9,
)
AP_TABLE = (
    0, 2, 3, 4, 5, 6, 7, 9, 12, 15, 18, 22, 27, 32,
    39, 48, 56, 67, 80, 94, 111, 132, 154, 179, 207, 236, 300, 400,
)

QUIET = "quiet"
MODERATE = "moderate"
ACTIVE = "active"
STORM = "storm"

# origen de cada componente del snapshot
LIVE = "live"
CACHED = "cached"
DEFAULT = "default"


def kp_to_ap(kp: float) -> int:
    """
    Ap para el mayor Kp de la tabla que sea <= kp (floor).
    Si ninguno califica (kp negativo, NaN) devuelve DEFAULT_AP.
    """
    if kp is None or math.isnan(kp):
        return DEFAULT_AP
    idx = bisect.bisect_right(KP_TABLE, kp) - 1
    if idx < 0:
        return DEFAULT_AP
    return AP_TABLE[idx]


def classify_condition(kp: float, f107: float) -> str:
    # first match wins; cada nivel es un OR entre los dos indicadores
    if kp >= 7 or f107 >= 200:
        return STORM
    if kp >= 5 or f107 >= 150:
        return ACTIVE
    if kp >= 3 or f107 >= 100:
        return MODERATE
    return QUIET


@dataclass(frozen=True)
class SpaceWeatherSnapshot:
    f107: float
    f107_average: float
    kp_index: float
    ap_index: int
    timestamp: datetime
    condition: str
    solar_wind_speed: Optional[float] = None
    solar_wind_density: Optional[float] = None
    sources: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def build(
        cls,
        f107: float,
        f107_average: float,
        kp: float,
        ap: int,
        timestamp: Optional[datetime] = None,
        solar_wind: Tuple[Optional[float], Optional[float]] = (None, None),
        sources: Optional[Dict[str, str]] = None,
    ) -> "SpaceWeatherSnapshot":
        speed, density = solar_wind
        return cls(
            f107=f107,
            f107_average=f107_average,
            kp_index=kp,
            ap_index=ap,
            timestamp=timestamp or datetime.now(timezone.utc),
            condition=classify_condition(kp, f107),
            solar_wind_speed=speed,
            solar_wind_density=density,
            sources=tuple(sorted((sources or {}).items())),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "f107": self.f107,
            "f107_average": self.f107_average,
            "kp_index": self.kp_index,
            "ap_index": self.ap_index,
            "timestamp": self.timestamp.isoformat(),
            "condition": self.condition,
            "solar_wind_speed": self.solar_wind_speed,
            "solar_wind_density": self.solar_wind_density,
            "sources": dict(self.sources),
        }


def _to_float(value: Any, what: str) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ParseError(f"{what} no numérico: {value!r}") from e
    if not math.isfinite(out):
        raise ParseError(f"{what} no finito: {value!r}")
    return out


def parse_f107_feed(data: Any) -> Tuple[float, float]:
    """
    [{"time_tag": ..., "flux": ...}, ...] -> (actual, promedio de las últimas <=81).
    Sin padding: con 40 muestras el promedio es sobre esas 40.
    """
    if not isinstance(data, list) or not data:
        raise ValidationError("feed F10.7 vacío o no es lista", source="f107")

    window = data[-F107_AVERAGE_WINDOW:]
    try:
        fluxes = [_to_float(item["flux"], "flux") for item in window]
    except (KeyError, TypeError) as e:
        raise ParseError(f"fila F10.7 inválida: {e}", source="f107") from e

    current = fluxes[-1]
    average = sum(fluxes) / len(fluxes)
    return current, average


def parse_kp_feed(data: Any) -> Tuple[float, int]:
    """
    Formato clásico: [[time_tag, Kp, Kp_fraction, a_running, station_count], ...]
    con fila de header. También acepta la variante lista de objetos {"Kp": ...}.
    """
    if not isinstance(data, list) or not data:
        raise ValidationError("feed Kp vacío o no es lista", source="kp")

    recent = data[-1]
    try:
        if isinstance(recent, dict):
            raw = recent["Kp"] if "Kp" in recent else recent["kp_index"]
        else:
            if len(data) < 2:
                # sólo header, sin datos
                raise ValidationError("feed Kp sin filas de datos", source="kp")
            raw = recent[1]
    except (KeyError, IndexError, TypeError) as e:
        raise ParseError(f"fila Kp inválida: {e}", source="kp") from e

    kp = _to_float(raw, "Kp")
    return kp, kp_to_ap(kp)


def parse_solar_wind_feed(data: Any) -> Tuple[Optional[float], Optional[float]]:
    """
    [["time_tag", "density", "speed", "temperature"], ...] -> (speed, density)
    de la fila más reciente con ambos valores.
    """
    if not isinstance(data, list) or len(data) < 2:
        raise ValidationError("feed de plasma sin filas de datos", source="solar-wind")

    header = data[0]
    try:
        i_density = header.index("density")
        i_speed = header.index("speed")
    except (AttributeError, ValueError) as e:
        raise ParseError(f"header de plasma inesperado: {header!r}", source="solar-wind") from e

    for row in reversed(data[1:]):
        try:
            speed, density = row[i_speed], row[i_density]
        except (IndexError, KeyError, TypeError):
            continue
        if speed is None or density is None:
            continue
        return _to_float(speed, "speed"), _to_float(density, "density")

    raise ValidationError("sin filas completas de plasma", source="solar-wind")


class SpaceWeatherService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._clock = clock
        self.f107_cache: TTLCache[Tuple[float, float]] = TTLCache(
            self.settings.f107_cache_ttl_seconds, clock=clock
        )
        self.kp_cache: TTLCache[Tuple[float, int]] = TTLCache(
            self.settings.kp_cache_ttl_seconds, clock=clock
        )
        self.solar_wind_cache: TTLCache[Tuple[Optional[float], Optional[float]]] = TTLCache(
            self.settings.solar_wind_cache_ttl_seconds, clock=clock
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.upstream_timeout_seconds,
            follow_redirects=True,
            headers={"Accept": "application/json"},
            transport=self._transport,
        )

    async def _get_json(self, client: httpx.AsyncClient, url: str, source: str) -> Any:
        try:
            resp = await client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise NetworkError(str(e), source=source) from e
        try:
            return resp.json()
        except ValueError as e:
            raise ParseError(f"JSON inválido: {e}", source=source) from e

    async def _sub_fetch(
        self,
        name: str,
        client: httpx.AsyncClient,
        url: str,
        cache: TTLCache,
        parser: Callable[[Any], Any],
        default: Any,
    ) -> Tuple[Any, str]:
        cached = cache.get(name)
        if cached is not None:
            return cached, CACHED

        try:
            data = await asyncio.wait_for(
                self._get_json(client, url, name),
                timeout=self.settings.upstream_timeout_seconds,
            )
            value = parser(data)
        except asyncio.TimeoutError:
            logger.warning("[SpaceWeather] %s: timeout, usando defaults", name)
            return default, DEFAULT
        except AcquisitionError as e:
            logger.warning("[SpaceWeather] %s falló, usando defaults: %s", name, e)
            return default, DEFAULT
        except Exception:
            # error inesperado: igual se degrada al default, el join nunca falla
            logger.error("[SpaceWeather] %s: error inesperado, usando defaults", name, exc_info=True)
            return default, DEFAULT

        cache.put(name, value)
        return value, LIVE

    async def fetch_f107(self, client: httpx.AsyncClient) -> Tuple[Tuple[float, float], str]:
        return await self._sub_fetch(
            "f107", client, NOAA_F107_URL, self.f107_cache, parse_f107_feed,
            (DEFAULT_F107, DEFAULT_F107_AVERAGE),
        )

    async def fetch_kp(self, client: httpx.AsyncClient) -> Tuple[Tuple[float, int], str]:
        return await self._sub_fetch(
            "kp", client, NOAA_KP_URL, self.kp_cache, parse_kp_feed,
            (DEFAULT_KP, DEFAULT_AP),
        )

    async def fetch_solar_wind(self, client: httpx.AsyncClient):
        return await self._sub_fetch(
            "solar_wind", client, NOAA_SOLAR_WIND_URL, self.solar_wind_cache,
            parse_solar_wind_feed, (None, None),
        )

    async def get_snapshot(self) -> SpaceWeatherSnapshot:
        async with self._client() as client:
            jobs = [self.fetch_f107(client), self.fetch_kp(client)]
            if self.settings.solar_wind_enabled:
                jobs.append(self.fetch_solar_wind(client))
            results = await asyncio.gather(*jobs)

        (f107, f107_avg), f107_status = results[0]
        (kp, ap), kp_status = results[1]
        sources = {"f107": f107_status, "kp": kp_status}

        solar_wind = (None, None)
        if len(results) > 2:
            solar_wind, sources["solar_wind"] = results[2]

        snapshot = SpaceWeatherSnapshot.build(
            f107=f107,
            f107_average=f107_avg,
            kp=kp,
            ap=ap,
            timestamp=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
            solar_wind=solar_wind,
            sources=sources,
        )
        logger.info(
            "[SpaceWeather] F10.7=%.1f (avg %.1f) Kp=%.2f Ap=%d -> %s %s",
            snapshot.f107, snapshot.f107_average, snapshot.kp_index,
            snapshot.ap_index, snapshot.condition, sources,
        )
        return snapshot


_SERVICE: Optional[SpaceWeatherService] = None


def get_space_weather_service() -> SpaceWeatherService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = SpaceWeatherService()
    return _SERVICE


def set_space_weather_service(service: Optional[SpaceWeatherService]) -> None:
    global _SERVICE
    _SERVICE = service
