from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_MIRROR_URLS = [
    "https://celestrak.org/NORAD/elements/gp.php?GROUP=active&FORMAT=tle",
    # AMSAT: espejo de alta disponibilidad
    "https://www.amsat.org/tle/current/nasabare.txt",
    "https://celestrak.org/NORAD/elements/gp.php?GROUP=stations&FORMAT=tle",
]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip() == "1"


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    spacetrack_user: Optional[str] = None
    spacetrack_pass: Optional[str] = None
    spacetrack_row_limit: int = 20000

    tle_cache_ttl_seconds: int = 7200
    f107_cache_ttl_seconds: int = 3600
    kp_cache_ttl_seconds: int = 900
    solar_wind_cache_ttl_seconds: int = 900

    # Cota por tier / sub-fetch
    upstream_timeout_seconds: float = 5.0
    spacetrack_timeout_seconds: float = 30.0

    mirror_urls: List[str] = field(default_factory=lambda: list(DEFAULT_MIRROR_URLS))
    solar_wind_enabled: bool = False
    warm_cache_on_startup: bool = False

    log_level: str = "INFO"
    log_file: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])

    @property
    def has_spacetrack_credentials(self) -> bool:
        return bool(self.spacetrack_user) and bool(self.spacetrack_pass)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            spacetrack_user=os.getenv("SPACETRACK_USER") or None,
            spacetrack_pass=os.getenv("SPACETRACK_PASS") or None,
            spacetrack_row_limit=_env_int("SPACETRACK_ROW_LIMIT", 20000),
            tle_cache_ttl_seconds=_env_int("TLE_CACHE_TTL_SECONDS", 7200),
            f107_cache_ttl_seconds=_env_int("F107_CACHE_TTL_SECONDS", 3600),
            kp_cache_ttl_seconds=_env_int("KP_CACHE_TTL_SECONDS", 900),
            solar_wind_cache_ttl_seconds=_env_int("SOLAR_WIND_CACHE_TTL_SECONDS", 900),
            upstream_timeout_seconds=_env_float("UPSTREAM_TIMEOUT_SECONDS", 5.0),
            spacetrack_timeout_seconds=_env_float("SPACETRACK_TIMEOUT_SECONDS", 30.0),
            mirror_urls=_env_list("TLE_MIRROR_URLS", DEFAULT_MIRROR_URLS),
            solar_wind_enabled=_env_flag("SOLAR_WIND_ENABLED"),
            warm_cache_on_startup=_env_flag("WARM_CACHE_ON_STARTUP"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE") or None,
            cors_origins=_env_list("CORS_ORIGINS", ["http://localhost:5173"]),
        )


_SETTINGS: Optional[Settings] = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS


def reset_settings() -> None:
    global _SETTINGS
    _SETTINGS = None
