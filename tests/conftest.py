from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from config import Settings
from services.space_weather_service import set_space_weather_service
from services.tle_service import set_tle_source_service

ISS_NAME = "ISS (ZARYA)"
ISS_LINE1 = "1 25544U 98067A   24001.50000000  .00016717  00000-0  10270-3 0  9003"
ISS_LINE2 = "2 25544  51.6400 208.5000 0007417  68.0000 292.1000 15.49560000400000"

MIRROR_TLE_TEXT = f"{ISS_NAME}\n{ISS_LINE1}\n{ISS_LINE2}\n"

CELESTRAK_ACTIVE = "https://celestrak.org/NORAD/elements/gp.php?GROUP=active&FORMAT=tle"
AMSAT = "https://www.amsat.org/tle/current/nasabare.txt"
CELESTRAK_STATIONS = "https://celestrak.org/NORAD/elements/gp.php?GROUP=stations&FORMAT=tle"
MIRRORS = [CELESTRAK_ACTIVE, AMSAT, CELESTRAK_STATIONS]

SPACETRACK_LOGIN = "https://www.space-track.org/ajaxauth/login"
SPACETRACK_QUERY = "https://www.space-track.org/basicspacedata/query/"


def spacetrack_catalog_text(copies: int = 12) -> str:
    block = f"0 {ISS_NAME}\n{ISS_LINE1}\n{ISS_LINE2}\n"
    return block * copies


Reply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeUpstream:
    """
    Upstream simulado sobre httpx.MockTransport.
    Rutea por prefijo de URL; lo no registrado es un ConnectError.
    """

    def __init__(self):
        self.routes: List[Tuple[str, Reply]] = []
        self.calls: List[str] = []

    def add(self, url_prefix: str, reply: Reply) -> "FakeUpstream":
        self.routes.append((url_prefix, reply))
        return self

    def text(self, url_prefix: str, body: str, status: int = 200, headers: Optional[Dict[str, str]] = None):
        return self.add(url_prefix, httpx.Response(status, text=body, headers=headers))

    def json(self, url_prefix: str, payload, status: int = 200):
        return self.add(url_prefix, httpx.Response(status, json=payload))

    def fail(self, url_prefix: str, exc: Optional[Exception] = None):
        return self.add(url_prefix, exc or httpx.ConnectError("connection refused"))

    def calls_to(self, url_prefix: str) -> int:
        return sum(1 for c in self.calls if c.startswith(url_prefix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        for prefix, reply in self.routes:
            if url.startswith(prefix):
                if isinstance(reply, Exception):
                    raise reply
                if callable(reply):
                    return reply(request)
                return httpx.Response(
                    reply.status_code,
                    content=reply.content,
                    headers=reply.headers,
                )
        raise httpx.ConnectError(f"sin ruta para {url}", request=request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(mirror_urls=list(MIRRORS))


@pytest.fixture
def settings_with_credentials() -> Settings:
    return Settings(
        spacetrack_user="user@example.com",
        spacetrack_pass="hunter2",
        mirror_urls=list(MIRRORS),
    )


@pytest.fixture(autouse=True)
def _reset_singletons():
    yield
    set_tle_source_service(None)
    set_space_weather_service(None)
