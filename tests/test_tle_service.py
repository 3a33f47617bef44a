import asyncio
import time

import httpx

from conftest import (
    AMSAT,
    CELESTRAK_ACTIVE,
    CELESTRAK_STATIONS,
    MIRROR_TLE_TEXT,
    SPACETRACK_LOGIN,
    SPACETRACK_QUERY,
    spacetrack_catalog_text,
)
from services.tle_service import (
    CACHE_HIT,
    CACHE_MISS,
    SOURCE_AMSAT,
    SOURCE_CELESTRAK,
    SOURCE_EMBEDDED,
    SOURCE_MIRROR,
    SOURCE_SERVER_CACHE,
    SOURCE_SPACETRACK,
    TleSourceService,
    mirror_tag,
)
from tle_store import EMBEDDED_CATALOG_TEXT

SESSION_COOKIE = {"set-cookie": "chocolatechip=abc123; Path=/"}


def _service(settings, upstream, clock):
    return TleSourceService(settings=settings, transport=upstream.transport, clock=clock)


def _spacetrack_ok(upstream):
    upstream.text(SPACETRACK_LOGIN, '""', headers=SESSION_COOKIE)
    upstream.text(SPACETRACK_QUERY, spacetrack_catalog_text())


def test_mirror_tags():
    assert mirror_tag(CELESTRAK_ACTIVE) == SOURCE_CELESTRAK
    assert mirror_tag(AMSAT) == SOURCE_AMSAT
    assert mirror_tag("https://tle.example.net/all.txt") == SOURCE_MIRROR


def test_warm_cache_is_served_without_network(settings, upstream, clock):
    upstream.text(CELESTRAK_ACTIVE, MIRROR_TLE_TEXT)
    service = _service(settings, upstream, clock)

    first = asyncio.run(service.get_catalog())
    assert first.source == SOURCE_CELESTRAK
    assert first.cache_status == CACHE_MISS
    calls = len(upstream.calls)

    clock.advance(7199)
    second = asyncio.run(service.get_catalog())
    assert second.text == first.text
    assert second.source == SOURCE_SERVER_CACHE
    assert second.cache_status == CACHE_HIT
    assert len(upstream.calls) == calls


def test_expired_cache_refetches(settings, upstream, clock):
    upstream.text(CELESTRAK_ACTIVE, MIRROR_TLE_TEXT)
    service = _service(settings, upstream, clock)

    asyncio.run(service.get_catalog())
    clock.advance(7200)
    again = asyncio.run(service.get_catalog())
    assert again.cache_status == CACHE_MISS
    assert upstream.calls_to(CELESTRAK_ACTIVE) == 2


def test_spacetrack_wins_over_reachable_mirrors(settings_with_credentials, upstream, clock):
    _spacetrack_ok(upstream)
    upstream.text(CELESTRAK_ACTIVE, MIRROR_TLE_TEXT)
    service = _service(settings_with_credentials, upstream, clock)

    result = asyncio.run(service.get_catalog())
    assert result.source == SOURCE_SPACETRACK
    assert upstream.calls_to(CELESTRAK_ACTIVE) == 0
    assert len(result.records()) == 12
    assert service.cache.get("catalog").source == SOURCE_SPACETRACK


def test_spacetrack_query_is_ordered_limited_3le(settings_with_credentials, upstream, clock):
    _spacetrack_ok(upstream)
    asyncio.run(_service(settings_with_credentials, upstream, clock).get_catalog())

    query = [c for c in upstream.calls if c.startswith(SPACETRACK_QUERY)][0]
    assert "class/gp" in query
    assert "orderby/NORAD_CAT_ID%20asc" in query
    assert "limit/20000" in query
    assert query.endswith("format/3le")


def test_spacetrack_login_sends_form_credentials(settings_with_credentials, upstream, clock):
    seen = {}

    def login(request: httpx.Request) -> httpx.Response:
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content.decode()
        return httpx.Response(200, text='""', headers=SESSION_COOKIE)

    upstream.add(SPACETRACK_LOGIN, login)
    upstream.text(SPACETRACK_QUERY, spacetrack_catalog_text())
    asyncio.run(_service(settings_with_credentials, upstream, clock).get_catalog())

    assert seen["content_type"] == "application/x-www-form-urlencoded"
    assert "identity=user%40example.com" in seen["body"]
    assert "password=hunter2" in seen["body"]


def test_spacetrack_short_response_falls_back_to_mirror(settings_with_credentials, upstream, clock):
    upstream.text(SPACETRACK_LOGIN, '""', headers=SESSION_COOKIE)
    upstream.text(SPACETRACK_QUERY, "[]")
    upstream.text(CELESTRAK_ACTIVE, MIRROR_TLE_TEXT)

    result = asyncio.run(_service(settings_with_credentials, upstream, clock).get_catalog())
    assert result.source == SOURCE_CELESTRAK
    assert any("space-track: soft_failure" in a for a in result.attempts)


def test_spacetrack_rejected_login_falls_back(settings_with_credentials, upstream, clock):
    upstream.text(SPACETRACK_LOGIN, '{"Login":"Failed"}')
    upstream.text(CELESTRAK_ACTIVE, MIRROR_TLE_TEXT)

    result = asyncio.run(_service(settings_with_credentials, upstream, clock).get_catalog())
    assert result.source == SOURCE_CELESTRAK
    assert upstream.calls_to(SPACETRACK_QUERY) == 0
    assert "auth" in result.attempts[1]


def test_spacetrack_skipped_without_credentials(settings, upstream, clock):
    upstream.text(CELESTRAK_ACTIVE, MIRROR_TLE_TEXT)
    asyncio.run(_service(settings, upstream, clock).get_catalog())
    assert upstream.calls_to("https://www.space-track.org") == 0


def test_invalid_mirror_is_rejected_and_next_mirror_used(settings, upstream, clock):
    upstream.text(CELESTRAK_ACTIVE, "<html>maintenance</html>")
    upstream.text(AMSAT, MIRROR_TLE_TEXT.replace("\n", "\r\n"))

    result = asyncio.run(_service(settings, upstream, clock).get_catalog())
    assert result.source == SOURCE_AMSAT
    assert upstream.calls_to(CELESTRAK_STATIONS) == 0


def test_mirror_http_error_advances(settings, upstream, clock):
    upstream.text(CELESTRAK_ACTIVE, "forbidden", status=403)
    upstream.fail(AMSAT)
    upstream.text(CELESTRAK_STATIONS, MIRROR_TLE_TEXT)

    result = asyncio.run(_service(settings, upstream, clock).get_catalog())
    assert result.source == SOURCE_CELESTRAK
    assert upstream.calls_to(CELESTRAK_STATIONS) == 1


def test_total_availability_with_every_upstream_down(settings_with_credentials, upstream, clock):
    upstream.fail(SPACETRACK_LOGIN, httpx.ConnectTimeout("timed out"))
    upstream.fail(CELESTRAK_ACTIVE)
    upstream.fail(AMSAT, httpx.ReadTimeout("timed out"))
    upstream.text(CELESTRAK_STATIONS, "", status=503)
    service = _service(settings_with_credentials, upstream, clock)

    result = asyncio.run(service.get_catalog())
    assert result.source == SOURCE_EMBEDDED
    assert result.text == EMBEDDED_CATALOG_TEXT
    assert len(result.records()) == 11
    assert not result.cacheable


def test_embedded_fallback_is_not_cached(settings, upstream, clock):
    service = _service(settings, upstream, clock)

    asyncio.run(service.get_catalog())
    assert service.cache.get("catalog") is None
    calls = len(upstream.calls)

    # el próximo request reintenta las fuentes en vivo
    upstream.text(CELESTRAK_ACTIVE, MIRROR_TLE_TEXT)
    result = asyncio.run(service.get_catalog())
    assert result.source == SOURCE_CELESTRAK
    assert len(upstream.calls) > calls


def test_concurrent_cold_requests_fetch_once(settings, upstream, clock):
    upstream.text(CELESTRAK_ACTIVE, MIRROR_TLE_TEXT)
    service = _service(settings, upstream, clock)

    async def both():
        return await asyncio.gather(service.get_catalog(), service.get_catalog())

    a, b = asyncio.run(both())
    assert upstream.calls_to(CELESTRAK_ACTIVE) == 1
    assert {a.cache_status, b.cache_status} == {CACHE_MISS, CACHE_HIT}


def test_concurrent_requests_share_one_slow_outage(settings, clock):
    calls = []

    async def slow_down(request):
        calls.append(str(request.url))
        await asyncio.sleep(0.1)
        raise httpx.ConnectError("upstream caído", request=request)

    service = TleSourceService(
        settings=settings, transport=httpx.MockTransport(slow_down), clock=clock
    )

    async def many():
        return await asyncio.gather(*(service.get_catalog() for _ in range(4)))

    started = time.perf_counter()
    results = asyncio.run(many())
    elapsed = time.perf_counter() - started

    # una sola pasada por los 3 espejos (~0.3 s), no una por request
    assert elapsed < 0.6
    assert len(calls) == len(settings.mirror_urls)
    assert {r.source for r in results} == {SOURCE_EMBEDDED}
    assert all(r.cache_status == CACHE_MISS for r in results)


def test_status_reports_cache_state(settings, upstream, clock):
    upstream.text(CELESTRAK_ACTIVE, MIRROR_TLE_TEXT)
    service = _service(settings, upstream, clock)

    status = service.status()
    assert status["has_cache"] is False
    assert status["stale"] is True
    assert status["spacetrack_configured"] is False

    asyncio.run(service.get_catalog())
    clock.advance(60)
    status = service.status()
    assert status["has_cache"] is True
    assert status["cached_source"] == SOURCE_CELESTRAK
    assert status["age_seconds"] == 60
    assert status["stale"] is False
    assert status["ttl_seconds"] == 7200
