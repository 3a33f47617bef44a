import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from logging_config import configure_logging
from routes.decay import router as decay_router
from routes.space_weather import router as space_weather_router
from routes.status import router as status_router
from routes.tle import router as tle_router
from services.space_weather_service import get_space_weather_service
from services.tle_service import get_tle_source_service

settings = get_settings()
configure_logging(settings.log_level, log_file=settings.log_file)
logger = logging.getLogger(__name__)

app = FastAPI(title="orbital-data-hub")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def _startup_warm_caches():
    # Por defecto el refresh es lazy; WARM_CACHE_ON_STARTUP=1 precarga
    if not settings.warm_cache_on_startup:
        return

    try:
        catalog = await get_tle_source_service().get_catalog()
        logger.info("[TLE] startup warm -> %s (%d chars)", catalog.source, len(catalog.text))

        snapshot = await get_space_weather_service().get_snapshot()
        logger.info("[SpaceWeather] startup warm -> %s", snapshot.condition)
    except Exception:
        # no frenar el arranque: el próximo request reintenta
        logger.exception("startup warm falló")


app.include_router(status_router)
app.include_router(tle_router)
app.include_router(space_weather_router)
app.include_router(decay_router)
