from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from services.tle_service import SOURCE_EMBEDDED, get_tle_source_service
from tle_store import find_record

router = APIRouter(prefix="/api/tle", tags=["tle"])


def catalog_headers(source: str, cache_status: str, ttl_seconds: int) -> dict:
    headers = {
        "X-Source": source,
        "X-Cache-Status": cache_status,
    }
    if source == SOURCE_EMBEDDED:
        # el fallback no se cachea: el próximo request reintenta las fuentes en vivo
        headers["Cache-Control"] = "no-store"
    else:
        headers["Cache-Control"] = f"public, s-maxage={ttl_seconds}"
    return headers


@router.get("", response_class=PlainTextResponse)
async def tle_catalog():
    service = get_tle_source_service()
    result = await service.get_catalog()
    return PlainTextResponse(
        result.text,
        headers=catalog_headers(result.source, result.cache_status, int(service.cache.ttl_seconds)),
    )


@router.get("/status")
def tle_status():
    return get_tle_source_service().status()


@router.get("/{norad_id}")
async def tle_one(norad_id: int):
    result = await get_tle_source_service().get_catalog()
    record = find_record(result.records(), norad_id)
    if record is None:
        raise HTTPException(
            status_code=404,
            detail=f"CATNR {norad_id} no está en el catálogo actual (fuente: {result.source})",
        )
    return {"source": result.source, "cache_status": result.cache_status, "tle": record.to_dict()}
