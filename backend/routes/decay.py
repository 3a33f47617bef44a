from fastapi import APIRouter, HTTPException

from services.decay_service import predict_for_record
from services.density_service import density_correction
from services.space_weather_service import get_space_weather_service
from services.tle_service import get_tle_source_service
from tle_store import find_record

router = APIRouter(prefix="/api/decay", tags=["decay"])


@router.get("/{norad_id}")
async def decay(norad_id: int):
    catalog = await get_tle_source_service().get_catalog()
    record = find_record(catalog.records(), norad_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"CATNR {norad_id} no está en el catálogo actual")

    snapshot = await get_space_weather_service().get_snapshot()
    correction = density_correction(snapshot)

    try:
        prediction = predict_for_record(record, density_factor=correction.factor)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"TLE inválido para CATNR {norad_id}: {e}")

    return {
        **prediction,
        "tle_source": catalog.source,
        "space_weather": {
            "condition": snapshot.condition,
            "f107": snapshot.f107,
            "ap_index": snapshot.ap_index,
        },
    }
