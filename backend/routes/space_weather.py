from fastapi import APIRouter

from services.density_service import density_correction, format_kp_index, kp_color
from services.space_weather_service import get_space_weather_service

router = APIRouter(prefix="/api/space-weather", tags=["space-weather"])


@router.get("")
async def space_weather():
    snapshot = await get_space_weather_service().get_snapshot()
    correction = density_correction(snapshot)
    return {
        **snapshot.to_dict(),
        "density_correction": correction.to_dict(),
        "kp_display": format_kp_index(snapshot.kp_index),
        "kp_color": kp_color(snapshot.kp_index),
    }
