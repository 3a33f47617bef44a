from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict

from services.space_weather_service import SpaceWeatherSnapshot

# Línea base "moderada": factor 1.0
REFERENCE_F107 = 150.0
REFERENCE_AP = 7
AP_SLOPE = 0.02

MIN_FACTOR = 0.5
MAX_FACTOR = 2.0


@dataclass(frozen=True)
class DensityCorrection:
    factor: float
    condition: str
    f107_factor: float
    ap_factor: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor": self.factor,
            "condition": self.condition,
            "f107_factor": self.f107_factor,
            "ap_factor": self.ap_factor,
        }


def correction_factor(f107: float, ap_index: float) -> float:
    """
    Factor multiplicativo de densidad atmosférica, acotado a [0.5, 2.0].

    Más actividad solar (F10.7) o geomagnética (Ap) => atmósfera más densa
    => más drag => decaimiento más rápido.
    """
    f107_factor = f107 / REFERENCE_F107
    ap_factor = 1 + (ap_index - REFERENCE_AP) * AP_SLOPE
    return max(MIN_FACTOR, min(MAX_FACTOR, f107_factor * ap_factor))


def density_correction(snapshot: SpaceWeatherSnapshot) -> DensityCorrection:
    return DensityCorrection(
        factor=correction_factor(snapshot.f107, snapshot.ap_index),
        condition=snapshot.condition,
        f107_factor=snapshot.f107 / REFERENCE_F107,
        ap_factor=1 + (snapshot.ap_index - REFERENCE_AP) * AP_SLOPE,
    )


def format_kp_index(kp: float) -> str:
    # 4.67 -> "4+", 4.33 -> "4o", 4.0 -> "4-", 0 -> "0"
    integer = math.floor(kp)
    fraction = kp - integer

    if fraction >= 0.5:
        return f"{integer}+"
    if fraction > 0.1:
        return f"{integer}o"
    if integer > 0 and fraction < 0.1:
        return f"{integer}-"
    return f"{integer}"


def kp_color(kp: float) -> str:
    if kp < 4:
        return "#22c55e"  # quiet
    if kp < 5:
        return "#84cc16"  # unsettled
    if kp < 6:
        return "#eab308"  # active
    if kp < 7:
        return "#f97316"  # minor storm
    if kp < 8:
        return "#ef4444"  # moderate storm
    return "#dc2626"
