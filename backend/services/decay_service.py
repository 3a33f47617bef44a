"""
Orbital decay estimate (King-Hele simplificado con B* del TLE).

No es propagación SGP4: es una estimación de vida útil con una atmósfera
exponencial por capas (US Standard Atmosphere 1976). El B* se escala con el
factor de corrección de densidad del clima espacial.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from tle_store import TleRecord

EARTH_RADIUS_KM = 6371.0
EARTH_MU = 398600.4418  # km^3/s^2
SECONDS_PER_DAY = 86400.0

REENTRY_ALTITUDE_KM = 120.0
REFERENCE_DENSITY_ALTITUDE_KM = 120.0
MAX_SIMULATION_DAYS = 3650
HIGH_ORBIT_KM = 800.0

MIN_DECAY_KM_PER_DAY = 0.0001
MAX_DECAY_KM_PER_DAY = 10.0

# (h0 km, rho0 kg/m^3, H km)
DENSITY_LAYERS = [
    (0, 1.225, 8.5),
    (100, 5.297e-7, 5.9),
    (150, 2.070e-9, 26.8),
    (200, 2.789e-10, 37.2),
    (250, 7.248e-11, 45.5),
    (300, 2.418e-11, 53.6),
    (350, 9.518e-12, 53.3),
    (400, 3.725e-12, 58.5),
    (450, 1.585e-12, 60.8),
    (500, 6.967e-13, 63.8),
    (600, 1.454e-13, 71.8),
    (700, 3.614e-14, 88.7),
    (800, 1.170e-14, 124.6),
    (900, 5.245e-15, 181.1),
    (1000, 3.019e-15, 268.0),
]


def atmospheric_density(altitude_km: float) -> float:
    if altitude_km < 0:
        return 1.225
    if altitude_km > 1500:
        return 0.0

    h0, rho0, scale_h = DENSITY_LAYERS[0]
    for layer in reversed(DENSITY_LAYERS):
        if altitude_km >= layer[0]:
            h0, rho0, scale_h = layer
            break

    return rho0 * math.exp(-(altitude_km - h0) / scale_h)


def parse_bstar(line1: str) -> float:
    """
    B* en columnas 54-61 de la línea 1, decimal implícito:
    " 36000-3" -> 0.36000e-3. Devuelve 0.0 si está vacío o roto.
    """
    raw = line1[53:61]
    if not raw.strip():
        return 0.0

    # [signo][5 dígitos][signo][exponente]
    mantissa_str = raw[:6].strip()
    exponent_str = raw[6:].strip()
    digits = "".join(ch for ch in mantissa_str if ch.isdigit())
    if not digits:
        return 0.0

    try:
        mantissa = float(f"0.{digits}")
        exponent = int(exponent_str) if exponent_str else 0
    except ValueError:
        return 0.0

    if mantissa_str.startswith("-"):
        mantissa = -mantissa
    return mantissa * 10 ** exponent


def _orbits_per_day(semi_major_axis_km: float) -> float:
    period_s = 2 * math.pi * math.sqrt(semi_major_axis_km ** 3 / EARTH_MU)
    return SECONDS_PER_DAY / period_s


def _daily_decay(semi_major_axis_km: float, altitude_km: float, bstar: float, rho_ref: float) -> float:
    density_ratio = atmospheric_density(altitude_km) / rho_ref if rho_ref > 0 else 0.0
    decay = 2 * math.pi * semi_major_axis_km * density_ratio * abs(bstar) * _orbits_per_day(semi_major_axis_km)
    return max(MIN_DECAY_KM_PER_DAY, min(MAX_DECAY_KM_PER_DAY, decay))


def risk_level(altitude_km: float) -> str:
    if altitude_km < 200:
        return "critical"
    if altitude_km < 300:
        return "high"
    if altitude_km < 400:
        return "medium"
    return "low"


def predict_orbital_decay(
    semi_major_axis_km: float,
    eccentricity: float,
    bstar: float,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    altitude_km = semi_major_axis_km - EARTH_RADIUS_KM
    current_density = atmospheric_density(altitude_km)

    # por encima de 800 km el decaimiento es despreciable
    if altitude_km > HIGH_ORBIT_KM:
        return {
            "current_altitude_km": altitude_km,
            "current_density": current_density,
            "decay_rate_km_per_day": MIN_DECAY_KM_PER_DAY,
            "estimated_lifetime_days": MAX_SIMULATION_DAYS,
            "estimated_reentry_utc": (now + timedelta(days=MAX_SIMULATION_DAYS)).isoformat(),
            "altitude_history": [
                {"days": 0, "altitude": altitude_km},
                {"days": MAX_SIMULATION_DAYS, "altitude": altitude_km - 0.5},
            ],
            "risk_level": "low",
        }

    rho_ref = atmospheric_density(REFERENCE_DENSITY_ALTITUDE_KM)
    decay_rate = _daily_decay(semi_major_axis_km, altitude_km, bstar, rho_ref)

    history: List[Dict[str, float]] = []
    sim_alt = altitude_km
    sim_days = 0
    step = 10 if altitude_km > 500 else 1

    while sim_alt > REENTRY_ALTITUDE_KM and sim_days < MAX_SIMULATION_DAYS:
        if sim_days % 10 == 0:
            history.append({"days": sim_days, "altitude": sim_alt})
        sim_a = EARTH_RADIUS_KM + sim_alt
        sim_alt -= _daily_decay(sim_a, sim_alt, bstar, rho_ref) * step
        sim_days += step

    history.append({"days": sim_days, "altitude": max(sim_alt, 0.0)})

    return {
        "current_altitude_km": altitude_km,
        "current_density": current_density,
        "decay_rate_km_per_day": decay_rate,
        "estimated_lifetime_days": sim_days,
        "estimated_reentry_utc": (now + timedelta(days=sim_days)).isoformat(),
        "altitude_history": history,
        "risk_level": risk_level(altitude_km),
    }


def format_lifetime(days: float) -> str:
    if days < 1:
        return "< 1 day"
    if days < 30:
        return f"{round(days)} days"
    if days < 365:
        return f"{round(days / 30)} months"
    if days < 3650:
        return f"{days / 365:.1f} years"
    return "> 10 years"


def predict_for_record(
    record: TleRecord,
    density_factor: float = 1.0,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Semieje mayor desde el mean motion (skyfield), B* de la línea 1
    escalado por el factor de densidad.
    """
    sat = record.to_satellite()
    n_rad_s = sat.model.no_kozai / 60.0  # rad/min -> rad/s
    semi_major_axis = (EARTH_MU / n_rad_s ** 2) ** (1.0 / 3.0)
    eccentricity = float(sat.model.ecco)

    bstar = parse_bstar(record.line1)
    adjusted_bstar = bstar * density_factor

    prediction = predict_orbital_decay(semi_major_axis, eccentricity, adjusted_bstar, now=now)
    prediction.update({
        "satellite": {"name": record.name, "norad_id": record.norad_id},
        "bstar": bstar,
        "adjusted_bstar": adjusted_bstar,
        "density_factor": density_factor,
        "eccentricity": eccentricity,
        "lifetime_label": format_lifetime(prediction["estimated_lifetime_days"]),
    })
    return prediction
