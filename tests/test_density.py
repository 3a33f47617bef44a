from datetime import datetime, timezone

import pytest

from services.density_service import (
    correction_factor,
    density_correction,
    format_kp_index,
    kp_color,
)
from services.space_weather_service import SpaceWeatherSnapshot


def test_floor_clamp():
    assert correction_factor(0, 0) == 0.5


def test_upper_bound_is_inclusive():
    assert correction_factor(300, 7) == 2.0
    assert correction_factor(400, 50) == 2.0


def test_baseline_is_identity():
    assert correction_factor(150, 7) == 1.0


def test_ap_scales_linearly_inside_bounds():
    # 1 + (32 - 7) * 0.02 = 1.5
    assert correction_factor(150, 32) == pytest.approx(1.5)
    assert correction_factor(75, 7) == pytest.approx(0.5)
    assert correction_factor(120, 12) == pytest.approx(0.8 * 1.1)


def test_factor_is_deterministic():
    assert correction_factor(173.4, 22) == correction_factor(173.4, 22)


def test_density_correction_from_snapshot():
    snap = SpaceWeatherSnapshot.build(
        f107=180.0, f107_average=160.0, kp=4.33, ap=32,
        timestamp=datetime(2024, 5, 11, tzinfo=timezone.utc),
    )
    corr = density_correction(snap)
    assert corr.factor == pytest.approx(1.8)
    assert corr.condition == "active"
    assert corr.f107_factor == pytest.approx(1.2)
    assert corr.ap_factor == pytest.approx(1.5)
    assert corr.to_dict()["condition"] == "active"


@pytest.mark.parametrize("kp, label", [
    (0, "0"),
    (0.33, "0o"),
    (4.0, "4-"),
    (4.33, "4o"),
    (4.67, "4+"),
    (9, "9-"),
])
def test_format_kp_index(kp, label):
    assert format_kp_index(kp) == label


@pytest.mark.parametrize("kp, color", [
    (3.99, "#22c55e"),
    (4, "#84cc16"),
    (5, "#eab308"),
    (6, "#f97316"),
    (7, "#ef4444"),
    (8, "#dc2626"),
    (9, "#dc2626"),
])
def test_kp_color_thresholds(kp, color):
    assert kp_color(kp) == color
