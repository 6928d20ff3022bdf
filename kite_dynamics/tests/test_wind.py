"""
Unit tests for the wind field.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from kite_dynamics.wind import WindField, WindConfig, WindParams


class TestBaseWind:

    def test_zero_direction_blows_toward_negative_z(self):
        wind = WindField(WindConfig(speed_kmh=36.0, turbulence_pct=0.0))
        assert_allclose(wind.wind_at(np.zeros(3)), [0.0, 0.0, -10.0], atol=1e-12)

    def test_ninety_degrees_blows_toward_positive_x(self):
        wind = WindField(WindConfig(speed_kmh=36.0, direction_deg=90.0, turbulence_pct=0.0))
        assert_allclose(wind.wind_at(np.zeros(3)), [10.0, 0.0, 0.0], atol=1e-12)

    def test_zero_speed_is_calm(self):
        wind = WindField(WindConfig(speed_kmh=0.0, turbulence_pct=50.0))
        assert_allclose(wind.wind_at(np.array([3.0, 5.0, -2.0]), 4.2), np.zeros(3))


class TestWindParams:

    def test_values_are_sanitized(self):
        params = WindParams(speed_kmh=-5.0, direction_deg=-90.0, turbulence_pct=250.0)
        assert params.speed_kmh == 0.0
        assert params.direction_deg == 270.0
        assert params.turbulence_pct == 100.0

    def test_set_params_updates_field(self):
        wind = WindField(WindConfig(turbulence_pct=0.0))
        wind.set_params(speed_kmh=18.0, direction_deg=180.0)
        assert_allclose(wind.wind_at(np.zeros(3)), [0.0, 0.0, 5.0], atol=1e-12)


class TestTurbulence:

    @pytest.fixture
    def config(self):
        return WindConfig(speed_kmh=30.0, turbulence_pct=100.0, seed=42)

    def test_deterministic_for_seed(self, config):
        a = WindField(config)
        b = WindField(config)
        p = np.array([1.0, 8.0, -12.0])
        for t in np.linspace(0.0, 20.0, 50):
            assert_allclose(a.wind_at(p, t), b.wind_at(p, t))

    def test_bounded(self, config):
        wind = WindField(config)
        base = wind.base_wind()
        gains = np.array([config.intensity_xz, config.intensity_y, config.intensity_xz])
        limit = wind.params.speed_ms * config.turbulence_scale * np.linalg.norm(gains)
        rng = np.random.default_rng(0)
        for _ in range(200):
            p = rng.uniform(-100.0, 100.0, size=3)
            t = rng.uniform(0.0, 1000.0)
            w = wind.wind_at(p, t)
            assert np.all(np.isfinite(w))
            assert np.linalg.norm(w - base) <= limit + 1e-9

    def test_smooth_in_space(self, config):
        """Nearby points see nearly the same gust."""
        wind = WindField(config)
        p = np.array([0.0, 10.0, -10.0])
        w1 = wind.wind_at(p, 3.0)
        w2 = wind.wind_at(p + np.array([0.01, 0.0, 0.0]), 3.0)
        assert np.linalg.norm(w1 - w2) < 2e-3

    def test_varies_in_time(self, config):
        wind = WindField(config)
        p = np.zeros(3)
        assert not np.allclose(wind.wind_at(p, 0.0), wind.wind_at(p, 2.0))

    def test_scales_with_intensity(self, config):
        wind = WindField(config)
        p = np.array([2.0, 3.0, 4.0])
        full = wind.wind_at(p, 1.5) - wind.base_wind()
        wind.set_params(turbulence_pct=50.0)
        half = wind.wind_at(p, 1.5) - wind.base_wind()
        assert_allclose(half, 0.5 * full, atol=1e-12)

    def test_non_finite_position_is_safe(self, config):
        wind = WindField(config)
        w = wind.wind_at(np.array([np.nan, 0.0, 0.0]), 1.0)
        assert np.all(np.isfinite(w))

    def test_time_accumulator(self, config):
        wind = WindField(config)
        p = np.array([1.0, 2.0, 3.0])
        wind.advance(0.5)
        wind.advance(0.25)
        assert wind.time == pytest.approx(0.75)
        assert_allclose(wind.wind_at(p), wind.wind_at(p, 0.75))
        wind.reset()
        assert wind.time == 0.0


class TestApparentWind:

    def test_subtracts_kite_velocity(self):
        wind = WindField(WindConfig(speed_kmh=36.0, turbulence_pct=0.0))
        apparent = wind.apparent_wind(np.zeros(3), np.array([0.0, 0.0, -4.0]))
        assert_allclose(apparent, [0.0, 0.0, -6.0], atol=1e-12)

    def test_clamped_to_max_apparent_speed(self):
        wind = WindField(WindConfig(speed_kmh=36.0, turbulence_pct=0.0,
                                    max_apparent_speed=25.0))
        apparent = wind.apparent_wind(np.zeros(3), np.array([0.0, 0.0, 30.0]))
        assert_allclose(np.linalg.norm(apparent), 25.0)
