"""
Wind field for kite simulation.

The wind is a steady horizontal base vector plus a smooth turbulent
perturbation:
1. Base wind: configured speed and direction
2. Turbulence: per-axis sinusoids whose phase depends on time and on the
   sample position, so nearby points see correlated gusts

Direction convention (seen from above, Y-up world):
    0 deg  -> wind blows toward -z (away from the pilot)
    90 deg -> wind blows toward +x
i.e. angles increase clockwise. The turbulence is a deterministic function
of (position, time, params, seed), so runs replay exactly for a fixed seed.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import ConfigError


KMH_TO_MS = 1.0 / 3.6


@dataclass
class WindConfig:
    """
    Configuration for the wind field.

    Attributes:
        speed_kmh: Initial base wind speed [km/h]
        direction_deg: Initial base wind direction [deg]
        turbulence_pct: Initial turbulence intensity [%]

        turbulence_scale: Perturbation amplitude at 100% turbulence,
            as a fraction of the base speed
        turbulence_frequency: Angular frequency of the x-axis sinusoid [rad/s]
        frequency_y: Frequency ratio of the y-axis sinusoid
        frequency_z: Frequency ratio of the z-axis sinusoid
        intensity_xz: Relative amplitude of horizontal perturbations
        intensity_y: Relative amplitude of vertical perturbations
        gust_length: Spatial correlation length of gusts [m]
        max_apparent_speed: Ceiling applied to apparent wind [m/s]

        seed: Random seed for the gust wave vectors and phases
    """
    speed_kmh: float = 18.0
    direction_deg: float = 0.0
    turbulence_pct: float = 1.0

    turbulence_scale: float = 0.15
    turbulence_frequency: float = 0.3
    frequency_y: float = 1.3
    frequency_z: float = 0.7
    intensity_xz: float = 0.8
    intensity_y: float = 0.2
    gust_length: float = 20.0
    max_apparent_speed: float = 25.0

    seed: Optional[int] = 0

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        checks = [
            ('speed_kmh', self.speed_kmh, 0.0, 200.0),
            ('direction_deg', self.direction_deg, -360.0, 720.0),
            ('turbulence_pct', self.turbulence_pct, 0.0, 100.0),
            ('turbulence_scale', self.turbulence_scale, 0.0, 1.0),
            ('turbulence_frequency', self.turbulence_frequency, 0.0, 10.0),
            ('frequency_y', self.frequency_y, 0.0, 10.0),
            ('frequency_z', self.frequency_z, 0.0, 10.0),
            ('intensity_xz', self.intensity_xz, 0.0, 1.0),
            ('intensity_y', self.intensity_y, 0.0, 1.0),
        ]
        for name, value, low, high in checks:
            if not isinstance(value, (int, float)) or not math.isfinite(value) \
                    or value < low or value > high:
                raise ConfigError(f"wind.{name} must be within [{low}, {high}], got {value!r}")
        for name in ('gust_length', 'max_apparent_speed'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
                raise ConfigError(f"wind.{name} must be > 0, got {value!r}")


class WindParams:
    """
    Runtime wind settings, typically driven by a UI.

    Values are sanitized on assignment: negative speeds become 0,
    turbulence is clamped to [0, 100] and direction wrapped to [0, 360).
    """

    def __init__(self, speed_kmh: float = 18.0, direction_deg: float = 0.0,
                 turbulence_pct: float = 1.0):
        self.speed_kmh = speed_kmh
        self.direction_deg = direction_deg
        self.turbulence_pct = turbulence_pct

    @property
    def speed_kmh(self) -> float:
        return self._speed_kmh

    @speed_kmh.setter
    def speed_kmh(self, value: float) -> None:
        value = float(value)
        self._speed_kmh = max(value, 0.0) if math.isfinite(value) else 0.0

    @property
    def direction_deg(self) -> float:
        return self._direction_deg

    @direction_deg.setter
    def direction_deg(self, value: float) -> None:
        value = float(value)
        self._direction_deg = value % 360.0 if math.isfinite(value) else 0.0

    @property
    def turbulence_pct(self) -> float:
        return self._turbulence_pct

    @turbulence_pct.setter
    def turbulence_pct(self, value: float) -> None:
        value = float(value)
        self._turbulence_pct = min(max(value, 0.0), 100.0) if math.isfinite(value) else 0.0

    @property
    def speed_ms(self) -> float:
        return self._speed_kmh * KMH_TO_MS

    def __repr__(self) -> str:
        return (f"WindParams(speed_kmh={self.speed_kmh}, direction_deg={self.direction_deg}, "
                f"turbulence_pct={self.turbulence_pct})")


def wind_direction_vector(direction_deg: float) -> np.ndarray:
    """Unit horizontal vector the wind blows toward."""
    theta = math.radians(direction_deg)
    return np.array([math.sin(theta), 0.0, -math.cos(theta)])


class WindField:
    """
    Deterministic wind field with smooth spatial/temporal turbulence.

    Usage:
        wind = WindField(WindConfig(speed_kmh=20.0))
        wind.set_params(turbulence_pct=10.0)

        # In simulation loop:
        w = wind.wind_at(kite_position)
        wind.advance(dt)
    """

    def __init__(self, config: Optional[WindConfig] = None,
                 params: Optional[WindParams] = None):
        """
        Initialize wind field.

        Args:
            config: Wind configuration (uses defaults if None)
            params: Initial runtime parameters (taken from config if None)
        """
        self.config = config if config is not None else WindConfig()
        if params is None:
            params = WindParams(self.config.speed_kmh, self.config.direction_deg,
                                self.config.turbulence_pct)
        self.params = params
        self._time = 0.0
        self._init_waves(self.config.seed)

    def _init_waves(self, seed: Optional[int]) -> None:
        """Draw the per-axis gust wave directions and phase offsets."""
        rng = np.random.default_rng(seed)
        waves = rng.normal(size=(3, 3))
        self._wave_dirs = waves / np.linalg.norm(waves, axis=1, keepdims=True)
        self._phase_offsets = rng.uniform(0.0, 2.0 * np.pi, size=3)

    @property
    def time(self) -> float:
        """Elapsed time of the turbulence accumulator [s]."""
        return self._time

    def advance(self, dt: float) -> None:
        if dt > 0 and math.isfinite(dt):
            self._time += dt

    def reset(self, seed: Optional[int] = None) -> None:
        """
        Rewind the time accumulator.

        Args:
            seed: New turbulence seed (keeps the current waves if None)
        """
        self._time = 0.0
        if seed is not None:
            self._init_waves(seed)

    def set_params(self, speed_kmh: Optional[float] = None,
                   direction_deg: Optional[float] = None,
                   turbulence_pct: Optional[float] = None) -> None:
        if speed_kmh is not None:
            self.params.speed_kmh = speed_kmh
        if direction_deg is not None:
            self.params.direction_deg = direction_deg
        if turbulence_pct is not None:
            self.params.turbulence_pct = turbulence_pct

    def base_wind(self) -> np.ndarray:
        """Steady wind vector in world frame [m/s]."""
        return self.params.speed_ms * wind_direction_vector(self.params.direction_deg)

    def turbulence_at(self, position: np.ndarray, sim_time: float) -> np.ndarray:
        """
        Turbulent perturbation at a point.

        Per axis i: A_i * sin(omega_i * t + k_i . p / L + phi_i), with
        A = speed * turbulence/100 * turbulence_scale * intensity_i.
        The norm is bounded by speed * turbulence_scale * |intensities|,
        where intensities = (intensity_xz, intensity_y, intensity_xz).
        """
        cfg = self.config
        intensity = self.params.turbulence_pct / 100.0
        amplitude = self.params.speed_ms * intensity * cfg.turbulence_scale
        if amplitude <= 0.0:
            return np.zeros(3)

        position = np.asarray(position, dtype=np.float64)
        if not np.all(np.isfinite(position)):
            position = np.zeros(3)
        if not math.isfinite(sim_time):
            sim_time = 0.0

        omegas = cfg.turbulence_frequency * np.array([1.0, cfg.frequency_y, cfg.frequency_z])
        gains = np.array([cfg.intensity_xz, cfg.intensity_y, cfg.intensity_xz])
        spatial = self._wave_dirs @ position / cfg.gust_length
        phases = omegas * sim_time + spatial + self._phase_offsets
        return amplitude * gains * np.sin(phases)

    def wind_at(self, position: np.ndarray, sim_time: Optional[float] = None) -> np.ndarray:
        """
        Wind velocity at a point.

        Args:
            position: World position [m]
            sim_time: Time to sample [s] (uses the internal accumulator if None)

        Returns:
            Finite wind velocity in world frame [m/s]
        """
        t = self._time if sim_time is None else sim_time
        return self.base_wind() + self.turbulence_at(position, t)

    def apparent_wind(self, position: np.ndarray, kite_velocity: np.ndarray,
                      sim_time: Optional[float] = None) -> np.ndarray:
        """
        Wind felt by a body moving at kite_velocity, clamped to
        max_apparent_speed.
        """
        kite_velocity = np.asarray(kite_velocity, dtype=np.float64)
        if not np.all(np.isfinite(kite_velocity)):
            kite_velocity = np.zeros(3)
        apparent = self.wind_at(position, sim_time) - kite_velocity
        speed = np.linalg.norm(apparent)
        limit = self.config.max_apparent_speed
        if speed > limit:
            apparent = apparent * (limit / speed)
        return apparent
