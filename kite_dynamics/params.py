"""
Parameters for kite dynamics simulation.

Configuration is split into small frozen-at-construction sections:
- PhysicsConstants: numerical thresholds and safety ceilings
- PhysicsConfig: world and integration settings
- KiteConfig: mass properties of the kite
- LineConfig: control line length and breaking threshold
- ControlBarConfig: pilot bar placement
- WindConfig (see wind.py): turbulence tuning and initial wind

Every section validates itself on construction and raises ConfigError on
out-of-range values. SimulationConfig groups the sections and handles
dict/YAML (de)serialization.
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Optional, Dict, Any
import math

import numpy as np
import yaml

from .errors import ConfigError
from .wind import WindConfig


def _check_range(section: str, name: str, value, low=None, high=None,
                 low_inclusive: bool = True, high_inclusive: bool = True) -> None:
    """Raise ConfigError if value is not a finite number inside [low, high]."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{section}.{name} must be a number, got {value!r}")
    if not math.isfinite(number):
        raise ConfigError(f"{section}.{name} must be finite, got {value!r}")
    if low is not None and (number < low or (not low_inclusive and number == low)):
        bound = '>=' if low_inclusive else '>'
        raise ConfigError(f"{section}.{name} must be {bound} {low}, got {value!r}")
    if high is not None and (number > high or (not high_inclusive and number == high)):
        bound = '<=' if high_inclusive else '<'
        raise ConfigError(f"{section}.{name} must be {bound} {high}, got {value!r}")


def _section_from_dict(cls, d: Optional[Dict[str, Any]]):
    """Build a config section from a flat mapping, rejecting unknown keys."""
    if d is None:
        return cls()
    if not isinstance(d, dict):
        raise ConfigError(f"{cls.__name__} expects a mapping, got {type(d).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(d) - known)
    if unknown:
        raise ConfigError(f"Unknown {cls.__name__} keys: {', '.join(unknown)}")
    return cls(**d)


@dataclass(frozen=True)
class PhysicsConstants:
    """
    Read-only numerical thresholds and safety ceilings.

    Attributes:
        epsilon: Near-zero threshold for vector magnitudes
        control_deadzone: Bar rotation changes below this are ignored [rad]
        line_constraint_tolerance: Slack band around the line length [m]
        line_tension_factor: Fraction of the one-step restoring force
            reported as line tension
        ground_friction: Horizontal velocity factor on ground contact
        catenary_segments: Segments used when sampling a line for display
        max_force: Net force ceiling [N]
        max_velocity: Linear speed ceiling [m/s]
        max_angular_velocity: Angular speed ceiling [rad/s]
        max_acceleration: Linear acceleration ceiling [m/s^2]
        max_angular_acceleration: Angular acceleration ceiling [rad/s^2]
    """
    epsilon: float = 1e-4
    control_deadzone: float = 0.01
    line_constraint_tolerance: float = 0.02
    line_tension_factor: float = 0.99
    ground_friction: float = 0.85
    catenary_segments: int = 5
    max_force: float = 2500.0
    max_velocity: float = 40.0
    max_angular_velocity: float = 15.0
    max_acceleration: float = 500.0
    max_angular_acceleration: float = 12.0

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        s = 'constants'
        _check_range(s, 'epsilon', self.epsilon, 0.0, 1e-3, low_inclusive=False)
        _check_range(s, 'control_deadzone', self.control_deadzone, 0.0, 0.1)
        _check_range(s, 'line_constraint_tolerance', self.line_constraint_tolerance,
                     0.0, 0.1, low_inclusive=False)
        _check_range(s, 'line_tension_factor', self.line_tension_factor, 0.8, 1.0)
        _check_range(s, 'ground_friction', self.ground_friction, 0.0, 1.0)
        if isinstance(self.catenary_segments, bool) or not isinstance(self.catenary_segments, int):
            raise ConfigError(f"{s}.catenary_segments must be an integer, "
                              f"got {self.catenary_segments!r}")
        _check_range(s, 'catenary_segments', self.catenary_segments, 3, 20)
        _check_range(s, 'max_force', self.max_force, 0.0, 10000.0, low_inclusive=False)
        _check_range(s, 'max_velocity', self.max_velocity, 0.0, 100.0, low_inclusive=False)
        _check_range(s, 'max_angular_velocity', self.max_angular_velocity,
                     0.0, 50.0, low_inclusive=False)
        _check_range(s, 'max_acceleration', self.max_acceleration,
                     0.0, 1000.0, low_inclusive=False)
        _check_range(s, 'max_angular_acceleration', self.max_angular_acceleration,
                     0.0, 100.0, low_inclusive=False)


@dataclass
class PhysicsConfig:
    """
    World and integration settings.

    linear_damping and angular_damping are per-step velocity multipliers.
    constraint_damping is the under-relaxation factor of the line solver.
    force_smoothing is the share of the previous aerodynamic load kept
    each step (0 disables the low-pass filter).
    """
    gravity: float = 9.81              # [m/s^2], acts along -y
    air_density: float = 1.225         # [kg/m^3]
    delta_time_max: float = 0.016      # [s]
    linear_damping: float = 0.98
    angular_damping: float = 0.95
    angular_drag_coeff: float = 0.15   # [N*m*s/rad]
    constraint_iterations: int = 5
    constraint_damping: float = 0.3
    force_smoothing: float = 0.25

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        s = 'physics'
        _check_range(s, 'gravity', self.gravity, 0.0)
        _check_range(s, 'air_density', self.air_density, 0.0, low_inclusive=False)
        _check_range(s, 'delta_time_max', self.delta_time_max, 0.0, 1.0, low_inclusive=False)
        _check_range(s, 'linear_damping', self.linear_damping, 0.0, 1.0)
        _check_range(s, 'angular_damping', self.angular_damping, 0.0, 1.0)
        _check_range(s, 'angular_drag_coeff', self.angular_drag_coeff, 0.0)
        if isinstance(self.constraint_iterations, bool) or \
                not isinstance(self.constraint_iterations, int):
            raise ConfigError(f"{s}.constraint_iterations must be an integer, "
                              f"got {self.constraint_iterations!r}")
        _check_range(s, 'constraint_iterations', self.constraint_iterations, 1, 50)
        _check_range(s, 'constraint_damping', self.constraint_damping,
                     0.0, 1.0, low_inclusive=False)
        _check_range(s, 'force_smoothing', self.force_smoothing, 0.0, 1.0,
                     high_inclusive=False)


@dataclass
class KiteConfig:
    """
    Mass properties of the kite.

    Inertia is a scalar: the kite is treated as rotationally isotropic.
    min_height is the lowest allowed altitude of any ground contact point [m].
    """
    mass: float = 0.28        # [kg]
    inertia: float = 0.08     # [kg*m^2]
    min_height: float = 0.5   # [m]

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        _check_range('kite', 'mass', self.mass, 0.0, low_inclusive=False)
        _check_range('kite', 'inertia', self.inertia, 0.0, low_inclusive=False)
        _check_range('kite', 'min_height', self.min_height)


@dataclass
class LineConfig:
    length: float = 15.0              # [m]
    breaking_tension: float = 5000.0  # [N]

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        _check_range('lines', 'length', self.length, 0.0, low_inclusive=False)
        _check_range('lines', 'breaking_tension', self.breaking_tension,
                     0.0, low_inclusive=False)


@dataclass
class ControlBarConfig:
    width: float = 0.6   # handle-to-handle distance [m]
    position: np.ndarray = field(default_factory=lambda: np.array([0.0, 1.4, 0.0]))

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float64)
        self.validate()

    def validate(self) -> None:
        _check_range('control_bar', 'width', self.width, 0.0, low_inclusive=False)
        if self.position.shape != (3,) or not np.all(np.isfinite(self.position)):
            raise ConfigError(f"control_bar.position must be a finite 3-vector, "
                              f"got {self.position!r}")


_SECTIONS = {
    'constants': PhysicsConstants,
    'physics': PhysicsConfig,
    'kite': KiteConfig,
    'lines': LineConfig,
    'control_bar': ControlBarConfig,
    'wind': WindConfig,
}


@dataclass
class SimulationConfig:
    """
    Complete configuration of a kite simulation.

    Usage:
        config = SimulationConfig.from_yaml('kite.yaml')
        config.lines.length
    """
    constants: PhysicsConstants = field(default_factory=PhysicsConstants)
    physics: PhysicsConfig = field(default_factory=PhysicsConfig)
    kite: KiteConfig = field(default_factory=KiteConfig)
    lines: LineConfig = field(default_factory=LineConfig)
    control_bar: ControlBarConfig = field(default_factory=ControlBarConfig)
    wind: WindConfig = field(default_factory=WindConfig)

    def validate(self) -> None:
        """Re-run validation of every section (after in-place edits)."""
        for name in _SECTIONS:
            getattr(self, name).validate()

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> 'SimulationConfig':
        """Create a config from a nested dictionary of sections."""
        d = d or {}
        if not isinstance(d, dict):
            raise ConfigError(f"Configuration must be a mapping, got {type(d).__name__}")
        unknown = sorted(set(d) - set(_SECTIONS))
        if unknown:
            raise ConfigError(f"Unknown configuration sections: {', '.join(unknown)}")
        try:
            sections = {name: _section_from_dict(section_cls, d.get(name))
                        for name, section_cls in _SECTIONS.items()}
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc
        return cls(**sections)

    @classmethod
    def from_yaml(cls, filepath: str) -> 'SimulationConfig':
        """Load a config from a YAML file."""
        with open(filepath, 'r') as f:
            data = yaml.safe_load(f)

        # Allow the sections to be nested under a top-level key
        if isinstance(data, dict) and 'kite_simulator' in data:
            data = data['kite_simulator']

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a nested dictionary of plain values."""
        result = {}
        for name in _SECTIONS:
            section = asdict(getattr(self, name))
            result[name] = {
                key: value.tolist() if isinstance(value, np.ndarray) else value
                for key, value in section.items()
            }
        return result

    def to_yaml(self, filepath: str) -> None:
        with open(filepath, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)
