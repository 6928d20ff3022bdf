"""
State, line and warning records for kite simulation.

Coordinate system: Y-up world frame
- x = pilot's right, y = up, z = behind the pilot
- Gravity acts along -y
- Altitude h = y
- The kite flies downwind, at negative z for a 0 deg wind
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


@dataclass
class KiteState:
    """
    Kite rigid-body state in the world frame.

    Attributes:
        position: Kite origin (center of mass) [m], shape (3,)
        orientation: Kite->world rotation, format [w, x, y, z], shape (4,)
        velocity: Linear velocity [m/s], shape (3,)
        angular_velocity: Angular velocity in world frame [rad/s], shape (3,)
        angle_of_attack: Mean angle of attack of the sail [deg]
        t: Current simulation time [s]
    """
    position: np.ndarray = field(default_factory=lambda: np.array([0.0, 7.0, -14.0]))
    orientation: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0]))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    angular_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    angle_of_attack: float = 0.0
    t: float = 0.0

    def __post_init__(self):
        """Ensure all arrays are numpy arrays with correct dtype."""
        self.position = np.asarray(self.position, dtype=np.float64)
        self.orientation = np.asarray(self.orientation, dtype=np.float64)
        self.velocity = np.asarray(self.velocity, dtype=np.float64)
        self.angular_velocity = np.asarray(self.angular_velocity, dtype=np.float64)

    @property
    def altitude(self) -> float:
        return float(self.position[1])

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))

    def copy(self) -> 'KiteState':
        """Create a deep copy of the state."""
        return KiteState(
            position=self.position.copy(),
            orientation=self.orientation.copy(),
            velocity=self.velocity.copy(),
            angular_velocity=self.angular_velocity.copy(),
            angle_of_attack=self.angle_of_attack,
            t=self.t
        )

    def is_finite(self) -> bool:
        """Check if all state values are finite."""
        return (
            np.all(np.isfinite(self.position)) and
            np.all(np.isfinite(self.orientation)) and
            np.all(np.isfinite(self.velocity)) and
            np.all(np.isfinite(self.angular_velocity)) and
            np.isfinite(self.angle_of_attack) and
            np.isfinite(self.t)
        )


class LineSide(Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class HandlePositions:
    """World positions of the control bar handles [m]."""
    left: np.ndarray
    right: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'left', np.asarray(self.left, dtype=np.float64))
        object.__setattr__(self, 'right', np.asarray(self.right, dtype=np.float64))

    def get(self, side: LineSide) -> np.ndarray:
        return self.left if side is LineSide.LEFT else self.right


@dataclass(frozen=True)
class LineState:
    """
    Per-step state of one control line.

    Attributes:
        side: Which line
        distance: Anchor-to-handle distance [m]
        taut: True when distance >= target_length - tolerance
        tension: Tension magnitude [N] (0 when slack)
        target_length: Line length the solver enforces [m]
    """
    side: LineSide
    distance: float
    taut: bool
    tension: float
    target_length: float

    @property
    def slack(self) -> float:
        """Unused line length [m] (0 when stretched)."""
        return max(self.target_length - self.distance, 0.0)


class WarningKind(Enum):
    """Kinds of safety events, in reporting order."""
    EXCESSIVE_ACCELERATION = "excessive_acceleration"
    EXCESSIVE_VELOCITY = "excessive_velocity"
    EXCESSIVE_ANGULAR = "excessive_angular"
    INVALID_FORCES = "invalid_forces"
    INVALID_TORQUE = "invalid_torque"
    POSITION_NAN = "position_nan"
    LINE_BREAK = "line_break"


@dataclass(frozen=True)
class WarningEvent:
    """
    A safety event raised during one simulation step.

    Attributes:
        kind: Event kind
        frame: Index of the step that raised it
        time: Simulation time at the end of that step [s]
        value: Offending magnitude (NaN when not meaningful)
        source: Short description of where it was detected
    """
    kind: WarningKind
    frame: int
    time: float
    value: float = float('nan')
    source: Optional[str] = None


@dataclass
class SimulationMetrics:
    """Summary aerodynamic quantities for display."""
    apparent_speed: float = 0.0        # [m/s]
    lift: float = 0.0                  # [N]
    drag: float = 0.0                  # [N]
    lift_over_drag: float = 0.0
    angle_of_attack_deg: float = 0.0   # [deg]
