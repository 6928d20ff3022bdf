# Kite Dynamics Library
# A pure Python library for two-line kite flight simulation

from .errors import ConfigError
from .state import (
    KiteState, LineSide, LineState, HandlePositions,
    WarningKind, WarningEvent, SimulationMetrics,
)
from .params import (
    PhysicsConstants, PhysicsConfig, KiteConfig, LineConfig,
    ControlBarConfig, SimulationConfig,
)
from .geometry import KiteGeometry, Surface, default_kite_geometry
from .wind import WindConfig, WindParams, WindField
from .aerodynamics import AerodynamicModel, compute_surface_forces
from .integrators import LoadSmoother, RigidBodyIntegrator
from .lines import LineConstraintSolver, sample_line_points
from .control_bar import ControlBar
from .safety import SafetyMonitor
from .simulation import KiteSimulation, StepResult

__version__ = "0.1.0"
__all__ = [
    "ConfigError",
    "KiteState",
    "LineSide",
    "LineState",
    "HandlePositions",
    "WarningKind",
    "WarningEvent",
    "SimulationMetrics",
    "PhysicsConstants",
    "PhysicsConfig",
    "KiteConfig",
    "LineConfig",
    "ControlBarConfig",
    "SimulationConfig",
    "KiteGeometry",
    "Surface",
    "default_kite_geometry",
    "WindConfig",
    "WindParams",
    "WindField",
    "AerodynamicModel",
    "compute_surface_forces",
    "LoadSmoother",
    "RigidBodyIntegrator",
    "LineConstraintSolver",
    "sample_line_points",
    "ControlBar",
    "SafetyMonitor",
    "KiteSimulation",
    "StepResult",
]
