"""
Kite simulation: owns every physics component and runs the per-frame
pipeline.

    clamp dt -> wind -> aerodynamics -> load smoothing -> line tension
             -> integration -> line constraints -> safety monitor

Line tension is evaluated on the pose at the start of the step, from the
smoothed aerodynamic load and gravity, and fed into that same step's
integration. The line states reported with the step carry that applied
tension.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Sequence, Tuple, Union

import numpy as np

from .aerodynamics import AerodynamicModel
from .control_bar import ControlBar
from .geometry import KiteGeometry, default_kite_geometry
from .integrators import LoadSmoother, RigidBodyIntegrator
from .lines import LineConstraintSolver, sample_line_points
from .math3d import quat_from_axis_angle, quat_rotate_vector
from .params import SimulationConfig
from .safety import SafetyMonitor
from .state import (
    HandlePositions, KiteState, LineSide, LineState, SimulationMetrics, WarningEvent,
)
from .wind import WindField

logger = logging.getLogger(__name__)

DEFAULT_LAUNCH_ALTITUDE = 7.0
DEFAULT_LINE_FRACTION = 0.95

HandlesLike = Union[HandlePositions, Sequence[np.ndarray]]


@dataclass
class StepResult:
    """
    Outputs of one simulation step.

    Attributes:
        state: Copy of the kite state after the step
        lines: Left and right line states
        warnings: Safety events raised during the step
        metrics: Aerodynamic summary for display
        frame: Step index (starts at 1)
        time: Simulation time after the step [s]
        dt: Time step actually integrated [s]
    """
    state: KiteState
    lines: Tuple[LineState, LineState]
    warnings: List[WarningEvent]
    metrics: SimulationMetrics
    frame: int
    time: float
    dt: float


class KiteSimulation:
    """
    Two-line kite flight simulation.

    Usage:
        sim = KiteSimulation(SimulationConfig())
        sim.set_wind(speed_kmh=20.0)
        for _ in range(600):
            result = sim.step(1.0 / 60.0)
            result.state.position, result.lines, result.warnings
    """

    def __init__(self, config: Optional[SimulationConfig] = None,
                 geometry: Optional[KiteGeometry] = None,
                 wind: Optional[WindField] = None,
                 control_bar: Optional[ControlBar] = None,
                 initial_state: Optional[KiteState] = None,
                 warning_history: int = 200):
        """
        Build the simulation.

        Args:
            config: Simulation configuration (defaults if None)
            geometry: Kite geometry (standard delta kite if None)
            wind: Wind field (built from config.wind if None)
            control_bar: Control bar (built from config.control_bar if None)
            initial_state: Starting state (launch position if None)
            warning_history: Size of the recent-warnings buffer

        Raises:
            ConfigError: If the configuration is invalid
        """
        self.config = config if config is not None else SimulationConfig()
        self.config.validate()
        cfg = self.config

        self.geometry = geometry if geometry is not None else default_kite_geometry()
        self.wind = wind if wind is not None else WindField(cfg.wind)
        self.control_bar = control_bar if control_bar is not None else \
            ControlBar(cfg.control_bar, cfg.constants)
        self.aero = AerodynamicModel(self.geometry, cfg.physics.air_density,
                                     cfg.constants.epsilon)
        self.integrator = RigidBodyIntegrator(cfg.kite, cfg.physics, cfg.constants,
                                              self.geometry.contact_offsets)
        self.smoother = LoadSmoother(cfg.physics.force_smoothing)
        self.lines = LineConstraintSolver(self.geometry, cfg.kite, cfg.lines,
                                          cfg.physics, cfg.constants)
        self.monitor = SafetyMonitor(cfg.constants)

        self.recent_warnings: Deque[WarningEvent] = deque(maxlen=warning_history)
        self.frame = 0
        self.state = initial_state.copy() if initial_state is not None else self.launch_state()
        self.last_lines = self.lines.measure(self.state, self.handle_positions(),
                                             cfg.physics.delta_time_max)

        logger.info("Kite simulation ready: mass=%.3f kg, sail=%.2f m^2, lines=%.1f m",
                    cfg.kite.mass, self.geometry.total_area, cfg.lines.length)

    def handle_positions(self) -> HandlePositions:
        return self.control_bar.handle_positions()

    def launch_state(self, altitude: float = DEFAULT_LAUNCH_ALTITUDE,
                     line_fraction: float = DEFAULT_LINE_FRACTION) -> KiteState:
        """
        Kite at rest downwind of the bar, bridle side facing down the lines.

        The kite is pitched by the elevation of the lines and placed so that
        its left anchor sits line_fraction * line length from the left
        handle (both lines match for a centered bar).

        Args:
            altitude: Altitude of the kite origin [m]
            line_fraction: Anchor distance as a fraction of the line length

        Raises:
            ValueError: If the lines cannot reach that altitude
        """
        handles = self.handle_positions()
        handle = handles.left
        bar_center = 0.5 * (handles.left + handles.right)
        reach = line_fraction * self.lines.target_length

        elevation = float(np.arcsin(np.clip((altitude - bar_center[1]) / reach, -1.0, 1.0)))
        orientation = quat_from_axis_angle(np.array([1.0, 0.0, 0.0]), elevation)
        anchor = quat_rotate_vector(orientation, self.geometry.control_point(LineSide.LEFT))

        dx = bar_center[0] + anchor[0] - handle[0]
        dy = altitude + anchor[1] - handle[1]
        horizontal_sq = reach * reach - dx * dx - dy * dy
        if horizontal_sq < 0.0:
            raise ValueError(f"Lines of {reach:.2f} m cannot reach altitude {altitude:.2f} m")

        z = handle[2] - anchor[2] - np.sqrt(horizontal_sq)
        return KiteState(position=np.array([bar_center[0], altitude, z]),
                         orientation=orientation)

    def reset(self, state: Optional[KiteState] = None) -> None:
        """Restart from `state` (launch position if None)."""
        self.state = state.copy() if state is not None else self.launch_state()
        self.frame = 0
        self.wind.reset()
        self.smoother.reset()
        self.recent_warnings.clear()
        self.last_lines = self.lines.measure(self.state, self.handle_positions(),
                                             self.config.physics.delta_time_max)
        logger.info("Simulation reset at position %s", np.round(self.state.position, 3))

    def set_wind(self, speed_kmh: Optional[float] = None,
                 direction_deg: Optional[float] = None,
                 turbulence_pct: Optional[float] = None) -> None:
        self.wind.set_params(speed_kmh, direction_deg, turbulence_pct)

    def set_bar_rotation(self, angle: float) -> bool:
        return self.control_bar.set_rotation(angle)

    def release_line(self, side: LineSide) -> None:
        """Stop enforcing one line, e.g. after a LINE_BREAK."""
        self.lines.set_line_enabled(side, False)
        logger.info("%s line released", side.value)

    def attach_line(self, side: LineSide) -> None:
        self.lines.set_line_enabled(side, True)

    def set_line_length(self, length: float) -> None:
        """
        Change the line length.

        If the kite ends up outside the new reach it is pulled back toward
        the handles so both anchors are within the new length.
        """
        self.lines.set_line_length(length)
        handles = self.handle_positions()
        anchors = self.lines.anchor_positions(self.state)
        for side in LineSide:
            delta = anchors[side] - handles.get(side)
            distance = np.linalg.norm(delta)
            if distance > length:
                self.state.position = self.state.position - delta / distance * (distance - length)
                anchors = self.lines.anchor_positions(self.state)
        self.state.velocity = np.zeros(3)
        self.state.angular_velocity = np.zeros(3)
        self.last_lines = self.lines.measure(self.state, handles,
                                             self.config.physics.delta_time_max)
        logger.info("Line length set to %.2f m", length)

    def line_points(self, segments: Optional[int] = None):
        """Display polylines for both lines, keyed by side."""
        segments = segments if segments is not None else self.config.constants.catenary_segments
        handles = self.handle_positions()
        anchors = self.lines.anchor_positions(self.state)
        return {side: sample_line_points(anchors[side], handles.get(side),
                                         self.lines.target_length, segments)
                for side in LineSide}

    def step(self, delta_time: float, handles: Optional[HandlesLike] = None) -> StepResult:
        """
        Advance the simulation by one frame.

        Args:
            delta_time: Wall-clock time since the last frame [s]
            handles: Bar handle world positions (from the control bar if None)

        Returns:
            StepResult for the frame
        """
        if handles is None:
            handles = self.handle_positions()
        elif not isinstance(handles, HandlePositions):
            handles = HandlePositions(left=handles[0], right=handles[1])

        dt = self.integrator.clamp_dt(delta_time)
        self.frame += 1
        state = self.state

        if dt == 0.0:
            lines = self.lines.measure(state, handles, self.config.physics.delta_time_max)
            return StepResult(state=state.copy(), lines=lines, warnings=[],
                              metrics=SimulationMetrics(), frame=self.frame,
                              time=state.t, dt=0.0)

        apparent = self.wind.apparent_wind(state.position, state.velocity)
        aero = self.aero.compute(apparent, state.orientation)
        aero_force, aero_torque = self.smoother.filter(aero.force, aero.torque)

        external_force, external_torque = self.integrator.accumulate(
            state, [aero_force], [aero_torque])
        line_loads = self.lines.tension_forces(state, handles, dt,
                                               external_force, external_torque)
        force, torque = self.integrator.accumulate(
            state, [aero_force, line_loads.force], [aero_torque, line_loads.torque])
        integrated = self.integrator.step(state, force, torque, dt)

        solved = self.lines.solve(integrated.state, handles, dt)
        new_state = solved.state
        self.integrator.apply_ground(new_state)
        new_state.angle_of_attack = aero.metrics.angle_of_attack_deg
        self.wind.advance(dt)

        warnings = self.monitor.inspect(self.frame, new_state.t, new_state, line_loads.lines,
                                        integrated.report, aero, line_loads.broken)
        for event in warnings:
            logger.debug("frame %d: %s (value=%s, source=%s)", event.frame,
                         event.kind.name, event.value, event.source)
        self.recent_warnings.extend(warnings)

        self.state = new_state
        self.last_lines = line_loads.lines
        return StepResult(state=new_state.copy(), lines=line_loads.lines, warnings=warnings,
                          metrics=aero.metrics, frame=self.frame, time=new_state.t, dt=dt)
