"""
Control line constraint solver (position-based dynamics).

Lines are inextensible ropes from the kite's control points to the bar
handles. A line never pushes: when the anchor-to-handle distance exceeds
the line length the kite is moved back along the line, with an
under-relaxed correction that mixes translation and rotation according
to the generalized inverse mass of the anchor

    w = 1/m + |r x n|^2 / I

Tension is the pull that stops a taut anchor from accelerating away from
its handle under the other loads on the kite, plus the pull that removes
a constraint_damping share of the overshoot within one step. Both lines
are solved together and the result is scaled by line_tension_factor.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .geometry import KiteGeometry
from .math3d import (
    is_finite, normalize_quaternion, quat_from_rotation_vector, quat_multiply,
    quat_to_rotmat,
)
from .params import KiteConfig, LineConfig, PhysicsConfig, PhysicsConstants
from .state import HandlePositions, KiteState, LineSide, LineState


SOLVE_ORDER = (LineSide.LEFT, LineSide.RIGHT)


@dataclass
class LineForces:
    """
    Tension loads on the kite, world frame.

    Attributes:
        force: Sum of both line pulls [N]
        torque: Their moment about the CoM [N*m]
        lines: Line states carrying the applied tensions (left, right)
        broken: Sides whose tension exceeded the breaking threshold
    """
    force: np.ndarray
    torque: np.ndarray
    lines: Tuple[LineState, LineState]
    broken: List[LineSide] = field(default_factory=list)


@dataclass
class LineSolveResult:
    """
    Outcome of a constraint pass.

    Attributes:
        state: Corrected kite state
        lines: Line states measured before correction (left, right)
        broken: Sides whose tension exceeded the breaking threshold
        iterations: Correction iterations performed
    """
    state: KiteState
    lines: Tuple[LineState, LineState]
    broken: List[LineSide] = field(default_factory=list)
    iterations: int = 0


class LineConstraintSolver:
    """
    Keeps both control lines within their length.

    Usage:
        solver = LineConstraintSolver(geometry, kite_cfg, line_cfg, physics_cfg)
        loads = solver.tension_forces(state, handles, dt, force, torque)  # before integration
        result = solver.solve(new_state, handles, dt)                     # after integration
    """

    def __init__(self, geometry: KiteGeometry,
                 kite: Optional[KiteConfig] = None,
                 line: Optional[LineConfig] = None,
                 physics: Optional[PhysicsConfig] = None,
                 constants: Optional[PhysicsConstants] = None):
        self.geometry = geometry
        self.kite = kite if kite is not None else KiteConfig()
        self.line = line if line is not None else LineConfig()
        self.physics = physics if physics is not None else PhysicsConfig()
        self.constants = constants if constants is not None else PhysicsConstants()
        self._target_length = self.line.length
        self._enabled: Dict[LineSide, bool] = {side: True for side in LineSide}

    @property
    def target_length(self) -> float:
        return self._target_length

    def set_line_length(self, length: float) -> None:
        if not np.isfinite(length) or length <= 0:
            raise ValueError(f"Line length must be positive, got {length!r}")
        self._target_length = float(length)

    def is_enabled(self, side: LineSide) -> bool:
        return self._enabled[side]

    def set_line_enabled(self, side: LineSide, enabled: bool) -> None:
        """Enable or disable a line (a released line exerts no constraint)."""
        self._enabled[side] = bool(enabled)

    def anchor_positions(self, state: KiteState) -> Dict[LineSide, np.ndarray]:
        """World positions of both control points."""
        R = quat_to_rotmat(state.orientation)
        return {side: state.position + R @ self.geometry.control_point(side)
                for side in LineSide}

    def measure(self, state: KiteState, handles: HandlePositions, dt: float,
                force: Optional[np.ndarray] = None,
                torque: Optional[np.ndarray] = None) -> Tuple[LineState, LineState]:
        """
        Distance, taut flag and tension of both lines (left, right).

        Args:
            state: Kite state
            handles: Bar handle world positions
            dt: Step the overshoot is removed over [s]
            force: Net load on the kite besides the lines, world frame [N]
            torque: Its moment about the CoM [N*m]

        Returns:
            Tuple of (left, right) LineState
        """
        anchors = self.anchor_positions(state)
        tol = self.constants.line_constraint_tolerance
        force = np.zeros(3) if force is None else np.asarray(force, dtype=np.float64)
        torque = np.zeros(3) if torque is None else np.asarray(torque, dtype=np.float64)

        distances = {}
        demands = []
        for side in SOLVE_ORDER:
            delta = anchors[side] - handles.get(side)
            distance = float(np.linalg.norm(delta))
            distances[side] = distance
            if not self._enabled[side] or not np.isfinite(distance) \
                    or distance < self._target_length - tol or distance <= 0.0:
                continue
            n = delta / distance
            rxn = np.cross(anchors[side] - state.position, n)
            demand = self._outward_demand(n, rxn, distance, dt, force, torque)
            if demand > 0.0:
                demands.append((side, n, rxn, demand))

        pulls = self._pull_magnitudes([(n, rxn, demand) for _, n, rxn, demand in demands])
        tensions = {side: self.constants.line_tension_factor * float(pull)
                    for (side, _, _, _), pull in zip(demands, pulls)}

        result = []
        for side in SOLVE_ORDER:
            distance = distances[side]
            if not self._enabled[side] or not np.isfinite(distance):
                result.append(LineState(side, distance, False, 0.0, self._target_length))
                continue
            taut = distance >= self._target_length - tol
            result.append(LineState(side, distance, taut, tensions.get(side, 0.0),
                                    self._target_length))
        return tuple(result)

    def _outward_demand(self, n: np.ndarray, rxn: np.ndarray, distance: float, dt: float,
                        force: np.ndarray, torque: np.ndarray) -> float:
        """Outward anchor acceleration the line has to cancel [m/s^2]."""
        demand = np.dot(force, n) / self.kite.mass + np.dot(torque, rxn) / self.kite.inertia
        overshoot = distance - self._target_length
        if overshoot > 0.0 and dt > 0.0:
            demand += self.physics.constraint_damping * overshoot / (dt * dt)
        return float(demand) if np.isfinite(demand) else 0.0

    def tension_forces(self, state: KiteState, handles: HandlePositions, dt: float,
                       force: Optional[np.ndarray] = None,
                       torque: Optional[np.ndarray] = None) -> LineForces:
        """
        Loads the lines apply to the kite in its current pose.

        Each taut line pulls its anchor toward its handle with the tension
        found by measure(); the torque is taken about the CoM.

        Args:
            state: Kite state at the start of the step
            handles: Bar handle world positions
            dt: Step about to be integrated [s]
            force: Net load on the kite besides the lines [N]
            torque: Its moment about the CoM [N*m]
        """
        lines = self.measure(state, handles, dt, force, torque)
        anchors = self.anchor_positions(state)
        total_force = np.zeros(3)
        total_torque = np.zeros(3)
        for line in lines:
            if line.tension <= 0.0:
                continue
            to_handle = handles.get(line.side) - anchors[line.side]
            pull = line.tension * to_handle / line.distance
            total_force += pull
            total_torque += np.cross(anchors[line.side] - state.position, pull)
        return LineForces(force=total_force, torque=total_torque, lines=lines,
                          broken=self._broken(lines))

    def _broken(self, lines) -> List[LineSide]:
        return [line.side for line in lines if line.tension > self.line.breaking_tension]

    def solve(self, state: KiteState, handles: HandlePositions,
              dt: float) -> LineSolveResult:
        """
        Correct line over-extension after integration.

        Args:
            state: Tentatively integrated state (not modified)
            handles: Bar handle world positions
            dt: Step the overshoot tension is reported over [s]

        Returns:
            LineSolveResult with the corrected state
        """
        lines = self.measure(state, handles, dt)
        broken = self._broken(lines)

        corrected = state.copy()
        both_taut = all(line.taut for line in lines)
        iterations = self.physics.constraint_iterations if both_taut else 1
        performed = 0
        for _ in range(iterations):
            if not self._correct_once(corrected, handles):
                break
            performed += 1

        self._remove_radial_velocity(corrected, handles)
        return LineSolveResult(state=corrected, lines=lines, broken=broken,
                               iterations=performed)

    def _correct_once(self, state: KiteState, handles: HandlePositions) -> bool:
        """
        One PBD iteration, in place.

        Both violations are computed from the same anchor snapshot, summed
        in fixed left-then-right order and applied as a single move.

        Returns:
            True if any line needed correction
        """
        m = self.kite.mass
        inertia = self.kite.inertia
        damping = self.physics.constraint_damping
        tol = self.constants.line_constraint_tolerance

        anchors = self.anchor_positions(state)
        translation = np.zeros(3)
        rotation = np.zeros(3)
        corrected = False
        for side in SOLVE_ORDER:
            if not self._enabled[side]:
                continue
            delta = anchors[side] - handles.get(side)
            distance = np.linalg.norm(delta)
            if not np.isfinite(distance) or distance <= self._target_length + tol:
                continue
            n = delta / distance
            rxn = np.cross(anchors[side] - state.position, n)
            w = 1.0 / m + np.dot(rxn, rxn) / inertia
            lam = (distance - self._target_length) / w
            translation = translation + n * (lam / m)
            rotation = rotation + rxn * (lam / inertia)
            corrected = True

        if corrected:
            state.position = state.position - damping * translation
            dq = quat_from_rotation_vector(-damping * rotation)
            state.orientation = normalize_quaternion(quat_multiply(dq, state.orientation))
        return corrected

    def _remove_radial_velocity(self, state: KiteState, handles: HandlePositions) -> None:
        """
        Cancel the outward anchor speed of every stretched line.

        The line impulses are solved together so that stopping one anchor
        does not leave the other drifting outward.
        """
        anchors = self.anchor_positions(state)
        tol = self.constants.line_constraint_tolerance
        active = []
        for side in SOLVE_ORDER:
            if not self._enabled[side]:
                continue
            delta = anchors[side] - handles.get(side)
            distance = np.linalg.norm(delta)
            if not np.isfinite(distance) or distance < self._target_length - tol:
                continue
            n = delta / distance
            r = anchors[side] - state.position
            radial_speed = float(np.dot(state.velocity + np.cross(state.angular_velocity, r), n))
            if radial_speed > 0.0:
                active.append((n, np.cross(r, n), radial_speed))

        impulses = self._pull_magnitudes(active)
        for (n, rxn, _), impulse in zip(active, impulses):
            state.velocity = state.velocity - n * (impulse / self.kite.mass)
            state.angular_velocity = state.angular_velocity - rxn * (impulse / self.kite.inertia)
        if not is_finite(state.velocity) or not is_finite(state.angular_velocity):
            state.velocity = np.zeros(3)
            state.angular_velocity = np.zeros(3)

    def _pull_magnitudes(self, active) -> np.ndarray:
        """
        Joint line pulls that zero each anchor's outward rate.

        `active` holds (n, r x n, rate) per line. Lines only pull, so a line
        whose pull comes out negative is dropped and the rest re-solved.
        The result is aligned with `active`, zero for dropped lines.
        """
        pulls = np.zeros(len(active))
        keep = list(range(len(active)))
        while keep:
            normals = np.array([active[i][0] for i in keep])
            arms = np.array([active[i][1] for i in keep])
            rates = np.array([active[i][2] for i in keep])
            coupling = normals @ normals.T / self.kite.mass + arms @ arms.T / self.kite.inertia
            solved = np.linalg.lstsq(coupling, rates, rcond=None)[0]
            if np.all(solved >= 0.0):
                pulls[keep] = solved
                break
            keep = [i for i, pull in zip(keep, solved) if pull > 0.0]
        return pulls


def sample_line_points(anchor: np.ndarray, handle: np.ndarray, target_length: float,
                       segments: int = 5) -> np.ndarray:
    """
    Points along a line for display.

    A stretched line is straight; a slack line sags downward as a parabola
    whose depth is 10% of the unused length.

    Args:
        anchor: Kite-side end, world frame [m]
        handle: Bar-side end, world frame [m]
        target_length: Line length [m]
        segments: Number of segments (returns segments + 1 points)

    Returns:
        Array of shape (segments + 1, 3)
    """
    anchor = np.asarray(anchor, dtype=np.float64)
    handle = np.asarray(handle, dtype=np.float64)
    t = np.linspace(0.0, 1.0, segments + 1)
    points = handle + np.outer(t, anchor - handle)
    slack = target_length - np.linalg.norm(anchor - handle)
    if slack > 0.0:
        points[:, 1] -= slack * 0.1 * t * (1.0 - t)
    return points
