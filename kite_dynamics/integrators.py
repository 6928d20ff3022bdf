"""
Rigid-body integrator for the kite.

Semi-implicit Euler with safety clamps:
1. Net force/torque sanitized (non-finite -> zero, force norm <= max_force)
2. Accelerations clamped before integration
3. Velocities updated first, damped, clamped, then used for the positions
4. Orientation advanced by the world-frame angular velocity and renormalized
5. Ground contact resolved at min_height for the lowest contact point

The integrator never raises on numerical trouble; every repair is
recorded in an IntegrationReport for the safety monitor.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np

from .math3d import (
    clamp_norm, integrate_orientation, is_finite, normalize_quaternion, quat_to_rotmat,
)
from .params import KiteConfig, PhysicsConfig, PhysicsConstants
from .state import KiteState


@dataclass
class IntegrationReport:
    """
    What the integrator had to clamp or repair during one step.

    Raw magnitudes are the values before clamping.
    """
    dt: float = 0.0
    force_invalid: bool = False
    torque_invalid: bool = False
    force_clamped: bool = False
    raw_force: float = 0.0
    acceleration_clamped: bool = False
    raw_acceleration: float = 0.0
    angular_acceleration_clamped: bool = False
    raw_angular_acceleration: float = 0.0
    velocity_clamped: bool = False
    raw_velocity: float = 0.0
    angular_velocity_clamped: bool = False
    raw_angular_velocity: float = 0.0
    position_reset: bool = False
    velocity_reset: bool = False
    grounded: bool = False
    linear_acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3))
    angular_acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3))


@dataclass
class IntegrationResult:
    state: KiteState
    report: IntegrationReport


class LoadSmoother:
    """
    First-order low-pass filter on a force/torque pair.

    Each call moves the held loads a (1 - smoothing) share of the way
    toward the new ones. Starts from zero loads.

    Usage:
        smoother = LoadSmoother(0.25)
        force, torque = smoother.filter(aero.force, aero.torque)
    """

    def __init__(self, smoothing: float = 0.25):
        if not 0.0 <= smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1), got {smoothing!r}")
        self.smoothing = smoothing
        self.force = np.zeros(3)
        self.torque = np.zeros(3)

    def reset(self) -> None:
        self.force = np.zeros(3)
        self.torque = np.zeros(3)

    def filter(self, force: np.ndarray, torque: np.ndarray):
        """
        Blend new loads into the held ones.

        A non-finite input is replaced by zero before blending.

        Returns:
            Tuple of (smoothed_force, smoothed_torque), copies
        """
        force = np.asarray(force, dtype=np.float64)
        torque = np.asarray(torque, dtype=np.float64)
        if not is_finite(force):
            force = np.zeros(3)
        if not is_finite(torque):
            torque = np.zeros(3)
        blend = 1.0 - self.smoothing
        self.force = self.force + (force - self.force) * blend
        self.torque = self.torque + (torque - self.torque) * blend
        return self.force.copy(), self.torque.copy()


class RigidBodyIntegrator:
    """
    Advances a KiteState under a net force and torque.

    Usage:
        integrator = RigidBodyIntegrator(KiteConfig(), PhysicsConfig())
        force, torque = integrator.accumulate(state, [aero_force, line_force],
                                              [aero_torque, line_torque])
        result = integrator.step(state, force, torque, dt)
    """

    def __init__(self, kite: Optional[KiteConfig] = None,
                 physics: Optional[PhysicsConfig] = None,
                 constants: Optional[PhysicsConstants] = None,
                 contact_offsets: Optional[np.ndarray] = None):
        """
        Args:
            kite: Mass properties and min_height
            physics: Damping and drag settings
            constants: Safety ceilings
            contact_offsets: Kite-frame points that can touch the ground,
                relative to the CoM, shape (n, 3) (the CoM alone if None)
        """
        self.kite = kite if kite is not None else KiteConfig()
        self.physics = physics if physics is not None else PhysicsConfig()
        self.constants = constants if constants is not None else PhysicsConstants()
        self.contact_offsets = np.zeros((1, 3)) if contact_offsets is None else \
            np.asarray(contact_offsets, dtype=np.float64).reshape(-1, 3)

    def clamp_dt(self, dt: float) -> float:
        """Cap dt at delta_time_max; non-positive or non-finite dt gives 0."""
        if not math.isfinite(dt) or dt <= 0.0:
            return 0.0
        return min(dt, self.physics.delta_time_max)

    def _lowest_offset(self, orientation: np.ndarray) -> float:
        """Height of the lowest contact point above the CoM [m]."""
        R = quat_to_rotmat(orientation)
        return float(np.min(self.contact_offsets @ R[1]))

    def lowest_point(self, state: KiteState) -> float:
        """World altitude of the lowest contact point [m]."""
        return state.altitude + self._lowest_offset(state.orientation)

    def is_grounded(self, state: KiteState) -> bool:
        return self.lowest_point(state) <= self.kite.min_height + self.constants.epsilon

    def gravity_force(self) -> np.ndarray:
        return np.array([0.0, -self.kite.mass * self.physics.gravity, 0.0])

    def accumulate(self, state: KiteState, forces: Iterable[np.ndarray],
                   torques: Iterable[np.ndarray]):
        """
        Sum external loads, gravity and the ground reaction.

        While the kite rests on the ground the downward component of the
        net force is cancelled by the ground.

        Returns:
            Tuple of (net_force, net_torque) in world frame
        """
        net_force = self.gravity_force()
        for f in forces:
            net_force = net_force + np.asarray(f, dtype=np.float64)
        net_torque = np.zeros(3)
        for tau in torques:
            net_torque = net_torque + np.asarray(tau, dtype=np.float64)

        if self.is_grounded(state) and net_force[1] < 0.0:
            net_force = net_force.copy()
            net_force[1] = 0.0
        return net_force, net_torque

    def step(self, state: KiteState, force: np.ndarray, torque: np.ndarray,
             dt: float) -> IntegrationResult:
        """
        One semi-implicit Euler step.

        Args:
            state: Current state (not modified)
            force: Net force including gravity, world frame [N]
            torque: Net torque about the CoM, world frame [N*m]
            dt: Requested time step [s], capped at delta_time_max

        Returns:
            IntegrationResult with the new state and the clamp report
        """
        c = self.constants
        phys = self.physics
        report = IntegrationReport(dt=self.clamp_dt(dt))
        dt = report.dt
        if dt == 0.0:
            return IntegrationResult(state=state.copy(), report=report)

        force = np.asarray(force, dtype=np.float64)
        torque = np.asarray(torque, dtype=np.float64)
        if not is_finite(force):
            report.force_invalid = True
            force = np.zeros(3)
        if not is_finite(torque):
            report.torque_invalid = True
            torque = np.zeros(3)
        force, report.raw_force, report.force_clamped = clamp_norm(force, c.max_force)

        velocity = state.velocity if is_finite(state.velocity) else np.zeros(3)
        omega = state.angular_velocity if is_finite(state.angular_velocity) else np.zeros(3)

        # Accelerations, clamped before they reach the velocities
        accel, _, report.acceleration_clamped = \
            clamp_norm(force / self.kite.mass, c.max_acceleration)
        report.raw_acceleration = report.raw_force / self.kite.mass
        effective_torque = torque - phys.angular_drag_coeff * omega
        alpha, report.raw_angular_acceleration, report.angular_acceleration_clamped = \
            clamp_norm(effective_torque / self.kite.inertia, c.max_angular_acceleration)
        report.linear_acceleration = accel
        report.angular_acceleration = alpha

        # Linear
        new_velocity = (velocity + accel * dt) * phys.linear_damping
        new_velocity, report.raw_velocity, report.velocity_clamped = \
            clamp_norm(new_velocity, c.max_velocity)
        new_position = state.position + new_velocity * dt

        # Angular
        new_omega = (omega + alpha * dt) * phys.angular_damping
        new_omega, report.raw_angular_velocity, report.angular_velocity_clamped = \
            clamp_norm(new_omega, c.max_angular_velocity)
        new_orientation = integrate_orientation(state.orientation, new_omega, dt)

        new_state = KiteState(
            position=new_position,
            orientation=new_orientation,
            velocity=new_velocity,
            angular_velocity=new_omega,
            angle_of_attack=state.angle_of_attack,
            t=state.t + dt
        )
        report.grounded = self.apply_ground(new_state)
        self._restore_invalid(state, new_state, report)
        return IntegrationResult(state=new_state, report=report)

    def apply_ground(self, state: KiteState) -> bool:
        """
        Keep every contact point above min_height (in place).

        The kite is lifted straight up until its lowest contact point sits
        at min_height.

        Returns:
            True if the kite touched the ground this step
        """
        if not is_finite(state.position) or not is_finite(state.orientation):
            return False
        offset = self._lowest_offset(state.orientation)
        if state.position[1] + offset >= self.kite.min_height:
            return False
        state.position[1] = self.kite.min_height - offset
        if state.velocity[1] < 0.0:
            state.velocity[1] = 0.0
        state.velocity[0] *= self.constants.ground_friction
        state.velocity[2] *= self.constants.ground_friction
        return True

    @staticmethod
    def _restore_invalid(previous: KiteState, state: KiteState,
                         report: IntegrationReport) -> None:
        """Fall back to the last valid pose when integration blew up."""
        if not is_finite(state.position) or not is_finite(state.orientation):
            report.position_reset = True
            fallback = previous.position if is_finite(previous.position) else np.zeros(3)
            state.position = fallback.copy()
            state.orientation = normalize_quaternion(previous.orientation)
            state.velocity = np.zeros(3)
            state.angular_velocity = np.zeros(3)
        if not is_finite(state.velocity) or not is_finite(state.angular_velocity):
            report.velocity_reset = True
            state.velocity = np.zeros(3)
            state.angular_velocity = np.zeros(3)
