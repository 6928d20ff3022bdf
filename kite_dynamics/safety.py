"""
Safety monitor: turns per-step clamp and repair reports into warnings.

The monitor is stateless and purely observational. It is the single
place where integrator, aerodynamic and line-solver findings become a
uniform list of WarningEvents, with at most one event per kind per frame.
"""

from typing import Iterable, List, Optional, Sequence

import numpy as np

from .aerodynamics import AeroResult
from .integrators import IntegrationReport
from .params import PhysicsConstants
from .state import KiteState, LineSide, LineState, WarningEvent, WarningKind


class SafetyMonitor:
    """
    Usage:
        monitor = SafetyMonitor(constants)
        warnings = monitor.inspect(frame, t, state, lines, report, aero, broken)
    """

    def __init__(self, constants: Optional[PhysicsConstants] = None):
        self.constants = constants if constants is not None else PhysicsConstants()

    def inspect(
        self,
        frame: int,
        time: float,
        state: KiteState,
        lines: Sequence[LineState] = (),
        integration: Optional[IntegrationReport] = None,
        aero: Optional[AeroResult] = None,
        broken_lines: Iterable[LineSide] = ()
    ) -> List[WarningEvent]:
        """
        Classify one step.

        Args:
            frame: Step index
            time: Simulation time after the step [s]
            state: Final state of the step
            lines: Line states reported by the solver
            integration: Integrator clamp report
            aero: Aerodynamic result of the step
            broken_lines: Sides whose tension exceeded the breaking threshold

        Returns:
            Warnings ordered as WarningKind
        """
        c = self.constants
        found = {}

        def emit(kind: WarningKind, value: float, source: str) -> None:
            if kind not in found:
                found[kind] = WarningEvent(kind, frame, time, float(value), source)

        velocity_ok = bool(np.all(np.isfinite(state.velocity)))
        omega_ok = bool(np.all(np.isfinite(state.angular_velocity)))

        if integration is not None:
            if integration.acceleration_clamped:
                emit(WarningKind.EXCESSIVE_ACCELERATION, integration.raw_acceleration,
                     'integrator')
            if integration.velocity_clamped:
                emit(WarningKind.EXCESSIVE_VELOCITY, integration.raw_velocity, 'integrator')
            if integration.angular_acceleration_clamped:
                emit(WarningKind.EXCESSIVE_ANGULAR, integration.raw_angular_acceleration,
                     'integrator')
            if integration.angular_velocity_clamped:
                emit(WarningKind.EXCESSIVE_ANGULAR, integration.raw_angular_velocity,
                     'integrator')
            if integration.force_invalid:
                emit(WarningKind.INVALID_FORCES, float('nan'), 'net force')
            if integration.torque_invalid:
                emit(WarningKind.INVALID_TORQUE, float('nan'), 'net torque')
            if integration.position_reset:
                emit(WarningKind.POSITION_NAN, float('nan'), 'integrator')

        if velocity_ok and state.speed > c.max_velocity + c.epsilon:
            emit(WarningKind.EXCESSIVE_VELOCITY, state.speed, 'state')
        if omega_ok:
            omega = float(np.linalg.norm(state.angular_velocity))
            if omega > c.max_angular_velocity + c.epsilon:
                emit(WarningKind.EXCESSIVE_ANGULAR, omega, 'state')

        if aero is not None:
            if aero.invalid_force_surfaces:
                emit(WarningKind.INVALID_FORCES, len(aero.invalid_force_surfaces),
                     ', '.join(aero.invalid_force_surfaces))
            if aero.invalid_torque_surfaces:
                emit(WarningKind.INVALID_TORQUE, len(aero.invalid_torque_surfaces),
                     ', '.join(aero.invalid_torque_surfaces))

        if not state.is_finite():
            emit(WarningKind.POSITION_NAN, float('nan'), 'state')

        broken = set(broken_lines)
        snapped = [line for line in lines if line.side in broken]
        if snapped:
            emit(WarningKind.LINE_BREAK, max(line.tension for line in snapped),
                 ', '.join(f'{line.side.value} line' for line in snapped))

        return [found[kind] for kind in WarningKind if kind in found]
