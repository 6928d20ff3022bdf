"""
Unit tests for the safety monitor.
"""

import pytest
import numpy as np

from kite_dynamics.aerodynamics import AeroResult
from kite_dynamics.integrators import IntegrationReport
from kite_dynamics.safety import SafetyMonitor
from kite_dynamics.state import (
    KiteState, LineSide, LineState, SimulationMetrics, WarningKind,
)


def aero_result(bad_force=(), bad_torque=()):
    return AeroResult(force=np.zeros(3), torque=np.zeros(3), lift=np.zeros(3),
                      drag=np.zeros(3), surfaces=[], invalid_force_surfaces=list(bad_force),
                      invalid_torque_surfaces=list(bad_torque), metrics=SimulationMetrics())


@pytest.fixture
def monitor():
    return SafetyMonitor()


@pytest.fixture
def state():
    return KiteState(position=np.array([0.0, 8.0, -12.0]))


@pytest.fixture
def lines():
    return (LineState(LineSide.LEFT, 15.2, True, 6000.0, 15.0),
            LineState(LineSide.RIGHT, 15.1, True, 3000.0, 15.0))


class TestClassification:

    def test_quiet_step(self, monitor, state, lines):
        assert monitor.inspect(1, 0.016, state, lines, IntegrationReport(), aero_result()) == []

    def test_acceleration_clamp(self, monitor, state):
        report = IntegrationReport(acceleration_clamped=True, raw_acceleration=900.0)
        events = monitor.inspect(3, 0.05, state, integration=report)
        assert len(events) == 1
        event = events[0]
        assert event.kind is WarningKind.EXCESSIVE_ACCELERATION
        assert event.frame == 3
        assert event.time == 0.05
        assert event.value == 900.0

    def test_one_event_per_kind(self, monitor, state):
        report = IntegrationReport(angular_acceleration_clamped=True,
                                   raw_angular_acceleration=40.0,
                                   angular_velocity_clamped=True,
                                   raw_angular_velocity=20.0)
        events = monitor.inspect(1, 0.0, state, integration=report)
        assert [e.kind for e in events] == [WarningKind.EXCESSIVE_ANGULAR]
        assert events[0].value == 40.0

    def test_fast_state_without_report(self, monitor):
        fast = KiteState(velocity=np.array([0.0, 0.0, 60.0]))
        events = monitor.inspect(1, 0.0, fast)
        assert [e.kind for e in events] == [WarningKind.EXCESSIVE_VELOCITY]
        assert events[0].value == pytest.approx(60.0)

    def test_invalid_surfaces(self, monitor, state):
        events = monitor.inspect(1, 0.0, state,
                                 aero=aero_result(['left_upper'], ['right_lower']))
        kinds = [e.kind for e in events]
        assert kinds == [WarningKind.INVALID_FORCES, WarningKind.INVALID_TORQUE]
        assert events[0].source == 'left_upper'

    def test_position_reset(self, monitor, state):
        events = monitor.inspect(1, 0.0, state,
                                 integration=IntegrationReport(position_reset=True))
        assert [e.kind for e in events] == [WarningKind.POSITION_NAN]

    def test_non_finite_state(self, monitor):
        bad = KiteState(position=np.array([np.nan, 0.0, 0.0]))
        events = monitor.inspect(1, 0.0, bad)
        assert [e.kind for e in events] == [WarningKind.POSITION_NAN]

    def test_line_break(self, monitor, state, lines):
        events = monitor.inspect(1, 0.0, state, lines, broken_lines=[LineSide.LEFT])
        assert [e.kind for e in events] == [WarningKind.LINE_BREAK]
        assert events[0].value == 6000.0
        assert events[0].source == 'left line'

    def test_events_follow_kind_order(self, monitor, state, lines):
        report = IntegrationReport(velocity_clamped=True, raw_velocity=45.0,
                                   acceleration_clamped=True, raw_acceleration=600.0,
                                   force_invalid=True)
        events = monitor.inspect(1, 0.0, state, lines, report, aero_result(),
                                 [LineSide.RIGHT, LineSide.LEFT])
        assert [e.kind for e in events] == [
            WarningKind.EXCESSIVE_ACCELERATION,
            WarningKind.EXCESSIVE_VELOCITY,
            WarningKind.INVALID_FORCES,
            WarningKind.LINE_BREAK,
        ]

    def test_does_not_mutate_state(self, monitor):
        bad = KiteState(position=np.array([np.nan, 0.0, 0.0]),
                        velocity=np.array([0.0, 80.0, 0.0]))
        before = bad.copy()
        monitor.inspect(1, 0.0, bad)
        np.testing.assert_array_equal(bad.position, before.position)
        np.testing.assert_array_equal(bad.velocity, before.velocity)
