"""
Unit tests for the rigid-body integrator.

Test categories:
1. Free motion: gravity, damping, dt capping
2. Clamps: force, acceleration, velocity and angular limits
3. Ground contact, including points away from the CoM
4. Recovery from non-finite inputs
5. Load smoothing
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from kite_dynamics.geometry import default_kite_geometry
from kite_dynamics.integrators import LoadSmoother, RigidBodyIntegrator
from kite_dynamics.math3d import quat_from_axis_angle, quat_from_euler, quat_rotate_vector
from kite_dynamics.params import KiteConfig, PhysicsConfig, PhysicsConstants
from kite_dynamics.state import KiteState


@pytest.fixture
def constants():
    return PhysicsConstants()


@pytest.fixture
def integrator(constants):
    return RigidBodyIntegrator(KiteConfig(), PhysicsConfig(), constants)


@pytest.fixture
def state():
    return KiteState(position=np.array([0.0, 10.0, -10.0]))


class TestFreeMotion:

    def test_gravity_only(self, integrator, state):
        force, torque = integrator.accumulate(state, [], [])
        assert_allclose(force, [0.0, -0.28 * 9.81, 0.0])
        result = integrator.step(state, force, torque, 0.01)
        expected_v = -9.81 * 0.01 * integrator.physics.linear_damping
        assert_allclose(result.state.velocity, [0.0, expected_v, 0.0])
        assert_allclose(result.state.position, [0.0, 10.0 + expected_v * 0.01, -10.0])
        assert result.state.t == pytest.approx(0.01)

    def test_input_state_is_not_modified(self, integrator, state):
        before = state.copy()
        integrator.step(state, np.array([1.0, 2.0, 3.0]), np.array([0.1, 0.0, 0.0]), 0.01)
        assert_allclose(state.position, before.position)
        assert_allclose(state.velocity, before.velocity)
        assert_allclose(state.orientation, before.orientation)

    def test_dt_is_capped(self, integrator, state):
        result = integrator.step(state, np.zeros(3), np.zeros(3), 1.0)
        assert result.report.dt == integrator.physics.delta_time_max
        assert result.state.t == pytest.approx(integrator.physics.delta_time_max)

    @pytest.mark.parametrize("dt", [0.0, -0.1, float('nan')])
    def test_invalid_dt_integrates_nothing(self, integrator, state, dt):
        result = integrator.step(state, np.array([5.0, 0.0, 0.0]), np.zeros(3), dt)
        assert result.report.dt == 0.0
        assert_allclose(result.state.position, state.position)

    def test_angular_drag_slows_rotation(self, integrator, state):
        state.angular_velocity = np.array([0.0, 2.0, 0.0])
        result = integrator.step(state, np.zeros(3), np.zeros(3), 0.01)
        assert np.linalg.norm(result.state.angular_velocity) < 2.0

    def test_unit_quaternion_over_many_steps(self, integrator):
        state = KiteState(position=np.array([0.0, 50.0, 0.0]),
                          orientation=quat_from_euler(0.3, 0.1, -0.4))
        torque = np.array([0.3, -0.5, 0.2])
        for _ in range(2000):
            state = integrator.step(state, np.zeros(3), torque, 1.0 / 60.0).state
            assert abs(np.linalg.norm(state.orientation) - 1.0) < 1e-6


class TestClamps:

    def test_huge_force_clamps_acceleration(self, integrator, state, constants):
        result = integrator.step(state, np.array([1e7, 0.0, 0.0]), np.zeros(3), 0.01)
        report = result.report
        assert report.force_clamped
        assert report.acceleration_clamped
        assert report.raw_acceleration > constants.max_acceleration
        assert np.linalg.norm(report.linear_acceleration) == \
            pytest.approx(constants.max_acceleration)

    def test_raw_acceleration_uses_unclamped_force(self, integrator, state, constants):
        result = integrator.step(state, np.array([0.0, 0.0, -1e7]), np.zeros(3), 0.01)
        assert result.report.raw_force == pytest.approx(1e7)
        assert result.report.raw_acceleration == pytest.approx(1e7 / 0.28)
        assert result.report.raw_acceleration > constants.max_force / 0.28

    def test_velocity_clamp(self, integrator, constants):
        state = KiteState(position=np.array([0.0, 10.0, 0.0]),
                          velocity=np.array([0.0, 0.0, 80.0]))
        result = integrator.step(state, np.zeros(3), np.zeros(3), 0.01)
        assert result.report.velocity_clamped
        assert result.state.speed == pytest.approx(constants.max_velocity)

    def test_angular_clamps(self, integrator, state, constants):
        result = integrator.step(state, np.zeros(3), np.array([0.0, 100.0, 0.0]), 0.01)
        assert result.report.angular_acceleration_clamped
        assert np.linalg.norm(result.report.angular_acceleration) == \
            pytest.approx(constants.max_angular_acceleration)

        spinning = KiteState(position=np.array([0.0, 10.0, 0.0]),
                             angular_velocity=np.array([0.0, 0.0, 40.0]))
        result = integrator.step(spinning, np.zeros(3), np.zeros(3), 0.01)
        assert result.report.angular_velocity_clamped
        assert np.linalg.norm(result.state.angular_velocity) == \
            pytest.approx(constants.max_angular_velocity)

    def test_within_limits_no_flags(self, integrator, state):
        result = integrator.step(state, np.array([0.0, 1.0, 0.0]), np.zeros(3), 0.01)
        report = result.report
        assert not (report.force_clamped or report.acceleration_clamped or
                    report.velocity_clamped or report.angular_acceleration_clamped or
                    report.angular_velocity_clamped)


class TestGround:

    def test_ground_clamp(self, integrator, constants):
        state = KiteState(position=np.array([0.0, 0.6, 0.0]),
                          velocity=np.array([2.0, -20.0, 1.0]))
        result = integrator.step(state, np.zeros(3), np.zeros(3), 0.01)
        damping = integrator.physics.linear_damping
        assert result.report.grounded
        assert result.state.altitude == integrator.kite.min_height
        assert result.state.velocity[1] == 0.0
        assert result.state.velocity[0] == pytest.approx(2.0 * damping * constants.ground_friction)
        assert result.state.velocity[2] == pytest.approx(1.0 * damping * constants.ground_friction)

    def test_ground_cancels_downward_force(self, integrator):
        state = KiteState(position=np.array([0.0, 0.5, 0.0]))
        force, _ = integrator.accumulate(state, [np.array([1.0, -3.0, 0.0])], [])
        assert force[1] == 0.0
        assert force[0] == 1.0

    def test_upward_force_lifts_off(self, integrator):
        state = KiteState(position=np.array([0.0, 0.5, 0.0]))
        force, torque = integrator.accumulate(state, [np.array([0.0, 20.0, 0.0])], [])
        result = integrator.step(state, force, torque, 0.01)
        assert result.state.altitude > 0.5
        assert not result.report.grounded


class TestNonFiniteRecovery:

    def test_nan_force_is_zeroed(self, integrator, state):
        result = integrator.step(state, np.array([np.nan, 0.0, 0.0]), np.zeros(3), 0.01)
        assert result.report.force_invalid
        assert result.state.is_finite()
        assert_allclose(result.state.velocity, np.zeros(3))

    def test_inf_torque_is_zeroed(self, integrator, state):
        result = integrator.step(state, np.zeros(3), np.array([0.0, np.inf, 0.0]), 0.01)
        assert result.report.torque_invalid
        assert result.state.is_finite()

    def test_non_finite_position_restored(self, integrator):
        good = KiteState(position=np.array([1.0, 5.0, -3.0]))
        broken = good.copy()
        broken.position = np.array([np.nan, 5.0, -3.0])
        result = integrator.step(broken, np.zeros(3), np.zeros(3), 0.01)
        assert result.report.position_reset
        assert result.state.is_finite()

    def test_non_finite_velocity_reset(self, integrator):
        state = KiteState(position=np.array([0.0, 5.0, 0.0]),
                          velocity=np.array([np.inf, 0.0, 0.0]))
        result = integrator.step(state, np.zeros(3), np.zeros(3), 0.01)
        assert result.state.is_finite()


class TestContactPoints:

    @pytest.fixture
    def kite_integrator(self, constants):
        return RigidBodyIntegrator(KiteConfig(), PhysicsConfig(), constants,
                                   default_kite_geometry().contact_offsets)

    def world_points(self, state):
        offsets = default_kite_geometry().contact_offsets
        return np.array([state.position + quat_rotate_vector(state.orientation, p)
                         for p in offsets])

    def test_rolled_kite_keeps_wing_tip_above_ground(self, kite_integrator):
        roll = quat_from_axis_angle(np.array([0.0, 0.0, 1.0]), np.radians(60.0))
        state = KiteState(position=np.array([0.0, 0.6, -5.0]), orientation=roll,
                          velocity=np.array([0.0, -2.0, 0.0]))
        result = kite_integrator.step(state, np.zeros(3), np.zeros(3), 0.01)
        min_height = kite_integrator.kite.min_height
        lowest = self.world_points(result.state)[:, 1].min()
        assert result.report.grounded
        assert lowest >= min_height - 1e-9
        assert lowest == pytest.approx(min_height)
        assert result.state.altitude == pytest.approx(min_height + 0.825 * np.sin(np.radians(60.0)))
        assert result.state.velocity[1] == 0.0

    def test_level_kite_rests_on_spine_base(self, kite_integrator):
        state = KiteState(position=np.array([0.0, 0.55, -5.0]),
                          velocity=np.array([0.0, -10.0, 0.0]))
        result = kite_integrator.step(state, np.zeros(3), np.zeros(3), 0.01)
        assert result.state.altitude == pytest.approx(kite_integrator.kite.min_height)

    def test_nose_down_kite_rests_on_nose(self, kite_integrator):
        nose_down = quat_from_axis_angle(np.array([0.0, 0.0, 1.0]), np.pi)
        state = KiteState(position=np.array([0.0, 1.0, -5.0]), orientation=nose_down)
        assert kite_integrator.lowest_point(state) == pytest.approx(1.0 - 0.65)
        assert kite_integrator.is_grounded(state)
        kite_integrator.apply_ground(state)
        assert state.altitude == pytest.approx(kite_integrator.kite.min_height + 0.65)

    def test_grounded_uses_lowest_point(self, kite_integrator):
        roll = quat_from_axis_angle(np.array([0.0, 0.0, 1.0]), np.radians(60.0))
        state = KiteState(position=np.array([0.0, 1.2, -5.0]), orientation=roll)
        kite_integrator.apply_ground(state)
        force, _ = kite_integrator.accumulate(state, [], [])
        assert kite_integrator.is_grounded(state)
        assert force[1] == 0.0


class TestLoadSmoother:

    def test_first_step_moves_three_quarters(self):
        smoother = LoadSmoother(0.25)
        force, torque = smoother.filter(np.array([0.0, 0.0, 8.0]), np.array([4.0, 0.0, 0.0]))
        assert_allclose(force, [0.0, 0.0, 6.0])
        assert_allclose(torque, [3.0, 0.0, 0.0])

    def test_converges_to_constant_load(self):
        smoother = LoadSmoother(0.25)
        target = np.array([1.0, -2.0, 3.0])
        for _ in range(40):
            force, torque = smoother.filter(target, -target)
        assert_allclose(force, target, rtol=1e-12)
        assert_allclose(torque, -target, rtol=1e-12)

    def test_zero_smoothing_passes_through(self):
        smoother = LoadSmoother(0.0)
        force, _ = smoother.filter(np.array([5.0, 0.0, 0.0]), np.zeros(3))
        assert_allclose(force, [5.0, 0.0, 0.0])

    def test_non_finite_input_decays_toward_zero(self):
        smoother = LoadSmoother(0.25)
        smoother.filter(np.array([4.0, 0.0, 0.0]), np.zeros(3))
        force, torque = smoother.filter(np.array([np.nan, 0.0, 0.0]),
                                        np.array([np.inf, 0.0, 0.0]))
        assert_allclose(force, [0.75, 0.0, 0.0])
        assert np.all(np.isfinite(torque))

    def test_reset(self):
        smoother = LoadSmoother(0.25)
        smoother.filter(np.ones(3), np.ones(3))
        smoother.reset()
        assert_allclose(smoother.force, np.zeros(3))
        assert_allclose(smoother.torque, np.zeros(3))

    def test_rejects_full_smoothing(self):
        with pytest.raises(ValueError):
            LoadSmoother(1.0)
