"""
Flat-plate aerodynamics for the kite sail.

Each panel is treated as a thin flat plate. With alpha the angle between
the apparent wind and the panel plane, the pressure force acts along the
wind-facing normal with coefficient C_N = sin(alpha), giving

    C_L = sin(alpha) * cos(alpha)
    C_D = sin(alpha)^2

times the dynamic pressure 0.5 * rho * V^2 * A. Only geometry and the
apparent wind enter the coefficients; there are no tuning multipliers.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .geometry import KiteGeometry
from .math3d import quat_to_rotmat
from .state import SimulationMetrics


@dataclass
class SurfaceForces:
    """
    Aerodynamic forces acting on one panel (world frame).

    Attributes:
        lift: Force perpendicular to the apparent wind [N]
        drag: Force along the apparent wind [N]
        torque_arm: Vector from the CoM to the panel centroid [m]
        angle_of_attack: Angle between wind and panel plane [rad]
        valid: False if the forces contain non-finite values
    """
    lift: np.ndarray = field(default_factory=lambda: np.zeros(3))
    drag: np.ndarray = field(default_factory=lambda: np.zeros(3))
    torque_arm: np.ndarray = field(default_factory=lambda: np.zeros(3))
    angle_of_attack: float = 0.0
    valid: bool = True

    @property
    def total(self) -> np.ndarray:
        return self.lift + self.drag


def compute_surface_forces(
    apparent_wind: np.ndarray,
    surface_normal: np.ndarray,
    surface_area: float,
    air_density: float,
    torque_arm: Optional[np.ndarray] = None,
    eps: float = 1e-4
) -> SurfaceForces:
    """
    Compute lift and drag on a flat panel.

    Args:
        apparent_wind: Wind relative to the panel, world frame [m/s]
        surface_normal: Unit panel normal, world frame (either side)
        surface_area: Panel area [m^2]
        air_density: Air density [kg/m^3]
        torque_arm: CoM-to-centroid vector, world frame [m]
        eps: Speeds below this give zero force

    Returns:
        SurfaceForces for the panel
    """
    arm = np.zeros(3) if torque_arm is None else np.asarray(torque_arm, dtype=np.float64)
    apparent_wind = np.asarray(apparent_wind, dtype=np.float64)
    normal = np.asarray(surface_normal, dtype=np.float64)

    with np.errstate(invalid='ignore', over='ignore', divide='ignore'):
        speed = np.linalg.norm(apparent_wind)
        if speed < eps:
            return SurfaceForces(torque_arm=arm)

        wind_dir = apparent_wind / speed
        cos_incidence = float(np.dot(wind_dir, normal))
        sin_alpha = min(abs(cos_incidence), 1.0)
        alpha = float(np.arcsin(sin_alpha)) if np.isfinite(sin_alpha) else float('nan')

        # Pressure pushes the panel downwind
        facing = normal if cos_incidence >= 0.0 else -normal

        q_area = 0.5 * air_density * speed * speed * surface_area
        drag = q_area * sin_alpha * sin_alpha * wind_dir
        lift = q_area * sin_alpha * (facing - sin_alpha * wind_dir)

    valid = bool(np.all(np.isfinite(lift)) and np.all(np.isfinite(drag)))
    return SurfaceForces(lift=lift, drag=drag, torque_arm=arm,
                         angle_of_attack=alpha, valid=valid)


@dataclass
class AeroResult:
    """
    Aggregated aerodynamic loads on the kite.

    invalid_force_surfaces / invalid_torque_surfaces list the names of
    panels whose contribution was dropped for non-finite values.
    """
    force: np.ndarray
    torque: np.ndarray
    lift: np.ndarray
    drag: np.ndarray
    surfaces: List[SurfaceForces]
    invalid_force_surfaces: List[str]
    invalid_torque_surfaces: List[str]
    metrics: SimulationMetrics


class AerodynamicModel:
    """
    Sums flat-plate loads over every panel of a kite geometry.

    Usage:
        aero = AerodynamicModel(default_kite_geometry(), air_density=1.225)
        result = aero.compute(apparent_wind, state.orientation)
        result.force, result.torque
    """

    def __init__(self, geometry: KiteGeometry, air_density: float = 1.225,
                 eps: float = 1e-4):
        self.geometry = geometry
        self.air_density = air_density
        self.eps = eps

    def compute(self, apparent_wind: np.ndarray, orientation: np.ndarray) -> AeroResult:
        """
        Compute net aerodynamic force and torque about the CoM.

        Gravity is not included; it is added when forces are accumulated
        for integration.

        Args:
            apparent_wind: Wind minus kite velocity, world frame [m/s]
            orientation: Kite orientation [w, x, y, z]

        Returns:
            AeroResult with totals, per-panel loads and display metrics
        """
        geo = self.geometry
        R = quat_to_rotmat(orientation)
        normals = geo.surface_normals @ R.T
        arms = (geo.surface_centroids - geo.center_of_mass) @ R.T

        force = np.zeros(3)
        torque = np.zeros(3)
        lift_total = np.zeros(3)
        drag_total = np.zeros(3)
        per_surface = []
        bad_force = []
        bad_torque = []

        for surface, normal, area, arm in zip(geo.surfaces, normals,
                                              geo.surface_areas, arms):
            sf = compute_surface_forces(apparent_wind, normal, area, self.air_density,
                                        torque_arm=arm, eps=self.eps)
            per_surface.append(sf)
            if not sf.valid:
                bad_force.append(surface.name)
                continue
            with np.errstate(over='ignore', invalid='ignore'):
                next_torque = torque + np.cross(arm, sf.total)
                next_force = force + sf.total
            # A finite panel load can still overflow the running sum
            if not np.all(np.isfinite(next_torque)):
                bad_torque.append(surface.name)
                continue
            if not np.all(np.isfinite(next_force)):
                bad_force.append(surface.name)
                continue
            force = next_force
            torque = next_torque
            with np.errstate(over='ignore', invalid='ignore'):
                lift_total += sf.lift
                drag_total += sf.drag

        metrics = self._metrics(apparent_wind, normals, lift_total, drag_total)
        return AeroResult(force=force, torque=torque, lift=lift_total, drag=drag_total,
                          surfaces=per_surface, invalid_force_surfaces=bad_force,
                          invalid_torque_surfaces=bad_torque, metrics=metrics)

    def _metrics(self, apparent_wind: np.ndarray, normals: np.ndarray,
                 lift: np.ndarray, drag: np.ndarray) -> SimulationMetrics:
        speed = float(np.linalg.norm(apparent_wind))
        if not np.isfinite(speed) or speed < self.eps:
            return SimulationMetrics(apparent_speed=speed if np.isfinite(speed) else 0.0)

        lift_mag = float(np.linalg.norm(lift))
        drag_mag = float(np.linalg.norm(drag))
        ratio = lift_mag / drag_mag if drag_mag > self.eps else 0.0

        # Mean sail normal, weighted by area and incidence, oriented to face the wind
        wind_dir = apparent_wind / speed
        weights = self.geometry.surface_areas * (normals @ wind_dir)
        mean_normal = weights @ normals
        norm = np.linalg.norm(mean_normal)
        if norm > self.eps:
            cos_angle = min(abs(float(np.dot(mean_normal / norm, wind_dir))), 1.0)
            aoa_deg = float(np.degrees(np.arcsin(cos_angle)))
        else:
            aoa_deg = 0.0

        return SimulationMetrics(apparent_speed=speed, lift=lift_mag, drag=drag_mag,
                                 lift_over_drag=ratio, angle_of_attack_deg=aoa_deg)
