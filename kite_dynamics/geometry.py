"""
Kite geometry: named points and aerodynamic surfaces in the kite frame.

Kite frame: origin at the spine base (also the center of mass),
y along the spine toward the nose, x toward the kite's right wing tip,
z toward the pilot side of the sail (bridles and control points).
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigError
from .state import LineSide


@dataclass(frozen=True)
class Surface:
    """A flat triangular or polygonal sail panel."""
    name: str
    vertices: Tuple[str, ...]
    area: float


class KiteGeometry:
    """
    Immutable kite geometry.

    Holds named points, the sail partition into surfaces with nominal
    areas, and the derived per-surface unit normals and centroids.
    """

    def __init__(self, points: Mapping[str, Sequence[float]],
                 surfaces: Sequence[Surface],
                 control_points: Mapping[LineSide, str],
                 center_of_mass: Optional[Sequence[float]] = None,
                 contact_points: Optional[Sequence[str]] = None):
        """
        Build and validate a geometry.

        Args:
            points: Point name -> kite-frame coordinates [m]
            surfaces: Sail panels referencing point names
            control_points: Line side -> point name of its attachment
            center_of_mass: Kite-frame CoM (origin if None)
            contact_points: Names of the points that can touch the ground
                (every point if None)

        Raises:
            ConfigError: On unknown names, non-finite coordinates,
                degenerate panels or non-positive areas
        """
        resolved = {}
        for name, coords in points.items():
            arr = np.asarray(coords, dtype=np.float64)
            if arr.shape != (3,) or not np.all(np.isfinite(arr)):
                raise ConfigError(f"Point {name!r} must be a finite 3-vector")
            arr.setflags(write=False)
            resolved[name] = arr
        self._points = MappingProxyType(resolved)

        com = np.zeros(3) if center_of_mass is None else \
            np.asarray(center_of_mass, dtype=np.float64)
        if com.shape != (3,) or not np.all(np.isfinite(com)):
            raise ConfigError("center_of_mass must be a finite 3-vector")
        com.setflags(write=False)
        self._com = com

        if not surfaces:
            raise ConfigError("Kite geometry needs at least one surface")
        normals = []
        centroids = []
        for surface in surfaces:
            if len(surface.vertices) < 3:
                raise ConfigError(f"Surface {surface.name!r} needs at least 3 vertices")
            for vertex in surface.vertices:
                if vertex not in self._points:
                    raise ConfigError(
                        f"Surface {surface.name!r} references unknown point {vertex!r}")
            if not np.isfinite(surface.area) or surface.area <= 0:
                raise ConfigError(f"Surface {surface.name!r} must have a positive area")
            verts = np.array([self._points[v] for v in surface.vertices])
            # Newell's method, valid for any planar polygon
            normal = np.zeros(3)
            for i in range(len(verts)):
                normal += np.cross(verts[i], verts[(i + 1) % len(verts)])
            norm = np.linalg.norm(normal)
            if norm < 1e-9:
                raise ConfigError(f"Surface {surface.name!r} is degenerate")
            normals.append(normal / norm)
            centroids.append(verts.mean(axis=0))

        self._surfaces = tuple(surfaces)
        self._normals = np.array(normals)
        self._centroids = np.array(centroids)
        self._normals.setflags(write=False)
        self._centroids.setflags(write=False)

        for side in LineSide:
            if side not in control_points:
                raise ConfigError(f"Missing control point for the {side.value} line")
            if control_points[side] not in self._points:
                raise ConfigError(f"Unknown control point {control_points[side]!r}")
        self._control_points = MappingProxyType(dict(control_points))

        names = tuple(self._points) if contact_points is None else tuple(contact_points)
        if not names:
            raise ConfigError("Kite geometry needs at least one contact point")
        for name in names:
            if name not in self._points:
                raise ConfigError(f"Unknown contact point {name!r}")
        self._contact = np.array([self._points[name] - com for name in names])
        self._contact.setflags(write=False)

    @property
    def points(self) -> Mapping[str, np.ndarray]:
        return self._points

    def point(self, name: str) -> np.ndarray:
        return self._points[name]

    @property
    def surfaces(self) -> Tuple[Surface, ...]:
        return self._surfaces

    @property
    def surface_normals(self) -> np.ndarray:
        """Unit normals in the kite frame, shape (n_surfaces, 3)."""
        return self._normals

    @property
    def surface_centroids(self) -> np.ndarray:
        """Centroids in the kite frame, shape (n_surfaces, 3)."""
        return self._centroids

    @property
    def surface_areas(self) -> np.ndarray:
        return np.array([s.area for s in self._surfaces])

    @property
    def total_area(self) -> float:
        return float(sum(s.area for s in self._surfaces))

    @property
    def center_of_mass(self) -> np.ndarray:
        return self._com

    def control_point(self, side: LineSide) -> np.ndarray:
        """Kite-frame position of a line attachment, relative to the CoM."""
        return self._points[self._control_points[side]] - self._com

    @property
    def contact_offsets(self) -> np.ndarray:
        """Ground contact points relative to the CoM, kite frame, shape (n, 3)."""
        return self._contact


# Standard delta kite, coordinates in meters
DEFAULT_POINTS: Dict[str, Tuple[float, float, float]] = {
    'nose': (0.0, 0.65, 0.0),
    'spine_base': (0.0, 0.0, 0.0),
    'center': (0.0, 0.1625, 0.0),
    'left_edge': (-0.825, 0.0, 0.0),
    'right_edge': (0.825, 0.0, 0.0),
    'left_spreader': (-0.4125, 0.1625, 0.0),
    'right_spreader': (0.4125, 0.1625, 0.0),
    'left_fixing': (-0.275, 0.1625, 0.0),
    'right_fixing': (0.275, 0.1625, 0.0),
    'left_whisker': (-0.4125, 0.1, -0.15),
    'right_whisker': (0.4125, 0.1, -0.15),
    # Bridle tow points, above the sail's center of pressure
    'left_control': (-0.15, 0.45, 0.25),
    'right_control': (0.15, 0.45, 0.25),
}

DEFAULT_SURFACES = (
    Surface('left_upper', ('nose', 'left_spreader', 'left_edge'), 0.23),
    Surface('left_lower', ('left_spreader', 'center', 'spine_base'), 0.11),
    Surface('right_upper', ('nose', 'right_edge', 'right_spreader'), 0.23),
    Surface('right_lower', ('right_spreader', 'spine_base', 'center'), 0.11),
)

DEFAULT_CONTACT_POINTS = ('nose', 'spine_base', 'left_edge', 'right_edge')


def default_kite_geometry() -> KiteGeometry:
    """Standard two-line delta kite (sail area 0.68 m^2)."""
    return KiteGeometry(
        DEFAULT_POINTS,
        DEFAULT_SURFACES,
        {LineSide.LEFT: 'left_control', LineSide.RIGHT: 'right_control'},
        contact_points=DEFAULT_CONTACT_POINTS,
    )
