"""
3D math utilities for kite dynamics.

Quaternion convention: [w, x, y, z] (scalar-first)
A kite orientation q maps kite-local vectors to world vectors:
    v_world = q * v_local * q^{-1}

World frame is Y-up. Angular velocities are expressed in the world frame,
so incremental rotations are premultiplied onto the orientation.
"""

import numpy as np


IDENTITY_QUATERNION = np.array([1.0, 0.0, 0.0, 0.0])


def normalize_quaternion(q: np.ndarray) -> np.ndarray:
    """
    Normalize a quaternion to unit length.

    Args:
        q: Quaternion [w, x, y, z]

    Returns:
        Normalized quaternion (identity if q is degenerate or non-finite)
    """
    q = np.asarray(q, dtype=np.float64)
    norm = np.linalg.norm(q)
    if not np.isfinite(norm) or norm < 1e-10:
        return IDENTITY_QUATERNION.copy()
    return q / norm


def quat_multiply(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """
    Hamilton product q1 * q2 (apply q2 first, then q1).
    """
    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2

    return np.array([
        w1*w2 - x1*x2 - y1*y2 - z1*z2,
        w1*x2 + x1*w2 + y1*z2 - z1*y2,
        w1*y2 - x1*z2 + y1*w2 + z1*x2,
        w1*z2 + x1*y2 - y1*x2 + z1*w2
    ])


def quat_conjugate(q: np.ndarray) -> np.ndarray:
    return np.array([q[0], -q[1], -q[2], -q[3]])


def quat_to_rotmat(q: np.ndarray) -> np.ndarray:
    """
    Convert quaternion to the rotation matrix R with v_world = R @ v_local.

    Args:
        q: Quaternion [w, x, y, z]

    Returns:
        3x3 rotation matrix
    """
    w, x, y, z = normalize_quaternion(q)

    xx = x * x
    yy = y * y
    zz = z * z
    xy = x * y
    xz = x * z
    yz = y * z
    wx = w * x
    wy = w * y
    wz = w * z

    return np.array([
        [1 - 2*(yy + zz), 2*(xy - wz),     2*(xz + wy)],
        [2*(xy + wz),     1 - 2*(xx + zz), 2*(yz - wx)],
        [2*(xz - wy),     2*(yz + wx),     1 - 2*(xx + yy)]
    ])


def quat_rotate_vector(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """
    Rotate a kite-local vector into the world frame.

    Args:
        q: Orientation quaternion [w, x, y, z]
        v: Vector in the kite frame

    Returns:
        Vector in the world frame
    """
    v_quat = np.array([0.0, v[0], v[1], v[2]])
    result = quat_multiply(quat_multiply(q, v_quat), quat_conjugate(q))
    return result[1:4]


def quat_from_axis_angle(axis: np.ndarray, angle: float) -> np.ndarray:
    """
    Build a unit quaternion rotating by `angle` [rad] about `axis`.

    A zero-length axis gives the identity rotation.
    """
    axis = np.asarray(axis, dtype=np.float64)
    norm = np.linalg.norm(axis)
    if norm < 1e-12:
        return IDENTITY_QUATERNION.copy()
    half = 0.5 * angle
    return np.concatenate(([np.cos(half)], np.sin(half) * axis / norm))


def quat_from_rotation_vector(rotvec: np.ndarray) -> np.ndarray:
    """
    Quaternion for a rotation vector (axis * angle), e.g. omega * dt.
    """
    rotvec = np.asarray(rotvec, dtype=np.float64)
    angle = np.linalg.norm(rotvec)
    return quat_from_axis_angle(rotvec, angle)


def integrate_orientation(q: np.ndarray, w_world: np.ndarray, dt: float) -> np.ndarray:
    """
    Advance an orientation by a world-frame angular velocity.

    q_{n+1} = dq(w * dt) * q_n, renormalized.

    Args:
        q: Current orientation [w, x, y, z]
        w_world: Angular velocity in world frame [rad/s]
        dt: Time step [s]

    Returns:
        Unit quaternion after the step
    """
    dq = quat_from_rotation_vector(np.asarray(w_world) * dt)
    return normalize_quaternion(quat_multiply(dq, q))


def quat_from_euler(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """
    Quaternion from intrinsic rotations about world x (roll), y (yaw)
    and z, applied as yaw, then pitch about x, then roll about z.
    """
    q_yaw = quat_from_axis_angle(np.array([0.0, 1.0, 0.0]), yaw)
    q_pitch = quat_from_axis_angle(np.array([1.0, 0.0, 0.0]), pitch)
    q_roll = quat_from_axis_angle(np.array([0.0, 0.0, 1.0]), roll)
    return normalize_quaternion(quat_multiply(q_yaw, quat_multiply(q_pitch, q_roll)))


def safe_normalize(v: np.ndarray, eps: float = 1e-10) -> np.ndarray:
    """
    Safely normalize a vector, returning zero vector if input is too small.

    Args:
        v: Vector to normalize
        eps: Minimum norm threshold

    Returns:
        Normalized vector or zero vector
    """
    norm = np.linalg.norm(v)
    if not np.isfinite(norm) or norm < eps:
        return np.zeros_like(v, dtype=np.float64)
    return v / norm


def clamp_norm(v: np.ndarray, max_norm: float):
    """
    Scale a vector down so that |v| <= max_norm.

    Returns:
        Tuple of (clamped vector, original norm, whether clamping happened)
    """
    v = np.asarray(v, dtype=np.float64)
    norm = float(np.linalg.norm(v))
    if norm > max_norm:
        return v * (max_norm / norm), norm, True
    return v.copy(), norm, False


def is_finite(v) -> bool:
    return bool(np.all(np.isfinite(v)))
