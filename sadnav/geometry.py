"""Rotation and rigid-body helpers on SO(3) and SE(3)."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

_SMALL_ANGLE = 1e-10


def _vec3(v) -> np.ndarray:
    return np.asarray(v, dtype=float).reshape(3)


def hat(v) -> np.ndarray:
    """Skew-symmetric matrix of a 3-vector, so that hat(a) @ b == cross(a, b)."""
    x, y, z = _vec3(v)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def so3_exp(omega) -> np.ndarray:
    """Rotation matrix of a rotation vector."""
    w = _vec3(omega)
    theta = float(np.linalg.norm(w))
    k = hat(w)
    if theta < _SMALL_ANGLE:
        return np.eye(3) + k + 0.5 * (k @ k)
    return (
        np.eye(3)
        + (math.sin(theta) / theta) * k
        + ((1.0 - math.cos(theta)) / (theta * theta)) * (k @ k)
    )


def quaternion_from_matrix(rotation) -> np.ndarray:
    """Unit quaternion (w, x, y, z) of a rotation matrix, with w >= 0."""
    r = np.asarray(rotation, dtype=float).reshape(3, 3)
    tr = float(r[0, 0] + r[1, 1] + r[2, 2])
    if tr > 0.0:
        s = math.sqrt(tr + 1.0) * 2.0
        q = [0.25 * s, (r[2, 1] - r[1, 2]) / s, (r[0, 2] - r[2, 0]) / s, (r[1, 0] - r[0, 1]) / s]
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        s = math.sqrt(1.0 + r[0, 0] - r[1, 1] - r[2, 2]) * 2.0
        q = [(r[2, 1] - r[1, 2]) / s, 0.25 * s, (r[0, 1] + r[1, 0]) / s, (r[0, 2] + r[2, 0]) / s]
    elif r[1, 1] > r[2, 2]:
        s = math.sqrt(1.0 + r[1, 1] - r[0, 0] - r[2, 2]) * 2.0
        q = [(r[0, 2] - r[2, 0]) / s, (r[0, 1] + r[1, 0]) / s, 0.25 * s, (r[1, 2] + r[2, 1]) / s]
    else:
        s = math.sqrt(1.0 + r[2, 2] - r[0, 0] - r[1, 1]) * 2.0
        q = [(r[1, 0] - r[0, 1]) / s, (r[0, 2] + r[2, 0]) / s, (r[1, 2] + r[2, 1]) / s, 0.25 * s]
    quat = np.array(q)
    quat /= np.linalg.norm(quat)
    if quat[0] < 0.0:
        quat = -quat
    return quat


def matrix_from_quaternion(q) -> np.ndarray:
    """Rotation matrix of a quaternion (w, x, y, z); the quaternion is normalised first."""
    quat = np.asarray(q, dtype=float).reshape(4)
    norm = np.linalg.norm(quat)
    if norm == 0.0:
        raise ValueError("quaternion must be non-zero")
    w, x, y, z = quat / norm
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ]
    )


def so3_log(rotation) -> np.ndarray:
    """Rotation vector of a rotation matrix, with angle in [0, pi]."""
    q = quaternion_from_matrix(rotation)
    w, v = q[0], q[1:]
    n = float(np.linalg.norm(v))
    if n < _SMALL_ANGLE:
        return 2.0 * v / w
    theta = 2.0 * math.atan2(n, w)
    return (theta / n) * v


def right_jacobian(omega) -> np.ndarray:
    """Right Jacobian of SO(3) at a rotation vector."""
    w = _vec3(omega)
    theta = float(np.linalg.norm(w))
    k = hat(w)
    if theta < _SMALL_ANGLE:
        return np.eye(3) - 0.5 * k
    return (
        np.eye(3)
        - ((1.0 - math.cos(theta)) / (theta * theta)) * k
        + ((theta - math.sin(theta)) / theta**3) * (k @ k)
    )


def right_jacobian_inv(omega) -> np.ndarray:
    """Inverse of the right Jacobian of SO(3) at a rotation vector."""
    w = _vec3(omega)
    theta = float(np.linalg.norm(w))
    k = hat(w)
    if theta < _SMALL_ANGLE:
        return np.eye(3) + 0.5 * k
    coeff = 1.0 / (theta * theta) - (1.0 + math.cos(theta)) / (2.0 * theta * math.sin(theta))
    return np.eye(3) + 0.5 * k + coeff * (k @ k)


def rot_z(angle: float) -> np.ndarray:
    """Rotation by ``angle`` radians about the z axis."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


@dataclass(eq=False)
class Pose:
    """Rigid-body transform: a rotation matrix and a translation."""

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.rotation = np.array(self.rotation, dtype=float).reshape(3, 3)
        self.translation = np.array(self.translation, dtype=float).reshape(3)

    def inverse(self) -> Pose:
        rt = self.rotation.T
        return Pose(rt, -rt @ self.translation)

    def compose(self, other: Pose) -> Pose:
        return Pose(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def transform(self, point) -> np.ndarray:
        return self.rotation @ _vec3(point) + self.translation

    def matrix(self) -> np.ndarray:
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m

    def __matmul__(self, other):
        if isinstance(other, Pose):
            return self.compose(other)
        return self.transform(other)