"""A vehicle driving in a circle at constant angular and forward speed."""

from __future__ import annotations

import math
from collections.abc import Iterator

import numpy as np

from sadnav.geometry import matrix_from_quaternion, quaternion_from_matrix, so3_exp
from sadnav.state import NavState


def _quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    w1, x1, y1, z1 = a
    w2, x2, y2, z2 = b
    return np.array(
        [
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ]
    )


def simulate_circular_motion(
    angular_velocity_deg: float = 10.0,
    linear_velocity: float = 5.0,
    dt: float = 0.05,
    steps: int | None = None,
    use_quaternion: bool = False,
) -> Iterator[NavState]:
    """Yield the vehicle state after each step; runs forever when ``steps`` is None.

    The position advances with the body-frame forward velocity rotated into
    the world, then the attitude turns about the body z axis, either by the
    exponential map or by a first-order quaternion update.
    """
    if dt <= 0:
        raise ValueError("dt must be positive")
    if steps is not None and steps < 0:
        raise ValueError("steps must not be negative")

    omega = np.array([0.0, 0.0, math.radians(angular_velocity_deg)])
    v_body = np.array([linear_velocity, 0.0, 0.0])
    rotation = np.eye(3)
    position = np.zeros(3)
    step_rotation = so3_exp(omega * dt)
    dq = np.array([1.0, *(0.5 * omega * dt)])

    count = 0
    while steps is None or count < steps:
        v_world = rotation @ v_body
        position = position + v_world * dt

        if use_quaternion:
            q = _quat_multiply(quaternion_from_matrix(rotation), dq)
            rotation = matrix_from_quaternion(q / np.linalg.norm(q))
        else:
            rotation = rotation @ step_rotation

        count += 1
        yield NavState(count * dt, rotation.copy(), position.copy(), v_world.copy())