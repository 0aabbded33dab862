"""Sensor readings and the navigation state."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from sadnav.geometry import Pose


def _vec3(v) -> np.ndarray:
    return np.array(v, dtype=float).reshape(3)


def _zeros() -> np.ndarray:
    return np.zeros(3)


@dataclass(eq=False)
class IMU:
    """One IMU reading: angular rate (rad/s) and specific force (m/s^2)."""

    timestamp: float = 0.0
    gyro: np.ndarray = field(default_factory=_zeros)
    acce: np.ndarray = field(default_factory=_zeros)

    def __post_init__(self) -> None:
        self.gyro = _vec3(self.gyro)
        self.acce = _vec3(self.acce)


@dataclass
class Odom:
    """Wheel encoder pulses counted over one measurement span."""

    timestamp: float = 0.0
    left_pulse: float = 0.0
    right_pulse: float = 0.0


@dataclass(eq=False)
class GNSS:
    """A GNSS reading already converted to a pose in the map frame."""

    unix_time: float = 0.0
    utm_pose: Pose = field(default_factory=Pose)
    heading_valid: bool = False


@dataclass(eq=False)
class NavState:
    """Time, rotation, position, velocity and IMU biases."""

    timestamp: float = 0.0
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    position: np.ndarray = field(default_factory=_zeros)
    velocity: np.ndarray = field(default_factory=_zeros)
    bg: np.ndarray = field(default_factory=_zeros)
    ba: np.ndarray = field(default_factory=_zeros)

    def __post_init__(self) -> None:
        self.rotation = np.array(self.rotation, dtype=float).reshape(3, 3)
        self.position = _vec3(self.position)
        self.velocity = _vec3(self.velocity)
        self.bg = _vec3(self.bg)
        self.ba = _vec3(self.ba)

    def pose(self) -> Pose:
        return Pose(self.rotation.copy(), self.position.copy())