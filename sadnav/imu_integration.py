"""Dead reckoning by direct integration of IMU readings."""

from __future__ import annotations

import numpy as np

from sadnav.geometry import so3_exp
from sadnav.state import IMU, NavState


class IMUIntegration:
    """Integrates IMU readings with known biases and gravity."""

    def __init__(self, gravity, init_bg, init_ba) -> None:
        self._gravity = np.array(gravity, dtype=float).reshape(3)
        self._bg = np.array(init_bg, dtype=float).reshape(3)
        self._ba = np.array(init_ba, dtype=float).reshape(3)
        self._r = np.eye(3)
        self._v = np.zeros(3)
        self._p = np.zeros(3)
        self._timestamp = 0.0

    def add_imu(self, imu: IMU) -> None:
        """Integrate one reading when the interval lies in (0, 0.1) seconds."""
        dt = imu.timestamp - self._timestamp
        if 0 < dt < 0.1:
            r_acc = self._r @ (imu.acce - self._ba)
            self._p = self._p + self._v * dt + 0.5 * self._gravity * dt * dt + 0.5 * r_acc * dt * dt
            self._v = self._v + r_acc * dt + self._gravity * dt
            self._r = self._r @ so3_exp((imu.gyro - self._bg) * dt)
        self._timestamp = imu.timestamp

    def nav_state(self) -> NavState:
        return NavState(
            self._timestamp,
            self._r.copy(),
            self._p.copy(),
            self._v.copy(),
            self._bg.copy(),
            self._ba.copy(),
        )

    @property
    def rotation(self) -> np.ndarray:
        return self._r.copy()

    @property
    def velocity(self) -> np.ndarray:
        return self._v.copy()

    @property
    def position(self) -> np.ndarray:
        return self._p.copy()

    @property
    def timestamp(self) -> float:
        return self._timestamp