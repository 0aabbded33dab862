"""IMU preintegration between two keyframes, with bias Jacobians and noise propagation."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from sadnav.geometry import hat, right_jacobian, so3_exp
from sadnav.state import IMU, NavState


def _zeros() -> np.ndarray:
    return np.zeros(3)


@dataclass(eq=False)
class PreintegrationOptions:
    """Initial biases and measurement noise (standard deviations) of the preintegrator."""

    init_bg: np.ndarray = field(default_factory=_zeros)
    init_ba: np.ndarray = field(default_factory=_zeros)
    noise_gyro: float = 1e-2
    noise_acce: float = 1e-1


class IMUPreintegration:
    """Accumulates relative rotation, velocity and position from IMU readings.

    The preintegrated quantities, their covariance (ordered R, v, p) and their
    first-order Jacobians with respect to the biases are public attributes.
    """

    def __init__(self, options: PreintegrationOptions | None = None) -> None:
        options = options if options is not None else PreintegrationOptions()
        self.dt = 0.0
        self.cov = np.zeros((9, 9))
        ng2 = options.noise_gyro * options.noise_gyro
        na2 = options.noise_acce * options.noise_acce
        self.noise = np.diag([ng2] * 3 + [na2] * 3)

        self.bg = np.array(options.init_bg, dtype=float).reshape(3)
        self.ba = np.array(options.init_ba, dtype=float).reshape(3)

        self.delta_r = np.eye(3)
        self.delta_v = np.zeros(3)
        self.delta_p = np.zeros(3)

        self.dr_dbg = np.zeros((3, 3))
        self.dv_dbg = np.zeros((3, 3))
        self.dv_dba = np.zeros((3, 3))
        self.dp_dbg = np.zeros((3, 3))
        self.dp_dba = np.zeros((3, 3))

    def integrate(self, imu: IMU, dt: float) -> None:
        """Add one IMU reading held for ``dt`` seconds."""
        gyr = imu.gyro - self.bg
        acc = imu.acce - self.ba
        dr = self.delta_r
        dt2 = dt * dt

        self.delta_p = self.delta_p + self.delta_v * dt + 0.5 * (dr @ acc) * dt2
        self.delta_v = self.delta_v + (dr @ acc) * dt

        acc_hat = hat(acc)
        a = np.eye(9)
        b = np.zeros((9, 6))
        a[3:6, 0:3] = -dr * dt @ acc_hat
        a[6:9, 0:3] = -0.5 * dr @ acc_hat * dt2
        a[6:9, 3:6] = dt * np.eye(3)
        b[3:6, 3:6] = dr * dt
        b[6:9, 3:6] = 0.5 * dr * dt2

        self.dp_dba = self.dp_dba + self.dv_dba * dt - 0.5 * dr * dt2
        self.dp_dbg = self.dp_dbg + self.dv_dbg * dt - 0.5 * dr * dt2 @ acc_hat @ self.dr_dbg
        self.dv_dba = self.dv_dba - dr * dt
        self.dv_dbg = self.dv_dbg - dr * dt @ acc_hat @ self.dr_dbg

        omega = gyr * dt
        right_j = right_jacobian(omega)
        delta = so3_exp(omega)
        self.delta_r = dr @ delta

        a[0:3, 0:3] = delta.T
        b[0:3, 0:3] = right_j * dt

        self.cov = a @ self.cov @ a.T + b @ self.noise @ b.T
        self.dr_dbg = delta.T @ self.dr_dbg - right_j * dt
        self.dt += dt

    def predict(self, start: NavState, gravity=(0.0, 0.0, -9.81)) -> NavState:
        """State reached from ``start`` after the integrated interval."""
        g = np.asarray(gravity, dtype=float).reshape(3)
        r_j = start.rotation @ self.delta_r
        v_j = start.rotation @ self.delta_v + start.velocity + g * self.dt
        p_j = (
            start.rotation @ self.delta_p
            + start.position
            + start.velocity * self.dt
            + 0.5 * g * self.dt * self.dt
        )
        return NavState(
            start.timestamp + self.dt, r_j, p_j, v_j, self.bg.copy(), self.ba.copy()
        )

    def delta_rotation(self, bg) -> np.ndarray:
        """Relative rotation corrected to first order for the gyro bias ``bg``."""
        dbg = np.asarray(bg, dtype=float).reshape(3) - self.bg
        return self.delta_r @ so3_exp(self.dr_dbg @ dbg)

    def delta_velocity(self, bg, ba) -> np.ndarray:
        """Relative velocity corrected to first order for the biases."""
        dbg = np.asarray(bg, dtype=float).reshape(3) - self.bg
        dba = np.asarray(ba, dtype=float).reshape(3) - self.ba
        return self.delta_v + self.dv_dbg @ dbg + self.dv_dba @ dba

    def delta_position(self, bg, ba) -> np.ndarray:
        """Relative position corrected to first order for the biases."""
        dbg = np.asarray(bg, dtype=float).reshape(3) - self.bg
        dba = np.asarray(ba, dtype=float).reshape(3) - self.ba
        return self.delta_p + self.dp_dbg @ dbg + self.dp_dba @ dba