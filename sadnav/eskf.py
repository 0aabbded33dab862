"""Error-state Kalman filter for IMU, wheel odometry, GNSS and pose observations.

The 18-dimensional error state is ordered p, v, theta, bg, ba, g.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace

import numpy as np

from sadnav.geometry import Pose, hat, so3_exp, so3_log
from sadnav.state import GNSS, IMU, NavState, Odom

logger = logging.getLogger(__name__)

DEFAULT_GRAVITY = (0.0, 0.0, -9.8)


@dataclass
class EskfOptions:
    """Noise and configuration of the filter; IMU noises are discrete-time."""

    imu_dt: float = 0.01
    gyro_var: float = 1e-5
    acce_var: float = 1e-2
    bias_gyro_var: float = 1e-6
    bias_acce_var: float = 1e-4

    odom_var: float = 0.5
    odom_span: float = 0.1
    wheel_radius: float = 0.155
    circle_pulse: float = 1024.0

    gnss_pos_noise: float = 0.1
    gnss_height_noise: float = 0.1
    gnss_ang_noise: float = math.radians(1.0)

    update_bias_gyro: bool = True
    update_bias_acce: bool = True


class ESKF:
    """Error-state Kalman filter with an 18-dimensional state."""

    def __init__(self, options: EskfOptions | None = None) -> None:
        self._options = replace(options) if options is not None else EskfOptions()
        self._current_time = 0.0
        self._p = np.zeros(3)
        self._v = np.zeros(3)
        self._r = np.eye(3)
        self._bg = np.zeros(3)
        self._ba = np.zeros(3)
        self._g = np.array(DEFAULT_GRAVITY)
        self._dx = np.zeros(18)
        self._cov = np.eye(18)
        self._q = np.zeros((18, 18))
        self._odom_noise = np.zeros((3, 3))
        self._gnss_noise = np.zeros((6, 6))
        self._first_gnss = True
        self._build_noise(self._options)

    @property
    def options(self) -> EskfOptions:
        return self._options

    @property
    def gravity(self) -> np.ndarray:
        return self._g.copy()

    @property
    def cov(self) -> np.ndarray:
        return self._cov.copy()

    def set_initial_conditions(self, options, init_bg, init_ba, gravity=DEFAULT_GRAVITY) -> None:
        """Set noises, initial biases and gravity, and reset the covariance."""
        self._build_noise(options)
        self._options = replace(options)
        self._bg = np.array(init_bg, dtype=float).reshape(3)
        self._ba = np.array(init_ba, dtype=float).reshape(3)
        self._g = np.array(gravity, dtype=float).reshape(3)
        self._cov = np.eye(18) * 1e-4

    def predict(self, imu: IMU) -> bool:
        """Propagate with one IMU reading; returns False if the interval was rejected."""
        if imu.timestamp < self._current_time:
            raise ValueError(
                f"IMU timestamp {imu.timestamp} is earlier than filter time {self._current_time}"
            )
        dt = imu.timestamp - self._current_time
        if dt > 5 * self._options.imu_dt or dt < 0:
            logger.info("skip this imu because dt_ = %s", dt)
            self._current_time = imu.timestamp
            return False

        acc = imu.acce - self._ba
        r_acc = self._r @ acc
        new_p = self._p + self._v * dt + 0.5 * r_acc * dt * dt + 0.5 * self._g * dt * dt
        new_v = self._v + r_acc * dt + self._g * dt
        new_r = self._r @ so3_exp((imu.gyro - self._bg) * dt)

        self._r = new_r
        self._v = new_v
        self._p = new_p

        eye3 = np.eye(3)
        f = np.eye(18)
        f[0:3, 3:6] = eye3 * dt
        f[3:6, 6:9] = -self._r @ hat(acc) * dt
        f[3:6, 12:15] = -self._r * dt
        f[3:6, 15:18] = eye3 * dt
        f[6:9, 6:9] = so3_exp(-(imu.gyro - self._bg) * dt)
        f[6:9, 9:12] = -eye3 * dt

        self._dx = f @ self._dx
        self._cov = f @ self._cov @ f.T + self._q
        self._current_time = imu.timestamp
        return True

    def observe_wheel_speed(self, odom: Odom) -> bool:
        """Correct the velocity with a forward speed from wheel encoders."""
        if odom.timestamp < self._current_time:
            raise ValueError(
                f"odometry timestamp {odom.timestamp} is earlier than filter time {self._current_time}"
            )
        h = np.zeros((3, 18))
        h[:, 3:6] = np.eye(3)
        k = self._cov @ h.T @ np.linalg.inv(h @ self._cov @ h.T + self._odom_noise)

        o = self._options
        velo_l = o.wheel_radius * odom.left_pulse / o.circle_pulse * 2 * math.pi / o.odom_span
        velo_r = o.wheel_radius * odom.right_pulse / o.circle_pulse * 2 * math.pi / o.odom_span
        average_vel = 0.5 * (velo_l + velo_r)

        vel_world = self._r @ np.array([average_vel, 0.0, 0.0])
        self._dx = k @ (vel_world - self._v)
        self._cov = (np.eye(18) - k @ h) @ self._cov
        self._update_and_reset()
        return True

    def observe_gps(self, gnss: GNSS) -> bool:
        """Correct with a GNSS pose; the first reading sets the pose directly."""
        if gnss.unix_time < self._current_time:
            raise ValueError(
                f"GNSS time {gnss.unix_time} is earlier than filter time {self._current_time}"
            )
        if self._first_gnss:
            self._r = gnss.utm_pose.rotation.copy()
            self._p = gnss.utm_pose.translation.copy()
            self._first_gnss = False
            self._current_time = gnss.unix_time
            return True

        if not gnss.heading_valid:
            raise ValueError("GNSS observation requires a valid heading")
        self.observe_se3(gnss.utm_pose, self._options.gnss_pos_noise, self._options.gnss_ang_noise)
        self._current_time = gnss.unix_time
        return True

    def observe_se3(self, pose: Pose, trans_noise: float = 0.1, ang_noise: float = math.radians(1.0)) -> bool:
        """Correct position and rotation with an observed pose."""
        h = np.zeros((6, 18))
        h[0:3, 0:3] = np.eye(3)
        h[3:6, 6:9] = np.eye(3)

        noise = np.diag([trans_noise] * 3 + [ang_noise] * 3)
        k = self._cov @ h.T @ np.linalg.inv(h @ self._cov @ h.T + noise)

        innov = np.concatenate(
            [pose.translation - self._p, so3_log(self._r.T @ pose.rotation)]
        )
        self._dx = k @ innov
        self._cov = (np.eye(18) - k @ h) @ self._cov
        self._update_and_reset()
        return True

    def nominal_state(self) -> NavState:
        return NavState(
            self._current_time,
            self._r.copy(),
            self._p.copy(),
            self._v.copy(),
            self._bg.copy(),
            self._ba.copy(),
        )

    def nominal_pose(self) -> Pose:
        return Pose(self._r.copy(), self._p.copy())

    def set_state(self, state: NavState, gravity) -> None:
        self._current_time = state.timestamp
        self._r = state.rotation.copy()
        self._p = state.position.copy()
        self._v = state.velocity.copy()
        self._bg = state.bg.copy()
        self._ba = state.ba.copy()
        self._g = np.array(gravity, dtype=float).reshape(3)

    def set_cov(self, cov) -> None:
        cov = np.array(cov, dtype=float)
        if cov.shape != (18, 18):
            raise ValueError(f"covariance must be 18x18, got {cov.shape}")
        self._cov = cov

    def _build_noise(self, options: EskfOptions) -> None:
        ev = options.acce_var
        et = options.gyro_var
        eg = options.bias_gyro_var
        ea = options.bias_acce_var
        self._q = np.diag([0.0] * 3 + [ev] * 3 + [et] * 3 + [eg] * 3 + [ea] * 3 + [0.0] * 3)

        # Odometry noise follows the options in effect before this call.
        o2 = self._options.odom_var * self._options.odom_var
        self._odom_noise = np.diag([o2] * 3)

        gp2 = options.gnss_pos_noise**2
        gh2 = options.gnss_height_noise**2
        ga2 = options.gnss_ang_noise**2
        self._gnss_noise = np.diag([gp2, gp2, gh2, ga2, ga2, ga2])

    def _update_and_reset(self) -> None:
        dx = self._dx
        self._p = self._p + dx[0:3]
        self._v = self._v + dx[3:6]
        self._r = self._r @ so3_exp(dx[6:9])
        if self._options.update_bias_gyro:
            self._bg = self._bg + dx[9:12]
        if self._options.update_bias_acce:
            self._ba = self._ba + dx[12:15]
        self._g = self._g + dx[15:18]
        self._project_cov()
        self._dx = np.zeros(18)

    def _project_cov(self) -> None:
        j = np.eye(18)
        j[6:9, 6:9] = np.eye(3) - 0.5 * hat(self._dx[6:9])
        self._cov = j @ self._cov @ j.T