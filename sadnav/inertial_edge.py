"""Preintegration residual between two navigation states, with analytic Jacobians."""

from __future__ import annotations

import numpy as np

from sadnav.geometry import Pose, hat, right_jacobian, right_jacobian_inv, so3_log
from sadnav.preintegration import IMUPreintegration


def _vec3(v) -> np.ndarray:
    return np.asarray(v, dtype=float).reshape(3)


class InertialEdge:
    """Nine-dimensional residual (R, v, p) of an IMU preintegration.

    It links pose, velocity, gyro bias and accelerometer bias of frame i with
    pose and velocity of frame j. Pose increments are ordered rotation then
    translation, with rotation perturbed on the right.
    """

    def __init__(self, preintegration: IMUPreintegration, gravity, weight: float = 1.0) -> None:
        self.preintegration = preintegration
        self.dt = preintegration.dt
        self.gravity = _vec3(gravity).copy()
        self.information = np.linalg.inv(preintegration.cov) * weight

    def error(self, pose_i: Pose, vel_i, bg, ba, pose_j: Pose, vel_j) -> np.ndarray:
        """Residual vector ordered rotation, velocity, position."""
        pre = self.preintegration
        bg = _vec3(bg)
        ba = _vec3(ba)
        vi, vj = _vec3(vel_i), _vec3(vel_j)
        dt, g = self.dt, self.gravity

        d_r = pre.delta_rotation(bg)
        d_v = pre.delta_velocity(bg, ba)
        d_p = pre.delta_position(bg, ba)

        r1t = pose_i.rotation.T
        er = so3_log(d_r.T @ r1t @ pose_j.rotation)
        ev = r1t @ (vj - vi - g * dt) - d_v
        ep = r1t @ (pose_j.translation - pose_i.translation - vi * dt - g * dt * dt / 2) - d_p
        return np.concatenate([er, ev, ep])

    def jacobians(self, pose_i: Pose, vel_i, bg, ba, pose_j: Pose, vel_j) -> list[np.ndarray]:
        """Jacobians of the residual for pose_i (9x6), vel_i, bg, ba (9x3), pose_j (9x6), vel_j (9x3)."""
        pre = self.preintegration
        bg = _vec3(bg)
        vi, vj = _vec3(vel_i), _vec3(vel_j)
        dt, g = self.dt, self.gravity
        dbg = bg - pre.bg

        r1 = pose_i.rotation
        r1t = r1.T
        r2 = pose_j.rotation
        pi, pj = pose_i.translation, pose_j.translation

        d_r = pre.delta_rotation(bg)
        e_r = d_r.T @ r1t @ r2
        inv_jr = right_jacobian_inv(so3_log(e_r))

        j_pose_i = np.zeros((9, 6))
        j_pose_i[0:3, 0:3] = -inv_jr @ (r2.T @ r1)
        j_pose_i[3:6, 0:3] = hat(r1t @ (vj - vi - g * dt))
        j_pose_i[6:9, 0:3] = hat(r1t @ (pj - pi - vi * dt - 0.5 * g * dt * dt))
        j_pose_i[6:9, 3:6] = -r1t

        j_vel_i = np.zeros((9, 3))
        j_vel_i[3:6] = -r1t
        j_vel_i[6:9] = -r1t * dt

        j_bg = np.zeros((9, 3))
        j_bg[0:3] = -inv_jr @ e_r.T @ right_jacobian(pre.dr_dbg @ dbg) @ pre.dr_dbg
        j_bg[3:6] = -pre.dv_dbg
        j_bg[6:9] = -pre.dp_dbg

        j_ba = np.zeros((9, 3))
        j_ba[3:6] = -pre.dv_dba
        j_ba[6:9] = -pre.dp_dba

        j_pose_j = np.zeros((9, 6))
        j_pose_j[0:3, 0:3] = inv_jr
        j_pose_j[6:9, 3:6] = r1t

        j_vel_j = np.zeros((9, 3))
        j_vel_j[3:6] = r1t

        return [j_pose_i, j_vel_i, j_bg, j_ba, j_pose_j, j_vel_j]

    def hessian(self, pose_i: Pose, vel_i, bg, ba, pose_j: Pose, vel_j) -> np.ndarray:
        """24x24 Gauss-Newton Hessian J^T * information * J over all linked variables."""
        j = np.hstack(self.jacobians(pose_i, vel_i, bg, ba, pose_j, vel_j))
        return j.T @ self.information @ j