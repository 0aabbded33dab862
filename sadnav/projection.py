"""Rendering point clouds as bird's-eye and range images."""

from __future__ import annotations

import math

import numpy as np
from PIL import Image

BEV_COLOR = (79, 143, 227)
"""RGB colour of occupied bird's-eye pixels."""

_SECTOR_DATA = np.array([[1, 3, 0], [1, 0, 2], [3, 0, 1], [0, 2, 1], [0, 1, 3], [2, 1, 0]])


def _as_cloud(points) -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    if arr.ndim != 2 or arr.shape[1] < 3:
        raise ValueError(f"points must be an (N, 3) array, got shape {arr.shape}")
    return arr[:, :3]


def bird_eye_image(points, resolution: float = 0.1, min_z: float = 0.2, max_z: float = 2.5) -> np.ndarray:
    """Top-down RGB image of the points whose height lies in [min_z, max_z].

    The image spans the x-y extent of the whole cloud; row follows y and
    column follows x. Background is white.
    """
    pts = _as_cloud(points)
    if len(pts) == 0:
        raise ValueError("cannot render an empty cloud")
    if resolution <= 0:
        raise ValueError("resolution must be positive")

    min_x, max_x = pts[:, 0].min(), pts[:, 0].max()
    min_y, max_y = pts[:, 1].min(), pts[:, 1].max()
    inv_r = 1.0 / resolution
    rows = int((max_y - min_y) * inv_r)
    cols = int((max_x - min_x) * inv_r)

    x_center = 0.5 * (max_x + min_x)
    y_center = 0.5 * (max_y + min_y)
    x_center_image = cols // 2
    y_center_image = rows // 2

    image = np.full((rows, cols, 3), 255, dtype=np.uint8)
    with np.errstate(invalid="ignore"):
        fx = (pts[:, 0] - x_center) * inv_r + x_center_image
        fy = (pts[:, 1] - y_center) * inv_r + y_center_image
    z = pts[:, 2]
    finite = np.isfinite(fx) & np.isfinite(fy) & np.isfinite(z)
    xs = np.zeros(len(pts), dtype=np.int64)
    ys = np.zeros(len(pts), dtype=np.int64)
    xs[finite] = np.trunc(fx[finite])
    ys[finite] = np.trunc(fy[finite])
    mask = finite & (xs >= 0) & (xs < cols) & (ys >= 0) & (ys < rows) & (z >= min_z) & (z <= max_z)
    image[ys[mask], xs[mask]] = BEV_COLOR
    return image


def _hsv_to_rgb(hsv: np.ndarray) -> np.ndarray:
    """8-bit HSV (hue in half degrees, wrapping) to 8-bit RGB."""
    h = np.mod(hsv[..., 0].astype(float) * (6.0 / 180.0), 6.0)
    s = hsv[..., 1].astype(float) / 255.0
    v = hsv[..., 2].astype(float) / 255.0
    sector = np.minimum(np.floor(h).astype(int), 5)
    f = h - sector
    p = v * (1.0 - s)
    q = v * (1.0 - s * f)
    t = v * (1.0 - s * (1.0 - f))
    tab = np.stack([v, p, q, t], axis=-1)
    bgr = np.take_along_axis(tab, _SECTOR_DATA[sector], axis=-1)
    rgb = bgr[..., ::-1]
    return np.clip(np.rint(rgb * 255.0), 0, 255).astype(np.uint8)


def range_image(
    points,
    azimuth_resolution_deg: float = 0.3,
    elevation_rows: int = 16,
    elevation_range: float = 15.0,
    lidar_height: float = 1.128,
) -> np.ndarray:
    """RGB range image of a scan: columns by azimuth, rows by elevation (top is up).

    Each hit pixel is coloured in HSV with hue from the horizontal range,
    full saturation and half value; later points overwrite earlier ones.
    """
    pts = _as_cloud(points)
    if azimuth_resolution_deg <= 0:
        raise ValueError("azimuth resolution must be positive")
    if elevation_rows <= 0:
        raise ValueError("elevation_rows must be positive")
    if elevation_range <= 0:
        raise ValueError("elevation_range must be positive")

    cols = int(360 / azimuth_resolution_deg)
    rows = elevation_rows
    hsv = np.zeros((rows, cols, 3), dtype=np.int64)
    ele_resolution = elevation_range * 2 / elevation_rows

    x, y, z = pts[:, 0], pts[:, 1], pts[:, 2]
    with np.errstate(divide="ignore", invalid="ignore"):
        azimuth = np.degrees(np.arctan2(y, x))
        rng = np.sqrt(x * x + y * y)
        elevation = np.degrees(np.arcsin((z - lidar_height) / rng))
        azimuth = np.where(azimuth < 0, azimuth + 360, azimuth)
        fx = azimuth / azimuth_resolution_deg
        fy = (elevation + elevation_range) / ele_resolution + 0.5
        hue_f = rng / 100 * 255.0

    finite = np.isfinite(fx) & np.isfinite(fy) & np.isfinite(hue_f)
    if finite.any():
        px = np.trunc(fx[finite]).astype(np.int64)
        py = np.trunc(fy[finite]).astype(np.int64)
        hue = np.trunc(hue_f[finite]).astype(np.int64) % 256
        inside = (px >= 0) & (px < cols) & (py >= 0) & (py < rows)
        px, py, hue = px[inside], py[inside], hue[inside]
        if len(px):
            # Keep the last point that falls on each pixel.
            linear = (py * cols + px)[::-1]
            _, first = np.unique(linear, return_index=True)
            keep = len(px) - 1 - first
            hsv[py[keep], px[keep]] = np.stack(
                [hue[keep], np.full(len(keep), 255), np.full(len(keep), 127)], axis=-1
            )

    return _hsv_to_rgb(hsv[::-1])


def save_png(image, path) -> None:
    """Write an RGB image array as a PNG file."""
    arr = np.asarray(image)
    if arr.dtype != np.uint8:
        raise ValueError("image must be an array of uint8")
    Image.fromarray(arr).save(path, format="PNG")