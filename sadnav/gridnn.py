"""Approximate nearest neighbours by hashing points into a 2D or 3D grid."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

import numpy as np

from sadnav.bfnn import INVALID_ID, bfnn_point

logger = logging.getLogger(__name__)


class NearbyType(Enum):
    """Which neighbouring cells are searched around the query's cell."""

    CENTER = "center"
    NEARBY4 = "nearby4"  # 2D: centre, left, right, up, down
    NEARBY8 = "nearby8"  # 2D: NEARBY4 plus the four corners
    NEARBY6 = "nearby6"  # 3D: centre and its six face neighbours


_NEARBY_GRIDS = {
    (2, NearbyType.CENTER): [(0, 0)],
    (2, NearbyType.NEARBY4): [(0, 0), (-1, 0), (1, 0), (0, 1), (0, -1)],
    (2, NearbyType.NEARBY8): [
        (0, 0), (-1, 0), (1, 0), (0, 1), (0, -1),
        (-1, -1), (-1, 1), (1, -1), (1, 1),
    ],
    (3, NearbyType.CENTER): [(0, 0, 0)],
    (3, NearbyType.NEARBY6): [
        (0, 0, 0), (-1, 0, 0), (1, 0, 0), (0, 1, 0),
        (0, -1, 0), (0, 0, -1), (0, 0, 1),
    ],
}


def _as_cloud(cloud) -> np.ndarray:
    arr = np.asarray(cloud, dtype=float)
    if arr.ndim != 2 or arr.shape[1] < 3:
        raise ValueError(f"a cloud must be an (N, 3) array, got shape {arr.shape}")
    return arr[:, :3]


class GridNN:
    """Nearest-neighbour search restricted to the cells around a query point.

    Cells are keyed by the coordinates divided by the resolution, truncated
    towards zero. The 2D grid uses x and y; distances are always 3D.
    """

    def __init__(self, dim: int = 2, resolution: float = 0.1, nearby_type: NearbyType = NearbyType.NEARBY4) -> None:
        if dim not in (2, 3):
            raise ValueError("the grid must be 2D or 3D")
        if resolution <= 0:
            raise ValueError("resolution must be positive")
        self.dim = dim
        self.resolution = resolution
        self._inv_resolution = 1.0 / resolution

        if dim == 2 and nearby_type is NearbyType.NEARBY6:
            logger.info("2D grid does not support nearby6, using nearby4 instead.")
            nearby_type = NearbyType.NEARBY4
        elif dim == 3 and nearby_type not in (NearbyType.NEARBY6, NearbyType.CENTER):
            logger.info("3D grid does not support nearby4/8, using nearby6 instead.")
            nearby_type = NearbyType.NEARBY6
        self.nearby_type = nearby_type
        self.nearby_grids = _NEARBY_GRIDS[(dim, nearby_type)]

        self._grids: dict[tuple[int, ...], list[int]] = {}
        self._cloud = np.zeros((0, 3))

    def _key(self, point: np.ndarray) -> tuple[int, ...]:
        return tuple(int(v * self._inv_resolution) for v in point[: self.dim])

    def set_point_cloud(self, cloud) -> None:
        """Index ``cloud`` into grid cells."""
        pts = _as_cloud(cloud)
        keys = np.trunc(pts[:, : self.dim] * self._inv_resolution).astype(int)
        self._grids = {}
        for idx, key in enumerate(map(tuple, keys.tolist())):
            self._grids.setdefault(key, []).append(idx)
        self._cloud = pts.copy()
        logger.info("grids: %d", len(self._grids))

    def get_closest_point(self, pt) -> tuple[np.ndarray, int] | None:
        """Closest indexed point and its index, or None if the nearby cells are empty."""
        point = np.asarray(pt, dtype=float).reshape(-1)
        if point.size < 3:
            raise ValueError("a point needs x, y and z coordinates")
        point = point[:3]
        key = self._key(point)
        candidates = [
            idx
            for delta in self.nearby_grids
            for idx in self._grids.get(tuple(k + d for k, d in zip(key, delta)), ())
        ]
        if not candidates:
            return None
        idx = candidates[bfnn_point(self._cloud[candidates], point)]
        return self._cloud[idx].copy(), idx

    def get_closest_point_for_cloud(self, ref, query) -> list[tuple[int, int]]:
        """Matches for every query point that found a neighbour, in query order."""
        matches = []
        for idx, q in enumerate(_as_cloud(query)):
            found = self.get_closest_point(q)
            if found is not None:
                matches.append((found[1], idx))
        return matches

    def get_closest_point_for_cloud_mt(self, ref, query) -> list[tuple[int, int]]:
        """One match per query point, computed in a thread pool.

        Queries without a neighbour get ``(INVALID_ID, INVALID_ID)``.
        """
        pts = _as_cloud(query)

        def match(idx: int) -> tuple[int, int]:
            found = self.get_closest_point(pts[idx])
            return (found[1], idx) if found is not None else (INVALID_ID, INVALID_ID)

        workers = min(32, os.cpu_count() or 1)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(match, range(len(pts)), chunksize=64))