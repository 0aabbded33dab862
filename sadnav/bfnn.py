"""Brute-force nearest-neighbour search in point clouds.

A cloud is an ``(N, 3)`` array-like of x, y, z coordinates; extra columns
(intensity and the like) are ignored. Matches are ``(reference_index,
query_index)`` pairs.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

import numpy as np

INVALID_ID = -1
"""Index used in a match when no neighbour was found."""

_CHUNK = 256
_T = TypeVar("_T")


def _as_cloud(cloud) -> np.ndarray:
    arr = np.asarray(cloud, dtype=float)
    if arr.ndim != 2 or arr.shape[1] < 3:
        raise ValueError(f"a cloud must be an (N, 3) array, got shape {arr.shape}")
    return arr[:, :3]


def _as_point(point) -> np.ndarray:
    arr = np.asarray(point, dtype=float).reshape(-1)
    if arr.size < 3:
        raise ValueError("a point needs x, y and z coordinates")
    return arr[:3]


def _squared_distances(cloud: np.ndarray, point: np.ndarray) -> np.ndarray:
    diff = cloud - point
    return np.einsum("ij,ij->i", diff, diff)


def _parallel_map(func: Callable[[int], _T], count: int) -> list[_T]:
    chunks = [range(start, min(start + _CHUNK, count)) for start in range(0, count, _CHUNK)]
    workers = min(32, os.cpu_count() or 1)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        parts = pool.map(lambda r: [func(i) for i in r], chunks)
        return [item for part in parts for item in part]


def bfnn_point(cloud, point) -> int:
    """Index of the point of ``cloud`` closest to ``point``; the first one on ties."""
    pts = _as_cloud(cloud)
    if len(pts) == 0:
        raise ValueError("cannot search an empty cloud")
    return int(np.argmin(_squared_distances(pts, _as_point(point))))


def bfnn_point_k(cloud, point, k: int = 5) -> list[int]:
    """Indices of the ``k`` points of ``cloud`` closest to ``point``, nearest first."""
    pts = _as_cloud(cloud)
    if k < 0:
        raise ValueError("k must not be negative")
    if k > len(pts):
        raise ValueError(f"k = {k} is larger than the cloud size {len(pts)}")
    order = np.argsort(_squared_distances(pts, _as_point(point)), kind="stable")
    return [int(i) for i in order[:k]]


def bfnn_cloud(cloud1, cloud2) -> list[tuple[int, int]]:
    """Nearest point of ``cloud1`` for every point of ``cloud2``, one at a time."""
    ref = _as_cloud(cloud1)
    query = _as_cloud(cloud2)
    return [(bfnn_point(ref, q), idx) for idx, q in enumerate(query)]


def bfnn_cloud_mt(cloud1, cloud2) -> list[tuple[int, int]]:
    """Nearest point of ``cloud1`` for every point of ``cloud2``, using a thread pool."""
    ref = _as_cloud(cloud1)
    query = _as_cloud(cloud2)
    return _parallel_map(lambda idx: (bfnn_point(ref, query[idx]), idx), len(query))


def bfnn_cloud_mt_k(cloud1, cloud2, k: int = 5) -> list[tuple[int, int]]:
    """The ``k`` nearest points of ``cloud1`` for every point of ``cloud2``.

    The result holds ``len(cloud2) * k`` matches; those of query ``i`` occupy
    positions ``i * k`` to ``i * k + k - 1``, nearest first.
    """
    ref = _as_cloud(cloud1)
    query = _as_cloud(cloud2)
    if k > len(ref):
        raise ValueError(f"k = {k} is larger than the cloud size {len(ref)}")

    def neighbours(idx: int) -> list[tuple[int, int]]:
        return [(first, idx) for first in bfnn_point_k(ref, query[idx], k)]

    return [m for group in _parallel_map(neighbours, len(query)) for m in group]