"""Octree for k-nearest-neighbour search in 3D point clouds."""

from __future__ import annotations

import heapq
import itertools
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import numpy as np

from sadnav.bfnn import INVALID_ID

logger = logging.getLogger(__name__)

_VISIT = 0
_CHECK = 1
_FLOAT_MAX = float(np.finfo(np.float32).max)


def _as_cloud(cloud) -> np.ndarray:
    arr = np.asarray(cloud, dtype=float)
    if arr.ndim != 2 or arr.shape[1] < 3:
        raise ValueError(f"a cloud must be an (N, 3) array, got shape {arr.shape}")
    return arr[:, :3]


def _as_point(pt) -> np.ndarray:
    arr = np.asarray(pt, dtype=float).reshape(-1)
    if arr.size < 3:
        raise ValueError("a point needs x, y and z coordinates")
    return arr[:3]


@dataclass
class Box3D:
    """Axis-aligned box given by its bounds on each axis."""

    min_x: float = 0.0
    max_x: float = 0.0
    min_y: float = 0.0
    max_y: float = 0.0
    min_z: float = 0.0
    max_z: float = 0.0

    @property
    def lower(self) -> tuple[float, float, float]:
        return (self.min_x, self.min_y, self.min_z)

    @property
    def upper(self) -> tuple[float, float, float]:
        return (self.max_x, self.max_y, self.max_z)

    def inside(self, pt) -> bool:
        """Whether ``pt`` lies in the box, bounds included."""
        return all(lo <= p <= hi for p, lo, hi in zip(pt, self.lower, self.upper))

    def distance(self, pt) -> float:
        """Largest per-axis distance from an outside point to the box; 0 inside."""
        ret = 0.0
        for p, lo, hi in zip(pt, self.lower, self.upper):
            if p < lo:
                ret = max(ret, lo - p)
            elif p > hi:
                ret = max(ret, p - hi)
        return float(ret)


@dataclass(eq=False)
class OctoTreeNode:
    """A node: either eight children or, as a leaf, at most one point (-1 for none)."""

    id: int = -1
    point_idx: int = -1
    box: Box3D = field(default_factory=Box3D)
    children: list[OctoTreeNode] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.children


class OctoTree:
    """Octree that splits every box holding more than one point into eight octants."""

    def __init__(self) -> None:
        self._root: OctoTreeNode | None = None
        self._cloud = np.zeros((0, 3))
        self._size = 0
        self._next_id = 0
        self.approximate = False
        self.alpha = 1.0

    @property
    def size(self) -> int:
        """Number of leaves holding a point."""
        return self._size

    def __len__(self) -> int:
        return self._size

    @property
    def root(self) -> OctoTreeNode | None:
        return self._root

    def set_approximate(self, use_ann: bool = True, alpha: float = 0.1) -> None:
        """Switch approximate search on or off and set its distance factor."""
        self.approximate = use_ann
        self.alpha = alpha

    def clear(self) -> None:
        """Drop the tree and its points."""
        self._root = None
        self._size = 0
        self._next_id = 0
        self._cloud = np.zeros((0, 3))

    def _new_node(self) -> OctoTreeNode:
        node = OctoTreeNode(id=self._next_id)
        self._next_id += 1
        return node

    def _bounding_box(self) -> Box3D:
        # The y and z extents start from zero, so they always include it.
        lo = np.minimum(np.array([_FLOAT_MAX, 0.0, 0.0]), self._cloud.min(axis=0))
        hi = np.maximum(np.array([-_FLOAT_MAX, 0.0, 0.0]), self._cloud.max(axis=0))
        return Box3D(lo[0], hi[0], lo[1], hi[1], lo[2], hi[2])

    def build_tree(self, cloud) -> bool:
        """Build the tree over ``cloud``; returns False for an empty cloud."""
        pts = _as_cloud(cloud)
        if len(pts) == 0:
            return False

        self.clear()
        self._cloud = pts.copy()
        root = self._new_node()
        root.box = self._bounding_box()
        self._root = root

        stack = [(root, np.arange(len(pts)))]
        while stack:
            node, indices = stack.pop()
            if len(indices) == 0:
                continue
            sub = self._cloud[indices]
            if len(indices) == 1 or np.all(sub == sub[0]):
                # Coincident points cannot be separated; keep the first.
                self._size += 1
                node.point_idx = int(indices[0])
                continue
            children_idx = self._expand(node, indices)
            for child, idx in reversed(list(zip(node.children, children_idx))):
                stack.append((child, idx))
        return True

    def _expand(self, node: OctoTreeNode, parent_idx: np.ndarray) -> list[np.ndarray]:
        node.children = [self._new_node() for _ in range(8)]
        b = node.box
        cx = 0.5 * (b.min_x + b.max_x)
        cy = 0.5 * (b.min_y + b.max_y)
        cz = 0.5 * (b.min_z + b.max_z)
        boxes = [
            Box3D(b.min_x, cx, b.min_y, cy, b.min_z, cz),
            Box3D(cx, b.max_x, b.min_y, cy, b.min_z, cz),
            Box3D(b.min_x, cx, cy, b.max_y, b.min_z, cz),
            Box3D(cx, b.max_x, cy, b.max_y, b.min_z, cz),
            Box3D(b.min_x, cx, b.min_y, cy, cz, b.max_z),
            Box3D(cx, b.max_x, b.min_y, cy, cz, b.max_z),
            Box3D(b.min_x, cx, cy, b.max_y, cz, b.max_z),
            Box3D(cx, b.max_x, cy, b.max_y, cz, b.max_z),
        ]
        for child, box in zip(node.children, boxes):
            child.box = box

        buckets: list[list[int]] = [[] for _ in range(8)]
        for idx in parent_idx:
            pt = self._cloud[idx]
            for i, child in enumerate(node.children):
                if child.box.inside(pt):
                    buckets[i].append(int(idx))
                    break
        return [np.array(bucket, dtype=int) for bucket in buckets]

    def get_closest_point(self, pt, k: int = 5) -> list[int]:
        """Indices of the ``k`` nearest points to ``pt``, nearest first."""
        if k > self._size:
            raise ValueError(f"cannot set k larger than cloud size: {k}, {self._size}")
        if k < 0:
            raise ValueError("k must not be negative")
        if k == 0 or self._root is None:
            return []
        return self._knn(_as_point(pt), k)

    def get_closest_point_mt(self, cloud, k: int = 5) -> list[tuple[int, int]]:
        """k nearest neighbours for every point of ``cloud``, using a thread pool.

        Query ``i`` owns matches ``i * k`` to ``i * k + k - 1``; missing
        neighbours are ``(INVALID_ID, i)``.
        """
        query = _as_cloud(cloud)

        def search(idx: int) -> list[tuple[int, int]]:
            try:
                found = self.get_closest_point(query[idx], k)
            except ValueError:
                found = []
            return [
                (found[i] if i < len(found) else INVALID_ID, idx) for i in range(k)
            ]

        workers = min(32, os.cpu_count() or 1)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            groups = pool.map(search, range(len(query)))
            return [m for group in groups for m in group]

    def _knn(self, pt: np.ndarray, k: int) -> list[int]:
        heap: list[tuple[float, int, int]] = []
        counter = itertools.count()
        factor = self.alpha if self.approximate else 1.0

        stack: list[tuple[int, OctoTreeNode]] = [(_VISIT, self._root)]
        while stack:
            kind, node = stack.pop()
            if kind == _CHECK:
                d = node.box.distance(pt)
                if len(heap) < k or d * d < -heap[0][0] * factor:
                    stack.append((_VISIT, node))
                continue

            if node.is_leaf:
                if node.point_idx != -1:
                    diff = pt - self._cloud[node.point_idx]
                    dis2 = float(diff @ diff)
                    entry = (-dis2, next(counter), node.point_idx)
                    if len(heap) < k:
                        heapq.heappush(heap, entry)
                    elif dis2 < -heap[0][0]:
                        heapq.heapreplace(heap, entry)
                continue

            # Search the child holding the point first, or the closest one.
            idx_child = -1
            min_dis = float("inf")
            for i, child in enumerate(node.children):
                if child.box.inside(pt):
                    idx_child = i
                    break
                d = child.box.distance(pt)
                if d < min_dis:
                    idx_child = i
                    min_dis = d

            for i in reversed(range(8)):
                if i != idx_child:
                    stack.append((_CHECK, node.children[i]))
            stack.append((_VISIT, node.children[idx_child]))

        return [idx for _, _, idx in sorted(heap, key=lambda e: (-e[0], e[1]))]