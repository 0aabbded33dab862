"""K-d tree for k-nearest-neighbour search in 3D point clouds."""

from __future__ import annotations

import heapq
import itertools
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

from sadnav.bfnn import INVALID_ID

logger = logging.getLogger(__name__)

_VISIT = 0
_EXPAND = 1


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


@dataclass(eq=False)
class KdTreeNode:
    """A node of the tree; leaves hold one point index, inner nodes a split plane."""

    id: int = -1
    point_idx: int = 0
    axis_index: int = 0
    split_thresh: float = 0.0
    left: KdTreeNode | None = None
    right: KdTreeNode | None = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


class KdTree:
    """Binary space-partitioning tree split at the mean of the axis of largest spread.

    Approximate search is on by default: a far side is only searched when the
    squared distance to the split plane is below ``alpha`` times the current
    k-th squared distance.
    """

    def __init__(self) -> None:
        self._root: KdTreeNode | None = None
        self._cloud = np.zeros((0, 3))
        self._nodes: dict[int, KdTreeNode] = {}
        self._size = 0
        self._next_id = 0
        self.approximate = True
        self.alpha = 0.1

    @property
    def size(self) -> int:
        """Number of leaves holding a point."""
        return self._size

    def __len__(self) -> int:
        return self._size

    @property
    def root(self) -> KdTreeNode | None:
        return self._root

    def set_enable_ann(self, use_ann: bool = True, alpha: float = 0.1) -> None:
        """Switch approximate search on or off and set its distance factor."""
        self.approximate = use_ann
        self.alpha = alpha

    def clear(self) -> None:
        """Drop the tree and its points."""
        self._nodes = {}
        self._root = None
        self._size = 0
        self._next_id = 0
        self._cloud = np.zeros((0, 3))

    def build_tree(self, cloud) -> bool:
        """Build the tree over ``cloud``; returns False for an empty cloud."""
        pts = _as_cloud(cloud)
        if len(pts) == 0:
            return False

        self.clear()
        self._cloud = pts.copy()

        # Nodes are numbered in depth-first, left-first order.
        stack: list[tuple[KdTreeNode | None, bool, np.ndarray]] = [
            (None, False, np.arange(len(pts)))
        ]
        while stack:
            parent, is_left, indices = stack.pop()
            node = KdTreeNode(id=self._next_id)
            self._next_id += 1
            self._nodes[node.id] = node
            if parent is None:
                self._root = node
            elif is_left:
                parent.left = node
            else:
                parent.right = node

            if len(indices) == 1:
                self._size += 1
                node.point_idx = int(indices[0])
                continue

            split = self._split(indices)
            if split is None:
                self._size += 1
                node.point_idx = int(indices[0])
                continue

            node.axis_index, node.split_thresh, left, right = split
            stack.append((node, False, right))
            stack.append((node, True, left))
        return True

    def _split(self, indices: np.ndarray):
        pts = self._cloud[indices]
        mean = pts.mean(axis=0)
        var = pts.var(axis=0)
        axis = int(np.argmax(var))
        thresh = float(mean[axis])
        mask = pts[:, axis] < thresh
        left, right = indices[mask], indices[~mask]
        if len(left) == 0 or len(right) == 0:
            return None
        return axis, thresh, left, right

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

    def describe(self) -> list[str]:
        """One line per node, ordered by node id; the lines are also logged."""
        lines = []
        for node_id in sorted(self._nodes):
            node = self._nodes[node_id]
            if node.is_leaf:
                line = f"leaf node: {node.id}, idx: {node.point_idx}"
            else:
                line = f"node: {node.id}, axis: {node.axis_index}, th: {node.split_thresh:g}"
            logger.info(line)
            lines.append(line)
        return lines

    def _knn(self, pt: np.ndarray, k: int) -> list[int]:
        heap: list[tuple[float, int, int]] = []
        counter = itertools.count()
        factor = self.alpha if self.approximate else 1.0

        stack: list[tuple] = [(_VISIT, self._root)]
        while stack:
            frame = stack.pop()
            node = frame[1]
            if frame[0] == _EXPAND:
                d = pt[node.axis_index] - node.split_thresh
                if len(heap) < k or d * d < -heap[0][0] * factor:
                    stack.append((_VISIT, frame[2]))
                continue

            if node.is_leaf:
                diff = pt - self._cloud[node.point_idx]
                dis2 = float(diff @ diff)
                entry = (-dis2, next(counter), node.point_idx)
                if len(heap) < k:
                    heapq.heappush(heap, entry)
                elif dis2 < -heap[0][0]:
                    heapq.heapreplace(heap, entry)
                continue

            if pt[node.axis_index] < node.split_thresh:
                this_side, that_side = node.left, node.right
            else:
                this_side, that_side = node.right, node.left
            stack.append((_EXPAND, node, that_side))
            stack.append((_VISIT, this_side))

        return [idx for _, _, idx in sorted(heap, key=lambda e: (-e[0], e[1]))]