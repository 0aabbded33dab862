import numpy as np
import pytest

from sadnav.bfnn import INVALID_ID, bfnn_cloud_mt_k
from sadnav.kdtree import KdTree


@pytest.fixture
def square():
    return np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]], dtype=float)


@pytest.fixture
def clouds():
    rng = np.random.default_rng(7)
    return rng.uniform(-5, 5, size=(300, 3)), rng.uniform(-5, 5, size=(60, 3))


def test_basics_builds_four_leaves(square):
    tree = KdTree()
    assert tree.build_tree(square) is True
    assert tree.size == 4


def test_describe_lists_nodes_in_order(square):
    tree = KdTree()
    tree.build_tree(square)
    assert tree.describe() == [
        "node: 0, axis: 0, th: 0.5",
        "node: 1, axis: 1, th: 0.5",
        "leaf node: 2, idx: 0",
        "leaf node: 3, idx: 2",
        "node: 4, axis: 1, th: 0.5",
        "leaf node: 5, idx: 1",
        "leaf node: 6, idx: 3",
    ]


def test_closest_point_in_square(square):
    tree = KdTree()
    tree.build_tree(square)
    tree.set_enable_ann(False)
    assert tree.get_closest_point([0.1, 0.1, 0.0], 1) == [0]
    assert tree.get_closest_point([0.9, 0.2, 0.0], 4) == [1, 3, 0, 2]


def test_empty_cloud_is_rejected():
    assert KdTree().build_tree(np.zeros((0, 3))) is False


def test_k_larger_than_size_raises(square):
    tree = KdTree()
    tree.build_tree(square)
    with pytest.raises(ValueError):
        tree.get_closest_point([0, 0, 0], 5)


def test_mt_with_too_large_k_gives_invalid_matches(square):
    tree = KdTree()
    tree.build_tree(square)
    matches = tree.get_closest_point_mt(np.array([[0.0, 0.0, 0.0]]), 6)
    assert matches == [(INVALID_ID, 0)] * 6


def test_exact_knn_matches_brute_force(clouds):
    first, second = clouds
    tree = KdTree()
    tree.build_tree(first)
    tree.set_enable_ann(False)
    assert tree.get_closest_point_mt(second, 5) == bfnn_cloud_mt_k(first, second, 5)


def test_ann_alpha_one_matches_brute_force(clouds):
    first, second = clouds
    tree = KdTree()
    tree.build_tree(first)
    tree.set_enable_ann(True, 1.0)
    assert tree.get_closest_point_mt(second, 5) == bfnn_cloud_mt_k(first, second, 5)


def test_default_ann_results_sorted_and_distinct(clouds):
    first, second = clouds
    tree = KdTree()
    tree.build_tree(first)
    for q in second[:10]:
        found = tree.get_closest_point(q, 5)
        assert len(set(found)) == 5
        dists = [np.sum((first[i] - q) ** 2) for i in found]
        assert dists == sorted(dists)


def test_duplicate_points_become_one_leaf():
    cloud = np.array([[1.0, 2.0, 3.0]] * 4 + [[5.0, 5.0, 5.0]])
    tree = KdTree()
    tree.build_tree(cloud)
    assert tree.size == 2
    assert tree.get_closest_point([1.0, 2.0, 3.1], 1) == [0]


def test_clear_empties_tree(square):
    tree = KdTree()
    tree.build_tree(square)
    tree.clear()
    assert tree.size == 0
    with pytest.raises(ValueError):
        tree.get_closest_point([0, 0, 0], 1)