import numpy as np
import pytest

from sadnav.bfnn import INVALID_ID, bfnn_cloud_mt_k
from sadnav.octo_tree import Box3D, OctoTree


@pytest.fixture
def square():
    return np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]], dtype=float)


@pytest.fixture
def clouds():
    rng = np.random.default_rng(11)
    return rng.uniform(-5, 5, size=(300, 3)), rng.uniform(-5, 5, size=(60, 3))


def test_box_inside_includes_bounds():
    box = Box3D(0, 1, 0, 1, 0, 1)
    assert box.inside([1.0, 0.0, 0.5]) is True
    assert box.inside([1.1, 0.5, 0.5]) is False


def test_box_distance_takes_largest_gap():
    box = Box3D(0, 1, 0, 1, 0, 1)
    assert box.distance([2.0, 0.5, 3.0]) == pytest.approx(2.0)
    assert box.distance([-0.5, 0.5, 0.5]) == pytest.approx(0.5)
    assert box.distance([0.5, 0.5, 0.5]) == 0.0


def test_basics_builds_four_leaves(square):
    tree = OctoTree()
    assert tree.build_tree(square) is True
    tree.set_approximate(False)
    assert tree.size == 4
    assert len(tree.root.children) == 8
    leaf_points = sorted(c.point_idx for c in tree.root.children if c.point_idx != -1)
    assert leaf_points == [0, 1, 2, 3]


def test_closest_point_in_square(square):
    tree = OctoTree()
    tree.build_tree(square)
    assert tree.get_closest_point([0.1, 0.1, 0.0], 1) == [0]
    assert tree.get_closest_point([0.9, 0.2, 0.0], 4) == [1, 3, 0, 2]


def test_empty_cloud_is_rejected():
    assert OctoTree().build_tree(np.zeros((0, 3))) is False


def test_k_larger_than_size_raises(square):
    tree = OctoTree()
    tree.build_tree(square)
    with pytest.raises(ValueError):
        tree.get_closest_point([0, 0, 0], 5)


def test_mt_with_too_large_k_gives_invalid_matches(square):
    tree = OctoTree()
    tree.build_tree(square)
    assert tree.get_closest_point_mt(np.array([[0.0, 0.0, 0.0]]), 5) == [(INVALID_ID, 0)] * 5


def test_exact_knn_matches_brute_force(clouds):
    first, second = clouds
    tree = OctoTree()
    tree.build_tree(first)
    assert tree.get_closest_point_mt(second, 5) == bfnn_cloud_mt_k(first, second, 5)


def test_ann_alpha_one_matches_brute_force(clouds):
    first, second = clouds
    tree = OctoTree()
    tree.build_tree(first)
    tree.set_approximate(True, 1.0)
    assert tree.get_closest_point_mt(second, 5) == bfnn_cloud_mt_k(first, second, 5)


def test_query_outside_box_finds_nearest(clouds):
    first, _ = clouds
    tree = OctoTree()
    tree.build_tree(first)
    query = np.array([20.0, 20.0, 20.0])
    expected = int(np.argmin(np.sum((first - query) ** 2, axis=1)))
    assert tree.get_closest_point(query, 1) == [expected]


def test_duplicate_points_are_found():
    cloud = np.array([[1.0, 2.0, 3.0]] * 3 + [[4.0, 4.0, 4.0]])
    tree = OctoTree()
    tree.build_tree(cloud)
    assert tree.get_closest_point([1.0, 2.0, 3.1], 1)[0] in (0, 1, 2)
    assert tree.get_closest_point([4.0, 4.0, 4.1], 1) == [3]


def test_clear_empties_tree(square):
    tree = OctoTree()
    tree.build_tree(square)
    tree.clear()
    assert tree.size == 0
    assert tree.root is None