import numpy as np
import pytest

from sadnav.bfnn import INVALID_ID, bfnn_cloud
from sadnav.gridnn import GridNN, NearbyType


def evaluate_matches(truth, esti):
    """Precision and recall of estimated matches against true ones."""
    truth_set = set(truth)
    esti_set = set(esti)
    effective = [d for d in esti if d[0] != INVALID_ID and d[1] != INVALID_ID]
    fp = sum(1 for d in effective if d not in truth_set)
    fn = sum(1 for d in truth if d not in esti_set)
    precision = 1.0 - fp / len(effective)
    recall = 1.0 - fn / len(truth)
    return precision, recall


@pytest.fixture
def lattice():
    return np.array(
        [[(i + 0.5) * 0.1, (j + 0.5) * 0.1, 0.0] for i in range(-5, 5) for j in range(-5, 5)]
    )


@pytest.fixture
def random_clouds():
    rng = np.random.default_rng(3)
    return rng.uniform(-1, 1, size=(400, 3)), rng.uniform(-1, 1, size=(150, 3))


ALL_GRIDS = [
    (2, NearbyType.CENTER),
    (2, NearbyType.NEARBY4),
    (2, NearbyType.NEARBY8),
    (3, NearbyType.NEARBY6),
    (3, NearbyType.CENTER),
]


@pytest.mark.parametrize("dim,nearby", ALL_GRIDS)
def test_exact_queries_are_found(lattice, dim, nearby):
    grid = GridNN(dim, 0.1, nearby)
    grid.set_point_cloud(lattice)
    truth = bfnn_cloud(lattice, lattice)
    serial = grid.get_closest_point_for_cloud(lattice, lattice)
    threaded = grid.get_closest_point_for_cloud_mt(lattice, lattice)
    assert evaluate_matches(truth, serial) == (1.0, 1.0)
    assert evaluate_matches(truth, threaded) == (1.0, 1.0)
    assert serial == [(i, i) for i in range(len(lattice))]


@pytest.mark.parametrize("dim,nearby", ALL_GRIDS)
def test_threaded_agrees_with_serial(random_clouds, dim, nearby):
    first, second = random_clouds
    grid = GridNN(dim, 0.1, nearby)
    grid.set_point_cloud(first)
    serial = grid.get_closest_point_for_cloud(first, second)
    threaded = grid.get_closest_point_for_cloud_mt(first, second)
    assert len(threaded) == len(second)
    assert [m for m in threaded if m[0] != INVALID_ID] == serial


def test_grid_matches_are_never_closer_than_truth(random_clouds):
    first, second = random_clouds
    grid = GridNN(2, 0.1, NearbyType.NEARBY8)
    grid.set_point_cloud(first)
    truth = dict((q, r) for r, q in bfnn_cloud(first, second))
    matches = grid.get_closest_point_for_cloud(first, second)
    assert matches
    for ref_idx, query_idx in matches:
        d_grid = np.sum((first[ref_idx] - second[query_idx]) ** 2)
        d_true = np.sum((first[truth[query_idx]] - second[query_idx]) ** 2)
        assert d_grid >= d_true
    precision, recall = evaluate_matches(bfnn_cloud(first, second), matches)
    assert 0.0 <= precision <= 1.0
    assert 0.0 <= recall <= 1.0


def test_far_query_finds_nothing(lattice):
    grid = GridNN(2, 0.1, NearbyType.NEARBY4)
    grid.set_point_cloud(lattice)
    assert grid.get_closest_point([50.0, 50.0, 0.0]) is None
    far = np.array([[50.0, 50.0, 0.0]])
    assert grid.get_closest_point_for_cloud(lattice, far) == []
    assert grid.get_closest_point_for_cloud_mt(lattice, far) == [(INVALID_ID, INVALID_ID)]


def test_cell_keys_truncate_towards_zero():
    cloud = np.array([[0.05, 0.0, 0.0], [-0.15, 0.0, 0.0]])
    grid = GridNN(2, 0.1, NearbyType.CENTER)
    grid.set_point_cloud(cloud)
    point, idx = grid.get_closest_point([-0.05, 0.0, 0.0])
    assert idx == 0
    np.testing.assert_allclose(point, cloud[0])


def test_closest_point_returns_coordinates(lattice):
    grid = GridNN(3, 0.1, NearbyType.NEARBY6)
    grid.set_point_cloud(lattice)
    point, idx = grid.get_closest_point(lattice[42] + [0.01, -0.01, 0.0])
    assert idx == 42
    np.testing.assert_allclose(point, lattice[42])


def test_unsupported_nearby_types_are_replaced():
    assert GridNN(2, 0.1, NearbyType.NEARBY6).nearby_type is NearbyType.NEARBY4
    assert GridNN(3, 0.1, NearbyType.NEARBY8).nearby_type is NearbyType.NEARBY6
    assert GridNN(3, 0.1, NearbyType.NEARBY4).nearby_type is NearbyType.NEARBY6
    assert len(GridNN(2, 0.1, NearbyType.NEARBY8).nearby_grids) == 9


def test_invalid_construction_raises():
    with pytest.raises(ValueError):
        GridNN(4)
    with pytest.raises(ValueError):
        GridNN(2, 0.0)