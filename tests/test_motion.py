import numpy as np
import pytest

from sadnav.motion import simulate_circular_motion


def test_first_step_moves_forward():
    first = next(simulate_circular_motion(10.0, 5.0, 0.05, 1))
    assert np.allclose(first.position, [0.25, 0.0, 0.0])
    assert np.allclose(first.velocity, [5.0, 0.0, 0.0])
    assert first.timestamp == pytest.approx(0.05)


def test_step_count_is_respected():
    states = list(simulate_circular_motion(steps=7))
    assert len(states) == 7
    assert list(simulate_circular_motion(steps=0)) == []


def test_straight_line_without_turning():
    states = list(simulate_circular_motion(0.0, 2.0, 0.1, 10))
    assert np.allclose(states[-1].position, [2.0, 0.0, 0.0])
    assert np.allclose(states[-1].rotation, np.eye(3))


@pytest.mark.parametrize("use_quaternion", [False, True])
def test_speed_and_height_constant(use_quaternion):
    for state in simulate_circular_motion(30.0, 3.0, 0.05, 200, use_quaternion):
        assert np.linalg.norm(state.velocity) == pytest.approx(3.0)
        assert state.position[2] == pytest.approx(0.0)
        assert np.allclose(state.rotation @ state.rotation.T, np.eye(3), atol=1e-9)


def test_full_turn_closes_the_loop():
    # 10 deg/s for 0.05 s per step turns half a degree, so 720 steps make one turn
    states = list(simulate_circular_motion(10.0, 5.0, 0.05, 720))
    assert np.allclose(states[-1].position, 0.0, atol=1e-8)
    assert np.allclose(states[-1].rotation, np.eye(3), atol=1e-9)


def test_quaternion_update_agrees_with_exponential():
    exact = list(simulate_circular_motion(10.0, 5.0, 0.05, 100, False))
    quat = list(simulate_circular_motion(10.0, 5.0, 0.05, 100, True))
    assert np.allclose(exact[-1].position, quat[-1].position, atol=1e-3)
    assert np.allclose(exact[-1].rotation, quat[-1].rotation, atol=1e-4)


def test_unbounded_generator_keeps_going():
    gen = simulate_circular_motion()
    states = [next(gen) for _ in range(1000)]
    assert states[-1].timestamp == pytest.approx(50.0)


@pytest.mark.parametrize("kwargs", [{"dt": 0.0}, {"dt": -1.0}, {"steps": -1}])
def test_invalid_arguments(kwargs):
    with pytest.raises(ValueError):
        next(simulate_circular_motion(**kwargs))