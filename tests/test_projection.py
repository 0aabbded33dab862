import numpy as np
import pytest
from PIL import Image

from sadnav.projection import BEV_COLOR, bird_eye_image, range_image, save_png


def lit_pixels(image, background):
    return np.argwhere(np.any(image != background, axis=-1))


def test_bev_shape_and_corner():
    pts = np.array([[0.0, 0.0, 1.0], [10.0, 4.0, 1.0]])
    image = bird_eye_image(pts, resolution=1.0)
    assert image.shape == (4, 10, 3)
    assert tuple(image[0, 0]) == BEV_COLOR
    assert tuple(image[1, 1]) == (255, 255, 255)


def test_bev_colour_is_the_source_colour():
    pts = np.array([[0.0, 0.0, 1.0], [10.0, 4.0, 1.0]])
    image = bird_eye_image(pts, resolution=1.0)
    assert tuple(int(c) for c in image[0, 0]) == (79, 143, 227)


def test_bev_height_filter():
    base = [[0.0, 0.0, 1.0], [10.0, 10.0, 1.0]]
    inside = bird_eye_image(np.array(base + [[5.0, 5.0, 1.0]]), resolution=1.0)
    too_high = bird_eye_image(np.array(base + [[5.0, 5.0, 10.0]]), resolution=1.0)
    too_low = bird_eye_image(np.array(base + [[5.0, 5.0, 0.0]]), resolution=1.0)
    white = (255, 255, 255)
    assert len(lit_pixels(inside, white)) == len(lit_pixels(too_high, white)) + 1
    np.testing.assert_array_equal(too_high, too_low)


def test_bev_only_bev_colour_or_white():
    rng = np.random.default_rng(1)
    pts = rng.uniform([-20, -20, 0], [20, 20, 3], size=(500, 3))
    image = bird_eye_image(pts, resolution=0.5)
    colours = {tuple(c) for c in image.reshape(-1, 3)}
    assert colours <= {BEV_COLOR, (255, 255, 255)}
    assert BEV_COLOR in colours


def test_bev_errors():
    with pytest.raises(ValueError):
        bird_eye_image(np.zeros((0, 3)))
    with pytest.raises(ValueError):
        bird_eye_image(np.ones((3, 3)), resolution=0.0)


def test_range_image_shape_and_background():
    image = range_image(np.zeros((0, 3)))
    assert image.shape == (16, 1200, 3)
    assert image.dtype == np.uint8
    assert not image.any()


def test_range_single_point_colour():
    image = range_image(np.array([[10.0, 0.0, 1.128]]))
    lit = lit_pixels(image, 0)
    assert len(lit) == 1
    row, col = lit[0]
    assert col == 0
    assert image[row, col].max() == 127
    assert image[row, col].min() == 0


def test_range_higher_elevation_is_higher_in_image():
    low = lit_pixels(range_image(np.array([[10.0, 0.0, 0.0]])), 0)[0]
    high = lit_pixels(range_image(np.array([[10.0, 0.0, 3.0]])), 0)[0]
    assert high[0] < low[0]


def test_range_azimuth_wraps_to_positive():
    col_0 = lit_pixels(range_image(np.array([[10.0, 0.0, 1.128]])), 0)[0][1]
    col_90 = lit_pixels(range_image(np.array([[0.0, 10.0, 1.128]])), 0)[0][1]
    col_270 = lit_pixels(range_image(np.array([[0.0, -10.0, 1.128]])), 0)[0][1]
    assert col_0 < col_90 < col_270


def test_range_later_point_overwrites():
    first = [10.0, 0.0, 1.128]
    second = [40.0, 0.0, 1.128]
    both = range_image(np.array([first, second]))
    last_only = range_image(np.array([second]))
    np.testing.assert_array_equal(both, last_only)
    assert not np.array_equal(both, range_image(np.array([first])))


def test_range_errors():
    with pytest.raises(ValueError):
        range_image(np.zeros((1, 3)), azimuth_resolution_deg=0.0)
    with pytest.raises(ValueError):
        range_image(np.zeros((1, 3)), elevation_rows=0)
    with pytest.raises(ValueError):
        range_image(np.zeros((2, 2)))


def test_save_png_round_trip(tmp_path):
    rng = np.random.default_rng(5)
    pts = rng.uniform([-20, -20, 0], [20, 20, 3], size=(200, 3))
    image = bird_eye_image(pts, resolution=0.5)
    path = tmp_path / "bev.png"
    save_png(image, path)
    with Image.open(path) as loaded:
        np.testing.assert_array_equal(np.asarray(loaded.convert("RGB")), image)


def test_save_png_rejects_non_bytes(tmp_path):
    with pytest.raises(ValueError):
        save_png(np.zeros((2, 2, 3), dtype=float), tmp_path / "x.png")