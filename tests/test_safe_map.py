from dataclasses import replace

import numpy as np
import pytest

from navsense.io_types import ConfigError
from navsense.safe_map import CameraMount, build_safe_map, visualize_safe_map


@pytest.fixture(scope="module")
def safe320():
    return build_safe_map(320)


def test_shape_dtype_and_read_only(safe320):
    assert safe320.shape == (320, 320)
    assert safe320.dtype == np.float32
    with pytest.raises(ValueError):
        safe320[0, 0] = 1.0


def test_centre_above_horizon_has_no_reference(safe320):
    # above the vanishing row the floor is hidden and the walls top out at 1.7 m
    assert np.isinf(safe320[:80, 140:181]).all()


def test_floor_cell_matches_closed_form(safe320):
    # bottom centre pixel: floor straight ahead
    n, H, start_z = 320, 1.3, 1.75
    vy = int(n * 0.3)
    factor = (319 - vy) / float(n)
    z = start_z + H / factor - H
    x = (160 - n // 2) / ((n / 1.2) * factor)
    assert safe320[319, 160] == pytest.approx(np.sqrt(x * x + z * z), rel=1e-5)


def test_floor_distance_shrinks_toward_bottom(safe320):
    col = safe320[200:, 160]
    assert np.isfinite(col).all()
    assert (np.diff(col) < 0).all()


def test_all_finite_cells_are_at_least_start_z(safe320):
    finite = safe320[np.isfinite(safe320)]
    assert finite.size > 0
    assert finite.min() >= 1.75 - 1e-5


def test_increasing_start_z_increases_distances():
    base = build_safe_map(96)
    farther = build_safe_map(96, replace(CameraMount(), start_z_m=2.5))
    finite = np.isfinite(base)
    assert (finite == np.isfinite(farther)).all()
    assert (farther[finite] > base[finite]).all()


def test_left_wall_present_on_left_edge(safe320):
    # lower-left corner: the floor is outside the corridor there, the left wall is not
    mount = CameraMount()
    n = 320
    u, v = 5, 150
    vy, scale_x = int(n * 0.3), n / 1.2
    f = (u - n // 2) / (mount.left_wall_m * scale_x)
    z = mount.start_z_m + mount.height_m / f - mount.height_m
    y = mount.height_m - mount.height_m * (v - vy) / (n * f)
    assert 0 <= y <= mount.wall_height_m
    expected = np.sqrt(mount.left_wall_m ** 2 + (y - mount.height_m) ** 2 + z ** 2)
    assert safe320[v, u] == pytest.approx(expected, rel=1e-5)


@pytest.mark.parametrize("bad", [0, -5])
def test_bad_resolution_is_config_error(bad):
    with pytest.raises(ConfigError):
        build_safe_map(bad)


def test_visualize_bands(safe320):
    img = visualize_safe_map(safe320)
    assert img.shape == (320, 320, 3)
    assert img.dtype == np.uint8
    assert not img[:80, 140:181].any()    # +inf stays black
    assert img[319, 160].any()


def test_visualize_handcrafted_values():
    d = np.array([[0.0, 5.0], [50.0, np.inf]], np.float32)
    img = visualize_safe_map(d)
    assert not img[0, 0].any()
    assert img[0, 1].any()
    assert not img[1, 1].any()
