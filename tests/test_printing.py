import math
import numpy as np
import pytest
from grainpy.domain.errors import InternalInvariantError
from grainpy.domain.models import GrainField
from grainpy.features.printing.logic import composite_grains, draw_grain_centers
from grainpy.features.spatial.logic import SpatialLookupGrid


def _field(width, height, xs, ys, sizes):
    n = len(xs)
    return GrainField(
        width=width,
        height=height,
        x=np.asarray(xs, dtype=np.float64),
        y=np.asarray(ys, dtype=np.float64),
        size=np.asarray(sizes, dtype=np.float64),
        sensitivity=np.ones(n),
        threshold=np.full(n, 0.5),
    )


def _composite(field, density, **kwargs):
    grid = SpatialLookupGrid(field.width, field.height, field)
    return composite_grains(field, grid, np.asarray(density, dtype=np.float64), **kwargs)


def test_pixels_without_grains_stay_dark():
    field = _field(40, 40, [5.0], [5.0], [1.0])
    res = _composite(field, [0.8])
    assert res.buffer.shape == (40, 40, 4)
    assert res.buffer.dtype == np.float32
    assert res.buffer[30, 30, 0] == 0.0
    assert res.buffer[5, 5, 0] == pytest.approx(1.0 - math.exp(-0.8), rel=1e-6)
    assert np.all(res.buffer[..., 3] == 1.0)
    assert res.processed_pixels == 1600


def test_gray_is_replicated():
    field = _field(20, 20, [10.0], [10.0], [3.0])
    buf = _composite(field, [0.5]).buffer
    assert np.array_equal(buf[..., 0], buf[..., 1])
    assert np.array_equal(buf[..., 0], buf[..., 2])


def test_influence_limited_to_twice_radius():
    field = _field(40, 10, [10.0], [5.0], [2.0])
    buf = _composite(field, [1.0]).buffer
    assert buf[5, 13, 0] > 0.0  # d = 3 < 4
    assert buf[5, 14, 0] == 0.0  # d = 4, outside


def test_denser_grains_print_brighter():
    field = _field(20, 20, [10.0], [10.0], [3.0])
    low = _composite(field, [0.2]).buffer
    high = _composite(field, [0.9]).buffer
    assert high[10, 10, 0] > low[10, 10, 0]


def test_uniform_grid_has_no_striping():
    coords = np.arange(1.0, 64.0, 2.0)
    gx, gy = np.meshgrid(coords, coords)
    n = gx.size
    field = _field(64, 64, gx.ravel(), gy.ravel(), np.full(n, 2.0))
    res = _composite(field, np.full(n, 0.5))
    values = res.buffer[..., 0].astype(np.float64)

    assert np.allclose(values, 1.0 - math.exp(-0.5), atol=1e-6)
    assert float(np.std(values)) < 1e-6
    std_h = float(np.std(values.mean(axis=1)))
    std_v = float(np.std(values.mean(axis=0)))
    ratio = (max(std_h, std_v) + 1e-9) / (min(std_h, std_v) + 1e-9)
    assert ratio < 2.0


def test_each_grain_counted_once_across_buckets():
    # Straddles the corner shared by four 16 px buckets
    field = _field(64, 64, [16.0], [16.0], [3.0])
    res = _composite(field, [0.5])
    yy, xx = np.mgrid[0:64, 0:64]
    expected = int(np.count_nonzero(np.hypot(xx - 16.0, yy - 16.0) < 6.0))
    assert res.grain_effect_count == expected


def test_effect_count_is_per_pixel_not_per_grain():
    field = _field(20, 20, [8.0, 10.0], [10.0, 10.0], [2.0, 2.0])
    res = _composite(field, [0.5, 0.5])
    yy, xx = np.mgrid[0:20, 0:20]
    touched = (np.hypot(xx - 8.0, yy - 10.0) < 4.0) | (np.hypot(xx - 10.0, yy - 10.0) < 4.0)
    assert res.grain_effect_count == int(np.count_nonzero(touched))
    assert res.grain_effect_count <= res.processed_pixels


def test_sampled_lattice_matches_full_render():
    rng = np.random.default_rng(0)
    n = 60
    field = _field(50, 40, rng.uniform(0, 50, n), rng.uniform(0, 40, n), rng.uniform(0.5, 4.0, n))
    density = rng.uniform(0, 1, n)
    full = _composite(field, density).buffer
    rows = np.array([0, 3, 17, 39])
    cols = np.array([1, 25, 49])
    part = _composite(field, density, rows=rows, cols=cols)
    assert part.buffer.shape == (4, 3, 4)
    assert part.processed_pixels == 12
    assert np.array_equal(part.buffer, full[np.ix_(rows, cols)])


def test_density_map_must_cover_every_grain():
    field = _field(20, 20, [5.0, 10.0], [5.0, 10.0], [1.0, 1.0])
    with pytest.raises(InternalInvariantError):
        _composite(field, [0.5])


def test_density_map_must_be_finite():
    field = _field(20, 20, [5.0, 10.0], [5.0, 10.0], [1.0, 1.0])
    with pytest.raises(InternalInvariantError):
        _composite(field, [0.5, np.nan])


class TestDebugOverlay:
    def test_marks_rounded_centres(self):
        field = _field(20, 20, [4.6, 12.2], [5.4, 15.0], [1.0, 1.0])
        buf = np.full((20, 20, 4), 128, dtype=np.uint8)
        out = draw_grain_centers(buf, field)

        magenta = np.array([255, 0, 255, 255], dtype=np.uint8)
        for x, y in ((5, 5), (12, 15)):
            assert np.array_equal(out[y, x], magenta)
            assert np.array_equal(out[y, x + 2], magenta)
            assert np.array_equal(out[y - 2, x], magenta)
            assert np.array_equal(out[y, x + 3], buf[y, x + 3])
            assert np.array_equal(out[y + 1, x + 1], buf[y + 1, x + 1])

    def test_input_untouched(self):
        field = _field(10, 10, [5.0], [5.0], [1.0])
        buf = np.zeros((10, 10, 4), dtype=np.uint8)
        draw_grain_centers(buf, field)
        assert not buf.any()
