import math
import numpy as np
import pytest
from grainpy.domain.models import GrainField
from grainpy.features.spatial.logic import SpatialLookupGrid


def _field(width, height, grains):
    arr = np.asarray(grains, dtype=np.float64)
    n = len(arr)
    return GrainField(
        width=width,
        height=height,
        x=arr[:, 0],
        y=arr[:, 1],
        size=arr[:, 2],
        sensitivity=np.ones(n),
        threshold=np.full(n, 0.5),
    )


@pytest.fixture
def small_field():
    return _field(64, 64, [(5.0, 5.0, 1.0), (30.0, 30.0, 2.0), (60.0, 10.0, 3.0), (16.0, 16.0, 1.5)])


def test_bucket_size():
    field = _field(64, 64, [(5.0, 5.0, 1.0)])
    assert SpatialLookupGrid(64, 64, field).bucket_size == 16

    big = _field(200, 200, [(100.0, 100.0, 20.0), (10.0, 10.0, 1.0)])
    grid = SpatialLookupGrid(200, 200, big)
    assert grid.bucket_size == 40
    assert (grid.grid_width, grid.grid_height) == (5, 5)


def test_every_overlapped_bucket_references_grain(small_field):
    grid = SpatialLookupGrid(64, 64, small_field)
    b = grid.bucket_size
    for gid in range(len(small_field)):
        x, y, s = small_field.x[gid], small_field.y[gid], small_field.size[gid]
        for by in range(grid.grid_height):
            for bx in range(grid.grid_width):
                overlaps = (
                    math.floor((x - 2 * s) / b) <= bx <= math.floor((x + 2 * s) / b)
                    and math.floor((y - 2 * s) / b) <= by <= math.floor((y + 2 * s) / b)
                )
                ids = grid.grains_in_bucket(bx * b + 1, by * b + 1)
                assert (gid in ids) == overlaps


def test_grains_in_bucket(small_field):
    grid = SpatialLookupGrid(64, 64, small_field)
    ids = grid.grains_in_bucket(2.0, 2.0)
    assert 0 in ids
    assert 2 not in ids
    # Ascending ids within a bucket
    assert np.all(np.diff(grid.grains_in_bucket(17.0, 17.0)) > 0)


def test_grains_near_is_sorted_unique_superset(small_field):
    grid = SpatialLookupGrid(64, 64, small_field)
    near = grid.grains_near(20.0, 20.0, radius=15.0)
    assert np.array_equal(near, np.unique(near))
    d = np.hypot(small_field.x - 20.0, small_field.y - 20.0)
    for gid in np.flatnonzero(d <= 15.0):
        assert gid in near


def test_grains_near_default_radius(small_field):
    grid = SpatialLookupGrid(64, 64, small_field)
    near = grid.grains_near(30.0, 30.0)
    assert 1 in near


def test_local_max_radius(small_field):
    grid = SpatialLookupGrid(64, 64, small_field)
    assert grid.local_max_radius(58.0, 8.0) == pytest.approx(3.0)
    assert grid.lookup_radius(58.0, 8.0) == pytest.approx(6.0)


def test_local_max_radius_falls_back_to_global():
    field = _field(100, 100, [(5.0, 5.0, 1.0)])
    grid = SpatialLookupGrid(100, 100, field)
    assert grid.local_max_radius(90.0, 90.0) == pytest.approx(1.0)
    assert grid.lookup_radius(90.0, 90.0) == pytest.approx(2.0)


def test_out_of_canvas_queries_are_clamped(small_field):
    grid = SpatialLookupGrid(64, 64, small_field)
    assert 0 in grid.grains_in_bucket(-10.0, -10.0)
    assert len(grid.grains_in_bucket(500.0, 500.0)) >= 0


def test_stats(small_field):
    grid = SpatialLookupGrid(64, 64, small_field)
    stats = grid.stats()
    assert stats.grid_width == 4 and stats.grid_height == 4
    assert stats.total_references == len(grid.items)
    assert stats.total_references >= len(small_field)
    assert stats.max_per_cell >= 1
    assert stats.avg_per_cell == pytest.approx(stats.total_references / stats.non_empty_cells)
