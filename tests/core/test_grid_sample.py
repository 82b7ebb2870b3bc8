from __future__ import annotations

import numpy as np
import pytest

from mapexport.core.grid_sample import GridSample, grid_to_world, sample_grid
from mapexport.core.samplers import ArraySampler


class _RecordingSampler:
    def __init__(self) -> None:
        self.positions: list[tuple[float, float, float]] = []

    def sample_height(self, world_pos):
        return 1.0

    def sample_water_level(self, world_pos):
        self.positions.append(world_pos)
        return 1.0 + world_pos[0] / 100.0


def test_sample_grid_surrounds_interior_with_sentinel() -> None:
    sampler = _RecordingSampler()
    grid = sample_grid(sampler, grid_size=10.0, steps=3, sentinel=-5.0)

    assert grid.values.shape == (5, 5)
    np.testing.assert_array_equal(grid.xs, [0.0, 10.0, 20.0, 30.0, 40.0])
    np.testing.assert_array_equal(grid.values[0, :], -5.0)
    np.testing.assert_array_equal(grid.values[:, -1], -5.0)
    np.testing.assert_allclose(grid.values[1:4, 2], [-0.1, 0.0, 0.1])
    assert len(sampler.positions) == 9


def test_grid_to_world_matches_sample_positions() -> None:
    sampler = _RecordingSampler()
    sample_grid(sampler, grid_size=10.0, steps=3)

    # 格子 (i, j) の平面座標は (10i, 10j)。最初の内部サンプルは i = j = 1。
    assert sampler.positions[0] == grid_to_world((10.0, 10.0), grid_size=10.0, steps=3)
    assert grid_to_world((20.0, 20.0), grid_size=10.0, steps=3) == (0.0, 0.0, 0.0)


def test_sample_grid_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError):
        sample_grid(_RecordingSampler(), grid_size=0.0, steps=3)
    with pytest.raises(ValueError):
        sample_grid(_RecordingSampler(), grid_size=1.0, steps=0)


def test_grid_sample_is_read_only_copy() -> None:
    values = np.zeros((2, 2))
    grid = GridSample(values=values, xs=np.arange(2.0), ys=np.arange(2.0))
    values[0, 0] = 9.0

    assert grid.values[0, 0] == 0.0
    with pytest.raises(ValueError):
        grid.values[0, 0] = 1.0


def test_array_sampler_indexes_and_clamps() -> None:
    ground = np.arange(16, dtype=np.float64).reshape(4, 4)
    water = ground + 100.0
    s = ArraySampler(ground=ground, water=water, grid_size=8.0)

    assert s.steps == 4
    # 配列 [k, l] はワールド ((k - 2) * 8, _, (l - 2) * 8)。
    assert s.sample_height((0.0, 0.0, 0.0)) == ground[2, 2]
    assert s.sample_water_level((-16.0, 0.0, 8.0)) == water[0, 3]
    assert s.sample_height((1000.0, 0.0, -1000.0)) == ground[3, 0]


def test_array_sampler_rejects_bad_shapes() -> None:
    with pytest.raises(ValueError):
        ArraySampler(ground=np.zeros((3, 4)), water=np.zeros((3, 4)), grid_size=1.0)
    with pytest.raises(ValueError):
        ArraySampler(ground=np.zeros((3, 3)), water=np.zeros((4, 4)), grid_size=1.0)
