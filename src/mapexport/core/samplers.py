"""配列で与えた地形・水面から高さを返すサンプラ。"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from mapexport.core.projection import WorldPos


@dataclass(frozen=True, slots=True)
class ArraySampler:
    """正方配列の高さ場を最近傍でサンプルする `HeightSampler`。

    配列 `[k, l]` はワールド座標 `((k - n//2) * grid_size, _, (l - n//2) * grid_size)` に対応する
    （`sample_grid(steps=n)` の内部サンプル位置と同じ並び）。範囲外は端の値にクランプする。
    """

    ground: np.ndarray
    water: np.ndarray
    grid_size: float

    def __post_init__(self) -> None:
        ground = np.asarray(self.ground, dtype=np.float64)
        water = np.asarray(self.water, dtype=np.float64)
        if ground.ndim != 2 or ground.shape[0] != ground.shape[1]:
            raise ValueError(f"ground は正方の 2 次元配列である必要がある: shape={ground.shape}")
        if water.shape != ground.shape:
            raise ValueError(
                f"water と ground の shape が一致しません: water={water.shape}, ground={ground.shape}"
            )
        if not float(self.grid_size) > 0.0:
            raise ValueError(f"grid_size は正の値である必要がある: got={self.grid_size}")
        object.__setattr__(self, "ground", ground)
        object.__setattr__(self, "water", water)

    @property
    def steps(self) -> int:
        return int(self.ground.shape[0])

    def _index(self, world_pos: WorldPos) -> tuple[int, int]:
        n = self.steps
        half = n // 2
        g = float(self.grid_size)
        k = int(round(float(world_pos[0]) / g)) + half
        l = int(round(float(world_pos[2]) / g)) + half
        return min(max(k, 0), n - 1), min(max(l, 0), n - 1)

    def sample_height(self, world_pos: WorldPos) -> float:
        k, l = self._index(world_pos)
        return float(self.ground[k, l])

    def sample_water_level(self, world_pos: WorldPos) -> float:
        k, l = self._index(world_pos)
        return float(self.water[k, l])


__all__ = ["ArraySampler"]
