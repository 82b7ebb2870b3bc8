# どこで: `src/mapexport/core/grid_sample.py`。
# 何を: 等値線抽出の入力となる規則格子のスカラー場 `GridSample` と、そのサンプリングを提供する。

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np

from mapexport.core.projection import WorldPos

Point = tuple[float, float]


class HeightSampler(Protocol):
    """地形・水面の高さをワールド座標で返す外部コラボレータ。"""

    def sample_height(self, world_pos: WorldPos) -> float: ...

    def sample_water_level(self, world_pos: WorldPos) -> float: ...


@dataclass(frozen=True, slots=True)
class GridSample:
    """規則格子上でサンプルしたスカラー場。

    Parameters
    ----------
    values : np.ndarray
        float64 型 shape (R, C) の値配列。`values[row, col]`。
    xs : np.ndarray
        float64 型 shape (R,)。row からワールド平面 X への対応。
    ys : np.ndarray
        float64 型 shape (C,)。col からワールド平面 Y への対応。

    Notes
    -----
    不変性を契約とし、配列は writeable=False で保持する。
    """

    values: np.ndarray
    xs: np.ndarray
    ys: np.ndarray

    def __post_init__(self) -> None:
        values = np.asarray(self.values, dtype=np.float64)
        xs = np.asarray(self.xs, dtype=np.float64)
        ys = np.asarray(self.ys, dtype=np.float64)

        if values.ndim != 2:
            raise ValueError(f"values は 2 次元配列である必要がある: ndim={values.ndim}")
        if xs.ndim != 1 or ys.ndim != 1:
            raise ValueError("xs / ys は 1 次元配列である必要がある")
        if values.shape != (xs.shape[0], ys.shape[0]):
            raise ValueError(
                "values の shape は (len(xs), len(ys)) と一致する必要がある"
                f": values={values.shape}, xs={xs.shape[0]}, ys={ys.shape[0]}"
            )

        # 呼び出し側の配列を凍結しないようにコピーしてから固定する。
        values = values.copy()
        xs = xs.copy()
        ys = ys.copy()
        values.setflags(write=False)
        xs.setflags(write=False)
        ys.setflags(write=False)

        object.__setattr__(self, "values", values)
        object.__setattr__(self, "xs", xs)
        object.__setattr__(self, "ys", ys)

    @property
    def is_degenerate(self) -> bool:
        """セル（2x2）を 1 つも作れないなら True。"""

        return int(self.values.shape[0]) < 2 or int(self.values.shape[1]) < 2


def _sample_position(i: int, j: int, *, grid_size: float, steps: int) -> WorldPos:
    """格子インデックス (i, j) に対応するワールド座標（外周 1 セル分ずらす）。"""

    half = int(steps) // 2
    return (
        float((i - 1 - half) * grid_size),
        0.0,
        float((j - 1 - half) * grid_size),
    )


def sample_grid(
    sampler: HeightSampler,
    *,
    grid_size: float,
    steps: int,
    sentinel: float = 0.0,
) -> GridSample:
    """水深（水面 - 地面）を `(steps+2)^2` の格子にサンプルする。

    Parameters
    ----------
    sampler : HeightSampler
        高さサンプラ。例外はそのまま呼び出し側へ伝播する。
    grid_size : float
        格子間隔（ワールド座標単位）。
    steps : int
        内部サンプル数（一辺）。
    sentinel : float, default 0.0
        外周 1 セルに入れる値。全等値レベルより小さくしておくことで、
        等高線がグリッド外へ開いたまま漏れないようにする。

    Returns
    -------
    GridSample
        `xs[i] = ys[i] = i * grid_size` の格子。
    """

    g = float(grid_size)
    if not g > 0.0:
        raise ValueError(f"grid_size は正の値である必要がある: got={grid_size}")
    n = int(steps) + 2
    if int(steps) < 1:
        raise ValueError(f"steps は 1 以上である必要がある: got={steps}")

    values = np.full((n, n), float(sentinel), dtype=np.float64)
    for i in range(1, n - 1):
        for j in range(1, n - 1):
            pos = _sample_position(i, j, grid_size=g, steps=int(steps))
            water = float(sampler.sample_water_level(pos))
            ground = float(sampler.sample_height(pos))
            values[i, j] = water - ground

    coords = g * np.arange(n, dtype=np.float64)
    return GridSample(values=values, xs=coords, ys=coords.copy())


def grid_to_world(point: Point, *, grid_size: float, steps: int) -> WorldPos:
    """`sample_grid()` の格子平面座標をワールド座標 `(x, 0, z)` に戻す。"""

    g = float(grid_size)
    offset = g + float(int(steps) // 2) * g
    return (float(point[0]) - offset, 0.0, float(point[1]) - offset)


__all__ = ["GridSample", "HeightSampler", "Point", "grid_to_world", "sample_grid"]
