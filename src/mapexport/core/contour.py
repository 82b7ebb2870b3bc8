"""規則格子のスカラー場から、指定レベルの等値線を線分群として抽出する。

処理の全体像（読む順）
----------------------
1. `values - level` を作り、0 等値線の問題に落とす
2. Marching Squares の線分数を数え、出力配列を確保する
3. もう一度走査して線分端点を書き込む
4. 端点座標をキーにした隣接表 `{start: [end, ...]}` に詰めて返す

端点の一致について
------------------
隣接する 2 セルが共有する辺の交点は、どちらのセルからも
「インデックスの小さい角 → 大きい角」の向きで同じ式で補間する。
そのため共有端点は浮動小数点のビット単位で一致し、後段の縫合は座標の一致だけで行える。

交点の補間係数は `[_T_EPS, 1 - _T_EPS]` にクランプする。
値がちょうど `level` の格子点があっても交点が格子点上に乗らないので、
1 つの端点に 3 本以上の線分が集まることはない（次数は最大 2）。

あいまいケース（鞍点）
----------------------
対角の 2 角だけが上側（`idx == 5` / `idx == 10`）のセルは、
セル中心値 `0.25 * (v00 + v10 + v11 + v01)` で接続を決める。
中心が上側なら上側の 2 角はセル内でつながり、下側の角がそれぞれ切り離される。
中心が下側なら逆に上側の角がそれぞれ切り離される。この規則は全セルで共通。
"""

from __future__ import annotations

import logging

import numpy as np
from numba import njit  # type: ignore[import-untyped]

from mapexport.core.grid_sample import GridSample, Point

logger = logging.getLogger(__name__)

Segments = dict[Point, list[Point]]

_T_EPS = 1e-9

# 非有限値（NaN/inf）を置き換える level 相対の値。常に「下側」として扱う。
_NONFINITE_FIELD_VALUE = -1.0


@njit(cache=True)
def _interp_zero(a: float, b: float) -> float:
    """線形補間で `a + t*(b-a) == 0` となる t を `[_T_EPS, 1-_T_EPS]` にクランプして返す。"""

    denom = b - a
    if denom == 0.0:
        return 0.5
    t = -a / denom
    if t < _T_EPS:
        return _T_EPS
    if t > 1.0 - _T_EPS:
        return 1.0 - _T_EPS
    return float(t)


@njit(cache=True)
def _count_marching_squares_segments_numba(field: np.ndarray) -> int:
    """Marching Squares で作られる線分数を数える（事前に out 配列を確保するため）。"""

    nr, nc = int(field.shape[0]), int(field.shape[1])
    n = 0
    for i in range(nr - 1):
        for j in range(nc - 1):
            b0 = float(field[i, j]) >= 0.0
            b1 = float(field[i + 1, j]) >= 0.0
            b2 = float(field[i + 1, j + 1]) >= 0.0
            b3 = float(field[i, j + 1]) >= 0.0
            idx = (1 if b0 else 0) | (2 if b1 else 0) | (4 if b2 else 0) | (8 if b3 else 0)
            if idx == 0 or idx == 15:
                continue
            if idx == 5 or idx == 10:
                n += 2
            else:
                n += 1
    return int(n)


@njit(cache=True)
def _write_segment(
    out: np.ndarray,
    cursor: int,
    ax: float,
    ay: float,
    bx: float,
    by: float,
) -> int:
    out[cursor, 0] = ax
    out[cursor, 1] = ay
    out[cursor, 2] = bx
    out[cursor, 3] = by
    return cursor + 1


@njit(cache=True)
def _fill_marching_squares_segments_numba(
    field: np.ndarray,
    xs: np.ndarray,
    ys: np.ndarray,
    out: np.ndarray,
) -> int:
    """Marching Squares で 0 等値線の線分を列挙し、`out[k] = (ax, ay, bx, by)` へ書き込む。

    Notes
    -----
    セル (i, j) の角は巡回順に
    `0:(i,j)`, `1:(i+1,j)`, `2:(i+1,j+1)`, `3:(i,j+1)`。
    辺は `e0:0-1`, `e1:1-2`, `e2:3-2`, `e3:0-3` で、いずれも小さいインデックスの角から補間する。
    """

    nr, nc = int(field.shape[0]), int(field.shape[1])
    cursor = 0
    # 辺ごとの交点。セルごとに使い回す（有効なのは交差のある辺だけ）。
    px = np.empty((4,), dtype=np.float64)
    py = np.empty((4,), dtype=np.float64)

    for i in range(nr - 1):
        x_lo = float(xs[i])
        x_hi = float(xs[i + 1])
        for j in range(nc - 1):
            y_lo = float(ys[j])
            y_hi = float(ys[j + 1])

            v00 = float(field[i, j])
            v10 = float(field[i + 1, j])
            v11 = float(field[i + 1, j + 1])
            v01 = float(field[i, j + 1])

            b0 = v00 >= 0.0
            b1 = v10 >= 0.0
            b2 = v11 >= 0.0
            b3 = v01 >= 0.0
            idx = (1 if b0 else 0) | (2 if b1 else 0) | (4 if b2 else 0) | (8 if b3 else 0)
            if idx == 0 or idx == 15:
                continue

            e0 = b0 != b1
            e1 = b1 != b2
            e2 = b3 != b2
            e3 = b0 != b3

            if e0:
                t = _interp_zero(v00, v10)
                px[0] = x_lo + t * (x_hi - x_lo)
                py[0] = y_lo
            if e1:
                t = _interp_zero(v10, v11)
                px[1] = x_hi
                py[1] = y_lo + t * (y_hi - y_lo)
            if e2:
                t = _interp_zero(v01, v11)
                px[2] = x_lo + t * (x_hi - x_lo)
                py[2] = y_hi
            if e3:
                t = _interp_zero(v00, v01)
                px[3] = x_lo
                py[3] = y_lo + t * (y_hi - y_lo)

            if idx == 5 or idx == 10:
                center_above = 0.25 * (v00 + v10 + v11 + v01) >= 0.0
                # idx==5 で中心が上側、または idx==10 で中心が下側なら角 1 と角 3 を切り離す。
                if center_above == (idx == 5):
                    cursor = _write_segment(out, cursor, px[0], py[0], px[1], py[1])
                    cursor = _write_segment(out, cursor, px[2], py[2], px[3], py[3])
                else:
                    cursor = _write_segment(out, cursor, px[0], py[0], px[3], py[3])
                    cursor = _write_segment(out, cursor, px[1], py[1], px[2], py[2])
                continue

            # 通常ケース: 交点はちょうど 2 つなので、見つけた順に 1 本の線分で結ぶ。
            a = -1
            b = -1
            if e0:
                a = 0
            if e1:
                if a < 0:
                    a = 1
                else:
                    b = 1
            if e2:
                if a < 0:
                    a = 2
                else:
                    b = 2
            if e3:
                b = 3
            cursor = _write_segment(out, cursor, px[a], py[a], px[b], py[b])

    return int(cursor)


def _level_field(values: np.ndarray, level: float) -> np.ndarray:
    """`values - level` を作り、非有限値を下側の定数へ置き換える。"""

    field = np.asarray(values, dtype=np.float64) - float(level)
    bad = ~np.isfinite(field)
    if np.any(bad):
        field[bad] = _NONFINITE_FIELD_VALUE
    return field


def extract_segments(grid: GridSample, level: float) -> Segments:
    """`grid` から `level` の等値線を線分群として抽出する。

    Parameters
    ----------
    grid : GridSample
        入力スカラー場。
    level : float
        等値レベル。`value >= level` の格子点を上側とみなす。

    Returns
    -------
    dict[Point, list[Point]]
        線分の隣接表。キーは線分の始点、値はそこから伸びる終点の列。
        線分の向きは抽出の都合で決まるだけで、幾何的な意味は持たない。
        格子が縮退している（2 行/列未満）場合は空。
    """

    lv = float(level)
    if grid.is_degenerate or not np.isfinite(lv):
        return {}

    field = _level_field(grid.values, lv)
    n_segments = _count_marching_squares_segments_numba(field)
    if n_segments <= 0:
        return {}

    out = np.empty((int(n_segments), 4), dtype=np.float64)
    filled = _fill_marching_squares_segments_numba(
        field,
        grid.xs,
        grid.ys,
        out,
    )

    segments: Segments = {}
    n_kept = 0
    for ax, ay, bx, by in out[: int(filled)].tolist():
        start = (float(ax), float(ay))
        end = (float(bx), float(by))
        if start == end:
            continue
        segments.setdefault(start, []).append(end)
        n_kept += 1

    logger.debug("level=%s: %d segments", lv, n_kept)
    return segments


def extract_levels(grid: GridSample, levels: list[float] | tuple[float, ...]) -> list[Segments]:
    """複数レベルをまとめて抽出する（レベルの順に 1 つずつ）。"""

    return [extract_segments(grid, float(lv)) for lv in levels]


def segment_count(segments: Segments) -> int:
    """隣接表に含まれる線分の本数を返す。"""

    return sum(len(ends) for ends in segments.values())


__all__ = ["Segments", "extract_levels", "extract_segments", "segment_count"]
