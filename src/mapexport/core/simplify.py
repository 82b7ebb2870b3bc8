"""許容誤差つきのポリライン簡略化（Douglas–Peucker）。

区間の両端を固定し、内部点のうち両端を通る直線から最も遠い点を探す。
距離が `tolerance` を超えればその点を残して左右の区間を再帰的に処理し、
超えなければ区間の内部点をすべて捨てる。再帰は明示スタックで回す。

- 閉じたチェーン（先頭 == 末尾）では両端が一致して直線が定まらないため、
  その区間に限り「端点からのユークリッド距離」を使う。
- 最大距離が複数ある場合は最初のインデックスを採用する。
  この規則と `>` 判定により、同じ tolerance での再適用は結果を変えない。
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

import numpy as np

from mapexport.core.chain import Chain
from mapexport.core.grid_sample import Point


def _span_distances(pts: np.ndarray, s: int, e: int) -> np.ndarray:
    """`pts[s+1:e]` の各点から、`pts[s]`-`pts[e]` を通る直線までの距離を返す。"""

    a = pts[s]
    b = pts[e]
    inner = pts[s + 1 : e]
    d = b - a
    base = float(math.hypot(float(d[0]), float(d[1])))
    rel = inner - a
    if base == 0.0:
        return np.hypot(rel[:, 0], rel[:, 1])
    cross = d[0] * rel[:, 1] - d[1] * rel[:, 0]
    return np.abs(cross) / base


def _keep_mask(pts: np.ndarray, tolerance: float) -> np.ndarray:
    n = int(pts.shape[0])
    keep = np.zeros((n,), dtype=bool)
    keep[0] = True
    keep[n - 1] = True

    stack: list[tuple[int, int]] = [(0, n - 1)]
    while stack:
        s, e = stack.pop()
        if e - s < 2:
            continue
        dist = _span_distances(pts, s, e)
        k = int(np.argmax(dist))
        if float(dist[k]) > tolerance:
            m = s + 1 + k
            keep[m] = True
            stack.append((m, e))
            stack.append((s, m))
    return keep


def simplify_chain(chain: Sequence[Point], tolerance: float) -> Chain | None:
    """チェーンを簡略化する。

    Parameters
    ----------
    chain : Sequence[Point]
        入力点列。
    tolerance : float
        許容距離（0 以上）。

    Returns
    -------
    list[Point] or None
        簡略化後の点列。2 点未満になった場合と、閉じたチェーンの異なる頂点が
        3 つ未満（`[p, p]` や `[p, q, p]`、面積 0）になった場合は None（破棄）。

    Raises
    ------
    ValueError
        `tolerance` が負または非有限の場合。
    """

    tol = float(tolerance)
    if not math.isfinite(tol) or tol < 0.0:
        raise ValueError(f"tolerance は 0 以上の有限値である必要がある: got={tolerance}")

    n = len(chain)
    if n < 2:
        return None

    pts = np.asarray(chain, dtype=np.float64).reshape(n, 2)
    keep = _keep_mask(pts, tol)
    out = [chain[i] for i in np.flatnonzero(keep).tolist()]

    if len(out) < 2:
        return None
    # 閉じたチェーンは異なる頂点が 3 つ以上ないと面にならない。
    if out[0] == out[-1] and len(out) < 4:
        return None
    return [(float(p[0]), float(p[1])) for p in out]


def simplify_chains(chains: Iterable[Sequence[Point]], tolerance: float) -> list[Chain]:
    """各チェーンを独立に簡略化し、破棄されなかったものだけを返す。"""

    out: list[Chain] = []
    for chain in chains:
        simplified = simplify_chain(chain, tolerance)
        if simplified is not None:
            out.append(simplified)
    return out


__all__ = ["simplify_chain", "simplify_chains"]
