"""端点を共有する線分群を、連結したポリライン（チェーン）へ縫い合わせる。

線分は無向として扱い、1 本ずつ次の 4 ケースのどれかで処理する。

- どちらの端点も開いたチェーンの端に無い → 新しい 2 点チェーンを作る
- 片方だけが端にある → そのチェーンを該当側へ 1 点延長する
- 両方が同じチェーンの両端 → チェーンが閉じたので、先頭点を末尾に複製して完成扱いにする
- 両方が別々のチェーンの端 → 向きを揃えて 1 本に連結する

チェーン本体はアリーナ（`list[deque | None]`）に置き、端点インデックス
`open_start` / `open_end` は「端点座標 → アリーナ上の番号」だけを持つ。
連結で消費されたチェーンの枠は None にする（番号は再利用しない）。

前提: Marching Squares の出力は各頂点の次数が最大 2。
3 本以上の線分端が 1 点に集まる入力は契約違反として `ValueError` を送出する。
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Mapping

from mapexport.core.grid_sample import Point

logger = logging.getLogger(__name__)

Chain = list[Point]

_HEAD = 0
_TAIL = 1


class _ChainArena:
    """開いたチェーンの保持と、端点からの逆引きを担当する。"""

    def __init__(self) -> None:
        self.slots: list[deque[Point] | None] = []
        self.open_start: dict[Point, int] = {}
        self.open_end: dict[Point, int] = {}

    def new_chain(self, start: Point, end: Point) -> int:
        idx = len(self.slots)
        self.slots.append(deque((start, end)))
        self.open_start[start] = idx
        self.open_end[end] = idx
        return idx

    def lookup(self, p: Point) -> tuple[int, int] | None:
        """`p` を開いた端に持つチェーンの (番号, 側) を返す。無ければ None。"""

        idx = self.open_start.get(p)
        if idx is not None:
            return idx, _HEAD
        idx = self.open_end.get(p)
        if idx is not None:
            return idx, _TAIL
        return None

    def unregister(self, idx: int) -> None:
        """チェーン `idx` の両端を端点インデックスから外す。"""

        chain = self.slots[idx]
        assert chain is not None
        if self.open_start.get(chain[0]) == idx:
            del self.open_start[chain[0]]
        if self.open_end.get(chain[-1]) == idx:
            del self.open_end[chain[-1]]

    def register(self, idx: int) -> None:
        chain = self.slots[idx]
        assert chain is not None
        self.open_start[chain[0]] = idx
        self.open_end[chain[-1]] = idx

    def extend(self, idx: int, side: int, p: Point) -> None:
        """チェーン `idx` の `side` 側へ点 `p` を足し、端点インデックスを付け替える。"""

        chain = self.slots[idx]
        assert chain is not None
        self.unregister(idx)
        if side == _HEAD:
            chain.appendleft(p)
        else:
            chain.append(p)
        self.register(idx)

    def close(self, idx: int, side: int) -> Chain:
        """両端がつながったチェーンを閉じて取り出す（以後は延長しない）。"""

        chain = self.slots[idx]
        assert chain is not None
        self.unregister(idx)
        self.slots[idx] = None
        if side == _HEAD:
            chain.appendleft(chain[-1])
        else:
            chain.append(chain[0])
        return list(chain)

    def join(self, a_idx: int, a_side: int, b_idx: int, b_side: int) -> None:
        """`a` の `a_side` 端と `b` の `b_side` 端を連結し、`a` の枠に残す。

        連結後の並びは「a の点列 … 線分の始点, 線分の終点 … b の点列」。
        そのために a は始点が末尾に、b は終点が先頭に来るよう必要なら反転する。
        """

        a = self.slots[a_idx]
        b = self.slots[b_idx]
        assert a is not None and b is not None
        self.unregister(a_idx)
        self.unregister(b_idx)

        if a_side == _HEAD:
            a.reverse()
        if b_side == _TAIL:
            b.reverse()
        a.extend(b)

        self.slots[b_idx] = None
        self.register(a_idx)

    def remaining(self) -> list[Chain]:
        return [list(chain) for chain in self.slots if chain is not None]


def _iter_segments(segments: Mapping[Point, Iterable[Point]]) -> Iterable[tuple[Point, Point]]:
    for start, ends in segments.items():
        for end in ends:
            yield start, end


def assemble_chains(segments: Mapping[Point, Iterable[Point]]) -> list[Chain]:
    """線分の隣接表を、端点の一致で連結した極大チェーン列にする。

    Parameters
    ----------
    segments : Mapping[Point, Iterable[Point]]
        `{start: [end, ...]}` 形式の線分群（`extract_segments()` の出力）。

    Returns
    -------
    list[list[Point]]
        閉じたチェーン（閉じた順）に続けて、開いたまま残ったチェーン（作成順）。
        閉じたチェーンは先頭点と末尾点が等しい。2 点未満のチェーンは含まない。

    Raises
    ------
    ValueError
        1 つの端点に 3 本以上の線分端が集まる場合。
    """

    arena = _ChainArena()
    finished: list[Chain] = []
    degree: dict[Point, int] = {}

    for start, end in _iter_segments(segments):
        if start == end:
            continue
        for p in (start, end):
            d = degree.get(p, 0) + 1
            if d > 2:
                raise ValueError(f"3 本以上の線分端が 1 点に集まっています: point={p}")
            degree[p] = d

        hit_s = arena.lookup(start)
        hit_e = arena.lookup(end)

        if hit_s is None and hit_e is None:
            arena.new_chain(start, end)
            continue

        if hit_s is not None and hit_e is None:
            arena.extend(hit_s[0], hit_s[1], end)
            continue

        if hit_s is None and hit_e is not None:
            arena.extend(hit_e[0], hit_e[1], start)
            continue

        assert hit_s is not None and hit_e is not None
        if hit_s[0] == hit_e[0]:
            finished.append(arena.close(hit_s[0], hit_s[1]))
            continue

        arena.join(hit_s[0], hit_s[1], hit_e[0], hit_e[1])

    open_chains = arena.remaining()
    logger.debug("chains: %d closed, %d open", len(finished), len(open_chains))
    return [c for c in finished + open_chains if len(c) >= 2]


def is_closed(chain: Chain) -> bool:
    """先頭点と末尾点が等しい（3 点以上の）チェーンなら True。"""

    return len(chain) >= 3 and chain[0] == chain[-1]


__all__ = ["Chain", "assemble_chains", "is_closed"]
