# どこで: `src/mapexport/core/graph.py`。
# 何を: 点（node）とポリライン（way）を ID で参照し合うグラフを組み立てる。

"""点／ポリライングラフの構築。

`GraphBuilder` は書き出しセッションが 1 つだけ所有する可変オブジェクトで、
等高線・建物・道路・地区・交通などの各エクスポータが同期的に順番に書き込む。
ビルダ自身は等高線固有の知識を持たない（チェーンも単なる点列として受け取る）。

ID の採番
---------
点とポリラインは独立したカウンタを持ち、どちらも単調増加で再利用しない。
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from mapexport.core.grid_sample import Point
from mapexport.core.projection import Projector, WorldPos

Tags = tuple[tuple[str, str], ...]
TagsLike = Mapping[str, object] | Iterable[tuple[str, object]] | None

DEFAULT_ID_START = 128000


@dataclass(frozen=True, slots=True)
class GraphPoint:
    """グラフの点。`tags` が空でなければ「タグ付き点」。"""

    id: int
    position: WorldPos
    lon: Decimal
    lat: Decimal
    tags: Tags = ()


@dataclass(frozen=True, slots=True)
class GraphPolyline:
    """点 ID の列を参照するポリライン。閉じている場合は先頭 ID と末尾 ID が等しい。"""

    id: int
    refs: tuple[int, ...]
    tags: Tags = ()

    @property
    def is_closed(self) -> bool:
        return len(self.refs) >= 3 and self.refs[0] == self.refs[-1]


def normalize_tags(tags: TagsLike) -> Tags:
    """mapping / (key, value) 列 / None をタグタプルへ正規化する（順序は保つ）。"""

    if tags is None:
        return ()
    items = tags.items() if isinstance(tags, Mapping) else tags
    out: list[tuple[str, str]] = []
    for k, v in items:
        out.append((str(k), str(v)))
    return tuple(out)


class GraphBuilder:
    """点とポリラインを採番しながら蓄積する。

    Parameters
    ----------
    projector : Projector
        ワールド座標 → (lon, lat)。例外は呼び出し側へそのまま伝播する。
    point_id_start : int, default 128000
        最初に割り当てる点 ID。
    polyline_id_start : int, default 128000
        最初に割り当てるポリライン ID。
    """

    def __init__(
        self,
        projector: Projector,
        *,
        point_id_start: int = DEFAULT_ID_START,
        polyline_id_start: int = DEFAULT_ID_START,
    ) -> None:
        self._projector = projector
        self._next_point_id = int(point_id_start)
        self._next_polyline_id = int(polyline_id_start)
        self._points: list[GraphPoint] = []
        self._polylines: list[GraphPolyline] = []
        self._point_ids: set[int] = set()
        self._frozen = False

    @property
    def points(self) -> tuple[GraphPoint, ...]:
        return tuple(self._points)

    @property
    def polylines(self) -> tuple[GraphPolyline, ...]:
        return tuple(self._polylines)

    def has_point(self, point_id: int) -> bool:
        return int(point_id) in self._point_ids

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """以後の書き込みを禁止する（書き出し用の点列を確定させた後に呼ぶ）。"""

        self._frozen = True

    def _check_writable(self) -> None:
        if self._frozen:
            raise RuntimeError("freeze() 済みのグラフには書き込めません")

    def add_point(self, world_pos: WorldPos, tags: TagsLike = None) -> int:
        """点を追加して、新しい点 ID を返す。

        投影に失敗した場合は例外を伝播し、カウンタも点集合も変更しない。
        """

        self._check_writable()
        pos = (float(world_pos[0]), float(world_pos[1]), float(world_pos[2]))
        lon, lat = self._projector(pos)

        pid = self._next_point_id
        self._next_point_id += 1
        self._points.append(
            GraphPoint(id=pid, position=pos, lon=lon, lat=lat, tags=normalize_tags(tags))
        )
        self._point_ids.add(pid)
        return pid

    def add_polyline(self, point_ids: Sequence[int], tags: TagsLike = None) -> int:
        """既存の点 ID 列からポリラインを追加して、新しいポリライン ID を返す。

        Raises
        ------
        ValueError
            参照が 2 未満、または未割り当ての点 ID を含む場合（呼び出し側の不具合）。
        RuntimeError
            `freeze()` 後に呼んだ場合。
        """

        self._check_writable()
        refs = tuple(int(i) for i in point_ids)
        if len(refs) < 2:
            raise ValueError(f"ポリラインは 2 点以上を参照する必要がある: refs={refs}")
        missing = [i for i in refs if i not in self._point_ids]
        if missing:
            raise ValueError(f"未割り当ての点 ID を参照しています: missing={missing}")

        wid = self._next_polyline_id
        self._next_polyline_id += 1
        self._polylines.append(GraphPolyline(id=wid, refs=refs, tags=normalize_tags(tags)))
        return wid

    def add_chain(
        self,
        chain: Sequence[Point],
        *,
        to_world: Callable[[Point], WorldPos],
        tags: TagsLike = None,
    ) -> int | None:
        """平面チェーンを点列＋ポリラインとして追加する。

        閉じたチェーンは末尾点に新しい点を作らず、先頭点の ID を再利用する。
        2 点未満のチェーンは何も追加せず None を返す。
        """

        if len(chain) < 2:
            return None
        closed = len(chain) >= 3 and chain[0] == chain[-1]
        body = chain[:-1] if closed else chain

        refs = [self.add_point(to_world(p)) for p in body]
        if closed:
            refs.append(refs[0])
        return self.add_polyline(refs, tags)


__all__ = [
    "DEFAULT_ID_START",
    "GraphBuilder",
    "GraphPoint",
    "GraphPolyline",
    "Tags",
    "TagsLike",
    "normalize_tags",
]
