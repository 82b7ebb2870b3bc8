"""どのポリラインからも参照されず、タグも持たない点を取り除く。"""

from __future__ import annotations

from collections.abc import Iterable

from mapexport.core.graph import GraphPoint, GraphPolyline


def filter_unused_points(
    points: Iterable[GraphPoint],
    polylines: Iterable[GraphPolyline],
) -> list[GraphPoint]:
    """タグ付き、または参照されている点だけを元の順序のまま返す。

    Notes
    -----
    入力は変更しない。全エクスポータの書き込みが終わった後に 1 回だけ呼ぶ前提。
    """

    referenced: set[int] = set()
    for polyline in polylines:
        referenced.update(polyline.refs)
    return [p for p in points if p.tags or p.id in referenced]


__all__ = ["filter_unused_points"]
