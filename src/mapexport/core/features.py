# どこで: `src/mapexport/core/features.py`。
# 何を: 建物・道路・地区・交通停留所など、グラフへ書き込むエンティティの入力型と幾何計算を提供する。

"""エンティティ入力型。

ホスト（ゲーム）側の列挙ロジックはここには置かない。
呼び出し側はこれらの値を作って `ExportSession` へ渡す。
タグ付け（何を `building=yes` にするか等）も呼び出し側の責務で、ここでは受け取るだけ。
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Literal

from mapexport.core.graph import TagsLike
from mapexport.core.projection import WorldPos

# 建物の幅・奥行きは「セル数」で与えられ、1 セルはワールド座標で 8 単位。
BUILDING_CELL_SIZE = 8.0

# 曲がった道路セグメントを近似するときの Bézier 上のサンプル位置。
ROAD_CURVE_SAMPLES = (0.25, 0.5, 0.75)

TransportKind = Literal["bus", "train"]


@dataclass(frozen=True, slots=True)
class Building:
    """矩形の建物フットプリント。

    Parameters
    ----------
    position : WorldPos
        中心のワールド座標。
    angle : float
        XZ 平面での回転角 [rad]。
    width, length : int
        セル単位の幅と奥行き。
    tags : TagsLike
        way に付けるタグ。空なら書き出さない。
    amenity : str or None
        指定された場合、中心に `amenity=<値>` のタグ付き点を追加する。
    """

    position: WorldPos
    angle: float
    width: int
    length: int
    tags: TagsLike = None
    amenity: str | None = None

    def corners(self) -> list[WorldPos]:
        """フットプリントの 4 隅を巡回順に返す。"""

        ax = math.cos(float(self.angle)) * BUILDING_CELL_SIZE
        az = math.sin(float(self.angle)) * BUILDING_CELL_SIZE
        # a を XZ 平面で 90 度回したベクトル。
        bx, bz = az, -ax
        hw = float(self.width) * 0.5
        hl = float(self.length) * 0.5
        px, py, pz = (float(v) for v in self.position)
        out: list[WorldPos] = []
        for sw, sl in ((-1.0, -1.0), (1.0, -1.0), (1.0, 1.0), (-1.0, 1.0)):
            out.append(
                (
                    px + sw * hw * ax + sl * hl * bx,
                    py,
                    pz + sw * hw * az + sl * hl * bz,
                )
            )
        return out


@dataclass(frozen=True, slots=True)
class RoadNode:
    """道路網の節点。`node_id` はホスト側の ID（0 は「無し」を表す）。"""

    node_id: int
    position: WorldPos


@dataclass(frozen=True, slots=True)
class RoadSegment:
    """2 節点を結ぶ道路セグメント。

    `control_points` があれば 3 次 Bézier `(start, c0, c1, end)` として
    `ROAD_CURVE_SAMPLES` の位置に中間点を入れる。
    `inverted=True` のときは始点と終点を入れ替えて書き出す。
    """

    start_node: int
    end_node: int
    tags: TagsLike = None
    control_points: tuple[WorldPos, WorldPos] | None = None
    inverted: bool = False


@dataclass(frozen=True, slots=True)
class District:
    """名前付きの地区（`place=<place>` の点になる）。"""

    name: str
    position: WorldPos
    place: str = "suburb"


@dataclass(frozen=True, slots=True)
class TransitStop:
    """公共交通の停留所。"""

    position: WorldPos
    transport: TransportKind
    line_name: str | None = None
    extra_tags: dict[str, str] = field(default_factory=dict)

    def tags(self) -> list[tuple[str, str]]:
        """交通種別と路線名から停留所タグを決める。"""

        out: list[tuple[str, str]] = []
        if self.transport == "bus":
            out.append(("highway", "bus_stop"))
        elif self.transport == "train":
            name = self.line_name or ""
            is_tram = "[t]" in name or "tram" in name.lower()
            out.append(("public_transport", "platform"))
            out.append(("railway", "tram_stop" if is_tram else "station"))
        out.extend((str(k), str(v)) for k, v in self.extra_tags.items())
        return out


def cubic_bezier(p0: WorldPos, p1: WorldPos, p2: WorldPos, p3: WorldPos, t: float) -> WorldPos:
    """3 次 Bézier 曲線上の点を返す。"""

    u = 1.0 - float(t)
    w0 = u * u * u
    w1 = 3.0 * u * u * t
    w2 = 3.0 * u * t * t
    w3 = t * t * t
    return (
        w0 * p0[0] + w1 * p1[0] + w2 * p2[0] + w3 * p3[0],
        w0 * p0[1] + w1 * p1[1] + w2 * p2[1] + w3 * p3[1],
        w0 * p0[2] + w1 * p1[2] + w2 * p2[2] + w3 * p3[2],
    )


__all__ = [
    "BUILDING_CELL_SIZE",
    "Building",
    "District",
    "ROAD_CURVE_SAMPLES",
    "RoadNode",
    "RoadSegment",
    "TransitStop",
    "TransportKind",
    "cubic_bezier",
]
