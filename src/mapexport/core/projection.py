"""ワールド座標から地理座標（経度・緯度）への投影。

ワールドは XZ 平面が地表で、Y が高さ。原点を中心とする一辺 `world_size` の正方形を
`GeoBounds` の経緯度範囲へ線形に写す。`scale` はその範囲を拡大縮小する係数で、
`scale=1` のときワールド全域がちょうど bounds に収まる。
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Protocol

WorldPos = tuple[float, float, float]
GeoPos = tuple[Decimal, Decimal]

# OSM の座標精度（小数点以下 7 桁）。
_GEO_QUANT = Decimal("0.0000001")


class Projector(Protocol):
    """ワールド座標 `(x, y, z)` を `(lon, lat)` に変換する呼び出し可能オブジェクト。"""

    def __call__(self, world_pos: WorldPos) -> GeoPos: ...


@dataclass(frozen=True, slots=True)
class GeoBounds:
    """経緯度の矩形範囲。"""

    minlon: Decimal
    minlat: Decimal
    maxlon: Decimal
    maxlat: Decimal

    def __post_init__(self) -> None:
        if self.maxlon <= self.minlon or self.maxlat <= self.minlat:
            raise ValueError(
                "GeoBounds は min < max である必要がある"
                f": lon=({self.minlon}, {self.maxlon}), lat=({self.minlat}, {self.maxlat})"
            )


@dataclass(frozen=True, slots=True)
class BoundsProjection:
    """`GeoBounds` 中心を原点に対応させる線形投影。

    Parameters
    ----------
    bounds : GeoBounds
        ワールド全域（`scale=1` のとき）に対応する経緯度範囲。
    scale : float, default 1.0
        経緯度方向の拡大率。
    world_size : float, default 17280.0
        ワールドの一辺の長さ（ワールド座標単位）。
    """

    bounds: GeoBounds
    scale: float = 1.0
    world_size: float = 17280.0

    def __post_init__(self) -> None:
        if not float(self.scale) > 0.0:
            raise ValueError(f"scale は正の値である必要がある: got={self.scale}")
        if not float(self.world_size) > 0.0:
            raise ValueError(f"world_size は正の値である必要がある: got={self.world_size}")

    def __call__(self, world_pos: WorldPos) -> GeoPos:
        b = self.bounds
        center_lon = (b.minlon + b.maxlon) / 2
        center_lat = (b.minlat + b.maxlat) / 2
        k = Decimal(repr(float(self.scale))) / Decimal(repr(float(self.world_size)))

        # 地表は XZ 平面。Y（高さ）は投影に使わない。
        x = Decimal(repr(float(world_pos[0])))
        z = Decimal(repr(float(world_pos[2])))
        lon = center_lon + x * (b.maxlon - b.minlon) * k
        lat = center_lat + z * (b.maxlat - b.minlat) * k
        return (
            lon.quantize(_GEO_QUANT, rounding=ROUND_HALF_EVEN),
            lat.quantize(_GEO_QUANT, rounding=ROUND_HALF_EVEN),
        )


__all__ = ["BoundsProjection", "GeoBounds", "GeoPos", "Projector", "WorldPos"]
