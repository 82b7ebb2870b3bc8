"""
どこで: `src/mapexport/core/session.py`。
何を: 1 回分の書き出し（等高線＋都市エンティティ → 点／ポリライングラフ）を順に実行する。
なぜ: ホスト側の列挙処理を注入可能なコラボレータに分け、コアをホスト無しで動かせるようにするため。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from mapexport.core.chain import assemble_chains
from mapexport.core.contour import extract_segments, segment_count
from mapexport.core.features import (
    ROAD_CURVE_SAMPLES,
    Building,
    District,
    RoadNode,
    RoadSegment,
    TransitStop,
    cubic_bezier,
)
from mapexport.core.graph import GraphBuilder
from mapexport.core.grid_sample import HeightSampler, Point, grid_to_world, sample_grid
from mapexport.core.projection import BoundsProjection, Projector, WorldPos
from mapexport.core.runtime_config import RuntimeConfig, runtime_config
from mapexport.core.simplify import simplify_chains
from mapexport.core.unused import filter_unused_points
from mapexport.export.osm_xml import OsmDocument

logger = logging.getLogger(__name__)


class ExportSession:
    """点／ポリライングラフを 1 つ所有し、各エクスポータの書き込みを受け付ける。

    Parameters
    ----------
    projector : Projector or None
        ワールド座標 → (lon, lat)。None の場合は設定の bounds から `BoundsProjection` を作る。
    config : RuntimeConfig or None
        None の場合は `runtime_config()` を使う。
    name : str
        出力の note（都市名など）。

    Notes
    -----
    単一スレッドで順番に呼ぶことを前提とする。`finish()` 後は `graph` 経由も含めて書き込みできない。
    """

    def __init__(
        self,
        projector: Projector | None = None,
        *,
        config: RuntimeConfig | None = None,
        name: str = "",
    ) -> None:
        cfg = config if config is not None else runtime_config()
        if projector is None:
            projector = BoundsProjection(
                cfg.osm.bounds,
                scale=cfg.osm.scale,
                world_size=cfg.osm.world_size,
            )
        self._config = cfg
        self._name = str(name)
        self._graph = GraphBuilder(
            projector,
            point_id_start=cfg.osm.point_id_start,
            polyline_id_start=cfg.osm.polyline_id_start,
        )
        self._building_positions: list[WorldPos] = []
        self._finished = False
        logger.info("Beginning export: name=%r", self._name)

    @property
    def graph(self) -> GraphBuilder:
        """書き込み先のグラフ。`finish()` 後は凍結され、書き込むと `RuntimeError`。"""

        return self._graph

    def _check_open(self) -> None:
        if self._finished:
            raise RuntimeError("finish() 済みのセッションには書き込めません")

    # --- 等高線 ---

    def add_contours(self, sampler: HeightSampler) -> int:
        """水深場をサンプルし、設定の各レベルの等高線をポリラインとして追加する。

        Returns
        -------
        int
            追加したポリライン数。
        """

        self._check_open()
        c = self._config.contour
        grid = sample_grid(sampler, grid_size=c.grid_size, steps=c.steps, sentinel=c.sentinel)

        def to_world(p: Point) -> WorldPos:
            return grid_to_world(p, grid_size=c.grid_size, steps=c.steps)

        n_added = 0
        for level in c.levels:
            segments = extract_segments(grid, level)
            chains = assemble_chains(segments)
            simplified = simplify_chains(chains, c.tolerance)
            logger.debug(
                "contour level=%s: segments=%d chains=%d simplified=%d",
                level,
                segment_count(segments),
                len(chains),
                len(simplified),
            )
            for chain in simplified:
                if self._graph.add_chain(chain, to_world=to_world, tags=c.tags) is not None:
                    n_added += 1

        logger.info("contours: %d polylines", n_added)
        return n_added

    # --- 道路 ---

    def add_roads(self, nodes: Iterable[RoadNode], segments: Iterable[RoadSegment]) -> int:
        """道路節点を（タグ無しの）点として登録し、セグメントをポリラインとして追加する。

        タグの無いセグメントと、節点 0 を参照するセグメントは書き出さない。

        Raises
        ------
        ValueError
            登録されていない節点 ID を参照するセグメントがある場合。
        """

        self._check_open()
        node_points: dict[int, int] = {}
        node_positions: dict[int, WorldPos] = {}
        for node in nodes:
            node_points[int(node.node_id)] = self._graph.add_point(node.position)
            node_positions[int(node.node_id)] = node.position

        n_added = 0
        for seg in segments:
            if seg.start_node == 0 or seg.end_node == 0 or not seg.tags:
                continue
            start, end = int(seg.start_node), int(seg.end_node)
            controls = seg.control_points
            if seg.inverted:
                start, end = end, start
                if controls is not None:
                    controls = (controls[1], controls[0])
            if start not in node_points or end not in node_points:
                raise ValueError(
                    f"未登録の道路節点を参照しています: start={start}, end={end}"
                )

            refs = [node_points[start]]
            if controls is not None:
                p0 = node_positions[start]
                p3 = node_positions[end]
                for t in ROAD_CURVE_SAMPLES:
                    refs.append(self._graph.add_point(cubic_bezier(p0, controls[0], controls[1], p3, t)))
            refs.append(node_points[end])
            self._graph.add_polyline(refs, seg.tags)
            n_added += 1

        logger.info("roads: %d polylines", n_added)
        return n_added

    # --- 建物 ---

    def add_buildings(self, buildings: Iterable[Building]) -> int:
        """建物フットプリントを閉じたポリラインとして追加する。タグの無い建物は飛ばす。"""

        self._check_open()
        n_added = 0
        for building in buildings:
            if not building.tags:
                continue
            self._building_positions.append(building.position)
            refs = [self._graph.add_point(p) for p in building.corners()]
            refs.append(refs[0])
            self._graph.add_polyline(refs, building.tags)
            if building.amenity:
                self._graph.add_point(building.position, {"amenity": building.amenity})
            n_added += 1

        logger.info("buildings: %d polylines", n_added)
        return n_added

    # --- 地区・都市 ---

    def add_districts(self, districts: Iterable[District]) -> int:
        self._check_open()
        n_added = 0
        for district in districts:
            self._graph.add_point(
                district.position,
                (("name", district.name), ("place", district.place)),
            )
            n_added += 1
        return n_added

    def add_city(self, name: str, population: int) -> int | None:
        """書き出し済みの建物中心の平均位置に `place=city` の点を追加する。

        建物が 1 つも無ければ位置が決まらないので何もしない（None）。
        """

        self._check_open()
        n = len(self._building_positions)
        if n == 0:
            logger.info("city: no buildings, skipped")
            return None
        cx = sum(float(p[0]) for p in self._building_positions) / n
        cz = sum(float(p[2]) for p in self._building_positions) / n
        return self._graph.add_point(
            (cx, 0.0, cz),
            (("name", str(name)), ("place", "city"), ("population", str(int(population)))),
        )

    # --- 公共交通 ---

    def add_transit_stops(self, stops: Iterable[TransitStop]) -> int:
        self._check_open()
        n_added = 0
        for stop in stops:
            self._graph.add_point(stop.position, stop.tags())
            n_added += 1
        return n_added

    # --- 仕上げ ---

    def finish(self) -> OsmDocument:
        """未使用点を取り除き、書き出し用のドキュメントを返す（1 回だけ呼べる）。"""

        self._check_open()
        self._finished = True
        self._graph.freeze()
        polylines = self._graph.polylines
        points = filter_unused_points(self._graph.points, polylines)
        logger.info(
            "finished export: points=%d (dropped %d), polylines=%d",
            len(points),
            len(self._graph.points) - len(points),
            len(polylines),
        )
        return OsmDocument(
            points=tuple(points),
            polylines=polylines,
            bounds=self._config.osm.bounds,
            generator=self._config.osm.generator,
            note=self._name,
        )


__all__ = ["ExportSession"]
