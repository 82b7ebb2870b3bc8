"""書き出しセッション（`mapexport.core.session.ExportSession`）のテスト。"""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from pathlib import Path

import pytest

from mapexport.core.features import Building, District, RoadNode, RoadSegment, TransitStop
from mapexport.core.runtime_config import RuntimeConfig, runtime_config, set_config_path
from mapexport.core.session import ExportSession


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    set_config_path(None)
    yield
    set_config_path(None)


@pytest.fixture
def small_config() -> RuntimeConfig:
    cfg = runtime_config()
    contour = dataclasses.replace(cfg.contour, grid_size=16.0, steps=8)
    return dataclasses.replace(cfg, contour=contour)


class _PondSampler:
    """原点中心・半径 `radius` の円の内側だけ水深 `depth` になる地形。"""

    def __init__(self, radius: float = 40.0, depth: float = 2.0) -> None:
        self.radius = float(radius)
        self.depth = float(depth)
        self.calls = 0

    def sample_height(self, world_pos):
        self.calls += 1
        return 0.0

    def sample_water_level(self, world_pos):
        x, _, z = world_pos
        return self.depth if x * x + z * z <= self.radius * self.radius else 0.0


class _BrokenSampler:
    def sample_height(self, world_pos):
        raise RuntimeError("terrain unavailable")

    def sample_water_level(self, world_pos):
        return 0.0


def _identity_projector(world_pos):
    return Decimal(repr(float(world_pos[0]))), Decimal(repr(float(world_pos[2])))


def _session(cfg: RuntimeConfig) -> ExportSession:
    return ExportSession(_identity_projector, config=cfg, name="test")


def test_pond_becomes_one_closed_water_polyline(small_config: RuntimeConfig) -> None:
    session = _session(small_config)
    sampler = _PondSampler()

    assert session.add_contours(sampler) == 1
    assert sampler.calls == 8 * 8

    (way,) = session.graph.polylines
    assert way.is_closed
    assert way.tags == (("natural", "water"),)
    assert way.id == 128000
    assert way.refs[0] == 128000
    # 等高線は池の内側 2.5 セル程度の範囲に収まる。
    for point in session.graph.points:
        assert abs(point.position[0]) <= 64.0
        assert abs(point.position[2]) <= 64.0


def test_shallow_water_below_level_adds_nothing(small_config: RuntimeConfig) -> None:
    session = _session(small_config)
    assert session.add_contours(_PondSampler(depth=1.0)) == 0
    assert session.graph.points == ()


def test_sampler_failure_propagates(small_config: RuntimeConfig) -> None:
    session = _session(small_config)
    with pytest.raises(RuntimeError, match="terrain unavailable"):
        session.add_contours(_BrokenSampler())
    assert session.graph.polylines == ()


def test_roads_skip_untagged_and_missing_nodes(small_config: RuntimeConfig) -> None:
    session = _session(small_config)
    nodes = [
        RoadNode(1, (0.0, 0.0, 0.0)),
        RoadNode(2, (10.0, 0.0, 0.0)),
        RoadNode(3, (20.0, 0.0, 10.0)),
        RoadNode(4, (99.0, 0.0, 99.0)),
    ]
    segments = [
        RoadSegment(1, 2, tags={"highway": "residential"}),
        RoadSegment(2, 3, tags=None),
        RoadSegment(0, 1, tags={"highway": "residential"}),
        RoadSegment(
            2,
            3,
            tags={"highway": "primary"},
            control_points=((12.0, 0.0, 5.0), (18.0, 0.0, 5.0)),
            inverted=True,
        ),
    ]
    assert session.add_roads(nodes, segments) == 2

    straight, curved = session.graph.polylines
    assert straight.refs == (128000, 128001)
    assert straight.tags == (("highway", "residential"),)
    # 反転したので節点 3 → 節点 2 の順。中間に Bézier 上の 3 点が入る。
    assert curved.refs[0] == 128002
    assert curved.refs[-1] == 128001
    assert len(curved.refs) == 5

    doc = session.finish()
    ids = [p.id for p in doc.points]
    # どこからも参照されない節点 4 は落ちる。
    assert 128003 not in ids
    assert len(ids) == 3 + 3


def test_road_referencing_unknown_node_raises(small_config: RuntimeConfig) -> None:
    session = _session(small_config)
    with pytest.raises(ValueError):
        session.add_roads(
            [RoadNode(1, (0.0, 0.0, 0.0))],
            [RoadSegment(1, 7, tags={"highway": "service"})],
        )


def test_buildings_city_and_landmarks(small_config: RuntimeConfig) -> None:
    session = _session(small_config)
    buildings = [
        Building((0.0, 0.0, 0.0), 0.0, 2, 2, tags={"building": "yes"}, amenity="school"),
        Building((100.0, 0.0, 50.0), 0.0, 1, 1, tags={"building": "yes"}),
        Building((500.0, 0.0, 500.0), 0.0, 1, 1, tags=None),
    ]
    assert session.add_buildings(buildings) == 2

    city_id = session.add_city("Harbor", 12000)
    assert city_id is not None
    assert session.add_districts([District("Old Town", (5.0, 0.0, 5.0))]) == 1
    assert (
        session.add_transit_stops(
            [
                TransitStop((1.0, 0.0, 1.0), "bus"),
                TransitStop((2.0, 0.0, 2.0), "train", line_name="Harbor Tram"),
            ]
        )
        == 2
    )

    doc = session.finish()
    ways = doc.polylines
    assert len(ways) == 2
    assert all(w.is_closed and len(w.refs) == 5 for w in ways)

    by_id = {p.id: p for p in doc.points}
    city = by_id[city_id]
    assert city.position == (50.0, 0.0, 25.0)
    assert city.tags == (("name", "Harbor"), ("place", "city"), ("population", "12000"))

    tagged = [dict(p.tags) for p in doc.points if p.tags]
    assert {"amenity": "school"} in tagged
    assert {"name": "Old Town", "place": "suburb"} in tagged
    assert {"highway": "bus_stop"} in tagged
    assert {"public_transport": "platform", "railway": "tram_stop"} in tagged


def test_city_without_buildings_is_skipped(small_config: RuntimeConfig) -> None:
    session = _session(small_config)
    assert session.add_city("Nowhere", 1) is None
    assert session.graph.points == ()


def test_default_projection_comes_from_config(small_config: RuntimeConfig) -> None:
    session = ExportSession(config=small_config)
    session.add_districts([District("Center", (0.0, 0.0, 0.0))])
    (point,) = session.graph.points
    assert (point.lon, point.lat) == (Decimal("35.851182"), Decimal("34.4412015"))


def test_finish_closes_the_session(small_config: RuntimeConfig) -> None:
    session = _session(small_config)
    doc = session.finish()
    assert doc.points == ()
    assert doc.note == "test"

    with pytest.raises(RuntimeError):
        session.finish()
    with pytest.raises(RuntimeError):
        session.add_districts([District("Late", (0.0, 0.0, 0.0))])


def test_graph_is_frozen_after_finish(small_config: RuntimeConfig) -> None:
    session = _session(small_config)
    a = session.graph.add_point((0.0, 0.0, 0.0))
    b = session.graph.add_point((1.0, 0.0, 0.0))
    session.finish()

    assert session.graph.frozen
    with pytest.raises(RuntimeError):
        session.graph.add_point((2.0, 0.0, 0.0))
    with pytest.raises(RuntimeError):
        session.graph.add_polyline([a, b])
    assert len(session.graph.points) == 2


def test_mixed_export_has_no_dangling_refs_or_orphans(small_config: RuntimeConfig) -> None:
    session = _session(small_config)
    session.add_contours(_PondSampler())
    session.add_roads(
        [
            RoadNode(1, (0.0, 0.0, 0.0)),
            RoadNode(2, (30.0, 0.0, 0.0)),
            RoadNode(3, (60.0, 0.0, 0.0)),
        ],
        [
            RoadSegment(1, 2, tags={"highway": "residential"}),
            RoadSegment(2, 3, tags=None),
        ],
    )
    session.add_buildings([Building((10.0, 0.0, 10.0), 0.3, 2, 3, tags={"building": "yes"})])
    session.add_districts([District("Old Town", (5.0, 0.0, 5.0))])
    doc = session.finish()

    point_ids = {p.id for p in doc.points}
    refs = {r for w in doc.polylines for r in w.refs}
    assert len(doc.polylines) == 3
    assert all(r in point_ids for w in doc.polylines for r in w.refs)
    assert all(p.tags or p.id in refs for p in doc.points)
    # 未使用の節点 3 だけが落ちる。
    assert len(session.graph.points) - len(doc.points) == 1
