"""点／ポリライングラフ（`mapexport.core.graph.GraphBuilder`）のテスト。"""

from __future__ import annotations

from decimal import Decimal

import pytest

from mapexport.core.graph import GraphBuilder, normalize_tags


def _identity_projector(world_pos):
    return Decimal(repr(world_pos[0])), Decimal(repr(world_pos[2]))


def _flat(p):
    return (p[0], 0.0, p[1])


def test_ids_start_at_configured_values_and_increase() -> None:
    g = GraphBuilder(_identity_projector, point_id_start=10, polyline_id_start=500)
    a = g.add_point((0.0, 0.0, 0.0))
    b = g.add_point((1.0, 0.0, 0.0))
    w = g.add_polyline([a, b])

    assert (a, b) == (10, 11)
    assert w == 500
    assert g.add_point((2.0, 0.0, 2.0)) == 12


def test_default_id_start_is_shared_value() -> None:
    g = GraphBuilder(_identity_projector)
    a = g.add_point((0.0, 0.0, 0.0))
    b = g.add_point((1.0, 0.0, 0.0))
    assert a == 128000
    assert g.add_polyline([a, b]) == 128000


def test_add_point_projects_and_normalizes_tags() -> None:
    g = GraphBuilder(_identity_projector)
    pid = g.add_point((3.0, 9.0, 4.0), {"highway": "bus_stop", "layer": 1})

    (point,) = g.points
    assert point.id == pid
    assert point.position == (3.0, 9.0, 4.0)
    assert (point.lon, point.lat) == (Decimal("3.0"), Decimal("4.0"))
    assert point.tags == (("highway", "bus_stop"), ("layer", "1"))


def test_projection_failure_leaves_graph_untouched() -> None:
    def failing(world_pos):
        if world_pos[0] < 0:
            raise RuntimeError("outside")
        return Decimal(0), Decimal(0)

    g = GraphBuilder(failing, point_id_start=1)
    assert g.add_point((1.0, 0.0, 0.0)) == 1
    with pytest.raises(RuntimeError):
        g.add_point((-1.0, 0.0, 0.0))
    assert len(g.points) == 1
    assert g.add_point((2.0, 0.0, 0.0)) == 2


def test_add_polyline_rejects_unknown_or_short_refs() -> None:
    g = GraphBuilder(_identity_projector, point_id_start=1)
    a = g.add_point((0.0, 0.0, 0.0))
    with pytest.raises(ValueError):
        g.add_polyline([a])
    with pytest.raises(ValueError):
        g.add_polyline([a, 999])
    assert g.polylines == ()


def test_add_chain_open() -> None:
    g = GraphBuilder(_identity_projector, point_id_start=1, polyline_id_start=1)
    wid = g.add_chain([(0.0, 0.0), (1.0, 0.0), (2.0, 1.0)], to_world=_flat, tags={"natural": "water"})

    assert wid == 1
    (way,) = g.polylines
    assert way.refs == (1, 2, 3)
    assert way.tags == (("natural", "water"),)
    assert not way.is_closed
    assert [p.position for p in g.points] == [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 1.0)]


def test_add_chain_closed_reuses_first_point_id() -> None:
    g = GraphBuilder(_identity_projector, point_id_start=1)
    g.add_chain([(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 0.0)], to_world=_flat)

    (way,) = g.polylines
    assert way.refs == (1, 2, 3, 1)
    assert way.is_closed
    assert len(g.points) == 3


def test_add_chain_ignores_too_short_chain() -> None:
    g = GraphBuilder(_identity_projector)
    assert g.add_chain([(0.0, 0.0)], to_world=_flat) is None
    assert g.points == ()
    assert g.polylines == ()


def test_every_polyline_ref_resolves_to_a_point() -> None:
    g = GraphBuilder(_identity_projector)
    for k in range(5):
        chain = [(float(k), float(i)) for i in range(k + 2)]
        g.add_chain(chain, to_world=_flat)

    ids = {p.id for p in g.points}
    assert all(ref in ids for way in g.polylines for ref in way.refs)
    assert len(ids) == len(g.points)


def test_normalize_tags_accepts_pairs_and_none() -> None:
    assert normalize_tags(None) == ()
    assert normalize_tags([("a", 1), ("b", "x")]) == (("a", "1"), ("b", "x"))


def test_frozen_builder_rejects_writes() -> None:
    g = GraphBuilder(_identity_projector, point_id_start=1)
    a = g.add_point((0.0, 0.0, 0.0))
    b = g.add_point((1.0, 0.0, 0.0))
    g.freeze()

    with pytest.raises(RuntimeError):
        g.add_point((2.0, 0.0, 0.0))
    with pytest.raises(RuntimeError):
        g.add_polyline([a, b])
    with pytest.raises(RuntimeError):
        g.add_chain([(0.0, 0.0), (1.0, 1.0)], to_world=_flat)
    assert [p.id for p in g.points] == [a, b]
