"""
どこで: `src/mapexport/export/osm_xml.py`。
何を: 点／ポリライングラフを OSM XML（version 0.6）として保存する関数を提供する。
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from mapexport.core.graph import GraphPoint, GraphPolyline, Tags
from mapexport.core.projection import GeoBounds

OSM_VERSION = "0.6"

# 各要素に付ける編集メタデータ（固定値）。
_CHANGESET = "50000000"
_USER = "CS"
_ELEMENT_VERSION = "1"


@dataclass(frozen=True, slots=True)
class OsmDocument:
    """書き出し対象のグラフ一式。

    Parameters
    ----------
    points : tuple[GraphPoint, ...]
        未使用点フィルタ適用済みの点列。
    polylines : tuple[GraphPolyline, ...]
        ポリライン列。
    bounds : GeoBounds
        `<bounds>` に書く経緯度範囲。
    generator : str
        `<osm generator=...>`。
    note : str
        `<osm note=...>`（都市名など）。
    """

    points: tuple[GraphPoint, ...]
    polylines: tuple[GraphPolyline, ...]
    bounds: GeoBounds
    generator: str = "mapexport"
    note: str = ""


def _fmt_decimal(value: Decimal) -> str:
    """指数表記を避けた固定小数で文字列化する。"""

    text = format(value, "f")
    if text.startswith("-") and Decimal(text) == 0:
        return text[1:]
    return text


def _fmt_timestamp(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _append_tags(parent: ET.Element, tags: Tags) -> None:
    for k, v in tags:
        ET.SubElement(parent, "tag", {"k": k, "v": v})


def _element_attrs(element_id: int, timestamp: str) -> dict[str, str]:
    return {
        "id": str(int(element_id)),
        "version": _ELEMENT_VERSION,
        "changeset": _CHANGESET,
        "user": _USER,
        "timestamp": timestamp,
    }


def build_osm_tree(document: OsmDocument, *, timestamp: datetime) -> ET.ElementTree:
    """`OsmDocument` から XML 木を組み立てる（要素順は入力順のまま）。"""

    ts = _fmt_timestamp(timestamp)
    root = ET.Element(
        "osm",
        {"version": OSM_VERSION, "generator": document.generator, "note": document.note},
    )
    ET.SubElement(root, "meta", {"osm_base": ts})
    b = document.bounds
    ET.SubElement(
        root,
        "bounds",
        {
            "minlat": _fmt_decimal(b.minlat),
            "minlon": _fmt_decimal(b.minlon),
            "maxlat": _fmt_decimal(b.maxlat),
            "maxlon": _fmt_decimal(b.maxlon),
        },
    )

    for point in document.points:
        attrs = _element_attrs(point.id, ts)
        attrs["lat"] = _fmt_decimal(point.lat)
        attrs["lon"] = _fmt_decimal(point.lon)
        node = ET.SubElement(root, "node", attrs)
        _append_tags(node, point.tags)

    for polyline in document.polylines:
        way = ET.SubElement(root, "way", _element_attrs(polyline.id, ts))
        for ref in polyline.refs:
            ET.SubElement(way, "nd", {"ref": str(int(ref))})
        _append_tags(way, polyline.tags)

    tree = ET.ElementTree(root)
    ET.indent(tree, space="  ")
    return tree


def export_osm(
    document: OsmDocument,
    path: str | Path,
    *,
    timestamp: datetime | None = None,
) -> Path:
    """`OsmDocument` を OSM XML として保存する。

    Parameters
    ----------
    document : OsmDocument
        書き出すグラフ。
    path : str or Path
        出力先パス。親ディレクトリが無ければ作る。
    timestamp : datetime or None
        全要素に書く時刻。None の場合は現在時刻（UTC）。
        同じ値を渡せば出力はバイト単位で一致する。

    Returns
    -------
    Path
        保存先パス。
    """

    _path = Path(path)
    ts = timestamp if timestamp is not None else datetime.now(timezone.utc)
    tree = build_osm_tree(document, timestamp=ts)
    _path.parent.mkdir(parents=True, exist_ok=True)
    tree.write(_path, encoding="utf-8", xml_declaration=True)
    return _path


__all__ = ["OSM_VERSION", "OsmDocument", "build_osm_tree", "export_osm"]
