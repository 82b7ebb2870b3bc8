"""等高線と都市エンティティを OSM 風の node/way グラフとして書き出すパッケージ。"""

from mapexport.core.session import ExportSession
from mapexport.export.osm_xml import OsmDocument, export_osm

__all__ = ["ExportSession", "OsmDocument", "export_osm"]
