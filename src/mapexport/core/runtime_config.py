# どこで: `src/mapexport/core/runtime_config.py`。
# 何を: 等高線抽出と OSM グラフ構築のパラメータを config.yaml から読み、型付きの設定にする。
# なぜ: 等高線抽出の閾値や OSM の ID 基点・座標範囲をユーザーが差し替えられるようにするため。

"""書き出しパラメータ（`config.yaml`）を読み込んで `RuntimeConfig` にまとめる。

設定の層
--------
1. パッケージ同梱の `mapexport/resource/default_config.yaml`（全キーを持つ）
2. `./.mapexport/config.yaml` か `~/.config/mapexport/config.yaml`（先に見つかった方）
3. `set_config_path()` で指定したファイル

上の層から順にトップレベルのキー単位で上書きする。`export:` を差し替える場合は
`contour` と `osm` の両方を書く必要がある（片方だけだと読み込み時に失敗する）。

読み込んだ結果はプロセス内で保持し、`set_config_path()` を呼ぶと破棄される。
数値・範囲の検証はここで済ませ、下流のモジュールは `ContourConfig` / `OsmConfig` を信頼してよい。
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from importlib import resources
from pathlib import Path
from typing import Any

from mapexport.core.projection import GeoBounds


@dataclass(frozen=True, slots=True)
class ContourConfig:
    """等高線書き出し設定（`config.yaml` の `export.contour`）。"""

    grid_size: float
    steps: int
    levels: tuple[float, ...]
    tolerance: float
    sentinel: float
    tags: tuple[tuple[str, str], ...]


@dataclass(frozen=True, slots=True)
class OsmConfig:
    """OSM グラフ構築設定（`config.yaml` の `export.osm`）。"""

    point_id_start: int
    polyline_id_start: int
    bounds: GeoBounds
    scale: float
    world_size: float
    generator: str


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    """mapexport の実行時設定。

    Attributes
    ----------
    config_path:
        実際に採用されたユーザー設定ファイルのパス。
        ユーザー設定が無い場合は None（同梱デフォルトのみで動作）。
    output_dir:
        `.osm` の出力先ディレクトリ。
    contour:
        等高線抽出・簡略化の設定。
    osm:
        ID 採番と地理座標投影の設定。
    """

    config_path: Path | None
    output_dir: Path
    contour: ContourConfig
    osm: OsmConfig


_EXPLICIT_CONFIG_PATH: Path | None = None
_CONFIG_CACHE: RuntimeConfig | None = None


def set_config_path(path: str | Path | None) -> None:
    """以降の `runtime_config()` が最優先で読むファイルを指定する。

    Notes
    -----
    - None を渡すと指定を外し、CWD / HOME の探索だけに戻る。
    - 保持している `RuntimeConfig` は常に破棄する。
    """

    global _EXPLICIT_CONFIG_PATH, _CONFIG_CACHE
    _CONFIG_CACHE = None
    if path is None:
        _EXPLICIT_CONFIG_PATH = None
        return
    _EXPLICIT_CONFIG_PATH = Path(str(path)).expanduser()


def _default_config_candidates() -> tuple[Path, ...]:
    """ユーザー設定の探索先。先に存在したものだけを使う。"""

    return (
        Path.cwd() / ".mapexport" / "config.yaml",
        Path.home() / ".config" / "mapexport" / "config.yaml",
    )


def _as_mapping(value: Any, *, key: str) -> dict[str, Any]:
    """YAML の値を dict として受け取る（None は空 dict）。"""

    if value is None:
        return {}
    if isinstance(value, dict):
        return dict(value)
    raise RuntimeError(f"{key} は mapping である必要があります: got={value!r}")


def _as_optional_path(value: Any) -> Path | None:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    return Path(os.path.expandvars(os.path.expanduser(s)))


def _as_float(value: Any, *, key: str) -> float:
    """任意値を有限の float として解釈して返す。"""

    if value is None:
        raise RuntimeError(f"{key} が未設定です（同梱 default_config.yaml を確認してください）")
    try:
        out = float(value)
    except Exception as exc:
        raise RuntimeError(f"{key} は数値である必要があります: got={value!r}") from exc
    if not math.isfinite(out):
        raise ValueError(f"{key} は有限の数値である必要があります: got={value!r}")
    return out


def _as_int(value: Any, *, key: str) -> int:
    if value is None:
        raise RuntimeError(f"{key} が未設定です（同梱 default_config.yaml を確認してください）")
    if isinstance(value, bool):
        raise RuntimeError(f"{key} は整数である必要があります: got={value!r}")
    try:
        return int(value)
    except Exception as exc:
        raise RuntimeError(f"{key} は整数である必要があります: got={value!r}") from exc


def _as_decimal(value: Any, *, key: str) -> Decimal:
    """任意値を Decimal として解釈する（float 経由の丸め誤差を避けるため文字列から作る）。"""

    if value is None:
        raise RuntimeError(f"{key} が未設定です（同梱 default_config.yaml を確認してください）")
    try:
        out = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise RuntimeError(f"{key} は数値である必要があります: got={value!r}") from exc
    if not out.is_finite():
        raise ValueError(f"{key} は有限の数値である必要があります: got={value!r}")
    return out


def _as_levels(value: Any, *, key: str) -> tuple[float, ...]:
    """等値レベル列を解釈する。単一の数値も 1 要素として受け付ける。"""

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (_as_float(value, key=key),)
    try:
        seq = list(value)
    except Exception as exc:
        raise RuntimeError(f"{key} は数値の配列である必要があります: got={value!r}") from exc
    if not seq:
        raise ValueError(f"{key} は 1 つ以上のレベルを含む必要があります")
    return tuple(_as_float(v, key=f"{key}[{i}]") for i, v in enumerate(seq))


def _as_tags(value: Any, *, key: str) -> tuple[tuple[str, str], ...]:
    """`{k: v}` の mapping をタグ列 `((k, v), ...)` へ変換する（定義順を保つ）。"""

    mapping = _as_mapping(value, key=key)
    out: list[tuple[str, str]] = []
    for k, v in mapping.items():
        ks = str(k).strip()
        if not ks:
            raise ValueError(f"{key} に空のキーがあります")
        out.append((ks, str(v)))
    return tuple(out)


def _load_yaml_text(text: str, *, source: str) -> dict[str, Any]:
    """YAML を `safe_load` し、トップレベルが mapping であることを確かめる。"""

    try:
        import yaml  # type: ignore[import-untyped]
    except Exception as exc:  # pragma: no cover
        raise RuntimeError(f"PyYAML を import できません: {exc}") from exc

    try:
        data = yaml.safe_load(text)
    except Exception as exc:
        raise RuntimeError(f"config.yaml の読み込みに失敗しました: source={source}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RuntimeError(f"config.yaml は mapping である必要があります: source={source}")
    return dict(data)


def _load_yaml_config(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    return _load_yaml_text(text, source=str(path))


def _load_packaged_default_config() -> dict[str, Any]:
    """パッケージ同梱の既定値を dict で返す。"""

    try:
        blob = (
            resources.files("mapexport")
            .joinpath("resource", "default_config.yaml")
            .read_text(encoding="utf-8")
        )
    except Exception as exc:  # pragma: no cover
        raise RuntimeError(
            "同梱 default_config.yaml の読み込みに失敗しました"
            "（パッケージ配布物の package-data を確認してください）"
        ) from exc
    return _load_yaml_text(blob, source="mapexport/resource/default_config.yaml")


def _parse_contour(contour: dict[str, Any]) -> ContourConfig:
    grid_size = _as_float(contour.get("grid_size"), key="export.contour.grid_size")
    if grid_size <= 0.0:
        raise ValueError(f"export.contour.grid_size は正の値である必要があります: got={grid_size}")

    steps = _as_int(contour.get("steps"), key="export.contour.steps")
    if steps < 1:
        raise ValueError(f"export.contour.steps は 1 以上である必要があります: got={steps}")

    levels = _as_levels(contour.get("levels"), key="export.contour.levels")

    tolerance = _as_float(contour.get("tolerance"), key="export.contour.tolerance")
    if tolerance < 0.0:
        raise ValueError(f"export.contour.tolerance は 0 以上である必要があります: got={tolerance}")

    sentinel = _as_float(contour.get("sentinel", 0.0), key="export.contour.sentinel")
    # 外周セルが等値線の外側にならないと、グリッド端で開いた等高線が出てしまう。
    if any(sentinel >= lv for lv in levels):
        raise ValueError(
            "export.contour.sentinel は全レベルより小さい必要があります"
            f": sentinel={sentinel}, levels={list(levels)}"
        )

    tags = _as_tags(contour.get("tags"), key="export.contour.tags")
    return ContourConfig(
        grid_size=float(grid_size),
        steps=int(steps),
        levels=levels,
        tolerance=float(tolerance),
        sentinel=float(sentinel),
        tags=tags,
    )


def _parse_osm(osm: dict[str, Any]) -> OsmConfig:
    point_id_start = _as_int(osm.get("point_id_start"), key="export.osm.point_id_start")
    polyline_id_start = _as_int(osm.get("polyline_id_start"), key="export.osm.polyline_id_start")
    if point_id_start < 1 or polyline_id_start < 1:
        raise ValueError(
            "export.osm の ID 基点は 1 以上である必要があります"
            f": point={point_id_start}, polyline={polyline_id_start}"
        )

    b = _as_mapping(osm.get("bounds"), key="export.osm.bounds")
    bounds = GeoBounds(
        minlon=_as_decimal(b.get("minlon"), key="export.osm.bounds.minlon"),
        minlat=_as_decimal(b.get("minlat"), key="export.osm.bounds.minlat"),
        maxlon=_as_decimal(b.get("maxlon"), key="export.osm.bounds.maxlon"),
        maxlat=_as_decimal(b.get("maxlat"), key="export.osm.bounds.maxlat"),
    )

    scale = _as_float(osm.get("scale"), key="export.osm.scale")
    if scale <= 0.0:
        raise ValueError(f"export.osm.scale は正の値である必要があります: got={scale}")
    world_size = _as_float(osm.get("world_size"), key="export.osm.world_size")
    if world_size <= 0.0:
        raise ValueError(f"export.osm.world_size は正の値である必要があります: got={world_size}")

    generator = str(osm.get("generator") or "mapexport")
    return OsmConfig(
        point_id_start=int(point_id_start),
        polyline_id_start=int(polyline_id_start),
        bounds=bounds,
        scale=float(scale),
        world_size=float(world_size),
        generator=generator,
    )


def runtime_config() -> RuntimeConfig:
    """現在の `RuntimeConfig` を返す（初回だけ読み込む）。

    読み込み元の優先順位（後勝ち）:
    1) 同梱 `mapexport/resource/default_config.yaml`
    2) 探索で見つかった `config.yaml`（任意）
    3) `set_config_path()` で明示指定された `config.yaml`（任意）
    """

    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None:
        return _CONFIG_CACHE

    explicit_path = _EXPLICIT_CONFIG_PATH
    if explicit_path is not None and not explicit_path.is_file():
        raise FileNotFoundError(f"config.yaml が見つかりません: {explicit_path}")

    discovered_path: Path | None = None
    for p in _default_config_candidates():
        if p.is_file():
            discovered_path = p
            break

    payload = _load_packaged_default_config()
    if discovered_path is not None:
        payload.update(_load_yaml_config(discovered_path))
    if explicit_path is not None:
        payload.update(_load_yaml_config(explicit_path))

    version = payload.get("version")
    if version is None:
        raise RuntimeError(
            "config.yaml の version が未設定です（同梱 default_config.yaml を確認してください）"
        )
    try:
        version_i = int(version)
    except Exception as exc:
        raise RuntimeError(f"config.yaml の version は整数である必要があります: got={version!r}") from exc
    if version_i != 1:
        raise RuntimeError(f"未対応の config.yaml version です: got={version_i}")

    paths = _as_mapping(payload.get("paths"), key="paths")
    output_dir = _as_optional_path(paths.get("output_dir"))
    if output_dir is None:
        raise RuntimeError(
            "paths.output_dir が未設定です（同梱 default_config.yaml を確認してください）"
        )

    export = _as_mapping(payload.get("export"), key="export")
    if "contour" not in export or "osm" not in export:
        raise RuntimeError(
            "export.contour / export.osm が不足しています"
            "（config.yaml はトップレベル浅い上書きのため、export: を上書きする場合は"
            " 同梱 default_config.yaml をコピーして両方を含めてください）"
        )
    contour = _parse_contour(_as_mapping(export.get("contour"), key="export.contour"))
    osm = _parse_osm(_as_mapping(export.get("osm"), key="export.osm"))

    cfg = RuntimeConfig(
        config_path=explicit_path or discovered_path,
        output_dir=output_dir,
        contour=contour,
        osm=osm,
    )
    _CONFIG_CACHE = cfg
    return cfg


def output_root_dir() -> Path:
    """`.osm` を保存する既定ルートディレクトリを返す。"""

    return Path(runtime_config().output_dir)


__all__ = [
    "ContourConfig",
    "OsmConfig",
    "RuntimeConfig",
    "output_root_dir",
    "runtime_config",
    "set_config_path",
]
