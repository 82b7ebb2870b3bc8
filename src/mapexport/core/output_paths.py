# どこで: `src/mapexport/core/output_paths.py`。
# 何を: 書き出しセッション名から `.osm` の保存先パスを決める。

from __future__ import annotations

import re
from pathlib import Path

from mapexport.core.runtime_config import output_root_dir

_DEFAULT_STEM = "export"


def _sanitize_name(name: str) -> str:
    """名前をファイル名の一部として使える形に正規化して返す。"""

    return re.sub(r"[^A-Za-z0-9._-]+", "_", str(name)).strip("._")


def osm_output_path(name: str | None, *, out_dir: Path | None = None) -> Path:
    """`{out_dir}/{name}.osm` を返す。

    `out_dir` が None の場合は `runtime_config().output_dir`。
    名前が空（またはサニタイズ後に空）なら `export.osm`。
    """

    stem = _sanitize_name(name) if name is not None else ""
    if not stem:
        stem = _DEFAULT_STEM
    base = Path(out_dir) if out_dir is not None else output_root_dir()
    return base / f"{stem}.osm"


__all__ = ["osm_output_path"]
