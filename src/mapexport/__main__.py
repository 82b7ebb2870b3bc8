# どこで: `src/mapexport/__main__.py`。
# 何を: `python -m mapexport ...` の CLI エントリポイントを提供する。
# なぜ: 地形・水面の配列（.npy）から等高線だけの .osm を手早く作れるようにするため。

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys


def _run_contours(args: argparse.Namespace) -> int:
    import numpy as np

    from mapexport.core.output_paths import osm_output_path
    from mapexport.core.runtime_config import runtime_config, set_config_path
    from mapexport.core.samplers import ArraySampler
    from mapexport.core.session import ExportSession
    from mapexport.export.osm_xml import export_osm

    if args.config is not None:
        set_config_path(args.config)
    cfg = runtime_config()

    ground = np.load(args.ground)
    water = np.load(args.water)
    grid_size = float(args.grid_size) if args.grid_size is not None else cfg.contour.grid_size
    sampler = ArraySampler(ground=ground, water=water, grid_size=grid_size)

    # 格子の大きさは入力配列に合わせる。
    contour = dataclasses.replace(cfg.contour, grid_size=grid_size, steps=sampler.steps)
    cfg = dataclasses.replace(cfg, contour=contour)

    session = ExportSession(config=cfg, name=args.name)
    session.add_contours(sampler)
    document = session.finish()

    out = args.out if args.out is not None else osm_output_path(args.name)
    path = export_osm(document, out)
    print(f"wrote {path} (points={len(document.points)}, polylines={len(document.polylines)})")
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    p = argparse.ArgumentParser(prog="python -m mapexport")
    p.add_argument("-v", "--verbose", action="store_true", help="DEBUG ログを出す")
    sub = p.add_subparsers(dest="cmd", required=True)

    c = sub.add_parser("contours", help="地形・水面の .npy から水域の等高線を .osm に書き出す")
    c.add_argument("--ground", required=True, help="地面の高さ配列（正方 .npy）")
    c.add_argument("--water", required=True, help="水面の高さ配列（ground と同じ shape の .npy）")
    c.add_argument("--out", default=None, help="出力 .osm パス（省略時は output_dir/<name>.osm）")
    c.add_argument("--config", default=None, help="config.yaml のパス")
    c.add_argument("--name", default="export", help="出力の note とファイル名に使う名前")
    c.add_argument("--grid-size", type=float, default=None, help="配列 1 セルのワールド座標幅")

    args = p.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "contours":
        return _run_contours(args)

    raise AssertionError(f"unknown cmd: {args.cmd!r}")


if __name__ == "__main__":
    raise SystemExit(main())
