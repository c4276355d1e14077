"""Command-line entry point for the OziExplorer map tools.

    python main.py info map.ozf2
    python main.py pixel-to-geo map.ozf2 1000 750
    python main.py geo-to-pixel map.ozf2 47.25 8.5
    python main.py extract-tile map.ozf2 3 4 -o tile.raw
    python main.py download "Lake Zurich" 47.4 47.1 8.9 8.4 --min-zoom 10 --max-zoom 14

Maps are given by their container path (.ozf2/.ozf3/.ozfx3); the .map
sidecar must sit next to it.  Configuration comes from OZI_* environment
variables (see settings.py).
"""

import argparse
import logging
import os
import signal
import sys
import threading

# Make all sibling modules importable by their bare name
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from coord_transformer import (  # noqa: E402
    CalibrationDiagnostics,
    geo_to_pixel,
    pixel_to_geo,
    select_forward_strategy,
    select_inverse_strategy,
)
from crs_metadata import from_calibration  # noqa: E402
from map_loader import load_map  # noqa: E402
from models import MapBounds  # noqa: E402
from settings import settings  # noqa: E402
from tile_downloader import RegionDownloader  # noqa: E402

logger = logging.getLogger("ozi_maps")


def _load_or_exit(path):
    loaded = load_map(path)
    if loaded is None:
        sys.exit(f"Could not load map {path}")
    return loaded


def cmd_info(args) -> int:
    loaded = _load_or_exit(args.ozf)
    cal = loaded.calibration
    crs = from_calibration(cal)
    b = cal.bounds
    print(f"Map:         {loaded.name} ({loaded.id})")
    print(f"Sidecar:     {loaded.map_path}")
    print(f"Image:       {cal.image_width} x {cal.image_height}")
    print(f"Datum:       {cal.datum}")
    print(f"Projection:  {cal.projection}")
    print(f"CRS:         {crs.crs_name or '-'} (EPSG:{crs.epsg or '-'})")
    print(f"Points:      {len(cal.correspondences)}")
    print(f"UTM zone:    {cal.utm_calibration.zone if cal.utm_calibration else '-'}")
    print(f"Bounds:      N {b.north:.6f}  S {b.south:.6f}  E {b.east:.6f}  W {b.west:.6f}")
    print(f"Transforms:  pixel->geo {select_forward_strategy(cal).value}, "
          f"geo->pixel {select_inverse_strategy(cal).value}")
    if cal.corner_points:
        for label, corner in zip(("TL", "TR", "BR", "BL"), cal.corner_points.as_list()):
            print(f"  {label}: {corner.lat:.6f}, {corner.lon:.6f}")
    return 0


def cmd_pixel_to_geo(args) -> int:
    loaded = _load_or_exit(args.ozf)
    point = pixel_to_geo(args.x, args.y, loaded.calibration)
    print(f"{point.lat:.7f} {point.lon:.7f}")
    return 0


def cmd_geo_to_pixel(args) -> int:
    loaded = _load_or_exit(args.ozf)
    diagnostics = CalibrationDiagnostics() if args.verbose else None
    x, y = geo_to_pixel(args.lat, args.lon, loaded.calibration, diagnostics)
    print(f"{x:.2f} {y:.2f}")
    return 0


def cmd_extract_tile(args) -> int:
    loaded = _load_or_exit(args.ozf)
    try:
        data = loaded.get_tile(args.tile_x, args.tile_y)
    finally:
        loaded.close()
    if data is None:
        print(f"Tile {args.tile_x},{args.tile_y} could not be decoded", file=sys.stderr)
        return 1
    with open(args.output, "wb") as fh:
        fh.write(data)
    print(f"Wrote {len(data)} bytes to {args.output}")
    return 0


def cmd_download(args) -> int:
    abort = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: abort.set())

    def report(progress):
        print(f"\r{progress.downloaded + progress.cached + progress.failed}/{progress.total} "
              f"({progress.failed} failed) {progress.current_tile}", end="", flush=True)

    downloader = RegionDownloader(output_dir=args.output_dir)
    bounds = MapBounds(north=args.north, south=args.south, east=args.east, west=args.west)
    result = downloader.download_region(args.name, bounds, args.min_zoom, args.max_zoom,
                                        progress_callback=report, abort=abort, resume=args.resume)
    print()
    if not result.success:
        print(result.error, file=sys.stderr)
        return 1
    print(f"Tiles saved to {result.output_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ozi-maps", description="OziExplorer map calibration and tile tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("info", help="show calibration of a map")
    p.add_argument("ozf")
    p.set_defaults(func=cmd_info)

    p = sub.add_parser("pixel-to-geo", help="convert an image pixel to lat/lon")
    p.add_argument("ozf")
    p.add_argument("x", type=float)
    p.add_argument("y", type=float)
    p.set_defaults(func=cmd_pixel_to_geo)

    p = sub.add_parser("geo-to-pixel", help="convert lat/lon to an image pixel")
    p.add_argument("ozf")
    p.add_argument("lat", type=float)
    p.add_argument("lon", type=float)
    p.set_defaults(func=cmd_geo_to_pixel)

    p = sub.add_parser("extract-tile", help="decode one 64x64 tile of the container")
    p.add_argument("ozf")
    p.add_argument("tile_x", type=int)
    p.add_argument("tile_y", type=int)
    p.add_argument("-o", "--output", required=True)
    p.set_defaults(func=cmd_extract_tile)

    p = sub.add_parser("download", help="download web map tiles of a region")
    p.add_argument("name")
    p.add_argument("north", type=float)
    p.add_argument("south", type=float)
    p.add_argument("east", type=float)
    p.add_argument("west", type=float)
    p.add_argument("--min-zoom", type=int, default=10)
    p.add_argument("--max-zoom", type=int, default=14)
    p.add_argument("--output-dir", default=None)
    p.add_argument("--resume", action="store_true", help="keep tiles from an earlier run")
    p.set_defaults(func=cmd_download)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
