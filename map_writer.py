"""Write a MapCalibration back out as an OziExplorer 2.2 .map sidecar.

The file lists up to 30 PointNN lines in degrees/minutes/seconds, the
image corners as MMPXY and the bounds corners as MMPLL (longitude first),
with CRLF line endings like the files OziExplorer writes.
"""

import math
from typing import List, Optional

from models import CorrespondencePoint, MapCalibration

MAX_POINTS = 30


def _dms(value: float):
    value = abs(value)
    degrees = math.floor(value)
    minutes = math.floor((value - degrees) * 60)
    seconds = round(((value - degrees) * 60 - minutes) * 60, 3)
    # Rounding to the written precision can reach 60; carry it up.
    if seconds >= 60:
        seconds -= 60
        minutes += 1
    if minutes >= 60:
        minutes -= 60
        degrees += 1
    return degrees, minutes, seconds


def _point_line(number: int, point: Optional[CorrespondencePoint] = None) -> str:
    tag = f"Point{number:02d}"
    if point is None:
        return f"{tag},xy,,,in,deg,,,,,N,,,,,E,grid,,,,,N"

    lat_deg, lat_min, lat_sec = _dms(point.latitude)
    lon_deg, lon_min, lon_sec = _dms(point.longitude)
    lat_dir = "N" if point.latitude >= 0 else "S"
    lon_dir = "E" if point.longitude >= 0 else "W"
    return (
        f"{tag},xy,{point.pixel_x},{point.pixel_y},in,deg,"
        f"{lat_deg},{lat_min},{lat_sec:.3f},{lat_dir},"
        f"{lon_deg},{lon_min},{lon_sec:.3f},{lon_dir},grid,,,,,N"
    )


def build_map_lines(calibration: MapCalibration, name: str = "", image_file: str = "") -> List[str]:
    """Lines of the .map file for *calibration* (without line terminators)."""
    cal = calibration
    b = cal.bounds
    lines = [
        "OziExplorer Map Data File Version 2.2",
        cal.title or name,
        image_file or cal.image_path or "map.png",
        "1 ,Map Code,",
        f"{cal.datum},WGS 84, 0.0, 0.0,WGS 84",
        "Reserved 1",
        "Reserved 2",
        "Magnetic Variation,,,E",
        f"Map Projection,{cal.projection},PolyCal,No,AutoCalOnly,No,BSBUseWPX,No",
    ]

    points = cal.correspondences[:MAX_POINTS]
    for i in range(MAX_POINTS):
        lines.append(_point_line(i + 1, points[i] if i < len(points) else None))

    lines += [
        "Projection Setup,,,,,,,,,,",
        "Map Feature = MF ; Map Comment = MC     These follow if they exist",
        "Track File = TF      These follow if they exist",
        "Moving Map Parameters = MM?    These follow if they exist",
        "MM0,Yes",
        "MMPNUM,4",
        "MMPXY,1,0,0",
        f"MMPXY,2,{cal.image_width},0",
        f"MMPXY,3,{cal.image_width},{cal.image_height}",
        f"MMPXY,4,0,{cal.image_height}",
        f"MMPLL,1,{b.west:.6f},{b.north:.6f}",
        f"MMPLL,2,{b.east:.6f},{b.north:.6f}",
        f"MMPLL,3,{b.east:.6f},{b.south:.6f}",
        f"MMPLL,4,{b.west:.6f},{b.south:.6f}",
        f"IWH,Map Image Width/Height,{cal.image_width},{cal.image_height}",
    ]
    return lines


def write_map_file(path: str, calibration: MapCalibration, name: str = "", image_file: str = "") -> str:
    """Write the .map sidecar for *calibration* to *path*.

    Returns:
        The path written.

    Raises:
        RuntimeError: if the file cannot be written.
    """
    content = "\r\n".join(build_map_lines(calibration, name, image_file))
    try:
        with open(path, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
    except OSError as exc:
        raise RuntimeError(f"Writing map file {path} failed: {exc}") from exc
    return path
