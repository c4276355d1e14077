"""
Global fixtures for the map tools test suite: synthetic .map sidecars and
OZF2 containers written to tmp_path.
"""
import struct
import zlib
from types import SimpleNamespace
from typing import List, Optional, Sequence, Tuple

import pytest


MAP_HEADER = [
    "OziExplorer Map Data File Version 2.2",
    "Test Map",
    "test.bmp",
    "1 ,Map Code,",
    "WGS 84,WGS 84,   0.0000,   0.0000,WGS 84",
    "Reserved 1",
    "Reserved 2",
    "Magnetic Variation,,,E",
]


def _dms(value: float) -> Tuple[int, int, float]:
    value = abs(value)
    degrees = int(value)
    minutes = int((value - degrees) * 60)
    seconds = ((value - degrees) * 60 - minutes) * 60
    return degrees, minutes, seconds


def dms_point_line(number: int, px: int, py: int, lat: float, lon: float) -> str:
    lat_d, lat_m, lat_s = _dms(lat)
    lon_d, lon_m, lon_s = _dms(lon)
    return (
        f"Point{number:02d},xy,{px:5d},{py:5d},in, deg,{lat_d:4d},{lat_m:3d},{lat_s:.6f},"
        f"{'N' if lat >= 0 else 'S'},{lon_d:4d},{lon_m:3d},{lon_s:.6f},{'E' if lon >= 0 else 'W'},"
        f" grid,   ,           ,           ,N"
    )


def utm_point_line(number: int, px: int, py: int, zone: int, easting: float, northing: float,
                   hemisphere: str = "N") -> str:
    return (
        f"Point{number:02d},xy,{px:5d},{py:5d},in, deg,    ,   ,        ,N,    ,   ,        ,E,"
        f" grid, {zone},{easting:.1f},{northing:.1f},{hemisphere}"
    )


def build_map_text(
    points: Sequence[str] = (),
    mmpxy: Sequence[Tuple[int, int]] = (),
    mmpll: Sequence[Tuple[float, float]] = (),
    size: Optional[Tuple[int, int]] = None,
    projection: str = "Latitude/Longitude",
) -> str:
    """Sidecar text; mmpll entries are (lon, lat) like the file format."""
    lines = list(MAP_HEADER)
    lines.append(f"Map Projection,{projection},PolyCal,No,AutoCalOnly,No,BSBUseWPX,No")
    lines.extend(points)
    lines.append("Projection Setup,,,,,,,,,,")
    lines.append("MM0,Yes")
    if mmpxy:
        lines.append(f"MMPNUM,{len(mmpxy)}")
    for i, (x, y) in enumerate(mmpxy, start=1):
        lines.append(f"MMPXY,{i},{x},{y}")
    for i, (lon, lat) in enumerate(mmpll, start=1):
        lines.append(f"MMPLL,{i}, {lon:.6f}, {lat:.6f}")
    if size is not None:
        lines.append(f"IWH,Map Image Width/Height,{size[0]},{size[1]}")
    return "\r\n".join(lines) + "\r\n"


def build_ozf2(payloads: List[bytes], width: int, height: int, magic: int = 0x7778) -> bytes:
    """OZF2 container: 14-byte header, tile payloads, offset table at the end."""
    body = bytearray()
    offsets = []
    position = 14
    for payload in payloads:
        offsets.append(position)
        body += payload
        position += len(payload)
    offsets.append(position)
    table_pointer = position
    header = struct.pack("<HIII", magic, table_pointer, width, height)
    table = struct.pack(f"<{len(offsets)}I", *offsets)
    return header + bytes(body) + table


@pytest.fixture
def tile_blocks() -> List[bytes]:
    """Four distinct raw 64x64 8-bit tiles."""
    return [bytes([i * 40 + (j % 7) for j in range(64 * 64)]) for i in range(4)]


@pytest.fixture
def ozf2_path(tmp_path, tile_blocks):
    """A 128x128 (2x2 tiles) OZF2 container with a matching sidecar."""
    path = tmp_path / "testmap.ozf2"
    path.write_bytes(build_ozf2([zlib.compress(b) for b in tile_blocks], 128, 128))
    (tmp_path / "testmap.map").write_text(
        build_map_text(
            points=[
                dms_point_line(1, 0, 0, 47.5, 8.0),
                dms_point_line(2, 128, 128, 47.0, 9.0),
            ],
            size=(128, 128),
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def utm_map_text() -> str:
    """Zone 33 sidecar with four grid references, image 2000x1500."""
    return build_map_text(
        points=[
            utm_point_line(1, 0, 0, 33, 400000.0, 5300000.0),
            utm_point_line(2, 2000, 0, 33, 440000.0, 5300000.0),
            utm_point_line(3, 2000, 1500, 33, 440000.0, 5270000.0),
            utm_point_line(4, 0, 1500, 33, 400000.0, 5270000.0),
        ],
        size=(2000, 1500),
        projection="Transverse Mercator",
    )


@pytest.fixture
def sidecar():
    """Builders for synthetic .map content."""
    return SimpleNamespace(text=build_map_text, dms_point=dms_point_line, utm_point=utm_point_line)


@pytest.fixture
def ozf2_bytes():
    return build_ozf2
