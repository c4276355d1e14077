"""Slippy-map (web mercator) tile addressing.

Shared by the region downloader and the map registry; keep the formulas
identical to what tile servers use, down to the floating point order.
"""

import math
from dataclasses import dataclass
from typing import List

from models import MapBounds


@dataclass(frozen=True)
class Tile:
    z: int
    x: int
    y: int

    @property
    def key(self) -> str:
        return f"z{self.z}/x{self.x}/y{self.y}"


def lon_to_tile_x(lon: float, zoom: int) -> int:
    n = math.pow(2, zoom)
    return math.floor((lon + 180) / 360 * n)


def lat_to_tile_y(lat: float, zoom: int) -> int:
    n = math.pow(2, zoom)
    lat_rad = lat * math.pi / 180
    return math.floor((1 - math.log(math.tan(lat_rad) + 1 / math.cos(lat_rad)) / math.pi) / 2 * n)


def tile_to_lon(x: float, zoom: int) -> float:
    """Longitude of the west edge of tile column *x*."""
    return x / math.pow(2, zoom) * 360 - 180


def tile_to_lat(y: float, zoom: int) -> float:
    """Latitude of the north edge of tile row *y*."""
    n = math.pi - 2 * math.pi * y / math.pow(2, zoom)
    return math.degrees(math.atan(math.sinh(n)))


def tiles_for_bounds(bounds: MapBounds, min_zoom: int, max_zoom: int) -> List[Tile]:
    """Every tile touching *bounds* for zoom levels min_zoom..max_zoom."""
    tiles = []
    for z in range(min_zoom, max_zoom + 1):
        x_min = lon_to_tile_x(bounds.west, z)
        x_max = lon_to_tile_x(bounds.east, z)
        y_min = lat_to_tile_y(bounds.north, z)
        y_max = lat_to_tile_y(bounds.south, z)
        for x in range(x_min, x_max + 1):
            for y in range(y_min, y_max + 1):
                tiles.append(Tile(z, x, y))
    return tiles
