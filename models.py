"""Data models for the OziExplorer map tools."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class GeoPoint:
    """WGS84 geographic position."""
    lat: float = 0.0   # decimal degrees, positive north
    lon: float = 0.0   # decimal degrees, positive east


@dataclass
class CorrespondencePoint:
    """Pixel position of the image tied to a WGS84 position."""
    pixel_x: int = 0
    pixel_y: int = 0
    latitude: float = 0.0
    longitude: float = 0.0


@dataclass
class UtmCorrespondence:
    """Pixel position of the image tied to a UTM grid reference."""
    pixel_x: int = 0
    pixel_y: int = 0
    easting: float = 0.0    # metres
    northing: float = 0.0   # metres
    zone: int = 0


@dataclass(frozen=True)
class AffineTransform:
    """x' = a*x + b*y + c,  y' = d*x + e*y + f"""
    a: float = 0.0
    b: float = 0.0
    c: float = 0.0
    d: float = 0.0
    e: float = 0.0
    f: float = 0.0

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        return (
            self.a * x + self.b * y + self.c,
            self.d * x + self.e * y + self.f,
        )


@dataclass
class MapBounds:
    """Axis-aligned WGS84 envelope of a map."""
    north: float = -90.0
    south: float = 90.0
    east: float = -180.0
    west: float = 180.0

    @classmethod
    def envelope(cls, points: List[GeoPoint]) -> "MapBounds":
        return cls(
            north=max(p.lat for p in points),
            south=min(p.lat for p in points),
            east=max(p.lon for p in points),
            west=min(p.lon for p in points),
        )

    def contains(self, lat: float, lon: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lon <= self.east


@dataclass
class CornerPoints:
    """Geographic position of the four image corners.

    Order matches the MMPLL convention of the sidecar: topLeft, topRight,
    bottomRight, bottomLeft.
    """
    top_left: GeoPoint = field(default_factory=GeoPoint)
    top_right: GeoPoint = field(default_factory=GeoPoint)
    bottom_right: GeoPoint = field(default_factory=GeoPoint)
    bottom_left: GeoPoint = field(default_factory=GeoPoint)

    def as_list(self) -> List[GeoPoint]:
        return [self.top_left, self.top_right, self.bottom_right, self.bottom_left]

    def envelope(self) -> MapBounds:
        return MapBounds.envelope(self.as_list())


@dataclass(frozen=True)
class UtmCorner:
    """Image corner pixel with its UTM grid position."""
    px: float
    py: float
    easting: float
    northing: float


@dataclass(frozen=True)
class UtmBilinearCorners:
    top_left: UtmCorner
    top_right: UtmCorner
    bottom_right: UtmCorner
    bottom_left: UtmCorner


@dataclass
class UtmCalibration:
    """Pixel <-> UTM relationship of a map calibrated on a UTM grid."""
    zone: int
    pixel_to_utm: AffineTransform
    utm_to_pixel: AffineTransform
    # When present these take precedence over pixel_to_utm for pixel -> geo.
    bilinear_corners: Optional[UtmBilinearCorners] = None


@dataclass
class MapCalibration:
    """Complete calibration decoded from a .map sidecar."""
    filename: str = ""
    title: str = ""
    image_path: str = ""
    projection: str = "Latitude/Longitude"
    datum: str = "WGS 84"
    correspondences: List[CorrespondencePoint] = field(default_factory=list)
    bounds: MapBounds = field(default_factory=MapBounds)
    image_width: int = 0
    image_height: int = 0
    corner_points: Optional[CornerPoints] = None
    utm_calibration: Optional[UtmCalibration] = None

    @property
    def has_image_size(self) -> bool:
        return self.image_width > 0 and self.image_height > 0


@dataclass
class ContainerHeader:
    """Header of an .ozf2/.ozf3/.ozfx3 tile container."""
    magic: int = 0
    version: int = 0
    width: int = 0
    height: int = 0
    bit_depth: int = 0
    tile_width: int = 64
    tile_height: int = 64
    tiles_x: int = 0
    tiles_y: int = 0
    zoom_levels: int = 1


@dataclass
class TileOffsetTable:
    """Offsets of the compressed tile payloads, plus one sentinel end offset."""
    table_offset: int = 0
    tiles_x: int = 0
    tiles_y: int = 0
    offsets: List[int] = field(default_factory=list)
