"""Read OziExplorer .map calibration sidecars into a MapCalibration.

The sidecar is scanned once, top to bottom.  Lines 0-4 are positional
(header, title, image file, magic marker, datum); everything after that is
recognised by its tag: PointNN, IWH, Map Projection, MMPXY, MMPLL.

Parsing never fails on bad content.  Unusable Point lines are skipped and
the bounds fall back through BOUNDS_STRATEGIES, so the result may be
imprecise; check ``utm_calibration`` / ``corner_points`` to judge that.
Only a missing file raises (FileNotFoundError).
"""

import dataclasses
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from affine import fit_utm_affine, invert_affine
from coord_transformer import pixel_to_geo
from models import (
    CornerPoints,
    CorrespondencePoint,
    GeoPoint,
    MapBounds,
    MapCalibration,
    UtmBilinearCorners,
    UtmCalibration,
    UtmCorner,
    UtmCorrespondence,
)
from projection import utm_to_wgs84

logger = logging.getLogger(__name__)

HEADER_PREFIX = "OziExplorer Map Data File"
DEFAULT_DATUM = "WGS 84"
DEFAULT_PROJECTION = "Latitude/Longitude"
MIN_POINT_FIELDS = 17

_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_LINE_SPLIT_RE = re.compile(r"\r?\n")


@dataclass
class _ScanState:
    """Corner tags and UTM references collected during the line scan."""
    mmpll: List[GeoPoint] = field(default_factory=list)
    mmpxy: List[Tuple[int, int]] = field(default_factory=list)
    utm_points: List[UtmCorrespondence] = field(default_factory=list)


@dataclass
class BoundsResolution:
    """Outcome of one bounds strategy."""
    strategy: str
    bounds: MapBounds
    corner_points: Optional[CornerPoints] = None
    # Replacement correspondence list, when the strategy synthesises one.
    correspondences: Optional[List[CorrespondencePoint]] = None


def parse_map_file(map_file_path: str) -> MapCalibration:
    """Read and parse a .map sidecar.

    Raises:
        FileNotFoundError: if *map_file_path* does not exist.
    """
    with open(map_file_path, "r", encoding="utf-8", errors="replace") as fh:
        content = fh.read()
    return parse_map_text(content, filename=os.path.basename(map_file_path))


def parse_map_text(content: str, filename: str = "") -> MapCalibration:
    """Parse the text of a .map sidecar; see the module docstring."""
    calibration = MapCalibration(filename=filename)
    state = _ScanState()

    for i, raw in enumerate(_LINE_SPLIT_RE.split(content)):
        line = raw.strip()

        if i == 0 and line.startswith(HEADER_PREFIX):
            continue
        if i == 1:
            calibration.title = line
            continue
        if i == 2:
            calibration.image_path = line
            continue
        if i == 3:
            continue
        if i == 4:
            calibration.datum = line.split(",")[0] or DEFAULT_DATUM
            logger.debug("Map datum: %s", calibration.datum)
            continue

        _scan_line(line, calibration, state)

    calibration.utm_calibration = build_utm_calibration(
        state.utm_points, calibration.image_width, calibration.image_height
    )

    resolution = resolve_bounds(calibration, state.mmpll, state.mmpxy)
    if resolution is not None:
        logger.info("Bounds of %s from %s: %s", filename or "<map>", resolution.strategy, resolution.bounds)
        calibration.bounds = resolution.bounds
        calibration.corner_points = resolution.corner_points
        if resolution.correspondences is not None:
            calibration.correspondences = resolution.correspondences
    else:
        logger.warning("No usable calibration data in %s, bounds are undefined", filename or "<map>")

    return calibration


def _scan_line(line: str, calibration: MapCalibration, state: _ScanState) -> None:
    if line.startswith("Point") and "," in line:
        result = parse_point_line(line)
        if result is not None:
            point, utm = result
            calibration.correspondences.append(point)
            if utm is not None:
                state.utm_points.append(utm)
                logger.debug("UTM point: px(%d, %d) -> zone %d E%.1f N%.1f",
                             utm.pixel_x, utm.pixel_y, utm.zone, utm.easting, utm.northing)

    if line.startswith("IWH,"):
        parts = line.split(",")
        if len(parts) >= 3:
            calibration.image_width = _field_int(parts, 2) or 0
            calibration.image_height = _field_int(parts, 3) or 0

    if line.startswith("Map Projection,"):
        calibration.projection = line.split(",")[1] or DEFAULT_PROJECTION

    if line.startswith("MMPXY,"):
        parts = line.split(",")
        if len(parts) >= 4:
            x = _field_int(parts, 2)
            y = _field_int(parts, 3)
            if x is not None and y is not None:
                state.mmpxy.append((x, y))

    if line.startswith("MMPLL,"):
        parts = line.split(",")
        if len(parts) >= 4:
            # Longitude comes first on MMPLL lines.
            lon = _field_float(parts, 2)
            lat = _field_float(parts, 3)
            if lat is not None and lon is not None:
                state.mmpll.append(GeoPoint(lat=lat, lon=lon))


def parse_point_line(line: str) -> Optional[Tuple[CorrespondencePoint, Optional[UtmCorrespondence]]]:
    """Decode one ``PointNN,...`` line.

    Returns:
        (point, utm) where utm is set when the line carries a grid reference,
        or None when the line has no pixel or no geographic position.
    """
    parts = line.split(",")
    if len(parts) < MIN_POINT_FIELDS:
        return None

    pixel_x = _field_int(parts, 2)
    pixel_y = _field_int(parts, 3)
    if pixel_x is None or pixel_y is None:
        return None

    latitude = 0.0
    longitude = 0.0
    utm = None

    if parts[5].strip() == "deg":
        latitude = _dms(parts, 6)
        if parts[9].strip() == "S":
            latitude = -latitude
        longitude = _dms(parts, 10)
        if parts[13].strip() == "W":
            longitude = -longitude

    grid_index = next((i for i, p in enumerate(parts) if p.strip().lower() == "grid"), -1)
    if grid_index >= 0 and len(parts) > grid_index + 3:
        zone = _field_int(parts, grid_index + 1) or 0
        easting = _field_float(parts, grid_index + 2) or 0.0
        northing = _field_float(parts, grid_index + 3) or 0.0
        hemisphere = _field(parts, grid_index + 4).strip().upper() or "N"

        if zone > 0 and easting > 0 and northing > 0:
            utm = UtmCorrespondence(pixel_x=pixel_x, pixel_y=pixel_y,
                                    easting=easting, northing=northing, zone=zone)
            if latitude == 0 and longitude == 0:
                latitude, longitude = utm_to_wgs84(easting, northing, zone, hemisphere == "S")

    if latitude == 0 and longitude == 0:
        return None

    point = CorrespondencePoint(pixel_x=pixel_x, pixel_y=pixel_y, latitude=latitude, longitude=longitude)
    return point, utm


def build_utm_calibration(
    points: List[UtmCorrespondence],
    image_width: int,
    image_height: int,
) -> Optional[UtmCalibration]:
    """Fit pixel <-> UTM from grid references sharing a single zone.

    Returns None with fewer than two points, mixed zones, or a fit that
    cannot be inverted.
    """
    if len(points) < 2:
        return None
    zone = points[0].zone
    if any(p.zone != zone for p in points):
        logger.info("UTM points span several zones, ignoring grid calibration")
        return None

    pixel_to_utm = fit_utm_affine(points)
    utm_to_pixel = invert_affine(pixel_to_utm)
    if utm_to_pixel is None:
        return None

    corners = None
    if image_width > 0 and image_height > 0:
        corners = UtmBilinearCorners(
            *(UtmCorner(px, py, *pixel_to_utm.apply(px, py))
              for px, py in ((0, 0), (image_width, 0), (image_width, image_height), (0, image_height)))
        )

    logger.info("UTM calibration: zone %d, %d points, bilinear corners: %s",
                zone, len(points), corners is not None)
    return UtmCalibration(zone=zone, pixel_to_utm=pixel_to_utm,
                          utm_to_pixel=utm_to_pixel, bilinear_corners=corners)


# ---------------------------------------------------------------------------
# Bounds strategies, most precise first
# ---------------------------------------------------------------------------

BoundsStrategy = Callable[[MapCalibration, List[GeoPoint], List[Tuple[int, int]]], Optional[BoundsResolution]]


def bounds_from_utm(calibration, mmpll, mmpxy) -> Optional[BoundsResolution]:
    """Image corners through the UTM transform pixel_to_geo will use."""
    if calibration.utm_calibration is None or not calibration.has_image_size:
        return None
    corners = image_corners(calibration)
    return BoundsResolution("utm", corners.envelope(), corners)


def bounds_from_mmpll_quad(calibration, mmpll, mmpxy) -> Optional[BoundsResolution]:
    """MMPLL corners, when both MMPLL and MMPXY define a full quad."""
    if len(mmpll) < 4 or len(mmpxy) < 4:
        return None
    corners = CornerPoints(*mmpll[:4])
    return BoundsResolution("mmpll", corners.envelope(), corners)


def bounds_from_mmpxy_synthesis(calibration, mmpll, mmpxy) -> Optional[BoundsResolution]:
    """Replace the correspondences with the four MMPXY/MMPLL pairs."""
    if len(calibration.correspondences) < 3 or not calibration.has_image_size:
        return None
    if len(mmpll) < 4 or len(mmpxy) < 4:
        return None
    corners = CornerPoints(*mmpll[:4])
    points = [
        CorrespondencePoint(pixel_x=x, pixel_y=y, latitude=ll.lat, longitude=ll.lon)
        for (x, y), ll in zip(mmpxy[:4], mmpll[:4])
    ]
    return BoundsResolution("mmpxy+mmpll", corners.envelope(), corners, points)


def bounds_from_mmpll(calibration, mmpll, mmpxy) -> Optional[BoundsResolution]:
    if len(mmpll) < 4:
        return None
    corners = CornerPoints(*mmpll[:4])
    return BoundsResolution("mmpll-only", MapBounds.envelope(mmpll), corners)


def bounds_from_points(calibration, mmpll, mmpxy) -> Optional[BoundsResolution]:
    """Image corners through the correspondence fit."""
    if len(calibration.correspondences) < 2 or not calibration.has_image_size:
        return None
    corners = image_corners(dataclasses.replace(calibration, utm_calibration=None))
    return BoundsResolution("points", corners.envelope(), corners)


def bounds_from_point_envelope(calibration, mmpll, mmpxy) -> Optional[BoundsResolution]:
    points = calibration.correspondences
    if not points:
        return None
    return BoundsResolution(
        "point-envelope",
        MapBounds.envelope([GeoPoint(lat=p.latitude, lon=p.longitude) for p in points]),
    )


BOUNDS_STRATEGIES: List[BoundsStrategy] = [
    bounds_from_utm,
    bounds_from_mmpll_quad,
    bounds_from_mmpxy_synthesis,
    bounds_from_mmpll,
    bounds_from_points,
    bounds_from_point_envelope,
]


def resolve_bounds(
    calibration: MapCalibration,
    mmpll: List[GeoPoint],
    mmpxy: List[Tuple[int, int]],
) -> Optional[BoundsResolution]:
    """First strategy in BOUNDS_STRATEGIES that applies, or None."""
    for strategy in BOUNDS_STRATEGIES:
        resolution = strategy(calibration, mmpll, mmpxy)
        if resolution is not None:
            return resolution
    return None


def image_corners(calibration: MapCalibration) -> CornerPoints:
    w = calibration.image_width
    h = calibration.image_height
    return CornerPoints(
        top_left=pixel_to_geo(0, 0, calibration),
        top_right=pixel_to_geo(w, 0, calibration),
        bottom_right=pixel_to_geo(w, h, calibration),
        bottom_left=pixel_to_geo(0, h, calibration),
    )


# ---------------------------------------------------------------------------
# Field helpers (lenient, prefix-based number parsing)
# ---------------------------------------------------------------------------

def _field(parts: List[str], index: int) -> str:
    return parts[index] if index < len(parts) else ""


def _field_int(parts: List[str], index: int) -> Optional[int]:
    m = _INT_RE.match(_field(parts, index))
    return int(m.group(1)) if m else None


def _field_float(parts: List[str], index: int) -> Optional[float]:
    m = _FLOAT_RE.match(_field(parts, index))
    return float(m.group(1)) if m else None


def _dms(parts: List[str], index: int) -> float:
    """Degrees, minutes, seconds starting at *index*, as decimal degrees."""
    degrees = _field_int(parts, index) or 0
    minutes = _field_int(parts, index + 1) or 0
    seconds = _field_float(parts, index + 2) or 0.0
    return degrees + minutes / 60 + seconds / 3600
