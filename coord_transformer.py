"""Pixel <-> geographic coordinate transformation for calibrated maps.

The two directions pick their strategy independently:

  pixel -> geo:  UTM_BILINEAR, UTM_AFFINE, LINEAR, BILINEAR (exactly four
                 correspondences) or AFFINE
  geo -> pixel:  LINEAR, UTM_AFFINE or AFFINE

A 4-point calibration is therefore bilinear one way and affine the other.
Both directions are kept that way so results stay reproducible against
maps already placed with them.
"""

import logging
from enum import Enum
from typing import Optional, Set, Tuple

from affine import fit_affine
from bilinear import BilinearQuad
from models import GeoPoint, MapCalibration, UtmCalibration
from projection import utm_to_wgs84, wgs84_to_utm

logger = logging.getLogger(__name__)


class TransformStrategy(Enum):
    LINEAR = "linear"
    AFFINE = "affine"
    BILINEAR = "bilinear"
    UTM_AFFINE = "utm_affine"
    UTM_BILINEAR = "utm_bilinear"


class CalibrationDiagnostics:
    """Logs calibration details the first time each kind of query runs.

    Pass one instance to geo_to_pixel (or several maps' worth of calls) to
    get a single dump per key; call reset() to log again.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger
        self._seen: Set[str] = set()

    def once(self, key: str, msg: str, *args) -> bool:
        """Log *msg* at INFO unless *key* was already reported."""
        if key in self._seen:
            return False
        self._seen.add(key)
        self._log.info(msg, *args)
        return True

    def report_calibration(self, key: str, calibration: MapCalibration) -> bool:
        points = ", ".join(
            f"#{i} px({p.pixel_x},{p.pixel_y}) -> ({p.latitude:.6f},{p.longitude:.6f})"
            for i, p in enumerate(calibration.correspondences)
        )
        utm = calibration.utm_calibration
        return self.once(
            key,
            "%s calibration points: [%s]; UTM: %s",
            key,
            points,
            f"zone {utm.zone}" if utm else "none",
        )

    def reset(self) -> None:
        self._seen.clear()


def select_forward_strategy(calibration: MapCalibration) -> TransformStrategy:
    """Strategy pixel_to_geo uses for *calibration*."""
    utm = calibration.utm_calibration
    if utm is not None:
        if utm.bilinear_corners is not None:
            return TransformStrategy.UTM_BILINEAR
        return TransformStrategy.UTM_AFFINE
    n = len(calibration.correspondences)
    if n < 2:
        return TransformStrategy.LINEAR
    if n == 4:
        return TransformStrategy.BILINEAR
    return TransformStrategy.AFFINE


def select_inverse_strategy(calibration: MapCalibration) -> TransformStrategy:
    """Strategy geo_to_pixel uses for *calibration*; never bilinear."""
    if len(calibration.correspondences) < 2:
        return TransformStrategy.LINEAR
    if calibration.utm_calibration is not None:
        return TransformStrategy.UTM_AFFINE
    return TransformStrategy.AFFINE


def pixel_to_geo(pixel_x: float, pixel_y: float, calibration: MapCalibration) -> GeoPoint:
    """Geographic position of an image pixel."""
    strategy = select_forward_strategy(calibration)

    if strategy is TransformStrategy.UTM_BILINEAR:
        return _utm_to_geo(utm_bilinear_quad(calibration.utm_calibration).transform(pixel_x, pixel_y),
                           calibration.utm_calibration)

    if strategy is TransformStrategy.UTM_AFFINE:
        return _utm_to_geo(calibration.utm_calibration.pixel_to_utm.apply(pixel_x, pixel_y),
                           calibration.utm_calibration)

    if strategy is TransformStrategy.LINEAR:
        bounds = calibration.bounds
        x_ratio = pixel_x / calibration.image_width if calibration.image_width else 0.0
        y_ratio = pixel_y / calibration.image_height if calibration.image_height else 0.0
        return GeoPoint(
            lat=bounds.north - (bounds.north - bounds.south) * y_ratio,
            lon=bounds.west + (bounds.east - bounds.west) * x_ratio,
        )

    points = calibration.correspondences
    src = [(p.pixel_x, p.pixel_y) for p in points]
    dst = [(p.longitude, p.latitude) for p in points]

    if strategy is TransformStrategy.BILINEAR:
        quad = BilinearQuad.from_points(src, dst)
        lon, lat = quad.transform(pixel_x, pixel_y)
        return GeoPoint(lat=lat, lon=lon)

    transform = fit_affine(src, dst)
    if transform is None:
        return GeoPoint(lat=calibration.bounds.north, lon=calibration.bounds.west)
    lon, lat = transform.apply(pixel_x, pixel_y)
    return GeoPoint(lat=lat, lon=lon)


def geo_to_pixel(
    lat: float,
    lon: float,
    calibration: MapCalibration,
    diagnostics: Optional[CalibrationDiagnostics] = None,
) -> Tuple[float, float]:
    """Image pixel (x, y) of a geographic position."""
    strategy = select_inverse_strategy(calibration)

    if strategy is TransformStrategy.LINEAR:
        bounds = calibration.bounds
        x_ratio = (lon - bounds.west) / ((bounds.east - bounds.west) or 1)
        y_ratio = (bounds.north - lat) / ((bounds.north - bounds.south) or 1)
        return x_ratio * calibration.image_width, y_ratio * calibration.image_height

    if diagnostics is not None:
        diagnostics.report_calibration("geo_to_pixel", calibration)

    if strategy is TransformStrategy.UTM_AFFINE:
        utm = calibration.utm_calibration
        easting, northing = wgs84_to_utm(lat, lon, utm.zone)
        return utm.utm_to_pixel.apply(easting, northing)

    points = calibration.correspondences
    src = [(p.longitude, p.latitude) for p in points]
    dst = [(p.pixel_x, p.pixel_y) for p in points]
    transform = fit_affine(src, dst)
    if transform is None:
        return 0.0, 0.0
    return transform.apply(lon, lat)


def utm_bilinear_quad(utm: UtmCalibration) -> BilinearQuad:
    """Pixel -> (easting, northing) quad over the stored image corners."""
    corners = utm.bilinear_corners
    ordered = [corners.top_left, corners.top_right, corners.bottom_right, corners.bottom_left]
    return BilinearQuad.from_points(
        [(c.px, c.py) for c in ordered],
        [(c.easting, c.northing) for c in ordered],
    )


def _utm_to_geo(utm_xy: Tuple[float, float], utm: UtmCalibration) -> GeoPoint:
    # UTM calibrations carry no hemisphere; grids are read as northern.
    lat, lon = utm_to_wgs84(utm_xy[0], utm_xy[1], utm.zone, False)
    return GeoPoint(lat=lat, lon=lon)
