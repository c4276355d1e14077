"""Describe the coordinate reference system a calibrated map is drawn in.

Strategy (in priority order):
  1. UTM calibration  -> EPSG:326zz (WGS 84 / UTM zone zzN)
  2. WGS 84 datum     -> EPSG:4326
  3. anything else    -> only the datum and projection strings from the sidecar

pyproj supplies the names; it needs no network access.  Lookup failures
leave fields empty instead of raising.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from models import MapCalibration

logger = logging.getLogger(__name__)

WGS84_EPSG = 4326
UTM_NORTH_EPSG_BASE = 32600


@dataclass
class CRSMetadata:
    """CRS identification strings of a map."""
    crs_name: str = ""
    epsg: Optional[int] = None
    geodetic_datum: str = ""
    map_projection: str = ""
    map_zone: str = ""


def utm_epsg(zone: int, southern: bool = False) -> int:
    """EPSG code of WGS 84 / UTM *zone*."""
    return UTM_NORTH_EPSG_BASE + (100 if southern else 0) + zone


def from_calibration(calibration: MapCalibration) -> CRSMetadata:
    """Return CRS metadata for *calibration*."""
    if calibration.utm_calibration is not None:
        meta = from_epsg(utm_epsg(calibration.utm_calibration.zone))
    elif _is_wgs84(calibration.datum):
        meta = from_epsg(WGS84_EPSG)
    else:
        meta = CRSMetadata()

    if not meta.geodetic_datum:
        meta.geodetic_datum = calibration.datum
    if not meta.map_projection:
        meta.map_projection = calibration.projection
    return meta


def from_epsg(code: int) -> CRSMetadata:
    """Extract CRS metadata for an EPSG code using pyproj."""
    try:
        from pyproj import CRS
        crs = CRS.from_epsg(code)
    except Exception as exc:
        logger.debug("pyproj could not resolve EPSG:%s: %s", code, exc)
        return CRSMetadata()

    meta = CRSMetadata(crs_name=crs.name or "", epsg=code)

    # Geodetic datum - works for projected and geographic CRSs
    geodetic = getattr(crs, "geodetic_crs", None) or crs
    datum = getattr(geodetic, "datum", None)
    if datum is not None:
        meta.geodetic_datum = datum.name or ""

    # Map projection + zone - only meaningful for projected CRSs
    op = getattr(crs, "coordinate_operation", None)
    if op is not None:
        meta.map_projection = getattr(op, "method_name", None) or ""
        meta.map_zone = _extract_zone(getattr(op, "name", None) or "", crs.name or "")

    return meta


def _is_wgs84(datum: str) -> bool:
    return re.sub(r"[\s_-]", "", datum).upper() == "WGS84"


def _extract_zone(op_name: str, crs_name: str = "") -> str:
    """Heuristically extract a zone string from an operation or CRS name.

    Examples handled:
      "UTM zone 33N"    -> "33N"
      "zone 6"          -> "6"
    """
    for name in (op_name, crs_name):
        m = re.search(r"\bzone\s*(\d+[A-Z]?)", name, re.IGNORECASE)
        if m:
            return m.group(1)
    return ""
