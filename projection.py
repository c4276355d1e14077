"""Transverse Mercator projection between UTM grid and WGS84 coordinates.

Closed-form Snyder series on the WGS84 ellipsoid, matching the values
OziExplorer writes into UTM-calibrated .map files.  Zones are not
validated: any integer zone yields its (possibly meaningless) central
meridian.

Northing for the southern hemisphere carries the 10 000 000 m false
northing in the grid; utm_to_wgs84 removes it when southern=True, and
wgs84_to_utm never adds it.
"""

import math
from typing import Tuple

WGS84_A = 6378137.0
WGS84_F = 1 / 298.257223563
UTM_K0 = 0.9996
FALSE_EASTING = 500000.0
FALSE_NORTHING_SOUTH = 10000000.0


def central_meridian(zone: int) -> float:
    """Longitude (degrees) of the central meridian of a UTM zone."""
    return (zone - 1) * 6 - 180 + 3


def zone_for_longitude(lon: float) -> int:
    """Standard 6-degree UTM zone number containing *lon*."""
    return int(math.floor((lon + 180) / 6)) % 60 + 1


def wgs84_to_utm(lat: float, lon: float, zone: int) -> Tuple[float, float]:
    """Project WGS84 lat/lon (degrees) into UTM *zone*.

    Returns:
        (easting, northing) in metres.  Northing is negative south of the
        equator since no false northing is applied.
    """
    a = WGS84_A
    f = WGS84_F
    k0 = UTM_K0
    e2 = 2 * f - f * f
    ep2 = e2 / (1 - e2)

    lat_rad = math.radians(lat)
    lon0_rad = math.radians(central_meridian(zone))
    lon_rad = math.radians(lon)

    sin_lat = math.sin(lat_rad)
    cos_lat = math.cos(lat_rad)
    tan_lat = math.tan(lat_rad)

    n = a / math.sqrt(1 - e2 * sin_lat * sin_lat)
    t = tan_lat * tan_lat
    c = ep2 * cos_lat * cos_lat
    big_a = cos_lat * (lon_rad - lon0_rad)

    m = a * ((1 - e2 / 4 - 3 * e2 * e2 / 64 - 5 * e2 * e2 * e2 / 256) * lat_rad
             - (3 * e2 / 8 + 3 * e2 * e2 / 32 + 45 * e2 * e2 * e2 / 1024) * math.sin(2 * lat_rad)
             + (15 * e2 * e2 / 256 + 45 * e2 * e2 * e2 / 1024) * math.sin(4 * lat_rad)
             - (35 * e2 * e2 * e2 / 3072) * math.sin(6 * lat_rad))

    easting = k0 * n * (big_a
                        + (1 - t + c) * big_a ** 3 / 6
                        + (5 - 18 * t + t * t + 72 * c - 58 * ep2) * big_a ** 5 / 120) + FALSE_EASTING

    northing = k0 * (m + n * tan_lat * (big_a ** 2 / 2
                                        + (5 - t + 9 * c + 4 * c * c) * big_a ** 4 / 24
                                        + (61 - 58 * t + t * t + 600 * c - 330 * ep2) * big_a ** 6 / 720))

    return easting, northing


def utm_to_wgs84(
    easting: float,
    northing: float,
    zone: int,
    southern: bool = False,
) -> Tuple[float, float]:
    """Convert a UTM grid position to WGS84.

    Args:
        easting:  Easting in metres, including the 500 000 m false easting.
        northing: Northing in metres.
        zone:     UTM zone number (1-60, unchecked).
        southern: True when *northing* carries the southern false northing.

    Returns:
        (lat, lon) in decimal degrees.
    """
    a = WGS84_A
    f = WGS84_F
    k0 = UTM_K0
    e2 = 2 * f - f * f
    ep2 = e2 / (1 - e2)
    root = math.sqrt(1 - e2)
    e1 = (1 - root) / (1 + root)

    x = easting - FALSE_EASTING
    y = northing - FALSE_NORTHING_SOUTH if southern else northing

    # Footprint latitude
    m = y / k0
    mu = m / (a * (1 - e2 / 4 - 3 * e2 * e2 / 64 - 5 * e2 * e2 * e2 / 256))

    phi1 = (mu
            + (3 * e1 / 2 - 27 * e1 ** 3 / 32) * math.sin(2 * mu)
            + (21 * e1 ** 2 / 16 - 55 * e1 ** 4 / 32) * math.sin(4 * mu)
            + (151 * e1 ** 3 / 96) * math.sin(6 * mu)
            + (1097 * e1 ** 4 / 512) * math.sin(8 * mu))

    sin_phi1 = math.sin(phi1)
    cos_phi1 = math.cos(phi1)
    tan_phi1 = math.tan(phi1)

    n1 = a / math.sqrt(1 - e2 * sin_phi1 * sin_phi1)
    t1 = tan_phi1 * tan_phi1
    c1 = ep2 * cos_phi1 * cos_phi1
    r1 = a * (1 - e2) / math.pow(1 - e2 * sin_phi1 * sin_phi1, 1.5)
    d = x / (n1 * k0)

    lat = phi1 - (n1 * tan_phi1 / r1) * (
        d ** 2 / 2
        - (5 + 3 * t1 + 10 * c1 - 4 * c1 * c1 - 9 * ep2) * d ** 4 / 24
        + (61 + 90 * t1 + 298 * c1 + 45 * t1 * t1 - 252 * ep2 - 3 * c1 * c1) * d ** 6 / 720
    )

    lon = central_meridian(zone) + math.degrees(
        (d
         - (1 + 2 * t1 + c1) * d ** 3 / 6
         + (5 - 2 * c1 + 28 * t1 - 3 * c1 * c1 + 8 * ep2 + 24 * t1 * t1) * d ** 5 / 120)
        / cos_phi1
    )

    return math.degrees(lat), lon
