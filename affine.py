"""Least-squares 2-D affine fitting from point correspondences.

Both fitters solve the 3x3 normal equations of each output axis with
Cramer's rule.  With exactly two correspondences the fit is axis-aligned
(no rotation or shear term).
"""

import logging
from typing import List, Optional, Sequence, Tuple

from models import AffineTransform, UtmCorrespondence

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

DET_EPSILON = 1e-10
# Minimum pixel delta between the two points of a UTM 2-point fit.
UTM_MIN_PIXEL_DELTA = 0.001


def fit_affine(src: Sequence[Point], dst: Sequence[Point]) -> Optional[AffineTransform]:
    """Fit the affine transform mapping *src* points onto *dst* points.

    Returns:
        The fitted AffineTransform, or None with fewer than two points.
        A singular 3+ point system falls back to the first two points.
    """
    n = len(src)
    if n < 2:
        return None

    if n == 2:
        return _fit_two_points(src[0], src[1], dst[0], dst[1])

    sum_sx = sum_sy = sum_sxsx = sum_sysy = sum_sxsy = 0.0
    sum_dxsx = sum_dxsy = sum_dx = 0.0
    sum_dysx = sum_dysy = sum_dy = 0.0

    for (sx, sy), (dx, dy) in zip(src, dst):
        sum_sx += sx
        sum_sy += sy
        sum_sxsx += sx * sx
        sum_sysy += sy * sy
        sum_sxsy += sx * sy
        sum_dxsx += dx * sx
        sum_dxsy += dx * sy
        sum_dx += dx
        sum_dysx += dy * sx
        sum_dysy += dy * sy
        sum_dy += dy

    # | sxsx  sxsy  sx | |a|   | dxsx |
    # | sxsy  sysy  sy | |b| = | dxsy |
    # | sx    sy    n  | |c|   | dx   |
    det = _normal_det(sum_sx, sum_sy, sum_sxsx, sum_sysy, sum_sxsy, n)
    if abs(det) < DET_EPSILON:
        logger.debug("Affine fit singular (det=%g), falling back to 2 points", det)
        return fit_affine(src[:2], dst[:2])

    a, b, c = _solve_axis(sum_sx, sum_sy, sum_sxsx, sum_sysy, sum_sxsy, n,
                          sum_dxsx, sum_dxsy, sum_dx, det)
    d, e, f = _solve_axis(sum_sx, sum_sy, sum_sxsx, sum_sysy, sum_sxsy, n,
                          sum_dysx, sum_dysy, sum_dy, det)
    return AffineTransform(a, b, c, d, e, f)


def fit_utm_affine(points: List[UtmCorrespondence]) -> AffineTransform:
    """Fit pixel -> (easting, northing) for a UTM-calibrated map.

    Unlike fit_affine a degenerate input yields the zero transform rather
    than a fallback; the caller detects it through the inverse determinant.
    """
    if len(points) == 2:
        p1, p2 = points
        d_px = p2.pixel_x - p1.pixel_x
        d_py = p2.pixel_y - p1.pixel_y
        d_e = p2.easting - p1.easting
        d_n = p2.northing - p1.northing

        if abs(d_px) > UTM_MIN_PIXEL_DELTA and abs(d_py) > UTM_MIN_PIXEL_DELTA:
            a_e = d_e / d_px
            c_e = p1.easting - a_e * p1.pixel_x
            b_n = d_n / d_py
            c_n = p1.northing - b_n * p1.pixel_y
            logger.info("UTM calibration from 2 points: %.4f m/px (x), %.4f m/px (y), zone %d",
                        a_e, b_n, p1.zone)
            return AffineTransform(a=a_e, b=0.0, c=c_e, d=0.0, e=b_n, f=c_n)

        logger.info("UTM calibration: both points share a pixel row or column, skipping")
        return AffineTransform()

    n = len(points)
    sum_px = sum_py = sum_pxpx = sum_pypy = sum_pxpy = 0.0
    sum_e_px = sum_e_py = sum_e = 0.0
    sum_n_px = sum_n_py = sum_n = 0.0

    for p in points:
        sum_px += p.pixel_x
        sum_py += p.pixel_y
        sum_pxpx += p.pixel_x * p.pixel_x
        sum_pypy += p.pixel_y * p.pixel_y
        sum_pxpy += p.pixel_x * p.pixel_y
        sum_e_px += p.easting * p.pixel_x
        sum_e_py += p.easting * p.pixel_y
        sum_e += p.easting
        sum_n_px += p.northing * p.pixel_x
        sum_n_py += p.northing * p.pixel_y
        sum_n += p.northing

    det = _normal_det(sum_px, sum_py, sum_pxpx, sum_pypy, sum_pxpy, n)
    if abs(det) <= DET_EPSILON:
        logger.info("UTM calibration: %d points are collinear, skipping", n)
        return AffineTransform()

    a_e, b_e, c_e = _solve_axis(sum_px, sum_py, sum_pxpx, sum_pypy, sum_pxpy, n,
                                sum_e_px, sum_e_py, sum_e, det)
    a_n, b_n, c_n = _solve_axis(sum_px, sum_py, sum_pxpx, sum_pypy, sum_pxpy, n,
                                sum_n_px, sum_n_py, sum_n, det)
    return AffineTransform(a=a_e, b=b_e, c=c_e, d=a_n, e=b_n, f=c_n)


def invert_affine(t: AffineTransform) -> Optional[AffineTransform]:
    """Inverse of *t*, or None when its linear part is singular."""
    det2 = t.a * t.e - t.b * t.d
    if abs(det2) <= DET_EPSILON:
        return None
    a = t.e / det2
    b = -t.b / det2
    d = -t.d / det2
    e = t.a / det2
    return AffineTransform(
        a=a,
        b=b,
        c=-(a * t.c + b * t.f),
        d=d,
        e=e,
        f=-(d * t.c + e * t.f),
    )


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _fit_two_points(s1: Point, s2: Point, d1: Point, d2: Point) -> AffineTransform:
    # An axis whose source points coincide has no defined ratio: zero it.
    dsx = s2[0] - s1[0]
    dsy = s2[1] - s1[1]
    ddx = d2[0] - d1[0]
    ddy = d2[1] - d1[1]

    a = c = 0.0
    if abs(dsx) >= DET_EPSILON:
        a = ddx / dsx
        c = d1[0] - s1[0] * a

    e = f = 0.0
    if abs(dsy) >= DET_EPSILON:
        e = ddy / dsy
        f = d1[1] - s1[1] * e

    return AffineTransform(a=a, b=0.0, c=c, d=0.0, e=e, f=f)


def _normal_det(sx, sy, sxsx, sysy, sxsy, n) -> float:
    return (sxsx * (sysy * n - sy * sy)
            - sxsy * (sxsy * n - sy * sx)
            + sx * (sxsy * sy - sysy * sx))


def _solve_axis(sx, sy, sxsx, sysy, sxsy, n, tsx, tsy, t, det) -> Tuple[float, float, float]:
    """Cramer's rule for one output axis; tsx/tsy/t are the target sums."""
    a = (tsx * (sysy * n - sy * sy) - tsy * (sxsy * n - sy * sx) + t * (sxsy * sy - sysy * sx)) / det
    b = (sxsx * (tsy * n - t * sy) - sxsy * (tsx * n - t * sx) + sx * (tsx * sy - tsy * sx)) / det
    c = (sxsx * (sysy * t - sy * tsy) - sxsy * (sxsy * t - sy * tsx) + sx * (sxsy * tsy - sysy * tsx)) / det
    return a, b, c
