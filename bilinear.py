"""Bilinear mapping between two quadrilaterals.

Corners are always given as topLeft, topRight, bottomRight, bottomLeft;
nothing checks that the source and destination corners actually
correspond.

The forward mapping assumes the source quadrilateral is axis-aligned
(pixel space) and normalises against its bounding box.  The inverse runs
Newton-Raphson on the destination blend and, in geographic use, expects
the destination y axis to be latitude (north on top).
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

MAX_ITERATIONS = 10
RESIDUAL_EPSILON = 1e-10
JACOBIAN_EPSILON = 1e-12


@dataclass(frozen=True)
class Quad:
    top_left: Point
    top_right: Point
    bottom_right: Point
    bottom_left: Point

    def blend(self, u: float, v: float) -> Point:
        """(1-u)(1-v)*TL + u(1-v)*TR + (1-u)v*BL + uv*BR"""
        tl, tr, br, bl = self.top_left, self.top_right, self.bottom_right, self.bottom_left
        x = ((1 - u) * (1 - v) * tl[0] + u * (1 - v) * tr[0]
             + (1 - u) * v * bl[0] + u * v * br[0])
        y = ((1 - u) * (1 - v) * tl[1] + u * (1 - v) * tr[1]
             + (1 - u) * v * bl[1] + u * v * br[1])
        return x, y


@dataclass(frozen=True)
class BilinearQuad:
    src: Quad
    dst: Quad

    @classmethod
    def from_points(cls, src: Sequence[Point], dst: Sequence[Point]) -> Optional["BilinearQuad"]:
        """Build from two 4-point lists in corner order; None unless both have 4."""
        if len(src) != 4 or len(dst) != 4:
            return None
        return cls(src=Quad(*src), dst=Quad(*dst))

    def normalize(self, x: float, y: float) -> Tuple[float, float]:
        """(u, v) of a source point against the source bounding box."""
        src = self.src
        min_x = min(src.top_left[0], src.bottom_left[0])
        max_x = max(src.top_right[0], src.bottom_right[0])
        min_y = min(src.top_left[1], src.top_right[1])
        max_y = max(src.bottom_left[1], src.bottom_right[1])
        u = (x - min_x) / ((max_x - min_x) or 1)
        v = (y - min_y) / ((max_y - min_y) or 1)
        return u, v

    def transform(self, x: float, y: float) -> Point:
        """Map a source point into the destination quad."""
        u, v = self.normalize(x, y)
        return self.dst.blend(u, v)

    def solve_uv(self, x: float, y: float) -> Tuple[float, float]:
        """Find (u, v) whose destination blend is (x, y)."""
        dst = self.dst
        tl, tr, br, bl = dst.top_left, dst.top_right, dst.bottom_right, dst.bottom_left

        # Initial guess: u along longitude (west -> east), v from north down.
        left = (tl[0] + bl[0]) / 2
        right = (tr[0] + br[0]) / 2
        u = (x - left) / ((right - left) or 1)

        top = (tl[1] + tr[1]) / 2
        bottom = (bl[1] + br[1]) / 2
        v = (top - y) / ((top - bottom) or 1)

        u = max(0.0, min(1.0, u))
        v = max(0.0, min(1.0, v))

        for _ in range(MAX_ITERATIONS):
            bx, by = dst.blend(u, v)
            fx = bx - x
            fy = by - y
            if abs(fx) < RESIDUAL_EPSILON and abs(fy) < RESIDUAL_EPSILON:
                break

            dfx_du = -(1 - v) * tl[0] + (1 - v) * tr[0] - v * bl[0] + v * br[0]
            dfx_dv = -(1 - u) * tl[0] - u * tr[0] + (1 - u) * bl[0] + u * br[0]
            dfy_du = -(1 - v) * tl[1] + (1 - v) * tr[1] - v * bl[1] + v * br[1]
            dfy_dv = -(1 - u) * tl[1] - u * tr[1] + (1 - u) * bl[1] + u * br[1]

            det = dfx_du * dfy_dv - dfx_dv * dfy_du
            if abs(det) < JACOBIAN_EPSILON:
                logger.debug("Degenerate quad Jacobian at u=%g v=%g", u, v)
                break

            u -= (dfy_dv * fx - dfx_dv * fy) / det
            v -= (-dfy_du * fx + dfx_du * fy) / det

        return u, v

    def inverse_transform(self, x: float, y: float) -> Point:
        """Map a destination point back into the source quad."""
        u, v = self.solve_uv(x, y)
        return self.src.blend(u, v)
