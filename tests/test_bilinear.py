import pytest

from bilinear import BilinearQuad, Quad

PIXELS = [(0.0, 0.0), (100.0, 0.0), (100.0, 80.0), (0.0, 80.0)]
# Slightly non-rectangular lon/lat quad, north on top.
GEO = [(8.0, 47.5), (9.02, 47.48), (9.0, 46.99), (7.99, 47.01)]


@pytest.fixture
def quad():
    return BilinearQuad.from_points(PIXELS, GEO)


def test_from_points_needs_four_corners():
    assert BilinearQuad.from_points(PIXELS[:3], GEO[:3]) is None
    assert BilinearQuad.from_points(PIXELS, GEO[:3]) is None


def test_corners_map_onto_corners(quad):
    for src, dst in zip(PIXELS, GEO):
        assert quad.transform(*src) == pytest.approx(dst, abs=1e-12)


def test_centre_is_average_of_corners(quad):
    lon, lat = quad.transform(50.0, 40.0)
    assert lon == pytest.approx(sum(g[0] for g in GEO) / 4)
    assert lat == pytest.approx(sum(g[1] for g in GEO) / 4)


@pytest.mark.parametrize("px,py", [(0.0, 0.0), (12.5, 70.0), (50.0, 40.0), (99.0, 1.0), (100.0, 80.0), (33.3, 66.6)])
def test_inverse_round_trip(quad, px, py):
    x, y = quad.inverse_transform(*quad.transform(px, py))
    assert x == pytest.approx(px, abs=1e-6)
    assert y == pytest.approx(py, abs=1e-6)


def test_normalize_guards_zero_width_source():
    flat = BilinearQuad(src=Quad((5, 0), (5, 0), (5, 10), (5, 10)), dst=Quad(*GEO))
    assert flat.normalize(5, 5) == (0.0, 0.5)


def test_degenerate_destination_does_not_raise():
    collapsed = BilinearQuad(src=Quad(*PIXELS), dst=Quad((1.0, 1.0), (1.0, 1.0), (1.0, 1.0), (1.0, 1.0)))
    x, y = collapsed.inverse_transform(2.0, 2.0)
    assert 0.0 <= x <= 100.0 and 0.0 <= y <= 80.0
