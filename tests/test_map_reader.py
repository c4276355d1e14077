import pytest

from coord_transformer import pixel_to_geo
from map_reader import (
    BOUNDS_STRATEGIES,
    bounds_from_mmpxy_synthesis,
    build_utm_calibration,
    parse_map_file,
    parse_map_text,
    parse_point_line,
    resolve_bounds,
)
from models import CorrespondencePoint, GeoPoint, MapCalibration, UtmCorrespondence
from projection import utm_to_wgs84

MMPXY = [(0, 0), (1000, 0), (1000, 800), (0, 800)]
# (lon, lat), as written on MMPLL lines
MMPLL = [(8.0, 47.5), (9.0, 47.5), (9.0, 47.0), (8.0, 47.0)]


class TestParsePointLine:
    def test_degrees_minutes_seconds(self):
        line = "Point01,xy,  100,  200,in, deg,  47, 30,0.0,N,   8, 15,0.0,E, grid,   ,   ,   ,N"

        point, utm = parse_point_line(line)

        assert (point.pixel_x, point.pixel_y) == (100, 200)
        assert point.latitude == pytest.approx(47.5)
        assert point.longitude == pytest.approx(8.25)
        assert utm is None

    def test_south_and_west_are_negative(self):
        line = "Point02,xy,  100,  200,in, deg,  33, 54,36.0,S,  70, 39,0.0,W, grid,   ,   ,   ,S"

        point, _ = parse_point_line(line)

        assert point.latitude == pytest.approx(-33.91)
        assert point.longitude == pytest.approx(-70.65)

    def test_grid_reference_is_converted(self, sidecar):
        point, utm = parse_point_line(sidecar.utm_point(1, 10, 20, 33, 412345.0, 5301234.0))

        lat, lon = utm_to_wgs84(412345.0, 5301234.0, 33)
        assert utm == UtmCorrespondence(pixel_x=10, pixel_y=20, easting=412345.0, northing=5301234.0, zone=33)
        assert point.latitude == pytest.approx(lat)
        assert point.longitude == pytest.approx(lon)

    def test_southern_grid_reference(self, sidecar):
        point, utm = parse_point_line(sidecar.utm_point(1, 10, 20, 34, 261000.0, 6244000.0, "S"))

        assert utm.zone == 34
        assert point.latitude < 0

    def test_degrees_win_over_grid(self):
        line = "Point03,xy,  5,  6,in, deg,  47, 0,0.0,N,   8, 0,0.0,E, grid, 32,500000.0,5205000.0,N"

        point, utm = parse_point_line(line)

        assert (point.latitude, point.longitude) == (47.0, 8.0)
        assert utm.zone == 32

    @pytest.mark.parametrize("line", [
        "Point01,xy,100,200,in,deg,47,30",
        "Point01,xy,,,in,deg,,,,,N,,,,,E,grid,,,,,N",
        "Point01,xy,abc,200,in, deg,  47, 30,0.0,N,   8, 15,0.0,E, grid,   ,   ,   ,N",
        "Point01,xy,  100,  200,in, deg,   0,  0,0.0,N,   0,  0,0.0,E, grid,   ,   ,   ,N",
    ])
    def test_unusable_lines(self, line):
        assert parse_point_line(line) is None


class TestParseMapText:
    def test_header_fields(self, sidecar):
        cal = parse_map_text(sidecar.text(size=(1000, 800)), filename="test.map")

        assert cal.filename == "test.map"
        assert cal.title == "Test Map"
        assert cal.image_path == "test.bmp"
        assert cal.datum == "WGS 84"
        assert cal.projection == "Latitude/Longitude"
        assert (cal.image_width, cal.image_height) == (1000, 800)

    def test_two_points_with_image_size(self, sidecar):
        text = sidecar.text(
            points=[sidecar.dms_point(1, 0, 0, 47.5, 8.0), sidecar.dms_point(2, 1000, 800, 47.0, 9.0)],
            size=(1000, 800),
        )

        cal = parse_map_text(text)

        assert len(cal.correspondences) == 2
        assert cal.utm_calibration is None
        assert cal.bounds.north == pytest.approx(47.5)
        assert cal.bounds.south == pytest.approx(47.0)
        assert cal.bounds.west == pytest.approx(8.0)
        assert cal.bounds.east == pytest.approx(9.0)
        assert cal.corner_points.top_left == pixel_to_geo(0, 0, cal)
        origin = pixel_to_geo(0, 0, cal)
        assert (origin.lat, origin.lon) == pytest.approx((cal.bounds.north, cal.bounds.west))
        centre = pixel_to_geo(500, 400, cal)
        assert (centre.lat, centre.lon) == pytest.approx((47.25, 8.5))

    def test_mmpll_quad_sets_corners(self, sidecar):
        text = sidecar.text(
            points=[
                sidecar.dms_point(1, 10, 10, 47.49, 8.01),
                sidecar.dms_point(2, 990, 20, 47.48, 8.99),
                sidecar.dms_point(3, 500, 790, 47.01, 8.5),
            ],
            mmpxy=MMPXY,
            mmpll=MMPLL,
            size=(1000, 800),
        )

        cal = parse_map_text(text)

        assert len(cal.correspondences) == 3
        assert cal.corner_points.as_list() == [GeoPoint(lat=lat, lon=lon) for lon, lat in MMPLL]
        assert (cal.bounds.north, cal.bounds.south, cal.bounds.east, cal.bounds.west) == (47.5, 47.0, 9.0, 8.0)

    def test_corner_tags_without_points(self, sidecar):
        cal = parse_map_text(sidecar.text(mmpxy=MMPXY, mmpll=MMPLL, size=(1000, 800)))

        assert cal.correspondences == []
        assert cal.corner_points.as_list() == [GeoPoint(lat=lat, lon=lon) for lon, lat in MMPLL]

    def test_mmpll_without_mmpxy(self, sidecar):
        cal = parse_map_text(sidecar.text(mmpll=MMPLL))

        assert cal.corner_points.top_right == GeoPoint(lat=47.5, lon=9.0)
        assert cal.bounds.north == 47.5
        assert cal.bounds.west == 8.0

    def test_points_without_image_size_use_envelope(self, sidecar):
        text = sidecar.text(points=[sidecar.dms_point(1, 0, 0, 47.5, 8.0), sidecar.dms_point(2, 10, 10, 47.0, 9.0)])

        cal = parse_map_text(text)

        assert cal.corner_points is None
        assert cal.bounds.north == pytest.approx(47.5)
        assert cal.bounds.east == pytest.approx(9.0)

    def test_nothing_usable_keeps_default_bounds(self, sidecar, mocker):
        warning = mocker.patch("map_reader.logger.warning")

        cal = parse_map_text(sidecar.text())

        warning.assert_called_once()
        assert cal.corner_points is None
        assert (cal.bounds.north, cal.bounds.south) == (-90.0, 90.0)

    def test_garbage_does_not_raise(self):
        text = "\n".join([
            "OziExplorer Map Data File Version 2.2", "t", "i.bmp", "1 ,Map Code,", "WGS 84",
            "Point01,garbage",
            "Point02,xy,a,b,c,d,e,f,g,h,i,j,k,l,m,n,o,p",
            "IWH,x",
            "IWH,Map Image Width/Height,abc,def",
            "MMPLL,1,foo",
            "MMPXY,1",
            "Map Projection,",
        ])

        cal = parse_map_text(text)

        assert cal.correspondences == []
        assert cal.projection == "Latitude/Longitude"

    def test_lf_line_endings(self, sidecar):
        text = sidecar.text(size=(640, 480)).replace("\r\n", "\n")

        cal = parse_map_text(text)

        assert cal.title == "Test Map"
        assert (cal.image_width, cal.image_height) == (640, 480)


class TestUtmMaps:
    def test_utm_calibration_is_built(self, utm_map_text):
        cal = parse_map_text(utm_map_text)

        utm = cal.utm_calibration
        assert utm.zone == 33
        assert utm.pixel_to_utm.apply(1000, 750) == pytest.approx((420000.0, 5285000.0))
        assert utm.utm_to_pixel.apply(420000.0, 5285000.0) == pytest.approx((1000.0, 750.0))
        corners = utm.bilinear_corners
        assert (corners.bottom_right.px, corners.bottom_right.py) == (2000, 1500)
        assert corners.bottom_right.easting == pytest.approx(440000.0)

    def test_centre_lies_within_bounds(self, utm_map_text):
        cal = parse_map_text(utm_map_text)

        centre = pixel_to_geo(1000, 750, cal)

        assert cal.utm_calibration.zone == 33
        assert cal.bounds.contains(centre.lat, centre.lon)

    def test_bounds_match_pixel_to_geo_exactly(self, utm_map_text):
        cal = parse_map_text(utm_map_text)

        corners = cal.corner_points
        assert corners.top_left == pixel_to_geo(0, 0, cal)
        assert corners.top_right == pixel_to_geo(2000, 0, cal)
        assert corners.bottom_right == pixel_to_geo(2000, 1500, cal)
        assert corners.bottom_left == pixel_to_geo(0, 1500, cal)
        assert cal.bounds == corners.envelope()

    def test_utm_wins_over_mmpll(self, sidecar):
        text = sidecar.text(
            points=[
                sidecar.utm_point(1, 0, 0, 33, 400000.0, 5300000.0),
                sidecar.utm_point(2, 2000, 1500, 33, 440000.0, 5270000.0),
            ],
            mmpxy=[(0, 0), (2000, 0), (2000, 1500), (0, 1500)],
            mmpll=[(1.0, 1.0), (2.0, 1.0), (2.0, 0.0), (1.0, 0.0)],
            size=(2000, 1500),
        )

        cal = parse_map_text(text)

        assert cal.utm_calibration is not None
        assert cal.bounds.north > 47.0

    def test_mixed_zones_are_ignored(self, sidecar):
        text = sidecar.text(
            points=[
                sidecar.utm_point(1, 0, 0, 32, 700000.0, 5300000.0),
                sidecar.utm_point(2, 2000, 1500, 33, 300000.0, 5270000.0),
            ],
            size=(2000, 1500),
        )

        cal = parse_map_text(text)

        assert cal.utm_calibration is None
        assert len(cal.correspondences) == 2

    def test_singular_grid_is_not_stored(self):
        points = [
            UtmCorrespondence(0, 100, 400000.0, 5300000.0, 33),
            UtmCorrespondence(2000, 100, 440000.0, 5300000.0, 33),
        ]

        assert build_utm_calibration(points, 2000, 1500) is None

    def test_no_corners_without_image_size(self):
        points = [
            UtmCorrespondence(0, 0, 400000.0, 5300000.0, 33),
            UtmCorrespondence(2000, 1500, 440000.0, 5270000.0, 33),
        ]

        utm = build_utm_calibration(points, 0, 0)

        assert utm.bilinear_corners is None

    def test_needs_two_points(self):
        assert build_utm_calibration([UtmCorrespondence(0, 0, 400000.0, 5300000.0, 33)], 10, 10) is None


class TestBoundsStrategies:
    def test_order(self):
        assert [s.__name__ for s in BOUNDS_STRATEGIES] == [
            "bounds_from_utm",
            "bounds_from_mmpll_quad",
            "bounds_from_mmpxy_synthesis",
            "bounds_from_mmpll",
            "bounds_from_points",
            "bounds_from_point_envelope",
        ]

    def test_mmpxy_synthesis_replaces_correspondences(self):
        cal = MapCalibration(
            correspondences=[CorrespondencePoint(i, i, 47.0, 8.0) for i in range(3)],
            image_width=1000,
            image_height=800,
        )
        mmpll = [GeoPoint(lat=lat, lon=lon) for lon, lat in MMPLL]

        resolution = bounds_from_mmpxy_synthesis(cal, mmpll, MMPXY)

        assert resolution.strategy == "mmpxy+mmpll"
        assert [(p.pixel_x, p.pixel_y) for p in resolution.correspondences] == MMPXY
        assert resolution.correspondences[2].latitude == 47.0
        assert resolution.correspondences[2].longitude == 9.0

    def test_resolve_returns_none_without_data(self):
        assert resolve_bounds(MapCalibration(), [], []) is None


class TestParseMapFile:
    def test_reads_file(self, tmp_path, sidecar):
        path = tmp_path / "chart.map"
        path.write_text(sidecar.text(size=(100, 50)), encoding="utf-8")

        cal = parse_map_file(str(path))

        assert cal.filename == "chart.map"
        assert cal.image_width == 100

    def test_undecodable_bytes_are_replaced(self, tmp_path, sidecar):
        path = tmp_path / "latin1.map"
        path.write_bytes(sidecar.text(size=(100, 50)).replace("Test Map", "Zürich").encode("latin-1"))

        cal = parse_map_file(str(path))

        assert cal.title.startswith("Z")
        assert cal.image_height == 50

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            parse_map_file(str(tmp_path / "missing.map"))
