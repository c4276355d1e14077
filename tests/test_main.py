import pytest

import main


def test_info(ozf2_path, capsys):
    assert main.main(["info", str(ozf2_path)]) == 0

    out = capsys.readouterr().out
    assert "Test Map" in out
    assert "EPSG:4326" in out
    assert "pixel->geo affine" in out


def test_pixel_to_geo(ozf2_path, capsys):
    assert main.main(["pixel-to-geo", str(ozf2_path), "64", "64"]) == 0

    lat, lon = map(float, capsys.readouterr().out.split())
    assert lat == pytest.approx(47.25)
    assert lon == pytest.approx(8.5)


def test_geo_to_pixel(ozf2_path, capsys):
    assert main.main(["geo-to-pixel", str(ozf2_path), "47.25", "8.5"]) == 0

    x, y = map(float, capsys.readouterr().out.split())
    assert (x, y) == pytest.approx((64.0, 64.0), abs=0.01)


def test_extract_tile(ozf2_path, tile_blocks, tmp_path):
    output = tmp_path / "tile.raw"

    assert main.main(["extract-tile", str(ozf2_path), "1", "0", "-o", str(output)]) == 0

    assert output.read_bytes() == tile_blocks[1]


def test_extract_missing_tile(ozf2_path, tmp_path):
    assert main.main(["extract-tile", str(ozf2_path), "9", "9", "-o", str(tmp_path / "t.raw")]) == 1


def test_unloadable_map_exits(tmp_path):
    with pytest.raises(SystemExit):
        main.main(["info", str(tmp_path / "missing.ozf2")])


def test_download(tmp_path, mocker, capsys):
    session = mocker.Mock()
    session.get.return_value = mocker.Mock(status_code=200, content=b"png")
    mocker.patch("tile_downloader.requests.Session", return_value=session)
    mocker.patch("tile_downloader.time.sleep")
    mocker.patch("main.signal.signal")

    code = main.main(["download", "Lake", "47.4", "47.1", "8.9", "8.4",
                      "--min-zoom", "0", "--max-zoom", "1", "--output-dir", str(tmp_path)])

    assert code == 0
    assert (tmp_path / "lake-z0-1" / "0" / "0" / "0.png").read_bytes() == b"png"
    assert "Tiles saved to" in capsys.readouterr().out
