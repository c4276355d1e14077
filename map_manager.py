"""Registry of the maps loaded in this process, keyed by map id."""

import dataclasses
import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from coord_transformer import CalibrationDiagnostics, geo_to_pixel, pixel_to_geo
from map_loader import LoadedMap, load_map
from map_reader import image_corners
from map_writer import write_map_file
from models import CorrespondencePoint, GeoPoint
from settings import settings
from tiles import Tile, tiles_for_bounds

logger = logging.getLogger(__name__)


class MapManager:
    """Keeps loaded maps and answers coordinate queries by map id."""

    def __init__(self, maps_dir: Optional[Path] = None, diagnostics: Optional[CalibrationDiagnostics] = None):
        self.maps_dir = Path(maps_dir) if maps_dir is not None else settings.MAPS_DIR
        self.diagnostics = diagnostics or CalibrationDiagnostics()
        self._maps: Dict[str, LoadedMap] = {}
        self._lock = threading.Lock()

    # -- registry -----------------------------------------------------------

    def add_map(self, ozf_path: str) -> Optional[LoadedMap]:
        loaded = load_map(ozf_path)
        if loaded is None:
            return None
        with self._lock:
            previous = self._maps.get(loaded.id)
            if previous is not None:
                return previous
            self._maps[loaded.id] = loaded
        logger.info("Loaded map %s (%s)", loaded.name, loaded.id)
        return loaded

    def register(self, loaded: LoadedMap) -> LoadedMap:
        with self._lock:
            self._maps[loaded.id] = loaded
        return loaded

    def get_map(self, map_id: str) -> Optional[LoadedMap]:
        with self._lock:
            return self._maps.get(map_id)

    def get_map_list(self) -> List[LoadedMap]:
        with self._lock:
            return list(self._maps.values())

    def remove_map(self, map_id: str) -> bool:
        with self._lock:
            loaded = self._maps.pop(map_id, None)
        if loaded is None:
            return False
        loaded.close()
        return True

    # -- coordinates --------------------------------------------------------

    def pixel_to_geo(self, map_id: str, x: float, y: float) -> Optional[GeoPoint]:
        loaded = self.get_map(map_id)
        if loaded is None:
            return None
        return pixel_to_geo(x, y, loaded.calibration)

    def geo_to_pixel(self, map_id: str, lat: float, lon: float) -> Optional[Tuple[float, float]]:
        loaded = self.get_map(map_id)
        if loaded is None:
            return None
        return geo_to_pixel(lat, lon, loaded.calibration, self.diagnostics)

    def geo_to_display_coord(self, map_id: str, lat: float, lon: float) -> Optional[GeoPoint]:
        """Position of a WGS84 point on the map drawn as a plain lat/lon rectangle.

        The map image is stretched linearly over its bounds when displayed,
        so the true position goes WGS84 -> pixel -> linear over bounds.
        """
        loaded = self.get_map(map_id)
        if loaded is None:
            return None
        cal = loaded.calibration
        x, y = geo_to_pixel(lat, lon, cal, self.diagnostics)
        u = x / cal.image_width if cal.image_width else 0.0
        v = y / cal.image_height if cal.image_height else 0.0
        b = cal.bounds
        return GeoPoint(lat=b.north - v * (b.north - b.south), lon=b.west + u * (b.east - b.west))

    def covers_area(self, map_id: str, lat: float, lon: float) -> bool:
        loaded = self.get_map(map_id)
        if loaded is None:
            return False
        return loaded.calibration.bounds.contains(lat, lon)

    def find_maps_for_location(self, lat: float, lon: float) -> List[LoadedMap]:
        return [m for m in self.get_map_list() if m.calibration.bounds.contains(lat, lon)]

    def tiles_for_map(self, map_id: str, min_zoom: int, max_zoom: int) -> List[Tile]:
        """Web-mercator tiles covering a map, e.g. to pre-render or fetch them."""
        loaded = self.get_map(map_id)
        if loaded is None:
            return []
        return tiles_for_bounds(loaded.calibration.bounds, min_zoom, max_zoom)

    # -- calibration --------------------------------------------------------

    def update_calibration(self, map_id: str, points: Sequence[CorrespondencePoint]) -> bool:
        """Replace a map's correspondences, recompute its bounds and save the sidecar.

        The loaded map is only changed once the sidecar has been written.
        """
        loaded = self.get_map(map_id)
        if loaded is None:
            logger.error("Map %s not found", map_id)
            return False
        if len(points) < 2:
            logger.error("At least 2 calibration points are required, got %d", len(points))
            return False

        cal = dataclasses.replace(loaded.calibration, correspondences=list(points))
        corners = image_corners(cal)
        cal.corner_points = corners
        cal.bounds = corners.envelope()

        map_path = loaded.map_path or str(self.maps_dir / map_id / "calibration.map")
        try:
            if not loaded.map_path:
                os.makedirs(os.path.dirname(map_path), exist_ok=True)
            write_map_file(map_path, cal, name=loaded.name,
                           image_file=os.path.basename(cal.image_path) if cal.image_path else "")
        except (OSError, RuntimeError) as exc:
            logger.error("Saving calibration of %s failed: %s", loaded.name, exc)
            return False

        loaded.calibration = cal
        loaded.map_path = map_path
        logger.info("New bounds for %s: %s", loaded.name, cal.bounds)
        return True


_manager: Optional[MapManager] = None


def get_map_manager() -> MapManager:
    global _manager
    if _manager is None:
        _manager = MapManager()
    return _manager
