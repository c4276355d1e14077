"""Load an OZF container together with its .map calibration.

A LoadedMap owns the open container and the cache of decoded 64x64
tiles.  Cache writes happen under a lock; two threads missing the same
tile may both decode it, but only one result is stored.
"""

import hashlib
import logging
import math
import os
import re
import threading
from typing import Dict, Iterable, Optional, Tuple

from errors import OzfError
from map_reader import parse_map_file
from models import MapCalibration
from ozf_container import TILE_SIZE, ContainerHandle, extract_tile, open_container, read_header

logger = logging.getLogger(__name__)

_OZF_SUFFIX_RE = re.compile(r"\.ozf(?:x3|x|2|3)?$", re.IGNORECASE)

TileKey = Tuple[int, int]


def map_id_for_path(ozf_path: str) -> str:
    """Stable id of a container: md5 of its lower-cased path, 16 hex digits."""
    return hashlib.md5(ozf_path.lower().encode("utf-8")).hexdigest()[:16]


def find_map_file(ozf_path: str) -> Optional[str]:
    """Locate the .map sidecar next to *ozf_path*, or None."""
    directory = os.path.dirname(ozf_path)
    base = _OZF_SUFFIX_RE.sub("", os.path.basename(ozf_path))
    candidates = [
        os.path.join(directory, base + ".map"),
        os.path.join(directory, base + ".MAP"),
        os.path.join(directory, base.lower() + ".map"),
        os.path.join(directory, base.upper() + ".MAP"),
    ]
    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate
    return None


def tile_range_for_pixels(left: float, top: float, right: float, bottom: float) -> Tuple[int, int, int, int]:
    """Container tiles covering a pixel window, as (x0, y0, x1, y1) with exclusive ends."""
    return (
        math.floor(left / TILE_SIZE),
        math.floor(top / TILE_SIZE),
        math.ceil(right / TILE_SIZE),
        math.ceil(bottom / TILE_SIZE),
    )


class LoadedMap:
    """A calibrated map backed by its tile container."""

    def __init__(self, map_id: str, name: str, calibration: MapCalibration, ozf_path: str, map_path: str):
        self.id = map_id
        self.name = name
        self.calibration = calibration
        self.ozf_path = ozf_path
        self.map_path = map_path
        self._tiles: Dict[TileKey, bytes] = {}
        self._lock = threading.Lock()
        self._handle: Optional[ContainerHandle] = None

    def __repr__(self):
        return f"LoadedMap(id={self.id!r}, name={self.name!r}, ozf_path={self.ozf_path!r})"

    def _container(self) -> ContainerHandle:
        with self._lock:
            if self._handle is None or self._handle.closed:
                self._handle = open_container(self.ozf_path)
            return self._handle

    def get_tile(self, tile_x: int, tile_y: int) -> Optional[bytes]:
        """Decoded tile payload, from cache when possible; None if it cannot be decoded."""
        key = (tile_x, tile_y)
        with self._lock:
            cached = self._tiles.get(key)
        if cached is not None:
            return cached

        try:
            handle = self._container()
        except (OzfError, OSError) as exc:
            logger.warning("Cannot open container %s: %s", self.ozf_path, exc)
            return None

        data = extract_tile(handle, tile_x, tile_y)
        if data is None:
            return None
        with self._lock:
            return self._tiles.setdefault(key, data)

    def extract_tiles(
        self,
        coords: Iterable[TileKey],
        abort: Optional[threading.Event] = None,
    ) -> Dict[TileKey, bytes]:
        """Decode several tiles; stops before the next tile once *abort* is set."""
        result = {}
        for tile_x, tile_y in coords:
            if abort is not None and abort.is_set():
                logger.info("Tile extraction for %s aborted after %d tiles", self.name, len(result))
                break
            data = self.get_tile(tile_x, tile_y)
            if data is not None:
                result[(tile_x, tile_y)] = data
        return result

    def cached_tile_count(self) -> int:
        with self._lock:
            return len(self._tiles)

    def clear_tile_cache(self) -> None:
        with self._lock:
            self._tiles.clear()

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None


def load_map(ozf_path: str) -> Optional[LoadedMap]:
    """Load a container and its sidecar.

    Returns None (and logs why) when the container header is unreadable or
    no sidecar exists.
    """
    try:
        header = read_header(ozf_path)
    except (OzfError, OSError) as exc:
        logger.error("Could not read OZF header of %s: %s", ozf_path, exc)
        return None

    map_path = find_map_file(ozf_path)
    if map_path is None:
        logger.error("No .map calibration file found for %s", ozf_path)
        return None

    calibration = parse_map_file(map_path)
    calibration.image_width = header.width
    calibration.image_height = header.height

    name = calibration.title or os.path.splitext(os.path.basename(ozf_path))[0]
    return LoadedMap(
        map_id=map_id_for_path(ozf_path),
        name=name,
        calibration=calibration,
        ozf_path=ozf_path,
        map_path=map_path,
    )
