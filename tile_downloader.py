"""Download web-mercator tile pyramids of a region for offline use.

Tiles land in a folder tree that can be served as-is by any static tile
server:

    <download_dir>/<region-slug>-z<min>-<max>/<z>/<x>/<y>.png

Requests are spaced by REQUEST_DELAY_S (2 per second by default, the
OpenStreetMap tile usage policy).  The abort flag is checked before each
tile.
"""

import json
import logging
import re
import shutil
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

import requests

from models import MapBounds
from settings import settings
from tiles import Tile, tiles_for_bounds

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 10
LOG_EVERY = 100


@dataclass
class DownloadProgress:
    total: int = 0
    downloaded: int = 0
    cached: int = 0
    failed: int = 0
    current_tile: str = ""
    bytes_downloaded: int = 0


@dataclass
class DownloadResult:
    success: bool
    output_path: Optional[str] = None
    error: Optional[str] = None
    progress: Optional[DownloadProgress] = None


@dataclass
class RegionInfo:
    name: str
    path: str
    size: int
    created: datetime


def region_slug(name: str, min_zoom: int, max_zoom: int) -> str:
    return f"{re.sub(r'[^a-z0-9]', '-', name.lower())}-z{min_zoom}-{max_zoom}"


class RegionDownloader:
    """Fetches every tile of a bounding box over a zoom range."""

    def __init__(
        self,
        output_dir: Optional[Path] = None,
        session: Optional[requests.Session] = None,
        url_template: Optional[str] = None,
        subdomains: Optional[List[str]] = None,
        delay_s: Optional[float] = None,
        timeout_s: Optional[float] = None,
        user_agent: Optional[str] = None,
    ):
        self.output_dir = Path(output_dir) if output_dir is not None else settings.DOWNLOAD_DIR
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.session = session or requests.Session()
        self.url_template = url_template or settings.TILE_URL_TEMPLATE
        self.subdomains = subdomains or list(settings.TILE_SUBDOMAINS)
        self.delay_s = settings.REQUEST_DELAY_S if delay_s is None else delay_s
        self.timeout_s = timeout_s or settings.REQUEST_TIMEOUT_S
        self.user_agent = user_agent or settings.USER_AGENT
        self._subdomain_index = 0

    def tile_url(self, tile: Tile) -> str:
        subdomain = self.subdomains[self._subdomain_index % len(self.subdomains)]
        self._subdomain_index += 1
        return self.url_template.format(s=subdomain, z=tile.z, x=tile.x, y=tile.y)

    def download_tile(self, tile: Tile) -> Optional[bytes]:
        """Fetch one tile; None on any HTTP or network failure."""
        url = self.tile_url(tile)
        try:
            resp = self.session.get(url, headers={"User-Agent": self.user_agent}, timeout=self.timeout_s)
        except requests.RequestException as exc:
            logger.debug("Tile %s failed: %s", url, exc)
            return None
        if resp.status_code != 200:
            logger.debug("Tile %s returned HTTP %d", url, resp.status_code)
            return None
        return resp.content

    def download_region(
        self,
        name: str,
        bounds: MapBounds,
        min_zoom: int,
        max_zoom: int,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
        abort=None,
        resume: bool = False,
    ) -> DownloadResult:
        """Download all tiles of *bounds* for zoom levels min_zoom..max_zoom.

        Args:
            abort:  Object with is_set() (e.g. threading.Event); checked
                    before every tile.
            resume: Keep an existing region folder and skip tiles already
                    on disk instead of starting from scratch.
        """
        tiles = tiles_for_bounds(bounds, min_zoom, max_zoom)
        logger.info("Downloading %s: N%s S%s E%s W%s, zoom %d-%d, %d tiles",
                    name, bounds.north, bounds.south, bounds.east, bounds.west,
                    min_zoom, max_zoom, len(tiles))

        region_dir = self.output_dir / region_slug(name, min_zoom, max_zoom)
        if region_dir.exists() and not resume:
            shutil.rmtree(region_dir)
        region_dir.mkdir(parents=True, exist_ok=True)

        metadata = {
            "name": name,
            "bounds": asdict(bounds),
            "minZoom": min_zoom,
            "maxZoom": max_zoom,
            "tileCount": len(tiles),
            "downloadedAt": datetime.now(timezone.utc).isoformat(),
            "provider": self.url_template,
        }
        (region_dir / "metadata.json").write_text(json.dumps(metadata, indent=2), encoding="utf-8")

        progress = DownloadProgress(total=len(tiles))

        for i, tile in enumerate(tiles):
            if abort is not None and abort.is_set():
                logger.info("Download of %s aborted at tile %d/%d", name, i, len(tiles))
                return DownloadResult(success=False, error="Download aborted", progress=progress)

            progress.current_tile = tile.key
            tile_path = region_dir / str(tile.z) / str(tile.x) / f"{tile.y}.png"
            if tile_path.exists():
                progress.cached += 1
                continue
            tile_path.parent.mkdir(parents=True, exist_ok=True)

            data = self.download_tile(tile)
            if data is not None:
                tile_path.write_bytes(data)
                progress.downloaded += 1
                progress.bytes_downloaded += len(data)
            else:
                progress.failed += 1

            if progress_callback is not None and (i % PROGRESS_EVERY == 0 or i == len(tiles) - 1):
                progress_callback(progress)

            if i < len(tiles) - 1 and self.delay_s > 0:
                time.sleep(self.delay_s)

            if (i + 1) % LOG_EVERY == 0:
                logger.info("Progress: %d/%d (%d failed)", i + 1, len(tiles), progress.failed)

        logger.info("Download of %s finished: %d downloaded, %d cached, %d failed",
                    name, progress.downloaded, progress.cached, progress.failed)
        return DownloadResult(success=True, output_path=str(region_dir), progress=progress)

    def list_downloaded_regions(self) -> List[RegionInfo]:
        regions = []
        if not self.output_dir.exists():
            return regions
        for folder in sorted(p for p in self.output_dir.iterdir() if p.is_dir()):
            created = datetime.fromtimestamp(folder.stat().st_mtime, tz=timezone.utc)
            metadata_path = folder / "metadata.json"
            if metadata_path.exists():
                try:
                    metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
                    created = datetime.fromisoformat(metadata["downloadedAt"])
                except (ValueError, KeyError) as exc:
                    logger.debug("Unreadable metadata in %s: %s", folder, exc)
            size = sum(f.stat().st_size for f in folder.rglob("*") if f.is_file())
            regions.append(RegionInfo(name=folder.name, path=str(folder), size=size, created=created))
        return regions


_downloader: Optional[RegionDownloader] = None


def get_region_downloader() -> RegionDownloader:
    global _downloader
    if _downloader is None:
        _downloader = RegionDownloader()
    return _downloader
