"""Decode OziExplorer .ozf2 / .ozf3 / .ozfx3 tile containers.

Layout (reverse-engineered, keep offsets as they are):

  Header prefix (64 bytes, little-endian; v3/v4, OZF2 uses the table header)
    0   u16  magic        0x7778 -> v2, 0x7779 -> v3, 0x777A -> v4
    4   u32  width
    8   u32  height
    12  u16  bit depth
    14  u16  zoom levels  (0 means 1)

  OZF2 table header (14 bytes, little-endian)
    0   u16  magic (0x7778)
    2   u32  pointer to the tile offset table, near the end of the file
    6   u32  width
    10  u32  height

  The table holds tilesX * tilesY + 1 u32 offsets; tile i spans
  [offsets[i], offsets[i + 1]) and is a DEFLATE stream of a 64x64 block,
  zlib-wrapped in the files seen so far; bare DEFLATE is accepted too.

A failing tile never invalidates the handle or other tiles.
"""

import logging
import math
import struct
import threading
import zlib
from typing import BinaryIO, Optional

from errors import (
    DecompressionFailed,
    FormatUnrecognized,
    OzfError,
    TileOutOfRange,
    TruncatedData,
)
from models import ContainerHeader, TileOffsetTable

logger = logging.getLogger(__name__)

MAGIC_OZF2 = 0x7778
MAGIC_OZF3 = 0x7779
MAGIC_OZFX3 = 0x777A
MAGIC_VERSIONS = {MAGIC_OZF2: 2, MAGIC_OZF3: 3, MAGIC_OZFX3: 4}

TILE_SIZE = 64
HEADER_PREFIX_SIZE = 64
TABLE_HEADER_SIZE = 14

_PREFIX = struct.Struct("<H2xIIHH")
_TABLE_HEADER = struct.Struct("<HIII")


def decode_header(prefix: bytes, path: str = "") -> ContainerHeader:
    """Decode the header prefix; shorter input is zero-padded.

    Raises:
        FormatUnrecognized: if the magic is not a known OZF version.
    """
    prefix = prefix[:HEADER_PREFIX_SIZE].ljust(HEADER_PREFIX_SIZE, b"\x00")
    magic, width, height, depth, zoom_levels = _PREFIX.unpack_from(prefix)
    if magic not in MAGIC_VERSIONS:
        raise FormatUnrecognized(magic, path)
    if magic == MAGIC_OZF2:
        # OZF2 keeps its size after the table pointer; bytes 4..15 overlap it.
        _, _, width, height = _TABLE_HEADER.unpack_from(prefix)
        depth, zoom_levels = 8, 1
    return ContainerHeader(
        magic=magic,
        version=MAGIC_VERSIONS[magic],
        width=width,
        height=height,
        bit_depth=depth,
        tile_width=TILE_SIZE,
        tile_height=TILE_SIZE,
        tiles_x=math.ceil(width / TILE_SIZE),
        tiles_y=math.ceil(height / TILE_SIZE),
        zoom_levels=zoom_levels or 1,
    )


def read_header(path: str) -> ContainerHeader:
    """Read the header of the container at *path*."""
    with open(path, "rb") as fh:
        return decode_header(fh.read(HEADER_PREFIX_SIZE), path)


def read_tile_table(fh: BinaryIO, path: str = "") -> TileOffsetTable:
    """Read the OZF2 tile offset table from an open binary file.

    Raises:
        TruncatedData: if the table header or the table is cut short.
        FormatUnrecognized: if the file is not in the OZF2 layout.
    """
    fh.seek(0)
    raw = fh.read(TABLE_HEADER_SIZE)
    if len(raw) < TABLE_HEADER_SIZE:
        raise TruncatedData(f"Table header of {path or '<stream>'} is {len(raw)} bytes")

    magic, table_pointer, width, height = _TABLE_HEADER.unpack(raw)
    if magic != MAGIC_OZF2:
        raise FormatUnrecognized(magic, path)

    tiles_x = math.ceil(width / TILE_SIZE)
    tiles_y = math.ceil(height / TILE_SIZE)
    count = tiles_x * tiles_y + 1

    fh.seek(table_pointer)
    table = fh.read(count * 4)
    if len(table) < count * 4:
        raise TruncatedData(
            f"Tile table at {table_pointer} needs {count * 4} bytes, got {len(table)}"
        )

    logger.debug("OZF2 %s: %dx%d, %dx%d tiles, table at %d",
                 path, width, height, tiles_x, tiles_y, table_pointer)
    return TileOffsetTable(
        table_offset=table_pointer,
        tiles_x=tiles_x,
        tiles_y=tiles_y,
        offsets=list(struct.unpack(f"<{count}I", table)),
    )


class ContainerHandle:
    """Open container file with its header and (lazily) its tile table.

    Safe to share between threads: reads are serialised on the file.
    """

    def __init__(self, path: str, fh: BinaryIO, header: ContainerHeader):
        self.path = path
        self.header = header
        self._fh = fh
        self._lock = threading.Lock()
        self._table: Optional[TileOffsetTable] = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def closed(self) -> bool:
        return self._fh.closed

    def close(self) -> None:
        with self._lock:
            self._fh.close()

    @property
    def tile_table(self) -> TileOffsetTable:
        with self._lock:
            if self._table is None:
                self._table = read_tile_table(self._fh, self.path)
            return self._table

    def read_tile(self, tile_x: int, tile_y: int) -> bytes:
        """Decompressed payload of tile (tile_x, tile_y).

        Raises:
            TileOutOfRange, TruncatedData, DecompressionFailed
        """
        table = self.tile_table
        if not (0 <= tile_x < table.tiles_x and 0 <= tile_y < table.tiles_y):
            raise TileOutOfRange(f"Tile ({tile_x}, {tile_y}) outside {table.tiles_x}x{table.tiles_y}")

        index = tile_y * table.tiles_x + tile_x
        if index >= len(table.offsets) - 1:
            raise TileOutOfRange(f"Tile index {index} beyond offset table")

        start = table.offsets[index]
        size = table.offsets[index + 1] - start
        if size <= 0:
            raise TruncatedData(f"Tile ({tile_x}, {tile_y}) has no payload ({size} bytes)")

        with self._lock:
            self._fh.seek(start)
            compressed = self._fh.read(size)
        if len(compressed) < size:
            raise TruncatedData(f"Tile ({tile_x}, {tile_y}) needs {size} bytes at {start}, got {len(compressed)}")

        try:
            return zlib.decompress(compressed)
        except zlib.error:
            pass
        # Some writers store bare DEFLATE blocks without the zlib wrapper.
        try:
            return zlib.decompress(compressed, -zlib.MAX_WBITS)
        except zlib.error as exc:
            raise DecompressionFailed(f"Tile ({tile_x}, {tile_y}): {exc}") from exc


def open_container(path: str) -> ContainerHandle:
    """Open *path* and read its header.

    Raises:
        FileNotFoundError: if *path* does not exist.
        FormatUnrecognized: if the magic is unknown.
    """
    fh = open(path, "rb")
    try:
        header = decode_header(fh.read(HEADER_PREFIX_SIZE), path)
    except Exception:
        fh.close()
        raise
    return ContainerHandle(path, fh, header)


def extract_tile(handle: ContainerHandle, tile_x: int, tile_y: int) -> Optional[bytes]:
    """Like ContainerHandle.read_tile, but returns None on failure."""
    try:
        return handle.read_tile(tile_x, tile_y)
    except (OzfError, OSError, ValueError) as exc:
        logger.warning("Could not extract tile %d,%d from %s: %s", tile_x, tile_y, handle.path, exc)
        return None
