"""Error types raised while decoding OziExplorer containers and calibrations.

Container decoding raises these for a single open or a single tile; the
calibration parser and the geometry fitters never raise them, they degrade
to the next fallback instead.  DegenerateGeometry and MissingCalibrationData
exist so callers that want certainty can signal the same conditions.
"""


class OzfError(Exception):
    """Base class for all map decoding errors."""


class FormatUnrecognized(OzfError):
    """The container magic is not one of the known OZF versions."""

    def __init__(self, magic: int, path: str = ""):
        self.magic = magic
        self.path = path
        super().__init__(f"Unrecognized OZF format 0x{magic:04x} in {path or '<stream>'}")


class TruncatedData(OzfError):
    """A read ended before the expected number of bytes."""


class DecompressionFailed(OzfError):
    """A tile payload is not a valid zlib stream."""


class TileOutOfRange(OzfError):
    """Requested tile lies outside the container's tile grid."""


class DegenerateGeometry(OzfError):
    """A fit matrix or Jacobian is singular."""


class MissingCalibrationData(OzfError):
    """Not enough correspondences to calibrate a map precisely."""
