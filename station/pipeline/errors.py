"""
Error types raised by the pass ingestion pipeline
"""

from typing import Optional


class StationError(Exception):
    """Base class for all station client errors."""


class ConfigError(StationError):
    """Configuration file is missing, unreadable or invalid."""


class WatcherStartupError(StationError):
    """The filesystem notification subsystem could not be started."""


class ArchiveError(StationError):
    """The archive (processed) directory could not be created."""


class MetadataError(StationError):
    """dataset.json could not be read or is not a JSON object."""


class ProductError(StationError):
    """product.cbor could not be read or holds no usable timestamps."""


class ApiError(StationError):
    """A SatHub API call failed, either on the network or with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
