"""
Dataset metadata - parses a pass's dataset.json into a PassRecord
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

from .errors import MetadataError

DATASET_FILENAME = "dataset.json"
UNKNOWN_SATELLITE = "Unknown"

TIMESTAMP_KEY = "timestamp"
# Checked in this order, first non-empty string wins
SATELLITE_NAME_KEYS = ("satellite_name", "satellite", "name")
CONSUMED_KEYS = (TIMESTAMP_KEY,) + SATELLITE_NAME_KEYS


class ValueKind(Enum):
    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    NULL = "null"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class MetadataValue:
    """
    One loosely-typed metadata field, tagged with its JSON kind.

    ARRAY values hold a tuple of MetadataValue, OBJECT values a dict of
    str -> MetadataValue in document order.
    """
    kind: ValueKind
    value: Any = None

    @classmethod
    def from_json(cls, raw: Any) -> "MetadataValue":
        """Wrap a value produced by json.load."""
        if raw is None:
            return cls(ValueKind.NULL)
        # bool must be checked before int, bool is an int subclass
        if isinstance(raw, bool):
            return cls(ValueKind.BOOL, raw)
        if isinstance(raw, (int, float)):
            return cls(ValueKind.NUMBER, raw)
        if isinstance(raw, str):
            return cls(ValueKind.STRING, raw)
        if isinstance(raw, list):
            return cls(ValueKind.ARRAY, tuple(cls.from_json(item) for item in raw))
        if isinstance(raw, dict):
            return cls(ValueKind.OBJECT, {str(k): cls.from_json(v) for k, v in raw.items()})
        raise MetadataError(f"unsupported metadata value type: {type(raw).__name__}")

    def to_json(self) -> Any:
        """Unwrap back into plain JSON-compatible Python values."""
        if self.kind is ValueKind.ARRAY:
            return [item.to_json() for item in self.value]
        if self.kind is ValueKind.OBJECT:
            return {k: v.to_json() for k, v in self.value.items()}
        return self.value

    def as_str(self) -> Optional[str]:
        return self.value if self.kind is ValueKind.STRING else None

    def as_number(self) -> Optional[Union[int, float]]:
        return self.value if self.kind is ValueKind.NUMBER else None

    def as_list(self) -> List["MetadataValue"]:
        return list(self.value) if self.kind is ValueKind.ARRAY else []

    def get(self, key: str) -> Optional["MetadataValue"]:
        if self.kind is not ValueKind.OBJECT:
            return None
        return self.value.get(key)


@dataclass(frozen=True)
class PassRecord:
    """Normalized description of one satellite pass."""
    timestamp: datetime
    satellite_name: str = UNKNOWN_SATELLITE
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)

    def with_timestamp(self, timestamp: datetime) -> "PassRecord":
        return PassRecord(timestamp=timestamp, satellite_name=self.satellite_name, metadata=self.metadata)

    def metadata_json(self) -> str:
        """Residual metadata as the JSON string the posts endpoint expects."""
        try:
            return json.dumps({k: v.to_json() for k, v in self.metadata.items()})
        except (TypeError, ValueError):
            return "{}"


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC 3339 date-time. A UTC offset (or Z) is mandatory.

    Raises ValueError on anything else.
    """
    text = value.strip()
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp has no UTC offset: {value!r}")
    return parsed


class DatasetExtractor:
    """
    Reads dataset.json and builds the PassRecord for a pass.

    The timestamp and satellite name are best effort: a missing or bad
    timestamp falls back to the current time and a missing name becomes
    "Unknown". A document that is not a JSON object is a hard failure.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('DatasetExtractor')

    def extract(self, dataset_path: Path) -> PassRecord:
        """
        Parse one dataset.json.

        Args:
            dataset_path: Path to the dataset.json of a pass

        Returns:
            PassRecord with the consumed keys removed from its metadata
        """
        raw = self._load(Path(dataset_path))

        timestamp = self._resolve_timestamp(raw)
        satellite_name = self._resolve_satellite_name(raw)
        self.logger.info(f"Parsed satellite name: {satellite_name}")
        self._log_details(raw)

        metadata = {
            str(key): MetadataValue.from_json(value)
            for key, value in raw.items()
            if key not in CONSUMED_KEYS
        }
        self.logger.debug(f"Parsed {dataset_path}: {len(metadata)} residual fields")

        return PassRecord(timestamp=timestamp, satellite_name=satellite_name, metadata=metadata)

    def _load(self, dataset_path: Path) -> Dict[str, Any]:
        try:
            with open(dataset_path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except OSError as e:
            raise MetadataError(f"failed to read {dataset_path}: {e}") from e
        except ValueError as e:
            raise MetadataError(f"failed to parse {dataset_path}: {e}") from e

        if not isinstance(raw, dict):
            raise MetadataError(f"{dataset_path} is not a JSON object")
        return raw

    def _resolve_timestamp(self, raw: Dict[str, Any]) -> datetime:
        value = raw.get(TIMESTAMP_KEY)
        if not isinstance(value, str):
            self.logger.warning("No timestamp found, using current time")
            return datetime.now(timezone.utc)

        try:
            timestamp = parse_rfc3339(value)
        except ValueError:
            self.logger.warning(f"Invalid timestamp format {value!r}, using current time")
            return datetime.now(timezone.utc)

        self.logger.debug(f"Parsed timestamp: {timestamp.isoformat()}")
        return timestamp

    @staticmethod
    def _resolve_satellite_name(raw: Dict[str, Any]) -> str:
        for key in SATELLITE_NAME_KEYS:
            value = raw.get(key)
            if isinstance(value, str) and value:
                return value
        return UNKNOWN_SATELLITE

    def _log_details(self, raw: Dict[str, Any]):
        """Debug output for the SatDump fields worth seeing in the log."""
        if not self.logger.isEnabledFor(logging.DEBUG):
            return

        for key in ('norad', 'frequency', 'modulation'):
            if key in raw:
                self.logger.debug(f"{key}: {raw[key]}")

        for section in ('datasets', 'products'):
            entries = raw.get(section)
            if not isinstance(entries, list):
                continue
            self.logger.debug(f"Found {len(entries)} {section}")
            for i, entry in enumerate(entries, start=1):
                if isinstance(entry, dict) and isinstance(entry.get('name'), str):
                    self.logger.debug(f"  {section[:-1]} {i}: {entry['name']}")
