"""
Product descriptor - reads the capture start time from a SatDump product.cbor
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional
import logging

import cbor2

from .errors import ProductError

PRODUCT_FILENAME = "product.cbor"
MISSING_TIMESTAMP = -1


def earliest_timestamp(timestamps: Iterable[Any]) -> Optional[float]:
    """
    Return the smallest valid epoch timestamp, or None.

    -1 marks a sample without a timestamp and is skipped, as is anything
    that is not a plain number.
    """
    earliest = None
    for ts in timestamps:
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            continue
        if ts == MISSING_TIMESTAMP or ts != ts:  # NaN
            continue
        if earliest is None or ts < earliest:
            earliest = ts
    return earliest


class ProductTimestampResolver:
    """
    Finds the authoritative capture time of a pass.

    SatDump stores one timestamp per scan line in product.cbor. The earliest
    one is the start of the pass, which is preferred over the processing time
    written to dataset.json.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('ProductTimestampResolver')

    def resolve(self, product_path: Path) -> datetime:
        """
        Return the earliest valid timestamp as an aware UTC datetime.

        Raises ProductError if the descriptor is unreadable or has no valid
        timestamps.
        """
        product = self._load(Path(product_path))

        timestamps = product.get('timestamps')
        if not isinstance(timestamps, list) or not timestamps:
            raise ProductError(f"no timestamps found in {product_path}")

        earliest = earliest_timestamp(timestamps)
        if earliest is None:
            raise ProductError(f"no valid timestamps found in {product_path}")

        try:
            resolved = datetime.fromtimestamp(int(earliest), tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ProductError(f"timestamp {earliest} out of range in {product_path}") from e

        self.logger.debug(
            f"Extracted earliest timestamp {resolved.isoformat()} from {len(timestamps)} timestamps"
        )
        return resolved

    def _load(self, product_path: Path) -> dict:
        try:
            with open(product_path, 'rb') as f:
                product = cbor2.load(f)
        except OSError as e:
            raise ProductError(f"failed to open {product_path}: {e}") from e
        except (cbor2.CBORDecodeError, ValueError, EOFError) as e:
            raise ProductError(f"failed to parse {product_path}: {e}") from e

        if not isinstance(product, dict):
            raise ProductError(f"{product_path} is not a CBOR map")
        return product
