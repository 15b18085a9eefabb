"""
Pass Packager - Classifies pass directories and gathers everything needed to upload one
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional
import logging

from .errors import ProductError
from .metadata import DATASET_FILENAME, DatasetExtractor, PassRecord
from .product import PRODUCT_FILENAME, ProductTimestampResolver

CADU_PATTERN = "*.cadu"
IMAGE_SUFFIX = ".png"


def is_complete_pass(dir_path: Path) -> bool:
    """
    Check if a directory contains a complete satellite pass.

    dataset.json is required. On top of that there must be either a CADU file
    in the directory itself or a product subdirectory holding product.cbor.
    """
    dir_path = Path(dir_path)
    if not (dir_path / DATASET_FILENAME).is_file():
        return False

    if any(dir_path.glob(CADU_PATTERN)):
        return True

    try:
        entries = list(dir_path.iterdir())
    except OSError:
        return False

    return any(entry.is_dir() and (entry / PRODUCT_FILENAME).is_file() for entry in entries)


@dataclass
class ArtifactSet:
    """Files of a pass that get uploaded after the post is created."""
    cadu_paths: List[Path] = field(default_factory=list)
    cbor_path: Optional[Path] = None
    image_paths: List[Path] = field(default_factory=list)
    product_name: Optional[str] = None

    @property
    def file_count(self) -> int:
        return len(self.cadu_paths) + len(self.image_paths) + (1 if self.cbor_path else 0)


@dataclass(frozen=True)
class PassPackage:
    """A pass ready for upload: its record, its files and where it lives."""
    directory: Path
    record: PassRecord
    artifacts: ArtifactSet
    dataset_timestamp: datetime


class PassPackager:
    """
    Builds PassPackages from complete pass directories.

    This service:
    1. Finds CADU files, the product descriptor and the product images
    2. Parses dataset.json into a PassRecord
    3. Replaces the dataset timestamp with the product.cbor start time when it can
    """

    def __init__(self,
                 extractor: Optional[DatasetExtractor] = None,
                 resolver: Optional[ProductTimestampResolver] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the pass packager.

        Args:
            extractor: Parser for dataset.json
            resolver: Reader for the product.cbor start time
            logger: Logger shared with the default extractor and resolver
        """
        self.logger = logger or logging.getLogger('PassPackager')
        self.extractor = extractor if extractor is not None else DatasetExtractor(self.logger)
        self.resolver = resolver if resolver is not None else ProductTimestampResolver(self.logger)

        self.stats = {
            'packages_built': 0,
            'cbor_timestamps_used': 0,
            'cbor_timestamp_fallbacks': 0,
            'last_package_time': None
        }

    def find_artifacts(self, dir_path: Path) -> ArtifactSet:
        """Collect the uploadable files of a pass directory."""
        dir_path = Path(dir_path)
        artifacts = ArtifactSet(cadu_paths=sorted(dir_path.glob(CADU_PATTERN)))

        for product_dir in sorted(p for p in dir_path.iterdir() if p.is_dir()):
            cbor_file = product_dir / PRODUCT_FILENAME
            if not cbor_file.is_file():
                continue

            # The first product directory supplies the descriptor, all of them supply images
            if artifacts.cbor_path is None:
                artifacts.cbor_path = cbor_file
                artifacts.product_name = product_dir.name

            try:
                images = sorted(p for p in product_dir.iterdir()
                                if p.is_file() and p.name.endswith(IMAGE_SUFFIX))
            except OSError as e:
                self.logger.warning(f"Failed to read product directory {product_dir}: {e}")
                continue
            artifacts.image_paths.extend(images)

        if artifacts.product_name:
            self.logger.info(f"Found product {artifacts.product_name} with CBOR and "
                             f"{len(artifacts.image_paths)} images")
        if artifacts.cadu_paths:
            self.logger.info(f"Found {len(artifacts.cadu_paths)} CADU files")

        return artifacts

    def build(self, dir_path: Path) -> PassPackage:
        """
        Build the package for a complete pass directory.

        Raises MetadataError if dataset.json is unusable. A bad product.cbor
        only costs the better timestamp.

        Args:
            dir_path: Pass directory already classified as complete

        Returns:
            PassPackage with the record, the artifacts and the dataset timestamp
        """
        dir_path = Path(dir_path)
        record = self.extractor.extract(dir_path / DATASET_FILENAME)
        artifacts = self.find_artifacts(dir_path)
        dataset_timestamp = record.timestamp

        if artifacts.cbor_path is not None:
            try:
                cbor_timestamp = self.resolver.resolve(artifacts.cbor_path)
            except ProductError as e:
                self.stats['cbor_timestamp_fallbacks'] += 1
                self.logger.warning(f"Failed to parse CBOR timestamps, falling back to dataset.json timestamp: {e}")
            else:
                record = record.with_timestamp(cbor_timestamp)
                self.stats['cbor_timestamps_used'] += 1
                self.logger.info(f"Using CBOR timestamp {cbor_timestamp.isoformat()} instead of "
                                 f"dataset.json timestamp {dataset_timestamp.isoformat()}")

        self.stats['packages_built'] += 1
        self.stats['last_package_time'] = datetime.now(timezone.utc).isoformat()

        return PassPackage(
            directory=dir_path,
            record=record,
            artifacts=artifacts,
            dataset_timestamp=dataset_timestamp,
        )

    def get_status(self) -> Dict[str, Any]:
        """Get current status of the packager service."""
        return {
            'service': 'PassPackager',
            'statistics': self.stats.copy()
        }
