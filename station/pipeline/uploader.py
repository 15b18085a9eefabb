"""
Pass Uploader - Posts a packaged pass to SatHub, uploads its artifacts and archives it
"""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional, Callable
import logging

from .api import PostRequest, StationApiClient
from .errors import ApiError
from .packager import PassPackage


def format_rfc3339(timestamp: datetime) -> str:
    """Whole-second RFC 3339 in UTC, e.g. 2024-01-01T00:00:00Z."""
    return timestamp.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


@dataclass
class UploadResult:
    """What happened to one pass."""
    directory: Path
    post_id: Optional[str] = None
    uploaded: List[Path] = field(default_factory=list)
    failed: List[Path] = field(default_factory=list)
    archived_to: Optional[Path] = None

    @property
    def posted(self) -> bool:
        return self.post_id is not None

    @property
    def archived(self) -> bool:
        return self.archived_to is not None


class PassUploader:
    """
    Sends one pass to SatHub.

    Creating the post is the only step that must succeed. Every artifact
    upload after it is attempted independently, the health signal is best
    effort, and a failed archive move is logged but never undoes the post.
    """

    def __init__(self,
                 api_client: StationApiClient,
                 processed_dir: Path,
                 logger: Optional[logging.Logger] = None,
                 on_health: Optional[Callable[[Any], None]] = None):
        """
        Initialize the pass uploader.

        Args:
            api_client: SatHub API client
            processed_dir: Archive directory uploaded passes are moved into
            logger: Service logger
            on_health: Callback for the health response sent after each pass
        """
        self.api_client = api_client
        self.processed_dir = Path(processed_dir)
        self.logger = logger or logging.getLogger('PassUploader')
        # Called with the HealthResponse after a successful health signal
        self.on_health = on_health

        self.stats = {
            'posts_created': 0,
            'posts_failed': 0,
            'files_uploaded': 0,
            'files_failed': 0,
            'passes_archived': 0,
            'archive_failures': 0,
            'last_post_time': None
        }

    def upload(self, package: PassPackage) -> UploadResult:
        """
        Upload a pass.

        Raises ApiError if the post could not be created; nothing else is
        raised once the post exists.

        Args:
            package: Pass to post

        Returns:
            UploadResult with the post id, per-file outcomes and archive path
        """
        result = UploadResult(directory=package.directory)
        record = package.record
        artifacts = package.artifacts

        request = PostRequest(
            timestamp=format_rfc3339(record.timestamp),
            satellite_name=record.satellite_name,
            metadata=record.metadata_json(),
        )

        try:
            post = self.api_client.create_post(request)
        except ApiError:
            self.stats['posts_failed'] += 1
            raise

        result.post_id = post.id
        self.stats['posts_created'] += 1
        self.stats['last_post_time'] = datetime.now(timezone.utc).isoformat()
        self.logger.info(f"Created post {post.id} for {record.satellite_name}")

        for cadu_path in artifacts.cadu_paths:
            self._try_upload(result, 'CADU', cadu_path, self.api_client.upload_cadu)

        if artifacts.cbor_path is not None:
            self._try_upload(result, 'CBOR', artifacts.cbor_path, self.api_client.upload_cbor)

        for image_path in artifacts.image_paths:
            self._try_upload(result, 'image', image_path, self.api_client.upload_image)

        self._send_health()

        result.archived_to = self.archive(package.directory)
        return result

    def _try_upload(self, result: UploadResult, kind: str, path: Path, upload: Callable[[str, Path], None]):
        try:
            upload(result.post_id, path)
        except ApiError as e:
            result.failed.append(path)
            self.stats['files_failed'] += 1
            self.logger.warning(f"Failed to upload {kind} {path}: {e}")
        else:
            result.uploaded.append(path)
            self.stats['files_uploaded'] += 1
            self.logger.info(f"Uploaded {kind} {path.name} to post {result.post_id}")

    def _send_health(self):
        try:
            health = self.api_client.station_health()
        except ApiError as e:
            self.logger.warning(f"Failed to send health check: {e}")
            return
        if self.on_health is None:
            return
        try:
            self.on_health(health)
        except Exception as e:
            # The post already exists; the pass must still be archived
            self.logger.exception(f"Failed to apply health check response: {e}")

    def archive(self, dir_path: Path) -> Optional[Path]:
        """Move a pass directory into the processed directory under the same name."""
        dir_path = Path(dir_path)
        dest = self.processed_dir / dir_path.name
        try:
            if dest.exists():
                raise FileExistsError(f"{dest} already exists")
            os.replace(dir_path, dest)
        except OSError as e:
            self.stats['archive_failures'] += 1
            self.logger.warning(f"Failed to move {dir_path} to {dest}: {e}")
            return None

        self.stats['passes_archived'] += 1
        self.logger.debug(f"Moved {dir_path.name} to processed directory")
        return dest

    def get_status(self) -> Dict[str, Any]:
        """Get current status of the uploader."""
        return {
            'service': 'PassUploader',
            'processed_directory': str(self.processed_dir),
            'statistics': self.stats.copy()
        }
