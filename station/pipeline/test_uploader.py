"""
Test suite for uploading and archiving passes
"""

import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import mock

from .api import HealthResponse, PostResponse
from .config import RuntimeSettings, TimingSettings
from .errors import ApiError
from .metadata import MetadataValue, PassRecord
from .packager import ArtifactSet, PassPackage
from .uploader import PassUploader, format_rfc3339


class TestFormatRfc3339(unittest.TestCase):

    def test_utc(self):
        self.assertEqual(format_rfc3339(datetime(1970, 1, 1, 0, 1, 40, tzinfo=timezone.utc)),
                         "1970-01-01T00:01:40Z")

    def test_offset_converted_to_utc(self):
        ts = datetime(2024, 1, 15, 12, 30, 15, 999000, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual(format_rfc3339(ts), "2024-01-15T10:30:15Z")


class TestPassUploader(unittest.TestCase):
    """Test the post, upload and archive sequence"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        root = Path(self.temp_dir.name)
        self.watch_dir = root / "data"
        self.processed_dir = root / "processed"
        self.watch_dir.mkdir()
        self.processed_dir.mkdir()

        self.api = mock.Mock()
        self.api.create_post.return_value = PostResponse(id="abc")
        self.api.station_health.return_value = HealthResponse(status="ok", settings={'process_delay': 5})
        self.on_health = mock.Mock()
        self.uploader = PassUploader(self.api, self.processed_dir, on_health=self.on_health)

    def _package(self, images=("a.png", "b.png", "c.png"), cadu=True, cbor=True) -> PassPackage:
        pass_dir = self.watch_dir / "pass1"
        pass_dir.mkdir()
        (pass_dir / "dataset.json").write_text("{}")
        artifacts = ArtifactSet()
        if cadu:
            path = pass_dir / "pass1.cadu"
            path.write_bytes(b'\x00')
            artifacts.cadu_paths.append(path)
        product_dir = pass_dir / "AVHRR"
        product_dir.mkdir()
        if cbor:
            artifacts.cbor_path = product_dir / "product.cbor"
            artifacts.cbor_path.write_bytes(b'\xa0')
        for name in images:
            path = product_dir / name
            path.write_bytes(b'\x89PNG\r\n\x1a\n')
            artifacts.image_paths.append(path)

        record = PassRecord(
            timestamp=datetime(1970, 1, 1, 0, 1, 40, tzinfo=timezone.utc),
            satellite_name="NOAA-19",
            metadata={'norad': MetadataValue.from_json(33591)},
        )
        return PassPackage(directory=pass_dir, record=record, artifacts=artifacts,
                           dataset_timestamp=record.timestamp)

    def test_full_upload(self):
        package = self._package()
        result = self.uploader.upload(package)

        request = self.api.create_post.call_args[0][0]
        self.assertEqual(request.timestamp, "1970-01-01T00:01:40Z")
        self.assertEqual(request.satellite_name, "NOAA-19")
        self.assertEqual(request.metadata, '{"norad": 33591}')

        self.assertEqual(result.post_id, "abc")
        self.api.upload_cadu.assert_called_once_with("abc", package.artifacts.cadu_paths[0])
        self.api.upload_cbor.assert_called_once_with("abc", package.artifacts.cbor_path)
        self.assertEqual(self.api.upload_image.call_count, 3)
        self.assertEqual(len(result.uploaded), 5)
        self.assertEqual(result.failed, [])

        self.on_health.assert_called_once_with(self.api.station_health.return_value)
        self.assertTrue(result.archived)
        self.assertFalse(package.directory.exists())
        self.assertTrue((self.processed_dir / "pass1" / "dataset.json").is_file())

    def test_failed_image_does_not_stop_the_rest(self):
        package = self._package()
        second = package.artifacts.image_paths[1]

        def upload_image(post_id, path):
            if path == second:
                raise ApiError("image upload failed with status 500")

        self.api.upload_image.side_effect = upload_image
        result = self.uploader.upload(package)

        self.assertEqual(self.api.upload_image.call_count, 3)
        self.assertEqual(result.failed, [second])
        self.assertTrue(result.archived)
        self.assertEqual(self.uploader.stats['files_failed'], 1)

    def test_post_failure_raises_and_keeps_directory(self):
        package = self._package()
        self.api.create_post.side_effect = ApiError("API request failed with status 500")

        with self.assertRaises(ApiError):
            self.uploader.upload(package)

        self.api.upload_image.assert_not_called()
        self.api.upload_cadu.assert_not_called()
        self.api.station_health.assert_not_called()
        self.assertTrue(package.directory.is_dir())
        self.assertEqual(self.uploader.stats['posts_failed'], 1)

    def test_health_failure_is_ignored(self):
        package = self._package(images=())
        self.api.station_health.side_effect = ApiError("health check failed")

        result = self.uploader.upload(package)

        self.on_health.assert_not_called()
        self.assertTrue(result.archived)

    def test_health_callback_failure_still_archives(self):
        package = self._package(images=())
        self.on_health.side_effect = OverflowError("cannot convert float infinity to integer")

        result = self.uploader.upload(package)

        self.assertEqual(result.post_id, "abc")
        self.assertTrue(result.archived)
        self.assertFalse(package.directory.exists())

    def test_non_finite_server_settings_still_archive(self):
        settings = RuntimeSettings(TimingSettings(process_delay=60, health_check_interval=300))
        self.api.station_health.return_value = HealthResponse(
            status="ok", settings=json.loads('{"process_delay": 1e400}'))
        uploader = PassUploader(self.api, self.processed_dir,
                                on_health=lambda health: settings.apply_server_settings(health.settings))
        package = self._package(images=())

        result = uploader.upload(package)

        self.assertTrue(result.archived)
        self.assertEqual(settings.process_delay, 60)

    def test_archive_collision_leaves_directory(self):
        package = self._package(images=())
        (self.processed_dir / "pass1").mkdir()

        result = self.uploader.upload(package)

        self.assertTrue(result.posted)
        self.assertFalse(result.archived)
        self.assertTrue(package.directory.is_dir())
        self.assertEqual(self.uploader.stats['archive_failures'], 1)

    def test_archive_failure_is_not_raised(self):
        package = self._package(images=())
        with mock.patch('os.replace', side_effect=PermissionError("denied")):
            result = self.uploader.upload(package)

        self.assertEqual(result.post_id, "abc")
        self.assertIsNone(result.archived_to)


if __name__ == '__main__':
    unittest.main()
