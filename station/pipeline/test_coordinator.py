"""
Test suite for the dispatch coordinator
"""

import json
import tempfile
import time
import unittest
from pathlib import Path
from unittest import mock

from .api import HealthResponse, PostResponse
from .config import StationConfig
from .context import PipelineContext
from .coordinator import PipelineCoordinator
from .errors import ApiError
from .ingest import PassWatcher
from .state import ProcessedState
from .test_ingest import FakeObserver


class TestPipelineCoordinator(unittest.TestCase):
    """Test dispatching candidate directories"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        base = Path(self.temp_dir.name)
        self.watch_dir = base / "data"
        self.processed_dir = base / "processed"
        self.watch_dir.mkdir()

        config = StationConfig({
            'station': {'token': "tok", 'api_url': "https://api.example.test"},
            'paths': {'watch': str(self.watch_dir), 'processed': str(self.processed_dir)},
            'intervals': {'sweep': 1},
        })
        self.context = PipelineContext.from_config(config)
        self.context.settings.update(process_delay=0)

        self.api = mock.Mock()
        self.api.create_post.return_value = PostResponse(id="p1")
        self.api.station_health.return_value = HealthResponse(status="ok")

        processed = ProcessedState()
        watcher = PassWatcher([self.watch_dir], processed, observer_factory=FakeObserver)
        self.coordinator = PipelineCoordinator(self.context, self.api, processed=processed, watcher=watcher)
        self.processed_dir.mkdir()

    def _complete_pass(self, name="pass1") -> Path:
        pass_dir = self.watch_dir / name
        pass_dir.mkdir()
        (pass_dir / "dataset.json").write_text(json.dumps({'satellite_name': "NOAA-19"}))
        (pass_dir / f"{name}.cadu").write_bytes(b'\x1a\xcf\xfc\x1d')
        return pass_dir

    def test_complete_pass_is_posted_and_archived(self):
        pass_dir = self._complete_pass()
        result = self.coordinator.dispatch(pass_dir)

        self.assertIsNotNone(result)
        self.assertEqual(result.post_id, "p1")
        self.api.create_post.assert_called_once()
        self.api.upload_cadu.assert_called_once()
        self.assertTrue((self.processed_dir / "pass1").is_dir())
        self.assertTrue(self.coordinator.processed.is_marked(pass_dir))
        self.assertEqual(self.coordinator.stats['passes_posted'], 1)

    def test_second_dispatch_does_not_post_again(self):
        pass_dir = self._complete_pass()
        self.coordinator.dispatch(pass_dir)
        self.coordinator.dispatch(pass_dir)
        self.assertEqual(self.api.create_post.call_count, 1)

    def test_failed_post_is_retried(self):
        pass_dir = self._complete_pass()
        self.api.create_post.side_effect = ApiError("API request failed with status 503")

        self.assertIsNone(self.coordinator.dispatch(pass_dir))
        self.assertFalse(self.coordinator.processed.is_marked(pass_dir))
        self.assertTrue(pass_dir.is_dir())
        self.assertEqual(self.coordinator.stats['passes_failed'], 1)

        self.api.create_post.side_effect = None
        result = self.coordinator.dispatch(pass_dir)
        self.assertEqual(result.post_id, "p1")
        self.assertEqual(self.api.create_post.call_count, 2)

    def test_bad_dataset_is_retried(self):
        pass_dir = self._complete_pass()
        (pass_dir / "dataset.json").write_text("[]")

        self.assertIsNone(self.coordinator.dispatch(pass_dir))
        self.api.create_post.assert_not_called()
        self.assertFalse(self.coordinator.processed.is_marked(pass_dir))

    def test_incomplete_pass_is_skipped(self):
        pass_dir = self.watch_dir / "partial"
        pass_dir.mkdir()
        (pass_dir / "dataset.json").write_text("{}")

        self.assertIsNone(self.coordinator.dispatch(pass_dir))
        self.api.create_post.assert_not_called()
        self.assertFalse(self.coordinator.processed.is_marked(pass_dir))
        self.assertEqual(self.coordinator.stats['incomplete_skipped'], 1)

    def test_missing_directory_is_ignored(self):
        self.assertIsNone(self.coordinator.dispatch(self.watch_dir / "gone"))
        self.api.create_post.assert_not_called()

    def test_process_delay_applies_once_per_directory(self):
        self.context.settings.update(process_delay=45)
        pass_dir = self.watch_dir / "partial"
        pass_dir.mkdir()

        with mock.patch.object(self.coordinator._stop_event, 'wait', return_value=False) as wait:
            self.coordinator.dispatch(pass_dir)
            self.coordinator.dispatch(pass_dir)

        wait.assert_called_once_with(45)

    def test_stop_during_delay_abandons_dispatch(self):
        pass_dir = self._complete_pass()
        with mock.patch.object(self.coordinator._stop_event, 'wait', return_value=True):
            self.assertIsNone(self.coordinator.dispatch(pass_dir))
        self.api.create_post.assert_not_called()
        self.assertFalse(self.coordinator.processed.is_marked(pass_dir))

    def test_startup_sweep_processes_existing_passes(self):
        self._complete_pass("pass1")
        self._complete_pass("pass2")

        self.coordinator.start()
        try:
            deadline = time.time() + 5.0
            while self.api.create_post.call_count < 2 and time.time() < deadline:
                time.sleep(0.05)
        finally:
            self.coordinator.stop(timeout=5.0)

        self.assertEqual(self.api.create_post.call_count, 2)
        self.assertTrue((self.processed_dir / "pass1").is_dir())
        self.assertTrue((self.processed_dir / "pass2").is_dir())
        self.assertFalse(self.coordinator.running)

    def test_injected_tracker_is_shared(self):
        tracker = ProcessedState()
        coordinator = PipelineCoordinator(self.context, self.api, processed=tracker, watcher=mock.Mock())
        self.assertIs(coordinator.processed, tracker)

    def test_sweep_skips_pass_left_in_place_after_posting(self):
        pass_dir = self._complete_pass()
        # Archive collision keeps the posted pass in the watch root
        (self.processed_dir / "pass1").mkdir()

        result = self.coordinator.dispatch(pass_dir)

        self.assertTrue(result.posted)
        self.assertTrue(pass_dir.is_dir())
        self.assertEqual(list(self.coordinator.watcher.sweep()), [])
        self.coordinator.run_sweep()
        self.assertEqual(self.api.create_post.call_count, 1)

    def test_non_finite_server_settings_do_not_block_archiving(self):
        pass_dir = self._complete_pass()
        self.api.station_health.return_value = HealthResponse(
            status="ok", settings=json.loads('{"process_delay": 1e400}'))

        result = self.coordinator.dispatch(pass_dir)

        self.assertTrue(result.archived)
        self.assertFalse(pass_dir.exists())
        self.assertEqual(self.context.settings.process_delay, 0)

    def test_status(self):
        status = self.coordinator.get_status()
        self.assertEqual(status['service'], 'PipelineCoordinator')
        self.assertEqual(status['status'], 'stopped')
        self.assertEqual(status['watcher']['service'], 'PassWatcher')


if __name__ == '__main__':
    unittest.main()
