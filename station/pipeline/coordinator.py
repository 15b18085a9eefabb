"""
Pipeline Coordinator - Dispatches candidate pass directories through the pipeline
"""

import queue
import threading
import time
from pathlib import Path
from typing import Dict, Any, Optional, Set

from .api import StationApiClient
from .context import PipelineContext
from .errors import ApiError, ArchiveError, MetadataError
from .ingest import PassWatcher
from .packager import PassPackager, is_complete_pass
from .state import ProcessedState
from .uploader import PassUploader, UploadResult

# Queued by stop() to wake the dispatch loop
_STOP = None


class PipelineCoordinator:
    """
    Runs the single dispatch path of the station.

    One background thread sweeps the watch roots at startup, then drains the
    watcher's candidate queue, sweeping again whenever the queue has been idle
    for the sweep interval. Each pass is handled to completion before the
    next one is looked at:

    1. Wait the process delay the first time a directory is seen
    2. Skip it if it is not a complete pass yet
    3. Mark it in the ProcessedState
    4. Build the PassPackage and hand it to the uploader
    5. Clear the mark again if no post could be created
    """

    def __init__(self,
                 context: PipelineContext,
                 api_client: StationApiClient,
                 processed: Optional[ProcessedState] = None,
                 watcher: Optional[PassWatcher] = None,
                 packager: Optional[PassPackager] = None,
                 uploader: Optional[PassUploader] = None):
        """
        Initialize the pipeline coordinator.

        Args:
            context: Shared configuration, runtime settings and loggers
            api_client: Client used by the default uploader
            processed: Processed-state tracker shared with the watcher
            watcher: Source of candidate directories
            packager: Builds a PassPackage from a complete pass directory
            uploader: Posts a package and archives its directory
        """
        self.context = context
        config = context.config
        self.logger = context.get_logger('PipelineCoordinator')

        self.processed = processed if processed is not None else ProcessedState()
        if watcher is None:
            watcher = PassWatcher(config.watch_paths, self.processed, logger=context.get_logger('PassWatcher'))
        self.watcher = watcher
        if packager is None:
            packager = PassPackager(logger=context.get_logger('PassPackager'))
        self.packager = packager
        if uploader is None:
            uploader = PassUploader(
                api_client,
                config.processed_dir,
                logger=context.get_logger('PassUploader'),
                on_health=lambda health: context.settings.apply_server_settings(health.settings),
            )
        self.uploader = uploader
        self.processed_dir = self.uploader.processed_dir
        self.sweep_interval = float(config.sweep_interval)

        # Directories that already sat out the process delay once
        self._delayed: Set[str] = set()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.stats = {
            'candidates_seen': 0,
            'incomplete_skipped': 0,
            'passes_posted': 0,
            'passes_failed': 0,
            'processing_time_total': 0.0,
            'last_processed': None
        }

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    def start(self):
        """
        Start the pipeline coordinator.

        Raises ArchiveError if the processed directory cannot be created and
        WatcherStartupError if filesystem notifications are unavailable.
        """
        self.logger.info("Starting pipeline coordinator...")
        try:
            self.processed_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveError(f"failed to create processed directory {self.processed_dir}: {e}") from e

        self.watcher.start()

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._dispatch_loop, name="PassDispatch", daemon=True)
        self._thread.start()
        self.logger.info("Pipeline coordinator started successfully")

    def stop(self, timeout: Optional[float] = None):
        """
        Stop the pipeline coordinator.

        The watch subscription is closed immediately. A pass that is being
        uploaded is allowed to finish; timeout bounds how long to wait for it.
        """
        self.logger.info("Stopping pipeline coordinator...")
        self._stop_event.set()
        self.watcher.stop()
        self.watcher.candidates.put(_STOP)
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.logger.info("Pipeline coordinator stopped")

    def _dispatch_loop(self):
        self.run_sweep()
        while not self._stop_event.is_set():
            try:
                candidate = self.watcher.candidates.get(timeout=self.sweep_interval)
            except queue.Empty:
                self.run_sweep()
                continue

            if candidate is _STOP:
                break
            try:
                self.dispatch(Path(candidate))
            except Exception as e:
                # A single pass must never take the dispatch loop down
                self.logger.exception(f"Unexpected error dispatching {candidate}: {e}")

    def run_sweep(self):
        """Dispatch every unprocessed directory under the watch roots."""
        for dir_path in self.watcher.sweep():
            if self._stop_event.is_set():
                return
            try:
                self.dispatch(dir_path)
            except Exception as e:
                self.logger.exception(f"Unexpected error dispatching {dir_path}: {e}")

    def dispatch(self, dir_path: Path) -> Optional[UploadResult]:
        """
        Run one candidate directory through the pipeline.

        Args:
            dir_path: Candidate directory from a sweep or a watch event

        Returns:
            The UploadResult if a post was created, otherwise None
        """
        dir_path = Path(dir_path)
        key = str(dir_path)
        if self.processed.is_marked(key):
            return None
        self.stats['candidates_seen'] += 1

        if key not in self._delayed:
            self._delayed.add(key)
            delay = self.context.settings.process_delay
            self.logger.info(f"Waiting {delay}s before processing {dir_path}")
            if self._stop_event.wait(delay):
                self._delayed.discard(key)
                return None

        if not dir_path.is_dir():
            self._delayed.discard(key)
            return None

        if not is_complete_pass(dir_path):
            self.stats['incomplete_skipped'] += 1
            self.logger.debug(f"{dir_path} is not a complete satellite pass yet, skipping")
            return None

        if not self.processed.try_mark(key):
            return None

        result = self._process(dir_path)
        if result is None:
            self.processed.clear(key)
        else:
            self._delayed.discard(key)
        return result

    def _process(self, dir_path: Path) -> Optional[UploadResult]:
        self.logger.info(f"Processing satellite pass {dir_path}")
        start_time = time.time()

        try:
            package = self.packager.build(dir_path)
            result = self.uploader.upload(package)
        except (MetadataError, ApiError, OSError) as e:
            self.stats['passes_failed'] += 1
            self.logger.error(f"Failed to process satellite pass {dir_path}: {e}")
            return None

        processing_time = time.time() - start_time
        self.stats['passes_posted'] += 1
        self.stats['processing_time_total'] += processing_time
        self.stats['last_processed'] = time.time()

        self.logger.info(f"Pipeline completed for {dir_path} in {processing_time:.2f}s: post {result.post_id}, "
                         f"{len(result.uploaded)} files uploaded, {len(result.failed)} failed")
        return result

    def get_status(self) -> Dict[str, Any]:
        """Get current status of the pipeline coordinator."""
        return {
            'service': 'PipelineCoordinator',
            'status': 'running' if self.running else 'stopped',
            'processed_directory': str(self.processed_dir),
            'process_delay': self.context.settings.process_delay,
            'tracked_directories': len(self.processed),
            'statistics': self.stats.copy(),
            'watcher': self.watcher.get_status(),
            'packager': self.packager.get_status(),
            'uploader': self.uploader.get_status()
        }
