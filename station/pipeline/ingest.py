"""
Pass Watcher - Watches the SatDump output directories for new satellite passes
"""

import os
import queue
from pathlib import Path
from typing import Dict, Any, Iterator, List, Optional
import logging

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .errors import WatcherStartupError
from .state import ProcessedState


class PassWatcher:
    """
    Surfaces candidate pass directories from the watch roots.

    This service:
    1. Sweeps the immediate children of every watch root
    2. Subscribes to creation events on each root (never recursively)
    3. Queues every new directory as a candidate for the dispatch loop

    The same directory may be queued more than once; the ProcessedState
    check on the dispatch side absorbs duplicates.
    """

    def __init__(self,
                 watch_paths: List[Path],
                 processed: ProcessedState,
                 logger: Optional[logging.Logger] = None,
                 observer_factory=Observer):
        """
        Initialize the pass watcher.

        Args:
            watch_paths: Watch roots whose immediate children are passes
            processed: Processed-state tracker consulted by sweep()
            logger: Service logger
            observer_factory: Callable returning a watchdog observer
        """
        self.watch_paths = [Path(p) for p in watch_paths]
        self.processed = processed
        self.logger = logger or logging.getLogger('PassWatcher')
        self._observer_factory = observer_factory
        self.observer = None
        self.event_handler = PassDirectoryHandler(self)
        self.watched_paths: List[Path] = []

        # Candidate directories waiting for the dispatch loop
        self.candidates: "queue.Queue[str]" = queue.Queue()

        self.stats = {
            'events_received': 0,
            'candidates_queued': 0,
            'sweeps': 0,
            'last_sweep': None
        }

    def start(self):
        """
        Start the filesystem observer and subscribe to every watch root.

        A root that cannot be watched is skipped with a warning. Failing to
        start the observer itself raises WatcherStartupError.
        """
        try:
            self.observer = self._observer_factory()
            self.observer.start()
        except Exception as e:
            raise WatcherStartupError(f"failed to create watcher: {e}") from e

        for path in self.watch_paths:
            try:
                if not path.is_dir():
                    raise FileNotFoundError(f"no such directory: {path}")
                self.observer.schedule(self.event_handler, str(path), recursive=False)
            except OSError as e:
                self.logger.warning(f"Failed to watch path {path}: {e}")
                continue
            self.watched_paths.append(path)
            self.logger.info(f"Watching directory {path}")

    def stop(self):
        """Close the subscription. Queued candidates are left for the caller to drop."""
        if self.observer is None:
            return
        try:
            self.observer.unschedule_all()
            self.observer.stop()
            self.observer.join(timeout=5.0)
        except RuntimeError as e:
            self.logger.error(f"Error stopping watcher: {e}")
        finally:
            self.observer = None
            self.watched_paths = []
        self.logger.info("Stopped pass watcher")

    @property
    def is_running(self) -> bool:
        return self.observer is not None and self.observer.is_alive()

    def sweep(self) -> Iterator[Path]:
        """Yield every not-yet-processed directory directly under a watch root."""
        self.stats['sweeps'] += 1
        for watch_path in self.watch_paths:
            try:
                entries = sorted(watch_path.iterdir())
            except OSError as e:
                self.logger.warning(f"Failed to read directory {watch_path}: {e}")
                continue

            for entry in entries:
                if not entry.is_dir():
                    continue
                if self.processed.is_marked(entry):
                    continue
                yield entry

    def queue_candidate(self, dir_path: str):
        self.candidates.put(str(dir_path))
        self.stats['candidates_queued'] += 1

    def is_watch_root_child(self, path: str) -> bool:
        parent = Path(path).parent
        return any(parent == root for root in self.watch_paths)

    def get_status(self) -> Dict[str, Any]:
        """Get current status of the watcher."""
        return {
            'service': 'PassWatcher',
            'status': 'running' if self.is_running else 'stopped',
            'watch_directories': [str(p) for p in self.watch_paths],
            'watched_directories': [str(p) for p in self.watched_paths],
            'queue_length': self.candidates.qsize(),
            'statistics': self.stats.copy()
        }


class PassDirectoryHandler(FileSystemEventHandler):
    """
    Forwards new pass directories to the PassWatcher.

    Files are ignored; a pass always starts out as a directory.
    """

    def __init__(self, watcher: PassWatcher):
        self.watcher = watcher
        self.logger = watcher.logger

    def on_created(self, event):
        """Handle directory creation events."""
        self.watcher.stats['events_received'] += 1
        path = os.fsdecode(event.src_path)
        if os.path.isdir(path):
            self.logger.info(f"Detected new satellite pass directory {path}")
            self.watcher.queue_candidate(path)

    def on_moved(self, event):
        """Handle directories renamed into a watch root."""
        self.watcher.stats['events_received'] += 1
        path = os.fsdecode(event.dest_path)
        if os.path.isdir(path) and self.watcher.is_watch_root_child(path):
            self.logger.info(f"Pass directory moved into watch path {path}")
            self.watcher.queue_candidate(path)
