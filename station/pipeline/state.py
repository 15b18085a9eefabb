"""
Processed-state tracking for pass directories
"""

import threading
from typing import Dict, List


class ProcessedState:
    """
    In-memory record of pass directories owned by the pipeline.

    A path is marked before any network call is made for it and stays marked
    once the pass has been posted. The mark is cleared only when creating the
    post fails, which makes the directory eligible again on the next sweep or
    event. Nothing is persisted; after a restart the archive move is what
    keeps a pass from being posted twice.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._processed: Dict[str, bool] = {}

    @staticmethod
    def _key(path) -> str:
        return str(path)

    def is_marked(self, path) -> bool:
        with self._lock:
            return self._processed.get(self._key(path), False)

    def mark_in_progress(self, path):
        with self._lock:
            self._processed[self._key(path)] = True

    def try_mark(self, path) -> bool:
        """Mark the path unless it is already marked. Returns True if this call marked it."""
        key = self._key(path)
        with self._lock:
            if self._processed.get(key, False):
                return False
            self._processed[key] = True
            return True

    def clear(self, path):
        with self._lock:
            self._processed.pop(self._key(path), None)

    def marked_paths(self) -> List[str]:
        with self._lock:
            return sorted(self._processed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._processed)
