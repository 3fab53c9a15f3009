import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class SingleFlight:
    """At most one run per key at a time; triggers arriving during a run are coalesced.

    However many triggers land while a job is running, the job runs exactly once more
    after the current run ends, on the caller that started the first run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: set[str] = set()
        self._dirty: set[str] = set()

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._running

    def trigger(self, key: str, job: Callable[[], object]) -> bool:
        """Run job for key, or mark it for a re-run. Returns False when coalesced."""
        with self._lock:
            if key in self._running:
                self._dirty.add(key)
                logger.debug("Run for %s already in flight, coalescing trigger", key)
                return False
            self._running.add(key)
        try:
            while True:
                job()
                with self._lock:
                    if key not in self._dirty:
                        self._running.discard(key)
                        return True
                    self._dirty.discard(key)
        except BaseException:
            with self._lock:
                self._running.discard(key)
                self._dirty.discard(key)
            raise
