"""Process-local singleflight registry keyed by fingerprint."""
import logging
import threading
from typing import Optional

from media_converter.conversion.models import InFlightEntry, InFlightState

logger = logging.getLogger("media_converter.inflight")


class InFlightRegistry:
    """At most one pending conversion per fingerprint.

    All reads and writes go through one lock. Not shared across processes.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[str, InFlightEntry] = {}

    def reserve(self, fingerprint: str) -> tuple[bool, InFlightEntry]:
        """Insert-if-absent. Returns (True, new entry) or (False, the existing entry)."""
        with self._lock:
            existing = self._entries.get(fingerprint)
            if existing is not None:
                return False, existing
            entry = InFlightEntry(fingerprint=fingerprint)
            self._entries[fingerprint] = entry
            logger.debug("Reserved %s", fingerprint)
            return True, entry

    def release(self, entry: InFlightEntry) -> None:
        with self._lock:
            if self._entries.get(entry.fingerprint) is entry:
                del self._entries[entry.fingerprint]
            entry.state = InFlightState.DONE
        entry.done.set()
        logger.debug("Released %s", entry.fingerprint)

    def wait(self, entry: InFlightEntry, timeout: float) -> bool:
        """Block until entry is released or timeout passes. True if it finished."""
        with self._lock:
            entry.waiters += 1
        try:
            return entry.done.wait(timeout)
        finally:
            with self._lock:
                entry.waiters -= 1

    def get(self, fingerprint: str) -> Optional[InFlightEntry]:
        with self._lock:
            return self._entries.get(fingerprint)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
