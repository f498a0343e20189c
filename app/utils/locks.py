import threading
from contextlib import contextmanager
from typing import Dict, Hashable


class FacilityLocks:
    """Hands out one lock per facility id.

    Held across the availability check and the write that depends on it, so
    two requests for the same facility cannot both pass the check before
    either commits. Requests for different facilities never wait on each
    other.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def get(self, facility_id: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(facility_id)
            if lock is None:
                lock = self._locks[facility_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, facility_id: Hashable):
        lock = self.get(facility_id)
        with lock:
            yield


# Shared by every request in this process
facility_locks = FacilityLocks()
