"""MemoryStore: process-local thread store for tests and single-process use."""

from __future__ import annotations

import threading

from ..core.store import ThreadStore
from ..types import ThreadState


class MemoryStore(ThreadStore):
    """Keep ThreadState values in a dict.

    ThreadState is immutable, so swapping the dict entry under the lock is an
    atomic replace; readers holding an older value keep a consistent snapshot.
    """

    def __init__(self) -> None:
        self._threads: dict[str, ThreadState] = {}
        self._lock = threading.Lock()

    def get(self, thread_id: str) -> ThreadState | None:
        with self._lock:
            return self._threads.get(thread_id)

    def save(self, state: ThreadState) -> None:
        with self._lock:
            self._threads[state.id] = state

    def delete(self, thread_id: str) -> bool:
        with self._lock:
            return self._threads.pop(thread_id, None) is not None

    def list_threads(self) -> list[str]:
        with self._lock:
            ordered = sorted(
                self._threads.values(), key=lambda s: s.last_updated, reverse=True,
            )
        return [s.id for s in ordered]
