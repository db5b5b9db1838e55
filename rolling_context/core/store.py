"""ThreadStore abstract base class: the per-thread persistence contract."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..types import ThreadState


class ThreadStore(ABC):
    """Pluggable storage backend for conversation threads.

    ``save`` must replace the stored state atomically: it either fully
    supersedes the previous state or raises ``StorageError`` leaving it
    untouched. Stores give no concurrency guarantee; callers serialize
    read-modify-write cycles per thread id.
    """

    @abstractmethod
    def get(self, thread_id: str) -> ThreadState | None:
        """Load a thread's full state. None if the id is unknown."""

    @abstractmethod
    def save(self, state: ThreadState) -> None:
        """Persist ``state``, replacing whatever is stored under ``state.id``."""

    def delete(self, thread_id: str) -> bool:
        """Remove a thread. Returns True if something was deleted."""
        return False

    def list_threads(self) -> list[str]:
        """Return known thread ids, most recently updated first."""
        return []

    def close(self) -> None:
        """Release any held resources."""
