"""FilesystemStore: one JSON document per thread, replaced atomically."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from ..core.store import ThreadStore
from ..types import StorageError, ThreadState
from .helpers import atomic_write_text, dict_to_thread, dumps_thread

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]+$")


class FilesystemStore(ThreadStore):
    """Store each thread as ``<root>/<thread_id>.json``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, thread_id: str) -> Path:
        if not _SAFE_ID.match(thread_id) or thread_id in (".", ".."):
            raise StorageError(f"Thread id not usable as a filename: {thread_id!r}")
        return self.root / f"{thread_id}.json"

    def get(self, thread_id: str) -> ThreadState | None:
        path = self._path_for(thread_id)
        if not path.is_file():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return dict_to_thread(raw)
        except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
            raise StorageError(f"Failed to load thread {thread_id}: {e}") from e

    def save(self, state: ThreadState) -> None:
        path = self._path_for(state.id)
        try:
            atomic_write_text(path, dumps_thread(state))
        except OSError as e:
            raise StorageError(f"Failed to save thread {state.id}: {e}") from e
        logger.debug("Saved thread %s (%d messages)", state.id, len(state.messages))

    def delete(self, thread_id: str) -> bool:
        path = self._path_for(thread_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete thread {thread_id}: {e}") from e
        return True

    def list_threads(self) -> list[str]:
        files = sorted(
            self.root.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True,
        )
        return [p.stem for p in files]
