"""Shared helpers for storage backends."""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from ..types import Message, Role, ThreadState


def dt_to_str(dt: datetime) -> str:
    return dt.isoformat()


def str_to_dt(s: str) -> datetime:
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def message_to_dict(m: Message) -> dict:
    return {
        "id": m.id,
        "role": m.role.value,
        "content": m.content,
        "created_at": dt_to_str(m.created_at),
    }


def dict_to_message(raw: dict) -> Message:
    return Message(
        id=raw["id"],
        role=Role(raw["role"]),
        content=raw["content"],
        created_at=str_to_dt(raw["created_at"]),
    )


def thread_to_dict(state: ThreadState) -> dict:
    return {
        "id": state.id,
        "summary": state.summary,
        "last_updated": dt_to_str(state.last_updated),
        "messages": [message_to_dict(m) for m in state.messages],
    }


def dict_to_thread(raw: dict) -> ThreadState:
    return ThreadState(
        id=raw["id"],
        summary=raw.get("summary", ""),
        last_updated=str_to_dt(raw["last_updated"]),
        messages=tuple(dict_to_message(m) for m in raw.get("messages", [])),
    )


def atomic_write_text(path: Path, text: str) -> None:
    """Write via a sibling temp file + os.replace so readers never see a partial file."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def dumps_thread(state: ThreadState) -> str:
    return json.dumps(thread_to_dict(state), indent=2, ensure_ascii=False)
