from ..core.store import ThreadStore
from ..types import StorageConfig
from .filesystem import FilesystemStore
from .memory import MemoryStore
from .sqlite import SQLiteStore


def build_store(config: StorageConfig) -> ThreadStore:
    """Build the storage backend named by ``config.backend``."""
    if config.backend == "sqlite":
        return SQLiteStore(db_path=config.sqlite_path)
    if config.backend == "filesystem":
        return FilesystemStore(root=config.root)
    if config.backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown storage backend: {config.backend}")


__all__ = ["FilesystemStore", "MemoryStore", "SQLiteStore", "build_store"]
