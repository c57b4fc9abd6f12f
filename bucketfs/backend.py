"""Filesystem operations a protocol server expects from a storage backend."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, List

from .models import DirectoryEntry, ObjectMetadata


class StorageBackend(ABC):
    """Backend-agnostic interface for hierarchical filesystem operations.

    ``user`` is an opaque session marker handed through from the protocol
    server. Failures are raised as ``StorageError``.
    """

    @abstractmethod
    async def metadata(self, user: Any, path: str) -> ObjectMetadata:
        """Return metadata for the file or directory at ``path``."""

    @abstractmethod
    async def list(self, user: Any, path: str) -> List[DirectoryEntry]:
        """Return the immediate children of directory ``path``."""

    @abstractmethod
    async def get(self, user: Any, path: str, start_pos: int = 0) -> AsyncIterator[bytes]:
        """Open ``path`` for reading, positioned at ``start_pos``."""

    @abstractmethod
    async def put(self, user: Any, source: Any, path: str, start_pos: int = 0) -> int:
        """Write ``source`` to ``path`` and return the final size in bytes."""

    @abstractmethod
    async def delete(self, user: Any, path: str) -> None:
        """Remove the file at ``path``."""

    @abstractmethod
    async def mkdir(self, user: Any, path: str) -> None:
        """Create directory ``path``. Creating an existing directory succeeds."""

    @abstractmethod
    async def rmdir(self, user: Any, path: str) -> None:
        """Remove directory ``path``, which must be empty."""

    @abstractmethod
    async def rename(self, user: Any, source: str, destination: str) -> None:
        """Move ``source`` to ``destination``."""

    @abstractmethod
    async def change_directory(self, user: Any, path: str) -> None:
        """Accept ``path`` as the session's working directory."""
