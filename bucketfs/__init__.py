"""Serve an object-store bucket through a hierarchical filesystem interface."""

from .api import HttpFileSystem, ObjectReader
from .backend import StorageBackend
from .errors import ErrorKind, StorageError
from .gateway import FileGateway, HttpBackendFactory, with_http
from .models import AdapterConfig, DirectoryEntry, ObjectMetadata, ObjectRecord

__all__ = [
    "AdapterConfig",
    "DirectoryEntry",
    "ErrorKind",
    "FileGateway",
    "HttpBackendFactory",
    "HttpFileSystem",
    "ObjectMetadata",
    "ObjectReader",
    "ObjectRecord",
    "StorageBackend",
    "StorageError",
    "with_http",
]
