"""Translate filesystem paths into object keys and JSON API URLs."""

import string
from pathlib import PurePosixPath
from typing import Union

import httpx

from .errors import ErrorKind, StorageError
from .models import DELIMITER, AdapterConfig

PathLike = Union[str, bytes, PurePosixPath]

ENCODED_DELIMITER = "%2F"

_UNRESERVED = frozenset((string.ascii_letters + string.digits).encode("ascii"))


def percent_encode(text: str) -> str:
    """Percent-encode every byte of the UTF-8 form that is not ASCII alphanumeric."""
    return "".join(
        chr(byte) if byte in _UNRESERVED else f"%{byte:02X}"
        for byte in text.encode("utf-8")
    )


def make_url(url: str) -> str:
    """Return ``url`` unchanged once httpx accepts it as an absolute http(s) URL."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise StorageError(ErrorKind.NAME_REJECTED, f"Invalid URL: {url}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise StorageError(ErrorKind.NAME_REJECTED, f"Invalid URL: {url}")
    return url


class HttpUri:
    """Builds request URLs for one bucket, relative to an optional root prefix."""

    def __init__(self, base_url: str, bucket: str, root: str = ""):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.root = root.strip(DELIMITER)

    @classmethod
    def from_config(cls, config: AdapterConfig) -> "HttpUri":
        return cls(config.base_url, config.bucket, config.root_prefix)

    @property
    def _objects(self) -> str:
        return f"{self.base_url}/v1/b/{self.bucket}/o"

    def resolve_key(self, path: PathLike) -> str:
        """Map a filesystem path to its percent-encoded object key.

        A leading separator is insignificant: ``"a/b"`` and ``"/a/b"`` name the
        same key.
        """
        if isinstance(path, bytes):
            try:
                path = path.decode("utf-8")
            except UnicodeDecodeError as e:
                raise StorageError(ErrorKind.NAME_REJECTED, f"Path is not valid UTF-8: {path!r}") from e
        path = str(path)
        if path == ".":
            path = ""
        relative = path.lstrip(DELIMITER)

        if self.root and relative:
            joined = f"{self.root}{DELIMITER}{relative}"
        else:
            joined = self.root or relative

        try:
            return percent_encode(joined)
        except UnicodeEncodeError as e:
            raise StorageError(ErrorKind.NAME_REJECTED, f"Path cannot be encoded: {path!r}") from e

    def metadata_url(self, path: PathLike) -> str:
        return make_url(f"{self._objects}/{self.resolve_key(path)}")

    def get_url(self, path: PathLike) -> str:
        return make_url(f"{self._objects}/{self.resolve_key(path)}?alt=media")

    def list_url(self, path: PathLike) -> str:
        prefix = self.resolve_key(path)
        if prefix and not prefix.endswith(ENCODED_DELIMITER):
            prefix += ENCODED_DELIMITER
        return make_url(f"{self._objects}?prefix={prefix}")

    def put_url(self, path: PathLike) -> str:
        name = _trim_delimiters(self.resolve_key(path))
        return make_url(f"{self._objects}?name={name}")

    def mkd_url(self, path: PathLike) -> str:
        name = _trim_delimiters(self.resolve_key(path))
        return make_url(f"{self._objects}?name={name}{ENCODED_DELIMITER}")

    def delete_url(self, path: PathLike) -> str:
        return make_url(f"{self._objects}/{self.resolve_key(path)}")

    def directory_marker_url(self, path: PathLike) -> str:
        """URL of the zero-length object standing in for directory ``path``."""
        key = _trim_delimiters(self.resolve_key(path))
        return make_url(f"{self._objects}/{key}{ENCODED_DELIMITER}")

    def object_key(self, path: PathLike) -> str:
        """Encoded key of the object at ``path``, without trailing delimiters."""
        return _trim_delimiters(self.resolve_key(path))

    def copy_url(self, source: PathLike, destination: PathLike) -> str:
        src = self.object_key(source)
        dst = self.object_key(destination)
        return make_url(f"{self._objects}/{src}/copyTo/b/{self.bucket}/o/{dst}")


def _trim_delimiters(key: str) -> str:
    while key.endswith(ENCODED_DELIMITER):
        key = key[: -len(ENCODED_DELIMITER)]
    return key
