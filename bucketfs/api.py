"""Object-store backed filesystem over the JSON HTTP API."""

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, List, Optional

import httpx

from .backend import StorageBackend
from .decoder import parse_listing, parse_object, parse_record
from .errors import ErrorKind, StorageError
from .models import AdapterConfig, DirectoryEntry, ObjectMetadata
from .uri import HttpUri

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096

# Answers to a create request for an object that is already there.
ALREADY_EXISTS = (409, 412)


class ObjectReader:
    """Lazy byte stream over a streamed download.

    The underlying response is released once the stream is exhausted, closed,
    or fails.
    """

    def __init__(self, response: httpx.Response, chunk_size: int = CHUNK_SIZE):
        self._response = response
        self._chunks = response.aiter_bytes(chunk_size)
        self._buffer = b""
        self._eof = False

    @property
    def closed(self) -> bool:
        return self._eof

    async def _next_chunk(self) -> bytes:
        if self._eof:
            return b""
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            return b""
        except httpx.HTTPError as e:
            await self.aclose()
            raise StorageError(ErrorKind.NOT_AVAILABLE, f"Download interrupted: {e}") from e
        except BaseException:
            await self.aclose()
            raise

    async def read(self, n: int = -1) -> bytes:
        """Read up to ``n`` bytes, or everything that is left if ``n`` is negative."""
        if n is None or n < 0:
            parts = [self._buffer]
            self._buffer = b""
            while True:
                chunk = await self._next_chunk()
                if not chunk:
                    break
                parts.append(chunk)
            return b"".join(parts)

        while len(self._buffer) < n:
            chunk = await self._next_chunk()
            if not chunk:
                break
            self._buffer += chunk
        data, self._buffer = self._buffer[:n], self._buffer[n:]
        return data

    def __aiter__(self) -> "ObjectReader":
        return self

    async def __anext__(self) -> bytes:
        if self._buffer:
            data, self._buffer = self._buffer, b""
            return data
        chunk = await self._next_chunk()
        if not chunk:
            raise StopAsyncIteration
        return chunk

    async def aclose(self) -> None:
        if not self._eof:
            self._eof = True
            await self._response.aclose()

    async def __aenter__(self) -> "ObjectReader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


async def _chunked(source: Any, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Pull ``source`` one bounded window at a time."""
    try:
        if isinstance(source, (bytes, bytearray, memoryview)):
            data = bytes(source)
            for start in range(0, len(data), chunk_size):
                yield data[start:start + chunk_size]
        elif hasattr(source, "read"):
            read_async = inspect.iscoroutinefunction(source.read)
            while True:
                if read_async:
                    chunk = await source.read(chunk_size)
                else:
                    chunk = await asyncio.to_thread(source.read, chunk_size)
                if not chunk:
                    break
                yield bytes(chunk)
        elif hasattr(source, "__aiter__"):
            async for chunk in source:
                for start in range(0, len(chunk), chunk_size):
                    yield bytes(chunk[start:start + chunk_size])
        else:
            for chunk in source:
                for start in range(0, len(chunk), chunk_size):
                    yield bytes(chunk[start:start + chunk_size])
    except OSError as e:
        raise StorageError(ErrorKind.LOCAL_PROCESSING, f"Reading upload source failed: {e}") from e


def _is_byte_source(source: Any) -> bool:
    return (
        isinstance(source, (bytes, bytearray, memoryview))
        or hasattr(source, "read")
        or hasattr(source, "__aiter__")
        or (hasattr(source, "__iter__") and not isinstance(source, str))
    )


class HttpFileSystem(StorageBackend):
    """Filesystem backend for a bucket behind an object-storage JSON API.

    Holds nothing but the immutable configuration and a pooled client, so one
    instance may serve concurrent calls.
    """

    def __init__(self, config: AdapterConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.uris = HttpUri.from_config(config)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.timeout)

    @classmethod
    def new(cls, base_url: str, bucket: str, token: str, root: str = "", **kwargs) -> "HttpFileSystem":
        return cls(AdapterConfig(base_url=base_url, bucket=bucket, auth_token=token, root_prefix=root), **kwargs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "HttpFileSystem":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _check_enabled(self, operation: str) -> None:
        if operation in self.config.disabled_operations:
            raise StorageError(ErrorKind.NOT_IMPLEMENTED, f"{operation} is disabled")

    async def _send(self, method: str, url: str, *, stream: bool = False, **kwargs) -> httpx.Response:
        """Make an authenticated request; transport failures become NOT_AVAILABLE."""
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self.config.auth_token}"

        logger.debug(f"{method} {url}")
        request = self.client.build_request(method, url, headers=headers, **kwargs)
        try:
            response = await self.client.send(request, stream=stream)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise StorageError(ErrorKind.NOT_AVAILABLE, f"Request failed: {e}") from e
        logger.debug(f"{method} {url} -> {response.status_code}")
        return response

    @staticmethod
    def _expect_success(response: httpx.Response, what: str) -> None:
        if not response.is_success:
            logger.warning(f"{what} failed with status {response.status_code}")
            raise StorageError(
                ErrorKind.NOT_AVAILABLE,
                f"{what} failed with status {response.status_code}",
            )

    async def _list(self, path: str) -> List[DirectoryEntry]:
        response = await self._send("GET", self.uris.list_url(path))
        self._expect_success(response, f"list {path}")
        try:
            return parse_listing(response.content, self.config.root_prefix)
        except StorageError as e:
            raise StorageError(ErrorKind.NOT_AVAILABLE, f"Undecodable listing for {path}: {e}") from e

    async def _marker_exists(self, path: str) -> bool:
        response = await self._send("GET", self.uris.directory_marker_url(path))
        return response.is_success

    async def metadata(self, user: Any, path: str) -> ObjectMetadata:
        self._check_enabled("metadata")
        response = await self._send("GET", self.uris.metadata_url(path))
        self._expect_success(response, f"metadata {path}")
        try:
            return parse_object(response.content)
        except StorageError as e:
            raise StorageError(ErrorKind.NOT_AVAILABLE, f"Undecodable metadata for {path}: {e}") from e

    async def list(self, user: Any, path: str) -> List[DirectoryEntry]:
        self._check_enabled("list")
        return await self._list(path)

    async def get(self, user: Any, path: str, start_pos: int = 0) -> ObjectReader:
        self._check_enabled("get")
        headers = {}
        if start_pos > 0:
            headers["Range"] = f"bytes={start_pos}-"

        response = await self._send("GET", self.uris.get_url(path), headers=headers, stream=True)
        try:
            self._expect_success(response, f"get {path}")
            if start_pos > 0 and response.status_code != 206:
                raise StorageError(
                    ErrorKind.NOT_IMPLEMENTED,
                    f"Object store ignored the range request for {path}",
                )
        except BaseException:
            await response.aclose()
            raise
        return ObjectReader(response)

    async def put(self, user: Any, source: Any, path: str, start_pos: int = 0) -> int:
        self._check_enabled("put")
        if start_pos != 0:
            raise StorageError(ErrorKind.NOT_IMPLEMENTED, "Resumed uploads are not supported")
        if not _is_byte_source(source):
            raise StorageError(ErrorKind.LOCAL_PROCESSING, f"Cannot upload from {type(source).__name__}")

        response = await self._send(
            "POST",
            self.uris.put_url(path),
            headers={"Content-Type": "application/octet-stream"},
            content=_chunked(source),
        )
        self._expect_success(response, f"put {path}")
        try:
            record = parse_record(response.content)
        except StorageError as e:
            raise StorageError(ErrorKind.NOT_AVAILABLE, f"Undecodable upload result for {path}: {e}") from e
        logger.info(f"Uploaded {path} ({record.size} bytes)")
        return record.size

    async def delete(self, user: Any, path: str) -> None:
        self._check_enabled("delete")
        response = await self._send("DELETE", self.uris.delete_url(path))
        self._expect_success(response, f"delete {path}")

    async def mkdir(self, user: Any, path: str) -> None:
        self._check_enabled("mkdir")
        response = await self._send(
            "POST",
            self.uris.mkd_url(path),
            headers={"Content-Type": "application/octet-stream"},
            content=b"",
        )
        if response.status_code in ALREADY_EXISTS:
            logger.debug(f"Directory {path} already exists")
            return
        self._expect_success(response, f"mkdir {path}")

    async def rmdir(self, user: Any, path: str) -> None:
        self._check_enabled("rmdir")
        if not self.uris.resolve_key(path):
            raise StorageError(ErrorKind.PERMISSION_DENIED, "Cannot remove the root directory")

        if await self._list(path):
            raise StorageError(ErrorKind.NOT_EMPTY, f"Directory {path} is not empty")

        response = await self._send("DELETE", self.uris.directory_marker_url(path))
        self._expect_success(response, f"rmdir {path}")

    async def rename(self, user: Any, source: str, destination: str) -> None:
        self._check_enabled("rename")
        if self.uris.object_key(source) == self.uris.object_key(destination):
            # Copying an object onto itself and deleting the source would lose it.
            response = await self._send("GET", self.uris.metadata_url(source))
            self._expect_success(response, f"rename {source} onto itself")
            logger.debug(f"rename {source} to {destination} names one object, nothing to do")
            return

        # Copy first: the source must survive any failure of the copy.
        response = await self._send("POST", self.uris.copy_url(source, destination))
        self._expect_success(response, f"copy {source} to {destination}")

        response = await self._send("DELETE", self.uris.delete_url(source))
        self._expect_success(response, f"delete {source} after copy to {destination}")

    async def change_directory(self, user: Any, path: str) -> None:
        self._check_enabled("change_directory")
        if not self.config.validate_cwd or not self.uris.resolve_key(path):
            return
        if await self._list(path):
            return
        if not await self._marker_exists(path):
            raise StorageError(ErrorKind.NOT_AVAILABLE, f"No such directory: {path}")
