"""WSGI file gateway serving a StorageBackend over plain HTTP."""

import asyncio
import json
import logging
import re
import threading
from email.utils import formatdate
from typing import Any, Callable, Dict, Iterator, List, Optional, Union
from urllib.parse import unquote, urlsplit

import httpx

from .api import CHUNK_SIZE, HttpFileSystem
from .backend import StorageBackend
from .errors import ErrorKind, StorageError
from .models import AdapterConfig, DirectoryEntry, ObjectMetadata

logger = logging.getLogger(__name__)

BackendFactory = Callable[[], StorageBackend]

STATUS_BY_KIND = {
    ErrorKind.NOT_AVAILABLE: "404 Not Found",
    ErrorKind.NOT_IMPLEMENTED: "501 Not Implemented",
    ErrorKind.NAME_REJECTED: "400 Bad Request",
    ErrorKind.DATA_FORMAT: "502 Bad Gateway",
    ErrorKind.LOCAL_PROCESSING: "500 Internal Server Error",
    ErrorKind.NOT_EMPTY: "409 Conflict",
    ErrorKind.PERMISSION_DENIED: "403 Forbidden",
}

RANGE_RE = re.compile(r"^bytes=(\d+)-$")


class HttpBackendFactory:
    """Builds a fresh HttpFileSystem per session, all sharing one pooled client."""

    def __init__(self, config: AdapterConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.timeout)

    def __call__(self) -> HttpFileSystem:
        return HttpFileSystem(self.config, client=self.client)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def with_http(base_url: str, bucket: str, token: str, root: str = "", **kwargs) -> HttpBackendFactory:
    """Factory for a server that serves ``bucket`` through HttpFileSystem."""
    config = AdapterConfig(base_url=base_url, bucket=bucket, auth_token=token, root_prefix=root, **kwargs)
    return HttpBackendFactory(config)


class EventLoopThread:
    """An asyncio loop on a daemon thread that synchronous callers submit to."""

    def __init__(self, name: str = "bucketfs-loop"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, name=name, daemon=True)
        self._thread.start()

    def run(self, coro, timeout: Optional[float] = None):
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return future.result(timeout)
        except TimeoutError:
            future.cancel()
            raise

    def stop(self) -> None:
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join()
        self.loop.close()


class _InputReader:
    """Reads a WSGI input stream off the event loop, honouring Content-Length."""

    def __init__(self, stream, length: Optional[int]):
        self.stream = stream
        self.remaining = length

    async def read(self, n: int) -> bytes:
        if self.remaining is not None:
            n = min(n, self.remaining)
            if n <= 0:
                return b""
        data = await asyncio.to_thread(self.stream.read, n)
        if self.remaining is not None:
            self.remaining -= len(data)
        return data


def format_http_date(metadata: ObjectMetadata) -> str:
    """Last-Modified value; the current time if the store sent no timestamp."""
    try:
        return formatdate(metadata.modified().timestamp(), usegmt=True)
    except StorageError:
        return formatdate(usegmt=True)


def entry_to_dict(entry: DirectoryEntry) -> Dict[str, Any]:
    modified = entry.metadata.last_updated
    return {
        "name": entry.path,
        "size": entry.metadata.size,
        "is_dir": entry.metadata.is_dir(),
        "modified": modified.isoformat() if modified else None,
    }


class ReaderBody:
    """WSGI response body draining an ``ObjectReader``.

    The server calls ``close()`` whether or not iteration ever started, and
    that releases the download.
    """

    def __init__(self, run: Callable, reader):
        self.run = run
        self.reader = reader

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.run(self.reader.read(CHUNK_SIZE))
            if not chunk:
                break
            yield chunk

    def close(self) -> None:
        self.run(self.reader.aclose())


class FileGateway:
    """WSGI application translating HTTP file requests to backend calls.

    Supports GET (download or JSON listing), HEAD, PUT, DELETE, MKCOL and MOVE.
    """

    def __init__(
        self,
        factory: BackendFactory,
        loop: Optional[EventLoopThread] = None,
        request_timeout: Optional[float] = None,
        user: Any = None,
    ):
        self.factory = factory
        self.loop = loop or EventLoopThread()
        self.request_timeout = request_timeout
        self.user = user

    def run(self, coro):
        return self.loop.run(coro, self.request_timeout)

    def __call__(self, environ, start_response):
        method = environ.get("REQUEST_METHOD", "GET")
        path_info = environ.get("PATH_INFO", "/") or "/"
        try:
            raw_path = path_info.encode("latin-1")
        except UnicodeEncodeError:
            raw_path = path_info.encode("utf-8", "surrogateescape")

        logger.info(f"Request: {method} {raw_path.decode('latin-1')}")

        try:
            path: Union[str, bytes] = raw_path.decode("utf-8")
        except UnicodeDecodeError:
            path = raw_path
        is_dir = raw_path.endswith(b"/")
        backend = self.factory()

        try:
            if method == "GET":
                return self.handle_get(environ, start_response, backend, path, is_dir)
            elif method == "HEAD":
                return self.handle_head(environ, start_response, backend, path, is_dir)
            elif method == "PUT":
                return self.handle_put(environ, start_response, backend, path)
            elif method == "DELETE":
                return self.handle_delete(environ, start_response, backend, path, is_dir)
            elif method == "MKCOL":
                self.run(backend.mkdir(self.user, path))
                return self.send_response(start_response, "201 Created", b"")
            elif method == "MOVE":
                return self.handle_move(environ, start_response, backend, path)

            return self.send_error(start_response, "405 Method Not Allowed", "method_not_allowed", f"Unsupported method {method}")

        except StorageError as e:
            logger.warning(f"{method} {raw_path.decode('latin-1')}: {e.kind.name} {e.message}")
            return self.send_error(start_response, STATUS_BY_KIND[e.kind], e.kind.value, e.message)
        except Exception as e:
            logger.exception("Gateway Error")
            return self.send_error(start_response, "500 Internal Server Error", "internal_error", str(e))

    def send_response(self, start_response, status, content, content_type="application/json", headers=None):
        resp_headers = [
            ("Content-Type", content_type),
            ("Content-Length", str(len(content))),
            ("Date", formatdate(usegmt=True)),
            ("Server", "bucketfs"),
        ]
        if headers:
            resp_headers.extend(headers)
        start_response(status, resp_headers)
        return [content]

    def send_json(self, start_response, status, data):
        return self.send_response(start_response, status, json.dumps(data).encode("utf-8"))

    def send_error(self, start_response, status, code, message):
        return self.send_json(start_response, status, {"error": code, "message": message})

    def _listing(self, start_response, path, entries: List[DirectoryEntry]):
        data = {
            "path": path,
            "entries": [entry_to_dict(entry) for entry in entries],
        }
        return self.send_json(start_response, "200 OK", data)

    def _stat(self, backend: StorageBackend, path):
        """Metadata for ``path``, or None if it only exists as a key prefix."""
        try:
            return self.run(backend.metadata(self.user, path))
        except StorageError as e:
            if e.kind != ErrorKind.NOT_AVAILABLE:
                raise
            if self.run(backend.list(self.user, path)):
                return None
            raise

    def handle_get(self, environ, start_response, backend, path, is_dir):
        if is_dir:
            self.run(backend.change_directory(self.user, path))
            return self._listing(start_response, path, self.run(backend.list(self.user, path)))

        metadata = self._stat(backend, path)
        if metadata is None or metadata.is_dir():
            return self._listing(start_response, path, self.run(backend.list(self.user, path)))

        start = 0
        match = RANGE_RE.match(environ.get("HTTP_RANGE", ""))
        if match:
            start = int(match.group(1))

        reader = self.run(backend.get(self.user, path, start))
        headers = [
            ("Content-Type", "application/octet-stream"),
            ("Content-Length", str(max(metadata.size - start, 0))),
            ("Last-Modified", format_http_date(metadata)),
            ("Accept-Ranges", "bytes"),
        ]
        status = "200 OK"
        if start:
            status = "206 Partial Content"
            headers.append(("Content-Range", f"bytes {start}-{metadata.size - 1}/{metadata.size}"))
        start_response(status, headers)
        return ReaderBody(self.run, reader)

    def handle_head(self, environ, start_response, backend, path, is_dir):
        if is_dir:
            self.run(backend.change_directory(self.user, path))
            metadata = None
        else:
            metadata = self._stat(backend, path)

        if metadata is None or metadata.is_dir():
            headers = [("Content-Length", "0"), ("X-Is-Dir", "true")]
        else:
            headers = [
                ("Content-Type", "application/octet-stream"),
                ("Content-Length", str(metadata.size)),
                ("Last-Modified", format_http_date(metadata)),
                ("X-Is-Dir", "false"),
            ]
        start_response("200 OK", headers)
        return []

    def handle_put(self, environ, start_response, backend, path):
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        chunked = environ.get("HTTP_TRANSFER_ENCODING", "").lower() == "chunked"
        source = _InputReader(environ["wsgi.input"], None if chunked else length)

        size = self.run(backend.put(self.user, source, path))
        return self.send_json(start_response, "201 Created", {"size": size})

    def handle_delete(self, environ, start_response, backend, path, is_dir):
        if is_dir:
            self.run(backend.rmdir(self.user, path))
        else:
            self.run(backend.delete(self.user, path))
        return self.send_response(start_response, "204 No Content", b"")

    def handle_move(self, environ, start_response, backend, path):
        destination = environ.get("HTTP_DESTINATION")
        if not destination:
            return self.send_error(start_response, "400 Bad Request", "missing_destination", "Destination header required")
        target = unquote(urlsplit(destination).path)
        logger.info(f"Rename: {path} -> {target}")
        self.run(backend.rename(self.user, path, target))
        return self.send_response(start_response, "201 Created", b"")
