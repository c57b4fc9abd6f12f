"""Pytest fixtures: an in-memory object store behind httpx.MockTransport."""

import base64
import hashlib
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote

import httpx
import pytest

from bucketfs.api import HttpFileSystem
from bucketfs.models import AdapterConfig

TOKEN = "test-token"
BASE_URL = "http://localhost:8088"
BUCKET = "anfang"
UPDATED = "2020-09-01T12:00:00.000Z"

COPY_RE = re.compile(r"^/(?P<src>[^/]+)/copyTo/b/(?P<bucket>[^/]+)/o/(?P<dst>[^/]+)$")


class FakeObjectStore:
    """Emulates the bucket/object JSON API closely enough for the adapter."""

    def __init__(self, bucket: str = BUCKET):
        self.bucket = bucket
        self.objects: Dict[str, bytes] = {}
        self.requests: List[Tuple[str, str, Dict[str, str]]] = []
        self.honour_ranges = True
        self.fail_copy = False
        self.fail_all = False
        self.reject_existing_markers = False

    def add(self, key: str, data: bytes = b"") -> None:
        self.objects[key] = data

    def record(self, key: str) -> dict:
        data = self.objects[key]
        return {
            "kind": "storage#object",
            "bucket": self.bucket,
            "name": key,
            "size": str(len(data)),
            "md5Hash": base64.b64encode(hashlib.md5(data).digest()).decode("ascii"),
            "updated": UPDATED,
        }

    def methods(self) -> List[str]:
        return [method for method, _, _ in self.requests]

    def handle(self, request: httpx.Request) -> httpx.Response:
        raw = request.url.raw_path.decode("ascii")
        path, _, query = raw.partition("?")
        params = dict(part.split("=", 1) for part in query.split("&") if "=" in part)
        params = {name: unquote(value) for name, value in params.items()}
        self.requests.append((request.method, unquote(path), params))

        if request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return httpx.Response(401, json={"error": "unauthorized"})
        if self.fail_all:
            return httpx.Response(503, text="unavailable")

        base = f"/v1/b/{self.bucket}/o"
        if not path.startswith(base):
            return httpx.Response(404, json={"error": "no such bucket"})
        rest = path[len(base):]

        copy = COPY_RE.match(rest)
        if copy and request.method == "POST":
            return self._copy(unquote(copy["src"]), unquote(copy["dst"]))
        if rest in ("", "/"):
            if request.method == "GET":
                return self._list(params.get("prefix", ""))
            if request.method == "POST" and "name" in params:
                return self._insert(params["name"], request.content)
            return httpx.Response(400, json={"error": "bad request"})

        key = unquote(rest[1:])
        if request.method == "GET" and params.get("alt") == "media":
            return self._media(key, request.headers.get("Range"))
        if request.method == "GET":
            if key not in self.objects:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json=self.record(key))
        if request.method == "DELETE":
            if self.objects.pop(key, None) is None:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(204)
        return httpx.Response(405)

    def _list(self, prefix: str) -> httpx.Response:
        items, prefixes = [], []
        for key in sorted(self.objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if "/" in rest:
                child = prefix + rest.split("/", 1)[0] + "/"
                if child not in prefixes:
                    prefixes.append(child)
            else:
                items.append(self.record(key))
        body = {"kind": "storage#objects"}
        if items:
            body["items"] = items
        if prefixes:
            body["prefixes"] = prefixes
        return httpx.Response(200, json=body)

    def _insert(self, key: str, data: bytes) -> httpx.Response:
        if self.reject_existing_markers and key.endswith("/") and key in self.objects:
            return httpx.Response(412, json={"error": "precondition failed"})
        self.objects[key] = data
        return httpx.Response(200, json=self.record(key))

    def _media(self, key: str, range_header: Optional[str]) -> httpx.Response:
        if key not in self.objects:
            return httpx.Response(404, json={"error": "not found"})
        data = self.objects[key]
        if range_header and self.honour_ranges:
            start = int(range_header[len("bytes="):].rstrip("-"))
            if start >= len(data):
                return httpx.Response(416, json={"error": "range not satisfiable"})
            return httpx.Response(206, content=data[start:])
        return httpx.Response(200, content=data)

    def _copy(self, src: str, dst: str) -> httpx.Response:
        if self.fail_copy:
            return httpx.Response(500, json={"error": "backend error"})
        if src not in self.objects:
            return httpx.Response(404, json={"error": "not found"})
        self.objects[dst] = self.objects[src]
        return httpx.Response(200, json=self.record(dst))


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def config():
    return AdapterConfig(base_url=BASE_URL, bucket=BUCKET, auth_token=TOKEN)


@pytest.fixture
def client(store):
    return httpx.AsyncClient(transport=httpx.MockTransport(store.handle))


@pytest.fixture
def fs(config, client):
    return HttpFileSystem(config, client=client)
