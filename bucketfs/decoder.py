"""Decode object-store JSON responses into filesystem entries."""

import base64
import binascii
import json
from typing import List, Union

from .errors import ErrorKind, StorageError
from .models import DELIMITER, DirectoryEntry, ListingResponse, ObjectMetadata, ObjectRecord

Body = Union[bytes, str]


def _load(body: Body):
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise StorageError(ErrorKind.DATA_FORMAT, f"Response is not valid JSON: {e}") from e


def parse_record(body: Body) -> ObjectRecord:
    """Decode a single object resource."""
    return ObjectRecord.from_dict(_load(body))


def parse_object(body: Body) -> ObjectMetadata:
    return parse_record(body).to_metadata()


def _relative(name: str, root_prefix: str) -> str:
    root = root_prefix.strip(DELIMITER)
    if root and name.startswith(root + DELIMITER):
        name = name[len(root) + 1:]
    return name.rstrip(DELIMITER)


def parse_listing(body: Body, root_prefix: str = "") -> List[DirectoryEntry]:
    """Decode a listing into directories (in prefix order) followed by files.

    Items whose key ends with the delimiter are directory markers and are
    not reported as files. Paths are made relative to ``root_prefix``.
    """
    listing = ListingResponse.from_dict(_load(body))

    dirs = [
        DirectoryEntry.directory(_relative(prefix, root_prefix))
        for prefix in listing.prefixes
    ]
    files = [
        DirectoryEntry(path=_relative(item.name, root_prefix), metadata=item.to_metadata())
        for item in listing.items
        if item.is_file
    ]
    return dirs + files


def decode_content_hash(record: ObjectRecord) -> str:
    """Return the record's base64 content hash as lowercase hex."""
    if not record.content_hash:
        raise StorageError(ErrorKind.LOCAL_PROCESSING, f"Object {record.name!r} has no content hash")
    try:
        digest = base64.b64decode(record.content_hash, validate=True)
    except (binascii.Error, ValueError) as e:
        raise StorageError(ErrorKind.LOCAL_PROCESSING, f"Invalid base64 content hash: {e}") from e
    return digest.hex()
