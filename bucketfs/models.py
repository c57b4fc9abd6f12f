"""Data models for bucketfs."""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, FrozenSet, List, Optional

from .errors import ErrorKind, StorageError

DELIMITER = "/"

OPERATIONS = frozenset({
    "metadata", "list", "get", "put", "delete",
    "mkdir", "rmdir", "rename", "change_directory",
})


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as sent by the object store."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"not a timestamp: {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_size(value: Any) -> int:
    """Accept a size as a JSON number or a numeric string."""
    if isinstance(value, bool):
        raise ValueError(f"not a size: {value!r}")
    if isinstance(value, int):
        size = value
    elif isinstance(value, float) and value.is_integer():
        size = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        size = int(value.strip())
    else:
        raise ValueError(f"not a size: {value!r}")
    if size < 0:
        raise ValueError(f"negative size: {size}")
    return size


@dataclass(frozen=True)
class AdapterConfig:
    """Connection settings for one object-store bucket."""

    base_url: str
    bucket: str
    auth_token: str
    root_prefix: str = ""
    timeout: float = 60.0
    disabled_operations: FrozenSet[str] = frozenset()
    validate_cwd: bool = False

    def __post_init__(self):
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        object.__setattr__(self, "root_prefix", self.root_prefix.strip(DELIMITER))
        disabled = frozenset(self.disabled_operations)
        unknown = disabled - OPERATIONS
        if unknown:
            raise ValueError(f"Unknown operations: {', '.join(sorted(unknown))}")
        object.__setattr__(self, "disabled_operations", disabled)

    @classmethod
    def from_env(cls, prefix: str = "BUCKETFS") -> "AdapterConfig":
        """Create AdapterConfig from environment variables with given prefix."""
        base_url = os.getenv(f"{prefix}_BASE_URL", "")
        bucket = os.getenv(f"{prefix}_BUCKET", "")
        token = os.getenv(f"{prefix}_TOKEN", "")
        missing = [
            name for name, value in
            (("BASE_URL", base_url), ("BUCKET", bucket), ("TOKEN", token))
            if not value
        ]
        if missing:
            raise ValueError(
                "Missing environment variables: "
                + ", ".join(f"{prefix}_{name}" for name in missing)
            )
        disabled = os.getenv(f"{prefix}_DISABLED_OPERATIONS", "")
        return cls(
            base_url=base_url,
            bucket=bucket,
            auth_token=token,
            root_prefix=os.getenv(f"{prefix}_ROOT", ""),
            timeout=float(os.getenv(f"{prefix}_TIMEOUT", "60")),
            disabled_operations=frozenset(
                op.strip() for op in disabled.split(",") if op.strip()
            ),
            validate_cwd=os.getenv(f"{prefix}_VALIDATE_CWD", "false").lower() == "true",
        )

    def __repr__(self) -> str:
        return (
            f"AdapterConfig(base_url={self.base_url!r}, bucket={self.bucket!r}, "
            f"root_prefix={self.root_prefix!r}, auth_token='***')"
        )


@dataclass(frozen=True)
class ObjectMetadata:
    """Filesystem view of a single object or directory."""

    size: int
    last_updated: Optional[datetime]
    is_file: bool

    def is_dir(self) -> bool:
        return not self.is_file

    def modified(self) -> datetime:
        if self.last_updated is None:
            raise StorageError(ErrorKind.NOT_AVAILABLE, "metadata unavailable")
        return self.last_updated

    # The object store has no notion of links or ownership.
    def is_symlink(self) -> bool:
        return False

    def uid(self) -> int:
        return 0

    def gid(self) -> int:
        return 0


@dataclass(frozen=True)
class DirectoryEntry:
    """One child of a listed directory."""

    path: str
    metadata: ObjectMetadata

    @classmethod
    def directory(cls, path: str) -> "DirectoryEntry":
        """Synthesize an entry for a key prefix; prefixes carry no timestamp."""
        return cls(
            path=path,
            metadata=ObjectMetadata(
                size=0,
                last_updated=datetime.now(timezone.utc),
                is_file=False,
            ),
        )


@dataclass
class ObjectRecord:
    """Represents an object resource as returned by the JSON API."""

    name: str
    updated: datetime
    size: int
    content_hash: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ObjectRecord":
        """Create ObjectRecord from API response dict."""
        if not isinstance(data, dict):
            raise StorageError(ErrorKind.DATA_FORMAT, "object record is not a JSON object")
        try:
            name = data["name"]
            if not isinstance(name, str):
                raise ValueError(f"name is not a string: {name!r}")
            updated = parse_timestamp(data["updated"])
            size = parse_size(data["size"])
        except KeyError as e:
            raise StorageError(ErrorKind.DATA_FORMAT, f"object record lacks {e.args[0]!r}") from e
        except ValueError as e:
            raise StorageError(ErrorKind.DATA_FORMAT, str(e)) from e

        content_hash = data.get("md5Hash")
        if content_hash is not None and not isinstance(content_hash, str):
            raise StorageError(ErrorKind.DATA_FORMAT, "md5Hash is not a string")
        if content_hash is None and size > 0:
            raise StorageError(ErrorKind.DATA_FORMAT, f"object {name!r} lacks 'md5Hash'")

        return cls(name=name, updated=updated, size=size, content_hash=content_hash)

    @property
    def is_file(self) -> bool:
        return not self.name.endswith(DELIMITER)

    def to_metadata(self) -> ObjectMetadata:
        return ObjectMetadata(
            size=self.size,
            last_updated=self.updated,
            is_file=self.is_file,
        )


@dataclass
class ListingResponse:
    """Body of a prefix/delimiter listing call."""

    items: List[ObjectRecord] = field(default_factory=list)
    prefixes: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ListingResponse":
        if not isinstance(data, dict):
            raise StorageError(ErrorKind.DATA_FORMAT, "listing is not a JSON object")

        items = data.get("items") or []
        prefixes = data.get("prefixes") or []
        if not isinstance(items, list):
            raise StorageError(ErrorKind.DATA_FORMAT, "'items' is not a list")
        if not isinstance(prefixes, list) or not all(isinstance(p, str) for p in prefixes):
            raise StorageError(ErrorKind.DATA_FORMAT, "'prefixes' is not a list of strings")

        return cls(
            items=[ObjectRecord.from_dict(item) for item in items],
            # A prefix made only of delimiters is the bucket root listed again.
            prefixes=[p for p in prefixes if p.strip(DELIMITER)],
        )
