"""Error kinds surfaced by bucketfs backends."""

from enum import Enum


class ErrorKind(Enum):
    """What went wrong, independent of which backend raised it."""

    NOT_AVAILABLE = "not_available"
    NOT_IMPLEMENTED = "not_implemented"
    NAME_REJECTED = "name_rejected"
    DATA_FORMAT = "data_format"
    LOCAL_PROCESSING = "local_processing"
    NOT_EMPTY = "not_empty"
    PERMISSION_DENIED = "permission_denied"


class StorageError(Exception):
    """The only error type a backend lets escape to its caller.

    The original transport or parser error, if any, is chained as ``__cause__``.
    """

    def __init__(self, kind: ErrorKind, message: str = ""):
        self.kind = kind
        self.message = message or kind.value
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"StorageError({self.kind.name}, {self.message!r})"
