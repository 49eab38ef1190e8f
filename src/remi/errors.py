"""Error taxonomy shared by every storage backend.

Not-found is never an exception: ``blob``/``open`` return ``None`` and
``exists``/``delete`` return ``False``. Everything the caller cannot
recover from by retrying with different input is a ``StorageError``.
"""

from __future__ import annotations


class RemiError(Exception):
    """Base class for all errors raised by remi."""


class StorageError(RemiError, OSError):
    """Raised when the backend could not complete an operation.

    Covers transport failures, permission problems, full disks and failed
    enumeration calls. The native SDK exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        if path:
            message = f"{message} (path: {path})"
        super().__init__(message)


class InvalidArgumentError(RemiError, ValueError):
    """Raised when a path or request does not fit the operation.

    Examples: a directory where a leaf object was expected, a key that
    escapes the storage root, or an upload stream that was already consumed.
    """

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        message = f"Invalid argument: {path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class UninitializedError(RemiError, RuntimeError):
    """Raised when a storage service is used before ``init()`` was called."""

    def __init__(self, service: str) -> None:
        self.service = service
        super().__init__(f"Storage service {service} was used before init() was called")
