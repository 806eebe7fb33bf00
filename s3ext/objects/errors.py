from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION = "ConfigurationError"
    PRECONDITION_FAILED = "PreconditionFailed"
    OBJECT_UNDER_RETENTION = "ObjectUnderRetention"
    NOT_FOUND = "NotFound"
    INVALID_RANGE = "InvalidRange"
    TRANSPORT = "TransportError"
    SERVICE = "ServiceError"


class ObjectError(Exception):
    """Raised by ``Failure.unwrap()`` for callers that prefer exceptions.

    Carries the same classification as the failure it came from so callers can
    branch on ``kind``, ``status`` or ``code`` interchangeably.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.code = code


class ConfigurationError(ObjectError, ValueError):
    """An illegal request composition, rejected before any network activity."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.CONFIGURATION, message)
