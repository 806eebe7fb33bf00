from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import NoReturn, TypeVar, Union

from s3ext.objects.errors import ErrorKind, ObjectError

T = TypeVar("T")


class _Ok:
    ok = True

    def unwrap(self: T) -> T:
        return self


@dataclass(frozen=True)
class Written(_Ok):
    etag: str | None
    status: int


@dataclass(frozen=True)
class Appended(_Ok):
    # the object's length before the append, i.e. where the new bytes start
    offset: int
    etag: str | None
    status: int


@dataclass(frozen=True)
class ObjectInfo(_Ok):
    etag: str | None
    last_modified: datetime | None
    total: int
    content_type: str | None
    metadata: dict[str, str] = field(default_factory=dict)
    status: int = 200


@dataclass(frozen=True)
class ObjectData(ObjectInfo):
    data: bytes = b""


@dataclass(frozen=True)
class Deleted(_Ok):
    status: int


@dataclass(frozen=True)
class Listing(_Ok):
    keys: list[str]
    next_token: str | None
    truncated: bool


@dataclass(frozen=True)
class MultipartUpload(_Ok):
    bucket: str
    key: str
    upload_id: str


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    status: int | None
    code: str | None = None
    message: str | None = None
    cause: BaseException | None = None

    ok = False

    def unwrap(self) -> NoReturn:
        error = ObjectError(
            self.kind,
            self.message or self.code or self.kind.value,
            status=self.status,
            code=self.code,
        )
        if self.cause is not None:
            raise error from self.cause
        raise error


WriteOutcome = Union[Written, Failure]
AppendOutcome = Union[Appended, Failure]
ReadOutcome = Union[ObjectData, Failure]
HeadOutcome = Union[ObjectInfo, Failure]
DeleteOutcome = Union[Deleted, Failure]
ListOutcome = Union[Listing, Failure]
MultipartOutcome = Union[MultipartUpload, Failure]
