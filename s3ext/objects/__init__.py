"""Value types for ECS extended object writes.

Everything here is immutable and validated at construction; nothing touches
the network.
"""

from __future__ import annotations

from collections.abc import AsyncIterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Union

from s3ext.objects.errors import ConfigurationError, ErrorKind, ObjectError
from s3ext.objects.outcome import (
    AppendOutcome,
    Appended,
    DeleteOutcome,
    Deleted,
    Failure,
    HeadOutcome,
    ListOutcome,
    Listing,
    MultipartOutcome,
    MultipartUpload,
    ObjectData,
    ObjectInfo,
    ReadOutcome,
    WriteOutcome,
    Written,
)

Body = Union[bytes, str, AsyncIterable[bytes]]


@dataclass(frozen=True)
class Range:
    """A byte window of an object.

    ``length is None`` means open-ended: from ``start`` through whatever the
    written content supplies.
    """

    start: int
    length: int | None = None

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ConfigurationError(f"range offset must be >= 0, got {self.start}")
        if self.length is not None and self.length < 0:
            raise ConfigurationError(f"range length must be >= 0, got {self.length}")

    @classmethod
    def from_offset_length(cls, offset: int, length: int) -> Range:
        return cls(start=offset, length=length)

    @classmethod
    def from_offset(cls, offset: int) -> Range:
        return cls(start=offset)

    @property
    def bounded(self) -> bool:
        return self.length is not None

    @property
    def end(self) -> int | None:
        """Inclusive last byte, as HTTP ranges count it."""
        if self.length is None:
            return None
        return self.start + self.length - 1


class Wildcard(Enum):
    ANY = "*"


@dataclass(frozen=True)
class Etag:
    value: str

    @classmethod
    def parse(cls, raw: str) -> Etag:
        raw = raw.strip()
        if raw.startswith("W/"):
            raw = raw[2:]
        if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
            raw = raw[1:-1]
        return cls(raw)

    def __str__(self) -> str:
        return self.value


EtagMatch = Union[Etag, Wildcard]


def _as_etag_match(value: EtagMatch | str) -> EtagMatch:
    # plain strings are always literal etags; the wildcard must be spelled Wildcard.ANY
    if isinstance(value, (Etag, Wildcard)):
        return value
    return Etag.parse(value)


@dataclass(frozen=True)
class Conditions:
    """Preconditions the service evaluates; all present ones must hold.

    ``etag_to_match=Wildcard.ANY`` succeeds only if the object exists,
    ``etag_to_not_match=Wildcard.ANY`` only if it does not.
    """

    unmodified_since: datetime | None = None
    modified_since: datetime | None = None
    etag_to_match: EtagMatch | None = None
    etag_to_not_match: EtagMatch | None = None

    def __bool__(self) -> bool:
        return any(
            value is not None
            for value in (
                self.unmodified_since,
                self.modified_since,
                self.etag_to_match,
                self.etag_to_not_match,
            )
        )

    @property
    def retry_safe(self) -> bool:
        """False when a retry needs the current etag re-read first."""
        return not any(
            isinstance(value, Etag) for value in (self.etag_to_match, self.etag_to_not_match)
        )


@dataclass(frozen=True)
class RetentionPeriod:
    seconds: int

    def __post_init__(self) -> None:
        if self.seconds < 0:
            raise ConfigurationError(f"retention period must be >= 0 seconds, got {self.seconds}")


@dataclass(frozen=True)
class RetentionPolicy:
    name: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("retention policy name must not be empty")


Retention = Union[RetentionPeriod, RetentionPolicy]


@dataclass(frozen=True)
class WriteRequest:
    bucket: str
    key: str
    body: Body = b""
    range: Range | None = None
    conditions: Conditions = field(default_factory=Conditions)
    retention: Retention | None = None
    content_type: str | None = None
    metadata: tuple[tuple[str, str], ...] = ()

    @classmethod
    def builder(cls, bucket: str, key: str) -> WriteRequestBuilder:
        return WriteRequestBuilder(bucket=bucket, key=key)

    @property
    def retry_safe(self) -> bool:
        return self.conditions.retry_safe


@dataclass(frozen=True)
class WriteRequestBuilder:
    """Immutable builder; every ``with_*`` returns a new builder.

    >>> request = (
    ...     WriteRequest.builder("bucket", "key")
    ...     .with_body(b"dog")
    ...     .with_range(Range.from_offset_length(4, 3))
    ...     .build()
    ... )
    """

    bucket: str
    key: str
    body: Body = b""
    range: Range | None = None
    conditions: Conditions = field(default_factory=Conditions)
    retention_period: int | None = None
    retention_policy: str | None = None
    content_type: str | None = None
    metadata: tuple[tuple[str, str], ...] = ()

    def with_body(self, body: Body) -> WriteRequestBuilder:
        return replace(self, body=body)

    def with_range(self, range: Range | None) -> WriteRequestBuilder:
        return replace(self, range=range)

    def with_conditions(self, conditions: Conditions) -> WriteRequestBuilder:
        return replace(self, conditions=conditions)

    def if_unmodified_since(self, when: datetime | None) -> WriteRequestBuilder:
        return replace(self, conditions=replace(self.conditions, unmodified_since=when))

    def if_modified_since(self, when: datetime | None) -> WriteRequestBuilder:
        return replace(self, conditions=replace(self.conditions, modified_since=when))

    def if_match(self, etag: EtagMatch | str | None) -> WriteRequestBuilder:
        value = None if etag is None else _as_etag_match(etag)
        return replace(self, conditions=replace(self.conditions, etag_to_match=value))

    def if_none_match(self, etag: EtagMatch | str | None) -> WriteRequestBuilder:
        value = None if etag is None else _as_etag_match(etag)
        return replace(self, conditions=replace(self.conditions, etag_to_not_match=value))

    def with_retention_period(self, seconds: int | None) -> WriteRequestBuilder:
        return replace(self, retention_period=seconds)

    def with_retention_policy(self, name: str | None) -> WriteRequestBuilder:
        return replace(self, retention_policy=name)

    def with_content_type(self, content_type: str | None) -> WriteRequestBuilder:
        return replace(self, content_type=content_type)

    def with_metadata(self, name: str, value: str) -> WriteRequestBuilder:
        return replace(self, metadata=self.metadata + ((name, value),))

    def build(self) -> WriteRequest:
        if self.retention_period is not None and self.retention_policy is not None:
            raise ConfigurationError(
                "retention period and retention policy are mutually exclusive"
            )
        retention: Retention | None = None
        if self.retention_period is not None:
            retention = RetentionPeriod(self.retention_period)
        elif self.retention_policy is not None:
            retention = RetentionPolicy(self.retention_policy)
        return WriteRequest(
            bucket=self.bucket,
            key=self.key,
            body=self.body,
            range=self.range,
            conditions=self.conditions,
            retention=retention,
            content_type=self.content_type,
            metadata=self.metadata,
        )


__all__ = [
    "AppendOutcome",
    "Appended",
    "Body",
    "Conditions",
    "ConfigurationError",
    "DeleteOutcome",
    "Deleted",
    "ErrorKind",
    "Etag",
    "EtagMatch",
    "Failure",
    "HeadOutcome",
    "ListOutcome",
    "Listing",
    "MultipartOutcome",
    "MultipartUpload",
    "ObjectData",
    "ObjectError",
    "ObjectInfo",
    "Range",
    "ReadOutcome",
    "Retention",
    "RetentionPeriod",
    "RetentionPolicy",
    "Wildcard",
    "WriteOutcome",
    "WriteRequest",
    "WriteRequestBuilder",
    "Written",
]
