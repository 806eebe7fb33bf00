"""Translation between logical object requests and the ECS S3 wire format.

Encoders produce a ``WireRequest`` (method, target, headers, query, body) and
never perform I/O. Decoders take an ``httpx.Response`` and return one of the
outcome types from ``s3ext.objects``; a non-2xx response always becomes a
classified ``Failure``.
"""

from __future__ import annotations

import base64
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from hashlib import md5

import httpx

from s3ext.objects import (
    AppendOutcome,
    Appended,
    Body,
    DeleteOutcome,
    Deleted,
    ErrorKind,
    Etag,
    EtagMatch,
    Failure,
    HeadOutcome,
    ListOutcome,
    Listing,
    MultipartOutcome,
    MultipartUpload,
    ObjectData,
    ObjectInfo,
    Range,
    ReadOutcome,
    RetentionPeriod,
    RetentionPolicy,
    Wildcard,
    WriteOutcome,
    WriteRequest,
    Written,
)

HEADER_APPEND_OFFSET = "x-emc-append-offset"
HEADER_RETENTION_PERIOD = "x-emc-retention-period"
HEADER_RETENTION_POLICY = "x-emc-retention-policy"
META_PREFIX = "x-amz-meta-"
# ECS reads a range starting at -1 as "at the current end of the object"
APPEND_RANGE = "bytes=-1-"

CODE_PRECONDITION_FAILED = "PreconditionFailed"
CODE_OBJECT_UNDER_RETENTION = "ObjectUnderRetention"
CODE_INVALID_RANGE = "InvalidRange"
NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "NoSuchUpload"})


@dataclass(frozen=True)
class WireRequest:
    method: str
    bucket: str
    key: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    content: Body | None = None


def range_header(range: Range) -> str:
    if range.end is None:
        return f"bytes={range.start}-"
    return f"bytes={range.start}-{range.end}"


def http_date(when: datetime) -> str:
    # naive datetimes are taken as local time, like datetime.astimezone does
    return format_datetime(when.astimezone(timezone.utc), usegmt=True)


def etag_header(value: EtagMatch) -> str:
    if isinstance(value, Wildcard):
        return value.value
    return f'"{value.value}"'


def content_md5(data: bytes) -> str:
    return base64.b64encode(md5(data).digest()).decode()


def _content(body: Body) -> bytes | Body:
    if isinstance(body, str):
        return body.encode()
    return body


def encode_write(request: WriteRequest) -> WireRequest:
    headers: dict[str, str] = {}
    content = _content(request.body)
    if request.range is not None:
        headers["Range"] = range_header(request.range)
    if isinstance(content, bytes):
        headers["Content-MD5"] = content_md5(content)
    if request.content_type:
        headers["Content-Type"] = request.content_type

    conditions = request.conditions
    if conditions.unmodified_since is not None:
        headers["If-Unmodified-Since"] = http_date(conditions.unmodified_since)
    if conditions.modified_since is not None:
        headers["If-Modified-Since"] = http_date(conditions.modified_since)
    if conditions.etag_to_match is not None:
        headers["If-Match"] = etag_header(conditions.etag_to_match)
    if conditions.etag_to_not_match is not None:
        headers["If-None-Match"] = etag_header(conditions.etag_to_not_match)

    if isinstance(request.retention, RetentionPeriod):
        headers[HEADER_RETENTION_PERIOD] = str(request.retention.seconds)
    elif isinstance(request.retention, RetentionPolicy):
        headers[HEADER_RETENTION_POLICY] = request.retention.name

    for name, value in request.metadata:
        headers[f"{META_PREFIX}{name.lower()}"] = value

    return WireRequest("PUT", request.bucket, request.key, headers=headers, content=content)


def encode_append(bucket: str, key: str, content: Body) -> WireRequest:
    return WireRequest(
        "PUT",
        bucket,
        key,
        headers={"Range": APPEND_RANGE},
        content=_content(content),
    )


def encode_read(bucket: str, key: str, range: Range | None = None) -> WireRequest:
    headers = {"Range": range_header(range)} if range is not None else {}
    return WireRequest("GET", bucket, key, headers=headers)


def encode_head(bucket: str, key: str) -> WireRequest:
    return WireRequest("HEAD", bucket, key)


def encode_delete(bucket: str, key: str) -> WireRequest:
    return WireRequest("DELETE", bucket, key)


def encode_list(
    bucket: str,
    prefix: str = "",
    continuation_token: str | None = None,
    max_keys: int | None = None,
) -> WireRequest:
    params = {"list-type": "2"}
    if prefix:
        params["prefix"] = prefix
    if continuation_token:
        params["continuation-token"] = continuation_token
    if max_keys is not None:
        params["max-keys"] = str(max_keys)
    return WireRequest("GET", bucket, params=params)


def encode_initiate_multipart(bucket: str, key: str) -> WireRequest:
    return WireRequest("POST", bucket, key, params={"uploads": ""})


def encode_abort_multipart(bucket: str, key: str, upload_id: str) -> WireRequest:
    return WireRequest("DELETE", bucket, key, params={"uploadId": upload_id})


def classify(status: int | None, code: str | None) -> ErrorKind:
    # retention is keyed on the service code alone; ECS has used more than one status for it
    if code == CODE_OBJECT_UNDER_RETENTION:
        return ErrorKind.OBJECT_UNDER_RETENTION
    if status == 412 or code == CODE_PRECONDITION_FAILED:
        return ErrorKind.PRECONDITION_FAILED
    if status == 404 or code in NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND
    if status == 416 or code == CODE_INVALID_RANGE:
        return ErrorKind.INVALID_RANGE
    return ErrorKind.SERVICE


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _text(element: ET.Element, name: str) -> str | None:
    for child in _children(element, name):
        return child.text or ""
    return None


def parse_error(content: bytes) -> tuple[str | None, str | None]:
    """Return ``(code, message)`` from an S3 error document."""
    if not content:
        return None, None
    try:
        root = ET.fromstring(content)
    except ET.ParseError:
        return None, content.decode(errors="replace")
    if _local(root.tag) != "Error":
        return None, None
    return _text(root, "Code"), _text(root, "Message")


def decode_failure(response: httpx.Response) -> Failure:
    code, message = parse_error(response.content)
    return Failure(
        kind=classify(response.status_code, code),
        status=response.status_code,
        code=code,
        message=message,
    )


def _etag(headers: Mapping[str, str]) -> str | None:
    raw = headers.get("ETag")
    return Etag.parse(raw).value if raw else None


def _last_modified(headers: Mapping[str, str]) -> datetime | None:
    raw = headers.get("Last-Modified")
    if not raw:
        return None
    try:
        return parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None


def _metadata(headers: httpx.Headers) -> dict[str, str]:
    return {
        name[len(META_PREFIX) :]: value
        for name, value in headers.items()
        if name.lower().startswith(META_PREFIX)
    }


def _total(headers: Mapping[str, str], fallback: int) -> int:
    content_range = headers.get("Content-Range")
    if content_range and "/" in content_range:
        total = content_range.rsplit("/", 1)[1]
        if total.isdigit():
            return int(total)
    return fallback


def decode_write(response: httpx.Response) -> WriteOutcome:
    if not response.is_success:
        return decode_failure(response)
    return Written(etag=_etag(response.headers), status=response.status_code)


def decode_append(response: httpx.Response) -> AppendOutcome:
    if not response.is_success:
        return decode_failure(response)
    offset = response.headers.get(HEADER_APPEND_OFFSET, "")
    if not offset.isdigit():
        return Failure(
            kind=ErrorKind.SERVICE,
            status=response.status_code,
            message=f"append response carried no usable {HEADER_APPEND_OFFSET} header",
        )
    return Appended(offset=int(offset), etag=_etag(response.headers), status=response.status_code)


def decode_read(response: httpx.Response) -> ReadOutcome:
    if not response.is_success:
        return decode_failure(response)
    data = response.content
    return ObjectData(
        etag=_etag(response.headers),
        last_modified=_last_modified(response.headers),
        total=_total(response.headers, len(data)),
        content_type=response.headers.get("Content-Type"),
        metadata=_metadata(response.headers),
        status=response.status_code,
        data=data,
    )


def decode_head(response: httpx.Response) -> HeadOutcome:
    if not response.is_success:
        return decode_failure(response)
    return ObjectInfo(
        etag=_etag(response.headers),
        last_modified=_last_modified(response.headers),
        total=int(response.headers.get("Content-Length", 0)),
        content_type=response.headers.get("Content-Type"),
        metadata=_metadata(response.headers),
        status=response.status_code,
    )


def decode_delete(response: httpx.Response) -> DeleteOutcome:
    if not response.is_success:
        return decode_failure(response)
    return Deleted(status=response.status_code)


def _document(response: httpx.Response, root_name: str) -> ET.Element | Failure:
    try:
        root = ET.fromstring(response.content)
    except ET.ParseError as exc:
        return Failure(
            kind=ErrorKind.SERVICE,
            status=response.status_code,
            message=f"malformed {root_name} document",
            cause=exc,
        )
    if _local(root.tag) != root_name:
        return Failure(
            kind=ErrorKind.SERVICE,
            status=response.status_code,
            message=f"expected {root_name}, got {_local(root.tag)}",
        )
    return root


def decode_listing(response: httpx.Response) -> ListOutcome:
    if not response.is_success:
        return decode_failure(response)
    root = _document(response, "ListBucketResult")
    if isinstance(root, Failure):
        return root
    keys = [
        key
        for contents in _children(root, "Contents")
        if (key := _text(contents, "Key")) is not None
    ]
    next_token = _text(root, "NextContinuationToken") or None
    truncated = (_text(root, "IsTruncated") or "").lower() == "true"
    if truncated and next_token is None:
        return Failure(
            kind=ErrorKind.SERVICE,
            status=response.status_code,
            message="truncated listing without NextContinuationToken",
        )
    return Listing(keys=keys, next_token=next_token, truncated=truncated)


def decode_multipart(response: httpx.Response) -> MultipartOutcome:
    if not response.is_success:
        return decode_failure(response)
    root = _document(response, "InitiateMultipartUploadResult")
    if isinstance(root, Failure):
        return root
    upload_id = _text(root, "UploadId")
    if not upload_id:
        return Failure(
            kind=ErrorKind.SERVICE,
            status=response.status_code,
            message="multipart response missing UploadId",
        )
    return MultipartUpload(
        bucket=_text(root, "Bucket") or "",
        key=_text(root, "Key") or "",
        upload_id=upload_id,
    )
