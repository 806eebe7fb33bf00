import base64
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime
from hashlib import md5
from typing import Annotated, Callable
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, Header, Path, Request, Response

from s3ext.emulator.depends import Injected, bind
from s3ext.emulator.metadata import Catalog, ObjectRecord
from s3ext.emulator.storage import Span, StorageBackend
from s3ext.logs import get_logger
from s3ext.protocol import (
    APPEND_RANGE,
    HEADER_APPEND_OFFSET,
    HEADER_RETENTION_PERIOD,
    HEADER_RETENTION_POLICY,
    META_PREFIX,
)

logger = get_logger(__name__)

router = APIRouter()

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Config:
    host: str
    # named retention policies and their duration in seconds
    retention_policies: dict[str, int] = field(default_factory=dict)
    clock: Callable[[], datetime] = utcnow
    max_keys: int = 1000


@router.get("/health")
async def health() -> Response:
    return Response(status_code=200)


@dataclass
class ObjectPath:
    bucket: str
    key: str

    @property
    def resource(self) -> str:
        return f"/{self.bucket}/{self.key}"


def get_bucket(
    host: Annotated[str, Header()],
    key: Annotated[str, Path()],
    config: Injected[Config],
) -> ObjectPath:
    # remove the port
    host = host.split(":")[0]
    if host == config.host:
        bucket = key.split("/")[0]
        key = key[len(bucket) + 1 :]
        return ObjectPath(bucket=bucket, key=key)
    else:
        bucket = host.split(".")[0]
        return ObjectPath(bucket=bucket, key=key)


@dataclass
class Md5Digest:
    etag: str
    content_md5: str


def get_md5_digests(data: bytes) -> Md5Digest:
    hash = md5(data)
    etag = hash.hexdigest()
    content_md5 = base64.b64encode(hash.digest()).decode()
    return Md5Digest(etag=etag, content_md5=content_md5)


class S3Error(Exception):
    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def error_response(error: S3Error, resource: str) -> Response:
    root = ET.Element("Error")
    ET.SubElement(root, "Code").text = error.code
    ET.SubElement(root, "Message").text = error.message
    ET.SubElement(root, "Resource").text = resource
    return Response(
        status_code=error.status_code,
        content=ET.tostring(root, encoding="utf-8", xml_declaration=True),
        media_type="application/xml",
    )


def xml_response(root: ET.Element) -> Response:
    return Response(
        content=ET.tostring(root, encoding="utf-8", xml_declaration=True),
        media_type="application/xml",
    )


def http_date(when: datetime) -> str:
    return format_datetime(when.astimezone(timezone.utc), usegmt=True)


def parse_http_date(raw: str) -> datetime | None:
    try:
        return parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None


def strip_etag(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
        raw = raw[1:-1]
    return raw


def etag_listed(header: str, etag: str) -> bool:
    return etag in {strip_etag(tag) for tag in header.split(",")}


def preconditions_hold(request: Request, record: ObjectRecord | None) -> bool:
    """Evaluate every conditional header present; all of them must hold."""
    headers = request.headers
    # HTTP dates have whole-second precision
    mtime = record.last_modified.replace(microsecond=0) if record is not None else None

    if_match = headers.get("if-match")
    if if_match is not None:
        if record is None:
            return False
        if if_match.strip() != "*" and not etag_listed(if_match, record.etag):
            return False

    if_none_match = headers.get("if-none-match")
    if if_none_match is not None and record is not None:
        if if_none_match.strip() == "*" or etag_listed(if_none_match, record.etag):
            return False

    if_unmodified_since = headers.get("if-unmodified-since")
    if if_unmodified_since is not None and mtime is not None:
        when = parse_http_date(if_unmodified_since)
        if when is not None and mtime > when:
            return False

    if_modified_since = headers.get("if-modified-since")
    if if_modified_since is not None and mtime is not None:
        when = parse_http_date(if_modified_since)
        if when is not None and mtime <= when:
            return False

    return True


def parse_write_range(header: str | None) -> Span | None:
    """Parse a PUT ``Range`` header; append is ``Span(start=-1, end=None)``."""
    if header is None:
        return None
    if header.strip() == APPEND_RANGE:
        return Span(start=-1, end=None)
    if not header.startswith("bytes="):
        raise S3Error(416, "InvalidRange", f"unsupported range {header!r}")
    start, _, end = header[6:].partition("-")
    if not start.isdigit() or (end and not end.isdigit()):
        raise S3Error(416, "InvalidRange", f"unsupported range {header!r}")
    span = Span(start=int(start), end=int(end) if end else None)
    if span.end is not None and span.end < span.start:
        raise S3Error(416, "InvalidRange", f"empty range {header!r}")
    return span


def range_from_header(header: str | None) -> Span | None:
    if header is None:
        return None
    if not header.startswith("bytes="):
        raise S3Error(416, "InvalidRange", "Invalid range header")
    start, _, end = header[6:].partition("-")
    if not start.isdigit() or (end and not end.isdigit()):
        raise S3Error(416, "InvalidRange", "Invalid range header")
    return Span(start=int(start), end=int(end) if end else None)


def retention_deadline(request: Request, config: Config, now: datetime) -> datetime | None:
    period = request.headers.get(HEADER_RETENTION_PERIOD)
    policy = request.headers.get(HEADER_RETENTION_POLICY)
    if period is not None and policy is not None:
        raise S3Error(400, "InvalidArgument", "retention period and policy are mutually exclusive")
    if period is not None:
        if not period.isdigit():
            raise S3Error(400, "InvalidArgument", f"invalid retention period {period!r}")
        return now + timedelta(seconds=int(period))
    if policy is not None:
        if policy not in config.retention_policies:
            raise S3Error(400, "InvalidArgument", f"unknown retention policy {policy!r}")
        return now + timedelta(seconds=config.retention_policies[policy])
    return None


def user_metadata(request: Request) -> dict[str, str]:
    return {
        name[len(META_PREFIX) :]: value
        for name, value in request.headers.items()
        if name.startswith(META_PREFIX)
    }


def object_headers(record: ObjectRecord) -> dict[str, str]:
    headers = {
        "ETag": f'"{record.etag}"',
        "Last-Modified": http_date(record.last_modified),
        "Accept-Ranges": "bytes",
    }
    if record.content_type:
        headers["Content-Type"] = record.content_type
    for name, value in record.metadata.items():
        headers[f"{META_PREFIX}{name}"] = value
    return headers


def splice(existing: bytes | None, body: bytes, span: Span | None) -> tuple[bytes, int | None]:
    """Apply a write to the current content, returning ``(content, append_offset)``."""
    if span is None:
        return body, None
    if existing is None:
        raise S3Error(404, "NoSuchKey", "The specified key does not exist.")
    if span.start == -1:
        return existing + body, len(existing)
    if span.start > len(existing):
        raise S3Error(416, "InvalidRange", "range starts beyond the end of the object")
    if span.end is None:
        return existing[: span.start] + body, None
    if len(body) != span.end - span.start + 1:
        raise S3Error(416, "InvalidRange", "body length does not match the range")
    return existing[: span.start] + body + existing[span.end + 1 :], None


async def write_object(
    request: Request,
    object: Annotated[ObjectPath, Depends(get_bucket)],
    fs: Injected[StorageBackend],
    catalog: Injected[Catalog],
    config: Injected[Config],
) -> Response:
    try:
        if not object.key:
            raise S3Error(400, "InvalidRequest", "bucket operations are not supported")
        body = await request.body()
        digests = get_md5_digests(body)
        content_md5 = request.headers.get("Content-MD5")
        if content_md5 and digests.content_md5 != content_md5:
            raise S3Error(400, "BadDigest", "The Content-MD5 you specified did not match what we received.")

        now = config.clock()
        span = parse_write_range(request.headers.get("Range"))
        record = await catalog.get_object(object.bucket, object.key)
        if not preconditions_hold(request, record):
            raise S3Error(412, "PreconditionFailed", "At least one of the pre-conditions you specified did not hold")
        if record is not None and record.under_retention(now):
            raise S3Error(409, "ObjectUnderRetention", "The object is under retention and can't be modified.")
        retained_until = retention_deadline(request, config, now)

        existing = await fs.get(object.bucket, object.key) if record is not None else None
        content, offset = splice(existing.data if existing else None, body, span)
    except S3Error as error:
        logger.info("write rejected", bucket=object.bucket, key=object.key, code=error.code)
        return error_response(error, object.resource)

    content_type = request.headers.get("Content-Type")
    metadata = user_metadata(request)
    if span is not None and record is not None:
        # partial writes and appends keep the object's descriptive attributes
        content_type = record.content_type
        metadata = record.metadata
        if retained_until is None:
            retained_until = record.retained_until

    etag = get_md5_digests(content).etag
    await fs.put(object.bucket, object.key, content)
    await catalog.put_object(
        object.bucket,
        object.key,
        ObjectRecord(
            etag=etag,
            size=len(content),
            last_modified=now,
            retained_until=retained_until,
            content_type=content_type,
            metadata=metadata,
        ),
    )

    headers = {"ETag": f'"{etag}"'}
    if offset is not None:
        headers[HEADER_APPEND_OFFSET] = str(offset)
    return Response(status_code=200, headers=headers)


@router.put("/{key:path}")
async def upload_object(
    request: Request,
    object: Annotated[ObjectPath, Depends(get_bucket)],
    fs: Injected[StorageBackend],
    catalog: Injected[Catalog],
    config: Injected[Config],
) -> Response:
    # preconditions and retention are checked against the record being replaced
    async with catalog.writes:
        return await write_object(request, object, fs, catalog, config)


def parse_max_keys(value: str | None, default: int) -> int:
    if value is None:
        return default
    if not value.isdigit():
        raise S3Error(400, "InvalidArgument", f"invalid max-keys {value!r}")
    return int(value)


def list_bucket(bucket: str, keys: list[str], records: dict[str, ObjectRecord], request: Request, config: Config) -> Response:
    prefix = request.query_params.get("prefix", "")
    token = request.query_params.get("continuation-token")
    max_keys = parse_max_keys(request.query_params.get("max-keys"), config.max_keys)
    if token:
        keys = [key for key in keys if key > token]
    page, rest = keys[:max_keys], keys[max_keys:]
    # a page must end on a key for the next one to continue from it
    truncated = bool(rest and page)

    root = ET.Element("ListBucketResult", xmlns=S3_NAMESPACE)
    ET.SubElement(root, "Name").text = bucket
    ET.SubElement(root, "Prefix").text = prefix
    ET.SubElement(root, "KeyCount").text = str(len(page))
    ET.SubElement(root, "MaxKeys").text = str(max_keys)
    ET.SubElement(root, "IsTruncated").text = "true" if truncated else "false"
    for key in page:
        contents = ET.SubElement(root, "Contents")
        ET.SubElement(contents, "Key").text = key
        record = records.get(key)
        if record is not None:
            ET.SubElement(contents, "ETag").text = f'"{record.etag}"'
            ET.SubElement(contents, "Size").text = str(record.size)
            ET.SubElement(contents, "LastModified").text = record.last_modified.isoformat()
    if truncated:
        ET.SubElement(root, "NextContinuationToken").text = page[-1]
    return xml_response(root)


@router.get("/{key:path}")
async def download_object(
    request: Request,
    object: Annotated[ObjectPath, Depends(get_bucket)],
    fs: Injected[StorageBackend],
    catalog: Injected[Catalog],
    config: Injected[Config],
) -> Response:
    if not object.key:
        keys = await fs.list_objects(object.bucket, request.query_params.get("prefix", ""))
        records = {}
        for key in keys:
            record = await catalog.get_object(object.bucket, key)
            if record is not None:
                records[key] = record
        try:
            return list_bucket(object.bucket, keys, records, request, config)
        except S3Error as error:
            return error_response(error, object.resource)

    try:
        range = range_from_header(request.headers.get("Range"))
        record = await catalog.get_object(object.bucket, object.key)
        body = await fs.get(object.bucket, object.key, span=range) if record is not None else None
        if record is None or body is None:
            raise S3Error(404, "NoSuchKey", "The specified key does not exist.")
        if range and range.start >= body.total:
            raise S3Error(416, "InvalidRange", "The requested range is not satisfiable")
    except S3Error as error:
        return error_response(error, object.resource)

    headers = object_headers(record)
    headers["Content-Length"] = str(len(body.data))
    if range:
        end = range.start + len(body.data) - 1
        headers["Content-Range"] = f"bytes {range.start}-{end}/{body.total}"
        return Response(status_code=206, content=body.data, headers=headers)
    return Response(content=body.data, headers=headers)


@router.head("/{key:path}")
async def head_object(
    object: Annotated[ObjectPath, Depends(get_bucket)],
    catalog: Injected[Catalog],
) -> Response:
    record = await catalog.get_object(object.bucket, object.key)
    if record is None:
        return Response(status_code=404)
    headers = object_headers(record)
    headers["Content-Length"] = str(record.size)
    return Response(headers=headers)


@router.delete("/{key:path}")
async def delete_object(
    request: Request,
    object: Annotated[ObjectPath, Depends(get_bucket)],
    fs: Injected[StorageBackend],
    catalog: Injected[Catalog],
    config: Injected[Config],
) -> Response:
    upload_id = request.query_params.get("uploadId")
    if upload_id is not None:
        if not await catalog.has_upload(object.bucket, object.key, upload_id):
            return error_response(
                S3Error(404, "NoSuchUpload", "The specified multipart upload does not exist."),
                object.resource,
            )
        await catalog.end_upload(object.bucket, object.key, upload_id)
        return Response(status_code=204)

    async with catalog.writes:
        record = await catalog.get_object(object.bucket, object.key)
        if record is not None and record.under_retention(config.clock()):
            logger.info("delete rejected", bucket=object.bucket, key=object.key, code="ObjectUnderRetention")
            return error_response(
                S3Error(409, "ObjectUnderRetention", "The object is under retention and can't be deleted."),
                object.resource,
            )
        await fs.delete(object.bucket, object.key)
        await catalog.delete_object(object.bucket, object.key)
    return Response(status_code=204)


@router.post("/{key:path}")
async def initiate_multipart_upload(
    request: Request,
    object: Annotated[ObjectPath, Depends(get_bucket)],
    catalog: Injected[Catalog],
) -> Response:
    if "uploads" not in request.query_params or not object.key:
        return error_response(
            S3Error(400, "InvalidRequest", "only multipart initiation is supported"),
            object.resource,
        )
    upload_id = uuid4().hex
    await catalog.start_upload(object.bucket, object.key, upload_id)
    root = ET.Element("InitiateMultipartUploadResult", xmlns=S3_NAMESPACE)
    ET.SubElement(root, "Bucket").text = object.bucket
    ET.SubElement(root, "Key").text = object.key
    ET.SubElement(root, "UploadId").text = upload_id
    return xml_response(root)


def make_app(
    storage: StorageBackend,
    catalog: Catalog,
    config: Config,
) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    bind(app, StorageBackend, storage)
    bind(app, Catalog, catalog)
    bind(app, Config, config)
    return app
