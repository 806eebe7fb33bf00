from datetime import datetime, timezone

import httpx
import pytest

from s3ext import protocol
from s3ext.objects import (
    Appended,
    ErrorKind,
    Failure,
    Listing,
    ObjectData,
    Range,
    Wildcard,
    WriteRequest,
    Written,
)

ERROR_412 = (
    b'<?xml version="1.0" encoding="UTF-8"?>'
    b"<Error><Code>PreconditionFailed</Code><Message>nope</Message></Error>"
)
ERROR_RETENTION = (
    b"<Error><Code>ObjectUnderRetention</Code><Message>The object is under retention</Message></Error>"
)


def test_full_write_has_no_range() -> None:
    wire = protocol.encode_write(WriteRequest.builder("b", "k").with_body(b"hello").build())
    assert wire.method == "PUT"
    assert (wire.bucket, wire.key) == ("b", "k")
    assert "Range" not in wire.headers
    assert wire.headers["Content-MD5"] == "XUFAKrxLKna5cZ2REBfFkg=="
    assert wire.content == b"hello"


@pytest.mark.parametrize(
    "range, header",
    [
        (Range.from_offset_length(4, 3), "bytes=4-6"),
        (Range.from_offset_length(0, 1), "bytes=0-0"),
        (Range.from_offset(4), "bytes=4-"),
        (Range.from_offset(0), "bytes=0-"),
    ],
)
def test_range_header(range: Range, header: str) -> None:
    wire = protocol.encode_write(
        WriteRequest.builder("b", "k").with_body(b"dog").with_range(range).build()
    )
    assert wire.headers["Range"] == header


def test_append_uses_end_of_object_range() -> None:
    wire = protocol.encode_append("b", "k", " must come down.")
    assert wire.headers == {"Range": "bytes=-1-"}
    assert wire.content == b" must come down."


def test_condition_headers() -> None:
    request = (
        WriteRequest.builder("b", "k")
        .if_unmodified_since(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        .if_modified_since(datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc))
        .if_match("0f7373bfe4bda6531b15229e9b9e8f75")
        .if_none_match(Wildcard.ANY)
        .build()
    )
    headers = protocol.encode_write(request).headers
    assert headers["If-Unmodified-Since"] == "Tue, 02 Jan 2024 03:04:05 GMT"
    assert headers["If-Modified-Since"] == "Mon, 01 Jan 2024 00:00:00 GMT"
    assert headers["If-Match"] == '"0f7373bfe4bda6531b15229e9b9e8f75"'
    assert headers["If-None-Match"] == "*"


def test_literal_star_etag_is_quoted() -> None:
    headers = protocol.encode_write(WriteRequest.builder("b", "k").if_match("*").build()).headers
    assert headers["If-Match"] == '"*"'


def test_retention_headers() -> None:
    builder = WriteRequest.builder("b", "k")
    period = protocol.encode_write(builder.with_retention_period(5).build()).headers
    policy = protocol.encode_write(builder.with_retention_policy("hold-me").build()).headers
    assert period[protocol.HEADER_RETENTION_PERIOD] == "5"
    assert protocol.HEADER_RETENTION_POLICY not in period
    assert policy[protocol.HEADER_RETENTION_POLICY] == "hold-me"
    assert protocol.HEADER_RETENTION_PERIOD not in policy


def test_metadata_and_content_type_headers() -> None:
    request = (
        WriteRequest.builder("b", "k")
        .with_content_type("text/plain")
        .with_metadata("555", "55555")
        .with_metadata("b_b_b", "bubub")
        .with_metadata("AAA", "aaaaa")
        .build()
    )
    headers = protocol.encode_write(request).headers
    assert headers["Content-Type"] == "text/plain"
    assert [name for name in headers if name.startswith("x-amz-meta-")] == [
        "x-amz-meta-555",
        "x-amz-meta-b_b_b",
        "x-amz-meta-aaa",
    ]


def test_streamed_body_skips_content_md5() -> None:
    async def chunks():
        yield b"a"

    wire = protocol.encode_write(WriteRequest.builder("b", "k").with_body(chunks()).build())
    assert "Content-MD5" not in wire.headers


@pytest.mark.parametrize(
    "status, code, kind",
    [
        (412, "PreconditionFailed", ErrorKind.PRECONDITION_FAILED),
        (412, None, ErrorKind.PRECONDITION_FAILED),
        (409, "ObjectUnderRetention", ErrorKind.OBJECT_UNDER_RETENTION),
        (400, "ObjectUnderRetention", ErrorKind.OBJECT_UNDER_RETENTION),
        (403, "ObjectUnderRetention", ErrorKind.OBJECT_UNDER_RETENTION),
        (409, "BucketNotEmpty", ErrorKind.SERVICE),
        (404, "NoSuchKey", ErrorKind.NOT_FOUND),
        (404, None, ErrorKind.NOT_FOUND),
        (416, "InvalidRange", ErrorKind.INVALID_RANGE),
        (400, "InvalidArgument", ErrorKind.SERVICE),
        (500, "InternalError", ErrorKind.SERVICE),
    ],
)
def test_classify(status: int, code: str | None, kind: ErrorKind) -> None:
    assert protocol.classify(status, code) is kind


def test_decode_write_success() -> None:
    response = httpx.Response(200, headers={"ETag": '"abc"'})
    assert protocol.decode_write(response) == Written(etag="abc", status=200)


def test_decode_precondition_failure() -> None:
    outcome = protocol.decode_write(httpx.Response(412, content=ERROR_412))
    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.PRECONDITION_FAILED
    assert (outcome.status, outcome.code, outcome.message) == (412, "PreconditionFailed", "nope")


def test_decode_retention_failure_keeps_status_and_code() -> None:
    outcome = protocol.decode_append(httpx.Response(409, content=ERROR_RETENTION))
    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.OBJECT_UNDER_RETENTION
    assert outcome.status == 409
    assert outcome.code == "ObjectUnderRetention"


def test_decode_failure_without_xml_body() -> None:
    outcome = protocol.decode_write(httpx.Response(502, content=b"bad gateway"))
    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.SERVICE
    assert outcome.code is None
    assert outcome.message == "bad gateway"


def test_decode_append() -> None:
    response = httpx.Response(200, headers={"ETag": '"abc"', "x-emc-append-offset": "12"})
    assert protocol.decode_append(response) == Appended(offset=12, etag="abc", status=200)


def test_decode_append_without_offset() -> None:
    outcome = protocol.decode_append(httpx.Response(200, headers={"ETag": '"abc"'}))
    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.SERVICE


def test_decode_partial_read() -> None:
    response = httpx.Response(
        206,
        headers={
            "ETag": '"abc"',
            "Content-Range": "bytes 4-6/25",
            "Last-Modified": "Tue, 02 Jan 2024 03:04:05 GMT",
            "x-amz-meta-color": "red",
        },
        content=b"cat",
    )
    outcome = protocol.decode_read(response)
    assert isinstance(outcome, ObjectData)
    assert outcome.data == b"cat"
    assert outcome.total == 25
    assert outcome.etag == "abc"
    assert outcome.last_modified == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert outcome.metadata == {"color": "red"}


def test_decode_listing() -> None:
    content = (
        b'<ListBucketResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">'
        b"<Name>b</Name><IsTruncated>true</IsTruncated>"
        b"<Contents><Key>a</Key></Contents><Contents><Key>b</Key></Contents>"
        b"<NextContinuationToken>b</NextContinuationToken>"
        b"</ListBucketResult>"
    )
    outcome = protocol.decode_listing(httpx.Response(200, content=content))
    assert outcome == Listing(keys=["a", "b"], next_token="b", truncated=True)


def test_decode_listing_requires_token_when_truncated() -> None:
    content = b"<ListBucketResult><IsTruncated>true</IsTruncated></ListBucketResult>"
    outcome = protocol.decode_listing(httpx.Response(200, content=content))
    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.SERVICE


def test_decode_listing_rejects_other_documents() -> None:
    outcome = protocol.decode_listing(httpx.Response(200, content=b"<Other/>"))
    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.SERVICE
