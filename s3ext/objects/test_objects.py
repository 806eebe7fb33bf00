from datetime import datetime, timezone

import pytest

from s3ext.objects import (
    Conditions,
    ConfigurationError,
    ErrorKind,
    Etag,
    Failure,
    ObjectError,
    Range,
    RetentionPeriod,
    RetentionPolicy,
    Wildcard,
    WriteRequest,
    Written,
)


def test_bounded_range() -> None:
    range = Range.from_offset_length(4, 3)
    assert range.bounded
    assert (range.start, range.length, range.end) == (4, 3, 6)


def test_open_ended_range() -> None:
    range = Range.from_offset(4)
    assert not range.bounded
    assert range.end is None


@pytest.mark.parametrize(
    "build",
    [
        lambda: Range.from_offset(-1),
        lambda: Range.from_offset_length(-1, 3),
        lambda: Range.from_offset_length(0, -3),
    ],
)
def test_range_rejects_negative_values(build) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        build()
    assert excinfo.value.kind is ErrorKind.CONFIGURATION
    assert isinstance(excinfo.value, ValueError)


def test_builder_is_immutable() -> None:
    base = WriteRequest.builder("bucket", "key")
    updated = base.with_body(b"data").with_metadata("a", "1").if_match("abc")
    assert base.body == b""
    assert base.metadata == ()
    assert base.conditions == Conditions()
    assert updated.body == b"data"
    assert updated.conditions.etag_to_match == Etag("abc")


def test_builder_rejects_conflicting_retention() -> None:
    builder = (
        WriteRequest.builder("bucket", "key")
        .with_retention_period(5)
        .with_retention_policy("hold-me")
    )
    with pytest.raises(ConfigurationError, match="mutually exclusive"):
        builder.build()


def test_builder_retention_choice() -> None:
    builder = WriteRequest.builder("bucket", "key")
    assert builder.with_retention_period(5).build().retention == RetentionPeriod(5)
    assert builder.with_retention_policy("hold-me").build().retention == RetentionPolicy("hold-me")
    assert builder.build().retention is None
    # clearing one side makes the other legal again
    assert (
        builder.with_retention_period(5)
        .with_retention_policy("hold-me")
        .with_retention_period(None)
        .build()
        .retention
        == RetentionPolicy("hold-me")
    )


def test_invalid_retention_values() -> None:
    with pytest.raises(ConfigurationError):
        WriteRequest.builder("bucket", "key").with_retention_period(-1).build()
    with pytest.raises(ConfigurationError):
        WriteRequest.builder("bucket", "key").with_retention_policy("").build()


def test_metadata_keeps_insertion_order() -> None:
    request = (
        WriteRequest.builder("bucket", "key")
        .with_metadata("555", "55555")
        .with_metadata("bbb", "bbbbb")
        .with_metadata("aaa", "aaaaa")
        .build()
    )
    assert [name for name, _ in request.metadata] == ["555", "bbb", "aaa"]


def test_literal_star_is_not_the_wildcard() -> None:
    builder = WriteRequest.builder("bucket", "key")
    assert builder.if_match("*").conditions.etag_to_match == Etag("*")
    assert builder.if_match(Wildcard.ANY).conditions.etag_to_match is Wildcard.ANY


def test_etag_parse_strips_quotes() -> None:
    assert Etag.parse('"abc"') == Etag("abc")
    assert Etag.parse('W/"abc"') == Etag("abc")
    assert Etag.parse("abc") == Etag("abc")


def test_conditions() -> None:
    assert not Conditions()
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert Conditions(modified_since=when)
    assert Conditions(modified_since=when).retry_safe
    assert Conditions(etag_to_not_match=Wildcard.ANY).retry_safe
    assert not Conditions(etag_to_match=Etag("abc")).retry_safe


def test_outcomes_unwrap() -> None:
    written = Written(etag="abc", status=200)
    assert written.ok
    assert written.unwrap() is written

    failure = Failure(kind=ErrorKind.PRECONDITION_FAILED, status=412, code="PreconditionFailed")
    assert not failure.ok
    with pytest.raises(ObjectError) as excinfo:
        failure.unwrap()
    assert excinfo.value.kind is ErrorKind.PRECONDITION_FAILED
    assert excinfo.value.status == 412
    assert excinfo.value.code == "PreconditionFailed"
