from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TypeVar

from httpx import AsyncClient, Response, TransportError

from s3ext import protocol
from s3ext.logs import get_logger
from s3ext.objects import (
    AppendOutcome,
    Body,
    DeleteOutcome,
    ErrorKind,
    Failure,
    HeadOutcome,
    ListOutcome,
    MultipartOutcome,
    Range,
    ReadOutcome,
    WriteOutcome,
    WriteRequest,
)
from s3ext.protocol import WireRequest
from s3ext.signing import PathStyleUrls, PresignedUrls, UrlSigner

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class ObjectClient:
    """Object operations against an ECS S3 endpoint.

    Every call is one request/response exchange and returns an outcome value;
    service errors and transport errors come back as ``Failure``. The client
    holds no state between calls besides the HTTP connection pool.
    """

    client: AsyncClient
    urls: UrlSigner

    @classmethod
    @asynccontextmanager
    async def connect(
        cls,
        endpoint: str,
        access_key_id: str | None = None,
        access_key_secret: str | None = None,
        region: str = "us-east-1",
        timeout: float = 30.0,
    ) -> AsyncIterator[ObjectClient]:
        async with AsyncClient(timeout=timeout) as client:
            urls: UrlSigner
            if access_key_id and access_key_secret:
                urls = PresignedUrls(endpoint, access_key_id, access_key_secret, region)
            else:
                urls = PathStyleUrls(endpoint)
            yield cls(client, urls)

    async def _exchange(
        self,
        wire: WireRequest,
        decode: Callable[[Response], T],
        retry_safe: bool = True,
    ) -> T | Failure:
        url = self.urls.url(wire.method, wire.bucket, wire.key, wire.params)
        try:
            response = await self.client.request(
                wire.method, url, headers=wire.headers, content=wire.content
            )
        except TransportError as exc:
            logger.warning(
                "transport failure",
                method=wire.method,
                bucket=wire.bucket,
                key=wire.key,
                retry_safe=retry_safe,
                error=str(exc),
            )
            return Failure(kind=ErrorKind.TRANSPORT, status=None, message=str(exc), cause=exc)
        outcome = decode(response)
        if isinstance(outcome, Failure):
            logger.info(
                "request rejected",
                method=wire.method,
                bucket=wire.bucket,
                key=wire.key,
                status=outcome.status,
                kind=outcome.kind.value,
                code=outcome.code,
            )
        else:
            logger.debug(
                "request completed",
                method=wire.method,
                bucket=wire.bucket,
                key=wire.key,
                status=response.status_code,
            )
        return outcome

    async def put(self, request: WriteRequest) -> WriteOutcome:
        return await self._exchange(
            protocol.encode_write(request),
            protocol.decode_write,
            retry_safe=request.retry_safe,
        )

    async def append(self, bucket: str, key: str, content: Body) -> AppendOutcome:
        """Append ``content`` to an existing object.

        On success the outcome's ``offset`` is the object's length before the
        append. Appends are not idempotent: retrying one after a transport
        failure may write the content twice.
        """
        return await self._exchange(
            protocol.encode_append(bucket, key, content),
            protocol.decode_append,
            retry_safe=False,
        )

    async def get(self, bucket: str, key: str, range: Range | None = None) -> ReadOutcome:
        return await self._exchange(protocol.encode_read(bucket, key, range), protocol.decode_read)

    async def head(self, bucket: str, key: str) -> HeadOutcome:
        return await self._exchange(protocol.encode_head(bucket, key), protocol.decode_head)

    async def delete(self, bucket: str, key: str) -> DeleteOutcome:
        return await self._exchange(protocol.encode_delete(bucket, key), protocol.decode_delete)

    async def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        continuation_token: str | None = None,
        max_keys: int | None = None,
    ) -> ListOutcome:
        return await self._exchange(
            protocol.encode_list(bucket, prefix, continuation_token, max_keys),
            protocol.decode_listing,
        )

    async def iter_keys(self, bucket: str, prefix: str = "") -> AsyncIterator[str]:
        """Yield every key under ``prefix``, following continuation tokens.

        Raises ``ObjectError`` if any page fails.
        """
        token: str | None = None
        while True:
            listing = (await self.list_objects(bucket, prefix, token)).unwrap()
            for key in listing.keys:
                yield key
            if not listing.truncated:
                return
            token = listing.next_token

    async def clean_bucket(self, bucket: str) -> int:
        # collect first so deletions don't shift the listing under the cursor
        keys = [key async for key in self.iter_keys(bucket)]
        for key in keys:
            (await self.delete(bucket, key)).unwrap()
        logger.info("bucket cleaned", bucket=bucket, deleted=len(keys))
        return len(keys)

    async def initiate_multipart_upload(self, bucket: str, key: str) -> MultipartOutcome:
        return await self._exchange(
            protocol.encode_initiate_multipart(bucket, key),
            protocol.decode_multipart,
        )

    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> DeleteOutcome:
        return await self._exchange(
            protocol.encode_abort_multipart(bucket, key, upload_id),
            protocol.decode_delete,
        )
