from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol
from urllib.parse import quote

from aioaws.core import AWSv4Auth
from httpx import URL

ALGORITHM = "AWS4-HMAC-SHA256"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"


class UrlSigner(Protocol):
    def url(self, method: str, bucket: str, key: str, params: Mapping[str, str]) -> str: ...


def path_style(endpoint: str, bucket: str, key: str) -> URL:
    path = f"/{quote(bucket)}"
    if key:
        path += f"/{quote(key, safe='/~')}"
    return URL(endpoint.rstrip("/") + path)


@dataclass
class PathStyleUrls(UrlSigner):
    """Unsigned ``{endpoint}/{bucket}/{key}`` URLs, for local or anonymous endpoints."""

    endpoint: str

    def url(self, method: str, bucket: str, key: str, params: Mapping[str, str]) -> str:
        url = path_style(self.endpoint, bucket, key)
        if params:
            url = url.copy_merge_params(dict(params))
        return str(url)


@dataclass
class PresignedUrls(UrlSigner):
    """Path-style URLs carrying a SigV4 query-string signature.

    The request's own query parameters are part of the canonical query, so
    list and multipart calls are covered by the signature. The endpoint's
    scheme and port are kept as given.
    """

    endpoint: str
    access_key_id: str
    access_key_secret: str
    region: str = "us-east-1"
    expires: int = 3600
    _auth: AWSv4Auth = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._auth = AWSv4Auth(
            aws_secret_key=self.access_key_secret,
            aws_access_key=self.access_key_id,
            region=self.region,
            service="s3",
        )

    def url(self, method: str, bucket: str, key: str, params: Mapping[str, str]) -> str:
        now = datetime.now(timezone.utc)
        query = {
            **params,
            "X-Amz-Algorithm": ALGORITHM,
            "X-Amz-Credential": self._auth.aws4_credential(now),
            "X-Amz-Date": now.strftime("%Y%m%dT%H%M%SZ"),
            "X-Amz-Expires": str(self.expires),
            "X-Amz-SignedHeaders": "host",
        }
        # canonical query order is by parameter name
        url = URL(str(path_style(self.endpoint, bucket, key)), params=sorted(query.items()))
        _, signature = self._auth.aws4_signature(
            now, method, url, {"host": url.netloc.decode()}, UNSIGNED_PAYLOAD
        )
        return str(url.copy_add_param("X-Amz-Signature", signature))
