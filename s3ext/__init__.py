from s3ext.client import ObjectClient
from s3ext.objects import (
    Appended,
    Conditions,
    ConfigurationError,
    ErrorKind,
    Etag,
    Failure,
    ObjectData,
    ObjectError,
    Range,
    Wildcard,
    WriteRequest,
    Written,
)
from s3ext.signing import PathStyleUrls, PresignedUrls, UrlSigner

__all__ = [
    "Appended",
    "Conditions",
    "ConfigurationError",
    "ErrorKind",
    "Etag",
    "Failure",
    "ObjectClient",
    "ObjectData",
    "ObjectError",
    "PathStyleUrls",
    "PresignedUrls",
    "Range",
    "UrlSigner",
    "Wildcard",
    "WriteRequest",
    "Written",
]
