import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Protocol

import anyio


class MetadataBackend(Protocol):
    async def put(self, key: str, value: bytes) -> None: ...

    async def get(self, key: str) -> bytes | None: ...

    async def delete(self, key: str) -> None: ...


@dataclass
class ObjectRecord:
    etag: str
    size: int
    last_modified: datetime
    retained_until: datetime | None = None
    content_type: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def under_retention(self, now: datetime) -> bool:
        return self.retained_until is not None and now < self.retained_until

    def to_bytes(self) -> bytes:
        record = asdict(self)
        record["last_modified"] = self.last_modified.isoformat()
        if self.retained_until is not None:
            record["retained_until"] = self.retained_until.isoformat()
        return json.dumps(record).encode()

    @classmethod
    def from_bytes(cls, raw: bytes) -> "ObjectRecord":
        record = json.loads(raw)
        record["last_modified"] = datetime.fromisoformat(record["last_modified"])
        if record.get("retained_until"):
            record["retained_until"] = datetime.fromisoformat(record["retained_until"])
        return cls(**record)


@dataclass
class Catalog:
    """Per-object records and open multipart uploads, on top of a key/value backend.

    ``writes`` serializes read-check-write sequences within one process. It
    does not coordinate several emulator processes sharing a Redis backend.
    """

    backend: MetadataBackend
    writes: anyio.Lock = field(default_factory=anyio.Lock, repr=False, compare=False)

    async def get_object(self, bucket: str, key: str) -> ObjectRecord | None:
        raw = await self.backend.get(f"object/{bucket}/{key}")
        if raw is None:
            return None
        return ObjectRecord.from_bytes(raw)

    async def put_object(self, bucket: str, key: str, record: ObjectRecord) -> None:
        await self.backend.put(f"object/{bucket}/{key}", record.to_bytes())

    async def delete_object(self, bucket: str, key: str) -> None:
        await self.backend.delete(f"object/{bucket}/{key}")

    async def start_upload(self, bucket: str, key: str, upload_id: str) -> None:
        await self.backend.put(f"upload/{bucket}/{key}/{upload_id}", b"open")

    async def has_upload(self, bucket: str, key: str, upload_id: str) -> bool:
        return await self.backend.get(f"upload/{bucket}/{key}/{upload_id}") is not None

    async def end_upload(self, bucket: str, key: str, upload_id: str) -> None:
        await self.backend.delete(f"upload/{bucket}/{key}/{upload_id}")
