from collections import defaultdict
from dataclasses import dataclass, field

from s3ext.emulator.storage import PartialData, Span, StorageBackend


@dataclass
class Object:
    body: bytes


@dataclass
class InMemoryBackend(StorageBackend):
    storage: dict[str, dict[str, Object]] = field(
        default_factory=lambda: defaultdict(dict)
    )

    async def put(self, namespace: str, key: str, body: bytes) -> None:
        self.storage[namespace][key] = Object(body=body)

    async def get(self, namespace: str, key: str, span: Span | None = None) -> PartialData | None:
        obj = self.storage[namespace].get(key)
        if obj is None:
            return None
        data = obj.body
        total = len(data)
        if span:
            data = data[span.start : span.end + 1 if span.end is not None else total]
        return PartialData(data=data, total=total)

    async def delete(self, namespace: str, key: str) -> None:
        self.storage[namespace].pop(key, None)

    async def list_objects(self, namespace: str, prefix: str) -> list[str]:
        return sorted(key for key in self.storage[namespace] if key.startswith(prefix))
