from dataclasses import dataclass
from typing import Protocol


@dataclass
class Span:
    start: int
    end: int | None

    def __bool__(self) -> bool:
        return self.start > 0 or self.end is not None


@dataclass
class PartialData:
    data: bytes
    total: int


class StorageBackend(Protocol):
    async def put(self, namespace: str, key: str, body: bytes) -> None: ...

    async def get(self, namespace: str, key: str, span: Span | None = None) -> PartialData | None: ...

    async def delete(self, namespace: str, key: str) -> None: ...

    async def list_objects(self, namespace: str, prefix: str) -> list[str]: ...
