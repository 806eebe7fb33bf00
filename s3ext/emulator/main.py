import os
from contextlib import AsyncExitStack
from dataclasses import dataclass, field

import anyio

from s3ext.emulator.api import Config, make_app
from s3ext.emulator.metadata import Catalog, MetadataBackend
from s3ext.emulator.metadata.memory import MemoryMetadataBackend
from s3ext.emulator.storage.memory import InMemoryBackend
from s3ext.logs import configure_logging, get_logger

logger = get_logger(__name__)


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_policies(value: str | None) -> dict[str, int]:
    """Parse ``name=seconds,name=seconds``."""
    policies: dict[str, int] = {}
    for item in (value or "").split(","):
        name, sep, seconds = item.strip().partition("=")
        if not sep:
            continue
        policies[name.strip()] = int(seconds)
    return policies


@dataclass
class Settings:
    HOST: str = "127.0.0.1"
    PORT: int = 9020
    REDIS_URL: str | None = None
    RETENTION_POLICIES: dict[str, int] = field(default_factory=dict)
    LOG_JSON: bool = False
    LOG_LEVEL: str = "INFO"

    @classmethod
    def from_env(cls, prefix: str = "S3EXT_") -> "Settings":
        env = os.environ
        return cls(
            HOST=env.get(f"{prefix}HOST", cls.HOST),
            PORT=int(env.get(f"{prefix}PORT", cls.PORT)),
            REDIS_URL=env.get(f"{prefix}REDIS_URL") or None,
            RETENTION_POLICIES=_as_policies(env.get(f"{prefix}RETENTION_POLICIES")),
            LOG_JSON=_as_bool(env.get(f"{prefix}LOG_JSON"), cls.LOG_JSON),
            LOG_LEVEL=env.get(f"{prefix}LOG_LEVEL", cls.LOG_LEVEL),
        )


async def main() -> None:
    import uvicorn

    settings = Settings.from_env()
    configure_logging(json_logs=settings.LOG_JSON, log_level=settings.LOG_LEVEL)

    async with AsyncExitStack() as stack:
        backend: MetadataBackend
        if settings.REDIS_URL:
            from s3ext.emulator.metadata.redis import RedisMetadataBackend

            backend = await stack.enter_async_context(
                RedisMetadataBackend.connect(settings.REDIS_URL)
            )
        else:
            backend = MemoryMetadataBackend()
        app = make_app(
            InMemoryBackend(),
            Catalog(backend),
            Config(host=settings.HOST, retention_policies=settings.RETENTION_POLICIES),
        )
        logger.info(
            "emulator starting",
            host=settings.HOST,
            port=settings.PORT,
            metadata="redis" if settings.REDIS_URL else "memory",
            retention_policies=sorted(settings.RETENTION_POLICIES),
        )

        config = uvicorn.Config(app, host=settings.HOST, port=settings.PORT, log_config=None)
        server = uvicorn.Server(config)
        await server.serve()


if __name__ == "__main__":
    anyio.run(main)
