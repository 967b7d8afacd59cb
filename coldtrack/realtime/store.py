"""
Durable storage for the realtime selection.

Two independent string keys survive process restarts:
selectedSucursalId and selectedCamaraId.
"""
import json
from pathlib import Path
from typing import Optional, Protocol

from redis import asyncio as aioredis
from redis.asyncio import Redis

from coldtrack.core.config import settings
from coldtrack.core.logging import get_logger


logger = get_logger(__name__)

BRANCH_KEY = "selectedSucursalId"
SENSOR_KEY = "selectedCamaraId"


class SelectionStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...


class MemorySelectionStore:
    """Process-local store; nothing survives a restart."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value


class JsonFileSelectionStore:
    """Key/value pairs kept in a small JSON file."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.selection_store_path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("selection_store.read_failed", path=str(self.path), error=str(e))
            return {}

        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    async def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    async def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)


class RedisSelectionStore:
    """Key/value pairs kept in Redis under a common prefix."""

    def __init__(self, client: Redis, prefix: str = "coldtrack:selection:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    async def from_url(cls, url: Optional[str] = None) -> "RedisSelectionStore":
        client = await aioredis.from_url(
            url or settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(self.prefix + key)

    async def set(self, key: str, value: str) -> None:
        await self.client.set(self.prefix + key, value)

    async def close(self) -> None:
        await self.client.aclose()


async def build_selection_store() -> SelectionStore:
    """Create the store named by `settings.selection_store`."""
    if settings.selection_store == "redis":
        return await RedisSelectionStore.from_url()
    if settings.selection_store == "memory":
        return MemorySelectionStore()
    return JsonFileSelectionStore()
