"""Redis list client for the incoming event queue.

Producers RPUSH JSON events; the forwarder BLPOPs from the head and pushes
anything it cannot persist back onto the tail.
"""

import json
from typing import Any, Optional, Union

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from forwarder.config import Settings
from forwarder.schemas import TransportFailure

log = structlog.get_logger(__name__)


class RedisQueue:
    """Blocking pop / push against one Redis list."""

    def __init__(self, settings: Settings, client: Optional[aioredis.Redis] = None) -> None:
        self.name = settings.queue_name
        self.client = client or aioredis.from_url(
            settings.redis_url, encoding="utf-8", decode_responses=True
        )

    async def pop(self, timeout: float) -> Union[str, None, TransportFailure]:
        """Pop one raw event, waiting at most `timeout` seconds.

        Returns the raw JSON string, None when the wait expired, or a
        TransportFailure when Redis could not be reached.
        """
        try:
            item = await self.client.blpop([self.name], timeout=timeout)
        except (RedisError, OSError) as exc:
            return TransportFailure(operation="queue_pop", error=str(exc))
        if item is None:
            return None
        _, raw = item
        return raw

    async def push(self, payload: dict[str, Any]) -> Optional[TransportFailure]:
        """Append one event to the tail of the queue."""
        try:
            await self.client.rpush(self.name, json.dumps(payload))
        except (RedisError, OSError) as exc:
            return TransportFailure(operation="queue_push", error=str(exc))
        return None

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as exc:
            log.warning("queue_ping_failed", error=str(exc))
            return False

    async def close(self) -> None:
        await self.client.aclose()
