from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict

import redis.asyncio as redis

logger = logging.getLogger("talentpipe.notifications")


class EventBus:
    """Registry of live UI connections.

    Owned by the application: built at startup, closed at shutdown. Each subscriber
    is a bounded queue. With a Redis URL, publishes go through a shared channel and
    every process relays that channel to its own subscribers.
    """

    def __init__(self, *, redis_url: str = "", channel: str = "talentpipe:events", queue_size: int = 200) -> None:
        self.channel = channel
        self.queue_size = queue_size
        self._redis_url = (redis_url or "").strip()
        self._subscribers: set[asyncio.Queue[str]] = set()
        self._subscribers_lock = asyncio.Lock()
        self._client: redis.Redis | None = None
        self._relay_task: asyncio.Task | None = None
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def uses_redis(self) -> bool:
        return bool(self._redis_url) and not self._closed

    async def subscribe(self) -> asyncio.Queue[str]:
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self.queue_size)
        async with self._subscribers_lock:
            self._subscribers.add(queue)
        if self.uses_redis:
            self._start_relay()
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[str]) -> None:
        async with self._subscribers_lock:
            self._subscribers.discard(queue)

    async def publish(self, payload: Dict[str, Any]) -> None:
        message = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
        if self.uses_redis:
            self._start_relay()
            try:
                await self._redis().publish(self.channel, message)
                return
            except redis.RedisError:
                logger.warning("event_bus_redis_publish_failed", extra={"channel": self.channel}, exc_info=True)
        await self._fan_out(message)

    async def close(self) -> None:
        self._closed = True
        if self._relay_task is not None:
            self._relay_task.cancel()
            try:
                await self._relay_task
            except asyncio.CancelledError:
                pass
            self._relay_task = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        async with self._subscribers_lock:
            self._subscribers.clear()

    def _redis(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def _start_relay(self) -> None:
        if self._relay_task is None or self._relay_task.done():
            self._relay_task = asyncio.create_task(self._relay())

    async def _relay(self) -> None:
        pubsub = self._redis().pubsub()
        await pubsub.subscribe(self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                data = message.get("data")
                if isinstance(data, bytes):
                    data = data.decode()
                if isinstance(data, str):
                    await self._fan_out(data)
        except redis.RedisError:
            logger.warning("event_bus_relay_stopped", extra={"channel": self.channel}, exc_info=True)
        finally:
            await pubsub.aclose()

    async def _fan_out(self, message: str) -> None:
        async with self._subscribers_lock:
            for queue in self._subscribers:
                if queue.full():
                    # Slow consumer: its oldest message is dropped.
                    queue.get_nowait()
                queue.put_nowait(message)
