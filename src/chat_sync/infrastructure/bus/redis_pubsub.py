"""Redis Pub/Sub broker transport: connection, subscriptions and publish."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import redis.asyncio as aioredis

from chat_sync.application.exceptions import AuthLossError, TransportError
from chat_sync.application.ports.bus import OnFrame, OnLost

logger = logging.getLogger(__name__)

RedisFactory = Callable[..., aioredis.Redis]


class RedisSubscription:
    """One channel subscription with its own listener task."""

    def __init__(
        self,
        address: str,
        pubsub: Any,
        on_frame: OnFrame,
        on_lost: OnLost,
    ) -> None:
        self.address = address
        self._pubsub = pubsub
        self._on_frame = on_frame
        self._on_lost = on_lost
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(
            self._listen(), name=f"redis-subscription-{self.address}",
        )

    async def unsubscribe(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        try:
            await self._pubsub.unsubscribe(self.address)
        except aioredis.RedisError:
            logger.debug("Unsubscribe from %s on a dead connection", self.address)
        finally:
            await self._pubsub.aclose()
        logger.info("Unsubscribed from %s", self.address)

    async def _listen(self) -> None:
        # Frames are handed to on_frame one at a time, in arrival order.
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    self._on_frame(message["data"])
                except Exception:
                    logger.exception("Error processing frame on %s", self.address)
        except asyncio.CancelledError:
            raise
        except (aioredis.RedisError, OSError) as exc:
            logger.warning("Subscription %s lost: %s", self.address, exc)
            self._on_lost(TransportError(str(exc)))


class RedisBrokerTransport:
    """Implements application.ports.bus.BrokerTransport on Redis Pub/Sub."""

    def __init__(
        self,
        url: str,
        *,
        health_check_interval: int = 4,
        redis_factory: RedisFactory = aioredis.from_url,
    ) -> None:
        self._url = url
        self._health_check_interval = health_check_interval
        self._redis_factory = redis_factory
        self._redis: aioredis.Redis | None = None
        self._on_lost: OnLost | None = None

    async def open(self, credential: str, on_lost: OnLost) -> None:
        redis = self._redis_factory(
            self._url,
            password=credential,
            decode_responses=True,
            health_check_interval=self._health_check_interval,
        )
        try:
            await redis.ping()
        except aioredis.AuthenticationError as exc:
            await redis.aclose()
            raise AuthLossError(f"broker refused credential: {exc}") from exc
        except (aioredis.RedisError, OSError) as exc:
            await redis.aclose()
            raise TransportError(f"broker unreachable: {exc}") from exc
        except asyncio.CancelledError:
            await redis.aclose()
            raise
        self._redis = redis
        self._on_lost = on_lost
        logger.info("Broker connection open: %s", self._url)

    async def close(self) -> None:
        redis, self._redis = self._redis, None
        self._on_lost = None
        if redis is not None:
            await redis.aclose()
            logger.info("Broker connection closed")

    async def subscribe(self, address: str, on_frame: OnFrame) -> RedisSubscription:
        redis = self._require_open()
        pubsub = redis.pubsub()
        try:
            await pubsub.subscribe(address)
        except (aioredis.RedisError, OSError) as exc:
            await pubsub.aclose()
            raise TransportError(f"subscribe {address} failed: {exc}") from exc
        subscription = RedisSubscription(address, pubsub, on_frame, self._report_lost)
        subscription.start()
        logger.info("Subscribed to %s", address)
        return subscription

    async def publish(self, address: str, payload: str) -> None:
        redis = self._require_open()
        try:
            await redis.publish(address, payload)
        except (aioredis.RedisError, OSError) as exc:
            raise TransportError(f"publish to {address} failed: {exc}") from exc

    def _require_open(self) -> aioredis.Redis:
        if self._redis is None:
            raise TransportError("broker connection is not open")
        return self._redis

    def _report_lost(self, exc: Exception) -> None:
        if self._on_lost is not None:
            self._on_lost(exc)
