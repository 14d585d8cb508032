"""Private relay: forwards outbound messages to each recipient's private address."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import redis.asyncio as aioredis

from chat_sync.application.exceptions import MalformedFrameError
from chat_sync.config import settings
from chat_sync.infrastructure.bus.serializer import deserialize_message, serialize_message

logger = logging.getLogger(__name__)

Publish = Callable[[str, str], Awaitable[object]]


class PrivateRelay:
    """Routes one outbound frame to the recipient only.

    The sender is not echoed; clients tolerate an echo anyway through
    de-duplication.
    """

    def __init__(self, publish: Publish, address_for: Callable[[str], str]) -> None:
        self._publish = publish
        self._address_for = address_for

    async def handle(self, raw: str | bytes) -> str | None:
        try:
            message = deserialize_message(raw)
        except MalformedFrameError as exc:
            logger.warning("Dropping outbound frame: %s", exc.detail)
            return None
        if message.recipient_id == message.sender_id:
            logger.warning("Dropping self-addressed message from %s", message.sender_id)
            return None
        target = self._address_for(message.recipient_id)
        await self._publish(target, serialize_message(message))
        logger.info("Routed message from %s to %s", message.sender_id, message.recipient_id)
        return target


async def run_relay() -> None:
    redis = aioredis.from_url(settings.BROKER_URL, decode_responses=True)
    relay = PrivateRelay(redis.publish, settings.inbound_address)
    pubsub = redis.pubsub()
    await pubsub.subscribe(settings.OUTBOUND_ADDRESS)

    logger.info("Private relay started on %s", settings.OUTBOUND_ADDRESS)

    try:
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                await relay.handle(message["data"])
            except aioredis.RedisError:
                logger.exception("Failed to route outbound frame")
    finally:
        await pubsub.unsubscribe(settings.OUTBOUND_ADDRESS)
        await pubsub.aclose()
        await redis.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_relay())


if __name__ == "__main__":
    main()
