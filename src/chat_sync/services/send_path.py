from __future__ import annotations

import asyncio
import logging
from typing import Callable

from chat_sync.application.exceptions import InvalidSendError, TransportError
from chat_sync.application.ports.bus import BrokerTransport
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.participant import Identity
from chat_sync.domain.value_objects.enums import ConnectionState
from chat_sync.infrastructure.bus.serializer import serialize_message
from chat_sync.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


class SendPath:
    """Publishes outgoing messages and records them optimistically.

    The local entry uses the same de-duplication key as inbound delivery,
    so a broker echo of our own message collapses into a no-op.
    """

    def __init__(
        self,
        transport: BrokerTransport,
        store: ConversationStore,
        *,
        outbound_address: str,
        state: Callable[[], ConnectionState],
        identity: Callable[[], Identity | None],
        display_name_for: Callable[[str], str] = lambda partner: partner,
        clock: Clock | None = None,
    ) -> None:
        self._transport = transport
        self._store = store
        self._outbound_address = outbound_address
        self._state = state
        self._identity = identity
        self._display_name_for = display_name_for
        self._clock = clock or SystemClock()
        self._pending: set[asyncio.Task[None]] = set()

    def send(self, partner: str, content: str) -> Message:
        """Send `content` to `partner`; raises InvalidSendError with no side effects."""
        identity = self._identity()
        if self._state() is not ConnectionState.CONNECTED or identity is None:
            raise InvalidSendError("not connected")
        if not content or not content.strip():
            raise InvalidSendError("message content is empty")
        if not partner:
            raise InvalidSendError("no recipient")

        message = Message(
            sender_id=identity.id,
            recipient_id=partner,
            sender_display_name=identity.display_name,
            recipient_display_name=self._display_name_for(partner),
            content=content,
            timestamp=self._clock.now(),
        )
        payload = serialize_message(message)

        task = asyncio.create_task(self._publish(payload), name=f"chat-send-{partner}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        self._store.append_if_new(partner, message)
        return message

    async def drain(self) -> None:
        """Wait for in-flight publishes (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _publish(self, payload: str) -> None:
        try:
            await self._transport.publish(self._outbound_address, payload)
        except TransportError as exc:
            logger.warning("Publish to %s failed: %s", self._outbound_address, exc)
