"""One signed-in messaging session and everything it owns."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Hashable, Sequence

from chat_sync.application.ports.auth import CredentialProvider
from chat_sync.application.ports.bus import BrokerTransport
from chat_sync.application.ports.clock import Clock
from chat_sync.application.ports.observability import ErrorSink
from chat_sync.application.ports.rest import HistoryApi, PartnerApi
from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.participant import Identity
from chat_sync.domain.value_objects.enums import ConnectionState
from chat_sync.services.connection_manager import ConnectionManager
from chat_sync.services.conversation_store import ConversationStore
from chat_sync.services.history_loader import HistoryLoader
from chat_sync.services.message_router import MessageListener, MessageRouter
from chat_sync.services.notification_tracker import NotificationTracker
from chat_sync.services.partner_directory import PartnerDirectory
from chat_sync.services.send_path import SendPath
from chat_sync.services.subscription_registry import AddressFor, SubscriptionRegistry

logger = logging.getLogger(__name__)

Closer = Callable[[], Awaitable[None]]


class ChatSession:
    """Explicitly owned replacement for a global chat context.

    Construct one per process, pass it to the views that need it, and
    call `sign_out` / `aclose` when the user leaves.
    """

    def __init__(
        self,
        transport: BrokerTransport,
        credentials: CredentialProvider,
        history_api: HistoryApi,
        partner_api: PartnerApi,
        *,
        outbound_address: str,
        address_for: AddressFor,
        reconnect_delay: float = 5.0,
        clock: Clock | None = None,
        error_sink: ErrorSink | None = None,
        closers: Sequence[Closer] = (),
    ) -> None:
        self._identity: Identity | None = None
        self._was_connected = False
        self._closers = list(closers)

        self.store = ConversationStore()
        self.tracker = NotificationTracker()
        self.partners = PartnerDirectory(partner_api)
        self.history = HistoryLoader(history_api, self.store)
        self.router = MessageRouter(
            lambda: self._identity.id if self._identity else None,
            self.store,
            self.tracker,
            error_sink=error_sink,
        )
        self.connection = ConnectionManager(
            transport, credentials, reconnect_delay=reconnect_delay,
        )
        self.subscriptions = SubscriptionRegistry(
            transport, address_for, self.router.on_frame,
        )
        self.sender = SendPath(
            transport,
            self.store,
            outbound_address=outbound_address,
            state=lambda: self.connection.state,
            identity=lambda: self._identity,
            display_name_for=self.partners.display_name,
            clock=clock,
        )
        self.connection.add_listener(self.subscriptions.on_state)
        self.connection.add_listener(self._on_state)

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def active_partner(self) -> str | None:
        return self.tracker.active_partner

    @property
    def unread(self) -> frozenset[str]:
        return self.tracker.unread

    @property
    def unread_count(self) -> int:
        return self.tracker.count()

    async def sign_in(self, identity: Identity) -> None:
        if self._identity is not None and self._identity.id != identity.id:
            await self.sign_out()
        self._identity = identity
        await self.subscriptions.bind_identity(identity.id)
        await self.connection.connect(identity.id)

    async def sign_out(self) -> None:
        self.history.cancel_all()
        await self.connection.disconnect()
        await self.subscriptions.bind_identity(None)
        self.tracker.reset()
        self.history.reset()
        self.partners.clear()
        self.store.clear()
        self._identity = None
        self._was_connected = False
        logger.info("Signed out")

    async def aclose(self) -> None:
        await self.sign_out()
        await self.sender.drain()
        for close in self._closers:
            await close()

    def open_conversation(self, partner: str) -> asyncio.Task[tuple[Message, ...]] | None:
        """Make `partner` active; starts the first history load if needed."""
        self.tracker.set_active(partner)
        if self.store.is_seeded(partner):
            return None
        return self.history.start(partner)

    def close_conversation(self) -> None:
        self.tracker.set_active(None)

    def conversation(self, partner: str) -> tuple[Message, ...]:
        return self.store.get(partner)

    def send(self, partner: str, content: str) -> Message:
        return self.sender.send(partner, content)

    def register_listener(self, key: Hashable, listener: MessageListener) -> None:
        self.router.register_listener(key, listener)

    def unregister_listener(self, key: Hashable) -> None:
        self.router.unregister_listener(key)

    async def _on_state(self, state: ConnectionState) -> None:
        if state is not ConnectionState.CONNECTED:
            return
        active = self.tracker.active_partner
        if self._was_connected and active is not None:
            # Backfill whatever the active partner sent during the outage.
            logger.info("Reconnected; reloading history for %s", active)
            self.history.start(active)
        self._was_connected = True
