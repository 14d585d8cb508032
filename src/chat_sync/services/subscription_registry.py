"""Keeps exactly one inbound private subscription per signed-in identity."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from chat_sync.application.exceptions import TransportError
from chat_sync.application.ports.bus import BrokerSubscription, BrokerTransport, OnFrame
from chat_sync.domain.value_objects.enums import ConnectionState

logger = logging.getLogger(__name__)

AddressFor = Callable[[str], str]


class SubscriptionRegistry:
    def __init__(
        self,
        transport: BrokerTransport,
        address_for: AddressFor,
        on_frame: OnFrame,
    ) -> None:
        self._transport = transport
        self._address_for = address_for
        self._on_frame = on_frame
        self._lock = asyncio.Lock()
        self._identity: str | None = None
        self._connected = False
        self._subscription: BrokerSubscription | None = None

    @property
    def identity(self) -> str | None:
        return self._identity

    @property
    def subscription(self) -> BrokerSubscription | None:
        return self._subscription

    async def bind_identity(self, identity: str | None) -> None:
        """Set the identity; creates a deferred subscription if already connected."""
        async with self._lock:
            if identity == self._identity:
                return
            await self._teardown()
            self._identity = identity
            if self._connected:
                await self._ensure_subscribed()

    async def on_state(self, state: ConnectionState) -> None:
        async with self._lock:
            if state is ConnectionState.CONNECTED:
                self._connected = True
                await self._ensure_subscribed()
            else:
                # CONNECTING also means the previous socket is gone.
                self._connected = False
                await self._teardown()

    async def _ensure_subscribed(self) -> None:
        if self._subscription is not None:
            return
        if self._identity is None:
            logger.info("Connected without identity; subscription deferred")
            return
        # TransportError propagates; the connection manager treats it as a lost link.
        self._subscription = await self._transport.subscribe(
            self._address_for(self._identity), self._on_frame,
        )

    async def _teardown(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is None:
            return
        try:
            await subscription.unsubscribe()
        except TransportError:
            logger.warning("Unsubscribe from %s failed", subscription.address, exc_info=True)
