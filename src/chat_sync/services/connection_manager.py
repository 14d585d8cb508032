"""Broker connection lifecycle with fixed-delay reconnect."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from chat_sync.application.exceptions import AuthLossError, TransportError
from chat_sync.application.ports.auth import CredentialProvider
from chat_sync.application.ports.bus import BrokerTransport
from chat_sync.domain.value_objects.enums import ConnectionState

logger = logging.getLogger(__name__)

StateListener = Callable[[ConnectionState], Awaitable[None]]


class ConnectionManager:
    """Owns the single transport connection of a signed-in session.

    Every attempt requests a new credential. A transport failure while
    signed in schedules one reconnect after `reconnect_delay`; sign-out
    (`disconnect`) and credential refusal tear down with no retry.
    """

    def __init__(
        self,
        transport: BrokerTransport,
        credentials: CredentialProvider,
        *,
        reconnect_delay: float = 5.0,
    ) -> None:
        self._transport = transport
        self._credentials = credentials
        self._reconnect_delay = reconnect_delay
        self._state = ConnectionState.DISCONNECTED
        self._identity: str | None = None
        self._signed_in = False
        # Bumped on every attempt and teardown; stale callbacks compare against it.
        self._generation = 0
        self._attempt_lock = asyncio.Lock()
        self._listeners: list[StateListener] = []
        self._reconnect_task: asyncio.Task[None] | None = None
        self._lost_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def identity(self) -> str | None:
        return self._identity

    @property
    def signed_in(self) -> bool:
        return self._signed_in

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    async def connect(self, identity: str) -> None:
        if self._signed_in and identity != self._identity:
            await self.disconnect()
        if (
            self._signed_in
            and identity == self._identity
            and self._state is not ConnectionState.DISCONNECTED
        ):
            return
        self._identity = identity
        self._signed_in = True
        self._cancel_reconnect()
        await self._attempt()

    async def disconnect(self) -> None:
        """Sign-out: cancel any pending reconnect and drop the connection."""
        self._signed_in = False
        self._cancel_reconnect()
        self._generation += 1
        interrupted = self._cancel_lost()
        # An interrupted loss handler may not have reached every listener.
        await self._teardown(force=interrupted)

    async def _attempt(self) -> None:
        async with self._attempt_lock:
            self._generation += 1
            generation = self._generation
            await self._set_state(ConnectionState.CONNECTING)
            try:
                credential = await self._credentials.get_credential()
                if generation != self._generation:
                    return
                await self._transport.open(
                    credential, lambda exc: self._on_lost(generation, exc),
                )
            except AuthLossError:
                logger.warning("Credential refused for %s; not retrying", self._identity)
                self._signed_in = False
                if generation == self._generation:
                    self._generation += 1
                    await self._teardown()
                raise
            except TransportError as exc:
                logger.warning("Connection attempt failed: %s", exc)
                if generation == self._generation:
                    await self._set_state(ConnectionState.DISCONNECTED)
                    self._schedule_reconnect()
                return

            if generation != self._generation:
                # Signed out while the socket was opening.
                await self._transport.close()
                return
            failure = await self._set_state(ConnectionState.CONNECTED)
            if failure is not None:
                await self._handle_lost(generation, failure)

    def _on_lost(self, generation: int, exc: Exception) -> None:
        if generation != self._generation or self._state is ConnectionState.DISCONNECTED:
            return
        self._lost_task = asyncio.create_task(
            self._handle_lost(generation, exc), name="chat-connection-lost",
        )

    async def _handle_lost(self, generation: int, exc: Exception) -> None:
        if generation != self._generation:
            return
        self._generation += 1
        generation = self._generation
        logger.warning("Connection lost: %s", exc)
        # A sign-out or new attempt during any await below owns the connection from then on.
        await self._set_state(ConnectionState.DISCONNECTED)
        if generation != self._generation:
            return
        await self._close_transport()
        if generation != self._generation:
            return
        if isinstance(exc, AuthLossError):
            self._signed_in = False
            return
        if self._signed_in:
            self._schedule_reconnect()

    async def _teardown(self, *, force: bool = False) -> None:
        # Listeners drop the subscription before the socket goes away.
        await self._set_state(ConnectionState.DISCONNECTED, force=force)
        await self._close_transport()

    async def _close_transport(self) -> None:
        try:
            await self._transport.close()
        except TransportError:
            logger.warning("Error closing broker connection", exc_info=True)

    def _schedule_reconnect(self) -> None:
        task = self._reconnect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            return
        logger.info("Reconnecting in %.1fs", self._reconnect_delay)
        self._reconnect_task = asyncio.create_task(
            self._reconnect_later(), name="chat-reconnect",
        )

    def _cancel_lost(self) -> bool:
        task, self._lost_task = self._lost_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return False
        task.cancel()
        return True

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _reconnect_later(self) -> None:
        await asyncio.sleep(self._reconnect_delay)
        if not self._signed_in:
            return
        try:
            await self._attempt()
        except AuthLossError:
            logger.info("Reconnect abandoned for %s", self._identity)

    async def _set_state(
        self, state: ConnectionState, *, force: bool = False,
    ) -> TransportError | None:
        if state is self._state and not force:
            return None
        logger.info("Connection %s -> %s", self._state, state)
        self._state = state
        failure: TransportError | None = None
        for listener in list(self._listeners):
            if self._state is not state:
                # Superseded by a newer transition while a listener was awaited.
                break
            try:
                await listener(state)
            except TransportError as exc:
                logger.warning("State listener failed on %s: %s", state, exc)
                failure = exc
            except Exception:
                logger.exception("State listener failed on %s", state)
        return failure
