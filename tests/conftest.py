"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable

import pytest
import pytest_asyncio

from chat_sync.application.exceptions import AuthLossError, RestApiError, TransportError
from chat_sync.application.ports.bus import OnFrame, OnLost
from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.participant import Identity, Partner
from chat_sync.infrastructure.bus.serializer import serialize_message
from chat_sync.services.session import ChatSession

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

ALICE = Identity(id="user_alice", display_name="Alice")
BOB = Identity(id="user_bob", display_name="Bob")
CAROL = Identity(id="user_carol", display_name="Carol")

RECONNECT_DELAY = 0.01


def address_for(identity: str) -> str:
    return f"chat.user.{identity}.private"


def make_message(
    *,
    sender: Identity = BOB,
    recipient: Identity = ALICE,
    content: str = "hello",
    at: int = 0,
) -> Message:
    return Message(
        sender_id=sender.id,
        recipient_id=recipient.id,
        sender_display_name=sender.display_name,
        recipient_display_name=recipient.display_name,
        content=content,
        timestamp=T0 + timedelta(seconds=at),
    )


def frame(message: Message) -> str:
    return serialize_message(message)


async def wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.002)


@dataclass
class FakeSubscription:
    address: str
    on_frame: OnFrame
    transport: FakeTransport
    active: bool = True

    async def unsubscribe(self) -> None:
        self.active = False
        self.transport.events.append(("unsubscribe", self.address))


@dataclass
class FakeTransport:
    fail_opens: int = 0
    refuse: bool = False
    is_open: bool = False
    opened_with: list[str] = field(default_factory=list)
    subscriptions: list[FakeSubscription] = field(default_factory=list)
    published: list[tuple[str, str]] = field(default_factory=list)
    events: list[tuple[str, str]] = field(default_factory=list)
    _on_lost: OnLost | None = None

    async def open(self, credential: str, on_lost: OnLost) -> None:
        self.opened_with.append(credential)
        if self.refuse:
            raise AuthLossError("bad credential")
        if self.fail_opens > 0:
            self.fail_opens -= 1
            raise TransportError("connection refused")
        self.is_open = True
        self._on_lost = on_lost
        self.events.append(("open", credential))

    async def close(self) -> None:
        if self.is_open:
            self.events.append(("close", ""))
        self.is_open = False
        self._on_lost = None

    async def subscribe(self, address: str, on_frame: OnFrame) -> FakeSubscription:
        if not self.is_open:
            raise TransportError("not open")
        sub = FakeSubscription(address, on_frame, self)
        self.subscriptions.append(sub)
        self.events.append(("subscribe", address))
        return sub

    async def publish(self, address: str, payload: str) -> None:
        if not self.is_open:
            raise TransportError("not open")
        self.published.append((address, payload))

    @property
    def live(self) -> list[FakeSubscription]:
        return [s for s in self.subscriptions if s.active]

    def deliver(self, raw: str | bytes) -> None:
        for sub in self.live:
            sub.on_frame(raw)

    def drop(self, exc: Exception | None = None) -> None:
        """Simulate the broker socket dying under a live connection."""
        on_lost = self._on_lost
        self.is_open = False
        if on_lost is not None:
            on_lost(exc or TransportError("socket closed"))


@dataclass
class FakeCredentials:
    refuse: bool = False
    issued: list[str] = field(default_factory=list)

    async def get_credential(self) -> str:
        if self.refuse:
            raise AuthLossError("signed out")
        token = f"token-{len(self.issued) + 1}"
        self.issued.append(token)
        return token


@dataclass
class FakeHistoryApi:
    histories: dict[str, list[Message]] = field(default_factory=dict)
    error: RestApiError | None = None
    gate: asyncio.Event | None = None
    calls: list[str] = field(default_factory=list)

    async def history(self, partner_id: str) -> list[Message]:
        self.calls.append(partner_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.histories.get(partner_id, []))


@dataclass
class FakePartnerApi:
    known: list[Partner] = field(default_factory=list)

    async def partners(self) -> list[Partner]:
        return list(self.known)


@dataclass
class FixedClock:
    current: datetime = T0

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class RecordingErrorSink:
    reported: list[tuple[Exception, dict]] = field(default_factory=list)

    def report(self, error: Exception, context: dict) -> None:
        self.reported.append((error, context))


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def credentials() -> FakeCredentials:
    return FakeCredentials()


@pytest.fixture
def history_api() -> FakeHistoryApi:
    return FakeHistoryApi()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def error_sink() -> RecordingErrorSink:
    return RecordingErrorSink()


@pytest_asyncio.fixture
async def session(transport, credentials, history_api, clock, error_sink) -> AsyncIterator[ChatSession]:
    partner_api = FakePartnerApi([Partner(BOB.id, BOB.display_name), Partner(CAROL.id, CAROL.display_name)])
    chat = ChatSession(
        transport,
        credentials,
        history_api,
        partner_api,
        outbound_address="chat.private-message",
        address_for=address_for,
        reconnect_delay=RECONNECT_DELAY,
        clock=clock,
        error_sink=error_sink,
    )
    yield chat
    await chat.aclose()
