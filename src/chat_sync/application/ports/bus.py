from __future__ import annotations

from typing import Callable, Protocol

OnFrame = Callable[[str | bytes], object]
OnLost = Callable[[Exception], None]


class BrokerSubscription(Protocol):
    address: str

    async def unsubscribe(self) -> None: ...


class BrokerTransport(Protocol):
    """A publish/subscribe channel to the message broker.

    `open` raises AuthLossError when the broker refuses the credential and
    TransportError for any other failure. After a successful open, a later
    connection failure is reported through `on_lost`.
    """

    async def open(self, credential: str, on_lost: OnLost) -> None: ...

    async def close(self) -> None: ...

    async def subscribe(self, address: str, on_frame: OnFrame) -> BrokerSubscription: ...

    async def publish(self, address: str, payload: str) -> None: ...
