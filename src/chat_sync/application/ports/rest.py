from __future__ import annotations

from typing import Protocol

from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.participant import Partner


class HistoryApi(Protocol):
    async def history(self, partner_id: str) -> list[Message]:
        """Persisted conversation with partner_id, oldest first.

        Raises NotAuthenticatedError or NetworkError.
        """
        ...


class PartnerApi(Protocol):
    async def partners(self) -> list[Partner]: ...
