from __future__ import annotations

import logging

from chat_sync.application.ports.rest import PartnerApi
from chat_sync.domain.entities.participant import Partner

logger = logging.getLogger(__name__)


class PartnerDirectory:
    """Cached list of known conversation partners."""

    def __init__(self, api: PartnerApi) -> None:
        self._api = api
        self._partners: dict[str, Partner] = {}

    async def refresh(self) -> list[Partner]:
        partners = await self._api.partners()
        self._partners = {p.id: p for p in partners}
        logger.debug("Loaded %d chat partners", len(partners))
        return partners

    def partners(self) -> list[Partner]:
        return list(self._partners.values())

    def display_name(self, partner_id: str) -> str:
        partner = self._partners.get(partner_id)
        return partner.display_name if partner else partner_id

    def clear(self) -> None:
        self._partners.clear()
