"""httpx clients for the history and partner-list REST collaborators."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from chat_sync.application.exceptions import (
    AuthLossError,
    NetworkError,
    NotAuthenticatedError,
)
from chat_sync.application.ports.auth import CredentialProvider
from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.participant import Partner
from chat_sync.infrastructure.bus.protocol import ApiEnvelope, MessageFrame, PartnerFrame

logger = logging.getLogger(__name__)

HISTORY_PATH = "/api/v1/chat/history/{partner_id}"
PARTNERS_PATH = "/api/v1/users/chat-partners"

_AUTH_STATUS_CODES = {401, 403}


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    status_code = response.status_code
    detail = f"HTTP {status_code} for {response.request.url.path}"
    if status_code in _AUTH_STATUS_CODES:
        raise NotAuthenticatedError(detail, status_code=status_code)
    raise NetworkError(detail, status_code=status_code)


class ChatRestClient:
    """Implements application.ports.rest.HistoryApi and PartnerApi.

    A fresh bearer credential is requested for every call.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ChatRestClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def history(self, partner_id: str) -> list[Message]:
        body = await self._get(HISTORY_PATH.format(partner_id=partner_id))
        try:
            envelope = ApiEnvelope[MessageFrame].model_validate(body)
        except ValidationError as exc:
            raise NetworkError(f"unexpected history payload: {exc.error_count()} errors") from exc
        return [frame.to_message() for frame in envelope.data]

    async def partners(self) -> list[Partner]:
        body = await self._get(PARTNERS_PATH)
        try:
            envelope = ApiEnvelope[PartnerFrame].model_validate(body)
        except ValidationError as exc:
            raise NetworkError(f"unexpected partners payload: {exc.error_count()} errors") from exc
        return [frame.to_partner() for frame in envelope.data]

    async def _get(self, path: str) -> Any:
        try:
            token = await self._credentials.get_credential()
        except AuthLossError as exc:
            raise NotAuthenticatedError(exc.detail) from exc
        try:
            response = await self._client.get(
                path, headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("GET %s failed: %s", path, exc)
            raise NetworkError(f"GET {path} failed: {exc}") from exc
        _raise_for_status(response)
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError(f"GET {path} returned invalid JSON") from exc
