from __future__ import annotations


class ChatSyncError(Exception):
    """Base error for the messaging engine."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class TransportError(ChatSyncError):
    """Socket or broker failure. Retried while signed in."""


class AuthLossError(ChatSyncError):
    """Credential refused or session signed out. Never retried."""


class MalformedFrameError(ChatSyncError):
    def __init__(self, detail: str = "", raw: str | bytes | None = None) -> None:
        super().__init__(detail)
        self.raw = raw


class InvalidSendError(ChatSyncError):
    pass


class RestApiError(ChatSyncError):
    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        super().__init__(detail)
        self.status_code = status_code


class NotAuthenticatedError(RestApiError):
    pass


class NetworkError(RestApiError):
    pass


class HistoryFetchError(ChatSyncError):
    """History for one partner could not be loaded; safe to retry."""

    def __init__(self, partner: str, cause: RestApiError) -> None:
        super().__init__(f"history for {partner} failed: {cause.detail}")
        self.partner = partner
        self.cause = cause
