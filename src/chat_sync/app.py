from __future__ import annotations

import logging

import httpx

from chat_sync.application.ports.auth import CredentialProvider
from chat_sync.application.ports.bus import BrokerTransport
from chat_sync.application.ports.clock import Clock
from chat_sync.application.ports.observability import ErrorSink
from chat_sync.config import Settings, settings as default_settings
from chat_sync.infrastructure.auth.hs256_issuer import HS256CredentialIssuer
from chat_sync.infrastructure.bus.redis_pubsub import RedisBrokerTransport
from chat_sync.infrastructure.http.rest_client import ChatRestClient
from chat_sync.services.session import ChatSession

logger = logging.getLogger(__name__)


def create_credentials(
    settings: Settings | None = None,
    *,
    clock: Clock | None = None,
) -> HS256CredentialIssuer:
    """Development credential issuer signed with the configured JWT secret."""
    cfg = settings or default_settings
    return HS256CredentialIssuer(
        cfg.JWT_SECRET,
        algorithm=cfg.JWT_ALGORITHM,
        ttl_seconds=cfg.CREDENTIAL_TTL_SECONDS,
        clock=clock,
    )


def create_session(
    credentials: CredentialProvider,
    *,
    settings: Settings | None = None,
    transport: BrokerTransport | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
    clock: Clock | None = None,
    error_sink: ErrorSink | None = None,
) -> ChatSession:
    """Wire a ChatSession against the configured broker and REST base URL."""
    cfg = settings or default_settings
    broker = transport or RedisBrokerTransport(
        cfg.BROKER_URL,
        health_check_interval=cfg.BROKER_HEALTH_CHECK_SECONDS,
    )
    rest = ChatRestClient(
        cfg.REST_BASE_URL,
        credentials,
        timeout=cfg.HTTP_TIMEOUT_SECONDS,
        transport=http_transport,
    )
    logger.debug("Chat session wired: broker=%s rest=%s", cfg.BROKER_URL, cfg.REST_BASE_URL)
    return ChatSession(
        broker,
        credentials,
        history_api=rest,
        partner_api=rest,
        outbound_address=cfg.OUTBOUND_ADDRESS,
        address_for=cfg.inbound_address,
        reconnect_delay=cfg.RECONNECT_DELAY_SECONDS,
        clock=clock,
        error_sink=error_sink,
        closers=[rest.close],
    )
