"""Inbound frame handling: parse, store, flag unread, notify views."""
from __future__ import annotations

import logging
from typing import Callable, Hashable

from chat_sync.application.exceptions import MalformedFrameError
from chat_sync.application.ports.observability import ErrorSink, LoggingErrorSink
from chat_sync.domain.entities.message import Message
from chat_sync.infrastructure.bus.serializer import deserialize_message
from chat_sync.services.conversation_store import ConversationStore
from chat_sync.services.notification_tracker import NotificationTracker

logger = logging.getLogger(__name__)

MessageListener = Callable[[Message], None]


class MessageRouter:
    def __init__(
        self,
        local_id: Callable[[], str | None],
        store: ConversationStore,
        tracker: NotificationTracker,
        *,
        error_sink: ErrorSink | None = None,
    ) -> None:
        self._local_id = local_id
        self._store = store
        self._tracker = tracker
        self._error_sink = error_sink or LoggingErrorSink()
        self._listeners: dict[Hashable, MessageListener] = {}

    def register_listener(self, key: Hashable, listener: MessageListener) -> None:
        """Add or replace the listener registered under `key`."""
        self._listeners[key] = listener

    def unregister_listener(self, key: Hashable) -> None:
        self._listeners.pop(key, None)

    def on_frame(self, raw: str | bytes) -> Message | None:
        try:
            message = deserialize_message(raw)
        except MalformedFrameError as exc:
            self._error_sink.report(exc, {"stage": "parse"})
            return None
        return self.dispatch(message)

    def dispatch(self, message: Message) -> Message | None:
        local_id = self._local_id()
        if local_id is None:
            self._error_sink.report(
                MalformedFrameError("frame received with no signed-in identity"),
                {"stage": "route", "sender": message.sender_id},
            )
            return None
        if local_id not in (message.sender_id, message.recipient_id):
            self._error_sink.report(
                MalformedFrameError("frame not addressed to local identity"),
                {"stage": "route", "sender": message.sender_id, "recipient": message.recipient_id},
            )
            return None

        counterpart = message.counterpart(local_id)
        self._store.append_if_new(counterpart, message)
        # Every routed delivery flags the counterpart; the tracker skips the active one.
        self._tracker.mark_unread(counterpart)

        for key, listener in list(self._listeners.items()):
            try:
                listener(message)
            except Exception:
                logger.exception("Message listener %r failed", key)
        return message
