"""Per-partner ordered message collections.

There is no server-assigned message id, so two records denote the same
event exactly when their (sender, timestamp, content) keys match. Every
write path goes through that key: optimistic sends, broker deliveries
(including echoes of our own sends) and history seeding.
"""
from __future__ import annotations

import logging
from typing import Iterable

from chat_sync.domain.entities.message import DedupKey, Message, as_utc

logger = logging.getLogger(__name__)


class ConversationStore:
    def __init__(self) -> None:
        self._conversations: dict[str, list[Message]] = {}
        self._keys: dict[str, set[DedupKey]] = {}
        self._seeded: set[str] = set()

    def append_if_new(self, partner: str, message: Message) -> bool:
        """Append unless an entry with the same key exists. Returns True on insert."""
        keys = self._keys.setdefault(partner, set())
        key = message.dedup_key
        if key in keys:
            return False
        keys.add(key)
        self._conversations.setdefault(partner, []).append(message)
        return True

    def seed_history(self, partner: str, messages: Iterable[Message]) -> int:
        """Merge persisted history into the conversation for `partner`.

        With no local entries the history is taken in the order given.
        Otherwise the union is de-duplicated and stably re-sorted by
        timestamp; locally known messages are never dropped. Entries with
        equal timestamps keep local-first order, since the sort is stable
        over the local entries followed by the newly added history.
        Returns the number of entries added.
        """
        existing = self._conversations.get(partner)
        had_local = bool(existing)
        added = 0
        for message in messages:
            if self.append_if_new(partner, message):
                added += 1
        if had_local:
            self._conversations[partner].sort(key=lambda m: as_utc(m.timestamp))
        self._seeded.add(partner)
        logger.debug(
            "Seeded history for %s: %d new, %d total",
            partner, added, len(self._conversations.get(partner, ())),
        )
        return added

    def get(self, partner: str) -> tuple[Message, ...]:
        return tuple(self._conversations.get(partner, ()))

    def is_seeded(self, partner: str) -> bool:
        return partner in self._seeded

    def partners(self) -> list[str]:
        return [p for p, msgs in self._conversations.items() if msgs]

    def clear(self) -> None:
        """Forget every conversation, including which partners were seeded."""
        self._conversations.clear()
        self._keys.clear()
        self._seeded.clear()
