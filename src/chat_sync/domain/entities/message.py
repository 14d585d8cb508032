from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

DedupKey = tuple[str, datetime, str]


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class Message:
    sender_id: str
    recipient_id: str
    sender_display_name: str
    recipient_display_name: str
    content: str
    timestamp: datetime

    @property
    def dedup_key(self) -> DedupKey:
        """(sender, timestamp, content) identity; no server id exists."""
        return (self.sender_id, as_utc(self.timestamp), self.content)

    def counterpart(self, local_id: str) -> str:
        if self.recipient_id == local_id:
            return self.sender_id
        return self.recipient_id
