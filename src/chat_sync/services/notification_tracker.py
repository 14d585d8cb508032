from __future__ import annotations


class NotificationTracker:
    """Unread partners plus the conversation currently on screen.

    The active partner is never a member of the unread set.
    """

    def __init__(self) -> None:
        self._unread: set[str] = set()
        self._active: str | None = None

    @property
    def active_partner(self) -> str | None:
        return self._active

    @property
    def unread(self) -> frozenset[str]:
        return frozenset(self._unread)

    def set_active(self, partner: str | None) -> None:
        self._active = partner
        if partner is not None:
            self._unread.discard(partner)

    def mark_unread(self, partner: str) -> bool:
        if partner == self._active:
            return False
        self._unread.add(partner)
        return True

    def clear(self, partner: str) -> None:
        self._unread.discard(partner)

    def count(self) -> int:
        return len(self._unread)

    def reset(self) -> None:
        self._unread.clear()
        self._active = None
