"""Per-partner history fetch, merged into the conversation store."""
from __future__ import annotations

import asyncio
import logging

from chat_sync.application.exceptions import HistoryFetchError, RestApiError
from chat_sync.application.ports.rest import HistoryApi
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import HistoryState
from chat_sync.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


class HistoryLoader:
    def __init__(self, api: HistoryApi, store: ConversationStore) -> None:
        self._api = api
        self._store = store
        self._states: dict[str, HistoryState] = {}
        self._errors: dict[str, HistoryFetchError] = {}
        self._tasks: dict[str, asyncio.Task[tuple[Message, ...]]] = {}

    def state(self, partner: str) -> HistoryState:
        return self._states.get(partner, HistoryState.IDLE)

    def error(self, partner: str) -> HistoryFetchError | None:
        return self._errors.get(partner)

    async def load(self, partner: str) -> tuple[Message, ...]:
        """Fetch and merge history; failures stay scoped to `partner`."""
        self._states[partner] = HistoryState.LOADING
        self._errors.pop(partner, None)
        try:
            messages = await self._api.history(partner)
        except RestApiError as exc:
            error = HistoryFetchError(partner, exc)
            self._states[partner] = HistoryState.FAILED
            self._errors[partner] = error
            logger.warning("History load for %s failed: %s", partner, exc.detail)
            raise error from exc
        except asyncio.CancelledError:
            self._states[partner] = HistoryState.IDLE
            raise

        self._store.seed_history(partner, messages)
        self._states[partner] = HistoryState.LOADED
        return self._store.get(partner)

    def start(self, partner: str) -> asyncio.Task[tuple[Message, ...]]:
        task = self._tasks.get(partner)
        if task is not None and not task.done():
            return task
        task = asyncio.create_task(self.load(partner), name=f"chat-history-{partner}")
        self._tasks[partner] = task
        task.add_done_callback(lambda t: self._finished(partner, t))
        return task

    def cancel(self, partner: str) -> None:
        task = self._tasks.pop(partner, None)
        if task is not None and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        for partner in list(self._tasks):
            self.cancel(partner)

    def reset(self) -> None:
        self.cancel_all()
        self._states.clear()
        self._errors.clear()

    def _finished(self, partner: str, task: asyncio.Task[tuple[Message, ...]]) -> None:
        if self._tasks.get(partner) is task:
            del self._tasks[partner]
        if task.cancelled():
            return
        exc = task.exception()
        # HistoryFetchError is already recorded as the partner's error state.
        if exc is not None and not isinstance(exc, HistoryFetchError):
            logger.error("History load for %s crashed", partner, exc_info=exc)
