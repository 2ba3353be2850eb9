"""In-flight request registry and per-conversation locks.

Both structures are confined to the event loop that serves connections, so
they need no extra synchronization: every mutation happens between awaits.

Request ids are chosen by clients and only unique per connection, so the
registry keys handles by ``(connection_id, request_id)``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from sqlassist.models.enums import TurnState

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class RequestHandle:
    """One correlated request between arrival and its final message."""

    request_id: str
    connection_id: str
    task: asyncio.Task[None] | None = None
    cancelled: bool = False
    state: TurnState = TurnState.RECEIVED

    @property
    def key(self) -> tuple[str, str]:
        return (self.connection_id, self.request_id)


class InFlightRegistry:
    """(connectionId, requestId) → RequestHandle, inserted on start and removed on finish."""

    def __init__(self) -> None:
        self._handles: dict[tuple[str, str], RequestHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    def register(self, request_id: str, connection_id: str) -> RequestHandle:
        """Track a new request. A reused in-flight request id replaces the old entry."""
        handle = RequestHandle(request_id=request_id, connection_id=connection_id)
        if handle.key in self._handles:
            logger.warning("Request id %s reused on connection %s while still in flight", request_id, connection_id)
        self._handles[handle.key] = handle
        return handle

    def attach_task(self, handle: RequestHandle, task: asyncio.Task[None]) -> None:
        """Bind the processing task; the entry is removed when the task finishes."""
        handle.task = task
        task.add_done_callback(lambda _t: self.finish(handle))

    def get(self, connection_id: str, request_id: str) -> RequestHandle | None:
        return self._handles.get((connection_id, request_id))

    def cancel(self, connection_id: str, request_id: str) -> bool:
        """Mark a request of this connection cancelled so its final message is suppressed.

        Processing continues: audit rows for the turn are still written.
        """
        handle = self._handles.get((connection_id, request_id))
        if handle is None:
            return False
        handle.cancelled = True
        logger.info("Request cancelled: %s (state=%s)", request_id, handle.state.value)
        return True

    def abandon_connection(self, connection_id: str) -> int:
        """Cancel every request of a closed connection, aborting its task."""
        abandoned = 0
        for handle in list(self._handles.values()):
            if handle.connection_id != connection_id:
                continue
            handle.cancelled = True
            if handle.task is not None and not handle.task.done():
                handle.task.cancel()
            abandoned += 1
        if abandoned:
            logger.info("Abandoned %d in-flight request(s) of connection %s", abandoned, connection_id)
        return abandoned

    def finish(self, handle: RequestHandle) -> None:
        """Remove ``handle``, unless a newer request already took its key."""
        if self._handles.get(handle.key) is handle:
            del self._handles[handle.key]


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class ConversationLocks:
    """One asyncio.Lock per conversation id, dropped when nobody needs it."""

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @contextlib.asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        """Serialize all turns of ``conversation_id``."""
        entry = self._entries.setdefault(conversation_id, _LockEntry())
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(conversation_id, None)


# Module-level singleton
in_flight = InFlightRegistry()
