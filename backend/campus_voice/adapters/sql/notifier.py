import asyncio
from typing import Awaitable, Callable, List, Set

from campus_voice.adapters.contracts import ChangeCallback, ChangeEvent, RecordQuery
from campus_voice.adapters.listeners import ListenerHandle
from campus_voice.core.logging import get_logger

logger = get_logger(__name__)


class _Listener:
    def __init__(self, collection: str, query: RecordQuery, callback: ChangeCallback) -> None:
        self.collection = collection
        self.query = query
        self.callback = callback


class ChangeBroadcaster:
    """In-process change feed for the sql backend.

    Writers publish after commit; every listener whose query matches the new
    or old record gets its callback scheduled on the running loop. Only
    writes made by this process are seen.
    """

    def __init__(self) -> None:
        self._listeners: List[_Listener] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, collection: str, query: RecordQuery, callback: ChangeCallback) -> ListenerHandle:
        listener = _Listener(collection, query, callback)
        self._listeners.append(listener)
        logger.debug(f"Change listener added on {collection} ({len(self._listeners)} active)")
        return ListenerHandle(self._listeners, listener)

    def publish(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            if listener.collection != event.collection or not event.affects(listener.query):
                continue
            task = asyncio.create_task(self._deliver(listener.callback, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, callback: Callable[[ChangeEvent], Awaitable[None]], event: ChangeEvent) -> None:
        try:
            await callback(event)
        except Exception as e:
            logger.error(f"Change listener failed for {event.collection} {event.type}: {e}")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
