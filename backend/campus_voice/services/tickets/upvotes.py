from typing import Hashable, Optional, Set

from campus_voice.adapters.contracts import TICKETS, UPVOTES, RecordQuery, RecordStore
from campus_voice.core.exceptions import PortalError, TicketNotFound, UpdateError
from campus_voice.core.logging import get_logger
from campus_voice.schemas.ticket import UpvoteResult
from campus_voice.services.tickets.view_model import TicketListViewModel

logger = get_logger(__name__)


class InFlightGuard:
    """Per-process set of keys with an operation pending."""

    def __init__(self) -> None:
        self._keys: Set[Hashable] = set()

    def acquire(self, key: Hashable) -> bool:
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: Hashable) -> None:
        self._keys.discard(key)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._keys


class UpvoteReconciler:
    """Optimistic upvote toggling on a loaded public feed.

    The local flag and count change first; the ledger record and the ticket
    counter follow. A failed remote step puts the local values back. A
    successful toggle refetches so the displayed count is the store's.
    """

    def __init__(self, view_model: TicketListViewModel, store: RecordStore, guard: Optional[InFlightGuard] = None):
        self.view_model = view_model
        self._store = store
        self._guard = guard or InFlightGuard()

    async def _add(self, ticket_id: str, user_id: str) -> None:
        await self._store.insert(UPVOTES, {"ticket_id": ticket_id, "user_id": user_id})
        await self._store.atomic_increment(TICKETS, ticket_id, "upvote_count", 1)

    async def _remove(self, ticket_id: str, user_id: str) -> None:
        removed = await self._store.delete(
            UPVOTES, RecordQuery().where("ticket_id", ticket_id).where("user_id", user_id)
        )
        if removed == 0:
            # Already gone (another tab); the counter was decremented there
            logger.info(f"No upvote record for {user_id} on {ticket_id}; counter left as is")
            return
        await self._store.atomic_increment(TICKETS, ticket_id, "upvote_count", -1)

    async def toggle(self, ticket_id: str) -> UpvoteResult:
        user_id = self.view_model.session.user_id
        ticket = self.view_model.find(ticket_id)
        if ticket is None:
            raise TicketNotFound()

        key = (ticket_id, user_id)
        if not self._guard.acquire(key):
            logger.debug(f"Upvote toggle already in flight for {key}")
            return UpvoteResult(
                ticket_id=ticket_id,
                upvoted=ticket.has_upvoted,
                upvote_count=ticket.upvote_count,
                applied=False,
            )

        try:
            previous_flag, previous_count = ticket.has_upvoted, ticket.upvote_count
            adding = not previous_flag
            self.view_model.apply_local_upvote(ticket_id, adding)

            try:
                if adding:
                    await self._add(ticket_id, user_id)
                else:
                    await self._remove(ticket_id, user_id)
            except PortalError as e:
                self.view_model.restore_local(ticket_id, previous_flag, previous_count)
                logger.error(f"Error updating upvote on {ticket_id}: {e}")
                raise UpdateError("Failed to update vote") from e

            try:
                await self.view_model.refresh()
            except PortalError as e:
                # The mutation landed; keep the optimistic values until the next fetch
                logger.warning(f"Refetch after upvote on {ticket_id} failed: {e}")

            current = self.view_model.find(ticket_id) or ticket
            return UpvoteResult(
                ticket_id=ticket_id,
                upvoted=current.has_upvoted,
                upvote_count=current.upvote_count,
            )
        finally:
            self._guard.release(key)
