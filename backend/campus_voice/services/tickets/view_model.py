from typing import Awaitable, Callable, List, Optional

from campus_voice.adapters.contracts import TICKETS, UPVOTES, ChangeEvent, RecordQuery, RecordStore, Subscription
from campus_voice.core.exceptions import PortalError, RoleRequired
from campus_voice.core.logging import get_logger
from campus_voice.schemas.ticket import TicketStats, TicketView
from campus_voice.services.auth.session import Session
from campus_voice.services.tickets.audience import (
    Audience,
    TicketFilters,
    apply_filters,
    audience_query,
    compute_stats,
    sort_tickets,
)

logger = get_logger(__name__)

SnapshotCallback = Callable[[List[TicketView]], Awaitable[None]]


class TicketListViewModel:
    """Live, filtered and sorted ticket list for one audience.

    `snapshot` holds what the store last returned; `tickets` is the displayed
    projection of it (admin filters applied, audience ordering). Every change
    notification triggers a full refetch, and a refetch result is dropped if a
    later-issued fetch has already been applied.
    """

    def __init__(self, store: RecordStore, session: Session):
        self._store = store
        self.session = session
        self.audience: Optional[Audience] = None
        self.filters = TicketFilters()
        self.snapshot: List[TicketView] = []
        self.tickets: List[TicketView] = []
        self._subscriptions: List[Subscription] = []
        self._issued = 0
        self._applied = 0

    def _authorize(self, audience: Audience) -> None:
        if audience == Audience.ADMIN and not self.session.is_admin:
            raise RoleRequired("Admin role required to view all tickets")

    async def _fetch(self, audience: Audience, filters: TicketFilters) -> List[TicketView]:
        records = await self._store.query(TICKETS, audience_query(audience, self.session.user_id, filters))
        tickets = [TicketView.model_validate(r) for r in records]
        if audience == Audience.PUBLIC and tickets:
            ledger = await self._store.query(
                UPVOTES,
                RecordQuery()
                .where("user_id", self.session.user_id)
                .where("ticket_id", [t.id for t in tickets], op="in"),
            )
            upvoted = {str(r["ticket_id"]) for r in ledger}
            for t in tickets:
                t.has_upvoted = t.id in upvoted
        return tickets

    def _project(self, snapshot: List[TicketView]) -> List[TicketView]:
        if self.audience == Audience.ADMIN:
            snapshot = apply_filters(snapshot, self.filters)
        return sort_tickets(self.audience, snapshot)

    def _apply(self, seq: int, snapshot: List[TicketView]) -> bool:
        if seq < self._applied:
            logger.debug(f"Dropping stale ticket fetch #{seq} (applied #{self._applied})")
            return False
        self._applied = seq
        self.snapshot = snapshot
        self.tickets = self._project(snapshot)
        return True

    async def _fetch_and_apply(self, audience: Audience, filters: TicketFilters) -> bool:
        self._issued += 1
        seq = self._issued
        snapshot = await self._fetch(audience, filters)
        if self.audience != audience or self.filters.section != filters.section:
            # view switched while the fetch was in flight
            return False
        return self._apply(seq, snapshot)

    async def load(self, audience: Audience, filters: Optional[TicketFilters] = None) -> List[TicketView]:
        audience = Audience(audience)
        self._authorize(audience)
        self.audience = audience
        self.filters = filters or TicketFilters()
        await self._fetch_and_apply(self.audience, self.filters)
        return self.tickets

    async def refresh(self) -> List[TicketView]:
        if self.audience is None:
            raise RuntimeError("refresh() called before load()")
        await self._fetch_and_apply(self.audience, self.filters)
        return self.tickets

    def set_filters(self, filters: TicketFilters) -> List[TicketView]:
        """Re-project the loaded snapshot; no store round trip."""
        self.filters = filters
        self.tickets = self._project(self.snapshot)
        return self.tickets

    async def subscribe(
        self,
        audience: Audience,
        on_change: SnapshotCallback,
        filters: Optional[TicketFilters] = None,
    ) -> Subscription:
        audience = Audience(audience)
        self._authorize(audience)
        filters = filters or TicketFilters()
        self.audience, self.filters = audience, filters

        async def _refetch(event: ChangeEvent) -> None:
            try:
                applied = await self._fetch_and_apply(audience, filters)
            except PortalError as e:
                logger.error(f"Refetch after {event.collection} {event.type} failed: {e}")
                return
            if applied:
                await on_change(self.tickets)

        subscription = await self._store.subscribe(
            TICKETS, audience_query(audience, self.session.user_id, filters), _refetch
        )
        self._subscriptions.append(subscription)
        logger.info(f"Subscribed {self.session.user_id} to {audience.value} tickets")
        return subscription

    async def close(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.unsubscribe()
        if subscriptions:
            logger.info(f"Released {len(subscriptions)} ticket subscription(s) for {self.session.user_id}")

    @property
    def stats(self) -> TicketStats:
        return compute_stats(self.snapshot)

    def find(self, ticket_id: str) -> Optional[TicketView]:
        return next((t for t in self.snapshot if t.id == ticket_id), None)

    def apply_local_upvote(self, ticket_id: str, upvoted: bool) -> None:
        ticket = self.find(ticket_id)
        if ticket is None:
            return
        ticket.has_upvoted = upvoted
        ticket.upvote_count = max(0, ticket.upvote_count + (1 if upvoted else -1))
        self.tickets = self._project(self.snapshot)

    def restore_local(self, ticket_id: str, has_upvoted: bool, upvote_count: int) -> None:
        ticket = self.find(ticket_id)
        if ticket is None:
            return
        ticket.has_upvoted = has_upvoted
        ticket.upvote_count = upvote_count
        self.tickets = self._project(self.snapshot)
