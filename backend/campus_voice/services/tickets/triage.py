from typing import List, Optional

from campus_voice.adapters.contracts import TICKETS, RecordStore
from campus_voice.core.exceptions import (
    PortalError,
    RecordNotFound,
    RoleRequired,
    TicketNotFound,
    UpdateError,
    ValidationError,
)
from campus_voice.core.logging import get_logger
from campus_voice.models.enums import TicketStatus
from campus_voice.schemas.ticket import TicketStats, TicketView
from campus_voice.services.auth.session import Session
from campus_voice.services.tickets.audience import Audience, TicketFilters
from campus_voice.services.tickets.view_model import TicketListViewModel

logger = get_logger(__name__)


class AdminTriage:
    """Admin dashboard: every ticket, status/severity filters, stats and status changes."""

    def __init__(self, store: RecordStore, session: Session):
        if not session.is_admin:
            raise RoleRequired()
        self._store = store
        self.session = session
        self.view_model = TicketListViewModel(store, session)

    async def load(self, filters: Optional[TicketFilters] = None) -> List[TicketView]:
        return await self.view_model.load(Audience.ADMIN, filters)

    def set_filters(self, filters: TicketFilters) -> List[TicketView]:
        return self.view_model.set_filters(filters)

    @property
    def tickets(self) -> List[TicketView]:
        return self.view_model.tickets

    @property
    def stats(self) -> TicketStats:
        return self.view_model.stats

    async def set_status(self, ticket_id: str, status: str) -> None:
        try:
            status = TicketStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status: {status}")

        try:
            await self._store.update_fields(TICKETS, ticket_id, {"status": status.value})
        except RecordNotFound as e:
            raise TicketNotFound() from e
        except PortalError as e:
            logger.error(f"Error updating status of {ticket_id}: {e}")
            raise UpdateError("Failed to update status") from e
        logger.info(f"Ticket {ticket_id} set to {status.value} by {self.session.user_id}")

        if self.view_model.audience is not None:
            try:
                await self.view_model.refresh()
            except PortalError as e:
                logger.warning(f"Refetch after status change on {ticket_id} failed: {e}")

    async def close(self) -> None:
        await self.view_model.close()
