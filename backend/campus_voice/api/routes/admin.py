from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from campus_voice.adapters.contracts import PortalBackend
from campus_voice.api.deps import get_backend, require_admin
from campus_voice.api.routes.tickets import _with_absolute_urls
from campus_voice.schemas.ticket import AdminTicketListResponse, StatusUpdate
from campus_voice.services.auth.session import Session
from campus_voice.services.tickets.audience import ALL, TicketFilters
from campus_voice.services.tickets.triage import AdminTriage

router = APIRouter()

@router.get("/tickets", response_model=AdminTicketListResponse)
async def list_all_tickets(
    request: Request,
    status_filter: Optional[str] = Query(ALL, alias="status"),
    severity: Optional[str] = Query(ALL),
    session: Session = Depends(require_admin),
    backend: PortalBackend = Depends(get_backend),
) -> AdminTicketListResponse:
    triage = AdminTriage(backend.store, session)
    tickets = await triage.load(TicketFilters(status=status_filter or ALL, severity=severity or ALL))
    return AdminTicketListResponse(
        items=_with_absolute_urls(request, tickets),
        stats=triage.stats,
        totalItems=len(tickets),
    )

@router.patch("/tickets/{ticket_id}/status", status_code=status.HTTP_204_NO_CONTENT)
async def update_ticket_status(
    ticket_id: str,
    update: StatusUpdate,
    session: Session = Depends(require_admin),
    backend: PortalBackend = Depends(get_backend),
) -> None:
    await AdminTriage(backend.store, session).set_status(ticket_id, update.status)
