from typing import List, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from campus_voice.adapters.contracts import PortalBackend
from campus_voice.api.deps import websocket_session
from campus_voice.core.exceptions import PortalError
from campus_voice.core.logging import get_logger
from campus_voice.schemas.ticket import TicketView
from campus_voice.services.tickets.audience import Audience, FeedSection, TicketFilters
from campus_voice.services.tickets.view_model import TicketListViewModel

logger = get_logger(__name__)

router = APIRouter()


def _snapshot_message(view_model: TicketListViewModel, tickets: List[TicketView]) -> dict:
    message = {"tickets": [t.model_dump(mode="json") for t in tickets]}
    if view_model.audience == Audience.ADMIN:
        message["stats"] = view_model.stats.model_dump()
    return message


@router.websocket("/live")
async def live_tickets(
    websocket: WebSocket,
    audience: Audience = Query(Audience.MINE),
    section: FeedSection = Query(FeedSection.ALL),
    token: Optional[str] = Query(None),
):
    """Push the audience's ticket list on connect and after every change."""
    session = await websocket_session(websocket, token)
    if session is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    backend: PortalBackend = websocket.app.state.backend
    view_model = TicketListViewModel(backend.store, session)

    async def push(tickets: List[TicketView]) -> None:
        try:
            await websocket.send_json(_snapshot_message(view_model, tickets))
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"Dropping snapshot for closed socket of {session.user_id}: {e}")

    await websocket.accept()
    try:
        filters = TicketFilters(section=section)
        await view_model.subscribe(audience, push, filters)
        await push(await view_model.load(audience, filters))
        while True:
            # Clients only listen; any message is treated as a refresh request
            await websocket.receive_text()
            await push(await view_model.refresh())
    except WebSocketDisconnect:
        logger.info(f"Live feed closed for {session.user_id}")
    except PortalError as e:
        logger.error(f"Live feed error for {session.user_id}: {e}")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason=e.message)
    finally:
        await view_model.close()
