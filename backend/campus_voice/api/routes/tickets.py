from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status

from campus_voice.adapters.contracts import PortalBackend
from campus_voice.api.deps import get_backend, get_current_session, get_upvote_guard
from campus_voice.schemas.ticket import TicketRead, TicketView, UpvoteResult
from campus_voice.services.auth.session import Session
from campus_voice.services.tickets.audience import Audience, FeedSection, TicketFilters
from campus_voice.services.tickets.submission import ImageAttachment, TicketSubmissionForm
from campus_voice.services.tickets.upvotes import InFlightGuard, UpvoteReconciler
from campus_voice.services.tickets.view_model import TicketListViewModel

router = APIRouter()

def _absolute_image_url(request: Request, image_url: Optional[str]) -> Optional[str]:
    if not image_url:
        return image_url
    if image_url.startswith("http"):
        return image_url

    forwarded_host = request.headers.get("x-forwarded-host")
    if forwarded_host:
        host = forwarded_host.split(",")[0].strip()
        proto = (request.headers.get("x-forwarded-proto") or request.url.scheme).split(",")[0].strip()
        return f"{proto}://{host}{image_url}"

    base_url = str(request.base_url).rstrip("/")
    return f"{base_url}{image_url}"

def _with_absolute_urls(request: Request, tickets: List[TicketView]) -> List[TicketView]:
    return [
        t.model_copy(update={"image_url": _absolute_image_url(request, t.image_url)})
        for t in tickets
    ]

@router.get("/mine", response_model=List[TicketView])
async def list_my_tickets(
    request: Request,
    session: Session = Depends(get_current_session),
    backend: PortalBackend = Depends(get_backend),
) -> List[TicketView]:
    tickets = await TicketListViewModel(backend.store, session).load(Audience.MINE)
    return _with_absolute_urls(request, tickets)

@router.get("/public", response_model=List[TicketView])
async def list_public_tickets(
    request: Request,
    section: FeedSection = Query(FeedSection.ALL),
    session: Session = Depends(get_current_session),
    backend: PortalBackend = Depends(get_backend),
) -> List[TicketView]:
    view_model = TicketListViewModel(backend.store, session)
    tickets = await view_model.load(Audience.PUBLIC, TicketFilters(section=section))
    return _with_absolute_urls(request, tickets)

@router.post("", response_model=TicketRead, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    request: Request,
    title: str = Form(...),
    description: str = Form(...),
    category: Optional[str] = Form(None),
    severity: Optional[str] = Form(None),
    visibility: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    session: Session = Depends(get_current_session),
    backend: PortalBackend = Depends(get_backend),
) -> TicketRead:
    form = TicketSubmissionForm(backend.store, backend.storage, session)
    form.title = title
    form.description = description
    form.category = category
    form.severity = severity
    if visibility:
        form.visibility = visibility
    if image is not None and image.filename:
        form.attach_image(ImageAttachment(
            filename=image.filename,
            content_type=image.content_type or "",
            content=await image.read(),
        ))

    ticket = await form.submit()
    ticket.image_url = _absolute_image_url(request, ticket.image_url)
    return ticket

@router.post("/{ticket_id}/upvote", response_model=UpvoteResult)
async def toggle_upvote(
    ticket_id: str,
    section: FeedSection = Query(FeedSection.ALL),
    session: Session = Depends(get_current_session),
    backend: PortalBackend = Depends(get_backend),
    guard: InFlightGuard = Depends(get_upvote_guard),
) -> UpvoteResult:
    """
    Toggle the caller's upvote on a public ticket.
    """
    view_model = TicketListViewModel(backend.store, session)
    await view_model.load(Audience.PUBLIC, TicketFilters(section=section))
    return await UpvoteReconciler(view_model, backend.store, guard).toggle(ticket_id)
