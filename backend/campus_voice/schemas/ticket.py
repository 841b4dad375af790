from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional

from campus_voice.models.enums import Category, Severity, TicketStatus, Visibility


class TicketBase(BaseModel):
    title: str
    description: str
    category: Category
    severity: Severity
    visibility: Visibility = Visibility.PRIVATE
    image_url: Optional[str] = None


class TicketRead(TicketBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: TicketStatus
    upvote_count: int = 0
    created_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class TicketView(TicketRead):
    """A ticket as shown in a list, with the viewer's upvote state."""
    has_upvoted: bool = False


class TicketStats(BaseModel):
    open: int = 0
    in_progress: int = 0
    resolved: int = 0
    critical: int = 0  # critical and not yet resolved


class AdminTicketListResponse(BaseModel):
    items: list[TicketView]
    stats: TicketStats
    totalItems: int


class StatusUpdate(BaseModel):
    status: TicketStatus


class UpvoteResult(BaseModel):
    ticket_id: str
    upvoted: bool
    upvote_count: int
    applied: bool = True  # False when coalesced into a toggle already in flight
