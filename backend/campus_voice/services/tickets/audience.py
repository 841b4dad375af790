"""Audience scoping, client-side filters and display ordering for ticket lists."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, List

from campus_voice.adapters.contracts import RecordQuery
from campus_voice.core.exceptions import ValidationError
from campus_voice.models.enums import Severity, TicketStatus, Visibility
from campus_voice.schemas.ticket import TicketStats, TicketView

ALL = "all"


class Audience(str, enum.Enum):
    MINE = "mine"
    PUBLIC = "public"
    ADMIN = "admin"


class FeedSection(str, enum.Enum):
    ALL = "all"
    ACTIVE = "active"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class TicketFilters:
    status: str = ALL
    severity: str = ALL
    section: FeedSection = FeedSection.ALL

    def __post_init__(self) -> None:
        if self.status != ALL and self.status not in {s.value for s in TicketStatus}:
            raise ValidationError(f"Unknown status filter: {self.status}")
        if self.severity != ALL and self.severity not in {s.value for s in Severity}:
            raise ValidationError(f"Unknown severity filter: {self.severity}")
        try:
            object.__setattr__(self, "section", FeedSection(self.section))
        except ValueError:
            raise ValidationError(f"Unknown feed section: {self.section}")


def audience_query(audience: Audience, user_id: str, filters: TicketFilters) -> RecordQuery:
    """Store-side predicate and base ordering for an audience."""
    query = RecordQuery()
    if audience == Audience.MINE:
        query = query.where("created_by", user_id)
    elif audience == Audience.PUBLIC:
        query = query.where("visibility", Visibility.PUBLIC.value)
        if filters.section == FeedSection.ACTIVE:
            query = query.where("status", TicketStatus.RESOLVED.value, op="neq")
        elif filters.section == FeedSection.RESOLVED:
            query = query.where("status", TicketStatus.RESOLVED.value)
        query = query.order_by("upvote_count", descending=True)
    return query.order_by("created_at", descending=True)


def apply_filters(tickets: Iterable[TicketView], filters: TicketFilters) -> List[TicketView]:
    """Admin status/severity filters; both must match."""
    return [
        t for t in tickets
        if (filters.status == ALL or t.status.value == filters.status)
        and (filters.severity == ALL or t.severity.value == filters.severity)
    ]


def _newest_first(ticket: TicketView) -> float:
    return -ticket.created_at.timestamp()


def sort_key(audience: Audience):
    if audience == Audience.PUBLIC:
        return lambda t: (-t.upvote_count, t.severity.rank, _newest_first(t))
    if audience == Audience.ADMIN:
        return lambda t: (t.severity.rank, -t.upvote_count, _newest_first(t))
    return _newest_first


def sort_tickets(audience: Audience, tickets: Iterable[TicketView]) -> List[TicketView]:
    return sorted(tickets, key=sort_key(audience))


def compute_stats(tickets: Iterable[TicketView]) -> TicketStats:
    stats = TicketStats()
    for t in tickets:
        if t.status == TicketStatus.OPEN:
            stats.open += 1
        elif t.status == TicketStatus.IN_PROGRESS:
            stats.in_progress += 1
        elif t.status == TicketStatus.RESOLVED:
            stats.resolved += 1
        if t.severity == Severity.CRITICAL and t.status != TicketStatus.RESOLVED:
            stats.critical += 1
    return stats
