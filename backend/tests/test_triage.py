import pytest

from campus_voice.core.exceptions import RoleRequired, StoreUnavailable, TicketNotFound, UpdateError, ValidationError
from campus_voice.services.tickets.audience import TicketFilters
from campus_voice.services.tickets.triage import AdminTriage

from fakes import ticket_record


def test_triage_requires_admin(store, student_session) -> None:
    with pytest.raises(RoleRequired):
        AdminTriage(store, student_session)


@pytest.mark.asyncio
async def test_admin_sees_private_and_public_tickets(store, admin_session) -> None:
    store.seed("tickets", ticket_record("student-1", visibility="private"))
    store.seed("tickets", ticket_record("student-2", visibility="public"))

    tickets = await AdminTriage(store, admin_session).load()

    assert len(tickets) == 2


@pytest.mark.asyncio
async def test_resolving_critical_ticket_updates_stats_and_filter(store, admin_session) -> None:
    critical = store.seed("tickets", ticket_record("student-1", severity="critical", status="open"))
    store.seed("tickets", ticket_record("student-2", severity="low", status="open"))
    triage = AdminTriage(store, admin_session)
    await triage.load()
    assert triage.stats.critical == 1
    assert triage.stats.resolved == 0

    await triage.set_status(critical["id"], "resolved")

    assert triage.stats.critical == 0
    assert triage.stats.resolved == 1
    resolved = triage.set_filters(TicketFilters(status="resolved"))
    assert [t.id for t in resolved] == [critical["id"]]


@pytest.mark.asyncio
async def test_status_write_is_unconditional(store, admin_session) -> None:
    ticket = store.seed("tickets", ticket_record("student-1", status="resolved"))

    await AdminTriage(store, admin_session).set_status(ticket["id"], "open")

    assert store.tables["tickets"][ticket["id"]]["status"] == "open"


@pytest.mark.asyncio
async def test_set_status_errors(store, admin_session) -> None:
    ticket = store.seed("tickets", ticket_record("student-1"))
    triage = AdminTriage(store, admin_session)

    with pytest.raises(ValidationError):
        await triage.set_status(ticket["id"], "closed")
    assert store.calls == []

    with pytest.raises(TicketNotFound):
        await triage.set_status("missing", "resolved")

    store.fail("update_fields", StoreUnavailable())
    with pytest.raises(UpdateError):
        await triage.set_status(ticket["id"], "resolved")
    assert store.tables["tickets"][ticket["id"]]["status"] == "open"
