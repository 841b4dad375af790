import asyncio

import pytest

from campus_voice.core.exceptions import StoreUnavailable, TicketNotFound, UpdateError
from campus_voice.services.tickets.audience import Audience
from campus_voice.services.tickets.upvotes import InFlightGuard, UpvoteReconciler
from campus_voice.services.tickets.view_model import TicketListViewModel

from fakes import ticket_record


async def _public_feed(store, session):
    view_model = TicketListViewModel(store, session)
    await view_model.load(Audience.PUBLIC)
    return view_model


@pytest.mark.asyncio
async def test_upvote_then_remove_restores_count_and_flag(store, student_session) -> None:
    ticket = store.seed("tickets", ticket_record("student-2", upvote_count=4))
    view_model = await _public_feed(store, student_session)
    reconciler = UpvoteReconciler(view_model, store)

    added = await reconciler.toggle(ticket["id"])
    assert (added.upvoted, added.upvote_count, added.applied) == (True, 5, True)
    assert len(store.tables["upvotes"]) == 1

    removed = await reconciler.toggle(ticket["id"])
    assert (removed.upvoted, removed.upvote_count) == (False, 4)
    assert store.tables["upvotes"] == {}
    assert store.tables["tickets"][ticket["id"]]["upvote_count"] == 4

    current = view_model.find(ticket["id"])
    assert (current.has_upvoted, current.upvote_count) == (False, 4)


@pytest.mark.asyncio
async def test_rejected_upvote_restores_pre_toggle_values(store, student_session) -> None:
    ticket = store.seed("tickets", ticket_record("student-2", upvote_count=2))
    view_model = await _public_feed(store, student_session)
    store.fail("insert", StoreUnavailable())

    with pytest.raises(UpdateError) as exc_info:
        await UpvoteReconciler(view_model, store).toggle(ticket["id"])

    assert exc_info.value.message == "Failed to update vote"
    current = view_model.find(ticket["id"])
    assert (current.has_upvoted, current.upvote_count) == (False, 2)
    assert store.tables["tickets"][ticket["id"]]["upvote_count"] == 2


@pytest.mark.asyncio
async def test_counter_failure_after_ledger_insert_rolls_back_locally(store, student_session) -> None:
    ticket = store.seed("tickets", ticket_record("student-2", upvote_count=0))
    view_model = await _public_feed(store, student_session)
    store.fail("atomic_increment")

    with pytest.raises(UpdateError):
        await UpvoteReconciler(view_model, store).toggle(ticket["id"])

    current = view_model.find(ticket["id"])
    assert (current.has_upvoted, current.upvote_count) == (False, 0)
    # ledger and counter may diverge here; nothing retries
    assert len(store.tables["upvotes"]) == 1


@pytest.mark.asyncio
async def test_concurrent_toggles_apply_once(store, student_session) -> None:
    ticket = store.seed("tickets", ticket_record("student-2", upvote_count=0))
    view_model = await _public_feed(store, student_session)
    reconciler = UpvoteReconciler(view_model, store, InFlightGuard())

    first, second = await asyncio.gather(
        reconciler.toggle(ticket["id"]),
        reconciler.toggle(ticket["id"]),
    )

    assert first.applied is True
    assert second.applied is False
    assert store.tables["tickets"][ticket["id"]]["upvote_count"] == 1
    assert len(store.tables["upvotes"]) == 1


@pytest.mark.asyncio
async def test_guard_is_released_after_failure(store, student_session) -> None:
    ticket = store.seed("tickets", ticket_record("student-2"))
    view_model = await _public_feed(store, student_session)
    guard = InFlightGuard()
    reconciler = UpvoteReconciler(view_model, store, guard)
    store.fail("insert")

    with pytest.raises(UpdateError):
        await reconciler.toggle(ticket["id"])

    assert (ticket["id"], student_session.user_id) not in guard


@pytest.mark.asyncio
async def test_removing_missing_record_leaves_counter(store, student_session) -> None:
    ticket = store.seed("tickets", ticket_record("student-2", upvote_count=3))
    upvote = store.seed("upvotes", {"ticket_id": ticket["id"], "user_id": student_session.user_id})
    view_model = await _public_feed(store, student_session)
    # removed from another tab after the feed was loaded
    del store.tables["upvotes"][upvote["id"]]

    result = await UpvoteReconciler(view_model, store).toggle(ticket["id"])

    assert result.upvoted is False
    assert store.tables["tickets"][ticket["id"]]["upvote_count"] == 3


@pytest.mark.asyncio
async def test_refetch_failure_keeps_optimistic_values(store, student_session) -> None:
    ticket = store.seed("tickets", ticket_record("student-2", upvote_count=0))
    view_model = await _public_feed(store, student_session)
    reconciler = UpvoteReconciler(view_model, store)

    original_query = store.query

    async def failing_query(collection, query):
        if collection == "tickets":
            raise StoreUnavailable()
        return await original_query(collection, query)

    store.query = failing_query
    result = await reconciler.toggle(ticket["id"])

    assert (result.upvoted, result.upvote_count) == (True, 1)
    assert store.tables["tickets"][ticket["id"]]["upvote_count"] == 1


@pytest.mark.asyncio
async def test_toggle_unknown_ticket(store, student_session) -> None:
    private = store.seed("tickets", ticket_record("student-2", visibility="private"))
    view_model = await _public_feed(store, student_session)

    with pytest.raises(TicketNotFound):
        await UpvoteReconciler(view_model, store).toggle(private["id"])
