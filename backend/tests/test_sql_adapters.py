import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.schema import CreateTable

from campus_voice.adapters.contracts import TICKETS, UPVOTES, RecordQuery
from campus_voice.adapters.sql.identity import SqlIdentityProvider
from campus_voice.adapters.sql.store import SqlRecordStore
from campus_voice.core.exceptions import (
    DuplicateAccount,
    DuplicateRecord,
    InvalidCredentials,
    RecordNotFound,
    StoreUnavailable,
    WeakCredential,
)
from campus_voice.core.security import create_access_token, decode_access_token, get_password_hash, verify_password
from campus_voice.models.profile import Account, AuthSession
from campus_voice.models.ticket import Ticket, Upvote

from fakes import ticket_record


class _Result:
    def __init__(self, rows=(), scalar=None, rowcount=1) -> None:
        self._rows = list(rows)
        self._scalar = scalar
        self.rowcount = rowcount

    def scalars(self) -> "_Result":
        return self

    def all(self) -> list:
        return list(self._rows)

    def scalar(self):
        return self._scalar

    def scalar_one_or_none(self):
        return self._rows[0] if self._rows else None


class _Session:
    def __init__(self, factory: "_SessionFactory") -> None:
        self.factory = factory

    async def __aenter__(self) -> "_Session":
        return self

    async def __aexit__(self, *exc) -> bool:
        return False

    async def execute(self, stmt) -> _Result:
        self.factory.statements.append(stmt)
        if self.factory.execute_error is not None:
            raise self.factory.execute_error
        return self.factory.results.pop(0) if self.factory.results else _Result()

    async def get(self, model, key, **kwargs):
        self.factory.gets.append((model.__tablename__, key, kwargs))
        return self.factory.objects.get((model.__tablename__, key))

    def add(self, obj) -> None:
        self.factory.added.append(obj)

    async def commit(self) -> None:
        if self.factory.commit_error is not None:
            raise self.factory.commit_error
        self.factory.commits += 1

    async def refresh(self, obj) -> None:
        pass

    async def delete(self, obj) -> None:
        self.factory.deleted.append(obj)


class _SessionFactory:
    """Stands in for async_sessionmaker; every session shares the recorded state."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.objects = {}
        self.statements = []
        self.gets = []
        self.added = []
        self.deleted = []
        self.commits = 0
        self.execute_error = None
        self.commit_error = None

    def __call__(self) -> _Session:
        return _Session(self)


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def _ticket(ticket_id: str, **overrides) -> Ticket:
    return Ticket(id=ticket_id, **ticket_record("student-1", **overrides))


async def _collect(store: SqlRecordStore, collection: str) -> list:
    events = []

    async def on_change(event) -> None:
        events.append(event)

    await store.subscribe(collection, RecordQuery(), on_change)
    return events


async def _drain() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


def test_ticket_and_upvote_ids_default_on_both_sides() -> None:
    for model in (Ticket, Upvote):
        column = model.__table__.c.id
        assert column.default is not None and column.default.is_callable
        assert "DEFAULT gen_random_uuid()::text" in str(CreateTable(model.__table__).compile(dialect=postgresql.dialect()))


@pytest.mark.asyncio
async def test_query_builds_filtered_sorted_limited_select() -> None:
    factory = _SessionFactory(_Result([_ticket("t1"), _ticket("t2", status="resolved")]))
    store = SqlRecordStore(factory)
    query = (
        RecordQuery(limit=10)
        .where("visibility", "public")
        .where("status", "closed", op="neq")
        .where("category", ("facilities", "it"), op="in")
        .order_by("created_at", descending=True)
    )

    rows = await store.query(TICKETS, query)

    assert [r["id"] for r in rows] == ["t1", "t2"]
    assert rows[1]["status"] == "resolved"
    sql = _sql(factory.statements[0])
    assert "FROM tickets" in sql
    assert "tickets.visibility = " in sql
    assert "tickets.status != " in sql
    assert "tickets.category IN" in sql
    assert "ORDER BY tickets.created_at DESC" in sql
    assert "LIMIT" in sql


@pytest.mark.asyncio
async def test_unknown_collection_or_op_is_rejected() -> None:
    store = SqlRecordStore(_SessionFactory())

    with pytest.raises(ValueError):
        await store.query("comments", RecordQuery())
    with pytest.raises(ValueError):
        await store.query(TICKETS, RecordQuery().where("upvote_count", 3, op="gt"))


@pytest.mark.asyncio
async def test_insert_publishes_created_record() -> None:
    factory = _SessionFactory()
    store = SqlRecordStore(factory)
    events = await _collect(store, UPVOTES)

    created_id = await store.insert(UPVOTES, {"id": "u1", "ticket_id": "t1", "user_id": "student-2"})
    await _drain()

    assert created_id == "u1"
    assert isinstance(factory.added[0], Upvote)
    assert factory.commits == 1
    assert [(e.type, e.record["ticket_id"]) for e in events] == [("insert", "t1")]


@pytest.mark.asyncio
async def test_integrity_error_on_insert_is_duplicate_record() -> None:
    factory = _SessionFactory()
    factory.commit_error = IntegrityError("INSERT INTO upvotes", {}, Exception("duplicate key"))
    store = SqlRecordStore(factory)
    events = await _collect(store, UPVOTES)

    with pytest.raises(DuplicateRecord):
        await store.insert(UPVOTES, {"id": "u1", "ticket_id": "t1", "user_id": "student-2"})
    await _drain()
    assert events == []


@pytest.mark.asyncio
async def test_database_errors_become_store_unavailable() -> None:
    factory = _SessionFactory()
    factory.execute_error = OperationalError("SELECT", {}, Exception("connection refused"))
    store = SqlRecordStore(factory)

    with pytest.raises(StoreUnavailable):
        await store.query(TICKETS, RecordQuery())
    with pytest.raises(StoreUnavailable):
        await store.count(UPVOTES, RecordQuery())


@pytest.mark.asyncio
async def test_update_fields_reports_old_and_new() -> None:
    factory = _SessionFactory()
    factory.objects[(TICKETS, "t1")] = _ticket("t1")
    store = SqlRecordStore(factory)
    events = await _collect(store, TICKETS)

    await store.update_fields(TICKETS, "t1", {"status": "in_progress"})
    await _drain()

    assert events[0].old_record["status"] == "open"
    assert events[0].record["status"] == "in_progress"
    with pytest.raises(RecordNotFound):
        await store.update_fields(TICKETS, "missing", {"status": "closed"})


@pytest.mark.asyncio
async def test_delete_removes_each_match_and_returns_count() -> None:
    doomed = [Upvote(id="u1", ticket_id="t1", user_id="a"), Upvote(id="u2", ticket_id="t1", user_id="b")]
    factory = _SessionFactory(_Result(doomed))
    store = SqlRecordStore(factory)
    events = await _collect(store, UPVOTES)

    removed = await store.delete(UPVOTES, RecordQuery().where("ticket_id", "t1"))
    await _drain()

    assert removed == 2
    assert factory.deleted == doomed
    assert "upvotes.ticket_id = " in _sql(factory.statements[0])
    assert sorted(e.old_record["id"] for e in events) == ["u1", "u2"]
    assert all(e.type == "delete" for e in events)


@pytest.mark.asyncio
async def test_count_uses_aggregate() -> None:
    factory = _SessionFactory(_Result(scalar=4))
    store = SqlRecordStore(factory)

    assert await store.count(UPVOTES, RecordQuery().where("ticket_id", "t1")) == 4
    assert "count(*)" in _sql(factory.statements[0])


@pytest.mark.asyncio
async def test_atomic_increment_is_one_clamped_update() -> None:
    factory = _SessionFactory(_Result(rowcount=1))
    factory.objects[(TICKETS, "t1")] = _ticket("t1", upvote_count=1)
    store = SqlRecordStore(factory)
    events = await _collect(store, TICKETS)

    await store.atomic_increment(TICKETS, "t1", "upvote_count", 1)
    await _drain()

    sql = _sql(factory.statements[0])
    assert sql.startswith("UPDATE tickets SET upvote_count=greatest(tickets.upvote_count + ")
    assert "WHERE tickets.id = " in sql
    assert factory.gets[-1] == (TICKETS, "t1", {"populate_existing": True})
    assert [e.type for e in events] == ["update"]


@pytest.mark.asyncio
async def test_atomic_increment_of_missing_row_is_not_found() -> None:
    factory = _SessionFactory(_Result(rowcount=0))
    store = SqlRecordStore(factory)

    with pytest.raises(RecordNotFound):
        await store.atomic_increment(TICKETS, "missing", "upvote_count", -1)
    assert factory.commits == 0


def _account(email: str = "ana@campus.edu", password: str = "secret123") -> Account:
    return Account(id="user-1", email=email, hashed_password=get_password_hash(password))


@pytest.mark.asyncio
async def test_authenticate_records_session_and_signals_sign_in() -> None:
    factory = _SessionFactory(_Result([_account()]))
    identity = SqlIdentityProvider(factory)
    events = []

    async def on_change(event) -> None:
        events.append(event)

    identity.on_session_change(on_change)
    result = await identity.authenticate(" Ana@Campus.EDU ", "secret123")

    assert result.user_id == "user-1"
    assert list(factory.statements[0].compile().params.values()) == ["ana@campus.edu"]
    stored = factory.added[0]
    assert isinstance(stored, AuthSession)
    assert stored.jti == decode_access_token(result.token)["jti"]
    assert [(e.event, e.user_id, e.token) for e in events] == [("SIGNED_IN", "user-1", result.token)]


@pytest.mark.asyncio
@pytest.mark.parametrize("rows", [[], [_account(password="another-pass")]])
async def test_authenticate_rejects_unknown_or_wrong_password(rows) -> None:
    factory = _SessionFactory(_Result(rows))
    identity = SqlIdentityProvider(factory)

    with pytest.raises(InvalidCredentials):
        await identity.authenticate("ana@campus.edu", "secret123")
    assert factory.added == []


@pytest.mark.asyncio
async def test_register_hashes_password_and_rejects_duplicates() -> None:
    factory = _SessionFactory(_Result([]), _Result(["user-1"]))
    identity = SqlIdentityProvider(factory)

    with pytest.raises(WeakCredential):
        await identity.register("ana@campus.edu", "123", {})
    assert factory.statements == []

    user_id = await identity.register("Ana@Campus.edu", "secret123", {"role": "student"})
    account = factory.added[0]
    assert account.id == user_id
    assert account.email == "ana@campus.edu"
    assert verify_password("secret123", account.hashed_password)

    with pytest.raises(DuplicateAccount):
        await identity.register("ana@campus.edu", "secret123", {})


@pytest.mark.asyncio
async def test_register_race_on_unique_email_is_duplicate_account() -> None:
    factory = _SessionFactory(_Result([]))
    factory.commit_error = IntegrityError("INSERT INTO accounts", {}, Exception("duplicate key"))

    with pytest.raises(DuplicateAccount):
        await SqlIdentityProvider(factory).register("ana@campus.edu", "secret123", {})


@pytest.mark.asyncio
async def test_invalidate_revokes_row_and_only_owner_hears_sign_out() -> None:
    factory = _SessionFactory(_Result([_account()]))
    owner, other = SqlIdentityProvider(factory), SqlIdentityProvider(factory)
    heard = {"owner": [], "other": []}

    for name, client in (("owner", owner), ("other", other)):
        async def on_change(event, name=name) -> None:
            heard[name].append(event.event)

        client.on_session_change(on_change)

    result = await owner.authenticate("ana@campus.edu", "secret123")
    await other.invalidate(result.token)

    revoke = _sql(factory.statements[-1])
    assert revoke.startswith("UPDATE auth_sessions SET revoked_at=")
    assert "auth_sessions.revoked_at IS NULL" in revoke
    assert heard == {"owner": ["SIGNED_IN"], "other": []}

    await owner.invalidate(result.token)
    assert heard["owner"] == ["SIGNED_IN", "SIGNED_OUT"]


@pytest.mark.asyncio
async def test_get_user_honours_revocation() -> None:
    factory = _SessionFactory()
    identity = SqlIdentityProvider(factory)
    token, jti = create_access_token("user-1")

    assert await identity.get_user(token) is None

    factory.objects[("auth_sessions", jti)] = AuthSession(jti=jti, user_id="user-1")
    assert await identity.get_user(token) == "user-1"

    factory.objects[("auth_sessions", jti)].revoked_at = datetime.now(timezone.utc)
    assert await identity.get_user(token) is None

    lookups = len(factory.gets)
    assert await identity.get_user("not-a-token") is None
    assert len(factory.gets) == lookups
