"""Collaborator contracts the portal core is written against.

Each backend provider (sql, supabase) ships one adapter per contract. Records
cross these seams as plain dicts keyed by column name.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

Record = Dict[str, Any]

TICKETS = "tickets"
UPVOTES = "upvotes"
PROFILES = "profiles"


@dataclass(frozen=True)
class Filter:
    field: str
    op: str  # eq, neq, in
    value: Any

    def matches(self, record: Record) -> bool:
        actual = record.get(self.field)
        if self.op == "eq":
            return actual == self.value
        if self.op == "neq":
            return actual != self.value
        if self.op == "in":
            return actual in self.value
        raise ValueError(f"Unsupported filter op: {self.op}")


@dataclass(frozen=True)
class Sort:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class RecordQuery:
    filters: tuple[Filter, ...] = ()
    sort: tuple[Sort, ...] = ()
    limit: Optional[int] = None

    def where(self, field: str, value: Any, op: str = "eq") -> "RecordQuery":
        return RecordQuery(self.filters + (Filter(field, op, value),), self.sort, self.limit)

    def order_by(self, field: str, descending: bool = False) -> "RecordQuery":
        return RecordQuery(self.filters, self.sort + (Sort(field, descending),), self.limit)

    def matches(self, record: Optional[Record]) -> bool:
        if not record:
            return False
        return all(f.matches(record) for f in self.filters)


@dataclass
class ChangeEvent:
    collection: str
    type: str  # insert, update, delete
    record: Optional[Record] = None
    old_record: Optional[Record] = None

    def affects(self, query: RecordQuery) -> bool:
        return query.matches(self.record) or query.matches(self.old_record)


@dataclass
class AuthResult:
    user_id: str
    token: str
    email: Optional[str] = None


@dataclass
class SessionEvent:
    """Identity-side session change. user_id/token are None after sign-out."""
    event: str  # SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, INITIAL_SESSION
    user_id: Optional[str] = None
    token: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]
SessionCallback = Callable[[SessionEvent], Awaitable[None]]


class Subscription(Protocol):
    async def unsubscribe(self) -> None:
        ...


class IdentityProvider(Protocol):
    async def authenticate(self, email: str, password: str) -> AuthResult:
        ...

    async def register(self, email: str, password: str, attributes: Dict[str, Any]) -> str:
        ...

    async def invalidate(self, token: str) -> None:
        ...

    async def get_user(self, token: str) -> Optional[str]:
        ...

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        ...


class RecordStore(Protocol):
    async def query(self, collection: str, query: RecordQuery) -> List[Record]:
        ...

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        ...

    async def insert(self, collection: str, record: Record) -> str:
        ...

    async def update_fields(self, collection: str, record_id: str, fields: Record) -> None:
        ...

    async def delete(self, collection: str, query: RecordQuery) -> int:
        ...

    async def count(self, collection: str, query: RecordQuery) -> int:
        ...

    async def atomic_increment(self, collection: str, record_id: str, field: str, delta: int) -> None:
        ...

    async def subscribe(self, collection: str, query: RecordQuery, on_change: ChangeCallback) -> Subscription:
        ...


class BlobStorage(Protocol):
    async def upload(self, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        ...

    async def public_url(self, path: str) -> str:
        ...


@dataclass
class PortalBackend:
    """Everything the services need from one backend provider."""
    name: str
    store: RecordStore
    storage: BlobStorage
    identity: IdentityProvider  # process-wide: token resolution and invalidation
    identity_factory: Callable[[], IdentityProvider]  # one client per session manager
    closers: Sequence[Callable[[], Awaitable[None]]] = ()

    async def aclose(self) -> None:
        for close in self.closers:
            await close()
