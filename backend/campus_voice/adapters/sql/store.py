from typing import Dict, List, Optional, Type

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_voice.adapters.contracts import (
    PROFILES,
    TICKETS,
    UPVOTES,
    ChangeCallback,
    ChangeEvent,
    Record,
    RecordQuery,
)
from campus_voice.adapters.listeners import ListenerHandle
from campus_voice.adapters.sql.notifier import ChangeBroadcaster
from campus_voice.core.exceptions import DuplicateRecord, RecordNotFound, StoreUnavailable
from campus_voice.core.logging import get_logger
from campus_voice.db.base import Base
from campus_voice.models.profile import Profile
from campus_voice.models.ticket import Ticket, Upvote

logger = get_logger(__name__)

COLLECTIONS: Dict[str, Type[Base]] = {
    TICKETS: Ticket,
    UPVOTES: Upvote,
    PROFILES: Profile,
}


def to_record(obj: Base) -> Record:
    return {column.key: getattr(obj, column.key) for column in obj.__table__.columns}


class SqlRecordStore:
    """RecordStore over the SQLAlchemy models, with in-process change notifications."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], broadcaster: Optional[ChangeBroadcaster] = None):
        self._session_factory = session_factory
        self.broadcaster = broadcaster or ChangeBroadcaster()

    @staticmethod
    def _model(collection: str) -> Type[Base]:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}")

    @staticmethod
    def _where(stmt, model, query: RecordQuery):
        for f in query.filters:
            column = getattr(model, f.field)
            if f.op == "eq":
                stmt = stmt.where(column == f.value)
            elif f.op == "neq":
                stmt = stmt.where(column != f.value)
            elif f.op == "in":
                stmt = stmt.where(column.in_(list(f.value)))
            else:
                raise ValueError(f"Unsupported filter op: {f.op}")
        return stmt

    async def query(self, collection: str, query: RecordQuery) -> List[Record]:
        model = self._model(collection)
        stmt = self._where(select(model), model, query)
        for s in query.sort:
            column = getattr(model, s.field)
            stmt = stmt.order_by(column.desc() if s.descending else column.asc())
        if query.limit:
            stmt = stmt.limit(query.limit)
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                return [to_record(obj) for obj in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Query on {collection} failed: {e}")
            raise StoreUnavailable() from e

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        model = self._model(collection)
        try:
            async with self._session_factory() as db:
                obj = await db.get(model, record_id)
                return to_record(obj) if obj else None
        except SQLAlchemyError as e:
            logger.error(f"Get {collection}/{record_id} failed: {e}")
            raise StoreUnavailable() from e

    async def insert(self, collection: str, record: Record) -> str:
        model = self._model(collection)
        try:
            async with self._session_factory() as db:
                obj = model(**record)
                db.add(obj)
                await db.commit()
                await db.refresh(obj)
                created = to_record(obj)
        except IntegrityError as e:
            logger.warning(f"Insert into {collection} rejected: {e.orig}")
            raise DuplicateRecord() from e
        except SQLAlchemyError as e:
            logger.error(f"Insert into {collection} failed: {e}")
            raise StoreUnavailable() from e

        self.broadcaster.publish(ChangeEvent(collection, "insert", record=created))
        return created["id"]

    async def update_fields(self, collection: str, record_id: str, fields: Record) -> None:
        model = self._model(collection)
        try:
            async with self._session_factory() as db:
                obj = await db.get(model, record_id)
                if obj is None:
                    raise RecordNotFound(f"{collection}/{record_id} not found")
                old = to_record(obj)
                for key, value in fields.items():
                    setattr(obj, key, value)
                await db.commit()
                await db.refresh(obj)
                new = to_record(obj)
        except SQLAlchemyError as e:
            logger.error(f"Update {collection}/{record_id} failed: {e}")
            raise StoreUnavailable() from e

        self.broadcaster.publish(ChangeEvent(collection, "update", record=new, old_record=old))

    async def delete(self, collection: str, query: RecordQuery) -> int:
        model = self._model(collection)
        try:
            async with self._session_factory() as db:
                result = await db.execute(self._where(select(model), model, query))
                doomed = list(result.scalars().all())
                removed = [to_record(obj) for obj in doomed]
                for obj in doomed:
                    await db.delete(obj)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Delete from {collection} failed: {e}")
            raise StoreUnavailable() from e

        for old in removed:
            self.broadcaster.publish(ChangeEvent(collection, "delete", old_record=old))
        return len(removed)

    async def count(self, collection: str, query: RecordQuery) -> int:
        model = self._model(collection)
        stmt = self._where(select(func.count()).select_from(model), model, query)
        try:
            async with self._session_factory() as db:
                return int((await db.execute(stmt)).scalar() or 0)
        except SQLAlchemyError as e:
            logger.error(f"Count on {collection} failed: {e}")
            raise StoreUnavailable() from e

    async def atomic_increment(self, collection: str, record_id: str, field: str, delta: int) -> None:
        model = self._model(collection)
        column = getattr(model, field)
        # Applied in one UPDATE statement, clamped at zero
        stmt = (
            update(model)
            .where(model.id == record_id)
            .values({field: func.greatest(column + delta, 0)})
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                if result.rowcount == 0:
                    raise RecordNotFound(f"{collection}/{record_id} not found")
                await db.commit()
                obj = await db.get(model, record_id, populate_existing=True)
                new = to_record(obj) if obj else None
        except SQLAlchemyError as e:
            logger.error(f"Increment {collection}/{record_id}.{field} failed: {e}")
            raise StoreUnavailable() from e

        if new is not None:
            self.broadcaster.publish(ChangeEvent(collection, "update", record=new))

    async def subscribe(self, collection: str, query: RecordQuery, on_change: ChangeCallback) -> ListenerHandle:
        self._model(collection)
        return self.broadcaster.subscribe(collection, query, on_change)
