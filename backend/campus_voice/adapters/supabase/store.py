"""RecordStore over Supabase (PostgREST for records, Realtime for changes)."""
import asyncio
import uuid
from typing import Any, Dict, List, Optional

import httpx
from supabase import AsyncClient, PostgrestAPIError

from campus_voice.adapters.contracts import ChangeCallback, ChangeEvent, Record, RecordQuery
from campus_voice.core.exceptions import DuplicateRecord, RecordNotFound, StoreUnavailable
from campus_voice.core.logging import get_logger

logger = get_logger(__name__)

UNIQUE_VIOLATION = "23505"


class RealtimeSubscription:
    def __init__(self, client: AsyncClient, channel) -> None:
        self._client = client
        self._channel = channel

    async def unsubscribe(self) -> None:
        if self._channel is None:
            return
        channel, self._channel = self._channel, None
        try:
            await self._client.remove_channel(channel)
        except Exception as e:
            logger.warning(f"Error removing realtime channel: {e}")


def _payload_to_event(collection: str, payload: Dict[str, Any]) -> ChangeEvent:
    # realtime payloads arrive either wrapped in "data" or flat, depending on client version
    data = payload.get("data", payload) if isinstance(payload, dict) else {}
    change_type = str(data.get("type") or data.get("eventType") or "update").lower()
    record = data.get("record") or data.get("new") or None
    old_record = data.get("old_record") or data.get("old") or None
    return ChangeEvent(collection, change_type, record=record, old_record=old_record)


class SupabaseRecordStore:
    def __init__(self, client: AsyncClient):
        self.client = client
        self._pending: set[asyncio.Task] = set()

    @staticmethod
    def _filtered(builder, query: RecordQuery):
        for f in query.filters:
            if f.op == "eq":
                builder = builder.eq(f.field, f.value)
            elif f.op == "neq":
                builder = builder.neq(f.field, f.value)
            elif f.op == "in":
                builder = builder.in_(f.field, list(f.value))
            else:
                raise ValueError(f"Unsupported filter op: {f.op}")
        return builder

    async def _execute(self, builder, action: str):
        try:
            return await builder.execute()
        except PostgrestAPIError as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                logger.warning(f"{action} rejected: {e.message}")
                raise DuplicateRecord() from e
            logger.error(f"{action} failed: {e.message}")
            raise StoreUnavailable() from e
        except httpx.HTTPError as e:
            logger.error(f"{action} failed: {e}")
            raise StoreUnavailable() from e

    async def query(self, collection: str, query: RecordQuery) -> List[Record]:
        builder = self._filtered(self.client.table(collection).select("*"), query)
        for s in query.sort:
            builder = builder.order(s.field, desc=s.descending)
        if query.limit:
            builder = builder.limit(query.limit)
        response = await self._execute(builder, f"Query on {collection}")
        return list(response.data or [])

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        builder = self.client.table(collection).select("*").eq("id", record_id).limit(1)
        response = await self._execute(builder, f"Get {collection}/{record_id}")
        return response.data[0] if response.data else None

    async def insert(self, collection: str, record: Record) -> str:
        if record.get("id") is None:
            record = {**record, "id": str(uuid.uuid4())}
        response = await self._execute(self.client.table(collection).insert(record), f"Insert into {collection}")
        if not response.data:
            raise StoreUnavailable(f"Insert into {collection} returned no row")
        return str(response.data[0]["id"])

    async def update_fields(self, collection: str, record_id: str, fields: Record) -> None:
        builder = self.client.table(collection).update(fields).eq("id", record_id)
        response = await self._execute(builder, f"Update {collection}/{record_id}")
        if not response.data:
            raise RecordNotFound(f"{collection}/{record_id} not found")

    async def delete(self, collection: str, query: RecordQuery) -> int:
        builder = self._filtered(self.client.table(collection).delete(), query)
        response = await self._execute(builder, f"Delete from {collection}")
        return len(response.data or [])

    async def count(self, collection: str, query: RecordQuery) -> int:
        builder = self._filtered(self.client.table(collection).select("id", count="exact"), query)
        response = await self._execute(builder, f"Count on {collection}")
        return int(response.count or 0)

    async def atomic_increment(self, collection: str, record_id: str, field: str, delta: int) -> None:
        # SQL function created by migration 0001_initial_schema
        builder = self.client.rpc(
            "atomic_increment",
            {"p_table": collection, "p_id": record_id, "p_field": field, "p_delta": delta},
        )
        await self._execute(builder, f"Increment {collection}/{record_id}.{field}")

    async def subscribe(self, collection: str, query: RecordQuery, on_change: ChangeCallback) -> RealtimeSubscription:
        def _on_payload(payload: Dict[str, Any]) -> None:
            event = _payload_to_event(collection, payload)
            if (event.record is None and event.old_record is None) or event.affects(query):
                task = asyncio.ensure_future(self._deliver(on_change, event))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

        channel = self.client.channel(f"{collection}-{uuid.uuid4().hex[:8]}")
        channel.on_postgres_changes(event="*", schema="public", table=collection, callback=_on_payload)
        try:
            await channel.subscribe()
        except Exception as e:
            logger.error(f"Realtime subscribe on {collection} failed: {e}")
            raise StoreUnavailable() from e
        logger.info(f"Realtime channel opened for {collection}")
        return RealtimeSubscription(self.client, channel)

    async def _deliver(self, callback: ChangeCallback, event: ChangeEvent) -> None:
        try:
            await callback(event)
        except Exception as e:
            logger.error(f"Change listener failed for {event.collection} {event.type}: {e}")
