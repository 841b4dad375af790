from campus_voice.adapters.contracts import PROFILES, TICKETS, RecordQuery, RecordStore
from campus_voice.core.exceptions import ProfileNotFound
from campus_voice.schemas.auth import ProfileSummary
from campus_voice.services.auth.session import Session


class ProfileService:
    def __init__(self, store: RecordStore):
        self._store = store

    async def summary(self, session: Session) -> ProfileSummary:
        profile = await self._store.get(PROFILES, session.user_id)
        if profile is None:
            raise ProfileNotFound()
        ticket_count = await self._store.count(TICKETS, RecordQuery().where("created_by", session.user_id))
        return ProfileSummary(
            display_name=profile.get("display_name"),
            email=profile.get("email") or session.email,
            role=profile["role"],
            ticket_count=ticket_count,
        )
