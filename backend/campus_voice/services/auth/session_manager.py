import asyncio
from typing import Optional

from campus_voice.adapters.contracts import PROFILES, IdentityProvider, Record, RecordStore, SessionEvent, Subscription
from campus_voice.core.exceptions import (
    DuplicateRecord,
    PortalError,
    ProfileNotFound,
    RoleMismatch,
    SignOutFailed,
    StoreUnavailable,
)
from campus_voice.core.logging import get_logger
from campus_voice.models.enums import Role
from campus_voice.services.auth.session import Session

logger = get_logger(__name__)


def session_from_profile(profile: Record, token: str) -> Session:
    return Session(
        user_id=str(profile["id"]),
        role=Role(profile["role"]),
        email=profile.get("email") or "",
        token=token,
        display_name=profile.get("display_name"),
    )


async def resolve_session(identity: IdentityProvider, store: RecordStore, token: str) -> Optional[Session]:
    """Resolve a bearer token to a Session, or None if it is unknown or revoked."""
    user_id = await identity.get_user(token)
    if not user_id:
        return None
    profile = await store.get(PROFILES, user_id)
    if profile is None:
        return None
    return session_from_profile(profile, token)


class AuthSessionManager:
    """Owns one identity client and the session state resolved from it.

    The session-change listener registered in start() is the only writer of
    the current session. sign_in() never lets a session whose role differs
    from the requested one become visible.
    """

    def __init__(self, identity: IdentityProvider, store: RecordStore):
        self._identity = identity
        self._store = store
        self._session: Optional[Session] = None
        self._subscription: Optional[Subscription] = None
        self._expected_role: Optional[Role] = None
        self._resolved_for: Optional[str] = None
        self._rejected_tokens: set[str] = set()
        self._settled = asyncio.Event()

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self._identity.on_session_change(self._on_session_change)

    async def close(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None
        aclose = getattr(self._identity, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> "AuthSessionManager":
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def current_session(self) -> Optional[Session]:
        return self._session

    def current_user(self) -> Optional[str]:
        return self._session.user_id if self._session else None

    def current_role(self) -> Optional[Role]:
        return self._session.role if self._session else None

    async def _on_session_change(self, event: SessionEvent) -> None:
        try:
            if not event.user_id or not event.token:
                self._session = None
                return
            profile = await self._store.get(PROFILES, event.user_id)
            if profile is None:
                self._session = None
                return
            session = session_from_profile(profile, event.token)
            rejected = event.token in self._rejected_tokens
            if rejected or (self._expected_role is not None and session.role != self._expected_role):
                # sign_in() tears this session down
                self._session = None
                return
            self._session = session
        except PortalError as e:
            logger.error(f"Failed to resolve profile after {event.event}: {e}")
            self._session = None
        finally:
            self._resolved_for = event.user_id
            self._settled.set()

    async def _wait_resolved(self, user_id: str) -> None:
        while self._resolved_for != user_id:
            self._settled.clear()
            await self._settled.wait()

    async def _teardown(self, token: str) -> None:
        self._rejected_tokens.add(token)
        try:
            await self._identity.invalidate(token)
        except PortalError as e:
            logger.error(f"Failed to tear down rejected session: {e}")
        finally:
            self._session = None

    async def sign_in(self, email: str, password: str, expected_role: Role) -> Session:
        self.start()
        expected_role = Role(expected_role)
        self._expected_role = expected_role
        self._resolved_for = None
        try:
            result = await self._identity.authenticate(email, password)
            profile = await self._store.get(PROFILES, result.user_id)
            if profile is None:
                await self._teardown(result.token)
                raise ProfileNotFound()
            if profile["role"] != expected_role.value:
                logger.warning(f"Role mismatch for {result.user_id}: requested {expected_role.value}")
                await self._teardown(result.token)
                raise RoleMismatch(expected_role.value)
            await self._wait_resolved(result.user_id)
        finally:
            self._expected_role = None

        session = self._session
        if session is None or session.user_id != result.user_id:
            raise StoreUnavailable("Failed to resolve session")
        logger.info(f"User {session.user_id} signed in as {session.role.value}")
        return session

    async def sign_up(self, email: str, password: str, display_name: str, role: Role) -> None:
        role = Role(role)
        user_id = await self._identity.register(email, password, {"display_name": display_name, "role": role.value})
        try:
            await self._store.insert(PROFILES, {
                "id": user_id,
                "role": role.value,
                "display_name": display_name,
                "email": email,
            })
        except DuplicateRecord:
            logger.info(f"Profile for {user_id} already exists")
        logger.info(f"Account created for {user_id} ({role.value})")

    async def sign_out(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            await self._identity.invalidate(session.token)
        except PortalError as e:
            logger.error(f"Sign out error: {e}")
            raise SignOutFailed() from e
        logger.info(f"User {session.user_id} signed out")
