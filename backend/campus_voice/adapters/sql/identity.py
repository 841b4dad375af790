import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_voice.adapters.contracts import AuthResult, SessionCallback, SessionEvent
from campus_voice.adapters.listeners import ListenerHandle
from campus_voice.core.config import settings
from campus_voice.core.exceptions import DuplicateAccount, InvalidCredentials, StoreUnavailable, WeakCredential
from campus_voice.core.logging import get_logger
from campus_voice.core.security import create_access_token, decode_access_token, get_password_hash, verify_password
from campus_voice.models.profile import Account, AuthSession

logger = get_logger(__name__)


class SqlIdentityProvider:
    """Email/password identity backed by the accounts table and signed JWTs.

    Each instance is one client: session-change listeners only hear about
    sign-ins and sign-outs made through that instance.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._listeners: List[SessionCallback] = []
        self._current_token: Optional[str] = None

    async def authenticate(self, email: str, password: str) -> AuthResult:
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(Account).where(Account.email == email.strip().lower()))
                account = result.scalar_one_or_none()
                if account is None or not verify_password(password, account.hashed_password):
                    raise InvalidCredentials()

                token, jti = create_access_token(account.id)
                db.add(AuthSession(jti=jti, user_id=account.id))
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Authentication lookup failed: {e}")
            raise StoreUnavailable() from e

        self._current_token = token
        await self._emit(SessionEvent("SIGNED_IN", user_id=account.id, token=token))
        return AuthResult(user_id=account.id, token=token, email=account.email)

    async def register(self, email: str, password: str, attributes: Dict[str, Any]) -> str:
        if len(password or "") < settings.MIN_PASSWORD_LENGTH:
            raise WeakCredential(f"Password should be at least {settings.MIN_PASSWORD_LENGTH} characters")

        normalized = email.strip().lower()
        account = Account(
            id=str(uuid.uuid4()),
            email=normalized,
            hashed_password=get_password_hash(password),
        )
        try:
            async with self._session_factory() as db:
                existing = await db.execute(select(Account.id).where(Account.email == normalized))
                if existing.scalar_one_or_none() is not None:
                    raise DuplicateAccount()
                db.add(account)
                await db.commit()
        except IntegrityError as e:
            raise DuplicateAccount() from e
        except SQLAlchemyError as e:
            logger.error(f"Account registration failed: {e}")
            raise StoreUnavailable() from e

        logger.info(f"Registered account {account.id}")
        return account.id

    async def invalidate(self, token: str) -> None:
        payload = decode_access_token(token) or {}
        jti = payload.get("jti")
        if jti:
            try:
                async with self._session_factory() as db:
                    await db.execute(
                        update(AuthSession)
                        .where(AuthSession.jti == jti, AuthSession.revoked_at.is_(None))
                        .values(revoked_at=datetime.now(timezone.utc))
                    )
                    await db.commit()
            except SQLAlchemyError as e:
                logger.error(f"Token revocation failed: {e}")
                raise StoreUnavailable() from e

        if self._current_token == token:
            self._current_token = None
            await self._emit(SessionEvent("SIGNED_OUT"))

    async def get_user(self, token: str) -> Optional[str]:
        payload = decode_access_token(token)
        if not payload or not payload.get("jti"):
            return None
        try:
            async with self._session_factory() as db:
                session = await db.get(AuthSession, payload["jti"])
        except SQLAlchemyError as e:
            logger.error(f"Token lookup failed: {e}")
            raise StoreUnavailable() from e
        if session is None or session.revoked_at is not None:
            return None
        return payload.get("sub")

    def on_session_change(self, callback: SessionCallback) -> ListenerHandle:
        self._listeners.append(callback)
        return ListenerHandle(self._listeners, callback)

    async def _emit(self, event: SessionEvent) -> None:
        for callback in list(self._listeners):
            await callback(event)
