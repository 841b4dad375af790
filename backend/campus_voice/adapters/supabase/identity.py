import asyncio
from typing import Any, Dict, List, Optional

import httpx
from supabase import AsyncClient, AuthApiError, AuthError, acreate_client

from campus_voice.adapters.contracts import AuthResult, SessionCallback, SessionEvent
from campus_voice.adapters.listeners import ListenerHandle
from campus_voice.core.exceptions import DuplicateAccount, InvalidCredentials, StoreUnavailable, WeakCredential
from campus_voice.core.logging import get_logger

logger = get_logger(__name__)

DUPLICATE_CODES = {"email_exists", "user_already_exists"}


class SupabaseIdentityProvider:
    """Supabase Auth identity.

    Each instance owns its own anon-key client (created lazily) so that auth
    state change notifications stay scoped to one session manager. Account
    creation and token resolution go through the shared service-role client.
    """

    def __init__(self, url: str, anon_key: str, admin_client: AsyncClient):
        self._url = url
        self._anon_key = anon_key
        self._admin = admin_client
        self._client: Optional[AsyncClient] = None
        self._auth_subscription = None
        self._listeners: List[SessionCallback] = []
        self._pending: set[asyncio.Task] = set()

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = await acreate_client(self._url, self._anon_key)
            self._auth_subscription = self._client.auth.on_auth_state_change(self._bridge)
        return self._client

    def _bridge(self, event, session) -> None:
        change = SessionEvent(
            event=str(event),
            user_id=session.user.id if session and session.user else None,
            token=session.access_token if session else None,
        )
        for callback in list(self._listeners):
            task = asyncio.ensure_future(callback(change))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def authenticate(self, email: str, password: str) -> AuthResult:
        client = await self._get_client()
        try:
            response = await client.auth.sign_in_with_password({"email": email, "password": password})
        except AuthApiError as e:
            logger.info(f"Sign in rejected ({e.code}): {e.message}")
            raise InvalidCredentials() from e
        except (AuthError, httpx.HTTPError) as e:
            logger.error(f"Sign in failed: {e}")
            raise StoreUnavailable() from e

        if response.user is None or response.session is None:
            raise InvalidCredentials()
        return AuthResult(user_id=response.user.id, token=response.session.access_token, email=response.user.email)

    async def register(self, email: str, password: str, attributes: Dict[str, Any]) -> str:
        try:
            # Admin API: creates a confirmed user without opening a session
            response = await self._admin.auth.admin.create_user({
                "email": email,
                "password": password,
                "email_confirm": True,
                "user_metadata": attributes,
            })
        except AuthApiError as e:
            if e.code == "weak_password":
                raise WeakCredential(e.message) from e
            if e.code in DUPLICATE_CODES or "already" in (e.message or "").lower():
                raise DuplicateAccount() from e
            logger.error(f"Sign up failed ({e.code}): {e.message}")
            raise StoreUnavailable() from e
        except (AuthError, httpx.HTTPError) as e:
            logger.error(f"Sign up failed: {e}")
            raise StoreUnavailable() from e

        return response.user.id

    async def invalidate(self, token: str) -> None:
        try:
            if self._client is not None:
                session = await self._client.auth.get_session()
                if session and session.access_token == token:
                    await self._client.auth.sign_out()
                    return
            await self._admin.auth.admin.sign_out(token)
        except (AuthError, httpx.HTTPError) as e:
            logger.error(f"Sign out failed: {e}")
            raise StoreUnavailable() from e

    async def get_user(self, token: str) -> Optional[str]:
        try:
            response = await self._admin.auth.get_user(token)
        except AuthApiError:
            return None
        except (AuthError, httpx.HTTPError) as e:
            logger.error(f"Token lookup failed: {e}")
            raise StoreUnavailable() from e
        if response is None or response.user is None:
            return None
        return response.user.id

    def on_session_change(self, callback: SessionCallback) -> ListenerHandle:
        self._listeners.append(callback)
        return ListenerHandle(self._listeners, callback)

    async def aclose(self) -> None:
        if self._auth_subscription is not None:
            self._auth_subscription.unsubscribe()
            self._auth_subscription = None
