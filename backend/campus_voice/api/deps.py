from typing import Optional

from fastapi import Depends, Request, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from campus_voice.adapters.contracts import PortalBackend
from campus_voice.core.exceptions import AuthenticationException, RoleRequired
from campus_voice.services.auth.session import Session
from campus_voice.services.auth.session_manager import resolve_session
from campus_voice.services.tickets.upvotes import InFlightGuard

security = HTTPBearer()


def get_backend(request: Request) -> PortalBackend:
    return request.app.state.backend


def get_upvote_guard(request: Request) -> InFlightGuard:
    return request.app.state.upvote_guard


async def get_current_session(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    backend: PortalBackend = Depends(get_backend),
) -> Session:
    """
    Dependency to resolve the bearer token into the caller's Session.
    """
    session = await resolve_session(backend.identity, backend.store, credentials.credentials)
    if session is None:
        raise AuthenticationException("Invalid authentication credentials")
    return session


async def require_admin(session: Session = Depends(get_current_session)) -> Session:
    if not session.is_admin:
        raise RoleRequired("Admin role required")
    return session


async def websocket_session(websocket: WebSocket, token: Optional[str]) -> Optional[Session]:
    """Resolve the `token` query parameter of a WebSocket connection."""
    if not token:
        return None
    backend: PortalBackend = websocket.app.state.backend
    return await resolve_session(backend.identity, backend.store, token)
