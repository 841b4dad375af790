from fastapi import APIRouter, Depends, status

from campus_voice.adapters.contracts import PortalBackend
from campus_voice.api.deps import get_backend, get_current_session
from campus_voice.core.exceptions import PortalError, SignOutFailed
from campus_voice.core.logging import get_logger
from campus_voice.schemas.auth import LoginRequest, LoginResponse, ProfileRead, ProfileSummary, SignUpRequest
from campus_voice.services.auth.session import Session
from campus_voice.services.auth.session_manager import AuthSessionManager
from campus_voice.services.profile import ProfileService

logger = get_logger(__name__)

router = APIRouter()

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    request: SignUpRequest,
    backend: PortalBackend = Depends(get_backend),
) -> dict:
    """
    Create an account and its profile. Does not sign the user in.
    """
    async with AuthSessionManager(backend.identity_factory(), backend.store) as manager:
        await manager.sign_up(request.email, request.password, request.display_name, request.role)
    return {"message": "Account created. Please sign in."}

@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    backend: PortalBackend = Depends(get_backend),
) -> LoginResponse:
    """
    Login for the requested role - returns a bearer token and the profile.
    """
    async with AuthSessionManager(backend.identity_factory(), backend.store) as manager:
        session = await manager.sign_in(request.email, request.password, request.role)

    return LoginResponse(
        access_token=session.token,
        profile=ProfileRead(
            id=session.user_id,
            role=session.role,
            display_name=session.display_name,
            email=session.email,
        ),
    )

@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    session: Session = Depends(get_current_session),
    backend: PortalBackend = Depends(get_backend),
) -> None:
    try:
        await backend.identity.invalidate(session.token)
    except PortalError as e:
        logger.error(f"Sign out error for {session.user_id}: {e}")
        raise SignOutFailed() from e
    logger.info(f"User {session.user_id} signed out")

@router.get("/me", response_model=ProfileSummary)
async def me(
    session: Session = Depends(get_current_session),
    backend: PortalBackend = Depends(get_backend),
) -> ProfileSummary:
    return await ProfileService(backend.store).summary(session)
