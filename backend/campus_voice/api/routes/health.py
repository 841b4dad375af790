from fastapi import APIRouter, Depends

from campus_voice.adapters.contracts import PortalBackend
from campus_voice.api.deps import get_backend
from campus_voice.core.config import settings

router = APIRouter()

@router.get("/health")
async def health_check(backend: PortalBackend = Depends(get_backend)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "backend": backend.name,
        "environment": settings.ENVIRONMENT,
    }

@router.get("/")
async def root():
    """Root endpoint."""
    return {"message": f"Welcome to {settings.PROJECT_NAME} API"}
