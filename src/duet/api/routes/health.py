"""Health check endpoint."""

from fastapi import APIRouter

from duet import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Return service health status."""
    return {"status": "healthy", "service": "duet-dev-server", "version": __version__}
