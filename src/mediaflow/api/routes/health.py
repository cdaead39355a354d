"""Health check routes."""
from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health_check(request: Request) -> dict:
    """
    Health check endpoint.

    Returns:
        Status dict
    """
    return {
        "status": "healthy",
        "service": "mediaflow",
        "database": "open" if request.app.state.repository.is_open else "closed",
    }
