"""FastAPI dependencies for gamification.

Provides dependency injection for:
- Gamification service
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from hakgyo.gamification.service import GamificationError, GamificationService


async def get_gamification_service(request: Request) -> GamificationService:
    """Get gamification service from app state."""
    service = getattr(request.app.state, "gamification_service", None)
    if not service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gamification service not available",
        )
    return service


GamificationServiceDep = Annotated[
    GamificationService, Depends(get_gamification_service)
]


def handle_gamification_error(error: GamificationError) -> HTTPException:
    """Convert gamification errors to HTTP exceptions."""
    status_map = {
        "invalid_event": status.HTTP_400_BAD_REQUEST,
        "stats_busy": status.HTTP_409_CONFLICT,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(status_code=status_code, detail=error.message)
