"""Gamification API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query

from hakgyo.auth.dependencies import CurrentUser
from hakgyo.config import get_settings

from .dependencies import GamificationServiceDep, handle_gamification_error
from .schemas import (
    ActivityListResponse,
    ActivityResponse,
    GameStatsResponse,
    LeaderboardResponse,
    RewardResponse,
    TriggerEventRequest,
)
from .service import GamificationError


router = APIRouter(prefix="/v1/gamification", tags=["gamification"])


@router.get("/me", response_model=GameStatsResponse, summary="My XP and streak")
async def get_my_stats(
    gamification_service: GamificationServiceDep,
    user: CurrentUser,
) -> GameStatsResponse:
    """XP, level progress and streak of the current user."""
    stats = await gamification_service.get_stats(user.id)
    return GameStatsResponse.from_entity(
        stats, window_hours=gamification_service.window_hours
    )


@router.get("/activity", response_model=ActivityListResponse, summary="XP history")
async def get_my_activity(
    gamification_service: GamificationServiceDep,
    user: CurrentUser,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ActivityListResponse:
    """Recent XP awards of the current user, newest first."""
    entries = await gamification_service.get_activity(user.id, limit)
    return ActivityListResponse(
        items=[ActivityResponse.from_entity(e) for e in entries]
    )


@router.get("/leaderboard", response_model=LeaderboardResponse, summary="Leaderboard")
async def get_leaderboard(
    gamification_service: GamificationServiceDep,
    limit: Annotated[int | None, Query(ge=1)] = None,
) -> LeaderboardResponse:
    """Users ranked by XP."""
    settings = get_settings()
    limit = min(
        limit or settings.leaderboard_default_limit, settings.leaderboard_max_limit
    )
    entries = await gamification_service.get_leaderboard(limit)
    return LeaderboardResponse(items=entries)


@router.post("/events", response_model=RewardResponse, summary="Report event")
async def trigger_event(
    data: TriggerEventRequest,
    gamification_service: GamificationServiceDep,
    user: CurrentUser,
) -> RewardResponse:
    """Report a client-side event (daily login, vocabulary, soal) and earn XP."""
    try:
        result, stats = await gamification_service.trigger_event(
            user.id, data.event, data.metadata
        )
    except GamificationError as e:
        raise handle_gamification_error(e) from e
    return RewardResponse.from_result(result, stats)
