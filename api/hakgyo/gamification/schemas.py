"""Pydantic schemas for gamification."""

from dataclasses import asdict
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from hakgyo.gamification.events import CLIENT_REPORTABLE_EVENTS, GameEvent
from hakgyo.gamification.level import get_level_progress
from hakgyo.gamification.models import ActivityEntry, UserGameStats
from hakgyo.gamification.reward import RewardResult
from hakgyo.gamification.streak import hours_until_new_streak, hours_until_reset


class LevelProgressResponse(BaseModel):
    """Progress towards the next level."""

    current_level: int
    total_xp: int
    xp_for_current_level: int
    xp_for_next_level: int
    xp_progress: float
    xp_remaining: int


class StreakInfoResponse(BaseModel):
    """Streak state with its deadlines."""

    current_streak: int
    longest_streak: int
    last_active_at: datetime | None = None
    hours_until_reset: float
    hours_until_new_streak: float


class GameStatsResponse(BaseModel):
    """A user's XP, level and streak."""

    user_id: UUID
    total_xp: int
    level: int
    level_progress: LevelProgressResponse
    streak: StreakInfoResponse

    @classmethod
    def from_entity(
        cls,
        stats: UserGameStats,
        now: datetime | None = None,
        window_hours: int = 24,
    ) -> "GameStatsResponse":
        """Create from UserGameStats entity."""
        progress = get_level_progress(stats.total_xp)
        return cls(
            user_id=stats.user_id,
            total_xp=stats.total_xp,
            level=stats.level,
            level_progress=LevelProgressResponse(**asdict(progress)),
            streak=StreakInfoResponse(
                current_streak=stats.current_streak,
                longest_streak=stats.longest_streak,
                last_active_at=stats.last_active_at,
                hours_until_reset=round(
                    hours_until_reset(stats.last_active_at, now, window_hours), 2
                ),
                hours_until_new_streak=round(
                    hours_until_new_streak(stats.last_active_at, now), 2
                ),
            ),
        )


class TriggerEventRequest(BaseModel):
    """An event reported by the client."""

    event: GameEvent
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("event")
    @classmethod
    def validate_reportable(cls, value: GameEvent) -> GameEvent:
        """Only some events may be reported by clients."""
        if value not in CLIENT_REPORTABLE_EVENTS:
            msg = f"event {value.value} cannot be reported by clients"
            raise ValueError(msg)
        return value


class RewardResponse(BaseModel):
    """XP awarded for an event and the user's new totals."""

    event: GameEvent
    base_xp: int
    streak_bonus: int
    milestone_bonus: int
    awarded_xp: int
    total_xp: int
    previous_level: int
    new_level: int
    levels_gained: int
    current_streak: int
    streak_milestone_reached: bool

    @classmethod
    def from_result(cls, result: RewardResult, stats: UserGameStats) -> "RewardResponse":
        """Create from the reward result and the stats written after it."""
        milestone_bonus = result.milestone_bonus_xp
        return cls(
            event=result.event,
            base_xp=result.base_xp,
            streak_bonus=result.streak_bonus,
            milestone_bonus=milestone_bonus,
            awarded_xp=result.awarded_xp + milestone_bonus,
            total_xp=stats.total_xp,
            previous_level=result.previous_level,
            new_level=stats.level,
            levels_gained=stats.level - result.previous_level,
            current_streak=stats.current_streak,
            streak_milestone_reached=result.streak_milestone_reached,
        )


class ActivityResponse(BaseModel):
    """One entry of the XP history."""

    activity_id: UUID
    event: str
    base_xp: int
    streak_bonus: int
    milestone_bonus: int
    awarded_xp: int
    streak: int
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_entity(cls, entry: ActivityEntry) -> "ActivityResponse":
        """Create from ActivityEntry entity."""
        return cls(**entry.to_dict())


class ActivityListResponse(BaseModel):
    """XP history, newest first."""

    items: list[ActivityResponse]


class LeaderboardEntry(BaseModel):
    """One ranked user."""

    rank: int
    user_id: UUID
    total_xp: int
    level: int
    current_streak: int


class LeaderboardResponse(BaseModel):
    """Users ranked by XP."""

    items: list[LeaderboardEntry]
