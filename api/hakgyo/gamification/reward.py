"""XP rewards: base XP, streak bonus and the resulting level."""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from hakgyo.gamification.events import GameEvent, get_event_xp
from hakgyo.gamification.level import (
    LevelProgress,
    calculate_level,
    get_level_progress,
    levels_gained,
)
from hakgyo.gamification.streak import (
    DEFAULT_WINDOW_HOURS,
    StreakData,
    apply_streak_bonus,
    has_reached_milestone,
    update_streak,
)


# Extra XP per streak day when a streak milestone is reached
MILESTONE_XP_PER_DAY = 10


@dataclass(frozen=True)
class UserGameData:
    """What the reward rules need to know about a user."""

    total_xp: int = 0
    streak: StreakData = StreakData()


@dataclass(frozen=True)
class RewardResult:
    """Outcome of one event.

    ``awarded_xp`` is the XP earned by the event itself, bonus included;
    ``streak_bonus`` is the part of it that comes from the streak.
    """

    event: GameEvent
    base_xp: int
    streak_bonus: int
    awarded_xp: int
    previous_level: int
    new_level: int
    levels_gained: int
    level_progress: LevelProgress
    streak: StreakData
    streak_milestone_reached: bool

    @property
    def milestone_bonus_xp(self) -> int:
        """Extra XP owed for the streak milestone, 0 if none was reached."""
        if not self.streak_milestone_reached:
            return 0
        return self.streak.current_streak * MILESTONE_XP_PER_DAY


def process_reward(
    event: GameEvent,
    user: UserGameData,
    active_today: bool = True,
    now: datetime | None = None,
    window_hours: int = DEFAULT_WINDOW_HOURS,
) -> RewardResult:
    """Apply one event to the user's XP and streak."""
    base_xp = get_event_xp(event)
    previous_streak = user.streak.current_streak
    streak = update_streak(user.streak, active_today, now, window_hours)

    awarded = apply_streak_bonus(base_xp, streak.current_streak)
    new_total = user.total_xp + awarded

    return RewardResult(
        event=GameEvent(event),
        base_xp=base_xp,
        streak_bonus=awarded - base_xp,
        awarded_xp=awarded,
        previous_level=calculate_level(user.total_xp),
        new_level=calculate_level(new_total),
        levels_gained=levels_gained(user.total_xp, new_total),
        level_progress=get_level_progress(new_total),
        streak=streak,
        streak_milestone_reached=has_reached_milestone(
            streak.current_streak, previous_streak
        ),
    )


def process_multiple_rewards(
    events: Iterable[GameEvent],
    user: UserGameData,
    active_today: bool = True,
    now: datetime | None = None,
    window_hours: int = DEFAULT_WINDOW_HOURS,
) -> list[RewardResult]:
    """Apply events in order, each one seeing the state left by the previous."""
    results = []
    for event in events:
        result = process_reward(event, user, active_today, now, window_hours)
        results.append(result)
        user = replace(
            user,
            total_xp=user.total_xp + result.awarded_xp,
            streak=result.streak,
        )
    return results
