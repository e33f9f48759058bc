"""Daily activity streaks.

A streak counts consecutive calendar days (UTC) with activity. It survives
only while the gap since the last activity stays under the streak window
(24 hours by default): being active on the next calendar day but more than a
window later still starts a new streak.
"""

import math
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta


DEFAULT_WINDOW_HOURS = 24

STREAK_MILESTONES = (3, 7, 14, 30, 60, 100)


@dataclass(frozen=True)
class StreakBonus:
    """XP multiplier unlocked from ``threshold`` consecutive days on."""

    multiplier: float
    threshold: int
    description: str


STREAK_BONUSES = (
    StreakBonus(1.0, 0, "No bonus"),
    StreakBonus(1.25, 3, "3+ days streak: +25% XP bonus"),
    StreakBonus(1.5, 7, "7+ days streak: +50% XP bonus"),
)


@dataclass(frozen=True)
class StreakData:
    """Streak state of one user.

    ``last_active_at`` is the time of the last activity, not the day.
    """

    current_streak: int = 0
    longest_streak: int = 0
    last_active_at: datetime | None = None


def _utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)


def hours_since(last_active_at: datetime | None, now: datetime) -> float | None:
    """Hours elapsed since the last activity, None if there was none."""
    if last_active_at is None:
        return None
    return (_utc(now) - _utc(last_active_at)).total_seconds() / 3600


def is_streak_active(
    last_active_at: datetime | None,
    now: datetime | None = None,
    window_hours: int = DEFAULT_WINDOW_HOURS,
) -> bool:
    """Last activity is within the streak window."""
    elapsed = hours_since(last_active_at, now or datetime.now(UTC))
    return elapsed is not None and elapsed < window_hours


def has_lost_streak(
    last_active_at: datetime | None,
    now: datetime | None = None,
    window_hours: int = DEFAULT_WINDOW_HOURS,
) -> bool:
    """Last activity is a full window or more ago."""
    elapsed = hours_since(last_active_at, now or datetime.now(UTC))
    return elapsed is not None and elapsed >= window_hours


def update_streak(
    data: StreakData,
    active_today: bool = True,
    now: datetime | None = None,
    window_hours: int = DEFAULT_WINDOW_HOURS,
) -> StreakData:
    """Streak state after an activity (or a check without one) at ``now``."""
    now = _utc(now or datetime.now(UTC))

    if not active_today:
        if has_lost_streak(data.last_active_at, now, window_hours):
            return StreakData(
                current_streak=0,
                longest_streak=data.longest_streak,
                last_active_at=None,
            )
        return data

    if data.last_active_at is None:
        return StreakData(
            current_streak=1,
            longest_streak=max(1, data.longest_streak),
            last_active_at=now,
        )

    if has_lost_streak(data.last_active_at, now, window_hours):
        return StreakData(
            current_streak=1,
            longest_streak=max(1, data.longest_streak),
            last_active_at=now,
        )

    days_apart = (now.date() - _utc(data.last_active_at).date()).days

    if days_apart <= 0:
        # Already counted today
        if data.current_streak == 0:
            return StreakData(
                current_streak=1,
                longest_streak=max(1, data.longest_streak),
                last_active_at=now,
            )
        return replace(data, last_active_at=now)

    streak = data.current_streak + 1 if days_apart == 1 else 1
    return StreakData(
        current_streak=streak,
        longest_streak=max(streak, data.longest_streak),
        last_active_at=now,
    )


def get_streak_bonus(current_streak: int) -> StreakBonus:
    """Highest bonus whose threshold the streak meets."""
    applicable = STREAK_BONUSES[0]
    for bonus in STREAK_BONUSES:
        if current_streak >= bonus.threshold:
            applicable = bonus
    return applicable


def apply_streak_bonus(base_xp: int, current_streak: int) -> int:
    """XP after the streak multiplier, rounded down."""
    return math.floor(base_xp * get_streak_bonus(current_streak).multiplier)


def has_reached_milestone(current_streak: int, previous_streak: int) -> bool:
    """The streak just crossed one of the milestone thresholds."""
    return any(
        current_streak >= milestone > previous_streak
        for milestone in STREAK_MILESTONES
    )


def hours_until_reset(
    last_active_at: datetime | None,
    now: datetime | None = None,
    window_hours: int = DEFAULT_WINDOW_HOURS,
) -> float:
    """Hours left before the streak is lost, 0 when there is none to lose."""
    elapsed = hours_since(last_active_at, now or datetime.now(UTC))
    if elapsed is None:
        return 0.0
    return max(0.0, window_hours - elapsed)


def hours_until_new_streak(
    last_active_at: datetime | None,
    now: datetime | None = None,
) -> float:
    """Hours until activity counts for a new day again.

    0 when the user has not been active today (the next activity counts
    right away), else the hours left until the next UTC midnight.
    """
    now = _utc(now or datetime.now(UTC))
    if last_active_at is None or _utc(last_active_at).date() != now.date():
        return 0.0
    midnight = datetime(now.year, now.month, now.day, tzinfo=UTC) + timedelta(days=1)
    return (midnight - now).total_seconds() / 3600
