"""Database models for gamification.

Cassandra table definitions for:
- User game stats: XP, level and streak per user
- Activity log: XP history per user, newest first
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

import orjson

from hakgyo.gamification.level import calculate_level
from hakgyo.gamification.streak import StreakData


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

USER_GAME_STATS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.user_game_stats (
    user_id UUID PRIMARY KEY,
    total_xp INT,
    level INT,
    current_streak INT,
    longest_streak INT,
    last_active_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

ACTIVITY_LOG_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.activity_log_by_user (
    user_id UUID,
    created_at TIMESTAMP,
    activity_id UUID,
    event TEXT,
    base_xp INT,
    streak_bonus INT,
    milestone_bonus INT,
    awarded_xp INT,
    streak INT,
    metadata TEXT,
    PRIMARY KEY (user_id, created_at, activity_id)
) WITH CLUSTERING ORDER BY (created_at DESC, activity_id ASC)
"""

GAMIFICATION_TABLES_CQL = [
    USER_GAME_STATS_TABLE_CQL,
    ACTIVITY_LOG_BY_USER_TABLE_CQL,
]


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# Entity Classes
# ==============================================================================


class UserGameStats:
    """XP, level and streak of one user. Users without a row start at zero."""

    def __init__(
        self,
        user_id: UUID,
        total_xp: int = 0,
        level: int | None = None,
        current_streak: int = 0,
        longest_streak: int = 0,
        last_active_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.total_xp = total_xp
        self.level = level if level is not None else calculate_level(total_xp)
        self.current_streak = current_streak
        self.longest_streak = longest_streak
        self.last_active_at = ensure_utc_aware(last_active_at)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "UserGameStats":
        """Create UserGameStats instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            total_xp=row.total_xp or 0,
            level=row.level,
            current_streak=row.current_streak or 0,
            longest_streak=row.longest_streak or 0,
            last_active_at=row.last_active_at,
            updated_at=row.updated_at,
        )

    @property
    def streak(self) -> StreakData:
        """Streak state as the reward rules see it."""
        return StreakData(
            current_streak=self.current_streak,
            longest_streak=self.longest_streak,
            last_active_at=self.last_active_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "total_xp": self.total_xp,
            "level": self.level,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_active_at": self.last_active_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<UserGameStats {self.user_id} xp={self.total_xp} lvl={self.level}>"


class ActivityEntry:
    """One XP award in a user's history."""

    def __init__(
        self,
        user_id: UUID,
        event: str,
        base_xp: int = 0,
        streak_bonus: int = 0,
        milestone_bonus: int = 0,
        awarded_xp: int = 0,
        streak: int = 0,
        metadata: dict[str, Any] | None = None,
        activity_id: UUID | None = None,
        created_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.activity_id = activity_id or uuid4()
        self.event = event
        self.base_xp = base_xp
        self.streak_bonus = streak_bonus
        self.milestone_bonus = milestone_bonus
        self.awarded_xp = awarded_xp
        self.streak = streak
        self.metadata = metadata or {}
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "ActivityEntry":
        """Create ActivityEntry instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            activity_id=row.activity_id,
            event=row.event,
            base_xp=row.base_xp or 0,
            streak_bonus=row.streak_bonus or 0,
            milestone_bonus=row.milestone_bonus or 0,
            awarded_xp=row.awarded_xp or 0,
            streak=row.streak or 0,
            metadata=orjson.loads(row.metadata) if row.metadata else {},
            created_at=row.created_at,
        )

    def metadata_json(self) -> str | None:
        """Metadata serialized for the ``metadata`` column."""
        return orjson.dumps(self.metadata).decode() if self.metadata else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "activity_id": self.activity_id,
            "event": self.event,
            "base_xp": self.base_xp,
            "streak_bonus": self.streak_bonus,
            "milestone_bonus": self.milestone_bonus,
            "awarded_xp": self.awarded_xp,
            "streak": self.streak,
            "metadata": self.metadata,
            "created_at": self.created_at,
        }
