"""Gamification service layer.

Business logic for:
- Awarding XP for events (streak bonus, milestone bonus, levels)
- Activity history
- Leaderboard (Redis sorted set, Cassandra scan without Redis)

Updates of one user's stats are read-modify-write cycles, serialized per
user with a KeyedLock.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from hakgyo.core.locks import KeyedLock, LockTimeoutError
from hakgyo.core.redis import leaderboard_key, user_lock_key
from hakgyo.gamification.events import GameEvent
from hakgyo.gamification.level import calculate_level
from hakgyo.gamification.models import ActivityEntry, UserGameStats
from hakgyo.gamification.reward import RewardResult, UserGameData, process_reward
from hakgyo.gamification.schemas import LeaderboardEntry
from hakgyo.gamification.streak import DEFAULT_WINDOW_HOURS


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class GamificationError(Exception):
    """Base gamification error."""

    def __init__(self, message: str, code: str = "gamification_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidEventError(GamificationError):
    """Unknown event."""

    def __init__(self, message: str = "Unknown gamification event"):
        super().__init__(message, "invalid_event")


class StatsBusyError(GamificationError):
    """The user's stats are locked by another update."""

    def __init__(self, message: str = "Another update is in progress, try again"):
        super().__init__(message, "stats_busy")


def _ranking_key(stats: UserGameStats) -> tuple[int, int, int]:
    return (stats.total_xp, stats.level, stats.current_streak)


# ==============================================================================
# Gamification Service
# ==============================================================================


class GamificationService:
    """Service for XP, streaks, levels and the leaderboard."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        redis: "Redis | None" = None,
        locks: KeyedLock | None = None,
        window_hours: int = DEFAULT_WINDOW_HOURS,
    ):
        """Initialize with Cassandra session and optional Redis."""
        self.session = session
        self.keyspace = keyspace
        self.redis = redis
        self.locks = locks or KeyedLock(redis)
        self.window_hours = window_hours
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements."""
        self._get_stats = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.user_game_stats WHERE user_id = ?"
        )
        self._get_all_stats = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.user_game_stats"
        )
        self._upsert_stats = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.user_game_stats
            (user_id, total_xp, level, current_streak, longest_streak,
             last_active_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_activity = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.activity_log_by_user
            (user_id, created_at, activity_id, event, base_xp, streak_bonus,
             milestone_bonus, awarded_xp, streak, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._get_activity = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.activity_log_by_user
            WHERE user_id = ? LIMIT ?
        """)

    # ==========================================================================
    # Stats
    # ==========================================================================

    async def get_stats(self, user_id: UUID) -> UserGameStats:
        """Stats of a user; users who never earned XP start at zero."""
        result = await self.session.aexecute(self._get_stats, [user_id])
        row = result.one()
        return UserGameStats.from_row(row) if row else UserGameStats(user_id=user_id)

    async def _save_stats(self, stats: UserGameStats) -> None:
        await self.session.aexecute(
            self._upsert_stats,
            [
                stats.user_id,
                stats.total_xp,
                stats.level,
                stats.current_streak,
                stats.longest_streak,
                stats.last_active_at,
                stats.updated_at,
            ],
        )

    # ==========================================================================
    # Events
    # ==========================================================================

    async def trigger_event(
        self,
        user_id: UUID,
        event: GameEvent | str,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> tuple[RewardResult, UserGameStats]:
        """Award the XP of ``event`` to the user.

        Returns:
            The reward result and the stats as written

        Raises:
            InvalidEventError: If the event is unknown
            StatsBusyError: If the user's lock could not be acquired in time
        """
        try:
            event = GameEvent(event)
        except ValueError as e:
            raise InvalidEventError from e

        try:
            async with self.locks.hold(user_lock_key(user_id)):
                return await self._apply_event(user_id, event, metadata or {}, now)
        except LockTimeoutError as e:
            logger.warning("gamification_lock_timeout", user_id=str(user_id))
            raise StatsBusyError from e

    async def _apply_event(
        self,
        user_id: UUID,
        event: GameEvent,
        metadata: dict[str, Any],
        now: datetime | None,
    ) -> tuple[RewardResult, UserGameStats]:
        now = now or datetime.now(UTC)
        stats = await self.get_stats(user_id)

        result = process_reward(
            event,
            UserGameData(total_xp=stats.total_xp, streak=stats.streak),
            active_today=True,
            now=now,
            window_hours=self.window_hours,
        )
        milestone_bonus = result.milestone_bonus_xp
        total_xp = stats.total_xp + result.awarded_xp + milestone_bonus

        updated = UserGameStats(
            user_id=user_id,
            total_xp=total_xp,
            level=calculate_level(total_xp),
            current_streak=result.streak.current_streak,
            longest_streak=max(stats.longest_streak, result.streak.longest_streak),
            last_active_at=result.streak.last_active_at,
            updated_at=now,
        )
        await self._save_stats(updated)

        entry = ActivityEntry(
            user_id=user_id,
            event=event.value,
            base_xp=result.base_xp,
            streak_bonus=result.streak_bonus,
            milestone_bonus=milestone_bonus,
            awarded_xp=result.awarded_xp + milestone_bonus,
            streak=updated.current_streak,
            metadata=metadata,
            created_at=now,
        )
        await self.session.aexecute(
            self._insert_activity,
            [
                entry.user_id,
                entry.created_at,
                entry.activity_id,
                entry.event,
                entry.base_xp,
                entry.streak_bonus,
                entry.milestone_bonus,
                entry.awarded_xp,
                entry.streak,
                entry.metadata_json(),
            ],
        )

        if self.redis:
            await self.redis.zadd(leaderboard_key(), {str(user_id): total_xp})

        logger.info(
            "xp_awarded",
            user_id=str(user_id),
            game_event=event.value,
            awarded_xp=entry.awarded_xp,
            total_xp=total_xp,
            level=updated.level,
            streak=updated.current_streak,
            milestone=result.streak_milestone_reached,
        )
        if updated.level > stats.level:
            logger.info(
                "level_up",
                user_id=str(user_id),
                previous_level=stats.level,
                new_level=updated.level,
            )

        return result, updated

    # ==========================================================================
    # History and Leaderboard
    # ==========================================================================

    async def get_activity(self, user_id: UUID, limit: int = 20) -> list[ActivityEntry]:
        """XP history of a user, newest first."""
        rows = await self.session.aexecute(self._get_activity, [user_id, limit])
        return [ActivityEntry.from_row(row) for row in rows]

    async def get_leaderboard(self, limit: int = 50) -> list[LeaderboardEntry]:
        """Top users by XP; ties are broken by level, then by streak."""
        if self.redis:
            ranked = await self.redis.zrevrange(
                leaderboard_key(), 0, limit - 1, withscores=True
            )
            if ranked:
                stats = [await self.get_stats(UUID(member)) for member, _ in ranked]
                return self._rank(sorted(stats, key=_ranking_key, reverse=True))

        rows = await self.session.aexecute(self._get_all_stats)
        stats = sorted(
            (UserGameStats.from_row(row) for row in rows),
            key=_ranking_key,
            reverse=True,
        )
        return self._rank(stats[:limit])

    @staticmethod
    def _rank(stats: list[UserGameStats]) -> list[LeaderboardEntry]:
        return [
            LeaderboardEntry(
                rank=position,
                user_id=s.user_id,
                total_xp=s.total_xp,
                level=s.level,
                current_streak=s.current_streak,
            )
            for position, s in enumerate(stats, start=1)
        ]
