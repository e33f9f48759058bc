"""Gamification events and the XP each one is worth."""

from enum import Enum


class GameEvent(str, Enum):
    """User actions that earn XP."""

    # Learning
    COMPLETE_MATERI = "COMPLETE_MATERI"
    COMPLETE_SOAL = "COMPLETE_SOAL"
    COMPLETE_VOCABULARY = "COMPLETE_VOCABULARY"
    COMPLETE_ASSESSMENT = "COMPLETE_ASSESSMENT"

    # Daily engagement
    DAILY_LOGIN = "DAILY_LOGIN"

    # Social
    CREATE_POST = "CREATE_POST"
    LIKE_POST = "LIKE_POST"
    COMMENT_POST = "COMMENT_POST"

    # Kelas
    JOIN_KELAS = "JOIN_KELAS"

    # Achievement bonuses
    PERFECT_SCORE = "PERFECT_SCORE"
    STREAK_MILESTONE = "STREAK_MILESTONE"


EVENT_XP: dict[GameEvent, int] = {
    GameEvent.COMPLETE_MATERI: 10,
    GameEvent.COMPLETE_SOAL: 15,
    GameEvent.COMPLETE_VOCABULARY: 5,
    GameEvent.COMPLETE_ASSESSMENT: 25,
    GameEvent.DAILY_LOGIN: 5,
    GameEvent.CREATE_POST: 10,
    GameEvent.LIKE_POST: 2,
    GameEvent.COMMENT_POST: 5,
    GameEvent.JOIN_KELAS: 20,
    GameEvent.PERFECT_SCORE: 30,
    GameEvent.STREAK_MILESTONE: 50,
}

# Events a client may report itself; the rest are raised server-side
CLIENT_REPORTABLE_EVENTS = frozenset(
    {
        GameEvent.DAILY_LOGIN,
        GameEvent.COMPLETE_VOCABULARY,
        GameEvent.COMPLETE_SOAL,
    }
)


def get_event_xp(event: GameEvent | str, mapping: dict[GameEvent, int] | None = None) -> int:
    """Base XP for an event, 0 for unknown events."""
    try:
        event = GameEvent(event)
    except ValueError:
        return 0
    return (mapping or EVENT_XP).get(event, 0)


def is_valid_event(event: str) -> bool:
    """Check if ``event`` names a known event."""
    return event in GameEvent._value2member_map_
