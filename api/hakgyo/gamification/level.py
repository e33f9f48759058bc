"""Level curve.

level = floor(sqrt(xp / 100)) + 1, so reaching level ``l`` takes
``(l - 1) ** 2 * 100`` XP in total.
"""

import math
from dataclasses import dataclass


MILESTONE_LEVEL_STEP = 5


@dataclass(frozen=True)
class LevelProgress:
    """Where a user stands between two levels."""

    current_level: int
    total_xp: int
    xp_for_current_level: int
    xp_for_next_level: int
    xp_progress: float  # percent towards the next level, 0-100
    xp_remaining: int


def calculate_level(total_xp: int) -> int:
    """Level reached with ``total_xp``."""
    if total_xp < 0:
        return 1
    # isqrt keeps exact thresholds exact (e.g. 400 XP -> level 3)
    return math.isqrt(total_xp // 100) + 1


def xp_for_level(level: int) -> int:
    """Total XP needed to reach ``level``."""
    if level <= 1:
        return 0
    return (level - 1) ** 2 * 100


def xp_to_next_level(level: int) -> int:
    """XP between ``level`` and the one after it."""
    return xp_for_level(level + 1) - xp_for_level(level)


def xp_to_reach_level(current_xp: int, target_level: int) -> int:
    """XP still missing to reach ``target_level``."""
    return max(0, xp_for_level(target_level) - current_xp)


def get_level_progress(total_xp: int) -> LevelProgress:
    """Progress towards the next level."""
    level = calculate_level(total_xp)
    current_floor = xp_for_level(level)
    next_floor = xp_for_level(level + 1)

    if total_xp >= next_floor:
        progress = 100.0
    else:
        progress = (total_xp - current_floor) / (next_floor - current_floor) * 100

    return LevelProgress(
        current_level=level,
        total_xp=total_xp,
        xp_for_current_level=current_floor,
        xp_for_next_level=next_floor,
        xp_progress=min(100.0, max(0.0, progress)),
        xp_remaining=max(0, next_floor - total_xp),
    )


def levels_gained(previous_xp: int, new_xp: int) -> int:
    """Number of levels crossed going from ``previous_xp`` to ``new_xp``."""
    return calculate_level(new_xp) - calculate_level(previous_xp)


def has_leveled_up(previous_xp: int, new_xp: int) -> bool:
    return levels_gained(previous_xp, new_xp) > 0


def is_milestone_level(level: int) -> bool:
    """Every fifth level is a milestone."""
    return level > 0 and level % MILESTONE_LEVEL_STEP == 0


def next_milestone_level(current_level: int) -> int:
    """First milestone level above ``current_level``."""
    return math.ceil((current_level + 1) / MILESTONE_LEVEL_STEP) * MILESTONE_LEVEL_STEP
