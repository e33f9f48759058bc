"""Tests for the level curve."""

import pytest

from hakgyo.gamification.level import (
    calculate_level,
    get_level_progress,
    has_leveled_up,
    is_milestone_level,
    levels_gained,
    next_milestone_level,
    xp_for_level,
    xp_to_next_level,
    xp_to_reach_level,
)


@pytest.mark.parametrize(
    "xp,level",
    [(-50, 1), (0, 1), (99, 1), (100, 2), (399, 2), (400, 3), (900, 4), (10_000, 11)],
)
def test_calculate_level(xp: int, level: int) -> None:
    """Thresholds are exact."""
    assert calculate_level(xp) == level


@pytest.mark.parametrize("level", range(1, 20))
def test_threshold_reaches_its_level(level: int) -> None:
    """xp_for_level is the first XP value of the level."""
    assert calculate_level(xp_for_level(level)) == level
    if level > 1:
        assert calculate_level(xp_for_level(level) - 1) == level - 1


def test_xp_for_level_floor() -> None:
    """Levels at or below 1 need no XP."""
    assert xp_for_level(1) == 0
    assert xp_for_level(0) == 0
    assert xp_for_level(3) == 400


def test_xp_between_levels() -> None:
    """Gaps grow by 200 XP per level."""
    assert xp_to_next_level(1) == 100
    assert xp_to_next_level(2) == 300
    assert xp_to_reach_level(150, 3) == 250
    assert xp_to_reach_level(500, 3) == 0


class TestLevelProgress:
    """Progress between two levels."""

    def test_midway(self) -> None:
        """Halfway between level 2 (100) and 3 (400)."""
        progress = get_level_progress(250)
        assert progress.current_level == 2
        assert progress.xp_for_current_level == 100
        assert progress.xp_for_next_level == 400
        assert progress.xp_progress == pytest.approx(50.0)
        assert progress.xp_remaining == 150

    def test_exact_threshold(self) -> None:
        """On a threshold the new level starts at 0%."""
        progress = get_level_progress(400)
        assert progress.current_level == 3
        assert progress.xp_progress == 0.0

    def test_negative_xp_clamped(self) -> None:
        """Progress never goes below 0."""
        progress = get_level_progress(-10)
        assert progress.current_level == 1
        assert progress.xp_progress == 0.0
        assert progress.xp_remaining == 110


def test_levels_gained() -> None:
    """Crossing several thresholds at once counts each level."""
    assert levels_gained(0, 450) == 2
    assert levels_gained(100, 150) == 0
    assert has_leveled_up(99, 100)
    assert not has_leveled_up(100, 399)


def test_milestone_levels() -> None:
    """Every fifth level is a milestone."""
    assert is_milestone_level(5)
    assert is_milestone_level(10)
    assert not is_milestone_level(0)
    assert not is_milestone_level(7)
    assert next_milestone_level(1) == 5
    assert next_milestone_level(5) == 10
    assert next_milestone_level(9) == 10
