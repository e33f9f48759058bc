"""XP, daily streaks, levels and the leaderboard."""
