"""
Daily streak engine for the Sidrat progress engine.

A streak counts consecutive calendar days with at least one completed
lesson:
- First completion of a day following yesterday's: streak + 1
- First completion after a missed day: streak starts again at 1
- Further completions on the same day: no change

Streaks are only reset to 0 lazily, when the app comes to the
foreground after a missed day (check_and_reset_expired_streak).

Reaching exactly 3, 7, 30 or 100 days awards a milestone badge and
bonus XP.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sidrat.achievement_types import AchievementType
from sidrat.models import Achievement, Child
from sidrat.persistence import ProgressStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakMilestone:
    """A streak length that awards a badge and bonus XP."""

    days: int
    achievement_type: AchievementType
    xp_reward: int


STREAK_MILESTONES: tuple[StreakMilestone, ...] = (
    StreakMilestone(days=3, achievement_type=AchievementType.STREAK_3, xp_reward=30),
    StreakMilestone(days=7, achievement_type=AchievementType.STREAK_7, xp_reward=100),
    StreakMilestone(days=30, achievement_type=AchievementType.STREAK_30, xp_reward=500),
    StreakMilestone(days=100, achievement_type=AchievementType.STREAK_100, xp_reward=2000),
)


def days_between(earlier: datetime, later: datetime) -> int:
    """Number of calendar days from earlier to later (local dates)."""
    return (later.date() - earlier.date()).days


def get_next_milestone(current_streak: int) -> StreakMilestone | None:
    """The next milestone to reach, or None once all are passed."""
    for milestone in STREAK_MILESTONES:
        if milestone.days > current_streak:
            return milestone
    return None


class StreakEngine:
    """Updates and checks a child's daily streak."""

    def __init__(self, store: ProgressStore, clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the streak engine.

        Args:
            store: The progress store shared with the other services.
            clock: Returns the current local time.
        """
        self._store = store
        self._clock = clock

    def update_streak_for_completion(self, child: Child) -> list[StreakMilestone]:
        """
        Update the streak when a lesson is completed.

        Only the first completion of a day counts. The streak is saved
        before milestones are checked.

        Returns:
            Milestones reached by this completion (usually empty).

        Raises:
            SaveFailed: If the store rejects the write.
        """
        now = self._clock()
        last_date = child.last_lesson_completed_date

        if last_date is not None and days_between(last_date, now) == 0:
            logger.debug(f"{child.name} already completed a lesson today, streak unchanged")
            return []

        if last_date is None:
            child.current_streak = 1
            logger.info(f"First lesson for {child.name}, streak set to 1")
        else:
            days_since = days_between(last_date, now)
            if days_since == 1:
                child.current_streak += 1
                logger.info(f"Streak incremented: {child.name} now at {child.current_streak} days")
            elif days_since > 1:
                child.current_streak = 1
                logger.info(f"Streak reset for {child.name}, starting new streak at 1")

        if child.current_streak > child.longest_streak:
            child.longest_streak = child.current_streak
            logger.info(f"New longest streak for {child.name}: {child.longest_streak}")

        child.last_lesson_completed_date = now
        self._store.save(child)

        return self.check_and_award_milestones(child)

    def check_and_reset_expired_streak(self, child: Child) -> bool:
        """
        Reset the streak to 0 if a full day was missed.

        Called once per app launch, never from lesson completion.

        Returns:
            True if the streak was reset.

        Raises:
            SaveFailed: If the store rejects the write.
        """
        last_date = child.last_lesson_completed_date
        if last_date is None:
            return False

        if days_between(last_date, self._clock()) <= 1:
            return False

        child.current_streak = 0
        self._store.save(child)
        logger.info(f"Streak expired for {child.name}, reset to 0")
        return True

    def is_completed_today(self, child: Child) -> bool:
        """True if the child already completed a lesson today."""
        last_date = child.last_lesson_completed_date
        if last_date is None:
            return False
        return days_between(last_date, self._clock()) == 0

    def hours_remaining_today(self) -> int:
        """Full hours left before the end of the local day (23:59:59)."""
        now = self._clock()
        end_of_day = now.replace(hour=23, minute=59, second=59, microsecond=0)
        seconds_remaining = (end_of_day - now).total_seconds()
        return max(0, int(seconds_remaining // 3600))

    def check_and_award_milestones(self, child: Child) -> list[StreakMilestone]:
        """
        Award milestone badges the current streak has just reached.

        Matches the streak exactly, so each threshold fires once when it
        is crossed.

        Returns:
            Milestones awarded by this call.

        Raises:
            SaveFailed: If the store rejects the write.
        """
        reached = []

        for milestone in STREAK_MILESTONES:
            if child.current_streak != milestone.days:
                continue
            if child.has_achievement(milestone.achievement_type):
                continue

            achievement = Achievement(
                achievement_type=milestone.achievement_type,
                unlocked_at=self._clock(),
            )
            self._store.insert_achievement(child, achievement)
            child.total_xp += milestone.xp_reward
            self._store.save(child)

            logger.info(
                f"Milestone achieved: {milestone.days} day streak for {child.name} "
                f"(+{milestone.xp_reward} XP)"
            )
            reached.append(milestone)

        return reached

    def get_next_milestone(self, current_streak: int) -> StreakMilestone | None:
        return get_next_milestone(current_streak)
