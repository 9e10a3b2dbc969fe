"""
Progress session: the entry point for the presentation layer.

A ProgressSession binds the lesson progress tracker, the streak engine
and the achievement engine to one ProgressStore. The caller owns its
lifecycle (typically one per active app session).

Lesson completions for the same child are serialized with a per-child
lock; different children are processed independently.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from sidrat import config
from sidrat.achievement_types import AchievementType
from sidrat.achievements import AchievementEngine, AchievementProgress
from sidrat.completion import LessonCompletionResult, apply_lesson_completion
from sidrat.errors import ChildNotFound, LessonNotFound
from sidrat.lesson_progress import LessonProgressTracker
from sidrat.models import Achievement, Child, LessonPhase, LessonProgress
from sidrat.persistence import ProgressStore, create_dynamodb_store
from sidrat.streaks import StreakEngine

logger = logging.getLogger(__name__)


class ProgressSession:
    """Services for one store, with per-child ordering of completions."""

    def __init__(self, store: ProgressStore, clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the session.

        Args:
            store: The progress store all services share.
            clock: Returns the current local time.
        """
        self.store = store
        self._clock = clock
        self.lesson_progress = LessonProgressTracker(store, clock)
        self.streaks = StreakEngine(store, clock)
        self.achievements = AchievementEngine(store, clock)

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, child_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(child_id, threading.Lock())

    def _require_child(self, child_id: str) -> Child:
        child = self.store.get_child(child_id)
        if child is None:
            raise ChildNotFound(child_id)
        return child

    # Lesson flow

    def save_phase(self, child_id: str, lesson_id: str, phase: LessonPhase | str) -> LessonProgress:
        """Save progress after a lesson phase was completed."""
        with self._lock_for(child_id):
            return self.lesson_progress.save_phase_progress(lesson_id, child_id, phase)

    def resume_phase(self, child_id: str, lesson_id: str) -> LessonPhase | None:
        """
        The phase to continue a started lesson with.

        Returns:
            The phase after the last saved one, or None to start from
            the beginning.
        """
        last_phase = self.lesson_progress.load_partial_progress(lesson_id, child_id)
        phase = LessonPhase.from_storage_string(last_phase)
        if phase is None:
            return None
        return phase.next

    def restart_lesson(self, child_id: str, lesson_id: str) -> None:
        with self._lock_for(child_id):
            self.lesson_progress.clear_partial_progress(lesson_id, child_id)

    def complete_lesson(
        self,
        child_id: str,
        lesson_id: str,
        score: int,
        xp_earned: int | None = None,
    ) -> LessonCompletionResult:
        """
        Complete a lesson: finalize progress, update the streak, unlock achievements.

        Raises:
            ChildNotFound: If the child does not exist.
            LessonNotFound: If the lesson is not in the catalog.
            SaveFailed: If the progress or streak cannot be saved.
        """
        with self._lock_for(child_id):
            child = self._require_child(child_id)
            lesson = self.store.get_lesson(lesson_id)
            if lesson is None:
                raise LessonNotFound(lesson_id)

            return apply_lesson_completion(
                self.lesson_progress,
                self.streaks,
                self.achievements,
                child,
                lesson,
                score,
                xp_earned,
            )

    # App lifecycle

    def on_app_foreground(self, child_id: str) -> list[AchievementType]:
        """
        Run the launch-time checks for a child.

        Expires a streak after a missed day, then sweeps achievements so
        badges earned elsewhere (e.g. family activities) are unlocked.

        Returns:
            Newly unlocked achievements.
        """
        logger.info(f"App foreground for child {child_id}")
        with self._lock_for(child_id):
            child = self._require_child(child_id)
            self.streaks.check_and_reset_expired_streak(child)
            return self.achievements.check_and_unlock_achievements(child)

    # Achievements

    def mark_achievement_seen(self, child_id: str, achievement: Achievement) -> None:
        with self._lock_for(child_id):
            child = self._require_child(child_id)
            self.achievements.mark_achievement_as_seen(achievement, child)

    def new_achievements(self, child_id: str) -> list[Achievement]:
        """Unlocked achievements whose celebration was not shown yet, oldest first."""
        child = self._require_child(child_id)
        return sorted(
            (a for a in child.achievements if a.is_new),
            key=lambda achievement: achievement.unlocked_at,
        )

    def achievement_progress(self, child_id: str) -> dict[AchievementType, AchievementProgress]:
        return self.achievements.get_all_progress(self._require_child(child_id))


def create_session(table_name: str | None = None) -> ProgressSession:
    """
    Factory function for a session backed by DynamoDB.

    Args:
        table_name: Overrides SIDRAT_TABLE_NAME.
    """
    config.configure_logging()
    return ProgressSession(create_dynamodb_store(table_name))
