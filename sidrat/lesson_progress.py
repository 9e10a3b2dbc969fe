"""
Lesson progress tracking for the Sidrat progress engine.

Records phase-level progress inside a lesson so an interrupted lesson
can be resumed, and finalizes a lesson when it is completed.

Score and XP keep the best value of all attempts, so replaying a
lesson never lowers what the child already earned.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sidrat.errors import ChildNotFound, InvalidPhase, LessonNotFound, ReadFailed, SaveFailed
from sidrat.models import Child, LessonPhase, LessonProgress
from sidrat.persistence import ProgressStore

logger = logging.getLogger(__name__)


class LessonProgressTracker:
    """Saves, resumes and completes lesson progress rows."""

    def __init__(self, store: ProgressStore, clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the tracker.

        Args:
            store: The progress store shared with the other services.
            clock: Returns the current local time.
        """
        self._store = store
        self._clock = clock

    def _commit(self, child: Child, reason: str) -> None:
        try:
            self._store.save(child)
        except SaveFailed:
            logger.error(f"Save failed ({reason})", exc_info=True)
            raise

    def _find(self, lesson_id: str, child_id: str) -> LessonProgress | None:
        try:
            return self._store.fetch_lesson_progress(child_id, lesson_id)
        except ReadFailed:
            logger.warning(f"Loading progress for lesson {lesson_id} failed", exc_info=True)
            return None

    def get_lesson_progress(self, lesson_id: str, child_id: str) -> LessonProgress | None:
        """Existing progress row for the lesson, or None."""
        return self._find(lesson_id, child_id)

    def save_phase_progress(
        self, lesson_id: str, child_id: str, phase: LessonPhase | str
    ) -> LessonProgress:
        """
        Save progress after a phase of the lesson was completed.

        Creates the progress row on the first phase. Saving the same
        phase again only refreshes its timestamp.

        Raises:
            InvalidPhase: If the phase name is empty.
            ChildNotFound: If the child does not exist.
            SaveFailed: If the store rejects the write.
        """
        phase_name = phase.value if isinstance(phase, LessonPhase) else phase
        if not phase_name:
            raise InvalidPhase(phase_name)

        child = self._store.get_child(child_id)
        if child is None:
            raise ChildNotFound(child_id)

        now = self._clock()
        progress = child.progress_for(lesson_id)
        if progress is None:
            progress = LessonProgress(lesson_id=lesson_id, last_accessed_at=now)
            self._store.insert_lesson_progress(child, progress)

        progress.mark_phase_complete(phase_name, now)
        logger.info(f"Saved phase {phase_name} of lesson {lesson_id} for child {child_id}")

        self._commit(child, f"savePhaseProgress {lesson_id}")
        return progress

    def load_partial_progress(self, lesson_id: str, child_id: str) -> str | None:
        """
        Load the resume point for a lesson.

        Returns:
            The last completed phase, or None if there is nothing to
            resume (no row, lesson completed, or no phase saved). The
            caller decides which phase comes next.
        """
        progress = self._find(lesson_id, child_id)

        if progress is None:
            logger.debug(f"No progress record for lesson {lesson_id}")
            return None

        if progress.is_completed:
            logger.debug(f"Lesson {lesson_id} already completed, no resume needed")
            return None

        if not progress.is_partial_progress:
            return None

        return progress.last_completed_phase

    def mark_lesson_complete(
        self, lesson_id: str, child_id: str, score: int, xp_earned: int
    ) -> LessonProgress:
        """
        Mark a lesson as fully complete.

        Keeps the best score and XP across attempts, counts the attempt
        and clears the resume point. The phase history is kept.

        Raises:
            LessonNotFound: If no phase of the lesson was ever saved.
            SaveFailed: If the store rejects the write.
        """
        progress = self._find(lesson_id, child_id)
        if progress is None:
            logger.warning(f"No progress record to complete for lesson {lesson_id}")
            raise LessonNotFound(lesson_id)

        now = self._clock()
        progress.is_completed = True
        progress.completed_at = now
        progress.score = max(progress.score, score)
        progress.xp_earned = max(progress.xp_earned, xp_earned)
        progress.attempts += 1
        progress.last_accessed_at = now
        progress.last_completed_phase = None

        logger.info(
            f"Lesson {lesson_id} complete for child {child_id} "
            f"(score {progress.score}, attempt {progress.attempts})"
        )

        # The row was found, so the child is already loaded
        self._commit(self._store.get_child(child_id), f"markLessonComplete {lesson_id}")
        return progress

    def clear_partial_progress(self, lesson_id: str, child_id: str) -> None:
        """
        Clear the resume point for a lesson (restart).

        Does nothing if the lesson was never started.

        Raises:
            SaveFailed: If the store rejects the write.
        """
        progress = self._find(lesson_id, child_id)
        if progress is None:
            return

        progress.clear_partial_progress()
        self._commit(self._store.get_child(child_id), f"clearPartialProgress {lesson_id}")
