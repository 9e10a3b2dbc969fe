"""
Lesson completion pipeline.

Completing a lesson touches all three services, strictly in order:

1. The lesson XP is credited (first completion only) and lesson progress
   is finalized (best score/XP kept), in one save
2. The streak is updated and milestones are awarded
3. Achievements are evaluated (time of day first, then the full sweep)

Each step sees the previous steps' writes on the same Child object.
The result lists everything the presentation layer should celebrate.
"""

import logging
from dataclasses import dataclass, field

from sidrat.achievement_types import AchievementType
from sidrat.achievements import AchievementEngine
from sidrat.lesson_progress import LessonProgressTracker
from sidrat.models import Child, Lesson, LessonPhase, LessonProgress
from sidrat.streaks import StreakEngine, StreakMilestone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MilestoneReached:
    """Event: the streak hit a milestone."""

    child_id: str
    milestone: StreakMilestone


@dataclass(frozen=True)
class AchievementUnlocked:
    """Event: a badge was unlocked."""

    child_id: str
    achievement_type: AchievementType


@dataclass
class LessonCompletionResult:
    """Outcome of one lesson completion."""

    child: Child
    progress: LessonProgress
    first_completion: bool
    milestones: list[StreakMilestone] = field(default_factory=list)
    unlocked: list[AchievementType] = field(default_factory=list)
    events: list[MilestoneReached | AchievementUnlocked] = field(default_factory=list)


def apply_lesson_completion(
    tracker: LessonProgressTracker,
    streaks: StreakEngine,
    achievements: AchievementEngine,
    child: Child,
    lesson: Lesson,
    score: int,
    xp_earned: int | None = None,
) -> LessonCompletionResult:
    """
    Apply a lesson completion to a child.

    All timestamps (completion, streak day, time-of-day badges, unlocks)
    come from the services' clock.

    Args:
        tracker, streaks, achievements: Services bound to the same store.
        child: The child completing the lesson (mutated in place).
        lesson: The completed lesson.
        score: Final score, 0-100.
        xp_earned: XP for this attempt; defaults to the lesson's reward.

    Returns:
        The updated child and the events to celebrate, milestones first.

    Raises:
        SaveFailed: If finalizing the lesson or the streak cannot be saved.
            The child keeps the lesson credit in memory, so calling again
            saves it without crediting twice.
    """
    if xp_earned is None:
        xp_earned = lesson.xp_reward

    previous = tracker.get_lesson_progress(lesson.id, child.id)
    first_completion = previous is None or not previous.is_completed

    # Reaching the reward phase is what completes a lesson
    tracker.save_phase_progress(lesson.id, child.id, LessonPhase.REWARD)

    # Credit before finalizing so both are written by the same save.
    # Replays keep the best score but earn no new lesson XP.
    if first_completion:
        child.total_xp += xp_earned
        child.total_lessons_completed += 1

    progress = tracker.mark_lesson_complete(lesson.id, child.id, score, xp_earned)

    milestones = streaks.update_streak_for_completion(child)
    unlocked = [milestone.achievement_type for milestone in milestones]
    unlocked += achievements.check_time_based_achievements(child, progress.completed_at)
    unlocked += achievements.check_and_unlock_achievements(child)

    events: list[MilestoneReached | AchievementUnlocked] = [
        MilestoneReached(child.id, milestone) for milestone in milestones
    ]
    events += [AchievementUnlocked(child.id, achievement_type) for achievement_type in unlocked]

    logger.info(
        f"{child.name} completed lesson {lesson.id}: streak {child.current_streak}, "
        f"{child.total_xp} XP, {len(unlocked)} new achievements"
    )

    return LessonCompletionResult(
        child=child,
        progress=progress,
        first_completion=first_completion,
        milestones=milestones,
        unlocked=unlocked,
        events=events,
    )
