"""
Achievement engine for the Sidrat progress engine.

Evaluates the unlock rules for every badge and unlocks newly earned
ones exactly once per child. Rules come in four families:

- Progress: first lesson, 3/7/30 day streaks, perfect week, XP totals
- Mastery: perfect score, per-category mastery, category explorer,
  all categories master
- Special: lessons for Islamic calendar events (matched by title)
- Social: family activities and the weekly champion

The early bird and night owl badges depend on the time a lesson was
completed and are only checked at that moment.

Store reads that fail are treated as "no data" and the badge is simply
not awarded on this pass. Failed saves are logged; the in-memory child
keeps its changes until the next successful save.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sidrat.achievement_types import (
    ACHIEVEMENT_INFO,
    AchievementType,
    RequirementKind,
    get_info,
)
from sidrat.errors import ReadFailed, SaveFailed
from sidrat.models import Achievement, Child, Lesson, LessonCategory
from sidrat.persistence import ProgressStore

logger = logging.getLogger(__name__)

# Streak badges evaluated by the sweep; the 100 day badge is awarded by the
# streak engine's milestone check only
SWEEP_STREAK_TYPES: tuple[AchievementType, ...] = (
    AchievementType.STREAK_3,
    AchievementType.STREAK_7,
    AchievementType.STREAK_30,
)

XP_TYPES: tuple[AchievementType, ...] = (
    AchievementType.SUPER_LEARNER,
    AchievementType.XP_MILESTONE_1000,
    AchievementType.XP_MILESTONE_2500,
)

CATEGORY_MASTERY: dict[AchievementType, LessonCategory] = {
    AchievementType.WUDU_MASTER: LessonCategory.WUDU,
    AchievementType.SALAH_MASTER: LessonCategory.SALAH,
    AchievementType.QURAN_MASTER: LessonCategory.QURAN,
    AchievementType.DUA_MASTER: LessonCategory.DUAA,
    AchievementType.PROPHET_STORIES_MASTER: LessonCategory.STORIES,
}

# Title keywords identifying the lessons behind each special event badge
SPECIAL_EVENT_KEYWORDS: dict[AchievementType, tuple[str, ...]] = {
    AchievementType.RAMADAN_READY: ("Ramadan", "Fasting"),
    AchievementType.EID_CELEBRATION: ("Eid",),
    AchievementType.ISLAMIC_NEW_YEAR: ("Hijri", "Islamic New Year"),
    AchievementType.LAYLAT_AL_QADR: ("Laylat", "Night of Power"),
}

FAMILY_ACTIVITY_TYPES: tuple[AchievementType, ...] = (
    AchievementType.FIRST_FAMILY_ACTIVITY,
    AchievementType.FAMILY_TIME,
    AchievementType.FAMILY_CHAMPION,
)

PERFECT_SCORE = 100
PERFECT_WEEK_DAYS = 7
EARLY_BIRD_BEFORE_HOUR = 9
NIGHT_OWL_FROM_HOUR = 19


@dataclass(frozen=True)
class AchievementProgress:
    """Progress toward a locked, quantifiable achievement."""

    achievement_type: AchievementType
    current: int
    required: int

    @property
    def fraction(self) -> float:
        """Progress between 0 and 1."""
        if self.required <= 0:
            return 1.0
        return min(1.0, max(0.0, self.current / self.required))

    @property
    def is_complete(self) -> bool:
        return self.current >= self.required


class AchievementEngine:
    """Checks and unlocks achievements for a child."""

    def __init__(self, store: ProgressStore, clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the achievement engine.

        Args:
            store: The progress store shared with the other services.
            clock: Returns the current local time.
        """
        self._store = store
        self._clock = clock

    # Store access

    def _fetch(self, what: str, query: Callable[[], list]) -> list:
        try:
            return query()
        except ReadFailed:
            logger.warning(f"Fetching {what} failed, treating as empty", exc_info=True)
            return []

    def _save(self, child: Child | None, reason: str) -> None:
        try:
            self._store.save(child)
        except SaveFailed:
            logger.error(f"Save failed ({reason})", exc_info=True)

    # Main achievement checking

    def check_and_unlock_achievements(self, child: Child) -> list[AchievementType]:
        """
        Check every achievement family and unlock whatever is now earned.

        Unlocking awards XP, which can satisfy an XP badge in turn, so
        the rules are evaluated again until nothing new qualifies. All
        unlocks of one call are returned together, in unlock order, for
        the celebration queue.
        """
        newly_unlocked: list[AchievementType] = []

        while True:
            unlocked_types = child.unlocked_types()
            lessons = self._fetch("lessons", self._store.fetch_lessons)

            candidates = (
                self._check_progress_achievements(child, unlocked_types)
                + self._check_mastery_achievements(child, lessons, unlocked_types)
                + self._check_special_achievements(child, lessons, unlocked_types)
                + self._check_social_achievements(child, unlocked_types)
            )
            batch = [t for t in dict.fromkeys(candidates) if t not in unlocked_types]
            if not batch:
                break

            for achievement_type in batch:
                self._unlock_achievement(achievement_type, child)
                newly_unlocked.append(achievement_type)

        return newly_unlocked

    def _check_progress_achievements(
        self, child: Child, unlocked_types: set[AchievementType]
    ) -> list[AchievementType]:
        unlocked = []

        if AchievementType.FIRST_LESSON not in unlocked_types and child.total_lessons_completed >= 1:
            unlocked.append(AchievementType.FIRST_LESSON)

        for achievement_type in SWEEP_STREAK_TYPES:
            days = get_info(achievement_type).requirement.value
            if achievement_type not in unlocked_types and child.current_streak >= days:
                unlocked.append(achievement_type)

        if AchievementType.PERFECT_WEEK not in unlocked_types and self._check_perfect_week(child):
            unlocked.append(AchievementType.PERFECT_WEEK)

        for achievement_type in XP_TYPES:
            amount = get_info(achievement_type).requirement.value
            if achievement_type not in unlocked_types and child.total_xp >= amount:
                unlocked.append(achievement_type)

        return unlocked

    def _check_mastery_achievements(
        self, child: Child, lessons: list[Lesson], unlocked_types: set[AchievementType]
    ) -> list[AchievementType]:
        unlocked = []
        completed_ids = child.completed_lesson_ids()

        perfect_scores = sum(1 for p in child.lesson_progress if p.score == PERFECT_SCORE)
        if AchievementType.PERFECT_SCORE not in unlocked_types and perfect_scores >= 1:
            unlocked.append(AchievementType.PERFECT_SCORE)

        # A category without lessons is never mastered
        for achievement_type, category in CATEGORY_MASTERY.items():
            if achievement_type in unlocked_types:
                continue
            category_ids = {lesson.id for lesson in lessons if lesson.category is category}
            if category_ids and category_ids <= completed_ids:
                unlocked.append(achievement_type)

        if AchievementType.CATEGORY_EXPLORER not in unlocked_types:
            tried = {lesson.category for lesson in lessons if lesson.id in completed_ids}
            if len(tried) == len(LessonCategory):
                unlocked.append(AchievementType.CATEGORY_EXPLORER)

        if AchievementType.ALL_CATEGORIES_MASTER not in unlocked_types:
            all_ids = {lesson.id for lesson in lessons}
            if all_ids and all_ids <= completed_ids:
                unlocked.append(AchievementType.ALL_CATEGORIES_MASTER)

        return unlocked

    def _check_special_achievements(
        self, child: Child, lessons: list[Lesson], unlocked_types: set[AchievementType]
    ) -> list[AchievementType]:
        unlocked = []
        completed_ids = child.completed_lesson_ids()

        for achievement_type, keywords in SPECIAL_EVENT_KEYWORDS.items():
            if achievement_type in unlocked_types:
                continue
            event_lessons = [
                lesson for lesson in lessons if any(word in lesson.title for word in keywords)
            ]
            if event_lessons and all(lesson.id in completed_ids for lesson in event_lessons):
                unlocked.append(achievement_type)

        return unlocked

    def _check_social_achievements(
        self, child: Child, unlocked_types: set[AchievementType]
    ) -> list[AchievementType]:
        unlocked = []
        activity_count = self._completed_activity_count()

        # first_family_activity and family_time share the same rule on purpose
        for achievement_type in FAMILY_ACTIVITY_TYPES:
            required = get_info(achievement_type).requirement.value
            if achievement_type not in unlocked_types and activity_count >= required:
                unlocked.append(achievement_type)

        if AchievementType.WEEKLY_CHAMPION not in unlocked_types and self._check_weekly_completion(
            child
        ):
            unlocked.append(AchievementType.WEEKLY_CHAMPION)

        return unlocked

    # Time-based achievements

    def check_time_based_achievements(
        self, child: Child, completion_date: datetime | None = None
    ) -> list[AchievementType]:
        """
        Check the early bird and night owl badges for a lesson completion.

        Unlocks immediately. These cannot be earned retroactively, so
        they are only checked here and not in the general sweep.
        """
        completion_date = completion_date or self._clock()
        hour = completion_date.hour
        unlocked = []

        if not child.has_achievement(AchievementType.EARLY_BIRD) and hour < EARLY_BIRD_BEFORE_HOUR:
            self._unlock_achievement(AchievementType.EARLY_BIRD, child)
            unlocked.append(AchievementType.EARLY_BIRD)

        if not child.has_achievement(AchievementType.NIGHT_OWL) and hour >= NIGHT_OWL_FROM_HOUR:
            self._unlock_achievement(AchievementType.NIGHT_OWL, child)
            unlocked.append(AchievementType.NIGHT_OWL)

        return unlocked

    # Helpers

    def _check_perfect_week(self, child: Child) -> bool:
        """Completions on 7 distinct days of the current (Monday-based) week."""
        today = self._clock().date()
        start_of_week = today - timedelta(days=today.weekday())

        days_with_lessons = {
            progress.completed_at.date()
            for progress in child.lesson_progress
            if progress.is_completed
            and progress.completed_at is not None
            and progress.completed_at.date() >= start_of_week
        }
        return len(days_with_lessons) >= PERFECT_WEEK_DAYS

    def _check_weekly_completion(self, child: Child) -> bool:
        week_lessons = self._fetch(
            f"lessons for week {child.current_week_number}",
            lambda: self._store.fetch_lessons_for_week(child.current_week_number),
        )
        if not week_lessons:
            return False
        completed_ids = child.completed_lesson_ids()
        return all(lesson.id in completed_ids for lesson in week_lessons)

    def _completed_activity_count(self) -> int:
        activities = self._fetch(
            "family activities",
            lambda: self._store.fetch_family_activities(lambda activity: activity.is_completed),
        )
        return len(activities)

    # Achievement progress

    def get_progress(self, achievement_type: AchievementType, child: Child) -> AchievementProgress | None:
        """
        Progress toward a locked achievement.

        Returns:
            None if already unlocked, if the rule is binary (calendar,
            time of day, weekly, all categories completed), or if the
            data needed cannot be loaded.
        """
        if child.has_achievement(achievement_type):
            return None

        requirement = get_info(achievement_type).requirement
        kind = requirement.kind

        if kind is RequirementKind.STREAK:
            current = child.current_streak
        elif kind is RequirementKind.XP:
            current = child.total_xp
        elif kind is RequirementKind.LESSON_COUNT:
            current = child.total_lessons_completed
        elif kind is RequirementKind.PERFECT_SCORE_COUNT:
            current = sum(1 for p in child.lesson_progress if p.score == PERFECT_SCORE)
        elif kind is RequirementKind.FAMILY_ACTIVITY_COUNT:
            try:
                activities = self._store.fetch_family_activities(lambda a: a.is_completed)
            except ReadFailed:
                logger.warning("Fetching family activities failed", exc_info=True)
                return None
            current = len(activities)
        elif kind is RequirementKind.CATEGORY_COMPLETION:
            return self._category_progress(achievement_type, requirement.value, child)
        elif kind is RequirementKind.ALL_CATEGORIES_TRIED:
            return self._categories_tried_progress(achievement_type, child)
        else:
            return None

        return AchievementProgress(achievement_type, current=current, required=requirement.value)

    def _category_progress(
        self, achievement_type: AchievementType, category_name: str, child: Child
    ) -> AchievementProgress | None:
        try:
            category = LessonCategory(category_name)
            lessons = self._store.fetch_lessons(lambda lesson: lesson.category is category)
        except ValueError:
            logger.warning(f"Unknown lesson category {category_name!r}")
            return None
        except ReadFailed:
            logger.warning(f"Fetching {category_name} lessons failed", exc_info=True)
            return None

        if not lessons:
            return None

        completed_ids = child.completed_lesson_ids()
        completed = sum(1 for lesson in lessons if lesson.id in completed_ids)
        return AchievementProgress(achievement_type, current=completed, required=len(lessons))

    def _categories_tried_progress(
        self, achievement_type: AchievementType, child: Child
    ) -> AchievementProgress | None:
        try:
            lessons = self._store.fetch_lessons()
        except ReadFailed:
            logger.warning("Fetching lessons failed", exc_info=True)
            return None

        completed_ids = child.completed_lesson_ids()
        tried = {lesson.category for lesson in lessons if lesson.id in completed_ids}
        return AchievementProgress(
            achievement_type, current=len(tried), required=len(LessonCategory)
        )

    def get_all_progress(self, child: Child) -> dict[AchievementType, AchievementProgress]:
        """Progress for every locked, visible achievement that has a progress bar."""
        unlocked_types = child.unlocked_types()
        progress_by_type = {}

        for achievement_type, info in ACHIEVEMENT_INFO.items():
            if achievement_type in unlocked_types or info.is_hidden:
                continue
            progress = self.get_progress(achievement_type, child)
            if progress is not None:
                progress_by_type[achievement_type] = progress

        return progress_by_type

    # Unlocking

    def _unlock_achievement(self, achievement_type: AchievementType, child: Child) -> None:
        achievement = Achievement(achievement_type=achievement_type, unlocked_at=self._clock())
        self._store.insert_achievement(child, achievement)

        xp_reward = get_info(achievement_type).xp_reward
        child.total_xp += xp_reward
        logger.info(f"Unlocked {achievement_type.value} for {child.name} (+{xp_reward} XP)")

        self._save(child, f"unlockAchievement {achievement_type.value}")

    def mark_achievement_as_seen(
        self, achievement: Achievement, child: Child | None = None
    ) -> None:
        """
        Clear the "new" flag once the celebration was shown.

        Pass the owning child to write only its record; without it every
        tracked child is saved.
        """
        achievement.is_new = False
        self._save(child, "markAchievementAsSeen")
