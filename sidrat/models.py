"""
Data models for the Sidrat progress engine.

This module defines the records the engine reads and mutates: the
child profile aggregate (with its lesson progress rows and unlocked
achievements), the read-only lesson catalog and family activities.

Records convert to and from plain dictionaries for persistence. The
dictionary keys are the field names used by the app's stored data
(camelCase), so existing records stay interchangeable.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from sidrat.achievement_types import AchievementType

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class LessonCategory(Enum):
    """The eight lesson topics (value is the display name)."""

    AQEEDAH = "Aqeedah"
    SALAH = "Salah"
    WUDU = "Wudu"
    QURAN = "Quran"
    SEERAH = "Seerah"
    ADAB = "Adab"
    DUAA = "Du'a"
    STORIES = "Stories"


class Difficulty(Enum):
    """Lesson difficulty levels."""

    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class LessonPhase(Enum):
    """
    The resumable steps of a lesson, in playback order.

    The progress tracker stores the value of the last completed phase;
    callers use `next` to find where to resume.
    """

    HOOK = "hook"
    TEACH = "teach"
    PRACTICE = "practice"
    REWARD = "reward"

    @property
    def title(self) -> str:
        return _PHASE_TITLES[self]

    @property
    def next(self) -> "LessonPhase | None":
        """The phase after this one, or None after the reward."""
        phases = list(LessonPhase)
        index = phases.index(self)
        return phases[index + 1] if index + 1 < len(phases) else None

    @property
    def previous(self) -> "LessonPhase | None":
        phases = list(LessonPhase)
        index = phases.index(self)
        return phases[index - 1] if index > 0 else None

    @classmethod
    def from_storage_string(cls, value: str | None) -> "LessonPhase | None":
        """Parse a stored phase marker, returning None if unknown."""
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


_PHASE_TITLES = {
    LessonPhase.HOOK: "Get Ready",
    LessonPhase.TEACH: "Learn",
    LessonPhase.PRACTICE: "Practice",
    LessonPhase.REWARD: "Complete",
}


@dataclass
class Lesson:
    """Read-only lesson descriptor from the content catalog."""

    id: str
    title: str
    category: LessonCategory
    order: int
    week_number: int
    xp_reward: int = 20
    description: str = ""
    difficulty: Difficulty = Difficulty.BEGINNER
    duration_minutes: int = 5

    def to_dict(self) -> dict:
        """Convert to dictionary for persistence."""
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category.value,
            "order": self.order,
            "weekNumber": self.week_number,
            "xpReward": self.xp_reward,
            "lessonDescription": self.description,
            "difficulty": self.difficulty.value,
            "durationMinutes": self.duration_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Lesson":
        """Create from dictionary (from persistence)."""
        return cls(
            id=data["id"],
            title=data["title"],
            category=LessonCategory(data["category"]),
            order=int(data.get("order", 0)),
            week_number=int(data.get("weekNumber", 1)),
            xp_reward=int(data.get("xpReward", 20)),
            description=data.get("lessonDescription", ""),
            difficulty=Difficulty(data.get("difficulty", Difficulty.BEGINNER.value)),
            duration_minutes=int(data.get("durationMinutes", 5)),
        )


@dataclass
class FamilyActivity:
    """A weekly activity the family does together, away from the screen."""

    id: str
    title: str
    week_number: int
    related_category: LessonCategory = LessonCategory.AQEEDAH
    description: str = ""
    duration_minutes: int = 15
    is_completed: bool = False
    completed_at: datetime | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for persistence."""
        return {
            "id": self.id,
            "title": self.title,
            "weekNumber": self.week_number,
            "relatedCategory": self.related_category.value,
            "activityDescription": self.description,
            "durationMinutes": self.duration_minutes,
            "isCompleted": self.is_completed,
            "completedAt": _format_dt(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FamilyActivity":
        """Create from dictionary (from persistence)."""
        return cls(
            id=data["id"],
            title=data["title"],
            week_number=int(data.get("weekNumber", 1)),
            related_category=LessonCategory(
                data.get("relatedCategory", LessonCategory.AQEEDAH.value)
            ),
            description=data.get("activityDescription", ""),
            duration_minutes=int(data.get("durationMinutes", 15)),
            is_completed=bool(data.get("isCompleted", False)),
            completed_at=_parse_dt(data.get("completedAt")),
        )


@dataclass
class LessonProgress:
    """
    A child's progress through one lesson.

    score and xp_earned keep the best value over all attempts. A row is
    either completed or has a resume point (last_completed_phase), never
    both.
    """

    lesson_id: str
    id: str = field(default_factory=_new_id)
    is_completed: bool = False
    completed_at: datetime | None = None
    score: int = 0  # 0-100, best of all attempts
    xp_earned: int = 0
    attempts: int = 0
    last_completed_phase: str | None = None
    phase_progress: dict[str, datetime] = field(default_factory=dict)
    last_accessed_at: datetime = field(default_factory=datetime.now)

    @property
    def is_partial_progress(self) -> bool:
        """True if the lesson was started but not finished."""
        return not self.is_completed and self.last_completed_phase is not None

    def mark_phase_complete(self, phase: str, at: datetime) -> None:
        """Record a finished phase as the new resume point."""
        self.last_completed_phase = phase
        self.phase_progress[phase] = at
        self.last_accessed_at = at

    def clear_partial_progress(self) -> None:
        """Drop the resume point and phase markers (restart)."""
        self.last_completed_phase = None
        self.phase_progress = {}

    def to_dict(self) -> dict:
        """Convert to dictionary for persistence."""
        return {
            "id": self.id,
            "lessonId": self.lesson_id,
            "isCompleted": self.is_completed,
            "completedAt": _format_dt(self.completed_at),
            "score": self.score,
            "xpEarned": self.xp_earned,
            "attempts": self.attempts,
            "lastCompletedPhase": self.last_completed_phase,
            "phaseProgress": {
                phase: at.isoformat() for phase, at in self.phase_progress.items()
            },
            "lastAccessedAt": self.last_accessed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LessonProgress":
        """Create from dictionary (from persistence)."""
        phase_progress = {
            phase: datetime.fromisoformat(at)
            for phase, at in (data.get("phaseProgress") or {}).items()
        }
        last_accessed_at = _parse_dt(data.get("lastAccessedAt")) or datetime.now()

        return cls(
            lesson_id=data["lessonId"],
            id=data.get("id") or _new_id(),
            is_completed=bool(data.get("isCompleted", False)),
            completed_at=_parse_dt(data.get("completedAt")),
            score=int(data.get("score", 0)),
            xp_earned=int(data.get("xpEarned", 0)),
            attempts=int(data.get("attempts", 0)),
            last_completed_phase=data.get("lastCompletedPhase"),
            phase_progress=phase_progress,
            last_accessed_at=last_accessed_at,
        )


@dataclass
class Achievement:
    """An unlocked badge. Only is_new changes after creation."""

    achievement_type: AchievementType
    id: str = field(default_factory=_new_id)
    unlocked_at: datetime = field(default_factory=datetime.now)
    is_new: bool = True

    def to_dict(self) -> dict:
        """Convert to dictionary for persistence."""
        return {
            "id": self.id,
            "achievementType": self.achievement_type.value,
            "unlockedAt": self.unlocked_at.isoformat(),
            "isNew": self.is_new,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Achievement | None":
        """Create from dictionary, or None if the type is unknown."""
        achievement_type = AchievementType.from_value(data.get("achievementType", ""))
        if achievement_type is None:
            return None

        return cls(
            achievement_type=achievement_type,
            id=data.get("id") or _new_id(),
            unlocked_at=_parse_dt(data.get("unlockedAt")) or datetime.now(),
            is_new=bool(data.get("isNew", False)),
        )


@dataclass
class Child:
    """
    A learner profile, owning its lesson progress and achievements.

    Invariants kept by the engine: longest_streak >= current_streak,
    total_xp never decreases, at most one Achievement per type.
    """

    id: str
    name: str
    age: int = 5
    avatar_name: str = "avatar_default"
    created_at: datetime = field(default_factory=datetime.now)
    current_streak: int = 0
    longest_streak: int = 0
    total_xp: int = 0
    total_lessons_completed: int = 0
    last_lesson_completed_date: datetime | None = None
    current_week_number: int = 1
    lesson_progress: list[LessonProgress] = field(default_factory=list)
    achievements: list[Achievement] = field(default_factory=list)

    def unlocked_types(self) -> set[AchievementType]:
        """Set of achievement types this child already has."""
        return {achievement.achievement_type for achievement in self.achievements}

    def has_achievement(self, achievement_type: AchievementType) -> bool:
        return any(a.achievement_type is achievement_type for a in self.achievements)

    def completed_lesson_ids(self) -> set[str]:
        return {p.lesson_id for p in self.lesson_progress if p.is_completed}

    def progress_for(self, lesson_id: str) -> LessonProgress | None:
        """The progress row for a lesson, if one exists."""
        for progress in self.lesson_progress:
            if progress.lesson_id == lesson_id:
                return progress
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary for persistence."""
        return {
            "id": self.id,
            "name": self.name,
            "age": self.age,
            "avatarName": self.avatar_name,
            "createdAt": self.created_at.isoformat(),
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "totalXP": self.total_xp,
            "totalLessonsCompleted": self.total_lessons_completed,
            "lastLessonCompletedDate": _format_dt(self.last_lesson_completed_date),
            "currentWeekNumber": self.current_week_number,
            "lessonProgress": [p.to_dict() for p in self.lesson_progress],
            "achievements": [a.to_dict() for a in self.achievements],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Child":
        """Create from dictionary (from persistence)."""
        achievements = []
        for achievement_data in data.get("achievements", []):
            achievement = Achievement.from_dict(achievement_data)
            if achievement is None:
                logger.warning(
                    f"Skipping unknown achievement type "
                    f"{achievement_data.get('achievementType')!r} for child {data['id']}"
                )
                continue
            achievements.append(achievement)

        return cls(
            id=data["id"],
            name=data.get("name", ""),
            age=int(data.get("age", 5)),
            avatar_name=data.get("avatarName", "avatar_default"),
            created_at=_parse_dt(data.get("createdAt")) or datetime.now(),
            current_streak=int(data.get("currentStreak", 0)),
            longest_streak=int(data.get("longestStreak", 0)),
            total_xp=int(data.get("totalXP", 0)),
            total_lessons_completed=int(data.get("totalLessonsCompleted", 0)),
            last_lesson_completed_date=_parse_dt(data.get("lastLessonCompletedDate")),
            current_week_number=int(data.get("currentWeekNumber", 1)),
            lesson_progress=[LessonProgress.from_dict(p) for p in data.get("lessonProgress", [])],
            achievements=achievements,
        )
