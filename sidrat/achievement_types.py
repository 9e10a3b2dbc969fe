"""
Achievement rule table for the Sidrat progress engine.

Every badge a child can earn is a member of AchievementType. The
behavior attached to a badge (title, icon, XP reward, unlock rule) lives
in the ACHIEVEMENT_INFO lookup table rather than on the enum itself, so
the rules can be read and tested without the evaluation engine.
"""

from dataclasses import dataclass
from enum import Enum


class AchievementType(Enum):
    """All badge types (value is the stored string)."""

    # Progress
    FIRST_LESSON = "first_lesson"
    STREAK_3 = "streak_3"
    STREAK_7 = "streak_7"
    STREAK_30 = "streak_30"
    STREAK_100 = "streak_100"
    PERFECT_WEEK = "perfect_week"
    SUPER_LEARNER = "super_learner"
    XP_MILESTONE_1000 = "xp_milestone_1000"
    XP_MILESTONE_2500 = "xp_milestone_2500"
    EARLY_BIRD = "early_bird"
    NIGHT_OWL = "night_owl"

    # Mastery
    PERFECT_SCORE = "perfect_score"
    WUDU_MASTER = "wudu_master"
    SALAH_MASTER = "salah_master"
    QURAN_MASTER = "quran_master"
    DUA_MASTER = "dua_master"
    PROPHET_STORIES_MASTER = "prophet_stories_master"
    CATEGORY_EXPLORER = "category_explorer"
    ALL_CATEGORIES_MASTER = "all_categories_master"

    # Special events
    RAMADAN_READY = "ramadan_ready"
    EID_CELEBRATION = "eid_celebration"
    ISLAMIC_NEW_YEAR = "islamic_new_year"
    LAYLAT_AL_QADR = "laylat_al_qadr"

    # Social
    FIRST_FAMILY_ACTIVITY = "first_family_activity"
    FAMILY_TIME = "family_time"
    FAMILY_CHAMPION = "family_champion"
    WEEKLY_CHAMPION = "weekly_champion"

    # Legacy badges from the first release; still loadable, never awarded
    SALAH_STARTER = "salah_starter"
    QURAN_EXPLORER = "quran_explorer"

    @classmethod
    def from_value(cls, value: str) -> "AchievementType | None":
        """Parse a stored value, returning None for unknown types."""
        try:
            return cls(value)
        except ValueError:
            return None


class AchievementCategory(Enum):
    """The four achievement families."""

    PROGRESS = "progress"
    MASTERY = "mastery"
    SPECIAL = "special"
    SOCIAL = "social"


class RequirementKind(Enum):
    """How an achievement is unlocked."""

    STREAK = "streak"
    XP = "xp"
    LESSON_COUNT = "lesson_count"
    CATEGORY_COMPLETION = "category_completion"
    FAMILY_ACTIVITY_COUNT = "family_activity_count"
    PERFECT_SCORE_COUNT = "perfect_score_count"
    ALL_CATEGORIES_TRIED = "all_categories_tried"
    ALL_CATEGORIES_COMPLETED = "all_categories_completed"
    PERFECT_WEEK = "perfect_week"
    WEEKLY_COMPLETION = "weekly_completion"
    TIME_OF_DAY = "time_of_day"
    SPECIAL_EVENT = "special_event"
    LEGACY = "legacy"


# Requirements that have a numerator/denominator to show as a progress bar
QUANTIFIABLE_KINDS = frozenset(
    {
        RequirementKind.STREAK,
        RequirementKind.XP,
        RequirementKind.LESSON_COUNT,
        RequirementKind.CATEGORY_COMPLETION,
        RequirementKind.FAMILY_ACTIVITY_COUNT,
        RequirementKind.PERFECT_SCORE_COUNT,
        RequirementKind.ALL_CATEGORIES_TRIED,
    }
)


@dataclass(frozen=True)
class UnlockRequirement:
    """
    Declarative unlock rule.

    `value` is the threshold for counting kinds, the category display
    name for CATEGORY_COMPLETION, and None for binary kinds.
    """

    kind: RequirementKind
    value: int | str | None = None

    @property
    def is_quantifiable(self) -> bool:
        return self.kind in QUANTIFIABLE_KINDS

    @property
    def description(self) -> str:
        """Human readable requirement, shown on locked badges."""
        kind = self.kind
        if kind is RequirementKind.STREAK:
            return f"Learn {self.value} days in a row"
        if kind is RequirementKind.XP:
            return f"Earn {self.value} XP"
        if kind is RequirementKind.LESSON_COUNT:
            return "Complete 1 lesson" if self.value == 1 else f"Complete {self.value} lessons"
        if kind is RequirementKind.CATEGORY_COMPLETION:
            return f"Complete all {self.value} lessons"
        if kind is RequirementKind.FAMILY_ACTIVITY_COUNT:
            if self.value == 1:
                return "Complete a family activity"
            return f"Complete {self.value} family activities"
        if kind is RequirementKind.PERFECT_SCORE_COUNT:
            return "Get a perfect score" if self.value == 1 else f"Get {self.value} perfect scores"
        if kind is RequirementKind.ALL_CATEGORIES_TRIED:
            return "Complete a lesson in every category"
        if kind is RequirementKind.ALL_CATEGORIES_COMPLETED:
            return "Complete every lesson in every category"
        if kind is RequirementKind.PERFECT_WEEK:
            return "Learn every day this week"
        if kind is RequirementKind.WEEKLY_COMPLETION:
            return "Complete all lessons this week"
        if kind is RequirementKind.TIME_OF_DAY:
            return "Learn at a special time of day"
        if kind is RequirementKind.SPECIAL_EVENT:
            return "Complete the special event lessons"
        return "No longer available"


@dataclass(frozen=True)
class AchievementInfo:
    """Static metadata for one achievement type."""

    title: str
    description: str
    icon: str
    xp_reward: int
    category: AchievementCategory
    requirement: UnlockRequirement
    is_hidden: bool = False


def _req(kind: RequirementKind, value: int | str | None = None) -> UnlockRequirement:
    return UnlockRequirement(kind=kind, value=value)


_P = AchievementCategory.PROGRESS
_M = AchievementCategory.MASTERY
_S = AchievementCategory.SPECIAL
_F = AchievementCategory.SOCIAL
_K = RequirementKind

ACHIEVEMENT_INFO: dict[AchievementType, AchievementInfo] = {
    AchievementType.FIRST_LESSON: AchievementInfo(
        "First Steps", "Completed your first lesson!", "star.fill", 20, _P, _req(_K.LESSON_COUNT, 1)
    ),
    AchievementType.STREAK_3: AchievementInfo(
        "3 Day Streak", "Learned for 3 days in a row", "flame.fill", 30, _P, _req(_K.STREAK, 3)
    ),
    AchievementType.STREAK_7: AchievementInfo(
        "Week Warrior", "Learned for 7 days in a row", "flame.fill", 100, _P, _req(_K.STREAK, 7)
    ),
    AchievementType.STREAK_30: AchievementInfo(
        "Monthly Master", "Learned for 30 days in a row", "flame.fill", 500, _P, _req(_K.STREAK, 30)
    ),
    AchievementType.STREAK_100: AchievementInfo(
        "Century Champion",
        "Learned for 100 days in a row",
        "crown.fill",
        2000,
        _P,
        _req(_K.STREAK, 100),
    ),
    AchievementType.PERFECT_WEEK: AchievementInfo(
        "Perfect Week",
        "Learned on every day of the week",
        "calendar.badge.checkmark",
        150,
        _P,
        _req(_K.PERFECT_WEEK),
    ),
    AchievementType.SUPER_LEARNER: AchievementInfo(
        "Super Learner", "Earned 500 XP", "sparkles", 150, _P, _req(_K.XP, 500)
    ),
    AchievementType.XP_MILESTONE_1000: AchievementInfo(
        "Knowledge Seeker", "Earned 1000 XP", "sparkles", 200, _P, _req(_K.XP, 1000)
    ),
    AchievementType.XP_MILESTONE_2500: AchievementInfo(
        "Shining Scholar", "Earned 2500 XP", "sun.max.fill", 400, _P, _req(_K.XP, 2500)
    ),
    AchievementType.EARLY_BIRD: AchievementInfo(
        "Early Bird",
        "Completed a lesson before 9 AM",
        "sunrise.fill",
        25,
        _P,
        _req(_K.TIME_OF_DAY),
    ),
    AchievementType.NIGHT_OWL: AchievementInfo(
        "Night Owl",
        "Completed a lesson after 7 PM",
        "moon.stars.fill",
        25,
        _P,
        _req(_K.TIME_OF_DAY),
    ),
    AchievementType.PERFECT_SCORE: AchievementInfo(
        "Perfect Score",
        "Got every answer right in a lesson",
        "checkmark.seal.fill",
        50,
        _M,
        _req(_K.PERFECT_SCORE_COUNT, 1),
    ),
    AchievementType.WUDU_MASTER: AchievementInfo(
        "Wudu Master",
        "Completed all Wudu lessons",
        "drop.fill",
        200,
        _M,
        _req(_K.CATEGORY_COMPLETION, "Wudu"),
    ),
    AchievementType.SALAH_MASTER: AchievementInfo(
        "Salah Master",
        "Completed all Salah lessons",
        "person.fill",
        200,
        _M,
        _req(_K.CATEGORY_COMPLETION, "Salah"),
    ),
    AchievementType.QURAN_MASTER: AchievementInfo(
        "Quran Master",
        "Completed all Quran lessons",
        "book.fill",
        200,
        _M,
        _req(_K.CATEGORY_COMPLETION, "Quran"),
    ),
    AchievementType.DUA_MASTER: AchievementInfo(
        "Du'a Master",
        "Completed all Du'a lessons",
        "hands.sparkles.fill",
        200,
        _M,
        _req(_K.CATEGORY_COMPLETION, "Du'a"),
    ),
    AchievementType.PROPHET_STORIES_MASTER: AchievementInfo(
        "Storyteller",
        "Completed all Prophet stories",
        "book.closed.fill",
        200,
        _M,
        _req(_K.CATEGORY_COMPLETION, "Stories"),
    ),
    AchievementType.CATEGORY_EXPLORER: AchievementInfo(
        "Category Explorer",
        "Tried a lesson in every category",
        "map.fill",
        100,
        _M,
        _req(_K.ALL_CATEGORIES_TRIED),
    ),
    AchievementType.ALL_CATEGORIES_MASTER: AchievementInfo(
        "Grand Master",
        "Completed every lesson in every category",
        "trophy.fill",
        1000,
        _M,
        _req(_K.ALL_CATEGORIES_COMPLETED),
    ),
    AchievementType.RAMADAN_READY: AchievementInfo(
        "Ramadan Ready",
        "Completed the Ramadan lessons",
        "moon.fill",
        100,
        _S,
        _req(_K.SPECIAL_EVENT),
    ),
    AchievementType.EID_CELEBRATION: AchievementInfo(
        "Eid Celebration",
        "Completed the Eid lessons",
        "gift.fill",
        100,
        _S,
        _req(_K.SPECIAL_EVENT),
    ),
    AchievementType.ISLAMIC_NEW_YEAR: AchievementInfo(
        "New Year, New Hijri",
        "Completed the Islamic New Year lessons",
        "calendar",
        100,
        _S,
        _req(_K.SPECIAL_EVENT),
    ),
    AchievementType.LAYLAT_AL_QADR: AchievementInfo(
        "Night of Power",
        "Completed the Laylat al-Qadr lessons",
        "star.circle.fill",
        100,
        _S,
        _req(_K.SPECIAL_EVENT),
    ),
    AchievementType.FIRST_FAMILY_ACTIVITY: AchievementInfo(
        "Family First",
        "Completed your first family activity",
        "house.fill",
        25,
        _F,
        _req(_K.FAMILY_ACTIVITY_COUNT, 1),
    ),
    AchievementType.FAMILY_TIME: AchievementInfo(
        "Family Time",
        "Completed a family activity",
        "heart.fill",
        25,
        _F,
        _req(_K.FAMILY_ACTIVITY_COUNT, 1),
    ),
    AchievementType.FAMILY_CHAMPION: AchievementInfo(
        "Family Champion",
        "Completed 10 family activities",
        "person.3.fill",
        250,
        _F,
        _req(_K.FAMILY_ACTIVITY_COUNT, 10),
    ),
    AchievementType.WEEKLY_CHAMPION: AchievementInfo(
        "Weekly Champion",
        "Completed all lessons this week",
        "trophy.fill",
        100,
        _F,
        _req(_K.WEEKLY_COMPLETION),
    ),
    AchievementType.SALAH_STARTER: AchievementInfo(
        "Salah Starter",
        "Started learning about Salah",
        "person.fill",
        50,
        _M,
        _req(_K.LEGACY),
        is_hidden=True,
    ),
    AchievementType.QURAN_EXPLORER: AchievementInfo(
        "Quran Explorer",
        "Explored Quran stories",
        "book.fill",
        75,
        _M,
        _req(_K.LEGACY),
        is_hidden=True,
    ),
}


def get_info(achievement_type: AchievementType) -> AchievementInfo:
    """Look up the static metadata for an achievement type."""
    return ACHIEVEMENT_INFO[achievement_type]


def types_in_category(category: AchievementCategory) -> list[AchievementType]:
    """All visible achievement types belonging to one family."""
    return [
        achievement_type
        for achievement_type, info in ACHIEVEMENT_INFO.items()
        if info.category is category and not info.is_hidden
    ]
