"""Shared fixtures for the progress engine tests."""

from datetime import datetime, timedelta

import pytest

from sidrat.models import Child, Lesson, LessonCategory
from sidrat.persistence import InMemoryBackend, ProgressStore

CHILD_ID = "child-1"


class FakeClock:
    """Callable clock that tests move forward by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


def make_lesson(
    lesson_id: str,
    category: LessonCategory,
    order: int,
    week_number: int = 1,
    title: str | None = None,
    xp_reward: int = 20,
) -> Lesson:
    return Lesson(
        id=lesson_id,
        title=title or f"{category.value} lesson {order}",
        category=category,
        order=order,
        week_number=week_number,
        xp_reward=xp_reward,
    )


@pytest.fixture
def clock():
    """Wednesday, 12 March 2025, 10:00 local time."""
    return FakeClock(datetime(2025, 3, 12, 10, 0))


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def store(backend):
    return ProgressStore(backend)


@pytest.fixture
def child(store, clock):
    """A new child with no progress, saved to the store."""
    child = Child(id=CHILD_ID, name="Yusuf", age=6, created_at=clock())
    store.add_child(child)
    store.save()
    return child


@pytest.fixture
def lessons():
    """Three Wudu lessons in week 1, two Salah lessons in week 2, one Quran lesson."""
    return [
        make_lesson("wudu-1", LessonCategory.WUDU, 1, week_number=1),
        make_lesson("wudu-2", LessonCategory.WUDU, 2, week_number=1),
        make_lesson("wudu-3", LessonCategory.WUDU, 3, week_number=1),
        make_lesson("salah-1", LessonCategory.SALAH, 4, week_number=2),
        make_lesson("salah-2", LessonCategory.SALAH, 5, week_number=2),
        make_lesson("quran-1", LessonCategory.QURAN, 6, week_number=2),
    ]


@pytest.fixture
def seeded_store(store, lessons):
    store.add_lessons(lessons)
    store.save()
    return store
