"""
Tests for the persistence module.

The DynamoDB tests use testcontainers with LocalStack to test against
a real DynamoDB instance running in a container.
"""

from datetime import datetime
from unittest.mock import MagicMock

import boto3
import pytest
from testcontainers.localstack import LocalStackContainer

from sidrat.achievement_types import AchievementType
from sidrat.errors import ReadFailed, SaveFailed
from sidrat.models import Achievement, Child, FamilyActivity, LessonCategory, LessonProgress
from sidrat.persistence import (
    CATALOG_KEY,
    DynamoDbBackend,
    InMemoryBackend,
    ProgressStore,
    child_key,
)

from conftest import make_lesson

# DynamoDB table configuration
TABLE_NAME = "SidratProgress"
PARTITION_KEY = "id"


@pytest.fixture(scope="module")
def localstack_container():
    """Start a LocalStack container for the test module."""
    with LocalStackContainer(image="localstack/localstack:3.0") as container:
        yield container


@pytest.fixture(scope="module")
def dynamodb_resource(localstack_container):
    """Create a DynamoDB resource connected to LocalStack."""
    endpoint_url = localstack_container.get_url()

    dynamodb = boto3.resource(
        "dynamodb",
        endpoint_url=endpoint_url,
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )

    dynamodb.create_table(
        TableName=TABLE_NAME,
        KeySchema=[
            {"AttributeName": PARTITION_KEY, "KeyType": "HASH"},
        ],
        AttributeDefinitions=[
            {"AttributeName": PARTITION_KEY, "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )

    table = dynamodb.Table(TABLE_NAME)
    table.wait_until_exists()

    yield dynamodb


@pytest.fixture
def dynamodb_table(dynamodb_resource):
    """Get the DynamoDB table and clean it before each test."""
    table = dynamodb_resource.Table(TABLE_NAME)

    scan = table.scan()
    with table.batch_writer() as batch:
        for item in scan.get("Items", []):
            batch.delete_item(Key={PARTITION_KEY: item[PARTITION_KEY]})

    return table


@pytest.fixture
def dynamodb_store(dynamodb_table):
    return ProgressStore(DynamoDbBackend(dynamodb_table))


def child_with_progress() -> Child:
    """A child with one finished lesson, one started lesson and a badge."""
    at = datetime(2025, 3, 12, 10, 0)
    child = Child(
        id="child-1",
        name="Yusuf",
        age=6,
        current_streak=3,
        longest_streak=4,
        total_xp=130,
        total_lessons_completed=1,
        last_lesson_completed_date=at,
        created_at=datetime(2025, 3, 1, 9, 0),
    )
    child.lesson_progress.append(
        LessonProgress(
            lesson_id="wudu-1",
            is_completed=True,
            completed_at=at,
            score=90,
            xp_earned=20,
            attempts=2,
            phase_progress={"hook": at, "teach": at},
            last_accessed_at=at,
        )
    )
    child.lesson_progress.append(
        LessonProgress(
            lesson_id="wudu-2",
            last_completed_phase="hook",
            phase_progress={"hook": at},
            last_accessed_at=at,
        )
    )
    child.achievements.append(
        Achievement(achievement_type=AchievementType.STREAK_3, unlocked_at=at, is_new=False)
    )
    return child


class TestInMemoryBackend:
    """Tests for the dictionary backend."""

    def test_missing_key_returns_none(self):
        assert InMemoryBackend().get("child#nobody") is None

    def test_returned_items_are_copies(self):
        backend = InMemoryBackend()
        backend.put_many({"a": {"values": [1]}})

        backend.get("a")["values"].append(2)

        assert backend.get("a") == {"values": [1]}

    def test_delete(self):
        backend = InMemoryBackend({"a": {}})

        backend.delete("a")
        backend.delete("a")

        assert backend.keys() == []


class TestProgressStoreChildren:
    """Tests for loading and saving children."""

    def test_unknown_child_returns_none(self, store):
        assert store.get_child("nobody") is None

    def test_nothing_written_before_save(self, store, backend):
        store.add_child(Child(id="child-1", name="Yusuf"))

        assert backend.keys() == []

    def test_save_writes_child_aggregate(self, store, backend):
        child = child_with_progress()
        store.add_child(child)

        store.save()

        assert backend.keys() == [child_key("child-1")]
        assert ProgressStore(backend).get_child("child-1") == child

    def test_services_share_one_child_object(self, store, backend):
        store.add_child(Child(id="child-1", name="Yusuf"))
        store.save()
        other = ProgressStore(backend)

        assert other.get_child("child-1") is other.get_child("child-1")

    def test_delete_child(self, store, backend):
        store.add_child(Child(id="child-1", name="Yusuf"))
        store.save()

        store.delete_child("child-1")

        assert store.get_child("child-1") is None
        assert backend.keys() == []

    def test_fetch_lesson_progress(self, store):
        store.add_child(child_with_progress())

        assert store.fetch_lesson_progress("child-1", "wudu-2").last_completed_phase == "hook"
        assert store.fetch_lesson_progress("child-1", "salah-1") is None
        assert store.fetch_lesson_progress("nobody", "wudu-1") is None

    def test_duplicate_progress_row_is_rejected(self, store):
        child = child_with_progress()

        with pytest.raises(ValueError):
            store.insert_lesson_progress(child, LessonProgress(lesson_id="wudu-1"))

    def test_duplicate_achievement_is_rejected(self, store):
        child = child_with_progress()

        with pytest.raises(ValueError):
            store.insert_achievement(child, Achievement(achievement_type=AchievementType.STREAK_3))

    def test_save_failure_keeps_in_memory_changes(self):
        backend = MagicMock()
        backend.put_many.side_effect = SaveFailed("test")
        store = ProgressStore(backend)
        child = Child(id="child-1", name="Yusuf")
        store.add_child(child)
        child.total_xp = 50

        with pytest.raises(SaveFailed):
            store.save()

        assert store.get_child("child-1").total_xp == 50

    def test_save_one_child_writes_only_its_record(self, store, backend):
        yusuf = Child(id="child-1", name="Yusuf")
        amina = Child(id="child-2", name="Amina")
        store.add_child(yusuf)
        store.add_child(amina)
        yusuf.total_xp = 50
        amina.total_xp = 70

        store.save(yusuf)

        assert backend.keys() == [child_key("child-1")]
        assert ProgressStore(backend).get_child("child-1").total_xp == 50

    def test_read_failure_propagates(self):
        backend = MagicMock()
        backend.get.side_effect = ReadFailed("child#child-1")

        with pytest.raises(ReadFailed):
            ProgressStore(backend).get_child("child-1")


class TestProgressStoreCatalog:
    """Tests for lessons and family activities."""

    def test_empty_catalog(self, store):
        assert store.fetch_lessons() == []
        assert store.fetch_family_activities() == []

    def test_lessons_sorted_by_order(self, store):
        store.add_lessons(
            [
                make_lesson("salah-1", LessonCategory.SALAH, 2),
                make_lesson("wudu-1", LessonCategory.WUDU, 1),
            ]
        )

        assert [lesson.id for lesson in store.fetch_lessons()] == ["wudu-1", "salah-1"]

    def test_fetch_with_predicate(self, seeded_store):
        wudu = seeded_store.fetch_lessons(lambda lesson: lesson.category is LessonCategory.WUDU)

        assert [lesson.id for lesson in wudu] == ["wudu-1", "wudu-2", "wudu-3"]

    def test_fetch_lessons_for_week(self, seeded_store):
        week_2 = seeded_store.fetch_lessons_for_week(2)

        assert [lesson.id for lesson in week_2] == ["salah-1", "salah-2", "quran-1"]

    def test_get_lesson(self, seeded_store):
        assert seeded_store.get_lesson("quran-1").category is LessonCategory.QURAN
        assert seeded_store.get_lesson("nope") is None

    def test_catalog_is_persisted(self, seeded_store, backend):
        assert CATALOG_KEY in backend.keys()
        assert len(ProgressStore(backend).fetch_lessons()) == 6

    def test_catalog_only_written_when_changed(self, seeded_store, backend):
        backend_spy = MagicMock(wraps=backend)
        store = ProgressStore(backend_spy)
        store.add_child(Child(id="child-2", name="Amina"))
        store.fetch_lessons()

        store.save()

        (items,), _ = backend_spy.put_many.call_args
        assert list(items) == [child_key("child-2")]

    def test_catalog_written_again_after_failed_save(self, lessons):
        backend = MagicMock()
        backend.get.return_value = None
        backend.put_many.side_effect = [SaveFailed("test"), None]
        store = ProgressStore(backend)
        store.add_lessons(lessons)

        with pytest.raises(SaveFailed):
            store.save()
        store.save()

        (items,), _ = backend.put_many.call_args
        assert CATALOG_KEY in items

    def test_completed_family_activities(self, store, backend):
        store.add_family_activities(
            [
                FamilyActivity(id="fa-1", title="Practice Wudu Together", week_number=1),
                FamilyActivity(id="fa-2", title="Pray Together", week_number=2),
            ]
        )
        store.fetch_family_activities()[0].is_completed = True
        store.mark_catalog_changed()
        store.save()

        completed = ProgressStore(backend).fetch_family_activities(lambda a: a.is_completed)

        assert [activity.id for activity in completed] == ["fa-1"]


@pytest.mark.dynamodb
class TestDynamoDbBackend:
    """Tests for the DynamoDB backend against LocalStack."""

    def test_missing_child_returns_none(self, dynamodb_store):
        assert dynamodb_store.get_child("nobody") is None

    def test_child_round_trip(self, dynamodb_table):
        """Numbers come back as Decimal and must load into the same child."""
        child = child_with_progress()
        store = ProgressStore(DynamoDbBackend(dynamodb_table))
        store.add_child(child)
        store.save()

        loaded = ProgressStore(DynamoDbBackend(dynamodb_table)).get_child("child-1")

        assert loaded == child
        assert isinstance(loaded.total_xp, int)

    def test_item_layout(self, dynamodb_store, dynamodb_table):
        dynamodb_store.add_child(Child(id="child-1", name="Yusuf", total_xp=40))
        dynamodb_store.save()

        item = dynamodb_table.get_item(Key={PARTITION_KEY: "child#child-1"})["Item"]

        assert item["attributes"]["name"] == "Yusuf"
        assert item["attributes"]["totalXP"] == 40

    def test_child_and_catalog_saved_together(self, dynamodb_store, dynamodb_table, lessons):
        dynamodb_store.add_child(child_with_progress())
        dynamodb_store.add_lessons(lessons)
        dynamodb_store.save()

        loaded = ProgressStore(DynamoDbBackend(dynamodb_table))

        assert loaded.get_child("child-1").total_xp == 130
        assert [lesson.id for lesson in loaded.fetch_lessons_for_week(1)] == [
            "wudu-1",
            "wudu-2",
            "wudu-3",
        ]

    def test_delete_child(self, dynamodb_store, dynamodb_table):
        dynamodb_store.add_child(Child(id="child-1", name="Yusuf"))
        dynamodb_store.save()

        dynamodb_store.delete_child("child-1")

        assert "Item" not in dynamodb_table.get_item(Key={PARTITION_KEY: "child#child-1"})

    def test_from_config(self, dynamodb_resource, dynamodb_table):
        backend = DynamoDbBackend.from_config(
            table_name=TABLE_NAME, dynamodb_resource=dynamodb_resource
        )
        backend.put_many({"child#child-1": Child(id="child-1", name="Yusuf").to_dict()})

        assert ProgressStore(backend).get_child("child-1").name == "Yusuf"

    def test_missing_table_raises_read_failed(self, dynamodb_resource):
        backend = DynamoDbBackend(dynamodb_resource.Table("NoSuchTable"))

        with pytest.raises(ReadFailed):
            backend.get("child#child-1")

    def test_missing_table_raises_save_failed(self, dynamodb_resource):
        store = ProgressStore(DynamoDbBackend(dynamodb_resource.Table("NoSuchTable")))
        store.add_child(Child(id="child-1", name="Yusuf"))

        with pytest.raises(SaveFailed):
            store.save()
