"""
Persistence layer for the Sidrat progress engine.

ProgressStore is a small object store with save-on-demand semantics:
entities are loaded lazily, mutated in place by the engine services and
written back together on save(). It sits on top of a key/value backend:

- InMemoryBackend for tests and previews
- DynamoDbBackend for production

Uses a single-table design: one item per child (the child profile with
its lesson progress and achievements) plus one catalog item holding the
lessons and family activities.
"""

import copy
import logging
import threading
from collections.abc import Callable

import boto3
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from sidrat import config
from sidrat.errors import ReadFailed, SaveFailed
from sidrat.models import Achievement, Child, FamilyActivity, Lesson, LessonProgress

logger = logging.getLogger(__name__)

# Keys in the backing store
CHILD_KEY_PREFIX = "child#"
CATALOG_KEY = "catalog"

# Attribute keys inside the catalog item
ATTR_LESSONS = "lessons"
ATTR_FAMILY_ACTIVITIES = "familyActivities"

# DynamoDB allows at most 100 items per transaction
MAX_TRANSACTION_ITEMS = 100


def child_key(child_id: str) -> str:
    """Backend key for a child's aggregate."""
    return f"{CHILD_KEY_PREFIX}{child_id}"


class InMemoryBackend:
    """Dictionary backend. Stores deep copies so callers cannot alias stored data."""

    def __init__(self, items: dict[str, dict] | None = None):
        self._items: dict[str, dict] = copy.deepcopy(items) if items else {}
        self._lock = threading.Lock()

    def get(self, key: str) -> dict | None:
        with self._lock:
            item = self._items.get(key)
            return copy.deepcopy(item) if item is not None else None

    def put_many(self, items: dict[str, dict]) -> None:
        items = copy.deepcopy(items)
        with self._lock:
            self._items.update(items)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)


class DynamoDbBackend:
    """
    DynamoDB backend.

    Each record is stored as {partition_key: key, attribute_name: data}.
    Multi-item saves use a transaction so a save is all-or-nothing.
    """

    def __init__(
        self,
        table,
        partition_key_name: str = "id",
        attribute_name: str = "attributes",
    ):
        """
        Initialize the backend.

        Args:
            table: A boto3 DynamoDB Table resource.
            partition_key_name: Name of the table's hash key.
            attribute_name: Attribute holding the record payload.
        """
        self._table = table
        self._partition_key_name = partition_key_name
        self._attribute_name = attribute_name
        self._serializer = TypeSerializer()

    @classmethod
    def from_config(
        cls,
        table_name: str | None = None,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        dynamodb_resource=None,
    ) -> "DynamoDbBackend":
        """Build a backend from environment configuration."""
        if dynamodb_resource is None:
            dynamodb_resource = boto3.resource(
                "dynamodb",
                endpoint_url=endpoint_url or config.DYNAMODB_ENDPOINT,
                region_name=region_name or config.AWS_REGION,
            )
        return cls(dynamodb_resource.Table(table_name or config.TABLE_NAME))

    def get(self, key: str) -> dict | None:
        try:
            response = self._table.get_item(
                Key={self._partition_key_name: key},
                ConsistentRead=True,
            )
        except (ClientError, BotoCoreError) as err:
            raise ReadFailed(key, err) from err

        item = response.get("Item")
        if item is None:
            return None
        return item.get(self._attribute_name, {})

    def put_many(self, items: dict[str, dict]) -> None:
        if not items:
            return
        if len(items) > MAX_TRANSACTION_ITEMS:
            raise SaveFailed(f"{len(items)} records exceed one transaction")

        try:
            if len(items) == 1:
                key, data = next(iter(items.items()))
                self._table.put_item(Item=self._item(key, data))
                return

            self._table.meta.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self._table.name,
                            "Item": {
                                name: self._serializer.serialize(value)
                                for name, value in self._item(key, data).items()
                            },
                        }
                    }
                    for key, data in items.items()
                ]
            )
        except (ClientError, BotoCoreError) as err:
            logger.error(f"DynamoDB write of {len(items)} records failed: {err}")
            raise SaveFailed(", ".join(items), err) from err

    def delete(self, key: str) -> None:
        try:
            self._table.delete_item(Key={self._partition_key_name: key})
        except (ClientError, BotoCoreError) as err:
            raise SaveFailed(f"delete {key}", err) from err

    def _item(self, key: str, data: dict) -> dict:
        return {self._partition_key_name: key, self._attribute_name: data}


class ProgressStore:
    """
    Object store for children, lessons and family activities.

    Loaded entities are cached, so every service sharing the store sees
    the same Child object and each other's in-memory mutations. Nothing
    reaches the backend until save() is called.

    The store is shared by all children of a session. Its maps are
    guarded by a lock; each child's aggregate is only mutated by the
    thread holding that child's session lock, so save(child) writes one
    consistent aggregate.
    """

    def __init__(self, backend):
        """
        Initialize the store.

        Args:
            backend: Object with get(key), put_many(items) and delete(key).
        """
        self._backend = backend
        self._lock = threading.RLock()
        self._children: dict[str, Child] = {}
        self._lessons: list[Lesson] | None = None
        self._family_activities: list[FamilyActivity] | None = None
        self._catalog_dirty = False  # Catalog is only written after seeding

    # Children

    def get_child(self, child_id: str) -> Child | None:
        """
        Load a child profile.

        Raises:
            ReadFailed: If the backend cannot be read.
        """
        with self._lock:
            if child_id in self._children:
                return self._children[child_id]

        data = self._backend.get(child_key(child_id))
        if data is None:
            return None

        with self._lock:
            # Another thread may have loaded the same child meanwhile
            return self._children.setdefault(child_id, Child.from_dict(data))

    def add_child(self, child: Child) -> None:
        """Track a new child profile (written on the next save)."""
        with self._lock:
            self._children[child.id] = child

    def delete_child(self, child_id: str) -> None:
        """Delete a child with its lesson progress and achievements."""
        with self._lock:
            self._children.pop(child_id, None)
        self._backend.delete(child_key(child_id))

    # Catalog

    def _load_catalog(self) -> None:
        with self._lock:
            if self._lessons is not None:
                return

            data = self._backend.get(CATALOG_KEY) or {}
            self._lessons = [Lesson.from_dict(item) for item in data.get(ATTR_LESSONS, [])]
            self._family_activities = [
                FamilyActivity.from_dict(item) for item in data.get(ATTR_FAMILY_ACTIVITIES, [])
            ]

    def add_lessons(self, lessons: list[Lesson]) -> None:
        """Seed lessons into the catalog."""
        with self._lock:
            self._load_catalog()
            self._lessons.extend(lessons)
            self._catalog_dirty = True

    def add_family_activities(self, activities: list[FamilyActivity]) -> None:
        """Seed family activities into the catalog."""
        with self._lock:
            self._load_catalog()
            self._family_activities.extend(activities)
            self._catalog_dirty = True

    def mark_catalog_changed(self) -> None:
        """Flag in-place catalog edits (e.g. a completed family activity) for the next save."""
        with self._lock:
            self._catalog_dirty = True

    def fetch_lessons(self, predicate: Callable[[Lesson], bool] | None = None) -> list[Lesson]:
        """
        Find lessons, sorted by their order.

        Raises:
            ReadFailed: If the backend cannot be read.
        """
        self._load_catalog()
        with self._lock:
            lessons = [
                lesson for lesson in self._lessons if predicate is None or predicate(lesson)
            ]
        return sorted(lessons, key=lambda lesson: lesson.order)

    def fetch_lessons_for_week(self, week_number: int) -> list[Lesson]:
        return self.fetch_lessons(lambda lesson: lesson.week_number == week_number)

    def get_lesson(self, lesson_id: str) -> Lesson | None:
        for lesson in self.fetch_lessons():
            if lesson.id == lesson_id:
                return lesson
        return None

    def fetch_family_activities(
        self, predicate: Callable[[FamilyActivity], bool] | None = None
    ) -> list[FamilyActivity]:
        """
        Find family activities.

        Raises:
            ReadFailed: If the backend cannot be read.
        """
        self._load_catalog()
        with self._lock:
            return [
                activity
                for activity in self._family_activities
                if predicate is None or predicate(activity)
            ]

    # Progress rows and achievements

    def fetch_lesson_progress(self, child_id: str, lesson_id: str) -> LessonProgress | None:
        """Find the progress row for (lesson, child)."""
        child = self.get_child(child_id)
        if child is None:
            return None
        return child.progress_for(lesson_id)

    def insert_lesson_progress(self, child: Child, progress: LessonProgress) -> None:
        if child.progress_for(progress.lesson_id) is not None:
            raise ValueError(f"Progress for lesson {progress.lesson_id} already exists")
        child.lesson_progress.append(progress)

    def insert_achievement(self, child: Child, achievement: Achievement) -> None:
        if child.has_achievement(achievement.achievement_type):
            raise ValueError(f"{achievement.achievement_type.value} is already unlocked")
        child.achievements.append(achievement)

    # Commit

    def save(self, child: Child | None = None) -> None:
        """
        Commit records to the backend.

        Args:
            child: Write only this child's aggregate. Without it, every
                   tracked child is written. A changed catalog is
                   written with either.

        Raises:
            SaveFailed: If the backend rejects the write. In-memory
                        objects keep their changes.
        """
        with self._lock:
            children = [child] if child is not None else list(self._children.values())
            items = {child_key(c.id): c.to_dict() for c in children}

            catalog_written = self._catalog_dirty and self._lessons is not None
            if catalog_written:
                items[CATALOG_KEY] = {
                    ATTR_LESSONS: [lesson.to_dict() for lesson in self._lessons],
                    ATTR_FAMILY_ACTIVITIES: [a.to_dict() for a in self._family_activities],
                }
                self._catalog_dirty = False

        try:
            self._backend.put_many(items)
        except SaveFailed:
            if catalog_written:
                self.mark_catalog_changed()
            raise
        logger.debug(f"Saved {len(items)} records")


def create_dynamodb_store(table_name: str | None = None) -> ProgressStore:
    """
    Factory function for a store backed by the configured DynamoDB table.

    Args:
        table_name: Overrides SIDRAT_TABLE_NAME.
    """
    return ProgressStore(DynamoDbBackend.from_config(table_name=table_name))
