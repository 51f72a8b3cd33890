"""
Repository pattern implementations over a record store.
"""

import threading
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from ..core.entities import (
    AbstractEntity, Activity, Assessment, Category, Course, Group, PeerEvaluation
)
from ..core.enums import StoreTable
from ..core.exceptions import NotFoundError
from ..core.interfaces import RecordStore, Repository
from .record_store import PRIMARY_KEY

T = TypeVar('T', bound=AbstractEntity)


class BaseRepository(Repository[T], Generic[T]):
    """Base repository implementation with common functionality.

    Entities are minted with client-side ids; the id is written both as the
    primary key column and as ``id`` so either lookup finds the record.
    """

    def __init__(self, store: RecordStore, table: StoreTable, entity_class: Type[T],
                 id_column: str = PRIMARY_KEY):
        self._store = store
        self._table = table
        self._entity_class = entity_class
        self._id_column = id_column
        self._lock = threading.RLock()

    @property
    def table(self) -> StoreTable:
        return self._table

    def add(self, entity: T) -> T:
        """Insert a new entity."""
        record = entity.to_record()
        record[self._id_column] = entity.id
        with self._lock:
            self._store.insert(self._table, [record])
        return entity

    def find_by_id(self, entity_id: str) -> T:
        """Find entity by ID. Raises NotFoundError when missing."""
        with self._lock:
            records = self._store.read(self._table, {self._id_column: entity_id})
        if not records:
            raise NotFoundError(
                f"{self._entity_class.__name__} {entity_id} not found",
                error_code="not_found",
                details={'table': self._table.value, 'id': entity_id}
            )
        return self._entity_class.from_record(records[0])

    def find_by(self, field: str, value: Any) -> List[T]:
        """Find all entities whose field equals value."""
        with self._lock:
            records = self._store.read(self._table, {field: value})
        return [self._entity_class.from_record(record) for record in records]

    def find_all(self) -> List[T]:
        """Find all entities in the table."""
        with self._lock:
            records = self._store.read(self._table)
        return [self._entity_class.from_record(record) for record in records]

    def update(self, entity_id: str, updates: Dict[str, Any]) -> None:
        """Apply a partial update."""
        with self._lock:
            self._store.update(self._table, self._id_column, entity_id, updates)

    def delete(self, entity_id: str) -> None:
        """Delete an entity by ID."""
        with self._lock:
            self._store.delete(self._table, self._id_column, entity_id)


class CourseRepository(BaseRepository[Course]):
    """Repository for courses."""

    def __init__(self, store: RecordStore):
        super().__init__(store, StoreTable.COURSE, Course)

    def find_by_teacher(self, teacher_id: str) -> List[Course]:
        return self.find_by("teacherId", teacher_id)

    def find_by_registration_code(self, code: str) -> Optional[Course]:
        courses = self.find_by("registrationCode", code)
        return courses[0] if courses else None


class CategoryRepository(BaseRepository[Category]):
    """Repository for categories."""

    def __init__(self, store: RecordStore):
        super().__init__(store, StoreTable.CATEGORY, Category)

    def find_by_course(self, course_id: str) -> List[Category]:
        return self.find_by("courseId", course_id)


class GroupRepository(BaseRepository[Group]):
    """Repository for groups."""

    def __init__(self, store: RecordStore):
        super().__init__(store, StoreTable.GROUP, Group)

    def find_by_category(self, category_id: str) -> List[Group]:
        return self.find_by("categoryId", category_id)

    def find_by_course(self, course_id: str) -> List[Group]:
        return self.find_by("courseId", course_id)


class ActivityRepository(BaseRepository[Activity]):
    """Repository for activities."""

    def __init__(self, store: RecordStore):
        super().__init__(store, StoreTable.ACTIVITY, Activity)

    def find_by_course(self, course_id: str) -> List[Activity]:
        return self.find_by("courseId", course_id)


class AssessmentRepository(BaseRepository[Assessment]):
    """Repository for assessments."""

    def __init__(self, store: RecordStore):
        super().__init__(store, StoreTable.ASSESSMENT, Assessment)

    def find_by_activity(self, activity_id: str) -> List[Assessment]:
        return self.find_by("activityId", activity_id)

    def find_by_course(self, course_id: str) -> List[Assessment]:
        return self.find_by("courseId", course_id)


class PeerEvaluationRepository(BaseRepository[PeerEvaluation]):
    """Repository for peer evaluations."""

    def __init__(self, store: RecordStore):
        super().__init__(store, StoreTable.PEER_EVALUATION, PeerEvaluation)

    def find_by_assessment(self, assessment_id: str) -> List[PeerEvaluation]:
        return self.find_by("assessmentId", assessment_id)

    def find_by_evaluator(self, assessment_id: str, evaluator_id: str) -> List[PeerEvaluation]:
        return [
            evaluation for evaluation in self.find_by("evaluatorId", evaluator_id)
            if evaluation.assessment_id == assessment_id
        ]
