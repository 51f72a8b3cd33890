"""
Core entities for the peereval engine.

Every entity is built from, and written back to, a plain store record with
camelCase keys. The canonical id is resolved once in ``from_record``.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from .enums import Criterion, ScoreBand
from .exceptions import ValidationError
from .identity import resolve_canonical_id


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {value!r}")
    else:
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime the way the store keeps it."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _as_list(value: Any) -> List[Any]:
    """Accept arrays stored either natively or as JSON-encoded text."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            raise ValidationError(f"Expected a JSON array, got {value!r}")
        if not isinstance(decoded, list):
            raise ValidationError(f"Expected a JSON array, got {value!r}")
        return decoded
    return list(value)


def _validate_capacity(capacity: Any) -> Optional[int]:
    if capacity is None:
        return None
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
        raise ValidationError(
            "Group capacity must be a positive integer",
            details={'capacity': capacity}
        )
    return capacity


class AbstractEntity(ABC):
    """Base entity carrying the canonical identifier."""

    def __init__(self, entity_id: str):
        if not entity_id:
            raise ValidationError(f"{self.__class__.__name__} requires an id")
        self._id = entity_id

    @property
    def id(self) -> str:
        """Get the entity ID."""
        return self._id

    @abstractmethod
    def to_record(self) -> Dict[str, Any]:
        """Convert entity to a store record."""
        pass

    @classmethod
    @abstractmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'AbstractEntity':
        """Build an entity from a store record."""
        pass

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AbstractEntity):
            return NotImplemented
        return type(self) is type(other) and self.to_record() == other.to_record()

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._id))

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id!r})"


class Course(AbstractEntity):
    """Course owned by a teacher, joined by students through a registration code."""

    def __init__(self, entity_id: str, name: str, teacher_id: str, registration_code: str,
                 description: Optional[str] = None, student_ids: Optional[List[str]] = None,
                 invitations: Optional[List[str]] = None):
        super().__init__(entity_id)
        if not name or not name.strip():
            raise ValidationError("Course name is required")
        self._name = name.strip()
        self._teacher_id = teacher_id
        self._registration_code = registration_code
        self._description = description
        self._student_ids: List[str] = []
        self._invitations: List[str] = []
        for student_id in student_ids or []:
            self.add_student(student_id)
        for email in invitations or []:
            self.add_invitation(email)

    @property
    def name(self) -> str:
        return self._name

    @property
    def teacher_id(self) -> str:
        return self._teacher_id

    @property
    def registration_code(self) -> str:
        return self._registration_code

    @property
    def description(self) -> Optional[str]:
        return self._description

    @property
    def student_ids(self) -> List[str]:
        return list(self._student_ids)

    @property
    def invitations(self) -> List[str]:
        return list(self._invitations)

    def has_student(self, student_id: str) -> bool:
        """Check if a student is enrolled."""
        return student_id in self._student_ids

    def add_student(self, student_id: str) -> bool:
        """Enroll a student. Returns False if already enrolled."""
        if student_id in self._student_ids:
            return False
        self._student_ids.append(student_id)
        return True

    def add_invitation(self, email: str) -> bool:
        """Record a pending invitation. Returns False if already invited."""
        normalized = email.strip().lower()
        if normalized in self._invitations:
            return False
        self._invitations.append(normalized)
        return True

    def remove_invitation(self, email: str) -> bool:
        """Drop a pending invitation."""
        normalized = email.strip().lower()
        if normalized not in self._invitations:
            return False
        self._invitations.remove(normalized)
        return True

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self._id,
            'name': self._name,
            'description': self._description,
            'teacherId': self._teacher_id,
            'registrationCode': self._registration_code,
            'studentIds': list(self._student_ids),
            'invitations': list(self._invitations),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Course':
        return cls(
            entity_id=resolve_canonical_id(record),
            name=record.get("name", ""),
            teacher_id=record.get("teacherId", ""),
            registration_code=str(record.get("registrationCode") or ""),
            description=record.get("description"),
            student_ids=_as_list(record.get("studentIds")),
            invitations=_as_list(record.get("invitations")),
        )


class Category(AbstractEntity):
    """Grouping scheme inside a course."""

    def __init__(self, entity_id: str, course_id: str, name: str, random_groups: bool,
                 max_students_per_group: Optional[int] = None):
        super().__init__(entity_id)
        if not name or not name.strip():
            raise ValidationError("Category name is required")
        self._course_id = course_id
        self._name = name.strip()
        self._random_groups = bool(random_groups)
        self._max_students_per_group = _validate_capacity(max_students_per_group)

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def random_groups(self) -> bool:
        return self._random_groups

    @property
    def max_students_per_group(self) -> Optional[int]:
        return self._max_students_per_group

    @property
    def is_bounded(self) -> bool:
        return self._max_students_per_group is not None

    def set_max_students_per_group(self, capacity: Optional[int]) -> None:
        """Change the group capacity."""
        self._max_students_per_group = _validate_capacity(capacity)

    def set_random_groups(self, random_groups: bool) -> None:
        """Switch between random and free assignment."""
        self._random_groups = bool(random_groups)

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self._id,
            'courseId': self._course_id,
            'name': self._name,
            'randomGroups': self._random_groups,
            'maxStudentsPerGroup': self._max_students_per_group,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Category':
        capacity = record.get("maxStudentsPerGroup")
        if isinstance(capacity, str) and capacity.strip().isdigit():
            capacity = int(capacity)
        return cls(
            entity_id=resolve_canonical_id(record),
            course_id=record.get("courseId", ""),
            name=record.get("name", ""),
            random_groups=bool(record.get("randomGroups", False)),
            max_students_per_group=capacity or None,
        )


class Group(AbstractEntity):
    """Roster of students inside a category."""

    def __init__(self, entity_id: str, course_id: str, category_id: str, name: str,
                 member_ids: Optional[List[str]] = None):
        super().__init__(entity_id)
        self._course_id = course_id
        self._category_id = category_id
        self._name = name
        self._member_ids: List[str] = list(member_ids or [])

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def category_id(self) -> str:
        return self._category_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def member_ids(self) -> List[str]:
        return list(self._member_ids)

    @property
    def size(self) -> int:
        return len(self._member_ids)

    def has_member(self, student_id: str) -> bool:
        """Check if a student belongs to the group."""
        return student_id in self._member_ids

    def is_full(self, capacity: Optional[int]) -> bool:
        """Check whether the group reached the given capacity."""
        return capacity is not None and len(self._member_ids) >= capacity

    def add_member(self, student_id: str, capacity: Optional[int] = None) -> None:
        """Add a student, enforcing uniqueness and capacity."""
        if student_id in self._member_ids:
            raise ValidationError(
                f"Student {student_id} is already in group {self._name}",
                details={'group_id': self._id, 'student_id': student_id}
            )
        if self.is_full(capacity):
            raise ValidationError(
                f"Group {self._name} is full",
                details={'group_id': self._id, 'capacity': capacity}
            )
        self._member_ids.append(student_id)

    def remove_member(self, student_id: str) -> bool:
        """Remove a student. Returns False if not a member."""
        if student_id not in self._member_ids:
            return False
        self._member_ids.remove(student_id)
        return True

    def truncate(self, capacity: int) -> List[str]:
        """Keep the first ``capacity`` members and return the ones dropped."""
        dropped = self._member_ids[capacity:]
        self._member_ids = self._member_ids[:capacity]
        return dropped

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self._id,
            'courseId': self._course_id,
            'categoryId': self._category_id,
            'name': self._name,
            'memberIds': list(self._member_ids),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Group':
        return cls(
            entity_id=resolve_canonical_id(record),
            course_id=record.get("courseId", ""),
            category_id=record.get("categoryId", ""),
            name=record.get("name", ""),
            member_ids=[str(member) for member in _as_list(record.get("memberIds"))],
        )


class Activity(AbstractEntity):
    """Course activity bound to a category; assessments hang from it."""

    def __init__(self, entity_id: str, course_id: str, category_id: str, name: str,
                 description: Optional[str] = None, due_date: Optional[datetime] = None,
                 visible: bool = True):
        super().__init__(entity_id)
        if not name or not name.strip():
            raise ValidationError("Activity name is required")
        self._course_id = course_id
        self._category_id = category_id
        self._name = name.strip()
        self._description = description
        self._due_date = due_date
        self._visible = bool(visible)

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def category_id(self) -> str:
        return self._category_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> Optional[str]:
        return self._description

    @property
    def due_date(self) -> Optional[datetime]:
        return self._due_date

    @property
    def visible(self) -> bool:
        return self._visible

    def set_visible(self, visible: bool) -> None:
        self._visible = bool(visible)

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self._id,
            'courseId': self._course_id,
            'categoryId': self._category_id,
            'name': self._name,
            'description': self._description,
            'dueDate': format_timestamp(self._due_date),
            'visible': self._visible,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Activity':
        return cls(
            entity_id=resolve_canonical_id(record),
            course_id=record.get("courseId", ""),
            category_id=record.get("categoryId", ""),
            name=record.get("name", ""),
            description=record.get("description"),
            due_date=parse_timestamp(record.get("dueDate")),
            visible=bool(record.get("visible", False)),
        )


class Assessment(AbstractEntity):
    """One timed round of peer evaluation tied to an activity."""

    def __init__(self, entity_id: str, activity_id: str, course_id: str, title: str,
                 duration_minutes: int, start_at: Optional[datetime],
                 cancelled: bool = False, grades_visible: bool = False):
        super().__init__(entity_id)
        if not title or not title.strip():
            raise ValidationError("Assessment title is required")
        if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int) or duration_minutes <= 0:
            raise ValidationError(
                "Assessment duration must be a positive number of minutes",
                details={'duration_minutes': duration_minutes}
            )
        self._activity_id = activity_id
        self._course_id = course_id
        self._title = title.strip()
        self._duration_minutes = duration_minutes
        self._start_at = start_at
        self._cancelled = bool(cancelled)
        self._grades_visible = bool(grades_visible)

    @property
    def activity_id(self) -> str:
        return self._activity_id

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def title(self) -> str:
        return self._title

    @property
    def duration_minutes(self) -> int:
        return self._duration_minutes

    @property
    def start_at(self) -> Optional[datetime]:
        return self._start_at

    @property
    def end_at(self) -> Optional[datetime]:
        """Derived end of the window."""
        if self._start_at is None:
            return None
        return self._start_at + timedelta(minutes=self._duration_minutes)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def grades_visible(self) -> bool:
        return self._grades_visible

    def cancel(self) -> None:
        """Cancel the assessment. There is no way back."""
        self._cancelled = True

    def set_grades_visible(self, visible: bool) -> None:
        self._grades_visible = bool(visible)

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self._id,
            'activityId': self._activity_id,
            'courseId': self._course_id,
            'title': self._title,
            'durationMinutes': self._duration_minutes,
            'startAt': format_timestamp(self._start_at),
            'endAt': format_timestamp(self.end_at),
            'cancelled': self._cancelled,
            'gradesVisible': self._grades_visible,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Assessment':
        duration = record.get("durationMinutes")
        if isinstance(duration, str) and duration.strip().isdigit():
            duration = int(duration)
        return cls(
            entity_id=resolve_canonical_id(record),
            activity_id=record.get("activityId", ""),
            course_id=record.get("courseId", ""),
            title=record.get("title", ""),
            duration_minutes=duration,
            start_at=parse_timestamp(record.get("startAt")),
            cancelled=bool(record.get("cancelled", False)),
            grades_visible=bool(record.get("gradesVisible", False)),
        )


class PeerEvaluation(AbstractEntity):
    """One student's ratings of one groupmate for one assessment."""

    def __init__(self, entity_id: str, assessment_id: str, evaluator_id: str, evaluatee_id: str,
                 punctuality: int, contributions: int, commitment: int, attitude: int):
        super().__init__(entity_id)
        if evaluator_id == evaluatee_id:
            raise ValidationError(
                "A student cannot evaluate themselves",
                details={'evaluator_id': evaluator_id}
            )
        self._assessment_id = assessment_id
        self._evaluator_id = evaluator_id
        self._evaluatee_id = evaluatee_id
        self._ratings: Dict[Criterion, int] = {
            Criterion.PUNCTUALITY: punctuality,
            Criterion.CONTRIBUTIONS: contributions,
            Criterion.COMMITMENT: commitment,
            Criterion.ATTITUDE: attitude,
        }

    @property
    def assessment_id(self) -> str:
        return self._assessment_id

    @property
    def evaluator_id(self) -> str:
        return self._evaluator_id

    @property
    def evaluatee_id(self) -> str:
        return self._evaluatee_id

    @property
    def punctuality(self) -> int:
        return self._ratings[Criterion.PUNCTUALITY]

    @property
    def contributions(self) -> int:
        return self._ratings[Criterion.CONTRIBUTIONS]

    @property
    def commitment(self) -> int:
        return self._ratings[Criterion.COMMITMENT]

    @property
    def attitude(self) -> int:
        return self._ratings[Criterion.ATTITUDE]

    def rating(self, criterion: Criterion) -> int:
        return self._ratings[criterion]

    @property
    def ratings(self) -> Dict[str, int]:
        """Ratings keyed by the criterion's record field name."""
        return {criterion.value: value for criterion, value in self._ratings.items()}

    def matches(self, assessment_id: str, evaluator_id: str, evaluatee_id: str) -> bool:
        """Check if this evaluation is for the given triple."""
        return (self._assessment_id == assessment_id and
                self._evaluator_id == evaluator_id and
                self._evaluatee_id == evaluatee_id)

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            'id': self._id,
            'assessmentId': self._assessment_id,
            'evaluatorId': self._evaluator_id,
            'evaluateeId': self._evaluatee_id,
        }
        record.update(self.ratings)
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'PeerEvaluation':
        return cls(
            entity_id=resolve_canonical_id(record),
            assessment_id=record.get("assessmentId", ""),
            evaluator_id=record.get("evaluatorId", ""),
            evaluatee_id=record.get("evaluateeId", ""),
            punctuality=record.get("punctuality"),
            contributions=record.get("contributions"),
            commitment=record.get("commitment"),
            attitude=record.get("attitude"),
        )


@dataclass(frozen=True)
class StudentScore:
    """Aggregate of the evaluations one student received. Never persisted."""
    student_id: str
    average_punctuality: float = 0.0
    average_contributions: float = 0.0
    average_commitment: float = 0.0
    average_attitude: float = 0.0
    overall_average: float = 0.0
    evaluations_count: int = 0

    @property
    def is_rated(self) -> bool:
        return self.evaluations_count > 0

    @property
    def band(self) -> ScoreBand:
        return ScoreBand.classify(self.overall_average)

    def average(self, criterion: Criterion) -> float:
        return getattr(self, f"average_{criterion.value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'student_id': self.student_id,
            'average_punctuality': self.average_punctuality,
            'average_contributions': self.average_contributions,
            'average_commitment': self.average_commitment,
            'average_attitude': self.average_attitude,
            'overall_average': self.overall_average,
            'evaluations_count': self.evaluations_count,
            'band': self.band.label,
        }
