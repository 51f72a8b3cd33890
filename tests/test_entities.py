from datetime import datetime, timezone

import pytest

from peereval.core.entities import (
    Activity, Assessment, Category, Course, Group, PeerEvaluation, format_timestamp, parse_timestamp
)
from peereval.core.exceptions import ValidationError

from conftest import GOOD_RATINGS, make_group


def test_group_accepts_json_encoded_members() -> None:
    group = Group.from_record({
        '_id': "g1", 'courseId': "c1", 'categoryId': "cat", 'name': "Grupo 1",
        'memberIds': '["ana", "beto"]',
    })

    assert group.id == "g1"
    assert group.member_ids == ["ana", "beto"]


def test_group_rejects_malformed_member_text() -> None:
    with pytest.raises(ValidationError):
        Group.from_record({'_id': "g1", 'memberIds': "ana,beto"})


def test_group_membership_rules() -> None:
    group = make_group(["ana", "beto"])

    with pytest.raises(ValidationError):
        group.add_member("ana", capacity=5)
    with pytest.raises(ValidationError):
        group.add_member("carla", capacity=2)

    group.add_member("carla", capacity=3)
    assert group.member_ids == ["ana", "beto", "carla"]
    assert group.is_full(3)
    assert group.remove_member("beto") is True
    assert group.remove_member("beto") is False


def test_group_truncate_keeps_prefix() -> None:
    group = make_group(["a", "b", "c", "d"])

    assert group.truncate(2) == ["c", "d"]
    assert group.member_ids == ["a", "b"]


@pytest.mark.parametrize("capacity", [0, -1, True, 2.5])
def test_category_capacity_must_be_positive_int(capacity) -> None:
    with pytest.raises(ValidationError):
        Category("cat", "c1", "Proyecto", True, capacity)


def test_category_unbounded_capacity() -> None:
    category = Category.from_record({'_id': "cat", 'courseId': "c1", 'name': "Libre", 'maxStudentsPerGroup': None})

    assert category.max_students_per_group is None
    assert category.is_bounded is False
    assert Category.from_record({'_id': "cat", 'name': "X", 'maxStudentsPerGroup': "4"}).max_students_per_group == 4


def test_course_requires_name_and_dedupes() -> None:
    with pytest.raises(ValidationError):
        Course("c1", "   ", "teacher", "ABC123")

    course = Course("c1", " Móviles ", "teacher", "ABC123", student_ids=["ana", "ana"])
    assert course.name == "Móviles"
    assert course.student_ids == ["ana"]
    assert course.add_invitation("Beto@Uni.edu") is True
    assert course.add_invitation("beto@uni.edu") is False
    assert course.invitations == ["beto@uni.edu"]


def test_course_record_round_trip() -> None:
    course = Course("c1", "Móviles", "teacher", "ABC123", student_ids=["ana"], invitations=["x@y.co"])

    assert Course.from_record(dict(course.to_record(), _id="c1")) == course


def test_assessment_duration_validation() -> None:
    for duration in (0, -5, "60", None):
        with pytest.raises(ValidationError):
            Assessment("a1", "act", "c1", "Review", duration, None)

    parsed = Assessment.from_record({'_id': "a1", 'title': "Review", 'durationMinutes': "45"})
    assert parsed.duration_minutes == 45
    assert parsed.start_at is None
    assert parsed.end_at is None


def test_peer_evaluation_refuses_self() -> None:
    with pytest.raises(ValidationError):
        PeerEvaluation("e1", "a1", "ana", "ana", **GOOD_RATINGS)


def test_peer_evaluation_record_fields() -> None:
    evaluation = PeerEvaluation("e1", "a1", "ana", "beto", **GOOD_RATINGS)

    assert evaluation.to_record() == {
        'id': "e1", 'assessmentId': "a1", 'evaluatorId': "ana", 'evaluateeId': "beto",
        'punctuality': 5, 'contributions': 4, 'commitment': 4, 'attitude': 5,
    }
    assert evaluation.matches("a1", "ana", "beto")
    assert not evaluation.matches("a1", "beto", "ana")


def test_timestamps_are_utc() -> None:
    assert parse_timestamp("2025-03-10T14:00:00Z") == datetime(2025, 3, 10, 14, tzinfo=timezone.utc)
    assert parse_timestamp("2025-03-10T09:00:00-05:00") == datetime(2025, 3, 10, 14, tzinfo=timezone.utc)
    assert parse_timestamp("2025-03-10T14:00:00") == datetime(2025, 3, 10, 14, tzinfo=timezone.utc)
    assert parse_timestamp(None) is None
    assert format_timestamp(datetime(2025, 3, 10, 14, tzinfo=timezone.utc)) == "2025-03-10T14:00:00Z"
    with pytest.raises(ValidationError):
        parse_timestamp("yesterday")


def test_activity_from_record_defaults_to_hidden() -> None:
    activity = Activity.from_record({'_id': "act", 'courseId': "c1", 'categoryId': "cat", 'name': "Sprint 1"})

    assert activity.visible is False
    assert activity.due_date is None
