from datetime import timedelta

import pytest

from peereval.core.enums import DenialReason
from peereval.core.exceptions import ValidationError
from peereval.services.eligibility import (
    can_edit, can_submit, invalid_criteria, ratings_complete, validate_ratings
)

from conftest import GOOD_RATINGS, T0, make_assessment, make_evaluation, make_group


OPEN = T0 + timedelta(minutes=10)
GROUP = make_group(["ana", "beto", "carla"])


def test_groupmate_can_be_evaluated() -> None:
    result = can_submit(make_assessment(), "ana", "beto", [], GROUP, now=OPEN)

    assert result.allowed is True
    assert result.reason is None
    assert result.message is None


def test_checks_run_in_order() -> None:
    cancelled = make_assessment(cancelled=True)
    result = can_submit(cancelled, "ana", "ana", [], None, now=T0 - timedelta(hours=1))
    assert result.reason == DenialReason.CANCELLED

    result = can_submit(make_assessment(), "ana", "ana", [], None, now=T0 - timedelta(minutes=1))
    assert result.reason == DenialReason.NOT_STARTED

    result = can_submit(make_assessment(), "ana", "ana", [], None, now=T0 + timedelta(minutes=61))
    assert result.reason == DenialReason.EXPIRED

    result = can_submit(make_assessment(), "ana", "ana", [], None, now=OPEN)
    assert result.reason == DenialReason.SELF_EVALUATION

    result = can_submit(make_assessment(), "ana", "zoe", [], GROUP, now=OPEN)
    assert result.reason == DenialReason.NOT_GROUPMATE


@pytest.mark.parametrize("student", ["ana", "beto", "outsider"])
def test_self_evaluation_is_always_denied_in_open_window(student) -> None:
    existing = [make_evaluation(student, "carla", GOOD_RATINGS)] if student != "outsider" else []

    result = can_submit(make_assessment(), student, student, existing, GROUP, now=OPEN)

    assert result.allowed is False
    assert result.reason == DenialReason.SELF_EVALUATION
    assert result.message == "No puedes evaluarte a ti mismo"


def test_missing_group_means_not_groupmate() -> None:
    result = can_submit(make_assessment(), "ana", "beto", [], None, now=OPEN)

    assert result.reason == DenialReason.NOT_GROUPMATE


def test_duplicate_submission_is_rejected() -> None:
    existing = [make_evaluation("ana", "beto", GOOD_RATINGS)]

    result = can_submit(make_assessment(), "ana", "beto", existing, GROUP, now=OPEN)

    assert result.reason == DenialReason.ALREADY_EVALUATED
    assert result.message == "Ya has evaluado a este compañero"


def test_evaluations_of_other_assessments_do_not_count() -> None:
    existing = [make_evaluation("ana", "beto", GOOD_RATINGS, assessment_id="assessment-0")]

    assert can_submit(make_assessment(), "ana", "beto", existing, GROUP, now=OPEN).allowed


def test_eligibility_is_deterministic() -> None:
    existing = [make_evaluation("ana", "carla", GOOD_RATINGS)]
    assessment = make_assessment()

    first = [can_submit(assessment, "ana", mate, existing, GROUP, now=OPEN) for mate in ("beto", "carla")]
    second = [can_submit(assessment, "ana", mate, existing, GROUP, now=OPEN) for mate in ("beto", "carla")]

    assert first == second


def test_window_edges_are_inclusive() -> None:
    assessment = make_assessment()

    assert can_submit(assessment, "ana", "beto", [], GROUP, now=T0).allowed
    assert can_submit(assessment, "ana", "beto", [], GROUP, now=assessment.end_at).allowed


def test_editing_requires_previous_evaluation() -> None:
    assessment = make_assessment()

    result = can_edit(assessment, "ana", "beto", [], GROUP, now=OPEN)
    assert result.reason == DenialReason.NOT_EVALUATED

    existing = [make_evaluation("ana", "beto", GOOD_RATINGS)]
    assert can_edit(assessment, "ana", "beto", existing, GROUP, now=OPEN).allowed

    closed = can_edit(assessment, "ana", "beto", existing, GROUP, now=T0 + timedelta(hours=2))
    assert closed.reason == DenialReason.EXPIRED


def test_result_serializes_reason() -> None:
    result = can_submit(make_assessment(cancelled=True), "ana", "beto", [], GROUP, now=OPEN)

    assert result.to_dict() == {
        'allowed': False,
        'reason': "cancelled",
        'message': "Esta evaluación ha sido cancelada",
    }


def test_ratings_in_range_pass() -> None:
    assert ratings_complete(GOOD_RATINGS)
    assert validate_ratings(dict(GOOD_RATINGS, extra=9)) == GOOD_RATINGS


@pytest.mark.parametrize("ratings,bad", [
    ({'punctuality': 0, 'contributions': 3, 'commitment': 3, 'attitude': 3}, ["punctuality"]),
    ({'punctuality': 3, 'contributions': 6, 'commitment': 3, 'attitude': 3}, ["contributions"]),
    ({'punctuality': 3, 'contributions': 3, 'attitude': 3}, ["commitment"]),
    ({'punctuality': 3, 'contributions': 3, 'commitment': 3.5, 'attitude': True}, ["commitment", "attitude"]),
    ({'punctuality': "4", 'contributions': None, 'commitment': 3, 'attitude': 3}, ["punctuality", "contributions"]),
])
def test_bad_ratings_are_rejected(ratings, bad) -> None:
    assert invalid_criteria(ratings) == bad
    assert ratings_complete(ratings) is False
    with pytest.raises(ValidationError) as excinfo:
        validate_ratings(ratings)
    assert excinfo.value.details['criteria'] == bad
