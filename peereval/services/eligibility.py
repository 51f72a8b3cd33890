"""
Rules deciding whether a student may submit (or edit) an evaluation, and the
rating checks that run before anything is written.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.entities import Assessment, Group, PeerEvaluation
from ..core.enums import CRITERIA, MAX_RATING, MIN_RATING, DenialReason
from ..core.exceptions import ValidationError
from .assessment_window import utc_now


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of an eligibility check. A denial is a normal result."""
    allowed: bool
    reason: Optional[DenialReason] = None

    @property
    def message(self) -> Optional[str]:
        return self.reason.message if self.reason else None

    @classmethod
    def allow(cls) -> 'EligibilityResult':
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason) -> 'EligibilityResult':
        return cls(allowed=False, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allowed': self.allowed,
            'reason': self.reason.value if self.reason else None,
            'message': self.message,
        }


def _window_denial(assessment: Assessment, now: datetime) -> Optional[DenialReason]:
    if assessment.cancelled:
        return DenialReason.CANCELLED
    if assessment.start_at is not None:
        if now < assessment.start_at:
            return DenialReason.NOT_STARTED
        if now > assessment.end_at:
            return DenialReason.EXPIRED
    return None


def _has_evaluated(evaluations: Iterable[PeerEvaluation], assessment_id: str,
                   evaluator_id: str, evaluatee_id: str) -> bool:
    return any(e.matches(assessment_id, evaluator_id, evaluatee_id) for e in evaluations)


def can_submit(assessment: Assessment, evaluator_id: str, evaluatee_id: str,
               existing_evaluations: Iterable[PeerEvaluation], evaluator_group: Optional[Group],
               now: Optional[datetime] = None) -> EligibilityResult:
    """Check, in order, window, self-exclusion, group membership and duplicates.

    The first failing rule wins. Given the same ``now`` the result depends on
    the arguments only.
    """
    now = now or utc_now()
    denial = _window_denial(assessment, now)
    if denial:
        return EligibilityResult.deny(denial)
    if evaluatee_id == evaluator_id:
        return EligibilityResult.deny(DenialReason.SELF_EVALUATION)
    if evaluator_group is None or not evaluator_group.has_member(evaluatee_id):
        return EligibilityResult.deny(DenialReason.NOT_GROUPMATE)
    if _has_evaluated(existing_evaluations, assessment.id, evaluator_id, evaluatee_id):
        return EligibilityResult.deny(DenialReason.ALREADY_EVALUATED)
    return EligibilityResult.allow()


def can_edit(assessment: Assessment, evaluator_id: str, evaluatee_id: str,
             existing_evaluations: Iterable[PeerEvaluation], evaluator_group: Optional[Group],
             now: Optional[datetime] = None) -> EligibilityResult:
    """Editing needs an open window and a previous evaluation of the same pair."""
    now = now or utc_now()
    denial = _window_denial(assessment, now)
    if denial:
        return EligibilityResult.deny(denial)
    if evaluatee_id == evaluator_id:
        return EligibilityResult.deny(DenialReason.SELF_EVALUATION)
    if evaluator_group is None or not evaluator_group.has_member(evaluatee_id):
        return EligibilityResult.deny(DenialReason.NOT_GROUPMATE)
    if not _has_evaluated(existing_evaluations, assessment.id, evaluator_id, evaluatee_id):
        return EligibilityResult.deny(DenialReason.NOT_EVALUATED)
    return EligibilityResult.allow()


def _is_valid_rating(value: Any) -> bool:
    return (isinstance(value, int) and not isinstance(value, bool)
            and MIN_RATING <= value <= MAX_RATING)


def invalid_criteria(ratings: Mapping[str, Any]) -> List[str]:
    """Criteria whose rating is missing or outside the allowed range."""
    return [
        criterion.value for criterion in CRITERIA
        if not _is_valid_rating(ratings.get(criterion.value))
    ]


def ratings_complete(ratings: Mapping[str, Any]) -> bool:
    """Bulk check: all four criteria present and in range."""
    return not invalid_criteria(ratings)


def validate_ratings(ratings: Mapping[str, Any]) -> Dict[str, int]:
    """Return the four ratings or raise ValidationError naming the bad ones."""
    invalid = invalid_criteria(ratings)
    if invalid:
        raise ValidationError(
            f"Ratings must be integers between {MIN_RATING} and {MAX_RATING}: {', '.join(invalid)}",
            error_code="invalid_ratings",
            details={'criteria': invalid}
        )
    return {criterion.value: ratings[criterion.value] for criterion in CRITERIA}
