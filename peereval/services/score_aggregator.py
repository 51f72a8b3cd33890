"""
Aggregation of received peer evaluations into student scores.
"""

import math
from typing import Dict, Iterable, List, Optional, Sequence

from ..core.entities import Group, PeerEvaluation, StudentScore
from ..core.enums import CRITERIA, ScoreBand


NOT_AVAILABLE = "N/A"


def aggregate_for_student(evaluatee_id: str, evaluations: Iterable[PeerEvaluation]) -> StudentScore:
    """Average what one student received.

    Each criterion is averaged on its own; the overall average is the mean of
    the four criterion averages. No evaluations gives an all-zero score.
    """
    received = [e for e in evaluations if e.evaluatee_id == evaluatee_id]
    if not received:
        return StudentScore(student_id=evaluatee_id)

    count = len(received)
    averages: Dict[str, float] = {
        criterion.value: sum(e.rating(criterion) for e in received) / count
        for criterion in CRITERIA
    }
    overall = sum(averages.values()) / len(CRITERIA)

    return StudentScore(
        student_id=evaluatee_id,
        average_punctuality=averages["punctuality"],
        average_contributions=averages["contributions"],
        average_commitment=averages["commitment"],
        average_attitude=averages["attitude"],
        overall_average=overall,
        evaluations_count=count,
    )


def category_members(groups: Iterable[Group], category_id: Optional[str] = None) -> List[str]:
    """Union of group members in first-seen order."""
    seen = set()
    members = []
    for group in groups:
        if category_id is not None and group.category_id != category_id:
            continue
        for member in group.member_ids:
            if member not in seen:
                seen.add(member)
                members.append(member)
    return members


def aggregate_for_course(category_id: str, assessment_id: str, groups: Sequence[Group],
                         evaluations: Iterable[PeerEvaluation]) -> List[StudentScore]:
    """Teacher view: one score per category member, best first.

    Students without evaluations are included with a zero score. Ties keep
    the membership order.
    """
    relevant = [e for e in evaluations if e.assessment_id == assessment_id]
    scores = [aggregate_for_student(student_id, relevant)
              for student_id in category_members(groups, category_id)]
    return sorted(scores, key=lambda score: score.overall_average, reverse=True)


def classify_score(score: float) -> ScoreBand:
    return ScoreBand.classify(score)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_compact(score: float) -> str:
    """Single-digit rendering for table views."""
    if score == 0:
        return NOT_AVAILABLE
    return str(round_half_up(score))


def format_detailed(score: float) -> str:
    """Two-decimal rendering for the per-student breakdown."""
    if score == 0:
        return NOT_AVAILABLE
    return f"{score:.2f}"


def score_summary(score: StudentScore) -> Dict[str, object]:
    """Presentation payload for one score."""
    band = score.band
    return {
        'student_id': score.student_id,
        'evaluations_count': score.evaluations_count,
        'overall_average': score.overall_average,
        'overall': format_detailed(score.overall_average),
        'compact': format_compact(score.overall_average),
        'criteria': {
            criterion.value: {
                'label': criterion.label,
                'average': score.average(criterion),
                'display': format_detailed(score.average(criterion)),
                'compact': format_compact(score.average(criterion)),
            }
            for criterion in CRITERIA
        },
        'band': band.label,
        'color': band.color,
    }
