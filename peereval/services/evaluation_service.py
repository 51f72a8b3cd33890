"""
Evaluation service: submitting, editing and scoring peer evaluations.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..core.entities import Assessment, Group, PeerEvaluation, StudentScore
from ..core.enums import CRITERIA
from ..core.ids import RandomIdGenerator
from ..core.interfaces import IdGenerator
from ..persistence.repositories import (
    ActivityRepository, AssessmentRepository, GroupRepository, PeerEvaluationRepository
)
from .assessment_window import Clock, utc_now
from .eligibility import EligibilityResult, can_edit, can_submit, validate_ratings
from .score_aggregator import aggregate_for_course, aggregate_for_student
from .task_sequence import SequenceReport, TaskSequence


logger = logging.getLogger("peereval.services.evaluation_service")


@dataclass
class SubmissionResult:
    """Outcome of one submission: the eligibility verdict and, if allowed, the record."""
    evaluatee_id: str
    eligibility: EligibilityResult
    evaluation: Optional[PeerEvaluation] = None

    @property
    def accepted(self) -> bool:
        return self.eligibility.allowed and self.evaluation is not None


@dataclass
class BulkSubmissionResult:
    """Outcome of evaluating several groupmates at once."""
    results: List[SubmissionResult] = field(default_factory=list)
    report: Optional[SequenceReport] = None

    @property
    def accepted(self) -> bool:
        return bool(self.results) and all(result.accepted for result in self.results)

    @property
    def denied(self) -> List[SubmissionResult]:
        return [result for result in self.results if not result.eligibility.allowed]


@dataclass
class _EvaluatorContext:
    assessment: Assessment
    group: Optional[Group]
    existing: List[PeerEvaluation]


class EvaluationService:
    """Peer evaluation operations for students and teachers."""

    def __init__(self, assessments: AssessmentRepository, activities: ActivityRepository,
                 groups: GroupRepository, evaluations: PeerEvaluationRepository,
                 id_generator: Optional[IdGenerator] = None, clock: Optional[Clock] = None,
                 max_workers: int = 1):
        self._assessments = assessments
        self._activities = activities
        self._groups = groups
        self._evaluations = evaluations
        self._id_generator = id_generator or RandomIdGenerator()
        self._clock = clock or utc_now
        self._max_workers = max_workers

    def _category_groups(self, assessment: Assessment) -> List[Group]:
        activity = self._activities.find_by_id(assessment.activity_id)
        return self._groups.find_by_category(activity.category_id)

    def _context(self, assessment_id: str, evaluator_id: str) -> _EvaluatorContext:
        assessment = self._assessments.find_by_id(assessment_id)
        group = next(
            (g for g in self._category_groups(assessment) if g.has_member(evaluator_id)),
            None
        )
        existing = self._evaluations.find_by_evaluator(assessment.id, evaluator_id)
        return _EvaluatorContext(assessment=assessment, group=group, existing=existing)

    def _new_evaluation(self, assessment_id: str, evaluator_id: str, evaluatee_id: str,
                        ratings: Mapping[str, int]) -> PeerEvaluation:
        return PeerEvaluation(
            entity_id=self._id_generator.generate(),
            assessment_id=assessment_id,
            evaluator_id=evaluator_id,
            evaluatee_id=evaluatee_id,
            **ratings
        )

    def submit_evaluation(self, assessment_id: str, evaluator_id: str, evaluatee_id: str,
                          ratings: Mapping[str, Any]) -> SubmissionResult:
        """Validate, check eligibility and insert exactly one evaluation.

        A denial is returned, not raised. A failed insert propagates and is
        not retried.
        """
        checked = validate_ratings(ratings)
        context = self._context(assessment_id, evaluator_id)
        eligibility = can_submit(context.assessment, evaluator_id, evaluatee_id,
                                 context.existing, context.group, now=self._clock())
        if not eligibility.allowed:
            logger.info(
                "Evaluation denied",
                extra={'assessment_id': assessment_id, 'evaluator_id': evaluator_id,
                       'evaluatee_id': evaluatee_id, 'reason': eligibility.reason.value}
            )
            return SubmissionResult(evaluatee_id=evaluatee_id, eligibility=eligibility)

        evaluation = self._new_evaluation(assessment_id, evaluator_id, evaluatee_id, checked)
        self._evaluations.add(evaluation)
        logger.info(
            "Evaluation created",
            extra={'evaluation_id': evaluation.id, 'assessment_id': assessment_id,
                   'evaluator_id': evaluator_id, 'evaluatee_id': evaluatee_id}
        )
        return SubmissionResult(evaluatee_id=evaluatee_id, eligibility=eligibility, evaluation=evaluation)

    def submit_group_evaluations(self, assessment_id: str, evaluator_id: str,
                                 ratings_by_evaluatee: Mapping[str, Mapping[str, Any]]) -> BulkSubmissionResult:
        """Evaluate several groupmates in one confirmation.

        Every rating set is validated and every pair checked before the first
        write. If any pair is denied nothing is written. Inserts then run as
        one ordered sequence.
        """
        checked = {evaluatee_id: validate_ratings(ratings)
                   for evaluatee_id, ratings in ratings_by_evaluatee.items()}
        context = self._context(assessment_id, evaluator_id)
        now = self._clock()

        results = []
        for evaluatee_id in checked:
            eligibility = can_submit(context.assessment, evaluator_id, evaluatee_id,
                                     context.existing, context.group, now=now)
            results.append(SubmissionResult(evaluatee_id=evaluatee_id, eligibility=eligibility))

        bulk = BulkSubmissionResult(results=results)
        if bulk.denied or not results:
            return bulk

        sequence = TaskSequence(f"evaluations by {evaluator_id}", max_workers=self._max_workers)
        for result in results:
            evaluation = self._new_evaluation(assessment_id, evaluator_id, result.evaluatee_id,
                                              checked[result.evaluatee_id])
            result.evaluation = evaluation
            sequence.add(f"insert evaluation of {result.evaluatee_id}",
                         self._insert_action(evaluation), evaluation.id)
        bulk.report = sequence.run()

        logger.info(
            "Group evaluations created",
            extra={'assessment_id': assessment_id, 'evaluator_id': evaluator_id, 'count': len(results)}
        )
        return bulk

    def _insert_action(self, evaluation: PeerEvaluation):
        return lambda: self._evaluations.add(evaluation)

    def update_evaluation(self, assessment_id: str, evaluator_id: str, evaluatee_id: str,
                          ratings: Mapping[str, Any]) -> SubmissionResult:
        """Replace the ratings of an existing evaluation while the window is open."""
        checked = validate_ratings(ratings)
        context = self._context(assessment_id, evaluator_id)
        eligibility = can_edit(context.assessment, evaluator_id, evaluatee_id,
                               context.existing, context.group, now=self._clock())
        if not eligibility.allowed:
            return SubmissionResult(evaluatee_id=evaluatee_id, eligibility=eligibility)

        previous = next(e for e in context.existing
                        if e.matches(assessment_id, evaluator_id, evaluatee_id))
        self._evaluations.update(previous.id, dict(checked))
        evaluation = PeerEvaluation(previous.id, assessment_id, evaluator_id, evaluatee_id, **checked)
        logger.info("Evaluation updated", extra={'evaluation_id': evaluation.id})
        return SubmissionResult(evaluatee_id=evaluatee_id, eligibility=eligibility, evaluation=evaluation)

    def evaluations_by(self, assessment_id: str, evaluator_id: str) -> List[PeerEvaluation]:
        return self._evaluations.find_by_evaluator(assessment_id, evaluator_id)

    def pending_evaluatees(self, assessment_id: str, evaluator_id: str) -> List[str]:
        """Groupmates the evaluator has not evaluated yet."""
        context = self._context(assessment_id, evaluator_id)
        if context.group is None:
            return []
        done = {e.evaluatee_id for e in context.existing}
        return [member for member in context.group.member_ids
                if member != evaluator_id and member not in done]

    def teacher_scores(self, assessment_id: str) -> List[StudentScore]:
        """Every student of the category, best score first."""
        assessment = self._assessments.find_by_id(assessment_id)
        activity = self._activities.find_by_id(assessment.activity_id)
        groups = self._groups.find_by_category(activity.category_id)
        evaluations = self._evaluations.find_by_assessment(assessment.id)
        return aggregate_for_course(activity.category_id, assessment.id, groups, evaluations)

    def student_score(self, assessment_id: str, student_id: str) -> Optional[StudentScore]:
        """A student's own score, or None while grades are hidden."""
        assessment = self._assessments.find_by_id(assessment_id)
        if not assessment.grades_visible:
            return None
        evaluations = self._evaluations.find_by_assessment(assessment.id)
        return aggregate_for_student(student_id, evaluations)

    def scores_by_criterion(self, assessment_id: str) -> Dict[str, float]:
        """Course-wide average of each criterion over rated students."""
        rated = [score for score in self.teacher_scores(assessment_id) if score.is_rated]
        if not rated:
            return {}
        return {
            criterion.value: sum(score.average(criterion) for score in rated) / len(rated)
            for criterion in CRITERIA
        }
