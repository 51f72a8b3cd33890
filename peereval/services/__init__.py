"""
Services module: the group, window, eligibility and scoring engine plus the
application services built on it.
"""

from .group_partitioner import GroupPartitioner, group_name, required_group_count
from .group_reorganizer import GroupReorganizer, ReorganizationPlan
from .assessment_window import AssessmentWindow, format_remaining, truncate_to_minute, window_state
from .eligibility import (
    EligibilityResult, can_submit, can_edit, validate_ratings, ratings_complete, invalid_criteria
)
from .score_aggregator import (
    aggregate_for_student, aggregate_for_course, classify_score, format_compact, format_detailed
)
from .task_sequence import TaskSequence, WriteTask, SequenceReport
from .course_service import CourseService
from .group_service import GroupService, CategorySetup, CategoryUpdate
from .assessment_service import AssessmentService
from .evaluation_service import EvaluationService, SubmissionResult, BulkSubmissionResult

__all__ = [
    "GroupPartitioner",
    "group_name",
    "required_group_count",
    "GroupReorganizer",
    "ReorganizationPlan",
    "AssessmentWindow",
    "format_remaining",
    "truncate_to_minute",
    "window_state",
    "EligibilityResult",
    "can_submit",
    "can_edit",
    "validate_ratings",
    "ratings_complete",
    "invalid_criteria",
    "aggregate_for_student",
    "aggregate_for_course",
    "classify_score",
    "format_compact",
    "format_detailed",
    "TaskSequence",
    "WriteTask",
    "SequenceReport",
    "CourseService",
    "GroupService",
    "CategorySetup",
    "CategoryUpdate",
    "AssessmentService",
    "EvaluationService",
    "SubmissionResult",
    "BulkSubmissionResult",
]
