"""
Assessment service: activities and the timed assessments attached to them.
"""

import logging
from datetime import datetime
from typing import List, Optional

from ..core.entities import Activity, Assessment
from ..core.exceptions import AuthorizationError, ValidationError
from ..core.ids import RandomIdGenerator
from ..core.interfaces import IdGenerator
from ..persistence.repositories import (
    ActivityRepository, AssessmentRepository, CategoryRepository, CourseRepository
)
from .assessment_window import AssessmentWindow, Clock, truncate_to_minute, utc_now


logger = logging.getLogger("peereval.services.assessment_service")


class AssessmentService:
    """Activity and assessment lifecycle operations."""

    def __init__(self, courses: CourseRepository, categories: CategoryRepository,
                 activities: ActivityRepository, assessments: AssessmentRepository,
                 id_generator: Optional[IdGenerator] = None, clock: Optional[Clock] = None):
        self._courses = courses
        self._categories = categories
        self._activities = activities
        self._assessments = assessments
        self._id_generator = id_generator or RandomIdGenerator()
        self._clock = clock or utc_now

    @property
    def clock(self) -> Clock:
        return self._clock

    # Activities

    def create_activity(self, course_id: str, category_id: str, name: str,
                        description: Optional[str] = None, due_date: Optional[datetime] = None,
                        visible: bool = True) -> Activity:
        course = self._courses.find_by_id(course_id)
        category = self._categories.find_by_id(category_id)
        if category.course_id != course.id:
            raise ValidationError(
                "Category does not belong to the course",
                error_code="category_mismatch",
                details={'course_id': course.id, 'category_id': category.id}
            )

        activity = Activity(
            entity_id=self._id_generator.generate(),
            course_id=course.id,
            category_id=category.id,
            name=name,
            description=description,
            due_date=due_date,
            visible=visible
        )
        self._activities.add(activity)
        logger.info("Activity created", extra={'activity_id': activity.id, 'course_id': course.id})
        return activity

    def get_activity(self, activity_id: str, viewer_is_teacher: bool = True) -> Activity:
        """Fetch an activity; students cannot open an invisible one."""
        activity = self._activities.find_by_id(activity_id)
        if not viewer_is_teacher and not activity.visible:
            raise AuthorizationError("This activity is not visible", error_code="activity_hidden")
        return activity

    def set_activity_visible(self, activity_id: str, visible: bool) -> Activity:
        activity = self._activities.find_by_id(activity_id)
        activity.set_visible(visible)
        self._activities.update(activity.id, {'visible': activity.visible})
        return activity

    def visible_activities(self, course_id: str, viewer_is_teacher: bool) -> List[Activity]:
        """Activities of a course as seen by a teacher or by a student."""
        activities = self._activities.find_by_course(course_id)
        if viewer_is_teacher:
            return activities
        return [activity for activity in activities if activity.visible]

    # Assessments

    def create_assessment(self, activity_id: str, title: str, duration_minutes: int) -> Assessment:
        """Open a new assessment starting now, at minute precision."""
        activity = self._activities.find_by_id(activity_id)
        assessment = Assessment(
            entity_id=self._id_generator.generate(),
            activity_id=activity.id,
            course_id=activity.course_id,
            title=title,
            duration_minutes=duration_minutes,
            start_at=truncate_to_minute(self._clock())
        )
        self._assessments.add(assessment)
        logger.info(
            "Assessment created",
            extra={'assessment_id': assessment.id, 'activity_id': activity.id,
                   'duration_minutes': duration_minutes}
        )
        return assessment

    def get_assessment(self, assessment_id: str) -> Assessment:
        return self._assessments.find_by_id(assessment_id)

    def assessments_for_activity(self, activity_id: str) -> List[Assessment]:
        return self._assessments.find_by_activity(activity_id)

    def window(self, assessment_id: str) -> AssessmentWindow:
        return AssessmentWindow(self._assessments.find_by_id(assessment_id), self._clock)

    def cancel_assessment(self, assessment_id: str) -> Assessment:
        """Cancel an assessment. Cancelling twice writes nothing."""
        window = self.window(assessment_id)
        if window.assessment.cancelled:
            return window.assessment
        window.cancel()
        self._assessments.update(assessment_id, {'cancelled': True})
        logger.info("Assessment cancelled", extra={'assessment_id': assessment_id})
        return window.assessment

    def set_grades_visible(self, assessment_id: str, visible: bool) -> Assessment:
        window = self.window(assessment_id)
        window.set_grades_visible(visible)
        self._assessments.update(assessment_id, {'gradesVisible': window.assessment.grades_visible})
        logger.info("Grade visibility changed",
                    extra={'assessment_id': assessment_id, 'visible': window.assessment.grades_visible})
        return window.assessment
