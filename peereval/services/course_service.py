"""
Course service: creation, enrollment by registration code and invitations.
"""

import logging
import random
import re
from typing import List, Optional

from ..core.entities import Course
from ..core.exceptions import NotFoundError, ValidationError
from ..core.ids import RandomIdGenerator, generate_registration_code
from ..core.interfaces import IdGenerator
from ..persistence.repositories import CourseRepository


logger = logging.getLogger("peereval.services.course_service")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CourseService:
    """Teacher- and student-facing course operations."""

    def __init__(self, courses: CourseRepository, id_generator: Optional[IdGenerator] = None,
                 rng: Optional[random.Random] = None, max_code_attempts: int = 10):
        self._courses = courses
        self._id_generator = id_generator or RandomIdGenerator()
        self._rng = rng or random.Random()
        self._max_code_attempts = max_code_attempts

    def create_course(self, name: str, teacher_id: str, description: Optional[str] = None) -> Course:
        """Create a course with a registration code not used by any other course."""
        if not name or not name.strip():
            raise ValidationError("Course name is required", error_code="missing_name")
        if not teacher_id:
            raise ValidationError("Teacher id is required", error_code="missing_teacher")

        course = Course(
            entity_id=self._id_generator.generate(),
            name=name,
            teacher_id=teacher_id,
            registration_code=self._unique_registration_code(),
            description=description.strip() if description else None
        )
        self._courses.add(course)
        logger.info("Course created", extra={'course_id': course.id, 'teacher_id': teacher_id})
        return course

    def _unique_registration_code(self) -> str:
        for _ in range(self._max_code_attempts):
            code = generate_registration_code(self._rng)
            if self._courses.find_by_registration_code(code) is None:
                return code
        raise ValidationError(
            "Could not allocate a unique registration code",
            error_code="registration_code_exhausted"
        )

    def get_course(self, course_id: str) -> Course:
        return self._courses.find_by_id(course_id)

    def courses_by_teacher(self, teacher_id: str) -> List[Course]:
        return self._courses.find_by_teacher(teacher_id)

    def courses_for_student(self, student_id: str) -> List[Course]:
        return [course for course in self._courses.find_all() if course.has_student(student_id)]

    def join_course_by_code(self, student_id: str, code: str) -> Course:
        """Enroll a student using the course's registration code."""
        if not student_id:
            raise ValidationError("Student id is required", error_code="missing_student")
        code = (code or "").strip()
        if not code:
            raise ValidationError("Registration code is required", error_code="missing_code")

        course = self._courses.find_by_registration_code(code)
        if course is None:
            raise NotFoundError(f"No course with registration code {code}", error_code="unknown_code")
        if course.teacher_id == student_id:
            raise ValidationError("A teacher cannot join their own course", error_code="teacher_join")

        if course.add_student(student_id):
            self._courses.update(course.id, {'studentIds': course.student_ids})
            logger.info("Student joined course", extra={'course_id': course.id, 'student_id': student_id})
        return course

    def invite_student(self, course_id: str, email: str) -> Course:
        """Record a pending invitation for an email address."""
        if not email or not EMAIL_PATTERN.match(email.strip()):
            raise ValidationError(f"Invalid email address: {email!r}", error_code="invalid_email")
        course = self._courses.find_by_id(course_id)
        if course.add_invitation(email):
            self._courses.update(course.id, {'invitations': course.invitations})
            logger.info("Invitation sent", extra={'course_id': course.id})
        return course

    def invitations_for(self, email: str) -> List[Course]:
        """Courses holding a pending invitation for the email."""
        normalized = email.strip().lower()
        return [course for course in self._courses.find_all() if normalized in course.invitations]

    def accept_invitation(self, course_id: str, student_id: str, email: str) -> Course:
        """Enroll the invited student and drop the invitation."""
        course = self._courses.find_by_id(course_id)
        if email.strip().lower() not in course.invitations:
            raise NotFoundError("No pending invitation for this course", error_code="no_invitation")
        course.add_student(student_id)
        course.remove_invitation(email)
        self._courses.update(course.id, {
            'studentIds': course.student_ids,
            'invitations': course.invitations,
        })
        logger.info("Invitation accepted", extra={'course_id': course.id, 'student_id': student_id})
        return course

    def reject_invitation(self, course_id: str, email: str) -> Course:
        course = self._courses.find_by_id(course_id)
        if course.remove_invitation(email):
            self._courses.update(course.id, {'invitations': course.invitations})
        return course
