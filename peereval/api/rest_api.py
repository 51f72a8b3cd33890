"""
REST API for the peereval platform using FastAPI.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..core.entities import Activity, Assessment, Category, Course, Group, PeerEvaluation, StudentScore
from ..core.enums import CRITERIA
from ..core.exceptions import (
    AuthorizationError, NotFoundError, PartialWriteError, PeerEvalException,
    RemoteOperationError, ValidationError
)
from ..core.identity import HeaderIdentityProvider
from ..core.interfaces import IdentityProvider
from ..services import AssessmentService, CourseService, EvaluationService, GroupService
from ..services.assessment_window import AssessmentWindow
from ..services.eligibility import EligibilityResult
from ..services.score_aggregator import format_compact, format_detailed


logger = logging.getLogger("peereval.api.rest_api")


# Pydantic models for API
class CourseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)


class CourseResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    teacher_id: str
    registration_code: str
    student_ids: List[str] = []
    invitations: List[str] = []


class JoinRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)


class InvitationRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    random_groups: bool = False
    max_students_per_group: Optional[int] = None


class CategoryChange(BaseModel):
    name: Optional[str] = None
    random_groups: Optional[bool] = None
    max_students_per_group: Optional[int] = None


class GroupResponse(BaseModel):
    id: str
    course_id: str
    category_id: str
    name: str
    member_ids: List[str] = []


class CategoryResponse(BaseModel):
    id: str
    course_id: str
    name: str
    random_groups: bool
    max_students_per_group: Optional[int] = None
    groups: List[GroupResponse] = []
    unassigned_student_ids: List[str] = []


class MembershipRequest(BaseModel):
    student_id: Optional[str] = None


class ActivityCreate(BaseModel):
    category_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    visible: bool = True


class ActivityResponse(BaseModel):
    id: str
    course_id: str
    category_id: str
    name: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    visible: bool


class VisibilityRequest(BaseModel):
    visible: bool


class AssessmentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    duration_minutes: int


class AssessmentResponse(BaseModel):
    id: str
    activity_id: str
    course_id: str
    title: str
    duration_minutes: int
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    cancelled: bool
    grades_visible: bool
    state: str
    remaining_label: str


class EvaluationRequest(BaseModel):
    evaluatee_id: str = Field(..., min_length=1)
    ratings: Dict[str, Any]


class RatingsRequest(BaseModel):
    ratings: Dict[str, Any]


class BulkEvaluationRequest(BaseModel):
    evaluations: Dict[str, Dict[str, Any]]


class EvaluationResponse(BaseModel):
    id: str
    assessment_id: str
    evaluator_id: str
    evaluatee_id: str
    ratings: Dict[str, int]


class ScoreResponse(BaseModel):
    student_id: str
    average_punctuality: float
    average_contributions: float
    average_commitment: float
    average_attitude: float
    overall_average: float
    evaluations_count: int
    overall: str
    compact: str
    criteria_compact: Dict[str, str]
    band: str
    color: str


class StudentScoreResponse(BaseModel):
    grades_visible: bool
    score: Optional[ScoreResponse] = None


class PeerEvalRestAPI:
    """REST API over the application services.

    The acting user is resolved by an IdentityProvider from the ``X-User-Id``
    header; by default the header value is taken as the canonical id.
    """

    def __init__(self, course_service: CourseService, group_service: GroupService,
                 assessment_service: AssessmentService, evaluation_service: EvaluationService,
                 identity_provider: Optional[IdentityProvider] = None):
        self._identity_provider = identity_provider or HeaderIdentityProvider()
        self._course_service = course_service
        self._group_service = group_service
        self._assessment_service = assessment_service
        self._evaluation_service = evaluation_service

        self._lock = threading.RLock()

        # Create FastAPI app
        self.app = FastAPI(
            title="PeerEval API",
            description="Course groups, timed peer assessments and score aggregation",
            version="1.0.0",
            docs_url="/docs",
            redoc_url="/redoc"
        )

        # Add CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        # Setup routes
        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/", response_model=Dict[str, str])
        async def root():
            """Root endpoint."""
            return {
                "message": "PeerEval API",
                "version": "1.0.0",
                "docs": "/docs"
            }

        @self.app.get("/health", response_model=Dict[str, str])
        async def health_check():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

        # Course endpoints
        @self.app.post("/courses", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
        def create_course(course_data: CourseCreate, x_user_id: Optional[str] = Header(None)):
            """Create a course owned by the acting teacher."""
            user_id = self._require_user(x_user_id)
            try:
                course = self._course_service.create_course(course_data.name, user_id, course_data.description)
                return self._course_to_response(course)
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.get("/courses", response_model=List[CourseResponse])
        def list_courses(x_user_id: Optional[str] = Header(None)):
            """Courses taught by the acting user."""
            user_id = self._require_user(x_user_id)
            try:
                return [self._course_to_response(c) for c in self._course_service.courses_by_teacher(user_id)]
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.get("/courses/{course_id}", response_model=CourseResponse)
        def get_course(course_id: str):
            try:
                return self._course_to_response(self._course_service.get_course(course_id))
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.post("/courses/join", response_model=CourseResponse)
        def join_course(join_data: JoinRequest, x_user_id: Optional[str] = Header(None)):
            """Join a course with its registration code."""
            user_id = self._require_user(x_user_id)
            try:
                course = self._course_service.join_course_by_code(user_id, join_data.code)
                return self._course_to_response(course)
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.post("/courses/{course_id}/invitations", response_model=CourseResponse)
        def invite_student(course_id: str, invitation: InvitationRequest, x_user_id: Optional[str] = Header(None)):
            user_id = self._require_user(x_user_id)
            try:
                self._require_teacher(course_id, user_id)
                course = self._course_service.invite_student(course_id, invitation.email)
                return self._course_to_response(course)
            except PeerEvalException as e:
                raise self._http_error(e)

        # Category and group endpoints
        @self.app.post("/courses/{course_id}/categories", response_model=CategoryResponse,
                       status_code=status.HTTP_201_CREATED)
        def create_category(course_id: str, category_data: CategoryCreate, x_user_id: Optional[str] = Header(None)):
            """Create a category and its groups."""
            user_id = self._require_user(x_user_id)
            try:
                self._require_teacher(course_id, user_id)
                with self._lock:
                    setup = self._group_service.create_category(
                        course_id,
                        category_data.name,
                        category_data.random_groups,
                        category_data.max_students_per_group
                    )
                return self._category_to_response(setup.category, setup.groups)
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.get("/courses/{course_id}/categories", response_model=List[CategoryResponse])
        def list_categories(course_id: str):
            try:
                return [
                    self._category_to_response(c, self._group_service.groups_for_category(c.id))
                    for c in self._group_service.categories_for_course(course_id)
                ]
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.patch("/categories/{category_id}", response_model=CategoryResponse)
        def update_category(category_id: str, change: CategoryChange, x_user_id: Optional[str] = Header(None)):
            """Change a category; groups are reorganized when capacity or mode change."""
            user_id = self._require_user(x_user_id)
            try:
                category = self._group_service.get_category(category_id)
                self._require_teacher(category.course_id, user_id)
                kwargs: Dict[str, Any] = {'name': change.name, 'random_groups': change.random_groups}
                if 'max_students_per_group' in change.model_fields_set:
                    kwargs['max_students_per_group'] = change.max_students_per_group
                with self._lock:
                    outcome = self._group_service.update_category(category_id, **kwargs)
                return self._category_to_response(outcome.category, outcome.groups,
                                                  outcome.unassigned_student_ids)
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.get("/categories/{category_id}/groups", response_model=List[GroupResponse])
        def list_groups(category_id: str):
            try:
                return [self._group_to_response(g) for g in self._group_service.groups_for_category(category_id)]
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.post("/groups/{group_id}/members", response_model=GroupResponse)
        def join_group(group_id: str, membership: MembershipRequest, x_user_id: Optional[str] = Header(None)):
            """Add a student (the acting user by default) to a group."""
            user_id = self._require_user(x_user_id)
            student_id = membership.student_id or user_id
            try:
                self._require_self_or_teacher(group_id, student_id, user_id)
                with self._lock:
                    group = self._group_service.assign_student(group_id, student_id)
                return self._group_to_response(group)
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.delete("/groups/{group_id}/members/{student_id}", response_model=GroupResponse)
        def leave_group(group_id: str, student_id: str, x_user_id: Optional[str] = Header(None)):
            user_id = self._require_user(x_user_id)
            try:
                self._require_self_or_teacher(group_id, student_id, user_id)
                with self._lock:
                    group = self._group_service.remove_student(group_id, student_id)
                return self._group_to_response(group)
            except PeerEvalException as e:
                raise self._http_error(e)

        # Activity and assessment endpoints
        @self.app.post("/courses/{course_id}/activities", response_model=ActivityResponse,
                       status_code=status.HTTP_201_CREATED)
        def create_activity(course_id: str, activity_data: ActivityCreate, x_user_id: Optional[str] = Header(None)):
            user_id = self._require_user(x_user_id)
            try:
                self._require_teacher(course_id, user_id)
                activity = self._assessment_service.create_activity(
                    course_id,
                    activity_data.category_id,
                    activity_data.name,
                    activity_data.description,
                    activity_data.due_date,
                    activity_data.visible
                )
                return self._activity_to_response(activity)
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.get("/courses/{course_id}/activities", response_model=List[ActivityResponse])
        def list_activities(course_id: str, x_user_id: Optional[str] = Header(None)):
            """Activities of a course; students only see visible ones."""
            user_id = self._require_user(x_user_id)
            try:
                course = self._course_service.get_course(course_id)
                activities = self._assessment_service.visible_activities(
                    course_id, viewer_is_teacher=course.teacher_id == user_id)
                return [self._activity_to_response(a) for a in activities]
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.put("/activities/{activity_id}/visibility", response_model=ActivityResponse)
        def set_activity_visibility(activity_id: str, visibility: VisibilityRequest,
                                    x_user_id: Optional[str] = Header(None)):
            user_id = self._require_user(x_user_id)
            try:
                activity = self._assessment_service.get_activity(activity_id)
                self._require_teacher(activity.course_id, user_id)
                activity = self._assessment_service.set_activity_visible(activity_id, visibility.visible)
                return self._activity_to_response(activity)
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.post("/activities/{activity_id}/assessments", response_model=AssessmentResponse,
                       status_code=status.HTTP_201_CREATED)
        def create_assessment(activity_id: str, assessment_data: AssessmentCreate,
                              x_user_id: Optional[str] = Header(None)):
            """Launch an assessment starting now."""
            user_id = self._require_user(x_user_id)
            try:
                activity = self._assessment_service.get_activity(activity_id)
                self._require_teacher(activity.course_id, user_id)
                assessment = self._assessment_service.create_assessment(
                    activity_id, assessment_data.title, assessment_data.duration_minutes)
                return self._assessment_to_response(assessment)
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.get("/activities/{activity_id}/assessments", response_model=List[AssessmentResponse])
        def list_assessments(activity_id: str, x_user_id: Optional[str] = Header(None)):
            user_id = self._require_user(x_user_id)
            try:
                activity = self._assessment_service.get_activity(activity_id)
                course = self._course_service.get_course(activity.course_id)
                self._assessment_service.get_activity(activity_id, viewer_is_teacher=course.teacher_id == user_id)
                return [self._assessment_to_response(a)
                        for a in self._assessment_service.assessments_for_activity(activity_id)]
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.get("/assessments/{assessment_id}", response_model=AssessmentResponse)
        def get_assessment(assessment_id: str):
            try:
                return self._assessment_to_response(self._assessment_service.get_assessment(assessment_id))
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.post("/assessments/{assessment_id}/cancel", response_model=AssessmentResponse)
        def cancel_assessment(assessment_id: str, x_user_id: Optional[str] = Header(None)):
            user_id = self._require_user(x_user_id)
            try:
                assessment = self._assessment_service.get_assessment(assessment_id)
                self._require_teacher(assessment.course_id, user_id)
                return self._assessment_to_response(self._assessment_service.cancel_assessment(assessment_id))
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.put("/assessments/{assessment_id}/grades-visibility", response_model=AssessmentResponse)
        def set_grades_visibility(assessment_id: str, visibility: VisibilityRequest,
                                  x_user_id: Optional[str] = Header(None)):
            user_id = self._require_user(x_user_id)
            try:
                assessment = self._assessment_service.get_assessment(assessment_id)
                self._require_teacher(assessment.course_id, user_id)
                assessment = self._assessment_service.set_grades_visible(assessment_id, visibility.visible)
                return self._assessment_to_response(assessment)
            except PeerEvalException as e:
                raise self._http_error(e)

        # Evaluation endpoints
        @self.app.post("/assessments/{assessment_id}/evaluations", response_model=EvaluationResponse,
                       status_code=status.HTTP_201_CREATED)
        def submit_evaluation(assessment_id: str, evaluation_data: EvaluationRequest,
                              x_user_id: Optional[str] = Header(None)):
            """Rate one groupmate."""
            user_id = self._require_user(x_user_id)
            try:
                result = self._evaluation_service.submit_evaluation(
                    assessment_id, user_id, evaluation_data.evaluatee_id, evaluation_data.ratings)
            except PeerEvalException as e:
                raise self._http_error(e)
            if not result.accepted:
                raise self._denied(result.eligibility)
            return self._evaluation_to_response(result.evaluation)

        @self.app.post("/assessments/{assessment_id}/evaluations/bulk", response_model=List[EvaluationResponse],
                       status_code=status.HTTP_201_CREATED)
        def submit_group_evaluations(assessment_id: str, bulk_data: BulkEvaluationRequest,
                                     x_user_id: Optional[str] = Header(None)):
            """Rate several groupmates in one confirmation."""
            user_id = self._require_user(x_user_id)
            try:
                bulk = self._evaluation_service.submit_group_evaluations(
                    assessment_id, user_id, bulk_data.evaluations)
            except PeerEvalException as e:
                raise self._http_error(e)
            if bulk.denied:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=[dict(r.eligibility.to_dict(), evaluatee_id=r.evaluatee_id) for r in bulk.denied]
                )
            return [self._evaluation_to_response(r.evaluation) for r in bulk.results]

        @self.app.put("/assessments/{assessment_id}/evaluations/{evaluatee_id}", response_model=EvaluationResponse)
        def update_evaluation(assessment_id: str, evaluatee_id: str, ratings_data: RatingsRequest,
                              x_user_id: Optional[str] = Header(None)):
            """Edit a previous evaluation while the window is open."""
            user_id = self._require_user(x_user_id)
            try:
                result = self._evaluation_service.update_evaluation(
                    assessment_id, user_id, evaluatee_id, ratings_data.ratings)
            except PeerEvalException as e:
                raise self._http_error(e)
            if not result.accepted:
                raise self._denied(result.eligibility)
            return self._evaluation_to_response(result.evaluation)

        @self.app.get("/assessments/{assessment_id}/pending", response_model=List[str])
        def pending_evaluatees(assessment_id: str, x_user_id: Optional[str] = Header(None)):
            user_id = self._require_user(x_user_id)
            try:
                return self._evaluation_service.pending_evaluatees(assessment_id, user_id)
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.get("/assessments/{assessment_id}/scores", response_model=List[ScoreResponse])
        def teacher_scores(assessment_id: str, x_user_id: Optional[str] = Header(None)):
            """Teacher view: all students, best first."""
            user_id = self._require_user(x_user_id)
            try:
                assessment = self._assessment_service.get_assessment(assessment_id)
                self._require_teacher(assessment.course_id, user_id)
                return [self._score_to_response(s) for s in self._evaluation_service.teacher_scores(assessment_id)]
            except PeerEvalException as e:
                raise self._http_error(e)

        @self.app.get("/assessments/{assessment_id}/my-score", response_model=StudentScoreResponse)
        def my_score(assessment_id: str, x_user_id: Optional[str] = Header(None)):
            """Student view: own score once the teacher discloses grades."""
            user_id = self._require_user(x_user_id)
            try:
                score = self._evaluation_service.student_score(assessment_id, user_id)
            except PeerEvalException as e:
                raise self._http_error(e)
            if score is None:
                return StudentScoreResponse(grades_visible=False)
            return StudentScoreResponse(grades_visible=True, score=self._score_to_response(score))

    def _require_user(self, credential: Optional[str]) -> str:
        try:
            return self._identity_provider.current_user_id(credential)
        except AuthorizationError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")

    def _require_teacher(self, course_id: str, user_id: str) -> Course:
        course = self._course_service.get_course(course_id)
        if course.teacher_id != user_id:
            raise AuthorizationError("Only the course teacher can do this", error_code="not_teacher")
        return course

    def _require_self_or_teacher(self, group_id: str, student_id: str, user_id: str) -> None:
        """Students manage only their own membership; the teacher manages anyone's."""
        if student_id == user_id:
            return
        group = self._group_service.get_group(group_id)
        self._require_teacher(group.course_id, user_id)

    def _http_error(self, error: PeerEvalException) -> HTTPException:
        """Map engine errors to HTTP responses."""
        if isinstance(error, ValidationError):
            return HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                 detail={'error': error.error_code or 'validation_error', 'message': error.message})
        if isinstance(error, AuthorizationError):
            return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                                 detail={'error': error.error_code or 'unauthorized', 'message': error.message})
        if isinstance(error, NotFoundError):
            return HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                                 detail={'error': error.error_code or 'not_found', 'message': error.message})
        if isinstance(error, (RemoteOperationError, PartialWriteError)):
            logger.error("Store operation failed", extra={'error': error.message, 'details': error.details})
            return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY,
                                 detail={'error': error.error_code, 'message': "The operation could not be completed"})
        logger.error("Unexpected engine error", extra={'error': error.message})
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                             detail={'error': error.error_code or 'internal_error', 'message': "Internal error"})

    def _denied(self, eligibility: EligibilityResult) -> HTTPException:
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=eligibility.to_dict())

    def _course_to_response(self, course: Course) -> CourseResponse:
        """Convert Course entity to response model."""
        return CourseResponse(
            id=course.id,
            name=course.name,
            description=course.description,
            teacher_id=course.teacher_id,
            registration_code=course.registration_code,
            student_ids=course.student_ids,
            invitations=course.invitations
        )

    def _group_to_response(self, group: Group) -> GroupResponse:
        return GroupResponse(
            id=group.id,
            course_id=group.course_id,
            category_id=group.category_id,
            name=group.name,
            member_ids=group.member_ids
        )

    def _category_to_response(self, category: Category, groups: List[Group],
                              unassigned: Optional[List[str]] = None) -> CategoryResponse:
        return CategoryResponse(
            id=category.id,
            course_id=category.course_id,
            name=category.name,
            random_groups=category.random_groups,
            max_students_per_group=category.max_students_per_group,
            groups=[self._group_to_response(g) for g in groups],
            unassigned_student_ids=list(unassigned or [])
        )

    def _activity_to_response(self, activity: Activity) -> ActivityResponse:
        return ActivityResponse(
            id=activity.id,
            course_id=activity.course_id,
            category_id=activity.category_id,
            name=activity.name,
            description=activity.description,
            due_date=activity.due_date,
            visible=activity.visible
        )

    def _assessment_to_response(self, assessment: Assessment) -> AssessmentResponse:
        window = AssessmentWindow(assessment, self._assessment_service.clock)
        now = window.now()
        return AssessmentResponse(
            id=assessment.id,
            activity_id=assessment.activity_id,
            course_id=assessment.course_id,
            title=assessment.title,
            duration_minutes=assessment.duration_minutes,
            start_at=assessment.start_at,
            end_at=assessment.end_at,
            cancelled=assessment.cancelled,
            grades_visible=assessment.grades_visible,
            state=window.state(now).value,
            remaining_label=window.remaining_label(now)
        )

    def _evaluation_to_response(self, evaluation: PeerEvaluation) -> EvaluationResponse:
        return EvaluationResponse(
            id=evaluation.id,
            assessment_id=evaluation.assessment_id,
            evaluator_id=evaluation.evaluator_id,
            evaluatee_id=evaluation.evaluatee_id,
            ratings=evaluation.ratings
        )

    def _score_to_response(self, score: StudentScore) -> ScoreResponse:
        band = score.band
        return ScoreResponse(
            student_id=score.student_id,
            average_punctuality=score.average_punctuality,
            average_contributions=score.average_contributions,
            average_commitment=score.average_commitment,
            average_attitude=score.average_attitude,
            overall_average=score.overall_average,
            evaluations_count=score.evaluations_count,
            overall=format_detailed(score.overall_average),
            compact=format_compact(score.overall_average),
            criteria_compact={criterion.value: format_compact(score.average(criterion)) for criterion in CRITERIA},
            band=band.label,
            color=band.color
        )
