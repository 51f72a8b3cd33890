"""
Main entry point for the peereval platform.
"""

import logging
import random
import threading
import time
from typing import Any, Dict, Optional, Union

from .core.config import PeerEvalConfig, load_config
from .core.exceptions import PeerEvalException
from .core.ids import RandomIdGenerator
from .core.interfaces import IdGenerator, IdentityProvider, RecordStore
from .persistence import (
    ActivityRepository, AssessmentRepository, CategoryRepository, CourseRepository,
    GroupRepository, HttpTokenRefresher, InMemoryRecordStore, PeerEvaluationRepository,
    RemoteRecordStore, SessionContext
)
from .services import (
    AssessmentService, CourseService, EvaluationService, GroupPartitioner, GroupReorganizer,
    GroupService
)
from .services.assessment_window import Clock, utc_now
from .services.score_aggregator import score_summary
from .api.rest_api import PeerEvalRestAPI


logger = logging.getLogger("peereval.main")


class PeerEvalPlatform:
    """Main platform class that wires configuration, storage and services."""

    def __init__(self, config: Union[PeerEvalConfig, Dict[str, Any], None] = None,
                 store: Optional[RecordStore] = None, clock: Optional[Clock] = None,
                 id_generator: Optional[IdGenerator] = None,
                 identity_provider: Optional[IdentityProvider] = None):
        if isinstance(config, PeerEvalConfig):
            self._config = config
        else:
            self._config = PeerEvalConfig(**(config or {}))
        self._store = store
        self._clock = clock or utc_now
        self._id_generator = id_generator
        self._identity_provider = identity_provider
        self._session = None
        self._repositories: Dict[str, Any] = {}
        self._course_service = None
        self._group_service = None
        self._assessment_service = None
        self._evaluation_service = None
        self._rest_api = None
        self._rest_thread = None
        self._running = False

        # Initialize platform
        self._initialize_platform()

    def _initialize_platform(self):
        """Initialize the platform with all services."""
        print("Initializing PeerEval platform...")
        config = self._config

        # Session and record store
        self._session = SessionContext(config.access_token, config.refresh_token)
        if self._store is None:
            if config.store_type == "remote":
                refresher = None
                if config.refresh_url:
                    refresher = HttpTokenRefresher(config.refresh_url, timeout=config.request_timeout)
                self._store = RemoteRecordStore(
                    config.store_url,
                    self._session,
                    refresher=refresher,
                    timeout=config.request_timeout
                )
            else:
                self._store = InMemoryRecordStore()
        print(f"✓ Record store initialized: {config.store_type}")

        # Identifiers and randomness
        if self._id_generator is None:
            self._id_generator = RandomIdGenerator()
        rng = random.Random(config.random_seed)

        # Initialize repositories
        self._repositories = {
            'course': CourseRepository(self._store),
            'category': CategoryRepository(self._store),
            'group': GroupRepository(self._store),
            'activity': ActivityRepository(self._store),
            'assessment': AssessmentRepository(self._store),
            'evaluation': PeerEvaluationRepository(self._store),
        }
        print("✓ Repositories initialized")

        # Initialize services
        partitioner = GroupPartitioner(self._id_generator, rng)
        self._course_service = CourseService(self._repositories['course'], self._id_generator, rng)
        self._group_service = GroupService(
            self._repositories['course'],
            self._repositories['category'],
            self._repositories['group'],
            partitioner=partitioner,
            reorganizer=GroupReorganizer(partitioner),
            id_generator=self._id_generator,
            max_workers=config.max_workers
        )
        self._assessment_service = AssessmentService(
            self._repositories['course'],
            self._repositories['category'],
            self._repositories['activity'],
            self._repositories['assessment'],
            id_generator=self._id_generator,
            clock=self._clock
        )
        self._evaluation_service = EvaluationService(
            self._repositories['assessment'],
            self._repositories['activity'],
            self._repositories['group'],
            self._repositories['evaluation'],
            id_generator=self._id_generator,
            clock=self._clock,
            max_workers=config.max_workers
        )
        print("✓ Services initialized")

        # Initialize API
        self._rest_api = PeerEvalRestAPI(
            self._course_service,
            self._group_service,
            self._assessment_service,
            self._evaluation_service,
            identity_provider=self._identity_provider
        )
        print("✓ REST API initialized")

        print("✓ PeerEval platform initialized successfully!")

    @property
    def config(self) -> PeerEvalConfig:
        return self._config

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def app(self):
        return self._rest_api.app

    @property
    def course_service(self) -> CourseService:
        return self._course_service

    @property
    def group_service(self) -> GroupService:
        return self._group_service

    @property
    def assessment_service(self) -> AssessmentService:
        return self._assessment_service

    @property
    def evaluation_service(self) -> EvaluationService:
        return self._evaluation_service

    def start_rest_server(self, host: Optional[str] = None, port: Optional[int] = None):
        """Start the REST server."""
        if self._rest_thread is not None:
            print("REST server already running")
            return

        import uvicorn

        host = host or self._config.rest_host
        port = port or self._config.rest_port

        def run_server():
            uvicorn.run(
                self._rest_api.app,
                host=host,
                port=port,
                log_level=self._config.log_level.lower()
            )

        # Start server in a separate thread
        self._rest_thread = threading.Thread(target=run_server, daemon=True)
        self._rest_thread.start()
        self._running = True
        logger.info("REST server thread started", extra={'host': host, 'port': port})

        print(f"✓ REST server started on {host}:{port}")
        print(f"  - REST API: http://localhost:{port}")
        print(f"  - API Docs: http://localhost:{port}/docs")

    def stop_platform(self):
        """Stop the platform."""
        if not self._running:
            print("Platform not running")
            return

        print("Stopping PeerEval platform...")
        self._session.clear()
        self._running = False
        print("✓ PeerEval platform stopped")

    def run_demo(self):
        """Run an end-to-end demonstration: groups, an assessment and scores."""
        print("Running PeerEval platform demonstration...")

        teacher_id = "teacher-1"
        students = [f"student-{n}" for n in range(1, 8)]

        course = self._course_service.create_course("Ingeniería de Software", teacher_id)
        for student_id in students:
            self._course_service.join_course_by_code(student_id, course.registration_code)
        print(f"✓ Course '{course.name}' created with code {course.registration_code} "
              f"and {len(students)} students")

        setup = self._group_service.create_category(course.id, "Equipos de proyecto", True, 3)
        print("\n=== Random groups (capacity 3) ===")
        for group in setup.groups:
            print(f"  {group.name}: {', '.join(group.member_ids)}")

        activity = self._assessment_service.create_activity(course.id, setup.category.id, "Entrega 1")
        assessment = self._assessment_service.create_assessment(activity.id, "Evaluación de pares", 60)
        window = self._assessment_service.window(assessment.id)
        print(f"\n✓ Assessment '{assessment.title}' open, remaining: {window.remaining_label()}")

        demo_rng = random.Random(self._config.random_seed)
        for group in setup.groups:
            for evaluator_id in group.member_ids:
                ratings_by_evaluatee = {
                    evaluatee_id: {
                        'punctuality': demo_rng.randint(3, 5),
                        'contributions': demo_rng.randint(2, 5),
                        'commitment': demo_rng.randint(3, 5),
                        'attitude': demo_rng.randint(3, 5),
                    }
                    for evaluatee_id in group.member_ids if evaluatee_id != evaluator_id
                }
                if ratings_by_evaluatee:
                    self._evaluation_service.submit_group_evaluations(
                        assessment.id, evaluator_id, ratings_by_evaluatee)

        repeat = self._evaluation_service.submit_evaluation(
            assessment.id, setup.groups[0].member_ids[0], setup.groups[0].member_ids[-1],
            {'punctuality': 5, 'contributions': 5, 'commitment': 5, 'attitude': 5}
        )
        print(f"✓ Second submission for the same pair: {repeat.eligibility.message}")

        self._assessment_service.set_grades_visible(assessment.id, True)
        print("\n=== Teacher view ===")
        for score in self._evaluation_service.teacher_scores(assessment.id):
            summary = score_summary(score)
            print(f"  {summary['student_id']}: {summary['overall']} ({summary['band']}, "
                  f"{summary['evaluations_count']} evaluaciones)")

        free = self._group_service.create_category(course.id, "Grupos libres", False, 4)
        for student_id, group in zip(students, [g for g in free.groups for _ in range(4)]):
            self._group_service.assign_student(group.id, student_id)
        outcome = self._group_service.update_category(free.category.id, max_students_per_group=2)
        print("\n=== Free category shrunk to capacity 2 ===")
        for group in outcome.groups:
            print(f"  {group.name}: {', '.join(group.member_ids) or '-'}")
        print(f"  Unassigned: {', '.join(outcome.unassigned_student_ids) or '-'}")

        print("\n✓ Demo completed")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="PeerEval course groups and peer assessment platform")
    parser.add_argument("--rest-port", type=int, help="REST server port")
    parser.add_argument("--demo", action="store_true", help="Run demo mode on the in-memory store")
    parser.add_argument("--config", type=str, help="Configuration file path")

    args = parser.parse_args()

    overrides: Dict[str, Any] = {'rest_port': args.rest_port}
    if args.demo:
        overrides['store_type'] = "memory"

    try:
        config = load_config(args.config, overrides=overrides)
    except PeerEvalException as e:
        parser.error(e.message)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    # Create and start platform
    platform = PeerEvalPlatform(config)

    try:
        if args.demo:
            platform.run_demo()
        else:
            platform.start_rest_server()

            # Keep running
            print("\nPlatform is running. Press Ctrl+C to stop.")
            while True:
                time.sleep(1)

    except KeyboardInterrupt:
        print("\nShutting down...")
        platform.stop_platform()


if __name__ == "__main__":
    main()
