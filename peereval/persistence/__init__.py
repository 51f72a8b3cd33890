"""
Persistence module: record stores, session credentials and repositories.
"""

from .session import SessionContext, TokenRefresher, HttpTokenRefresher
from .record_store import RemoteRecordStore, InMemoryRecordStore, PRIMARY_KEY
from .repositories import (
    BaseRepository, CourseRepository, CategoryRepository, GroupRepository,
    ActivityRepository, AssessmentRepository, PeerEvaluationRepository
)

__all__ = [
    "SessionContext",
    "TokenRefresher",
    "HttpTokenRefresher",
    "RemoteRecordStore",
    "InMemoryRecordStore",
    "PRIMARY_KEY",
    "BaseRepository",
    "CourseRepository",
    "CategoryRepository",
    "GroupRepository",
    "ActivityRepository",
    "AssessmentRepository",
    "PeerEvaluationRepository",
]
