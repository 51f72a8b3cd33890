"""
Core module containing the entities, enums, interfaces and exceptions.
"""

from .entities import *
from .interfaces import *
from .exceptions import *
from .enums import *
from .ids import *
from .identity import *
from .config import *

__all__ = [
    # Entities
    "AbstractEntity",
    "Course",
    "Category",
    "Group",
    "Activity",
    "Assessment",
    "PeerEvaluation",
    "StudentScore",
    "parse_timestamp",
    "format_timestamp",

    # Interfaces
    "RecordStore",
    "IdGenerator",
    "IdentityProvider",
    "Repository",

    # Enums
    "StoreTable",
    "Criterion",
    "CRITERIA",
    "MIN_RATING",
    "MAX_RATING",
    "AssessmentState",
    "DenialReason",
    "ScoreBand",
    "TaskStatus",

    # Ids and identity
    "RandomIdGenerator",
    "SequentialIdGenerator",
    "generate_registration_code",
    "ID_ALIASES",
    "resolve_canonical_id",
    "HeaderIdentityProvider",
    "StaticIdentityProvider",

    # Configuration
    "PeerEvalConfig",
    "load_config",

    # Exceptions
    "PeerEvalException",
    "ValidationError",
    "AuthorizationError",
    "RemoteOperationError",
    "NotFoundError",
    "PartialWriteError",
    "ConfigurationError",
]
