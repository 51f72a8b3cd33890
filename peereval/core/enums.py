"""
Enumerations and constants for the peereval engine.
"""

from enum import Enum
from typing import Tuple


class StoreTable(Enum):
    """Tables exposed by the record store."""
    COURSE = "CourseModel"
    CATEGORY = "CategoryModel"
    GROUP = "GroupModel"
    ACTIVITY = "ActivityModel"
    ASSESSMENT = "AssessmentModel"
    PEER_EVALUATION = "PeerEvaluationModel"


class Criterion(Enum):
    """Rating criteria of a peer evaluation."""
    PUNCTUALITY = "punctuality"
    CONTRIBUTIONS = "contributions"
    COMMITMENT = "commitment"
    ATTITUDE = "attitude"
    
    @property
    def label(self) -> str:
        return _CRITERION_LABELS[self]


_CRITERION_LABELS = {
    Criterion.PUNCTUALITY: "Puntualidad",
    Criterion.CONTRIBUTIONS: "Contribuciones",
    Criterion.COMMITMENT: "Compromiso",
    Criterion.ATTITUDE: "Actitud",
}

CRITERIA: Tuple[Criterion, ...] = tuple(Criterion)

MIN_RATING = 1
MAX_RATING = 5


class AssessmentState(Enum):
    """Lifecycle state of an assessment window, derived from its fields."""
    UNSCHEDULED = "unscheduled"
    NOT_STARTED = "not_started"
    OPEN = "open"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class DenialReason(Enum):
    """Reasons an evaluation submission can be refused."""
    CANCELLED = "cancelled"
    NOT_STARTED = "not-started"
    EXPIRED = "expired"
    SELF_EVALUATION = "self-evaluation"
    NOT_GROUPMATE = "not-groupmate"
    ALREADY_EVALUATED = "already-evaluated"
    NOT_EVALUATED = "not-evaluated"
    
    @property
    def message(self) -> str:
        """Human-readable explanation shown to the evaluator."""
        return _DENIAL_MESSAGES[self]


_DENIAL_MESSAGES = {
    DenialReason.CANCELLED: "Esta evaluación ha sido cancelada",
    DenialReason.NOT_STARTED: "Esta evaluación aún no ha comenzado",
    DenialReason.EXPIRED: "El tiempo para esta evaluación ha expirado",
    DenialReason.SELF_EVALUATION: "No puedes evaluarte a ti mismo",
    DenialReason.NOT_GROUPMATE: "Este estudiante no pertenece a tu grupo",
    DenialReason.ALREADY_EVALUATED: "Ya has evaluado a este compañero",
    DenialReason.NOT_EVALUATED: "Aún no has evaluado a este compañero",
}


class ScoreBand(Enum):
    """Qualitative bands for an overall average."""
    UNRATED = ("Sin calificar", "#999999")
    EXCELLENT = ("Excelente", "#27AE60")
    GOOD = ("Bueno", "#F39C12")
    FAIR = ("Regular", "#E74C3C")
    NEEDS_IMPROVEMENT = ("Necesita mejorar", "#E74C3C")
    
    @property
    def label(self) -> str:
        return self.value[0]
    
    @property
    def color(self) -> str:
        return self.value[1]

    @classmethod
    def classify(cls, score: float) -> 'ScoreBand':
        """Map an overall average to its band. Zero means no evaluations."""
        if score == 0:
            return cls.UNRATED
        if score >= 4.5:
            return cls.EXCELLENT
        if score >= 3.5:
            return cls.GOOD
        if score >= 2.5:
            return cls.FAIR
        return cls.NEEDS_IMPROVEMENT


class TaskStatus(Enum):
    """Status of one step in an ordered write sequence."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
