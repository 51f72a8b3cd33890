"""
Time window of an assessment.

The state is derived from the assessment's fields and the current time; it is
never stored.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..core.entities import Assessment
from ..core.enums import AssessmentState


Clock = Callable[[], datetime]

CANCELLED_LABEL = "Cancelada"
UNSCHEDULED_LABEL = "Sin fecha"
FINISHED_LABEL = "Tiempo Finalizado"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def truncate_to_minute(moment: datetime) -> datetime:
    """Drop seconds and microseconds; assessments start on a whole minute."""
    return moment.replace(second=0, microsecond=0)


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def format_remaining(delta: timedelta) -> str:
    """Render a positive duration in its largest whole unit, in Spanish."""
    minutes = int(delta.total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return _plural(days, "día", "días")
    if hours > 0:
        return _plural(hours, "hora", "horas")
    return _plural(minutes, "minuto", "minutos")


def window_state(assessment: Assessment, now: datetime) -> AssessmentState:
    """State of the assessment at ``now``. Cancellation overrides time."""
    if assessment.cancelled:
        return AssessmentState.CANCELLED
    if assessment.start_at is None:
        return AssessmentState.UNSCHEDULED
    if now < assessment.start_at:
        return AssessmentState.NOT_STARTED
    if now > assessment.end_at:
        return AssessmentState.EXPIRED
    return AssessmentState.OPEN


class AssessmentWindow:
    """Lifecycle view of one assessment against a clock."""

    def __init__(self, assessment: Assessment, clock: Optional[Clock] = None):
        self._assessment = assessment
        self._clock = clock or utc_now

    @property
    def assessment(self) -> Assessment:
        return self._assessment

    def now(self) -> datetime:
        return self._clock()

    def state(self, now: Optional[datetime] = None) -> AssessmentState:
        return window_state(self._assessment, now or self._clock())

    def is_open(self, now: Optional[datetime] = None) -> bool:
        return self.state(now) == AssessmentState.OPEN

    def time_remaining(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """Time left until the end, or None when not applicable."""
        if self._assessment.cancelled or self._assessment.start_at is None:
            return None
        remaining = self._assessment.end_at - (now or self._clock())
        if remaining < timedelta(0):
            return None
        return remaining

    def remaining_label(self, now: Optional[datetime] = None) -> str:
        if self._assessment.cancelled:
            return CANCELLED_LABEL
        if self._assessment.start_at is None:
            return UNSCHEDULED_LABEL
        now = now or self._clock()
        if now > self._assessment.end_at:
            return FINISHED_LABEL
        return format_remaining(self._assessment.end_at - now)

    def cancel(self) -> None:
        """Cancel the assessment; one-way."""
        self._assessment.cancel()

    def set_grades_visible(self, visible: bool) -> None:
        """Toggle grade disclosure; allowed in any state."""
        self._assessment.set_grades_visible(visible)
