from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from peereval.core.entities import Assessment, Group, PeerEvaluation
from peereval.core.enums import StoreTable
from peereval.core.exceptions import RemoteOperationError
from peereval.core.ids import SequentialIdGenerator
from peereval.persistence import InMemoryRecordStore
from peereval.main import PeerEvalPlatform


T0 = datetime(2025, 3, 10, 14, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int = 0, hours: int = 0, days: int = 0) -> None:
        self.now = self.now + timedelta(minutes=minutes, hours=hours, days=days)


def make_assessment(start_at: Optional[datetime] = T0, duration_minutes: int = 60,
                    cancelled: bool = False, grades_visible: bool = False,
                    assessment_id: str = "assessment-1") -> Assessment:
    return Assessment(
        entity_id=assessment_id,
        activity_id="activity-1",
        course_id="course-1",
        title="Sprint review",
        duration_minutes=duration_minutes,
        start_at=start_at,
        cancelled=cancelled,
        grades_visible=grades_visible,
    )


def make_group(member_ids: List[str], group_id: str = "group-1", category_id: str = "category-1",
               name: str = "Grupo 1") -> Group:
    return Group(group_id, "course-1", category_id, name, member_ids)


def make_evaluation(evaluator_id: str, evaluatee_id: str, ratings: Dict[str, int],
                    assessment_id: str = "assessment-1", evaluation_id: Optional[str] = None) -> PeerEvaluation:
    return PeerEvaluation(
        entity_id=evaluation_id or f"{evaluator_id}->{evaluatee_id}",
        assessment_id=assessment_id,
        evaluator_id=evaluator_id,
        evaluatee_id=evaluatee_id,
        **ratings
    )


GOOD_RATINGS = {'punctuality': 5, 'contributions': 4, 'commitment': 4, 'attitude': 5}


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture()
def platform(store, clock, capsys) -> PeerEvalPlatform:
    platform = PeerEvalPlatform(
        {'store_type': 'memory', 'random_seed': 7},
        store=store,
        clock=clock,
        id_generator=SequentialIdGenerator()
    )
    capsys.readouterr()
    return platform


class FlakyStore(InMemoryRecordStore):
    """In-memory store whose n-th insert into one table fails."""

    def __init__(self, table: StoreTable, fail_on: int):
        super().__init__()
        self._fail_table = table
        self._fail_on = fail_on
        self._inserts = 0

    def insert(self, table, records):
        if table == self._fail_table:
            self._inserts += 1
            if self._inserts == self._fail_on:
                raise RemoteOperationError("insert rejected", status=500, remote_message="boom")
        super().insert(table, records)
