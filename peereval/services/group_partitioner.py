"""
Group formation for a category: random partitions and empty shells for free
self-assignment.
"""

import math
import random
from typing import List, Optional, Sequence

from ..core.entities import Group
from ..core.exceptions import ValidationError
from ..core.ids import RandomIdGenerator
from ..core.interfaces import IdGenerator


GROUP_NAME_TEMPLATE = "Grupo {number}"


def group_name(number: int) -> str:
    """Display name of the n-th group (1-indexed)."""
    return GROUP_NAME_TEMPLATE.format(number=number)


def required_group_count(student_count: int, capacity: Optional[int]) -> int:
    """Number of groups needed to seat ``student_count`` students."""
    if student_count < 0:
        raise ValidationError("Student count cannot be negative")
    if capacity is None:
        return 1 if student_count > 0 else 0
    _check_capacity(capacity)
    return math.ceil(student_count / capacity)


def _check_capacity(capacity: Optional[int]) -> None:
    if capacity is None:
        return
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
        raise ValidationError(
            "Group capacity must be a positive integer",
            details={'capacity': capacity}
        )


class GroupPartitioner:
    """Builds the groups of a category from its roster."""

    def __init__(self, id_generator: Optional[IdGenerator] = None, rng: Optional[random.Random] = None):
        self._id_generator = id_generator or RandomIdGenerator()
        self._rng = rng or random.Random()

    def partition_random(self, students: Sequence[str], capacity: Optional[int],
                         course_id: str, category_id: str, first_number: int = 1) -> List[Group]:
        """Shuffle the roster and slice it into groups of at most ``capacity``.

        An empty roster yields no groups. Without a capacity every student
        lands in a single group.
        """
        _check_capacity(capacity)
        shuffled = list(students)
        self._rng.shuffle(shuffled)

        if not shuffled:
            return []
        if capacity is None:
            chunks = [shuffled]
        else:
            chunks = [shuffled[i:i + capacity] for i in range(0, len(shuffled), capacity)]

        return [
            Group(
                entity_id=self._id_generator.generate(),
                course_id=course_id,
                category_id=category_id,
                name=group_name(first_number + index),
                member_ids=chunk
            )
            for index, chunk in enumerate(chunks)
        ]

    def partition_free(self, student_count: int, capacity: Optional[int],
                       course_id: str, category_id: str, first_number: int = 1) -> List[Group]:
        """Create enough empty groups for students to join on their own."""
        count = required_group_count(student_count, capacity)
        return self.empty_groups(count, course_id, category_id, first_number)

    def empty_groups(self, count: int, course_id: str, category_id: str,
                     first_number: int = 1) -> List[Group]:
        return [
            Group(
                entity_id=self._id_generator.generate(),
                course_id=course_id,
                category_id=category_id,
                name=group_name(first_number + index),
                member_ids=[]
            )
            for index in range(count)
        ]
