"""
Reorganization of a category's groups after its capacity changes.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..core.entities import Group
from ..core.exceptions import ValidationError
from .group_partitioner import GroupPartitioner


logger = logging.getLogger("peereval.services.group_reorganizer")


@dataclass
class ReorganizationPlan:
    """Writes needed to bring a category's groups in line with a new capacity.

    Apply deletions first, then creations, then membership updates.
    """
    groups_to_delete: List[Group] = field(default_factory=list)
    groups_to_create: List[Group] = field(default_factory=list)
    groups_to_update: List[Group] = field(default_factory=list)
    unchanged_groups: List[Group] = field(default_factory=list)
    unassigned_student_ids: List[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not (self.groups_to_delete or self.groups_to_create or self.groups_to_update)

    @property
    def resulting_groups(self) -> List[Group]:
        """Groups the category holds once the plan is applied."""
        return self.unchanged_groups + self.groups_to_update + self.groups_to_create

    def total_members(self) -> int:
        return sum(group.size for group in self.resulting_groups)


class GroupReorganizer:
    """Computes reorganization plans; the caller performs the writes."""

    def __init__(self, partitioner: Optional[GroupPartitioner] = None):
        self._partitioner = partitioner or GroupPartitioner()

    def reorganize(self, groups: Sequence[Group], new_capacity: Optional[int], random_groups: bool,
                   course_id: str, category_id: str) -> ReorganizationPlan:
        """Pick the strategy matching the category's assignment mode."""
        if random_groups:
            return self.reorganize_random(groups, new_capacity, course_id, category_id)
        return self.adjust_free(groups, new_capacity, course_id, category_id)

    def reorganize_random(self, groups: Sequence[Group], new_capacity: Optional[int],
                          course_id: Optional[str] = None,
                          category_id: Optional[str] = None) -> ReorganizationPlan:
        """Replace every group with a fresh random partition of all members."""
        course_id, category_id = self._scope(groups, course_id, category_id)
        members = [member for group in groups for member in group.member_ids]
        new_groups = self._partitioner.partition_random(members, new_capacity, course_id, category_id)

        if sum(group.size for group in new_groups) != len(members):
            raise ValidationError("Reorganization would change the number of students")

        logger.debug(
            "Random reorganization planned",
            extra={'category_id': category_id, 'students': len(members),
                   'old_groups': len(groups), 'new_groups': len(new_groups)}
        )
        return ReorganizationPlan(
            groups_to_delete=list(groups),
            groups_to_create=new_groups
        )

    def adjust_free(self, groups: Sequence[Group], new_capacity: Optional[int],
                    course_id: Optional[str] = None,
                    category_id: Optional[str] = None) -> ReorganizationPlan:
        """Add empty groups as needed and trim groups over the new capacity.

        Existing groups are never deleted. Members cut from an over-full group
        are not moved anywhere; they are reported as unassigned.
        """
        course_id, category_id = self._scope(groups, course_id, category_id)
        total_students = sum(group.size for group in groups)

        if new_capacity is None:
            min_required = 1 if total_students > 0 else 0
        else:
            if isinstance(new_capacity, bool) or not isinstance(new_capacity, int) or new_capacity <= 0:
                raise ValidationError(
                    "Group capacity must be a positive integer",
                    details={'capacity': new_capacity}
                )
            min_required = math.ceil(total_students / new_capacity)

        plan = ReorganizationPlan()
        missing = min_required - len(groups)
        if missing > 0:
            plan.groups_to_create = self._partitioner.empty_groups(
                missing, course_id, category_id, first_number=len(groups) + 1
            )

        for group in groups:
            if new_capacity is not None and group.size > new_capacity:
                trimmed = Group.from_record(group.to_record())
                plan.unassigned_student_ids.extend(trimmed.truncate(new_capacity))
                plan.groups_to_update.append(trimmed)
            else:
                plan.unchanged_groups.append(group)

        if plan.unassigned_student_ids:
            logger.warning(
                "Students left without a group after capacity reduction",
                extra={'category_id': category_id, 'capacity': new_capacity,
                       'student_ids': list(plan.unassigned_student_ids)}
            )
        return plan

    @staticmethod
    def _scope(groups: Sequence[Group], course_id: Optional[str],
               category_id: Optional[str]):
        if groups:
            course_id = course_id or groups[0].course_id
            category_id = category_id or groups[0].category_id
        return course_id or "", category_id or ""
