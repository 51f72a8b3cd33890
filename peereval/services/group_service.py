"""
Group service: categories, their groups and membership changes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.entities import Category, Group
from ..core.exceptions import ValidationError
from ..core.ids import RandomIdGenerator
from ..core.interfaces import IdGenerator
from ..persistence.repositories import CategoryRepository, CourseRepository, GroupRepository
from .group_partitioner import GroupPartitioner
from .group_reorganizer import GroupReorganizer, ReorganizationPlan
from .task_sequence import SequenceReport, TaskSequence


logger = logging.getLogger("peereval.services.group_service")

_UNSET: Any = object()


@dataclass
class CategorySetup:
    """Result of creating a category together with its groups."""
    category: Category
    groups: List[Group] = field(default_factory=list)


@dataclass
class CategoryUpdate:
    """Result of changing a category's settings."""
    category: Category
    plan: ReorganizationPlan
    report: Optional[SequenceReport] = None

    @property
    def groups(self) -> List[Group]:
        return self.plan.resulting_groups

    @property
    def unassigned_student_ids(self) -> List[str]:
        return list(self.plan.unassigned_student_ids)


class GroupService:
    """Category and group operations over the repositories."""

    def __init__(self, courses: CourseRepository, categories: CategoryRepository, groups: GroupRepository,
                 partitioner: Optional[GroupPartitioner] = None,
                 reorganizer: Optional[GroupReorganizer] = None,
                 id_generator: Optional[IdGenerator] = None, max_workers: int = 1):
        self._courses = courses
        self._categories = categories
        self._groups = groups
        self._id_generator = id_generator or RandomIdGenerator()
        self._partitioner = partitioner or GroupPartitioner(self._id_generator)
        self._reorganizer = reorganizer or GroupReorganizer(self._partitioner)
        self._max_workers = max_workers

    def create_category(self, course_id: str, name: str, random_groups: bool,
                        max_students_per_group: Optional[int] = None) -> CategorySetup:
        """Create a category and its initial groups from the course roster."""
        course = self._courses.find_by_id(course_id)
        category = Category(
            entity_id=self._id_generator.generate(),
            course_id=course.id,
            name=name,
            random_groups=random_groups,
            max_students_per_group=max_students_per_group
        )

        students = course.student_ids
        if category.random_groups:
            groups = self._partitioner.partition_random(
                students, category.max_students_per_group, course.id, category.id)
        else:
            groups = self._partitioner.partition_free(
                len(students), category.max_students_per_group, course.id, category.id)

        sequence = TaskSequence(f"create category {category.name}", max_workers=1)
        sequence.add("insert category", lambda: self._categories.add(category), category.id)
        for group in groups:
            sequence.add(f"insert {group.name}", self._bind(self._groups.add, group), group.id)
        sequence.run()

        logger.info(
            "Category created",
            extra={'course_id': course.id, 'category_id': category.id, 'groups': len(groups),
                   'random_groups': category.random_groups}
        )
        return CategorySetup(category=category, groups=groups)

    def update_category(self, category_id: str, name: Optional[str] = None,
                        random_groups: Optional[bool] = None,
                        max_students_per_group: Optional[int] = _UNSET) -> CategoryUpdate:
        """Change a category and reorganize its groups when capacity or mode changed.

        Writes run in order: the category itself, then group deletions,
        creations and membership updates. A failing step raises
        PartialWriteError; earlier steps stay written.
        """
        category = self._categories.find_by_id(category_id)
        old_capacity = category.max_students_per_group
        old_mode = category.random_groups

        updates: Dict[str, Any] = {}
        if name is not None and name.strip() != category.name:
            category = Category(category.id, category.course_id, name, category.random_groups,
                                category.max_students_per_group)
            updates['name'] = category.name
        if random_groups is not None and bool(random_groups) != old_mode:
            category.set_random_groups(random_groups)
            updates['randomGroups'] = category.random_groups
        if max_students_per_group is not _UNSET and max_students_per_group != old_capacity:
            category.set_max_students_per_group(max_students_per_group)
            updates['maxStudentsPerGroup'] = category.max_students_per_group

        if 'randomGroups' in updates or 'maxStudentsPerGroup' in updates:
            current = self._groups.find_by_category(category.id)
            plan = self._reorganizer.reorganize(
                current, category.max_students_per_group, category.random_groups,
                category.course_id, category.id
            )
        else:
            plan = ReorganizationPlan(unchanged_groups=self._groups.find_by_category(category.id))

        if not updates:
            return CategoryUpdate(category=category, plan=plan)

        sequence = TaskSequence(f"update category {category.name}", max_workers=self._max_workers)
        sequence.add("update category", self._bind(self._categories.update, category.id, updates), category.id)
        report = self.apply_plan(plan, sequence)

        logger.info(
            "Category updated",
            extra={'category_id': category.id, 'changes': sorted(updates),
                   'groups_deleted': len(plan.groups_to_delete), 'groups_created': len(plan.groups_to_create),
                   'groups_trimmed': len(plan.groups_to_update)}
        )
        return CategoryUpdate(category=category, plan=plan, report=report)

    def apply_plan(self, plan: ReorganizationPlan, sequence: Optional[TaskSequence] = None) -> SequenceReport:
        """Write a reorganization plan: deletions, creations, then updates."""
        sequence = sequence or TaskSequence("apply reorganization", max_workers=self._max_workers)
        for group in plan.groups_to_delete:
            sequence.add(f"delete {group.name}", self._bind(self._groups.delete, group.id), group.id)
        for group in plan.groups_to_create:
            sequence.add(f"insert {group.name}", self._bind(self._groups.add, group), group.id)
        for group in plan.groups_to_update:
            sequence.add(
                f"trim {group.name}",
                self._bind(self._groups.update, group.id, {'memberIds': group.member_ids}),
                group.id
            )
        return sequence.run()

    def assign_student(self, group_id: str, student_id: str) -> Group:
        """Put a student in a group of a free category."""
        group = self._groups.find_by_id(group_id)
        category = self._categories.find_by_id(group.category_id)
        course = self._courses.find_by_id(group.course_id)

        if not course.has_student(student_id):
            raise ValidationError(
                f"Student {student_id} is not enrolled in the course",
                error_code="not_enrolled",
                details={'course_id': course.id, 'student_id': student_id}
            )
        current = self.group_of_student(category.id, student_id)
        if current is not None:
            raise ValidationError(
                f"Student {student_id} already belongs to {current.name}",
                error_code="already_grouped",
                details={'category_id': category.id, 'group_id': current.id}
            )

        group.add_member(student_id, category.max_students_per_group)
        self._groups.update(group.id, {'memberIds': group.member_ids})
        logger.info("Student assigned to group", extra={'group_id': group.id, 'student_id': student_id})
        return group

    def remove_student(self, group_id: str, student_id: str) -> Group:
        group = self._groups.find_by_id(group_id)
        if group.remove_member(student_id):
            self._groups.update(group.id, {'memberIds': group.member_ids})
            logger.info("Student removed from group", extra={'group_id': group.id, 'student_id': student_id})
        return group

    def get_group(self, group_id: str) -> Group:
        return self._groups.find_by_id(group_id)

    def get_category(self, category_id: str) -> Category:
        return self._categories.find_by_id(category_id)

    def categories_for_course(self, course_id: str) -> List[Category]:
        return self._categories.find_by_course(course_id)

    def groups_for_category(self, category_id: str) -> List[Group]:
        return self._groups.find_by_category(category_id)

    def group_of_student(self, category_id: str, student_id: str) -> Optional[Group]:
        for group in self._groups.find_by_category(category_id):
            if group.has_member(student_id):
                return group
        return None

    def unassigned_students(self, category_id: str) -> List[str]:
        """Enrolled students not in any group of the category."""
        category = self._categories.find_by_id(category_id)
        course = self._courses.find_by_id(category.course_id)
        grouped = {member for group in self._groups.find_by_category(category_id)
                   for member in group.member_ids}
        return [student for student in course.student_ids if student not in grouped]

    @staticmethod
    def _bind(func, *args):
        return lambda: func(*args)
