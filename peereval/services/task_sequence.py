"""
Ordered multi-step writes with per-step status tracking.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from ..core.enums import TaskStatus
from ..core.exceptions import PartialWriteError


logger = logging.getLogger("peereval.services.task_sequence")


@dataclass
class WriteTask:
    """One step of a sequence."""
    description: str
    action: Callable[[], Any]
    entity_id: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    result: Any = None
    error: Optional[BaseException] = None


@dataclass
class SequenceReport:
    """Per-step outcome of a completed sequence."""
    name: str
    tasks: List[WriteTask] = field(default_factory=list)

    @property
    def completed_entity_ids(self) -> List[str]:
        return [task.entity_id for task in self.tasks
                if task.status == TaskStatus.SUCCEEDED and task.entity_id is not None]

    @property
    def succeeded(self) -> bool:
        return all(task.status == TaskStatus.SUCCEEDED for task in self.tasks)


class TaskSequence:
    """Runs write steps in order and stops at the first failure.

    With ``max_workers`` > 1 the steps run on a thread pool instead; every
    step is attempted and results are still reported in step order. Steps
    that completed before a failure stay committed.
    """

    def __init__(self, name: str, max_workers: int = 1):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._name = name
        self._max_workers = max_workers
        self._tasks: List[WriteTask] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def tasks(self) -> List[WriteTask]:
        return list(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def add(self, description: str, action: Callable[[], Any], entity_id: Optional[str] = None) -> WriteTask:
        task = WriteTask(description=description, action=action, entity_id=entity_id)
        self._tasks.append(task)
        return task

    def run(self) -> SequenceReport:
        """Execute the steps. Raises PartialWriteError on the first failed step."""
        if self._max_workers == 1 or len(self._tasks) <= 1:
            self._run_sequential()
        else:
            self._run_concurrent()

        report = SequenceReport(name=self._name, tasks=list(self._tasks))
        for index, task in enumerate(self._tasks):
            if task.status == TaskStatus.FAILED:
                raise self._partial_write(index, task, report) from task.error

        logger.info("Write sequence completed", extra={'sequence': self._name, 'steps': len(self._tasks)})
        return report

    def _run_sequential(self) -> None:
        failed = False
        for task in self._tasks:
            if failed:
                task.status = TaskStatus.SKIPPED
                continue
            self._execute(task)
            failed = task.status == TaskStatus.FAILED

    def _run_concurrent(self) -> None:
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = [executor.submit(self._execute, task) for task in self._tasks]
            for future in futures:
                future.result()

    @staticmethod
    def _execute(task: WriteTask) -> None:
        try:
            task.result = task.action()
            task.status = TaskStatus.SUCCEEDED
        except Exception as e:
            task.error = e
            task.status = TaskStatus.FAILED

    def _partial_write(self, index: int, task: WriteTask, report: SequenceReport) -> PartialWriteError:
        logger.error(
            "Write sequence step failed",
            extra={'sequence': self._name, 'step_index': index, 'step': task.description,
                   'entity_id': task.entity_id, 'error': str(task.error)}
        )
        return PartialWriteError(
            f"{self._name}: step {index + 1} of {len(self._tasks)} failed ({task.description}): {task.error}",
            step_index=index,
            step_description=task.description,
            entity_id=task.entity_id,
            completed_entity_ids=report.completed_entity_ids
        )
