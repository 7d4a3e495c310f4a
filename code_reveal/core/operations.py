"""Tracking of multi-step code operations and their errors."""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from .errors import OperationNotFoundError
from .models import (
    CodeOperation, OperationError, OperationId, OperationStatus, OperationStep,
    StepStatus, generate_operation_id
)


logger = logging.getLogger(__name__)


class OperationLog:
    """Keeps code operations in creation order and records their steps."""

    def __init__(self, max_operations: int = 100):
        """Initialize the operation log.

        Args:
            max_operations: Finished operations beyond this count are
                dropped, oldest first
        """
        self.max_operations = max_operations
        self._operations: Dict[OperationId, CodeOperation] = {}
        self._order: List[OperationId] = []
        self._lock = threading.Lock()

    def start(self, name: str) -> CodeOperation:
        """Create a running operation."""
        operation = CodeOperation(
            id=generate_operation_id(),
            name=name,
            status=OperationStatus.RUNNING,
        )
        with self._lock:
            self._operations[operation.id] = operation
            self._order.append(operation.id)
            self._trim()
        logger.debug(f"Operation {operation.id} started: {name}")
        return operation

    def get(self, operation_id: OperationId) -> CodeOperation:
        with self._lock:
            try:
                return self._operations[operation_id]
            except KeyError:
                raise OperationNotFoundError(f"Operation not found: {operation_id}")

    def list_operations(self) -> List[CodeOperation]:
        with self._lock:
            return [self._operations[op_id] for op_id in self._order]

    def add_step(self, operation_id: OperationId, message: str,
                 file_path: Optional[str] = None,
                 status: StepStatus = StepStatus.RUNNING) -> OperationStep:
        """Append a step to an operation."""
        operation = self.get(operation_id)
        step = OperationStep(
            message=message,
            status=status,
            timestamp=datetime.now(),
            file_path=file_path,
        )
        with self._lock:
            operation.steps.append(step)
        return step

    def complete_step(self, operation_id: OperationId, file_path: Optional[str] = None) -> None:
        """Mark the latest running step (for file_path, if given) complete."""
        step = self._find_running_step(operation_id, file_path)
        if step is not None:
            step.status = StepStatus.COMPLETE
            step.timestamp = datetime.now()

    def fail_step(self, operation_id: OperationId, error: OperationError) -> OperationStep:
        """Record an error against the step for error.file_path.

        A failed step is appended if no running step matches.
        """
        step = self._find_running_step(operation_id, error.file_path)
        if step is None:
            step = self.add_step(operation_id, error.message, error.file_path, StepStatus.FAILED)
        step.status = StepStatus.FAILED
        step.error = error
        step.timestamp = datetime.now()
        logger.debug(f"Operation {operation_id} step failed: {error.kind.value}: {error.message}")
        return step

    def complete(self, operation_id: OperationId) -> CodeOperation:
        operation = self.get(operation_id)
        with self._lock:
            operation.status = OperationStatus.SUCCESS
            operation.completed_at = datetime.now()
        return operation

    def fail(self, operation_id: OperationId, error: OperationError) -> CodeOperation:
        operation = self.get(operation_id)
        with self._lock:
            operation.status = OperationStatus.ERROR
            operation.error = error
            operation.completed_at = datetime.now()
        logger.info(f"Operation {operation_id} failed: {error.message}")
        return operation

    def cancel(self, operation_id: OperationId) -> CodeOperation:
        """Mark an operation cancelled; running steps are marked failed."""
        operation = self.get(operation_id)
        with self._lock:
            for step in operation.steps:
                if step.status == StepStatus.RUNNING:
                    step.status = StepStatus.FAILED
            operation.status = OperationStatus.CANCELLED
            operation.completed_at = datetime.now()
        return operation

    def _find_running_step(self, operation_id: OperationId,
                           file_path: Optional[str]) -> Optional[OperationStep]:
        operation = self.get(operation_id)
        with self._lock:
            for step in reversed(operation.steps):
                if step.status != StepStatus.RUNNING:
                    continue
                if file_path is None or step.file_path == file_path:
                    return step
        return None

    def _trim(self) -> None:
        # Caller holds the lock
        while len(self._order) > self.max_operations:
            oldest = self._order[0]
            if self._operations[oldest].status == OperationStatus.RUNNING:
                break
            self._order.pop(0)
            del self._operations[oldest]
