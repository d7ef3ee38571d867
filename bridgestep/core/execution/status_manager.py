"""
Execution State Recorder

Owns every mutation of a step's ``Execution``: creates it, opens processes,
and applies status changes after validating them against the transition map.
"""

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from ..bridge.models import Step
from .models import Execution, InvalidTransitionError, Process, Status


UpdateCallback = Callable[[Step], None]


class StatusManager:
    """
    In-memory execution state recorder.

    Features:
    - Idempotent execution creation (existing history is kept)
    - Unique process ids per execution
    - Monotonic process/execution status transitions
    - Update callbacks receiving a snapshot of the step
    """

    PROCESS_TRANSITIONS: Dict[Status, Set[Status]] = {
        Status.STARTED: {
            Status.STARTED,
            Status.ACTION_REQUIRED,
            Status.PENDING,
            Status.DONE,
            Status.FAILED,
        },
        Status.ACTION_REQUIRED: {
            Status.ACTION_REQUIRED,  # Re-prepared after a stop at the checkpoint
            Status.PENDING,
            Status.DONE,
            Status.FAILED,
        },
        Status.PENDING: {
            Status.PENDING,          # Replacement transaction
            Status.DONE,
            Status.FAILED,
        },
        Status.DONE: {
            Status.DONE,             # Re-applied when resuming
        },
        Status.FAILED: set(),
    }

    EXECUTION_TRANSITIONS: Dict[Status, Set[Status]] = {
        Status.STARTED: set(Status),
        Status.ACTION_REQUIRED: set(Status),
        Status.PENDING: set(Status),
        Status.DONE: set(),
        Status.FAILED: set(),
    }

    PROCESS_FIELDS = frozenset({
        "message",
        "tx_hash",
        "tx_link",
        "error_message",
        "html_error_message",
        "error_code",
    })

    EXECUTION_FIELDS = frozenset({
        "from_amount",
        "to_amount",
        "to_token",
        "gas_used",
    })

    def __init__(
        self,
        update_callback: Optional[UpdateCallback] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self._callbacks: List[UpdateCallback] = [update_callback] if update_callback else []
        self._lock = threading.RLock()

    def on_update(self, callback: UpdateCallback) -> None:
        """Register a callback invoked after every recorded change."""
        self._callbacks.append(callback)

    def init_execution(self, step: Step) -> Execution:
        """Create the step's execution, or return the existing one untouched."""
        with self._lock:
            if step.execution is None:
                step.execution = Execution(status=Status.PENDING)
                self._notify(step)
            return step.execution

    def find_or_create_process(self, process_id: str, step: Step, message: str) -> Process:
        """Return the process with ``process_id``, creating it as STARTED if absent."""
        with self._lock:
            execution = self._require_execution(step)
            process = execution.find_process(process_id)
            if process is not None:
                return process

            process = Process(id=process_id, message=message)
            execution.process.append(process)
            self.logger.debug(f"Step {step.id}: opened process {process_id}")
            self._notify(step)
            return process

    def update_process(
        self,
        step: Step,
        process_id: str,
        status: Status,
        **fields: Any,
    ) -> Process:
        """
        Move a process to ``status`` and set optional fields.

        Raises:
            KeyError: If the process does not exist
            ValueError: If an unknown field is passed
            InvalidTransitionError: If the change would break monotonicity
        """
        unknown = set(fields) - self.PROCESS_FIELDS
        if unknown:
            raise ValueError(f"Unknown process fields: {sorted(unknown)}")

        with self._lock:
            execution = self._require_execution(step)
            process = execution.find_process(process_id)
            if process is None:
                raise KeyError(f"Process {process_id} not found on step {step.id}")

            if status not in self.PROCESS_TRANSITIONS[process.status]:
                raise InvalidTransitionError(
                    from_status=process.status,
                    to_status=status,
                    message=f"Process {process_id}: invalid transition from "
                            f"{process.status.value} to {status.value}",
                )

            previous = process.status
            process.status = status
            for name, value in fields.items():
                setattr(process, name, value)

            now = datetime.now(timezone.utc)
            if status == Status.DONE and process.done_at is None:
                process.done_at = now
            elif status == Status.FAILED:
                process.failed_at = now

            self.logger.info(
                f"Step {step.id}: {process_id} {previous.value} -> {status.value}"
                f"{f' (tx {process.tx_hash})' if process.tx_hash else ''}"
            )
            self._notify(step)
            return process

    def update_execution(self, step: Step, status: Status, **fields: Any) -> Execution:
        """Set the overall execution status. Terminal outcomes are final."""
        unknown = set(fields) - self.EXECUTION_FIELDS
        if unknown:
            raise ValueError(f"Unknown execution fields: {sorted(unknown)}")

        with self._lock:
            execution = self._require_execution(step)
            if status not in self.EXECUTION_TRANSITIONS[execution.status]:
                raise InvalidTransitionError(
                    from_status=execution.status,
                    to_status=status,
                    message=f"Execution of step {step.id} already {execution.status.value}",
                )

            execution.status = status
            for name, value in fields.items():
                setattr(execution, name, value)

            self.logger.info(f"Step {step.id}: execution {status.value}")
            self._notify(step)
            return execution

    def _require_execution(self, step: Step) -> Execution:
        if step.execution is None:
            raise ValueError(f"Step {step.id} has no execution; call init_execution first")
        return step.execution

    def _notify(self, step: Step) -> None:
        if not self._callbacks:
            return
        snapshot = copy.deepcopy(step)
        for callback in self._callbacks:
            try:
                callback(snapshot)
            except Exception as e:
                self.logger.error(f"Status update callback error: {e}")
