"""
Response aggregator - correlates participant responses to save operations.

Each save operation is identified by an operation id and collects at most
one response per system name. An operation ends exactly once:

    COLLECTING -> COMPLETE    all expected systems responded, or finalize()
    COLLECTING -> TIMED_OUT   deadline passed (checked by poll())
    COLLECTING -> CANCELLED   cancel()

Terminal operations accept no more input. The most recent RETIRED_LIMIT
finished ids are remembered so a late response is reported as CLOSED
rather than UNKNOWN_OPERATION, and such an id cannot be opened again.
Older ids are forgotten; fresh ids come from uuid4.

Timeouts are cooperative: nothing fires on its own. The owner calls poll()
from its tick, and a finished operation leaves the deadline check at once,
so a timeout can never fire after completion.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Callable, Optional

from savekit.save.errors import OperationError
from savekit.save.events import SaveResponse


logger = logging.getLogger(__name__)

# Finished operation ids kept for CLOSED reporting
RETIRED_LIMIT = 256


class OperationState(Enum):
    """Lifecycle of a save operation."""
    COLLECTING = auto()
    COMPLETE = auto()
    TIMED_OUT = auto()
    CANCELLED = auto()


class RegisterResult(Enum):
    """Outcome of register_response()."""
    ACCEPTED = auto()
    DUPLICATE = auto()
    UNKNOWN_OPERATION = auto()
    CLOSED = auto()
    UNEXPECTED = auto()
    REJECTED = auto()


@dataclass
class SaveOperation:
    """
    One outstanding (or just finished) save operation.

    Attributes:
        operation_id: Correlation token
        slot: Target save slot
        expected_systems: Number of systems that should respond
        expected_names: Names allowed to respond (None accepts any name)
        request_time: Wall-clock time the request was issued
        started_at: Clock reading at open (for the deadline)
        deadline: Clock reading after which the operation times out
        responses: Accepted responses by system name, in arrival order
        state: Current lifecycle state
        error: Reason for a non-complete ending
    """
    operation_id: str
    slot: int
    expected_systems: int
    expected_names: Optional[frozenset[str]] = None
    request_time: datetime = field(default_factory=datetime.now)
    started_at: float = 0.0
    deadline: Optional[float] = None
    responses: dict[str, SaveResponse] = field(default_factory=dict)
    state: OperationState = OperationState.COLLECTING
    error: str = ""

    @property
    def systems_responded(self) -> int:
        return len(self.responses)

    @property
    def is_terminal(self) -> bool:
        return self.state is not OperationState.COLLECTING

    def collected(self) -> dict[str, str]:
        """Blobs of successful responses, in arrival order."""
        return {
            name: response.save_data
            for name, response in self.responses.items()
            if response.success
        }

    def failed_systems(self) -> list[str]:
        """Systems that responded with success=False."""
        return [name for name, r in self.responses.items() if not r.success]

    def missing_systems(self) -> list[str]:
        """Expected systems that have not responded (only known with expected_names)."""
        if self.expected_names is None:
            return []
        return sorted(self.expected_names - self.responses.keys())


class ResponseAggregator:
    """
    Tracks save operations and their responses.

    Args:
        on_finished: Called exactly once per operation when it leaves
            COLLECTING, with the finished operation
        clock: Monotonic clock used for deadlines (injectable for tests)
        retired_limit: Number of finished ids remembered
    """

    def __init__(
        self,
        on_finished: Optional[Callable[[SaveOperation], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        retired_limit: int = RETIRED_LIMIT,
    ):
        self._on_finished = on_finished
        self._clock = clock
        self._live: dict[str, SaveOperation] = {}
        self._retired: set[str] = set()
        self._retired_order: deque[str] = deque()
        self._retired_limit = max(0, retired_limit)

    @property
    def active_operations(self) -> list[SaveOperation]:
        return list(self._live.values())

    def open(
        self,
        operation_id: str,
        slot: int,
        expected_systems: int,
        *,
        expected_names: Optional[frozenset[str]] = None,
        timeout: Optional[float] = None,
    ) -> SaveOperation:
        """
        Start collecting for a new operation.

        Args:
            operation_id: Fresh correlation token
            slot: Target slot
            expected_systems: Responses needed for completion (0 = until finalize())
            expected_names: Restrict responses to these system names
            timeout: Seconds until the operation times out (None = never)

        Raises:
            OperationError: If the id is already live or was used before
        """
        if operation_id in self._live or operation_id in self._retired:
            raise OperationError(f"Operation id already used: {operation_id}")

        now = self._clock()
        operation = SaveOperation(
            operation_id=operation_id,
            slot=slot,
            expected_systems=max(0, expected_systems),
            expected_names=frozenset(expected_names) if expected_names is not None else None,
            started_at=now,
            deadline=now + timeout if timeout is not None else None,
        )
        self._live[operation_id] = operation
        logger.debug(
            f"Opened operation {operation_id} for slot {slot} "
            f"(expecting {operation.expected_systems})"
        )
        return operation

    def register_response(
        self,
        operation_id: str,
        system_name: str,
        blob: str,
        success: bool = True,
        response_time: Optional[datetime] = None,
    ) -> RegisterResult:
        """
        Record one system's response.

        Returns:
            ACCEPTED when counted; any other value means the response was
            ignored and the operation is unchanged
        """
        operation = self._live.get(operation_id)
        if operation is None:
            if operation_id in self._retired:
                logger.debug(f"Late response from '{system_name}' for closed operation {operation_id}")
                return RegisterResult.CLOSED
            logger.debug(f"Response from '{system_name}' for unknown operation {operation_id}")
            return RegisterResult.UNKNOWN_OPERATION

        if not system_name:
            logger.warning(f"Response without a system name for operation {operation_id}")
            return RegisterResult.REJECTED

        if operation.expected_names is not None and system_name not in operation.expected_names:
            logger.warning(
                f"Response from unregistered system '{system_name}' ignored "
                f"(operation {operation_id})"
            )
            return RegisterResult.UNEXPECTED

        if system_name in operation.responses:
            logger.warning(f"Duplicate response from '{system_name}' for operation {operation_id}")
            return RegisterResult.DUPLICATE

        operation.responses[system_name] = SaveResponse(
            system_name=system_name,
            save_data=blob if blob is not None else "",
            operation_id=operation_id,
            total_systems=operation.expected_systems,
            response_time=response_time or datetime.now(),
            success=success,
        )
        logger.debug(
            f"Operation {operation_id}: '{system_name}' responded "
            f"({operation.systems_responded}/{operation.expected_systems})"
        )

        if 0 < operation.expected_systems <= operation.systems_responded:
            self._finish(operation, OperationState.COMPLETE)

        return RegisterResult.ACCEPTED

    def finalize(self, operation_id: str) -> bool:
        """
        Complete an operation with whatever has arrived.

        Returns:
            True if the operation was collecting and is now complete
        """
        operation = self._live.get(operation_id)
        if operation is None:
            return False
        self._finish(operation, OperationState.COMPLETE)
        return True

    def cancel(self, operation_id: str, reason: str = "Cancelled") -> bool:
        """
        Cancel a collecting operation.

        Returns:
            True if the operation was collecting and is now cancelled
        """
        operation = self._live.get(operation_id)
        if operation is None:
            return False
        operation.error = reason
        self._finish(operation, OperationState.CANCELLED)
        return True

    def poll(self) -> list[SaveOperation]:
        """
        Time out every operation whose deadline has passed.

        Returns:
            Operations that timed out during this call
        """
        now = self._clock()
        expired = [
            op for op in self._live.values()
            if op.deadline is not None and now >= op.deadline
        ]
        for operation in expired:
            # An earlier on_finished callback may already have ended it
            if operation.operation_id not in self._live:
                continue
            operation.error = (
                f"Timed out after {now - operation.started_at:.1f}s: "
                f"{operation.systems_responded} of {operation.expected_systems} systems responded"
            )
            missing = operation.missing_systems()
            if missing:
                operation.error += f" (missing: {', '.join(missing)})"
            self._finish(operation, OperationState.TIMED_OUT)
        return expired

    def get(self, operation_id: str) -> Optional[SaveOperation]:
        """Get a live operation."""
        return self._live.get(operation_id)

    def is_known(self, operation_id: str) -> bool:
        """Whether an id is live or was used before."""
        return operation_id in self._live or operation_id in self._retired

    def is_collecting(self, slot: int) -> bool:
        """Whether a slot has a collecting operation."""
        return any(op.slot == slot for op in self._live.values())

    def _finish(self, operation: SaveOperation, state: OperationState) -> None:
        operation.state = state
        del self._live[operation.operation_id]
        self._retire(operation.operation_id)

        logger.debug(f"Operation {operation.operation_id} finished: {state.name}")

        if self._on_finished:
            self._on_finished(operation)

    def _retire(self, operation_id: str) -> None:
        self._retired.add(operation_id)
        self._retired_order.append(operation_id)
        while len(self._retired_order) > self._retired_limit:
            self._retired.discard(self._retired_order.popleft())
