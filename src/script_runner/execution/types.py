from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Outcome(str, Enum):
    """Terminal state reached by one invocation."""

    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SPAWN_FAILED = "spawn_failed"


@dataclass(slots=True)
class ExecutionRequest:
    """Normalized request sent to an execution engine.

    Example:
        ```python
        req = ExecutionRequest(script="print('hi')", correlation_id="note-1")
        ```
    """

    script: str
    correlation_id: str | None = None


@dataclass(slots=True)
class ExecutionResult:
    """Structured outcome of one script invocation.

    Example:
        ```python
        result = ExecutionResult(success=True, output="hi", execution_time_ms=12)
        ```
    """

    success: bool
    output: str | None = None
    error: str | None = None
    execution_time_ms: int = 0
    outcome: Outcome = Outcome.COMPLETED

    def __post_init__(self) -> None:
        """Reject results that mix the success and failure branches.

        Example:
            ```python
            ExecutionResult(success=False, error="boom")
            ```
        """
        if self.success and self.error is not None:
            raise ValueError("A successful result cannot carry an error")
        if self.execution_time_ms < 0:
            raise ValueError("execution_time_ms must be non-negative")

    def to_payload(self) -> dict[str, Any]:
        """Render the caller-facing body, omitting absent optional fields.

        Example:
            ```python
            body = ExecutionResult(success=True, output="hi").to_payload()
            ```
        """
        payload: dict[str, Any] = {"success": self.success}
        if self.output is not None:
            payload["output"] = self.output
        if self.error is not None:
            payload["error"] = self.error
        payload["executionTime"] = self.execution_time_ms
        return payload
