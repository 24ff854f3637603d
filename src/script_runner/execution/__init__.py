from .engine import ExecutionEngine
from .output import OutputBuffer
from .types import ExecutionRequest, ExecutionResult, Outcome

__all__ = [
    "ExecutionEngine",
    "ExecutionRequest",
    "ExecutionResult",
    "Outcome",
    "OutputBuffer",
]
