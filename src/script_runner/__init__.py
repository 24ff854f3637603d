from .errors import ScriptValidationError
from .execution.local_engine import LocalEngine
from .execution.types import ExecutionRequest, ExecutionResult, Outcome
from .policy import ExecutionPolicy
from .runner import execute_script, run_script, validate_script

__all__ = [
    "ExecutionPolicy",
    "ExecutionRequest",
    "ExecutionResult",
    "LocalEngine",
    "Outcome",
    "ScriptValidationError",
    "execute_script",
    "run_script",
    "validate_script",
]
