from __future__ import annotations

import asyncio
import logging
from typing import Any

from .errors import ScriptValidationError
from .execution.engine import ExecutionEngine
from .execution.local_engine import LocalEngine
from .execution.types import ExecutionRequest, ExecutionResult
from .policy import ExecutionPolicy

logger = logging.getLogger(__name__)


def validate_script(script: Any) -> str:
    """Return the script if it is non-empty text, else raise.

    Example:
        ```python
        script = validate_script("print('hi')")
        ```
    """
    if not isinstance(script, str) or not script:
        raise ScriptValidationError("Script is required")
    return script


async def execute_script(engine: ExecutionEngine, request: ExecutionRequest) -> ExecutionResult:
    """Delegate one validated request to the engine, logging start and completion.

    Example:
        ```python
        result = await execute_script(LocalEngine(), ExecutionRequest(script="print(1)"))
        ```
    """
    logger.info("Executing script for note: %s", request.correlation_id)
    result = await engine.execute(request)
    logger.info(
        "Execution complete: %s in %sms (note=%s, outcome=%s)",
        "success" if result.success else "failed",
        result.execution_time_ms,
        request.correlation_id,
        result.outcome.value,
    )
    return result


def run_script(
    script: Any,
    engine: ExecutionEngine | None = None,
    correlation_id: str | None = None,
    policy: ExecutionPolicy | None = None,
    policy_file: str | None = None,
) -> ExecutionResult:
    """Validate and run one script synchronously, returning its result.

    Builds a `LocalEngine` from `policy`/`policy_file` when no engine is given.

    Example:
        ```python
        from script_runner import run_script
        result = run_script("print(2 + 2)")
        result.output  # "4"
        ```
    """
    validated = validate_script(script)
    if engine is None:
        engine = LocalEngine(policy=policy, policy_file=policy_file)
    elif policy is not None or policy_file is not None:
        raise ValueError("Provide either 'engine' or a policy, not both")
    request = ExecutionRequest(script=validated, correlation_id=correlation_id)
    return asyncio.run(execute_script(engine, request))
