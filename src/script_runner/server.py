from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .errors import ScriptValidationError
from .execution.engine import ExecutionEngine
from .execution.local_engine import LocalEngine
from .execution.types import ExecutionRequest
from .policy import ExecutionPolicy
from .runner import execute_script, validate_script

logger = logging.getLogger(__name__)

POLICY_FILE_ENV = "SCRIPT_RUNNER_POLICY_FILE"

router = APIRouter()


class ExecuteBody(BaseModel):
    """Inbound `/execute` payload; both fields are checked by the handler.

    Example:
        ```python
        body = ExecuteBody.model_validate({"script": "print(1)", "noteId": "n1"})
        ```
    """

    model_config = ConfigDict(populate_by_name=True)

    script: Any = None
    note_id: Any = Field(default=None, alias="noteId")


def _failure(message: str) -> JSONResponse:
    """Build the client-error response for a rejected request.

    Example:
        ```python
        response = _failure("Script is required")
        ```
    """
    return JSONResponse(status_code=400, content={"success": False, "error": message})


async def _on_script_validation_error(_request: Request, exc: Exception) -> JSONResponse:
    """Render a `ScriptValidationError` as a 400 failure body.

    Example:
        ```python
        app.add_exception_handler(ScriptValidationError, _on_script_validation_error)
        ```
    """
    logger.info("Rejected execute request: %s", exc)
    return _failure(str(exc))


async def _on_request_validation_error(_request: Request, exc: Exception) -> JSONResponse:
    """Render an unparseable request body as a 400 failure body.

    Example:
        ```python
        app.add_exception_handler(RequestValidationError, _on_request_validation_error)
        ```
    """
    logger.info("Rejected malformed execute request: %s", exc)
    return _failure("Script is required")


@router.post("/execute")
async def execute(body: ExecuteBody, request: Request) -> JSONResponse:
    """Run the submitted script and return its result with status 200.

    Engine-level failures are reported in the body, never as a transport error.

    Example:
        ```python
        client.post("/execute", json={"script": "print('hi')", "noteId": "n1"})
        ```
    """
    script = validate_script(body.script)
    correlation_id = None if body.note_id is None else str(body.note_id)
    engine: ExecutionEngine = request.app.state.engine
    result = await execute_script(
        engine, ExecutionRequest(script=script, correlation_id=correlation_id)
    )
    return JSONResponse(content=result.to_payload())


@router.get("/health")
async def health() -> dict[str, str]:
    """Report liveness with the current UTC timestamp.

    Example:
        ```python
        client.get("/health").json()["status"]  # "ok"
        ```
    """
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return {"status": "ok", "timestamp": timestamp.replace("+00:00", "Z")}


def create_app(
    engine: ExecutionEngine | None = None,
    policy: ExecutionPolicy | None = None,
    policy_file: str | None = None,
) -> FastAPI:
    """Build the HTTP application around an execution engine.

    Example:
        ```python
        app = create_app(policy=ExecutionPolicy(timeout_ms=5000))
        ```
    """
    if engine is not None and (policy is not None or policy_file is not None):
        raise ValueError("Provide either 'engine' or a policy, not both")
    app = FastAPI(
        title="script-runner",
        description="Run Python scripts in a separate interpreter with a deadline and capped output.",
    )
    app.state.engine = engine or LocalEngine(policy=policy, policy_file=policy_file)
    app.add_exception_handler(ScriptValidationError, _on_script_validation_error)
    app.add_exception_handler(RequestValidationError, _on_request_validation_error)
    app.include_router(router)
    return app


app = create_app(policy_file=os.environ.get(POLICY_FILE_ENV))
