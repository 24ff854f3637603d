from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from asyncio.subprocess import DEVNULL, PIPE, Process
from types import TracebackType

from ..policy import ExecutionPolicy, resolve_policy
from .output import OutputBuffer
from .types import ExecutionRequest, ExecutionResult, Outcome

logger = logging.getLogger(__name__)

_READ_CHUNK_BYTES = 4096


def _child_env() -> dict[str, str]:
    """Return the caller environment with UTF-8 interpreter I/O forced on.

    Example:
        ```python
        env = _child_env()
        env["PYTHONIOENCODING"]  # "utf-8"
        ```
    """
    env = dict(os.environ)
    env["PYTHONIOENCODING"] = "utf-8"
    return env


def _elapsed_ms(started: float) -> int:
    """Return whole milliseconds elapsed since a monotonic timestamp.

    Example:
        ```python
        elapsed = _elapsed_ms(time.monotonic())
        ```
    """
    return max(0, int((time.monotonic() - started) * 1000))


def _format_seconds(milliseconds: int) -> str:
    """Render a millisecond duration as a compact seconds string.

    Example:
        ```python
        _format_seconds(30000)  # "30"
        ```
    """
    return f"{milliseconds / 1000:g}"


async def _pump(stream: asyncio.StreamReader | None, buffer: OutputBuffer) -> None:
    """Read a child pipe to EOF, feeding every chunk into a capped buffer.

    Example:
        ```python
        await _pump(process.stdout, OutputBuffer(max_chars=100, marker="..."))
        ```
    """
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            break
        buffer.feed(chunk)
    buffer.close()


class Invocation:
    """One script run: process handle, output buffers, and deadline.

    Use as an async context manager so the child is stopped on every exit
    path, including cancellation of the awaiting task.

    Example:
        ```python
        async with Invocation("print(1)", ExecutionPolicy()) as invocation:
            result = await invocation.run()
        ```
    """

    def __init__(self, script: str, policy: ExecutionPolicy) -> None:
        """Prepare an idle invocation.

        Example:
            ```python
            invocation = Invocation("print('hi')", ExecutionPolicy())
            ```
        """
        self._script = script
        self._policy = policy
        self._process: Process | None = None
        self._drain_task: asyncio.Task[int] | None = None
        self._started = 0.0
        self.stdout = OutputBuffer(
            max_chars=policy.max_output_chars, marker=policy.truncation_marker
        )
        self.stderr = OutputBuffer(
            max_chars=policy.max_output_chars, marker=policy.truncation_marker
        )

    async def __aenter__(self) -> "Invocation":
        """Enter the invocation scope.

        Example:
            ```python
            async with Invocation("pass", policy) as invocation:
                ...
            ```
        """
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Stop the child if it is still running when the scope closes.

        Example:
            ```python
            await invocation.__aexit__(None, None, None)
            ```
        """
        if self._drain_task is not None and not self._drain_task.done():
            await self._stop()

    async def run(self) -> ExecutionResult:
        """Spawn the interpreter and resolve on exit, deadline, or spawn failure.

        Example:
            ```python
            result = await invocation.run()
            ```
        """
        self._started = time.monotonic()
        try:
            self._process = await asyncio.create_subprocess_exec(
                self._policy.interpreter,
                "-c",
                self._script,
                stdin=DEVNULL,
                stdout=PIPE,
                stderr=PIPE,
                env=_child_env(),
                start_new_session=True,
            )
        except (OSError, ValueError) as exc:
            reason = getattr(exc, "strerror", None) or str(exc)
            logger.warning("Failed to start %s: %s", self._policy.interpreter, reason)
            return ExecutionResult(
                success=False,
                error=f"Failed to execute: {reason}",
                execution_time_ms=_elapsed_ms(self._started),
                outcome=Outcome.SPAWN_FAILED,
            )

        logger.debug("Spawned interpreter pid=%s", self._process.pid)
        self._drain_task = asyncio.create_task(self._drain(self._process))
        done, _ = await asyncio.wait({self._drain_task}, timeout=self._policy.timeout_seconds)
        if not done:
            elapsed = _elapsed_ms(self._started)
            logger.warning(
                "pid=%s exceeded the %sms deadline; terminating",
                self._process.pid,
                self._policy.timeout_ms,
            )
            await self._stop()
            return ExecutionResult(
                success=False,
                error=f"Execution timed out after {_format_seconds(self._policy.timeout_ms)} seconds",
                execution_time_ms=elapsed,
                outcome=Outcome.TIMED_OUT,
            )
        return self._finish(self._drain_task.result(), _elapsed_ms(self._started))

    async def _drain(self, process: Process) -> int:
        """Read both pipes to EOF, then wait for the exit status.

        Example:
            ```python
            returncode = await invocation._drain(process)
            ```
        """
        await asyncio.gather(
            _pump(process.stdout, self.stdout),
            _pump(process.stderr, self.stderr),
        )
        return await process.wait()

    def _finish(self, returncode: int, elapsed_ms: int) -> ExecutionResult:
        """Translate an exit status and captured streams into a result.

        Example:
            ```python
            result = invocation._finish(0, 15)
            ```
        """
        stdout = self.stdout.text.strip()
        stderr = self.stderr.text.strip()
        if returncode == 0:
            return ExecutionResult(
                success=True,
                output=stdout or self._policy.empty_output_placeholder,
                execution_time_ms=elapsed_ms,
                outcome=Outcome.COMPLETED,
            )
        return ExecutionResult(
            success=False,
            output=stdout or None,
            error=stderr or f"Process exited with code {returncode}",
            execution_time_ms=elapsed_ms,
            outcome=Outcome.FAILED,
        )

    def _signal(self, sig: signal.Signals) -> None:
        """Send a signal to the child's process group.

        The group outlives its leader while any descendant still holds the
        output pipes, so the leader's exit status is not checked here.

        Example:
            ```python
            invocation._signal(signal.SIGTERM)
            ```
        """
        process = self._process
        if process is None:
            return
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            pass

    async def _stop(self) -> None:
        """Terminate the child, escalating to SIGKILL after the grace period.

        The pipes keep draining while the child shuts down, so its exit can
        always be observed.

        Example:
            ```python
            await invocation._stop()
            ```
        """
        drain_task = self._drain_task
        if drain_task is None:
            return
        grace_seconds = self._policy.kill_grace_ms / 1000
        for sig in (signal.SIGTERM, signal.SIGKILL):
            self._signal(sig)
            done, _ = await asyncio.wait({drain_task}, timeout=grace_seconds)
            if done:
                return
        pid = self._process.pid if self._process is not None else None
        logger.warning("Pipes of pid=%s stayed open after SIGKILL; abandoning them", pid)
        drain_task.cancel()
        await asyncio.gather(drain_task, return_exceptions=True)


class LocalEngine:
    """Execute scripts with a local interpreter, one process per call.

    Example:
        ```python
        engine = LocalEngine(policy=ExecutionPolicy(timeout_ms=5000))
        ```
    """

    def __init__(
        self,
        *,
        policy: ExecutionPolicy | None = None,
        policy_file: str | None = None,
    ) -> None:
        """Initialize the engine with an explicit policy or a policy file.

        Example:
            ```python
            engine = LocalEngine(policy_file="/etc/script-runner/policy.toml")
            ```
        """
        self._policy = resolve_policy(policy, policy_file)

    @property
    def policy(self) -> ExecutionPolicy:
        """Return the effective policy.

        Example:
            ```python
            engine.policy.timeout_ms
            ```
        """
        return self._policy

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Run one script in a fresh interpreter process.

        Example:
            ```python
            result = await engine.execute(ExecutionRequest(script="print(2 + 2)"))
            ```
        """
        async with Invocation(request.script, self._policy) as invocation:
            return await invocation.run()
