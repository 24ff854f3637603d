from __future__ import annotations

import io
import json
import sys
from pathlib import Path

import pytest

from script_runner import ExecutionResult, Outcome
from srun import cli


class _FakeEngine:
    result = ExecutionResult(success=True, output="fake output", execution_time_ms=5)
    instances: list["_FakeEngine"] = []

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.requests = []
        self.__class__.instances.append(self)

    async def execute(self, request):
        self.requests.append(request)
        return self.__class__.result


class _FakeUvicorn:
    calls: list[tuple[object, dict]] = []

    @classmethod
    def run(cls, app, **kwargs) -> None:
        cls.calls.append((app, kwargs))


@pytest.fixture(autouse=True)
def _patch_engine(monkeypatch: pytest.MonkeyPatch) -> None:
    _FakeEngine.instances = []
    _FakeEngine.result = ExecutionResult(success=True, output="fake output", execution_time_ms=5)
    _FakeUvicorn.calls = []
    monkeypatch.setattr(cli, "LocalEngine", _FakeEngine)
    monkeypatch.setattr(cli, "uvicorn", _FakeUvicorn)


def test_cli_run_inline_code(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["run", "-c", "print('hi')", "--note-id", "note-1"])
    output = capsys.readouterr().out

    assert code == 0
    assert "fake output" in output
    assert "completed" in output
    request = _FakeEngine.instances[0].requests[0]
    assert request.script == "print('hi')"
    assert request.correlation_id == "note-1"


def test_cli_run_file_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    script = tmp_path / "job.py"
    script.write_text("print(1)\n", encoding="utf-8")

    code = cli.main(["run", str(script), "--json"])
    output = capsys.readouterr().out

    assert code == 0
    assert json.loads(output) == {"success": True, "output": "fake output", "executionTime": 5}
    assert _FakeEngine.instances[0].requests[0].script == "print(1)\n"


def test_cli_run_failure_exit_code(capsys: pytest.CaptureFixture[str]) -> None:
    _FakeEngine.result = ExecutionResult(
        success=False,
        error="Execution timed out after 30 seconds",
        execution_time_ms=30000,
        outcome=Outcome.TIMED_OUT,
    )

    code = cli.main(["run", "-c", "while True: pass"])
    output = capsys.readouterr().out

    assert code == 1
    assert "Execution timed out after 30 seconds" in output
    assert "timed_out" in output


def test_cli_run_empty_script_is_rejected(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["run", "-c", ""])
    output = capsys.readouterr().out

    assert code == 2
    assert "Script is required" in output
    assert _FakeEngine.instances[0].requests == []


def test_cli_run_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["run", str(tmp_path / "missing.py")])
    output = capsys.readouterr().out

    assert code == 2
    assert "Cannot read script" in output


def test_cli_serve_starts_uvicorn_with_engine() -> None:
    code = cli.main(["--policy-file", "policy.toml", "serve", "--host", "0.0.0.0", "--port", "8123"])

    assert code == 0
    app, kwargs = _FakeUvicorn.calls[0]
    assert kwargs == {"host": "0.0.0.0", "port": 8123, "log_level": "info"}
    assert app.state.engine is _FakeEngine.instances[0]
    assert _FakeEngine.instances[0].kwargs == {"policy_file": "policy.toml"}


def test_cli_policy_shows_limits(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    policy_file = tmp_path / "policy.toml"
    policy_file.write_text("[policy]\ntimeout_ms = 4321\n", encoding="utf-8")

    code = cli.main(["--policy-file", str(policy_file), "policy"])
    output = capsys.readouterr().out

    assert code == 0
    assert "Execution Policy" in output
    assert "4321" in output


def test_cli_run_requires_a_source(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["run"])
    output = capsys.readouterr().out

    assert exc.value.code == 2
    assert "Error:" in output


def test_cli_top_level_help_examples(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--help"])
    output = capsys.readouterr().out

    assert exc.value.code == 0
    assert "Quick Examples:" in output
    assert "srun serve --port 5000" in output
    assert "Policy Examples:" in output


def test_cli_print_help_writes_to_requested_stream(capsys: pytest.CaptureFixture[str]) -> None:
    parser = cli.build_parser()
    buffer = io.StringIO()
    parser.print_help(file=buffer)
    output = capsys.readouterr().out

    assert output == ""
    help_text = buffer.getvalue()
    assert "Usage:" in help_text
    assert "script-runner CLI" in help_text


def test_cli_policy_ignores_broken_service_policy_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    broken = tmp_path / "broken.toml"
    broken.write_text("[policy]\ntimeout_ms = 0\n", encoding="utf-8")
    monkeypatch.setenv("SCRIPT_RUNNER_POLICY_FILE", str(broken))
    monkeypatch.delitem(sys.modules, "script_runner.server", raising=False)

    code = cli.main(["policy"])
    output = capsys.readouterr().out

    assert code == 0
    assert "30000" in output
    assert "script_runner.server" not in sys.modules
