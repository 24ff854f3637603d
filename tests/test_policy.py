from pathlib import Path

import pytest

from script_runner import ExecutionPolicy
from script_runner.policy import resolve_policy


def test_default_policy_matches_service_constants() -> None:
    policy = ExecutionPolicy()

    assert policy.timeout_ms == 30000
    assert policy.max_output_chars == 10000
    assert policy.interpreter == "python3"
    assert policy.truncation_marker == "\n... (output truncated)"
    assert policy.empty_output_placeholder == "(no output)"
    assert policy.timeout_seconds == 30


def test_policy_file_overrides_defaults(tmp_path: Path) -> None:
    policy_file = tmp_path / "policy.toml"
    policy_file.write_text(
        (
            "[policy]\n"
            "interpreter = \"/usr/bin/python3\"\n"
            "timeout_ms = 1500\n"
            "max_output_chars = 64\n"
        ),
        encoding="utf-8",
    )

    policy = ExecutionPolicy.from_file(str(policy_file))

    assert policy.interpreter == "/usr/bin/python3"
    assert policy.timeout_ms == 1500
    assert policy.timeout_seconds == 1.5
    assert policy.max_output_chars == 64
    assert policy.kill_grace_ms == 2000
    assert policy.config_path == str(policy_file)


def test_policy_file_rejects_non_positive_limits(tmp_path: Path) -> None:
    policy_file = tmp_path / "policy.toml"
    policy_file.write_text("[policy]\ntimeout_ms = 0\n", encoding="utf-8")

    with pytest.raises(ValueError, match="timeout_ms"):
        ExecutionPolicy.from_file(str(policy_file))


def test_policy_file_rejects_non_integer_limits(tmp_path: Path) -> None:
    policy_file = tmp_path / "policy.toml"
    policy_file.write_text("[policy]\nmax_output_chars = \"lots\"\n", encoding="utf-8")

    with pytest.raises(ValueError, match="max_output_chars"):
        ExecutionPolicy.from_file(str(policy_file))


def test_policy_rejects_blank_interpreter() -> None:
    with pytest.raises(ValueError, match="interpreter"):
        ExecutionPolicy(interpreter="  ")


def test_resolve_policy_rejects_policy_and_policy_file_together(tmp_path: Path) -> None:
    policy_file = tmp_path / "policy.toml"
    policy_file.write_text("[policy]\ntimeout_ms = 100\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Provide either 'policy' or 'policy_file'"):
        resolve_policy(ExecutionPolicy(), str(policy_file))
