from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any


def _default_policy_path() -> Path:
    """Return bundled default policy TOML path.

    Example:
        ```python
        path = _default_policy_path()
        ```
    """
    return Path(__file__).with_name("default_policy.toml")


def _read_policy_toml(path: Path) -> dict[str, Any]:
    """Read policy TOML and return the raw policy table.

    Example:
        ```python
        raw = _read_policy_toml(Path("/tmp/policy.toml"))
        ```
    """
    if not path.exists():
        return {
            "interpreter": "python3",
            "timeout_ms": 30000,
            "kill_grace_ms": 2000,
            "max_output_chars": 10000,
            "truncation_marker": "\n... (output truncated)",
            "empty_output_placeholder": "(no output)",
        }
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    policy_obj = raw.get("policy", raw)
    if not isinstance(policy_obj, dict):
        raise ValueError("Policy config must be a TOML table")
    return policy_obj


def _positive_int(value: Any, field_name: str) -> int:
    """Validate and normalize a positive integer policy field.

    Example:
        ```python
        timeout = _positive_int(30000, "timeout_ms")
        ```
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{field_name}' must be an integer")
    if value <= 0:
        raise ValueError(f"'{field_name}' must be greater than zero")
    return value


_DEFAULT_POLICY_RAW = _read_policy_toml(_default_policy_path())
DEFAULT_INTERPRETER = str(_DEFAULT_POLICY_RAW.get("interpreter", "python3"))
DEFAULT_TIMEOUT_MS = int(_DEFAULT_POLICY_RAW.get("timeout_ms", 30000))
DEFAULT_KILL_GRACE_MS = int(_DEFAULT_POLICY_RAW.get("kill_grace_ms", 2000))
DEFAULT_MAX_OUTPUT_CHARS = int(_DEFAULT_POLICY_RAW.get("max_output_chars", 10000))
DEFAULT_TRUNCATION_MARKER = str(
    _DEFAULT_POLICY_RAW.get("truncation_marker", "\n... (output truncated)")
)
DEFAULT_EMPTY_OUTPUT_PLACEHOLDER = str(
    _DEFAULT_POLICY_RAW.get("empty_output_placeholder", "(no output)")
)


@dataclass(slots=True)
class ExecutionPolicy:
    """Limits and interpreter settings applied to every script invocation.

    Example:
        ```python
        policy = ExecutionPolicy(timeout_ms=5000, max_output_chars=2000)
        ```
    """

    interpreter: str = DEFAULT_INTERPRETER
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    kill_grace_ms: int = DEFAULT_KILL_GRACE_MS
    max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS
    truncation_marker: str = DEFAULT_TRUNCATION_MARKER
    empty_output_placeholder: str = DEFAULT_EMPTY_OUTPUT_PLACEHOLDER
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Validate limits after dataclass initialization.

        Example:
            ```python
            ExecutionPolicy(timeout_ms=1000)
            ```
        """
        if not self.interpreter.strip():
            raise ValueError("'interpreter' must be a non-empty string")
        _positive_int(self.timeout_ms, "timeout_ms")
        _positive_int(self.kill_grace_ms, "kill_grace_ms")
        _positive_int(self.max_output_chars, "max_output_chars")

    @property
    def timeout_seconds(self) -> float:
        """Return the deadline in seconds.

        Example:
            ```python
            ExecutionPolicy(timeout_ms=1500).timeout_seconds  # 1.5
            ```
        """
        return self.timeout_ms / 1000

    @classmethod
    def from_file(cls, config_path: str) -> "ExecutionPolicy":
        """Create a policy instance from a TOML file.

        Example:
            ```python
            policy = ExecutionPolicy.from_file("/tmp/policy.toml")
            ```
        """
        raw = _read_policy_toml(Path(config_path))
        return cls(
            interpreter=str(raw.get("interpreter", DEFAULT_INTERPRETER)),
            timeout_ms=_positive_int(raw.get("timeout_ms", DEFAULT_TIMEOUT_MS), "timeout_ms"),
            kill_grace_ms=_positive_int(
                raw.get("kill_grace_ms", DEFAULT_KILL_GRACE_MS), "kill_grace_ms"
            ),
            max_output_chars=_positive_int(
                raw.get("max_output_chars", DEFAULT_MAX_OUTPUT_CHARS), "max_output_chars"
            ),
            truncation_marker=str(raw.get("truncation_marker", DEFAULT_TRUNCATION_MARKER)),
            empty_output_placeholder=str(
                raw.get("empty_output_placeholder", DEFAULT_EMPTY_OUTPUT_PLACEHOLDER)
            ),
            config_path=config_path,
        )


def resolve_policy(policy: ExecutionPolicy | None, policy_file: str | None) -> ExecutionPolicy:
    """Resolve the effective policy from an object or a TOML file path.

    Example:
        ```python
        policy = resolve_policy(None, "/tmp/policy.toml")
        ```
    """
    if policy is not None and policy_file is not None:
        raise ValueError("Provide either 'policy' or 'policy_file', not both")
    if policy_file is not None:
        return ExecutionPolicy.from_file(policy_file)
    if policy is None:
        return ExecutionPolicy()
    return policy
