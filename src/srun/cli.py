from __future__ import annotations

import argparse
import logging
from dataclasses import fields
from functools import partial
from pathlib import Path
from typing import Never, Sequence

import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich_argparse import RawTextRichHelpFormatter
from script_runner import ExecutionPolicy, ExecutionResult, LocalEngine, ScriptValidationError, run_script
from script_runner.policy import resolve_policy

_CONSOLE = Console(no_color=False)
_LOG_CONSOLE = Console(stderr=True)
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich.

    Example:
        ```python
        parser = _RichArgumentParser(prog="srun")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {message}", border_style="red"))
        self.print_help()
        raise SystemExit(2)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for the script-runner service.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="srun",
        description=(
            "script-runner CLI\n"
            "Run Python scripts in a separate interpreter with a deadline and capped output,\n"
            "either once from the terminal or behind the HTTP service."
        ),
        epilog=(
            "Quick Examples:\n"
            "  srun run -c \"print('hello')\"\n"
            "  srun run script.py --note-id note-42\n"
            "  srun run script.py --json\n"
            "  srun policy\n"
            "  srun serve --port 5000\n\n"
            "Policy Examples:\n"
            "  srun --policy-file policy.toml serve\n"
            "  srun --policy-file policy.toml run -c \"import time; time.sleep(60)\""
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--policy-file",
        help=(
            "TOML file with a [policy] table.\n"
            "Keys: interpreter, timeout_ms, kill_grace_ms, max_output_chars,\n"
            "truncation_marker, empty_output_placeholder."
        ),
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=_LOG_LEVELS,
        help="Log level for service and engine logs (default: INFO).",
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    serve_cmd = sub.add_parser(
        "serve",
        help="Start the HTTP service.",
        description=(
            "Serve POST /execute and GET /health with uvicorn.\n"
            "Every request starts its own interpreter process."
        ),
        epilog=(
            "Examples:\n"
            "  srun serve\n"
            "  srun serve --host 0.0.0.0 --port 8080"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    serve_cmd.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1).",
    )
    serve_cmd.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port to bind (default: 5000).",
    )

    run_cmd = sub.add_parser(
        "run",
        help="Execute one script and print its result.",
        description=(
            "Execute a script file or inline code once, the same way the service does.\n"
            "Exit status is 0 when the script succeeded and 1 otherwise."
        ),
        epilog=(
            "Examples:\n"
            "  srun run analysis.py\n"
            "  srun run -c \"print(sum(range(10)))\" --json"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    source = run_cmd.add_mutually_exclusive_group(required=True)
    source.add_argument("file", nargs="?", help="Path to a Python script.")
    source.add_argument("-c", "--code", help="Inline script text.")
    run_cmd.add_argument(
        "--note-id",
        help="Correlation id written to the logs (default: none).",
    )
    run_cmd.add_argument(
        "--json",
        action="store_true",
        help="Print the response body as JSON instead of tables.",
    )

    sub.add_parser(
        "policy",
        help="Show the effective execution policy.",
        description="Print the limits every invocation runs under.",
        formatter_class=_HELP_FORMATTER,
    )

    return parser


def _configure_logging(level: str) -> None:
    """Route root logging through Rich on stderr.

    Example:
        ```python
        _configure_logging("INFO")
        ```
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=_LOG_CONSOLE, rich_tracebacks=True)],
        force=True,
    )


def _read_script(args: argparse.Namespace) -> str:
    """Return inline code or the contents of the script file.

    Example:
        ```python
        script = _read_script(args)
        ```
    """
    if args.code is not None:
        return args.code
    return Path(args.file).read_text(encoding="utf-8")


def _print_policy(policy: ExecutionPolicy) -> None:
    """Render the effective policy in a rich table.

    Example:
        ```python
        _print_policy(ExecutionPolicy())
        ```
    """
    table = Table(title="Execution Policy")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")
    for item in fields(policy):
        table.add_row(item.name, repr(getattr(policy, item.name)))
    _CONSOLE.print(table)


def _print_result(result: ExecutionResult) -> None:
    """Render one execution result as a summary table plus output panels.

    Example:
        ```python
        _print_result(ExecutionResult(success=True, output="4"))
        ```
    """
    table = Table(title="Execution Result")
    table.add_column("Success", style="cyan")
    table.add_column("Outcome")
    table.add_column("Time")
    table.add_row(
        "[bold green]yes[/bold green]" if result.success else "[bold red]no[/bold red]",
        result.outcome.value,
        f"{result.execution_time_ms} ms",
    )
    _CONSOLE.print(table)
    if result.output is not None:
        _CONSOLE.print(Panel(Text(result.output), title="Output", border_style="green"))
    if result.error is not None:
        _CONSOLE.print(Panel(Text(result.error), title="Error", border_style="red"))


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `srun` CLI command handler.

    Example:
        ```python
        code = main(["run", "-c", "print(1)"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    _configure_logging(args.log_level)

    if args.command == "policy":
        _print_policy(resolve_policy(None, args.policy_file))
        return 0
    if args.command == "serve":
        from script_runner.server import create_app

        app = create_app(engine=LocalEngine(policy_file=args.policy_file))
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
        return 0
    if args.command == "run":
        try:
            script = _read_script(args)
        except OSError as exc:
            _CONSOLE.print(Panel.fit(f"Cannot read script: {exc}", style="bold red"))
            return 2
        engine = LocalEngine(policy_file=args.policy_file)
        try:
            result = run_script(script, engine=engine, correlation_id=args.note_id)
        except ScriptValidationError as exc:
            _CONSOLE.print(Panel.fit(str(exc), style="bold red"))
            return 2
        if args.json:
            _CONSOLE.print_json(data=result.to_payload())
        else:
            _print_result(result)
        return 0 if result.success else 1

    parser.error("Unhandled command")
    return 2
