from __future__ import annotations

import argparse
import json
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.pretty import Pretty
from rich_argparse import RawTextRichHelpFormatter

from code_executor import Dispatcher, DispatcherSettings, ExecutorSettings, HandleType
from code_executor import serve as serve_executor
from code_executor.logs import configure_logging
from code_executor.native import to_native

_CONSOLE = Console(no_color=False)

_RETURN_TYPES = {handle.name.lower(): handle for handle in HandleType}


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
        parser = _RichArgumentParser(prog="pxr")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {escape(message)}", border_style="red"))
        self.print_help()
        raise SystemExit(2)


def _parse_assignment(raw: str) -> tuple[str, Any]:
    """Split `name=value`; the value is read as JSON, or kept as a string.

    Example:
        ```python
        _parse_assignment('tags=["a", "b"]')  # ("tags", ["a", "b"])
        _parse_assignment("name=ada")  # ("name", "ada")
        ```
    """
    name, sep, value = raw.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {raw!r}")
    try:
        return name, json.loads(value)
    except json.JSONDecodeError:
        return name, value


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for the executor service and one-off dispatches.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="pxr",
        description=(
            "pipeline code executor CLI\n"
            "Serve the Execute RPC or dispatch a single call to a running executor."
        ),
        epilog=(
            "Quick Examples:\n"
            "  pxr serve --port 8811\n"
            "  pxr serve --isolation inline --workers 4\n"
            "  pxr run node.py --entry-point main --arg name=ada --return-type string\n"
            "  pxr run node.py --arg 'tags=[\"a\", \"b\"]' --endpoint http://python-executor:8811"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--config",
        help=(
            "Settings TOML with [dispatcher] and [executor] tables.\n"
            "Environment variables still override the endpoint and port."
        ),
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: $CODE_EXECUTOR_LOG_LEVEL or INFO).",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Render logs as JSON lines.",
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    serve_cmd = sub.add_parser(
        "serve",
        help="Run the executor gRPC service.",
        description=(
            "Serve the Execute RPC.\n"
            "With --isolation process every call runs in a fresh worker process."
        ),
        formatter_class=_HELP_FORMATTER,
    )
    serve_cmd.add_argument("--host", help="Bind address (default from settings: 0.0.0.0).")
    serve_cmd.add_argument("--port", type=int, help="Bind port (default from settings: 8811).")
    serve_cmd.add_argument("--workers", type=int, help="Concurrent calls served (default: 10).")
    serve_cmd.add_argument(
        "--isolation",
        choices=["process", "inline"],
        help="process: worker process per call; inline: fresh namespace per call.",
    )

    run_cmd = sub.add_parser(
        "run",
        help="Dispatch one call to a running executor.",
        description=(
            "Send the code in FILE to the executor and print the outcome.\n"
            "Exit status is 0 on success and 1 on any failure."
        ),
        epilog=(
            "Examples:\n"
            "  pxr run node.py --entry-point main --arg a=x --arg b=2.5\n"
            "  pxr run node.py --return-type chat_transcript --timeout 10"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    run_cmd.add_argument("file", help="Python source file defining the entry point.")
    run_cmd.add_argument("--entry-point", default="main", help="Function to call (default: main).")
    run_cmd.add_argument(
        "--arg",
        dest="arguments",
        action="append",
        default=[],
        type=_parse_assignment,
        metavar="NAME=VALUE",
        help="Named argument; VALUE is parsed as JSON, otherwise sent as a string.",
    )
    run_cmd.add_argument(
        "--return-type",
        choices=sorted(_RETURN_TYPES),
        default="any",
        help="Declared return type (default: any).",
    )
    run_cmd.add_argument("--timeout", type=float, help="Call deadline in seconds.")
    run_cmd.add_argument("--endpoint", help="Executor address (default: $CODE_EXECUTOR_URL).")

    return parser


def build_dispatcher(args: argparse.Namespace) -> Dispatcher:
    """Create a Dispatcher from global and `run` flags.

    Example:
        ```python
        dispatcher = build_dispatcher(args)
        ```
    """
    settings = DispatcherSettings.from_env(config_path=args.config)
    if args.endpoint:
        settings = DispatcherSettings(
            endpoint=args.endpoint,
            timeout_seconds=settings.timeout_seconds,
            max_attempts=settings.max_attempts,
            backoff_base_seconds=settings.backoff_base_seconds,
            backoff_max_seconds=settings.backoff_max_seconds,
            config_path=settings.config_path,
        )
    return Dispatcher(settings=settings)


def build_executor_settings(args: argparse.Namespace) -> ExecutorSettings:
    """Merge `serve` flags over file and environment settings.

    Example:
        ```python
        settings = build_executor_settings(args)
        ```
    """
    settings = ExecutorSettings.from_env(config_path=args.config)
    return ExecutorSettings(
        host=args.host or settings.host,
        port=args.port if args.port is not None else settings.port,
        max_workers=args.workers or settings.max_workers,
        isolation=args.isolation or settings.isolation,
        execution_timeout_seconds=settings.execution_timeout_seconds,
        memory_limit_mb=settings.memory_limit_mb,
        max_output_kb=settings.max_output_kb,
        config_path=settings.config_path,
    )


def _run(args: argparse.Namespace) -> int:
    """Dispatch the file's entry point and render the outcome.

    Example:
        ```python
        code = _run(args)
        ```
    """
    code = Path(args.file).read_text(encoding="utf-8")
    with build_dispatcher(args) as dispatcher:
        try:
            result = dispatcher.run_code(
                code,
                args.entry_point,
                dict(args.arguments),
                _RETURN_TYPES[args.return_type],
                timeout_seconds=args.timeout,
            )
        except (TypeError, ValueError) as exc:
            _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {escape(str(exc))}", border_style="red"))
            return 1
    if result.ok and result.value is not None:
        _CONSOLE.print(
            Panel.fit(
                Pretty(to_native(result.value)),
                title=f"Result ({type(result.value).__name__})",
                border_style="green",
            )
        )
        return 0
    failure = result.failure
    kind = failure.kind if failure is not None else "unknown"
    _CONSOLE.print(
        Panel.fit(
            f"[bold red]{kind}[/bold red]: {escape(str(failure))}",
            title=f"Failed after {result.attempts} attempt(s)",
            border_style="red",
        )
    )
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `pxr` CLI command handler.

    Example:
        ```python
        code = main(["run", "node.py", "--arg", "a=x"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(args.log_level, json_logs=args.json_logs)

    if args.command == "serve":
        serve_executor(build_executor_settings(args))
        return 0
    if args.command == "run":
        return _run(args)

    parser.error("Unhandled command")
    return 2
