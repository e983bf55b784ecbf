from __future__ import annotations

import argparse
import contextlib
import io
import os
import sys
from typing import Any, Sequence

from .contract import ExecutionError, ExecutionOutcome
from .errors import DecodeError
from .logs import LOG_LEVEL_ENV, configure_logging
from .runtime import ExecutorRuntime
from .wire import decode_request, encode_outcome

_resource: Any
try:
    import resource as _resource_module  # POSIX only
    _resource = _resource_module
except ImportError:  # pragma: no cover - platform specific
    _resource = None


def _set_limits(memory_limit_mb: int) -> list[str]:
    """Cap the worker's address space; returns the limits that could not be applied.

    Example:
        ```python
        problems = _set_limits(256)
        ```
    """
    errors: list[str] = []
    if _resource is None:
        errors.append("RLIMIT limits unavailable on this platform")
        return errors

    mem_bytes = int(memory_limit_mb) * 1024 * 1024

    try:
        _, current_hard = _resource.getrlimit(_resource.RLIMIT_AS)
        if current_hard in (-1, _resource.RLIM_INFINITY):
            target_hard = mem_bytes
        else:
            target_hard = min(mem_bytes, current_hard)
        target_soft = min(mem_bytes, target_hard)
        _resource.setrlimit(_resource.RLIMIT_AS, (target_soft, target_hard))
    except (ValueError, OSError) as exc:
        errors.append(f"RLIMIT_AS not applied: {exc}")

    return errors


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    """Parse the limits passed by LocalEngine.

    Example:
        ```python
        args = _parse_args(["--memory-limit-mb", "256"])
        ```
    """
    parser = argparse.ArgumentParser(prog="python -m code_executor.worker")
    parser.add_argument("--memory-limit-mb", type=int, default=512)
    parser.add_argument("--max-output-kb", type=int, default=128)
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Sequence[str] | None = None) -> int:
    """Read one request from stdin, run it and write the outcome to stdout.

    Anything the code prints is captured and forwarded to stderr. File
    descriptor 1 is pointed at stderr while the code runs, so writes that
    bypass `sys.stdout` (`os.write(1, ...)`, child processes) cannot mix
    with the encoded outcome, which goes to a private duplicate of stdout.

    Example:
        ```python
        # echo <ExecuteCodeRequest bytes> | python -m code_executor.worker
        ```
    """
    args = _parse_args(argv)
    configure_logging(os.getenv(LOG_LEVEL_ENV, "WARNING"), stream=sys.stderr)
    limit_errors = _set_limits(memory_limit_mb=args.memory_limit_mb)

    payload = sys.stdin.buffer.read()
    sys.stdout.flush()
    outcome_fd = os.dup(1)
    os.dup2(2, 1)
    captured = io.StringIO()
    outcome: ExecutionOutcome
    try:
        request = decode_request(payload)
    except DecodeError as exc:
        outcome = ExecutionError(f"{type(exc).__name__}: {exc}")
    else:
        with contextlib.redirect_stdout(captured), contextlib.redirect_stderr(captured):
            outcome = ExecutorRuntime().execute(request)

    sys.stdout.flush()
    with os.fdopen(outcome_fd, "wb") as out:
        out.write(encode_outcome(outcome))

    max_output_bytes = args.max_output_kb * 1024
    printed = captured.getvalue()[:max_output_bytes]
    for problem in limit_errors:
        sys.stderr.write(f"{problem}\n")
    if printed:
        sys.stderr.write(printed)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
