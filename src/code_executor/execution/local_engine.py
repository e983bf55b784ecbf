from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

from ..contract import ExecutionError, ExecutionOutcome, ExecutionRequest
from ..errors import DecodeError
from ..logs import get_logger
from ..wire import decode_outcome, encode_request
from .engine import effective_timeout, timeout_message

logger = get_logger(__name__)

WORKER_MODULE = "code_executor.worker"


def _package_parent() -> Path:
    """Return the directory that contains the `code_executor` package.

    Example:
        ```python
        path = _package_parent()
        ```
    """
    return Path(__file__).resolve().parents[2]


class LocalEngine:
    """Execute every call in a fresh worker process.

    Nothing the code does, including mutating imported modules, survives the
    call. The worker reads ExecuteCodeRequest bytes on stdin and writes
    ExecuteCodeResponse bytes on stdout.

    Example:
        ```python
        engine = LocalEngine(memory_limit_mb=256, execution_timeout_seconds=10)
        ```
    """

    def __init__(
        self,
        *,
        python_executable: str | None = None,
        memory_limit_mb: int = 512,
        max_output_kb: int = 128,
        execution_timeout_seconds: float | None = None,
    ) -> None:
        """Configure the interpreter and per-call limits for worker processes.

        Example:
            ```python
            engine = LocalEngine(python_executable="/usr/bin/python3")
            ```
        """
        cleaned = (python_executable or sys.executable).strip()
        if not cleaned:
            raise ValueError("LocalEngine requires a python executable")
        if memory_limit_mb < 1:
            raise ValueError("memory_limit_mb must be at least 1")
        self._python = cleaned
        self._memory_limit_mb = int(memory_limit_mb)
        self._max_output_kb = int(max_output_kb)
        self._timeout = execution_timeout_seconds

    def execute(self, request: ExecutionRequest, timeout_seconds: float | None = None) -> ExecutionOutcome:
        """Execute one request in a new worker process.

        Example:
            ```python
            outcome = engine.execute(ExecutionRequest("def f():\\n    return 'x'", "f"), timeout_seconds=5)
            ```
        """
        limit = effective_timeout(self._timeout, timeout_seconds)
        cmd = [
            self._python,
            "-m",
            WORKER_MODULE,
            "--memory-limit-mb",
            str(self._memory_limit_mb),
            "--max-output-kb",
            str(self._max_output_kb),
        ]
        try:
            completed = subprocess.run(
                cmd,
                input=encode_request(request),
                capture_output=True,
                timeout=limit,
                check=False,
                env=self._worker_env(),
            )
        except subprocess.TimeoutExpired:
            assert limit is not None
            return ExecutionError(timeout_message(limit))

        worker_output = completed.stderr.decode("utf-8", errors="replace")
        if worker_output:
            logger.debug("worker_output", entry_point=request.entry_point, output=worker_output)
        if completed.returncode != 0 or not completed.stdout:
            tail = worker_output.strip().splitlines()[-1:] or ["no output"]
            return ExecutionError(
                f"RuntimeFault: worker exited with code {completed.returncode}: {tail[0]}"
            )
        try:
            return decode_outcome(completed.stdout)
        except DecodeError as exc:
            return ExecutionError(f"RuntimeFault: worker produced an unreadable outcome: {exc}")

    def _worker_env(self) -> dict[str, str]:
        """Return the worker environment with this package importable.

        Example:
            ```python
            env = engine._worker_env()
            ```
        """
        env = dict(os.environ)
        existing = env.get("PYTHONPATH")
        parent = str(_package_parent())
        env["PYTHONPATH"] = os.pathsep.join([parent, existing]) if existing else parent
        return env
