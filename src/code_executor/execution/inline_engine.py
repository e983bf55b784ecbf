from __future__ import annotations

import threading
from typing import Any

from ..contract import ExecutionError, ExecutionOutcome, ExecutionRequest
from ..runtime import ExecutorRuntime
from .engine import effective_timeout, timeout_message


class InlineEngine:
    """Execute calls in the server process, each with a fresh module namespace.

    Globals defined by one call's code are invisible to every other call.
    Mutations of shared imported modules are not isolated; use LocalEngine
    when that matters. A call that outlives its time limit is abandoned, not
    killed.

    Example:
        ```python
        engine = InlineEngine(execution_timeout_seconds=5)
        ```
    """

    def __init__(
        self,
        *,
        runtime: ExecutorRuntime | None = None,
        execution_timeout_seconds: float | None = None,
    ) -> None:
        """Use `runtime` (default: a PythonHost runtime) with an optional time limit.

        Example:
            ```python
            InlineEngine(runtime=ExecutorRuntime())
            ```
        """
        self._runtime = runtime or ExecutorRuntime()
        self._timeout = execution_timeout_seconds

    def execute(self, request: ExecutionRequest, timeout_seconds: float | None = None) -> ExecutionOutcome:
        """Run one request; past the limit an error outcome is returned.

        Example:
            ```python
            outcome = InlineEngine().execute(request, timeout_seconds=2)
            ```
        """
        limit = effective_timeout(self._timeout, timeout_seconds)
        if limit is None:
            return self._runtime.execute(request)

        box: dict[str, Any] = {}

        def _run() -> None:
            """Store the outcome (or an unexpected exception) for the waiting thread.

            Example:
                ```python
                threading.Thread(target=_run).start()
                ```
            """
            try:
                box["outcome"] = self._runtime.execute(request)
            except BaseException as exc:
                box["error"] = exc

        worker = threading.Thread(target=_run, name="inline-execution", daemon=True)
        worker.start()
        worker.join(limit)
        if worker.is_alive():
            return ExecutionError(timeout_message(limit))
        if "error" in box:
            raise box["error"]
        return box["outcome"]
