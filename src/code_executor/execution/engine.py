from __future__ import annotations

from typing import Protocol

from ..contract import ExecutionOutcome, ExecutionRequest


class ExecutionEngine(Protocol):
    def execute(
        self,
        request: ExecutionRequest,
        timeout_seconds: float | None = None,
    ) -> ExecutionOutcome:
        """Execute one request in isolation and return exactly one outcome.

        Example:
            ```python
            outcome = engine.execute(ExecutionRequest("def f():\\n    return 1.0", "f"), timeout_seconds=5)
            ```
        """
        ...


def effective_timeout(*limits: float | None) -> float | None:
    """Return the tightest of the given limits, ignoring unset ones.

    Example:
        ```python
        effective_timeout(30.0, None, 2.5)  # 2.5
        ```
    """
    present = [limit for limit in limits if limit is not None]
    return min(present) if present else None


def timeout_message(limit: float) -> str:
    """Message for an execution stopped by the executor's own time limit.

    Example:
        ```python
        timeout_message(5.0)  # "RuntimeFault: execution exceeded the 5s limit"
        ```
    """
    return f"RuntimeFault: execution exceeded the {limit:g}s limit"
