from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .config import DispatcherSettings
from .contract import ExecutionError, ExecutionRequest
from .errors import (
    DispatchCancelled,
    DispatchFailure,
    ExecutionFailed,
    ExecutionTimeout,
    MalformedPayload,
    TransportFailure,
)
from .logs import get_logger
from .native import from_native
from .transport import GrpcTransport, PendingCall, Transport
from .values import HandleType, Value
from .wire import decode_outcome, encode_request

logger = get_logger(__name__)

# Granularity of deadline and cancellation checks while a call is in flight.
_POLL_INTERVAL_SECONDS = 0.05


@dataclass(slots=True)
class DispatchResult:
    """Result of one dispatched call: a value or a typed failure.

    Example:
        ```python
        result = DispatchResult(ok=True, value=Text("x"), attempts=1)
        result.unwrap()  # Text("x")
        ```
    """

    ok: bool
    value: Value | None = None
    failure: DispatchFailure | None = None
    attempts: int = 0
    elapsed_seconds: float = 0.0

    def unwrap(self) -> Value:
        """Return the value or raise the failure.

        Example:
            ```python
            value = dispatcher.run_code(code, "main", {}).unwrap()
            ```
        """
        if self.failure is not None:
            raise self.failure
        assert self.value is not None
        return self.value


def build_request(
    code: str,
    entry_point: str,
    arguments: Mapping[str, Any] | None = None,
    return_type: HandleType = HandleType.ANY,
) -> ExecutionRequest:
    """Build a request from Values or plain Python objects.

    Example:
        ```python
        build_request("def f(a: str):\\n    return a", "f", {"a": "x"}, HandleType.STRING)
        ```
    """
    converted = {name: from_native(value) for name, value in (arguments or {}).items()}
    return ExecutionRequest(
        code=code,
        entry_point=entry_point,
        arguments=converted,
        return_type=HandleType(return_type),
    )


class Dispatcher:
    """Sends execution requests with a deadline, cancellation and bounded retry.

    Only transport failures are retried. Error outcomes, timeouts,
    cancellations and protocol violations end the call on first sight.
    Safe to share between threads; calls keep no state on the instance.

    Example:
        ```python
        with Dispatcher(settings=DispatcherSettings.from_env()) as dispatcher:
            result = dispatcher.run_code(code, "main", {"a": "x"}, HandleType.STRING)
        ```
    """

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        settings: DispatcherSettings | None = None,
        sleep: Callable[[float], Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Use `transport`, or a GrpcTransport to `settings.endpoint`.

        Example:
            ```python
            Dispatcher(LoopbackTransport(service), settings=DispatcherSettings(max_attempts=2))
            ```
        """
        self._settings = settings or DispatcherSettings()
        self._transport = transport or GrpcTransport(self._settings.endpoint)
        self._sleep = sleep
        self._clock = clock

    @property
    def settings(self) -> DispatcherSettings:
        """Return the active settings.

        Example:
            ```python
            dispatcher.settings.max_attempts
            ```
        """
        return self._settings

    def __enter__(self) -> "Dispatcher":
        """Return self for use as a context manager.

        Example:
            ```python
            with Dispatcher() as dispatcher:
                ...
            ```
        """
        return self

    def __exit__(self, *exc_info: object) -> None:
        """Close the transport.

        Example:
            ```python
            dispatcher.__exit__(None, None, None)
            ```
        """
        self.close()

    def close(self) -> None:
        """Close the transport.

        Example:
            ```python
            dispatcher.close()
            ```
        """
        self._transport.close()

    def run_code(
        self,
        code: str,
        entry_point: str,
        arguments: Mapping[str, Any] | None = None,
        return_type: HandleType = HandleType.ANY,
        *,
        timeout_seconds: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> DispatchResult:
        """Build a request from caller values and dispatch it.

        Example:
            ```python
            result = dispatcher.run_code(
                "def main(a: str, b: float) -> str:\\n    return a * int(b)",
                "main",
                {"a": "x", "b": 2.0},
                HandleType.STRING,
            )
            ```
        """
        request = build_request(code, entry_point, arguments, return_type)
        return self.dispatch(request, timeout_seconds=timeout_seconds, cancel_event=cancel_event)

    def dispatch(
        self,
        request: ExecutionRequest,
        *,
        timeout_seconds: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> DispatchResult:
        """Send one request and return its value or its failure.

        The deadline covers every attempt and back-off sleep.

        Example:
            ```python
            result = dispatcher.dispatch(request, timeout_seconds=5)
            ```
        """
        timeout = self._settings.timeout_seconds if timeout_seconds is None else timeout_seconds
        if timeout <= 0:
            raise ValueError("timeout_seconds must be positive")
        payload = encode_request(request)
        started = self._clock()
        deadline = started + timeout
        attempt = 0

        while True:
            attempt += 1
            try:
                response = self._attempt(payload, deadline, timeout, cancel_event)
                outcome = decode_outcome(response)
            except MalformedPayload as exc:
                failure: DispatchFailure = TransportFailure(f"malformed response: {exc}", retriable=True)
            except TransportFailure as exc:
                failure = exc
            except DispatchFailure as exc:
                return self._finish(request, exc, attempt, started)
            else:
                if isinstance(outcome, ExecutionError):
                    return self._finish(request, ExecutionFailed(outcome.message), attempt, started)
                return self._finish(request, None, attempt, started, value=outcome.value)

            assert isinstance(failure, TransportFailure)
            failure.attempts = attempt
            if not failure.retriable or attempt >= self._settings.max_attempts:
                return self._finish(request, failure, attempt, started)

            delay = self._backoff(attempt)
            remaining = deadline - self._clock()
            logger.warning(
                "dispatch_retry",
                entry_point=request.entry_point,
                attempt=attempt,
                delay_seconds=round(delay, 3),
                error=str(failure),
            )
            if delay >= remaining:
                self._pause(max(0.0, remaining), cancel_event)
                return self._finish(request, ExecutionTimeout(timeout), attempt, started)
            if self._pause(delay, cancel_event):
                return self._finish(request, DispatchCancelled("cancelled by caller"), attempt, started)

    def _attempt(
        self,
        payload: bytes,
        deadline: float,
        timeout: float,
        cancel_event: threading.Event | None,
    ) -> bytes:
        """Run one attempt, cancelling it at the deadline or on request.

        Example:
            ```python
            response = dispatcher._attempt(payload, deadline, 5.0, None)
            ```
        """
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise ExecutionTimeout(timeout)
        if cancel_event is not None and cancel_event.is_set():
            raise DispatchCancelled("cancelled by caller")
        call: PendingCall = self._transport.start(payload, remaining)
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                call.cancel()
                raise ExecutionTimeout(timeout)
            if call.wait(min(remaining, _POLL_INTERVAL_SECONDS)):
                return call.result()
            if cancel_event is not None and cancel_event.is_set():
                call.cancel()
                raise DispatchCancelled("cancelled by caller")

    def _backoff(self, attempt: int) -> float:
        """Exponential back-off with a little jitter, capped by settings.

        Example:
            ```python
            dispatcher._backoff(2)  # about 0.4 with default settings
            ```
        """
        base = self._settings.backoff_base_seconds * (2 ** (attempt - 1))
        return min(self._settings.backoff_max_seconds, base + random.uniform(0, 0.05))

    def _pause(self, delay: float, cancel_event: threading.Event | None) -> bool:
        """Sleep for `delay`; returns True when cancelled during the pause.

        Example:
            ```python
            cancelled = dispatcher._pause(0.2, event)
            ```
        """
        if self._sleep is not None:
            self._sleep(delay)
            return cancel_event is not None and cancel_event.is_set()
        if cancel_event is not None:
            return cancel_event.wait(delay)
        time.sleep(delay)
        return False

    def _finish(
        self,
        request: ExecutionRequest,
        failure: DispatchFailure | None,
        attempts: int,
        started: float,
        *,
        value: Value | None = None,
    ) -> DispatchResult:
        """Log the end of a call and package its result.

        Example:
            ```python
            return self._finish(request, None, 1, started, value=Text("x"))
            ```
        """
        elapsed = self._clock() - started
        if failure is None:
            logger.debug(
                "dispatch_succeeded",
                entry_point=request.entry_point,
                attempts=attempts,
                elapsed_ms=round(elapsed * 1000, 1),
            )
            return DispatchResult(ok=True, value=value, attempts=attempts, elapsed_seconds=elapsed)
        logger.info(
            "dispatch_failed",
            entry_point=request.entry_point,
            kind=failure.kind,
            attempts=attempts,
            elapsed_ms=round(elapsed * 1000, 1),
            error=str(failure),
        )
        return DispatchResult(ok=False, failure=failure, attempts=attempts, elapsed_seconds=elapsed)


def run_code(
    code: str,
    entry_point: str,
    arguments: Mapping[str, Any] | None = None,
    return_type: HandleType = HandleType.ANY,
    *,
    dispatcher: Dispatcher,
    timeout_seconds: float | None = None,
) -> DispatchResult:
    """Run `entry_point` from `code` on the executor behind `dispatcher`.

    Example:
        ```python
        from code_executor import Dispatcher, HandleType, run_code
        result = run_code(
            "def main(name: str) -> str:\\n    return 'hi ' + name",
            "main",
            {"name": "ada"},
            HandleType.STRING,
            dispatcher=Dispatcher(),
        )
        ```
    """
    return dispatcher.run_code(
        code,
        entry_point,
        arguments,
        return_type,
        timeout_seconds=timeout_seconds,
    )
