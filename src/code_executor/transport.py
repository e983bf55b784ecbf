from __future__ import annotations

import threading
from concurrent import futures
from typing import Any, Protocol

import grpc

from .config import normalize_endpoint
from .errors import (
    DecodeError,
    DispatchCancelled,
    DispatchFailure,
    ExecutionTimeout,
    ProtocolViolation,
    TransportFailure,
)
from .wire import EXECUTE_METHOD

RETRIABLE_STATUS_CODES = frozenset(
    {
        grpc.StatusCode.UNAVAILABLE,
        grpc.StatusCode.ABORTED,
        grpc.StatusCode.RESOURCE_EXHAUSTED,
        grpc.StatusCode.INTERNAL,
    }
)


class PendingCall(Protocol):
    def wait(self, timeout: float | None) -> bool:
        """Block until the call finishes or `timeout` passes; True when finished.

        Example:
            ```python
            done = call.wait(0.05)
            ```
        """
        ...

    def cancel(self) -> None:
        """Best-effort cancellation of the in-flight call.

        Example:
            ```python
            call.cancel()
            ```
        """
        ...

    def result(self) -> bytes:
        """Return the response bytes or raise a DispatchFailure.

        Example:
            ```python
            response = call.result()
            ```
        """
        ...


class Transport(Protocol):
    def start(self, payload: bytes, timeout_seconds: float | None) -> PendingCall:
        """Send one encoded request and return a handle to the in-flight call.

        Example:
            ```python
            call = transport.start(encode_request(request), timeout_seconds=5)
            ```
        """
        ...

    def close(self) -> None:
        """Release connections held by the transport.

        Example:
            ```python
            transport.close()
            ```
        """
        ...


def failure_from_rpc_error(error: grpc.RpcError, timeout_seconds: float | None = None) -> DispatchFailure:
    """Classify a gRPC error into the dispatch failure taxonomy.

    Example:
        ```python
        failure = failure_from_rpc_error(exc, timeout_seconds=5)
        failure.retriable
        ```
    """
    code = error.code() if hasattr(error, "code") else grpc.StatusCode.UNKNOWN
    details = error.details() if hasattr(error, "details") else str(error)
    if code is grpc.StatusCode.DEADLINE_EXCEEDED:
        return ExecutionTimeout(timeout_seconds if timeout_seconds is not None else 0.0)
    if code is grpc.StatusCode.CANCELLED:
        return DispatchCancelled(details or "call cancelled")
    if code is grpc.StatusCode.INVALID_ARGUMENT:
        return ProtocolViolation(details or "executor rejected the request")
    return TransportFailure(
        f"{code.name}: {details}",
        retriable=code in RETRIABLE_STATUS_CODES,
    )


class _FutureCall:
    """PendingCall over any future exposing add_done_callback/cancel/result.

    Example:
        ```python
        call = _FutureCall(future, timeout_seconds=5)
        ```
    """

    def __init__(self, future: Any, timeout_seconds: float | None) -> None:
        """Track completion of `future` through a done callback.

        Example:
            ```python
            _FutureCall(stub.future(payload, timeout=5), 5)
            ```
        """
        self._future = future
        self._timeout = timeout_seconds
        self._done = threading.Event()
        future.add_done_callback(lambda _: self._done.set())

    def wait(self, timeout: float | None) -> bool:
        """Wait for completion.

        Example:
            ```python
            call.wait(1.0)
            ```
        """
        return self._done.wait(timeout)

    def cancel(self) -> None:
        """Cancel the future.

        Example:
            ```python
            call.cancel()
            ```
        """
        self._future.cancel()

    def result(self) -> bytes:
        """Return response bytes, translating transport errors.

        Example:
            ```python
            payload = call.result()
            ```
        """
        try:
            return self._future.result()
        except grpc.RpcError as exc:
            raise failure_from_rpc_error(exc, self._timeout) from exc
        except (futures.CancelledError, grpc.FutureCancelledError) as exc:
            raise DispatchCancelled("call cancelled") from exc
        except DecodeError as exc:
            raise ProtocolViolation(f"executor rejected the request: {exc}") from exc
        except DispatchFailure:
            raise
        except Exception as exc:
            raise TransportFailure(f"call failed: {type(exc).__name__}: {exc}", retriable=False) from exc


class GrpcTransport:
    """Sends Execute calls to a remote executor over a gRPC channel.

    Example:
        ```python
        transport = GrpcTransport("http://python-executor:8811")
        ```
    """

    def __init__(self, endpoint: str, *, options: list[tuple[str, Any]] | None = None) -> None:
        """Open an insecure channel to `endpoint`; a URL scheme is accepted and stripped.

        Example:
            ```python
            GrpcTransport("localhost:8811", options=[("grpc.max_receive_message_length", 32 << 20)])
            ```
        """
        self.target = normalize_endpoint(endpoint)
        self._channel = grpc.insecure_channel(self.target, options=options)
        self._execute = self._channel.unary_unary(EXECUTE_METHOD)

    def start(self, payload: bytes, timeout_seconds: float | None) -> PendingCall:
        """Start a non-blocking call with a gRPC deadline.

        Example:
            ```python
            call = transport.start(payload, 5.0)
            ```
        """
        return _FutureCall(self._execute.future(payload, timeout=timeout_seconds), timeout_seconds)

    def close(self) -> None:
        """Close the channel.

        Example:
            ```python
            transport.close()
            ```
        """
        self._channel.close()


class LoopbackTransport:
    """Hands calls to an in-process CodeExecutorService on a thread pool.

    Same bytes on the wire as GrpcTransport without a socket; useful for
    embedding an executor and for tests.

    Example:
        ```python
        transport = LoopbackTransport(CodeExecutorService(InlineEngine()))
        ```
    """

    def __init__(self, service: Any, *, max_workers: int = 4) -> None:
        """Serve calls with `service.handle` on up to `max_workers` threads.

        Example:
            ```python
            LoopbackTransport(service, max_workers=8)
            ```
        """
        self._service = service
        self._pool = futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="loopback")

    def start(self, payload: bytes, timeout_seconds: float | None) -> PendingCall:
        """Submit the call to the pool.

        Example:
            ```python
            call = transport.start(payload, 5.0)
            ```
        """
        future = self._pool.submit(self._service.handle, payload, timeout_seconds)
        return _FutureCall(future, timeout_seconds)

    def close(self) -> None:
        """Shut the pool down without waiting for abandoned calls.

        Example:
            ```python
            transport.close()
            ```
        """
        self._pool.shutdown(wait=False, cancel_futures=True)
