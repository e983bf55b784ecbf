from __future__ import annotations

import time
from concurrent import futures
from typing import Any

import grpc

from .config import ExecutorSettings
from .contract import ExecutionError, describe_outcome
from .errors import DecodeError
from .execution import ExecutionEngine, InlineEngine, LocalEngine
from .logs import get_logger
from .wire import SERVICE_NAME, decode_request, encode_outcome

logger = get_logger(__name__)

# Time an engine may run past the caller's deadline.
DEADLINE_GRACE_SECONDS = 1.0


def build_engine(settings: ExecutorSettings) -> ExecutionEngine:
    """Create the execution engine selected by `settings.isolation`.

    Example:
        ```python
        engine = build_engine(ExecutorSettings(isolation="inline"))
        ```
    """
    if settings.isolation == "inline":
        return InlineEngine(execution_timeout_seconds=settings.execution_timeout_seconds)
    return LocalEngine(
        memory_limit_mb=settings.memory_limit_mb,
        max_output_kb=settings.max_output_kb,
        execution_timeout_seconds=settings.execution_timeout_seconds,
    )


class CodeExecutorService:
    """The Execute operation: request bytes in, outcome bytes out.

    Example:
        ```python
        service = CodeExecutorService(InlineEngine())
        response = service.handle(encode_request(request))
        ```
    """

    def __init__(self, engine: ExecutionEngine) -> None:
        """Serve calls with `engine`.

        Example:
            ```python
            CodeExecutorService(LocalEngine())
            ```
        """
        self._engine = engine

    def handle(self, payload: bytes, timeout_seconds: float | None = None) -> bytes:
        """Decode, execute and encode one call.

        `timeout_seconds` is the caller's remaining deadline. Raises DecodeError
        for requests that cannot be decoded; every decoded request produces an
        encoded outcome, including requests the engine itself fails on.

        Example:
            ```python
            outcome_bytes = service.handle(request_bytes, timeout_seconds=10)
            ```
        """
        request = decode_request(payload)
        started = time.monotonic()
        limit = None if timeout_seconds is None else timeout_seconds + DEADLINE_GRACE_SECONDS
        try:
            outcome = self._engine.execute(request, timeout_seconds=limit)
        except Exception as exc:
            logger.error("engine_crashed", entry_point=request.entry_point, exc_info=True)
            outcome = ExecutionError(f"RuntimeFault: {type(exc).__name__}: {exc}")
        logger.info(
            "execution_finished",
            entry_point=request.entry_point,
            return_type=request.return_type.name,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
            **describe_outcome(outcome),
        )
        return encode_outcome(outcome)

    def Execute(self, payload: bytes, context: grpc.ServicerContext) -> bytes:
        """gRPC handler; undecodable requests abort with INVALID_ARGUMENT.

        Example:
            ```python
            # registered through grpc.unary_unary_rpc_method_handler(service.Execute)
            ```
        """
        try:
            return self.handle(payload, timeout_seconds=context.time_remaining())
        except DecodeError as exc:
            logger.warning("request_rejected", error=str(exc))
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, f"{type(exc).__name__}: {exc}")
            raise


def add_service(server: grpc.Server, service: CodeExecutorService) -> None:
    """Register the Execute method on a gRPC server; payloads stay raw bytes.

    Example:
        ```python
        add_service(server, CodeExecutorService(InlineEngine()))
        ```
    """
    handler = grpc.method_handlers_generic_handler(
        SERVICE_NAME,
        {"Execute": grpc.unary_unary_rpc_method_handler(service.Execute)},
    )
    server.add_generic_rpc_handlers((handler,))


def build_server(
    settings: ExecutorSettings | None = None,
    *,
    engine: ExecutionEngine | None = None,
) -> tuple[grpc.Server, int]:
    """Create (but do not start) the executor server; returns it with its bound port.

    Example:
        ```python
        server, port = build_server(ExecutorSettings(host="127.0.0.1", port=0, isolation="inline"))
        server.start()
        ```
    """
    resolved = settings or ExecutorSettings()
    server: Any = grpc.server(futures.ThreadPoolExecutor(max_workers=resolved.max_workers))
    add_service(server, CodeExecutorService(engine or build_engine(resolved)))
    port = server.add_insecure_port(resolved.address)
    if port == 0:
        raise RuntimeError(f"could not bind executor server to {resolved.address}")
    return server, port


def serve(settings: ExecutorSettings | None = None) -> None:
    """Run the executor server until it is terminated.

    Example:
        ```python
        serve(ExecutorSettings.from_env())
        ```
    """
    resolved = settings or ExecutorSettings()
    server, port = build_server(resolved)
    server.start()
    logger.info(
        "executor_started",
        host=resolved.host,
        port=port,
        isolation=resolved.isolation,
        max_workers=resolved.max_workers,
    )
    try:
        server.wait_for_termination()
    finally:
        server.stop(grace=None)
