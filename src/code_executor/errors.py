from __future__ import annotations


class CodeExecutorError(Exception):
    """Base class for every error raised by code_executor.

    Example:
        ```python
        try:
            result.unwrap()
        except CodeExecutorError as exc:
            print(exc)
        ```
    """


class DispatchFailure(CodeExecutorError):
    """A failure surfaced to the dispatcher's caller.

    Example:
        ```python
        result = dispatcher.dispatch(request)
        if isinstance(result.failure, DispatchFailure):
            print(result.failure.kind)
        ```
    """

    kind = "dispatch_failure"


class TransportFailure(DispatchFailure):
    """Executor unreachable, connection dropped, or unreadable response bytes.

    Example:
        ```python
        raise TransportFailure("connection refused", retriable=True)
        ```
    """

    kind = "transport_failure"

    def __init__(self, message: str, *, retriable: bool = True, attempts: int = 0) -> None:
        """Store the retry classification next to the message.

        Example:
            ```python
            failure = TransportFailure("UNAVAILABLE: no route", retriable=True)
            ```
        """
        super().__init__(message)
        self.retriable = retriable
        self.attempts = attempts


class ExecutionTimeout(DispatchFailure):
    """No outcome arrived within the configured deadline.

    Example:
        ```python
        raise ExecutionTimeout(2.5)
        ```
    """

    kind = "timeout"

    def __init__(self, timeout_seconds: float) -> None:
        """Build the message from the deadline that was exceeded.

        Example:
            ```python
            ExecutionTimeout(30.0).timeout_seconds
            ```
        """
        super().__init__(f"no outcome within {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class DispatchCancelled(DispatchFailure):
    """The caller cancelled the call before an outcome arrived.

    Example:
        ```python
        raise DispatchCancelled("cancelled by caller")
        ```
    """

    kind = "cancelled"


class ExecutionFailed(DispatchFailure):
    """The executor returned an error outcome for the call.

    Example:
        ```python
        raise ExecutionFailed("RuntimeFault: ZeroDivisionError: division by zero")
        ```
    """

    kind = "execution_failed"

    def __init__(self, message: str) -> None:
        """Keep the executor's diagnostic text verbatim.

        Example:
            ```python
            ExecutionFailed("BindingError: missing required argument 'b'").message
            ```
        """
        super().__init__(message)
        self.message = message


class DecodeError(CodeExecutorError):
    """Base class for failures while decoding wire bytes.

    Example:
        ```python
        try:
            decode_value(payload)
        except DecodeError:
            ...
        ```
    """


class MalformedPayload(DecodeError):
    """The bytes are not a parsable message of the expected type.

    Example:
        ```python
        raise MalformedPayload("Error parsing message")
        ```
    """


class ProtocolViolation(DecodeError, DispatchFailure):
    """A parsable message breaks the value model, such as an empty oneof.

    Example:
        ```python
        raise ProtocolViolation("Arg has no variant set")
        ```
    """

    kind = "protocol_violation"


class UnknownVariant(ProtocolViolation):
    """The peer sent a variant this side does not know.

    Example:
        ```python
        raise UnknownVariant("Arg", "unrecognised field data")
        ```
    """

    def __init__(self, message_name: str, detail: str) -> None:
        """Name the message type whose variant was not understood.

        Example:
            ```python
            UnknownVariant("HandleType", "value 9").message_name
            ```
        """
        super().__init__(f"unknown {message_name} variant: {detail}")
        self.message_name = message_name


class ExecutionStepError(CodeExecutorError):
    """Executor-side failure of one call step, reported as an error outcome.

    Example:
        ```python
        raise BindingError("missing required argument 'a'")
        ```
    """


class CompileError(ExecutionStepError):
    """The submitted code does not compile.

    Example:
        ```python
        raise CompileError("invalid syntax (<pipeline_code>, line 1)")
        ```
    """


class EntryPointError(ExecutionStepError):
    """The entry point is not defined by the code or is not callable.

    Example:
        ```python
        raise EntryPointError("function 'main' is not defined")
        ```
    """


class BindingError(ExecutionStepError):
    """Arguments do not fit the entry point's parameters.

    Example:
        ```python
        raise BindingError("argument 'a' expects STRING but received Number")
        ```
    """


class RuntimeFault(ExecutionStepError):
    """The code raised while loading or while running the entry point.

    Example:
        ```python
        raise RuntimeFault("ZeroDivisionError: division by zero")
        ```
    """


class ReturnTypeMismatch(ExecutionStepError):
    """The returned value does not match the declared return type.

    Example:
        ```python
        raise ReturnTypeMismatch("declared STRING but function returned Number")
        ```
    """
