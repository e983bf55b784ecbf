from __future__ import annotations

import asyncio
import builtins
import enum
import inspect
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from .binding import bind_arguments, coerce_return
from .contract import ExecutionError, ExecutionOutcome, ExecutionRequest, ExecutionResult
from .errors import CompileError, EntryPointError, ExecutionStepError, RuntimeFault
from .logs import get_logger

logger = get_logger(__name__)

CODE_FILENAME = "<pipeline_code>"
MODULE_NAME = "__pipeline_code__"


class CallState(enum.Enum):
    """Lifecycle of one execution call; no state is re-entered.

    Example:
        ```python
        CallState.BOUND.value  # "bound"
        ```
    """

    RECEIVED = "received"
    COMPILED = "compiled"
    BOUND = "bound"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_ORDER = list(CallState)
_TERMINAL = {CallState.SUCCEEDED, CallState.FAILED}


@dataclass(slots=True)
class CallTrace:
    """Records the states one call passed through.

    Example:
        ```python
        trace = CallTrace()
        trace.advance(CallState.COMPILED)
        trace.state  # CallState.COMPILED
        ```
    """

    history: list[CallState] = field(default_factory=lambda: [CallState.RECEIVED])

    @property
    def state(self) -> CallState:
        """Return the current state.

        Example:
            ```python
            CallTrace().state  # CallState.RECEIVED
            ```
        """
        return self.history[-1]

    def advance(self, target: CallState) -> None:
        """Move forward to `target`; moving backwards or out of a terminal state fails.

        Example:
            ```python
            trace.advance(CallState.FAILED)
            ```
        """
        current = self.state
        if current in _TERMINAL or (
            target not in _TERMINAL and _ORDER.index(target) <= _ORDER.index(current)
        ):
            raise RuntimeError(f"invalid call transition {current.value} -> {target.value}")
        self.history.append(target)


@dataclass(slots=True)
class CompiledUnit:
    """Compiled code plus the namespace it is evaluated in.

    Example:
        ```python
        unit = PythonHost().compile("def f():\\n    return 1")
        ```
    """

    code: Any
    namespace: dict[str, Any]
    loaded: bool = False


class HostRuntime(Protocol):
    def compile(self, code: str) -> CompiledUnit:
        """Compile source text into a unit, raising CompileError on failure.

        Example:
            ```python
            unit = host.compile("def f():\\n    return 1")
            ```
        """
        ...

    def resolve(self, unit: CompiledUnit, name: str) -> Callable[..., Any]:
        """Return the callable named `name`, raising EntryPointError if absent.

        Example:
            ```python
            fn = host.resolve(unit, "f")
            ```
        """
        ...

    def invoke(self, fn: Callable[..., Any], args: list[Any], kwargs: dict[str, Any]) -> Any:
        """Call `fn`, raising RuntimeFault for anything the code raises.

        Example:
            ```python
            host.invoke(fn, [], {"a": "x"})
            ```
        """
        ...


def _describe_exception(exc: BaseException) -> str:
    """Format an exception as `Type: message`.

    Example:
        ```python
        _describe_exception(ZeroDivisionError("division by zero"))
        # "ZeroDivisionError: division by zero"
        ```
    """
    if isinstance(exc, SystemExit):
        return f"SystemExit: {exc.code}"
    return f"{type(exc).__name__}: {exc}"


class PythonHost:
    """Runs code in the current interpreter with a fresh module namespace per unit.

    Example:
        ```python
        host = PythonHost()
        fn = host.resolve(host.compile("def f(x):\\n    return x"), "f")
        host.invoke(fn, [], {"x": 1})  # 1
        ```
    """

    def compile(self, code: str) -> CompiledUnit:
        """Compile `code` without running it.

        Example:
            ```python
            PythonHost().compile("x = 1")
            ```
        """
        try:
            byte_code = compile(code, CODE_FILENAME, "exec", dont_inherit=True)
        except (SyntaxError, ValueError) as exc:
            raise CompileError(_describe_exception(exc)) from exc
        namespace: dict[str, Any] = {"__name__": MODULE_NAME, "__builtins__": builtins}
        return CompiledUnit(code=byte_code, namespace=namespace)

    def resolve(self, unit: CompiledUnit, name: str) -> Callable[..., Any]:
        """Evaluate the module body once, then look up the entry point.

        Example:
            ```python
            fn = PythonHost().resolve(unit, "main")
            ```
        """
        if not unit.loaded:
            try:
                exec(unit.code, unit.namespace)
            except (Exception, SystemExit) as exc:
                raise RuntimeFault(f"while loading code: {_describe_exception(exc)}") from exc
            unit.loaded = True
        if name not in unit.namespace:
            raise EntryPointError(f"function '{name}' is not defined")
        fn = unit.namespace[name]
        if not callable(fn):
            raise EntryPointError(f"'{name}' is not callable")
        return fn

    def invoke(self, fn: Callable[..., Any], args: list[Any], kwargs: dict[str, Any]) -> Any:
        """Call `fn`; coroutine results are run to completion.

        Example:
            ```python
            PythonHost().invoke(len, [[1, 2]], {})  # 2
            ```
        """
        try:
            result = fn(*args, **kwargs)
            if inspect.iscoroutine(result):
                result = asyncio.run(result)
        except (Exception, SystemExit) as exc:
            logger.debug("pipeline_code_raised", traceback=traceback.format_exc())
            raise RuntimeFault(_describe_exception(exc)) from exc
        return result


class ExecutorRuntime:
    """Compile, resolve, bind, invoke and coerce one request into one outcome.

    Example:
        ```python
        runtime = ExecutorRuntime()
        outcome = runtime.execute(
            ExecutionRequest("def f(a: str) -> str:\\n    return a * 2", "f", {"a": Text("x")})
        )
        ```
    """

    def __init__(self, host: HostRuntime | None = None) -> None:
        """Use `host` for compile/resolve/invoke, defaulting to PythonHost.

        Example:
            ```python
            ExecutorRuntime(PythonHost())
            ```
        """
        self._host = host or PythonHost()

    def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        """Run the call state machine; every path ends in exactly one outcome.

        Example:
            ```python
            outcome = ExecutorRuntime().execute(request)
            ```
        """
        trace = CallTrace()
        try:
            unit = self._host.compile(request.code)
            trace.advance(CallState.COMPILED)
            fn = self._host.resolve(unit, request.entry_point)
            args, kwargs = bind_arguments(fn, request.arguments)
            trace.advance(CallState.BOUND)
            trace.advance(CallState.EXECUTING)
            native = self._host.invoke(fn, args, kwargs)
            value = coerce_return(native, request.return_type)
        except ExecutionStepError as exc:
            return self._fail(request, trace, f"{type(exc).__name__}: {exc}")
        except Exception as exc:
            logger.error("execution_crashed", entry_point=request.entry_point, exc_info=True)
            return self._fail(request, trace, f"RuntimeFault: {_describe_exception(exc)}")
        trace.advance(CallState.SUCCEEDED)
        logger.debug("execution_succeeded", entry_point=request.entry_point, variant=type(value).__name__)
        return ExecutionResult(value)

    def _fail(self, request: ExecutionRequest, trace: CallTrace, message: str) -> ExecutionOutcome:
        """End the call in FAILED and build its error outcome.

        Example:
            ```python
            return self._fail(request, trace, "BindingError: missing required argument 'a'")
            ```
        """
        trace.advance(CallState.FAILED)
        logger.info(
            "execution_failed",
            entry_point=request.entry_point,
            reached=trace.history[-2].value,
            error=message,
        )
        return ExecutionError(message)
