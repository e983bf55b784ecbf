from concurrent.futures import ThreadPoolExecutor

import pytest

from code_executor import (
    Boolean,
    ChatMessage,
    ChatTranscript,
    ExecutionError,
    ExecutionRequest,
    ExecutionResult,
    ExecutorRuntime,
    HandleType,
    InlineEngine,
    Number,
    PlainText,
    Text,
    TextList,
)
from code_executor.runtime import CallState, CallTrace, PythonHost

RUNTIME = ExecutorRuntime()

REPEAT = "def main(a: str, b: float) -> str:\n    return a * int(b)\n"


def execute(code: str, entry_point: str = "main", return_type=HandleType.ANY, **arguments):
    return RUNTIME.execute(
        ExecutionRequest(code=code, entry_point=entry_point, arguments=arguments, return_type=return_type)
    )


def test_typed_arguments_reach_the_function() -> None:
    outcome = execute(REPEAT, return_type=HandleType.STRING, a=Text("x"), b=Number(2.0))

    assert outcome == ExecutionResult(Text("xx"))


def test_argument_of_the_wrong_variant_is_a_binding_error() -> None:
    outcome = execute(REPEAT, return_type=HandleType.STRING, a=Number(1.0), b=Number(2.0))

    assert isinstance(outcome, ExecutionError)
    assert outcome.message.startswith("BindingError:")
    assert "'a'" in outcome.message


def test_missing_argument_is_a_binding_error() -> None:
    outcome = execute(REPEAT, a=Text("x"))

    assert outcome == ExecutionError("BindingError: missing required argument 'b'")


def test_extra_arguments_are_ignored() -> None:
    outcome = execute(REPEAT, a=Text("x"), b=Number(1.0), unused=Boolean(True))

    assert outcome == ExecutionResult(Text("x"))


def test_var_keyword_receives_extra_arguments() -> None:
    code = "def main(a: str, **rest):\n    return sorted(rest)\n"

    outcome = execute(code, a=Text("x"), z=Number(1.0), y=Text("y"))

    assert outcome == ExecutionResult(TextList(["y", "z"]))


def test_default_fills_an_omitted_argument() -> None:
    code = "def main(a: str, sep: str = '-') -> str:\n    return sep.join([a, a])\n"

    assert execute(code, a=Text("x")) == ExecutionResult(Text("x-x"))


def test_return_type_mismatch() -> None:
    code = "def main() -> float:\n    return 1.5\n"

    outcome = execute(code, return_type=HandleType.STRING)

    assert outcome == ExecutionError(
        "ReturnTypeMismatch: declared return type STRING but function returned Number"
    )


def test_any_return_type_accepts_every_representable_value() -> None:
    assert execute("def main():\n    return True\n") == ExecutionResult(Boolean(True))
    assert execute("def main():\n    return ['a']\n") == ExecutionResult(TextList(["a"]))


def test_unrepresentable_return_value_is_a_mismatch() -> None:
    outcome = execute("def main():\n    return {'a': 1}\n")

    assert isinstance(outcome, ExecutionError)
    assert outcome.message.startswith("ReturnTypeMismatch:")


def test_integer_beyond_double_range_is_a_mismatch() -> None:
    outcome = execute("def main():\n    return 10 ** 400\n", return_type=HandleType.FLOAT)

    assert isinstance(outcome, ExecutionError)
    assert outcome.message.startswith("ReturnTypeMismatch:")
    assert "double range" in outcome.message


class _BrokenHost(PythonHost):
    def compile(self, code):
        raise KeyError("cache")


def test_unexpected_host_failure_is_a_runtime_fault() -> None:
    runtime = ExecutorRuntime(_BrokenHost())

    outcome = runtime.execute(ExecutionRequest("def main():\n    return 1\n", "main"))

    assert outcome == ExecutionError("RuntimeFault: KeyError: 'cache'")


def test_int_result_satisfies_float() -> None:
    outcome = execute("def main() -> int:\n    return 3\n", return_type=HandleType.FLOAT)

    assert outcome == ExecutionResult(Number(3.0))


def test_bool_result_does_not_satisfy_float() -> None:
    outcome = execute("def main():\n    return True\n", return_type=HandleType.FLOAT)

    assert isinstance(outcome, ExecutionError)
    assert "returned Boolean" in outcome.message


def test_empty_list_result_follows_declared_type() -> None:
    outcome = execute("def main():\n    return []\n", return_type=HandleType.CHAT_TRANSCRIPT)

    assert outcome == ExecutionResult(ChatTranscript([]))


def test_chat_transcript_argument_arrives_as_dicts() -> None:
    code = (
        "def main(history: list[dict]) -> list[dict]:\n"
        "    return history + [{'role': 'assistant', 'content': 'ok'}]\n"
    )
    history = ChatTranscript([ChatMessage("user", PlainText("hi"))])

    outcome = execute(code, return_type=HandleType.CHAT_TRANSCRIPT, history=history)

    assert outcome == ExecutionResult(
        ChatTranscript(
            [ChatMessage("user", PlainText("hi")), ChatMessage("assistant", PlainText("ok"))]
        )
    )


def test_int_parameter_accepts_integral_numbers_only() -> None:
    code = "def main(n: int) -> list[str]:\n    return [str(i) for i in range(n)]\n"

    assert execute(code, n=Number(2.0)) == ExecutionResult(TextList(["0", "1"]))
    outcome = execute(code, n=Number(2.5))
    assert isinstance(outcome, ExecutionError)
    assert outcome.message.startswith("BindingError:")


def test_optional_parameter_tries_each_member() -> None:
    code = "from typing import Optional\n\ndef main(a: Optional[float] = None):\n    return a * 2\n"

    assert execute(code, a=Number(1.5)) == ExecutionResult(Number(3.0))


def test_compile_error() -> None:
    outcome = execute("def main(:\n    pass\n")

    assert isinstance(outcome, ExecutionError)
    assert outcome.message.startswith("CompileError: SyntaxError")


def test_runtime_error_carries_the_exception() -> None:
    outcome = execute("def main():\n    return 1 / 0\n")

    assert isinstance(outcome, ExecutionError)
    assert outcome.message.startswith("RuntimeFault: ZeroDivisionError:")


def test_error_while_loading_the_module_body() -> None:
    outcome = execute("raise RuntimeError('setup failed')\n\ndef main():\n    return 1\n")

    assert isinstance(outcome, ExecutionError)
    assert "while loading code: RuntimeError: setup failed" in outcome.message


def test_system_exit_is_contained() -> None:
    outcome = execute("import sys\n\ndef main():\n    sys.exit(3)\n")

    assert outcome == ExecutionError("RuntimeFault: SystemExit: 3")


def test_missing_entry_point() -> None:
    outcome = execute("def other():\n    return 1\n")

    assert outcome == ExecutionError("EntryPointError: function 'main' is not defined")


def test_empty_entry_point_is_an_entry_point_error() -> None:
    outcome = execute("def main():\n    return 1\n", entry_point="")

    assert outcome == ExecutionError("EntryPointError: function '' is not defined")


def test_entry_point_must_be_callable() -> None:
    outcome = execute("main = 3\n")

    assert outcome == ExecutionError("EntryPointError: 'main' is not callable")


def test_async_entry_point_is_awaited() -> None:
    code = "import asyncio\n\nasync def main(a: str) -> str:\n    await asyncio.sleep(0)\n    return a.upper()\n"

    assert execute(code, a=Text("x")) == ExecutionResult(Text("X"))


def test_globals_do_not_leak_between_calls() -> None:
    define = "COUNTER = 41\n\ndef main():\n    global COUNTER\n    COUNTER += 1\n    return float(COUNTER)\n"
    check = "def main():\n    return 'COUNTER' in globals()\n"

    assert execute(define) == ExecutionResult(Number(42.0))
    assert execute(define) == ExecutionResult(Number(42.0))
    assert execute(check) == ExecutionResult(Boolean(False))


def test_concurrent_calls_with_same_global_names_are_isolated() -> None:
    code = (
        "import time\n\n"
        "NAME = None\n\n"
        "def main(value: str) -> str:\n"
        "    global NAME\n"
        "    NAME = value\n"
        "    time.sleep(0.05)\n"
        "    return NAME\n"
    )
    engine = InlineEngine(execution_timeout_seconds=5)
    values = [f"call-{index}" for index in range(8)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(
            pool.map(
                lambda value: engine.execute(
                    ExecutionRequest(code, "main", {"value": Text(value)}, HandleType.STRING)
                ),
                values,
            )
        )

    assert outcomes == [ExecutionResult(Text(value)) for value in values]


def test_inline_engine_time_limit() -> None:
    engine = InlineEngine(execution_timeout_seconds=0.2)
    request = ExecutionRequest("import time\n\ndef main():\n    time.sleep(2)\n", "main")

    outcome = engine.execute(request)

    assert outcome == ExecutionError("RuntimeFault: execution exceeded the 0.2s limit")


def test_call_trace_only_moves_forward() -> None:
    trace = CallTrace()
    trace.advance(CallState.COMPILED)
    trace.advance(CallState.BOUND)

    with pytest.raises(RuntimeError):
        trace.advance(CallState.COMPILED)
    trace.advance(CallState.FAILED)
    with pytest.raises(RuntimeError):
        trace.advance(CallState.SUCCEEDED)
    assert trace.history == [CallState.RECEIVED, CallState.COMPILED, CallState.BOUND, CallState.FAILED]
