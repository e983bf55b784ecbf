import sys

import pytest

from code_executor import (
    Boolean,
    ExecutionError,
    ExecutionRequest,
    ExecutionResult,
    HandleType,
    LocalEngine,
    Number,
    Text,
    TextList,
)

ENGINE = LocalEngine(memory_limit_mb=1024, execution_timeout_seconds=20)

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="worker limits are POSIX only")


def test_local_engine_runs_the_call_in_a_worker() -> None:
    request = ExecutionRequest(
        "def main(a: str, b: float) -> str:\n    return a * int(b)\n",
        "main",
        {"a": Text("x"), "b": Number(3.0)},
        HandleType.STRING,
    )

    assert ENGINE.execute(request) == ExecutionResult(Text("xxx"))


def test_printed_output_does_not_corrupt_the_outcome() -> None:
    request = ExecutionRequest(
        "import sys\n\ndef main() -> list[str]:\n    print('noise')\n    print('more', file=sys.stderr)\n    return ['a']\n",
        "main",
        return_type=HandleType.STRING_LIST,
    )

    assert ENGINE.execute(request) == ExecutionResult(TextList(["a"]))


def test_raw_descriptor_writes_do_not_corrupt_the_outcome() -> None:
    code = (
        "import os\nimport subprocess\nimport sys\n\n"
        "def main() -> str:\n"
        "    os.write(1, b'\\n\\x08garbage\\n')\n"
        "    subprocess.run([sys.executable, '-c', 'print(123)'], check=True)\n"
        "    return 'clean'\n"
    )

    outcome = ENGINE.execute(ExecutionRequest(code, "main", return_type=HandleType.STRING))

    assert outcome == ExecutionResult(Text("clean"))


def test_errors_come_back_as_error_outcomes() -> None:
    outcome = ENGINE.execute(ExecutionRequest("def main(:\n    pass\n", "main"))

    assert isinstance(outcome, ExecutionError)
    assert outcome.message.startswith("CompileError:")


def test_module_mutations_do_not_survive_the_call() -> None:
    mutate = "import json\n\ndef main():\n    json.MARKER = 1\n    return True\n"
    inspect = "import json\n\ndef main():\n    return hasattr(json, 'MARKER')\n"

    ENGINE.execute(ExecutionRequest(mutate, "main"))
    outcome = ENGINE.execute(ExecutionRequest(inspect, "main"))

    assert outcome == ExecutionResult(Boolean(False))


def test_hard_exit_is_reported_with_the_exit_code() -> None:
    outcome = ENGINE.execute(ExecutionRequest("import os\n\ndef main():\n    os._exit(3)\n", "main"))

    assert isinstance(outcome, ExecutionError)
    assert outcome.message.startswith("RuntimeFault: worker exited with code 3")


def test_time_limit_kills_the_worker() -> None:
    engine = LocalEngine(execution_timeout_seconds=20)
    request = ExecutionRequest("import time\n\ndef main():\n    time.sleep(30)\n", "main")

    outcome = engine.execute(request, timeout_seconds=2.0)

    assert outcome == ExecutionError("RuntimeFault: execution exceeded the 2s limit")


def test_local_engine_validates_its_limits() -> None:
    with pytest.raises(ValueError, match="memory_limit_mb"):
        LocalEngine(memory_limit_mb=0)
