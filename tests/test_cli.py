from __future__ import annotations

import io
from pathlib import Path

import pytest

from code_executor import DispatchResult, ExecutionFailed, HandleType, Text, TextList, TransportFailure
from code_executor.dispatcher import build_request
from pxr import cli


class _FakeDispatcher:
    result = DispatchResult(ok=True, value=Text("xx"), attempts=1)
    instances: list["_FakeDispatcher"] = []

    def __init__(self, transport=None, *, settings=None) -> None:
        self.settings = settings
        self.calls: list[tuple] = []
        self.closed = False
        self.__class__.instances.append(self)

    def __enter__(self) -> "_FakeDispatcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.closed = True

    def run_code(self, code, entry_point, arguments=None, return_type=HandleType.ANY, *, timeout_seconds=None):
        self.calls.append((code, entry_point, arguments, return_type, timeout_seconds))
        build_request(code, entry_point, arguments, return_type)
        return self.result


@pytest.fixture(autouse=True)
def _patch_dispatcher(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CODE_EXECUTOR_URL", raising=False)
    monkeypatch.delenv("CODE_EXECUTOR_PORT", raising=False)
    _FakeDispatcher.instances = []
    _FakeDispatcher.result = DispatchResult(ok=True, value=Text("xx"), attempts=1)
    monkeypatch.setattr(cli, "Dispatcher", _FakeDispatcher)


@pytest.fixture
def node_file(tmp_path: Path) -> Path:
    path = tmp_path / "node.py"
    path.write_text("def main(a: str, b: float) -> str:\n    return a * int(b)\n", encoding="utf-8")
    return path


def test_cli_run_success(node_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(
        ["run", str(node_file), "--arg", "a=x", "--arg", "b=2", "--return-type", "string", "--timeout", "4"]
    )
    output = capsys.readouterr().out

    assert code == 0
    assert "Result (Text)" in output
    assert "'xx'" in output
    dispatcher = _FakeDispatcher.instances[0]
    source, entry_point, arguments, return_type, timeout = dispatcher.calls[0]
    assert source.startswith("def main(a: str")
    assert entry_point == "main"
    assert arguments == {"a": "x", "b": 2}
    assert return_type is HandleType.STRING
    assert timeout == 4.0
    assert dispatcher.closed is True


def test_cli_run_parses_json_arguments(node_file: Path) -> None:
    _FakeDispatcher.result = DispatchResult(ok=True, value=TextList(["a"]), attempts=1)

    code = cli.main(["run", str(node_file), "--entry-point", "other", "--arg", 'tags=["a", "b"]'])

    assert code == 0
    _, entry_point, arguments, return_type, _ = _FakeDispatcher.instances[0].calls[0]
    assert entry_point == "other"
    assert arguments == {"tags": ["a", "b"]}
    assert return_type is HandleType.ANY


def test_cli_run_endpoint_flag_overrides_environment(
    node_file: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CODE_EXECUTOR_URL", "http://env-host:8811")

    cli.main(["run", str(node_file), "--endpoint", "http://flag-host:9000"])

    assert _FakeDispatcher.instances[0].settings.endpoint == "flag-host:9000"


def test_cli_run_reads_endpoint_from_environment(
    node_file: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CODE_EXECUTOR_URL", "http://env-host:8811")

    cli.main(["run", str(node_file)])

    assert _FakeDispatcher.instances[0].settings.endpoint == "env-host:8811"


def test_cli_run_failure_exits_one(node_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _FakeDispatcher.result = DispatchResult(
        ok=False,
        failure=ExecutionFailed("RuntimeFault: ZeroDivisionError: division by zero"),
        attempts=1,
    )

    code = cli.main(["run", str(node_file)])
    output = capsys.readouterr().out

    assert code == 1
    assert "execution_failed" in output
    assert "ZeroDivisionError" in output


def test_cli_run_transport_failure_reports_attempts(node_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _FakeDispatcher.result = DispatchResult(
        ok=False,
        failure=TransportFailure("UNAVAILABLE: connection refused", attempts=3),
        attempts=3,
    )

    code = cli.main(["run", str(node_file)])
    output = capsys.readouterr().out

    assert code == 1
    assert "transport_failure" in output
    assert "3 attempt(s)" in output


def test_cli_run_argument_without_value_form_is_reported(
    node_file: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    code = cli.main(["run", str(node_file), "--arg", 'a={"nested": 1}'])
    output = capsys.readouterr().out

    assert code == 1
    assert "Error:" in output
    assert "dict has no value representation" in output
    assert _FakeDispatcher.instances[0].closed is True


def test_cli_run_rejects_bad_argument_syntax(node_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["run", str(node_file), "--arg", "no-equals-sign"])

    assert exc.value.code == 2
    assert "NAME=VALUE" in capsys.readouterr().out


def test_cli_serve_merges_flags_over_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    served = []
    monkeypatch.setattr(cli, "serve_executor", served.append)
    monkeypatch.setenv("CODE_EXECUTOR_PORT", "9100")

    code = cli.main(["serve", "--isolation", "inline", "--workers", "3"])

    assert code == 0
    settings = served[0]
    assert settings.isolation == "inline"
    assert settings.max_workers == 3
    assert settings.port == 9100


def test_cli_serve_port_flag_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    served = []
    monkeypatch.setattr(cli, "serve_executor", served.append)
    monkeypatch.setenv("CODE_EXECUTOR_PORT", "9100")

    cli.main(["serve", "--port", "9200", "--host", "127.0.0.1"])

    assert served[0].address == "127.0.0.1:9200"


def test_cli_subcommand_help(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "--help"])
    output = capsys.readouterr().out
    assert exc.value.code == 0
    assert "Exit status is 0 on success and 1 on any failure." in output


def test_cli_top_level_help_examples(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--help"])
    output = capsys.readouterr().out
    assert exc.value.code == 0
    assert "Quick Examples:" in output
    assert "pxr serve --port 8811" in output


def test_cli_print_help_writes_to_requested_stream(capsys: pytest.CaptureFixture[str]) -> None:
    parser = cli.build_parser()
    buffer = io.StringIO()
    parser.print_help(file=buffer)
    output = capsys.readouterr().out
    assert output == ""
    help_text = buffer.getvalue()
    assert "Usage:" in help_text
    assert "pipeline code executor CLI" in help_text
