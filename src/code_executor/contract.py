from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Union

from .values import HandleType, Value, is_value, variant_name


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """One call: run `entry_point` from `code` with named arguments.

    Example:
        ```python
        req = ExecutionRequest(
            code="def main(a: str) -> str:\\n    return a.upper()",
            entry_point="main",
            arguments={"a": Text("x")},
            return_type=HandleType.STRING,
        )
        ```
    """

    code: str
    entry_point: str
    arguments: Mapping[str, Value] = field(default_factory=dict)
    return_type: HandleType = HandleType.ANY

    def __post_init__(self) -> None:
        """Validate field shapes; the code itself is opaque to the protocol.

        Example:
            ```python
            ExecutionRequest(code="", entry_point="main")
            ```
        """
        if not isinstance(self.code, str):
            raise TypeError("code must be a str")
        if not isinstance(self.entry_point, str):
            raise TypeError("entry_point must be a str")
        arguments: dict[str, Value] = {}
        for name, value in dict(self.arguments).items():
            if not isinstance(name, str):
                raise TypeError(f"argument names must be str, got {type(name).__name__}")
            if not is_value(value):
                raise TypeError(f"argument '{name}' must be a Value, got {variant_name(value)}")
            arguments[name] = value
        object.__setattr__(self, "arguments", MappingProxyType(arguments))
        object.__setattr__(self, "return_type", HandleType(self.return_type))


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Successful outcome carrying the produced value.

    Example:
        ```python
        ExecutionResult(Text("done"))
        ```
    """

    value: Value

    def __post_init__(self) -> None:
        """Reject anything that is not a Value.

        Example:
            ```python
            ExecutionResult(Number(1.0))
            ```
        """
        if not is_value(self.value):
            raise TypeError(f"result must be a Value, got {variant_name(self.value)}")


@dataclass(frozen=True, slots=True)
class ExecutionError:
    """Error outcome with opaque diagnostic text.

    Example:
        ```python
        ExecutionError("CompileError: invalid syntax")
        ```
    """

    message: str

    def __post_init__(self) -> None:
        """Validate the message field.

        Example:
            ```python
            ExecutionError("RuntimeFault: boom")
            ```
        """
        if not isinstance(self.message, str):
            raise TypeError("message must be a str")


ExecutionOutcome = Union[ExecutionResult, ExecutionError]


def describe_outcome(outcome: ExecutionOutcome) -> dict[str, Any]:
    """Summarize an outcome for structured log fields.

    Example:
        ```python
        describe_outcome(ExecutionResult(Text("x")))  # {"ok": True, "variant": "Text"}
        ```
    """
    if isinstance(outcome, ExecutionResult):
        return {"ok": True, "variant": variant_name(outcome.value)}
    return {"ok": False, "error": outcome.message}
