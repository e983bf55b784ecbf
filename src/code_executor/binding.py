from __future__ import annotations

import collections.abc
import inspect
import types
import typing
from typing import Any, Callable, Mapping, Union, get_args, get_origin

from .errors import BindingError, ReturnTypeMismatch
from .native import from_native, to_native
from .values import (
    Boolean,
    ChatTranscript,
    HandleType,
    Number,
    Text,
    TextList,
    Value,
    matches_handle,
    variant_name,
)

_UNTYPED = (inspect.Parameter.empty, Any, object)
_SEQUENCE_ORIGINS = (
    list,
    tuple,
    collections.abc.Sequence,
    collections.abc.Iterable,
    collections.abc.Collection,
)
_MAPPING_TYPES = (dict, collections.abc.Mapping, collections.abc.MutableMapping)
# Annotation strings understood when the code's type hints cannot be evaluated.
_NAMED_ANNOTATIONS: dict[str, Any] = {
    "str": str,
    "float": float,
    "int": int,
    "bool": bool,
    "list": list,
    "list[str]": list[str],
    "List[str]": list[str],
    "list[dict]": list[dict],
    "List[dict]": list[dict],
}


def _expect(name: str, value: Value, variant: type, label: str) -> Any:
    """Return `value` if it is `variant`, else raise a BindingError naming the argument.

    Example:
        ```python
        _expect("a", Text("x"), Text, "STRING")  # Text("x")
        ```
    """
    if not isinstance(value, variant):
        raise BindingError(f"argument '{name}' expects {label} but received {variant_name(value)}")
    return value


def _is_mapping_annotation(annotation: Any) -> bool:
    """Return True for dict-like annotations such as `dict[str, Any]`.

    Example:
        ```python
        _is_mapping_annotation(dict[str, str])  # True
        ```
    """
    return annotation in _MAPPING_TYPES or get_origin(annotation) in _MAPPING_TYPES


def convert_argument(name: str, value: Value, annotation: Any) -> Any:
    """Convert a bound Value to the native object a parameter annotation asks for.

    Unannotated parameters and annotations with no Value counterpart receive
    the plain native form of whatever variant was sent.

    Example:
        ```python
        convert_argument("b", Number(2.5), float)  # 2.5
        convert_argument("a", Number(1.0), str)  # raises BindingError
        ```
    """
    if annotation in _UNTYPED:
        return to_native(value)
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        members = [member for member in get_args(annotation) if member is not type(None)]
        for member in members:
            try:
                return convert_argument(name, value, member)
            except BindingError:
                continue
        labels = " | ".join(_label(member) for member in members)
        raise BindingError(f"argument '{name}' expects {labels} but received {variant_name(value)}")
    if annotation is str:
        return _expect(name, value, Text, "STRING").value
    if annotation is float:
        return _expect(name, value, Number, "FLOAT").value
    if annotation is bool:
        return _expect(name, value, Boolean, "BOOLEAN").value
    if annotation is int:
        number = _expect(name, value, Number, "INTEGER").value
        if not number.is_integer():
            raise BindingError(f"argument '{name}' expects INTEGER but received {number!r}")
        return int(number)
    if annotation is list or origin in _SEQUENCE_ORIGINS:
        item_args = get_args(annotation)
        item = item_args[0] if item_args else Any
        if item is str:
            return to_native(_expect(name, value, TextList, "STRING_LIST"))
        if _is_mapping_annotation(item):
            return to_native(_expect(name, value, ChatTranscript, "CHAT_TRANSCRIPT"))
        if isinstance(value, (TextList, ChatTranscript)):
            return to_native(value)
        raise BindingError(f"argument '{name}' expects a list but received {variant_name(value)}")
    return to_native(value)


def _label(annotation: Any) -> str:
    """Name an annotation the way binding errors describe it.

    Example:
        ```python
        _label(list[str])  # "STRING_LIST"
        ```
    """
    simple = {str: "STRING", float: "FLOAT", bool: "BOOLEAN", int: "INTEGER"}
    if annotation in simple:
        return simple[annotation]
    item_args = get_args(annotation)
    if annotation is list or get_origin(annotation) in _SEQUENCE_ORIGINS:
        if item_args and item_args[0] is str:
            return "STRING_LIST"
        if item_args and _is_mapping_annotation(item_args[0]):
            return "CHAT_TRANSCRIPT"
        return "list"
    return getattr(annotation, "__name__", str(annotation))


def _resolve_annotations(fn: Callable[..., Any]) -> dict[str, Any]:
    """Evaluate the callable's annotations, falling back to known names.

    Example:
        ```python
        _resolve_annotations(lambda: None)  # {}
        ```
    """
    try:
        return typing.get_type_hints(fn)
    except Exception:
        raw = getattr(fn, "__annotations__", None) or {}
        return {
            name: _NAMED_ANNOTATIONS.get(annotation.replace(" ", ""), Any)
            if isinstance(annotation, str)
            else annotation
            for name, annotation in raw.items()
        }


def bind_arguments(
    fn: Callable[..., Any],
    arguments: Mapping[str, Value],
) -> tuple[list[Any], dict[str, Any]]:
    """Bind named Values to `fn`'s parameters.

    Returns `(positional, keyword)` natives ready for the call. Arguments the
    signature does not name are dropped unless `fn` takes `**kwargs`.

    Example:
        ```python
        def f(a: str, b: float = 1.0): ...
        bind_arguments(f, {"a": Text("x"), "extra": Boolean(True)})
        # ([], {"a": "x"})
        ```
    """
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError) as exc:
        raise BindingError(f"cannot inspect signature of entry point: {exc}") from exc
    hints = _resolve_annotations(fn)

    positional: list[Any] = []
    keywords: dict[str, Any] = {}
    accepts_extra = False
    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            continue
        if param.kind is inspect.Parameter.VAR_KEYWORD:
            accepts_extra = True
            continue
        if param.name not in arguments:
            if param.default is inspect.Parameter.empty:
                raise BindingError(f"missing required argument '{param.name}'")
            if param.kind is inspect.Parameter.POSITIONAL_ONLY:
                positional.append(param.default)
            continue
        annotation = hints.get(param.name, param.annotation)
        native = convert_argument(param.name, arguments[param.name], annotation)
        if param.kind is inspect.Parameter.POSITIONAL_ONLY:
            positional.append(native)
        else:
            keywords[param.name] = native

    if accepts_extra:
        for name, value in arguments.items():
            if name not in signature.parameters:
                keywords[name] = to_native(value)
    return positional, keywords


def coerce_return(native: Any, declared: HandleType) -> Value:
    """Convert a returned object to a Value and check it against `declared`.

    `ANY` accepts every representable value. Other handle types must match
    the produced variant exactly; `int` counts as a number, `bool` does not.

    Example:
        ```python
        coerce_return("ok", HandleType.STRING)  # Text("ok")
        coerce_return(1.5, HandleType.STRING)  # raises ReturnTypeMismatch
        ```
    """
    try:
        value = from_native(native, hint=declared)
    except (TypeError, ValueError) as exc:
        raise ReturnTypeMismatch(f"return value cannot be represented: {exc}") from exc
    if not matches_handle(value, declared):
        raise ReturnTypeMismatch(
            f"declared return type {declared.name} but function returned {variant_name(value)}"
        )
    return value
