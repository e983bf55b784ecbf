from .engine import ExecutionEngine
from .inline_engine import InlineEngine
from .local_engine import LocalEngine

__all__ = [
    "ExecutionEngine",
    "InlineEngine",
    "LocalEngine",
]
