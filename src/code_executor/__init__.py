from .config import DispatcherSettings, ExecutorSettings
from .contract import ExecutionError, ExecutionOutcome, ExecutionRequest, ExecutionResult
from .dispatcher import Dispatcher, DispatchResult, run_code
from .errors import (
    DispatchCancelled,
    DispatchFailure,
    ExecutionFailed,
    ExecutionTimeout,
    ProtocolViolation,
    TransportFailure,
    UnknownVariant,
)
from .execution.inline_engine import InlineEngine
from .execution.local_engine import LocalEngine
from .runtime import ExecutorRuntime
from .server import CodeExecutorService, build_server, serve
from .transport import GrpcTransport, LoopbackTransport
from .values import (
    Boolean,
    ChatMessage,
    ChatTranscript,
    HandleType,
    ImageInlinePart,
    ImageUrlPart,
    Number,
    PartList,
    PlainText,
    Text,
    TextList,
    TextPart,
    Value,
)

__all__ = [
    "Boolean",
    "ChatMessage",
    "ChatTranscript",
    "CodeExecutorService",
    "DispatchCancelled",
    "DispatchFailure",
    "DispatchResult",
    "Dispatcher",
    "DispatcherSettings",
    "ExecutionError",
    "ExecutionFailed",
    "ExecutionOutcome",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionTimeout",
    "ExecutorRuntime",
    "ExecutorSettings",
    "GrpcTransport",
    "HandleType",
    "ImageInlinePart",
    "ImageUrlPart",
    "InlineEngine",
    "LocalEngine",
    "LoopbackTransport",
    "Number",
    "PartList",
    "PlainText",
    "ProtocolViolation",
    "Text",
    "TextList",
    "TextPart",
    "TransportFailure",
    "UnknownVariant",
    "Value",
    "build_server",
    "run_code",
    "serve",
]
