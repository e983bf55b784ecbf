from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

ENDPOINT_ENV = "CODE_EXECUTOR_URL"
PORT_ENV = "CODE_EXECUTOR_PORT"
ISOLATION_MODES = ("process", "inline")


def _default_settings_path() -> Path:
    """Return the bundled default settings TOML path.

    Example:
        ```python
        path = _default_settings_path()
        ```
    """
    return Path(__file__).with_name("default_settings.toml")


def _read_settings_toml(path: Path) -> dict[str, Any]:
    """Read a settings TOML file; a missing file yields built-in defaults.

    Example:
        ```python
        raw = _read_settings_toml(Path("/etc/code-executor.toml"))
        raw["dispatcher"]["max_attempts"]
        ```
    """
    if not path.exists():
        return {
            "dispatcher": {
                "endpoint": "localhost:8811",
                "timeout_seconds": 30.0,
                "max_attempts": 3,
                "backoff_base_seconds": 0.2,
                "backoff_max_seconds": 2.0,
            },
            "executor": {
                "host": "0.0.0.0",
                "port": 8811,
                "max_workers": 10,
                "isolation": "process",
                "execution_timeout_seconds": 30.0,
                "memory_limit_mb": 512,
                "max_output_kb": 128,
            },
        }
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    for table in ("dispatcher", "executor"):
        if not isinstance(raw.get(table, {}), dict):
            raise ValueError(f"'{table}' must be a TOML table")
    return raw


def normalize_endpoint(endpoint: str) -> str:
    """Strip an http(s):// or grpc:// scheme and trailing slash from an address.

    Example:
        ```python
        normalize_endpoint("http://python-executor:8811/")  # "python-executor:8811"
        ```
    """
    cleaned = endpoint.strip()
    for scheme in ("http://", "https://", "grpc://"):
        if cleaned.startswith(scheme):
            cleaned = cleaned[len(scheme) :]
            break
    cleaned = cleaned.rstrip("/")
    if not cleaned:
        raise ValueError("executor endpoint must not be empty")
    return cleaned


_DEFAULT_RAW = _read_settings_toml(_default_settings_path())
_DEFAULT_DISPATCHER: Mapping[str, Any] = _DEFAULT_RAW.get("dispatcher", {})
_DEFAULT_EXECUTOR: Mapping[str, Any] = _DEFAULT_RAW.get("executor", {})
DEFAULT_ENDPOINT = str(_DEFAULT_DISPATCHER.get("endpoint", "localhost:8811"))
DEFAULT_TIMEOUT_SECONDS = float(_DEFAULT_DISPATCHER.get("timeout_seconds", 30.0))
DEFAULT_MAX_ATTEMPTS = int(_DEFAULT_DISPATCHER.get("max_attempts", 3))
DEFAULT_BACKOFF_BASE_SECONDS = float(_DEFAULT_DISPATCHER.get("backoff_base_seconds", 0.2))
DEFAULT_BACKOFF_MAX_SECONDS = float(_DEFAULT_DISPATCHER.get("backoff_max_seconds", 2.0))
DEFAULT_HOST = str(_DEFAULT_EXECUTOR.get("host", "0.0.0.0"))
DEFAULT_PORT = int(_DEFAULT_EXECUTOR.get("port", 8811))
DEFAULT_MAX_WORKERS = int(_DEFAULT_EXECUTOR.get("max_workers", 10))
DEFAULT_ISOLATION = str(_DEFAULT_EXECUTOR.get("isolation", "process"))
DEFAULT_EXECUTION_TIMEOUT_SECONDS = float(_DEFAULT_EXECUTOR.get("execution_timeout_seconds", 30.0))
DEFAULT_MEMORY_LIMIT_MB = int(_DEFAULT_EXECUTOR.get("memory_limit_mb", 512))
DEFAULT_MAX_OUTPUT_KB = int(_DEFAULT_EXECUTOR.get("max_output_kb", 128))


@dataclass(slots=True)
class DispatcherSettings:
    """Orchestrator-side settings: where the executor lives and how calls are retried.

    Example:
        ```python
        settings = DispatcherSettings(endpoint="python-executor:8811", max_attempts=5)
        ```
    """

    endpoint: str = DEFAULT_ENDPOINT
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS
    backoff_max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Normalize the endpoint and validate limits.

        Example:
            ```python
            DispatcherSettings(endpoint="http://localhost:8811").endpoint  # "localhost:8811"
            ```
        """
        self.endpoint = normalize_endpoint(self.endpoint)
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_base_seconds < 0 or self.backoff_max_seconds < 0:
            raise ValueError("backoff delays must not be negative")

    @classmethod
    def from_file(cls, config_path: str) -> "DispatcherSettings":
        """Load the `[dispatcher]` table of a TOML file.

        Example:
            ```python
            settings = DispatcherSettings.from_file("/etc/code-executor.toml")
            ```
        """
        raw = _read_settings_toml(Path(config_path)).get("dispatcher", {})
        return cls(
            endpoint=str(raw.get("endpoint", DEFAULT_ENDPOINT)),
            timeout_seconds=float(raw.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            max_attempts=int(raw.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
            backoff_base_seconds=float(raw.get("backoff_base_seconds", DEFAULT_BACKOFF_BASE_SECONDS)),
            backoff_max_seconds=float(raw.get("backoff_max_seconds", DEFAULT_BACKOFF_MAX_SECONDS)),
            config_path=config_path,
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        config_path: str | None = None,
    ) -> "DispatcherSettings":
        """Load settings (optionally from a file) and apply `CODE_EXECUTOR_URL`.

        Example:
            ```python
            settings = DispatcherSettings.from_env({"CODE_EXECUTOR_URL": "http://python-executor:8811"})
            ```
        """
        env = os.environ if environ is None else environ
        settings = cls.from_file(config_path) if config_path else cls()
        endpoint = env.get(ENDPOINT_ENV)
        if endpoint:
            settings.endpoint = normalize_endpoint(endpoint)
        return settings


@dataclass(slots=True)
class ExecutorSettings:
    """Executor-side settings: listening address, worker pool and per-call limits.

    Example:
        ```python
        settings = ExecutorSettings(port=9000, isolation="inline")
        ```
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_workers: int = DEFAULT_MAX_WORKERS
    isolation: str = DEFAULT_ISOLATION
    execution_timeout_seconds: float = DEFAULT_EXECUTION_TIMEOUT_SECONDS
    memory_limit_mb: int = DEFAULT_MEMORY_LIMIT_MB
    max_output_kb: int = DEFAULT_MAX_OUTPUT_KB
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Validate the isolation mode and limits.

        Example:
            ```python
            ExecutorSettings(isolation="process")
            ```
        """
        if self.isolation not in ISOLATION_MODES:
            raise ValueError("isolation must be 'process' or 'inline'")
        if not 0 <= self.port <= 65535:
            raise ValueError("port must be between 0 and 65535")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.execution_timeout_seconds <= 0:
            raise ValueError("execution_timeout_seconds must be positive")

    @property
    def address(self) -> str:
        """Return the `host:port` the gRPC server binds.

        Example:
            ```python
            ExecutorSettings(host="127.0.0.1", port=0).address  # "127.0.0.1:0"
            ```
        """
        return f"{self.host}:{self.port}"

    @classmethod
    def from_file(cls, config_path: str) -> "ExecutorSettings":
        """Load the `[executor]` table of a TOML file.

        Example:
            ```python
            settings = ExecutorSettings.from_file("/etc/code-executor.toml")
            ```
        """
        raw = _read_settings_toml(Path(config_path)).get("executor", {})
        return cls(
            host=str(raw.get("host", DEFAULT_HOST)),
            port=int(raw.get("port", DEFAULT_PORT)),
            max_workers=int(raw.get("max_workers", DEFAULT_MAX_WORKERS)),
            isolation=str(raw.get("isolation", DEFAULT_ISOLATION)),
            execution_timeout_seconds=float(
                raw.get("execution_timeout_seconds", DEFAULT_EXECUTION_TIMEOUT_SECONDS)
            ),
            memory_limit_mb=int(raw.get("memory_limit_mb", DEFAULT_MEMORY_LIMIT_MB)),
            max_output_kb=int(raw.get("max_output_kb", DEFAULT_MAX_OUTPUT_KB)),
            config_path=config_path,
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        config_path: str | None = None,
    ) -> "ExecutorSettings":
        """Load settings (optionally from a file) and apply `CODE_EXECUTOR_PORT`.

        Example:
            ```python
            settings = ExecutorSettings.from_env({"CODE_EXECUTOR_PORT": "9000"})
            ```
        """
        env = os.environ if environ is None else environ
        settings = cls.from_file(config_path) if config_path else cls()
        port = env.get(PORT_ENV)
        if port:
            settings.port = int(port)
        return settings
