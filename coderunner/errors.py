"""Error taxonomy of the execution engine.

Everything except InvalidRequest is recovered inside the engine and turned
into an ExecutionResult; InvalidRequest is the only error callers see.
"""

from typing import Any

from .schemas import ExecutionStatus


class SandboxError(Exception):
    """Base class for engine errors that end up in a result's stderr."""

    status: ExecutionStatus = ExecutionStatus.error
    detail: str = "Execution failed"

    def __init__(self, detail: str | None = None, **context: Any) -> None:
        self.detail = detail or self.__class__.detail
        self.context = context if context else None
        super().__init__(self.detail)


class UnsupportedLanguage(SandboxError):
    """Raised before any container work for an unknown language."""

    def __init__(self, language: str) -> None:
        super().__init__(f"Unsupported language: {language}", language=language)


class ContainerMissing(SandboxError):
    """A persistent container was never provisioned."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Container {name} not found. Please run: docker-compose up -d",
            container=name,
        )


class ExecutionTimeout(SandboxError):
    status = ExecutionStatus.timed_out

    def __init__(self, seconds: float) -> None:
        super().__init__(
            f"Execution timed out (maximum {seconds:g} seconds allowed)",
            seconds=seconds,
        )


class RuntimeFailure(SandboxError):
    """A step inside the container could not be run."""

    status = ExecutionStatus.failed
    detail = "Execution failed"


class CleanupFailure(SandboxError):
    """Logged by the cleanup path, never raised to callers."""

    detail = "Cleanup failed"


class InvalidRequest(ValueError):
    """Request shape is wrong (empty code, no test cases, bad file names)."""
