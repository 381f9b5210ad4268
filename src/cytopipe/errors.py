"""Error taxonomy for pipeline execution.

Step-local errors (:class:`StepError` subclasses) are captured into ``Failed``
cache entries and reported; they never escape ``PipelineExecutor.execute``.
:class:`PipelineConfigError` and :class:`CacheError` are fatal and abort a run
before any step executes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class StepError(Exception):
    kind = "step_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class UnknownFunction(StepError):
    kind = "unknown_function"

    def __init__(self, function: str, available: Sequence[str] = ()) -> None:
        listing = ", ".join(available) or "(empty)"
        super().__init__(f"step function '{function}' is not registered. available={listing}")
        self.function = function

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "function": self.function}


class ArgumentMismatch(StepError):
    kind = "argument_mismatch"

    def __init__(self, function: str, missing: Sequence[str] = (), unexpected: Sequence[str] = ()) -> None:
        self.function = function
        self.missing = sorted(missing)
        self.unexpected = sorted(unexpected)
        parts = []
        if self.missing:
            parts.append(f"missing={self.missing}")
        if self.unexpected:
            parts.append(f"unexpected={self.unexpected}")
        super().__init__(f"arguments do not match '{function}': " + ", ".join(parts))

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "function": self.function,
            "missing": list(self.missing),
            "unexpected": list(self.unexpected),
        }


class UnresolvedDependency(StepError):
    kind = "unresolved_dependency"

    def __init__(self, step: str, producers: Sequence[str]) -> None:
        self.step = step
        self.producers = list(producers)
        super().__init__(f"step '{step}' has no successful result for producer(s) {self.producers}")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "producers": list(self.producers)}


class InvocationFailure(StepError):
    kind = "invocation_failure"

    def __init__(self, message: str, exception_type: str | None = None) -> None:
        super().__init__(message)
        self.exception_type = exception_type

    @classmethod
    def from_exception(cls, exc: BaseException) -> "InvocationFailure":
        return cls(str(exc) or type(exc).__name__, exception_type=type(exc).__name__)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "exception_type": self.exception_type}


class ArtifactNotStorable(StepError):
    kind = "artifact_not_storable"

    def __init__(self, step: str, reason: str) -> None:
        super().__init__(f"artifact of step '{step}' cannot be stored: {reason}")
        self.step = step


class PipelineConfigError(ValueError):
    """Structurally invalid pipeline; raised before any step runs."""


class DuplicateStepName(PipelineConfigError):
    def __init__(self, queue: str, step: str) -> None:
        super().__init__(f"queue '{queue}' already contains a step named '{step}'")
        self.queue = queue
        self.step = step


class CacheError(RuntimeError):
    """Cache storage is unavailable or corrupted."""
