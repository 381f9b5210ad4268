from __future__ import annotations

import importlib
import inspect
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from cytopipe.core.logging import get_logger
from cytopipe.errors import ArgumentMismatch, PipelineConfigError, UnknownFunction
from cytopipe.registries import Registry

logger = get_logger(__name__)

StepFunction = Callable[..., Any]


class StepRegistry(Registry[StepFunction]):
    """Maps step function identifiers to callables.

    Lookups raise the step-local :class:`UnknownFunction` instead of
    ``KeyError`` so the executor can record them against a single step.
    """

    def __init__(self, name: str = "step_function") -> None:
        super().__init__(name)

    def add(self, key: str, item: StepFunction) -> None:
        if not callable(item):
            raise TypeError(f"{self.name}: '{key}' must be callable")
        super().add(key, item)

    def resolve(self, function_id: str) -> StepFunction:
        if function_id not in self:
            raise UnknownFunction(function_id, self.list())
        return self.get(function_id)

    def validate_arguments(self, fn: StepFunction, arguments: Mapping[str, Any], function_id: str | None = None) -> None:
        validate_arguments(fn, arguments, function_id=function_id)

    def copy(self, name: str | None = None) -> "StepRegistry":
        out = StepRegistry(name or self.name)
        for key in self.list():
            out.add(key, self.get(key))
        return out


def validate_arguments(fn: StepFunction, arguments: Mapping[str, Any], function_id: str | None = None) -> None:
    label = function_id or getattr(fn, "__name__", repr(fn))
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        # Builtins without introspectable signatures are checked at call time.
        return

    accepts_any_keyword = False
    required: set[str] = set()
    accepted: set[str] = set()
    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_KEYWORD:
            accepts_any_keyword = True
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.POSITIONAL_ONLY):
            if param.kind is inspect.Parameter.POSITIONAL_ONLY and param.default is inspect.Parameter.empty:
                required.add(param.name)
            continue
        accepted.add(param.name)
        if param.default is inspect.Parameter.empty:
            required.add(param.name)

    given = set(arguments.keys())
    missing = required - given
    unexpected = set() if accepts_any_keyword else given - accepted
    if missing or unexpected:
        raise ArgumentMismatch(label, missing=sorted(missing), unexpected=sorted(unexpected))


STEP_REGISTRY = StepRegistry()


def register_step(name: str | None = None) -> Callable[[StepFunction], StepFunction]:
    return STEP_REGISTRY.register(name)


def list_steps() -> list[str]:
    return STEP_REGISTRY.list()


def resolve_step(function_id: str) -> StepFunction:
    return STEP_REGISTRY.resolve(function_id)


def import_step_modules(modules: Iterable[str]) -> list[str]:
    """Import modules whose ``@register_step`` decorators populate the registry."""
    imported: list[str] = []
    for module_name in modules:
        name = str(module_name).strip()
        if not name:
            continue
        try:
            importlib.import_module(name)
        except ImportError as exc:
            raise PipelineConfigError(f"step module import failed: {name}") from exc
        logger.debug("imported step module %s", name)
        imported.append(name)
    return imported
