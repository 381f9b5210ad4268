from __future__ import annotations

import concurrent.futures as cf
import importlib
import os
from collections.abc import Callable, Sequence
from typing import Any, Protocol, TypeVar

from cytopipe.errors import PipelineConfigError
from cytopipe.registries import Registry

T = TypeVar("T")
Task = Callable[[], Any]

PLUGIN_PREFIX = "plugin:"
DEFAULT_PLUGIN_FACTORY = "make_backend"


class ExecutionBackend(Protocol):
    """Runs independent units of work and returns their results in task order."""

    def run(self, tasks: Sequence[Task]) -> list[Any]:
        ...


class SerialBackend:
    name = "serial"

    def run(self, tasks: Sequence[Task]) -> list[Any]:
        return [task() for task in tasks]


class ThreadPoolBackend:
    name = "thread"

    def __init__(self, max_workers: int | None = None) -> None:
        if max_workers is not None and int(max_workers) < 1:
            raise PipelineConfigError(f"workers must be >= 1, got {max_workers}")
        self.max_workers = int(max_workers) if max_workers is not None else min(32, (os.cpu_count() or 1) + 4)

    def run(self, tasks: Sequence[Task]) -> list[Any]:
        if not tasks:
            return []
        results: list[Any] = [None] * len(tasks)
        with cf.ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="cytopipe") as pool:
            future_to_index = {pool.submit(task): index for index, task in enumerate(tasks)}
            for future in cf.as_completed(future_to_index):
                results[future_to_index[future]] = future.result()
        return results


BackendFactory = Callable[..., ExecutionBackend]
BACKEND_REGISTRY = Registry[BackendFactory]("execution_backend")


@BACKEND_REGISTRY.register("serial")
def _build_serial_backend(workers: int | None = None) -> ExecutionBackend:
    return SerialBackend()


@BACKEND_REGISTRY.register("thread")
def _build_thread_backend(workers: int | None = None) -> ExecutionBackend:
    return ThreadPoolBackend(max_workers=workers)


def register_backend(name: str) -> Callable[[BackendFactory], BackendFactory]:
    return BACKEND_REGISTRY.register(name)


def list_backends() -> list[str]:
    return BACKEND_REGISTRY.list()


def _load_plugin_factory(spec: str) -> BackendFactory:
    if ":" in spec:
        module_name, func_name = spec.split(":", 1)
    else:
        module_name, func_name = spec, DEFAULT_PLUGIN_FACTORY
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise PipelineConfigError(f"backend plugin module import failed: {module_name}") from exc
    factory = getattr(module, func_name, None)
    if not callable(factory):
        raise PipelineConfigError(f"backend plugin callable not found: {module_name}:{func_name}")
    return factory


def make_backend(name: str = "thread", workers: int | None = None) -> ExecutionBackend:
    requested = str(name).strip() or "thread"
    if requested.startswith(PLUGIN_PREFIX):
        factory = _load_plugin_factory(requested[len(PLUGIN_PREFIX) :].strip())
    elif requested in BACKEND_REGISTRY:
        factory = BACKEND_REGISTRY.get(requested)
    else:
        raise PipelineConfigError(
            f"unknown execution backend '{requested}'; available={list_backends()} or plugin:<module[:function]>"
        )
    backend = factory(workers=workers)
    if not hasattr(backend, "run"):
        raise PipelineConfigError(f"execution backend '{requested}' does not implement run(tasks)")
    return backend
