"""Shared fixtures: a private step registry with call recording, and caches."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from cytopipe.pipeline import FileArtifactCache, InMemoryArtifactCache, Pipeline, StepFailure
from cytopipe.steps import StepRegistry


class CallRecorder:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.calls: list[tuple[str, str]] = []

    def record(self, function: str, sample: str) -> None:
        with self._lock:
            self.calls.append((function, sample))

    def count(self, function: str, sample: str | None = None) -> int:
        with self._lock:
            return sum(1 for fn, smp in self.calls if fn == function and (sample is None or smp == sample))

    def sequence(self, sample: str) -> list[str]:
        with self._lock:
            return [fn for fn, smp in self.calls if smp == sample]

    def reset(self) -> None:
        with self._lock:
            self.calls.clear()


@pytest.fixture
def recorder() -> CallRecorder:
    return CallRecorder()


@pytest.fixture
def broken_samples() -> set[str]:
    """Samples for which the ``fragile`` step currently fails; tests mutate it."""
    return set()


@pytest.fixture
def registry(recorder: CallRecorder, broken_samples: set[str]) -> StepRegistry:
    reg = StepRegistry("test_steps")

    @reg.register("load")
    def load(sample: str, size: int = 3, fail_samples: Sequence[str] = ()) -> dict[str, Any]:
        recorder.record("load", sample)
        if sample in fail_samples:
            raise ValueError(f"malformed input for {sample}")
        return {"sample": sample, "values": [float(i + 1) for i in range(size)]}

    @reg.register("scale")
    def scale(data: dict[str, Any], factor: float = 1.0) -> dict[str, Any]:
        recorder.record("scale", data["sample"])
        return {"sample": data["sample"], "values": [v * factor for v in data["values"]]}

    @reg.register("fragile")
    def fragile(data: dict[str, Any]) -> dict[str, Any]:
        recorder.record("fragile", data["sample"])
        if data["sample"] in broken_samples:
            raise RuntimeError(f"cannot process {data['sample']}")
        return data

    @reg.register("total")
    def total(data: dict[str, Any]) -> float:
        recorder.record("total", data["sample"])
        return float(sum(data["values"]))

    @reg.register("empty_result")
    def empty_result(data: dict[str, Any]) -> Any:
        recorder.record("empty_result", data["sample"])
        return StepFailure("no events left after gating")

    @reg.register("passthrough")
    def passthrough(**kwargs: Any) -> dict[str, Any]:
        return dict(kwargs)

    return reg


@pytest.fixture
def memory_cache() -> InMemoryArtifactCache:
    return InMemoryArtifactCache()


@pytest.fixture
def file_cache(tmp_path) -> FileArtifactCache:
    return FileArtifactCache(tmp_path / "cache")


@pytest.fixture
def make_pipeline() -> Callable[..., Pipeline]:
    """Build ``main = [A: load(sample), B: scale(A)]`` plus any extra steps."""

    def _make(
        experiment: str = "exp",
        samples: Sequence[str] = ("s1", "s2"),
        factor: float = 2.0,
        load_args: dict[str, Any] | None = None,
        extra_steps: Sequence[dict[str, Any]] = (),
    ) -> Pipeline:
        pipeline = Pipeline(experiment=experiment, samples=[{"name": name} for name in samples])
        pipeline.add_step(
            "main",
            {"name": "A", "function": "load", "arguments": {"sample": {"$sample": "name"}, **(load_args or {})}},
        )
        pipeline.add_step(
            "main",
            {"name": "B", "function": "scale", "arguments": {"data": {"$ref": "A"}, "factor": factor}},
        )
        for step in extra_steps:
            pipeline.add_step("main", step)
        return pipeline

    return _make
