"""Queue execution against an artifact cache.

Each (queue, sample) pair is an independent unit of work. Within a unit,
steps run strictly in declared order. A step is reused from the cache when
its ``Success`` entry carries the same fingerprint as the current definition,
all of its producers succeeded in this run, and no earlier step of the unit
had to be recomputed. The fingerprint of a step chains the fingerprints of
every earlier step in its queue, so editing one step invalidates it and all
steps after it while earlier results stay reusable.

Step-local errors become ``Failed`` entries; the rest of that unit is
reported as ``NOT_REACHED`` and every other unit carries on.
"""

from __future__ import annotations

import hashlib
import time
from collections.abc import Mapping, Sequence
from functools import partial
from typing import Any

from cytopipe.core.io_utils import canonical_json, now_utc
from cytopipe.core.logging import get_logger
from cytopipe.errors import InvocationFailure, StepError, UnresolvedDependency
from cytopipe.pipeline.backends import ExecutionBackend, SerialBackend, make_backend
from cytopipe.pipeline.cache import ArtifactCache
from cytopipe.pipeline.model import Pipeline
from cytopipe.pipeline.types import (
    CacheEntry,
    CacheKey,
    ExecutionReport,
    Queue,
    ResolveContext,
    Sample,
    StepDefinition,
    StepFailure,
    StepOutcome,
    StepStatus,
)
from cytopipe.steps.registry import STEP_REGISTRY, StepRegistry

logger = get_logger(__name__)


def step_fingerprint(previous: str, step: StepDefinition) -> str:
    payload = canonical_json(
        {
            "previous": previous,
            "name": step.name,
            "function": step.function,
            "arguments": step.to_config()["arguments"],
        }
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def queue_fingerprints(queue: Queue) -> list[str]:
    out: list[str] = []
    previous = f"queue:{queue.name}"
    for step in queue.steps:
        previous = step_fingerprint(previous, step)
        out.append(previous)
    return out


class PipelineExecutor:
    def __init__(
        self,
        cache: ArtifactCache,
        registry: StepRegistry | None = None,
        backend: ExecutionBackend | None = None,
    ) -> None:
        self.cache = cache
        self.registry = registry if registry is not None else STEP_REGISTRY
        self.backend = backend

    def execute(
        self,
        pipeline: Pipeline,
        queue: str | Sequence[str] | None = None,
        samples: str | Sequence[str] | None = None,
        remove_cache_first: bool = False,
        parallel: bool = False,
        workers: int | None = None,
    ) -> ExecutionReport:
        # Structural problems are fatal and must surface before any step runs.
        pipeline.validate()
        queues = pipeline.select_queues(queue)
        selected = pipeline.select_samples(samples)
        experiment = pipeline.experiment

        if remove_cache_first:
            self.cache.invalidate(experiment)
        self.cache.save_pipeline(experiment, pipeline.describe())

        report = ExecutionReport(experiment=experiment)
        tasks = [partial(self.run_unit, experiment, q, s) for q in queues for s in selected]
        backend = self._select_backend(parallel, workers)
        logger.info(
            "executing experiment '%s': %d queue(s) x %d sample(s) on %s backend",
            experiment,
            len(queues),
            len(selected),
            getattr(backend, "name", type(backend).__name__),
        )
        for outcomes in backend.run(tasks):
            report.merge(outcomes)
        report.finished_at_utc = now_utc()
        logger.info("experiment '%s' finished: %s", experiment, report.counts())
        return report

    def _select_backend(self, parallel: bool, workers: int | None) -> ExecutionBackend:
        if not parallel:
            return SerialBackend()
        if self.backend is not None:
            return self.backend
        return make_backend("thread", workers=workers)

    def run_unit(self, experiment: str, queue: Queue, sample: Sample) -> list[StepOutcome]:
        """Run one queue for one sample and return an outcome for every step."""
        outcomes: list[StepOutcome] = []
        fingerprints = queue_fingerprints(queue)
        artifacts: dict[str, Any] = {}
        reusable = True
        failed = False

        for index, step in enumerate(queue.steps):
            if failed:
                outcomes.append(
                    StepOutcome(queue.name, step.name, sample.name, StepStatus.NOT_REACHED, step_index=index)
                )
                continue

            key = CacheKey(experiment, queue.name, step.name, sample.name)
            fingerprint = fingerprints[index]
            started = time.perf_counter()

            if reusable:
                entry = self.cache.get(key)
                if (
                    entry is not None
                    and entry.ok
                    and entry.fingerprint == fingerprint
                    and all(ref in artifacts for ref in step.step_refs())
                ):
                    artifacts[step.name] = entry.artifact
                    logger.debug("reused %s/%s for sample '%s'", queue.name, step.name, sample.name)
                    outcomes.append(
                        StepOutcome(
                            queue.name,
                            step.name,
                            sample.name,
                            StepStatus.SUCCEEDED_REUSED,
                            step_index=index,
                            duration_s=time.perf_counter() - started,
                        )
                    )
                    continue
            # Everything downstream of a recomputed step is recomputed too.
            reusable = False

            try:
                artifact = self.invoke_step(experiment, queue.name, step, sample, known=artifacts)
                self.cache.put(key, CacheEntry.success(artifact, fingerprint))
            except StepError as exc:
                self.cache.put(key, CacheEntry.failed(exc, fingerprint))
                failed = True
                logger.warning(
                    "step %s/%s failed for sample '%s': [%s] %s",
                    queue.name,
                    step.name,
                    sample.name,
                    exc.kind,
                    exc.message,
                )
                outcomes.append(
                    StepOutcome(
                        queue.name,
                        step.name,
                        sample.name,
                        StepStatus.FAILED,
                        step_index=index,
                        error=exc.to_dict(),
                        duration_s=time.perf_counter() - started,
                    )
                )
                continue

            artifacts[step.name] = artifact
            elapsed = time.perf_counter() - started
            logger.info("ran %s/%s for sample '%s' in %.3fs", queue.name, step.name, sample.name, elapsed)
            outcomes.append(
                StepOutcome(
                    queue.name,
                    step.name,
                    sample.name,
                    StepStatus.SUCCEEDED_NEW,
                    step_index=index,
                    duration_s=elapsed,
                )
            )
        return outcomes

    def invoke_step(
        self,
        experiment: str,
        queue_name: str,
        step: StepDefinition,
        sample: Sample,
        known: Mapping[str, Any] | None = None,
    ) -> Any:
        """Resolve producers, look up and validate the function, then call it.

        Producer artifacts come from ``known`` (results of the current unit) or
        else from the cache; a producer without a ``Success`` entry raises
        :class:`UnresolvedDependency` and the step function is never called.
        """
        producers: dict[str, Any] = {}
        missing: list[str] = []
        for ref in step.step_refs():
            if known is not None and ref in known:
                producers[ref] = known[ref]
                continue
            entry = self.cache.get(CacheKey(experiment, queue_name, ref, sample.name))
            if entry is None or not entry.ok:
                missing.append(ref)
            else:
                producers[ref] = entry.artifact
        if missing:
            raise UnresolvedDependency(step.name, missing)

        fn = self.registry.resolve(step.function)
        kwargs = step.resolve_arguments(ResolveContext(sample=sample, artifacts=producers))
        self.registry.validate_arguments(fn, kwargs, function_id=step.function)
        try:
            result = fn(**kwargs)
        except StepError:
            raise
        except Exception as exc:
            raise InvocationFailure.from_exception(exc) from exc
        if isinstance(result, StepFailure):
            raise InvocationFailure(result.detail)
        return result


def execute(
    pipeline: Pipeline,
    cache: ArtifactCache,
    *,
    registry: StepRegistry | None = None,
    backend: ExecutionBackend | None = None,
    queue: str | Sequence[str] | None = None,
    samples: str | Sequence[str] | None = None,
    remove_cache_first: bool = False,
    parallel: bool = False,
    workers: int | None = None,
) -> ExecutionReport:
    executor = PipelineExecutor(cache=cache, registry=registry, backend=backend)
    return executor.execute(
        pipeline,
        queue=queue,
        samples=samples,
        remove_cache_first=remove_cache_first,
        parallel=parallel,
        workers=workers,
    )


__all__ = [
    "PipelineExecutor",
    "execute",
    "queue_fingerprints",
    "step_fingerprint",
]
