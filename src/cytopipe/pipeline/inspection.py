"""Read-only queries over cached results, for plotting and comparison tools.

An entry counts as current only when the executor would reuse it: it is a
success, its fingerprint matches the step's current definition, and every
earlier step of the same (queue, sample) is current too. Successes that fail
this test are reported as ``stale``.
"""

from __future__ import annotations

from typing import Any

from cytopipe.errors import PipelineConfigError
from cytopipe.pipeline.cache import ArtifactCache
from cytopipe.pipeline.executor import queue_fingerprints
from cytopipe.pipeline.model import Pipeline
from cytopipe.pipeline.types import CacheEntry, CacheKey, EntryStatus, Queue

CACHE_TABLE_FIELDS = ["queue", "step", "step_index", "sample", "status", "error_kind", "error_message", "created_at_utc"]
STALE = "stale"
MISSING = "missing"


def get_artifact(cache: ArtifactCache, experiment: str, queue: str, step: str, sample: str) -> Any:
    entry = cache.get(CacheKey(experiment, queue, step, sample))
    if entry is None:
        raise LookupError(f"no cached result for {queue}/{step} sample '{sample}' in experiment '{experiment}'")
    if not entry.ok:
        message = (entry.error or {}).get("message", "unknown error")
        raise LookupError(f"cached result for {queue}/{step} sample '{sample}' is a failure: {message}")
    return entry.artifact


def _unit_entries(
    cache: ArtifactCache,
    experiment: str,
    queue: Queue,
    sample: str,
    until: int | None = None,
) -> list[tuple[CacheEntry | None, str]]:
    """Entries of one (queue, sample) in step order, each with its display status."""
    fingerprints = queue_fingerprints(queue)
    last = len(queue.steps) if until is None else until + 1
    current = True
    out: list[tuple[CacheEntry | None, str]] = []
    for index, definition in enumerate(queue.steps[:last]):
        entry = cache.get(CacheKey(experiment, queue.name, definition.name, sample))
        if entry is None:
            status = MISSING
        elif entry.ok and not (current and entry.fingerprint == fingerprints[index]):
            status = STALE
        else:
            status = entry.status.value
        current = current and status == EntryStatus.SUCCESS.value
        out.append((entry, status))
    return out


def collect_artifacts(cache: ArtifactCache, pipeline: Pipeline, queue: str, step: str) -> dict[str, Any]:
    """Current successful artifacts of one step across all samples, in sample order."""
    if step not in pipeline.list_steps(queue):
        raise PipelineConfigError(f"queue '{queue}' has no step named '{step}'")
    target = pipeline.queue(queue)
    index = target.index(step)
    out: dict[str, Any] = {}
    for sample in pipeline.sample_names():
        entry, status = _unit_entries(cache, pipeline.experiment, target, sample, until=index)[index]
        if entry is not None and status == EntryStatus.SUCCESS.value:
            out[sample] = entry.artifact
    return out


def cache_table(
    cache: ArtifactCache,
    pipeline: Pipeline,
    queue: str | None = None,
    step: str | None = None,
) -> list[dict[str, Any]]:
    """One row per (queue, step, sample) declared by the pipeline.

    Declared keys without a cache entry are listed with status ``missing``;
    successes the next run would recompute are listed as ``stale``.
    """
    rows: list[dict[str, Any]] = []
    for target in pipeline.select_queues(queue):
        units = {sample: _unit_entries(cache, pipeline.experiment, target, sample) for sample in pipeline.sample_names()}
        for index, definition in enumerate(target.steps):
            if step is not None and definition.name != step:
                continue
            for sample, entries in units.items():
                entry, status = entries[index]
                error = (entry.error or {}) if entry is not None else {}
                rows.append(
                    {
                        "queue": target.name,
                        "step": definition.name,
                        "step_index": index,
                        "sample": sample,
                        "status": status,
                        "error_kind": str(error.get("kind", "")),
                        "error_message": str(error.get("message", "")),
                        "created_at_utc": "" if entry is None else entry.created_at_utc,
                    }
                )
    return rows


def restore_pipeline(cache: ArtifactCache, experiment: str) -> Pipeline:
    payload = cache.load_pipeline(experiment)
    if payload is None:
        raise LookupError(f"no pipeline description cached for experiment '{experiment}'")
    return Pipeline.from_description(payload)
