"""Queue definitions, artifact caches and the sample-parallel executor."""

from cytopipe.pipeline.backends import (
    BACKEND_REGISTRY,
    ExecutionBackend,
    SerialBackend,
    ThreadPoolBackend,
    make_backend,
    register_backend,
)
from cytopipe.pipeline.cache import ArtifactCache, FileArtifactCache, InMemoryArtifactCache
from cytopipe.pipeline.executor import PipelineExecutor, execute, queue_fingerprints, step_fingerprint
from cytopipe.pipeline.inspection import cache_table, collect_artifacts, get_artifact, restore_pipeline
from cytopipe.pipeline.model import Pipeline
from cytopipe.pipeline.types import (
    ArgValue,
    CacheEntry,
    CacheKey,
    EntryStatus,
    ExecutionReport,
    ListArg,
    LiteralArg,
    MappingArg,
    Queue,
    Sample,
    SampleRef,
    StepDefinition,
    StepFailure,
    StepOutcome,
    StepRef,
    StepStatus,
    parse_argument,
)


def run_pipeline(*args: object, **kwargs: object) -> object:
    # Lazy import prevents circular import between config.schema and pipeline.orchestrator.
    from cytopipe.pipeline.orchestrator import run_pipeline as _run_pipeline

    return _run_pipeline(*args, **kwargs)


__all__ = [
    "ArgValue",
    "ArtifactCache",
    "BACKEND_REGISTRY",
    "CacheEntry",
    "CacheKey",
    "EntryStatus",
    "ExecutionBackend",
    "ExecutionReport",
    "FileArtifactCache",
    "InMemoryArtifactCache",
    "ListArg",
    "LiteralArg",
    "MappingArg",
    "Pipeline",
    "PipelineExecutor",
    "Queue",
    "Sample",
    "SampleRef",
    "SerialBackend",
    "StepDefinition",
    "StepFailure",
    "StepOutcome",
    "StepRef",
    "StepStatus",
    "ThreadPoolBackend",
    "cache_table",
    "collect_artifacts",
    "execute",
    "get_artifact",
    "make_backend",
    "parse_argument",
    "queue_fingerprints",
    "register_backend",
    "restore_pipeline",
    "run_pipeline",
    "step_fingerprint",
]
