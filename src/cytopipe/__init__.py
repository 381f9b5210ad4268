"""Cached, sample-parallel execution of named processing queues."""

from cytopipe.errors import (
    ArgumentMismatch,
    ArtifactNotStorable,
    CacheError,
    DuplicateStepName,
    InvocationFailure,
    PipelineConfigError,
    StepError,
    UnknownFunction,
    UnresolvedDependency,
)
from cytopipe.pipeline import (
    CacheKey,
    ExecutionReport,
    FileArtifactCache,
    InMemoryArtifactCache,
    Pipeline,
    PipelineExecutor,
    Sample,
    StepDefinition,
    StepFailure,
    StepStatus,
    execute,
    run_pipeline,
)
from cytopipe.steps import STEP_REGISTRY, StepRegistry, register_step

__version__ = "0.1.0"

__all__ = [
    "ArgumentMismatch",
    "ArtifactNotStorable",
    "CacheError",
    "CacheKey",
    "DuplicateStepName",
    "ExecutionReport",
    "FileArtifactCache",
    "InMemoryArtifactCache",
    "InvocationFailure",
    "Pipeline",
    "PipelineConfigError",
    "PipelineExecutor",
    "STEP_REGISTRY",
    "Sample",
    "StepDefinition",
    "StepError",
    "StepFailure",
    "StepRegistry",
    "StepStatus",
    "UnknownFunction",
    "UnresolvedDependency",
    "execute",
    "register_step",
    "run_pipeline",
]
