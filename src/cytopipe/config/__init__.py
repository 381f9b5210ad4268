"""Configuration loading and normalization helpers."""

from cytopipe.config.loader import ConfigError, load_config
from cytopipe.config.schema import (
    PipelineRunConfig,
    RunOptions,
    build_pipeline,
    build_pipeline_run_config,
    build_run_options,
)

__all__ = [
    "ConfigError",
    "PipelineRunConfig",
    "RunOptions",
    "build_pipeline",
    "build_pipeline_run_config",
    "build_run_options",
    "load_config",
]
