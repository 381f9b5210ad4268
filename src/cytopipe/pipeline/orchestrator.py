from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cytopipe.config.loader import load_config
from cytopipe.config.schema import PipelineRunConfig, build_pipeline_run_config
from cytopipe.core.logging import get_logger
from cytopipe.pipeline.backends import make_backend
from cytopipe.pipeline.cache import ArtifactCache, FileArtifactCache
from cytopipe.pipeline.executor import PipelineExecutor
from cytopipe.pipeline.types import ExecutionReport
from cytopipe.pipeline.utils import ensure_run_dir, write_report
from cytopipe.steps.registry import StepRegistry, import_step_modules

logger = get_logger(__name__)


@dataclass
class PipelineRunResult:
    run_config: PipelineRunConfig
    report: ExecutionReport
    run_dir: Path
    paths: dict[str, Path] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.report.ok


def load_run_config(
    config_path: str | Path,
    overrides: Mapping[str, Any] | None = None,
) -> PipelineRunConfig:
    payload = load_config(config_path)
    run_cfg = build_pipeline_run_config(payload=payload, config_path=config_path, overrides=overrides)
    if run_cfg.imports:
        import_step_modules(run_cfg.imports)
    return run_cfg


def open_cache(run_cfg: PipelineRunConfig) -> FileArtifactCache:
    return FileArtifactCache(run_cfg.options.cache_dir)


def run_pipeline(
    *,
    config_path: str | Path,
    overrides: Mapping[str, Any] | None = None,
    registry: StepRegistry | None = None,
    cache: ArtifactCache | None = None,
) -> PipelineRunResult:
    run_cfg = load_run_config(config_path, overrides)
    options = run_cfg.options
    store = cache if cache is not None else open_cache(run_cfg)
    backend = make_backend(options.backend, workers=options.workers) if options.parallel else None

    executor = PipelineExecutor(cache=store, registry=registry, backend=backend)
    report = executor.execute(
        run_cfg.pipeline,
        queue=None if options.queues is None else list(options.queues),
        samples=None if options.samples is None else list(options.samples),
        remove_cache_first=options.remove_cache_first,
        parallel=options.parallel,
        workers=options.workers,
    )

    run_dir = ensure_run_dir(Path(options.output_dir), run_cfg.pipeline.experiment)
    paths = write_report(run_dir, run_cfg.pipeline, report)
    logger.info("report written to %s", paths["report_json"])
    return PipelineRunResult(run_config=run_cfg, report=report, run_dir=run_dir, paths=paths)
