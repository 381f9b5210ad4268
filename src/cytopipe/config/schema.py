from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from cytopipe.config.loader import ConfigError
from cytopipe.errors import PipelineConfigError
from cytopipe.pipeline.model import Pipeline

DEFAULT_CACHE_DIR = ".cytopipe_cache"
DEFAULT_OUTPUT_DIR = "runs"
DEFAULT_BACKEND = "thread"


@dataclass(frozen=True)
class RunOptions:
    cache_dir: str = DEFAULT_CACHE_DIR
    output_dir: str = DEFAULT_OUTPUT_DIR
    queues: tuple[str, ...] | None = None
    samples: tuple[str, ...] | None = None
    remove_cache_first: bool = False
    parallel: bool = False
    workers: int | None = None
    backend: str = DEFAULT_BACKEND

    def to_dict(self) -> dict[str, Any]:
        return {
            "cache_dir": self.cache_dir,
            "output_dir": self.output_dir,
            "queues": None if self.queues is None else list(self.queues),
            "samples": None if self.samples is None else list(self.samples),
            "remove_cache_first": self.remove_cache_first,
            "parallel": self.parallel,
            "workers": self.workers,
            "backend": self.backend,
        }


@dataclass(frozen=True)
class PipelineRunConfig:
    config_path: Path | None
    pipeline: Pipeline
    options: RunOptions
    imports: list[str] = field(default_factory=list)


def _mapping(value: object) -> Mapping[str, Any]:
    if isinstance(value, Mapping):
        return value
    return {}


def _normalize_name_list(value: object) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        out = [part.strip() for part in value.split(",") if part.strip()]
        return tuple(out) or None
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        out = [str(item).strip() for item in value if str(item).strip()]
        return tuple(out) or None
    raise ConfigError(f"expected a name or list of names, got {value!r}")


def _as_bool(value: object, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "yes", "1", "false", "no", "0"}:
        return value.strip().lower() in {"true", "yes", "1"}
    if isinstance(value, int):
        return bool(value)
    raise ConfigError(f"run.{name} must be a boolean, got {value!r}")


def _as_workers(value: object) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"run.workers must be an integer, got {value!r}") from exc


def _resolve_sample(raw: object, base_dir: Path | None) -> object:
    if base_dir is None:
        return raw
    if isinstance(raw, str) and not Path(raw).is_absolute():
        return {"name": Path(raw).stem or raw, "path": str(base_dir / raw)}
    if isinstance(raw, Mapping) and isinstance(raw.get("path"), str) and not Path(raw["path"]).is_absolute():
        return {**dict(raw), "path": str(base_dir / raw["path"])}
    return raw


def _queue_entries(raw: object) -> list[tuple[str, list[Any]]]:
    """Accept ``{queue: [steps]}`` or ``[{name: queue, steps: [...]}, ...]``."""
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        out = []
        for name, steps in raw.items():
            if not isinstance(steps, list):
                raise ConfigError(f"queue '{name}' must be a list of step tables")
            out.append((str(name), steps))
        return out
    if isinstance(raw, list):
        out = []
        for index, entry in enumerate(raw):
            if not isinstance(entry, Mapping) or not entry.get("name"):
                raise ConfigError(f"queues[{index}] must be a mapping with a 'name'")
            steps = entry.get("steps", [])
            if not isinstance(steps, list):
                raise ConfigError(f"queues[{index}].steps must be a list")
            out.append((str(entry["name"]), steps))
        return out
    raise ConfigError("'queues' must be a mapping or a list")


def build_pipeline(payload: Mapping[str, Any], base_dir: str | Path | None = None) -> Pipeline:
    pipe_cfg = _mapping(payload.get("pipeline"))
    experiment = pipe_cfg.get("experiment", payload.get("experiment"))
    if not experiment:
        raise ConfigError("config must define pipeline.experiment")
    samples_raw = pipe_cfg.get("samples", payload.get("samples", []))
    if samples_raw is None:
        samples_raw = []
    if not isinstance(samples_raw, list):
        raise ConfigError("pipeline.samples must be a list")
    root = None if base_dir is None else Path(base_dir)
    try:
        pipeline = Pipeline(
            experiment=str(experiment),
            samples=[_resolve_sample(item, root) for item in samples_raw],
        )
        for queue_name, steps in _queue_entries(payload.get("queues")):
            pipeline.add_queue(queue_name)
            for step in steps:
                pipeline.add_step(queue_name, step)
    except PipelineConfigError as exc:
        raise ConfigError(str(exc)) from exc
    return pipeline


def build_run_options(payload: Mapping[str, Any], overrides: Mapping[str, Any] | None = None) -> RunOptions:
    run_cfg = _mapping(payload.get("run"))
    options = RunOptions(
        cache_dir=str(run_cfg.get("cache_dir", DEFAULT_CACHE_DIR)),
        output_dir=str(run_cfg.get("output_dir", DEFAULT_OUTPUT_DIR)),
        queues=_normalize_name_list(run_cfg.get("queues")),
        samples=_normalize_name_list(run_cfg.get("samples")),
        remove_cache_first=_as_bool(run_cfg.get("remove_cache_first", False), "remove_cache_first"),
        parallel=_as_bool(run_cfg.get("parallel", False), "parallel"),
        workers=_as_workers(run_cfg.get("workers")),
        backend=str(run_cfg.get("backend", DEFAULT_BACKEND)),
    )
    if overrides:
        patch: dict[str, Any] = {}
        for key, value in overrides.items():
            if value is None:
                continue
            if key in {"queues", "samples"}:
                patch[key] = _normalize_name_list(value)
            elif key in {"remove_cache_first", "parallel"}:
                patch[key] = _as_bool(value, key)
            elif key == "workers":
                patch[key] = _as_workers(value)
            elif key in {"cache_dir", "output_dir", "backend"}:
                patch[key] = str(value)
            else:
                raise ConfigError(f"unknown run option override: {key}")
        options = replace(options, **patch)
    if options.workers is not None and options.workers < 1:
        raise ConfigError(f"run.workers must be >= 1, got {options.workers}")
    return options


def build_pipeline_run_config(
    *,
    payload: Mapping[str, Any],
    config_path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> PipelineRunConfig:
    path = None if config_path is None else Path(config_path)
    base_dir = None if path is None else path.resolve().parent
    imports = _normalize_name_list(_mapping(payload.get("pipeline")).get("imports")) or ()
    return PipelineRunConfig(
        config_path=path,
        pipeline=build_pipeline(payload, base_dir=base_dir),
        options=build_run_options(payload, overrides),
        imports=list(imports),
    )
