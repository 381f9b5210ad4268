from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from cytopipe.config.loader import ConfigError
from cytopipe.core.io_utils import write_csv
from cytopipe.errors import CacheError, PipelineConfigError
from cytopipe.pipeline.cache import FileArtifactCache
from cytopipe.pipeline.inspection import CACHE_TABLE_FIELDS, cache_table
from cytopipe.pipeline.orchestrator import load_run_config, open_cache, run_pipeline
from cytopipe.pipeline.utils import report_summary
from cytopipe.steps.registry import STEP_REGISTRY

EXIT_OK = 0
EXIT_STEP_FAILURES = 1
EXIT_FATAL = 2


def _run_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "queues": getattr(args, "queue", None),
        "samples": getattr(args, "samples", None),
        "remove_cache_first": True if getattr(args, "remove_cache", False) else None,
        "parallel": getattr(args, "parallel", None),
        "workers": getattr(args, "workers", None),
        "backend": getattr(args, "backend", None),
        "cache_dir": getattr(args, "cache_dir", None),
        "output_dir": getattr(args, "output_dir", None),
    }


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _format_table(rows: list[dict[str, Any]], columns: list[str]) -> str:
    widths = {col: max([len(col)] + [len(str(row.get(col, ""))) for row in rows]) for col in columns}
    lines = ["  ".join(col.ljust(widths[col]) for col in columns)]
    lines.append("  ".join("-" * widths[col] for col in columns))
    for row in rows:
        lines.append("  ".join(str(row.get(col, "")).ljust(widths[col]) for col in columns))
    return "\n".join(lines)


def cmd_run(args: argparse.Namespace) -> int:
    try:
        result = run_pipeline(config_path=args.config, overrides=_run_overrides(args))
    except (ConfigError, PipelineConfigError, CacheError) as exc:
        print(f"error: {exc}")
        return EXIT_FATAL
    summary = report_summary(result.report)
    counts = summary["counts"]
    print(f"experiment: {summary['experiment']}")
    print(
        "steps: "
        + ", ".join(f"{status}={count}" for status, count in counts.items())
    )
    for failure in summary["failures"]:
        error = failure["error"] or {}
        print(
            f"FAILED {failure['queue']}/{failure['step']} sample={failure['sample']}: "
            f"[{error.get('kind', '')}] {error.get('message', '')}"
        )
    print(f"report written: {result.paths['report_json']}")
    return EXIT_OK if result.ok else EXIT_STEP_FAILURES


def cmd_describe(args: argparse.Namespace) -> int:
    try:
        run_cfg = load_run_config(args.config)
    except (ConfigError, PipelineConfigError) as exc:
        print(f"error: {exc}")
        return EXIT_FATAL
    _print_json(run_cfg.pipeline.describe())
    return EXIT_OK


def cmd_inspect(args: argparse.Namespace) -> int:
    try:
        run_cfg = load_run_config(args.config, {"cache_dir": getattr(args, "cache_dir", None)})
        cache = open_cache(run_cfg)
        rows = cache_table(cache, run_cfg.pipeline, queue=args.queue, step=args.step)
    except (ConfigError, PipelineConfigError, CacheError) as exc:
        print(f"error: {exc}")
        return EXIT_FATAL
    columns = ["queue", "step", "sample", "status", "error_kind", "created_at_utc"]
    print(_format_table(rows, columns))
    if getattr(args, "csv", None):
        path = write_csv(Path(args.csv), rows, CACHE_TABLE_FIELDS)
        print(f"cache table written: {path}")
    return EXIT_OK


def cmd_clear(args: argparse.Namespace) -> int:
    try:
        run_cfg = load_run_config(args.config, {"cache_dir": getattr(args, "cache_dir", None)})
        removed = open_cache(run_cfg).invalidate(run_cfg.pipeline.experiment)
    except (ConfigError, PipelineConfigError, CacheError) as exc:
        print(f"error: {exc}")
        return EXIT_FATAL
    print(f"removed {removed} cache entries for experiment '{run_cfg.pipeline.experiment}'")
    return EXIT_OK


def cmd_experiments(args: argparse.Namespace) -> int:
    try:
        names = FileArtifactCache(args.cache_dir).experiments()
    except CacheError as exc:
        print(f"error: {exc}")
        return EXIT_FATAL
    if not names:
        print(f"no cached experiments under {args.cache_dir}")
    for name in names:
        print(name)
    return EXIT_OK


def cmd_steps(args: argparse.Namespace) -> int:
    if getattr(args, "config", None):
        try:
            load_run_config(args.config)
        except (ConfigError, PipelineConfigError) as exc:
            print(f"error: {exc}")
            return EXIT_FATAL
    for name in STEP_REGISTRY.list():
        print(name)
    return EXIT_OK
