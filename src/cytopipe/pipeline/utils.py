from __future__ import annotations

from pathlib import Path
from typing import Any

from cytopipe.core.io_utils import now_utc, sanitize_name, write_csv, write_json
from cytopipe.pipeline.model import Pipeline
from cytopipe.pipeline.types import ExecutionReport

REPORT_FIELDS = ["queue", "sample", "step_index", "step", "status", "error_kind", "error_message", "duration_s"]


def ensure_run_dir(output_root: Path, experiment: str) -> Path:
    run_dir = Path(output_root) / sanitize_name(experiment)
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def write_report(run_dir: Path, pipeline: Pipeline, report: ExecutionReport) -> dict[str, Path]:
    paths = {
        "report_json": write_json(run_dir / "report.json", report.to_dict()),
        "report_csv": write_csv(run_dir / "report.csv", report.to_rows(), REPORT_FIELDS),
        "pipeline_json": write_json(run_dir / "pipeline.json", pipeline.describe()),
    }
    return paths


def report_summary(report: ExecutionReport) -> dict[str, Any]:
    return {
        "experiment": report.experiment,
        "ok": report.ok,
        "counts": report.counts(),
        "failures": [
            {
                "queue": outcome.queue,
                "step": outcome.step,
                "sample": outcome.sample,
                "error": outcome.error,
            }
            for outcome in report.failures()
        ],
        "written_at_utc": now_utc(),
    }
