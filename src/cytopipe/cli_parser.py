from __future__ import annotations

import argparse
from typing import Any

from cytopipe.cli_commands.pipeline import (
    cmd_clear,
    cmd_describe,
    cmd_experiments,
    cmd_inspect,
    cmd_run,
    cmd_steps,
)
from cytopipe.config.schema import DEFAULT_CACHE_DIR


def _set_command_handler(parser: argparse.ArgumentParser, handler: Any) -> None:
    parser.set_defaults(handler=handler)


def _add_verbose(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cytopipe", description="Run and inspect cached sample-processing pipelines.")
    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Execute pipeline queues, reusing cached steps.")
    describe = subparsers.add_parser("describe", help="Print the structure of the configured pipeline as JSON.")
    inspect_parser = subparsers.add_parser("inspect", help="Show cached status per queue, step and sample.")
    clear = subparsers.add_parser("clear", help="Remove all cache entries of the configured experiment.")
    experiments = subparsers.add_parser("experiments", help="List experiments present in a cache directory.")
    steps = subparsers.add_parser("steps", help="List registered step functions.")

    for sub, handler in (
        (run, cmd_run),
        (describe, cmd_describe),
        (inspect_parser, cmd_inspect),
        (clear, cmd_clear),
    ):
        sub.add_argument("--config", required=True, help="Path to TOML/YAML/JSON pipeline config.")
        _add_verbose(sub)
        _set_command_handler(sub, handler)

    run.add_argument("--queue", help="Comma-separated queue names to run (default: all).")
    run.add_argument("--samples", help="Comma-separated sample names to run (default: all).")
    run.add_argument(
        "--remove-cache",
        dest="remove_cache",
        action="store_true",
        help="Erase the experiment's cache before running.",
    )
    run.add_argument("--parallel", dest="parallel", action="store_true", help="Run samples in parallel.")
    run.add_argument("--no-parallel", dest="parallel", action="store_false", help="Run samples sequentially.")
    run.add_argument("--workers", type=int, help="Worker count for parallel execution.")
    run.add_argument("--backend", help="Execution backend: thread | serial | plugin:<module[:function]>")
    run.add_argument("--cache-dir", dest="cache_dir", help="Override run.cache_dir.")
    run.add_argument("--output-dir", dest="output_dir", help="Override run.output_dir.")
    run.set_defaults(parallel=None)

    for sub in (inspect_parser, clear):
        sub.add_argument("--cache-dir", dest="cache_dir", help="Override run.cache_dir.")
    inspect_parser.add_argument("--queue", help="Restrict to one queue.")
    inspect_parser.add_argument("--step", help="Restrict to one step.")
    inspect_parser.add_argument("--csv", help="Also write the table to this CSV path.")

    experiments.add_argument("--cache-dir", dest="cache_dir", default=DEFAULT_CACHE_DIR, help="Cache directory.")
    _add_verbose(experiments)
    _set_command_handler(experiments, cmd_experiments)

    steps.add_argument("--config", help="Optional config whose pipeline.imports are loaded first.")
    _add_verbose(steps)
    _set_command_handler(steps, cmd_steps)
    return parser
