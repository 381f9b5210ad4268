from cytopipe.core.io_utils import (
    atomic_write_bytes,
    canonical_json,
    load_json,
    now_utc,
    path_component,
    sanitize_name,
    write_csv,
    write_json,
)
from cytopipe.core.logging import configure_logging, get_logger

__all__ = [
    "atomic_write_bytes",
    "canonical_json",
    "configure_logging",
    "get_logger",
    "load_json",
    "now_utc",
    "path_component",
    "sanitize_name",
    "write_csv",
    "write_json",
]
