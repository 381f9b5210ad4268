"""Artifact caches keyed by ``(experiment, queue, step, sample)``.

:class:`InMemoryArtifactCache` lives for one process and suits tests.
:class:`FileArtifactCache` persists entries so that long pipelines can be
resumed across processes without recomputing successful steps.

On-disk layout of :class:`FileArtifactCache`::

    <root>/<experiment>.lock
    <root>/<experiment>/catalog.json
    <root>/<experiment>/pipeline.json
    <root>/<experiment>/<queue>/<step>/<sample>.joblib

Every path component is sanitised and suffixed with a short hash of the raw
name. The entry file is the source of truth for :meth:`FileArtifactCache.get`;
the catalog is an index for listing. Entry files are written atomically
outside any lock. Catalog updates re-read the file on disk and are serialised
across threads and processes by an exclusive ``flock`` on the lock file.
"""

from __future__ import annotations

import copy
import fcntl
import io
import json
import os
import pickle
import shutil
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

import joblib

from cytopipe.core.io_utils import atomic_write_bytes, load_json, path_component, write_json
from cytopipe.core.logging import get_logger
from cytopipe.errors import ArtifactNotStorable, CacheError
from cytopipe.pipeline.types import CacheEntry, CacheKey, EntryStatus

logger = get_logger(__name__)

CATALOG_FILE = "catalog.json"
PIPELINE_FILE = "pipeline.json"
CATALOG_SCHEMA_VERSION = "2"
ENTRY_SUFFIX = ".joblib"
LOCK_SUFFIX = ".lock"
COMPRESS_LEVEL = 3

# Errors raised by joblib/pickle when an entry file holds garbage or a class
# that no longer imports; such entries are recomputed.
_UNREADABLE_ENTRY_ERRORS = (
    pickle.UnpicklingError,
    EOFError,
    AttributeError,
    ImportError,
    IndexError,
    KeyError,
    ValueError,
)


class ArtifactCache(Protocol):
    def get(self, key: CacheKey) -> CacheEntry | None:
        ...

    def put(self, key: CacheKey, entry: CacheEntry) -> None:
        ...

    def invalidate(self, experiment: str) -> int:
        ...

    def keys(self, experiment: str) -> list[CacheKey]:
        ...

    def experiments(self) -> list[str]:
        ...

    def save_pipeline(self, experiment: str, payload: dict[str, Any]) -> None:
        ...

    def load_pipeline(self, experiment: str) -> dict[str, Any] | None:
        ...


class InMemoryArtifactCache:
    """Process-local cache.

    Entries are deep-copied on the way in and out, so a step that mutates its
    input in place cannot alter the cached result of its producer.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._pipelines: dict[str, dict[str, Any]] = {}

    def get(self, key: CacheKey) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(CacheKey(*key))
        return None if entry is None else copy.deepcopy(entry)

    def put(self, key: CacheKey, entry: CacheEntry) -> None:
        key = CacheKey(*key)
        try:
            stored = copy.deepcopy(entry)
        except (TypeError, copy.Error, pickle.PicklingError) as exc:
            raise ArtifactNotStorable(key.step, str(exc)) from exc
        with self._lock:
            self._entries[key] = stored

    def invalidate(self, experiment: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.experiment == experiment]
            for key in doomed:
                del self._entries[key]
            self._pipelines.pop(experiment, None)
        return len(doomed)

    def keys(self, experiment: str) -> list[CacheKey]:
        with self._lock:
            return [key for key in self._entries if key.experiment == experiment]

    def experiments(self) -> list[str]:
        with self._lock:
            names = {key.experiment for key in self._entries} | set(self._pipelines)
        return sorted(names)

    def save_pipeline(self, experiment: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._pipelines[experiment] = json.loads(json.dumps(payload, default=str))

    def load_pipeline(self, experiment: str) -> dict[str, Any] | None:
        with self._lock:
            payload = self._pipelines.get(experiment)
        return None if payload is None else dict(payload)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _key_id(key: CacheKey) -> str:
    return json.dumps([key.queue, key.step, key.sample])


def _serialize_entry(key: CacheKey, entry: CacheEntry) -> bytes:
    buf = io.BytesIO()
    try:
        joblib.dump(entry, buf, compress=COMPRESS_LEVEL)
    except (pickle.PicklingError, TypeError, AttributeError) as exc:
        raise ArtifactNotStorable(key.step, str(exc)) from exc
    return buf.getvalue()


class FileArtifactCache:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._lock = threading.Lock()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheError(f"cache root is not writable: {self.root}") from exc

    def __getstate__(self) -> dict[str, Any]:
        return {"root": str(self.root)}

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.__init__(state["root"])  # type: ignore[misc]

    def experiment_dir(self, experiment: str) -> Path:
        return self.root / path_component(experiment)

    def entry_path(self, key: CacheKey) -> Path:
        return (
            self.experiment_dir(key.experiment)
            / path_component(key.queue)
            / path_component(key.step)
            / f"{path_component(key.sample)}{ENTRY_SUFFIX}"
        )

    @contextmanager
    def _catalog_lock(self, experiment: str) -> Iterator[None]:
        lock_path = self.root / f"{path_component(experiment)}{LOCK_SUFFIX}"
        with self._lock:
            try:
                fd = os.open(lock_path, os.O_CREAT | os.O_RDWR)
            except OSError as exc:
                raise CacheError(f"cache lock is not writable: {lock_path}") from exc
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
            except OSError as exc:
                os.close(fd)
                raise CacheError(f"cache lock could not be acquired: {lock_path}") from exc
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                os.close(fd)

    def _read_catalog(self, experiment: str) -> dict[str, dict[str, Any]]:
        path = self.experiment_dir(experiment) / CATALOG_FILE
        if not path.is_file():
            return {}
        try:
            payload = load_json(path)
        except (OSError, ValueError) as exc:
            raise CacheError(f"cache catalog is unreadable: {path}") from exc
        entries = payload.get("entries", {})
        if not isinstance(entries, dict):
            return {}
        return {str(k): dict(v) for k, v in entries.items()}

    def _write_catalog(self, experiment: str, entries: dict[str, dict[str, Any]]) -> None:
        payload = {
            "schema_version": CATALOG_SCHEMA_VERSION,
            "experiment": experiment,
            "entries": entries,
        }
        data = json.dumps(payload, indent=2).encode("utf-8")
        try:
            atomic_write_bytes(self.experiment_dir(experiment) / CATALOG_FILE, data)
        except OSError as exc:
            raise CacheError(f"cache catalog is not writable for experiment '{experiment}'") from exc

    def get(self, key: CacheKey) -> CacheEntry | None:
        key = CacheKey(*key)
        path = self.entry_path(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheError(f"cache entry is not readable: {path}") from exc
        try:
            entry = joblib.load(io.BytesIO(data))
        except _UNREADABLE_ENTRY_ERRORS as exc:
            logger.warning("cache entry is unreadable and will be recomputed: %s (%s)", path, exc)
            return None
        if not isinstance(entry, CacheEntry):
            logger.warning("cache entry has unexpected type %s: %s", type(entry).__name__, path)
            return None
        return entry

    def put(self, key: CacheKey, entry: CacheEntry) -> None:
        key = CacheKey(*key)
        data = _serialize_entry(key, entry)
        path = self.entry_path(key)
        try:
            atomic_write_bytes(path, data)
        except OSError as exc:
            raise CacheError(f"cache entry is not writable: {path}") from exc
        record = {
            "queue": key.queue,
            "step": key.step,
            "sample": key.sample,
            "status": entry.status.value,
            "fingerprint": entry.fingerprint,
            "created_at_utc": entry.created_at_utc,
            "path": str(path.relative_to(self.root)),
        }
        with self._catalog_lock(key.experiment):
            # Merge into the catalog as it is on disk now; other writers may
            # have added records since this instance last looked.
            entries = self._read_catalog(key.experiment)
            entries[_key_id(key)] = record
            self._write_catalog(key.experiment, entries)

    def invalidate(self, experiment: str) -> int:
        target = self.experiment_dir(experiment)
        with self._catalog_lock(experiment):
            removed = sum(1 for _ in target.rglob(f"*{ENTRY_SUFFIX}")) if target.exists() else 0
            try:
                if target.exists():
                    shutil.rmtree(target)
            except OSError as exc:
                raise CacheError(f"cache for experiment '{experiment}' could not be removed: {target}") from exc
        logger.info("invalidated %d cache entries for experiment '%s'", removed, experiment)
        return removed

    def keys(self, experiment: str) -> list[CacheKey]:
        records = self._read_catalog(experiment).values()
        return [
            CacheKey(experiment, str(record["queue"]), str(record["step"]), str(record["sample"]))
            for record in records
        ]

    def status_index(self, experiment: str) -> dict[CacheKey, EntryStatus]:
        """Entry statuses straight from the catalog, without loading artifacts."""
        return {
            CacheKey(experiment, str(r["queue"]), str(r["step"]), str(r["sample"])): EntryStatus(r["status"])
            for r in self._read_catalog(experiment).values()
        }

    def experiments(self) -> list[str]:
        names: list[str] = []
        for catalog_path in sorted(self.root.glob(f"*/{CATALOG_FILE}")):
            try:
                payload = load_json(catalog_path)
            except (OSError, ValueError):
                logger.warning("skipping unreadable cache catalog: %s", catalog_path)
                continue
            name = payload.get("experiment")
            if isinstance(name, str) and name:
                names.append(name)
        for pipeline_path in sorted(self.root.glob(f"*/{PIPELINE_FILE}")):
            try:
                name = load_json(pipeline_path).get("experiment")
            except (OSError, ValueError):
                logger.warning("skipping unreadable pipeline description: %s", pipeline_path)
                continue
            if isinstance(name, str) and name and name not in names:
                names.append(name)
        return sorted(names)

    def save_pipeline(self, experiment: str, payload: dict[str, Any]) -> None:
        try:
            write_json(self.experiment_dir(experiment) / PIPELINE_FILE, payload)
        except OSError as exc:
            raise CacheError(f"pipeline description is not writable for experiment '{experiment}'") from exc

    def load_pipeline(self, experiment: str) -> dict[str, Any] | None:
        path = self.experiment_dir(experiment) / PIPELINE_FILE
        if not path.is_file():
            return None
        try:
            return load_json(path)
        except (OSError, ValueError) as exc:
            raise CacheError(f"pipeline description is unreadable: {path}") from exc
