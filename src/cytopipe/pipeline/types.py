from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple

import numpy as np

from cytopipe.core.io_utils import now_utc
from cytopipe.errors import PipelineConfigError, StepError

REF_KEY = "$ref"
SAMPLE_KEY = "$sample"
SAMPLE_FIELDS = ("name", "path", "metadata")
_LITERAL_TYPES = (bool, int, float, str, bytes, bytearray, np.ndarray, np.generic)


@dataclass(frozen=True)
class Sample:
    name: str
    path: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_config(cls, raw: object) -> "Sample":
        if isinstance(raw, Sample):
            return raw
        if isinstance(raw, (str, Path)):
            text = str(raw)
            return cls(name=Path(text).stem or text, path=text)
        if isinstance(raw, Mapping):
            name = raw.get("name")
            path = raw.get("path")
            if not name and not path:
                raise PipelineConfigError(f"sample entry needs 'name' or 'path': {dict(raw)}")
            metadata = raw.get("metadata", {})
            if not isinstance(metadata, Mapping):
                raise PipelineConfigError(f"sample metadata must be a mapping: {dict(raw)}")
            return cls(
                name=str(name) if name else Path(str(path)).stem,
                path=None if path is None else str(path),
                metadata={str(k): v for k, v in metadata.items()},
            )
        raise PipelineConfigError(f"unsupported sample entry: {raw!r}")

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "path": self.path, "metadata": dict(self.metadata)}


@dataclass(frozen=True)
class ResolveContext:
    sample: Sample
    artifacts: Mapping[str, Any]


class ArgValue:
    """A declared step argument.

    Variants: :class:`LiteralArg`, :class:`ListArg`, :class:`MappingArg`,
    :class:`StepRef`, :class:`SampleRef`. Producer references are discoverable
    through :meth:`step_refs` without running anything.
    """

    def resolve(self, context: ResolveContext) -> Any:
        raise NotImplementedError

    def step_refs(self) -> Iterator[str]:
        return iter(())

    def to_config(self) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class LiteralArg(ArgValue):
    value: Any = None

    def resolve(self, context: ResolveContext) -> Any:
        return self.value

    def to_config(self) -> Any:
        return self.value


@dataclass(frozen=True)
class ListArg(ArgValue):
    items: tuple[ArgValue, ...] = ()

    def resolve(self, context: ResolveContext) -> list[Any]:
        return [item.resolve(context) for item in self.items]

    def step_refs(self) -> Iterator[str]:
        for item in self.items:
            yield from item.step_refs()

    def to_config(self) -> list[Any]:
        return [item.to_config() for item in self.items]


@dataclass(frozen=True)
class MappingArg(ArgValue):
    items: dict[str, ArgValue] = field(default_factory=dict)

    def resolve(self, context: ResolveContext) -> dict[str, Any]:
        return {key: value.resolve(context) for key, value in self.items.items()}

    def step_refs(self) -> Iterator[str]:
        for value in self.items.values():
            yield from value.step_refs()

    def to_config(self) -> dict[str, Any]:
        return {key: value.to_config() for key, value in self.items.items()}


@dataclass(frozen=True)
class StepRef(ArgValue):
    step: str

    def resolve(self, context: ResolveContext) -> Any:
        # Missing producers are detected by the executor before resolution.
        return context.artifacts[self.step]

    def step_refs(self) -> Iterator[str]:
        yield self.step

    def to_config(self) -> dict[str, str]:
        return {REF_KEY: self.step}


@dataclass(frozen=True)
class SampleRef(ArgValue):
    attribute: str = "path"

    def resolve(self, context: ResolveContext) -> Any:
        if self.attribute == "name":
            return context.sample.name
        if self.attribute == "metadata":
            return dict(context.sample.metadata)
        return context.sample.path

    def to_config(self) -> dict[str, str]:
        return {SAMPLE_KEY: self.attribute}


def parse_argument(raw: object) -> ArgValue:
    if isinstance(raw, ArgValue):
        return raw
    if isinstance(raw, Mapping):
        keys = set(raw.keys())
        if keys == {REF_KEY}:
            target = raw[REF_KEY]
            if not isinstance(target, str) or not target:
                raise PipelineConfigError(f"'{REF_KEY}' must name a step: {dict(raw)}")
            return StepRef(step=target)
        if keys == {SAMPLE_KEY}:
            sample_field = str(raw[SAMPLE_KEY])
            if sample_field not in SAMPLE_FIELDS:
                raise PipelineConfigError(
                    f"'{SAMPLE_KEY}' must be one of {list(SAMPLE_FIELDS)}, got '{sample_field}'"
                )
            return SampleRef(attribute=sample_field)
        return MappingArg(items={str(key): parse_argument(value) for key, value in raw.items()})
    if isinstance(raw, (list, tuple)):
        return ListArg(items=tuple(parse_argument(item) for item in raw))
    if isinstance(raw, Path):
        return LiteralArg(value=str(raw))
    if isinstance(raw, np.ndarray) and raw.dtype.hasobject:
        raise PipelineConfigError("array arguments must have a numeric or string dtype, not object")
    if raw is None or isinstance(raw, _LITERAL_TYPES):
        return LiteralArg(value=raw)
    # Anything else has no stable content form to fingerprint.
    raise PipelineConfigError(
        f"unsupported argument value of type {type(raw).__name__}; "
        "use JSON-like values, numpy arrays or bytes"
    )


@dataclass(frozen=True)
class StepDefinition:
    name: str
    function: str
    arguments: dict[str, ArgValue] = field(default_factory=dict)

    @classmethod
    def create(cls, name: str, function: str, arguments: Mapping[str, Any] | None = None) -> "StepDefinition":
        if not name or not str(name).strip():
            raise PipelineConfigError("step name must be a non-empty string")
        if not function or not str(function).strip():
            raise PipelineConfigError(f"step '{name}' must declare a function")
        parsed = {str(key): parse_argument(value) for key, value in (arguments or {}).items()}
        return cls(name=str(name), function=str(function), arguments=parsed)

    @classmethod
    def from_config(cls, raw: object) -> "StepDefinition":
        if isinstance(raw, StepDefinition):
            return raw
        if not isinstance(raw, Mapping):
            raise PipelineConfigError(f"step entry must be a mapping: {raw!r}")
        arguments = raw.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise PipelineConfigError(f"step '{raw.get('name')}' arguments must be a mapping")
        return cls.create(str(raw.get("name") or ""), str(raw.get("function") or ""), arguments)

    def step_refs(self) -> list[str]:
        seen: list[str] = []
        for value in self.arguments.values():
            for ref in value.step_refs():
                if ref not in seen:
                    seen.append(ref)
        return seen

    def resolve_arguments(self, context: ResolveContext) -> dict[str, Any]:
        return {key: value.resolve(context) for key, value in self.arguments.items()}

    def to_config(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "function": self.function,
            "arguments": {key: value.to_config() for key, value in self.arguments.items()},
        }


@dataclass
class Queue:
    name: str
    steps: list[StepDefinition] = field(default_factory=list)

    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]

    def index(self, step_name: str) -> int:
        for position, step in enumerate(self.steps):
            if step.name == step_name:
                return position
        raise KeyError(f"queue '{self.name}' has no step named '{step_name}'")

    def __iter__(self) -> Iterator[StepDefinition]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)


class CacheKey(NamedTuple):
    experiment: str
    queue: str
    step: str
    sample: str


class EntryStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class CacheEntry:
    status: EntryStatus
    artifact: Any = None
    error: dict[str, Any] | None = None
    fingerprint: str = ""
    created_at_utc: str = field(default_factory=now_utc)

    @classmethod
    def success(cls, artifact: Any, fingerprint: str = "") -> "CacheEntry":
        return cls(status=EntryStatus.SUCCESS, artifact=artifact, fingerprint=fingerprint)

    @classmethod
    def failed(cls, error: StepError, fingerprint: str = "") -> "CacheEntry":
        return cls(status=EntryStatus.FAILED, error=error.to_dict(), fingerprint=fingerprint)

    @property
    def ok(self) -> bool:
        return self.status is EntryStatus.SUCCESS

    def summary(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "error": None if self.error is None else dict(self.error),
            "fingerprint": self.fingerprint,
            "created_at_utc": self.created_at_utc,
        }


@dataclass(frozen=True)
class StepFailure:
    """Return value a step function may use to report a domain error."""

    detail: str


class StepStatus(str, Enum):
    SUCCEEDED_NEW = "succeeded_new"
    SUCCEEDED_REUSED = "succeeded_reused"
    FAILED = "failed"
    NOT_REACHED = "not_reached"

    @property
    def succeeded(self) -> bool:
        return self in (StepStatus.SUCCEEDED_NEW, StepStatus.SUCCEEDED_REUSED)


@dataclass
class StepOutcome:
    queue: str
    step: str
    sample: str
    status: StepStatus
    step_index: int = 0
    error: dict[str, Any] | None = None
    duration_s: float = 0.0

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.queue, self.step, self.sample)

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue": self.queue,
            "step": self.step,
            "sample": self.sample,
            "step_index": self.step_index,
            "status": self.status.value,
            "error": None if self.error is None else dict(self.error),
            "duration_s": round(float(self.duration_s), 6),
        }


@dataclass
class ExecutionReport:
    experiment: str
    outcomes: dict[tuple[str, str, str], StepOutcome] = field(default_factory=dict)
    started_at_utc: str = field(default_factory=now_utc)
    finished_at_utc: str | None = None

    def add(self, outcome: StepOutcome) -> None:
        self.outcomes[outcome.key] = outcome

    def merge(self, outcomes: Iterable[StepOutcome]) -> None:
        for outcome in outcomes:
            self.add(outcome)

    def outcome(self, queue: str, step: str, sample: str) -> StepOutcome:
        try:
            return self.outcomes[(queue, step, sample)]
        except KeyError as exc:
            raise KeyError(f"no outcome recorded for queue={queue} step={step} sample={sample}") from exc

    def status(self, queue: str, step: str, sample: str) -> StepStatus:
        return self.outcome(queue, step, sample).status

    def failures(self) -> list[StepOutcome]:
        return [outcome for outcome in self.ordered() if outcome.status is StepStatus.FAILED]

    def counts(self) -> dict[str, int]:
        counter = Counter(outcome.status.value for outcome in self.outcomes.values())
        return {status.value: int(counter.get(status.value, 0)) for status in StepStatus}

    def select(
        self,
        *,
        queue: str | None = None,
        sample: str | None = None,
        statuses: Sequence[StepStatus] | None = None,
    ) -> list[StepOutcome]:
        out = []
        for outcome in self.ordered():
            if queue is not None and outcome.queue != queue:
                continue
            if sample is not None and outcome.sample != sample:
                continue
            if statuses is not None and outcome.status not in statuses:
                continue
            out.append(outcome)
        return out

    @property
    def ok(self) -> bool:
        return all(outcome.status.succeeded for outcome in self.outcomes.values())

    def ordered(self) -> list[StepOutcome]:
        return sorted(self.outcomes.values(), key=lambda o: (o.queue, o.sample, o.step_index))

    def to_rows(self) -> list[dict[str, Any]]:
        rows = []
        for outcome in self.ordered():
            row = outcome.to_dict()
            error = row.pop("error")
            row["error_kind"] = "" if error is None else str(error.get("kind", ""))
            row["error_message"] = "" if error is None else str(error.get("message", ""))
            rows.append(row)
        return rows

    def to_dict(self) -> dict[str, Any]:
        return {
            "experiment": self.experiment,
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "ok": self.ok,
            "counts": self.counts(),
            "outcomes": [outcome.to_dict() for outcome in self.ordered()],
        }
