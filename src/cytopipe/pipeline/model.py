from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from cytopipe.errors import DuplicateStepName, PipelineConfigError
from cytopipe.pipeline.types import Queue, Sample, StepDefinition

DESCRIPTION_SCHEMA_VERSION = "1"


class Pipeline:
    """Experiment identity, ordered samples and named queues of steps.

    The object is purely structural: it never runs anything and never touches
    a cache. Queues keep declaration order, which is also execution order.
    """

    def __init__(
        self,
        experiment: str,
        samples: Iterable[Sample | str | Mapping[str, Any]] = (),
        queues: Mapping[str, Iterable[StepDefinition | Mapping[str, Any]]] | None = None,
    ) -> None:
        name = str(experiment).strip() if experiment is not None else ""
        if not name:
            raise PipelineConfigError("experiment name must be a non-empty string")
        self._experiment = name
        self._samples: dict[str, Sample] = {}
        self._queues: dict[str, Queue] = {}
        for sample in samples:
            self.add_sample(sample)
        for queue_name, steps in (queues or {}).items():
            self.add_queue(queue_name)
            for step in steps:
                self.add_step(queue_name, step)

    @property
    def experiment(self) -> str:
        return self._experiment

    @property
    def samples(self) -> list[Sample]:
        return list(self._samples.values())

    def sample_names(self) -> list[str]:
        return list(self._samples.keys())

    def get_sample(self, name: str) -> Sample:
        try:
            return self._samples[name]
        except KeyError as exc:
            raise PipelineConfigError(
                f"unknown sample '{name}'; available={self.sample_names()}"
            ) from exc

    def add_sample(self, sample: Sample | str | Mapping[str, Any]) -> Sample:
        item = Sample.from_config(sample)
        if item.name in self._samples:
            raise PipelineConfigError(f"duplicate sample name '{item.name}'")
        self._samples[item.name] = item
        return item

    def add_queue(self, name: str) -> Queue:
        queue_name = str(name).strip()
        if not queue_name:
            raise PipelineConfigError("queue name must be a non-empty string")
        queue = self._queues.get(queue_name)
        if queue is None:
            queue = Queue(name=queue_name)
            self._queues[queue_name] = queue
        return queue

    def queue(self, name: str) -> Queue:
        try:
            return self._queues[name]
        except KeyError as exc:
            raise PipelineConfigError(f"unknown queue '{name}'; available={self.list_queues()}") from exc

    def add_step(self, queue: str, step: StepDefinition | Mapping[str, Any]) -> StepDefinition:
        definition = StepDefinition.from_config(step)
        target = self.add_queue(queue)
        if definition.name in target.step_names():
            raise DuplicateStepName(target.name, definition.name)
        target.steps.append(definition)
        return definition

    def remove_step(self, queue: str, name: str) -> StepDefinition:
        target = self.queue(queue)
        try:
            position = target.index(name)
        except KeyError as exc:
            raise PipelineConfigError(str(exc.args[0])) from exc
        dependants = [step.name for step in target.steps[position + 1 :] if name in step.step_refs()]
        if dependants:
            raise PipelineConfigError(
                f"step '{name}' in queue '{queue}' is referenced by {dependants}; remove those first"
            )
        return target.steps.pop(position)

    def clean_queue(self, queue: str) -> None:
        self.queue(queue).steps.clear()

    def list_queues(self) -> list[str]:
        return list(self._queues.keys())

    def list_steps(self, queue: str) -> list[str]:
        return self.queue(queue).step_names()

    def get_step(self, queue: str, name: str) -> StepDefinition:
        target = self.queue(queue)
        try:
            return target.steps[target.index(name)]
        except KeyError as exc:
            raise PipelineConfigError(str(exc.args[0])) from exc

    def validate(self) -> None:
        """Check step-name uniqueness and backward-only references in every queue."""
        for queue in self._queues.values():
            seen: set[str] = set()
            for step in queue.steps:
                if step.name in seen:
                    raise DuplicateStepName(queue.name, step.name)
                for ref in step.step_refs():
                    if ref == step.name:
                        raise PipelineConfigError(
                            f"step '{step.name}' in queue '{queue.name}' references itself"
                        )
                    if ref not in seen:
                        raise PipelineConfigError(
                            f"step '{step.name}' in queue '{queue.name}' references '{ref}', "
                            "which is not an earlier step of the same queue"
                        )
                seen.add(step.name)

    def select_queues(self, queue: str | Sequence[str] | None = None) -> list[Queue]:
        if queue is None:
            return list(self._queues.values())
        names = [queue] if isinstance(queue, str) else list(queue)
        return [self.queue(name) for name in names]

    def select_samples(self, samples: str | Sequence[str] | None = None) -> list[Sample]:
        if samples is None:
            return self.samples
        names = [samples] if isinstance(samples, str) else list(samples)
        return [self.get_sample(name) for name in names]

    def describe(self) -> dict[str, Any]:
        return {
            "schema_version": DESCRIPTION_SCHEMA_VERSION,
            "experiment": self._experiment,
            "samples": [sample.to_dict() for sample in self._samples.values()],
            "queues": {
                queue.name: [
                    {**step.to_config(), "index": index, "depends_on": step.step_refs()}
                    for index, step in enumerate(queue.steps)
                ]
                for queue in self._queues.values()
            },
        }

    @classmethod
    def from_description(cls, payload: Mapping[str, Any]) -> "Pipeline":
        queues_raw = payload.get("queues", {})
        if not isinstance(queues_raw, Mapping):
            raise PipelineConfigError("pipeline description 'queues' must be a mapping")
        pipeline = cls(experiment=str(payload.get("experiment") or ""), samples=payload.get("samples", []) or [])
        for queue_name, steps in queues_raw.items():
            pipeline.add_queue(str(queue_name))
            for step in steps or []:
                if not isinstance(step, Mapping):
                    raise PipelineConfigError(f"queue '{queue_name}' step entries must be mappings")
                pipeline.add_step(
                    str(queue_name),
                    {"name": step.get("name"), "function": step.get("function"), "arguments": step.get("arguments")},
                )
        return pipeline

    def __repr__(self) -> str:
        queues = ", ".join(f"{name}[{len(queue)}]" for name, queue in self._queues.items())
        return f"Pipeline(experiment={self._experiment!r}, samples={len(self._samples)}, queues=({queues}))"
