from cytopipe.steps.registry import (
    STEP_REGISTRY,
    StepFunction,
    StepRegistry,
    import_step_modules,
    list_steps,
    register_step,
    resolve_step,
    validate_arguments,
)
from cytopipe.steps.builtin import EventTable

__all__ = [
    "EventTable",
    "STEP_REGISTRY",
    "StepFunction",
    "StepRegistry",
    "import_step_modules",
    "list_steps",
    "register_step",
    "resolve_step",
    "validate_arguments",
]
