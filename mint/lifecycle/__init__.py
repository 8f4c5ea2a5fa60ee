"""Multi-step VM lifecycle workflows."""

from mint.lifecycle.recreate import RecreateOptions, RecreateResult, Recreator
from mint.lifecycle.steps import Step, StepFailed, StepOk, run_steps

__all__ = [
    "RecreateOptions",
    "RecreateResult",
    "Recreator",
    "Step",
    "StepFailed",
    "StepOk",
    "run_steps",
]
