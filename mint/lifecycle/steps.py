"""Named steps with tagged results.

A destructive workflow is an ordered tuple of Step values. ``run_steps``
executes them in order and stops at the first failure. Completed steps are
never undone; the failure carries the step name and a recovery hint instead.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from loguru import logger

from mint.exceptions import (
    BootstrapError,
    MintError,
    PreconditionError,
    RecreateStepError,
    SecurityError,
)

# Errors with their own meaning to the operator; never folded into a step error.
PASSTHROUGH_ERRORS: tuple[type[BaseException], ...] = (PreconditionError, SecurityError, BootstrapError)

# Once something was changed a failed lookup is no longer "nothing happened".
PASSTHROUGH_AFTER_CHANGE: tuple[type[BaseException], ...] = (SecurityError, BootstrapError)


@dataclass(frozen=True, slots=True)
class Step[C]:
    """One named action over a shared workflow context.

    ``action`` returns a short detail string for progress output (or None).
    ``hint`` is appended to the error when this step fails.
    ``destructive`` marks the first step that changes anything; from there
    on precondition errors are reported as step failures.
    """

    name: str
    action: Callable[[C], str | None]
    hint: Callable[[C], str] | None = None
    destructive: bool = False


@dataclass(frozen=True, slots=True)
class StepOk:
    index: int
    name: str
    detail: str = ""


@dataclass(frozen=True, slots=True)
class StepFailed:
    index: int
    name: str
    error: BaseException
    hint: str = ""


type StepResult = StepOk | StepFailed
type Progress = Callable[[str], None]


def run_step[C](
    step: Step[C],
    index: int,
    ctx: C,
    passthrough: tuple[type[BaseException], ...] = PASSTHROUGH_ERRORS,
) -> StepResult:
    try:
        detail = step.action(ctx)
    except passthrough as e:
        if isinstance(e, MintError):
            e.attach_step(f"{index} ({step.name})", step.hint(ctx) if step.hint else "")
        raise
    except Exception as e:  # noqa: BLE001
        hint = step.hint(ctx) if step.hint else ""
        return StepFailed(index, step.name, e, hint)
    return StepOk(index, step.name, detail or "")


def run_steps[C](steps: Sequence[Step[C]], ctx: C, progress: Progress | None = None) -> list[StepOk]:
    """Run ``steps`` in order, raising RecreateStepError on the first failure."""
    total = len(steps)
    done: list[StepOk] = []
    passthrough = PASSTHROUGH_ERRORS
    for index, step in enumerate(steps, start=1):
        if progress:
            progress(f"[{index}/{total}] {step.name}")
        logger.debug(f"Step {index}/{total}: {step.name}")
        if step.destructive:
            passthrough = PASSTHROUGH_AFTER_CHANGE

        match run_step(step, index, ctx, passthrough):
            case StepOk() as ok:
                if ok.detail:
                    logger.info(f"{step.name}: {ok.detail}")
                done.append(ok)
            case StepFailed(error=error, hint=hint):
                logger.error(f"Step {index}/{total} ({step.name}) failed: {error}")
                raise RecreateStepError(step.name, index, total, error, hint) from error
    return done
